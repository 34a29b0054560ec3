"""Availability endpoints: single-property check and bulk search filter."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from staybook.api.errors import http_error
from staybook.domain.availability import check_availability, filter_available
from staybook.domain.errors import BookingEngineError
from staybook.domain.interval import Interval
from staybook.observability.logging import get_logger

router = APIRouter(prefix="/availability", tags=["availability"])

logger = get_logger(__name__)


class AvailabilityCheckRequest(BaseModel):
    property_id: str = Field(min_length=1)
    start_date: str
    end_date: str


class AvailabilitySearchRequest(BaseModel):
    property_ids: list[str] = Field(max_length=200)
    start_date: str
    end_date: str


@router.post("/check")
def check(body: AvailabilityCheckRequest) -> dict:
    """Is the property free for [start_date, end_date)?

    Returns:
        {"available": bool, "conflicting_dates"?: [{"start", "end"}]}
        400 on malformed dates or end_date <= start_date.
        503 when the calendar cannot be read (never reported as available).
    """
    try:
        interval = Interval.parse(body.start_date, body.end_date)
        result = check_availability(body.property_id, interval)
    except BookingEngineError as e:
        raise http_error(e)
    return result.to_dict()


@router.post("/search")
def search(body: AvailabilitySearchRequest) -> dict:
    """Subset of property_ids verified free; unreadable ones are left out."""
    try:
        interval = Interval.parse(body.start_date, body.end_date)
    except BookingEngineError as e:
        raise http_error(e)
    if not body.property_ids:
        raise HTTPException(status_code=400, detail="property_ids must not be empty")
    return {"property_ids": filter_available(body.property_ids, interval)}
