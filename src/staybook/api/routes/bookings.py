"""Booking endpoints for the authenticated guest."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from staybook.api.auth import CurrentUser, get_current_user
from staybook.api.errors import http_error
from staybook.domain import bookings, payments
from staybook.domain.errors import BookingEngineError
from staybook.domain.interval import Interval
from staybook.gateway.client import GatewayError, SnapClient
from staybook.observability.correlation import get_correlation_id
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context

router = APIRouter(prefix="/bookings", tags=["bookings"])

logger = get_logger(__name__)


class CreateBookingRequest(BaseModel):
    property_id: str = Field(min_length=1)
    start_date: str
    end_date: str
    guest_count: int


def _get_gateway_client() -> SnapClient:
    """Gateway client (override in tests)."""
    try:
        return SnapClient()
    except RuntimeError:
        logger.error("payment gateway not configured")
        raise HTTPException(status_code=503, detail="payments unavailable")


@router.get("")
def list_bookings(user: CurrentUser = Depends(get_current_user)) -> dict:
    try:
        items = bookings.list_user_bookings(user.id)
    except BookingEngineError as e:
        raise http_error(e)
    return {"bookings": [b.to_dict() for b in items]}


@router.get("/{booking_id}")
def get_one(booking_id: str, user: CurrentUser = Depends(get_current_user)) -> dict:
    try:
        booking = bookings.get_booking(booking_id, user_id=user.id)
    except BookingEngineError as e:
        raise http_error(e)
    return booking.to_dict()


@router.post("", status_code=201)
def create(body: CreateBookingRequest, user: CurrentUser = Depends(get_current_user)) -> dict:
    """Create a pending booking directly (without the cart).

    409 with conflicting_dates when the range is taken.
    """
    try:
        interval = Interval.parse(body.start_date, body.end_date)
        booking = bookings.create_booking(
            property_id=body.property_id,
            user_id=user.id,
            interval=interval,
            guest_count=body.guest_count,
        )
    except BookingEngineError as e:
        raise http_error(e)
    return booking.to_dict()


@router.post("/{booking_id}/actions/cancel")
def cancel(booking_id: str, user: CurrentUser = Depends(get_current_user)) -> dict:
    try:
        booking = bookings.cancel_booking(booking_id, user_id=user.id)
    except BookingEngineError as e:
        raise http_error(e)

    logger.info(
        "booking cancelled by guest",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(), booking_id=booking_id
            )
        },
    )
    return booking.to_dict()


@router.post("/{booking_id}/payment")
def start_payment(
    booking_id: str,
    user: CurrentUser = Depends(get_current_user),
    client: SnapClient = Depends(_get_gateway_client),
) -> dict:
    """Open (or return the existing) gateway transaction for a pending booking."""
    try:
        payment = payments.initiate_payment(booking_id, user.id, client=client)
    except BookingEngineError as e:
        raise http_error(e)
    except GatewayError:
        raise HTTPException(status_code=502, detail="payment gateway rejected the request")
    return payment.to_dict()
