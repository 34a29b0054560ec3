"""Cart endpoints - holds for the authenticated guest and checkout."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from staybook.api.auth import CurrentUser, get_current_user
from staybook.api.errors import http_error
from staybook.domain import cart
from staybook.domain.errors import BookingEngineError
from staybook.domain.interval import Interval, parse_iso
from staybook.observability.correlation import get_correlation_id
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context

router = APIRouter(prefix="/cart", tags=["cart"])

logger = get_logger(__name__)


class AddCartItemRequest(BaseModel):
    property_id: str = Field(min_length=1)
    start_date: str
    end_date: str
    guest_count: int


class UpdateCartItemRequest(BaseModel):
    start_date: str | None = None
    end_date: str | None = None
    guest_count: int | None = None


class CheckoutRequest(BaseModel):
    cart_item_ids: list[str] = Field(max_length=50)


def _parse_day(value: str | None) -> date | None:
    return parse_iso(value) if value is not None else None


@router.get("")
def get_cart(user: CurrentUser = Depends(get_current_user)) -> dict:
    try:
        return cart.get_cart(user.id).to_dict()
    except BookingEngineError as e:
        raise http_error(e)


@router.post("/items", status_code=201)
def add_item(body: AddCartItemRequest, user: CurrentUser = Depends(get_current_user)) -> dict:
    try:
        interval = Interval.parse(body.start_date, body.end_date)
        item = cart.add_to_cart(
            user_id=user.id,
            property_id=body.property_id,
            interval=interval,
            guest_count=body.guest_count,
        )
    except BookingEngineError as e:
        raise http_error(e)
    return item.to_dict()


@router.patch("/items/{cart_item_id}")
def update_item(
    cart_item_id: str,
    body: UpdateCartItemRequest,
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    try:
        item = cart.update_cart_item(
            user_id=user.id,
            cart_item_id=cart_item_id,
            start=_parse_day(body.start_date),
            end=_parse_day(body.end_date),
            guest_count=body.guest_count,
        )
    except BookingEngineError as e:
        raise http_error(e)
    return item.to_dict()


@router.delete("/items/{cart_item_id}", status_code=204)
def remove_item(cart_item_id: str, user: CurrentUser = Depends(get_current_user)) -> Response:
    try:
        cart.remove_from_cart(user_id=user.id, cart_item_id=cart_item_id)
    except BookingEngineError as e:
        raise http_error(e)
    return Response(status_code=204)


@router.delete("")
def clear(user: CurrentUser = Depends(get_current_user)) -> dict:
    try:
        removed = cart.clear_cart(user.id)
    except BookingEngineError as e:
        raise http_error(e)
    return {"removed": removed}


@router.post("/checkout")
def checkout(body: CheckoutRequest, user: CurrentUser = Depends(get_current_user)) -> dict:
    """Turn cart items into pending bookings, item by item.

    Items that lost their dates are reported in "failures"; the rest are
    booked. Returns 200 even when some items failed.
    """
    try:
        result = cart.checkout(user_id=user.id, cart_item_ids=body.cart_item_ids)
    except BookingEngineError as e:
        raise http_error(e)

    logger.info(
        "cart checkout finished",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                booked=len(result.bookings),
                failed=len(result.failures),
                repriced=len(result.repriced),
            )
        },
    )
    return result.to_dict()
