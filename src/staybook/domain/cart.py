"""Cart holds and checkout.

A cart item records intent only: it does not block anyone else's
booking. Availability is therefore not checked when an item is added,
but every item is re-validated at checkout, where the conditional
booking insert decides who gets the dates.

Checkout is partial by design: each item succeeds or fails on its own
and the caller decides what to do with the available subset.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from psycopg2.extensions import cursor as PgCursor

from staybook.domain.availability import check_availability
from staybook.domain.bookings import create_booking, ensure_future
from staybook.domain.errors import (
    BookingEngineError,
    ConflictError,
    InvalidRangeError,
    NotFoundError,
    TransientStoreError,
    ValidationError,
)
from staybook.domain.interval import Interval
from staybook.domain.models import Booking, CartItem, Property
from staybook.domain.pricing import PriceQuote, quote
from staybook.infra.db import txn
from staybook.infra.repositories import cart_repository as repo
from staybook.infra.repositories.properties_repository import get_property

logger = logging.getLogger(__name__)

REASON_NOT_FOUND = "not_found"
REASON_UNAVAILABLE = "unavailable"
REASON_INVALID = "invalid"
REASON_RETRY = "retry"


def _validate_stay(
    cur: PgCursor,
    property_id: str,
    interval: Interval,
    guest_count: int,
    today: date | None,
) -> Property:
    ensure_future(interval, today)
    if guest_count < 1:
        raise ValidationError("guest_count must be at least 1")

    prop = get_property(cur, property_id)
    if prop is None or not prop.is_active:
        raise NotFoundError("Property", property_id)
    if guest_count > prop.max_guests:
        raise ValidationError(f"guest count exceeds property maximum of {prop.max_guests}")
    return prop


def add_to_cart(
    *,
    user_id: str,
    property_id: str,
    interval: Interval,
    guest_count: int,
    today: date | None = None,
) -> CartItem:
    """Store a hold for the user. Availability is deliberately not checked."""
    with txn() as cur:
        prop = _validate_stay(cur, property_id, interval, guest_count, today)
        start_date, end_date = interval.as_days()
        item = repo.insert_cart_item(
            cur,
            user_id=user_id,
            property_id=property_id,
            start_date=start_date,
            end_date=end_date,
            guest_count=guest_count,
            quoted_total=quote(prop.price_per_night, interval).total,
        )

    logger.info(
        "cart item added",
        extra={"extra_fields": {"cart_item_id": item.id, "property_id": property_id}},
    )
    return item


def update_cart_item(
    *,
    user_id: str,
    cart_item_id: str,
    start: date | None = None,
    end: date | None = None,
    guest_count: int | None = None,
    today: date | None = None,
) -> CartItem:
    """Change dates and/or guests of a cart item; same rules as add_to_cart."""
    with txn() as cur:
        existing = repo.get_cart_item(cur, user_id, cart_item_id)
        if existing is None:
            raise NotFoundError("Cart item", cart_item_id)

        interval = Interval(
            start if start is not None else existing.interval.start,
            end if end is not None else existing.interval.end,
        )
        guests = guest_count if guest_count is not None else existing.guest_count
        prop = _validate_stay(cur, existing.property_id, interval, guests, today)

        start_date, end_date = interval.as_days()
        updated = repo.update_cart_item(
            cur,
            user_id,
            cart_item_id,
            start_date=start_date,
            end_date=end_date,
            guest_count=guests,
            quoted_total=quote(prop.price_per_night, interval).total,
        )
    if updated is None:
        raise NotFoundError("Cart item", cart_item_id)
    return updated


def remove_from_cart(*, user_id: str, cart_item_id: str) -> None:
    with txn() as cur:
        removed = repo.delete_cart_item(cur, user_id, cart_item_id)
    if not removed:
        raise NotFoundError("Cart item", cart_item_id)


def clear_cart(user_id: str) -> int:
    """Remove every cart item of the user; returns how many were removed."""
    with txn() as cur:
        return repo.delete_user_cart(cur, user_id)


@dataclass(frozen=True)
class CartLine:
    item: CartItem
    pricing: PriceQuote | None
    is_available: bool

    def to_dict(self) -> dict:
        return {
            **self.item.to_dict(),
            "pricing": self.pricing.to_dict() if self.pricing else None,
            "is_available": self.is_available,
        }


@dataclass(frozen=True)
class CartView:
    lines: list[CartLine]

    @property
    def summary(self) -> dict:
        priced = [line.pricing for line in self.lines if line.pricing is not None]
        return {
            "item_count": len(self.lines),
            "subtotal": str(sum((p.subtotal for p in priced), Decimal("0.00"))),
            "service_fee": str(sum((p.service_fee for p in priced), Decimal("0.00"))),
            "total": str(sum((p.total for p in priced), Decimal("0.00"))),
            "all_available": all(line.is_available for line in self.lines),
        }

    def to_dict(self) -> dict:
        return {"items": [line.to_dict() for line in self.lines], "summary": self.summary}


def get_cart(user_id: str) -> CartView:
    """Cart items, newest first, with current pricing and availability."""
    with txn() as cur:
        items = repo.list_cart_items(cur, user_id)
        properties = {pid: get_property(cur, pid) for pid in {i.property_id for i in items}}

    lines: list[CartLine] = []
    for item in items:
        prop = properties.get(item.property_id)
        if prop is None or not prop.is_active:
            lines.append(CartLine(item=item, pricing=None, is_available=False))
            continue

        try:
            is_available = check_availability(item.property_id, item.interval).available
        except BookingEngineError:
            # unknown availability is shown as unavailable
            is_available = False

        lines.append(
            CartLine(
                item=item,
                pricing=quote(prop.price_per_night, item.interval),
                is_available=is_available,
            )
        )
    return CartView(lines=lines)


@dataclass(frozen=True)
class CheckoutFailure:
    cart_item_id: str
    reason: str
    message: str
    conflicts: list[Interval] = field(default_factory=list)

    def to_dict(self) -> dict:
        body = {"cart_item_id": self.cart_item_id, "reason": self.reason, "message": self.message}
        if self.conflicts:
            body["conflicting_dates"] = [c.to_dict() for c in self.conflicts]
        return body


@dataclass(frozen=True)
class Repricing:
    cart_item_id: str
    booking_id: str
    quoted_total: Decimal
    charged_total: Decimal

    def to_dict(self) -> dict:
        return {
            "cart_item_id": self.cart_item_id,
            "booking_id": self.booking_id,
            "quoted_total": str(self.quoted_total),
            "charged_total": str(self.charged_total),
        }


@dataclass
class CheckoutResult:
    bookings: list[Booking] = field(default_factory=list)
    failures: list[CheckoutFailure] = field(default_factory=list)
    repriced: list[Repricing] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.bookings) and bool(self.failures)

    def to_dict(self) -> dict:
        return {
            "bookings": [b.to_dict() for b in self.bookings],
            "failures": [f.to_dict() for f in self.failures],
            "repriced": [r.to_dict() for r in self.repriced],
        }


def _checkout_item(
    cur: PgCursor, user_id: str, cart_item_id: str, today: date | None
) -> tuple[CartItem, Booking]:
    item = repo.get_cart_item(cur, user_id, cart_item_id)
    if item is None:
        raise NotFoundError("Cart item", cart_item_id)
    # a stale item whose check-in has passed cannot become a booking
    ensure_future(item.interval, today)

    # advisory pre-check gives the caller the conflicting ranges
    availability = check_availability(item.property_id, item.interval, cur=cur)
    if not availability.available:
        raise ConflictError("dates are no longer available", availability.conflicts)

    booking = create_booking(
        property_id=item.property_id,
        user_id=user_id,
        interval=item.interval,
        guest_count=item.guest_count,
        cur=cur,
        today=today,
    )
    repo.delete_cart_item(cur, user_id, cart_item_id)
    return item, booking


def checkout(*, user_id: str, cart_item_ids: list[str], today: date | None = None) -> CheckoutResult:
    """Turn cart items into pending bookings, one transaction per item.

    Raises:
        ValidationError: If no cart item ids were given.
    """
    ids = list(dict.fromkeys(cart_item_ids))
    if not ids:
        raise ValidationError("at least one cart item is required")

    result = CheckoutResult()
    for cart_item_id in ids:
        try:
            with txn() as cur:
                item, booking = _checkout_item(cur, user_id, cart_item_id, today)
        except ConflictError as e:
            result.failures.append(
                CheckoutFailure(cart_item_id, REASON_UNAVAILABLE, str(e), e.conflicts)
            )
            continue
        except NotFoundError as e:
            result.failures.append(CheckoutFailure(cart_item_id, REASON_NOT_FOUND, str(e)))
            continue
        except (ValidationError, InvalidRangeError) as e:
            result.failures.append(CheckoutFailure(cart_item_id, REASON_INVALID, str(e)))
            continue
        except TransientStoreError as e:
            logger.warning(
                "checkout item hit transient store error",
                extra={"extra_fields": {"cart_item_id": cart_item_id}},
            )
            result.failures.append(CheckoutFailure(cart_item_id, REASON_RETRY, str(e)))
            continue

        result.bookings.append(booking)
        if item.quoted_total is not None and item.quoted_total != booking.total_price:
            logger.info(
                "rate drift at checkout",
                extra={
                    "extra_fields": {
                        "cart_item_id": cart_item_id,
                        "quoted_total": str(item.quoted_total),
                        "charged_total": str(booking.total_price),
                    }
                },
            )
            result.repriced.append(
                Repricing(cart_item_id, booking.id, item.quoted_total, booking.total_price)
            )

    logger.info(
        "checkout finished",
        extra={
            "extra_fields": {
                "requested": len(ids),
                "booked": len(result.bookings),
                "failed": len(result.failures),
            }
        },
    )
    return result
