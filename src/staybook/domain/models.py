"""Records owned by the reservation engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from staybook.domain.interval import Interval

# Booking lifecycle states
PENDING = "pending"
CONFIRMED = "confirmed"
CANCELLED = "cancelled"
COMPLETED = "completed"

# Statuses that occupy the calendar
ACTIVE_STATUSES = (PENDING, CONFIRMED)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class Property:
    id: str
    title: str
    price_per_night: Decimal
    max_guests: int
    is_active: bool = True


@dataclass(frozen=True)
class Booking:
    id: str
    property_id: str
    user_id: str
    interval: Interval
    guest_count: int
    nightly_rate: Decimal
    service_fee: Decimal
    total_price: Decimal
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "property_id": self.property_id,
            "start_date": self.interval.start.isoformat(),
            "end_date": self.interval.end.isoformat(),
            "nights": self.interval.nights,
            "guest_count": self.guest_count,
            "nightly_rate": str(self.nightly_rate),
            "service_fee": str(self.service_fee),
            "total_price": str(self.total_price),
            "status": self.status,
            "created_at": _iso(self.created_at),
        }


@dataclass(frozen=True)
class CartItem:
    id: str
    user_id: str
    property_id: str
    interval: Interval
    guest_count: int
    quoted_total: Decimal | None = None
    created_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "property_id": self.property_id,
            "start_date": self.interval.start.isoformat(),
            "end_date": self.interval.end.isoformat(),
            "guest_count": self.guest_count,
            "quoted_total": str(self.quoted_total) if self.quoted_total is not None else None,
            "created_at": _iso(self.created_at),
        }


@dataclass(frozen=True)
class Payment:
    id: str
    booking_id: str
    user_id: str
    order_id: str
    amount: Decimal
    status: str
    transaction_id: str | None = None
    snap_token: str | None = None
    redirect_url: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "order_id": self.order_id,
            "amount": str(self.amount),
            "status": self.status,
            "snap_token": self.snap_token,
            "redirect_url": self.redirect_url,
        }
