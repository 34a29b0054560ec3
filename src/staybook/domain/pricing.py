"""Deterministic stay pricing.

Money is handled as ``Decimal`` end to end and rounded half-up at the
cent boundary, so a quote computed at cart time, at checkout and when
the gateway reports the paid amount always agrees to the cent.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from staybook.domain.errors import ValidationError
from staybook.domain.interval import Interval, nights as count_nights

CENT = Decimal("0.01")
SERVICE_FEE_RATE = Decimal("0.10")


def to_decimal(value: object) -> Decimal:
    """Coerce *value* to an exact, finite Decimal.

    Floats go through ``str`` so 123.45 stays 123.45 instead of its
    binary approximation.

    Raises:
        ValidationError: If *value* is not a finite number.
    """
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(f"not a monetary amount: {value!r}") from e
    if not amount.is_finite():
        raise ValidationError(f"not a monetary amount: {value!r}")
    return amount


def to_money(value: object) -> Decimal:
    """Coerce *value* to a cent-rounded Decimal."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PriceQuote:
    nights: int
    nightly_rate: Decimal
    subtotal: Decimal
    service_fee: Decimal
    total: Decimal

    def to_dict(self) -> dict[str, object]:
        return {
            "nights": self.nights,
            "nightly_rate": str(self.nightly_rate),
            "subtotal": str(self.subtotal),
            "service_fee": str(self.service_fee),
            "total": str(self.total),
        }


def quote(nightly_rate: object, interval: Interval) -> PriceQuote:
    """Price a stay: nights x rate, plus a 10% service fee.

    The rate is used as given; rounding to cents happens on the subtotal.

    Raises:
        ValidationError: If nightly_rate is not a positive amount.
    """
    rate = to_decimal(nightly_rate)
    if rate <= 0:
        raise ValidationError(f"nightly rate must be positive, got {rate}")

    nights = count_nights(interval)
    subtotal = (rate * nights).quantize(CENT, rounding=ROUND_HALF_UP)
    service_fee = (subtotal * SERVICE_FEE_RATE).quantize(CENT, rounding=ROUND_HALF_UP)
    total = (subtotal + service_fee).quantize(CENT, rounding=ROUND_HALF_UP)

    return PriceQuote(
        nights=nights,
        nightly_rate=rate,
        subtotal=subtotal,
        service_fee=service_fee,
        total=total,
    )


def amounts_match(expected: Decimal, actual: object, tolerance: Decimal = CENT) -> bool:
    """True if *actual* is within *tolerance* of *expected*."""
    try:
        paid = to_money(actual)
    except ValidationError:
        return False
    return abs(to_money(expected) - paid) <= tolerance
