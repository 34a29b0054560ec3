"""Shared test helpers (plain functions, not fixtures)."""

from __future__ import annotations

import base64
import time
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa

from staybook.domain.interval import Interval
from staybook.domain.models import PENDING, Booking, CartItem, Payment, Property


def fake_txn(cur: MagicMock | None = None):
    """Stand-in for infra.db.txn that yields *cur* without a database."""
    cur = cur if cur is not None else MagicMock()

    @contextmanager
    def _txn(conn=None):
        yield cur

    return _txn


def make_property(**overrides) -> Property:
    fields = {
        "id": "prop-1",
        "title": "Beach house",
        "price_per_night": Decimal("200.00"),
        "max_guests": 4,
        "is_active": True,
    }
    fields.update(overrides)
    return Property(**fields)


def make_booking(
    start: date = date(2024, 3, 1),
    end: date = date(2024, 3, 4),
    **overrides,
) -> Booking:
    fields = {
        "id": "booking-1",
        "property_id": "prop-1",
        "user_id": "user-1",
        "interval": Interval(start, end),
        "guest_count": 2,
        "nightly_rate": Decimal("200.00"),
        "service_fee": Decimal("60.00"),
        "total_price": Decimal("660.00"),
        "status": PENDING,
    }
    fields.update(overrides)
    return Booking(**fields)


def make_cart_item(
    start: date = date(2030, 3, 1),
    end: date = date(2030, 3, 4),
    **overrides,
) -> CartItem:
    fields = {
        "id": "item-1",
        "user_id": "user-1",
        "property_id": "prop-1",
        "interval": Interval(start, end),
        "guest_count": 2,
        "quoted_total": Decimal("660.00"),
    }
    fields.update(overrides)
    return CartItem(**fields)


def make_payment(**overrides) -> Payment:
    fields = {
        "id": "pay-1",
        "booking_id": "booking-1",
        "user_id": "user-1",
        "order_id": "ORDER-booking1-1",
        "amount": Decimal("660.00"),
        "status": "pending",
    }
    fields.update(overrides)
    return Payment(**fields)


def generate_rsa_keypair():
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return private_key, private_key.public_key()


def create_jwks(public_key, kid: str = "test-key-1") -> dict:
    numbers = public_key.public_numbers()

    def b64(n: int) -> str:
        raw = n.to_bytes((n.bit_length() + 7) // 8, "big")
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()

    return {
        "keys": [
            {"kty": "RSA", "use": "sig", "alg": "RS256", "kid": kid, "n": b64(numbers.n), "e": b64(numbers.e)}
        ]
    }


def create_token(
    private_key,
    kid: str = "test-key-1",
    sub: str = "user-123",
    iss: str = "https://issuer.example.com",
    aud: str = "staybook-api",
    exp: int | None = None,
    azp: str | None = None,
) -> str:
    now = int(time.time())
    payload = {"sub": sub, "iss": iss, "aud": aud, "exp": exp if exp is not None else now + 3600, "iat": now}
    if azp:
        payload["azp"] = azp
    return jwt.encode(payload, private_key, algorithm="RS256", headers={"kid": kid})
