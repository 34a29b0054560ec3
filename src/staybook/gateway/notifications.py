"""Payment gateway notification parsing and verification.

Purpose:
- Verify the notification signature before anything else touches it.
- Extract only the fields reconciliation needs.
- Translate the gateway's transaction vocabulary into booking actions.
- Never log signature, server key or raw payload.

Signature scheme: hex(SHA512(order_id + status_code + gross_amount + server_key)),
computed over the exact strings the gateway sent.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import os
from dataclasses import dataclass
from typing import Any

from staybook.domain.errors import SignatureError

logger = logging.getLogger(__name__)

ACTION_CONFIRM = "confirm"
ACTION_CANCEL = "cancel"
ACTION_NOOP = "noop"

_CONFIRM_STATUSES = frozenset({"capture", "settlement"})
_CANCEL_STATUSES = frozenset({"deny", "expire", "cancel"})
_NOOP_STATUSES = frozenset({"pending", "refund", "partial_refund", "authorize"})

_REQUIRED_FIELDS = (
    "order_id",
    "transaction_id",
    "transaction_status",
    "status_code",
    "gross_amount",
    "signature_key",
)


class InvalidPayloadError(Exception):
    """Notification is missing required fields or has the wrong shape."""


@dataclass(frozen=True)
class PaymentNotification:
    """The parts of a gateway notification the engine relies on."""

    order_id: str
    transaction_id: str
    transaction_status: str
    status_code: str
    gross_amount: str
    signature: str
    fraud_status: str | None = None
    payment_type: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> PaymentNotification:
        """Build from decoded JSON.

        Raises:
            InvalidPayloadError: If payload is not an object or lacks a required field.
        """
        if not isinstance(payload, dict):
            raise InvalidPayloadError("notification must be a JSON object")

        missing = [k for k in _REQUIRED_FIELDS if payload.get(k) in (None, "")]
        if missing:
            raise InvalidPayloadError(f"missing fields: {', '.join(missing)}")

        return cls(
            order_id=str(payload["order_id"]),
            transaction_id=str(payload["transaction_id"]),
            transaction_status=str(payload["transaction_status"]).lower(),
            status_code=str(payload["status_code"]),
            gross_amount=str(payload["gross_amount"]),
            signature=str(payload["signature_key"]),
            fraud_status=payload.get("fraud_status"),
            payment_type=payload.get("payment_type"),
        )


def get_server_key() -> str:
    """Gateway server key from PAYMENT_SERVER_KEY.

    Raises:
        RuntimeError: If the key is not configured.
    """
    key = os.environ.get("PAYMENT_SERVER_KEY", "")
    if not key:
        raise RuntimeError("PAYMENT_SERVER_KEY not configured")
    return key


def compute_signature(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    raw = f"{order_id}{status_code}{gross_amount}{server_key}".encode()
    return hashlib.sha512(raw).hexdigest()


def verify_signature(notification: PaymentNotification, server_key: str) -> None:
    """Raise SignatureError unless the notification was signed with server_key."""
    expected = compute_signature(
        notification.order_id,
        notification.status_code,
        notification.gross_amount,
        server_key,
    )
    if not hmac.compare_digest(expected, notification.signature.lower()):
        logger.warning(
            "payment notification signature mismatch",
            extra={"extra_fields": {"order_id": notification.order_id}},
        )
        raise SignatureError("invalid notification signature")


def map_transaction_status(transaction_status: str, fraud_status: str | None = None) -> str:
    """Booking action for a gateway transaction status.

    capture counts as paid only when fraud screening accepted it (or the
    gateway sent no fraud verdict); a challenged capture waits for review.
    Unknown statuses are never treated as payment.
    """
    status = transaction_status.lower()

    if status == "capture":
        verdict = (fraud_status or "accept").lower()
        if verdict == "accept":
            return ACTION_CONFIRM
        if verdict == "deny":
            return ACTION_CANCEL
        return ACTION_NOOP

    if status in _CONFIRM_STATUSES:
        return ACTION_CONFIRM
    if status in _CANCEL_STATUSES:
        return ACTION_CANCEL
    if status not in _NOOP_STATUSES:
        logger.warning(
            "unrecognized transaction status treated as no-op",
            extra={"extra_fields": {"transaction_status": status[:32]}},
        )
    return ACTION_NOOP
