"""Payment reconciliation - drives bookings from gateway notifications.

Order of operations for a notification (all in one transaction):
1. Signature check. Nothing is read or written before it passes.
2. Resolve the payment (and its booking) by order_id, row-locked.
3. Idempotency: a transaction_id that already moved the booking is a
   duplicate and returns success without touching the booking.
4. Map gateway status to confirm / cancel / no-op.
5. Apply through the booking lifecycle, then record the receipt.

Receipts are written only when a transition was applied, so a pending
notification followed by settlement on the same transaction_id still
confirms the booking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from psycopg2.extensions import cursor as PgCursor

from staybook.domain.bookings import cancel_booking, confirm_booking
from staybook.domain.errors import InvalidTransitionError, NotFoundError
from staybook.domain.models import CANCELLED, CONFIRMED, PENDING, Payment
from staybook.gateway.client import SnapClient
from staybook.gateway.notifications import (
    ACTION_CANCEL,
    ACTION_CONFIRM,
    ACTION_NOOP,
    PaymentNotification,
    get_server_key,
    map_transaction_status,
    verify_signature,
)
from staybook.infra.db import txn
from staybook.infra.repositories import bookings_repository
from staybook.infra.repositories import payments_repository as repo
from staybook.infra.repositories.properties_repository import get_property
from staybook.infra.time import utc_now
from staybook.observability.correlation import get_correlation_id
from staybook.observability.redaction import safe_log_context

logger = logging.getLogger(__name__)

RECEIPT_SOURCE = "payment_gateway"

OUTCOME_APPLIED = "applied"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_IGNORED = "ignored"

_ACTION_TARGET = {ACTION_CONFIRM: CONFIRMED, ACTION_CANCEL: CANCELLED}


@dataclass(frozen=True)
class NotificationResult:
    outcome: str
    booking_id: str
    booking_status: str
    action: str

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome,
            "booking_id": self.booking_id,
            "booking_status": self.booking_status,
            "action": self.action,
        }


def handle_notification(
    notification: PaymentNotification,
    *,
    server_key: str | None = None,
) -> NotificationResult:
    """Verify and apply one gateway notification.

    Raises:
        SignatureError: Signature does not match; no state was read or changed.
        NotFoundError: order_id is unknown.
        AmountMismatchError: Settlement amount differs from the booking total.
        ConflictError: Booking can no longer be confirmed without overlap.
        InvalidTransitionError: Lifecycle rejects the move.
    """
    verify_signature(notification, server_key or get_server_key())

    action = map_transaction_status(notification.transaction_status, notification.fraud_status)

    with txn() as cur:
        payment = repo.get_payment_by_order_id(cur, notification.order_id, lock=True)
        if payment is None:
            raise NotFoundError("Payment", notification.order_id)

        if repo.is_processed(cur, source=RECEIPT_SOURCE, external_id=notification.transaction_id):
            booking = bookings_repository.get_booking(cur, payment.booking_id)
            logger.info(
                "duplicate payment notification ignored",
                extra={
                    "extra_fields": safe_log_context(
                        order_id=notification.order_id,
                        transaction_status=notification.transaction_status,
                    )
                },
            )
            return NotificationResult(
                OUTCOME_DUPLICATE, payment.booking_id, booking.status if booking else "missing", action
            )

        result = _apply(cur, payment, notification, action)

        repo.record_gateway_status(
            cur,
            payment.id,
            status=notification.transaction_status,
            transaction_id=notification.transaction_id,
            payment_type=notification.payment_type,
        )
        if result.outcome == OUTCOME_APPLIED:
            repo.mark_processed(cur, source=RECEIPT_SOURCE, external_id=notification.transaction_id)

    logger.info(
        "payment notification handled",
        extra={
            "extra_fields": safe_log_context(
                order_id=notification.order_id,
                booking_id=result.booking_id,
                transaction_status=notification.transaction_status,
                outcome=result.outcome,
                booking_status=result.booking_status,
            )
        },
    )
    return result


def _apply(
    cur: PgCursor,
    payment: Payment,
    notification: PaymentNotification,
    action: str,
) -> NotificationResult:
    booking = bookings_repository.get_booking(cur, payment.booking_id, lock=True)
    if booking is None:
        raise NotFoundError("Booking", payment.booking_id)

    if action == ACTION_NOOP:
        return NotificationResult(OUTCOME_IGNORED, booking.id, booking.status, action)

    target = _ACTION_TARGET[action]
    if booking.status == target:
        # redelivery under a different transaction id, or a terminal repeat
        return NotificationResult(OUTCOME_IGNORED, booking.id, booking.status, action)

    try:
        if action == ACTION_CONFIRM:
            updated = confirm_booking(booking.id, notification.gross_amount, cur=cur)
        else:
            updated = cancel_booking(booking.id, cur=cur)
    except InvalidTransitionError:
        logger.warning(
            "payment notification does not fit booking state",
            extra={
                "extra_fields": {
                    "booking_id": booking.id,
                    "status": booking.status,
                    "action": action,
                }
            },
        )
        raise

    return NotificationResult(OUTCOME_APPLIED, updated.id, updated.status, action)


def _order_id(booking_id: str) -> str:
    return f"ORDER-{booking_id[:8]}-{int(utc_now().timestamp() * 1000)}"


def initiate_payment(
    booking_id: str,
    user_id: str,
    *,
    client: SnapClient | None = None,
) -> Payment:
    """Open a gateway transaction for the user's pending booking.

    A booking has at most one payment; asking again returns it unchanged.
    The gateway call happens outside any database transaction.

    Raises:
        NotFoundError: Booking missing or owned by someone else.
        InvalidTransitionError: Booking is no longer pending.
        TransientStoreError: Gateway unreachable.
    """
    with txn() as cur:
        booking = bookings_repository.get_booking(cur, booking_id)
        if booking is None or booking.user_id != user_id:
            raise NotFoundError("Booking", booking_id)

        existing = repo.get_payment_by_booking(cur, booking_id)
        if existing is not None:
            return existing

        if booking.status != PENDING:
            raise InvalidTransitionError(booking_id, booking.status, CONFIRMED)

        prop = get_property(cur, booking.property_id)
        item_name = prop.title if prop is not None else booking.property_id

    order_id = _order_id(booking_id)
    snap = (client or SnapClient()).create_transaction(
        order_id=order_id,
        gross_amount=booking.total_price,
        item_id=booking.property_id,
        item_name=item_name,
        correlation_id=get_correlation_id(),
    )

    with txn() as cur:
        payment = repo.insert_payment(
            cur,
            booking_id=booking_id,
            user_id=user_id,
            order_id=order_id,
            amount=booking.total_price,
            snap_token=snap["token"],
            redirect_url=snap["redirect_url"],
        )
        if payment is None:
            # another request won the race for this booking
            payment = repo.get_payment_by_booking(cur, booking_id)

    logger.info(
        "payment initiated",
        extra={"extra_fields": {"booking_id": booking_id, "order_id": payment.order_id}},
    )
    return payment
