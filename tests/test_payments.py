"""Tests for payment reconciliation and initiation (repositories mocked)."""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from helpers import fake_txn, make_booking, make_payment, make_property
from staybook.domain import payments
from staybook.domain.errors import (
    AmountMismatchError,
    InvalidTransitionError,
    NotFoundError,
    SignatureError,
)
from staybook.domain.models import CANCELLED, CONFIRMED, PENDING
from staybook.gateway.notifications import PaymentNotification, compute_signature

MODULE = "staybook.domain.payments"
SERVER_KEY = "server-key"


def _notification(status="settlement", amount="660.00", txn_id="txn-1", fraud=None, key=SERVER_KEY):
    order_id = "ORDER-booking1-1"
    return PaymentNotification(
        order_id=order_id,
        transaction_id=txn_id,
        transaction_status=status,
        status_code="200",
        gross_amount=amount,
        signature=compute_signature(order_id, "200", amount, key),
        fraud_status=fraud,
    )


@pytest.fixture
def stores():
    with patch(f"{MODULE}.repo") as pay_repo, patch(f"{MODULE}.bookings_repository") as book_repo, patch(
        f"{MODULE}.txn", fake_txn()
    ):
        pay_repo.get_payment_by_order_id.return_value = make_payment()
        pay_repo.is_processed.return_value = False
        book_repo.get_booking.return_value = make_booking(status=PENDING)
        yield pay_repo, book_repo


class TestHandleNotification:
    def test_settlement_confirms_and_records_receipt(self, stores):
        pay_repo, _ = stores
        with patch(f"{MODULE}.confirm_booking", return_value=make_booking(status=CONFIRMED)) as confirm:
            result = payments.handle_notification(_notification(), server_key=SERVER_KEY)

        assert result.outcome == payments.OUTCOME_APPLIED
        assert result.booking_status == CONFIRMED
        assert confirm.call_args.args[:2] == ("booking-1", "660.00")
        pay_repo.mark_processed.assert_called_once()
        assert pay_repo.mark_processed.call_args.kwargs["external_id"] == "txn-1"
        pay_repo.record_gateway_status.assert_called_once()

    def test_bad_signature_touches_nothing(self, stores):
        pay_repo, book_repo = stores
        with pytest.raises(SignatureError):
            payments.handle_notification(_notification(key="forged"), server_key=SERVER_KEY)
        pay_repo.get_payment_by_order_id.assert_not_called()
        book_repo.get_booking.assert_not_called()

    def test_replay_is_duplicate(self, stores):
        pay_repo, _ = stores
        pay_repo.is_processed.return_value = True
        with patch(f"{MODULE}.confirm_booking") as confirm:
            result = payments.handle_notification(_notification(), server_key=SERVER_KEY)
        assert result.outcome == payments.OUTCOME_DUPLICATE
        confirm.assert_not_called()
        pay_repo.mark_processed.assert_not_called()

    def test_cancel_after_settlement_on_same_transaction_is_duplicate(self, stores):
        pay_repo, book_repo = stores
        receipts = set()
        pay_repo.is_processed.side_effect = lambda cur, *, source, external_id: external_id in receipts
        pay_repo.mark_processed.side_effect = lambda cur, *, source, external_id: receipts.add(external_id)

        with patch(f"{MODULE}.confirm_booking", return_value=make_booking(status=CONFIRMED)), patch(
            f"{MODULE}.cancel_booking"
        ) as cancel:
            first = payments.handle_notification(_notification(status="settlement"), server_key=SERVER_KEY)
            book_repo.get_booking.return_value = make_booking(status=CONFIRMED)
            second = payments.handle_notification(_notification(status="cancel"), server_key=SERVER_KEY)

        assert first.outcome == payments.OUTCOME_APPLIED
        assert second.outcome == payments.OUTCOME_DUPLICATE
        assert second.booking_status == CONFIRMED
        cancel.assert_not_called()
        assert receipts == {"txn-1"}

    def test_pending_is_noop_and_leaves_no_receipt(self, stores):
        pay_repo, _ = stores
        with patch(f"{MODULE}.confirm_booking") as confirm, patch(f"{MODULE}.cancel_booking") as cancel:
            result = payments.handle_notification(_notification(status="pending"), server_key=SERVER_KEY)
        assert result.outcome == payments.OUTCOME_IGNORED
        assert result.booking_status == PENDING
        confirm.assert_not_called()
        cancel.assert_not_called()
        pay_repo.mark_processed.assert_not_called()
        pay_repo.record_gateway_status.assert_called_once()

    def test_challenged_capture_waits(self, stores):
        with patch(f"{MODULE}.confirm_booking") as confirm:
            result = payments.handle_notification(
                _notification(status="capture", fraud="challenge"), server_key=SERVER_KEY
            )
        assert result.outcome == payments.OUTCOME_IGNORED
        confirm.assert_not_called()

    @pytest.mark.parametrize("status", ["deny", "expire", "cancel"])
    def test_failure_statuses_cancel(self, stores, status):
        with patch(f"{MODULE}.cancel_booking", return_value=make_booking(status=CANCELLED)) as cancel:
            result = payments.handle_notification(_notification(status=status), server_key=SERVER_KEY)
        assert result.booking_status == CANCELLED
        cancel.assert_called_once()

    def test_already_in_target_state_is_ignored(self, stores):
        _, book_repo = stores
        book_repo.get_booking.return_value = make_booking(status=CANCELLED)
        with patch(f"{MODULE}.cancel_booking") as cancel:
            result = payments.handle_notification(_notification(status="expire"), server_key=SERVER_KEY)
        assert result.outcome == payments.OUTCOME_IGNORED
        cancel.assert_not_called()

    def test_amount_mismatch_propagates_without_receipt(self, stores):
        pay_repo, _ = stores
        with patch(
            f"{MODULE}.confirm_booking",
            side_effect=AmountMismatchError("booking-1", Decimal("660.00"), "1"),
        ):
            with pytest.raises(AmountMismatchError):
                payments.handle_notification(_notification(amount="1"), server_key=SERVER_KEY)
        pay_repo.mark_processed.assert_not_called()

    def test_settlement_after_cancel_is_invalid_transition(self, stores):
        _, book_repo = stores
        book_repo.get_booking.return_value = make_booking(status=CANCELLED)
        with patch(
            f"{MODULE}.confirm_booking",
            side_effect=InvalidTransitionError("booking-1", CANCELLED, CONFIRMED),
        ):
            with pytest.raises(InvalidTransitionError):
                payments.handle_notification(_notification(), server_key=SERVER_KEY)

    def test_unknown_order(self, stores):
        pay_repo, _ = stores
        pay_repo.get_payment_by_order_id.return_value = None
        with pytest.raises(NotFoundError):
            payments.handle_notification(_notification(), server_key=SERVER_KEY)

    def test_signature_never_logged(self, stores, caplog):
        n = _notification()
        with patch(f"{MODULE}.confirm_booking", return_value=make_booking(status=CONFIRMED)):
            payments.handle_notification(n, server_key=SERVER_KEY)
        assert n.signature not in caplog.text
        assert SERVER_KEY not in caplog.text


class TestInitiatePayment:
    def _client(self):
        client = MagicMock()
        client.create_transaction.return_value = {"token": "snap-token", "redirect_url": "https://pay/x"}
        return client

    def test_creates_payment_for_pending_booking(self, stores):
        pay_repo, _ = stores
        pay_repo.get_payment_by_booking.return_value = None
        pay_repo.insert_payment.side_effect = lambda c, **kw: make_payment(
            order_id=kw["order_id"], snap_token=kw["snap_token"], redirect_url=kw["redirect_url"]
        )
        client = self._client()
        with patch(f"{MODULE}.get_property", return_value=make_property()):
            payment = payments.initiate_payment("booking-1", "user-1", client=client)

        assert payment.snap_token == "snap-token"
        assert payment.order_id.startswith("ORDER-booking-")
        kwargs = client.create_transaction.call_args.kwargs
        assert kwargs["gross_amount"] == Decimal("660.00")
        assert kwargs["item_name"] == "Beach house"

    def test_existing_payment_returned(self, stores):
        pay_repo, _ = stores
        existing = make_payment(snap_token="old")
        pay_repo.get_payment_by_booking.return_value = existing
        client = self._client()
        assert payments.initiate_payment("booking-1", "user-1", client=client) is existing
        client.create_transaction.assert_not_called()

    def test_other_users_booking_is_not_found(self, stores):
        with pytest.raises(NotFoundError):
            payments.initiate_payment("booking-1", "intruder", client=self._client())

    def test_only_pending_bookings(self, stores):
        pay_repo, book_repo = stores
        pay_repo.get_payment_by_booking.return_value = None
        book_repo.get_booking.return_value = make_booking(status=CANCELLED)
        with pytest.raises(InvalidTransitionError):
            payments.initiate_payment("booking-1", "user-1", client=self._client())
