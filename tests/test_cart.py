"""Tests for cart holds and partial checkout (repositories mocked)."""

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from helpers import fake_txn, make_booking, make_cart_item, make_property
from staybook.domain import cart
from staybook.domain.availability import AvailabilityResult
from staybook.domain.errors import (
    ConflictError,
    InvalidRangeError,
    NotFoundError,
    TransientStoreError,
    ValidationError,
)
from staybook.domain.interval import Interval

MODULE = "staybook.domain.cart"

TODAY = date(2030, 1, 1)
STAY = Interval(date(2030, 3, 1), date(2030, 3, 4))


@pytest.fixture
def repo():
    with patch(f"{MODULE}.repo") as mock_repo, patch(f"{MODULE}.txn", fake_txn()):
        yield mock_repo


class TestAdd:
    def test_add_stores_quoted_total_without_availability_check(self, repo):
        repo.insert_cart_item.return_value = make_cart_item()
        with patch(f"{MODULE}.get_property", return_value=make_property()), patch(
            f"{MODULE}.check_availability"
        ) as check:
            cart.add_to_cart(user_id="user-1", property_id="prop-1", interval=STAY, guest_count=2, today=TODAY)

        check.assert_not_called()
        kwargs = repo.insert_cart_item.call_args.kwargs
        assert kwargs["quoted_total"] == Decimal("660.00")
        assert (kwargs["start_date"], kwargs["end_date"]) == (date(2030, 3, 1), date(2030, 3, 4))

    def test_past_start_rejected(self, repo):
        with patch(f"{MODULE}.get_property", return_value=make_property()):
            with pytest.raises(InvalidRangeError):
                cart.add_to_cart(
                    user_id="user-1",
                    property_id="prop-1",
                    interval=Interval(date(2029, 12, 31), date(2030, 1, 2)),
                    guest_count=2,
                    today=TODAY,
                )
        repo.insert_cart_item.assert_not_called()

    def test_start_today_allowed(self, repo):
        repo.insert_cart_item.return_value = make_cart_item()
        with patch(f"{MODULE}.get_property", return_value=make_property()):
            cart.add_to_cart(
                user_id="user-1",
                property_id="prop-1",
                interval=Interval(TODAY, date(2030, 1, 2)),
                guest_count=1,
                today=TODAY,
            )
        repo.insert_cart_item.assert_called_once()

    def test_guest_limit(self, repo):
        with patch(f"{MODULE}.get_property", return_value=make_property(max_guests=2)):
            with pytest.raises(ValidationError):
                cart.add_to_cart(user_id="user-1", property_id="prop-1", interval=STAY, guest_count=5, today=TODAY)

    def test_unknown_property(self, repo):
        with patch(f"{MODULE}.get_property", return_value=None):
            with pytest.raises(NotFoundError):
                cart.add_to_cart(user_id="user-1", property_id="x", interval=STAY, guest_count=1, today=TODAY)


class TestUpdateRemoveClear:
    def test_update_keeps_unchanged_fields(self, repo):
        repo.get_cart_item.return_value = make_cart_item()
        repo.update_cart_item.return_value = make_cart_item(guest_count=3)
        with patch(f"{MODULE}.get_property", return_value=make_property()):
            cart.update_cart_item(user_id="user-1", cart_item_id="item-1", guest_count=3, today=TODAY)

        kwargs = repo.update_cart_item.call_args.kwargs
        assert kwargs["start_date"] == date(2030, 3, 1)
        assert kwargs["end_date"] == date(2030, 3, 4)
        assert kwargs["guest_count"] == 3

    def test_update_rejects_inverted_dates(self, repo):
        repo.get_cart_item.return_value = make_cart_item()
        with pytest.raises(InvalidRangeError):
            cart.update_cart_item(user_id="user-1", cart_item_id="item-1", end=date(2030, 2, 1), today=TODAY)

    def test_update_missing_item(self, repo):
        repo.get_cart_item.return_value = None
        with pytest.raises(NotFoundError):
            cart.update_cart_item(user_id="user-1", cart_item_id="nope", guest_count=1, today=TODAY)

    def test_remove_missing_item(self, repo):
        repo.delete_cart_item.return_value = False
        with pytest.raises(NotFoundError):
            cart.remove_from_cart(user_id="user-1", cart_item_id="nope")

    def test_clear_returns_count(self, repo):
        repo.delete_user_cart.return_value = 3
        assert cart.clear_cart("user-1") == 3


class TestGetCart:
    def test_summary_and_fail_closed_availability(self, repo):
        repo.list_cart_items.return_value = [
            make_cart_item(id="a"),
            make_cart_item(id="b", start=date(2030, 4, 1), end=date(2030, 4, 2)),
        ]

        def _check(property_id, interval):
            if interval.start == date(2030, 4, 1):
                raise TransientStoreError("down")
            return AvailabilityResult(available=True)

        with patch(f"{MODULE}.get_property", return_value=make_property()), patch(
            f"{MODULE}.check_availability", side_effect=_check
        ):
            view = cart.get_cart("user-1")

        body = view.to_dict()
        assert [line["is_available"] for line in body["items"]] == [True, False]
        assert body["summary"] == {
            "item_count": 2,
            "subtotal": "800.00",
            "service_fee": "80.00",
            "total": "880.00",
            "all_available": False,
        }


class TestCheckout:
    def _booking_for(self, item, total="660.00"):
        return make_booking(id=f"bk-{item.id}", total_price=Decimal(total))

    def test_partial_success(self, repo):
        items = {
            "ok": make_cart_item(id="ok"),
            "taken": make_cart_item(id="taken", start=date(2030, 5, 1), end=date(2030, 5, 3)),
        }
        repo.get_cart_item.side_effect = lambda c, user_id, item_id: items.get(item_id)
        clash = Interval(date(2030, 5, 2), date(2030, 5, 3))

        def _check(property_id, interval, cur=None):
            return AvailabilityResult(available=True)

        def _create(**kwargs):
            if kwargs["interval"].start == date(2030, 5, 1):
                raise ConflictError("dates are no longer available", [clash])
            return self._booking_for(items["ok"])

        with patch(f"{MODULE}.check_availability", side_effect=_check), patch(
            f"{MODULE}.create_booking", side_effect=_create
        ):
            result = cart.checkout(user_id="user-1", cart_item_ids=["ok", "taken", "missing"])

        assert [b.id for b in result.bookings] == ["bk-ok"]
        assert [(f.cart_item_id, f.reason) for f in result.failures] == [
            ("taken", cart.REASON_UNAVAILABLE),
            ("missing", cart.REASON_NOT_FOUND),
        ]
        assert result.failures[0].conflicts == [clash]
        assert result.is_partial
        assert repo.delete_cart_item.call_count == 1
        assert repo.delete_cart_item.call_args.args[1:] == ("user-1", "ok")

    def test_advisory_check_reports_conflicts_before_insert(self, repo):
        repo.get_cart_item.return_value = make_cart_item()
        clash = Interval(date(2030, 3, 1), date(2030, 3, 2))
        with patch(
            f"{MODULE}.check_availability",
            return_value=AvailabilityResult(available=False, conflicts=[clash]),
        ), patch(f"{MODULE}.create_booking") as create:
            result = cart.checkout(user_id="user-1", cart_item_ids=["item-1"])

        create.assert_not_called()
        assert result.to_dict()["failures"][0]["conflicting_dates"] == [{"start": "2030-03-01", "end": "2030-03-02"}]

    def test_repricing_reported_not_failed(self, repo):
        item = make_cart_item(quoted_total=Decimal("600.00"))
        repo.get_cart_item.return_value = item
        with patch(f"{MODULE}.check_availability", return_value=AvailabilityResult(available=True)), patch(
            f"{MODULE}.create_booking", return_value=self._booking_for(item, "660.00")
        ):
            result = cart.checkout(user_id="user-1", cart_item_ids=["item-1"])

        assert len(result.bookings) == 1
        assert result.failures == []
        assert result.repriced[0].to_dict() == {
            "cart_item_id": "item-1",
            "booking_id": "bk-item-1",
            "quoted_total": "600.00",
            "charged_total": "660.00",
        }

    def test_transient_error_marks_item_retryable(self, repo):
        repo.get_cart_item.return_value = make_cart_item()
        with patch(f"{MODULE}.check_availability", side_effect=TransientStoreError("down")):
            result = cart.checkout(user_id="user-1", cart_item_ids=["item-1"])
        assert result.failures[0].reason == cart.REASON_RETRY
        assert result.bookings == []

    def test_duplicate_ids_checked_out_once(self, repo):
        repo.get_cart_item.return_value = make_cart_item()
        with patch(f"{MODULE}.check_availability", return_value=AvailabilityResult(available=True)), patch(
            f"{MODULE}.create_booking", return_value=make_booking()
        ) as create:
            cart.checkout(user_id="user-1", cart_item_ids=["item-1", "item-1"])
        assert create.call_count == 1

    def test_past_check_in_item_reported_invalid(self, repo):
        repo.get_cart_item.return_value = make_cart_item(start=date(2001, 1, 1), end=date(2001, 1, 3))
        with patch(f"{MODULE}.check_availability") as check, patch(f"{MODULE}.create_booking") as create:
            result = cart.checkout(user_id="user-1", cart_item_ids=["item-1"], today=TODAY)

        assert result.bookings == []
        assert [(f.cart_item_id, f.reason) for f in result.failures] == [("item-1", cart.REASON_INVALID)]
        check.assert_not_called()
        create.assert_not_called()
        repo.delete_cart_item.assert_not_called()

    def test_empty_checkout_rejected(self, repo):
        with pytest.raises(ValidationError):
            cart.checkout(user_id="user-1", cart_item_ids=[])
