"""Thin HTTP client for the gateway's Snap transaction API.

Purpose:
- Keep gateway HTTP details out of domain code.
- Bounded timeouts; transport failures surface as TransientStoreError.
- Never log the server key or the returned token.
"""

from __future__ import annotations

import logging
import os
from decimal import Decimal
from typing import Any

import requests

from staybook.domain.errors import TransientStoreError
from staybook.gateway.notifications import get_server_key

logger = logging.getLogger(__name__)

_SANDBOX_URL = "https://app.sandbox.midtrans.com/snap/v1/transactions"
_PRODUCTION_URL = "https://app.midtrans.com/snap/v1/transactions"
DEFAULT_TIMEOUT_SECONDS = 10.0


def _json_amount(value: Decimal) -> int | float:
    # zero-decimal currencies must be sent as integers
    if value == value.to_integral_value():
        return int(value)
    return float(value)


class GatewayError(Exception):
    """Gateway rejected the request (non-retryable)."""


def _timeout() -> float:
    try:
        return float(os.environ.get("PAYMENT_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS))
    except ValueError:
        return DEFAULT_TIMEOUT_SECONDS


class SnapClient:
    """Create Snap transactions for booking payments.

    Usage:
        client = SnapClient()  # reads PAYMENT_SERVER_KEY
        snap = client.create_transaction(order_id="ORDER-...", gross_amount=Decimal("660.00"),
                                         item_id=booking_id, item_name="Beach house")
        snap["token"], snap["redirect_url"]
    """

    def __init__(
        self,
        server_key: str | None = None,
        *,
        production: bool | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._server_key = server_key or get_server_key()
        if production is None:
            production = os.environ.get("PAYMENT_IS_PRODUCTION", "").lower() == "true"
        self._url = _PRODUCTION_URL if production else _SANDBOX_URL
        self._session = session or requests.Session()

    def create_transaction(
        self,
        *,
        order_id: str,
        gross_amount: Decimal,
        item_id: str,
        item_name: str,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Create a Snap transaction.

        Returns:
            Dict with token and redirect_url.

        Raises:
            TransientStoreError: On timeout, connection error or 5xx.
            GatewayError: If the gateway rejects the request.
        """
        amount = _json_amount(gross_amount)
        body = {
            "transaction_details": {"order_id": order_id, "gross_amount": amount},
            "item_details": [
                {"id": item_id, "price": amount, "quantity": 1, "name": item_name[:50]}
            ],
        }

        try:
            resp = self._session.post(
                self._url,
                json=body,
                auth=(self._server_key, ""),
                headers={"Accept": "application/json"},
                timeout=_timeout(),
            )
        except requests.RequestException as e:
            logger.warning(
                "snap transaction request failed",
                extra={"extra_fields": {"order_id": order_id, "correlation_id": correlation_id}},
            )
            raise TransientStoreError("payment gateway unreachable") from e

        if resp.status_code >= 500:
            raise TransientStoreError(f"payment gateway error {resp.status_code}")
        if resp.status_code >= 400:
            logger.warning(
                "snap transaction rejected",
                extra={"extra_fields": {"order_id": order_id, "status_code": resp.status_code}},
            )
            raise GatewayError(f"payment gateway rejected order {order_id}")

        data = resp.json()
        logger.info(
            "snap transaction created",
            extra={"extra_fields": {"order_id": order_id, "correlation_id": correlation_id}},
        )
        return {"token": data["token"], "redirect_url": data["redirect_url"]}
