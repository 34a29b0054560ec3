"""Payment gateway notification endpoint.

Security rules:
- Signature verified before any state is read or changed.
- Never log payload, signature or server key.
- Replies are generic; diagnostic detail stays in server logs.

The gateway retries on its own schedule, driven by the body. Every
outcome is answered with 200 {"status", "message"} except an unreadable
JSON body, which gets 500.
"""

from __future__ import annotations

import json

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from staybook.domain.errors import (
    AmountMismatchError,
    BookingEngineError,
    SignatureError,
    TransientStoreError,
)
from staybook.domain.payments import OUTCOME_DUPLICATE, handle_notification
from staybook.gateway.notifications import InvalidPayloadError, PaymentNotification
from staybook.observability.correlation import get_correlation_id
from staybook.observability.logging import get_logger
from staybook.observability.redaction import safe_log_context

router = APIRouter(tags=["webhooks"])

logger = get_logger(__name__)


def _reply(status: str, message: str, http_status: int = 200) -> JSONResponse:
    return JSONResponse(status_code=http_status, content={"status": status, "message": message})


@router.post("/webhooks/payment")
async def payment_webhook(request: Request) -> JSONResponse:
    correlation_id = get_correlation_id()

    try:
        payload = json.loads(await request.body())
    except ValueError:
        logger.warning(
            "payment notification body is not JSON",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return _reply("error", "malformed notification", http_status=500)

    try:
        notification = PaymentNotification.from_payload(payload)
    except InvalidPayloadError as e:
        logger.warning(
            "payment notification rejected",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id, reason=str(e))},
        )
        return _reply("error", "invalid notification")

    try:
        result = await run_in_threadpool(handle_notification, notification)
    except SignatureError:
        return _reply("error", "invalid notification")
    except AmountMismatchError:
        return _reply("error", "notification rejected")
    except TransientStoreError:
        logger.warning(
            "payment notification deferred",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id, order_id=notification.order_id
                )
            },
        )
        return _reply("error", "temporarily unavailable")
    except BookingEngineError as e:
        logger.warning(
            "payment notification not applied",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    order_id=notification.order_id,
                    error=type(e).__name__,
                )
            },
        )
        return _reply("error", "notification rejected")
    except RuntimeError:
        logger.exception(
            "payment notification processing failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return _reply("error", "processing failed")

    message = "duplicate" if result.outcome == OUTCOME_DUPLICATE else "ok"
    return _reply("success", message)
