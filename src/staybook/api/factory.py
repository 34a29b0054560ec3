"""FastAPI application factory with role-based route mounting."""

import os
from typing import Literal

from fastapi import FastAPI, Request, Response

from staybook.observability.correlation import (
    CORRELATION_ID_HEADER,
    bind_correlation_id,
    get_correlation_id,
    unbind_correlation_id,
)
from staybook.observability.logging import configure_logging

from .routers import public, worker

AppRole = Literal["public", "worker"]


def create_app(role: AppRole | None = None) -> FastAPI:
    """Create the app for APP_ROLE.

    Args:
        role: Explicit role override. If None, reads APP_ROLE (default "public").
              The worker role serves the public routes plus scheduled sweeps.
    """
    if role is None:
        role = os.environ.get("APP_ROLE", "public")  # type: ignore[assignment]

    configure_logging()

    app = FastAPI(title="Staybook", docs_url=None, redoc_url=None)

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        token = bind_correlation_id(request.headers.get(CORRELATION_ID_HEADER))
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = get_correlation_id()
            return response
        finally:
            unbind_correlation_id(token)

    app.include_router(public.router)

    if role == "worker":
        app.include_router(worker.router)

    return app
