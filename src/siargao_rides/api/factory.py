"""FastAPI application factory.

APP_ROLE=public serves riders and shop owners; APP_ROLE=worker also
mounts the /tasks/* endpoints hit by Cloud Scheduler and the tasks
backend. Both roles run the same image.
"""

import os
from typing import Literal

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from siargao_rides.api.errors import to_http_exception
from siargao_rides.domain.errors import EngineError
from siargao_rides.observability.correlation import CORRELATION_ID_HEADER, correlation_scope
from siargao_rides.observability.logging import get_logger
from siargao_rides.observability.redaction import safe_log_context

from .routers import public, worker

AppRole = Literal["public", "worker"]

logger = get_logger(__name__)


async def _engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    """Last resort for engine errors a route did not translate itself."""
    http_exc = to_http_exception(exc)
    logger.warning(
        "untranslated engine error",
        extra={
            "extra_fields": safe_log_context(
                path=request.url.path,
                error=type(exc).__name__,
                status_code=http_exc.status_code,
            )
        },
    )
    return JSONResponse(
        status_code=http_exc.status_code,
        content={"detail": http_exc.detail},
        headers=http_exc.headers,
    )


def create_app(role: AppRole | None = None) -> FastAPI:
    """Build the app for `role` (APP_ROLE when omitted, default "public").

    Raises:
        RuntimeError: On an unknown role.
    """
    if role is None:
        role = os.environ.get("APP_ROLE", "public")  # type: ignore[assignment]
    if role not in ("public", "worker"):
        raise RuntimeError(f"APP_ROLE must be 'public' or 'worker', got {role!r}")

    app = FastAPI(
        title=f"Siargao Rides Booking Engine ({role})",
        docs_url=None,
        redoc_url=None,
    )
    app.state.role = role
    app.add_exception_handler(EngineError, _engine_error_handler)

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        with correlation_scope(request.headers.get(CORRELATION_ID_HEADER)) as cid:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response

    app.include_router(public.router)

    # Task endpoints are never exposed on the public service
    if role == "worker":
        app.include_router(worker.router)

    return app
