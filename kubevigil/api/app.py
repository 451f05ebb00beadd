"""FastAPI application factory for kubevigil.

Usage::

    from kubevigil.api.app import create_app

    app = create_app(rule_cache=rule_cache, notifier_cache=notifier_cache, config=config)

Probes and the Prometheus endpoint live at the root; status views of the
in-memory caches under ``/api/v1``.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from kubevigil.api.routes import router
from kubevigil.api.schemas import ErrorResponse, HealthResponse, ReadinessResponse
from kubevigil.models.config import KubeVigilConfig
from kubevigil.notifications.manager import NotifierCache
from kubevigil.rules.cache import RuleCache

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(
    rule_cache: RuleCache,
    notifier_cache: NotifierCache,
    config: KubeVigilConfig | None = None,
) -> FastAPI:
    """Create and configure the kubevigil FastAPI application.

    Args:
        rule_cache:     Live rules, read by ``/api/v1/rules``.
        notifier_cache: Live notifiers; its readiness gates ``/readyz``.
        config:         Application config, kept on ``app.state``.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from kubevigil import __version__

    app = FastAPI(
        title="kubevigil",
        summary="Kubernetes policy violation watcher",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
    )

    app.state.rule_cache = rule_cache
    app.state.notifier_cache = notifier_cache
    app.state.config = config

    app.include_router(router, prefix=_API_PREFIX)

    @app.get("/healthz", response_model=HealthResponse)
    async def healthz() -> HealthResponse:
        return HealthResponse(status="ok", version=__version__)

    @app.get("/readyz", response_model=ReadinessResponse, responses={503: {"model": ReadinessResponse}})
    async def readyz() -> JSONResponse:
        body = ReadinessResponse(
            ready=notifier_cache.ready,
            notifiers=len(notifier_cache.names()),
            rules=len(rule_cache),
        )
        return JSONResponse(status_code=200 if body.ready else 503, content=body.model_dump())

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = exc.errors()
        detail = str(errors[0].get("msg", "")) if errors else ""
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="INVALID_REQUEST", detail=detail).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app
