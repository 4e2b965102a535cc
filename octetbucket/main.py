from __future__ import annotations

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request
from starlette.responses import Response

from octetbucket.core.config import get_settings
from octetbucket.core.metrics import observe_http_request
from octetbucket.core.middleware import (
    apply_security_headers,
    build_request_id,
    log_request_completion,
    now_ts,
    request_id_ctx,
)
from octetbucket.core.otel import setup_otel
from octetbucket.routers.blobs import router as blobs_router
from octetbucket.routers.health import router as health_router


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="octetbucket", version=settings.VERSION)

    @app.middleware("http")
    async def add_security_headers_and_request_context(request, call_next):  # type: ignore[no-untyped-def]
        request_id = build_request_id(request, header_name=settings.REQUEST_ID_HEADER)
        token = request_id_ctx.set(request_id)
        start_ts = now_ts()
        method = request.method
        path = request.url.path
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[settings.REQUEST_ID_HEADER] = request_id
            apply_security_headers(response, settings=settings)
            return response
        finally:
            duration_ms = int((now_ts() - start_ts) * 1000)
            log_request_completion(
                request_id=request_id,
                method=method,
                path=path,
                status_code=status_code,
                duration_ms=duration_ms,
            )
            if settings.ENABLE_PROMETHEUS_METRICS:
                observe_http_request(
                    method=method,
                    path=path,
                    status_code=status_code,
                    duration_ms=duration_ms,
                )
            request_id_ctx.reset(token)

    @app.exception_handler(StarletteHTTPException)
    async def plain_text_http_error(request: Request, exc: StarletteHTTPException) -> Response:
        _ = request
        return PlainTextResponse(
            f"{exc.detail}\n",
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    app.include_router(health_router)

    if settings.ENABLE_PROMETHEUS_METRICS:

        @app.get(settings.PROMETHEUS_METRICS_PATH, include_in_schema=False)
        def metrics() -> Response:
            return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Catch-all resource; must stay last so the routes above win.
    app.include_router(blobs_router)

    otel = setup_otel(app=app, settings=settings)
    app.state.otel_tracing_enabled = otel.enabled
    app.state.otel_tracing_reason = otel.reason
    return app
