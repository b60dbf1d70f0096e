from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tasktrack_api.api.errors import install_error_handlers, recover_unhandled_exception
from tasktrack_api.api.routers.auth import router as auth_router
from tasktrack_api.api.routers.health import router as health_router
from tasktrack_api.api.routers.profile import router as profile_router
from tasktrack_api.api.routers.tasks import router as tasks_router
from tasktrack_api.observability.logging import access_log, configure_logging
from tasktrack_api.observability.metrics import render_metrics
from tasktrack_api.observability.middleware import RequestContextMiddleware
from tasktrack_api.observability.tracing import configure_tracing
from tasktrack_api.settings import get_settings


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)
    logger = logging.getLogger("tasktrack_api.main")
    app = FastAPI(title="TaskTrack API", version="0.1.0")

    if settings.uses_default_secret:
        logger.warning("JWT_SECRET is not set; using the insecure development secret")

    cors_origins = [str(o).rstrip("/") for o in settings.api_cors_origins]
    logger.info("Configuring CORS", extra={"origins": cors_origins})
    app.add_middleware(
        CORSMiddleware,
        # AnyHttpUrl normalizes to a trailing slash, but browser Origin headers do not.
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[settings.request_id_header],
    )

    # Added last so it wraps CORS, routing and the exception handlers.
    app.add_middleware(
        RequestContextMiddleware,
        header_name=settings.request_id_header,
        access_log=access_log,
        recover=recover_unhandled_exception,
        tracing=configure_tracing(settings),
    )

    install_error_handlers(app)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(tasks_router)
    app.include_router(profile_router)

    app.add_api_route(
        "/metrics", render_metrics, methods=["GET"], include_in_schema=False
    )
    return app


app = create_app()
