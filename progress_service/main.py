from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from progress_service.api.certificates import router as certificates_router
from progress_service.api.errors import register_error_handlers
from progress_service.api.health import router as health_router
from progress_service.api.metrics_endpoint import router as metrics_router
from progress_service.api.progress import router as progress_router
from progress_service.api.schools import router as schools_router
from progress_service.api.teachers import router as teachers_router
from progress_service.core.config import SETTINGS, Settings
from progress_service.core.logging import setup_logging
from progress_service.db.engine import lifespan_db
from progress_service.db.redis import lifespan_redis
from progress_service.middleware.metrics import MetricsMiddleware
from progress_service.middleware.request_context import (
    RequestContextMiddleware,
    install_request_context_filter,
)
from progress_service.repos.unit_of_work import InMemoryStore, SqlStore
from progress_service.services.cache import build_cache
from progress_service.services.engine import ProgressEngine

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
install_request_context_filter()

logger = logging.getLogger(__name__)


def create_app(settings: Settings = SETTINGS) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # Nested so teardown runs in reverse order even if one side fails.
        with lifespan_db(settings.database_url, echo=settings.is_dev) as sessions:
            with lifespan_redis(settings.redis_url) as redis_client:
                store = SqlStore(sessions) if sessions is not None else InMemoryStore()
                app.state.redis = redis_client
                app.state.engine = ProgressEngine.from_settings(
                    settings, store, build_cache(redis_client)
                )
                yield

    app = FastAPI(
        title="progress-service",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_dev else None,
        redoc_url="/redoc" if settings.is_dev else None,
    )

    # Devices call the API directly; only a browser dashboard needs CORS.
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_origins),
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

    # Last added runs first: RequestContext (outermost) -> Metrics -> CORS -> route
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestContextMiddleware)

    register_error_handlers(app)

    app.include_router(metrics_router)
    app.include_router(health_router)
    app.include_router(progress_router)
    app.include_router(teachers_router)
    app.include_router(certificates_router)
    app.include_router(schools_router)
    return app


app = create_app()

logger.info(
    "progress-service configured  env=%s log_level=%s port=%d tz=%s store=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    SETTINGS.activity_timezone,
    "sql" if SETTINGS.database_url else "memory",
)
