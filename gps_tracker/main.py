"""
ASGI entrypoint for the GPS Tracker API.

``create_app`` assembles the FastAPI application: logging, CORS, request
logging, error rendering and the asset routes.  The asset store handle is
created once per application and kept on ``app.state.db``; it is connected
and migrated on startup and closed on shutdown.  Run with::

    uvicorn gps_tracker.main:app
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gps_tracker.api.errors import register_exception_handlers
from gps_tracker.api.routes import assets
from gps_tracker.core.config import Settings, get_settings
from gps_tracker.core.database import Database
from gps_tracker.core.logging import configure_logging, log_info
from gps_tracker.security.request_logger import RequestLoggingMiddleware

tags_metadata = [
    {
        "name": "Assets",
        "description": "Tracked device records plus engine, power, alarm, lost-mode, restore and live status actions.",
    },
]


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description="REST API for tracked GPS assets and their remote device actions.",
        openapi_tags=tags_metadata,
    )
    app.state.settings = settings
    app.state.db = Database(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin).rstrip("/") for origin in settings.allowed_origins] or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware, exempt_paths=("/health",))

    register_exception_handlers(app)
    app.include_router(assets.router)

    @app.on_event("startup")
    async def on_startup() -> None:
        db: Database = app.state.db
        await db.connect()
        await db.run_migrations()
        log_info(
            f"GPS Tracker API running on http://{settings.host}:{settings.port}",
            environment=settings.environment,
            store="sqlite" if db.is_sqlite() else "mysql",
        )

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await app.state.db.disconnect()
        log_info("Application shutdown")

    @app.get("/health", include_in_schema=False)
    async def health_check():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    return app


app = create_app()
