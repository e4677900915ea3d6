"""
FastAPI Main Application

Immostats real estate market statistics REST API.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text

from config.settings import settings
from src.immostats.api.dependencies import get_db
from src.immostats.api.schemas import HealthCheck
from src.immostats.api.routers import admin, properties, search, stats
from src.immostats.exceptions import AlreadyRunning, AuthError
from src.immostats.ingestion.pipeline import build_pipeline
from src.immostats.ingestion.scheduler import Scheduler
from src.immostats.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def create_app(scheduler: Optional[Scheduler] = None, enable_timer: Optional[bool] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        scheduler: Scheduler to expose (defaults to one wired to the configured source)
        enable_timer: Start the cron timer on startup (defaults to settings.scheduler_enabled)

    Returns:
        FastAPI application
    """
    if scheduler is None:
        scheduler = Scheduler(build_pipeline())
    if enable_timer is None:
        enable_timer = settings.scheduler_enabled

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if enable_timer:
            app.state.scheduler.start()
        logger.info("api_started", version=settings.app_version, timer=enable_timer)
        yield
        app.state.scheduler.shutdown()
        await app.state.scheduler.wait_idle()
        logger.info("api_stopped")

    app = FastAPI(
        title="Immostats API",
        description="REST API serving French real estate market statistics built from DVF transactions",
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.scheduler = scheduler

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        return JSONResponse(status_code=401, content={"detail": str(exc)})

    @app.exception_handler(AlreadyRunning)
    async def already_running_handler(request: Request, exc: AlreadyRunning):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    app.include_router(stats.router)
    app.include_router(search.router)
    app.include_router(properties.router)
    app.include_router(admin.router)

    @app.get("/health", response_model=HealthCheck, tags=["health"])
    def health_check(db: Session = Depends(get_db)):
        """
        Health check endpoint.

        Returns:
            Health status with database connectivity check
        """
        try:
            db.execute(text("SELECT 1"))
            database_status = "connected"
        except Exception as e:
            database_status = f"error: {str(e)}"

        return HealthCheck(
            status="healthy" if database_status == "connected" else "degraded",
            version=settings.app_version,
            database=database_status,
            scheduler=app.state.scheduler.phase,
            timestamp=datetime.now(timezone.utc),
        )

    @app.get("/", tags=["root"])
    def root():
        """
        Root endpoint.

        Returns:
            API information
        """
        return {
            "name": "Immostats API",
            "version": settings.app_version,
            "docs": "/docs",
            "health": "/health",
            "endpoints": {
                "stats": "/api/v1/stats",
                "search": "/api/v1/search",
                "properties": "/api/v1/properties",
                "admin": "/api/v1/admin",
            },
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    setup_logging()
    uvicorn.run(
        "src.immostats.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
