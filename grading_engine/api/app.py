"""
FastAPI application for the grading engine

Run with:
    uvicorn grading_engine.api.app:app
"""
from contextlib import asynccontextmanager
import logging
import os

from fastapi import FastAPI

from .. import __version__
from ..database.config import get_db_config
from .exceptions import register_exception_handlers
from .routers import analytics, credentials, grading, metrics, safety

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    db_config = get_db_config()
    if os.getenv("DB_CREATE_TABLES", "true").lower() == "true":
        db_config.create_all()
    logger.info("Grading engine API started", extra={"version": __version__})
    yield
    db_config.dispose()
    logger.info("Grading engine API stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Grading Engine",
        description="Rubric grading, aggregate statistics, credentials and safety screening",
        version=__version__,
        lifespan=lifespan,
    )
    register_exception_handlers(app)

    app.include_router(grading.router, prefix=API_PREFIX)
    app.include_router(analytics.router, prefix=API_PREFIX)
    app.include_router(credentials.router, prefix=API_PREFIX)
    app.include_router(safety.router, prefix=API_PREFIX)
    app.include_router(metrics.router)

    @app.get("/health", tags=["Monitoring"])
    async def health():
        return {"status": "ok", "version": __version__}

    return app


app = create_app()
