"""
Application entry point.

Run with:
    uvicorn app.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.db.base import init_db
from app.middleware import setup_error_handling
from app.routers import health_router, progress_router

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create missing tables on startup."""
    if settings.DB_CREATE_TABLES:
        await init_db()
        logger.info("Progress tables ready")
    yield


def create_app(use_lifespan: bool = True) -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan if use_lifespan else None)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_error_handling(app, debug=settings.DEBUG)

    app.include_router(health_router.router)
    app.include_router(progress_router.router)
    return app


app = create_app()
