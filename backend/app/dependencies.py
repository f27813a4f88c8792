"""
FastAPI Dependencies

Wires the progress engine to the request-scoped database session.
Tests override get_progress_repository to run against the in-memory
adapter.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.base import get_db
from app.services.progress import ProgressOrchestrator, ProgressRepository
from app.services.progress.sql_repository import SQLAlchemyProgressRepository


async def get_progress_repository(
    db: AsyncSession = Depends(get_db),
) -> ProgressRepository:
    """Get the SQL-backed progress repository for this request."""
    return SQLAlchemyProgressRepository(db)


async def get_progress_orchestrator(
    repository: ProgressRepository = Depends(get_progress_repository),
) -> ProgressOrchestrator:
    """Get the progress orchestrator."""
    return ProgressOrchestrator(repository)
