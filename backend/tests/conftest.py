"""
Shared Test Fixtures and Configuration

This module provides pytest fixtures used across the progress engine tests.
"""

import os
import sys
from pathlib import Path
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from dotenv import load_dotenv

# Add the backend directory to the path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load .env file from project root before app settings are built
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

# Settings are read once at import time, so the test configuration has to
# be in the environment before anything imports app.*
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DB_CREATE_TABLES"] = "false"
os.environ["PROGRESS_UPSERT_RETRY_WAIT_SECONDS"] = "0"
os.environ["DEBUG"] = "false"

from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.db.base import Base  # noqa: E402
from app.enums.progress import AssessmentStepType, LessonStepType  # noqa: E402
from app.models.progress import (  # noqa: E402
    AssessmentOutcome,
    AssessmentStepOutcome,
    LessonOutcome,
    LessonStepOutcome,
)
from app.services.progress import (  # noqa: E402
    InMemoryProgressRepository,
    ProgressOrchestrator,
    UserLockRegistry,
)


# ============================================================================
# Repositories and Orchestrator
# ============================================================================


@pytest.fixture
def memory_repo() -> InMemoryProgressRepository:
    """Fresh in-memory progress repository."""
    return InMemoryProgressRepository()


@pytest.fixture
def orchestrator(memory_repo) -> ProgressOrchestrator:
    """Orchestrator over the in-memory repository with its own lock registry."""
    return ProgressOrchestrator(memory_repo, locks=UserLockRegistry())


@pytest_asyncio.fixture
async def sql_session() -> AsyncGenerator[AsyncSession, None]:
    """
    AsyncSession on a private in-memory SQLite database with the progress tables.

    pysqlite's own transaction handling breaks SAVEPOINT, so BEGIN is
    emitted explicitly.
    """
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session

    await engine.dispose()


# ============================================================================
# Sample Session Outcomes
# ============================================================================


@pytest.fixture
def lesson_payload() -> dict[str, Any]:
    """A lesson outcome as posted by the lesson runner."""
    return {
        "id": "lesson-1",
        "focus_area": "Travel",
        "target_skills": ["past tense", "Travel"],
        "steps": [
            {
                "id": "step-1",
                "step_number": 1,
                "step_type": "instruction",
                "content": "Today we talk about trips.",
            },
            {
                "id": "step-2",
                "step_number": 2,
                "step_type": "new_word",
                "content": "billete",
                "translation": "ticket",
                "attempts": 1,
                "correct": True,
            },
            {
                "id": "step-3",
                "step_number": 3,
                "step_type": "practice",
                "content": "Say 'I travelled'",
                "expected_answer": "viajé",
                "translation": "I travelled",
                "attempts": 2,
                "correct": False,
            },
            {
                "id": "step-4",
                "step_number": 4,
                "step_type": "new_word",
                "content": "maleta",
                "translation": "suitcase",
                "attempts": 0,
            },
        ],
        "performance_metrics": {"accuracy": 80},
    }


@pytest.fixture
def lesson(lesson_payload) -> LessonOutcome:
    return LessonOutcome.model_validate(lesson_payload)


def make_lesson(
    lesson_id: str = "lesson-1",
    topics: tuple[str, ...] = ("Travel",),
    words: tuple[tuple[str, bool], ...] = (),
    **metrics: Any,
) -> LessonOutcome:
    """Build a lesson with the given topics, (word, correct) attempts and text metrics."""
    steps = [
        LessonStepOutcome(
            id=f"{lesson_id}-step-{i}",
            step_number=i,
            step_type=LessonStepType.PRACTICE,
            expected_answer=word,
            attempts=1,
            correct=correct,
        )
        for i, (word, correct) in enumerate(words, start=1)
    ]
    return LessonOutcome(
        id=lesson_id,
        focus_area=topics[0] if topics else None,
        target_skills=list(topics[1:]),
        steps=steps,
        performance_metrics=metrics or None,
    )


def make_assessment(
    assessment_id: str = "assessment-1",
    topics: tuple[str, ...] = ("Travel",),
    words: tuple[tuple[str, bool], ...] = (),
    audio_metrics: Any = None,
    **metrics: Any,
) -> AssessmentOutcome:
    """Build an assessment with question steps for each (word, correct) pair."""
    steps = [
        AssessmentStepOutcome(
            id=f"{assessment_id}-q{i}",
            step_number=i,
            step_type=AssessmentStepType.QUESTION,
            content=f"Translate {word}",
            expected_answer=word,
            attempts=1,
            correct=correct,
        )
        for i, (word, correct) in enumerate(words, start=1)
    ]
    return AssessmentOutcome(
        id=assessment_id,
        proposed_topics=list(topics),
        steps=steps,
        metrics=metrics or None,
        audio_metrics=audio_metrics,
    )
