"""
Progress API Router

Endpoints for folding completed sessions into a user's learning progress
and reading it back.

Endpoints:
- POST /api/progress/{user_id}/lessons - Apply a completed lesson
- POST /api/progress/{user_id}/assessments - Apply a completed assessment
- GET /api/progress/{user_id} - Get the user's aggregate
- GET /api/progress/{user_id}/summary - Aggregate plus recent topics and words
- GET /api/progress/{user_id}/practice-words - Words due for practice

Update endpoints always return a ProgressUpdateResult; the HTTP status
follows its status (committed/partial 200, rejected 422, failed 503).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from app.enums.progress import ProgressUpdateStatus
from app.dependencies import get_progress_orchestrator
from app.middleware.error_handling import NotFoundError
from app.models.progress import (
    AssessmentOutcome,
    LearningProgressState,
    LessonOutcome,
    PracticeWordsResponse,
    ProgressSummary,
    ProgressUpdateResult,
)
from app.services.progress import ProgressOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/progress", tags=["progress"])

_STATUS_CODES = {
    ProgressUpdateStatus.COMMITTED: status.HTTP_200_OK,
    ProgressUpdateStatus.PARTIAL: status.HTTP_200_OK,
    ProgressUpdateStatus.REJECTED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ProgressUpdateStatus.FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
}


# ===========================================
# Session Updates
# ===========================================


@router.post("/{user_id}/lessons", response_model=ProgressUpdateResult)
async def apply_lesson(
    user_id: str,
    lesson: LessonOutcome,
    response: Response,
    orchestrator: ProgressOrchestrator = Depends(get_progress_orchestrator),
) -> ProgressUpdateResult:
    """Fold a completed lesson into the user's progress."""
    result = await orchestrator.update_after_lesson(user_id, lesson)
    response.status_code = _STATUS_CODES[result.status]
    return result


@router.post("/{user_id}/assessments", response_model=ProgressUpdateResult)
async def apply_assessment(
    user_id: str,
    assessment: AssessmentOutcome,
    response: Response,
    orchestrator: ProgressOrchestrator = Depends(get_progress_orchestrator),
) -> ProgressUpdateResult:
    """Fold a completed assessment into the user's progress."""
    result = await orchestrator.update_after_assessment(user_id, assessment)
    response.status_code = _STATUS_CODES[result.status]
    return result


# ===========================================
# Read Side
# ===========================================


@router.get("/{user_id}", response_model=LearningProgressState)
async def get_progress(
    user_id: str,
    orchestrator: ProgressOrchestrator = Depends(get_progress_orchestrator),
) -> LearningProgressState:
    """Get the user's learning progress aggregate."""
    progress = await orchestrator.get_progress(user_id)
    if progress is None:
        raise NotFoundError(f"No learning progress for user {user_id}")
    return progress


@router.get("/{user_id}/summary", response_model=ProgressSummary)
async def get_progress_summary(
    user_id: str,
    topics_limit: Optional[int] = Query(None, ge=1, le=200),
    words_limit: Optional[int] = Query(None, ge=1, le=500),
    orchestrator: ProgressOrchestrator = Depends(get_progress_orchestrator),
) -> ProgressSummary:
    """Get the aggregate with the most recently updated topics and words."""
    summary = await orchestrator.get_progress_summary(
        user_id, topics_limit=topics_limit, words_limit=words_limit
    )
    if summary is None:
        raise NotFoundError(f"No learning progress for user {user_id}")
    return summary


@router.get("/{user_id}/practice-words", response_model=PracticeWordsResponse)
async def get_practice_words(
    user_id: str,
    limit: Optional[int] = Query(None, ge=1, le=500),
    orchestrator: ProgressOrchestrator = Depends(get_progress_orchestrator),
) -> PracticeWordsResponse:
    """Get words below Mastered, least recently reviewed first."""
    words = await orchestrator.get_practice_words(user_id, limit=limit)
    return PracticeWordsResponse(user_id=user_id, words=words, total=len(words))
