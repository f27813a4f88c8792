"""
Progress Orchestrator

Entry point of the progress engine. After a lesson or assessment
completes, folds the session into the user's aggregate, topic records
and word records in one atomic unit.

Flow (per session):
1. Normalize the outcome into a SessionOutcome; malformed input is
   rejected before storage is touched.
2. Take the user's lock so concurrent sessions for one user apply one
   after the other.
3. Inside one repository transaction: load (or create) the aggregate,
   stage topic and word updates, recompute the aggregate, write all of it.
4. Report a ProgressUpdateResult. A single topic or word that cannot be
   aggregated is logged and skipped (PARTIAL); any storage failure
   abandons the whole session and leaves storage untouched (FAILED).

Progress tracking is best-effort: by default failures are reported in the
result, never raised, so lesson completion does not fail because of it.
Set raise_on_failure (or PROGRESS_RAISE_ON_FAILURE) to raise instead.

Usage:
    from app.services.progress import ProgressOrchestrator, InMemoryProgressRepository

    orchestrator = ProgressOrchestrator(InMemoryProgressRepository())
    result = await orchestrator.update_after_lesson(user_id, lesson)
    if not result.succeeded:
        ...
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import ValidationError

from app.config import settings
from app.enums.progress import MasteryLevel, ProgressUpdateStatus, SessionKind
from app.middleware.error_handling import PersistenceError, ProgressInputError
from app.models.progress import (
    AssessmentOutcome,
    LearningProgressState,
    LessonOutcome,
    ProgressSummary,
    ProgressUpdateResult,
    SessionOutcome,
    TopicProgressState,
    WordProgressState,
)
from app.services.progress.locks import UserLockRegistry, user_locks
from app.services.progress.overall_calculator import recompute
from app.services.progress.repository import ProgressRepository
from app.services.progress.topic_aggregator import effective_topic_score, update_topic
from app.services.progress.word_aggregator import update_word

logger = logging.getLogger(__name__)

# Levels still worth practising, in the order a learner climbs them
PRACTICE_LEVELS = (
    MasteryLevel.SEEN,
    MasteryLevel.LEARNING,
    MasteryLevel.PRACTICED,
    MasteryLevel.KNOWN,
)

_COMPLETED_AT_FIELD = {
    SessionKind.LESSON: "last_lesson_completed_at",
    SessionKind.ASSESSMENT: "last_assessment_completed_at",
}


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class ProgressOrchestrator:
    """
    Applies completed sessions to a user's learning progress.

    Holds no per-user state itself; the lock registry is shared across
    orchestrators in the process unless one is passed explicitly.
    """

    def __init__(
        self,
        repository: ProgressRepository,
        locks: Optional[UserLockRegistry] = None,
        raise_on_failure: Optional[bool] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.repository = repository
        self.locks = locks if locks is not None else user_locks
        self.raise_on_failure = (
            settings.PROGRESS_RAISE_ON_FAILURE
            if raise_on_failure is None
            else raise_on_failure
        )
        self.timeout_seconds = (
            settings.PROGRESS_UPDATE_TIMEOUT_SECONDS
            if timeout_seconds is None
            else timeout_seconds
        )

    # =========================================================================
    # Write side
    # =========================================================================

    async def update_after_lesson(
        self, user_id: str, lesson: Union[LessonOutcome, dict[str, Any]]
    ) -> ProgressUpdateResult:
        """Fold a completed lesson into the user's progress."""
        try:
            outcome = _normalize(LessonOutcome, lesson)
        except ProgressInputError as e:
            return self._rejected(user_id, SessionKind.LESSON, e)
        return await self.apply_session(user_id, outcome)

    async def update_after_assessment(
        self, user_id: str, assessment: Union[AssessmentOutcome, dict[str, Any]]
    ) -> ProgressUpdateResult:
        """Fold a completed assessment into the user's progress."""
        try:
            outcome = _normalize(AssessmentOutcome, assessment)
        except ProgressInputError as e:
            return self._rejected(user_id, SessionKind.ASSESSMENT, e)
        return await self.apply_session(user_id, outcome)

    async def apply_session(
        self, user_id: str, outcome: SessionOutcome
    ) -> ProgressUpdateResult:
        """
        Fold an already normalized session into the user's progress.

        Args:
            user_id: Owning user; blank ids are rejected.
            outcome: Normalized session.

        Returns:
            ProgressUpdateResult with status committed, partial, rejected or failed.

        Raises:
            ProgressInputError / PersistenceError / TimeoutError: only when
            raise_on_failure is set.
        """
        if not user_id or not user_id.strip():
            return self._rejected(
                user_id,
                outcome.kind,
                ProgressInputError("user_id is required to update progress"),
                outcome.session_id,
            )

        logger.info(
            f"Updating progress for user {user_id} after {outcome.kind.value} "
            f"{outcome.session_id}: {len(outcome.topics)} topics, "
            f"{len(outcome.word_attempts)} word attempts"
        )

        async with self.locks.hold(user_id):
            try:
                result = await asyncio.wait_for(
                    self._apply_locked(user_id, outcome), timeout=self.timeout_seconds
                )
            except Exception as e:
                if isinstance(e, asyncio.TimeoutError):
                    reason = f"TimeoutError: update exceeded {self.timeout_seconds}s"
                else:
                    reason = f"{type(e).__name__}: {e}"
                logger.error(
                    f"Progress update failed for user {user_id} after "
                    f"{outcome.kind.value} {outcome.session_id}: {reason}"
                )
                if self.raise_on_failure:
                    raise
                return ProgressUpdateResult(
                    status=ProgressUpdateStatus.FAILED,
                    user_id=user_id,
                    session_kind=outcome.kind,
                    session_id=outcome.session_id,
                    errors=[reason],
                )

        logger.info(
            f"Progress {result.status.value} for user {user_id}: "
            f"score={result.progress.overall_score if result.progress else None}, "
            f"topics={result.topics_updated}, words={result.words_updated}"
        )
        return result

    async def _apply_locked(
        self, user_id: str, outcome: SessionOutcome
    ) -> ProgressUpdateResult:
        errors: list[str] = []
        now = _utc_now()

        async with self.repository.transaction():
            progress = await self.repository.get_aggregate(user_id, for_update=True)
            if progress is None:
                logger.info(f"Creating learning progress for user {user_id}")
                # Another process may have created it since the read above
                progress = await self.repository.ensure_aggregate(
                    user_id, LearningProgressState(user_id=user_id, created_at=now)
                )
            aggregate_id = progress.id

            topics = await self._stage_topics(aggregate_id, outcome, now, errors)
            words = await self._stage_words(aggregate_id, outcome, now, errors)

            updated = recompute(progress, outcome.text_metrics, outcome.audio_metrics)
            updated = updated.model_copy(
                update={_COMPLETED_AT_FIELD[outcome.kind]: now, "updated_at": now}
            )

            for topic in topics.values():
                await self.repository.upsert_topic(aggregate_id, topic)
            for word in words.values():
                await self.repository.upsert_word(aggregate_id, word)
            committed = await self.repository.upsert_aggregate(user_id, updated)

        return ProgressUpdateResult(
            status=ProgressUpdateStatus.PARTIAL if errors else ProgressUpdateStatus.COMMITTED,
            user_id=user_id,
            session_kind=outcome.kind,
            session_id=outcome.session_id,
            progress=committed,
            topics_updated=len(topics),
            words_updated=len(words),
            errors=errors,
        )

    async def _stage_topics(
        self,
        aggregate_id: str,
        outcome: SessionOutcome,
        now: datetime,
        errors: list[str],
    ) -> dict[str, TopicProgressState]:
        """Compute updated topic records without writing them."""
        score = effective_topic_score(outcome)
        staged: dict[str, TopicProgressState] = {}

        for topic_name in outcome.topics:
            try:
                existing = staged.get(topic_name) or await self.repository.get_topic(
                    aggregate_id, topic_name
                )
                staged[topic_name] = update_topic(
                    existing,
                    topic_name,
                    outcome.session_id,
                    score,
                    session_kind=outcome.kind,
                    now=now,
                )
            except PersistenceError:
                raise
            except Exception as e:
                logger.warning(f"Skipping topic '{topic_name}': {type(e).__name__}: {e}")
                errors.append(f"topic '{topic_name}': {e}")

        return staged

    async def _stage_words(
        self,
        aggregate_id: str,
        outcome: SessionOutcome,
        now: datetime,
        errors: list[str],
    ) -> dict[str, WordProgressState]:
        """
        Compute updated word records without writing them.

        A word attempted twice in one session builds on the first attempt.
        """
        staged: dict[str, WordProgressState] = {}

        for attempt in outcome.word_attempts:
            if not attempt.was_attempted:
                continue
            try:
                existing = staged.get(attempt.word) or await self.repository.get_word(
                    aggregate_id, attempt.word
                )
                updated = update_word(
                    existing,
                    attempt.word,
                    attempt.translation,
                    attempt.was_correct,
                    attempt.was_attempted,
                    step_id=attempt.step_id,
                    session_kind=outcome.kind,
                    now=now,
                )
                if updated is not None:
                    staged[attempt.word] = updated
            except PersistenceError:
                raise
            except Exception as e:
                logger.warning(f"Skipping word '{attempt.word}': {type(e).__name__}: {e}")
                errors.append(f"word '{attempt.word}': {e}")

        return staged

    def _rejected(
        self,
        user_id: Optional[str],
        kind: SessionKind,
        error: ProgressInputError,
        session_id: Optional[str] = None,
    ) -> ProgressUpdateResult:
        logger.error(f"Rejected {kind.value} outcome for user {user_id}: {error.message}")
        if self.raise_on_failure:
            raise error
        return ProgressUpdateResult(
            status=ProgressUpdateStatus.REJECTED,
            user_id=user_id or None,
            session_kind=kind,
            session_id=session_id,
            errors=[error.message],
        )

    # =========================================================================
    # Read side
    # =========================================================================

    async def get_progress(self, user_id: str) -> Optional[LearningProgressState]:
        """Committed aggregate for a user, or None if they have no progress yet."""
        return await self.repository.get_aggregate(user_id)

    async def get_progress_summary(
        self,
        user_id: str,
        topics_limit: Optional[int] = None,
        words_limit: Optional[int] = None,
    ) -> Optional[ProgressSummary]:
        """
        Aggregate plus the most recently updated topics and words.

        Returns None if the user has no progress yet.
        """
        progress = await self.repository.get_aggregate(user_id)
        if progress is None:
            return None

        topics = await self.repository.list_topics(
            progress.id, topics_limit or settings.PROGRESS_SUMMARY_TOPICS_LIMIT
        )
        words = await self.repository.list_words(
            progress.id, words_limit or settings.PROGRESS_SUMMARY_WORDS_LIMIT
        )
        return ProgressSummary(progress=progress, topics=topics, words=words)

    async def get_practice_words(
        self, user_id: str, limit: Optional[int] = None
    ) -> list[WordProgressState]:
        """Words below Mastered, least recently reviewed first."""
        progress = await self.repository.get_aggregate(user_id)
        if progress is None:
            return []
        return await self.repository.get_words_by_mastery_levels(
            progress.id, PRACTICE_LEVELS, limit
        )


def _normalize(model, payload) -> SessionOutcome:
    """Validate a lesson/assessment payload and convert it to a SessionOutcome."""
    try:
        if not isinstance(payload, model):
            payload = model.model_validate(payload)
        return payload.to_session_outcome()
    except ValidationError as e:
        raise ProgressInputError(
            f"Invalid {model.__name__}: {e.error_count()} validation error(s)",
            details={"errors": e.errors(include_url=False)},
        ) from e
