"""
SQLAlchemy Progress Repository

ProgressRepository backed by an AsyncSession (PostgreSQL in production,
SQLite in tests).

Each upsert runs in a SAVEPOINT: select by natural key, then insert or
update. A unique-key race with a concurrent creator rolls back only the
savepoint and surfaces as TransientPersistenceError, which the base
class retries once; the retry finds the competitor's row and updates it.

Aggregates are created through ensure_aggregate instead: its retry
returns the competitor's row as stored, locked, and never overwrites it.

get_aggregate(for_update=True) issues SELECT ... FOR UPDATE so two
processes updating the same user serialize on the aggregate row.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db.models_progress import LearningProgress, TopicProgress, WordProgress
from app.enums.progress import MasteryLevel
from app.middleware.error_handling import PersistenceError, TransientPersistenceError
from app.models.progress import (
    LearningProgressState,
    TopicProgressState,
    WordProgressState,
)
from app.services.progress.repository import ProgressRepository

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def _translate_error(e: SQLAlchemyError, action: str) -> PersistenceError:
    """Map a SQLAlchemy failure to the progress error hierarchy."""
    if isinstance(e, (IntegrityError, OperationalError)):
        return TransientPersistenceError(
            f"Transient failure while {action}: {type(e).__name__}",
            details={"action": action},
        )
    return PersistenceError(
        f"Failed while {action}: {type(e).__name__}", details={"action": action}
    )


class SQLAlchemyProgressRepository(ProgressRepository):
    """
    Progress repository over an AsyncSession.

    The session is owned by the caller (e.g. the get_db dependency); this
    class only commits or rolls back inside transaction().
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        try:
            yield
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise _translate_error(e, "committing progress") from e
        except BaseException:
            await self.db.rollback()
            raise

    # -------------------------------------------------------------------------
    # Row lookups
    # -------------------------------------------------------------------------

    async def _aggregate_row(
        self, user_id: str, for_update: bool = False
    ) -> Optional[LearningProgress]:
        query = select(LearningProgress).where(LearningProgress.user_id == user_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _topic_row(self, aggregate_id: str, topic_name: str) -> Optional[TopicProgress]:
        result = await self.db.execute(
            select(TopicProgress).where(
                TopicProgress.learning_progress_id == aggregate_id,
                TopicProgress.topic_name == topic_name,
            )
        )
        return result.scalar_one_or_none()

    async def _word_row(self, aggregate_id: str, word: str) -> Optional[WordProgress]:
        result = await self.db.execute(
            select(WordProgress).where(
                WordProgress.learning_progress_id == aggregate_id,
                WordProgress.word == word,
            )
        )
        return result.scalar_one_or_none()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_aggregate(
        self, user_id: str, for_update: bool = False
    ) -> Optional[LearningProgressState]:
        try:
            row = await self._aggregate_row(user_id, for_update=for_update)
        except SQLAlchemyError as e:
            raise _translate_error(e, "loading learning progress") from e
        return LearningProgressState.from_db_record(row) if row else None

    async def get_topic(
        self, aggregate_id: str, topic_name: str
    ) -> Optional[TopicProgressState]:
        try:
            row = await self._topic_row(aggregate_id, topic_name)
        except SQLAlchemyError as e:
            raise _translate_error(e, "loading topic progress") from e
        return TopicProgressState.from_db_record(row) if row else None

    async def get_word(self, aggregate_id: str, word: str) -> Optional[WordProgressState]:
        try:
            row = await self._word_row(aggregate_id, word)
        except SQLAlchemyError as e:
            raise _translate_error(e, "loading word progress") from e
        return WordProgressState.from_db_record(row) if row else None

    async def get_words_by_mastery_levels(
        self,
        aggregate_id: str,
        levels: Iterable[MasteryLevel],
        limit: Optional[int] = None,
    ) -> list[WordProgressState]:
        if limit is None:
            limit = settings.PROGRESS_PRACTICE_WORDS_LIMIT
        values = [MasteryLevel(level).value for level in levels]
        if not values:
            return []

        query = (
            select(WordProgress)
            .where(
                WordProgress.learning_progress_id == aggregate_id,
                WordProgress.mastery_level.in_(values),
            )
            .order_by(WordProgress.last_reviewed_at.asc().nulls_first(), WordProgress.word)
            .limit(limit)
        )
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            raise _translate_error(e, "loading practice words") from e
        return [WordProgressState.from_db_record(row) for row in result.scalars().all()]

    async def list_topics(self, aggregate_id: str, limit: int) -> list[TopicProgressState]:
        query = (
            select(TopicProgress)
            .where(TopicProgress.learning_progress_id == aggregate_id)
            .order_by(TopicProgress.updated_at.desc())
            .limit(limit)
        )
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            raise _translate_error(e, "listing topic progress") from e
        return [TopicProgressState.from_db_record(row) for row in result.scalars().all()]

    async def list_words(self, aggregate_id: str, limit: int) -> list[WordProgressState]:
        query = (
            select(WordProgress)
            .where(WordProgress.learning_progress_id == aggregate_id)
            .order_by(WordProgress.updated_at.desc())
            .limit(limit)
        )
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            raise _translate_error(e, "listing word progress") from e
        return [WordProgressState.from_db_record(row) for row in result.scalars().all()]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    @staticmethod
    def _set_aggregate_fields(
        row: LearningProgress, data: LearningProgressState, now: datetime
    ) -> None:
        row.estimated_proficiency_level = data.estimated_proficiency_level.value
        row.overall_score = data.overall_score
        row.learning_trajectory = data.learning_trajectory.value
        row.strengths = list(data.strengths)
        row.weaknesses = list(data.weaknesses)
        row.last_lesson_completed_at = data.last_lesson_completed_at
        row.last_assessment_completed_at = data.last_assessment_completed_at
        row.updated_at = data.updated_at or now

    async def _ensure_aggregate(
        self, user_id: str, data: LearningProgressState
    ) -> LearningProgressState:
        now = _utc_now()
        try:
            async with self.db.begin_nested():
                row = await self._aggregate_row(user_id, for_update=True)
                if row is None:
                    row = LearningProgress(user_id=user_id, created_at=data.created_at or now)
                    self._set_aggregate_fields(row, data, now)
                    self.db.add(row)
                    await self.db.flush()
                    logger.debug(f"Creating learning progress for user {user_id}")
        except SQLAlchemyError as e:
            raise _translate_error(e, f"creating learning progress for {user_id}") from e

        return LearningProgressState.from_db_record(row)

    async def _upsert_aggregate(
        self, user_id: str, data: LearningProgressState
    ) -> LearningProgressState:
        now = _utc_now()
        try:
            async with self.db.begin_nested():
                row = await self._aggregate_row(user_id)
                if row is None:
                    row = LearningProgress(user_id=user_id, created_at=data.created_at or now)
                    self.db.add(row)
                    logger.debug(f"Creating learning progress for user {user_id}")

                self._set_aggregate_fields(row, data, now)
                await self.db.flush()
        except SQLAlchemyError as e:
            raise _translate_error(e, f"upserting learning progress for {user_id}") from e

        return LearningProgressState.from_db_record(row)

    async def _upsert_topic(
        self, aggregate_id: str, data: TopicProgressState
    ) -> TopicProgressState:
        now = _utc_now()
        try:
            async with self.db.begin_nested():
                row = await self._topic_row(aggregate_id, data.topic_name)
                if row is None:
                    row = TopicProgress(
                        learning_progress_id=aggregate_id,
                        topic_name=data.topic_name,
                        created_at=data.created_at or now,
                    )
                    self.db.add(row)

                row.mastery_level = data.mastery_level.value
                row.score = data.score
                row.last_studied_at = data.last_studied_at
                row.related_lesson_ids = list(data.related_lesson_ids)
                row.related_assessment_ids = list(data.related_assessment_ids)
                row.updated_at = data.updated_at or now
                await self.db.flush()
        except SQLAlchemyError as e:
            raise _translate_error(e, f"upserting topic '{data.topic_name}'") from e

        return TopicProgressState.from_db_record(row)

    async def _upsert_word(
        self, aggregate_id: str, data: WordProgressState
    ) -> WordProgressState:
        now = _utc_now()
        try:
            async with self.db.begin_nested():
                row = await self._word_row(aggregate_id, data.word)
                if row is None:
                    row = WordProgress(
                        learning_progress_id=aggregate_id,
                        word=data.word,
                        first_seen_at=data.first_seen_at or now,
                        created_at=data.created_at or now,
                    )
                    self.db.add(row)

                row.translation = data.translation
                row.mastery_level = data.mastery_level.value
                row.times_correct = data.times_correct
                row.times_incorrect = data.times_incorrect
                row.last_reviewed_at = data.last_reviewed_at
                row.related_lesson_step_ids = list(data.related_lesson_step_ids)
                row.related_assessment_step_ids = list(data.related_assessment_step_ids)
                row.updated_at = data.updated_at or now
                await self.db.flush()
        except SQLAlchemyError as e:
            raise _translate_error(e, f"upserting word '{data.word}'") from e

        return WordProgressState.from_db_record(row)
