"""
Progress Repository Contract and In-Process Adapter

The progress engine talks to storage only through ProgressRepository.
Each public upsert is retried once on TransientPersistenceError
(PROGRESS_UPSERT_ATTEMPTS); adapters implement the underscored hooks.

Contract:
- transaction(): upserts made inside land together, or not at all
- get_aggregate / upsert_aggregate: keyed by user id
- ensure_aggregate: create-if-absent, never overwrites a stored aggregate
- get_topic / upsert_topic: keyed by (aggregate id, topic name)
- get_word / upsert_word: keyed by (aggregate id, word)
- get_words_by_mastery_levels: least recently reviewed first
- list_topics / list_words: most recently updated first

Adapters:
- InMemoryProgressRepository (this module): dict-backed, used in-process
  and in tests
- SQLAlchemyProgressRepository (sql_repository.py): AsyncSession-backed

Usage:
    repo = InMemoryProgressRepository()

    async with repo.transaction():
        progress = await repo.upsert_aggregate(user_id, LearningProgressState(user_id=user_id))
        await repo.upsert_topic(progress.id, TopicProgressState(topic_name="Travel"))
"""

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, Iterable, Optional
from uuid import uuid4

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from app.config import settings
from app.enums.progress import MasteryLevel
from app.middleware.error_handling import PersistenceError, TransientPersistenceError
from app.models.progress import (
    LearningProgressState,
    TopicProgressState,
    WordProgressState,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


# =============================================================================
# Retry configuration using tenacity
# =============================================================================

# One retry for transient failures; anything else propagates immediately
upsert_retry = retry(
    stop=stop_after_attempt(settings.PROGRESS_UPSERT_ATTEMPTS),
    wait=wait_fixed(settings.PROGRESS_UPSERT_RETRY_WAIT_SECONDS),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    retry=retry_if_exception_type(TransientPersistenceError),
    reraise=True,
)


# =============================================================================
# Repository contract
# =============================================================================


class ProgressRepository(ABC):
    """
    Storage contract for learning progress.

    Every call is individually atomic; the orchestrator composes calls
    inside transaction() so a session's writes land together.
    """

    @abstractmethod
    def transaction(self) -> "AsyncIterator[None]":
        """Async context manager grouping upserts into one atomic unit."""

    @abstractmethod
    async def get_aggregate(
        self, user_id: str, for_update: bool = False
    ) -> Optional[LearningProgressState]:
        """
        Fetch a user's aggregate.

        Args:
            user_id: Owning user.
            for_update: Lock the row until the transaction ends (where supported).
        """

    @abstractmethod
    async def get_topic(
        self, aggregate_id: str, topic_name: str
    ) -> Optional[TopicProgressState]:
        """Fetch one topic record."""

    @abstractmethod
    async def get_word(self, aggregate_id: str, word: str) -> Optional[WordProgressState]:
        """Fetch one word record."""

    @abstractmethod
    async def get_words_by_mastery_levels(
        self,
        aggregate_id: str,
        levels: Iterable[MasteryLevel],
        limit: Optional[int] = None,
    ) -> list[WordProgressState]:
        """Words at any of `levels`, least recently reviewed first."""

    @abstractmethod
    async def list_topics(self, aggregate_id: str, limit: int) -> list[TopicProgressState]:
        """Topics, most recently updated first."""

    @abstractmethod
    async def list_words(self, aggregate_id: str, limit: int) -> list[WordProgressState]:
        """Words, most recently updated first."""

    # -------------------------------------------------------------------------
    # Upserts (retried once on transient failure)
    # -------------------------------------------------------------------------

    @upsert_retry
    async def upsert_aggregate(
        self, user_id: str, data: LearningProgressState
    ) -> LearningProgressState:
        """Create or update the aggregate keyed by user id."""
        if not user_id:
            raise PersistenceError("user_id is required for upserting learning progress")
        return await self._upsert_aggregate(user_id, data)

    @upsert_retry
    async def ensure_aggregate(
        self, user_id: str, data: LearningProgressState
    ) -> LearningProgressState:
        """
        Create the aggregate unless one already exists for the user.

        An existing record is returned untouched, locked until the
        transaction ends where supported. Two creators racing on the same
        user both end up with the single stored row.
        """
        if not user_id:
            raise PersistenceError("user_id is required for creating learning progress")
        return await self._ensure_aggregate(user_id, data)

    @upsert_retry
    async def upsert_topic(
        self, aggregate_id: str, data: TopicProgressState
    ) -> TopicProgressState:
        """Create or update the topic keyed by (aggregate_id, data.topic_name)."""
        if not data.topic_name:
            raise PersistenceError("topic_name is required for upserting topic progress")
        return await self._upsert_topic(aggregate_id, data)

    @upsert_retry
    async def upsert_word(
        self, aggregate_id: str, data: WordProgressState
    ) -> WordProgressState:
        """Create or update the word keyed by (aggregate_id, data.word)."""
        if not data.word:
            raise PersistenceError("word is required for upserting word progress")
        return await self._upsert_word(aggregate_id, data)

    @abstractmethod
    async def _upsert_aggregate(
        self, user_id: str, data: LearningProgressState
    ) -> LearningProgressState: ...

    @abstractmethod
    async def _ensure_aggregate(
        self, user_id: str, data: LearningProgressState
    ) -> LearningProgressState: ...

    @abstractmethod
    async def _upsert_topic(
        self, aggregate_id: str, data: TopicProgressState
    ) -> TopicProgressState: ...

    @abstractmethod
    async def _upsert_word(
        self, aggregate_id: str, data: WordProgressState
    ) -> WordProgressState: ...


# =============================================================================
# In-process adapter
# =============================================================================


@dataclass
class _Store:
    """Committed (or staged) records, keyed the way the contract keys them."""

    aggregates: dict[str, LearningProgressState] = field(default_factory=dict)
    topics: dict[tuple[str, str], TopicProgressState] = field(default_factory=dict)
    words: dict[tuple[str, str], WordProgressState] = field(default_factory=dict)

    def apply(self, other: "_Store") -> None:
        self.aggregates.update(other.aggregates)
        self.topics.update(other.topics)
        self.words.update(other.words)


class InMemoryProgressRepository(ProgressRepository):
    """
    Dict-backed progress repository.

    Writes made inside transaction() are staged per task and only merged
    into the committed store when the block exits cleanly, so other
    readers never observe half a session. Records are copied on the way
    in and out.
    """

    def __init__(self) -> None:
        self._committed = _Store()
        self._staging: ContextVar[Optional[_Store]] = ContextVar(
            f"progress_staging_{id(self)}", default=None
        )

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._staging.get() is not None:
            # Nested blocks join the outer transaction
            yield
            return

        staged = _Store()
        token = self._staging.set(staged)
        try:
            yield
        except BaseException:
            logger.debug("Discarding staged progress writes")
            raise
        else:
            self._committed.apply(staged)
        finally:
            self._staging.reset(token)

    # -------------------------------------------------------------------------
    # Internal lookup helpers
    # -------------------------------------------------------------------------

    def _layers(self) -> list[_Store]:
        staged = self._staging.get()
        return [staged, self._committed] if staged is not None else [self._committed]

    def _write_target(self) -> _Store:
        return self._staging.get() or self._committed

    def _lookup(self, table: str, key):
        for layer in self._layers():
            record = getattr(layer, table).get(key)
            if record is not None:
                return record
        return None

    def _visible(self, table: str) -> dict:
        merged: dict = {}
        for layer in reversed(self._layers()):
            merged.update(getattr(layer, table))
        return merged

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_aggregate(
        self, user_id: str, for_update: bool = False
    ) -> Optional[LearningProgressState]:
        record = self._lookup("aggregates", user_id)
        return record.model_copy(deep=True) if record else None

    async def get_topic(
        self, aggregate_id: str, topic_name: str
    ) -> Optional[TopicProgressState]:
        record = self._lookup("topics", (aggregate_id, topic_name))
        return record.model_copy(deep=True) if record else None

    async def get_word(self, aggregate_id: str, word: str) -> Optional[WordProgressState]:
        record = self._lookup("words", (aggregate_id, word))
        return record.model_copy(deep=True) if record else None

    async def get_words_by_mastery_levels(
        self,
        aggregate_id: str,
        levels: Iterable[MasteryLevel],
        limit: Optional[int] = None,
    ) -> list[WordProgressState]:
        wanted = set(levels)
        limit = settings.PROGRESS_PRACTICE_WORDS_LIMIT if limit is None else limit
        oldest = datetime.min.replace(tzinfo=timezone.utc)
        words = [
            w
            for (agg_id, _), w in self._visible("words").items()
            if agg_id == aggregate_id and w.mastery_level in wanted
        ]
        words.sort(key=lambda w: w.last_reviewed_at or oldest)
        return [w.model_copy(deep=True) for w in words[:limit]]

    async def list_topics(self, aggregate_id: str, limit: int) -> list[TopicProgressState]:
        return self._recent("topics", aggregate_id, limit)

    async def list_words(self, aggregate_id: str, limit: int) -> list[WordProgressState]:
        return self._recent("words", aggregate_id, limit)

    def _recent(self, table: str, aggregate_id: str, limit: int) -> list:
        oldest = datetime.min.replace(tzinfo=timezone.utc)
        records = [
            r for (agg_id, _), r in self._visible(table).items() if agg_id == aggregate_id
        ]
        records.sort(key=lambda r: r.updated_at or oldest, reverse=True)
        return [r.model_copy(deep=True) for r in records[:limit]]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def _upsert_aggregate(
        self, user_id: str, data: LearningProgressState
    ) -> LearningProgressState:
        existing = self._lookup("aggregates", user_id)
        now = _utc_now()
        record = data.model_copy(
            deep=True,
            update={
                "id": existing.id if existing else (data.id or str(uuid4())),
                "user_id": user_id,
                "created_at": existing.created_at if existing else (data.created_at or now),
                "updated_at": data.updated_at or now,
            },
        )
        self._write_target().aggregates[user_id] = record
        return record.model_copy(deep=True)

    async def _ensure_aggregate(
        self, user_id: str, data: LearningProgressState
    ) -> LearningProgressState:
        existing = self._lookup("aggregates", user_id)
        if existing is not None:
            return existing.model_copy(deep=True)
        return await self._upsert_aggregate(user_id, data)

    async def _upsert_topic(
        self, aggregate_id: str, data: TopicProgressState
    ) -> TopicProgressState:
        key = (aggregate_id, data.topic_name)
        existing = self._lookup("topics", key)
        now = _utc_now()
        record = data.model_copy(
            deep=True,
            update={
                "id": existing.id if existing else (data.id or str(uuid4())),
                "learning_progress_id": aggregate_id,
                "created_at": existing.created_at if existing else (data.created_at or now),
                "updated_at": data.updated_at or now,
            },
        )
        self._write_target().topics[key] = record
        return record.model_copy(deep=True)

    async def _upsert_word(
        self, aggregate_id: str, data: WordProgressState
    ) -> WordProgressState:
        key = (aggregate_id, data.word)
        existing = self._lookup("words", key)
        now = _utc_now()
        record = data.model_copy(
            deep=True,
            update={
                "id": existing.id if existing else (data.id or str(uuid4())),
                "learning_progress_id": aggregate_id,
                # first_seen_at is immutable once stored
                "first_seen_at": (
                    existing.first_seen_at
                    if existing and existing.first_seen_at
                    else (data.first_seen_at or now)
                ),
                "created_at": existing.created_at if existing else (data.created_at or now),
                "updated_at": data.updated_at or now,
            },
        )
        self._write_target().words[key] = record
        return record.model_copy(deep=True)
