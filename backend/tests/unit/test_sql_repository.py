"""
Unit tests for SQLAlchemyProgressRepository.

Runs against an in-memory SQLite database (aiosqlite) with the real
progress tables, plus mocked sessions for error translation.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from app.db.models_progress import LearningProgress, TopicProgress, WordProgress
from app.enums.progress import MasteryLevel, ProficiencyLevel, ProgressUpdateStatus
from app.middleware.error_handling import PersistenceError, TransientPersistenceError
from app.models.progress import LearningProgressState, TopicProgressState, WordProgressState
from app.services.progress import ProgressOrchestrator, UserLockRegistry
from app.services.progress.sql_repository import SQLAlchemyProgressRepository, _translate_error
from tests.conftest import make_lesson

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sql_repo(sql_session) -> SQLAlchemyProgressRepository:
    return SQLAlchemyProgressRepository(sql_session)


async def _aggregate(repo, user_id="user-1") -> LearningProgressState:
    async with repo.transaction():
        return await repo.upsert_aggregate(user_id, LearningProgressState(user_id=user_id))


class RacingRepository(SQLAlchemyProgressRepository):
    """Misses the stored aggregate once, as if a competitor inserted it meanwhile."""

    hide_next_lookup = False

    async def _aggregate_row(self, user_id, for_update=False):
        if self.hide_next_lookup:
            self.hide_next_lookup = False
            return None
        return await super()._aggregate_row(user_id, for_update=for_update)


class TestAggregate:
    @pytest.mark.asyncio
    async def test_create_then_update(self, sql_repo):
        created = await _aggregate(sql_repo)

        async with sql_repo.transaction():
            updated = await sql_repo.upsert_aggregate(
                "user-1",
                created.model_copy(
                    update={
                        "overall_score": 56,
                        "estimated_proficiency_level": ProficiencyLevel.INTERMEDIATE,
                        "strengths": ["articles"],
                    }
                ),
            )

        assert updated.id == created.id
        fetched = await sql_repo.get_aggregate("user-1", for_update=True)
        assert fetched.overall_score == 56
        assert fetched.estimated_proficiency_level == ProficiencyLevel.INTERMEDIATE
        assert fetched.strengths == ["articles"]

    @pytest.mark.asyncio
    async def test_missing_aggregate(self, sql_repo):
        assert await sql_repo.get_aggregate("nobody") is None

    @pytest.mark.asyncio
    async def test_ensure_aggregate_keeps_stored_row(self, sql_repo):
        async with sql_repo.transaction():
            stored = await sql_repo.upsert_aggregate(
                "user-1", LearningProgressState(user_id="user-1", overall_score=56)
            )

        async with sql_repo.transaction():
            ensured = await sql_repo.ensure_aggregate(
                "user-1", LearningProgressState(user_id="user-1")
            )

        assert ensured.id == stored.id
        assert ensured.overall_score == 56
        assert (await sql_repo.get_aggregate("user-1")).overall_score == 56

    @pytest.mark.asyncio
    async def test_ensure_aggregate_after_losing_insert_race(self, sql_session):
        repo = RacingRepository(sql_session)
        async with repo.transaction():
            await repo.upsert_aggregate(
                "user-1", LearningProgressState(user_id="user-1", overall_score=56)
            )

        repo.hide_next_lookup = True
        async with repo.transaction():
            ensured = await repo.ensure_aggregate(
                "user-1", LearningProgressState(user_id="user-1")
            )

        assert repo.hide_next_lookup is False
        assert ensured.overall_score == 56
        count = await sql_session.scalar(select(func.count()).select_from(LearningProgress))
        assert count == 1


class TestTopicsAndWords:
    @pytest.mark.asyncio
    async def test_topic_upsert_updates_in_place(self, sql_repo, sql_session):
        progress = await _aggregate(sql_repo)

        async with sql_repo.transaction():
            await sql_repo.upsert_topic(progress.id, TopicProgressState(topic_name="Travel", score=50))
            await sql_repo.upsert_topic(
                progress.id,
                TopicProgressState(
                    topic_name="Travel",
                    score=70,
                    mastery_level=MasteryLevel.SEEN,
                    related_lesson_ids=["l-1"],
                ),
            )

        count = await sql_session.scalar(select(func.count()).select_from(TopicProgress))
        assert count == 1
        topic = await sql_repo.get_topic(progress.id, "Travel")
        assert topic.score == 70
        assert topic.mastery_level == MasteryLevel.SEEN
        assert topic.related_lesson_ids == ["l-1"]

    @pytest.mark.asyncio
    async def test_word_round_trip(self, sql_repo):
        progress = await _aggregate(sql_repo)

        async with sql_repo.transaction():
            await sql_repo.upsert_word(
                progress.id,
                WordProgressState(
                    word="billete",
                    translation="ticket",
                    mastery_level=MasteryLevel.LEARNING,
                    times_correct=2,
                    first_seen_at=NOW,
                    last_reviewed_at=NOW,
                    related_lesson_step_ids=["s-1"],
                ),
            )

        word = await sql_repo.get_word(progress.id, "billete")
        assert word.translation == "ticket"
        assert word.mastery_level == MasteryLevel.LEARNING
        assert word.times_correct == 2
        assert word.related_lesson_step_ids == ["s-1"]

    @pytest.mark.asyncio
    async def test_words_by_mastery_levels(self, sql_repo):
        progress = await _aggregate(sql_repo)
        async with sql_repo.transaction():
            for word, level, age in [
                ("uno", MasteryLevel.SEEN, 1),
                ("dos", MasteryLevel.LEARNING, 5),
                ("tres", MasteryLevel.MASTERED, 10),
            ]:
                await sql_repo.upsert_word(
                    progress.id,
                    WordProgressState(
                        word=word, mastery_level=level, last_reviewed_at=NOW - timedelta(days=age)
                    ),
                )

        words = await sql_repo.get_words_by_mastery_levels(
            progress.id, [MasteryLevel.SEEN, MasteryLevel.LEARNING]
        )
        assert [w.word for w in words] == ["dos", "uno"]
        assert await sql_repo.get_words_by_mastery_levels(progress.id, []) == []


class TestTransaction:
    @pytest.mark.asyncio
    async def test_rollback_when_block_raises(self, sql_repo, sql_session):
        with pytest.raises(RuntimeError):
            async with sql_repo.transaction():
                progress = await sql_repo.upsert_aggregate(
                    "user-1", LearningProgressState(user_id="user-1")
                )
                await sql_repo.upsert_word(progress.id, WordProgressState(word="pan"))
                raise RuntimeError("boom")

        assert await sql_repo.get_aggregate("user-1") is None
        assert await sql_session.scalar(select(func.count()).select_from(WordProgress)) == 0

    @pytest.mark.asyncio
    async def test_orchestrator_end_to_end(self, sql_repo):
        orchestrator = ProgressOrchestrator(sql_repo, locks=UserLockRegistry())

        first = await orchestrator.update_after_lesson(
            "user-1", make_lesson("l-1", words=(("pan", True),), accuracy=80)
        )
        second = await orchestrator.update_after_lesson(
            "user-1", make_lesson("l-2", words=(("pan", False),), accuracy=60)
        )

        assert first.status == ProgressUpdateStatus.COMMITTED
        assert second.status == ProgressUpdateStatus.COMMITTED
        assert second.progress.id == first.progress.id
        # 56 * 0.3 + 60 * 0.7 = 58.8
        assert second.progress.overall_score == 59

        topic = await sql_repo.get_topic(first.progress.id, "Travel")
        word = await sql_repo.get_word(first.progress.id, "pan")
        assert topic.score == 70
        assert topic.related_lesson_ids == ["l-1", "l-2"]
        assert word.mastery_level == MasteryLevel.SEEN
        assert (word.times_correct, word.times_incorrect) == (1, 1)

    @pytest.mark.asyncio
    async def test_stale_missing_aggregate_keeps_prior_session(self, sql_repo):
        orchestrator = ProgressOrchestrator(sql_repo, locks=UserLockRegistry())
        first = await orchestrator.update_after_lesson(
            "user-1", make_lesson("l-1", words=(("pan", True),), accuracy=80)
        )

        real_get_aggregate = sql_repo.get_aggregate
        reads = []

        async def stale_get_aggregate(user_id, for_update=False):
            reads.append(for_update)
            if len(reads) == 1:
                return None
            return await real_get_aggregate(user_id, for_update=for_update)

        sql_repo.get_aggregate = stale_get_aggregate
        second = await orchestrator.update_after_lesson(
            "user-1", make_lesson("l-2", words=(("pan", False),), accuracy=60)
        )

        assert second.status == ProgressUpdateStatus.COMMITTED
        assert second.progress.id == first.progress.id
        # Blends with the first session's 56, not a fresh default
        assert second.progress.overall_score == 59
        assert second.progress.last_lesson_completed_at is not None


class TestErrorTranslation:
    @pytest.mark.parametrize(
        "error,expected",
        [
            (IntegrityError("INSERT", {}, Exception("duplicate key")), TransientPersistenceError),
            (OperationalError("SELECT", {}, Exception("connection reset")), TransientPersistenceError),
            (ProgrammingError("SELECT", {}, Exception("no such table")), PersistenceError),
        ],
        ids=["integrity", "operational", "programming"],
    )
    def test_translate_error(self, error, expected):
        translated = _translate_error(error, "testing")
        assert type(translated) is expected
        assert translated.details == {"action": "testing"}

    @pytest.mark.asyncio
    async def test_read_failure_becomes_persistence_error(self):
        db = MagicMock()
        db.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("down")))
        repo = SQLAlchemyProgressRepository(db)

        with pytest.raises(TransientPersistenceError):
            await repo.get_topic("lp-1", "Travel")

    @pytest.mark.asyncio
    async def test_commit_failure_rolls_back(self):
        db = MagicMock()
        db.commit = AsyncMock(side_effect=OperationalError("COMMIT", {}, Exception("down")))
        db.rollback = AsyncMock()
        repo = SQLAlchemyProgressRepository(db)

        with pytest.raises(TransientPersistenceError):
            async with repo.transaction():
                pass
        db.rollback.assert_awaited_once()
