"""
SQLAlchemy Database Models for Learning Progress

Tables:
- learning_progress: One root aggregate per user
- topic_progress: Per-topic mastery, unique per (aggregate, topic_name)
- word_progress: Per-word mastery, unique per (aggregate, word)

ARCHITECTURE NOTE:
    This file contains SQLALCHEMY models for database persistence.
    There is a corresponding Pydantic file: app/models/progress.py

    Data flows: Aggregators → Pydantic → SQLAlchemy → Database

Enum-valued columns store the enum's string value so the tables stay
readable without the application.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.enums.progress import LearningTrajectory, MasteryLevel, ProficiencyLevel


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


class LearningProgress(Base):
    """
    Per-user root aggregate of learning progress.

    Attributes:
        id: UUID primary key.
        user_id: Owning user. Unique, one aggregate per user.
        estimated_proficiency_level: beginner / intermediate / advanced.
            Only ever raised.
        overall_score: Blended 0-100 score; null until the first session.
        learning_trajectory: accelerating / steady / plateauing.
        strengths: Most recent strength tags, oldest first.
        weaknesses: Most recent weakness tags, oldest first.
        last_lesson_completed_at: When the last lesson was folded in.
        last_assessment_completed_at: When the last assessment was folded in.
        topics: TopicProgress rows for this user.
        words: WordProgress rows for this user.
    """

    __tablename__ = "learning_progress"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)

    estimated_proficiency_level: Mapped[str] = mapped_column(
        String(20), default=ProficiencyLevel.BEGINNER.value
    )
    overall_score: Mapped[Optional[int]] = mapped_column(Integer)
    learning_trajectory: Mapped[str] = mapped_column(
        String(20), default=LearningTrajectory.STEADY.value
    )
    strengths: Mapped[list] = mapped_column(JSON, default=list)
    weaknesses: Mapped[list] = mapped_column(JSON, default=list)

    last_lesson_completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True)
    )
    last_assessment_completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True)
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )

    # Relationships
    topics: Mapped[List["TopicProgress"]] = relationship(
        back_populates="learning_progress", cascade="all, delete-orphan"
    )
    words: Mapped[List["WordProgress"]] = relationship(
        back_populates="learning_progress", cascade="all, delete-orphan"
    )


class TopicProgress(Base):
    """
    Mastery of a single topic.

    Attributes:
        topic_name: Topic label, e.g. "Travel" or "past tense".
        mastery_level: One of the six mastery levels.
        score: Running 0-100 topic score.
        last_studied_at: Last session that touched the topic.
        related_lesson_ids: Lessons that covered the topic, no duplicates.
        related_assessment_ids: Assessments that covered the topic, no duplicates.
    """

    __tablename__ = "topic_progress"
    __table_args__ = (
        UniqueConstraint(
            "learning_progress_id", "topic_name", name="uq_topic_progress_topic"
        ),
        Index("ix_topic_progress_updated", "learning_progress_id", "updated_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    learning_progress_id: Mapped[str] = mapped_column(
        ForeignKey("learning_progress.id", ondelete="CASCADE")
    )
    topic_name: Mapped[str] = mapped_column(String(255))

    mastery_level: Mapped[str] = mapped_column(
        String(20), default=MasteryLevel.NOT_STARTED.value
    )
    score: Mapped[int] = mapped_column(Integer, default=0)
    last_studied_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    related_lesson_ids: Mapped[list] = mapped_column(JSON, default=list)
    related_assessment_ids: Mapped[list] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )

    learning_progress: Mapped["LearningProgress"] = relationship(back_populates="topics")


class WordProgress(Base):
    """
    Mastery of a single word.

    Attributes:
        word: The word or phrase as practised.
        translation: Last known translation.
        mastery_level: One of the six mastery levels; Seen once stored.
        times_correct: Correct attempts so far.
        times_incorrect: Incorrect attempts so far.
        first_seen_at: First attempt. Never changes after insert.
        last_reviewed_at: Most recent attempt; drives practice ordering.
        related_lesson_step_ids: Lesson steps that practised the word.
        related_assessment_step_ids: Assessment steps that practised the word.
    """

    __tablename__ = "word_progress"
    __table_args__ = (
        UniqueConstraint("learning_progress_id", "word", name="uq_word_progress_word"),
        Index(
            "ix_word_progress_mastery",
            "learning_progress_id",
            "mastery_level",
            "last_reviewed_at",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    learning_progress_id: Mapped[str] = mapped_column(
        ForeignKey("learning_progress.id", ondelete="CASCADE")
    )
    word: Mapped[str] = mapped_column(String(255))
    translation: Mapped[Optional[str]] = mapped_column(Text)

    mastery_level: Mapped[str] = mapped_column(
        String(20), default=MasteryLevel.SEEN.value
    )
    times_correct: Mapped[int] = mapped_column(Integer, default=0)
    times_incorrect: Mapped[int] = mapped_column(Integer, default=0)

    first_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )
    last_reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    related_lesson_step_ids: Mapped[list] = mapped_column(JSON, default=list)
    related_assessment_step_ids: Mapped[list] = mapped_column(JSON, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )

    learning_progress: Mapped["LearningProgress"] = relationship(back_populates="words")
