"""
Learning Progress Models (Pydantic)

Schemas for the progress engine:
- Session metrics (text-derived and audio-derived)
- Inbound lesson / assessment outcomes and their normalized session view
- Progress records (aggregate, topic, word)
- Update results and read-side responses

ARCHITECTURE NOTE:
    This file contains PYDANTIC models. The corresponding SQLAlchemy tables
    live in app/db/models_progress.py.

    Data flows: Outcome → SessionOutcome → Aggregators → Repository

Metrics arrive as two closed shapes, TextMetrics and AudioMetrics, each
validated once here so the aggregation code can read fields directly.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, TYPE_CHECKING

from pydantic import Field

from app.enums.progress import (
    AssessmentStepType,
    LearningTrajectory,
    LessonStepType,
    MasteryLevel,
    ProficiencyLevel,
    ProgressUpdateStatus,
    SessionKind,
)
from app.models.base import MetricsPayload, StrictRequest, StrictResponse

if TYPE_CHECKING:
    from app.db.models_progress import LearningProgress, TopicProgress, WordProgress


LESSON_WORD_STEP_TYPES = frozenset({LessonStepType.NEW_WORD, LessonStepType.PRACTICE})
ASSESSMENT_WORD_STEP_TYPES = frozenset({AssessmentStepType.QUESTION})


def _distinct_names(names: Iterable[Optional[str]]) -> list[str]:
    """Drop blank names and duplicates, keeping first-seen order."""
    seen: dict[str, None] = {}
    for name in names:
        if name and name.strip():
            seen.setdefault(name.strip(), None)
    return list(seen)


# ===========================================
# Session Metrics
# ===========================================


class TextMetrics(MetricsPayload):
    """
    Text-derived performance metrics for a lesson or assessment.

    Scores are on a 0-100 scale. Any of them may be missing.
    """

    accuracy: Optional[float] = None
    overall_score: Optional[float] = None
    pronunciation_score: Optional[float] = None
    grammar_score: Optional[float] = None
    vocabulary_score: Optional[float] = None
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)


class PronunciationAssessment(MetricsPayload):
    """Pronunciation section of an audio analysis."""

    overall_score: Optional[float] = None
    problematic_sounds: list[str] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    areas_for_improvement: list[str] = Field(default_factory=list)


class GrammarAssessment(MetricsPayload):
    """Grammar section of an audio analysis."""

    overall_score: Optional[float] = None
    grammar_strengths: list[str] = Field(default_factory=list)


class FluencyAssessment(MetricsPayload):
    """Fluency section of an audio analysis."""

    overall_score: Optional[float] = None


class VocabularyAssessment(MetricsPayload):
    """Vocabulary section of an audio analysis."""

    overall_score: Optional[float] = None


class AudioMetrics(MetricsPayload):
    """
    Audio-derived metrics produced by the speech scoring service.

    The scorer's output is richer than the text metrics: a CEFR-style
    proficiency level (e.g. "B1"), an optional trajectory verdict, and
    nested per-skill assessments. Strengths are read from the grammar
    assessment and weaknesses from the pronunciation assessment.
    """

    pronunciation_score: Optional[float] = None
    fluency_score: Optional[float] = None
    grammar_score: Optional[float] = None
    vocabulary_score: Optional[float] = None
    overall_performance: Optional[float] = None

    proficiency_level: Optional[str] = Field(
        None, description="CEFR-style level, e.g. 'A2' or 'C1'"
    )
    learning_trajectory: Optional[LearningTrajectory] = None

    pronunciation_assessment: Optional[PronunciationAssessment] = None
    fluency_assessment: Optional[FluencyAssessment] = None
    grammar_assessment: Optional[GrammarAssessment] = None
    vocabulary_assessment: Optional[VocabularyAssessment] = None

    suggested_topics: list[str] = Field(default_factory=list)
    grammar_focus_areas: list[str] = Field(default_factory=list)
    vocabulary_domains: list[str] = Field(default_factory=list)
    next_skill_targets: list[str] = Field(default_factory=list)

    @property
    def strengths(self) -> list[str]:
        if self.grammar_assessment is None:
            return []
        return list(self.grammar_assessment.grammar_strengths)

    @property
    def weaknesses(self) -> list[str]:
        if self.pronunciation_assessment is None:
            return []
        return list(self.pronunciation_assessment.areas_for_improvement)


# ===========================================
# Normalized Session Outcome
# ===========================================


class WordAttempt(StrictRequest):
    """One attempt at a word within a session."""

    word: str = Field(..., min_length=1)
    translation: Optional[str] = None
    was_correct: bool = False
    was_attempted: bool = False
    step_id: Optional[str] = Field(
        None, description="Lesson or assessment step that produced the attempt"
    )


class SessionOutcome(StrictRequest):
    """
    Source-independent view of a completed session.

    Built from a LessonOutcome or AssessmentOutcome; this is the only
    input shape the orchestrator aggregates.
    """

    kind: SessionKind
    session_id: str = Field(..., min_length=1)
    topics: list[str] = Field(default_factory=list)
    word_attempts: list[WordAttempt] = Field(default_factory=list)
    text_metrics: Optional[TextMetrics] = None
    audio_metrics: Optional[AudioMetrics] = None


# ===========================================
# Lesson / Assessment Outcomes
# ===========================================


class LessonStepOutcome(StrictRequest):
    """Result of a single lesson step."""

    id: str = Field(..., min_length=1)
    step_number: int = 0
    step_type: LessonStepType
    content: str = ""
    expected_answer: Optional[str] = None
    translation: Optional[str] = None
    user_response: Optional[str] = None
    attempts: int = Field(0, ge=0)
    correct: bool = False

    @property
    def word(self) -> Optional[str]:
        """The practised word: the expected answer, else the step content."""
        return self.expected_answer or self.content or None


class LessonOutcome(StrictRequest):
    """
    A completed lesson as reported by the lesson runner.

    Topics are the focus area followed by each target skill.
    """

    id: str = Field(..., min_length=1)
    focus_area: Optional[str] = None
    target_skills: list[str] = Field(default_factory=list)
    steps: list[LessonStepOutcome] = Field(default_factory=list)
    performance_metrics: Optional[TextMetrics] = None
    audio_metrics: Optional[AudioMetrics] = None

    def to_session_outcome(self) -> SessionOutcome:
        """Normalize into the engine's SessionOutcome."""
        attempts = [
            WordAttempt(
                word=step.word,
                translation=step.translation,
                was_correct=step.correct,
                was_attempted=step.attempts > 0,
                step_id=step.id,
            )
            for step in self.steps
            if step.step_type in LESSON_WORD_STEP_TYPES and step.word
        ]
        return SessionOutcome(
            kind=SessionKind.LESSON,
            session_id=self.id,
            topics=_distinct_names([self.focus_area, *self.target_skills]),
            word_attempts=attempts,
            text_metrics=self.performance_metrics,
            audio_metrics=self.audio_metrics,
        )


class AssessmentStepOutcome(StrictRequest):
    """Result of a single assessment step."""

    id: str = Field(..., min_length=1)
    step_number: int = 0
    step_type: AssessmentStepType
    content: str = ""
    expected_answer: Optional[str] = None
    translation: Optional[str] = None
    user_response: Optional[str] = None
    attempts: int = Field(0, ge=0)
    correct: bool = False


class AssessmentOutcome(StrictRequest):
    """
    A completed assessment lesson.

    Topics come from the assessment's proposed topics; words come from
    question steps that carry an expected answer.
    """

    id: str = Field(..., min_length=1)
    proposed_topics: list[str] = Field(default_factory=list)
    steps: list[AssessmentStepOutcome] = Field(default_factory=list)
    metrics: Optional[TextMetrics] = None
    audio_metrics: Optional[AudioMetrics] = None

    def to_session_outcome(self) -> SessionOutcome:
        """Normalize into the engine's SessionOutcome."""
        attempts = [
            WordAttempt(
                word=step.expected_answer,
                translation=step.translation,
                was_correct=step.correct,
                was_attempted=step.attempts > 0,
                step_id=step.id,
            )
            for step in self.steps
            if step.step_type in ASSESSMENT_WORD_STEP_TYPES and step.expected_answer
        ]
        return SessionOutcome(
            kind=SessionKind.ASSESSMENT,
            session_id=self.id,
            topics=_distinct_names(self.proposed_topics),
            word_attempts=attempts,
            text_metrics=self.metrics,
            audio_metrics=self.audio_metrics,
        )


# ===========================================
# Progress Records
# ===========================================


class LearningProgressState(StrictResponse):
    """
    Per-user root aggregate.

    `id` is None until the repository has stored the record.
    """

    id: Optional[str] = None
    user_id: str
    estimated_proficiency_level: ProficiencyLevel = ProficiencyLevel.BEGINNER
    overall_score: Optional[int] = Field(None, ge=0, le=100)
    learning_trajectory: LearningTrajectory = LearningTrajectory.STEADY
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    last_lesson_completed_at: Optional[datetime] = None
    last_assessment_completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_db_record(cls, record: LearningProgress) -> LearningProgressState:
        """Create a LearningProgressState from a database LearningProgress row."""
        return cls(
            id=record.id,
            user_id=record.user_id,
            estimated_proficiency_level=ProficiencyLevel(
                record.estimated_proficiency_level
            ),
            overall_score=record.overall_score,
            learning_trajectory=LearningTrajectory(record.learning_trajectory),
            strengths=list(record.strengths or []),
            weaknesses=list(record.weaknesses or []),
            last_lesson_completed_at=record.last_lesson_completed_at,
            last_assessment_completed_at=record.last_assessment_completed_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class TopicProgressState(StrictResponse):
    """Practice record for one topic, unique per (aggregate, topic_name)."""

    id: Optional[str] = None
    learning_progress_id: Optional[str] = None
    topic_name: str
    mastery_level: MasteryLevel = MasteryLevel.NOT_STARTED
    score: int = Field(0, ge=0, le=100)
    last_studied_at: Optional[datetime] = None
    related_lesson_ids: list[str] = Field(default_factory=list)
    related_assessment_ids: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_db_record(cls, record: TopicProgress) -> TopicProgressState:
        """Create a TopicProgressState from a database TopicProgress row."""
        return cls(
            id=record.id,
            learning_progress_id=record.learning_progress_id,
            topic_name=record.topic_name,
            mastery_level=MasteryLevel(record.mastery_level),
            score=record.score,
            last_studied_at=record.last_studied_at,
            related_lesson_ids=list(record.related_lesson_ids or []),
            related_assessment_ids=list(record.related_assessment_ids or []),
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class WordProgressState(StrictResponse):
    """Practice record for one word, unique per (aggregate, word)."""

    id: Optional[str] = None
    learning_progress_id: Optional[str] = None
    word: str
    translation: Optional[str] = None
    mastery_level: MasteryLevel = MasteryLevel.SEEN
    times_correct: int = Field(0, ge=0)
    times_incorrect: int = Field(0, ge=0)
    first_seen_at: Optional[datetime] = None
    last_reviewed_at: Optional[datetime] = None
    related_lesson_step_ids: list[str] = Field(default_factory=list)
    related_assessment_step_ids: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_db_record(cls, record: WordProgress) -> WordProgressState:
        """Create a WordProgressState from a database WordProgress row."""
        return cls(
            id=record.id,
            learning_progress_id=record.learning_progress_id,
            word=record.word,
            translation=record.translation,
            mastery_level=MasteryLevel(record.mastery_level),
            times_correct=record.times_correct,
            times_incorrect=record.times_incorrect,
            first_seen_at=record.first_seen_at,
            last_reviewed_at=record.last_reviewed_at,
            related_lesson_step_ids=list(record.related_lesson_step_ids or []),
            related_assessment_step_ids=list(record.related_assessment_step_ids or []),
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


# ===========================================
# Results and Responses
# ===========================================


class ProgressUpdateResult(StrictResponse):
    """
    Outcome of updating progress after one session.

    Returned instead of raising so the completion flow that triggered
    the update can inspect it without being forced to handle it.
    """

    status: ProgressUpdateStatus
    user_id: Optional[str] = None
    session_kind: Optional[SessionKind] = None
    session_id: Optional[str] = None
    progress: Optional[LearningProgressState] = None
    topics_updated: int = 0
    words_updated: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        """True when the session's effect was committed."""
        return self.status in (
            ProgressUpdateStatus.COMMITTED,
            ProgressUpdateStatus.PARTIAL,
        )


class ProgressSummary(StrictResponse):
    """Aggregate plus the most recently updated topics and words."""

    progress: LearningProgressState
    topics: list[TopicProgressState] = Field(default_factory=list)
    words: list[WordProgressState] = Field(default_factory=list)


class PracticeWordsResponse(StrictResponse):
    """Words due for practice, least recently reviewed first."""

    user_id: str
    words: list[WordProgressState] = Field(default_factory=list)
    total: int = 0
