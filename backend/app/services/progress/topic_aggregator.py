"""
Topic Aggregator

Folds one session's result into a topic's practice record.

- Score: the session's effective score on first creation, otherwise the
  average of the stored score and the effective score.
- Mastery advances one level when the effective score reaches the
  success threshold (PROGRESS_TOPIC_SUCCESS_THRESHOLD, default 70) and
  is otherwise left alone. Topics never regress.
- last_studied_at is refreshed on every call; the session id is unioned
  into the related lesson or assessment ids.
"""

from datetime import datetime, timezone
from typing import Optional

from app.config import settings
from app.enums.progress import MasteryLevel, SessionKind
from app.models.progress import SessionOutcome, TopicProgressState
from app.services.progress.mastery_lattice import advance
from app.services.progress.utils import bound_score, clamp_score, union_ids


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def effective_topic_score(outcome: SessionOutcome) -> float:
    """
    Pick the score a session contributes to each of its topics.

    Priority: audio overall performance > text overall score > text
    accuracy > 0.
    """
    audio = outcome.audio_metrics
    if audio is not None and audio.overall_performance is not None:
        return audio.overall_performance

    text = outcome.text_metrics
    if text is not None:
        if text.overall_score is not None:
            return text.overall_score
        if text.accuracy is not None:
            return text.accuracy

    return 0.0


def update_topic(
    existing: Optional[TopicProgressState],
    topic_name: str,
    session_id: str,
    effective_score: float,
    session_kind: SessionKind = SessionKind.LESSON,
    success_threshold: Optional[float] = None,
    now: Optional[datetime] = None,
) -> TopicProgressState:
    """
    Apply one session to a topic record.

    Args:
        existing: Stored record, or None on first encounter.
        topic_name: Topic label as supplied by the session.
        session_id: Lesson or assessment id to record against the topic.
        effective_score: Session score for the topic (0-100, clamped).
        session_kind: Decides which related-id list `session_id` joins.
        success_threshold: Override for PROGRESS_TOPIC_SUCCESS_THRESHOLD.
        now: Timestamp override (defaults to current UTC time).

    Returns:
        The updated (or newly created) TopicProgressState.
    """
    now = now or _utc_now()
    threshold = (
        settings.PROGRESS_TOPIC_SUCCESS_THRESHOLD
        if success_threshold is None
        else success_threshold
    )
    session_score = bound_score(effective_score)

    if existing is None:
        existing = TopicProgressState(
            topic_name=topic_name,
            mastery_level=MasteryLevel.NOT_STARTED,
            created_at=now,
        )
        score = clamp_score(session_score)
    else:
        score = clamp_score((existing.score + session_score) / 2)

    lesson_ids = existing.related_lesson_ids
    assessment_ids = existing.related_assessment_ids
    if session_kind == SessionKind.LESSON:
        lesson_ids = union_ids(lesson_ids, session_id)
    else:
        assessment_ids = union_ids(assessment_ids, session_id)

    return existing.model_copy(
        update={
            "mastery_level": advance(existing.mastery_level, session_score >= threshold),
            "score": score,
            "last_studied_at": now,
            "related_lesson_ids": lesson_ids,
            "related_assessment_ids": assessment_ids,
            "updated_at": now,
        }
    )
