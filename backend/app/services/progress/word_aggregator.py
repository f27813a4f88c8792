"""
Word Aggregator

Folds one attempt at a word into that word's practice record.

Rules:
- Passive exposure (was_attempted=False) changes nothing.
- The first attempt creates the record at Seen, right or wrong.
- Correct attempt: times_correct += 1, mastery advances one level.
- Incorrect attempt: times_incorrect += 1, mastery regresses (floored at Seen).
- first_seen_at is set once on creation; last_reviewed_at on every attempt.
- Step ids are unioned into the related-step lists, never replaced.
- A missing translation keeps the stored one.

Pure function: persistence is the orchestrator's job.
"""

from datetime import datetime, timezone
from typing import Optional

from app.enums.progress import MasteryLevel, SessionKind
from app.models.progress import WordProgressState
from app.services.progress.mastery_lattice import advance, regress
from app.services.progress.utils import union_ids


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def update_word(
    existing: Optional[WordProgressState],
    word: str,
    translation: Optional[str],
    was_correct: bool,
    was_attempted: bool,
    step_id: Optional[str] = None,
    session_kind: SessionKind = SessionKind.LESSON,
    now: Optional[datetime] = None,
) -> Optional[WordProgressState]:
    """
    Apply one attempt to a word record.

    Args:
        existing: Stored record, or None if the word has never been attempted.
        word: The word as identified by the caller.
        translation: Translation shown with the attempt, if any.
        was_correct: Whether the attempt was correct.
        was_attempted: Whether the learner actually attempted the word.
        step_id: Lesson or assessment step id to record against the word.
        session_kind: Decides which related-step list `step_id` joins.
        now: Timestamp override (defaults to current UTC time).

    Returns:
        The updated record, `existing` unchanged when nothing was
        attempted, or None when nothing was attempted and no record exists.
    """
    if not was_attempted:
        return existing

    now = now or _utc_now()

    is_new = existing is None
    if existing is None:
        existing = WordProgressState(
            word=word,
            translation=translation,
            mastery_level=MasteryLevel.NOT_STARTED,
            first_seen_at=now,
            created_at=now,
        )

    if was_correct:
        times_correct = existing.times_correct + 1
        times_incorrect = existing.times_incorrect
        mastery_level = advance(existing.mastery_level, True)
    else:
        times_correct = existing.times_correct
        times_incorrect = existing.times_incorrect + 1
        mastery_level = regress(existing.mastery_level)

    if is_new and mastery_level.rank < MasteryLevel.SEEN.rank:
        # An attempted word is at least SEEN, whatever the first answer
        mastery_level = MasteryLevel.SEEN

    lesson_step_ids = existing.related_lesson_step_ids
    assessment_step_ids = existing.related_assessment_step_ids
    if session_kind == SessionKind.LESSON:
        lesson_step_ids = union_ids(lesson_step_ids, step_id)
    else:
        assessment_step_ids = union_ids(assessment_step_ids, step_id)

    return existing.model_copy(
        update={
            "translation": translation or existing.translation,
            "mastery_level": mastery_level,
            "times_correct": times_correct,
            "times_incorrect": times_incorrect,
            "first_seen_at": existing.first_seen_at or now,
            "last_reviewed_at": now,
            "related_lesson_step_ids": lesson_step_ids,
            "related_assessment_step_ids": assessment_step_ids,
            "updated_at": now,
        }
    )
