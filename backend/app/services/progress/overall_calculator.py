"""
Overall Progress Calculator

Fuses one session's metrics into the user's root aggregate.

Calculation:
- Session score: audio overall performance > text overall score >
  text accuracy > previous overall score > 0
- Blended score: previous * 0.3 + session * 0.7 (PROGRESS_*_WEIGHT)
- Proficiency: upgraded from the audio CEFR level, never downgraded
- Trajectory: audio verdict if present, else from the blended delta
  (> +5 accelerating, < -5 plateauing, else steady)
- Strengths / weaknesses: merged and capped at the 10 most recent

Usage:
    from app.services.progress.overall_calculator import recompute

    updated = recompute(progress, text_metrics, audio_metrics)
"""

from typing import Iterable, Optional

from app.config import settings
from app.enums.progress import LearningTrajectory, ProficiencyLevel
from app.models.progress import AudioMetrics, LearningProgressState, TextMetrics
from app.services.progress.utils import bound_score, clamp_score

_CEFR_PREFIXES: dict[str, ProficiencyLevel] = {
    "A1": ProficiencyLevel.BEGINNER,
    "A2": ProficiencyLevel.BEGINNER,
    "B1": ProficiencyLevel.INTERMEDIATE,
    "B2": ProficiencyLevel.INTERMEDIATE,
    "C1": ProficiencyLevel.ADVANCED,
    "C2": ProficiencyLevel.ADVANCED,
}


def map_cefr_to_proficiency(cefr: Optional[str]) -> Optional[ProficiencyLevel]:
    """
    Map a CEFR-style level ("A2", "b1+", "C1 - advanced") to a proficiency.

    Returns None for anything that does not start with A1..C2.
    """
    if not cefr:
        return None
    return _CEFR_PREFIXES.get(cefr.strip().upper()[:2])


def _calculate_trajectory(
    current_score: float,
    previous_score: float,
    threshold: float,
) -> LearningTrajectory:
    """
    Classify score movement.

    Returns:
        ACCELERATING if delta > threshold, PLATEAUING if < -threshold, else STEADY.
    """
    delta = current_score - previous_score

    if delta > threshold:
        return LearningTrajectory.ACCELERATING
    elif delta < -threshold:
        return LearningTrajectory.PLATEAUING

    return LearningTrajectory.STEADY


def _session_score(
    existing: LearningProgressState,
    text_metrics: Optional[TextMetrics],
    audio_metrics: Optional[AudioMetrics],
) -> float:
    if audio_metrics is not None and audio_metrics.overall_performance is not None:
        return audio_metrics.overall_performance
    if text_metrics is not None:
        if text_metrics.overall_score is not None:
            return text_metrics.overall_score
        if text_metrics.accuracy is not None:
            return text_metrics.accuracy
    if existing.overall_score is not None:
        return existing.overall_score
    return 0.0


def merge_recent_tags(
    existing: Iterable[str],
    new_tags: Iterable[str],
    limit: int,
) -> list[str]:
    """
    Merge tag lists, keeping only the `limit` most recent entries.

    A tag that is surfaced again moves to the most recent position, so
    recurring strengths are not evicted by newer one-offs.
    """
    merged: dict[str, None] = {}
    for tag in (*existing, *new_tags):
        tag = tag.strip()
        if not tag:
            continue
        merged.pop(tag, None)
        merged[tag] = None
    tags = list(merged)
    return tags[-limit:] if limit > 0 else []


def recompute(
    existing: LearningProgressState,
    text_metrics: Optional[TextMetrics] = None,
    audio_metrics: Optional[AudioMetrics] = None,
    history_weight: Optional[float] = None,
    session_weight: Optional[float] = None,
    trajectory_threshold: Optional[float] = None,
    tag_limit: Optional[int] = None,
) -> LearningProgressState:
    """
    Produce the updated aggregate after one session.

    Args:
        existing: Current aggregate; must not be None (create a default first).
        text_metrics: Text-derived session metrics, if any.
        audio_metrics: Audio-derived session metrics, if any.
        history_weight: Override for PROGRESS_HISTORY_WEIGHT.
        session_weight: Override for PROGRESS_SESSION_WEIGHT.
        trajectory_threshold: Override for PROGRESS_TRAJECTORY_THRESHOLD.
        tag_limit: Override for PROGRESS_TAG_HISTORY_LIMIT.

    Returns:
        A new LearningProgressState; `existing` is not modified.
    """
    if history_weight is None:
        history_weight = settings.PROGRESS_HISTORY_WEIGHT
    if session_weight is None:
        session_weight = settings.PROGRESS_SESSION_WEIGHT
    if trajectory_threshold is None:
        trajectory_threshold = settings.PROGRESS_TRAJECTORY_THRESHOLD
    if tag_limit is None:
        tag_limit = settings.PROGRESS_TAG_HISTORY_LIMIT

    previous_score = float(existing.overall_score or 0)
    session_score = bound_score(_session_score(existing, text_metrics, audio_metrics))
    blended = previous_score * history_weight + session_score * session_weight

    proficiency = existing.estimated_proficiency_level
    if audio_metrics is not None:
        audio_proficiency = map_cefr_to_proficiency(audio_metrics.proficiency_level)
        # One-way ratchet: a weak session never lowers the estimate
        if audio_proficiency is not None and audio_proficiency.rank > proficiency.rank:
            proficiency = audio_proficiency

    if audio_metrics is not None and audio_metrics.learning_trajectory is not None:
        trajectory = audio_metrics.learning_trajectory
    else:
        trajectory = _calculate_trajectory(blended, previous_score, trajectory_threshold)

    new_strengths: list[str] = []
    new_weaknesses: list[str] = []
    if text_metrics is not None:
        new_strengths.extend(text_metrics.strengths)
        new_weaknesses.extend(text_metrics.weaknesses)
    if audio_metrics is not None:
        new_strengths.extend(audio_metrics.strengths)
        new_weaknesses.extend(audio_metrics.weaknesses)

    return existing.model_copy(
        update={
            "overall_score": clamp_score(blended),
            "estimated_proficiency_level": proficiency,
            "learning_trajectory": trajectory,
            "strengths": merge_recent_tags(existing.strengths, new_strengths, tag_limit),
            "weaknesses": merge_recent_tags(existing.weaknesses, new_weaknesses, tag_limit),
        }
    )
