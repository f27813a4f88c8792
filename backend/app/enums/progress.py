"""
Learning Progress Enums

Defines the closed vocabularies used by the progress engine: the
six-level mastery lattice, the coarse proficiency estimate, trajectory
classification, and the session/step kinds the engine understands.
"""

from enum import Enum


class MasteryLevel(str, Enum):
    """
    Ordered familiarity stages for a topic or word.

    Order is total and fixed:
        NOT_STARTED < SEEN < LEARNING < PRACTICED < KNOWN < MASTERED

    Topics start at NOT_STARTED; words start at SEEN (a word record only
    exists once the learner has attempted it).
    """

    NOT_STARTED = "NotStarted"
    SEEN = "Seen"
    LEARNING = "Learning"
    PRACTICED = "Practiced"
    KNOWN = "Known"
    MASTERED = "Mastered"

    @property
    def rank(self) -> int:
        """Zero-based position in the lattice."""
        return list(MasteryLevel).index(self)


class ProficiencyLevel(str, Enum):
    """
    Coarse proficiency estimate.

    CEFR mapping: A1-A2 → BEGINNER, B1-B2 → INTERMEDIATE, C1-C2 → ADVANCED.
    """

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"

    @property
    def rank(self) -> int:
        """One-based position; higher is more proficient."""
        return list(ProficiencyLevel).index(self) + 1


class LearningTrajectory(str, Enum):
    """
    Classification of recent overall score movement.

    Derived from the blended-score delta when audio metrics do not
    supply one:
    - delta > +threshold: ACCELERATING
    - delta < -threshold: PLATEAUING
    - else: STEADY
    """

    ACCELERATING = "accelerating"
    STEADY = "steady"
    PLATEAUING = "plateauing"


class SessionKind(str, Enum):
    """Source of a completed session."""

    LESSON = "lesson"
    ASSESSMENT = "assessment"


class LessonStepType(str, Enum):
    """
    Lesson step kinds.

    Only NEW_WORD and PRACTICE steps carry a word attempt.
    """

    INSTRUCTION = "instruction"
    PROMPT = "prompt"
    MODEL_ANSWER = "model_answer"
    USER_ANSWER = "user_answer"
    NEW_WORD = "new_word"
    PRACTICE = "practice"
    SUMMARY = "summary"
    FEEDBACK = "feedback"


class AssessmentStepType(str, Enum):
    """
    Assessment step kinds.

    Only QUESTION steps carry a word attempt.
    """

    INSTRUCTION = "instruction"
    QUESTION = "question"
    FEEDBACK = "feedback"
    SUMMARY = "summary"


class ProgressUpdateStatus(str, Enum):
    """
    Outcome of a progress update, reported through ProgressUpdateResult.

    - COMMITTED: the whole session landed
    - PARTIAL: committed, but some topic/word items were skipped
    - REJECTED: malformed input, persistence never touched
    - FAILED: load or commit failed, nothing landed
    """

    COMMITTED = "committed"
    PARTIAL = "partial"
    REJECTED = "rejected"
    FAILED = "failed"
