"""
Centralized enum definitions for the application.

Usage:
    from app.enums import MasteryLevel, ProficiencyLevel

    # Or import from the specific module
    from app.enums.progress import LearningTrajectory
"""

from app.enums.progress import (
    MasteryLevel,
    ProficiencyLevel,
    LearningTrajectory,
    SessionKind,
    LessonStepType,
    AssessmentStepType,
    ProgressUpdateStatus,
)

__all__ = [
    "MasteryLevel",
    "ProficiencyLevel",
    "LearningTrajectory",
    "SessionKind",
    "LessonStepType",
    "AssessmentStepType",
    "ProgressUpdateStatus",
]
