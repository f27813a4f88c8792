"""
Learning progress engine.

Pure aggregation (mastery_lattice, word_aggregator, topic_aggregator,
overall_calculator) plus the orchestrator that persists a session's
effect through a ProgressRepository.
"""

from app.services.progress.locks import UserLockRegistry, user_locks
from app.services.progress.orchestrator import PRACTICE_LEVELS, ProgressOrchestrator
from app.services.progress.repository import (
    InMemoryProgressRepository,
    ProgressRepository,
)

__all__ = [
    "InMemoryProgressRepository",
    "PRACTICE_LEVELS",
    "ProgressOrchestrator",
    "ProgressRepository",
    "UserLockRegistry",
    "user_locks",
]
