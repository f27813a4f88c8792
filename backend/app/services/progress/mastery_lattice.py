"""
Mastery Lattice

The ordered six-level familiarity scale shared by topics and words,
and its two transitions.

    NotStarted → Seen → Learning → Practiced → Known → Mastered

- advance(level, success): one step up on success, unchanged otherwise.
  Mastered is a ceiling.
- regress(level): one step down. NotStarted and Seen are floors, so a
  wrong answer never erases "has been seen".

Usage:
    from app.services.progress.mastery_lattice import advance, regress

    level = advance(MasteryLevel.SEEN, success=True)  # LEARNING
    level = regress(level)  # SEEN
"""

from app.enums.progress import MasteryLevel

_LEVELS: tuple[MasteryLevel, ...] = tuple(MasteryLevel)

# Levels an incorrect attempt cannot push lower
REGRESSION_FLOORS = frozenset({MasteryLevel.NOT_STARTED, MasteryLevel.SEEN})


def advance(level: MasteryLevel, success: bool) -> MasteryLevel:
    """
    Move one level up the lattice on a successful signal.

    Args:
        level: Current mastery level.
        success: Whether the attempt or session counts as a success.

    Returns:
        The next level if success, otherwise `level` unchanged.
        MASTERED stays MASTERED.
    """
    if not success:
        return level
    return _LEVELS[min(level.rank + 1, len(_LEVELS) - 1)]


def regress(level: MasteryLevel) -> MasteryLevel:
    """
    Move at most one level down the lattice.

    NOT_STARTED and SEEN are returned unchanged.
    """
    if level in REGRESSION_FLOORS:
        return level
    return _LEVELS[level.rank - 1]
