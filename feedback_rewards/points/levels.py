"""Level progression table."""
from typing import Tuple

# Cumulative points needed to reach levels 2..10.
LEVEL_THRESHOLDS: Tuple[int, ...] = (
    100, 250, 500, 1000, 2000, 3500, 5000, 7500, 10000
)
MAX_LEVEL = len(LEVEL_THRESHOLDS) + 1
MAX_LEVEL_TARGET = 15000


def level_for(points: int) -> int:
    """Level reached with the given point total (1 to MAX_LEVEL)."""
    level = 1
    for threshold in LEVEL_THRESHOLDS:
        if points >= threshold:
            level += 1
        else:
            break
    return level


def points_to_next_level(level: int) -> int:
    """Cumulative total required to leave the given level."""
    if level < 1:
        return LEVEL_THRESHOLDS[0]
    if level >= MAX_LEVEL:
        return MAX_LEVEL_TARGET
    return LEVEL_THRESHOLDS[level - 1]
