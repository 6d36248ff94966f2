"""Points calculation and level progression."""
from .levels import (
    LEVEL_THRESHOLDS,
    MAX_LEVEL,
    level_for,
    points_to_next_level
)
from .calculator import PointsCalculator

__all__ = (
    'LEVEL_THRESHOLDS',
    'MAX_LEVEL',
    'level_for',
    'points_to_next_level',
    'PointsCalculator',
)
