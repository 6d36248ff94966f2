"""Quality bonus calculation."""
import math
from typing import TYPE_CHECKING
from ..conf import (
    BASE_FEEDBACK_POINTS,
    MAX_QUALITY_POINTS,
    QUALITY_THRESHOLD
)

if TYPE_CHECKING:
    from ..models import QualityMetrics


class PointsCalculator:
    """
    Converts quality metrics into a bonus point amount.

    Pure: no I/O, no state. Base submission points are added by the
    caller (see ``base_points``).
    """

    def __init__(
        self,
        threshold: float = QUALITY_THRESHOLD,
        max_points: int = MAX_QUALITY_POINTS,
        base_points: int = BASE_FEEDBACK_POINTS
    ):
        self.threshold = threshold
        self.max_points = max_points
        self.base_points = base_points

    @staticmethod
    def quality_score(metrics: 'QualityMetrics') -> float:
        return (
            metrics.specificity + metrics.actionability + metrics.novelty
        ) / 3

    def calculate(self, metrics: 'QualityMetrics') -> int:
        """Quality bonus for the given metrics, in [0, max_points]."""
        # float noise: (0.6 + 0.6 + 0.6) / 3 must reach a 0.6 threshold
        score = round(self.quality_score(metrics), 9)
        if score < self.threshold:
            return 0
        # half-up rounding, not banker's rounding
        bonus = math.floor(score * self.max_points + 0.5)
        return max(0, min(bonus, self.max_points))

    def total(self, metrics: 'QualityMetrics') -> int:
        """Base points plus quality bonus."""
        return self.base_points + self.calculate(metrics)
