import itertools
import pytest

from feedback_rewards.models import QualityMetrics, UserRewardState
from feedback_rewards.points import (
    PointsCalculator,
    level_for,
    points_to_next_level
)


def metrics(specificity, actionability, novelty, sentiment=0.0):
    return QualityMetrics(
        specificity=specificity,
        actionability=actionability,
        novelty=novelty,
        sentiment=sentiment
    )


# =============================================================================
# QUALITY BONUS
# =============================================================================

class TestPointsCalculator:

    def setup_method(self):
        self.calculator = PointsCalculator(threshold=0.6, max_points=25, base_points=10)

    def test_below_threshold_earns_nothing(self):
        assert self.calculator.calculate(metrics(0.5, 0.5, 0.6)) == 0

    def test_threshold_is_inclusive(self):
        """(0.6 + 0.6 + 0.6) / 3 is not exactly 0.6 in floating point."""
        assert self.calculator.calculate(metrics(0.6, 0.6, 0.6)) == 15

    def test_reference_example(self):
        assert self.calculator.calculate(metrics(0.9, 0.7, 0.6, 1.0)) == 18
        assert self.calculator.total(metrics(0.9, 0.7, 0.6, 1.0)) == 28

    def test_half_rounds_up(self):
        # 0.66 * 25 == 16.5
        assert self.calculator.calculate(metrics(0.66, 0.66, 0.66)) == 17

    def test_perfect_score(self):
        assert self.calculator.calculate(metrics(1.0, 1.0, 1.0)) == 25

    def test_sentiment_ignored(self):
        assert (
            self.calculator.calculate(metrics(0.8, 0.8, 0.8, -1.0))
            == self.calculator.calculate(metrics(0.8, 0.8, 0.8, 1.0))
        )

    def test_bonus_always_in_range(self):
        steps = [0.0, 0.25, 0.5, 0.6, 0.75, 0.9, 1.0]
        for s, a, n in itertools.product(steps, repeat=3):
            bonus = self.calculator.calculate(metrics(s, a, n))
            assert 0 <= bonus <= 25

    def test_quality_score(self):
        assert PointsCalculator.quality_score(metrics(0.3, 0.6, 0.9)) == pytest.approx(0.6)


# =============================================================================
# LEVELS
# =============================================================================

class TestLevels:

    @pytest.mark.parametrize("points,level", [
        (0, 1),
        (99, 1),
        (100, 2),
        (249, 2),
        (250, 3),
        (1000, 5),
        (9999, 9),
        (10000, 10),
        (250000, 10),
        (-20, 1),
    ])
    def test_level_for(self, points, level):
        assert level_for(points) == level

    @pytest.mark.parametrize("level,target", [
        (1, 100),
        (2, 250),
        (5, 2000),
        (9, 10000),
        (10, 15000),
    ])
    def test_points_to_next_level(self, level, target):
        assert points_to_next_level(level) == target

    def test_state_for_total(self):
        state = UserRewardState.for_total('u-1', 135)
        assert state.points == 135
        assert state.level == 2
        assert state.points_to_next_level == 250
        assert state.level_is_consistent()

    def test_inconsistent_state_detected(self):
        state = UserRewardState(
            user_id='u-1', points=300, level=1, points_to_next_level=100
        )
        assert not state.level_is_consistent()
