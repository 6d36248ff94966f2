"""Achievement catalog and evaluation."""
from .catalog import (
    ACHIEVEMENT_CATALOG,
    FEEDBACK_CHAMPION,
    QUALITY_REVIEWER,
    AchievementDefinition,
    AverageQualityRule,
    DistinctProjectsRule,
    FeedbackCountRule,
    RuleEvaluation,
    get_achievement
)
from .evaluator import AchievementEvaluator

__all__ = (
    'ACHIEVEMENT_CATALOG',
    'FEEDBACK_CHAMPION',
    'QUALITY_REVIEWER',
    'AchievementDefinition',
    'AverageQualityRule',
    'DistinctProjectsRule',
    'FeedbackCountRule',
    'RuleEvaluation',
    'get_achievement',
    'AchievementEvaluator',
)
