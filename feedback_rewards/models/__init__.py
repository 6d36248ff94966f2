"""Feedback Rewards Models Package."""
from .feedback import (
    QualityMetrics,
    FeedbackItem,
    FeedbackSubmission
)
from .ledger import (
    ActivityType,
    ActivityRecord,
    UserRewardState,
    AchievementAward,
    feedback_base_key,
    feedback_quality_key,
    achievement_key
)

__all__ = (
    'QualityMetrics',
    'FeedbackItem',
    'FeedbackSubmission',
    'ActivityType',
    'ActivityRecord',
    'UserRewardState',
    'AchievementAward',
    'feedback_base_key',
    'feedback_quality_key',
    'achievement_key',
)
