"""Feedback submission pipeline and its HTTP surface."""
from .service import FeedbackService, SubmissionResult, RewardReport
from .handlers import FeedbackHandler, RewardStateHandler, AchievementHandler
from .manager import FeedbackRewardsManager, setup_feedback_rewards

__all__ = (
    'FeedbackService',
    'SubmissionResult',
    'RewardReport',
    'FeedbackHandler',
    'RewardStateHandler',
    'AchievementHandler',
    'FeedbackRewardsManager',
    'setup_feedback_rewards',
)
