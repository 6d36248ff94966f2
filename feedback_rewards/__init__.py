"""
Feedback Quality & Rewards Engine.

Scores free-text feedback, turns the score into points, records every
award exactly once in a ledger and grants achievements:
- Quality analysis (external scoring service with a local heuristic)
- Points calculation and levels
- Reward ledger with a tiered persistence chain
- Achievement evaluation
- Ledger to aggregate reconciliation

Quick Start:
    from feedback_rewards import (
        FeedbackService,
        PgRewardStorage,
        setup_feedback_rewards
    )

    # Setup routes
    setup_feedback_rewards(app, storage=PgRewardStorage(connection=db))

    # Or use the service directly
    service = FeedbackService(PgRewardStorage(connection=db))
    result = await service.submit_feedback({
        "project_id": "landing-page",
        "user_id": "u-123",
        "content": "The signup button should stand out more"
    })

    # Repair drift left by partial writes
    report = await service.reconcile("u-123")
"""
from .exceptions import (
    RewardsError,
    ValidationError,
    AnalysisError,
    PersistenceError,
    IdempotencyConflict
)
from .models import (
    QualityMetrics,
    FeedbackItem,
    FeedbackSubmission,
    ActivityType,
    ActivityRecord,
    UserRewardState,
    AchievementAward
)
from .quality import QualityAnalyzer, ScoringClient
from .points import PointsCalculator, level_for, points_to_next_level
from .storage import (
    RewardStorage,
    StorageUnavailable,
    StorageRejected,
    MemoryRewardStorage,
    PgRewardStorage
)
from .ledger import RewardLedger, AwardResult
from .achievements import (
    AchievementEvaluator,
    AchievementDefinition,
    ACHIEVEMENT_CATALOG
)
from .reconciliation import (
    ReconciliationJob,
    ReconciliationResult,
    register_reconciliation_jobs
)
from .feedback import (
    FeedbackService,
    SubmissionResult,
    FeedbackRewardsManager,
    setup_feedback_rewards
)

__version__ = '1.0.0'

__all__ = (
    # Errors
    'RewardsError',
    'ValidationError',
    'AnalysisError',
    'PersistenceError',
    'IdempotencyConflict',
    # Models
    'QualityMetrics',
    'FeedbackItem',
    'FeedbackSubmission',
    'ActivityType',
    'ActivityRecord',
    'UserRewardState',
    'AchievementAward',
    # Components
    'QualityAnalyzer',
    'ScoringClient',
    'PointsCalculator',
    'level_for',
    'points_to_next_level',
    'RewardStorage',
    'StorageUnavailable',
    'StorageRejected',
    'MemoryRewardStorage',
    'PgRewardStorage',
    'RewardLedger',
    'AwardResult',
    'AchievementEvaluator',
    'AchievementDefinition',
    'ACHIEVEMENT_CATALOG',
    'ReconciliationJob',
    'ReconciliationResult',
    'register_reconciliation_jobs',
    # Application
    'FeedbackService',
    'SubmissionResult',
    'FeedbackRewardsManager',
    'setup_feedback_rewards',
)
