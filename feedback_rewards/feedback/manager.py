"""
Feedback Rewards application integration.

Usage:
    from feedback_rewards import setup_feedback_rewards

    app = web.Application()
    setup_feedback_rewards(app, storage=PgRewardStorage(connection=pool))
"""
from typing import Optional
from aiohttp import web
from navconfig.logging import logging
from ..conf import REWARDS_API_BASE, SCORING_SERVICE_URL
from ..quality import QualityAnalyzer, ScoringClient
from ..storage import RewardStorage, MemoryRewardStorage
from .service import FeedbackService
from .handlers import (
    FeedbackHandler,
    RewardStateHandler,
    AchievementHandler
)


class FeedbackRewardsManager:
    """
    Installs the feedback rewards service in an aiohttp application.

    Handles:
        - Route registration
        - Waiting for background reward processing on shutdown
    """

    def __init__(
        self,
        app: web.Application,
        service: FeedbackService,
        base_path: str = REWARDS_API_BASE
    ):
        self.app = app
        self.service = service
        self.base_path = base_path.rstrip('/')
        self.logger = logging.getLogger('Rewards.Manager')

        # Store reference in app
        self.app['feedback_rewards'] = self

    def setup(self):
        """Register routes and the cleanup hook."""
        FeedbackHandler.configure(self.app, f'{self.base_path}/feedback')
        RewardStateHandler.configure(self.app, f'{self.base_path}/rewards')
        AchievementHandler.configure(
            self.app,
            f'{self.base_path}/achievements'
        )
        self.app.on_cleanup.append(self.on_cleanup)
        self.logger.info(
            f"Feedback Rewards routes registered at {self.base_path}"
        )

    async def on_cleanup(self, app: web.Application):
        """Let in-flight reward processing finish before shutdown."""
        await self.service.drain()


def setup_feedback_rewards(
    app: web.Application,
    storage: Optional[RewardStorage] = None,
    service: Optional[FeedbackService] = None,
    base_path: str = REWARDS_API_BASE
) -> FeedbackRewardsManager:
    """Build the default service (when not given) and install it."""
    if service is None:
        client = ScoringClient() if SCORING_SERVICE_URL else None
        service = FeedbackService(
            storage or MemoryRewardStorage(),
            analyzer=QualityAnalyzer(client=client)
        )
    manager = FeedbackRewardsManager(app, service, base_path=base_path)
    manager.setup()
    return manager
