"""
Reconciliation Job.

Recomputes a user's running total from the ledger and corrects drift
left by the non-atomic persistence tier (or by any out-of-band write).
"""
from typing import Optional, List, Iterable
from dataclasses import dataclass
from navconfig.logging import logging
from ..conf import RECONCILIATION_MAX_ATTEMPTS
from ..storage import RewardStorage, StorageError
from ..models import UserRewardState


@dataclass
class ReconciliationResult:
    """Outcome of reconciling one user.

    ``drift`` is ``corrected_total - previous_total``: positive when the
    aggregate was behind the ledger.
    """
    user_id: str
    previous_total: int = 0
    corrected_total: int = 0
    drift: int = 0
    level_updated: bool = False
    success: bool = True
    attempts: int = 0
    message: str = ""

    @property
    def drifted(self) -> bool:
        return self.drift != 0

    def to_dict(self) -> dict:
        return {
            'user_id': self.user_id,
            'previous_total': self.previous_total,
            'corrected_total': self.corrected_total,
            'drift': self.drift,
            'level_updated': self.level_updated,
            'success': self.success,
            'message': self.message,
        }


class ReconciliationJob:
    """
    Ledger to aggregate reconciliation.

    The overwrite is a compare-and-set against the total read before
    summing the ledger; a concurrent award makes it fail and the user is
    re-read, up to ``max_attempts`` times. Running it twice in a row
    reports zero drift the second time.
    """

    def __init__(
        self,
        storage: RewardStorage,
        max_attempts: int = RECONCILIATION_MAX_ATTEMPTS,
        logger: Optional[logging.Logger] = None
    ):
        self.storage = storage
        self.max_attempts = max(1, max_attempts)
        self.logger = logger or logging.getLogger('Rewards.Reconciliation')

    async def reconcile(self, user_id: str) -> ReconciliationResult:
        """Bring the aggregate of ``user_id`` back to the ledger sum.

        Raises:
            StorageError: when the store cannot be read or written.
        """
        result = ReconciliationResult(user_id=user_id)
        for attempt in range(1, self.max_attempts + 1):
            result.attempts = attempt
            state = await self.storage.get_reward_state(user_id)
            expected = state.points if state is not None else None
            corrected = await self.storage.sum_activity_points(user_id)

            result.previous_total = expected or 0
            result.corrected_total = corrected
            result.drift = corrected - result.previous_total

            if state is None and corrected == 0:
                result.message = "No ledger entries"
                return result
            needs_level = state is not None and not state.level_is_consistent()
            if state is not None and expected == corrected and not needs_level:
                result.message = "In sync"
                return result

            if await self.storage.overwrite_points(user_id, corrected, expected):
                fixed = UserRewardState.for_total(user_id, corrected)
                result.level_updated = state is None or state.level != fixed.level
                if result.drifted:
                    self.logger.warning(
                        f"Reconciliation drift for {user_id}: aggregate "
                        f"{result.previous_total}, ledger {corrected}, "
                        f"drift {result.drift:+d}"
                    )
                    result.message = f"Corrected drift of {result.drift:+d}"
                else:
                    self.logger.info(f"Level of {user_id} recalculated")
                    result.message = "Level recalculated"
                return result
            self.logger.debug(
                f"Aggregate of {user_id} changed while reconciling "
                f"(attempt {attempt}/{self.max_attempts})"
            )

        result.success = False
        result.message = (
            f"Aggregate kept changing, gave up after {self.max_attempts} attempts"
        )
        self.logger.error(f"Reconciliation of {user_id} failed: {result.message}")
        return result

    async def reconcile_all(
        self,
        user_ids: Optional[Iterable[str]] = None
    ) -> List[ReconciliationResult]:
        """Reconcile every given user (default: every user with points)."""
        if user_ids is None:
            user_ids = await self.storage.list_reward_users()
        results = []
        for user_id in user_ids:
            try:
                results.append(await self.reconcile(user_id))
            except StorageError as err:
                self.logger.error(f"Error reconciling {user_id}: {err}")
                results.append(
                    ReconciliationResult(
                        user_id=user_id,
                        success=False,
                        message=str(err)
                    )
                )
        drifted = sum(1 for r in results if r.drifted and r.success)
        self.logger.info(
            f"Reconciled {len(results)} users, {drifted} with drift"
        )
        return results


async def reconciliation_job(app):
    """
    Scheduled job reconciling every user.

    Expects the FeedbackRewardsManager stored in ``app['feedback_rewards']``.
    """
    logger = logging.getLogger('Rewards.Reconciliation')
    try:
        manager = app.get('feedback_rewards')
        if manager is None:
            logger.warning("Feedback rewards not configured, skipping")
            return
        job = ReconciliationJob(manager.service.storage, logger=logger)
        await job.reconcile_all()
    except Exception as err:
        logger.error(f"Error in scheduled reconciliation: {err}")


def register_reconciliation_jobs(scheduler, app, timezone=None):
    """
    Register the nightly reconciliation job.

    Args:
        scheduler: APScheduler instance
        app: aiohttp application
        timezone: Timezone for job scheduling
    """
    scheduler.add_job(
        reconciliation_job,
        'cron',
        hour=3,
        minute=15,
        args=[app],
        id='feedback_rewards_reconciliation',
        name='Feedback Rewards Reconciliation (Nightly)',
        replace_existing=True,
        timezone=timezone,
        misfire_grace_time=3600
    )
