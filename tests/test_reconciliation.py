from unittest.mock import MagicMock
import pytest

from feedback_rewards.models import ActivityType, UserRewardState
from feedback_rewards.storage import MemoryRewardStorage, StorageUnavailable
from feedback_rewards.ledger import AwardRequest
from feedback_rewards.reconciliation import (
    ReconciliationJob,
    reconciliation_job,
    register_reconciliation_jobs
)


class RacingStorage(MemoryRewardStorage):
    """Compare-and-set loses ``losses`` times before succeeding."""

    def __init__(self, losses=1):
        super().__init__()
        self.losses = losses

    async def overwrite_points(self, user_id, points, expected):
        if self.losses > 0:
            self.losses -= 1
            self.calls.append('overwrite_points')
            return False
        return await super().overwrite_points(user_id, points, expected)


async def seed_ledger(ledger, user_id, amounts):
    for n, points in enumerate(amounts):
        await ledger.record_award(
            user_id, ActivityType.FEEDBACK_GIVEN, points, f'{user_id}:{n}'
        )


# =============================================================================
# SINGLE USER
# =============================================================================

class TestReconcile:

    @pytest.mark.asyncio
    async def test_corrects_drift(self, storage, ledger):
        """Ledger sums to 135 while the aggregate reads 120."""
        await seed_ledger(ledger, 'u-1', [100, 25, 10])
        storage.set_points('u-1', 120)

        result = await ReconciliationJob(storage).reconcile('u-1')
        assert result.success
        assert result.previous_total == 120
        assert result.corrected_total == 135
        assert result.drift == 15
        assert storage.states['u-1'].points == 135
        assert storage.states['u-1'].level == 2

    @pytest.mark.asyncio
    async def test_second_run_reports_no_drift(self, storage, ledger):
        await seed_ledger(ledger, 'u-1', [100, 35])
        storage.set_points('u-1', 120)
        job = ReconciliationJob(storage)
        await job.reconcile('u-1')
        again = await job.reconcile('u-1')
        assert again.drift == 0
        assert not again.drifted
        assert again.corrected_total == 135

    @pytest.mark.asyncio
    async def test_aggregate_ahead_of_ledger(self, storage, ledger):
        await seed_ledger(ledger, 'u-1', [40])
        storage.set_points('u-1', 100)
        result = await ReconciliationJob(storage).reconcile('u-1')
        assert result.drift == -60
        assert storage.states['u-1'].points == 40
        assert storage.states['u-1'].level == 1

    @pytest.mark.asyncio
    async def test_missing_aggregate_created(self, storage, ledger):
        await seed_ledger(ledger, 'u-1', [30])
        del storage.states['u-1']
        result = await ReconciliationJob(storage).reconcile('u-1')
        assert result.previous_total == 0
        assert result.drift == 30
        assert storage.states['u-1'].points == 30

    @pytest.mark.asyncio
    async def test_unknown_user(self, storage):
        result = await ReconciliationJob(storage).reconcile('nobody')
        assert result.success
        assert result.drift == 0
        assert 'nobody' not in storage.states

    @pytest.mark.asyncio
    async def test_level_repaired_without_drift(self, storage, ledger):
        await seed_ledger(ledger, 'u-1', [300])
        storage.states['u-1'] = UserRewardState(
            user_id='u-1', points=300, level=1, points_to_next_level=100
        )
        result = await ReconciliationJob(storage).reconcile('u-1')
        assert result.drift == 0
        assert result.level_updated
        assert storage.states['u-1'].level == 3
        assert storage.states['u-1'].points_to_next_level == 500

    @pytest.mark.asyncio
    async def test_retries_when_aggregate_moves(self):
        storage = RacingStorage(losses=2)
        await storage.insert_activity(
            AwardRequest('u-1', 'feedback_given', 50, 'k-1').to_record()
        )
        result = await ReconciliationJob(storage, max_attempts=3).reconcile('u-1')
        assert result.success
        assert result.attempts == 3
        assert storage.states['u-1'].points == 50

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        storage = RacingStorage(losses=10)
        storage.set_points('u-1', 10)
        result = await ReconciliationJob(storage, max_attempts=3).reconcile('u-1')
        assert not result.success
        assert result.attempts == 3
        assert storage.states['u-1'].points == 10

    @pytest.mark.asyncio
    async def test_storage_failure_raises(self, storage):
        storage.fail('sum_activity_points', StorageUnavailable('down'))
        with pytest.raises(StorageUnavailable):
            await ReconciliationJob(storage).reconcile('u-1')


# =============================================================================
# BATCH AND SCHEDULING
# =============================================================================

class TestReconcileAll:

    @pytest.mark.asyncio
    async def test_every_known_user(self, storage, ledger):
        await seed_ledger(ledger, 'u-1', [10])
        await seed_ledger(ledger, 'u-2', [20])
        storage.set_points('u-2', 5)
        storage.set_points('u-3', 7)

        results = await ReconciliationJob(storage).reconcile_all()
        by_user = {r.user_id: r for r in results}
        assert set(by_user) == {'u-1', 'u-2', 'u-3'}
        assert by_user['u-1'].drift == 0
        assert by_user['u-2'].drift == 15
        assert by_user['u-3'].drift == -7

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_batch(self, storage):
        storage.fail('get_reward_state', StorageUnavailable('down'))
        results = await ReconciliationJob(storage).reconcile_all(['a', 'b'])
        assert [r.success for r in results] == [False, False]

    @pytest.mark.asyncio
    async def test_scheduled_job(self, storage, ledger):
        await seed_ledger(ledger, 'u-1', [100, 35])
        storage.set_points('u-1', 120)
        manager = MagicMock()
        manager.service.storage = storage
        await reconciliation_job({'feedback_rewards': manager})
        assert storage.states['u-1'].points == 135

    @pytest.mark.asyncio
    async def test_scheduled_job_without_manager(self):
        await reconciliation_job({})

    def test_register_jobs(self):
        scheduler = MagicMock()
        app = {}
        register_reconciliation_jobs(scheduler, app, timezone='UTC')
        args, kwargs = scheduler.add_job.call_args
        assert args == (reconciliation_job, 'cron')
        assert kwargs['id'] == 'feedback_rewards_reconciliation'
        assert kwargs['args'] == [app]
        assert kwargs['replace_existing'] is True
        assert kwargs['timezone'] == 'UTC'
