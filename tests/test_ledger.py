import asyncio
import pytest

from feedback_rewards.exceptions import PersistenceError, ValidationError
from feedback_rewards.models import ActivityType
from feedback_rewards.storage import (
    MemoryRewardStorage,
    StorageUnavailable,
    StorageRejected
)
from feedback_rewards.ledger import (
    RewardLedger,
    TierStatus,
    CombinedProcedureTier,
    LegacyProcedureTier,
    TwoStepInsertTier,
    AwardRequest
)
from feedback_rewards.reconciliation import ReconciliationJob


class SlowAtomicStorage(MemoryRewardStorage):
    """The combined procedure hangs."""

    async def record_award_atomic(self, record):
        await asyncio.sleep(1)
        return await super().record_award_atomic(record)


class SlowIncrementStorage(MemoryRewardStorage):
    """The aggregate increment hangs after the ledger row is written."""

    async def increment_points(self, user_id, delta):
        await asyncio.sleep(1)
        return await super().increment_points(user_id, delta)


async def award(ledger, key='feedback:1:base', points=10, user='u-1'):
    return await ledger.record_award(
        user, ActivityType.FEEDBACK_GIVEN, points, key
    )


# =============================================================================
# IDEMPOTENCY
# =============================================================================

class TestIdempotency:

    @pytest.mark.asyncio
    async def test_first_award_recorded(self, ledger, storage):
        result = await award(ledger)
        assert result.success
        assert not result.duplicate
        assert result.tier == 'record_award_v2'
        assert result.record.correlation_key == 'feedback:1:base'
        assert storage.states['u-1'].points == 10

    @pytest.mark.asyncio
    async def test_same_key_credited_once(self, ledger, storage):
        first = await award(ledger)
        second = await award(ledger)
        assert second.success
        assert second.duplicate
        assert second.record.activity_id == first.record.activity_id
        assert len(storage.activity) == 1
        assert storage.states['u-1'].points == 10

    @pytest.mark.asyncio
    async def test_concurrent_same_key(self, ledger, storage):
        results = await asyncio.gather(*[award(ledger) for _ in range(5)])
        assert all(r.success for r in results)
        assert sum(1 for r in results if not r.duplicate) == 1
        assert len(storage.activity) == 1
        assert storage.states['u-1'].points == 10

    @pytest.mark.asyncio
    async def test_duplicate_detected_by_tier_when_lookup_fails(self, ledger, storage):
        await award(ledger)
        storage.fail('get_activity_by_key', StorageUnavailable('read replica down'))
        result = await award(ledger)
        assert result.success
        assert result.duplicate
        assert storage.states['u-1'].points == 10

    @pytest.mark.asyncio
    async def test_two_step_tier_is_idempotent(self, ledger, storage):
        storage.fail('record_award_atomic', StorageUnavailable('down'))
        storage.fail('record_award_legacy', StorageUnavailable('down'))
        await award(ledger)
        storage.fail('get_activity_by_key', StorageUnavailable('down'))
        result = await award(ledger)
        assert result.duplicate
        assert len(storage.activity) == 1
        assert storage.states['u-1'].points == 10

    @pytest.mark.asyncio
    async def test_distinct_keys_accumulate(self, ledger, storage):
        await award(ledger, key='feedback:1:base', points=10)
        await award(ledger, key='feedback:1:quality', points=18)
        await award(ledger, key='feedback:2:base', points=10)
        state = await ledger.get_state('u-1')
        assert state.points == 38

    @pytest.mark.asyncio
    async def test_negative_points_allowed(self, ledger, storage):
        await award(ledger, key='a', points=50)
        result = await award(ledger, key='b', points=-20)
        assert result.success
        assert storage.states['u-1'].points == 30


# =============================================================================
# TIER CHAIN
# =============================================================================

class TestTierChain:

    @pytest.mark.asyncio
    async def test_falls_back_to_legacy_procedure(self, ledger, storage):
        storage.fail('record_award_atomic', StorageUnavailable('function missing'))
        result = await award(ledger)
        assert result.success
        assert result.tier == 'record_award'
        assert [a.status for a in result.attempts] == [
            TierStatus.UNAVAILABLE, TierStatus.RECORDED
        ]
        assert storage.states['u-1'].points == 10

    @pytest.mark.asyncio
    async def test_falls_back_to_two_step(self, ledger, storage):
        storage.fail('record_award_atomic', StorageUnavailable('down'))
        storage.fail('record_award_legacy', StorageUnavailable('down'))
        result = await award(ledger)
        assert result.success
        assert result.tier == 'insert_then_increment'
        assert result.aggregate_applied
        assert storage.states['u-1'].points == 10

    @pytest.mark.asyncio
    async def test_partial_write_left_for_reconciliation(self, ledger, storage):
        storage.fail('record_award_atomic', StorageUnavailable('down'))
        storage.fail('record_award_legacy', StorageUnavailable('down'))
        storage.fail('increment_points', StorageUnavailable('lost connection'))
        result = await award(ledger)
        assert result.success
        assert not result.aggregate_applied
        assert result.attempts[-1].status is TierStatus.PARTIAL
        assert 'u-1' not in storage.states
        assert len(storage.activity) == 1

        storage.recover()
        report = await ReconciliationJob(storage).reconcile('u-1')
        assert report.drift == 10
        assert storage.states['u-1'].points == 10

    @pytest.mark.asyncio
    async def test_rejection_aborts_chain(self, ledger, storage):
        storage.fail('record_award_atomic', StorageRejected('bad payload'))
        result = await award(ledger)
        assert not result.success
        assert isinstance(result.error, PersistenceError)
        assert 'record_award_legacy' not in storage.calls
        assert 'insert_activity' not in storage.calls
        assert storage.activity == {}

    @pytest.mark.asyncio
    async def test_every_tier_unavailable(self, ledger, storage):
        for operation in ('record_award_atomic', 'record_award_legacy', 'insert_activity'):
            storage.fail(operation, StorageUnavailable('down'))
        result = await award(ledger)
        assert not result.success
        assert isinstance(result.error, PersistenceError)
        assert len(result.error.attempts) == 3
        assert storage.activity == {}
        assert storage.states == {}

    @pytest.mark.asyncio
    async def test_tier_timeout_falls_through(self):
        storage = SlowAtomicStorage()
        ledger = RewardLedger(storage, timeout=0.05)
        result = await award(ledger)
        assert result.success
        assert result.tier == 'record_award'
        assert result.attempts[0].status is TierStatus.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_increment_timeout_is_partial(self):
        storage = SlowIncrementStorage()
        storage.fail('record_award_atomic', StorageUnavailable('down'))
        storage.fail('record_award_legacy', StorageUnavailable('down'))
        ledger = RewardLedger(storage, timeout=0.05)
        result = await award(ledger)
        assert result.success
        assert not result.aggregate_applied
        assert result.record.points == 10
        assert [a.status for a in result.attempts] == [
            TierStatus.UNAVAILABLE, TierStatus.UNAVAILABLE, TierStatus.PARTIAL
        ]
        assert len(storage.activity) == 1
        assert 'u-1' not in storage.states

        report = await ReconciliationJob(storage).reconcile('u-1')
        assert report.drift == 10

    @pytest.mark.asyncio
    async def test_custom_tier_order(self, storage):
        ledger = RewardLedger(storage, tiers=[TwoStepInsertTier(storage)])
        result = await award(ledger)
        assert result.tier == 'insert_then_increment'
        assert 'record_award_atomic' not in storage.calls

    @pytest.mark.asyncio
    async def test_tiers_report_duplicates(self, storage):
        request = AwardRequest('u-1', 'feedback_given', 10, 'k-1')
        for tier in (
            CombinedProcedureTier(storage),
            LegacyProcedureTier(storage),
            TwoStepInsertTier(storage),
        ):
            outcome = await tier.run(request)
            assert outcome.tier == tier.name
        assert len(storage.activity) == 1
        assert storage.states['u-1'].points == 10


# =============================================================================
# VALIDATION AND READS
# =============================================================================

class TestValidation:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kwargs", [
        {'user_id': '', 'points': 10, 'correlation_key': 'k'},
        {'user_id': 'u-1', 'points': '10', 'correlation_key': 'k'},
        {'user_id': 'u-1', 'points': True, 'correlation_key': 'k'},
        {'user_id': 'u-1', 'points': 10, 'correlation_key': ''},
    ])
    async def test_invalid_award_rejected_before_storage(self, ledger, storage, kwargs):
        result = await ledger.record_award(
            kwargs['user_id'],
            ActivityType.FEEDBACK_GIVEN,
            kwargs['points'],
            kwargs['correlation_key']
        )
        assert not result.success
        assert isinstance(result.error, ValidationError)
        assert storage.calls == []

    @pytest.mark.asyncio
    async def test_invalid_metadata(self, ledger):
        result = await ledger.record_award(
            'u-1', 'feedback_given', 10, 'k', metadata=['not', 'a', 'dict']
        )
        assert isinstance(result.error, ValidationError)

    @pytest.mark.asyncio
    async def test_default_state_for_unknown_user(self, ledger):
        state = await ledger.get_state('nobody')
        assert (state.points, state.level, state.points_to_next_level) == (0, 1, 100)

    @pytest.mark.asyncio
    async def test_recent_activity_newest_first(self, ledger):
        for n in range(12):
            await award(ledger, key=f'feedback:{n}:base')
        activity = await ledger.get_activity('u-1')
        assert len(activity) == 10
        assert activity[0].correlation_key == 'feedback:11:base'

    @pytest.mark.asyncio
    async def test_level_follows_total(self, ledger, storage):
        await award(ledger, points=260)
        state = storage.states['u-1']
        assert state.level == 3
        assert state.points_to_next_level == 500
