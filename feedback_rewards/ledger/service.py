"""
Reward Ledger.

Appends award records and keeps the per-user running total in step,
exactly once per correlation key.
"""
from typing import Optional, List, Dict, Any, Union
from dataclasses import dataclass, field
from navconfig.logging import logging
from ..conf import PERSISTENCE_TIMEOUT
from ..exceptions import (
    ValidationError,
    PersistenceError,
    IdempotencyConflict,
    RewardsError
)
from ..models import ActivityRecord, ActivityType, UserRewardState
from ..storage import RewardStorage, StorageError
from .tiers import (
    AwardTier,
    AwardRequest,
    TierOutcome,
    TierStatus,
    default_tiers
)


@dataclass
class AwardResult:
    """Result of an award operation."""
    success: bool
    record: Optional[ActivityRecord] = None
    tier: Optional[str] = None
    duplicate: bool = False
    aggregate_applied: bool = False
    message: str = ""
    error: Optional[RewardsError] = None
    attempts: List[TierOutcome] = field(default_factory=list)


class RewardLedger:
    """
    Append-only point ledger with an aggregate running total.

    A correlation key is credited at most once: a repeated key is a
    successful no-op returning the original record. Writes go through the
    tier chain; only unavailability falls through to the next tier, a
    rejected payload aborts the chain.

    Usage:
        ledger = RewardLedger(storage)
        result = await ledger.record_award(
            'u-1', ActivityType.FEEDBACK_GIVEN, 10, 'feedback:42:base'
        )
    """

    def __init__(
        self,
        storage: RewardStorage,
        tiers: Optional[List[AwardTier]] = None,
        timeout: float = PERSISTENCE_TIMEOUT,
        logger: Optional[logging.Logger] = None
    ):
        self.storage = storage
        self.tiers = tiers if tiers is not None else default_tiers(
            storage, timeout=timeout
        )
        self.logger = logger or logging.getLogger('Rewards.Ledger')

    @staticmethod
    def validate(
        user_id: str,
        activity_type: Union[str, ActivityType],
        points: int,
        correlation_key: str,
        metadata: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None
    ) -> AwardRequest:
        """Build an AwardRequest or raise ValidationError."""
        if isinstance(activity_type, ActivityType):
            activity_type = activity_type.value
        if not user_id or not isinstance(user_id, str):
            raise ValidationError("user_id is required", field='user_id')
        if not activity_type or not isinstance(activity_type, str):
            raise ValidationError(
                "activity_type is required", field='activity_type'
            )
        if isinstance(points, bool) or not isinstance(points, int):
            raise ValidationError(
                f"points must be an integer, got {points!r}", field='points'
            )
        if not correlation_key or not isinstance(correlation_key, str):
            raise ValidationError(
                "correlation_key is required", field='correlation_key'
            )
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError(
                "metadata must be a mapping", field='metadata'
            )
        return AwardRequest(
            user_id=user_id,
            activity_type=activity_type,
            points=points,
            correlation_key=correlation_key,
            description=description or f"{activity_type} ({points:+d} points)",
            metadata=dict(metadata or {})
        )

    async def find(self, correlation_key: str) -> Optional[ActivityRecord]:
        """Ledger entry for a key; None if absent or the store is down."""
        try:
            return await self.storage.get_activity_by_key(correlation_key)
        except StorageError as err:
            self.logger.warning(
                f"Could not look up correlation key {correlation_key}: {err}"
            )
            return None

    def _duplicate(
        self,
        correlation_key: str,
        existing: Optional[ActivityRecord],
        tier: Optional[str] = None,
        attempts: Optional[List[TierOutcome]] = None
    ) -> AwardResult:
        conflict = IdempotencyConflict(correlation_key, existing)
        self.logger.info(f"{conflict.message}, nothing credited")
        return AwardResult(
            success=True,
            record=existing,
            tier=tier,
            duplicate=True,
            aggregate_applied=False,
            message=conflict.message,
            attempts=attempts or []
        )

    async def record_award(
        self,
        user_id: str,
        activity_type: Union[str, ActivityType],
        points: int,
        correlation_key: str,
        metadata: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None
    ) -> AwardResult:
        """
        Credit ``points`` to ``user_id`` once for ``correlation_key``.

        Returns:
            AwardResult: ``success`` is False only for invalid input or
            when every tier failed (``error`` is then a ValidationError or
            a PersistenceError).
        """
        try:
            request = self.validate(
                user_id,
                activity_type,
                points,
                correlation_key,
                metadata,
                description
            )
        except ValidationError as err:
            self.logger.error(f"Invalid award {correlation_key!r}: {err.message}")
            return AwardResult(success=False, message=err.message, error=err)

        existing = await self.find(correlation_key)
        if existing is not None:
            return self._duplicate(correlation_key, existing)

        attempts: List[TierOutcome] = []
        for tier in self.tiers:
            outcome = await tier.run(request)
            attempts.append(outcome)
            if outcome.status is TierStatus.RECORDED:
                self.logger.info(
                    f"Credited {request.points:+d} to {request.user_id} "
                    f"for {correlation_key} via {tier.name}"
                )
                return AwardResult(
                    success=True,
                    record=outcome.record,
                    tier=tier.name,
                    aggregate_applied=True,
                    message="Award recorded",
                    attempts=attempts
                )
            if outcome.status is TierStatus.PARTIAL:
                return AwardResult(
                    success=True,
                    record=outcome.record,
                    tier=tier.name,
                    aggregate_applied=False,
                    message="Award recorded, aggregate pending reconciliation",
                    attempts=attempts
                )
            if outcome.status is TierStatus.DUPLICATE:
                record = outcome.record or await self.find(correlation_key)
                return self._duplicate(
                    correlation_key, record, tier.name, attempts
                )
            if outcome.status is TierStatus.REJECTED:
                err = PersistenceError(
                    f"Award {correlation_key} rejected by {tier.name}: "
                    f"{outcome.error}",
                    attempts=attempts
                )
                self.logger.error(err.message)
                return AwardResult(
                    success=False,
                    message=err.message,
                    error=err,
                    attempts=attempts
                )
            self.logger.warning(
                f"Tier {tier.name} unavailable for {correlation_key}: "
                f"{outcome.error}"
            )

        err = PersistenceError(
            f"All persistence tiers failed for {correlation_key}",
            attempts=attempts
        )
        self.logger.error(err.message)
        return AwardResult(
            success=False,
            message=err.message,
            error=err,
            attempts=attempts
        )

    async def get_state(self, user_id: str) -> UserRewardState:
        """Aggregate of a user (level 1, zero points when unknown)."""
        state = await self.storage.get_reward_state(user_id)
        if state is None:
            return UserRewardState.for_total(user_id, 0)
        return state

    async def get_activity(
        self,
        user_id: str,
        limit: int = 10
    ) -> List[ActivityRecord]:
        """Most recent ledger entries of a user."""
        return await self.storage.list_activity(user_id, limit=limit)
