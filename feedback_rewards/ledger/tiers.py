"""
Persistence tiers of the reward ledger.

Each tier is one way of writing an award (ledger entry plus aggregate
increment). Tiers never raise: ``run`` returns a TierOutcome telling the
ledger whether to stop, fall through or abort.

    1. CombinedProcedureTier: record_award_v2(jsonb), one transaction.
    2. LegacyProcedureTier: record_award(...), positional, one transaction.
    3. TwoStepInsertTier: plain insert then increment. Not atomic: a failure
       between both steps leaves drift for the ReconciliationJob.
"""
from typing import Optional, Dict, Any
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
import asyncio
from navconfig.logging import logging
from ..conf import PERSISTENCE_TIMEOUT
from ..models import ActivityRecord
from ..storage import (
    RewardStorage,
    StorageError,
    StorageRejected
)


class TierStatus(str, Enum):
    RECORDED = "recorded"
    DUPLICATE = "duplicate"
    PARTIAL = "partial"
    UNAVAILABLE = "unavailable"
    REJECTED = "rejected"


@dataclass
class AwardRequest:
    """A validated award, ready to be written by any tier."""
    user_id: str
    activity_type: str
    points: int
    correlation_key: str
    description: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_record(self) -> ActivityRecord:
        return ActivityRecord(
            user_id=self.user_id,
            activity_type=self.activity_type,
            points=self.points,
            correlation_key=self.correlation_key,
            description=self.description,
            metadata=dict(self.metadata)
        )


@dataclass
class TierOutcome:
    """Result of one tier attempt."""
    tier: str
    status: TierStatus
    record: Optional[ActivityRecord] = None
    error: Optional[str] = None

    @property
    def recorded(self) -> bool:
        return self.status in (TierStatus.RECORDED, TierStatus.PARTIAL)


class AwardTier(ABC):
    """Base class for ledger persistence strategies."""
    name: str = 'tier'
    atomic: bool = True

    def __init__(
        self,
        storage: RewardStorage,
        timeout: float = PERSISTENCE_TIMEOUT,
        logger: Optional[logging.Logger] = None
    ):
        self.storage = storage
        self.timeout = timeout
        self.logger = logger or logging.getLogger(f'Rewards.Tier.{self.name}')

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"

    @abstractmethod
    async def attempt(self, request: AwardRequest) -> TierOutcome:
        """Write the award. Storage errors propagate to ``run``."""

    async def _bounded(self, request: AwardRequest) -> TierOutcome:
        return await asyncio.wait_for(
            self.attempt(request),
            timeout=self.timeout
        )

    async def run(self, request: AwardRequest) -> TierOutcome:
        try:
            return await self._bounded(request)
        except StorageRejected as err:
            return TierOutcome(self.name, TierStatus.REJECTED, error=str(err))
        except asyncio.TimeoutError:
            return TierOutcome(
                self.name,
                TierStatus.UNAVAILABLE,
                error=f"timed out after {self.timeout}s"
            )
        except StorageError as err:
            return TierOutcome(self.name, TierStatus.UNAVAILABLE, error=str(err))
        except Exception as err:  # pylint: disable=W0703
            self.logger.exception(
                f"Unexpected error writing {request.correlation_key}: {err}"
            )
            return TierOutcome(self.name, TierStatus.UNAVAILABLE, error=str(err))

    def _created(self, record: ActivityRecord, created: bool) -> TierOutcome:
        status = TierStatus.RECORDED if created else TierStatus.DUPLICATE
        return TierOutcome(self.name, status, record=record)


class CombinedProcedureTier(AwardTier):
    name = 'record_award_v2'

    async def attempt(self, request: AwardRequest) -> TierOutcome:
        record, created = await self.storage.record_award_atomic(
            request.to_record()
        )
        return self._created(record, created)


class LegacyProcedureTier(AwardTier):
    name = 'record_award'

    async def attempt(self, request: AwardRequest) -> TierOutcome:
        record, created = await self.storage.record_award_legacy(
            request.user_id,
            request.activity_type,
            request.points,
            request.correlation_key,
            request.description,
            dict(request.metadata)
        )
        return self._created(record, created)


class TwoStepInsertTier(AwardTier):
    name = 'insert_then_increment'
    atomic = False

    async def _bounded(self, request: AwardRequest) -> TierOutcome:
        # each step carries its own timeout in ``attempt``
        return await self.attempt(request)

    async def attempt(self, request: AwardRequest) -> TierOutcome:
        record = await asyncio.wait_for(
            self.storage.insert_activity(request.to_record()),
            timeout=self.timeout
        )
        if record is None:
            return TierOutcome(self.name, TierStatus.DUPLICATE)
        try:
            await asyncio.wait_for(
                self.storage.increment_points(request.user_id, request.points),
                timeout=self.timeout
            )
        except (StorageError, asyncio.TimeoutError) as err:
            error = str(err) or f"timed out after {self.timeout}s"
            self.logger.warning(
                f"Ledger entry {request.correlation_key} stored but aggregate "
                f"of {request.user_id} not incremented by {request.points}: "
                f"{error}; pending reconciliation"
            )
            return TierOutcome(
                self.name, TierStatus.PARTIAL, record=record, error=error
            )
        return TierOutcome(self.name, TierStatus.RECORDED, record=record)


def default_tiers(
    storage: RewardStorage,
    timeout: float = PERSISTENCE_TIMEOUT
) -> list:
    """The tier chain in preference order."""
    return [
        CombinedProcedureTier(storage, timeout=timeout),
        LegacyProcedureTier(storage, timeout=timeout),
        TwoStepInsertTier(storage, timeout=timeout),
    ]
