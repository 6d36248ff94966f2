"""
Persistence adapter interface.

Every method is a coroutine. Adapters translate driver failures into
``StorageUnavailable`` (transport, timeouts, missing procedures) or
``StorageRejected`` (malformed payload, constraint violations other than
the correlation key); duplicates are reported through return values.
"""
from typing import Optional, List, Tuple, Dict, Any
from abc import ABC, abstractmethod
from ..exceptions import RewardsError
from ..models import (
    FeedbackItem,
    ActivityRecord,
    UserRewardState,
    AchievementAward
)


class StorageError(RewardsError):
    """Base class for persistence adapter failures."""


class StorageUnavailable(StorageError):
    """The store (or the requested primitive) cannot be reached right now."""


class StorageRejected(StorageError):
    """The store refused the payload. Retrying elsewhere will not help."""


class RewardStorage(ABC):
    """Persistence adapter consumed by the rewards engine."""

    # Feedback items
    @abstractmethod
    async def insert_feedback(self, item: FeedbackItem) -> FeedbackItem:
        """Persist a new feedback item and return it with its id."""

    @abstractmethod
    async def update_feedback_points(
        self,
        feedback_id: int,
        points: int
    ) -> None:
        """Record the total points credited for a feedback item."""

    @abstractmethod
    async def list_feedback(
        self,
        user_id: str,
        limit: Optional[int] = None
    ) -> List[FeedbackItem]:
        """Feedback items of a user, newest first."""

    # Ledger
    @abstractmethod
    async def get_activity_by_key(
        self,
        correlation_key: str
    ) -> Optional[ActivityRecord]:
        """Ledger entry for a correlation key, if any."""

    @abstractmethod
    async def record_award_atomic(
        self,
        record: ActivityRecord
    ) -> Tuple[ActivityRecord, bool]:
        """Insert the entry and increment the aggregate in one transaction.

        Returns:
            (record, created): ``created`` is False when the correlation
            key was already recorded, in which case nothing changed.
        """

    @abstractmethod
    async def record_award_legacy(
        self,
        user_id: str,
        activity_type: str,
        points: int,
        correlation_key: str,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Tuple[ActivityRecord, bool]:
        """Same guarantee as ``record_award_atomic``, positional convention."""

    @abstractmethod
    async def insert_activity(
        self,
        record: ActivityRecord
    ) -> Optional[ActivityRecord]:
        """Plain insert of a ledger entry. None if the key already exists."""

    @abstractmethod
    async def increment_points(
        self,
        user_id: str,
        delta: int
    ) -> UserRewardState:
        """Atomically add ``delta`` to the aggregate and refresh the level."""

    @abstractmethod
    async def sum_activity_points(self, user_id: str) -> int:
        """Sum of the ledger entries of a user."""

    @abstractmethod
    async def list_activity(
        self,
        user_id: str,
        limit: Optional[int] = None
    ) -> List[ActivityRecord]:
        """Ledger entries of a user, newest first."""

    # Aggregate
    @abstractmethod
    async def get_reward_state(
        self,
        user_id: str
    ) -> Optional[UserRewardState]:
        """Aggregate of a user, None if the user never earned points."""

    @abstractmethod
    async def overwrite_points(
        self,
        user_id: str,
        points: int,
        expected: Optional[int]
    ) -> bool:
        """Compare-and-set the aggregate total (and its level).

        ``expected`` is the total read before the write; None means no
        aggregate row existed. Returns False when another writer got there
        first.
        """

    @abstractmethod
    async def list_reward_users(self) -> List[str]:
        """Every user with a ledger entry or an aggregate row."""

    # Achievements
    @abstractmethod
    async def get_achievement_awards(
        self,
        user_id: str
    ) -> List[AchievementAward]:
        """Achievements earned by a user."""

    @abstractmethod
    async def insert_achievement_award(
        self,
        award: AchievementAward
    ) -> Tuple[AchievementAward, bool]:
        """Insert an award unless (user_id, achievement_id) exists.

        Returns:
            (award, created): the stored award, new or pre-existing.
        """
