"""
In-memory persistence adapter.

Used by tests and local runs. Honors the same uniqueness rules as the
PostgreSQL schema and supports failure injection per operation:

    storage = MemoryRewardStorage()
    storage.fail('record_award_atomic', StorageUnavailable('down'))
"""
from typing import Optional, List, Tuple, Dict, Any, Callable
import asyncio
import itertools
from datetime import datetime
from ..models import (
    FeedbackItem,
    ActivityRecord,
    UserRewardState,
    AchievementAward
)
from .abstract import RewardStorage


class MemoryRewardStorage(RewardStorage):
    """Dictionary backed storage with per-operation failure injection."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self.clock = clock
        self.feedback: Dict[int, FeedbackItem] = {}
        self.activity: Dict[str, ActivityRecord] = {}
        self.states: Dict[str, UserRewardState] = {}
        self.awards: Dict[Tuple[str, str], AchievementAward] = {}
        self.failures: Dict[str, Exception] = {}
        self.calls: List[str] = []
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    def fail(self, operation: str, error: Exception) -> None:
        """Make every call to ``operation`` raise ``error``."""
        self.failures[operation] = error

    def recover(self, operation: Optional[str] = None) -> None:
        if operation is None:
            self.failures.clear()
        else:
            self.failures.pop(operation, None)

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        error = self.failures.get(operation)
        if error is not None:
            raise error

    def set_points(self, user_id: str, points: int) -> None:
        """Force the aggregate total, bypassing the ledger."""
        self.states[user_id] = UserRewardState.for_total(
            user_id, points, self.clock()
        )

    # Feedback items
    async def insert_feedback(self, item: FeedbackItem) -> FeedbackItem:
        self._enter('insert_feedback')
        async with self._lock:
            item.feedback_id = next(self._ids)
            item.created_at = self.clock()
            self.feedback[item.feedback_id] = item
            return item

    async def update_feedback_points(self, feedback_id: int, points: int) -> None:
        self._enter('update_feedback_points')
        item = self.feedback.get(feedback_id)
        if item is not None:
            item.points_awarded = points
            item.updated_at = self.clock()

    async def list_feedback(
        self,
        user_id: str,
        limit: Optional[int] = None
    ) -> List[FeedbackItem]:
        self._enter('list_feedback')
        items = [
            item for item in self.feedback.values() if item.user_id == user_id
        ]
        items.sort(key=lambda item: item.feedback_id, reverse=True)
        return items[:limit] if limit else items

    # Ledger
    async def get_activity_by_key(
        self,
        correlation_key: str
    ) -> Optional[ActivityRecord]:
        self._enter('get_activity_by_key')
        return self.activity.get(correlation_key)

    def _append(self, record: ActivityRecord) -> Optional[ActivityRecord]:
        if record.correlation_key in self.activity:
            return None
        record.activity_id = next(self._ids)
        record.created_at = self.clock()
        self.activity[record.correlation_key] = record
        return record

    def _increment(self, user_id: str, delta: int) -> UserRewardState:
        current = self.states.get(user_id)
        total = (current.points if current else 0) + delta
        state = UserRewardState.for_total(user_id, total, self.clock())
        self.states[user_id] = state
        return state

    async def record_award_atomic(
        self,
        record: ActivityRecord
    ) -> Tuple[ActivityRecord, bool]:
        self._enter('record_award_atomic')
        async with self._lock:
            created = self._append(record)
            if created is None:
                return self.activity[record.correlation_key], False
            self._increment(record.user_id, record.points)
            return created, True

    async def record_award_legacy(
        self,
        user_id: str,
        activity_type: str,
        points: int,
        correlation_key: str,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Tuple[ActivityRecord, bool]:
        self._enter('record_award_legacy')
        record = ActivityRecord(
            user_id=user_id,
            activity_type=activity_type,
            points=points,
            correlation_key=correlation_key,
            description=description,
            metadata=metadata or {}
        )
        async with self._lock:
            created = self._append(record)
            if created is None:
                return self.activity[correlation_key], False
            self._increment(user_id, points)
            return created, True

    async def insert_activity(
        self,
        record: ActivityRecord
    ) -> Optional[ActivityRecord]:
        self._enter('insert_activity')
        async with self._lock:
            return self._append(record)

    async def increment_points(self, user_id: str, delta: int) -> UserRewardState:
        self._enter('increment_points')
        async with self._lock:
            return self._increment(user_id, delta)

    async def sum_activity_points(self, user_id: str) -> int:
        self._enter('sum_activity_points')
        return sum(
            record.points for record in self.activity.values()
            if record.user_id == user_id
        )

    async def list_activity(
        self,
        user_id: str,
        limit: Optional[int] = None
    ) -> List[ActivityRecord]:
        self._enter('list_activity')
        records = [
            record for record in reversed(list(self.activity.values()))
            if record.user_id == user_id
        ]
        return records[:limit] if limit else records

    # Aggregate
    async def get_reward_state(self, user_id: str) -> Optional[UserRewardState]:
        self._enter('get_reward_state')
        return self.states.get(user_id)

    async def overwrite_points(
        self,
        user_id: str,
        points: int,
        expected: Optional[int]
    ) -> bool:
        self._enter('overwrite_points')
        async with self._lock:
            current = self.states.get(user_id)
            if (current.points if current else None) != expected:
                return False
            self.states[user_id] = UserRewardState.for_total(
                user_id, points, self.clock()
            )
            return True

    async def list_reward_users(self) -> List[str]:
        self._enter('list_reward_users')
        users = {record.user_id for record in self.activity.values()}
        users.update(self.states)
        return sorted(users)

    # Achievements
    async def get_achievement_awards(self, user_id: str) -> List[AchievementAward]:
        self._enter('get_achievement_awards')
        return [
            award for (owner, _), award in self.awards.items()
            if owner == user_id
        ]

    async def insert_achievement_award(
        self,
        award: AchievementAward
    ) -> Tuple[AchievementAward, bool]:
        self._enter('insert_achievement_award')
        key = (award.user_id, award.achievement_id)
        async with self._lock:
            existing = self.awards.get(key)
            if existing is not None:
                return existing, False
            award.award_id = next(self._ids)
            award.earned_at = self.clock()
            self.awards[key] = award
            return award, True
