"""
Ledger Models for the Feedback Rewards engine.

- ActivityRecord: append-only ledger entry, unique by correlation key.
- UserRewardState: per-user running total (the aggregate of the ledger).
- AchievementAward: unique per (user_id, achievement_id).

Correlation keys:
    - feedback:<feedback_id>:base
    - feedback:<feedback_id>:quality
    - achievement:<user_id>:<achievement_id>
"""
from typing import Optional, Dict, Any
from enum import Enum
from datetime import datetime
from datamodel import Field
from asyncdb.models import Model
from ..conf import REWARDS_SCHEMA
from ..points.levels import level_for, points_to_next_level


class ActivityType(str, Enum):
    """Activity types credited by the engine."""
    FEEDBACK_GIVEN = "feedback_given"
    FEEDBACK_QUALITY = "feedback_quality"
    ACHIEVEMENT_EARNED = "achievement_earned"


def feedback_base_key(feedback_id: Any) -> str:
    return f"feedback:{feedback_id}:base"


def feedback_quality_key(feedback_id: Any) -> str:
    return f"feedback:{feedback_id}:quality"


def achievement_key(user_id: Any, achievement_id: str) -> str:
    return f"achievement:{user_id}:{achievement_id}"


class ActivityRecord(Model):
    """
    Ledger entry: one credited (or debited) logical event.

    Attributes:
        activity_id: Primary key
        user_id: User credited
        activity_type: Kind of activity (see ActivityType)
        points: Signed amount
        correlation_key: Idempotency boundary, unique across the ledger
        description: Human readable description
        metadata: Event details (feedback id, achievement evidence...)
    """
    activity_id: int = Field(
        primary_key=True,
        required=False,
        db_default="auto",
        repr=False
    )
    user_id: str = Field(
        required=True,
        label="User"
    )
    activity_type: str = Field(
        required=True,
        label="Activity Type"
    )
    points: int = Field(
        required=True,
        default=0,
        label="Points"
    )
    correlation_key: str = Field(
        required=True,
        label="Correlation Key"
    )
    description: Optional[str] = Field(
        required=False,
        label="Description"
    )
    metadata: Dict[str, Any] = Field(
        required=False,
        default_factory=dict
    )
    created_at: datetime = Field(
        required=False,
        default=datetime.now,
        readonly=True
    )

    class Meta:
        driver = "pg"
        name = "activity_records"
        schema = REWARDS_SCHEMA
        endpoint: str = 'rewards/api/v1/activity'
        strict = True

    def __str__(self) -> str:
        return f"{self.correlation_key}: {self.points:+d} for {self.user_id}"


class UserRewardState(Model):
    """
    Running point total of a user.

    Only RewardLedger and ReconciliationJob write this record.
    """
    user_id: str = Field(
        primary_key=True,
        required=True,
        label="User"
    )
    points: int = Field(
        required=False,
        default=0,
        label="Points"
    )
    level: int = Field(
        required=False,
        default=1,
        label="Level"
    )
    points_to_next_level: int = Field(
        required=False,
        default=100,
        label="Points to next level"
    )
    updated_at: datetime = Field(
        required=False,
        default=datetime.now
    )

    class Meta:
        driver = "pg"
        name = "user_reward_state"
        schema = REWARDS_SCHEMA
        endpoint: str = 'rewards/api/v1/reward_state'
        strict = True

    @classmethod
    def for_total(
        cls,
        user_id: str,
        points: int,
        updated_at: Optional[datetime] = None
    ) -> 'UserRewardState':
        """Build a state whose level matches the given total."""
        level = level_for(points)
        return cls(
            user_id=user_id,
            points=points,
            level=level,
            points_to_next_level=points_to_next_level(level),
            updated_at=updated_at or datetime.now()
        )

    def level_is_consistent(self) -> bool:
        level = level_for(self.points)
        return (
            self.level == level
            and self.points_to_next_level == points_to_next_level(level)
        )


class AchievementAward(Model):
    """An achievement earned by a user. Never duplicated, never removed."""
    award_id: int = Field(
        primary_key=True,
        required=False,
        db_default="auto",
        repr=False
    )
    user_id: str = Field(
        required=True,
        label="User"
    )
    achievement_id: str = Field(
        required=True,
        label="Achievement"
    )
    achievement_name: Optional[str] = Field(
        required=False,
        label="Achievement Name"
    )
    earned_at: datetime = Field(
        required=False,
        default=datetime.now,
        readonly=True
    )
    metadata: Dict[str, Any] = Field(
        required=False,
        default_factory=dict
    )

    class Meta:
        driver = "pg"
        name = "achievement_awards"
        schema = REWARDS_SCHEMA
        endpoint: str = 'rewards/api/v1/achievement_awards'
        strict = True

    def __str__(self) -> str:
        return f"{self.achievement_name or self.achievement_id} ({self.user_id})"
