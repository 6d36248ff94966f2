"""
PostgreSQL persistence adapter (asyncdb "pg" pool).

Tables and stored procedures live in ``sql/feedback_rewards.sql``, rendered
for the configured schema by ``schema_ddl``.
"""
from typing import Optional, List, Tuple, Dict, Any
from contextlib import asynccontextmanager
from pathlib import Path
import asyncio
import json
import re
from asyncdb import AsyncDB
from asyncdb.exceptions import DriverError, NoDataFound
from datamodel.exceptions import ValidationError
from navconfig.logging import logging
from ..conf import REWARDS_SCHEMA
from ..models import (
    FeedbackItem,
    ActivityRecord,
    UserRewardState,
    AchievementAward
)
from ..points.levels import level_for, points_to_next_level
from .abstract import RewardStorage, StorageUnavailable, StorageRejected


# SQLSTATE classes: 22 data exception, 23 integrity violation
REJECTED_SQLSTATES = ('22', '23')
UNDEFINED_FUNCTION = '42883'

ACTIVITY_COLUMNS = """
    activity_id, user_id, activity_type, points, correlation_key,
    description, metadata, created_at
"""

DDL_FILE = Path(__file__).parent / "sql" / "feedback_rewards.sql"
SCHEMA_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def schema_ddl(schema: str = REWARDS_SCHEMA) -> str:
    """DDL of the rewards tables and procedures, bound to ``schema``."""
    if not SCHEMA_NAME.match(schema or ''):
        raise ValueError(f"Invalid schema name: {schema!r}")
    return DDL_FILE.read_text(encoding='utf-8').replace('{schema}', schema)


def _sqlstate(err: BaseException) -> Optional[str]:
    while err is not None:
        state = getattr(err, 'sqlstate', None)
        if state:
            return state
        err = err.__cause__
    return None


def _as_metadata(value: Any) -> Dict[str, Any]:
    if not value:
        return {}
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)


def _activity(row: Any) -> ActivityRecord:
    data = dict(row)
    data.pop('created', None)
    data['metadata'] = _as_metadata(data.get('metadata'))
    return ActivityRecord(**data)


def _award(row: Any) -> AchievementAward:
    data = dict(row)
    data['metadata'] = _as_metadata(data.get('metadata'))
    return AchievementAward(**data)


class PgRewardStorage(RewardStorage):
    """
    Rewards storage over an asyncdb PostgreSQL pool.

    Usage:
        pool = AsyncDB('pg', dsn=REWARDS_DSN)
        await pool.connection()
        storage = PgRewardStorage(connection=pool)
    """

    def __init__(
        self,
        connection: AsyncDB = None,
        schema: str = REWARDS_SCHEMA,
        logger=None
    ):
        self.connection = connection
        self._schema = schema
        self.logger = logger or logging.getLogger('Rewards.Storage')

    async def set_connection(self, connection: AsyncDB):
        """Set the database connection."""
        self.connection = connection

    async def create_schema(self) -> None:
        """Create (or replace) the rewards tables and procedures."""
        ddl = schema_ddl(self._schema)
        async with self._acquire('create_schema') as conn:
            await conn.execute(ddl)
        self.logger.info(f"Rewards schema {self._schema} is ready")

    @asynccontextmanager
    async def _acquire(self, operation: str):
        """Acquire a connection, translating driver failures."""
        if self.connection is None:
            raise StorageUnavailable(
                f"{operation}: no database connection", operation=operation
            )
        try:
            async with await self.connection.acquire() as conn:
                yield conn
        except (StorageUnavailable, StorageRejected):
            raise
        except (ValidationError, ValueError, TypeError) as err:
            raise StorageRejected(
                f"{operation}: invalid payload: {err}", operation=operation
            ) from err
        except (asyncio.TimeoutError, OSError) as err:
            raise StorageUnavailable(
                f"{operation}: {err}", operation=operation
            ) from err
        except DriverError as err:
            raise self._translate(operation, err) from err
        except Exception as err:  # pylint: disable=W0703
            raise self._translate(operation, err) from err

    def _translate(self, operation: str, err: Exception) -> Exception:
        state = _sqlstate(err) or ''
        if state[:2] in REJECTED_SQLSTATES:
            return StorageRejected(
                f"{operation}: {err}", operation=operation, sqlstate=state
            )
        if state == UNDEFINED_FUNCTION:
            self.logger.warning(f"{operation}: stored procedure missing")
        return StorageUnavailable(
            f"{operation}: {err}", operation=operation, sqlstate=state
        )

    @staticmethod
    async def _one(conn, query: str, *args):
        try:
            return await conn.fetch_one(query, *args)
        except NoDataFound:
            return None

    @staticmethod
    async def _all(conn, query: str, *args) -> list:
        try:
            return await conn.fetch_all(query, *args) or []
        except NoDataFound:
            return []

    # =========================================================================
    # FEEDBACK ITEMS
    # =========================================================================

    async def insert_feedback(self, item: FeedbackItem) -> FeedbackItem:
        query = f"""
            INSERT INTO {self._schema}.feedback_items (
                project_id, user_id, content, category, subcategory,
                section_id, section_name, section_type,
                specificity_score, actionability_score, novelty_score,
                sentiment, quality_score, points_awarded
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
            RETURNING feedback_id, created_at
        """
        async with self._acquire('insert_feedback') as conn:
            row = await self._one(
                conn, query,
                item.project_id, item.user_id, item.content,
                item.category, item.subcategory,
                item.section_id, item.section_name, item.section_type,
                item.specificity_score, item.actionability_score,
                item.novelty_score, item.sentiment, item.quality_score,
                item.points_awarded or 0
            )
        if not row:
            raise StorageUnavailable("insert_feedback: no row returned")
        item.feedback_id = row['feedback_id']
        item.created_at = row['created_at']
        return item

    async def update_feedback_points(self, feedback_id: int, points: int) -> None:
        query = f"""
            UPDATE {self._schema}.feedback_items
            SET points_awarded = $2, updated_at = NOW()
            WHERE feedback_id = $1
        """
        async with self._acquire('update_feedback_points') as conn:
            await conn.execute(query, feedback_id, points)

    async def list_feedback(
        self,
        user_id: str,
        limit: Optional[int] = None
    ) -> List[FeedbackItem]:
        query = f"""
            SELECT * FROM {self._schema}.feedback_items
            WHERE user_id = $1
            ORDER BY created_at DESC, feedback_id DESC
        """
        if limit:
            query += f" LIMIT {int(limit)}"
        async with self._acquire('list_feedback') as conn:
            rows = await self._all(conn, query, user_id)
        return [FeedbackItem(**dict(row)) for row in rows]

    # =========================================================================
    # LEDGER
    # =========================================================================

    async def get_activity_by_key(
        self,
        correlation_key: str
    ) -> Optional[ActivityRecord]:
        query = f"""
            SELECT {ACTIVITY_COLUMNS} FROM {self._schema}.activity_records
            WHERE correlation_key = $1
        """
        async with self._acquire('get_activity_by_key') as conn:
            row = await self._one(conn, query, correlation_key)
        return _activity(row) if row else None

    async def record_award_atomic(
        self,
        record: ActivityRecord
    ) -> Tuple[ActivityRecord, bool]:
        payload = {
            "user_id": record.user_id,
            "activity_type": record.activity_type,
            "points": record.points,
            "correlation_key": record.correlation_key,
            "description": record.description,
            "metadata": record.metadata or {},
        }
        query = f"SELECT * FROM {self._schema}.record_award_v2($1::jsonb)"
        async with self._acquire('record_award_atomic') as conn:
            row = await self._one(conn, query, json.dumps(payload, default=str))
        if not row:
            raise StorageUnavailable("record_award_v2 returned no row")
        return _activity(row), bool(row['created'])

    async def record_award_legacy(
        self,
        user_id: str,
        activity_type: str,
        points: int,
        correlation_key: str,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Tuple[ActivityRecord, bool]:
        query = f"""
            SELECT * FROM {self._schema}.record_award(
                $1, $2, $3, $4, $5, $6::jsonb
            )
        """
        async with self._acquire('record_award_legacy') as conn:
            row = await self._one(
                conn, query,
                user_id, activity_type, points, correlation_key,
                description, json.dumps(metadata or {}, default=str)
            )
        if not row:
            raise StorageUnavailable("record_award returned no row")
        return _activity(row), bool(row['created'])

    async def insert_activity(
        self,
        record: ActivityRecord
    ) -> Optional[ActivityRecord]:
        query = f"""
            INSERT INTO {self._schema}.activity_records (
                user_id, activity_type, points, correlation_key,
                description, metadata
            ) VALUES ($1, $2, $3, $4, $5, $6::jsonb)
            ON CONFLICT (correlation_key) DO NOTHING
            RETURNING {ACTIVITY_COLUMNS}
        """
        async with self._acquire('insert_activity') as conn:
            row = await self._one(
                conn, query,
                record.user_id, record.activity_type, record.points,
                record.correlation_key, record.description,
                json.dumps(record.metadata or {}, default=str)
            )
        return _activity(row) if row else None

    async def increment_points(self, user_id: str, delta: int) -> UserRewardState:
        # level_for and points_to_next_level are SQL functions from the DDL
        query = f"""
            INSERT INTO {self._schema}.user_reward_state AS s (
                user_id, points, level, points_to_next_level, updated_at
            ) VALUES (
                $1, $2,
                {self._schema}.level_for($2),
                {self._schema}.points_to_next_level({self._schema}.level_for($2)),
                NOW()
            )
            ON CONFLICT (user_id) DO UPDATE SET
                points = s.points + EXCLUDED.points,
                level = {self._schema}.level_for(s.points + EXCLUDED.points),
                points_to_next_level = {self._schema}.points_to_next_level(
                    {self._schema}.level_for(s.points + EXCLUDED.points)
                ),
                updated_at = NOW()
            RETURNING user_id, points, level, points_to_next_level, updated_at
        """
        async with self._acquire('increment_points') as conn:
            row = await self._one(conn, query, user_id, delta)
        if not row:
            raise StorageUnavailable("increment_points returned no row")
        return UserRewardState(**dict(row))

    async def sum_activity_points(self, user_id: str) -> int:
        query = f"""
            SELECT COALESCE(SUM(points), 0) AS total
            FROM {self._schema}.activity_records
            WHERE user_id = $1
        """
        async with self._acquire('sum_activity_points') as conn:
            row = await self._one(conn, query, user_id)
        return int(row['total']) if row else 0

    async def list_activity(
        self,
        user_id: str,
        limit: Optional[int] = None
    ) -> List[ActivityRecord]:
        query = f"""
            SELECT {ACTIVITY_COLUMNS} FROM {self._schema}.activity_records
            WHERE user_id = $1
            ORDER BY created_at DESC, activity_id DESC
        """
        if limit:
            query += f" LIMIT {int(limit)}"
        async with self._acquire('list_activity') as conn:
            rows = await self._all(conn, query, user_id)
        return [_activity(row) for row in rows]

    # =========================================================================
    # AGGREGATE
    # =========================================================================

    async def get_reward_state(self, user_id: str) -> Optional[UserRewardState]:
        query = f"""
            SELECT user_id, points, level, points_to_next_level, updated_at
            FROM {self._schema}.user_reward_state
            WHERE user_id = $1
        """
        async with self._acquire('get_reward_state') as conn:
            row = await self._one(conn, query, user_id)
        return UserRewardState(**dict(row)) if row else None

    async def overwrite_points(
        self,
        user_id: str,
        points: int,
        expected: Optional[int]
    ) -> bool:
        level = level_for(points)
        target = points_to_next_level(level)
        if expected is None:
            query = f"""
                INSERT INTO {self._schema}.user_reward_state (
                    user_id, points, level, points_to_next_level, updated_at
                ) VALUES ($1, $2, $3, $4, NOW())
                ON CONFLICT (user_id) DO NOTHING
                RETURNING user_id
            """
            args = (user_id, points, level, target)
        else:
            query = f"""
                UPDATE {self._schema}.user_reward_state
                SET points = $2, level = $3, points_to_next_level = $4,
                    updated_at = NOW()
                WHERE user_id = $1 AND points = $5
                RETURNING user_id
            """
            args = (user_id, points, level, target, expected)
        async with self._acquire('overwrite_points') as conn:
            row = await self._one(conn, query, *args)
        return bool(row)

    async def list_reward_users(self) -> List[str]:
        query = f"""
            SELECT user_id FROM {self._schema}.activity_records
            UNION
            SELECT user_id FROM {self._schema}.user_reward_state
            ORDER BY user_id
        """
        async with self._acquire('list_reward_users') as conn:
            rows = await self._all(conn, query)
        return [row['user_id'] for row in rows]

    # =========================================================================
    # ACHIEVEMENTS
    # =========================================================================

    async def get_achievement_awards(self, user_id: str) -> List[AchievementAward]:
        query = f"""
            SELECT * FROM {self._schema}.achievement_awards
            WHERE user_id = $1
            ORDER BY earned_at
        """
        async with self._acquire('get_achievement_awards') as conn:
            rows = await self._all(conn, query, user_id)
        return [_award(row) for row in rows]

    async def insert_achievement_award(
        self,
        award: AchievementAward
    ) -> Tuple[AchievementAward, bool]:
        insert = f"""
            INSERT INTO {self._schema}.achievement_awards (
                user_id, achievement_id, achievement_name, metadata
            ) VALUES ($1, $2, $3, $4::jsonb)
            ON CONFLICT (user_id, achievement_id) DO NOTHING
            RETURNING *
        """
        select = f"""
            SELECT * FROM {self._schema}.achievement_awards
            WHERE user_id = $1 AND achievement_id = $2
        """
        async with self._acquire('insert_achievement_award') as conn:
            row = await self._one(
                conn, insert,
                award.user_id, award.achievement_id, award.achievement_name,
                json.dumps(award.metadata or {}, default=str)
            )
            if row:
                return _award(row), True
            existing = await self._one(
                conn, select, award.user_id, award.achievement_id
            )
        if not existing:
            raise StorageUnavailable(
                "insert_achievement_award: award vanished after conflict"
            )
        return _award(existing), False
