"""Persistence adapters for the Feedback Rewards engine."""
from .abstract import (
    RewardStorage,
    StorageError,
    StorageUnavailable,
    StorageRejected
)
from .memory import MemoryRewardStorage
from .pg import PgRewardStorage, schema_ddl

__all__ = (
    'RewardStorage',
    'StorageError',
    'StorageUnavailable',
    'StorageRejected',
    'MemoryRewardStorage',
    'PgRewardStorage',
    'schema_ddl',
)
