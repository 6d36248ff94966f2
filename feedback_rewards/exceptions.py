"""Exceptions raised by the Feedback Rewards engine."""
from typing import Any, List, Optional


class RewardsError(Exception):
    """Base class for all Feedback Rewards errors."""

    def __init__(self, message: str = '', **kwargs):
        super().__init__(message)
        self.message = message
        self.payload = kwargs


class ValidationError(RewardsError, ValueError):
    """Invalid feedback content or award payload.

    Raised before any persistence attempt.
    """


class AnalysisError(RewardsError):
    """The quality scoring service failed, timed out or was unreachable.

    Always recovered by the local heuristic, never surfaced to the caller.
    """


class PersistenceError(RewardsError):
    """Every persistence tier failed (or a tier rejected the payload)."""

    def __init__(
        self,
        message: str = '',
        attempts: Optional[List[Any]] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.attempts = attempts or []


class IdempotencyConflict(RewardsError):
    """A record with the same correlation key already exists.

    Treated as a successful no-op by the ledger.
    """

    def __init__(self, correlation_key: str, existing: Any = None):
        super().__init__(
            f"Correlation key already recorded: {correlation_key}"
        )
        self.correlation_key = correlation_key
        self.existing = existing
