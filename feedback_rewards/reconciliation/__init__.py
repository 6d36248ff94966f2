"""Ledger to aggregate reconciliation."""
from .job import (
    ReconciliationJob,
    ReconciliationResult,
    reconciliation_job,
    register_reconciliation_jobs
)

__all__ = (
    'ReconciliationJob',
    'ReconciliationResult',
    'reconciliation_job',
    'register_reconciliation_jobs',
)
