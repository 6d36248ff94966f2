"""Reward ledger and its persistence tiers."""
from .tiers import (
    TierStatus,
    TierOutcome,
    AwardRequest,
    AwardTier,
    CombinedProcedureTier,
    LegacyProcedureTier,
    TwoStepInsertTier,
    default_tiers
)
from .service import RewardLedger, AwardResult

__all__ = (
    'TierStatus',
    'TierOutcome',
    'AwardRequest',
    'AwardTier',
    'CombinedProcedureTier',
    'LegacyProcedureTier',
    'TwoStepInsertTier',
    'default_tiers',
    'RewardLedger',
    'AwardResult',
)
