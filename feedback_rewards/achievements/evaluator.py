"""Achievement evaluation over the feedback history of a user."""
from typing import Optional, List, Sequence, Dict
from navconfig.logging import logging
from ..models import (
    AchievementAward,
    ActivityType,
    achievement_key
)
from ..storage import RewardStorage, StorageError
from ..ledger import RewardLedger
from .catalog import (
    ACHIEVEMENT_CATALOG,
    AchievementDefinition,
    RuleEvaluation
)


class AchievementEvaluator:
    """
    Checks every catalog rule for a user and grants what is newly earned.

    An award is unique per (user, achievement) in the store, and its
    points go through the ledger under ``achievement:<user>:<id>``, so
    concurrent or repeated evaluations never grant or credit twice.
    """

    def __init__(
        self,
        storage: RewardStorage,
        ledger: RewardLedger,
        catalog: Sequence[AchievementDefinition] = ACHIEVEMENT_CATALOG,
        logger: Optional[logging.Logger] = None
    ):
        self.storage = storage
        self.ledger = ledger
        self.catalog = tuple(catalog)
        self.logger = logger or logging.getLogger('Rewards.Achievements')

    async def evaluate(self, user_id: str) -> List[AchievementAward]:
        """Newly earned achievements of ``user_id`` (empty when none)."""
        history = await self.storage.list_feedback(user_id)
        earned: Dict[str, AchievementAward] = {
            award.achievement_id: award
            for award in await self.storage.get_achievement_awards(user_id)
        }
        new_awards = []
        for definition in self.catalog:
            result = definition.evaluate(history)
            if not result.satisfied:
                continue
            try:
                award = await self._grant(
                    user_id, definition, result, earned.get(definition.achievement_id)
                )
            except StorageError as err:
                self.logger.error(
                    f"Could not grant {definition.name} to {user_id}: {err}"
                )
                continue
            if award is not None:
                new_awards.append(award)
        return new_awards

    async def _grant(
        self,
        user_id: str,
        definition: AchievementDefinition,
        result: RuleEvaluation,
        award: Optional[AchievementAward]
    ) -> Optional[AchievementAward]:
        """Create the award if missing and make sure its points are credited.

        Returns the award only when this call created it.
        """
        key = achievement_key(user_id, definition.achievement_id)
        created = False
        if award is None:
            award, created = await self.storage.insert_achievement_award(
                AchievementAward(
                    user_id=user_id,
                    achievement_id=definition.achievement_id,
                    achievement_name=definition.name,
                    metadata=dict(result.evidence)
                )
            )
        if created:
            self.logger.info(f"User {user_id} earned {definition.name}")
        elif await self.ledger.find(key) is not None:
            return None

        credit = await self.ledger.record_award(
            user_id,
            ActivityType.ACHIEVEMENT_EARNED,
            definition.points_reward,
            key,
            metadata={
                'achievement_id': definition.achievement_id,
                'achievement_name': definition.name,
                'description': definition.description,
                **result.evidence,
            },
            description=f"Earned {definition.name} achievement"
        )
        if not credit.success:
            self.logger.warning(
                f"{definition.name} granted to {user_id} but its points were "
                f"not credited: {credit.message}"
            )
        return award if created else None
