"""
Achievement catalog.

A closed set of rule variants, each a pure predicate over the feedback
history of one user (newest first). New achievements are added here as
definitions, the evaluator never branches on achievement ids.
"""
from typing import Optional, Sequence, Dict, Any, Tuple
from dataclasses import dataclass, field
from ..conf import QUALITY_REVIEWER_WINDOW
from ..models import FeedbackItem


@dataclass(frozen=True)
class RuleEvaluation:
    satisfied: bool
    evidence: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DistinctProjectsRule:
    """Feedback given on at least ``threshold`` distinct projects."""
    threshold: int = 10
    kind: str = field(default='distinct_projects', init=False)

    def evaluate(self, history: Sequence[FeedbackItem]) -> RuleEvaluation:
        projects = {item.project_id for item in history if item.project_id}
        return RuleEvaluation(
            satisfied=len(projects) >= self.threshold,
            evidence={
                'distinct_projects': len(projects),
                'threshold': self.threshold,
            }
        )


@dataclass(frozen=True)
class FeedbackCountRule:
    """At least ``threshold`` feedback items, optionally of one ``category``."""
    threshold: int = 1
    category: Optional[str] = None
    kind: str = field(default='feedback_count', init=False)

    def evaluate(self, history: Sequence[FeedbackItem]) -> RuleEvaluation:
        count = sum(
            1 for item in history
            if self.category is None or item.category == self.category
        )
        evidence = {'feedback_count': count, 'threshold': self.threshold}
        if self.category is not None:
            evidence['category'] = self.category
        return RuleEvaluation(satisfied=count >= self.threshold, evidence=evidence)


@dataclass(frozen=True)
class AverageQualityRule:
    """
    Mean quality of the most recent scored items reaches ``threshold``.

    Only items carrying all three scores count; at most ``window`` of
    them are averaged and fewer than ``min_items`` never satisfy the rule.
    """
    threshold: float = 0.8
    min_items: int = 5
    window: int = QUALITY_REVIEWER_WINDOW
    kind: str = field(default='average_quality', init=False)

    def evaluate(self, history: Sequence[FeedbackItem]) -> RuleEvaluation:
        scores = [
            item.average_quality() for item in history
            if item.has_quality_scores()
        ][:self.window]
        if len(scores) < self.min_items:
            return RuleEvaluation(
                satisfied=False,
                evidence={'scored_items': len(scores), 'min_items': self.min_items}
            )
        mean = sum(scores) / len(scores)
        return RuleEvaluation(
            # float noise, same as the points threshold
            satisfied=round(mean, 9) >= self.threshold,
            evidence={
                'scored_items': len(scores),
                'average_quality': round(mean, 4),
                'threshold': self.threshold,
            }
        )


@dataclass(frozen=True)
class AchievementDefinition:
    """Static achievement: stable id, reward and the rule unlocking it."""
    achievement_id: str
    name: str
    description: str
    points_reward: int
    rule: Any
    icon: str = 'award'

    def evaluate(self, history: Sequence[FeedbackItem]) -> RuleEvaluation:
        return self.rule.evaluate(history)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'achievement_id': self.achievement_id,
            'name': self.name,
            'description': self.description,
            'icon': self.icon,
            'points_reward': self.points_reward,
            'rule': self.rule.kind,
        }


FEEDBACK_CHAMPION = AchievementDefinition(
    achievement_id='feedback_champion',
    name='Feedback Champion',
    description='Give feedback to 10 different projects',
    points_reward=200,
    rule=DistinctProjectsRule(threshold=10),
    icon='trophy'
)

QUALITY_REVIEWER = AchievementDefinition(
    achievement_id='quality_reviewer',
    name='Quality Reviewer',
    description='Achieve an average feedback quality score of 0.8+',
    points_reward=150,
    rule=AverageQualityRule(threshold=0.8, min_items=5),
    icon='award'
)

ACHIEVEMENT_CATALOG: Tuple[AchievementDefinition, ...] = (
    FEEDBACK_CHAMPION,
    QUALITY_REVIEWER,
)


def get_achievement(achievement_id: str) -> Optional[AchievementDefinition]:
    for definition in ACHIEVEMENT_CATALOG:
        if definition.achievement_id == achievement_id:
            return definition
    return None
