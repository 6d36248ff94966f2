"""
Feedback Submission Service.

Runs the submission pipeline:

    validate -> analyze -> persist feedback -> (background) credit base
    points -> credit quality bonus -> evaluate achievements

Only the feedback record decides the outcome of a submission. Reward
crediting and achievement evaluation are best-effort: their failures are
logged and returned as warnings, and the ReconciliationJob repairs the
aggregate afterwards.
"""
from typing import Optional, List, Dict, Any, Union, Set
from dataclasses import dataclass, field
import asyncio
from pydantic import ValidationError as PayloadError
from navconfig.logging import logging
from ..conf import PERSISTENCE_TIMEOUT
from ..exceptions import ValidationError
from ..models import (
    QualityMetrics,
    FeedbackItem,
    FeedbackSubmission,
    ActivityType,
    ActivityRecord,
    AchievementAward,
    UserRewardState,
    feedback_base_key,
    feedback_quality_key
)
from ..storage import RewardStorage, StorageError
from ..quality import QualityAnalyzer, suggestions
from ..points import PointsCalculator
from ..ledger import RewardLedger, AwardResult
from ..achievements import (
    AchievementEvaluator,
    AchievementDefinition,
    ACHIEVEMENT_CATALOG
)
from ..reconciliation import ReconciliationJob, ReconciliationResult


@dataclass
class RewardReport:
    """What the reward stage of one submission did."""
    feedback_id: Optional[int] = None
    base: Optional[AwardResult] = None
    quality: Optional[AwardResult] = None
    points_awarded: int = 0
    achievements: List[AchievementAward] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class SubmissionResult:
    """Result of a feedback submission."""
    success: bool
    feedback_id: Optional[int] = None
    points_awarded: Optional[int] = None
    quality_metrics: Optional[QualityMetrics] = None
    achievements: List[AchievementAward] = field(default_factory=list)
    message: str = ""
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'feedback_id': self.feedback_id,
            'points_awarded': self.points_awarded,
            'quality_metrics': (
                self.quality_metrics.as_dict() if self.quality_metrics else None
            ),
            'achievements': [
                {
                    'achievement_id': award.achievement_id,
                    'achievement_name': award.achievement_name,
                }
                for award in self.achievements
            ],
            'message': self.message,
            'error': self.error,
            'warnings': list(self.warnings),
        }


class FeedbackService:
    """
    Entry point of the rewards engine.

    Every collaborator is injected; the defaults build the full pipeline
    on top of ``storage``.

    Usage:
        service = FeedbackService(MemoryRewardStorage())
        result = await service.submit_feedback({
            'project_id': 'p-1',
            'user_id': 'u-1',
            'content': 'The save button should be larger',
        })
    """

    def __init__(
        self,
        storage: RewardStorage,
        analyzer: Optional[QualityAnalyzer] = None,
        calculator: Optional[PointsCalculator] = None,
        ledger: Optional[RewardLedger] = None,
        evaluator: Optional[AchievementEvaluator] = None,
        reconciler: Optional[ReconciliationJob] = None,
        timeout: float = PERSISTENCE_TIMEOUT,
        logger: Optional[logging.Logger] = None
    ):
        self.storage = storage
        self.analyzer = analyzer or QualityAnalyzer()
        self.calculator = calculator or PointsCalculator()
        self.ledger = ledger or RewardLedger(storage, timeout=timeout)
        self.evaluator = evaluator or AchievementEvaluator(storage, self.ledger)
        self.reconciler = reconciler or ReconciliationJob(storage)
        self.timeout = timeout
        self.logger = logger or logging.getLogger('Rewards.Feedback')
        self._pending: Set[asyncio.Task] = set()

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    @staticmethod
    def validate(
        submission: Union[FeedbackSubmission, Dict[str, Any]]
    ) -> FeedbackSubmission:
        """Parse a submission payload.

        Raises:
            ValidationError: missing references or empty content.
        """
        if isinstance(submission, FeedbackSubmission):
            payload = submission
        else:
            try:
                payload = FeedbackSubmission.model_validate(submission or {})
            except PayloadError as err:
                raise ValidationError(
                    "Invalid feedback payload",
                    errors=err.errors(
                        include_url=False,
                        include_context=False,
                        include_input=False
                    )
                ) from err
        if not payload.content or not payload.content.strip():
            raise ValidationError(
                "Feedback content cannot be empty", field='content'
            )
        return payload

    async def submit_feedback(
        self,
        submission: Union[FeedbackSubmission, Dict[str, Any]]
    ) -> SubmissionResult:
        """
        Score, store and reward a piece of feedback.

        Raises:
            ValidationError: before anything is stored.

        Returns:
            SubmissionResult: ``success`` is False only when the feedback
            record itself could not be stored, in which case no reward is
            recorded.
        """
        payload = self.validate(submission)
        metrics = await self.analyzer.analyze(payload.content)

        item = payload.to_item()
        item.attach_metrics(metrics)
        if not item.category:
            item.category = metrics.category
        try:
            item = await asyncio.wait_for(
                self.storage.insert_feedback(item),
                timeout=self.timeout
            )
        except (StorageError, asyncio.TimeoutError) as err:
            self.logger.error(
                f"Feedback of {payload.user_id} on {payload.project_id} "
                f"could not be saved: {err!r}"
            )
            return SubmissionResult(
                success=False,
                quality_metrics=metrics,
                message="Feedback could not be saved",
                error=str(err) or type(err).__name__
            )
        self.logger.info(f"Stored {item}")

        # survives caller cancellation once the feedback is stored
        task = asyncio.ensure_future(self.process_rewards(item, metrics))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        report = await asyncio.shield(task)

        return SubmissionResult(
            success=True,
            feedback_id=item.feedback_id,
            points_awarded=report.points_awarded,
            quality_metrics=metrics,
            achievements=report.achievements,
            message="Feedback submitted successfully",
            warnings=report.warnings
        )

    async def process_rewards(
        self,
        item: FeedbackItem,
        metrics: QualityMetrics
    ) -> RewardReport:
        """Credit a stored feedback item. Never raises."""
        report = RewardReport(feedback_id=item.feedback_id)
        try:
            await self._credit(item, metrics, report)
        except Exception as err:  # pylint: disable=W0703
            self.logger.exception(
                f"Reward processing failed for feedback {item.feedback_id}: {err}"
            )
            report.warnings.append(f"Reward processing failed: {err}")
        return report

    async def _credit(
        self,
        item: FeedbackItem,
        metrics: QualityMetrics,
        report: RewardReport
    ) -> None:
        user_id = item.user_id
        level_before = await self._level(user_id)
        metadata = {
            'feedback_id': item.feedback_id,
            'project_id': item.project_id,
        }

        report.base = await self.ledger.record_award(
            user_id,
            ActivityType.FEEDBACK_GIVEN,
            self.calculator.base_points,
            feedback_base_key(item.feedback_id),
            metadata=metadata,
            description="Submitted feedback"
        )
        self._collect(report, report.base)

        bonus = self.calculator.calculate(metrics)
        if bonus > 0:
            report.quality = await self.ledger.record_award(
                user_id,
                ActivityType.FEEDBACK_QUALITY,
                bonus,
                feedback_quality_key(item.feedback_id),
                metadata={
                    **metadata,
                    'quality_score': round(metrics.quality_score, 4),
                },
                description="High quality feedback bonus"
            )
            self._collect(report, report.quality)

        try:
            await self.storage.update_feedback_points(
                item.feedback_id, report.points_awarded
            )
            item.points_awarded = report.points_awarded
        except StorageError as err:
            self.logger.warning(
                f"Could not record points on feedback {item.feedback_id}: {err}"
            )
            report.warnings.append(str(err))

        try:
            report.achievements = await self.evaluator.evaluate(user_id)
        except StorageError as err:
            self.logger.warning(
                f"Achievement evaluation failed for {user_id}: {err}"
            )
            report.warnings.append(f"Achievement evaluation failed: {err}")

        level_after = await self._level(user_id)
        if level_before is not None and level_after is not None:
            if level_after > level_before:
                self.logger.info(f"User {user_id} reached level {level_after}")

    @staticmethod
    def _collect(report: RewardReport, result: AwardResult) -> None:
        if result.success and result.record is not None:
            report.points_awarded += result.record.points
        elif not result.success:
            report.warnings.append(result.message)

    async def _level(self, user_id: str) -> Optional[int]:
        try:
            state = await self.storage.get_reward_state(user_id)
        except StorageError:
            return None
        return state.level if state else 1

    async def drain(self) -> None:
        """Wait for reward processing still running in the background."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # =========================================================================
    # READ API
    # =========================================================================

    async def analyze_preview(self, content: str) -> Dict[str, Any]:
        """Score a text without storing anything."""
        if not content or not content.strip():
            raise ValidationError(
                "Feedback content cannot be empty", field='content'
            )
        metrics = await self.analyzer.analyze(content)
        return {
            'quality_metrics': metrics.as_dict(),
            'quality_points': self.calculator.calculate(metrics),
            'suggestions': suggestions(metrics),
        }

    async def get_reward_state(self, user_id: str) -> UserRewardState:
        return await self.ledger.get_state(user_id)

    async def get_activity(
        self,
        user_id: str,
        limit: int = 10
    ) -> List[ActivityRecord]:
        return await self.ledger.get_activity(user_id, limit=limit)

    async def get_achievements(self, user_id: str) -> List[AchievementAward]:
        return await self.storage.get_achievement_awards(user_id)

    def catalog(self) -> List[AchievementDefinition]:
        return list(self.evaluator.catalog or ACHIEVEMENT_CATALOG)

    async def reconcile(self, user_id: str) -> ReconciliationResult:
        return await self.reconciler.reconcile(user_id)
