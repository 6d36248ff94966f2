"""
Feedback Models for the Feedback Rewards engine.

- FeedbackItem: a persisted piece of submitted feedback, with the derived
  quality fields attached after analysis.
- QualityMetrics: the four quality scores of a text, never persisted on
  its own.
- FeedbackSubmission: the inbound API payload.
"""
from typing import Optional
from datetime import datetime
import math
from datamodel import BaseModel, Field
from asyncdb.models import Model
from pydantic import BaseModel as PayloadModel
from pydantic import Field as PayloadField, field_validator
from ..conf import REWARDS_SCHEMA


def _clamp(value: float, low: float, high: float) -> float:
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"score must be a finite number, got {value}")
    return max(low, min(high, value))


class QualityMetrics(BaseModel):
    """
    Quality scores of a feedback text.

    Attributes:
        specificity: How precise and detailed the feedback is, in [0, 1].
        actionability: How easily the feedback can be acted upon, in [0, 1].
        novelty: How much new insight the feedback carries, in [0, 1].
        sentiment: Overall tone, from -1 (negative) to 1 (positive).
        category: Detected feedback category.
        subcategory: Detected feedback subcategory.
        source: Who produced the scores ('service', 'local' or 'default').
    """
    specificity: float = Field(required=True)
    actionability: float = Field(required=True)
    novelty: float = Field(required=True)
    sentiment: float = Field(required=False, default=0.0)
    category: Optional[str] = Field(required=False)
    subcategory: Optional[str] = Field(required=False)
    source: str = Field(required=False, default='local')

    @property
    def quality_score(self) -> float:
        """Mean of specificity, actionability and novelty."""
        return (self.specificity + self.actionability + self.novelty) / 3

    @classmethod
    def neutral(cls) -> 'QualityMetrics':
        """Default metrics used when no analysis path produced a result."""
        return cls(
            specificity=0.5,
            actionability=0.5,
            novelty=0.5,
            sentiment=0.0,
            source='default'
        )

    def clamped(self) -> 'QualityMetrics':
        """Return a copy with every score forced into its documented range."""
        return QualityMetrics(
            specificity=_clamp(self.specificity, 0.0, 1.0),
            actionability=_clamp(self.actionability, 0.0, 1.0),
            novelty=_clamp(self.novelty, 0.0, 1.0),
            sentiment=_clamp(self.sentiment, -1.0, 1.0),
            category=self.category,
            subcategory=self.subcategory,
            source=self.source
        )

    def as_dict(self) -> dict:
        return {
            'specificity': self.specificity,
            'actionability': self.actionability,
            'novelty': self.novelty,
            'sentiment': self.sentiment,
            'quality_score': round(self.quality_score, 4),
            'category': self.category,
            'subcategory': self.subcategory,
            'source': self.source,
        }


class FeedbackItem(Model):
    """
    Feedback submitted by a user on a project.

    Created once on submission. Only the derived score fields and
    ``points_awarded`` change afterwards.
    """
    feedback_id: int = Field(
        primary_key=True,
        required=False,
        db_default="auto",
        repr=False
    )
    project_id: str = Field(
        required=True,
        label="Project"
    )
    user_id: str = Field(
        required=True,
        label="Author"
    )
    content: str = Field(
        required=True,
        ui_widget='textarea',
        label="Feedback"
    )
    category: Optional[str] = Field(
        required=False,
        label="Category"
    )
    subcategory: Optional[str] = Field(
        required=False,
        label="Subcategory"
    )

    # Section of the project the feedback points at
    section_id: Optional[str] = Field(required=False)
    section_name: Optional[str] = Field(required=False)
    section_type: Optional[str] = Field(required=False)

    # Derived quality fields
    specificity_score: Optional[float] = Field(required=False)
    actionability_score: Optional[float] = Field(required=False)
    novelty_score: Optional[float] = Field(required=False)
    sentiment: Optional[float] = Field(required=False)
    quality_score: Optional[float] = Field(required=False)
    points_awarded: int = Field(
        required=False,
        default=0,
        label="Points Awarded"
    )

    created_at: datetime = Field(
        required=False,
        default=datetime.now,
        readonly=True
    )
    updated_at: Optional[datetime] = Field(required=False)

    class Meta:
        driver = "pg"
        name = "feedback_items"
        schema = REWARDS_SCHEMA
        endpoint: str = 'rewards/api/v1/feedback'
        strict = True

    def attach_metrics(self, metrics: QualityMetrics) -> None:
        """Copy the derived quality fields of an analysis onto the item."""
        self.specificity_score = metrics.specificity
        self.actionability_score = metrics.actionability
        self.novelty_score = metrics.novelty
        self.sentiment = metrics.sentiment
        self.quality_score = metrics.quality_score
        if not self.subcategory and metrics.subcategory:
            self.subcategory = metrics.subcategory

    def has_quality_scores(self) -> bool:
        return all(
            score is not None for score in (
                self.specificity_score,
                self.actionability_score,
                self.novelty_score
            )
        )

    def average_quality(self) -> Optional[float]:
        if not self.has_quality_scores():
            return None
        return (
            self.specificity_score
            + self.actionability_score
            + self.novelty_score
        ) / 3

    def __str__(self) -> str:
        return f"Feedback #{self.feedback_id}: {self.project_id} by {self.user_id}"


class FeedbackSubmission(PayloadModel):
    """Feedback payload received from the UI layer."""

    project_id: str = PayloadField(..., description="Project receiving feedback")
    user_id: str = PayloadField(..., description="Author of the feedback")
    content: str = PayloadField(
        default='',
        max_length=10000,
        description="Free-text feedback"
    )
    category: Optional[str] = PayloadField(default=None, max_length=100)
    subcategory: Optional[str] = PayloadField(default=None, max_length=100)
    section_id: Optional[str] = None
    section_name: Optional[str] = None
    section_type: Optional[str] = None

    model_config = {
        "str_strip_whitespace": True,
    }

    @field_validator('project_id', 'user_id')
    @classmethod
    def validate_reference(cls, v: str) -> str:
        if not v:
            raise ValueError('must not be empty')
        return v

    def to_item(self) -> FeedbackItem:
        return FeedbackItem(
            project_id=self.project_id,
            user_id=self.user_id,
            content=self.content,
            category=self.category,
            subcategory=self.subcategory,
            section_id=self.section_id,
            section_name=self.section_name,
            section_type=self.section_type
        )
