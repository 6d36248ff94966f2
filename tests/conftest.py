import asyncio
import os
from pathlib import Path
from datetime import datetime
import pytest

# navconfig resolves env/.env relative to SITE_ROOT; point it at the project root.
os.environ.setdefault("SITE_ROOT", str(Path(__file__).resolve().parent.parent))

from feedback_rewards.models import FeedbackItem
from feedback_rewards.quality import QualityAnalyzer
from feedback_rewards.storage import MemoryRewardStorage
from feedback_rewards.ledger import RewardLedger
from feedback_rewards.feedback import FeedbackService


FIXED_NOW = datetime(2026, 3, 2, 10, 30)


def fixed_clock() -> datetime:
    return FIXED_NOW


def sample_text(words: int = 150, should: int = 2, positive=("good", "great", "helpful")):
    """Text with an exact token count: modal verbs, lexicon words, then filler."""
    tokens = ["should"] * should + list(positive)
    tokens += ["word"] * (words - len(tokens))
    return " ".join(tokens)


def scored_item(user_id, project_id, score=0.9):
    item = FeedbackItem(
        project_id=project_id,
        user_id=user_id,
        content=f"Feedback on {project_id}"
    )
    item.specificity_score = score
    item.actionability_score = score
    item.novelty_score = score
    item.sentiment = 0.0
    item.quality_score = score
    return item


class FakeScorer:
    """Scoring dependency double."""

    def __init__(self, response=None, error=None, delay=0.0):
        self.response = response if response is not None else {
            "specificity": 0.8,
            "actionability": 0.9,
            "novelty": 0.7,
            "sentiment": 0.5,
        }
        self.error = error
        self.delay = delay
        self.calls = []

    async def analyze(self, text):
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response


class FakeTimer:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def storage():
    return MemoryRewardStorage(clock=fixed_clock)


@pytest.fixture
def ledger(storage):
    return RewardLedger(storage, timeout=1)


@pytest.fixture
def service(storage):
    return FeedbackService(storage, analyzer=QualityAnalyzer(), timeout=1)
