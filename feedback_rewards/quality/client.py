"""HTTP client for the external feedback scoring service."""
from typing import Optional, Dict, Any
import asyncio
import aiohttp
from pydantic import BaseModel, Field, AliasChoices
from navconfig.logging import logging
from ..conf import (
    SCORING_SERVICE_URL,
    SCORING_SERVICE_TOKEN,
    SCORING_TIMEOUT
)
from ..exceptions import AnalysisError
from ..models import QualityMetrics


class ScoringResponse(BaseModel):
    """Scores returned by the scoring service.

    Accepts both the snake_case and the camelCase (``specificityScore``)
    spelling of each score.
    """
    specificity: float = Field(
        validation_alias=AliasChoices(
            'specificity', 'specificity_score', 'specificityScore'
        )
    )
    actionability: float = Field(
        validation_alias=AliasChoices(
            'actionability', 'actionability_score', 'actionabilityScore'
        )
    )
    novelty: float = Field(
        validation_alias=AliasChoices(
            'novelty', 'novelty_score', 'noveltyScore'
        )
    )
    sentiment: float = Field(
        default=0.0,
        validation_alias=AliasChoices(
            'sentiment', 'sentiment_score', 'sentimentScore'
        )
    )
    category: Optional[str] = None
    subcategory: Optional[str] = None

    model_config = {
        "extra": "ignore",
        "allow_inf_nan": False,
    }

    def to_metrics(self) -> QualityMetrics:
        """Metrics clamped to their documented ranges."""
        return QualityMetrics(
            specificity=self.specificity,
            actionability=self.actionability,
            novelty=self.novelty,
            sentiment=self.sentiment,
            category=self.category,
            subcategory=self.subcategory,
            source='service'
        ).clamped()


class ScoringClient:
    """Calls the scoring service over HTTP.

    Usage:
        client = ScoringClient(url="https://scoring.example.com/analyze")
        scores = await client.analyze("The save button should be bigger")
    """

    def __init__(
        self,
        url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = SCORING_TIMEOUT
    ):
        self.url = url or SCORING_SERVICE_URL
        self.token = token or SCORING_SERVICE_TOKEN
        self.timeout = timeout
        self.logger = logging.getLogger('Rewards.ScoringClient')

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def analyze(self, text: str) -> Dict[str, Any]:
        """Post the text to the scoring service and return its JSON body.

        Raises:
            AnalysisError: on transport errors, timeouts or non-200 replies.
        """
        if not self.url:
            raise AnalysisError("Scoring service URL is not configured")
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    self.url,
                    json={"content": text},
                    headers=self._headers()
                ) as response:
                    if response.status != 200:
                        body = await response.text()
                        raise AnalysisError(
                            f"Scoring service replied {response.status}: {body[:200]}"
                        )
                    return await response.json()
        except asyncio.TimeoutError as err:
            raise AnalysisError(
                f"Scoring service timed out after {self.timeout}s"
            ) from err
        except aiohttp.ClientError as err:
            raise AnalysisError(
                f"Scoring service connection error: {err}"
            ) from err
