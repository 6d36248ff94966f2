"""
Quality Analyzer.

Scores a feedback text. Tries the external scoring service first (bounded
by a timeout) and falls back to the local heuristic; ``analyze`` never
raises.
"""
from typing import Optional, Callable, Dict, Tuple, Any
import asyncio
import hashlib
import time
from pydantic import ValidationError as PayloadError
from navconfig.logging import logging
from ..conf import SCORING_TIMEOUT, ANALYSIS_CACHE_TTL
from ..exceptions import AnalysisError
from ..models import QualityMetrics
from .client import ScoringResponse
from .heuristics import analyze_locally


class QualityAnalyzer:
    """
    Text quality analyzer.

    Args:
        client: scoring dependency, any object with an awaitable
            ``analyze(text)`` returning a mapping of scores. When None
            only the local heuristic is used.
        timeout: seconds to wait for the scoring dependency.
        cache_ttl: seconds a service result is reused for identical text
            (0 disables the cache).
        timer: monotonic clock used by the cache.
    """

    def __init__(
        self,
        client: Optional[Any] = None,
        timeout: float = SCORING_TIMEOUT,
        cache_ttl: int = ANALYSIS_CACHE_TTL,
        timer: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None
    ):
        self.client = client
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self._timer = timer
        self._cache: Dict[str, Tuple[float, QualityMetrics]] = {}
        self.logger = logger or logging.getLogger('Rewards.QualityAnalyzer')

    @staticmethod
    def _digest(content: str) -> str:
        return hashlib.sha256(content.encode('utf-8')).hexdigest()

    def _cached(self, key: str) -> Optional[QualityMetrics]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        expires, metrics = entry
        if self._timer() >= expires:
            del self._cache[key]
            return None
        return metrics

    def _remember(self, key: str, metrics: QualityMetrics) -> None:
        if self.cache_ttl > 0:
            self._cache[key] = (self._timer() + self.cache_ttl, metrics)

    def clear_cache(self) -> None:
        self._cache.clear()

    async def analyze(self, content: str) -> QualityMetrics:
        """Quality metrics for the given text. Never raises."""
        text = content or ''
        if self.client is not None and text.strip():
            key = self._digest(text)
            cached = self._cached(key)
            if cached is not None:
                return cached
            try:
                metrics = await self._from_service(text)
            except AnalysisError as err:
                self.logger.warning(
                    f"Scoring service unavailable, using local heuristic: {err}"
                )
            else:
                self._remember(key, metrics)
                return metrics
        try:
            return analyze_locally(text)
        except Exception as err:  # pylint: disable=W0703
            self.logger.error(
                f"Local quality heuristic failed, using neutral metrics: {err}"
            )
            return QualityMetrics.neutral()

    async def _from_service(self, text: str) -> QualityMetrics:
        try:
            payload = await asyncio.wait_for(
                self.client.analyze(text),
                timeout=self.timeout
            )
        except asyncio.TimeoutError as err:
            raise AnalysisError(
                f"timed out after {self.timeout}s"
            ) from err
        except AnalysisError:
            raise
        except Exception as err:  # pylint: disable=W0703
            raise AnalysisError(str(err)) from err
        if isinstance(payload, QualityMetrics):
            try:
                return payload.clamped()
            except (TypeError, ValueError) as err:
                raise AnalysisError(f"invalid scores: {err}") from err
        try:
            return ScoringResponse.model_validate(payload).to_metrics()
        except PayloadError as err:
            raise AnalysisError(
                f"malformed scoring response: {err.error_count()} errors"
            ) from err
