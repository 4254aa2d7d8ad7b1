"""
Periodic re-analysis per timeframe.
Throttles each timeframe to its refresh interval, keeps the latest result, and
allows at most one analysis in flight per timeframe: starting a new run cancels
the superseded one.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence

from fno_analyzer.analysis.market_analyzer import AnalysisResult
from fno_analyzer.market_data.models import BarsLike, DataAvailability, OptionChainSnapshot
from fno_analyzer.utils.cache import TimeframeCache


logger = logging.getLogger(__name__)


DEFAULT_REFRESH_SECONDS = {"1m": 60, "5m": 300, "15m": 900}


class AnalysisScheduler:
    """
    Caller-side cache and throttle around MarketAnalyzer.analyze.

    Args:
        analyzer: object with `async analyze(bars, snapshot, spot_price, timeframe, availability, timeout, iv_history)`
        refresh_seconds: timeframe -> interval; unknown timeframes use the cache default
        cache: TimeframeCache (a fresh one when None)
    """

    def __init__(
        self,
        analyzer: Any,
        refresh_seconds: Optional[Dict[str, float]] = None,
        cache: Optional[TimeframeCache] = None,
    ):
        self.analyzer = analyzer
        self.refresh_seconds = dict(refresh_seconds or DEFAULT_REFRESH_SECONDS)
        self.cache = cache or TimeframeCache()
        self._inflight: Dict[str, asyncio.Task] = {}

    @classmethod
    def from_config(cls, analyzer: Any, config: Dict[str, Any]) -> "AnalysisScheduler":
        refresh = config.get("analysis", {}).get("refresh_seconds", DEFAULT_REFRESH_SECONDS)
        return cls(analyzer, refresh_seconds=refresh)

    def interval(self, timeframe: str) -> float:
        return float(self.refresh_seconds.get(timeframe, self.cache.default_ttl))

    def refresh_due(self, timeframe: str) -> bool:
        """True when there is no result yet or the last one is older than the interval."""
        return not self.cache.is_fresh(timeframe)

    def latest(self, timeframe: str) -> Optional[AnalysisResult]:
        """Most recent result for the timeframe, fresh or not."""
        return self.cache.get_stale(timeframe)

    def in_flight(self, timeframe: str) -> bool:
        task = self._inflight.get(timeframe)
        return task is not None and not task.done()

    async def run(
        self,
        timeframe: str,
        bars: BarsLike,
        snapshot: Optional[OptionChainSnapshot],
        spot_price: float,
        availability: DataAvailability = DataAvailability.LIVE,
        force: bool = False,
        timeout: Optional[float] = None,
        iv_history: Optional[Sequence[float]] = None,
    ) -> Optional[AnalysisResult]:
        """
        Analyse `timeframe` unless a fresh result is cached (or force=True).

        Returns the new result, the cached one when throttled, or None when this
        run was superseded by a newer run for the same timeframe.
        """
        if not force:
            cached = self.cache.get(timeframe)
            if cached is not None:
                return cached

        previous = self._inflight.get(timeframe)
        if previous is not None and not previous.done():
            logger.debug("Cancelling superseded %s analysis", timeframe)
            previous.cancel()

        task = asyncio.ensure_future(self.analyzer.analyze(
            bars, snapshot, spot_price, timeframe, availability, timeout, iv_history
        ))
        self._inflight[timeframe] = task
        try:
            result = await task
        except asyncio.CancelledError:
            if self._inflight.get(timeframe) is not task:
                return None
            raise
        finally:
            if self._inflight.get(timeframe) is task:
                del self._inflight[timeframe]

        self.cache.set(timeframe, result, ttl=self.interval(timeframe))
        return result

    async def run_all(
        self,
        inputs: Dict[str, Dict[str, Any]],
        force: bool = False,
    ) -> Dict[str, Optional[AnalysisResult]]:
        """
        Analyse several timeframes concurrently.
        inputs: timeframe -> keyword arguments for run() (bars, snapshot, spot_price, ...)
        """
        timeframes = list(inputs)
        results = await asyncio.gather(
            *(self.run(tf, force=force, **inputs[tf]) for tf in timeframes)
        )
        return dict(zip(timeframes, results))
