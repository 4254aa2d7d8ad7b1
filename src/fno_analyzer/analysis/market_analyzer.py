"""
Market Analysis Module
Fuses indicators, price action, candlestick patterns and option-chain positioning
into one per-timeframe verdict: bias, risk level and suggested strategy, with an
optional narrative from the AI classifier and a rule-based fallback.
"""

import asyncio
import dataclasses
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from fno_analyzer.ai_agent.narrative import NarrativeClassifier, NarrativePayload
from fno_analyzer.analysis.candlestick_patterns import PatternDetection, detect_pattern
from fno_analyzer.analysis.indicators import (
    IndicatorFrame,
    MACDResult,
    RSIResult,
    SupertrendResult,
    compute_indicators,
)
from fno_analyzer.analysis.option_chain import (
    OptionChainAnalysis,
    OptionChainThresholds,
    analyze_option_chain,
    option_writer_pressure,
)
from fno_analyzer.analysis.price_action import (
    BreakoutAnalysis,
    MarketStructure,
    VWAPAnalysis,
    analyze_breakout,
    analyze_market_structure,
    analyze_vwap_position,
)
from fno_analyzer.analysis.volatility import IVRankSummary, clean_iv_history, summarize_iv
from fno_analyzer.config import resolve_config
from fno_analyzer.market_data.models import (
    BarsLike,
    DataAvailability,
    OptionChainSnapshot,
    to_ohlc_frame,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceRange:
    """Probable next range as percent offsets from the current price."""
    upper: float
    lower: float

    def to_prices(self, spot_price: float) -> Tuple[float, float]:
        """(upper price, lower price)"""
        return spot_price * (1 + self.upper / 100), spot_price * (1 + self.lower / 100)


@dataclass(frozen=True)
class MarketSentiment:
    bias: str  # bullish/bearish/neutral
    momentum_strength: str  # weak/moderate/strong
    volatility_regime: str  # low/moderate/high
    trend_type: str  # trending/range_bound
    momentum_score: float = 0.0
    bullish_votes: int = 0
    bearish_votes: int = 0
    bullish_factors: Tuple[str, ...] = ()
    bearish_factors: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AnalysisResult:
    """Immutable verdict for one timeframe."""
    timeframe: str
    bias: str  # bullish/bearish/neutral
    risk_level: str  # low/medium/high
    suggested_strategy: str  # scalping/intraday/avoid_trade
    reasoning: str
    fallback: bool
    confidence: str = "low"
    price_range: PriceRange = field(default_factory=lambda: PriceRange(upper=0.5, lower=-0.5))
    momentum_strength: str = "weak"
    volatility: str = "stable"  # option-chain IV regime
    volatility_regime: str = "moderate"
    trend_type: str = "range_bound"
    option_writer_pressure: str = "balanced"
    greeks_insight: str = ""
    candlestick_insight: Optional[str] = None
    inference: str = ""
    narrative_bias: Optional[str] = None
    insufficient_data: bool = False
    data_availability: str = DataAvailability.LIVE.value
    bullish_votes: int = 0
    bearish_votes: int = 0
    bullish_factors: Tuple[str, ...] = ()
    bearish_factors: Tuple[str, ...] = ()
    iv_rank: Optional[IVRankSummary] = None
    features: Optional[Dict[str, Any]] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timeframe": self.timeframe,
            "bias": self.bias,
            "confidence": self.confidence,
            "priceRange": {"upper": self.price_range.upper, "lower": self.price_range.lower},
            "reasoning": self.reasoning,
            "fallback": self.fallback,
            "riskLevel": self.risk_level,
            "suggestedStrategy": self.suggested_strategy,
            "momentumStrength": self.momentum_strength,
            "volatility": self.volatility,
            "volatilityRegime": self.volatility_regime,
            "trendType": self.trend_type,
            "optionWriterPressure": self.option_writer_pressure,
            "greeksInsight": self.greeks_insight,
            "candlestickInsight": self.candlestick_insight,
            "inference": self.inference,
            "narrativeBias": self.narrative_bias,
            "insufficientData": self.insufficient_data,
            "dataAvailability": self.data_availability,
            "votes": {"bullish": self.bullish_votes, "bearish": self.bearish_votes},
            "bullishFactors": list(self.bullish_factors),
            "bearishFactors": list(self.bearish_factors),
            "ivRank": dataclasses.asdict(self.iv_rank) if self.iv_rank else None,
            "timestamp": self.timestamp,
        }


VOLATILITY_FROM_IV = {"expanding": "high", "contracting": "low", "stable": "moderate"}


def determine_market_sentiment(
    structure: MarketStructure,
    rsi: RSIResult,
    macd: MACDResult,
    supertrend: SupertrendResult,
    vwap: VWAPAnalysis,
    iv_regime: str = "stable",
) -> MarketSentiment:
    """
    Five voters: structure trend, RSI vs 50, MACD histogram sign, Supertrend
    direction, VWAP position. A bias needs to win by more than one vote.
    """
    bullish: List[str] = []
    bearish: List[str] = []

    if structure.trend == "uptrend":
        bullish.append(f"Market structure uptrend ({structure.structure})")
    elif structure.trend == "downtrend":
        bearish.append(f"Market structure downtrend ({structure.structure})")

    if rsi.rsi > 50:
        bullish.append(f"RSI {rsi.rsi:.1f} above 50")
    elif rsi.rsi < 50:
        bearish.append(f"RSI {rsi.rsi:.1f} below 50")

    if macd.histogram > 0:
        bullish.append("MACD histogram positive")
    elif macd.histogram < 0:
        bearish.append("MACD histogram negative")

    if supertrend.trend == "up":
        bullish.append("Supertrend up")
    else:
        bearish.append("Supertrend down")

    if vwap.price_vs_vwap == "above":
        bullish.append("Price above VWAP")
    elif vwap.price_vs_vwap == "below":
        bearish.append("Price below VWAP")

    if len(bullish) > len(bearish) + 1:
        bias = "bullish"
    elif len(bearish) > len(bullish) + 1:
        bias = "bearish"
    else:
        bias = "neutral"

    rsi_strength = abs(rsi.rsi - 50) / 50
    macd_strength = abs(macd.histogram) / max(abs(macd.macd), 1)
    momentum_score = (rsi_strength + macd_strength) / 2
    if momentum_score > 0.6:
        momentum = "strong"
    elif momentum_score > 0.3:
        momentum = "moderate"
    else:
        momentum = "weak"

    return MarketSentiment(
        bias=bias,
        momentum_strength=momentum,
        volatility_regime=VOLATILITY_FROM_IV.get(iv_regime, "moderate"),
        trend_type=structure.trend_type,
        momentum_score=momentum_score,
        bullish_votes=len(bullish),
        bearish_votes=len(bearish),
        bullish_factors=tuple(bullish),
        bearish_factors=tuple(bearish),
    )


def assess_risk_level(chain: OptionChainAnalysis, sentiment: MarketSentiment) -> str:
    if chain.gamma_exposure == "high" or chain.iv_regime == "expanding":
        return "high"
    if sentiment.volatility_regime == "low" and sentiment.momentum_strength == "weak":
        return "low"
    return "medium"


def suggest_strategy(
    timeframe: str,
    momentum_strength: str,
    risk_level: str,
    bias: str,
    shortest_timeframe: str = "1m",
) -> str:
    """Checked in order: scalping, then avoid_trade, else intraday."""
    if timeframe == shortest_timeframe and momentum_strength == "strong":
        return "scalping"
    if risk_level == "high" or bias == "neutral":
        return "avoid_trade"
    return "intraday"


def greeks_insight(chain: OptionChainAnalysis) -> str:
    parts = []
    if chain.gamma_exposure == "high":
        parts.append("High gamma exposure near ATM -> fast moves expected.")
    if chain.delta_buildup == "call":
        parts.append("Delta: Positive call buildup.")
    elif chain.delta_buildup == "put":
        parts.append("Delta: Put buildup indicating hedging.")
    if chain.theta_decay == "high":
        parts.append("Theta: Favoring option sellers.")
    return " ".join(parts) or "Greeks analysis neutral."


def build_inference(
    sentiment: MarketSentiment,
    vwap: VWAPAnalysis,
    breakout: BreakoutAnalysis,
    structure: MarketStructure,
) -> str:
    if sentiment.bias == "bullish" and vwap.price_vs_vwap == "above":
        return "Market shows higher probability of upside continuation if price sustains above VWAP."
    if sentiment.bias == "bearish" and vwap.price_vs_vwap == "below":
        return "Market shows higher probability of downside continuation if price remains below VWAP."
    if breakout.is_breakout and breakout.direction:
        side = "Upward" if breakout.direction == "up" else "Downward"
        return f"{side} breakout detected with {breakout.strength} strength. Monitor for continuation."
    if structure.structure == "MIXED":
        return "Mixed market structure suggests range-bound movement. Wait for clear directional bias."
    return "Market structure is neutral. Monitor key levels for directional confirmation."


def rule_based_reasoning(sentiment: MarketSentiment) -> str:
    """Reasoning from the dominant voters only; used whenever the narrative is unavailable."""
    total = 5
    if sentiment.bias == "bullish":
        return (
            f"Bullish bias: {sentiment.bullish_votes} of {total} signals bullish "
            f"({', '.join(sentiment.bullish_factors)}). Momentum {sentiment.momentum_strength}."
        )
    if sentiment.bias == "bearish":
        return (
            f"Bearish bias: {sentiment.bearish_votes} of {total} signals bearish "
            f"({', '.join(sentiment.bearish_factors)}). Momentum {sentiment.momentum_strength}."
        )
    text = (
        f"Neutral bias: {sentiment.bullish_votes} bullish vs {sentiment.bearish_votes} bearish "
        f"signals, no clear edge."
    )
    if sentiment.bullish_factors:
        text += f" Bullish: {', '.join(sentiment.bullish_factors)}."
    if sentiment.bearish_factors:
        text += f" Bearish: {', '.join(sentiment.bearish_factors)}."
    return text


def build_feature_summary(
    timeframe: str,
    spot_price: float,
    latest: IndicatorFrame,
    structure: MarketStructure,
    vwap: VWAPAnalysis,
    breakout: BreakoutAnalysis,
    chain: OptionChainAnalysis,
    sentiment: MarketSentiment,
    pattern: Optional[PatternDetection],
) -> Dict[str, Any]:
    """Structured summary handed to the narrative classifier."""
    return {
        "timeframe": timeframe,
        "priceAction": {
            "structure": structure.structure,
            "vwapPosition": vwap.price_vs_vwap,
            "breakout": f"{breakout.direction} {breakout.strength}" if breakout.is_breakout else "none",
        },
        "indicators": {
            "ema9": latest.ema.ema9,
            "ema21": latest.ema.ema21,
            "ema50": latest.ema.ema50,
            "rsi": latest.rsi.rsi,
            "macd": latest.macd.histogram,
            "bollinger": {
                "upper": latest.bollinger.upper,
                "middle": latest.bollinger.middle,
                "lower": latest.bollinger.lower,
            },
            "supertrend": {
                "value": latest.supertrend.value,
                "trend": latest.supertrend.trend,
            },
        },
        "optionChain": {
            "deltaBuildup": chain.delta_buildup,
            "gammaExposure": chain.gamma_exposure,
            "thetaDecay": chain.theta_decay,
            "ivRegime": chain.iv_regime,
            "pcr": chain.pcr,
        },
        "sentiment": {
            "bias": sentiment.bias,
            "momentum": sentiment.momentum_strength,
            "volatility": sentiment.volatility_regime,
            "trendType": sentiment.trend_type,
        },
        "candlestick": pattern.description if pattern else None,
        "currentPrice": spot_price,
    }


class MarketAnalyzer:
    """
    Composite analysis engine.
    Each call is a stateless transform of (bars, chain snapshot, spot, timeframe);
    the only I/O is the optional narrative classifier call.
    """

    def __init__(self, config: Any = None, classifier: Any = None):
        self.config = resolve_config(config)
        self.analysis_config = self.config.get("analysis", {})
        self.ai_config = self.config.get("ai", {})
        self.thresholds = OptionChainThresholds.from_config(self.config.get("option_chain"))
        self.enabled = self.ai_config.get("enabled", True)
        if classifier is None and self.enabled:
            classifier = NarrativeClassifier.from_config(self.config)
        self.classifier = classifier if self.enabled else None

    def _fallback_range(self) -> PriceRange:
        pct = float(self.ai_config.get("fallback_price_range_pct", 0.5))
        return PriceRange(upper=pct, lower=-pct)

    def _guard(
        self,
        bar_count: int,
        snapshot: Optional[OptionChainSnapshot],
        spot_price: Optional[float],
        availability: DataAvailability,
    ) -> Optional[str]:
        """Reason the inputs cannot be analysed, or None."""
        min_bars = int(self.analysis_config.get("min_bars", 20))
        if availability == DataAvailability.UNAVAILABLE:
            return "market data unavailable"
        if bar_count < min_bars:
            return f"{bar_count} bars, need at least {min_bars}"
        if snapshot is None or snapshot.is_empty:
            return "option chain is empty"
        if spot_price is None or math.isnan(spot_price) or spot_price <= 0:
            return "spot price is zero"
        return None

    def degenerate_result(
        self,
        timeframe: str,
        reason: str,
        availability: DataAvailability = DataAvailability.LIVE,
    ) -> AnalysisResult:
        return AnalysisResult(
            timeframe=timeframe,
            bias="neutral",
            risk_level="high",
            suggested_strategy="avoid_trade",
            reasoning=f"Insufficient data for analysis: {reason}.",
            fallback=True,
            price_range=self._fallback_range(),
            greeks_insight="Insufficient data for analysis",
            inference="Waiting for more data to generate analysis.",
            insufficient_data=True,
            data_availability=DataAvailability(availability).value,
        )

    def evaluate(
        self,
        bars: BarsLike,
        snapshot: Optional[OptionChainSnapshot],
        spot_price: float,
        timeframe: str,
        availability: DataAvailability = DataAvailability.LIVE,
        iv_history: Optional[Sequence[float]] = None,
    ) -> AnalysisResult:
        """
        Deterministic part of the pipeline (guard plus fusion), no classifier call.
        The reasoning is rule-based and fallback is True until a narrative replaces it.
        """
        availability = DataAvailability(availability)
        df = to_ohlc_frame(bars)
        reason = self._guard(len(df), snapshot, spot_price, availability)
        if reason:
            logger.info("Skipping %s analysis: %s", timeframe, reason)
            return self.degenerate_result(timeframe, reason, availability)

        pa_config = self.config.get("price_action", {})
        frames = compute_indicators(df, self.config.get("indicators"))
        latest = frames[-1]
        structure = analyze_market_structure(df, pa_config.get("structure_lookback", 20))
        vwap = analyze_vwap_position(df)
        breakout = analyze_breakout(df, pa_config.get("breakout_lookback", 20))
        pattern = detect_pattern(df)
        chain = analyze_option_chain(snapshot, spot_price, self.thresholds)

        sentiment = determine_market_sentiment(
            structure, latest.rsi, latest.macd, latest.supertrend, vwap, chain.iv_regime
        )
        risk_level = assess_risk_level(chain, sentiment)
        strategy = suggest_strategy(
            timeframe,
            sentiment.momentum_strength,
            risk_level,
            sentiment.bias,
            self.analysis_config.get("shortest_timeframe", "1m"),
        )

        iv_rank = None
        history = clean_iv_history(iv_history or [])
        if history and chain.atm_iv > 0:
            iv_rank = summarize_iv(chain.atm_iv, history)

        logger.debug(
            "%s: %d bullish / %d bearish votes -> %s, risk %s, %s",
            timeframe, sentiment.bullish_votes, sentiment.bearish_votes,
            sentiment.bias, risk_level, strategy,
        )

        return AnalysisResult(
            timeframe=timeframe,
            bias=sentiment.bias,
            risk_level=risk_level,
            suggested_strategy=strategy,
            reasoning=rule_based_reasoning(sentiment),
            fallback=True,
            price_range=self._fallback_range(),
            momentum_strength=sentiment.momentum_strength,
            volatility=chain.iv_regime,
            volatility_regime=sentiment.volatility_regime,
            trend_type=sentiment.trend_type,
            option_writer_pressure=option_writer_pressure(chain.pcr, self.thresholds),
            greeks_insight=greeks_insight(chain),
            candlestick_insight=pattern.description if pattern else None,
            inference=build_inference(sentiment, vwap, breakout, structure),
            data_availability=availability.value,
            bullish_votes=sentiment.bullish_votes,
            bearish_votes=sentiment.bearish_votes,
            bullish_factors=sentiment.bullish_factors,
            bearish_factors=sentiment.bearish_factors,
            iv_rank=iv_rank,
            features=build_feature_summary(
                timeframe, spot_price, latest, structure, vwap, breakout, chain, sentiment, pattern
            ),
        )

    async def analyze(
        self,
        bars: BarsLike,
        snapshot: Optional[OptionChainSnapshot],
        spot_price: float,
        timeframe: str,
        availability: DataAvailability = DataAvailability.LIVE,
        timeout: Optional[float] = None,
        iv_history: Optional[Sequence[float]] = None,
    ) -> AnalysisResult:
        """
        Full analysis for one timeframe.

        Never raises for data or classifier problems: bad inputs give the
        degenerate result, classifier failures give the rule-based fallback.
        Cancelling the awaiting task abandons the classifier call.
        """
        result = self.evaluate(bars, snapshot, spot_price, timeframe, availability, iv_history)
        if result.insufficient_data or self.classifier is None:
            return result
        return await self._enrich(result, timeout)

    async def _enrich(self, result: AnalysisResult, timeout: Optional[float]) -> AnalysisResult:
        if timeout is None:
            timeout = float(self.ai_config.get("timeout_seconds", 15))
        try:
            payload = await asyncio.wait_for(self.classifier.classify(result.features), timeout)
            if not isinstance(payload, NarrativePayload):
                payload = NarrativePayload.model_validate(payload)
        except asyncio.TimeoutError:
            logger.warning("Narrative classifier timed out after %ss for %s", timeout, result.timeframe)
            return result
        except ValidationError as e:
            logger.warning("Narrative classifier returned an invalid payload for %s: %s", result.timeframe, e)
            return result
        except Exception as e:
            logger.warning("Narrative classifier failed for %s: %s", result.timeframe, e)
            return result

        return dataclasses.replace(
            result,
            reasoning=payload.reasoning,
            confidence=payload.confidence,
            price_range=PriceRange(upper=payload.price_range.upper, lower=payload.price_range.lower),
            narrative_bias=payload.bias,
            fallback=False,
        )


async def analyze(
    bars: BarsLike,
    snapshot: Optional[OptionChainSnapshot],
    spot_price: float,
    timeframe: str,
    availability: DataAvailability = DataAvailability.LIVE,
    classifier: Any = None,
    config: Any = None,
    timeout: Optional[float] = None,
) -> AnalysisResult:
    """One-shot composite analysis with a throwaway MarketAnalyzer."""
    analyzer = MarketAnalyzer(config=config, classifier=classifier)
    return await analyzer.analyze(bars, snapshot, spot_price, timeframe, availability, timeout)
