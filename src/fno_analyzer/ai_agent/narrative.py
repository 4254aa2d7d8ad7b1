"""
Narrative Classifier Module
Sends the composite feature summary to Anthropic and reads back a probabilistic
read: bias, confidence, next price range (percent from spot) and reasoning.
"""

import json
import logging
import os
import re
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are an expert AI trading analyst specializing in Indian F&O markets.
Your role is to analyze market data and provide PROBABILISTIC insights, NOT guarantees.
Always use language like "higher probability", "likely range", "if momentum sustains".
NEVER use words like "guaranteed", "sure shot", "100% certain", or "definitely"."""


class NarrativeUnavailable(Exception):
    """Classifier reply could not be turned into a NarrativePayload."""


class PriceRangePayload(BaseModel):
    upper: float  # percent above current price
    lower: float  # percent below current price (negative)


class NarrativePayload(BaseModel):
    """Validated classifier reply."""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    bias: Literal["bullish", "bearish", "neutral"]
    confidence: Literal["low", "medium", "high"]
    price_range: PriceRangePayload = Field(alias="priceRange")
    reasoning: str = Field(min_length=1)

    @field_validator("bias", "confidence", mode="before")
    @classmethod
    def _lowercase(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class NarrativeClassifier:
    """
    Async Anthropic-backed classifier for the composite analysis.
    Network errors, a missing API key and unusable replies all surface as
    exceptions; the composite engine turns any of them into its fallback result.
    """

    def __init__(
        self,
        model: str = "claude-sonnet-4-5",
        max_tokens: int = 1000,
        client: Any = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self._client = client

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "NarrativeClassifier":
        ai_config = (config or {}).get("ai", {})
        return cls(
            model=ai_config.get("model", "claude-sonnet-4-5"),
            max_tokens=int(ai_config.get("max_tokens", 1000)),
        )

    def _get_client(self):
        if self._client is None:
            api_key = os.getenv("ANTHROPIC_API_KEY")
            if not api_key:
                raise ValueError(
                    "ANTHROPIC_API_KEY not set. Set it in your environment to use AI narrative analysis."
                )
            from anthropic import AsyncAnthropic
            # Compatible providers: set ANTHROPIC_BASE_URL
            base_url = os.getenv("ANTHROPIC_BASE_URL")
            kwargs = {"api_key": api_key}
            if base_url:
                kwargs["base_url"] = base_url
            self._client = AsyncAnthropic(**kwargs)
        return self._client

    async def classify(self, summary: Dict[str, Any]) -> NarrativePayload:
        """
        Classify one feature summary.

        Raises:
            ValueError: no API key configured
            NarrativeUnavailable: reply missing, not JSON, or failing validation
            anthropic.APIError (and subclasses): transport or API failures
        """
        client = self._get_client()
        logger.debug("Requesting narrative for %s timeframe", summary.get("timeframe"))
        response = await client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": self._build_prompt(summary)}],
        )
        text = ""
        for block in getattr(response, "content", None) or []:
            t = getattr(block, "text", None)
            if t:
                text += t
        return self._parse_response(text)

    def _build_prompt(self, summary: Dict[str, Any]) -> str:
        pa = summary.get("priceAction", {})
        ind = summary.get("indicators", {})
        bb = ind.get("bollinger", {})
        st = ind.get("supertrend", {})
        oc = summary.get("optionChain", {})
        sent = summary.get("sentiment", {})
        candlestick = summary.get("candlestick")
        candle_block = f"\nCANDLESTICK PATTERN: {candlestick}\n" if candlestick else ""

        return f"""Analyze this {summary.get("timeframe")} timeframe market data:

CURRENT PRICE: {summary.get("currentPrice")}

PRICE ACTION:
- Market Structure: {pa.get("structure")}
- VWAP Position: {pa.get("vwapPosition")}
- Breakout Status: {pa.get("breakout")}

TECHNICAL INDICATORS:
- EMA 9: {ind.get("ema9", 0):.2f}
- EMA 21: {ind.get("ema21", 0):.2f}
- EMA 50: {ind.get("ema50", 0):.2f}
- RSI: {ind.get("rsi", 0):.2f}
- MACD: {ind.get("macd", 0):.2f}
- Bollinger Bands: Upper {bb.get("upper", 0):.2f}, Middle {bb.get("middle", 0):.2f}, Lower {bb.get("lower", 0):.2f}
- Supertrend: {st.get("value", 0):.2f} ({st.get("trend")})

OPTION CHAIN & GREEKS:
- Delta Buildup: {oc.get("deltaBuildup")}
- Gamma Exposure: {oc.get("gammaExposure")}
- Theta Decay: {oc.get("thetaDecay")}
- IV Regime: {oc.get("ivRegime")}
- Put/Call Ratio: {oc.get("pcr", 1):.2f}

MARKET SENTIMENT:
- Bias: {sent.get("bias")}
- Momentum: {sent.get("momentum")}
- Volatility: {sent.get("volatility")}
- Trend Type: {sent.get("trendType")}
{candle_block}
Based on ALL this data, provide:
1. Market Bias (Bullish/Bearish/Neutral)
2. Confidence Strength (Low/Medium/High)
3. Probable Next Price Range (upper and lower bounds as percentages from current price)
4. Detailed reasoning explaining how each factor contributes to your analysis

Respond with JSON only:
{{
  "bias": "bullish|bearish|neutral",
  "confidence": "low|medium|high",
  "priceRange": {{"upper": <percentage above current>, "lower": <percentage below current>}},
  "reasoning": "<detailed explanation>"
}}"""

    def _parse_response(self, text: str) -> NarrativePayload:
        """Pull the JSON object out of the reply (code fences tolerated) and validate it."""
        if not text or not text.strip():
            raise NarrativeUnavailable("empty classifier response")
        cleaned = re.sub(r"```(?:json)?", "", text, flags=re.IGNORECASE).strip()
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start == -1 or end <= start:
            raise NarrativeUnavailable("no JSON object in classifier response")
        try:
            data = json.loads(cleaned[start:end + 1])
            return NarrativePayload.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            raise NarrativeUnavailable(f"invalid classifier payload: {e}") from e
