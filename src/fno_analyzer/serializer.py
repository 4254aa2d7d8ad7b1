"""
Convert analysis results to JSON-serializable dicts.
"""

import dataclasses
import math
from enum import Enum
from typing import Any, Dict, Mapping, Optional


def _sanitize(obj: Any) -> Any:
    """Recursively convert to JSON-serializable types (numpy -> float, NaN -> None)."""
    if obj is None:
        return None
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (str, bool, int)):
        return obj
    if isinstance(obj, float):
        return None if math.isnan(obj) or math.isinf(obj) else obj
    if hasattr(obj, "item"):  # numpy scalar
        return _sanitize(obj.item())
    if isinstance(obj, Mapping):
        return {str(k): _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_sanitize(x) for x in obj]
    if hasattr(obj, "to_dict"):
        return _sanitize(obj.to_dict())
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return _sanitize(dataclasses.asdict(obj))
    if hasattr(obj, "__dict__"):
        return _sanitize(vars(obj))
    return obj


def result_to_dict(result: Any) -> Optional[Dict[str, Any]]:
    """One AnalysisResult (or None for a superseded run)."""
    if result is None:
        return None
    return _sanitize(result)


def to_json_response(
    results: Mapping[str, Any],
    symbol: Optional[str] = None,
    spot_price: Optional[float] = None,
) -> Dict[str, Any]:
    """Multi-timeframe analysis -> JSON-ready response."""
    analyses = {tf: result_to_dict(r) for tf, r in results.items()}
    return {
        "ok": True,
        "symbol": symbol,
        "spotPrice": _sanitize(spot_price),
        "analyses": analyses,
        "fallback": any(a is None or a.get("fallback") for a in analyses.values()),
    }
