"""
Configuration loading.
Reads config/config.yaml and overlays it on the built-in defaults, so analysis
keeps working with a partial file or no file at all.
"""

import copy
import os
from typing import Any, Dict, Optional

import yaml


# src/fno_analyzer/config.py -> repo root
REPO_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
DEFAULT_CONFIG_PATH = os.path.join(REPO_ROOT, "config", "config.yaml")

DEFAULT_CONFIG: Dict[str, Any] = {
    "indicators": {
        "ema_periods": [9, 21, 50],
        "rsi_period": 14,
        "macd_fast": 12,
        "macd_slow": 26,
        "macd_signal": 9,
        "bollinger_period": 20,
        "bollinger_std": 2,
        "supertrend_period": 10,
        "supertrend_multiplier": 3,
    },
    "price_action": {
        "structure_lookback": 20,
        "breakout_lookback": 20,
    },
    "option_chain": {
        "atm_window_pct": 0.02,
        "delta_buildup_ratio": 1.2,
        "gamma_high": 1_000_000,
        "gamma_moderate": 500_000,
        "theta_high": 500_000,
        "theta_moderate": 200_000,
        "iv_expanding": 20,
        "iv_contracting": 12,
        "pcr_put_heavy": 1.2,
        "pcr_call_heavy": 0.8,
    },
    "greeks": {
        "risk_free_rate": 0.065,
    },
    "analysis": {
        "min_bars": 20,
        "shortest_timeframe": "1m",
        "refresh_seconds": {"1m": 60, "5m": 300, "15m": 900},
    },
    "ai": {
        "enabled": True,
        "model": "claude-sonnet-4-5",
        "max_tokens": 1000,
        "timeout_seconds": 15,
        "fallback_price_range_pct": 0.5,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively overlay override onto base (returns a new dict)."""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load YAML config merged over DEFAULT_CONFIG.

    Args:
        config_path: Path to a YAML file. None returns the defaults.

    Raises:
        FileNotFoundError: if an explicit config_path does not exist.
    """
    if config_path is None:
        return copy.deepcopy(DEFAULT_CONFIG)
    with open(config_path, "r") as f:
        user_cfg = yaml.safe_load(f) or {}
    return _merge(DEFAULT_CONFIG, user_cfg)


def resolve_config(config: Any = None) -> Dict[str, Any]:
    """Accept a path, a dict (merged over defaults) or None."""
    if config is None:
        return load_config(None)
    if isinstance(config, dict):
        return _merge(DEFAULT_CONFIG, config)
    return load_config(str(config))
