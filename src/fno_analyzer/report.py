"""
Report Module
Print multi-timeframe market analysis and Greeks to the console.
"""

from typing import Any, Mapping, Optional


STRATEGY_LABELS = {
    "scalping": "SCALPING",
    "intraday": "INTRADAY",
    "avoid_trade": "AVOID TRADE",
}


def print_analysis_report(
    results: Mapping[str, Any],
    symbol: Optional[str] = None,
    spot_price: Optional[float] = None,
) -> None:
    """
    Print one block per timeframe: verdict line, reasoning, inference,
    option-chain read and the votes behind the bias.
    """
    sep = "=" * 64
    sub = "-" * 64

    print()
    print(sep)
    title = f"  F&O MARKET ANALYSIS - {symbol}" if symbol else "  F&O MARKET ANALYSIS"
    print(title)
    print(sep)
    if spot_price:
        print(f"  Spot: {spot_price:,.2f}")

    for timeframe, result in results.items():
        print()
        print(f"  [{timeframe}]")
        print(sub)
        if result is None:
            print("  Superseded by a newer analysis run.")
            continue

        strategy = STRATEGY_LABELS.get(result.suggested_strategy, result.suggested_strategy)
        print(
            f"  Bias: {result.bias.upper()} | Confidence: {result.confidence} | "
            f"Risk: {result.risk_level} | Strategy: {strategy}"
        )
        if result.insufficient_data:
            print(f"  {result.reasoning}")
            continue

        print(
            f"  Momentum: {result.momentum_strength} | Volatility: {result.volatility_regime} "
            f"(IV {result.volatility}) | Trend: {result.trend_type}"
        )
        if spot_price:
            upper, lower = result.price_range.to_prices(spot_price)
            print(
                f"  Likely range: {lower:,.2f} - {upper:,.2f} "
                f"({result.price_range.lower:+.2f}% / {result.price_range.upper:+.2f}%)"
            )
        print(f"  Votes: {result.bullish_votes} bullish / {result.bearish_votes} bearish")
        print()
        source = "rule-based" if result.fallback else "AI narrative"
        print(f"  Reasoning ({source}):")
        print(f"    {result.reasoning}")
        print(f"  Inference: {result.inference}")
        print(f"  Greeks: {result.greeks_insight}")
        print(f"  Option writers: {result.option_writer_pressure}")
        if result.candlestick_insight:
            print(f"  Candlestick: {result.candlestick_insight}")
        if result.narrative_bias and result.narrative_bias != result.bias:
            print(f"  Note: AI narrative leans {result.narrative_bias}; rule-based bias kept.")
        if result.iv_rank:
            iv = result.iv_rank
            print(f"  IV Rank: {iv.rank:.0f}% ({iv.label}) | Percentile: {iv.percentile:.0f}%")
        if result.data_availability != "live":
            print(f"  Data: {result.data_availability}")

    print()
    print(sep)
    print("  Probabilistic read, not a guarantee. Manage risk accordingly.")
    print(sep)


def print_greeks_report(
    greeks: Any,
    option_type: str,
    price: Optional[float] = None,
    pop: Optional[float] = None,
    implied_vol: Optional[float] = None,
) -> None:
    sub = "-" * 40
    print()
    print(f"  {option_type.upper()} GREEKS")
    print(sub)
    print(f"  Delta: {greeks.delta:.4f}")
    print(f"  Gamma: {greeks.gamma:.6f}")
    print(f"  Theta: {greeks.theta:.4f} /day")
    print(f"  Vega:  {greeks.vega:.4f} /1% IV")
    print(f"  Rho:   {greeks.rho:.4f} /1% rate")
    if price is not None:
        print(f"  Black-Scholes price: {price:.2f}")
    if pop is not None:
        print(f"  Probability ITM at expiry: {pop:.0%}")
    if implied_vol is not None:
        print(f"  Implied volatility: {implied_vol * 100:.2f}%")
    print()
