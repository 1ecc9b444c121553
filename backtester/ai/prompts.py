"""
Prompt templates for the advised policies.

Both prompts end with the same JSON reply contract so the response parser
chain can handle either.
"""

from backtester.confluence.trend import ALIGNED_BEAR, ALIGNED_BULL, MultiTimeframeAnalysis

REPLY_FORMAT = 'Respond ONLY with JSON: {{"action": "buy"/"sell"/"hold", "confidence": 0-100, "reasoning": "brief"}}'


ADVISED_PROMPT = """You are a PROFESSIONAL cryptocurrency trader using MULTI-TIMEFRAME ANALYSIS.

HIGHER TIMEFRAME CONTEXT (THE TREND - MOST IMPORTANT):
- 1H Trend: {htf_1h} (RSI: {htf_1h_rsi:.0f}, Mom: {htf_1h_momentum:.1f}%)
- 4H Trend: {htf_4h} (RSI: {htf_4h_rsi:.0f}, Mom: {htf_4h_momentum:.1f}%)
- ALIGNMENT: {alignment}
{trade_banner}

{confluence}

LOWER TIMEFRAME ENTRY ({interval}min - {timestamp}):
- Price: ${price:.6f}
- ATR: {atr_percent:.3f}%{atr_label}
- 1H Change: {change_1h:.2f}% | 4H Change: {change_4h:.2f}%

ENTRY SIGNALS (Lower TF): Bull={bull:.1f} vs Bear={bear:.1f}{score_label}

{snapshot}

POSITION: {position}
TARGETS: Stop {stop_loss}%, Profit {take_profit}%

RULES:
1. ONLY BUY when higher timeframes are bullish AND lower TF shows entry signal
2. Look for pullbacks in uptrends (RSI<40, Bollinger<30) as entry points
3. Exit when profit target hit OR trend reverses
4. If HTF bearish, do NOT enter longs

""" + REPLY_FORMAT


SCALPER_PROMPT = """You are a PROFESSIONAL scalper using MULTI-TIMEFRAME ANALYSIS for {symbol}.

HIGHER TIMEFRAME TREND (Trade WITH this direction):
- 1H: {htf_1h} (Mom: {htf_1h_momentum:.1f}%)
- 4H: {htf_4h} (Mom: {htf_4h_momentum:.1f}%)
{alignment_banner}

PRICE ACTION (last {narrative_count} candles):
{narrative}
Pattern: {pattern} ({green} green, {red} red)
{structure}{watching}

CURRENT STATE ({timestamp}):
- Price: ${price:.6f}
- VWAP: ${vwap:.6f} ({price_vs_vwap:+.2f}%){vwap_label}
- ATR: {atr_percent:.3f}%{atr_label}

MICRO-TREND (5/20 EMA):
- 5 EMA vs 20 EMA: {micro_trend}{cross}
- ROC: 3-candle: {roc3:+.3f}% | 5-candle: {roc5:+.3f}%

SIGNAL SCORE: Bull={bull:.1f} vs Bear={bear:.1f}{strong}
- RSI: {rsi:.1f}{rsi_label}
- EMA: {ema_trend}{pullback} | Vol: {volume_ratio:.2f}x

{confluence}

POSITION: {position}

STRATEGY: You are WATCHING the market continuously. Only act when momentum
is building in the direction of the higher timeframes.
Stop: {stop_loss}% | Target: {take_profit}%

""" + REPLY_FORMAT


def position_status(entry_price: float | None, price: float) -> str:
    """One-line position description for prompts."""
    if entry_price is None:
        return "NO POSITION"
    pnl = (price - entry_price) / entry_price * 100
    return f"HOLDING: Entry ${entry_price:.6f}, P/L: {pnl:.2f}%"


def build_advised_prompt(
    *,
    mtf: MultiTimeframeAnalysis,
    confluence_text: str,
    snapshot_text: str,
    interval_minutes: int,
    timestamp: str,
    price: float,
    atr_percent: float,
    change_1h: float,
    change_4h: float,
    bull: float,
    bear: float,
    position: str,
    stop_loss: float,
    take_profit: float,
) -> str:
    """Context text for the externally-advised policy."""
    if atr_percent < 0.1:
        atr_label = " (LOW)"
    elif atr_percent > 0.5:
        atr_label = " (HIGH)"
    else:
        atr_label = ""

    if bull >= 5:
        score_label = " ** STRONG BUY **"
    elif bear >= 5:
        score_label = " ** STRONG SELL **"
    else:
        score_label = ""

    return ADVISED_PROMPT.format(
        htf_1h=mtf.htf_1h.direction.upper(),
        htf_1h_rsi=mtf.htf_1h.rsi,
        htf_1h_momentum=mtf.htf_1h.momentum,
        htf_4h=mtf.htf_4h.direction.upper(),
        htf_4h_rsi=mtf.htf_4h.rsi,
        htf_4h_momentum=mtf.htf_4h.momentum,
        alignment=mtf.description,
        trade_banner=(
            "** TREND SUPPORTS TRADING - LOOK FOR ENTRIES **"
            if mtf.can_trade
            else "** NO CLEAR TREND - BE CAUTIOUS **"
        ),
        confluence=confluence_text,
        interval=interval_minutes,
        timestamp=timestamp,
        price=price,
        atr_percent=atr_percent,
        atr_label=atr_label,
        change_1h=change_1h,
        change_4h=change_4h,
        bull=bull,
        bear=bear,
        score_label=score_label,
        snapshot=snapshot_text,
        position=position,
        stop_loss=stop_loss,
        take_profit=take_profit,
    )


def build_scalper_prompt(
    *,
    symbol: str,
    mtf: MultiTimeframeAnalysis,
    narrative: list[str],
    pattern: str,
    green: int,
    red: int,
    structure: str,
    watching: str,
    timestamp: str,
    price: float,
    vwap: float,
    price_vs_vwap: float,
    atr_percent: float,
    choppy: bool,
    micro_bullish: bool,
    cross_up: bool,
    cross_down: bool,
    roc3: float,
    roc5: float,
    bull: float,
    bear: float,
    rsi: float,
    rsi_oversold: float,
    ema_bullish: bool,
    pullback: bool,
    volume_ratio: float,
    confluence_text: str,
    position: str,
    stop_loss: float,
    take_profit: float,
) -> str:
    """Context text for the scalper policy."""
    if mtf.alignment == ALIGNED_BULL:
        alignment_banner = "** BULLISH ALIGNMENT - SCALP LONGS **"
    elif mtf.alignment == ALIGNED_BEAR:
        alignment_banner = "** BEARISH - AVOID LONGS **"
    else:
        alignment_banner = "Neutral/Mixed trend"

    if choppy:
        atr_label = " (CHOPPY)"
    elif atr_percent > 0.3:
        atr_label = " (VOLATILE-GOOD)"
    else:
        atr_label = ""

    if rsi < rsi_oversold:
        rsi_label = " (OVERSOLD-BUY)"
    elif rsi > 100 - rsi_oversold:
        rsi_label = " (OVERBOUGHT)"
    else:
        rsi_label = ""

    if cross_up:
        cross = " *** JUST CROSSED UP ***"
    elif cross_down:
        cross = " *** JUST CROSSED DOWN ***"
    else:
        cross = ""

    return SCALPER_PROMPT.format(
        symbol=symbol,
        htf_1h=mtf.htf_1h.direction.upper(),
        htf_1h_momentum=mtf.htf_1h.momentum,
        htf_4h=mtf.htf_4h.direction.upper(),
        htf_4h_momentum=mtf.htf_4h.momentum,
        alignment_banner=alignment_banner,
        narrative_count=len(narrative),
        narrative=" -> ".join(narrative),
        pattern=pattern,
        green=green,
        red=red,
        structure=structure,
        watching=watching,
        timestamp=timestamp,
        price=price,
        vwap=vwap,
        price_vs_vwap=price_vs_vwap,
        vwap_label=" ** BELOW VWAP **" if price_vs_vwap < 0 else "",
        atr_percent=atr_percent,
        atr_label=atr_label,
        micro_trend="BULLISH" if micro_bullish else "BEARISH",
        cross=cross,
        roc3=roc3,
        roc5=roc5,
        bull=bull,
        bear=bear,
        strong=" *** STRONG ***" if max(bull, bear) >= 6 else "",
        rsi=rsi,
        rsi_label=rsi_label,
        ema_trend="Bullish" if ema_bullish else "Bearish",
        pullback=" ** PULLBACK **" if pullback else "",
        volume_ratio=volume_ratio,
        confluence=confluence_text,
        position=position,
        stop_loss=stop_loss,
        take_profit=take_profit,
    )
