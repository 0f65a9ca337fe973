"""Technical indicators over price series.

Every indicator returns values aligned to the input index, with ``NaN`` where
the lookback window is not yet filled.
"""

from __future__ import annotations

from collections.abc import Sequence

import pandas as pd

from coinsight.core.utils.errors import AnalyticsError

CHART_INDICATORS: tuple[str, ...] = ("sma20", "sma50", "ema12", "ema26", "bollinger", "rsi", "macd")


def _to_series(prices: pd.Series | Sequence[float]) -> pd.Series:
    if isinstance(prices, pd.Series):
        return pd.to_numeric(prices, errors="coerce").astype(float)
    return pd.Series(list(prices), dtype=float)


def _validate_period(name: str, period: int) -> None:
    if period < 1:
        raise AnalyticsError(f"{name} must be >= 1, got {period}.")


def sma(prices: pd.Series | Sequence[float], period: int) -> pd.Series:
    """Simple moving average."""
    _validate_period("period", period)
    return _to_series(prices).rolling(window=period, min_periods=period).mean()


def ema(prices: pd.Series | Sequence[float], period: int) -> pd.Series:
    """Exponential moving average seeded with the first observation."""
    _validate_period("period", period)
    return _to_series(prices).ewm(span=period, adjust=False).mean()


def rsi(prices: pd.Series | Sequence[float], period: int = 14) -> pd.Series:
    """Relative strength index with Wilder smoothing, in ``[0, 100]``."""
    _validate_period("period", period)
    series = _to_series(prices)
    delta = series.diff()
    gains = delta.clip(lower=0.0)
    losses = -delta.clip(upper=0.0)
    average_gain = gains.ewm(alpha=1.0 / period, adjust=False, min_periods=period).mean()
    average_loss = losses.ewm(alpha=1.0 / period, adjust=False, min_periods=period).mean()

    relative_strength = average_gain / average_loss
    values = 100.0 - 100.0 / (1.0 + relative_strength)
    # no losses in the window: fully overbought
    values = values.mask((average_loss == 0.0) & average_gain.notna(), 100.0)
    return values


def macd(
    prices: pd.Series | Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> pd.DataFrame:
    """MACD line, signal line and histogram."""
    if fast >= slow:
        raise AnalyticsError(
            f"fast period must be shorter than slow period, got {fast} >= {slow}."
        )
    series = _to_series(prices)
    macd_line = ema(series, fast) - ema(series, slow)
    signal_line = ema(macd_line, signal)
    return pd.DataFrame(
        {"macd": macd_line, "signal": signal_line, "histogram": macd_line - signal_line},
        index=series.index,
    )


def bollinger_bands(
    prices: pd.Series | Sequence[float],
    period: int = 20,
    num_std: float = 2.0,
) -> pd.DataFrame:
    """Moving average with bands ``num_std`` population deviations away."""
    _validate_period("period", period)
    series = _to_series(prices)
    rolling = series.rolling(window=period, min_periods=period)
    middle = rolling.mean()
    spread = rolling.std(ddof=0) * num_std
    return pd.DataFrame(
        {"middle": middle, "upper": middle + spread, "lower": middle - spread},
        index=series.index,
    )


def donchian_channel(prices: pd.Series | Sequence[float], period: int = 20) -> pd.DataFrame:
    """Highest and lowest price over the ``period`` samples before each point."""
    _validate_period("period", period)
    prior = _to_series(prices).shift(1).rolling(window=period, min_periods=period)
    return pd.DataFrame({"upper": prior.max(), "lower": prior.min()})


def chart_indicators(
    prices: pd.Series | Sequence[float],
    names: Sequence[str] = CHART_INDICATORS,
) -> pd.DataFrame:
    """
    Price-chart overlays and oscillators, one column per plotted line.

    ``bollinger`` expands to ``bollinger_upper``/``bollinger_middle``/``bollinger_lower``
    and ``macd`` to ``macd``/``macd_signal``/``macd_histogram``.

    Raises:
        AnalyticsError: For an indicator name outside ``CHART_INDICATORS``.
    """
    unknown = [name for name in names if name not in CHART_INDICATORS]
    if unknown:
        raise AnalyticsError(
            f"Unknown indicators {unknown}. Supported: {', '.join(CHART_INDICATORS)}."
        )

    series = _to_series(prices)
    columns: dict[str, pd.Series] = {}
    for name in dict.fromkeys(names):
        if name.startswith("sma"):
            columns[name] = sma(series, int(name[3:]))
        elif name.startswith("ema"):
            columns[name] = ema(series, int(name[3:]))
        elif name == "rsi":
            columns[name] = rsi(series)
        elif name == "bollinger":
            bands = bollinger_bands(series)
            for band in ("upper", "middle", "lower"):
                columns[f"bollinger_{band}"] = bands[band]
        else:
            lines = macd(series)
            columns["macd"] = lines["macd"]
            columns["macd_signal"] = lines["signal"]
            columns["macd_histogram"] = lines["histogram"]
    return pd.DataFrame(columns, index=series.index)
