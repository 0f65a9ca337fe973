"""Risk and performance statistics over price and return series.

All statistics use population moments (divide by ``N``). Ratios whose
denominator is zero return a sentinel (``0.0``, or ``math.inf`` for a Sortino
ratio without losing periods) instead of raising.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from functools import partial

import numpy as np

from coinsight.core.analytics.types import (
    AlphaBeta,
    DrawdownStats,
    ReturnKind,
    RiskMetrics,
    VaRMethod,
)
from coinsight.core.utils.errors import (
    AnalyticsError,
    InsufficientDataError,
    LengthMismatchError,
    UnsupportedConfidenceLevelError,
)

TRADING_DAYS_PER_YEAR = 252
ALPHA_ANNUALIZATION = 252
SYNTHETIC_INDEX_BASE = 100.0
PARAMETRIC_Z_SCORES: dict[float, float] = {0.95: 1.645, 0.99: 2.326}

FloatSequence = Sequence[float] | np.ndarray


def _as_array(values: FloatSequence) -> np.ndarray:
    """Convert a numeric sequence (list, array, ``pd.Series``) to a float array."""
    return np.asarray(values, dtype=float).reshape(-1)


def _validate_confidence_level(confidence_level: float) -> None:
    if not 0.0 < confidence_level < 1.0:
        raise AnalyticsError(
            f"confidence_level must be between 0 and 1 (exclusive), got {confidence_level}."
        )


def calculate_returns(prices: FloatSequence, kind: ReturnKind = "log") -> list[float]:
    """
    Convert a price path into period returns.

    Args:
        prices: Ordered positive prices.
        kind: ``"log"`` for ``ln(p[i]/p[i-1])`` or ``"simple"`` for
            ``(p[i]-p[i-1])/p[i-1]``.

    Returns:
        Returns with one fewer element than ``prices``.

    Raises:
        InsufficientDataError: If fewer than two prices are given.
    """
    values = _as_array(prices)
    if values.size < 2:
        raise InsufficientDataError(
            f"At least 2 prices are required to compute returns, got {values.size}."
        )
    if kind == "log":
        computed = np.log(values[1:] / values[:-1])
    elif kind == "simple":
        computed = (values[1:] - values[:-1]) / values[:-1]
    else:
        raise AnalyticsError(f"Unknown return kind '{kind}'. Expected 'simple' or 'log'.")
    return [float(value) for value in computed]


def calculate_volatility(
    returns: FloatSequence,
    periods_per_year: int = TRADING_DAYS_PER_YEAR,
) -> float:
    """Annualized population standard deviation; ``0.0`` for fewer than two returns."""
    values = _as_array(returns)
    if values.size < 2:
        return 0.0
    return float(np.std(values) * math.sqrt(periods_per_year))


def calculate_sharpe_ratio(
    returns: FloatSequence,
    risk_free_rate: float = 0.0,
    periods_per_year: int = TRADING_DAYS_PER_YEAR,
) -> float:
    """Annualized excess mean return over annualized volatility."""
    values = _as_array(returns)
    if values.size == 0:
        return 0.0
    volatility = calculate_volatility(values, periods_per_year)
    if volatility == 0.0:
        return 0.0
    annualized_return = float(np.mean(values)) * periods_per_year
    return (annualized_return - risk_free_rate) / volatility


def calculate_sortino_ratio(
    returns: FloatSequence,
    risk_free_rate: float = 0.0,
    periods_per_year: int = TRADING_DAYS_PER_YEAR,
) -> float:
    """
    Annualized excess mean return over annualized downside deviation.

    The downside variance sums squared negative returns but divides by the
    full sample count.

    Returns:
        ``math.inf`` when no return is negative, ``0.0`` for empty input or a
        zero downside deviation.
    """
    values = _as_array(returns)
    if values.size == 0:
        return 0.0
    negatives = values[values < 0.0]
    if negatives.size == 0:
        return math.inf

    downside_variance = float(np.sum(negatives**2)) / values.size
    downside_deviation = math.sqrt(downside_variance) * math.sqrt(periods_per_year)
    if downside_deviation == 0.0:
        return 0.0
    annualized_return = float(np.mean(values)) * periods_per_year
    return (annualized_return - risk_free_rate) / downside_deviation


def calculate_max_drawdown(prices: FloatSequence) -> DrawdownStats:
    """
    Find the largest decline from a running peak.

    Args:
        prices: Ordered prices (or any positive value path).

    Returns:
        Drawdown as a fraction in ``[0, 1]`` with the peak/trough indices.
        All fields are zero for fewer than two points or a path that never
        falls below its running peak.
    """
    values = _as_array(prices)
    if values.size < 2:
        return DrawdownStats(max_drawdown=0.0, peak_index=0, trough_index=0, duration=0)

    running_peak = np.maximum.accumulate(values)
    drawdowns = (running_peak - values) / running_peak
    trough_index = int(np.argmax(drawdowns))
    max_drawdown = float(drawdowns[trough_index])
    if max_drawdown <= 0.0:
        return DrawdownStats(max_drawdown=0.0, peak_index=0, trough_index=0, duration=0)

    # first index at the running peak
    peak_index = int(np.argmax(values[: trough_index + 1]))
    return DrawdownStats(
        max_drawdown=max_drawdown,
        peak_index=peak_index,
        trough_index=trough_index,
        duration=trough_index - peak_index,
    )


def calculate_calmar_ratio(
    returns: FloatSequence,
    prices: FloatSequence,
    periods_per_year: int = TRADING_DAYS_PER_YEAR,
) -> float:
    """Annualized mean return divided by the max drawdown fraction of ``prices``."""
    values = _as_array(returns)
    if values.size == 0:
        return 0.0
    max_drawdown = calculate_max_drawdown(prices).max_drawdown
    if max_drawdown == 0.0:
        return 0.0
    return float(np.mean(values)) * periods_per_year / max_drawdown


def calculate_alpha_beta(
    asset_returns: FloatSequence,
    benchmark_returns: FloatSequence,
    risk_free_rate: float = 0.0,
) -> AlphaBeta:
    """
    Regress excess asset returns on excess benchmark returns.

    The per-period risk-free rate and the alpha annualization both use 252
    periods per year, independent of the annualization used elsewhere.

    Raises:
        LengthMismatchError: If the two series differ in length.
    """
    asset = _as_array(asset_returns)
    benchmark = _as_array(benchmark_returns)
    if asset.size != benchmark.size:
        raise LengthMismatchError(
            f"Asset and benchmark return series differ in length: "
            f"{asset.size} != {benchmark.size}."
        )
    if asset.size == 0:
        return AlphaBeta(alpha=0.0, beta=0.0, r_squared=0.0)

    period_risk_free = risk_free_rate / ALPHA_ANNUALIZATION
    asset_excess = asset - period_risk_free
    benchmark_excess = benchmark - period_risk_free
    asset_mean = float(np.mean(asset_excess))
    benchmark_mean = float(np.mean(benchmark_excess))

    asset_deviation = asset_excess - asset_mean
    benchmark_deviation = benchmark_excess - benchmark_mean
    covariance = float(np.mean(asset_deviation * benchmark_deviation))
    benchmark_variance = float(np.mean(benchmark_deviation * benchmark_deviation))
    if benchmark_variance == 0.0:
        return AlphaBeta(alpha=0.0, beta=0.0, r_squared=0.0)

    beta = covariance / benchmark_variance
    intercept = asset_mean - beta * benchmark_mean
    fitted = intercept + beta * benchmark_excess
    total_ss = float(np.sum(asset_deviation**2))
    residual_ss = float(np.sum((asset_excess - fitted) ** 2))
    r_squared = 0.0 if total_ss == 0.0 else 1.0 - residual_ss / total_ss

    return AlphaBeta(alpha=intercept * ALPHA_ANNUALIZATION, beta=beta, r_squared=r_squared)


def _standardized_moment(values: np.ndarray, order: int) -> float:
    """Population standardized moment; ``0.0`` for empty input or zero spread."""
    if values.size == 0:
        return 0.0
    std = float(np.std(values))
    if std == 0.0:
        return 0.0
    return float(np.mean(((values - np.mean(values)) / std) ** order))


def calculate_skewness(returns: FloatSequence) -> float:
    """Third standardized population moment."""
    return _standardized_moment(_as_array(returns), 3)


def calculate_kurtosis(returns: FloatSequence) -> float:
    """Excess kurtosis (fourth standardized population moment minus 3)."""
    values = _as_array(returns)
    raw = _standardized_moment(values, 4)
    if raw == 0.0:
        return 0.0
    return raw - 3.0


def _parametric_z_score(confidence_level: float) -> float:
    for level, z_score in PARAMETRIC_Z_SCORES.items():
        if math.isclose(confidence_level, level):
            return z_score
    supported = ", ".join(str(level) for level in PARAMETRIC_Z_SCORES)
    raise UnsupportedConfidenceLevelError(
        f"Parametric VaR supports confidence levels {supported}; got {confidence_level}."
    )


def calculate_value_at_risk(
    returns: FloatSequence,
    confidence_level: float = 0.95,
    method: VaRMethod = "historical",
) -> float:
    """
    One-period value at risk, reported as a positive loss.

    ``historical`` negates the ``floor((1 - confidence_level) * n)``-th smallest
    return. ``parametric`` negates ``mean - z * std`` and only knows the
    z-scores for 95% and 99%.
    """
    _validate_confidence_level(confidence_level)
    values = _as_array(returns)
    if values.size == 0:
        return 0.0

    if method == "historical":
        ordered = np.sort(values)
        index = math.floor((1.0 - confidence_level) * ordered.size)
        index = min(max(index, 0), ordered.size - 1)
        return float(-ordered[index])
    if method == "parametric":
        z_score = _parametric_z_score(confidence_level)
        return float(-(np.mean(values) - z_score * np.std(values)))
    raise AnalyticsError(f"Unknown VaR method '{method}'. Expected 'historical' or 'parametric'.")


def calculate_expected_shortfall(returns: FloatSequence, confidence_level: float = 0.95) -> float:
    """Average loss over returns at or below the negated historical VaR."""
    values = _as_array(returns)
    if values.size == 0:
        return 0.0
    value_at_risk = calculate_value_at_risk(values, confidence_level, "historical")
    tail = values[values <= -value_at_risk]
    if tail.size == 0:
        return value_at_risk
    return float(-np.mean(tail))


def synthetic_index_path(returns: FloatSequence, base: float = SYNTHETIC_INDEX_BASE) -> list[float]:
    """Compound returns onto an index starting at ``base`` (``len(returns) + 1`` points)."""
    values = _as_array(returns)
    path = [base]
    for value in values:
        path.append(path[-1] * (1.0 + float(value)))
    return path


def calculate_risk_metrics(
    returns: FloatSequence,
    benchmark_returns: FloatSequence | None = None,
    risk_free_rate: float = 0.0,
    window_size: int = TRADING_DAYS_PER_YEAR,
) -> RiskMetrics:
    """
    Compute the full ``RiskMetrics`` set for one return series.

    Drawdown and Calmar are measured on a synthetic index path rebuilt from
    ``returns`` (base 100), not on the asset's real prices.

    Args:
        returns: Period returns.
        benchmark_returns: Optional benchmark returns of the same length; when
            omitted alpha, beta and R² are zero.
        risk_free_rate: Annual risk-free rate.
        window_size: Periods per year used for annualization.

    Returns:
        Fully populated metrics.
    """
    values = _as_array(returns)
    index_path = synthetic_index_path(values)

    regression = AlphaBeta(alpha=0.0, beta=0.0, r_squared=0.0)
    if benchmark_returns is not None:
        regression = calculate_alpha_beta(values, benchmark_returns, risk_free_rate)

    return RiskMetrics(
        volatility=calculate_volatility(values, window_size),
        sharpe_ratio=calculate_sharpe_ratio(values, risk_free_rate, window_size),
        sortino_ratio=calculate_sortino_ratio(values, risk_free_rate, window_size),
        max_drawdown=calculate_max_drawdown(index_path).max_drawdown,
        calmar_ratio=calculate_calmar_ratio(values, index_path, window_size),
        alpha=regression.alpha,
        beta=regression.beta,
        r_squared=regression.r_squared,
        skewness=calculate_skewness(values),
        kurtosis=calculate_kurtosis(values),
    )


def rolling_window(
    values: FloatSequence,
    window_size: int,
    fn: Callable[[np.ndarray], float],
) -> list[float]:
    """
    Apply ``fn`` to every trailing window of ``window_size`` values.

    Returns:
        ``len(values) - window_size + 1`` results, or an empty list when the
        input is shorter than one window.
    """
    if window_size < 1:
        raise AnalyticsError(f"window_size must be >= 1, got {window_size}.")
    data = _as_array(values)
    return [
        float(fn(data[end - window_size : end])) for end in range(window_size, data.size + 1)
    ]


def rolling_volatility(
    returns: FloatSequence,
    window_size: int,
    periods_per_year: int = TRADING_DAYS_PER_YEAR,
) -> list[float]:
    """Annualized volatility over each trailing window."""
    return rolling_window(
        returns, window_size, partial(calculate_volatility, periods_per_year=periods_per_year)
    )


def rolling_sharpe_ratio(
    returns: FloatSequence,
    window_size: int,
    risk_free_rate: float = 0.0,
    periods_per_year: int = TRADING_DAYS_PER_YEAR,
) -> list[float]:
    """Sharpe ratio over each trailing window."""
    return rolling_window(
        returns,
        window_size,
        partial(
            calculate_sharpe_ratio,
            risk_free_rate=risk_free_rate,
            periods_per_year=periods_per_year,
        ),
    )
