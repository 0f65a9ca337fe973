"""Risk analytics engine exports."""

from coinsight.core.analytics.risk import (
    calculate_alpha_beta,
    calculate_calmar_ratio,
    calculate_expected_shortfall,
    calculate_kurtosis,
    calculate_max_drawdown,
    calculate_returns,
    calculate_risk_metrics,
    calculate_sharpe_ratio,
    calculate_skewness,
    calculate_sortino_ratio,
    calculate_value_at_risk,
    calculate_volatility,
    rolling_sharpe_ratio,
    rolling_volatility,
    rolling_window,
)
from coinsight.core.analytics.types import AlphaBeta, DrawdownStats, RiskMetrics

__all__ = [
    "AlphaBeta",
    "DrawdownStats",
    "RiskMetrics",
    "calculate_alpha_beta",
    "calculate_calmar_ratio",
    "calculate_expected_shortfall",
    "calculate_kurtosis",
    "calculate_max_drawdown",
    "calculate_returns",
    "calculate_risk_metrics",
    "calculate_sharpe_ratio",
    "calculate_skewness",
    "calculate_sortino_ratio",
    "calculate_value_at_risk",
    "calculate_volatility",
    "rolling_sharpe_ratio",
    "rolling_volatility",
    "rolling_window",
]
