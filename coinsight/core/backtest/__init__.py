"""Backtest simulator exports."""

from coinsight.core.backtest.engine import BacktestSimulator, rebalance_boundaries, run_backtest
from coinsight.core.backtest.types import (
    BacktestResult,
    BacktestState,
    EquityCurvePoint,
    StrategyConfig,
    Trade,
)

__all__ = [
    "BacktestResult",
    "BacktestSimulator",
    "BacktestState",
    "EquityCurvePoint",
    "StrategyConfig",
    "Trade",
    "rebalance_boundaries",
    "run_backtest",
]
