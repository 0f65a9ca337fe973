"""Data structures for backtest inputs and results."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from types import MappingProxyType
from typing import Any, Literal

from coinsight.core.analytics.types import RiskMetrics

RebalanceFrequency = Literal["daily", "weekly", "monthly"]
TradeAction = Literal["buy", "sell"]
TradeReason = Literal["signal", "stop_loss", "take_profit"]

REBALANCE_FREQUENCIES: tuple[str, ...] = ("daily", "weekly", "monthly")


class BacktestState(str, Enum):
    """Lifecycle of one simulator run."""

    CONFIGURING = "configuring"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class StrategyConfig:
    """
    Immutable input for one backtest run.

    ``strategy_params`` is stored as a read-only mapping and is left out of the
    hash, so configs hash by their scalar fields and compare by all fields.
    """

    strategy_type: str
    asset_ids: frozenset[str]
    start_date: date
    end_date: date
    initial_capital: float = 10_000.0
    position_size: float = 1.0
    rebalance_frequency: RebalanceFrequency = "monthly"
    transaction_cost: float = 0.001
    slippage: float = 0.001
    stop_loss: float | None = None
    take_profit: float | None = None
    strategy_params: Mapping[str, Any] = field(default_factory=dict, hash=False)
    rebalance_tolerance: float = 0.05

    def __post_init__(self) -> None:
        object.__setattr__(self, "strategy_params", MappingProxyType(dict(self.strategy_params)))

    def sorted_assets(self) -> list[str]:
        """Asset ids in deterministic processing order."""
        return sorted(self.asset_ids)


@dataclass(frozen=True)
class Trade:
    """One simulated fill."""

    date: date
    asset: str
    action: TradeAction
    price: float
    quantity: float
    value: float
    fee: float
    reason: TradeReason = "signal"
    pnl: float | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["date"] = self.date.isoformat()
        return payload


@dataclass(frozen=True)
class EquityCurvePoint:
    """Mark-to-market portfolio value at one rebalance boundary."""

    date: date
    value: float

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date.isoformat(), "value": self.value}


@dataclass(frozen=True)
class BacktestResult:
    """
    Outcome of one completed simulation.

    ``total_return`` and ``annualized_return`` are percentages; ``win_rate``
    and ``max_drawdown`` are fractions in ``[0, 1]``.
    """

    total_return: float
    annualized_return: float
    sharpe_ratio: float
    max_drawdown: float
    win_rate: float
    profit_factor: float
    num_trades: int
    equity_curve: tuple[EquityCurvePoint, ...]
    trades: tuple[Trade, ...]
    risk_metrics: RiskMetrics

    @property
    def final_equity(self) -> float:
        return self.equity_curve[-1].value

    def summary_metrics(self) -> dict[str, float]:
        """Headline scalar metrics, as shown on summary cards."""
        return {
            "total_return": self.total_return,
            "annualized_return": self.annualized_return,
            "sharpe_ratio": self.sharpe_ratio,
            "max_drawdown": self.max_drawdown,
            "win_rate": self.win_rate,
            "profit_factor": self.profit_factor,
            "num_trades": float(self.num_trades),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_return": self.total_return,
            "annualized_return": self.annualized_return,
            "sharpe_ratio": self.sharpe_ratio,
            "max_drawdown": self.max_drawdown,
            "win_rate": self.win_rate,
            "profit_factor": self.profit_factor,
            "num_trades": self.num_trades,
            "equity_curve": [point.to_dict() for point in self.equity_curve],
            "trades": [trade.to_dict() for trade in self.trades],
            "risk_metrics": self.risk_metrics.to_dict(),
        }
