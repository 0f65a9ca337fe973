"""Value objects produced by the risk analytics engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Literal

ReturnKind = Literal["simple", "log"]
VaRMethod = Literal["historical", "parametric"]


@dataclass(frozen=True)
class DrawdownStats:
    """Largest peak-to-trough decline of a price path."""

    max_drawdown: float
    peak_index: int
    trough_index: int
    duration: int


@dataclass(frozen=True)
class AlphaBeta:
    """Regression of excess asset returns on excess benchmark returns."""

    alpha: float
    beta: float
    r_squared: float


@dataclass(frozen=True)
class RiskMetrics:
    """Full set of risk/performance statistics for one return series."""

    volatility: float
    sharpe_ratio: float
    sortino_ratio: float
    max_drawdown: float
    calmar_ratio: float
    alpha: float
    beta: float
    r_squared: float
    skewness: float
    kurtosis: float

    def to_dict(self) -> dict[str, float]:
        """Return metrics keyed by their public field names."""
        return {key: float(value) for key, value in asdict(self).items()}
