"""Pydantic schemas for Coinsight API endpoints."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from coinsight.core.config import BacktestSettings


class HealthResponse(BaseModel):
    """Health endpoint response."""

    status: str = "ok"
    service: str = "coinsight-api"


class ErrorResponse(BaseModel):
    """Error payload for typed API failures."""

    error_code: str
    message: str


class RiskMetricsRequest(BaseModel):
    """
    Risk endpoint request payload.

    Provide either ``prices`` or ``returns`` for the asset; a benchmark, when
    given, must use the same representation and length.
    """

    asset_id: str = "asset"
    prices: list[float] | None = None
    returns: list[float] | None = None
    benchmark_id: str | None = None
    benchmark_prices: list[float] | None = None
    benchmark_returns: list[float] | None = None
    risk_free_rate: float = 0.0
    periods_per_year: int = Field(default=252, gt=0)
    confidence_level: float = Field(default=0.95, gt=0.0, lt=1.0)
    var_method: Literal["historical", "parametric"] = "historical"
    return_kind: Literal["simple", "log"] = "log"

    @model_validator(mode="after")
    def validate_series(self) -> RiskMetricsRequest:
        """Enforce exactly one series representation."""
        if (self.prices is None) == (self.returns is None):
            raise ValueError("Provide exactly one of prices or returns.")
        if self.prices is not None and self.benchmark_returns is not None:
            raise ValueError("Use benchmark_prices together with prices.")
        if self.returns is not None and self.benchmark_prices is not None:
            raise ValueError("Use benchmark_returns together with returns.")
        return self


class RiskMetricsResponse(BaseModel):
    """Risk endpoint response payload. Non-finite values are reported as ``null``."""

    asset_id: str
    benchmark_id: str | None = None
    observations: int
    metrics: dict[str, float | None]
    value_at_risk: float | None
    expected_shortfall: float | None
    confidence_level: float
    var_method: str


class IndicatorsRequest(BaseModel):
    """Chart indicator request; all chart indicators when ``indicators`` is omitted."""

    prices: list[float] = Field(min_length=1)
    indicators: list[str] | None = None


class IndicatorsResponse(BaseModel):
    """Indicator lines aligned with the input prices; warm-up points are ``null``."""

    observations: int
    indicators: dict[str, list[float | None]]


class PricePoint(BaseModel):
    """One price observation."""

    timestamp: datetime
    price: float = Field(gt=0.0)
    volume: float = Field(default=0.0, ge=0.0)


class BacktestRequest(BaseModel):
    """Inline backtest request: settings plus the price series for every asset."""

    config: BacktestSettings
    prices: dict[str, list[PricePoint]]

    @model_validator(mode="after")
    def validate_prices(self) -> BacktestRequest:
        missing = [asset for asset in self.config.asset_ids if not self.prices.get(asset)]
        if missing:
            raise ValueError(f"Missing prices for assets: {missing}")
        return self


class TradeResponse(BaseModel):
    """One simulated fill."""

    date: str
    asset: str
    action: Literal["buy", "sell"]
    price: float
    quantity: float
    value: float
    fee: float
    reason: str
    pnl: float | None = None


class EquityPointResponse(BaseModel):
    """One equity curve point."""

    date: str
    value: float


class BacktestResponse(BaseModel):
    """Inline backtest response payload."""

    strategy_type: str
    asset_ids: list[str]
    metrics: dict[str, float | None]
    final_equity: float
    risk_metrics: dict[str, float | None]
    equity_curve: list[EquityPointResponse]
    trades: list[TradeResponse]


class BacktestJobRequest(BaseModel):
    """Background backtest request payload."""

    config_path: Path


class JobErrorResponse(BaseModel):
    """Background job error payload."""

    error_code: str
    message: str
    traceback: str | None = None


class JobRecordResponse(BaseModel):
    """Background job status payload."""

    job_id: str
    job_type: Literal["backtest"]
    status: Literal["queued", "running", "succeeded", "failed"]
    submitted_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    request: dict[str, Any]
    result: dict[str, Any] | None = None
    error: JobErrorResponse | None = None
