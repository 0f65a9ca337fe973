"""FastAPI application for Coinsight workflows."""

from __future__ import annotations

import math
from pathlib import Path
from typing import Any

import pandas as pd
from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse

from coinsight.api.jobs import InMemoryJobQueue, JobRecord
from coinsight.api.schemas import (
    BacktestJobRequest,
    BacktestRequest,
    BacktestResponse,
    EquityPointResponse,
    ErrorResponse,
    HealthResponse,
    IndicatorsRequest,
    IndicatorsResponse,
    JobErrorResponse,
    JobRecordResponse,
    PricePoint,
    RiskMetricsRequest,
    RiskMetricsResponse,
    TradeResponse,
)
from coinsight.core.analytics.indicators import CHART_INDICATORS, chart_indicators
from coinsight.core.backtest.engine import run_backtest
from coinsight.core.config import RiskConfig
from coinsight.core.services.analytics_service import (
    BacktestOutcome,
    RiskReport,
    risk_report_from_prices,
    risk_report_from_returns,
    run_backtest_from_config,
)
from coinsight.core.utils.env import load_dotenv
from coinsight.core.utils.errors import (
    AnalyticsError,
    ArtifactError,
    BacktestError,
    CacheError,
    CoinsightError,
    ConfigLoadError,
    DataFetchError,
    DataValidationError,
    InsufficientHistoryError,
    StrategyError,
)
from coinsight.core.utils.logging import configure_logging, get_logger

JOBS_LIMIT_QUERY = Query(default=50, ge=1, le=500)
_LOGGER_NAME = "coinsight.api.app"


def _http_status_for_coinsight_error(exc: CoinsightError) -> int:
    """Map typed domain exceptions to HTTP status codes."""
    if isinstance(exc, ConfigLoadError):
        return 400
    if isinstance(exc, DataFetchError):
        return 502
    if isinstance(exc, (DataValidationError, AnalyticsError, InsufficientHistoryError)):
        return 422
    if isinstance(exc, (StrategyError, BacktestError)):
        return 400
    if isinstance(exc, (CacheError, ArtifactError)):
        return 500
    return 500


def _finite_or_none(value: float) -> float | None:
    """JSON has no infinity; sentinel ``inf`` ratios are reported as ``null``."""
    return float(value) if math.isfinite(value) else None


def _finite_dict(values: dict[str, float]) -> dict[str, float | None]:
    return {key: _finite_or_none(value) for key, value in values.items()}


def _risk_response(report: RiskReport) -> RiskMetricsResponse:
    return RiskMetricsResponse(
        asset_id=report.asset_id,
        benchmark_id=report.benchmark_id,
        observations=report.observations,
        metrics=_finite_dict(report.metrics.to_dict()),
        value_at_risk=_finite_or_none(report.value_at_risk),
        expected_shortfall=_finite_or_none(report.expected_shortfall),
        confidence_level=report.confidence_level,
        var_method=report.var_method,
    )


def _price_frame(points: list[PricePoint]) -> pd.DataFrame:
    """Convert request price points into a UTC-indexed price frame."""
    index = pd.to_datetime([point.timestamp for point in points], utc=True)
    frame = pd.DataFrame(
        {
            "price": [point.price for point in points],
            "volume": [point.volume for point in points],
        },
        index=pd.DatetimeIndex(index, name="timestamp"),
    )
    return frame.sort_index()


def _job_response(record: JobRecord) -> JobRecordResponse:
    error = None
    if record.status == "failed":
        error = JobErrorResponse(
            error_code=record.error_code or "internal_error",
            message=record.error_message or "",
            traceback=record.error_traceback,
        )
    return JobRecordResponse(
        job_id=record.job_id,
        job_type=record.job_type,
        status=record.status,
        submitted_at=record.submitted_at,
        started_at=record.started_at,
        finished_at=record.finished_at,
        request=dict(record.request),
        result=record.result,
        error=error,
    )


def _outcome_payload(outcome: BacktestOutcome) -> dict[str, Any]:
    return {
        "run_id": outcome.run_id,
        "strategy_type": outcome.strategy_type,
        "asset_ids": list(outcome.asset_ids),
        "metrics": _finite_dict(outcome.metrics),
        "final_equity": outcome.result.final_equity,
        "value_at_risk": _finite_or_none(outcome.risk_report.value_at_risk),
        "expected_shortfall": _finite_or_none(outcome.risk_report.expected_shortfall),
        "artifact_paths": list(outcome.artifact_paths),
        "manifest_path": str(outcome.manifest_path),
    }


def create_app(job_queue: InMemoryJobQueue | None = None) -> FastAPI:
    """
    Build and return the Coinsight FastAPI app.

    Args:
        job_queue: Optional queue override; a fresh in-memory queue by default.
    """
    load_dotenv(Path(".env"))
    configure_logging()

    app = FastAPI(
        title="Coinsight API",
        version="0.1.0",
        description="Risk analytics and strategy backtesting for crypto assets.",
    )
    queue = job_queue or InMemoryJobQueue()
    app.state.job_queue = queue
    logger = get_logger(_LOGGER_NAME)
    logger.info("Coinsight API startup complete.")

    @app.exception_handler(CoinsightError)
    async def _handle_coinsight_error(_: Any, exc: CoinsightError) -> JSONResponse:
        """Render typed domain errors as JSON responses."""
        logger.error("Coinsight API error: %s", exc)
        payload = ErrorResponse(error_code=exc.error_code, message=str(exc))
        return JSONResponse(
            status_code=_http_status_for_coinsight_error(exc),
            content=payload.model_dump(),
        )

    @app.exception_handler(Exception)
    async def _handle_unexpected_error(_: Any, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled API error: %s", exc)
        payload = ErrorResponse(error_code="internal_error", message="Internal server error.")
        return JSONResponse(status_code=500, content=payload.model_dump())

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse()

    @app.post("/risk/metrics", response_model=RiskMetricsResponse)
    async def risk_metrics(request: RiskMetricsRequest) -> RiskMetricsResponse:
        """Compute risk metrics, VaR and expected shortfall from inline data."""
        risk_config = RiskConfig(
            risk_free_rate=request.risk_free_rate,
            periods_per_year=request.periods_per_year,
            confidence_level=request.confidence_level,
            var_method=request.var_method,
            return_kind=request.return_kind,
        )
        if request.prices is not None:
            report = risk_report_from_prices(
                asset_id=request.asset_id,
                prices=request.prices,
                benchmark_prices=request.benchmark_prices,
                benchmark_id=request.benchmark_id,
                risk_config=risk_config,
            )
        else:
            report = risk_report_from_returns(
                asset_id=request.asset_id,
                returns=request.returns or [],
                benchmark_returns=request.benchmark_returns,
                benchmark_id=request.benchmark_id,
                risk_config=risk_config,
            )
        return _risk_response(report)

    @app.post("/indicators", response_model=IndicatorsResponse)
    async def indicators(request: IndicatorsRequest) -> IndicatorsResponse:
        """Compute price-chart indicator lines from inline prices."""
        frame = chart_indicators(request.prices, request.indicators or CHART_INDICATORS)
        return IndicatorsResponse(
            observations=len(frame),
            indicators={
                column: [_finite_or_none(value) for value in frame[column].tolist()]
                for column in frame.columns
            },
        )

    @app.post("/backtests", response_model=BacktestResponse)
    async def backtests(request: BacktestRequest) -> BacktestResponse:
        """Run a backtest synchronously on caller-supplied prices."""
        frames = {asset: _price_frame(request.prices[asset]) for asset in request.config.asset_ids}
        result = run_backtest(request.config.to_strategy_config(), frames)
        return BacktestResponse(
            strategy_type=request.config.strategy_type,
            asset_ids=list(request.config.asset_ids),
            metrics=_finite_dict(result.summary_metrics()),
            final_equity=result.final_equity,
            risk_metrics=_finite_dict(result.risk_metrics.to_dict()),
            equity_curve=[EquityPointResponse(**point.to_dict()) for point in result.equity_curve],
            trades=[TradeResponse(**trade.to_dict()) for trade in result.trades],
        )

    @app.post("/jobs/backtests", response_model=JobRecordResponse, status_code=202)
    async def enqueue_backtest(request: BacktestJobRequest) -> JobRecordResponse:
        """Queue a config-driven backtest that fetches data and writes artifacts."""
        config_path = request.config_path

        def task() -> dict[str, Any]:
            return _outcome_payload(run_backtest_from_config(config_path=config_path))

        record = queue.submit(
            job_type="backtest",
            request={"config_path": str(config_path)},
            task=task,
        )
        return _job_response(record)

    @app.get("/jobs", response_model=list[JobRecordResponse])
    async def jobs(limit: int = JOBS_LIMIT_QUERY) -> list[JobRecordResponse]:
        return [_job_response(record) for record in queue.list(limit=limit)]

    @app.get("/jobs/{job_id}", response_model=JobRecordResponse)
    async def job_detail(job_id: str) -> JobRecordResponse:
        record = queue.get(job_id)
        if record is None:
            raise HTTPException(status_code=404, detail=f"Job '{job_id}' not found.")
        return _job_response(record)

    return app
