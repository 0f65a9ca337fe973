"""Programmatic workflows shared by the CLI and the HTTP API."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from typing import Any
from uuid import uuid4

import pandas as pd

from coinsight.core.analytics.risk import (
    calculate_expected_shortfall,
    calculate_returns,
    calculate_risk_metrics,
    calculate_value_at_risk,
)
from coinsight.core.analytics.types import RiskMetrics
from coinsight.core.backtest.engine import PERIODS_PER_YEAR, run_backtest
from coinsight.core.backtest.types import BacktestResult
from coinsight.core.config import (
    AppConfig,
    BacktestRiskConfig,
    DataConfig,
    RiskConfig,
    dump_config_to_yaml,
    load_config,
)
from coinsight.core.data.base import PriceDataProvider
from coinsight.core.data.cache import ParquetCache
from coinsight.core.data.coingecko_provider import CoinGeckoProvider
from coinsight.core.utils.errors import ArtifactError, DataValidationError
from coinsight.core.utils.logging import get_logger
from coinsight.core.utils.manifest import RunManifestWriter
from coinsight.core.utils.plotting import save_equity_curve_plot

ProgressCallback = Callable[[str], None]
CONFIG_SNAPSHOT_FILENAME = "config.yaml"
TRADES_FILENAME = "trades.csv"
TRADE_COLUMNS = ["date", "asset", "action", "price", "quantity", "value", "fee", "reason", "pnl"]

logger = get_logger(__name__)


@dataclass(frozen=True)
class RiskReport:
    """Risk statistics for one asset over one window."""

    asset_id: str
    benchmark_id: str | None
    observations: int
    metrics: RiskMetrics
    value_at_risk: float
    expected_shortfall: float
    confidence_level: float
    var_method: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "benchmark_id": self.benchmark_id,
            "observations": self.observations,
            "metrics": self.metrics.to_dict(),
            "value_at_risk": self.value_at_risk,
            "expected_shortfall": self.expected_shortfall,
            "confidence_level": self.confidence_level,
            "var_method": self.var_method,
        }


@dataclass(frozen=True)
class BacktestOutcome:
    """Result payload for one completed config-driven backtest."""

    run_id: str
    strategy_type: str
    asset_ids: list[str]
    result: BacktestResult
    risk_report: RiskReport
    artifact_paths: list[str]
    manifest_path: Path

    @property
    def metrics(self) -> dict[str, float]:
        return self.result.summary_metrics()


def _emit_progress(callback: ProgressCallback | None, message: str) -> None:
    if callback is not None:
        callback(message)


def open_price_cache(data_config: DataConfig) -> ParquetCache:
    """Price cache for the configured quote currency."""
    return ParquetCache(data_config.cache_dir, namespace=data_config.vs_currency)


def _new_run_id() -> str:
    return f"{datetime.now(tz=UTC).strftime('%Y%m%dT%H%M%S')}-{uuid4().hex[:8]}"


def build_provider(data_config: DataConfig) -> CoinGeckoProvider:
    """Create the configured market data provider."""
    return CoinGeckoProvider(
        vs_currency=data_config.vs_currency,
        max_retries=data_config.max_retries,
        retry_backoff_seconds=data_config.retry_backoff_seconds,
    )


def load_price_frames(
    asset_ids: Sequence[str],
    start: date,
    end: date,
    cache: ParquetCache,
    provider: PriceDataProvider,
    progress_callback: ProgressCallback | None = None,
) -> dict[str, pd.DataFrame]:
    """
    Load daily prices for every asset through the cache.

    Raises:
        DataValidationError: If an asset has no data in the window.
    """
    frames: dict[str, pd.DataFrame] = {}
    for asset_id in asset_ids:
        logger.info("Loading %s prices from %s to %s", asset_id, start, end)
        _emit_progress(progress_callback, f"Loading {asset_id} prices from {start} to {end}")
        frame = cache.get_prices(
            asset_id=asset_id,
            start=start.isoformat(),
            end=end.isoformat(),
            fetcher=provider.fetch_prices,
        )
        if frame.empty:
            raise DataValidationError(f"Fetched no prices for asset '{asset_id}'.")
        frames[asset_id] = frame
        _emit_progress(
            progress_callback,
            f"{asset_id}: rows={len(frame)}, "
            f"range=[{frame.index.min().date()}, {frame.index.max().date()}]",
        )
    return frames


def risk_report_from_prices(
    asset_id: str,
    prices: Sequence[float],
    benchmark_prices: Sequence[float] | None = None,
    benchmark_id: str | None = None,
    risk_config: RiskConfig | None = None,
) -> RiskReport:
    """
    Build a risk report from aligned price sequences.

    Args:
        asset_id: Label for the asset.
        prices: Asset prices in time order.
        benchmark_prices: Optional benchmark prices aligned with ``prices``.
        benchmark_id: Label for the benchmark.
        risk_config: Annualization, VaR and return settings.
    """
    settings = risk_config or RiskConfig()
    returns = calculate_returns(prices, kind=settings.return_kind)
    benchmark_returns = (
        None
        if benchmark_prices is None
        else calculate_returns(benchmark_prices, kind=settings.return_kind)
    )
    return risk_report_from_returns(
        asset_id=asset_id,
        returns=returns,
        benchmark_returns=benchmark_returns,
        benchmark_id=benchmark_id,
        risk_config=settings,
    )


def risk_report_from_returns(
    asset_id: str,
    returns: Sequence[float],
    benchmark_returns: Sequence[float] | None = None,
    benchmark_id: str | None = None,
    risk_config: RiskConfig | None = None,
) -> RiskReport:
    settings = risk_config or RiskConfig()
    metrics = calculate_risk_metrics(
        returns,
        benchmark_returns=benchmark_returns,
        risk_free_rate=settings.risk_free_rate,
        window_size=settings.periods_per_year,
    )
    return RiskReport(
        asset_id=asset_id,
        benchmark_id=benchmark_id if benchmark_returns is not None else None,
        observations=len(returns),
        metrics=metrics,
        value_at_risk=calculate_value_at_risk(
            returns, settings.confidence_level, settings.var_method
        ),
        expected_shortfall=calculate_expected_shortfall(returns, settings.confidence_level),
        confidence_level=settings.confidence_level,
        var_method=settings.var_method,
    )


def compute_asset_risk(
    asset_id: str,
    start: date,
    end: date,
    cache: ParquetCache,
    provider: PriceDataProvider,
    benchmark_id: str | None = None,
    risk_config: RiskConfig | None = None,
    progress_callback: ProgressCallback | None = None,
) -> RiskReport:
    """
    Fetch prices and compute a risk report for one asset.

    With a benchmark, both series are inner-joined on their timestamps so
    the regression sees aligned returns.
    """
    asset_ids = [asset_id] if benchmark_id is None else [asset_id, benchmark_id]
    frames = load_price_frames(asset_ids, start, end, cache, provider, progress_callback)

    if benchmark_id is None:
        return risk_report_from_prices(
            asset_id, frames[asset_id]["price"].tolist(), risk_config=risk_config
        )

    aligned = pd.concat(
        [frames[asset_id]["price"].rename("asset"), frames[benchmark_id]["price"].rename("bench")],
        axis=1,
        join="inner",
    )
    _emit_progress(progress_callback, f"Aligned {len(aligned)} observations with {benchmark_id}")
    return risk_report_from_prices(
        asset_id,
        aligned["asset"].tolist(),
        benchmark_prices=aligned["bench"].tolist(),
        benchmark_id=benchmark_id,
        risk_config=risk_config,
    )


def equity_risk_report(
    result: BacktestResult,
    settings: BacktestRiskConfig,
    rebalance_frequency: str,
) -> RiskReport:
    """Risk report for a strategy equity curve, sampled at rebalance boundaries."""
    return risk_report_from_prices(
        "portfolio",
        [point.value for point in result.equity_curve],
        risk_config=settings.for_frequency(PERIODS_PER_YEAR[rebalance_frequency]),
    )


def _write_run_artifacts(
    app_config: AppConfig, result: BacktestResult, run_dir: Path
) -> list[str]:
    """Write the config snapshot, trade blotter and optional equity plot."""
    artifact_paths: list[str] = []
    try:
        run_dir.mkdir(parents=True, exist_ok=True)
        config_path = run_dir / CONFIG_SNAPSHOT_FILENAME
        config_path.write_text(dump_config_to_yaml(app_config), encoding="utf-8")
        artifact_paths.append(str(config_path))

        trades_path = run_dir / TRADES_FILENAME
        trades_frame = pd.DataFrame(
            [trade.to_dict() for trade in result.trades],
            columns=TRADE_COLUMNS,
        )
        trades_frame.to_csv(trades_path, index=False)
        artifact_paths.append(str(trades_path))
    except OSError as exc:
        raise ArtifactError(f"Failed to write run artifacts in {run_dir}: {exc}") from exc

    if app_config.output.save_equity_plot:
        plot_path = save_equity_curve_plot(
            equity_curve=result.equity_curve,
            output_dir=run_dir,
            filename=app_config.output.equity_plot_filename,
            trades=result.trades,
        )
        artifact_paths.append(str(plot_path))
    return artifact_paths


def new_backtest_manifest(
    app_config: AppConfig, config_path: Path | None = None
) -> RunManifestWriter:
    """Create the manifest writer for a new run under ``output.artifacts_dir/<run_id>``."""
    settings = app_config.backtest
    run_id = _new_run_id()
    manifest_writer = RunManifestWriter(
        output_dir=app_config.output.artifacts_dir / run_id, command="backtest", run_id=run_id
    )
    manifest_writer.set_inputs(config_path=config_path, cache_dir=app_config.data.cache_dir)
    manifest_writer.set_context(
        strategy_type=settings.strategy_type,
        asset_ids=list(settings.asset_ids),
        start=settings.start.isoformat(),
        end=settings.end.isoformat(),
    )
    return manifest_writer


def run_backtest_from_app_config(
    app_config: AppConfig,
    config_path: Path | None = None,
    provider: PriceDataProvider | None = None,
    progress_callback: ProgressCallback | None = None,
    manifest_writer: RunManifestWriter | None = None,
) -> BacktestOutcome:
    """
    Fetch data, run the simulator and write the run's artifacts and manifest.

    On failure the manifest is marked failed and written before re-raising.

    Args:
        app_config: Validated application config.
        config_path: Source YAML path, recorded in the manifest.
        provider: Optional provider override; defaults to CoinGecko.
        progress_callback: Optional callback for status messages.
        manifest_writer: Optional writer from ``new_backtest_manifest``.
    """
    settings = app_config.backtest
    manifest_writer = manifest_writer or new_backtest_manifest(app_config, config_path)
    run_id = manifest_writer.run_id
    run_dir = manifest_writer.output_dir

    try:
        strategy_config = settings.to_strategy_config()
        cache = open_price_cache(app_config.data)
        data_provider = provider or build_provider(app_config.data)
        fetch_start = settings.start - timedelta(days=app_config.data.warmup_days)
        frames = load_price_frames(
            settings.asset_ids,
            fetch_start,
            settings.end,
            cache,
            data_provider,
            progress_callback,
        )

        _emit_progress(progress_callback, f"Running {settings.strategy_type} backtest ({run_id})")
        result = run_backtest(strategy_config, frames)
        risk_report = equity_risk_report(result, app_config.risk, settings.rebalance_frequency)
        artifact_paths = _write_run_artifacts(app_config, result, run_dir)

        manifest_writer.mark_success(
            metrics=result.summary_metrics(),
            artifact_paths=artifact_paths,
            extra={
                "final_equity": result.final_equity,
                "risk_report": risk_report.to_dict(),
            },
        )
        manifest_path = manifest_writer.write()
    except Exception as exc:
        try:
            manifest_writer.mark_failure(exc)
            manifest_writer.write()
        except Exception as manifest_exc:
            logger.error("Failed to write failure manifest for %s: %s", run_id, manifest_exc)
        raise

    return BacktestOutcome(
        run_id=run_id,
        strategy_type=settings.strategy_type,
        asset_ids=list(settings.asset_ids),
        result=result,
        risk_report=risk_report,
        artifact_paths=[*artifact_paths, str(manifest_path)],
        manifest_path=manifest_path,
    )


def run_backtest_from_config(
    config_path: Path,
    provider: PriceDataProvider | None = None,
    progress_callback: ProgressCallback | None = None,
) -> BacktestOutcome:
    """Load a YAML config and run its backtest."""
    app_config = load_config(config_path)
    return run_backtest_from_app_config(
        app_config,
        config_path=config_path,
        provider=provider,
        progress_callback=progress_callback,
    )

