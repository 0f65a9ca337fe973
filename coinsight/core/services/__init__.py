"""Service-layer workflows for CLI and API orchestration."""

from coinsight.core.services.analytics_service import (
    BacktestOutcome,
    RiskReport,
    build_provider,
    compute_asset_risk,
    equity_risk_report,
    load_price_frames,
    new_backtest_manifest,
    open_price_cache,
    risk_report_from_prices,
    risk_report_from_returns,
    run_backtest_from_app_config,
    run_backtest_from_config,
)

__all__ = [
    "BacktestOutcome",
    "RiskReport",
    "build_provider",
    "compute_asset_risk",
    "equity_risk_report",
    "load_price_frames",
    "new_backtest_manifest",
    "open_price_cache",
    "risk_report_from_prices",
    "risk_report_from_returns",
    "run_backtest_from_app_config",
    "run_backtest_from_config",
]
