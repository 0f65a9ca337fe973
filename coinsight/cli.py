"""Coinsight command-line interface."""

from __future__ import annotations

import math
from datetime import datetime
from pathlib import Path

import typer
from pydantic import ValidationError

from coinsight.core.config import DataConfig, RiskConfig, load_config
from coinsight.core.research.strategy import registered_strategies
from coinsight.core.services.analytics_service import (
    build_provider,
    compute_asset_risk,
    new_backtest_manifest,
    open_price_cache,
    run_backtest_from_app_config,
)
from coinsight.core.utils.env import load_dotenv
from coinsight.core.utils.errors import ConfigLoadError, exit_code_for_exception
from coinsight.core.utils.logging import configure_logging, get_logger
from coinsight.core.utils.manifest import RunManifestWriter

app = typer.Typer(help="Coinsight CLI", no_args_is_help=True)
DEFAULT_CACHE_DIR = Path("data/cache")
DATE_FORMATS = ["%Y-%m-%d"]

RISK_ASSET_OPTION = typer.Option(..., "--asset", help="CoinGecko asset id, e.g. bitcoin.")
RISK_BENCHMARK_OPTION = typer.Option(
    None, "--benchmark", help="Optional benchmark asset id for alpha/beta."
)
RISK_START_OPTION = typer.Option(..., "--start", formats=DATE_FORMATS, help="Inclusive start.")
RISK_END_OPTION = typer.Option(..., "--end", formats=DATE_FORMATS, help="Inclusive end.")
RISK_CACHE_DIR_OPTION = typer.Option(
    DEFAULT_CACHE_DIR,
    "--cache-dir",
    file_okay=False,
    dir_okay=True,
    resolve_path=True,
    help="Parquet price cache directory.",
)
RISK_FREE_RATE_OPTION = typer.Option(0.0, "--risk-free-rate", help="Annual risk-free rate.")
RISK_PERIODS_OPTION = typer.Option(252, "--periods-per-year", min=1, help="Annualization factor.")
RISK_CONFIDENCE_OPTION = typer.Option(0.95, "--confidence", help="VaR confidence level.")
RISK_VAR_METHOD_OPTION = typer.Option(
    "historical", "--var-method", help="VaR method: historical or parametric."
)
RISK_RETURN_KIND_OPTION = typer.Option(
    "log", "--return-kind", help="Return definition: simple or log."
)
RISK_CURRENCY_OPTION = typer.Option("usd", "--vs-currency", help="Quote currency.")

BACKTEST_CONFIG_OPTION = typer.Option(
    ...,
    "--config",
    file_okay=True,
    dir_okay=False,
    resolve_path=True,
    help="Path to YAML configuration file.",
)


@app.callback()
def callback() -> None:
    """Coinsight CLI commands."""


def _format_value(value: float) -> str:
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    return f"{value:.6f}"


def _print_metrics(metrics: dict[str, float], prefix: str = "") -> None:
    """Print metrics in deterministic key order."""
    for key in sorted(metrics):
        typer.echo(f"{prefix}{key}={_format_value(float(metrics[key]))}")


def _handle_cli_exception(
    logger_name: str,
    context: str,
    exc: Exception,
    manifest_writer: RunManifestWriter | None = None,
) -> None:
    """Log diagnostics, point at the failure manifest and exit with a typed code."""
    logger = get_logger(logger_name)
    logger.exception("%s failed: %s", context, exc)
    if manifest_writer is not None and manifest_writer.status == "failed":
        if manifest_writer.path.exists():
            typer.echo(f"manifest={manifest_writer.path}")
    raise typer.Exit(code=exit_code_for_exception(exc)) from None


@app.command("risk")
def risk(
    asset: str = RISK_ASSET_OPTION,
    start: datetime = RISK_START_OPTION,
    end: datetime = RISK_END_OPTION,
    benchmark: str | None = RISK_BENCHMARK_OPTION,
    cache_dir: Path = RISK_CACHE_DIR_OPTION,
    risk_free_rate: float = RISK_FREE_RATE_OPTION,
    periods_per_year: int = RISK_PERIODS_OPTION,
    confidence: float = RISK_CONFIDENCE_OPTION,
    var_method: str = RISK_VAR_METHOD_OPTION,
    return_kind: str = RISK_RETURN_KIND_OPTION,
    vs_currency: str = RISK_CURRENCY_OPTION,
) -> None:
    """Compute risk metrics, VaR and expected shortfall for one asset."""
    load_dotenv(Path(".env"))
    configure_logging()
    logger_name = __name__

    try:
        try:
            risk_config = RiskConfig(
                risk_free_rate=risk_free_rate,
                periods_per_year=periods_per_year,
                confidence_level=confidence,
                var_method=var_method,
                return_kind=return_kind,
            )
            data_config = DataConfig(vs_currency=vs_currency, cache_dir=cache_dir)
        except ValidationError as exc:
            raise ConfigLoadError(f"Invalid risk options: {exc}") from exc
        if start.date() >= end.date():
            raise ConfigLoadError("--start must be before --end.")

        report = compute_asset_risk(
            asset_id=asset,
            start=start.date(),
            end=end.date(),
            cache=open_price_cache(data_config),
            provider=build_provider(data_config),
            benchmark_id=benchmark,
            risk_config=risk_config,
            progress_callback=typer.echo,
        )
    except Exception as exc:
        _handle_cli_exception(logger_name=logger_name, context="Risk command", exc=exc)

    typer.echo(f"asset={report.asset_id}")
    if report.benchmark_id is not None:
        typer.echo(f"benchmark={report.benchmark_id}")
    typer.echo(f"observations={report.observations}")
    _print_metrics(report.metrics.to_dict())
    typer.echo(f"value_at_risk={_format_value(report.value_at_risk)}")
    typer.echo(f"expected_shortfall={_format_value(report.expected_shortfall)}")


@app.command("backtest")
def backtest(config: Path = BACKTEST_CONFIG_OPTION) -> None:
    """
    Run a deterministic strategy backtest from a YAML config.

    Writes the config snapshot, trades, equity plot and a run manifest under
    ``output.artifacts_dir/<run_id>``.
    """
    load_dotenv(Path(".env"))
    configure_logging()
    logger_name = __name__

    manifest_writer: RunManifestWriter | None = None

    try:
        app_config = load_config(config)
        manifest_writer = new_backtest_manifest(app_config, config_path=config)
        outcome = run_backtest_from_app_config(
            app_config,
            config_path=config,
            progress_callback=typer.echo,
            manifest_writer=manifest_writer,
        )
    except Exception as exc:
        _handle_cli_exception(
            logger_name=logger_name,
            context="Backtest command",
            exc=exc,
            manifest_writer=manifest_writer,
        )

    typer.echo(f"run_id={outcome.run_id}")
    typer.echo(f"strategy={outcome.strategy_type}")
    typer.echo(f"assets={','.join(outcome.asset_ids)}")
    _print_metrics(outcome.metrics)
    typer.echo(f"final_equity={outcome.result.final_equity:.2f}")
    typer.echo(f"value_at_risk={_format_value(outcome.risk_report.value_at_risk)}")
    typer.echo(f"expected_shortfall={_format_value(outcome.risk_report.expected_shortfall)}")
    for path in outcome.artifact_paths:
        typer.echo(f"artifact={path}")
    typer.echo(f"manifest={outcome.manifest_path}")


@app.command("strategies")
def strategies() -> None:
    """List configurable strategy types."""
    for name in registered_strategies():
        typer.echo(name)


def main() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
