"""Configuration models and YAML loading."""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from coinsight.core.analytics.risk import TRADING_DAYS_PER_YEAR
from coinsight.core.backtest.types import StrategyConfig
from coinsight.core.utils.errors import ConfigLoadError


class DataConfig(BaseModel):
    """Market data settings."""

    provider: Literal["coingecko"] = "coingecko"
    vs_currency: str = "usd"
    cache_dir: Path = Path("../data/cache")
    max_retries: int = Field(default=3, ge=0)
    retry_backoff_seconds: float = Field(default=1.0, ge=0.0)
    warmup_days: int = Field(default=90, ge=0)

    @model_validator(mode="after")
    def validate_currency(self) -> DataConfig:
        currency = self.vs_currency.strip().lower()
        if not currency:
            raise ValueError("data.vs_currency must be non-empty.")
        self.vs_currency = currency
        return self


class BacktestSettings(BaseModel):
    """Backtest run settings, mapped one-to-one onto ``StrategyConfig``."""

    strategy_type: str = "momentum"
    asset_ids: list[str] = Field(min_length=1)
    start: date
    end: date
    initial_capital: float = Field(default=10_000.0, gt=0.0)
    position_size: float = Field(default=1.0, gt=0.0, le=1.0)
    rebalance_frequency: Literal["daily", "weekly", "monthly"] = "monthly"
    transaction_cost: float = Field(default=0.001, ge=0.0)
    slippage: float = Field(default=0.001, ge=0.0, lt=1.0)
    stop_loss: float | None = Field(default=None, gt=0.0, le=1.0)
    take_profit: float | None = Field(default=None, gt=0.0, le=1.0)
    rebalance_tolerance: float = Field(default=0.05, ge=0.0, lt=1.0)
    strategy_params: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_dates_and_assets(self) -> BacktestSettings:
        """Ensure the window is non-empty and asset ids are usable."""
        if self.start >= self.end:
            raise ValueError("backtest.start must be before backtest.end.")
        normalized_assets = sorted({asset.strip() for asset in self.asset_ids if asset.strip()})
        if not normalized_assets:
            raise ValueError("backtest.asset_ids must contain at least one non-empty asset id.")
        self.asset_ids = normalized_assets
        if not self.strategy_type.strip():
            raise ValueError("backtest.strategy_type must be non-empty.")
        return self

    def to_strategy_config(self) -> StrategyConfig:
        return StrategyConfig(
            strategy_type=self.strategy_type.strip(),
            asset_ids=frozenset(self.asset_ids),
            start_date=self.start,
            end_date=self.end,
            initial_capital=self.initial_capital,
            position_size=self.position_size,
            rebalance_frequency=self.rebalance_frequency,
            transaction_cost=self.transaction_cost,
            slippage=self.slippage,
            stop_loss=self.stop_loss,
            take_profit=self.take_profit,
            strategy_params=dict(self.strategy_params),
            rebalance_tolerance=self.rebalance_tolerance,
        )


class RiskConfig(BaseModel):
    """Asset risk report settings. Defaults match the analytics engine: log returns, 252."""

    risk_free_rate: float = 0.0
    periods_per_year: int = Field(default=TRADING_DAYS_PER_YEAR, gt=0)
    confidence_level: float = Field(default=0.95, gt=0.0, lt=1.0)
    var_method: Literal["historical", "parametric"] = "historical"
    return_kind: Literal["simple", "log"] = "log"


class BacktestRiskConfig(BaseModel):
    """
    Settings for the risk report of a backtest equity curve.

    Returns are simple returns between rebalance boundaries, annualized by the
    rebalance frequency.
    """

    risk_free_rate: float = 0.0
    confidence_level: float = Field(default=0.95, gt=0.0, lt=1.0)
    var_method: Literal["historical", "parametric"] = "historical"

    def for_frequency(self, periods_per_year: int) -> RiskConfig:
        return RiskConfig(
            risk_free_rate=self.risk_free_rate,
            periods_per_year=periods_per_year,
            confidence_level=self.confidence_level,
            var_method=self.var_method,
            return_kind="simple",
        )


class OutputConfig(BaseModel):
    """Output and artifact settings."""

    artifacts_dir: Path = Path("../artifacts")
    save_equity_plot: bool = True
    equity_plot_filename: str = "equity_curve.png"

    @model_validator(mode="after")
    def validate_output(self) -> OutputConfig:
        """Ensure output filenames are valid."""
        if not self.equity_plot_filename.strip():
            raise ValueError("output.equity_plot_filename must be non-empty.")
        return self


class AppConfig(BaseModel):
    """Top-level application configuration."""

    backtest: BacktestSettings
    data: DataConfig = Field(default_factory=DataConfig)
    risk: BacktestRiskConfig = Field(default_factory=BacktestRiskConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)


def _resolve_relative(path: Path, base_dir: Path) -> Path:
    if path.is_absolute():
        return path.expanduser().resolve()
    return (base_dir / path).resolve()


def _parse_mapping(yaml_text: str, source: str) -> dict[str, Any]:
    """Parse YAML text whose root must be a mapping."""
    try:
        raw_config: Any = yaml.safe_load(yaml_text) or {}
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"Invalid YAML in {source}: {exc}") from exc
    if not isinstance(raw_config, dict):
        raise ConfigLoadError(
            f"YAML root in {source} must be a mapping, got {type(raw_config).__name__}."
        )
    return raw_config


def _build_config(raw_config: dict[str, Any], base_dir: Path) -> AppConfig:
    """Validate raw YAML data and anchor ``cache_dir``/``artifacts_dir`` at ``base_dir``."""
    try:
        config = AppConfig.model_validate(raw_config)
    except ValidationError as exc:
        raise ConfigLoadError(f"Config validation failed: {exc}") from exc

    return config.model_copy(
        update={
            "data": config.data.model_copy(
                update={"cache_dir": _resolve_relative(config.data.cache_dir, base_dir)}
            ),
            "output": config.output.model_copy(
                update={"artifacts_dir": _resolve_relative(config.output.artifacts_dir, base_dir)}
            ),
        }
    )


def load_config(path: Path) -> AppConfig:
    """
    Load a YAML config file.

    Relative ``data.cache_dir`` and ``output.artifacts_dir`` are resolved
    against the directory holding the file.

    Raises:
        ConfigLoadError: If the file is missing, unreadable, not a YAML
            mapping, or fails validation.
    """
    config_path = path.expanduser().resolve()
    if not config_path.is_file():
        reason = "is not a file" if config_path.exists() else "not found"
        raise ConfigLoadError(f"Config file {reason}: {config_path}")
    try:
        yaml_text = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Failed to read config file {config_path}: {exc}") from exc
    return _build_config(_parse_mapping(yaml_text, str(config_path)), config_path.parent)


def load_config_from_yaml_text(yaml_text: str, base_dir: Path | None = None) -> AppConfig:
    """Load config from a YAML string; relative paths resolve against ``base_dir`` or the cwd."""
    resolved_base_dir = (base_dir or Path.cwd()).expanduser().resolve()
    return _build_config(_parse_mapping(yaml_text, "config text"), resolved_base_dir)


def dump_config_to_yaml(config: AppConfig) -> str:
    """Serialize config to canonical YAML, as stored next to run artifacts."""
    payload = config.model_dump(mode="json")
    return yaml.safe_dump(payload, sort_keys=True, default_flow_style=False)
