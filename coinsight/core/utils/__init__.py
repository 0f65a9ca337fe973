"""Utility helpers."""

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
    InsufficientDataError,
    InsufficientHistoryError,
    InvalidConfigError,
    LengthMismatchError,
    StrategyError,
    UnknownStrategyError,
    UnsupportedConfidenceLevelError,
    exit_code_for_exception,
)
from coinsight.core.utils.logging import configure_logging, get_logger
from coinsight.core.utils.manifest import RunManifestWriter
from coinsight.core.utils.plotting import get_matplotlib_pyplot, save_equity_curve_plot

__all__ = [
    "AnalyticsError",
    "ArtifactError",
    "BacktestError",
    "CacheError",
    "CoinsightError",
    "ConfigLoadError",
    "DataFetchError",
    "DataValidationError",
    "InsufficientDataError",
    "InsufficientHistoryError",
    "InvalidConfigError",
    "LengthMismatchError",
    "RunManifestWriter",
    "StrategyError",
    "UnknownStrategyError",
    "UnsupportedConfidenceLevelError",
    "configure_logging",
    "exit_code_for_exception",
    "get_logger",
    "get_matplotlib_pyplot",
    "load_dotenv",
    "save_equity_curve_plot",
]
