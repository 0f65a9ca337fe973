"""Domain-specific error taxonomy for coinsight."""

from __future__ import annotations


class CoinsightError(Exception):
    """Base coinsight error with CLI exit-code metadata."""

    exit_code: int = 1
    error_code: str = "coinsight_error"


class ConfigLoadError(CoinsightError, ValueError):
    """Configuration loading/validation error."""

    exit_code = 2
    error_code = "config_error"


class DataFetchError(CoinsightError, ConnectionError):
    """Market data transport/retry error."""

    exit_code = 3
    error_code = "data_fetch_error"


class DataValidationError(CoinsightError, ValueError):
    """Market data schema/integrity validation error."""

    exit_code = 4
    error_code = "data_validation_error"


class CacheError(CoinsightError, RuntimeError):
    """Cache read/write error."""

    exit_code = 5
    error_code = "cache_error"


class StrategyError(CoinsightError, ValueError):
    """Strategy loading/signal execution error."""

    exit_code = 6
    error_code = "strategy_error"


class UnknownStrategyError(StrategyError):
    """Strategy type has no registered signal function."""

    error_code = "unknown_strategy"


class BacktestError(CoinsightError, ValueError):
    """Backtest execution error."""

    exit_code = 7
    error_code = "backtest_error"


class InvalidConfigError(BacktestError):
    """Malformed backtest strategy configuration."""

    error_code = "invalid_config"


class InsufficientHistoryError(BacktestError):
    """Price history does not cover the backtest window."""

    error_code = "insufficient_history"


class AnalyticsError(CoinsightError, ValueError):
    """Risk analytics input error."""

    exit_code = 8
    error_code = "analytics_error"


class InsufficientDataError(AnalyticsError):
    """Series too short for the requested statistic."""

    error_code = "insufficient_data"


class LengthMismatchError(AnalyticsError):
    """Asset and benchmark series have different lengths."""

    error_code = "length_mismatch"


class UnsupportedConfidenceLevelError(AnalyticsError):
    """Confidence level has no parametric z-score."""

    error_code = "unsupported_confidence_level"


class ArtifactError(CoinsightError, RuntimeError):
    """Artifact write/read error."""

    exit_code = 10
    error_code = "artifact_error"


def exit_code_for_exception(exc: Exception) -> int:
    """
    Resolve process exit code for an exception.

    Args:
        exc: Raised exception.

    Returns:
        Integer process exit code.
    """
    return int(getattr(exc, "exit_code", 1))
