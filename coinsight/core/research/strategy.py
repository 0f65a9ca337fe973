"""Strategy signal registry keyed by ``strategy_type``.

A signal function receives the trailing price history of one asset (a
``pd.Series`` of prices up to and including the current rebalance boundary)
and the strategy parameters. It returns a target weight in ``[-1, 1]`` or
``None`` to leave the current position unchanged.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from importlib import import_module
from types import ModuleType
from typing import Any

import pandas as pd

from coinsight.core.analytics.indicators import bollinger_bands, donchian_channel
from coinsight.core.utils.errors import StrategyError, UnknownStrategyError

SignalFn = Callable[[pd.Series, Mapping[str, Any]], float | None]

CUSTOM_STRATEGY = "custom"
DEFAULT_LOOKBACK = 20


def _int_param(params: Mapping[str, Any], key: str, default: int) -> int:
    value = int(params.get(key, default))
    if value < 1:
        raise ValueError(f"{key} must be >= 1, got {value}.")
    return value


def momentum_signal(history: pd.Series, params: Mapping[str, Any]) -> float | None:
    """Long while the trailing ``lookback``-period return is positive, flat otherwise."""
    lookback = _int_param(params, "lookback", DEFAULT_LOOKBACK)
    if len(history) <= lookback:
        return None
    trailing_return = float(history.iloc[-1]) / float(history.iloc[-1 - lookback]) - 1.0
    return 1.0 if trailing_return > 0.0 else 0.0


def mean_reversion_signal(history: pd.Series, params: Mapping[str, Any]) -> float | None:
    """Buy below the lower Bollinger band, exit once price is back at the mean."""
    window = _int_param(params, "window", DEFAULT_LOOKBACK)
    num_std = float(params.get("num_std", 2.0))
    if len(history) < window:
        return None
    bands = bollinger_bands(history.iloc[-window:], period=window, num_std=num_std)
    price = float(history.iloc[-1])
    if price < float(bands["lower"].iloc[-1]):
        return 1.0
    if price >= float(bands["middle"].iloc[-1]):
        return 0.0
    return None


def breakout_signal(history: pd.Series, params: Mapping[str, Any]) -> float | None:
    """Buy above the prior ``window`` high, exit below the prior ``window`` low."""
    window = _int_param(params, "window", DEFAULT_LOOKBACK)
    if len(history) <= window:
        return None
    channel = donchian_channel(history.iloc[-(window + 1) :], period=window)
    price = float(history.iloc[-1])
    if price > float(channel["upper"].iloc[-1]):
        return 1.0
    if price < float(channel["lower"].iloc[-1]):
        return 0.0
    return None


_REGISTRY: dict[str, SignalFn] = {
    "momentum": momentum_signal,
    "mean_reversion": mean_reversion_signal,
    "breakout": breakout_signal,
}


def register_strategy(strategy_type: str, signal: SignalFn) -> None:
    """
    Register a signal function under a strategy type.

    Args:
        strategy_type: Key used in ``StrategyConfig.strategy_type``.
        signal: Signal function.
    """
    name = strategy_type.strip()
    if not name:
        raise StrategyError("strategy_type must be a non-empty string.")
    if name == CUSTOM_STRATEGY:
        raise StrategyError("'custom' is reserved for module-loaded strategies.")
    if not callable(signal):
        raise StrategyError(f"Signal for strategy '{name}' must be callable.")
    _REGISTRY[name] = signal


def registered_strategies() -> list[str]:
    """Return all strategy types that can be configured."""
    return sorted([*_REGISTRY, CUSTOM_STRATEGY])


def is_registered(strategy_type: str) -> bool:
    return strategy_type == CUSTOM_STRATEGY or strategy_type in _REGISTRY


def _load_module(module_path: str) -> ModuleType:
    """Import a custom strategy module by path."""
    try:
        return import_module(module_path)
    except Exception as exc:  # pragma: no cover - import errors are environment-dependent.
        raise StrategyError(f"Unable to import strategy module '{module_path}': {exc}") from exc


def load_custom_signal(module_path: str) -> SignalFn:
    """
    Load a signal function from a custom strategy module.

    Required module attributes:
    - ``STRATEGY_NAME: str``
    - ``signal(history: pd.Series, params: Mapping) -> float | None``

    Args:
        module_path: Python import path for the strategy module.

    Returns:
        The module's signal function.
    """
    module = _load_module(module_path)
    strategy_name = getattr(module, "STRATEGY_NAME", None)
    signal = getattr(module, "signal", None)
    if not isinstance(strategy_name, str) or not strategy_name.strip():
        raise StrategyError(
            f"Strategy module '{module_path}' is missing a valid STRATEGY_NAME string."
        )
    if not callable(signal):
        raise StrategyError(f"Strategy module '{module_path}' is missing callable signal().")
    return signal


def get_signal_fn(strategy_type: str, params: Mapping[str, Any] | None = None) -> SignalFn:
    """
    Resolve the signal function for a strategy type.

    Args:
        strategy_type: Registered strategy type or ``"custom"``.
        params: Strategy parameters; ``custom`` reads ``params["module"]``.

    Raises:
        UnknownStrategyError: If the type is not registered.
    """
    if strategy_type == CUSTOM_STRATEGY:
        module_path = str((params or {}).get("module", "")).strip()
        if not module_path:
            raise StrategyError("Custom strategy requires strategy_params['module'].")
        return load_custom_signal(module_path)
    signal = _REGISTRY.get(strategy_type)
    if signal is None:
        raise UnknownStrategyError(
            f"Unknown strategy type '{strategy_type}'. "
            f"Registered: {', '.join(registered_strategies())}."
        )
    return signal


def normalize_weight(raw: Any, asset: str) -> float | None:
    """Validate a signal's output and clip it to ``[-1, 1]``."""
    if raw is None:
        return None
    try:
        weight = float(raw)
    except (TypeError, ValueError) as exc:
        raise StrategyError(f"Signal for '{asset}' returned a non-numeric weight: {raw!r}") from exc
    if math.isnan(weight):
        return None
    return min(max(weight, -1.0), 1.0)
