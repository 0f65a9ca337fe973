"""Test helpers for deterministic price and backtest cases."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date
from typing import Any

import pandas as pd

from coinsight.core.backtest.types import StrategyConfig
from coinsight.core.research.strategy import SignalFn


def make_price_frame(prices: Sequence[float], start: str = "2024-01-01") -> pd.DataFrame:
    """Build a daily UTC price frame from price values."""
    index = pd.date_range(start, periods=len(prices), freq="D", tz="UTC", name="timestamp")
    return pd.DataFrame(
        {"price": [float(value) for value in prices], "volume": 1_000.0},
        index=index,
    )


def make_config(**overrides: Any) -> StrategyConfig:
    """Frictionless single-asset daily config over 2024-01-01..2024-01-05."""
    values: dict[str, Any] = {
        "strategy_type": "momentum",
        "asset_ids": frozenset({"bitcoin"}),
        "start_date": date(2024, 1, 1),
        "end_date": date(2024, 1, 5),
        "initial_capital": 10_000.0,
        "position_size": 1.0,
        "rebalance_frequency": "daily",
        "transaction_cost": 0.0,
        "slippage": 0.0,
        "rebalance_tolerance": 0.05,
    }
    values.update(overrides)
    return StrategyConfig(**values)


def signal_from_weights(weights: Sequence[float | None]) -> SignalFn:
    """Signal returning ``weights[i]`` on the i-th call (``None`` afterwards)."""
    remaining = list(weights)

    def signal(history: pd.Series, params: Mapping[str, Any]) -> float | None:
        _ = (history, params)
        return remaining.pop(0) if remaining else None

    return signal


def mock_fetch_prices(self: object, asset_id: str, start: str, end: str) -> pd.DataFrame:
    """Deterministic rising-price fetcher patched over ``CoinGeckoProvider.fetch_prices``."""
    _ = self
    index = pd.date_range(start=start, end=end, freq="D", tz="UTC", name="timestamp")
    base = {"bitcoin": 40_000.0, "ethereum": 2_000.0}.get(asset_id, 100.0)
    prices = [base * (1.0 + 0.01 * step) for step in range(len(index))]
    return pd.DataFrame({"price": prices, "volume": 5_000.0}, index=index)
