"""EMA crossover example strategy for the ``custom`` strategy type."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pandas as pd

from coinsight.core.analytics.indicators import ema

STRATEGY_NAME: str = "ema_crossover"


def signal(history: pd.Series, params: Mapping[str, Any]) -> float | None:
    """
    Long while the fast EMA is above the slow EMA.

    Args:
        history: Trailing prices up to the current boundary.
        params: Strategy parameters. Supported keys:
            - ``fast``: fast EMA span (default 12)
            - ``slow``: slow EMA span (default 26)

    Returns:
        ``1.0`` or ``0.0`` once ``slow`` prices are available, else ``None``.
    """
    fast = int(params.get("fast", 12))
    slow = int(params.get("slow", 26))
    if fast >= slow:
        raise ValueError("fast must be shorter than slow.")
    if len(history) < slow:
        return None

    fast_value = float(ema(history, fast).iloc[-1])
    slow_value = float(ema(history, slow).iloc[-1])
    return 1.0 if fast_value > slow_value else 0.0
