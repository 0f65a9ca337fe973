"""Buy-and-hold example strategy for the ``custom`` strategy type."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pandas as pd

STRATEGY_NAME: str = "buy_and_hold"


def signal(history: pd.Series, params: Mapping[str, Any]) -> float | None:
    """
    Go fully long on the first boundary, then never trade again.

    Args:
        history: Trailing prices up to the current boundary.
        params: Strategy parameters. Supported keys:
            - ``entry_after``: number of prices required before entering
              (default 1)

    Returns:
        ``1.0`` once enough history exists. After the entry fill the simulator only
        trades again when price drift exceeds the rebalance tolerance.
    """
    entry_after = int(params.get("entry_after", 1))
    if len(history) < entry_after:
        return None
    return 1.0
