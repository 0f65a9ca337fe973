"""Plotting utilities for backtest artifacts."""

from __future__ import annotations

import os
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from coinsight.core.utils.errors import ArtifactError

if TYPE_CHECKING:
    from coinsight.core.backtest.types import EquityCurvePoint, Trade

_MPL_CONFIG_DIR = Path("/tmp/coinsight-mplconfig")


def get_matplotlib_pyplot() -> Any:
    """Import ``matplotlib.pyplot`` headless, with a writable config directory."""
    if "MPLCONFIGDIR" not in os.environ:
        _MPL_CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        os.environ["MPLCONFIGDIR"] = str(_MPL_CONFIG_DIR)

    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    return plt


def save_equity_curve_plot(
    equity_curve: Sequence[EquityCurvePoint],
    output_dir: Path,
    filename: str = "equity_curve.png",
    trades: Sequence[Trade] = (),
) -> Path:
    """
    Save an equity curve chart, marking trade dates when given.

    Args:
        equity_curve: Equity curve points in date order.
        output_dir: Artifact directory.
        filename: Output image filename.
        trades: Optional trades; buys and sells are drawn as vertical ticks.

    Returns:
        Saved plot path.
    """
    plt = get_matplotlib_pyplot()
    plot_path = output_dir / filename
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        dates = [point.date for point in equity_curve]
        values = [point.value for point in equity_curve]

        figure, axis = plt.subplots(figsize=(10, 4))
        axis.plot(dates, values, linewidth=1.2, color="#1f4e79")
        for trade in trades:
            color = "#2a9d8f" if trade.action == "buy" else "#e76f51"
            axis.axvline(trade.date, color=color, alpha=0.3, linewidth=0.8)
        axis.set_title("Equity Curve")
        axis.set_xlabel("Date")
        axis.set_ylabel("Portfolio value")
        axis.grid(alpha=0.25, linestyle="--", linewidth=0.7)
        figure.autofmt_xdate()
        figure.tight_layout()
        figure.savefig(plot_path, dpi=150)
        plt.close(figure)
    except Exception as exc:
        raise ArtifactError(f"Failed to save equity curve plot to {plot_path}: {exc}") from exc
    return plot_path
