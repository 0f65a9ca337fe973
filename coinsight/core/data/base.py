"""Abstract interface for market data providers."""

from __future__ import annotations

from abc import ABC, abstractmethod

import pandas as pd


class PriceDataProvider(ABC):
    """Source of daily price and volume history for one asset at a time."""

    @abstractmethod
    def fetch_prices(self, asset_id: str, start: str, end: str) -> pd.DataFrame:
        """
        Fetch daily prices for an asset over an inclusive date range.

        Args:
            asset_id: Provider asset identifier, e.g. ``bitcoin``.
            start: Inclusive start date in ``YYYY-MM-DD`` format.
            end: Inclusive end date in ``YYYY-MM-DD`` format.

        Returns:
            A dataframe with a UTC datetime index named ``timestamp`` and
            columns ``price`` and ``volume``.
        """
