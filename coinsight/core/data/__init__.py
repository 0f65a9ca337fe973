"""Market data access and caching."""

from coinsight.core.data.base import PriceDataProvider
from coinsight.core.data.cache import ParquetCache
from coinsight.core.data.coingecko_provider import CoinGeckoProvider

__all__ = ["CoinGeckoProvider", "ParquetCache", "PriceDataProvider"]
