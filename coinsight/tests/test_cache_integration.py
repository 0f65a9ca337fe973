"""Integration tests for the Parquet price cache."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

import pandas as pd

from coinsight.core.data.cache import ParquetCache, normalize_price_frame
from coinsight.tests.helpers import mock_fetch_prices


class _RecordingFetcher:
    """Deterministic fetcher that records every requested range."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str]] = []

    def __call__(self, asset_id: str, start: str, end: str) -> pd.DataFrame:
        self.calls.append((asset_id, start, end))
        return mock_fetch_prices(None, asset_id, start, end)


class TestParquetCache(unittest.TestCase):
    """Validate cache hits, head/tail extension and normalization."""

    def test_second_request_is_served_from_cache(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            cache = ParquetCache(Path(temp_dir))
            fetcher = _RecordingFetcher()

            first = cache.get_prices("bitcoin", "2024-01-01", "2024-01-10", fetcher)
            second = cache.get_prices("bitcoin", "2024-01-03", "2024-01-05", fetcher)

            self.assertEqual(fetcher.calls, [("bitcoin", "2024-01-01", "2024-01-10")])
            self.assertEqual(len(first), 10)
            self.assertEqual(len(second), 3)
            self.assertTrue(cache.cache_path("bitcoin").exists())

    def test_fetches_only_missing_head_and_tail(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            cache = ParquetCache(Path(temp_dir))
            fetcher = _RecordingFetcher()

            cache.get_prices("bitcoin", "2024-01-05", "2024-01-10", fetcher)
            extended = cache.get_prices("bitcoin", "2024-01-01", "2024-01-15", fetcher)

            self.assertEqual(
                fetcher.calls[1:],
                [
                    ("bitcoin", "2024-01-01", "2024-01-04"),
                    ("bitcoin", "2024-01-11", "2024-01-15"),
                ],
            )
            self.assertEqual(len(extended), 15)
            self.assertTrue(extended.index.is_monotonic_increasing)

            reloaded = cache.load("bitcoin")
            assert reloaded is not None
            self.assertEqual(len(reloaded), 15)

    def test_quote_currencies_are_cached_separately(self) -> None:
        index = pd.date_range("2024-01-01", periods=3, freq="D", tz="UTC")

        def fetch_at(price: float):
            def fetch(asset_id: str, start: str, end: str) -> pd.DataFrame:
                return pd.DataFrame({"price": [price] * 3, "volume": [1.0] * 3}, index=index)

            return fetch

        with tempfile.TemporaryDirectory() as temp_dir:
            usd_cache = ParquetCache(Path(temp_dir), namespace="usd")
            eur_cache = ParquetCache(Path(temp_dir), namespace="EUR")

            usd = usd_cache.get_prices("bitcoin", "2024-01-01", "2024-01-03", fetch_at(40000.0))
            eur = eur_cache.get_prices("bitcoin", "2024-01-01", "2024-01-03", fetch_at(36000.0))

            self.assertEqual(usd["price"].iloc[0], 40000.0)
            self.assertEqual(eur["price"].iloc[0], 36000.0)
            self.assertEqual(eur_cache.cache_path("bitcoin").name, "bitcoin__eur.parquet")
            self.assertNotEqual(usd_cache.cache_path("bitcoin"), eur_cache.cache_path("bitcoin"))

    def test_normalize_drops_invalid_rows(self) -> None:
        index = pd.date_range("2024-01-01", periods=4, freq="D", tz="UTC")
        frame = pd.DataFrame(
            {"price": [1.0, 0.0, None, 2.0], "volume": [1.0, 1.0, 1.0, None]}, index=index
        )
        normalized = normalize_price_frame(frame)
        self.assertEqual(normalized["price"].tolist(), [1.0, 2.0])
        self.assertEqual(normalized["volume"].tolist(), [1.0, 0.0])
        self.assertEqual(normalized.index.name, "timestamp")

    def test_asset_ids_are_sanitized_for_filenames(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            cache = ParquetCache(Path(temp_dir))
            self.assertEqual(cache.cache_path("usd/coin").name, "usd_coin__usd.parquet")


if __name__ == "__main__":
    unittest.main()
