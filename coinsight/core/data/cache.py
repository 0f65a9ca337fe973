"""Parquet caching for daily price series."""

from __future__ import annotations

import re
from collections.abc import Callable
from pathlib import Path

import pandas as pd

from coinsight.core.utils.errors import CacheError
from coinsight.core.utils.logging import get_logger

PRICE_COLUMNS: tuple[str, str] = ("price", "volume")
_ASSET_SANITIZE_PATTERN = re.compile(r"[^A-Za-z0-9_.-]+")

PriceFetcher = Callable[[str, str, str], pd.DataFrame]

logger = get_logger(__name__)


def _empty_price_frame() -> pd.DataFrame:
    empty_index = pd.DatetimeIndex([], tz="UTC", name="timestamp")
    return pd.DataFrame(columns=list(PRICE_COLUMNS), index=empty_index, dtype=float)


def _to_utc_day(date_str: str) -> pd.Timestamp:
    """Convert a ``YYYY-MM-DD`` string to a UTC midnight timestamp."""
    return pd.Timestamp(date_str, tz="UTC").floor("D")


def _sanitize_asset_id(asset_id: str) -> str:
    """Make an asset id safe to use as a filename."""
    clean = _ASSET_SANITIZE_PATTERN.sub("_", asset_id.strip())
    if not clean:
        raise ValueError("Asset id cannot be empty.")
    return clean


def normalize_price_frame(frame: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize data to the ``timestamp``-indexed ``price``/``volume`` layout.

    Rows without a positive price are dropped, missing volume becomes ``0``,
    and duplicate timestamps keep the last row.
    """
    if frame.empty:
        return _empty_price_frame()

    normalized = frame.copy()
    if "timestamp" in normalized.columns:
        normalized["timestamp"] = pd.to_datetime(normalized["timestamp"], utc=True, errors="coerce")
        normalized = normalized.set_index("timestamp")
    elif not isinstance(normalized.index, pd.DatetimeIndex):
        raise ValueError("Price dataframe must have a DatetimeIndex or a 'timestamp' column.")
    else:
        normalized.index = pd.to_datetime(normalized.index, utc=True, errors="coerce")

    normalized = normalized.loc[~normalized.index.isna()]
    normalized.index.name = "timestamp"

    for column in PRICE_COLUMNS:
        if column not in normalized.columns:
            normalized[column] = pd.NA
        normalized[column] = pd.to_numeric(normalized[column], errors="coerce")

    normalized = normalized.dropna(subset=["price"])
    normalized = normalized.loc[normalized["price"] > 0.0]
    normalized["volume"] = normalized["volume"].fillna(0.0)
    normalized = normalized.loc[:, list(PRICE_COLUMNS)].astype(float).sort_index()
    normalized = normalized.loc[~normalized.index.duplicated(keep="last")]

    if normalized.empty:
        return _empty_price_frame()
    return normalized


class ParquetCache:
    """
    Per-asset Parquet store that only fetches ranges it does not cover.

    ``namespace`` is the quote currency the prices are denominated in; each
    namespace gets its own file per asset, e.g. ``bitcoin__usd.parquet``.
    """

    def __init__(self, cache_dir: Path, namespace: str = "usd") -> None:
        self.cache_dir = cache_dir.expanduser().resolve()
        self.namespace = _sanitize_asset_id(namespace.lower())
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheError(f"Unable to create cache directory {self.cache_dir}: {exc}") from exc

    def cache_path(self, asset_id: str) -> Path:
        return self.cache_dir / f"{_sanitize_asset_id(asset_id)}__{self.namespace}.parquet"

    def load(self, asset_id: str) -> pd.DataFrame | None:
        """
        Load cached prices for an asset.

        Returns:
            Normalized dataframe if a cache file exists, else ``None``.
        """
        path = self.cache_path(asset_id)
        if not path.exists():
            return None

        try:
            cached = pd.read_parquet(path, engine="pyarrow")
        except Exception as exc:
            raise CacheError(
                f"Failed to read cache for asset '{asset_id}' at {path}: {exc}"
            ) from exc
        return normalize_price_frame(cached)

    def save(self, asset_id: str, frame: pd.DataFrame) -> None:
        normalized = normalize_price_frame(frame)
        path = self.cache_path(asset_id)
        try:
            normalized.to_parquet(path, engine="pyarrow", index=True)
        except Exception as exc:
            raise CacheError(
                f"Failed to write cache for asset '{asset_id}' at {path}: {exc}"
            ) from exc

    def _fetch_range(
        self,
        fetcher: PriceFetcher,
        asset_id: str,
        start_ts: pd.Timestamp,
        end_ts: pd.Timestamp,
    ) -> pd.DataFrame:
        start, end = start_ts.strftime("%Y-%m-%d"), end_ts.strftime("%Y-%m-%d")
        logger.debug("Cache miss for '%s' over [%s, %s]", asset_id, start, end)
        return normalize_price_frame(fetcher(asset_id, start, end))

    def get_prices(
        self,
        asset_id: str,
        start: str,
        end: str,
        fetcher: PriceFetcher,
    ) -> pd.DataFrame:
        """
        Serve daily prices from cache, fetching only the missing head or tail.

        Args:
            asset_id: Provider asset identifier.
            start: Inclusive start date in ``YYYY-MM-DD`` format.
            end: Inclusive end date in ``YYYY-MM-DD`` format.
            fetcher: ``(asset_id, start, end) -> DataFrame`` used on cache misses.

        Returns:
            Price dataframe restricted to the requested range.
        """
        start_ts = _to_utc_day(start)
        end_ts = _to_utc_day(end)
        if start_ts > end_ts:
            raise ValueError("Start date must be before or equal to end date.")

        cached = self.load(asset_id)
        fetched_new_data = False

        if cached is None or cached.empty:
            merged = self._fetch_range(fetcher, asset_id, start_ts, end_ts)
            fetched_new_data = True
        else:
            frames: list[pd.DataFrame] = [cached]
            cache_start = cached.index.min().floor("D")
            cache_end = cached.index.max().floor("D")

            if start_ts < cache_start:
                head = self._fetch_range(
                    fetcher, asset_id, start_ts, cache_start - pd.Timedelta(days=1)
                )
                if not head.empty:
                    frames.append(head)
                fetched_new_data = True

            if end_ts > cache_end:
                tail = self._fetch_range(
                    fetcher, asset_id, cache_end + pd.Timedelta(days=1), end_ts
                )
                if not tail.empty:
                    frames.append(tail)
                fetched_new_data = True

            merged = normalize_price_frame(pd.concat(frames))

        if fetched_new_data and not merged.empty:
            self.save(asset_id, merged)

        in_range = merged.loc[
            (merged.index >= start_ts) & (merged.index < end_ts + pd.Timedelta(days=1))
        ]
        if in_range.empty:
            return _empty_price_frame()
        return in_range
