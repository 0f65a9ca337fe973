"""CoinGecko market data provider."""

from __future__ import annotations

import os
import time
from typing import Any

import pandas as pd
import requests

from coinsight.core.data.base import PriceDataProvider
from coinsight.core.utils.errors import DataFetchError, DataValidationError
from coinsight.core.utils.logging import get_logger

PRICE_COLUMNS: tuple[str, str] = ("price", "volume")
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 500, 502, 503, 504})
DEFAULT_BASE_URL = "https://api.coingecko.com/api/v3"
API_KEY_HEADER = "x-cg-demo-api-key"

logger = get_logger(__name__)


def empty_price_frame() -> pd.DataFrame:
    """Create an empty price dataframe with a UTC datetime index."""
    empty_index = pd.DatetimeIndex([], tz="UTC", name="timestamp")
    return pd.DataFrame(columns=list(PRICE_COLUMNS), index=empty_index, dtype=float)


def _series_from_pairs(pairs: Any, name: str, asset_id: str) -> pd.Series:
    """Convert CoinGecko ``[[epoch_ms, value], ...]`` pairs into a UTC series."""
    if not isinstance(pairs, list):
        raise DataValidationError(f"CoinGecko field '{name}' for '{asset_id}' must be a list.")
    if not pairs:
        return pd.Series(dtype=float, name=name, index=pd.DatetimeIndex([], tz="UTC"))
    if any(not isinstance(pair, (list, tuple)) or len(pair) != 2 for pair in pairs):
        raise DataValidationError(
            f"CoinGecko field '{name}' for '{asset_id}' must contain [timestamp, value] pairs."
        )

    frame = pd.DataFrame(pairs, columns=["timestamp", name])
    frame["timestamp"] = pd.to_datetime(
        pd.to_numeric(frame["timestamp"], errors="coerce"), unit="ms", utc=True
    )
    frame[name] = pd.to_numeric(frame[name], errors="coerce")
    frame = frame.dropna(subset=["timestamp"])
    return frame.set_index("timestamp")[name]


class CoinGeckoProvider(PriceDataProvider):
    """REST client for the CoinGecko ``market_chart/range`` endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        vs_currency: str = "usd",
        base_url: str = DEFAULT_BASE_URL,
        session: requests.Session | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        retry_backoff_seconds: float = 1.0,
    ) -> None:
        """
        Initialize a CoinGecko provider.

        Args:
            api_key: Optional demo API key. If omitted, reads ``COINGECKO_API_KEY``.
            vs_currency: Quote currency for prices and volumes.
            base_url: Base URL for the CoinGecko REST API.
            session: Optional requests session for dependency injection.
            timeout_seconds: Request timeout in seconds.
            max_retries: Number of retry attempts for transient failures.
            retry_backoff_seconds: Base seconds for exponential retry backoff.
        """
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0.")
        if retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds must be >= 0.")
        if not vs_currency.strip():
            raise ValueError("vs_currency cannot be empty.")

        self._api_key = api_key or os.getenv("COINGECKO_API_KEY") or None
        self._vs_currency = vs_currency.strip().lower()
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout_seconds = timeout_seconds
        self._max_retries = max_retries
        self._retry_backoff_seconds = retry_backoff_seconds

    def _headers(self) -> dict[str, str]:
        headers = {"accept": "application/json"}
        if self._api_key:
            headers[API_KEY_HEADER] = self._api_key
        return headers

    def _sleep_before_retry(self, attempt: int) -> None:
        if self._retry_backoff_seconds == 0:
            return
        delay_seconds = self._retry_backoff_seconds * (2**attempt)
        logger.debug("Retrying CoinGecko request in %.2fs (attempt %d)", delay_seconds, attempt)
        time.sleep(delay_seconds)

    def _request_payload(self, endpoint: str, params: dict[str, str], asset_id: str) -> Any:
        """Request a JSON payload, retrying rate limits and server errors."""
        last_exception: Exception | None = None
        for attempt in range(self._max_retries + 1):
            try:
                response = self._session.get(
                    endpoint,
                    params=params,
                    headers=self._headers(),
                    timeout=self._timeout_seconds,
                )
                if response.status_code in RETRYABLE_STATUS_CODES and attempt < self._max_retries:
                    logger.warning(
                        "CoinGecko returned HTTP %d for '%s'", response.status_code, asset_id
                    )
                    self._sleep_before_retry(attempt)
                    continue

                response.raise_for_status()
            except requests.exceptions.RequestException as exc:
                last_exception = exc
                if attempt >= self._max_retries:
                    break
                self._sleep_before_retry(attempt)
                continue

            try:
                return response.json()
            except ValueError as exc:
                raise DataValidationError(f"Invalid JSON response for asset '{asset_id}'.") from exc

        raise DataFetchError(f"Failed to fetch prices for asset '{asset_id}': {last_exception}")

    def _validate_and_normalize_payload(self, payload: Any, asset_id: str) -> pd.DataFrame:
        """Validate the vendor payload and resample it to one row per UTC day."""
        if not isinstance(payload, dict):
            raise DataValidationError(f"Unexpected CoinGecko response type for '{asset_id}'.")
        if "prices" not in payload:
            message = payload.get("error") or payload.get("status") or str(payload)
            raise DataValidationError(f"CoinGecko error for asset '{asset_id}': {message}")

        prices = _series_from_pairs(payload["prices"], "price", asset_id)
        volumes = _series_from_pairs(payload.get("total_volumes", []), "volume", asset_id)
        if prices.empty:
            return empty_price_frame()

        frame = pd.concat([prices, volumes], axis=1).sort_index()
        frame = frame.dropna(subset=["price"])
        frame = frame.loc[frame["price"] > 0.0]
        if frame.empty:
            raise DataValidationError(
                f"CoinGecko payload has no positive prices for asset '{asset_id}'."
            )

        # last sample of each UTC day
        daily = frame.groupby(frame.index.floor("D")).last()
        daily["volume"] = daily["volume"].fillna(0.0).clip(lower=0.0)
        daily.index.name = "timestamp"
        return daily.loc[:, list(PRICE_COLUMNS)].astype(float)

    def fetch_prices(self, asset_id: str, start: str, end: str) -> pd.DataFrame:
        """
        Fetch daily prices for an asset from CoinGecko.

        Args:
            asset_id: CoinGecko coin id, e.g. ``bitcoin``.
            start: Inclusive start date in ``YYYY-MM-DD`` format.
            end: Inclusive end date in ``YYYY-MM-DD`` format.

        Returns:
            Daily price dataframe with a UTC datetime index.
        """
        start_ts = pd.Timestamp(start, tz="UTC")
        end_ts = pd.Timestamp(end, tz="UTC") + pd.Timedelta(days=1)
        if start_ts >= end_ts:
            raise ValueError("Start date must be before or equal to end date.")

        endpoint = f"{self._base_url}/coins/{asset_id}/market_chart/range"
        params = {
            "vs_currency": self._vs_currency,
            "from": str(int(start_ts.timestamp())),
            "to": str(int(end_ts.timestamp()) - 1),
        }
        logger.info(
            "Fetching %s prices for '%s' from %s to %s", self._vs_currency, asset_id, start, end
        )
        payload = self._request_payload(endpoint=endpoint, params=params, asset_id=asset_id)
        return self._validate_and_normalize_payload(payload=payload, asset_id=asset_id)
