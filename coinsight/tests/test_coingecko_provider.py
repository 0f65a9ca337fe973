"""Unit tests for CoinGecko provider retry and payload handling."""

from __future__ import annotations

import unittest
from unittest.mock import patch

import pandas as pd
import requests

from coinsight.core.data.coingecko_provider import API_KEY_HEADER, CoinGeckoProvider
from coinsight.core.utils.errors import DataFetchError, DataValidationError

DAY_ONE_MS = 1_704_067_200_000  # 2024-01-01T00:00:00Z
HOUR_MS = 3_600_000
DAY_MS = 24 * HOUR_MS

VALID_PAYLOAD = {
    "prices": [
        [DAY_ONE_MS, 100.0],
        [DAY_ONE_MS + HOUR_MS, 101.0],
        [DAY_ONE_MS + DAY_MS, 102.0],
    ],
    "total_volumes": [
        [DAY_ONE_MS, 5.0],
        [DAY_ONE_MS + HOUR_MS, 6.0],
        [DAY_ONE_MS + DAY_MS, 7.0],
    ],
}


class _FakeResponse:
    """Minimal response stub for provider tests."""

    def __init__(self, status_code: int, payload: object) -> None:
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self) -> None:
        """Raise HTTPError for status >= 400."""
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def json(self) -> object:
        """Return configured payload, raising for scripted decode errors."""
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class _FakeSession:
    """Scripted session stub that records each request."""

    def __init__(self, outcomes: list[object]) -> None:
        self._outcomes = outcomes
        self.requests: list[dict[str, object]] = []

    def get(
        self, url: str, params: dict[str, str], headers: dict[str, str], timeout: float
    ) -> _FakeResponse:
        """Return next scripted response or raise scripted exception."""
        self.requests.append({"url": url, "params": params, "headers": headers})
        _ = timeout
        if not self._outcomes:
            raise RuntimeError("No scripted outcomes left.")
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        assert isinstance(outcome, _FakeResponse)
        return outcome


class TestCoinGeckoProvider(unittest.TestCase):
    """Validate request building, retries and payload normalization."""

    def test_keeps_last_sample_per_day(self) -> None:
        session = _FakeSession([_FakeResponse(200, VALID_PAYLOAD)])
        provider = CoinGeckoProvider(api_key="demo", session=session)  # type: ignore[arg-type]
        frame = provider.fetch_prices("bitcoin", "2024-01-01", "2024-01-02")

        self.assertEqual(frame.index.name, "timestamp")
        self.assertEqual(str(frame.index.tz), "UTC")
        self.assertEqual(frame["price"].tolist(), [101.0, 102.0])
        self.assertEqual(frame["volume"].tolist(), [6.0, 7.0])
        self.assertEqual(frame.index[0], pd.Timestamp("2024-01-01", tz="UTC"))

    def test_request_parameters(self) -> None:
        session = _FakeSession([_FakeResponse(200, VALID_PAYLOAD)])
        provider = CoinGeckoProvider(
            api_key="demo", vs_currency="EUR", session=session  # type: ignore[arg-type]
        )
        provider.fetch_prices("bitcoin", "2024-01-01", "2024-01-02")

        request = session.requests[0]
        self.assertTrue(str(request["url"]).endswith("/coins/bitcoin/market_chart/range"))
        self.assertEqual(
            request["params"],
            {
                "vs_currency": "eur",
                "from": str(DAY_ONE_MS // 1000),
                "to": str((DAY_ONE_MS + 2 * DAY_MS) // 1000 - 1),
            },
        )
        self.assertEqual(request["headers"][API_KEY_HEADER], "demo")  # type: ignore[index]

    def test_retries_rate_limit_then_succeeds(self) -> None:
        session = _FakeSession(
            [_FakeResponse(429, {"status": "throttled"}), _FakeResponse(200, VALID_PAYLOAD)]
        )
        provider = CoinGeckoProvider(
            api_key="demo", session=session, max_retries=2  # type: ignore[arg-type]
        )
        with patch("coinsight.core.data.coingecko_provider.time.sleep") as sleep_mock:
            frame = provider.fetch_prices("bitcoin", "2024-01-01", "2024-01-02")

        self.assertEqual(len(session.requests), 2)
        sleep_mock.assert_called_once_with(1.0)
        self.assertEqual(len(frame), 2)

    def test_retries_connection_errors(self) -> None:
        session = _FakeSession(
            [requests.ConnectionError("reset"), _FakeResponse(200, VALID_PAYLOAD)]
        )
        provider = CoinGeckoProvider(
            api_key="demo", session=session, retry_backoff_seconds=0.0  # type: ignore[arg-type]
        )
        frame = provider.fetch_prices("bitcoin", "2024-01-01", "2024-01-02")
        self.assertEqual(len(frame), 2)

    def test_exhausted_retries_raise_fetch_error(self) -> None:
        session = _FakeSession([_FakeResponse(503, {}) for _ in range(3)])
        provider = CoinGeckoProvider(
            api_key="demo", session=session, max_retries=2  # type: ignore[arg-type]
        )
        with patch("coinsight.core.data.coingecko_provider.time.sleep") as sleep_mock:
            with self.assertRaises(DataFetchError):
                provider.fetch_prices("bitcoin", "2024-01-01", "2024-01-02")

        self.assertEqual(len(session.requests), 3)
        self.assertEqual([call.args[0] for call in sleep_mock.call_args_list], [1.0, 2.0])

    def test_invalid_json_raises_validation_error(self) -> None:
        session = _FakeSession([_FakeResponse(200, ValueError("not json"))])
        provider = CoinGeckoProvider(api_key="demo", session=session)  # type: ignore[arg-type]
        with self.assertRaises(DataValidationError):
            provider.fetch_prices("bitcoin", "2024-01-01", "2024-01-02")

    def test_error_payload_raises_validation_error(self) -> None:
        session = _FakeSession([_FakeResponse(200, {"error": "coin not found"})])
        provider = CoinGeckoProvider(api_key="demo", session=session)  # type: ignore[arg-type]
        with self.assertRaisesRegex(DataValidationError, "coin not found"):
            provider.fetch_prices("not-a-coin", "2024-01-01", "2024-01-02")

    def test_non_positive_prices_are_rejected(self) -> None:
        payload = {"prices": [[DAY_ONE_MS, 0.0], [DAY_ONE_MS + DAY_MS, -1.0]]}
        session = _FakeSession([_FakeResponse(200, payload)])
        provider = CoinGeckoProvider(api_key="demo", session=session)  # type: ignore[arg-type]
        with self.assertRaises(DataValidationError):
            provider.fetch_prices("bitcoin", "2024-01-01", "2024-01-02")

    def test_empty_prices_return_empty_frame(self) -> None:
        session = _FakeSession([_FakeResponse(200, {"prices": [], "total_volumes": []})])
        provider = CoinGeckoProvider(api_key="demo", session=session)  # type: ignore[arg-type]
        frame = provider.fetch_prices("bitcoin", "2024-01-01", "2024-01-02")
        self.assertTrue(frame.empty)
        self.assertEqual(list(frame.columns), ["price", "volume"])


if __name__ == "__main__":
    unittest.main()
