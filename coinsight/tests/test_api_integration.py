"""Integration tests for synchronous API endpoints."""

from __future__ import annotations

import unittest

import httpx

from coinsight.api.app import create_app


def _price_points(prices: list[float], start_day: int = 1) -> list[dict[str, object]]:
    return [
        {"timestamp": f"2024-01-{start_day + offset:02d}T00:00:00Z", "price": price}
        for offset, price in enumerate(prices)
    ]


class TestApiIntegration(unittest.IsolatedAsyncioTestCase):
    """Validate health, risk and inline backtest endpoints."""

    async def asyncSetUp(self) -> None:
        self.app = create_app()
        self.client = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=self.app), base_url="http://testserver"
        )

    async def asyncTearDown(self) -> None:
        await self.client.aclose()
        self.app.state.job_queue.shutdown()

    async def test_health(self) -> None:
        response = await self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "service": "coinsight-api"})

    async def test_risk_metrics_from_prices(self) -> None:
        response = await self.client.post(
            "/risk/metrics",
            json={
                "asset_id": "bitcoin",
                "prices": [100.0, 110.0, 99.0, 105.0, 108.0],
                "benchmark_id": "ethereum",
                "benchmark_prices": [100.0, 105.0, 100.0, 102.0, 104.0],
            },
        )
        self.assertEqual(response.status_code, 200, msg=response.text)
        payload = response.json()
        self.assertEqual(payload["observations"], 4)
        self.assertEqual(payload["benchmark_id"], "ethereum")
        self.assertGreater(payload["metrics"]["beta"], 0.0)
        self.assertEqual(payload["var_method"], "historical")

    async def test_infinite_sortino_is_null(self) -> None:
        response = await self.client.post(
            "/risk/metrics", json={"returns": [0.01, 0.02, 0.03]}
        )
        self.assertEqual(response.status_code, 200, msg=response.text)
        self.assertIsNone(response.json()["metrics"]["sortino_ratio"])

    async def test_indicators_report_warm_up_as_null(self) -> None:
        prices = [100.0 + value for value in range(30)]
        response = await self.client.post(
            "/indicators", json={"prices": prices, "indicators": ["sma20", "macd"]}
        )
        self.assertEqual(response.status_code, 200, msg=response.text)
        payload = response.json()
        self.assertEqual(payload["observations"], 30)
        self.assertEqual(
            sorted(payload["indicators"]), ["macd", "macd_histogram", "macd_signal", "sma20"]
        )
        self.assertIsNone(payload["indicators"]["sma20"][0])
        self.assertAlmostEqual(payload["indicators"]["sma20"][-1], sum(prices[-20:]) / 20)

    async def test_unknown_indicator_is_unprocessable(self) -> None:
        response = await self.client.post(
            "/indicators", json={"prices": [1.0, 2.0], "indicators": ["vwap"]}
        )
        self.assertEqual(response.status_code, 422, msg=response.text)
        self.assertEqual(response.json()["error_code"], "analytics_error")

    async def test_risk_metrics_requires_one_series(self) -> None:
        response = await self.client.post(
            "/risk/metrics", json={"prices": [1.0, 2.0], "returns": [0.1]}
        )
        self.assertEqual(response.status_code, 422)

    async def test_length_mismatch_is_unprocessable(self) -> None:
        response = await self.client.post(
            "/risk/metrics", json={"returns": [0.01, 0.02], "benchmark_returns": [0.01]}
        )
        self.assertEqual(response.status_code, 422, msg=response.text)
        self.assertEqual(response.json()["error_code"], "length_mismatch")

    async def test_unsupported_parametric_confidence(self) -> None:
        response = await self.client.post(
            "/risk/metrics",
            json={"returns": [0.01, -0.02], "var_method": "parametric", "confidence_level": 0.9},
        )
        self.assertEqual(response.status_code, 422, msg=response.text)
        self.assertEqual(response.json()["error_code"], "unsupported_confidence_level")

    async def test_inline_backtest(self) -> None:
        response = await self.client.post(
            "/backtests",
            json={
                "config": {
                    "strategy_type": "momentum",
                    "asset_ids": ["bitcoin"],
                    "start": "2024-01-03",
                    "end": "2024-01-10",
                    "rebalance_frequency": "daily",
                    "transaction_cost": 0.0,
                    "slippage": 0.0,
                    "strategy_params": {"lookback": 2},
                },
                "prices": {"bitcoin": _price_points([100.0 + day for day in range(10)])},
            },
        )
        self.assertEqual(response.status_code, 200, msg=response.text)
        payload = response.json()
        self.assertEqual(payload["asset_ids"], ["bitcoin"])
        self.assertEqual(payload["metrics"]["num_trades"], 1.0)
        self.assertEqual(len(payload["equity_curve"]), 8)
        self.assertEqual(payload["trades"][0]["action"], "buy")
        self.assertGreater(payload["final_equity"], 10_000.0)

    async def test_inline_backtest_insufficient_history(self) -> None:
        response = await self.client.post(
            "/backtests",
            json={
                "config": {
                    "asset_ids": ["bitcoin"],
                    "start": "2024-01-01",
                    "end": "2024-01-20",
                },
                "prices": {"bitcoin": _price_points([100.0, 101.0, 102.0])},
            },
        )
        self.assertEqual(response.status_code, 422, msg=response.text)
        self.assertEqual(response.json()["error_code"], "insufficient_history")

    async def test_inline_backtest_requires_prices_per_asset(self) -> None:
        response = await self.client.post(
            "/backtests",
            json={
                "config": {"asset_ids": ["bitcoin", "ethereum"], "start": "2024-01-01",
                           "end": "2024-01-03"},
                "prices": {"bitcoin": _price_points([100.0, 101.0, 102.0])},
            },
        )
        self.assertEqual(response.status_code, 422)


if __name__ == "__main__":
    unittest.main()
