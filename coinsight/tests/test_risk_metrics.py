"""Unit tests for risk and performance statistics."""

from __future__ import annotations

import math
import unittest

import numpy as np

from coinsight.core.analytics.risk import (
    calculate_alpha_beta,
    calculate_calmar_ratio,
    calculate_kurtosis,
    calculate_returns,
    calculate_risk_metrics,
    calculate_sharpe_ratio,
    calculate_skewness,
    calculate_sortino_ratio,
    calculate_volatility,
    rolling_sharpe_ratio,
    rolling_volatility,
    rolling_window,
    synthetic_index_path,
)
from coinsight.core.utils.errors import (
    AnalyticsError,
    InsufficientDataError,
    LengthMismatchError,
)


class TestReturns(unittest.TestCase):
    """Validate price-to-return conversion."""

    def test_simple_returns(self) -> None:
        returns = calculate_returns([100.0, 110.0, 121.0], kind="simple")
        self.assertEqual(len(returns), 2)
        for observed in returns:
            self.assertAlmostEqual(observed, 0.1, places=12)

    def test_log_returns(self) -> None:
        returns = calculate_returns([100.0, 200.0, 100.0])
        self.assertAlmostEqual(returns[0], math.log(2.0), places=12)
        self.assertAlmostEqual(returns[1], -math.log(2.0), places=12)

    def test_requires_two_prices(self) -> None:
        with self.assertRaises(InsufficientDataError):
            calculate_returns([100.0])

    def test_unknown_kind_raises(self) -> None:
        with self.assertRaises(AnalyticsError):
            calculate_returns([1.0, 2.0], kind="geometric")  # type: ignore[arg-type]


class TestRatios(unittest.TestCase):
    """Validate annualized ratios and their zero-denominator sentinels."""

    def test_volatility_needs_two_returns(self) -> None:
        self.assertEqual(calculate_volatility([]), 0.0)
        self.assertEqual(calculate_volatility([0.05]), 0.0)

    def test_volatility_uses_population_std(self) -> None:
        self.assertAlmostEqual(calculate_volatility([0.01, 0.03], periods_per_year=4), 0.02)

    def test_sharpe_ratio(self) -> None:
        self.assertAlmostEqual(calculate_sharpe_ratio([0.01, 0.03], periods_per_year=4), 4.0)

    def test_sharpe_ratio_zero_volatility(self) -> None:
        self.assertEqual(calculate_sharpe_ratio([0.01, 0.01, 0.01]), 0.0)

    def test_sortino_without_losses_is_infinite(self) -> None:
        self.assertEqual(calculate_sortino_ratio([0.01, 0.02, 0.0]), math.inf)

    def test_sortino_divides_downside_by_full_count(self) -> None:
        returns = [0.02, -0.01, 0.03, -0.02]
        downside = math.sqrt((0.01**2 + 0.02**2) / 4) * math.sqrt(252)
        expected = float(np.mean(returns)) * 252 / downside
        self.assertAlmostEqual(calculate_sortino_ratio(returns), expected, places=10)

    def test_calmar_ratio_zero_without_drawdown(self) -> None:
        self.assertEqual(calculate_calmar_ratio([0.01, 0.02], [100.0, 101.0, 103.0]), 0.0)

    def test_empty_input_sentinels(self) -> None:
        self.assertEqual(calculate_sharpe_ratio([]), 0.0)
        self.assertEqual(calculate_sortino_ratio([]), 0.0)
        self.assertEqual(calculate_calmar_ratio([], [100.0, 80.0]), 0.0)

    def test_calmar_ratio_with_drawdown(self) -> None:
        returns = [0.1, -0.2]
        calmar = calculate_calmar_ratio(returns, [100.0, 110.0, 88.0], periods_per_year=4)
        self.assertAlmostEqual(calmar, -0.05 * 4 / 0.2)


class TestAlphaBeta(unittest.TestCase):
    """Validate benchmark regression."""

    def test_identical_series(self) -> None:
        returns = [0.01, -0.02, 0.03, 0.005, -0.01]
        regression = calculate_alpha_beta(returns, returns)
        self.assertAlmostEqual(regression.alpha, 0.0, places=12)
        self.assertAlmostEqual(regression.beta, 1.0, places=12)
        self.assertAlmostEqual(regression.r_squared, 1.0, places=12)

    def test_scaled_series_with_offset(self) -> None:
        benchmark = [0.01, -0.02, 0.03, 0.005]
        asset = [2.0 * value + 0.001 for value in benchmark]
        regression = calculate_alpha_beta(asset, benchmark)
        self.assertAlmostEqual(regression.beta, 2.0, places=10)
        self.assertAlmostEqual(regression.alpha, 0.001 * 252, places=10)
        self.assertAlmostEqual(regression.r_squared, 1.0, places=10)

    def test_r_squared_includes_intercept(self) -> None:
        benchmark = np.array([0.01, -0.02, 0.03, 0.005, 0.02])
        asset = np.array([0.03, -0.01, 0.05, 0.02, 0.02])
        regression = calculate_alpha_beta(asset, benchmark)

        correlation = float(np.corrcoef(asset, benchmark)[0, 1])
        self.assertAlmostEqual(regression.r_squared, correlation**2, places=10)

        through_origin = 1.0 - float(np.sum((asset - regression.beta * benchmark) ** 2)) / float(
            np.sum((asset - asset.mean()) ** 2)
        )
        self.assertGreater(abs(regression.r_squared - through_origin), 0.1)

    def test_flat_benchmark_returns_zeros(self) -> None:
        regression = calculate_alpha_beta([0.01, 0.02], [0.0, 0.0])
        self.assertEqual((regression.alpha, regression.beta, regression.r_squared), (0, 0, 0))

    def test_length_mismatch_raises(self) -> None:
        with self.assertRaises(LengthMismatchError):
            calculate_alpha_beta([0.01, 0.02], [0.01])


class TestMoments(unittest.TestCase):
    """Validate skewness and excess kurtosis."""

    def test_symmetric_returns(self) -> None:
        returns = [-0.02, -0.01, 0.0, 0.01, 0.02]
        self.assertAlmostEqual(calculate_skewness(returns), 0.0, places=12)
        self.assertAlmostEqual(calculate_kurtosis(returns), -1.3, places=10)

    def test_empty_returns(self) -> None:
        self.assertEqual(calculate_skewness([]), 0.0)
        self.assertEqual(calculate_kurtosis([]), 0.0)

    def test_constant_returns(self) -> None:
        self.assertEqual(calculate_skewness([0.01] * 5), 0.0)
        self.assertEqual(calculate_kurtosis([0.01] * 5), 0.0)


class TestRiskMetrics(unittest.TestCase):
    """Validate the aggregate metrics set."""

    def test_synthetic_index_path(self) -> None:
        path = synthetic_index_path([0.1, -0.5])
        self.assertEqual(len(path), 3)
        self.assertAlmostEqual(path[1], 110.0)
        self.assertAlmostEqual(path[2], 55.0)

    def test_drawdown_comes_from_compounded_returns(self) -> None:
        metrics = calculate_risk_metrics([0.2, -0.25, 0.1])
        self.assertAlmostEqual(metrics.max_drawdown, 0.25, places=12)

    def test_without_benchmark_regression_is_zero(self) -> None:
        metrics = calculate_risk_metrics([0.01, -0.02, 0.03])
        self.assertEqual(metrics.alpha, 0.0)
        self.assertEqual(metrics.beta, 0.0)
        self.assertEqual(metrics.r_squared, 0.0)

    def test_metrics_are_deterministic(self) -> None:
        returns = [0.01, -0.02, 0.03, -0.01, 0.015]
        first = calculate_risk_metrics(returns, benchmark_returns=returns[::-1])
        second = calculate_risk_metrics(returns, benchmark_returns=returns[::-1])
        self.assertEqual(first, second)
        self.assertEqual(set(first.to_dict()), {
            "volatility",
            "sharpe_ratio",
            "sortino_ratio",
            "max_drawdown",
            "calmar_ratio",
            "alpha",
            "beta",
            "r_squared",
            "skewness",
            "kurtosis",
        })


class TestRollingWindows(unittest.TestCase):
    """Validate trailing-window helpers."""

    def test_window_count(self) -> None:
        values = rolling_window([1.0, 2.0, 3.0, 4.0, 5.0], 3, lambda window: float(window.sum()))
        self.assertEqual(values, [6.0, 9.0, 12.0])

    def test_rolling_sharpe_matches_full_window(self) -> None:
        returns = [0.01, 0.03, -0.02, 0.04]
        rolled = rolling_sharpe_ratio(returns, window_size=4, periods_per_year=4)
        self.assertEqual(len(rolled), 1)
        self.assertAlmostEqual(rolled[0], calculate_sharpe_ratio(returns, periods_per_year=4))

    def test_short_input_is_empty(self) -> None:
        self.assertEqual(rolling_volatility([0.01, 0.02], window_size=5), [])

    def test_invalid_window_raises(self) -> None:
        with self.assertRaises(AnalyticsError):
            rolling_window([1.0], 0, lambda window: 0.0)


if __name__ == "__main__":
    unittest.main()
