"""Deterministic rebalance-boundary backtest simulator."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date

import pandas as pd

from coinsight.core.analytics.risk import calculate_returns, calculate_risk_metrics
from coinsight.core.backtest.types import (
    REBALANCE_FREQUENCIES,
    BacktestResult,
    BacktestState,
    EquityCurvePoint,
    StrategyConfig,
    Trade,
    TradeReason,
)
from coinsight.core.research.strategy import (
    CUSTOM_STRATEGY,
    SignalFn,
    get_signal_fn,
    is_registered,
    normalize_weight,
)
from coinsight.core.utils.errors import (
    BacktestError,
    CoinsightError,
    InsufficientHistoryError,
    InvalidConfigError,
    StrategyError,
    UnknownStrategyError,
)
from coinsight.core.utils.logging import get_logger

PRICE_COLUMN = "price"
DAYS_PER_YEAR = 365.0
PERIODS_PER_YEAR: dict[str, int] = {"daily": 365, "weekly": 52, "monthly": 12}
_PERIOD_UNITS: dict[str, str] = {"daily": "days", "weekly": "weeks", "monthly": "months"}
_QUANTITY_EPSILON = 1e-12

PriceInput = pd.DataFrame | pd.Series

logger = get_logger(__name__)


@dataclass
class _Position:
    """Open long holding.

    ``cost_basis`` includes fees and drives realized P&L; ``fill_value`` is
    the fee-free notional used for the average fill price.
    """

    quantity: float = 0.0
    cost_basis: float = 0.0
    fill_value: float = 0.0

    def unrealized_return(self, price: float) -> float:
        average_fill = self.fill_value / self.quantity
        return price / average_fill - 1.0


def validate_config(config: StrategyConfig, resolve_strategy: bool = True) -> None:
    """
    Validate a strategy configuration before any simulation work.

    Args:
        config: Configuration to check.
        resolve_strategy: Also check that ``strategy_type`` can be resolved.
            Disabled when the caller supplies its own signal function.

    Raises:
        InvalidConfigError: For malformed fields.
        UnknownStrategyError: If ``strategy_type`` has no registered signal.
    """
    if config.start_date >= config.end_date:
        raise InvalidConfigError(
            f"start_date ({config.start_date}) must be before end_date ({config.end_date})."
        )
    if config.initial_capital <= 0:
        raise InvalidConfigError("initial_capital must be greater than 0.")
    if not 0.0 < config.position_size <= 1.0:
        raise InvalidConfigError("position_size must be in (0, 1].")
    if not config.asset_ids or not all(str(asset).strip() for asset in config.asset_ids):
        raise InvalidConfigError("asset_ids must contain at least one non-empty asset id.")
    if config.rebalance_frequency not in REBALANCE_FREQUENCIES:
        raise InvalidConfigError(
            f"rebalance_frequency must be one of {list(REBALANCE_FREQUENCIES)}, "
            f"got '{config.rebalance_frequency}'."
        )
    if config.transaction_cost < 0:
        raise InvalidConfigError("transaction_cost must be non-negative.")
    if not 0.0 <= config.slippage < 1.0:
        raise InvalidConfigError("slippage must be in [0, 1).")
    if config.stop_loss is not None and not 0.0 < config.stop_loss <= 1.0:
        raise InvalidConfigError("stop_loss must be in (0, 1].")
    if config.take_profit is not None and not 0.0 < config.take_profit <= 1.0:
        raise InvalidConfigError("take_profit must be in (0, 1].")
    if not 0.0 <= config.rebalance_tolerance < 1.0:
        raise InvalidConfigError("rebalance_tolerance must be in [0, 1).")
    if not resolve_strategy:
        return
    if config.strategy_type == CUSTOM_STRATEGY and not config.strategy_params.get("module"):
        raise InvalidConfigError("custom strategies require strategy_params['module'].")
    if not is_registered(config.strategy_type):
        raise UnknownStrategyError(f"Unknown strategy type '{config.strategy_type}'.")


def rebalance_boundaries(start: date, end: date, frequency: str) -> list[date]:
    """
    List rebalance dates strictly after ``start`` up to and including ``end``.

    Dates step from ``start`` by one day, one week or one calendar month;
    ``end`` is appended when it does not fall on a step.
    """
    unit = _PERIOD_UNITS[frequency]
    start_ts = pd.Timestamp(start)
    boundaries: list[date] = []
    step = 1
    while True:
        candidate = (start_ts + pd.DateOffset(**{unit: step})).date()
        if candidate > end:
            break
        boundaries.append(candidate)
        step += 1
    if not boundaries or boundaries[-1] < end:
        boundaries.append(end)
    return boundaries


def _prepare_prices(asset: str, data: PriceInput, start: date, end: date) -> pd.Series:
    """Normalize one asset's prices to a sorted naive-UTC series covering the window."""
    if isinstance(data, pd.DataFrame):
        if PRICE_COLUMN not in data.columns:
            raise BacktestError(f"Price data for asset '{asset}' has no '{PRICE_COLUMN}' column.")
        series = data[PRICE_COLUMN]
    else:
        series = data
    if not isinstance(series.index, pd.DatetimeIndex):
        raise BacktestError(f"Price data for asset '{asset}' must use a DatetimeIndex.")

    prices = pd.to_numeric(series, errors="coerce").astype(float).dropna().sort_index()
    if prices.index.tz is not None:
        prices.index = prices.index.tz_convert("UTC").tz_localize(None)
    prices = prices.loc[~prices.index.duplicated(keep="last")]
    if prices.empty:
        raise InsufficientHistoryError(f"Price data for asset '{asset}' is empty.")

    first_date = prices.index.min().date()
    last_date = prices.index.max().date()
    if first_date > start or last_date < end:
        raise InsufficientHistoryError(
            f"Price data for asset '{asset}' covers [{first_date}, {last_date}] "
            f"but the backtest needs [{start}, {end}]."
        )
    return prices


def _history_until(prices: pd.Series, boundary: date) -> pd.Series:
    """Prices observed on or before ``boundary``."""
    end_of_day = pd.Timestamp(boundary) + pd.Timedelta(days=1)
    return prices.iloc[: prices.index.searchsorted(end_of_day, side="left")]


class BacktestSimulator:
    """
    Single-use simulator for one ``StrategyConfig``.

    State moves ``CONFIGURING -> RUNNING -> COMPLETED``, or to ``FAILED`` with
    ``failure`` holding the cause. A failed run never exposes partial trades
    or equity points.
    """

    def __init__(self, config: StrategyConfig, signal_fn: SignalFn | None = None) -> None:
        """
        Args:
            config: Strategy configuration.
            signal_fn: Optional signal override; when omitted the signal is
                resolved from ``config.strategy_type``.
        """
        self.config = config
        self.state = BacktestState.CONFIGURING
        self.failure: Exception | None = None
        self._signal_fn = signal_fn
        self._cash = 0.0
        self._positions: dict[str, _Position] = {}
        self._trades: list[Trade] = []
        self._equity_curve: list[EquityCurvePoint] = []

    def validate(self) -> SignalFn:
        """Validate the configuration and resolve the signal function."""
        if self._signal_fn is not None:
            validate_config(self.config, resolve_strategy=False)
            if not callable(self._signal_fn):
                raise StrategyError("signal_fn must be callable.")
            return self._signal_fn
        validate_config(self.config)
        return get_signal_fn(self.config.strategy_type, self.config.strategy_params)

    def run(self, price_series_by_asset: Mapping[str, PriceInput]) -> BacktestResult:
        """
        Replay all rebalance boundaries and build the result.

        Args:
            price_series_by_asset: Price frames (``price`` column) or series
                per asset id, indexed by timestamp.

        Returns:
            Completed backtest result.
        """
        if self.state is not BacktestState.CONFIGURING:
            raise BacktestError(f"Simulator already used (state={self.state.value}).")

        config = self.config
        try:
            signal_fn = self.validate()
            prices_by_asset = {}
            for asset in config.sorted_assets():
                if asset not in price_series_by_asset:
                    raise InsufficientHistoryError(f"No price data supplied for asset '{asset}'.")
                prices_by_asset[asset] = _prepare_prices(
                    asset, price_series_by_asset[asset], config.start_date, config.end_date
                )
        except CoinsightError as exc:
            self._fail(exc)
            raise

        self.state = BacktestState.RUNNING
        logger.info(
            "Backtest started: strategy=%s assets=%s window=[%s, %s] frequency=%s",
            config.strategy_type,
            ",".join(prices_by_asset),
            config.start_date,
            config.end_date,
            config.rebalance_frequency,
        )
        try:
            self._cash = float(config.initial_capital)
            self._equity_curve.append(EquityCurvePoint(config.start_date, self._cash))
            for boundary in rebalance_boundaries(
                config.start_date, config.end_date, config.rebalance_frequency
            ):
                self._process_boundary(boundary, prices_by_asset, signal_fn)
            result = self._build_result()
        except CoinsightError as exc:
            self._fail(exc)
            raise
        except Exception as exc:
            self._fail(exc)
            raise BacktestError(f"Backtest failed: {exc}") from exc

        self.state = BacktestState.COMPLETED
        logger.info(
            "Backtest completed: total_return=%.4f%% trades=%d final_equity=%.2f",
            result.total_return,
            result.num_trades,
            result.final_equity,
        )
        return result

    def _fail(self, exc: Exception) -> None:
        self.state = BacktestState.FAILED
        self.failure = exc
        self._positions.clear()
        self._trades.clear()
        self._equity_curve.clear()
        logger.error("Backtest failed: %s", exc)

    def _process_boundary(
        self,
        boundary: date,
        prices_by_asset: Mapping[str, pd.Series],
        signal_fn: SignalFn,
    ) -> None:
        histories = {
            asset: _history_until(prices, boundary) for asset, prices in prices_by_asset.items()
        }
        marks = {asset: float(history.iloc[-1]) for asset, history in histories.items()}

        forced_exits: set[str] = set()
        for asset in list(self._positions):
            reason = self._exit_reason(self._positions[asset], marks[asset])
            if reason is not None:
                logger.info("%s triggered for %s on %s", reason, asset, boundary)
                self._sell(boundary, asset, marks[asset], self._positions[asset].quantity, reason)
                forced_exits.add(asset)

        equity = self._equity(marks)
        targets: dict[str, float] = {}
        for asset, history in histories.items():
            if asset in forced_exits:
                continue
            weight = self._signal(signal_fn, asset, history, boundary)
            if weight is not None:
                targets[asset] = self._target_value(weight, equity)

        # sells before buys
        for asset, target in targets.items():
            self._reduce_towards(boundary, asset, marks[asset], target, equity)
        for asset, target in targets.items():
            self._increase_towards(boundary, asset, marks[asset], target, equity)

        self._equity_curve.append(EquityCurvePoint(boundary, self._equity(marks)))

    def _signal(
        self,
        signal_fn: SignalFn,
        asset: str,
        history: pd.Series,
        boundary: date,
    ) -> float | None:
        try:
            raw = signal_fn(history, dict(self.config.strategy_params))
        except Exception as exc:
            raise StrategyError(
                f"Signal for asset '{asset}' failed on {boundary.isoformat()}: {exc}"
            ) from exc
        return normalize_weight(raw, asset)

    def _exit_reason(self, position: _Position, price: float) -> TradeReason | None:
        unrealized = position.unrealized_return(price)
        if self.config.stop_loss is not None and unrealized <= -self.config.stop_loss:
            return "stop_loss"
        if self.config.take_profit is not None and unrealized >= self.config.take_profit:
            return "take_profit"
        return None

    def _equity(self, marks: Mapping[str, float]) -> float:
        holdings = sum(
            position.quantity * marks[asset] for asset, position in self._positions.items()
        )
        return self._cash + holdings

    def _target_value(self, weight: float, equity: float) -> float:
        # long-only: short weights flatten the position
        allocation = self.config.position_size * equity / len(self.config.asset_ids)
        return max(weight, 0.0) * allocation

    def _reduce_towards(
        self,
        boundary: date,
        asset: str,
        mark: float,
        target_value: float,
        equity: float,
    ) -> None:
        position = self._positions.get(asset)
        if position is None:
            return
        if target_value <= 0.0:
            self._sell(boundary, asset, mark, position.quantity, "signal")
            return
        excess = position.quantity * mark - target_value
        if excess > self.config.rebalance_tolerance * equity:
            self._sell(boundary, asset, mark, min(excess / mark, position.quantity), "signal")

    def _increase_towards(
        self,
        boundary: date,
        asset: str,
        mark: float,
        target_value: float,
        equity: float,
    ) -> None:
        if target_value <= 0.0:
            return
        position = self._positions.get(asset)
        current_value = 0.0 if position is None else position.quantity * mark
        shortfall = target_value - current_value
        if position is not None and shortfall <= self.config.rebalance_tolerance * equity:
            return
        spend = min(shortfall, self._cash)
        if spend > 0.0:
            self._buy(boundary, asset, mark, spend)

    def _buy(self, boundary: date, asset: str, mark: float, spend: float) -> None:
        """Buy with ``spend`` cash, fees included."""
        fill_price = mark * (1.0 + self.config.slippage)
        quantity = spend / (1.0 + self.config.transaction_cost) / fill_price
        if quantity <= _QUANTITY_EPSILON:
            return
        value = fill_price * quantity
        fee = self.config.transaction_cost * value

        self._cash -= value + fee
        position = self._positions.setdefault(asset, _Position())
        position.quantity += quantity
        position.cost_basis += value + fee
        position.fill_value += value
        self._record(Trade(boundary, asset, "buy", fill_price, quantity, value, fee))

    def _sell(
        self,
        boundary: date,
        asset: str,
        mark: float,
        quantity: float,
        reason: TradeReason,
    ) -> None:
        position = self._positions[asset]
        if quantity <= _QUANTITY_EPSILON:
            return
        fill_price = mark * (1.0 - self.config.slippage)
        value = fill_price * quantity
        fee = self.config.transaction_cost * value
        fraction = quantity / position.quantity
        basis = position.cost_basis * fraction
        pnl = value - fee - basis

        self._cash += value - fee
        position.quantity -= quantity
        position.cost_basis -= basis
        position.fill_value -= position.fill_value * fraction
        if position.quantity <= _QUANTITY_EPSILON:
            del self._positions[asset]
        self._record(
            Trade(boundary, asset, "sell", fill_price, quantity, value, fee, reason=reason, pnl=pnl)
        )

    def _record(self, trade: Trade) -> None:
        logger.debug(
            "%s %s %s qty=%.8f price=%.6f pnl=%s",
            trade.date,
            trade.action,
            trade.asset,
            trade.quantity,
            trade.price,
            trade.pnl,
        )
        self._trades.append(trade)

    def _build_result(self) -> BacktestResult:
        config = self.config
        values = [point.value for point in self._equity_curve]
        growth = values[-1] / config.initial_capital
        elapsed_days = (config.end_date - config.start_date).days
        annualized_return = (
            (growth ** (DAYS_PER_YEAR / elapsed_days) - 1.0) * 100.0 if growth > 0 else -100.0
        )

        period_returns = calculate_returns(values, kind="simple")
        risk_metrics = calculate_risk_metrics(
            period_returns, window_size=PERIODS_PER_YEAR[config.rebalance_frequency]
        )

        closed = [trade.pnl for trade in self._trades if trade.pnl is not None]
        gross_profit = sum(pnl for pnl in closed if pnl > 0)
        gross_loss = sum(pnl for pnl in closed if pnl < 0)
        win_rate = sum(1 for pnl in closed if pnl > 0) / len(closed) if closed else 0.0
        profit_factor = gross_profit / abs(gross_loss) if gross_loss != 0 else 0.0

        return BacktestResult(
            total_return=(growth - 1.0) * 100.0,
            annualized_return=annualized_return,
            sharpe_ratio=risk_metrics.sharpe_ratio,
            max_drawdown=risk_metrics.max_drawdown,
            win_rate=win_rate,
            profit_factor=profit_factor,
            num_trades=len(self._trades),
            equity_curve=tuple(self._equity_curve),
            trades=tuple(self._trades),
            risk_metrics=risk_metrics,
        )


def run_backtest(
    config: StrategyConfig,
    price_series_by_asset: Mapping[str, PriceInput],
    signal_fn: SignalFn | None = None,
) -> BacktestResult:
    """
    Run one deterministic backtest.

    Execution model:
    - Signals at a boundary see prices up to and including that date.
    - Fills happen at that boundary's last price, adjusted for slippage.
    - Open positions are marked to market at the end, never force-closed.

    Args:
        config: Strategy configuration.
        price_series_by_asset: Price data per asset id.
        signal_fn: Optional signal override.

    Returns:
        Backtest result container.
    """
    return BacktestSimulator(config, signal_fn=signal_fn).run(price_series_by_asset)
