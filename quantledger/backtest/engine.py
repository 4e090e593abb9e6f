"""quantledger.backtest.engine

Backtest entry points.

Two paths into the same metrics:
- run_backtest: candles -> SeriesBuilder -> simulator <-> signal source -> metrics
- evaluate_positions: pre-computed positions -> settlement -> metrics

A failed run raises and returns nothing. A degenerate run (no bars, no trades)
returns a fully populated result with zero/sentinel metrics.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from quantledger.core.config import Config
from quantledger.core.exceptions import InsufficientDataError
from quantledger.backtest.metrics import compute_metrics
from quantledger.backtest.series import build_series
from quantledger.backtest.settlement import settle, trade_excursions
from quantledger.backtest.signals import SignalSource, SMACrossoverSignal
from quantledger.backtest.simulator import simulate
from quantledger.backtest.types import AccountState, Excursion, Fill, MetricsResult, Position, Series, Trade

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BacktestResult:
    series: Series
    fills: tuple[Fill, ...]
    trades: tuple[Trade, ...]
    equity_curve: tuple[AccountState, ...]
    metrics: MetricsResult
    excursions: tuple[Excursion, ...] = ()


def _as_series(data: Series | Iterable[Any] | None, name: str) -> Series:
    if isinstance(data, Series):
        return data
    return build_series(data, name)


def run_backtest(
    data: Series | Iterable[Any] | None,
    *,
    signal: SignalSource | None = None,
    cfg: Config | None = None,
    benchmark: Series | Iterable[Any] | None = None,
    name: str = "series",
) -> BacktestResult:
    """Simulate a signal source over candles (or an already built Series).

    Without an explicit signal, the SMA crossover from `cfg.strategy` is used.

    Raises:
        InsufficientDataError: the series is non-empty but shorter than the signal's lookback.
    """

    cfg = cfg or Config()
    series = _as_series(data, name)

    if signal is None:
        signal = SMACrossoverSignal(series, short_period=cfg.strategy.short_period, long_period=cfg.strategy.long_period)

    bt = cfg.backtest
    sim = simulate(
        series=series,
        signal=signal,
        initial_capital=bt.initial_capital,
        fee_rate=bt.fee_rate,
        trading_ratio=bt.trading_ratio,
    )

    bench = _as_series(benchmark, f"{name}_benchmark") if benchmark is not None else None
    metrics = compute_metrics(
        series=series,
        trades=sim.trades,
        positions=sim.positions,
        initial_capital=bt.initial_capital,
        final_capital=sim.final_cash,
        total_profit=sim.final_cash - bt.initial_capital,
        total_fees=sim.total_fees,
        risk_free_rate=bt.risk_free_rate,
        omega_threshold=bt.omega_threshold,
        benchmark=bench,
    )
    return BacktestResult(
        series=series,
        fills=sim.fills,
        trades=sim.trades,
        equity_curve=sim.equity_curve,
        metrics=metrics,
        excursions=tuple(trade_excursions(series, sim.positions)),
    )


def evaluate_positions(
    series: Series,
    positions: Sequence[Position],
    *,
    cfg: Config | None = None,
    benchmark: Series | None = None,
) -> BacktestResult:
    """Settle pre-computed closed positions and compute metrics.

    No simulator runs here, so there are no fills and no equity curve.

    Raises:
        InsufficientDataError: a position references a bar past the end of the series.
    """

    cfg = cfg or Config()
    bt = cfg.backtest

    for p in positions:
        last = p.exit_index if p.exit_index is not None else p.entry_index
        if last >= len(series):
            logger.error("position_out_of_range", extra={"series": series.name, "bar": last, "bars": len(series)})
            raise InsufficientDataError(required=last + 1, available=len(series))

    trades = settle(positions, bt.initial_capital, bt.fee_rate, series=series)
    metrics = compute_metrics(
        series=series,
        trades=trades,
        positions=[p for p in positions if p.is_closed],
        initial_capital=bt.initial_capital,
        risk_free_rate=bt.risk_free_rate,
        omega_threshold=bt.omega_threshold,
        benchmark=benchmark,
    )
    return BacktestResult(
        series=series,
        fills=(),
        trades=tuple(trades),
        equity_curve=(),
        metrics=metrics,
        excursions=tuple(trade_excursions(series, positions)),
    )
