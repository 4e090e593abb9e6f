"""quantledger.backtest

Backtest engine.

- series: raw candles -> Series
- signals: entry/exit predicates (SMA crossover, replayed positions)
- simulator: bar-by-bar cash/position ledger
- settlement: compounding fee-adjusted trades from closed positions
- metrics: risk/return analytics
"""

from quantledger.backtest.engine import BacktestResult, evaluate_positions, run_backtest
from quantledger.backtest.metrics import compute_metrics
from quantledger.backtest.series import build_series
from quantledger.backtest.settlement import settle
from quantledger.backtest.signals import PositionListSignal, SignalSource, SMACrossoverSignal
from quantledger.backtest.simulator import AccountSimulator, simulate

__all__ = [
    "AccountSimulator",
    "BacktestResult",
    "PositionListSignal",
    "SMACrossoverSignal",
    "SignalSource",
    "build_series",
    "compute_metrics",
    "evaluate_positions",
    "run_backtest",
    "settle",
    "simulate",
]
