"""quantledger.backtest.types

Lightweight dataclasses for the backtest hot path.

All of them are frozen: a run produces them, nobody edits them afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import StrEnum

DAY = timedelta(days=1)
TRADING_DAYS_PER_YEAR = 252


class Side(StrEnum):
    LONG = "long"
    SHORT = "short"


class FillSide(StrEnum):
    BUY = "buy"
    SELL = "sell"


@dataclass(frozen=True, slots=True)
class Bar:
    open_time: datetime
    close_time: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal = Decimal("0")


@dataclass(frozen=True, slots=True)
class Series:
    """Ordered bars for one instrument, unique and strictly increasing by open_time."""

    name: str
    bars: tuple[Bar, ...] = ()
    interval: timedelta = timedelta(minutes=1)

    def __len__(self) -> int:
        return len(self.bars)

    def __getitem__(self, i: int) -> Bar:
        return self.bars[i]

    @property
    def closes(self) -> list[Decimal]:
        return [b.close for b in self.bars]

    @property
    def periods_per_year(self) -> float:
        """Sampling periods per year, scaled from 252 trading days."""

        return TRADING_DAYS_PER_YEAR * (DAY / self.interval)

    def is_uniformly_spaced(self) -> bool:
        for prev, cur in zip(self.bars, self.bars[1:]):
            if cur.open_time - prev.open_time != self.interval:
                return False
        return True


@dataclass(frozen=True, slots=True)
class Position:
    """One round trip. `exit_index` is None while open."""

    entry_index: int
    entry_price: Decimal
    exit_index: int | None = None
    exit_price: Decimal | None = None
    side: Side = Side.LONG

    @property
    def is_closed(self) -> bool:
        return self.exit_index is not None and self.exit_price is not None


@dataclass(frozen=True, slots=True)
class Fill:
    """One executed buy or sell, with the account state right after it."""

    time: datetime
    side: FillSide
    price: Decimal
    amount: Decimal
    value: Decimal
    fee: Decimal
    cash: Decimal
    position: Decimal
    total_balance: Decimal
    reason: str


@dataclass(frozen=True, slots=True)
class Trade:
    """Settled, fee-adjusted result of a closed position."""

    index: int
    side: Side
    entry_time: datetime | None
    entry_price: Decimal
    entry_amount: Decimal  # capital committed, fee included
    exit_time: datetime | None
    exit_price: Decimal
    exit_amount: Decimal  # net proceeds, fee deducted
    fee: Decimal
    profit: Decimal
    profit_percentage: Decimal
    entry_index: int | None = None
    exit_index: int | None = None


@dataclass(frozen=True, slots=True)
class AccountState:
    time: datetime
    cash: Decimal
    position_units: Decimal
    mark_price: Decimal
    position_value: Decimal
    total_balance: Decimal


@dataclass(frozen=True, slots=True)
class Excursion:
    """Worst moves inside one holding window (both <= 0)."""

    entry_index: int
    exit_index: int
    max_loss: Decimal
    max_drawdown: Decimal


@dataclass(frozen=True, slots=True)
class MetricsResult:
    # Ledger totals
    initial_capital: Decimal
    final_capital: Decimal
    total_profit: Decimal
    total_fees: Decimal
    total_return: Decimal
    annualized_return: Decimal
    buy_and_hold_return: Decimal

    # Trade statistics
    total_trades: int
    profitable_trades: int
    losing_trades: int
    win_rate: Decimal  # percent
    average_profit: Decimal
    maximum_single_loss: Decimal
    profit_loss_ratio: Decimal
    profit_factor: Decimal

    # Risk / return
    sharpe_ratio: Decimal
    sortino_ratio: Decimal
    calmar_ratio: Decimal
    max_drawdown: Decimal
    volatility: Decimal
    treynor_ratio: Decimal
    skewness: Decimal
    kurtosis: Decimal
    omega: Decimal
    information_ratio: Decimal
    var95: Decimal
    var99: Decimal
    cvar95: Decimal
    cvar99: Decimal
    downside_volatility: Decimal
    romad: Decimal
    ulcer_index: Decimal

    # Market exposure; (0, 1) placeholders unless a benchmark was supplied
    alpha: Decimal
    beta: Decimal
    benchmark_supplied: bool

    bar_count: int
    periods_per_year: Decimal
