"""quantledger.backtest.simulator

Single-asset, long-only account simulator.

Walks the series bar by bar:
- asks the signal source whether to exit (while long) or enter (while flat)
- executes against cash/position with a proportional fee
- records one AccountState per bar, after any trade on that bar

Cash and position never go negative. Oversized orders are clamped to what the
account can afford or hold; a clamp to zero is a logged no-op.
A position still open on the last bar is sold at its close.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from quantledger.core.decimals import ONE, QTY_SCALE, ZERO, floor_qty, quantize_pct, quantize_qty
from quantledger.core.exceptions import InsufficientDataError
from quantledger.backtest.signals import SignalSource
from quantledger.backtest.types import AccountState, Fill, FillSide, Position, Series, Side, Trade

logger = logging.getLogger(__name__)

END_OF_BACKTEST = "end of backtest"

_TICK = Decimal(1).scaleb(-QTY_SCALE)


class AccountSimulator:
    """Cash/position bookkeeping for one run. Not shared between runs."""

    def __init__(self, *, initial_capital: Decimal, fee_rate: Decimal) -> None:
        self.initial_capital = initial_capital
        self.fee_rate = fee_rate
        self.cash = initial_capital
        self.position = ZERO
        self.fills: list[Fill] = []
        self.states: list[AccountState] = []

    def _fill(self, time: datetime, side: FillSide, price: Decimal, amount: Decimal, value: Decimal, fee: Decimal, reason: str) -> Fill:
        fill = Fill(
            time=time,
            side=side,
            price=price,
            amount=amount,
            value=value,
            fee=fee,
            cash=self.cash,
            position=self.position,
            total_balance=self.cash + self.position * price,
            reason=reason,
        )
        self.fills.append(fill)
        return fill

    def buy(self, time: datetime, price: Decimal, amount: Decimal, reason: str) -> Fill | None:
        value = price * amount
        fee = value * self.fee_rate

        if self.cash < value + fee:
            requested = amount
            amount = floor_qty(self.cash / (price * (ONE + self.fee_rate)))
            # Division rounds at context precision; never let that overdraw.
            while amount > 0 and price * amount * (ONE + self.fee_rate) > self.cash:
                amount -= _TICK
            value = price * amount
            fee = value * self.fee_rate
            if amount > 0:
                logger.info("buy_clamped", extra={"requested": str(requested), "amount": str(amount), "cash": str(self.cash)})

        if amount <= 0:
            logger.info("buy_skipped_no_cash", extra={"time": time.isoformat(), "price": str(price), "cash": str(self.cash)})
            return None

        self.position += amount
        self.cash -= value + fee
        fill = self._fill(time, FillSide.BUY, price, amount, value, fee, reason)
        logger.info("buy_filled", extra={"time": time.isoformat(), "price": str(price), "amount": str(amount), "fee": str(fee)})
        return fill

    def sell(self, time: datetime, price: Decimal, amount: Decimal, reason: str) -> Fill | None:
        if self.position < amount:
            logger.info("sell_clamped", extra={"requested": str(amount), "amount": str(self.position)})
            amount = self.position

        if amount <= 0:
            logger.info("sell_skipped_no_position", extra={"time": time.isoformat(), "price": str(price)})
            return None

        value = price * amount
        fee = value * self.fee_rate
        self.position -= amount
        self.cash += value - fee
        fill = self._fill(time, FillSide.SELL, price, amount, value, fee, reason)
        logger.info("sell_filled", extra={"time": time.isoformat(), "price": str(price), "amount": str(amount), "fee": str(fee)})
        return fill

    def record_state(self, time: datetime, price: Decimal) -> AccountState:
        position_value = self.position * price
        state = AccountState(
            time=time,
            cash=self.cash,
            position_units=self.position,
            mark_price=price,
            position_value=position_value,
            total_balance=self.cash + position_value,
        )
        self.states.append(state)
        return state


@dataclass(frozen=True, slots=True)
class SimResult:
    fills: tuple[Fill, ...]
    trades: tuple[Trade, ...]
    positions: tuple[Position, ...]
    equity_curve: tuple[AccountState, ...]
    initial_capital: Decimal
    final_cash: Decimal
    total_fees: Decimal


def pair_fills(fills: list[Fill] | tuple[Fill, ...], positions: list[Position] | tuple[Position, ...]) -> list[Trade]:
    """Pair buy/sell fills into the trade ledger, one trade per closed position."""

    trades: list[Trade] = []
    buys = [f for f in fills if f.side is FillSide.BUY]
    sells = [f for f in fills if f.side is FillSide.SELL]
    for k, (entry, exit_, pos) in enumerate(zip(buys, sells, positions), start=1):
        entry_amount = entry.value + entry.fee
        exit_amount = exit_.value - exit_.fee
        trades.append(
            Trade(
                index=k,
                side=Side.LONG,
                entry_time=entry.time,
                entry_price=entry.price,
                entry_amount=quantize_qty(entry_amount),
                exit_time=exit_.time,
                exit_price=exit_.price,
                exit_amount=quantize_qty(exit_amount),
                fee=quantize_qty(entry.fee + exit_.fee),
                profit=quantize_qty(exit_amount - entry_amount),
                profit_percentage=quantize_pct((exit_.price - entry.price) / entry.price),
                entry_index=pos.entry_index,
                exit_index=pos.exit_index,
            )
        )
    return trades


def simulate(
    *,
    series: Series,
    signal: SignalSource,
    initial_capital: Decimal,
    fee_rate: Decimal,
    trading_ratio: Decimal = ONE,
) -> SimResult:
    """Run one backtest over `series`. Raises InsufficientDataError before any state is produced."""

    n = len(series)
    if 0 < n < signal.min_bars:
        logger.error("insufficient_data", extra={"series": series.name, "required": signal.min_bars, "available": n})
        raise InsufficientDataError(required=signal.min_bars, available=n)

    acct = AccountSimulator(initial_capital=initial_capital, fee_rate=fee_rate)
    positions: list[Position] = []
    open_pos: Position | None = None

    for i, bar in enumerate(series.bars):
        price = bar.close
        last = i == n - 1

        if open_pos is not None and signal.should_exit(i):
            if acct.sell(bar.open_time, price, acct.position, signal.describe(i)) is not None:
                positions.append(Position(entry_index=open_pos.entry_index, entry_price=open_pos.entry_price, exit_index=i, exit_price=price))
                open_pos = None
        elif open_pos is None and signal.should_enter(i):
            if last:
                # A position opened here could never close on a later bar.
                logger.info("entry_skipped_final_bar", extra={"series": series.name, "bar": i})
            else:
                amount = floor_qty(acct.cash * trading_ratio / price) if price > 0 else ZERO
                if acct.buy(bar.open_time, price, amount, signal.describe(i)) is not None:
                    open_pos = Position(entry_index=i, entry_price=price)

        if open_pos is not None and last:
            acct.sell(bar.open_time, price, acct.position, END_OF_BACKTEST)
            positions.append(Position(entry_index=open_pos.entry_index, entry_price=open_pos.entry_price, exit_index=i, exit_price=price))
            open_pos = None

        acct.record_state(bar.open_time, price)

    trades = pair_fills(acct.fills, positions)
    total_fees = sum((f.fee for f in acct.fills), ZERO)

    logger.info(
        "simulation_complete",
        extra={"series": series.name, "bars": n, "trades": len(trades), "final_cash": str(acct.cash)},
    )
    return SimResult(
        fills=tuple(acct.fills),
        trades=tuple(trades),
        positions=tuple(positions),
        equity_curve=tuple(acct.states),
        initial_capital=initial_capital,
        final_cash=acct.cash,
        total_fees=total_fees,
    )
