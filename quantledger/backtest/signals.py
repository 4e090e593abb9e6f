"""quantledger.backtest.signals

Signal source contract.

A signal source answers two questions per bar index: should a position open
here, should the open one close here. It never sees cash, fees or the ledger;
the simulator owns all state and only asks when the question is relevant
(enter while flat, exit while long).
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol, runtime_checkable

from quantledger.core.decimals import QTY_SCALE
from quantledger.backtest.types import Position, Series, Side

_SMA_Q = Decimal(1).scaleb(-QTY_SCALE)


@runtime_checkable
class SignalSource(Protocol):
    min_bars: int

    def should_enter(self, i: int) -> bool: ...

    def should_exit(self, i: int) -> bool: ...

    def describe(self, i: int) -> str: ...


def sma(values: list[Decimal], n: int) -> list[Decimal | None]:
    """Simple moving average, None until `n` values are available."""

    out: list[Decimal | None] = [None] * len(values)
    if n <= 0:
        return out
    window = Decimal(0)
    for i, v in enumerate(values):
        window += v
        if i >= n:
            window -= values[i - n]
        if i >= n - 1:
            out[i] = (window / n).quantize(_SMA_Q, rounding=ROUND_HALF_UP)
    return out


class SMACrossoverSignal:
    """Short/long simple moving average crossover.

    Enter when the short MA moves from <= long MA to > long MA; exit on the
    reverse. Needs a previous MA pair, so the earliest signal is at
    index `long_period`.
    """

    name = "sma_crossover"

    def __init__(self, series: Series, *, short_period: int = 5, long_period: int = 20) -> None:
        if short_period < 1 or short_period >= long_period:
            raise ValueError(f"need 1 <= short_period < long_period, got {short_period}, {long_period}")
        self.short_period = int(short_period)
        self.long_period = int(long_period)
        self.min_bars = self.long_period

        closes = series.closes
        self._short = sma(closes, self.short_period)
        self._long = sma(closes, self.long_period)

    def _above(self, i: int) -> bool | None:
        if i < 0 or i >= len(self._long):
            return None
        s, lg = self._short[i], self._long[i]
        if s is None or lg is None:
            return None
        return s > lg

    def should_enter(self, i: int) -> bool:
        cur, prev = self._above(i), self._above(i - 1)
        return cur is True and prev is False

    def should_exit(self, i: int) -> bool:
        cur, prev = self._above(i), self._above(i - 1)
        return cur is False and prev is True

    def describe(self, i: int) -> str:
        s, lg = self._short[i], self._long[i]
        if s is None or lg is None:
            return "no signal"
        direction = "above" if s > lg else "below"
        return f"short MA({s:.2f}) crossed {direction} long MA({lg:.2f})"


class PositionListSignal:
    """Replay a pre-computed list of closed long positions."""

    name = "position_list"

    def __init__(self, positions: Iterable[Position]) -> None:
        closed = [p for p in positions if p.is_closed]
        for p in closed:
            if p.side is not Side.LONG:
                raise ValueError("simulator is long-only; settle() short positions instead")
            if p.exit_index is None or p.entry_index >= p.exit_index:
                raise ValueError(f"entry_index must be < exit_index, got {p.entry_index} -> {p.exit_index}")
        self._entries = {p.entry_index for p in closed}
        self._exits = {p.exit_index for p in closed}
        self.min_bars = max((int(p.exit_index) + 1 for p in closed), default=0)

    def should_enter(self, i: int) -> bool:
        return i in self._entries

    def should_exit(self, i: int) -> bool:
        return i in self._exits

    def describe(self, i: int) -> str:
        return f"scheduled position at bar {i}"
