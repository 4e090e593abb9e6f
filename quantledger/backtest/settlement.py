"""quantledger.backtest.settlement

TradeSettlement: pre-computed closed positions -> fee-adjusted trade ledger.

Single all-in/all-out account, fully compounding: the capital for trade k+1 is
exactly the net exit proceeds of trade k.

Per trade:
1) entry_fee = capital * fee_rate; invested = capital - entry_fee
2) profit_pct = (exit - entry) / entry (long), (entry - exit) / entry (short), 4 dp
3) exit_value = invested * (1 + profit_pct); exit_fee = exit_value * fee_rate
4) net_exit = exit_value - exit_fee; profit = net_exit - capital

A short that loses more than 100% floors exit_value at 0. Once capital hits 0
settlement stops; later positions have nothing to trade with.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import Decimal

from quantledger.core.decimals import ONE, ZERO, quantize_pct, quantize_qty
from quantledger.core.exceptions import InsufficientDataError
from quantledger.backtest.types import Excursion, Position, Series, Side, Trade

logger = logging.getLogger(__name__)


def profit_pct(position: Position) -> Decimal:
    entry = position.entry_price
    exit_ = position.exit_price
    if exit_ is None or entry == 0:
        return quantize_pct(ZERO)
    if position.side is Side.SHORT:
        return quantize_pct((entry - exit_) / entry)
    return quantize_pct((exit_ - entry) / entry)


def settle(
    positions: Iterable[Position],
    initial_capital: Decimal,
    fee_rate: Decimal,
    *,
    series: Series | None = None,
) -> list[Trade]:
    """Settle closed positions in order. Open positions are ignored."""

    trades: list[Trade] = []
    capital = initial_capital

    for pos in positions:
        if not pos.is_closed:
            logger.info("position_open_ignored", extra={"entry_index": pos.entry_index})
            continue

        entry_fee = quantize_qty(capital * fee_rate)
        invested = capital - entry_fee
        pct = profit_pct(pos)

        exit_value = max(quantize_qty(invested * (ONE + pct)), ZERO)
        exit_fee = quantize_qty(exit_value * fee_rate)
        net_exit = exit_value - exit_fee

        entry_time = exit_time = None
        if series is not None:
            exit_index = int(pos.exit_index)  # type: ignore[arg-type]
            if exit_index >= len(series):
                raise InsufficientDataError(required=exit_index + 1, available=len(series))
            entry_time = series[pos.entry_index].open_time
            exit_time = series[exit_index].open_time

        trades.append(
            Trade(
                index=len(trades) + 1,
                side=pos.side,
                entry_time=entry_time,
                entry_price=pos.entry_price,
                entry_amount=capital,
                exit_time=exit_time,
                exit_price=pos.exit_price,
                exit_amount=net_exit,
                fee=entry_fee + exit_fee,
                profit=net_exit - capital,
                profit_percentage=pct,
                entry_index=pos.entry_index,
                exit_index=pos.exit_index,
            )
        )
        capital = net_exit
        if capital <= 0:
            logger.warning("capital_exhausted", extra={"trade": len(trades), "entry_index": pos.entry_index})
            break

    logger.info("settlement_complete", extra={"trades": len(trades), "final_capital": str(capital)})
    return trades


def trade_excursions(series: Series, positions: Iterable[Position]) -> list[Excursion]:
    """Worst close-vs-entry loss and worst in-trade drawdown per closed position.

    Based on closes only, fees ignored. Long drawdown is measured against the
    running high; short against the running low.
    """

    out: list[Excursion] = []
    for pos in positions:
        if not pos.is_closed:
            continue
        window = series.bars[pos.entry_index : pos.exit_index + 1]
        if not window:
            continue

        entry = window[0].close
        highest = window[0].close
        lowest = window[0].close
        max_loss = ZERO
        max_dd = ZERO

        for bar in window:
            c = bar.close
            highest = max(highest, c)
            lowest = min(lowest, c)
            if entry == 0:
                continue
            if pos.side is Side.SHORT:
                loss = (entry - c) / entry
                dd = (lowest - c) / lowest if lowest else ZERO
            else:
                loss = (c - entry) / entry
                dd = (c - highest) / highest if highest else ZERO
            max_loss = min(max_loss, loss)
            max_dd = min(max_dd, dd)

        out.append(
            Excursion(
                entry_index=pos.entry_index,
                exit_index=int(pos.exit_index),
                max_loss=quantize_qty(max_loss),
                max_drawdown=quantize_qty(max_dd),
            )
        )
    return out
