"""quantledger.backtest.series

SeriesBuilder: raw candle records -> ordered, deduplicated Series.

Rules:
- malformed candles are skipped (logged), never fatal here
- exact duplicates dropped; first record wins for a repeated open_time
- interval inferred from the first two bars only, 1 minute fallback
- missing close_time falls back to open_time
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import timedelta
from decimal import Decimal
from typing import Any

from quantledger.core.decimals import to_decimal
from quantledger.core.exceptions import MalformedCandleError
from quantledger.core.time import coerce_dt
from quantledger.backtest.types import Bar, Series

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = timedelta(minutes=1)

_ALIASES: dict[str, tuple[str, ...]] = {
    "open_time": ("open_time", "openTime"),
    "close_time": ("close_time", "closeTime"),
    "open": ("open",),
    "high": ("high",),
    "low": ("low",),
    "close": ("close",),
    "volume": ("volume",),
}


def series_name(symbol: str, interval: str) -> str:
    return f"{symbol}_{interval}"


def _field(raw: Any, name: str) -> Any:
    for key in _ALIASES[name]:
        if isinstance(raw, Mapping):
            if key in raw:
                return raw[key]
        elif hasattr(raw, key):
            return getattr(raw, key)
    return None


def _price(raw: Any, name: str) -> Decimal:
    v = _field(raw, name)
    if v is None or v == "":
        raise MalformedCandleError(f"missing {name}")
    try:
        return to_decimal(v)
    except ValueError as e:
        raise MalformedCandleError(f"invalid {name}: {v!r}") from e


def parse_candle(raw: Any) -> Bar:
    """Parse one raw candle into a Bar.

    Raises:
        MalformedCandleError: missing/invalid required field or OHLC inconsistency.
    """

    ot = _field(raw, "open_time")
    if ot is None:
        raise MalformedCandleError("missing open_time")
    try:
        open_time = coerce_dt(ot)
        ct = _field(raw, "close_time")
        close_time = coerce_dt(ct) if ct not in (None, "") else open_time
    except ValueError as e:
        raise MalformedCandleError(str(e)) from e

    o = _price(raw, "open")
    h = _price(raw, "high")
    lo = _price(raw, "low")
    c = _price(raw, "close")
    if not (lo <= o <= h and lo <= c <= h):
        raise MalformedCandleError(f"ohlc inconsistent: o={o} h={h} l={lo} c={c}")

    vol_raw = _field(raw, "volume")
    try:
        volume = to_decimal(vol_raw) if vol_raw not in (None, "") else Decimal("0")
    except ValueError as e:
        raise MalformedCandleError(f"invalid volume: {vol_raw!r}") from e

    return Bar(open_time=open_time, close_time=close_time, open=o, high=h, low=lo, close=c, volume=volume)


def infer_interval(bars: list[Bar] | tuple[Bar, ...]) -> timedelta:
    if len(bars) < 2:
        return DEFAULT_INTERVAL
    diff = bars[1].open_time - bars[0].open_time
    if diff <= timedelta(0):
        return DEFAULT_INTERVAL
    return diff


def build_series(raw_candles: Iterable[Any] | None, name: str = "series") -> Series:
    """Normalize raw candles into a Series. Empty input yields an empty Series."""

    parsed: list[Bar] = []
    skipped = 0
    for i, raw in enumerate(raw_candles or ()):
        try:
            parsed.append(parse_candle(raw))
        except MalformedCandleError as e:
            skipped += 1
            logger.warning("candle_skipped", extra={"series": name, "position": i, "reason": str(e)})

    if not parsed:
        logger.warning("series_empty", extra={"series": name, "skipped": skipped})
        return Series(name=name, bars=(), interval=DEFAULT_INTERVAL)

    parsed.sort(key=lambda b: b.open_time)

    bars: list[Bar] = []
    for bar in parsed:
        if bars and bars[-1].open_time == bar.open_time:
            if bars[-1] != bar:
                logger.warning("candle_conflict_dropped", extra={"series": name, "open_time": bar.open_time.isoformat()})
            continue
        bars.append(bar)

    interval = infer_interval(bars)
    series = Series(name=name, bars=tuple(bars), interval=interval)

    if not series.is_uniformly_spaced():
        logger.warning("series_irregular_spacing", extra={"series": name, "interval_s": interval.total_seconds()})

    logger.info(
        "series_built",
        extra={"series": name, "bars": len(bars), "skipped": skipped, "dropped": len(parsed) - len(bars)},
    )
    return series
