"""quantledger.backtest.io

Lightweight IO helpers for backtesting.

CSV schema:
- required: open_time, open, high, low, close
- optional: close_time, volume, symbol, interval

Values are kept as strings; SeriesBuilder owns parsing and validation.
"""

from __future__ import annotations

import csv
from pathlib import Path

REQUIRED_COLUMNS = ("open_time", "open", "high", "low", "close")


def load_candles_csv(path: str | Path) -> list[dict[str, str | None]]:
    p = Path(path)
    rows: list[dict[str, str | None]] = []
    with p.open("r", encoding="utf-8", newline="") as f:
        r = csv.DictReader(f)
        header = [h.strip() for h in (r.fieldnames or [])]
        missing = [c for c in REQUIRED_COLUMNS if c not in header]
        if missing:
            raise ValueError(f"CSV missing required column(s): {', '.join(missing)}")
        for row in r:
            rows.append(
                {
                    k.strip(): (v.strip() or None) if isinstance(v, str) else None
                    for k, v in row.items()
                    if k is not None
                }
            )
    return rows
