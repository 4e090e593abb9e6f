"""quantledger.core.exceptions

Errors are part of the interface.

Only one condition is fatal to a run: not enough history. Everything else is
clamped, skipped, or resolved to a documented constant.
"""

from __future__ import annotations


class QuantLedgerError(Exception):
    """Base exception for quantledger."""


class ConfigError(QuantLedgerError):
    """Configuration is missing, invalid, or inconsistent."""


class BacktestError(QuantLedgerError):
    """A backtest run could not be completed."""


class InsufficientDataError(BacktestError):
    """Fewer bars than the longest lookback. Nothing was simulated."""

    def __init__(self, required: int, available: int) -> None:
        self.required = int(required)
        self.available = int(available)
        super().__init__(f"need >= {self.required} bars, got {self.available}")


class MalformedCandleError(BacktestError):
    """A raw candle is missing a required field or is internally inconsistent."""
