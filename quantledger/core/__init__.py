"""quantledger.core

Core primitives.

If a module needs to exist, it should probably depend only on this package.
"""

from .config import BacktestConfig, Config, LoggingConfig, StrategyConfig
from .decimals import SENTINEL, to_decimal
from .exceptions import (
    BacktestError,
    ConfigError,
    InsufficientDataError,
    MalformedCandleError,
    QuantLedgerError,
)
from .time import coerce_dt, parse_dt, utc_now

__all__ = [
    "BacktestConfig",
    "BacktestError",
    "Config",
    "ConfigError",
    "InsufficientDataError",
    "LoggingConfig",
    "MalformedCandleError",
    "QuantLedgerError",
    "SENTINEL",
    "StrategyConfig",
    "coerce_dt",
    "parse_dt",
    "to_decimal",
    "utc_now",
]
