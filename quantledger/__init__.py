"""quantledger

Backtest execution and performance analytics.

A run is a pure function of its inputs: candles in, ledger + equity curve +
metrics out. Nothing survives between runs.
"""

__version__ = "0.1.0"
