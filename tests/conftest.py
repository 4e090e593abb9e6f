from __future__ import annotations

import sys
from pathlib import Path

import pytest

# uv/pytest may run without installing the project; ensure repo root is importable.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from quantledger.core.config import BacktestConfig, Config, StrategyConfig  # noqa: E402


@pytest.fixture()
def temp_dir(tmp_path: Path) -> Path:
    return tmp_path


@pytest.fixture()
def test_config() -> Config:
    """Small lookback, 0.2% fee, 10k starting capital."""

    return Config(
        backtest=BacktestConfig(initial_capital="10000", fee_rate="0.002"),
        strategy=StrategyConfig(short_period=2, long_period=4),
    )
