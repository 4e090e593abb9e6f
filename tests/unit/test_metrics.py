from __future__ import annotations

import math
from datetime import timedelta
from decimal import Decimal

import numpy as np
import pytest

from quantledger.backtest.metrics import (
    alpha_beta,
    annualized_return,
    compute_metrics,
    conditional_value_at_risk,
    downside_volatility,
    information_ratio,
    kurtosis,
    max_drawdown,
    omega,
    sharpe,
    skewness,
    sortino,
    strategy_returns,
    treynor,
    ulcer_index,
    value_at_risk,
    volatility,
)
from quantledger.backtest.settlement import settle
from quantledger.backtest.types import Position, Side, Trade
from quantledger.core.decimals import SENTINEL
from tests.unit._candles import make_series


def _trade(profit: str, k: int = 1) -> Trade:
    p = Decimal(profit)
    return Trade(
        index=k,
        side=Side.LONG,
        entry_time=None,
        entry_price=Decimal("1"),
        entry_amount=Decimal("1000"),
        exit_time=None,
        exit_price=Decimal("1"),
        exit_amount=Decimal("1000") + p,
        fee=Decimal("0"),
        profit=p,
        profit_percentage=Decimal("0"),
    )


def _closed(entry: int, exit_: int, series) -> Position:
    return Position(entry_index=entry, entry_price=series[entry].close, exit_index=exit_, exit_price=series[exit_].close)


def test_strategy_returns_only_inside_holding_window() -> None:
    series = make_series([10, 11, 12, 6, 6])
    r = strategy_returns(series, [_closed(1, 2, series)])
    assert r.shape == (4,)
    assert r[0] == 0.0  # entry bar return is not earned
    assert r[1] == pytest.approx(1 / 11)
    assert r[2] == 0.0 and r[3] == 0.0


def test_sharpe_uses_population_std() -> None:
    r = np.array([0.01, -0.01, 0.02, 0.0])
    expected = 0.005 * 252 / (math.sqrt(125e-6) * math.sqrt(252))
    assert sharpe(r) == pytest.approx(expected)
    assert sharpe(np.zeros(5)) == 0.0
    assert sharpe(np.zeros(0)) == 0.0


def test_sortino_and_omega_sentinel_without_losses() -> None:
    r = np.array([0.01, 0.0, 0.02])
    assert sortino(r) == SENTINEL
    assert omega(r) == SENTINEL
    assert sortino(np.zeros(0)) == 0.0
    assert omega(np.zeros(0)) == 0.0


def test_omega_ratio_of_gains_to_losses() -> None:
    assert omega(np.array([0.03, -0.01, 0.01, 0.0])) == pytest.approx(4.0)


def test_var_and_cvar() -> None:
    r = np.array([-0.05, -0.02, 0.01, 0.03] * 5)
    assert value_at_risk(r, 0.95) == pytest.approx(0.05)
    assert conditional_value_at_risk(r, 0.95) == pytest.approx(0.05)
    assert conditional_value_at_risk(r, 0.99) >= value_at_risk(r, 0.99)
    assert value_at_risk(np.zeros(0), 0.95) == 0.0


def test_volatility_and_ulcer() -> None:
    assert volatility(np.array([5.0, 5.0, 5.0])) == 0.0
    assert ulcer_index(np.array([1.0, 2.0, 3.0])) == 0.0
    assert ulcer_index(np.array([10.0, 5.0])) == pytest.approx(math.sqrt(1250.0))


def test_alpha_beta_identical_series() -> None:
    r = np.array([0.01, -0.02, 0.03, 0.005])
    a, b = alpha_beta(r, r)
    assert b == pytest.approx(1.0)
    assert a == pytest.approx(0.0)
    assert alpha_beta(r[:1], r) is None


def test_max_drawdown_from_trade_profits() -> None:
    trades = [_trade("100", 1), _trade("-220", 2), _trade("50", 3)]
    assert max_drawdown(trades, Decimal("1000")) == Decimal("0.2")
    assert max_drawdown([], Decimal("1000")) == 0


def test_annualized_return_over_a_year() -> None:
    series = make_series([1] * 366)
    assert annualized_return(Decimal("0.1"), series) == Decimal("0.1000")
    assert annualized_return(Decimal("0.1"), make_series([1])) == Decimal("0.1")


def test_trade_statistics() -> None:
    series = make_series([10] * 5)
    trades = [_trade("100", 1), _trade("-50", 2), _trade("30", 3), _trade("-30", 4)]
    m = compute_metrics(series=series, trades=trades, initial_capital=Decimal("1000"))

    assert m.total_trades == 4
    assert m.profitable_trades == 2
    assert m.losing_trades == 2
    assert m.win_rate == Decimal("50.0000")
    assert m.profit_loss_ratio == Decimal("1.6250")
    assert m.profit_factor == Decimal("1.6250")
    assert m.total_profit == Decimal("50")
    assert m.total_return == Decimal("0.0500")
    assert m.maximum_single_loss == Decimal("-50")
    assert m.periods_per_year == Decimal("252.0000")


def test_all_winning_trades_hit_sentinels() -> None:
    series = make_series(list(range(1, 16)))
    positions = [_closed(i, i + 2, series) for i in range(0, 15, 3)]
    trades = settle(positions, Decimal("1000"), Decimal("0"), series=series)

    m = compute_metrics(series=series, trades=trades, positions=positions, initial_capital=Decimal("1000"))

    assert m.total_trades == 5
    assert m.win_rate == Decimal("100.0000")
    assert m.sortino_ratio == SENTINEL
    assert m.omega == SENTINEL
    assert m.profit_loss_ratio == SENTINEL
    assert m.profit_factor == SENTINEL
    assert m.max_drawdown == Decimal("0.0000")
    assert m.calmar_ratio == Decimal("0.0000")
    assert m.romad == SENTINEL
    assert m.sharpe_ratio > 0


def test_no_trades_and_no_bars_resolve_to_defaults() -> None:
    m = compute_metrics(series=make_series([]), trades=[], initial_capital=Decimal("1000"))

    assert m.bar_count == 0
    assert m.total_trades == 0
    assert m.win_rate == Decimal("0.0000")
    assert m.total_return == Decimal("0.0000")
    assert m.sharpe_ratio == Decimal("0.0000")
    assert m.sortino_ratio == Decimal("0.0000")
    assert m.omega == Decimal("0.0000")
    assert m.max_drawdown == Decimal("0.0000")
    assert m.profit_loss_ratio == SENTINEL
    assert m.profit_factor == Decimal("1.0000")
    assert m.alpha == Decimal("0.0000")
    assert m.beta == Decimal("1.0000")
    assert m.benchmark_supplied is False
    assert m.final_capital == Decimal("1000")


def test_benchmark_equal_to_series_gives_unit_beta() -> None:
    series = make_series([10, 11, 12, 11, 13])
    positions = [_closed(0, 4, series)]
    trades = settle(positions, Decimal("1000"), Decimal("0"), series=series)

    m = compute_metrics(series=series, trades=trades, positions=positions, initial_capital=Decimal("1000"), benchmark=series)

    assert m.benchmark_supplied is True
    assert m.beta == Decimal("1.0000")
    assert m.alpha == Decimal("0.0000")
    assert m.buy_and_hold_return == Decimal("0.3000")


def test_short_benchmark_keeps_placeholders() -> None:
    series = make_series([10, 11, 12])
    m = compute_metrics(series=series, trades=[], initial_capital=Decimal("1000"), benchmark=make_series([10]))
    assert m.benchmark_supplied is False
    assert m.beta == Decimal("1.0000")


def test_metrics_never_leak_nan() -> None:
    series = make_series([0, 0, 0, 5])
    m = compute_metrics(series=series, trades=[], initial_capital=Decimal("1000"))
    for name in ("sharpe_ratio", "volatility", "ulcer_index", "skewness", "kurtosis", "information_ratio"):
        assert getattr(m, name).is_finite()


R = np.array([0.02, -0.01, 0.03, -0.02])


def test_sortino_with_losing_bars() -> None:
    # mean 0.005; losing bars -0.01, -0.02 -> mean square 0.00025
    expected = 0.005 * 252 / math.sqrt(0.00025 * 252)
    assert sortino(R) == pytest.approx(expected)
    assert sortino(R, risk_free_rate=0.126) == pytest.approx((0.005 * 252 - 0.126) / math.sqrt(0.00025 * 252))


def test_treynor_annualizes_mean_over_beta() -> None:
    assert treynor(R, beta=0.5) == pytest.approx(0.005 * 252 / 0.5)
    assert treynor(R, beta=1.0, risk_free_rate=0.26) == pytest.approx(0.005 * 252 - 0.26)
    assert treynor(R, beta=0.0) == 0.0
    assert treynor(np.zeros(0), beta=1.0) == 0.0


def test_skewness_population_moments() -> None:
    # deviations -0.01, -0.01, 0.02: m2 = 2e-4, m3 = 2e-6
    assert skewness(np.array([0.0, 0.0, 0.03])) == pytest.approx(1 / math.sqrt(2))
    assert skewness(R) == pytest.approx(0.0, abs=1e-9)
    assert skewness(np.array([0.1, -0.1])) == 0.0
    assert skewness(np.full(5, 0.01)) == 0.0


def test_kurtosis_is_excess() -> None:
    assert kurtosis(np.array([0.01, -0.01, 0.01, -0.01])) == pytest.approx(-2.0)
    assert kurtosis(np.array([0.01, -0.01, 0.02])) == 0.0
    assert kurtosis(np.zeros(6)) == 0.0


def test_downside_volatility_over_n_minus_one() -> None:
    # squared losses 0.0001 + 0.0004 over N-1 = 3
    assert downside_volatility(R) == pytest.approx(math.sqrt(0.0005 / 3) * math.sqrt(252))
    assert downside_volatility(np.array([-0.01])) == 0.0
    assert downside_volatility(np.array([0.01, 0.02])) == 0.0


def test_information_ratio() -> None:
    te = math.sqrt(0.0017 / 3)
    assert information_ratio(R) == pytest.approx(0.005 / te * math.sqrt(252))
    # 25.2% annual -> 0.1% per bar
    assert information_ratio(R, risk_free_rate=0.252) == pytest.approx(0.004 / te * math.sqrt(252))
    assert information_ratio(np.full(4, 0.01)) == 0.0
    assert information_ratio(np.array([0.01])) == 0.0


def test_volatility_is_sample_std_of_log_returns() -> None:
    expected = abs(math.log(1.1) - math.log(0.9)) / math.sqrt(2)
    assert volatility(np.array([100.0, 110.0, 99.0])) == pytest.approx(expected)
    assert volatility(np.array([100.0, 110.0])) == 0.0


def test_calmar_with_drawdown() -> None:
    trades = [_trade("100", 1), _trade("-220", 2), _trade("50", 3)]
    m = compute_metrics(series=make_series([10] * 5), trades=trades, initial_capital=Decimal("1000"))
    assert m.total_return == Decimal("-0.0700")
    assert m.max_drawdown == Decimal("0.2000")
    assert m.calmar_ratio == Decimal("-0.3500")
    assert m.romad == Decimal("-0.3500")


def test_minute_and_daily_ratios_are_comparable() -> None:
    daily = make_series([1, 1]).periods_per_year
    minute = make_series([1, 1], interval=timedelta(minutes=1)).periods_per_year
    a, b = 0.001, 0.01
    k = minute / daily
    r_day = np.array([a + b, a - b] * 10)
    r_min = np.array([a / k + b / math.sqrt(k), a / k - b / math.sqrt(k)] * 10)

    assert sharpe(r_min, periods_per_year=minute) == pytest.approx(sharpe(r_day, periods_per_year=daily))
    assert treynor(r_min, beta=1.0, periods_per_year=minute) == pytest.approx(treynor(r_day, beta=1.0, periods_per_year=daily))


def test_annualized_return_short_profitable_window_stays_finite() -> None:
    # +40% over 2 days -> 1.4 ** 182.5, past the default decimal precision
    big = annualized_return(Decimal("0.4"), make_series([10, 12, 14]))
    assert big.is_finite()
    assert big > Decimal(10) ** 26

    # +900% over 1 day overflows a float; growth is capped at e**700
    capped = annualized_return(Decimal("9"), make_series([10, 100]))
    assert capped.is_finite()
    assert capped > Decimal(10) ** 303
