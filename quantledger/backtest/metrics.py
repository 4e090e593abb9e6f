"""quantledger.backtest.metrics

PerformanceMetrics: series + trade ledger -> MetricsResult.

Return basis for every ratio: per-bar simple returns, counted only while a
position is held (bar strictly after entry up to and including exit), zero
otherwise. Volatility and the ulcer index are the exceptions; they look at
the whole price series.

Degenerate inputs never raise and never leak NaN/inf: each ratio resolves to 0
or SENTINEL as documented next to it.

Statistics run on float64 arrays and are quantized back to 4 dp Decimals.
Ledger amounts stay Decimal throughout.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from decimal import Decimal

import numpy as np

from quantledger.core.decimals import HUNDRED, ONE, SENTINEL, ZERO, from_float, quantize_pct, quantize_qty
from quantledger.backtest.types import MetricsResult, Position, Series, Trade

logger = logging.getLogger(__name__)

# Below this a standard deviation counts as zero volatility.
_EPS = 1e-12

# exp() overflows a float just above 709; annualized growth is capped at e**700.
_MAX_LOG_GROWTH = 700.0


def _closes(series: Series) -> np.ndarray:
    return np.array([float(b.close) for b in series.bars], dtype=np.float64)


def _simple_returns(close: np.ndarray) -> np.ndarray:
    if close.size < 2:
        return np.zeros(0, dtype=np.float64)
    prev = close[:-1]
    out = np.zeros(close.size - 1, dtype=np.float64)
    np.divide(close[1:] - prev, prev, out=out, where=prev != 0.0)
    return out


def positions_from_trades(trades: Iterable[Trade]) -> list[Position]:
    out: list[Position] = []
    for t in trades:
        if t.entry_index is None or t.exit_index is None:
            continue
        out.append(Position(entry_index=t.entry_index, entry_price=t.entry_price, exit_index=t.exit_index, exit_price=t.exit_price, side=t.side))
    return out


def strategy_returns(series: Series, positions: Iterable[Position]) -> np.ndarray:
    """Per-bar returns of length len(series) - 1; zero outside holding windows."""

    n = len(series)
    if n < 2:
        return np.zeros(0, dtype=np.float64)

    invested = np.zeros(n, dtype=bool)
    for p in positions:
        if not p.is_closed:
            continue
        start = p.entry_index + 1
        stop = min(int(p.exit_index), n - 1) + 1  # type: ignore[arg-type]
        if start < stop:
            invested[start:stop] = True

    ret = _simple_returns(_closes(series))
    return np.where(invested[1:], ret, 0.0)


def log_returns(close: np.ndarray) -> np.ndarray:
    if close.size < 2:
        return np.zeros(0, dtype=np.float64)
    prev, cur = close[:-1], close[1:]
    out = np.zeros(close.size - 1, dtype=np.float64)
    ok = (prev > 0.0) & (cur > 0.0)
    out[ok] = np.log(cur[ok] / prev[ok])
    return out


def sharpe(returns: np.ndarray, *, risk_free_rate: float = 0.0, periods_per_year: float = 252.0) -> float:
    r = returns.astype(np.float64)
    if r.size == 0:
        return 0.0
    sd = float(np.std(r))
    if sd <= _EPS:
        return 0.0
    ann_mean = float(np.mean(r)) * periods_per_year
    ann_sd = sd * math.sqrt(periods_per_year)
    return (ann_mean - risk_free_rate) / ann_sd


def sortino(returns: np.ndarray, *, risk_free_rate: float = 0.0, periods_per_year: float = 252.0) -> float | Decimal:
    """Downside deviation over losing periods only. No losing period -> SENTINEL."""

    r = returns.astype(np.float64)
    if r.size == 0:
        return 0.0
    neg = r[r < 0.0]
    if neg.size == 0:
        return SENTINEL
    down = math.sqrt(float(np.mean(neg * neg)) * periods_per_year)
    if down <= _EPS:
        return 0.0
    ann_mean = float(np.mean(r)) * periods_per_year
    return (ann_mean - risk_free_rate) / down


def treynor(returns: np.ndarray, *, beta: float, risk_free_rate: float = 0.0, periods_per_year: float = 252.0) -> float:
    if returns.size == 0 or beta == 0.0:
        return 0.0
    ann_mean = float(np.mean(returns)) * periods_per_year
    return (ann_mean - risk_free_rate) / beta


def omega(returns: np.ndarray, *, threshold: float = 0.0) -> float | Decimal:
    if returns.size == 0:
        return 0.0
    excess = returns.astype(np.float64) - threshold
    up = float(np.sum(excess[excess > 0.0]))
    down = float(-np.sum(excess[excess < 0.0]))
    if down == 0.0:
        return SENTINEL
    return up / down


def volatility(close: np.ndarray) -> float:
    """Sample stddev (N-1) of per-bar log returns over the whole series."""

    lr = log_returns(close)
    if lr.size < 2:
        return 0.0
    return float(np.std(lr, ddof=1))


def skewness(returns: np.ndarray) -> float:
    r = returns.astype(np.float64)
    if r.size < 3:
        return 0.0
    d = r - np.mean(r)
    m2 = float(np.mean(d**2))
    m3 = float(np.mean(d**3))
    sd = math.sqrt(m2)
    if sd <= _EPS:
        return 0.0
    return m3 / sd**3


def kurtosis(returns: np.ndarray) -> float:
    """Excess kurtosis, population moments."""

    r = returns.astype(np.float64)
    if r.size < 4:
        return 0.0
    d = r - np.mean(r)
    m2 = float(np.mean(d**2))
    m4 = float(np.mean(d**4))
    if m2 <= _EPS**2:
        return 0.0
    return m4 / (m2 * m2) - 3.0


def information_ratio(returns: np.ndarray, *, risk_free_rate: float = 0.0, periods_per_year: float = 252.0) -> float:
    """Excess over the per-bar risk-free rate, scaled by tracking error."""

    if returns.size < 2:
        return 0.0
    excess = returns.astype(np.float64) - risk_free_rate / periods_per_year
    te = float(np.std(excess, ddof=1))
    if te <= _EPS:
        return 0.0
    return float(np.mean(excess)) / te * math.sqrt(periods_per_year)


def _var_index(n: int, confidence: float) -> int:
    return min(int(math.floor((1.0 - confidence) * n)), n - 1)


def value_at_risk(returns: np.ndarray, confidence: float) -> float:
    if returns.size == 0:
        return 0.0
    s = np.sort(returns)
    return float(-s[_var_index(s.size, confidence)])


def conditional_value_at_risk(returns: np.ndarray, confidence: float) -> float:
    if returns.size == 0:
        return 0.0
    s = np.sort(returns)
    tail = float(np.mean(s[: _var_index(s.size, confidence) + 1]))
    cvar = -tail if tail < 0.0 else 0.0
    return max(cvar, value_at_risk(returns, confidence))


def downside_volatility(returns: np.ndarray, *, periods_per_year: float = 252.0) -> float:
    if returns.size < 2:
        return 0.0
    neg = returns[returns < 0.0]
    var = float(np.sum(neg * neg)) / (returns.size - 1)
    return math.sqrt(var) * math.sqrt(periods_per_year)


def ulcer_index(close: np.ndarray) -> float:
    if close.size == 0:
        return 0.0
    peak = np.maximum.accumulate(close)
    dd = np.zeros_like(close)
    np.divide(close - peak, peak, out=dd, where=peak > 0.0)
    dd *= 100.0
    return math.sqrt(float(np.mean(dd * dd)))


def alpha_beta(strategy: np.ndarray, benchmark: np.ndarray) -> tuple[float, float] | None:
    """OLS alpha/beta on the trailing common window. None if under 2 points."""

    m = min(strategy.size, benchmark.size)
    if m < 2:
        return None
    s = strategy[-m:].astype(np.float64)
    b = benchmark[-m:].astype(np.float64)
    ms, mb = float(np.mean(s)), float(np.mean(b))
    cov = float(np.mean((s - ms) * (b - mb)))
    var_b = float(np.mean((b - mb) ** 2))
    beta = 0.0 if var_b == 0.0 else cov / var_b
    return ms - beta * mb, beta


def max_drawdown(trades: Sequence[Trade], initial_capital: Decimal) -> Decimal:
    """Peak-to-trough of capital rebuilt by adding each trade's profit in order.

    Fraction in [0, 1]; 0 with no trades.
    """

    if initial_capital <= 0:
        return ZERO
    current = peak = initial_capital
    worst = ZERO
    for t in trades:
        current += t.profit
        if current > peak:
            peak = current
        dd = (peak - current) / peak
        if dd > worst:
            worst = dd
    return min(worst, ONE)


def annualized_return(total_return: Decimal, series: Series) -> Decimal:
    if len(series) < 2:
        return total_return
    days = (series[-1].open_time - series[0].open_time).days
    if days <= 0:
        return total_return
    base = float(ONE + total_return)
    if base <= 0.0:
        return -ONE
    growth = math.log(base) * 365.0 / days
    return from_float(math.exp(min(growth, _MAX_LOG_GROWTH)) - 1.0)


def _ratio(value: float | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return quantize_pct(value)
    return from_float(value)


def compute_metrics(
    *,
    series: Series,
    trades: Sequence[Trade],
    initial_capital: Decimal,
    positions: Sequence[Position] | None = None,
    final_capital: Decimal | None = None,
    total_profit: Decimal | None = None,
    total_fees: Decimal | None = None,
    risk_free_rate: Decimal = ZERO,
    omega_threshold: Decimal = ZERO,
    benchmark: Series | None = None,
) -> MetricsResult:
    if positions is None:
        positions = positions_from_trades(trades)
    if total_profit is None:
        total_profit = sum((t.profit for t in trades), ZERO)
    if final_capital is None:
        final_capital = initial_capital + total_profit
    if total_fees is None:
        total_fees = sum((t.fee for t in trades), ZERO)

    ppy = series.periods_per_year
    rf = float(risk_free_rate)
    close = _closes(series)
    r = strategy_returns(series, positions)

    # Trade statistics
    n_trades = len(trades)
    wins = [t.profit for t in trades if t.profit > 0]
    losses = [t.profit for t in trades if t.profit < 0]
    gross_profit = sum(wins, ZERO)
    gross_loss = -sum(losses, ZERO)

    win_rate = Decimal(len(wins)) / Decimal(n_trades) * HUNDRED if n_trades else ZERO
    total_return = total_profit / initial_capital if initial_capital != 0 else ZERO
    average_profit = total_return / n_trades if n_trades else ZERO
    max_single_loss = min(losses, default=ZERO)
    pl_ratio = gross_profit / gross_loss if gross_loss > 0 else SENTINEL
    if gross_loss > 0:
        profit_factor = gross_profit / gross_loss
    elif gross_profit > 0:
        profit_factor = SENTINEL
    else:
        profit_factor = ONE

    # Drawdown family
    mdd = max_drawdown(trades, initial_capital)
    calmar = total_return / mdd if mdd > 0 else ZERO
    if initial_capital == 0:
        romad = ZERO
    else:
        ret_on_capital = (final_capital - initial_capital) / initial_capital
        if mdd > 0:
            romad = ret_on_capital / mdd
        else:
            romad = SENTINEL if ret_on_capital > 0 else ZERO

    # Market exposure
    alpha, beta, supplied = 0.0, 1.0, False
    if benchmark is not None:
        ab = alpha_beta(r, _simple_returns(_closes(benchmark)))
        if ab is None:
            logger.warning("benchmark_too_short", extra={"benchmark": benchmark.name, "bars": len(benchmark)})
        else:
            alpha, beta = ab
            supplied = True

    if len(series) >= 1 and series[0].close != 0:
        buy_hold = series[-1].close / series[0].close - ONE
    else:
        buy_hold = ZERO

    result = MetricsResult(
        initial_capital=quantize_qty(initial_capital),
        final_capital=quantize_qty(final_capital),
        total_profit=quantize_qty(total_profit),
        total_fees=quantize_qty(total_fees),
        total_return=quantize_pct(total_return),
        annualized_return=quantize_pct(annualized_return(total_return, series)),
        buy_and_hold_return=quantize_pct(buy_hold),
        total_trades=n_trades,
        profitable_trades=len(wins),
        losing_trades=len(losses),
        win_rate=quantize_pct(win_rate),
        average_profit=quantize_pct(average_profit),
        maximum_single_loss=quantize_qty(max_single_loss),
        profit_loss_ratio=quantize_pct(pl_ratio),
        profit_factor=quantize_pct(profit_factor),
        sharpe_ratio=_ratio(sharpe(r, risk_free_rate=rf, periods_per_year=ppy)),
        sortino_ratio=_ratio(sortino(r, risk_free_rate=rf, periods_per_year=ppy)),
        calmar_ratio=quantize_pct(calmar),
        max_drawdown=quantize_pct(mdd),
        volatility=_ratio(volatility(close)),
        treynor_ratio=_ratio(treynor(r, beta=beta, risk_free_rate=rf, periods_per_year=ppy)),
        skewness=_ratio(skewness(r)),
        kurtosis=_ratio(kurtosis(r)),
        omega=_ratio(omega(r, threshold=float(omega_threshold))),
        information_ratio=_ratio(information_ratio(r, risk_free_rate=rf, periods_per_year=ppy)),
        var95=_ratio(value_at_risk(r, 0.95)),
        var99=_ratio(value_at_risk(r, 0.99)),
        cvar95=_ratio(conditional_value_at_risk(r, 0.95)),
        cvar99=_ratio(conditional_value_at_risk(r, 0.99)),
        downside_volatility=_ratio(downside_volatility(r, periods_per_year=ppy)),
        romad=quantize_pct(romad),
        ulcer_index=_ratio(ulcer_index(close)),
        alpha=_ratio(alpha),
        beta=_ratio(beta),
        benchmark_supplied=supplied,
        bar_count=len(series),
        periods_per_year=_ratio(ppy),
    )
    logger.info(
        "metrics_computed",
        extra={"series": series.name, "trades": n_trades, "sharpe": str(result.sharpe_ratio), "max_drawdown": str(result.max_drawdown)},
    )
    return result
