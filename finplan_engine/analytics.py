"""Post-build analytics — computed on COMPLETED statements.

These functions are READ-ONLY on the statements. They never feed back
into the build. Scenario results and sensitivity rows are made from them.

Rates are annual nominal, compounded monthly: a cash flow in period t is
discounted by (1 + R/12)^t.
"""

from __future__ import annotations

import math
from typing import Sequence

from finplan_engine.formulas import PERIODS_PER_YEAR
from finplan_engine.types import Statements


# ── NPV ─────────────────────────────────────────────────────────


def _npv_monthly(rate: float, cashflows: Sequence[float]) -> float:
    """Net present value at a per-period rate.

    Discount factors are accumulated rather than raised to a power; a
    result out of float range comes back as inf or nan.
    """
    v = 1.0 / (1.0 + rate)
    total, df = 0.0, 1.0
    for cf in cashflows:
        total += cf * df
        df *= v
    return total


def _npv_sign_form(rate: float, cashflows: Sequence[float]) -> float:
    """A value with the same sign as NPV at `rate`, finite for any rate > -1.

    Positive rates are discounted to t=0; negative rates are compounded to
    the last non-zero flow instead, so every factor stays in (0, 1].
    """
    if rate >= 0:
        return _npv_monthly(rate, cashflows)
    flows = list(cashflows)
    while flows and flows[-1] == 0:
        flows.pop()
    g = 1.0 + rate
    total, factor = 0.0, 1.0
    for cf in reversed(flows):
        total += cf * factor
        factor *= g
    return total


def npv(annual_rate: float, cashflows: Sequence[float]) -> float:
    """NPV of monthly cash flows at an annual nominal discount rate."""
    return _npv_monthly(annual_rate / PERIODS_PER_YEAR, cashflows)


# ── IRR (Internal Rate of Return) ───────────────────────────────


def _irr_newton(cashflows: Sequence[float], guess: float, tol: float, max_iter: int,
                bracket: tuple[float, float]) -> float | None:
    """Per-period IRR via Newton-Raphson. None if it diverges, stalls or leaves `bracket`."""
    lo, hi = bracket
    rate = guess
    for _ in range(max_iter):
        if not lo <= rate <= hi:
            return None
        v = 1.0 / (1.0 + rate)
        value, slope, df = 0.0, 0.0, 1.0
        for i, cf in enumerate(cashflows):
            value += cf * df
            # d(NPV)/d(rate) = sum(-i * cf / (1+rate)^(i+1))
            slope -= i * cf * df * v
            df *= v
        if not (math.isfinite(value) and math.isfinite(slope)) or abs(slope) < 1e-15:
            return None
        rate_new = rate - value / slope
        if not math.isfinite(rate_new):
            return None
        if abs(rate_new - rate) < tol:
            return rate_new if lo <= rate_new <= hi else None
        rate = rate_new
    return None


def _irr_bisect(cashflows: Sequence[float], lo: float, hi: float, tol: float) -> float | None:
    """Per-period IRR by bisection on [lo, hi]. None if no sign change there."""
    f_lo = _npv_sign_form(lo, cashflows)
    f_hi = _npv_sign_form(hi, cashflows)
    if not (math.isfinite(f_lo) and math.isfinite(f_hi)):
        return None
    if f_lo == 0.0:
        return lo
    if f_hi == 0.0:
        return hi
    if (f_lo > 0) == (f_hi > 0):
        return None
    for _ in range(200):
        mid = (lo + hi) / 2
        f_mid = _npv_sign_form(mid, cashflows)
        if f_mid == 0.0 or (hi - lo) / 2 < tol:
            return mid
        if (f_mid > 0) == (f_lo > 0):
            lo, f_lo = mid, f_mid
        else:
            hi = mid
    return (lo + hi) / 2


def irr(cashflows: Sequence[float], guess: float = 0.10, tol: float = 1e-10,
        max_iter: int = 100,
        monthly_bracket: tuple[float, float] = (-0.99, 1.0)) -> float | None:
    """Annual nominal IRR of monthly cash flows.

    Newton-Raphson from `guess` (annual), falling back to bisection over
    `monthly_bracket` when Newton fails or leaves the bracket.
    Returns None when the flows never change sign or no root is bracketed.
    """
    signs = {1 if cf > 0 else -1 for cf in cashflows if cf != 0}
    if len(signs) < 2:
        return None

    lo, hi = monthly_bracket
    rate = _irr_newton(cashflows, guess / PERIODS_PER_YEAR, tol, max_iter, (lo, hi))
    if rate is None:
        rate = _irr_bisect(cashflows, lo, hi, tol)
    if rate is None:
        return None
    return rate * PERIODS_PER_YEAR


# ── Payback ─────────────────────────────────────────────────────


def payback_period(cashflows: Sequence[float]) -> int | None:
    """First 0-based period where cumulative cash flow is >= 0.

    None means the investment is not recovered within the horizon.
    """
    cumulative = 0.0
    for t, cf in enumerate(cashflows):
        cumulative += cf
        if cumulative >= 0:
            return t
    return None


# ── Key metrics ─────────────────────────────────────────────────


def average_growth(line: Sequence[float]) -> float:
    """Mean period-over-period growth, skipping periods with a zero base."""
    rates = [
        (line[t] - line[t - 1]) / abs(line[t - 1])
        for t in range(1, len(line))
        if line[t - 1] != 0
    ]
    return sum(rates) / len(rates) if rates else 0.0


def average_gross_margin(revenue: Sequence[float], gross_profit: Sequence[float]) -> float:
    """Mean gross margin over periods with revenue."""
    margins = [g / r for r, g in zip(revenue, gross_profit) if r != 0]
    return sum(margins) / len(margins) if margins else 0.0


def key_metrics(statements: Statements) -> dict[str, float]:
    """Headline figures for one statement build."""
    inc = statements.income_statement
    cf = statements.cash_flow
    bs = statements.balance_sheet
    return {
        "total_revenue": sum(inc.revenue),
        "total_net_income": sum(inc.net_income),
        "average_gross_margin": average_gross_margin(inc.revenue, inc.gross_profit),
        "average_revenue_growth": average_growth(inc.revenue),
        "final_revenue": inc.revenue[-1] if inc.revenue else 0.0,
        "final_cash": bs.cash[-1] if bs.cash else 0.0,
        "minimum_cash": min(bs.cash) if bs.cash else 0.0,
        "ending_debt": (bs.debt[-1] + bs.revolver[-1]) if bs.debt else 0.0,
        "negative_cash_flow_periods": float(sum(1 for v in cf.net_cash_flow if v < 0)),
    }
