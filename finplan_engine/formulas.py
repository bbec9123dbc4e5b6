"""Generic financial formulas — stateless, monthly periods, no template knowledge."""

from __future__ import annotations

DAYS_PER_PERIOD = 30.0
PERIODS_PER_YEAR = 12


def monthly_rate(annual_rate: float) -> float:
    """Nominal annual rate → per-period rate."""
    return annual_rate / PERIODS_PER_YEAR


def calc_interest(balance: float, annual_rate: float) -> float:
    """Monthly interest on a balance. Returns 0 if balance <= 0."""
    if balance <= 0.0:
        return 0.0
    return balance * monthly_rate(annual_rate)


def calc_annuity_payment(principal: float, annual_rate: float, n_periods: int) -> float:
    """Level payment that amortises `principal` over `n_periods` months.

    payment = P·r(1+r)^n / ((1+r)^n - 1), r = annual_rate / 12.
    Zero rate degenerates to straight-line P / n.

    Raises ZeroDivisionError when n_periods is 0; callers decide how to
    report that.
    """
    if principal <= 0.0:
        return 0.0
    r = monthly_rate(annual_rate)
    if r == 0.0:
        return principal / n_periods
    growth = (1 + r) ** n_periods
    return principal * r * growth / (growth - 1)


def calc_declining_depreciation(beginning: float, additions: float,
                                annual_rate: float) -> float:
    """Declining-balance charge on the period's opening book value plus additions."""
    return (beginning + additions) * monthly_rate(annual_rate)


def calc_days_balance(flow: float, days: float) -> float:
    """Balance held for `days` of a monthly flow (AR from revenue, AP from COGS)."""
    return flow * days / DAYS_PER_PERIOD


def calc_turnover_balance(flow: float, turns_per_year: float) -> float:
    """Balance implied by an annual turnover ratio on a monthly flow."""
    if turns_per_year <= 0.0:
        return 0.0
    return flow * PERIODS_PER_YEAR / turns_per_year


def calc_tax(pbt: float, rate: float, loss_pool: float) -> tuple[float, float]:
    """Corporate tax with loss carry-forward.

    Args:
        pbt: Profit before tax (this period)
        rate: Corporate tax rate (e.g. 0.25)
        loss_pool: Accumulated assessed loss (negative = losses available)

    Returns:
        (tax_amount, new_loss_pool)
    """
    taxable = pbt + loss_pool
    if taxable > 0:
        return taxable * rate, 0.0
    else:
        return 0.0, taxable


def calc_simple_tax(pbt: float, rate: float) -> float:
    """Tax on positive profit only; losses are not carried."""
    return max(0.0, pbt) * rate


def discount_factor(annual_rate: float, period: int) -> float:
    """1 / (1 + r/12)^t"""
    return 1.0 / (1.0 + monthly_rate(annual_rate)) ** period
