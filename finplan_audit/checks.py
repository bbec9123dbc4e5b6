"""Pure audit check functions for generated financial models.

Each function reads finished statements and returns one AuditCheck with a
pass / warning / fail verdict. Checks are advisory: they never raise and
never modify the statements.

Two families:
    health      business-health thresholds (growth, margin, coverage, cash)
    arithmetic  internal consistency (identity, continuity, roll-forwards)
"""

from __future__ import annotations

from typing import Sequence

from finplan_engine.analytics import average_gross_margin, average_growth
from finplan_engine.types import (
    AuditCheck,
    BalanceSheet,
    CashFlowStatement,
    CheckStatus,
    DebtSchedule,
    IncomeStatement,
)

TOLERANCE = 0.01  # currency units

GROWTH_FAIL_BELOW = 0.0
GROWTH_WARN_ABOVE = 0.5
MARGIN_FAIL_BELOW = 0.10
MARGIN_WARN_BELOW = 0.20
NEGATIVE_CF_FAIL_ABOVE = 12
NEGATIVE_CF_WARN_ABOVE = 6
COVERAGE_FAIL_BELOW = 1.5
COVERAGE_WARN_BELOW = 2.0

ARITHMETIC_CHECKS = frozenset({
    "balance_sheet_identity",
    "cash_continuity",
    "income_statement_arithmetic",
    "debt_amortization",
})


# ── Helper ────────────────────────────────────────────────────────

def _max_delta(expected: Sequence[float], actual: Sequence[float]) -> tuple[float, int]:
    """Largest absolute gap between two lines and the period it occurs in."""
    worst, where = 0.0, -1
    for t, (e, a) in enumerate(zip(expected, actual)):
        d = abs(e - a)
        if d > worst:
            worst, where = d, t
    return worst, where


def classify_check(check_id: str) -> str:
    """Return 'arithmetic' or 'health' for a check id."""
    return "arithmetic" if check_id in ARITHMETIC_CHECKS else "health"


# ── Business health ───────────────────────────────────────────────

def check_revenue_growth(income: IncomeStatement) -> AuditCheck:
    """Average period revenue growth: fail < 0, warn > 50%."""
    avg = average_growth(income.revenue)
    if avg < GROWTH_FAIL_BELOW:
        status = CheckStatus.FAIL
    elif avg > GROWTH_WARN_ABOVE:
        status = CheckStatus.WARNING
    else:
        status = CheckStatus.PASS
    return AuditCheck(
        id="revenue_growth",
        name="Revenue Growth Reasonableness",
        description="Average period-over-period revenue growth is plausible",
        status=status,
        message=f"Average revenue growth is {avg * 100:.1f}% per period",
        value=avg,
        threshold=GROWTH_WARN_ABOVE,
    )


def check_gross_margin(income: IncomeStatement) -> AuditCheck:
    """Average gross margin: fail < 10%, warn < 20%."""
    avg = average_gross_margin(income.revenue, income.gross_profit)
    if avg < MARGIN_FAIL_BELOW:
        status = CheckStatus.FAIL
    elif avg < MARGIN_WARN_BELOW:
        status = CheckStatus.WARNING
    else:
        status = CheckStatus.PASS
    return AuditCheck(
        id="gross_margin",
        name="Gross Margin Health",
        description="Average gross margin is within industry norms",
        status=status,
        message=f"Average gross margin is {avg * 100:.1f}%",
        value=avg,
        threshold=MARGIN_WARN_BELOW,
    )


def check_cash_flow_health(cash_flow: CashFlowStatement) -> AuditCheck:
    """Count of negative net-cash-flow periods: fail > 12, warn > 6."""
    negative = sum(1 for v in cash_flow.net_cash_flow if v < 0)
    if negative > NEGATIVE_CF_FAIL_ABOVE:
        status = CheckStatus.FAIL
    elif negative > NEGATIVE_CF_WARN_ABOVE:
        status = CheckStatus.WARNING
    else:
        status = CheckStatus.PASS
    return AuditCheck(
        id="cash_flow_health",
        name="Cash Flow Health",
        description="Number of periods with negative net cash flow",
        status=status,
        message=f"{negative} of {len(cash_flow.net_cash_flow)} periods have negative net cash flow",
        value=float(negative),
        threshold=float(NEGATIVE_CF_WARN_ABOVE),
    )


def check_interest_coverage(income: IncomeStatement) -> AuditCheck:
    """Operating income / interest over periods that carry interest: fail < 1.5x, warn < 2x."""
    ratios = [
        oi / i for oi, i in zip(income.operating_income, income.interest_expense)
        if i > 0
    ]
    if not ratios:
        return AuditCheck(
            id="interest_coverage",
            name="Interest Coverage",
            description="Operating income covers interest expense",
            status=CheckStatus.PASS,
            message="No interest-bearing debt outstanding",
            value=None,
            threshold=COVERAGE_WARN_BELOW,
        )
    avg = sum(ratios) / len(ratios)
    if avg < COVERAGE_FAIL_BELOW:
        status = CheckStatus.FAIL
    elif avg < COVERAGE_WARN_BELOW:
        status = CheckStatus.WARNING
    else:
        status = CheckStatus.PASS
    return AuditCheck(
        id="interest_coverage",
        name="Interest Coverage",
        description="Operating income covers interest expense",
        status=status,
        message=f"Average interest coverage is {avg:.2f}x",
        value=avg,
        threshold=COVERAGE_WARN_BELOW,
    )


def check_cash_balance_floor(balance_sheet: BalanceSheet) -> AuditCheck:
    """Warn if the cash balance goes negative (an unfunded deficit)."""
    negative = [t for t, c in enumerate(balance_sheet.cash) if c < -TOLERANCE]
    lowest = min(balance_sheet.cash) if balance_sheet.cash else 0.0
    if negative:
        status = CheckStatus.WARNING
        message = (f"Cash is negative in {len(negative)} period(s), "
                   f"first in period {negative[0]}; low point {lowest:,.2f}")
    else:
        status = CheckStatus.PASS
        message = f"Cash stays non-negative; low point {lowest:,.2f}"
    return AuditCheck(
        id="cash_balance_floor",
        name="Cash Balance Floor",
        description="Ending cash never drops below zero",
        status=status,
        message=message,
        value=lowest,
        threshold=0.0,
    )


# ── Arithmetic ────────────────────────────────────────────────────

def check_balance_sheet_identity(balance_sheet: BalanceSheet,
                                 tolerance: float = TOLERANCE) -> AuditCheck:
    """Assets = Liabilities + Equity in every period."""
    liab_eq = tuple(l + e for l, e in
                    zip(balance_sheet.total_liabilities, balance_sheet.total_equity))
    delta, where = _max_delta(balance_sheet.total_assets, liab_eq)
    ok = delta <= tolerance
    return AuditCheck(
        id="balance_sheet_identity",
        name="Balance Sheet Identity",
        description="Assets = Liabilities + Equity",
        status=CheckStatus.PASS if ok else CheckStatus.FAIL,
        message=("Balance sheet balances in every period" if ok else
                 f"Assets differ from liabilities + equity by {delta:,.2f} in period {where}"),
        value=delta,
        threshold=tolerance,
    )


def check_cash_continuity(cash_flow: CashFlowStatement, opening_cash: float,
                          tolerance: float = TOLERANCE) -> AuditCheck:
    """ending_cash[t] = ending_cash[t-1] + net_cash_flow[t]."""
    previous = (opening_cash,) + tuple(cash_flow.ending_cash[:-1])
    expected = tuple(p + n for p, n in zip(previous, cash_flow.net_cash_flow))
    delta, where = _max_delta(expected, cash_flow.ending_cash)
    ok = delta <= tolerance
    return AuditCheck(
        id="cash_continuity",
        name="Cash Continuity",
        description="Each period's ending cash rolls forward from the last",
        status=CheckStatus.PASS if ok else CheckStatus.FAIL,
        message=("Cash rolls forward in every period" if ok else
                 f"Cash roll-forward breaks by {delta:,.2f} in period {where}"),
        value=delta,
        threshold=tolerance,
    )


def check_income_statement_arithmetic(income: IncomeStatement,
                                      tolerance: float = TOLERANCE) -> AuditCheck:
    """Gross profit = revenue - COGS; net income = operating income - interest - taxes."""
    gp = tuple(r - c for r, c in zip(income.revenue, income.cost_of_goods_sold))
    ni = tuple(oi - i - t for oi, i, t in
               zip(income.operating_income, income.interest_expense, income.taxes))
    d_gp, t_gp = _max_delta(gp, income.gross_profit)
    d_ni, t_ni = _max_delta(ni, income.net_income)
    delta = max(d_gp, d_ni)
    ok = delta <= tolerance
    if ok:
        message = "Gross profit and net income reconcile in every period"
    elif d_gp >= d_ni:
        message = f"Gross profit off by {d_gp:,.2f} in period {t_gp}"
    else:
        message = f"Net income off by {d_ni:,.2f} in period {t_ni}"
    return AuditCheck(
        id="income_statement_arithmetic",
        name="Income Statement Arithmetic",
        description="Income statement subtotals reconcile",
        status=CheckStatus.PASS if ok else CheckStatus.FAIL,
        message=message,
        value=delta,
        threshold=tolerance,
    )


def check_debt_amortization(debt: DebtSchedule, maturity_periods: int | None = None,
                            tolerance: float = TOLERANCE) -> AuditCheck:
    """Term debt never goes negative or grows; repaid by maturity within the horizon."""
    negative = any(b < -tolerance for b in debt.ending)
    increasing = any(
        debt.ending[t] > debt.ending[t - 1] + tolerance
        for t in range(1, len(debt.ending))
    )
    status = CheckStatus.PASS
    message = "Term debt amortises as scheduled"
    if negative or increasing:
        status = CheckStatus.FAIL
        message = "Term debt balance is negative" if negative else "Term debt balance increases"
    elif (maturity_periods is not None and 0 < maturity_periods <= len(debt.ending)
          and debt.ending[maturity_periods - 1] > tolerance):
        status = CheckStatus.WARNING
        message = (f"Term debt of {debt.ending[maturity_periods - 1]:,.2f} "
                   f"remains at maturity (period {maturity_periods - 1})")
    return AuditCheck(
        id="debt_amortization",
        name="Debt Amortization",
        description="Term debt balance declines to zero by maturity",
        status=status,
        message=message,
        value=debt.ending[-1] if debt.ending else 0.0,
        threshold=tolerance,
    )
