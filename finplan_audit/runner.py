"""Audit runner -- orchestrates all checks against engine output."""

from __future__ import annotations

from finplan_engine.types import AuditCheck, CheckStatus, FinancialModel, Statements
from finplan_audit.checks import (
    TOLERANCE,
    check_balance_sheet_identity,
    check_cash_balance_floor,
    check_cash_continuity,
    check_cash_flow_health,
    check_debt_amortization,
    check_gross_margin,
    check_income_statement_arithmetic,
    check_interest_coverage,
    check_revenue_growth,
    classify_check,
)


def run_checks(statements: Statements, opening_cash: float,
               maturity_periods: int | None = None,
               tolerance: float = TOLERANCE) -> list[AuditCheck]:
    """Every check, health first, in a stable order."""
    inc = statements.income_statement
    cf = statements.cash_flow
    bs = statements.balance_sheet
    return [
        check_revenue_growth(inc),
        check_gross_margin(inc),
        check_cash_flow_health(cf),
        check_interest_coverage(inc),
        check_balance_sheet_identity(bs, tolerance),
        check_cash_continuity(cf, opening_cash, tolerance),
        check_income_statement_arithmetic(inc, tolerance),
        check_debt_amortization(statements.schedules.debt, maturity_periods, tolerance),
        check_cash_balance_floor(bs),
    ]


def summarize(checks: list[AuditCheck] | tuple[AuditCheck, ...]) -> dict:
    """Counts by status and by family."""
    arith = [c for c in checks if classify_check(c.id) == "arithmetic"]
    health = [c for c in checks if classify_check(c.id) == "health"]
    return {
        "total": len(checks),
        "pass": sum(1 for c in checks if c.status is CheckStatus.PASS),
        "warning": sum(1 for c in checks if c.status is CheckStatus.WARNING),
        "fail": sum(1 for c in checks if c.status is CheckStatus.FAIL),
        "arithmetic_pass": sum(1 for c in arith if c.passed),
        "arithmetic_fail": sum(1 for c in arith if not c.passed),
        "health_pass": sum(1 for c in health if c.passed),
        "health_flagged": sum(1 for c in health if not c.passed),
    }


def run_all_checks(model: FinancialModel, tolerance: float = TOLERANCE) -> dict:
    """Re-run every check against a finished model.

    Returns dict with:
        results: list of AuditCheck
        summary: dict with counts
        model: the FinancialModel audited
    """
    statements = Statements(
        income_statement=model.income_statement,
        cash_flow=model.cash_flow,
        balance_sheet=model.balance_sheet,
        schedules=model.schedules,
    )
    maturity = model.drivers.get("debt_maturity_years")
    results = run_checks(
        statements,
        opening_cash=float(model.drivers.get("opening_cash") or 0.0),
        maturity_periods=round(float(maturity) * 12) if maturity is not None else None,
        tolerance=tolerance,
    )
    return {
        "results": results,
        "summary": summarize(results),
        "model": model,
    }
