"""Statement generator — Income Statement → Cash Flow → Balance Sheet.

Order of evaluation per build:
    operating lines + schedules  (cached, pure in the drivers)
    Income Statement             (needs depreciation + interest)
    Cash Flow Statement          (needs net income + ΔWC + debt flows)
    Balance Sheet                (needs ending cash + every schedule)

Interest is counted once: it reduces net income and therefore operating
cash flow. Financing cash flow carries only principal movements.

Revolver circularity:
    revolver interest depends on the average revolver balance, the balance
    depends on cash, cash depends on net income, net income depends on the
    interest. Solved by bounded fixed-point iteration: build with the last
    interest vector, recompute interest from the resulting balances, repeat
    until the change is below tolerance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from finplan_engine.config import EngineSettings
from finplan_engine.errors import ComputationAnomaly
from finplan_engine.formulas import calc_simple_tax, calc_tax, monthly_rate
from finplan_engine.normalizer import NormalizedDrivers
from finplan_engine.schedules import (
    OperatingLines,
    build_schedules,
    ensure_finite,
    operating_lines,
)
from finplan_engine.templates import ModelTemplate
from finplan_engine.types import (
    BalanceSheet,
    CashFlowStatement,
    IncomeStatement,
    Line,
    RevolverSchedule,
    Schedules,
    Statements,
)

logger = logging.getLogger(__name__)


def _add(*lines: Line) -> Line:
    return tuple(sum(vals) for vals in zip(*lines))


def _cumsum(line: Line) -> Line:
    out, acc = [], 0.0
    for v in line:
        acc += v
        out.append(acc)
    return tuple(out)


# ── Income Statement ────────────────────────────────────────────


def build_income_statement(lines: OperatingLines, schedules: Schedules,
                           revolver_interest: Line, tax_rate: float,
                           carry_losses: bool) -> IncomeStatement:
    """P&L for every period.

    taxes = max(0, operating income - interest) · rate, or with loss
    carry-forward the pre-tax result is first netted against the loss pool.
    """
    revenue = lines.revenue
    cogs = lines.cost_of_goods_sold
    gross_profit = tuple(r - c for r, c in zip(revenue, cogs))

    opex = lines.operating_expenses + (("depreciation", schedules.depreciation.depreciation),)
    total_opex = _add(*(line for _, line in opex))
    operating_income = tuple(g - o for g, o in zip(gross_profit, total_opex))

    term_interest = schedules.debt.interest
    interest = _add(term_interest, revolver_interest)
    pretax = tuple(oi - i for oi, i in zip(operating_income, interest))

    taxes, pool_line = [], []
    pool = 0.0
    for pbt in pretax:
        if carry_losses:
            tax, pool = calc_tax(pbt, tax_rate, pool)
        else:
            tax = calc_simple_tax(pbt, tax_rate)
        taxes.append(tax)
        pool_line.append(-pool)
    net_income = tuple(p - t for p, t in zip(pretax, taxes))

    return IncomeStatement(
        revenue=revenue,
        cost_of_goods_sold=cogs,
        gross_profit=gross_profit,
        operating_expenses=opex,
        total_operating_expenses=total_opex,
        operating_income=operating_income,
        term_interest=term_interest,
        revolver_interest=revolver_interest,
        interest_expense=interest,
        pretax_income=pretax,
        taxes=tuple(taxes),
        loss_carryforward=tuple(pool_line),
        net_income=net_income,
    )


# ── Cash Flow Statement + revolver ──────────────────────────────


@dataclass(frozen=True)
class RevolverTerms:
    limit: float = 0.0
    rate: float = 0.0
    minimum_cash: float = 0.0

    @property
    def enabled(self) -> bool:
        return self.limit > 0.0


def build_cash_flow(income: IncomeStatement, schedules: Schedules,
                    opening_cash: float, revolver: RevolverTerms,
                    revolver_interest: Line) -> tuple[CashFlowStatement, RevolverSchedule]:
    """Indirect-method cash flow; draws / repays the revolver against the cash floor.

    operating = net income + depreciation - ΔWC
    investing = -capex
    financing = new debt - principal repaid
    ending_cash[t] = ending_cash[t-1] + net[t], ending_cash[-1] = opening cash
    """
    dep = schedules.depreciation
    debt = schedules.debt
    wc = schedules.working_capital

    beginning_cash, ending_cash = [], []
    operating, investing, financing, net = [], [], [], []
    new_debt, principal_out = [], []
    rv_beg, rv_draw, rv_repay, rv_end = [], [], [], []

    cash = opening_cash
    rv_bal = 0.0
    for t in range(len(income.revenue)):
        op = income.net_income[t] + dep.depreciation[t] - wc.change_in_working_capital[t]
        inv = -dep.additions[t]
        pre = cash + op + inv + debt.new_debt[t] - debt.principal[t]

        draw = repay = 0.0
        if revolver.enabled:
            if pre < revolver.minimum_cash:
                draw = max(0.0, min(revolver.minimum_cash - pre, revolver.limit - rv_bal))
            elif rv_bal > 0.0:
                repay = min(rv_bal, pre - revolver.minimum_cash)

        nd = debt.new_debt[t] + draw
        pr = debt.principal[t] + repay
        fin = nd - pr

        beginning_cash.append(cash)
        rv_beg.append(rv_bal)
        rv_bal = rv_bal + draw - repay
        cash = cash + op + inv + fin

        operating.append(op)
        investing.append(inv)
        financing.append(fin)
        net.append(op + inv + fin)
        ending_cash.append(cash)
        new_debt.append(nd)
        principal_out.append(pr)
        rv_draw.append(draw)
        rv_repay.append(repay)
        rv_end.append(rv_bal)

    cash_flow = CashFlowStatement(
        net_income=income.net_income,
        depreciation=dep.depreciation,
        change_in_working_capital=wc.change_in_working_capital,
        operating_cash_flow=tuple(operating),
        capital_expenditure=dep.additions,
        investing_cash_flow=tuple(investing),
        new_debt=tuple(new_debt),
        principal_repayments=tuple(principal_out),
        financing_cash_flow=tuple(financing),
        net_cash_flow=tuple(net),
        beginning_cash=tuple(beginning_cash),
        ending_cash=tuple(ending_cash),
        interest_paid=income.interest_expense,
    )
    schedule = RevolverSchedule(
        beginning=tuple(rv_beg),
        draws=tuple(rv_draw),
        repayments=tuple(rv_repay),
        interest=revolver_interest,
        ending=tuple(rv_end),
    )
    return cash_flow, schedule


def _revolver_interest(schedule: RevolverSchedule, annual_rate: float) -> Line:
    """Interest on the average of opening and closing balance."""
    r = monthly_rate(annual_rate)
    return tuple((b + e) / 2.0 * r for b, e in zip(schedule.beginning, schedule.ending))


# ── Balance Sheet ───────────────────────────────────────────────


def opening_equity(drivers: NormalizedDrivers, schedules: Schedules) -> float:
    """Paid-in capital: the input if supplied, else what the opening position implies.

    implied = opening cash + opening net working capital
              + opening fixed assets - opening term debt
    """
    supplied = drivers.get("initial_equity")
    if supplied is not None:
        return float(supplied)
    nwc0 = schedules.working_capital.net_working_capital[0] if schedules.working_capital.net_working_capital else 0.0
    return (
        drivers.number("opening_cash")
        + nwc0
        + schedules.depreciation.opening_value
        - (schedules.debt.beginning[0] if schedules.debt.beginning else 0.0)
    )


def build_balance_sheet(income: IncomeStatement, cash_flow: CashFlowStatement,
                        schedules: Schedules, revolver: RevolverSchedule,
                        common_stock: float) -> BalanceSheet:
    """Closing balances per period. Identity breaks are left for the audit."""
    dep = schedules.depreciation
    wc = schedules.working_capital
    n = len(income.revenue)

    cash = cash_flow.ending_cash
    total_assets = tuple(
        cash[t] + wc.accounts_receivable[t] + wc.inventory[t]
        + dep.gross_fixed_assets[t] - dep.accumulated_depreciation[t]
        for t in range(n)
    )
    total_liabilities = _add(wc.accounts_payable, schedules.debt.ending, revolver.ending)
    stock = (common_stock,) * n
    retained = _cumsum(income.net_income)

    return BalanceSheet(
        cash=cash,
        accounts_receivable=wc.accounts_receivable,
        inventory=wc.inventory,
        fixed_assets=dep.gross_fixed_assets,
        accumulated_depreciation=dep.accumulated_depreciation,
        total_assets=total_assets,
        accounts_payable=wc.accounts_payable,
        debt=schedules.debt.ending,
        revolver=revolver.ending,
        total_liabilities=total_liabilities,
        common_stock=stock,
        retained_earnings=retained,
        total_equity=_add(stock, retained),
    )


# ── Full build ──────────────────────────────────────────────────


def build_statements(template: ModelTemplate, drivers: NormalizedDrivers,
                     periods: int, settings: EngineSettings | None = None) -> Statements:
    """All three statements plus schedules for one driver set.

    Raises:
        ComputationAnomaly: non-finite value anywhere, or the revolver
            interest did not converge within the iteration bound.
    """
    if settings is None:
        settings = EngineSettings.load()

    lines = operating_lines(template, drivers, periods)
    schedules = build_schedules(template, drivers, periods)
    tax_rate = drivers.number("tax_rate")
    carry_losses = drivers.get("tax_loss_treatment") == "carryforward"
    opening_cash = drivers.number("opening_cash")
    terms = RevolverTerms(
        limit=drivers.number("revolver_limit"),
        rate=drivers.number("revolver_rate"),
        minimum_cash=drivers.number("minimum_cash"),
    )

    interest: Line = (0.0,) * periods
    iterations = 0
    while True:
        iterations += 1
        income = build_income_statement(lines, schedules, interest, tax_rate, carry_losses)
        cash_flow, revolver = build_cash_flow(income, schedules, opening_cash, terms, interest)
        if not terms.enabled:
            break
        updated = _revolver_interest(revolver, terms.rate)
        delta = max((abs(a - b) for a, b in zip(updated, interest)), default=0.0)
        logger.debug(f"Revolver iteration {iterations}: max interest change {delta:.3e}")
        if delta < settings.revolver_tolerance:
            break
        if iterations >= settings.revolver_max_iterations:
            raise ComputationAnomaly(
                "revolver.interest",
                f"did not converge after {iterations} iterations "
                f"(last change {delta:.3e})",
            )
        interest = updated

    revolver = replace(revolver, iterations=iterations)
    balance_sheet = build_balance_sheet(
        income, cash_flow, schedules, revolver, opening_equity(drivers, schedules))

    for name, stmt in (("income_statement", income), ("cash_flow", cash_flow),
                       ("balance_sheet", balance_sheet)):
        for col, line in stmt.columns().items():
            ensure_finite(f"{name}.{col}", line)

    return Statements(
        income_statement=income,
        cash_flow=cash_flow,
        balance_sheet=balance_sheet,
        schedules=replace(schedules, revolver=revolver if terms.enabled else None),
    )
