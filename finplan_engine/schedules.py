"""Schedule calculators — depreciation, term debt, working capital.

Each builder is a pure function of the normalized drivers and the period
count (working capital also reads the revenue / COGS lines, which are
themselves pure functions of the drivers). Results are immutable and
cached by (template, drivers fingerprint, periods).

Roll-forward invariant for every schedule:
    ending[t] = beginning[t] + inflow[t] - outflow[t]
    beginning[t+1] = ending[t]
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Sequence

from finplan_engine.errors import ComputationAnomaly
from finplan_engine.formulas import (
    PERIODS_PER_YEAR,
    calc_annuity_payment,
    calc_days_balance,
    calc_declining_depreciation,
    calc_interest,
    calc_turnover_balance,
)
from finplan_engine.normalizer import NormalizedDrivers
from finplan_engine.steps import evaluate
from finplan_engine.templates import ModelTemplate, ScheduleDefinition
from finplan_engine.types import (
    DebtSchedule,
    DepreciationSchedule,
    Line,
    Schedules,
    WorkingCapitalSchedule,
)

logger = logging.getLogger(__name__)


def ensure_finite(name: str, line: Sequence[float]) -> None:
    """Raise ComputationAnomaly on the first NaN / inf in a line."""
    for t, v in enumerate(line):
        if not math.isfinite(v):
            raise ComputationAnomaly(name, f"non-finite value {v!r}", period=t)


def _role(defn: ScheduleDefinition, drivers: NormalizedDrivers, role: str) -> float:
    input_id = defn.driver(role)
    return 0.0 if input_id is None else drivers.number(input_id)


# ── Operating lines ─────────────────────────────────────────────


@dataclass(frozen=True)
class OperatingLines:
    revenue: Line
    cost_of_goods_sold: Line
    operating_expenses: tuple[tuple[str, Line], ...]


@lru_cache(maxsize=256)
def operating_lines(template: ModelTemplate, drivers: NormalizedDrivers,
                    periods: int) -> OperatingLines:
    """Revenue, COGS and opex categories from the template's calculation steps."""
    streams = [evaluate(s, drivers, periods) for s in template.revenue]
    revenue = tuple(sum(vals) for vals in zip(*streams)) if streams else (0.0,) * periods
    ensure_finite("revenue", revenue)

    if template.cogs is not None:
        cogs = evaluate(template.cogs, drivers, periods, revenue)
    else:
        cogs = (0.0,) * periods
    ensure_finite("cost_of_goods_sold", cogs)

    opex: list[tuple[str, Line]] = []
    for name, step in template.opex:
        line = evaluate(step, drivers, periods, revenue)
        ensure_finite(name, line)
        opex.append((name, line))

    return OperatingLines(revenue, cogs, tuple(opex))


# ── Depreciation ────────────────────────────────────────────────


def build_depreciation(defn: ScheduleDefinition, drivers: NormalizedDrivers,
                       periods: int) -> DepreciationSchedule:
    """Declining balance on opening book value plus the month's capex.

    additions[t]    = annual capex / 12
    depreciation[t] = (beginning[t] + additions[t]) · rate / 12
    """
    opening = _role(defn, drivers, "opening")
    monthly_capex = _role(defn, drivers, "capex") / PERIODS_PER_YEAR
    rate = _role(defn, drivers, "rate")

    beginning, additions, depreciation, ending = [], [], [], []
    accumulated, gross = [], []
    nbv, acc, gfa = opening, 0.0, opening
    for _ in range(periods):
        dep = calc_declining_depreciation(nbv, monthly_capex, rate)
        beginning.append(nbv)
        additions.append(monthly_capex)
        depreciation.append(dep)
        nbv = nbv + monthly_capex - dep
        acc += dep
        gfa += monthly_capex
        ending.append(nbv)
        accumulated.append(acc)
        gross.append(gfa)

    return DepreciationSchedule(
        beginning=tuple(beginning),
        additions=tuple(additions),
        depreciation=tuple(depreciation),
        ending=tuple(ending),
        accumulated_depreciation=tuple(accumulated),
        gross_fixed_assets=tuple(gross),
        opening_value=opening,
    )


# ── Term debt ───────────────────────────────────────────────────


def build_debt(defn: ScheduleDefinition, drivers: NormalizedDrivers,
               periods: int) -> DebtSchedule:
    """Fully amortising loan with a level monthly payment.

    interest[t]  = beginning[t] · rate / 12
    principal[t] = min(payment - interest[t], beginning[t]), never negative

    Raises:
        ComputationAnomaly: principal outstanding with a zero-period maturity.
    """
    principal_0 = _role(defn, drivers, "principal")
    rate = _role(defn, drivers, "rate")
    n = round(_role(defn, drivers, "maturity") * PERIODS_PER_YEAR)

    if principal_0 > 0 and n <= 0:
        raise ComputationAnomaly(
            "debt.payment",
            f"term debt of {principal_0:,.2f} with a maturity of {n} periods "
            "has no defined payment",
        )
    payment = calc_annuity_payment(principal_0, rate, n) if principal_0 > 0 else 0.0
    if not math.isfinite(payment):
        raise ComputationAnomaly("debt.payment", f"non-finite level payment {payment!r}")

    beginning, interest, principal, paid, ending = [], [], [], [], []
    bal = principal_0
    for _ in range(periods):
        i = calc_interest(bal, rate)
        p = max(0.0, min(payment - i, bal))
        beginning.append(bal)
        interest.append(i)
        principal.append(p)
        paid.append(i + p)
        bal -= p
        ending.append(bal)

    return DebtSchedule(
        beginning=tuple(beginning),
        new_debt=(0.0,) * periods,
        interest=tuple(interest),
        principal=tuple(principal),
        payment=tuple(paid),
        ending=tuple(ending),
        level_payment=payment,
    )


# ── Working capital ─────────────────────────────────────────────


def build_working_capital(defn: ScheduleDefinition, drivers: NormalizedDrivers,
                          revenue: Line, cogs: Line) -> WorkingCapitalSchedule:
    """Receivables from revenue, inventory and payables from COGS.

    AR = revenue · DSO / 30; AP = COGS · DPO / 30
    Inventory = COGS · DIO / 30 (days_outstanding)
             or COGS · 12 / turnover (inventory_turnover)
    change[0] = 0; the opening position is paid-in at t=0.
    """
    dso = _role(defn, drivers, "receivable_days")
    dpo = _role(defn, drivers, "payable_days")

    ar = tuple(calc_days_balance(r, dso) for r in revenue)
    ap = tuple(calc_days_balance(c, dpo) for c in cogs)
    if defn.method == "inventory_turnover":
        turns = _role(defn, drivers, "turnover")
        inv = tuple(calc_turnover_balance(c, turns) for c in cogs)
    else:
        dio = _role(defn, drivers, "inventory_days")
        inv = tuple(calc_days_balance(c, dio) for c in cogs)

    nwc = tuple(a + i - p for a, i, p in zip(ar, inv, ap))
    change = tuple(0.0 if t == 0 else nwc[t] - nwc[t - 1] for t in range(len(nwc)))

    return WorkingCapitalSchedule(
        accounts_receivable=ar,
        inventory=inv,
        accounts_payable=ap,
        net_working_capital=nwc,
        change_in_working_capital=change,
    )


# ── All schedules ───────────────────────────────────────────────


@lru_cache(maxsize=256)
def build_schedules(template: ModelTemplate, drivers: NormalizedDrivers,
                    periods: int) -> Schedules:
    """Depreciation, debt and working-capital schedules for one driver set."""
    lines = operating_lines(template, drivers, periods)

    depreciation = build_depreciation(template.schedule("depreciation"), drivers, periods)
    debt = build_debt(template.schedule("debt"), drivers, periods)
    working_capital = build_working_capital(
        template.schedule("working_capital"), drivers,
        lines.revenue, lines.cost_of_goods_sold,
    )

    for name, sched in (("depreciation", depreciation), ("debt", debt),
                        ("working_capital", working_capital)):
        for col, line in sched.columns().items():
            ensure_finite(f"{name}.{col}", line)

    logger.debug(
        f"Built schedules for {template.id} ({periods} periods, "
        f"drivers {drivers.fingerprint[:12]})"
    )
    return Schedules(depreciation=depreciation, debt=debt, working_capital=working_capital)


def clear_cache() -> None:
    """Drop cached schedules and operating lines."""
    operating_lines.cache_clear()
    build_schedules.cache_clear()
