"""Calculation steps — tagged line formulas for revenue and cost lines.

Templates describe each statement line as one of a closed set of step
variants. A step names the driver ids it reads; evaluation is plain Python
over the normalized driver values. There is no expression parser.

    revenue: GrowthCompound | CustomerCohort | UnitEconomics
    costs:   LinearPercentage | UnitCost | UnitEconomics | FixedAmount

JSON form (inside a template file):
    {"step": "growth_compound", "base": "initial_mrr",
     "growth": "revenue_growth_rate", "churn": "churn_rate"}
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from typing import Any, Mapping

from finplan_engine.errors import ComputationAnomaly


# ── Step variants ───────────────────────────────────────────────


@dataclass(frozen=True)
class GrowthCompound:
    """base · (1+g)^t · (1-c)^t"""
    base: str
    growth: str | None = None
    churn: str | None = None


@dataclass(frozen=True)
class CustomerCohort:
    """customers[t] = customers[t-1]·(1-churn) + new; line = customers · price."""
    starting: str
    new_per_period: str
    churn: str
    price: str


@dataclass(frozen=True)
class UnitEconomics:
    """scale · Π factors · (1+g)^t"""
    factors: tuple[str, ...]
    growth: str | None = None
    scale: float = 1.0


@dataclass(frozen=True)
class LinearPercentage:
    """revenue · pct + fixed, pct = 1 - rate when complement is set."""
    rate: str
    fixed: str | None = None
    complement: bool = False


@dataclass(frozen=True)
class UnitCost:
    """revenue · cost / price + fixed (cost scales with units sold)."""
    cost: str
    price: str
    fixed: str | None = None


@dataclass(frozen=True)
class FixedAmount:
    """amount · scale, constant per period."""
    amount: str
    scale: float = 1.0


CalculationStep = (
    GrowthCompound | CustomerCohort | UnitEconomics
    | LinearPercentage | UnitCost | FixedAmount
)

_STEP_TYPES: dict[str, type] = {
    "growth_compound": GrowthCompound,
    "customer_cohort": CustomerCohort,
    "unit_economics": UnitEconomics,
    "linear_percentage": LinearPercentage,
    "unit_cost": UnitCost,
    "fixed_amount": FixedAmount,
}

# Steps that read the revenue line and so cannot themselves produce it
_REVENUE_DEPENDENT = (LinearPercentage, UnitCost)


def parse_step(raw: dict) -> CalculationStep:
    """Build a step from its JSON dict. Unknown tags or keys raise ValueError."""
    tag = raw.get("step")
    cls = _STEP_TYPES.get(tag)
    if cls is None:
        raise ValueError(
            f"Unknown calculation step '{tag}' "
            f"(expected one of {sorted(_STEP_TYPES)})"
        )
    allowed = {f.name for f in fields(cls)}
    kwargs = {k: v for k, v in raw.items() if k != "step"}
    unknown = set(kwargs) - allowed
    if unknown:
        raise ValueError(f"Step '{tag}' got unexpected keys {sorted(unknown)}")
    if "factors" in kwargs:
        kwargs["factors"] = tuple(kwargs["factors"])
    try:
        return cls(**kwargs)
    except TypeError as exc:
        raise ValueError(f"Step '{tag}' is incomplete: {exc}") from exc


def step_inputs(step: CalculationStep) -> tuple[str, ...]:
    """Driver ids a step reads, in declaration order."""
    ids: list[str] = []
    for f in fields(step):
        value = getattr(step, f.name)
        if f.name == "factors":
            ids.extend(value)
        elif isinstance(value, str):
            ids.append(value)
    return tuple(ids)


def needs_revenue(step: CalculationStep) -> bool:
    return isinstance(step, _REVENUE_DEPENDENT)


# ── Evaluation ──────────────────────────────────────────────────


def _opt(drivers: Mapping[str, Any], key: str | None) -> float:
    """Optional driver: absent key or None value reads as zero."""
    if key is None:
        return 0.0
    value = drivers.get(key)
    return 0.0 if value is None else float(value)


def evaluate(
    step: CalculationStep,
    drivers: Mapping[str, Any],
    periods: int,
    revenue: tuple[float, ...] | None = None,
) -> tuple[float, ...]:
    """Evaluate a step into a per-period line of length `periods`."""
    if isinstance(step, GrowthCompound):
        base = float(drivers[step.base])
        g = _opt(drivers, step.growth)
        c = _opt(drivers, step.churn)
        return tuple(base * (1 + g) ** t * (1 - c) ** t for t in range(periods))

    if isinstance(step, CustomerCohort):
        customers = float(drivers[step.starting])
        new = float(drivers[step.new_per_period])
        churn = float(drivers[step.churn])
        price = float(drivers[step.price])
        line: list[float] = []
        for t in range(periods):
            if t > 0:
                customers = customers * (1 - churn) + new
            line.append(customers * price)
        return tuple(line)

    if isinstance(step, UnitEconomics):
        base = step.scale * math.prod(float(drivers[f]) for f in step.factors)
        g = _opt(drivers, step.growth)
        return tuple(base * (1 + g) ** t for t in range(periods))

    if isinstance(step, FixedAmount):
        amount = float(drivers[step.amount]) * step.scale
        return tuple(amount for _ in range(periods))

    if revenue is None:
        raise ValueError(f"{type(step).__name__} needs the revenue line")

    if isinstance(step, LinearPercentage):
        rate = float(drivers[step.rate])
        pct = 1 - rate if step.complement else rate
        fixed = _opt(drivers, step.fixed)
        return tuple(r * pct + fixed for r in revenue)

    if isinstance(step, UnitCost):
        price = float(drivers[step.price])
        cost = float(drivers[step.cost])
        if price == 0:
            if cost:
                raise ComputationAnomaly(
                    "cost_of_goods_sold",
                    f"'{step.price}' is zero while '{step.cost}' is {cost:,.2f}; "
                    "cost ratio is undefined",
                )
            ratio = 0.0
        else:
            ratio = cost / price
        fixed = _opt(drivers, step.fixed)
        return tuple(r * ratio + fixed for r in revenue)

    raise TypeError(f"Unhandled calculation step {type(step).__name__}")
