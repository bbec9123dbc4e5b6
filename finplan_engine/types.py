"""Data shapes for the calculation engine.

Every per-period line is a tuple of floats of length = planning horizon.
All shapes are frozen: a generated model is never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

Line = tuple[float, ...]


def _as_dict(obj: Any) -> dict[str, Any]:
    """Dataclass → JSON-ready dict (tuples become lists, nested shapes recurse)."""
    out: dict[str, Any] = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if hasattr(value, "to_dict"):
            out[f.name] = value.to_dict()
        elif isinstance(value, tuple) and value and isinstance(value[0], tuple):
            out[f.name] = {k: list(v) for k, v in value}
        elif isinstance(value, tuple):
            out[f.name] = list(value)
        elif isinstance(value, Enum):
            out[f.name] = value.value
        else:
            out[f.name] = value
    return out


def _read_only(mapping: Mapping[str, Any]) -> Mapping[str, Any]:
    """Read-only copy; nested mappings are frozen too."""
    return MappingProxyType({
        k: _read_only(v) if isinstance(v, Mapping) else v for k, v in mapping.items()
    })


def _plain(mapping: Mapping[str, Any]) -> dict[str, Any]:
    return {k: _plain(v) if isinstance(v, Mapping) else v for k, v in mapping.items()}


def _line_columns(obj: Any) -> dict[str, Line]:
    """Per-period columns of a statement/schedule, in field order."""
    cols: dict[str, Line] = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if isinstance(value, tuple) and value and isinstance(value[0], tuple):
            cols.update({k: v for k, v in value})
        elif isinstance(value, tuple):
            cols[f.name] = value
    return cols


# ── Schedules ───────────────────────────────────────────────────


@dataclass(frozen=True)
class DepreciationSchedule:
    beginning: Line
    additions: Line              # capex
    depreciation: Line
    ending: Line                 # net book value
    accumulated_depreciation: Line
    gross_fixed_assets: Line
    opening_value: float = 0.0

    def to_dict(self) -> dict:
        return _as_dict(self)

    def columns(self) -> dict[str, Line]:
        return _line_columns(self)


@dataclass(frozen=True)
class DebtSchedule:
    beginning: Line
    new_debt: Line
    interest: Line
    principal: Line
    payment: Line                # interest + principal
    ending: Line
    level_payment: float = 0.0

    def to_dict(self) -> dict:
        return _as_dict(self)

    def columns(self) -> dict[str, Line]:
        return _line_columns(self)


@dataclass(frozen=True)
class RevolverSchedule:
    beginning: Line
    draws: Line
    repayments: Line
    interest: Line
    ending: Line
    iterations: int = 0

    def to_dict(self) -> dict:
        return _as_dict(self)

    def columns(self) -> dict[str, Line]:
        return _line_columns(self)


@dataclass(frozen=True)
class WorkingCapitalSchedule:
    accounts_receivable: Line
    inventory: Line
    accounts_payable: Line
    net_working_capital: Line
    change_in_working_capital: Line

    def to_dict(self) -> dict:
        return _as_dict(self)

    def columns(self) -> dict[str, Line]:
        return _line_columns(self)


@dataclass(frozen=True)
class Schedules:
    depreciation: DepreciationSchedule
    debt: DebtSchedule
    working_capital: WorkingCapitalSchedule
    revolver: RevolverSchedule | None = None

    def to_dict(self) -> dict:
        return _as_dict(self)


# ── Statements ──────────────────────────────────────────────────


@dataclass(frozen=True)
class IncomeStatement:
    revenue: Line
    cost_of_goods_sold: Line
    gross_profit: Line
    operating_expenses: tuple[tuple[str, Line], ...]   # (category, line); includes depreciation
    total_operating_expenses: Line
    operating_income: Line
    term_interest: Line
    revolver_interest: Line
    interest_expense: Line
    pretax_income: Line
    taxes: Line
    loss_carryforward: Line      # available losses after each period (>= 0)
    net_income: Line

    def expense(self, category: str) -> Line:
        for name, line in self.operating_expenses:
            if name == category:
                return line
        raise KeyError(category)

    def to_dict(self) -> dict:
        return _as_dict(self)

    def columns(self) -> dict[str, Line]:
        return _line_columns(self)


@dataclass(frozen=True)
class CashFlowStatement:
    net_income: Line
    depreciation: Line
    change_in_working_capital: Line
    operating_cash_flow: Line
    capital_expenditure: Line
    investing_cash_flow: Line
    new_debt: Line
    principal_repayments: Line
    financing_cash_flow: Line
    net_cash_flow: Line
    beginning_cash: Line
    ending_cash: Line
    interest_paid: Line          # memo: already inside net income

    def to_dict(self) -> dict:
        return _as_dict(self)

    def columns(self) -> dict[str, Line]:
        return _line_columns(self)


@dataclass(frozen=True)
class BalanceSheet:
    cash: Line
    accounts_receivable: Line
    inventory: Line
    fixed_assets: Line           # gross
    accumulated_depreciation: Line
    total_assets: Line
    accounts_payable: Line
    debt: Line
    revolver: Line
    total_liabilities: Line
    common_stock: Line
    retained_earnings: Line
    total_equity: Line

    def imbalance(self) -> Line:
        """assets - (liabilities + equity) per period."""
        return tuple(
            a - (l + e) for a, l, e in
            zip(self.total_assets, self.total_liabilities, self.total_equity)
        )

    def to_dict(self) -> dict:
        return _as_dict(self)

    def columns(self) -> dict[str, Line]:
        return _line_columns(self)


@dataclass(frozen=True)
class Statements:
    """One complete statement build (used per scenario)."""
    income_statement: IncomeStatement
    cash_flow: CashFlowStatement
    balance_sheet: BalanceSheet
    schedules: Schedules

    @property
    def periods(self) -> int:
        return len(self.income_statement.revenue)


# ── Scenarios ───────────────────────────────────────────────────


class ScenarioKind(str, Enum):
    BASE = "base"
    OPTIMISTIC = "optimistic"
    PESSIMISTIC = "pessimistic"
    CUSTOM = "custom"


@dataclass(frozen=True)
class ScenarioResults:
    npv: float
    irr: float | None            # annual nominal; None = no sign change / no root
    payback_period: int | None   # 0-based month; None = not recovered in horizon
    key_metrics: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "key_metrics", _read_only(self.key_metrics))

    def to_dict(self) -> dict:
        return {
            "npv": self.npv,
            "irr": self.irr,
            "payback_period": self.payback_period,
            "key_metrics": dict(self.key_metrics),
        }


@dataclass(frozen=True)
class Scenario:
    id: str
    name: str
    kind: ScenarioKind
    assumptions: Mapping[str, Any]
    results: ScenarioResults

    def __post_init__(self) -> None:
        object.__setattr__(self, "assumptions", _read_only(self.assumptions))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "assumptions": _plain(self.assumptions),
            "results": self.results.to_dict(),
        }


# ── Audit ───────────────────────────────────────────────────────


class CheckStatus(str, Enum):
    PASS = "pass"
    WARNING = "warning"
    FAIL = "fail"


@dataclass(frozen=True)
class AuditCheck:
    id: str
    name: str
    description: str
    status: CheckStatus
    message: str
    value: float | None = None
    threshold: float | None = None

    @property
    def passed(self) -> bool:
        return self.status is CheckStatus.PASS

    def to_dict(self) -> dict:
        return _as_dict(self)


# ── FinancialModel ──────────────────────────────────────────────


@dataclass(frozen=True)
class FinancialModel:
    id: str
    template_id: str
    business_type_id: str
    periods: int
    drivers: Mapping[str, Any]
    income_statement: IncomeStatement
    balance_sheet: BalanceSheet
    cash_flow: CashFlowStatement
    schedules: Schedules
    scenarios: tuple[Scenario, ...]
    audit_checks: tuple[AuditCheck, ...]
    created_at: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "drivers", _read_only(self.drivers))

    def scenario(self, kind: ScenarioKind | str) -> Scenario:
        kind = ScenarioKind(kind)
        for s in self.scenarios:
            if s.kind is kind:
                return s
        raise KeyError(kind.value)

    def audit_check(self, check_id: str) -> AuditCheck:
        for c in self.audit_checks:
            if c.id == check_id:
                return c
        raise KeyError(check_id)

    def to_dict(self) -> dict:
        """JSON-ready representation for persistence and exporters."""
        return {
            "id": self.id,
            "template_id": self.template_id,
            "business_type_id": self.business_type_id,
            "periods": self.periods,
            "created_at": self.created_at,
            "drivers": dict(self.drivers),
            "income_statement": self.income_statement.to_dict(),
            "balance_sheet": self.balance_sheet.to_dict(),
            "cash_flow": self.cash_flow.to_dict(),
            "schedules": self.schedules.to_dict(),
            "scenarios": [s.to_dict() for s in self.scenarios],
            "audit_checks": [c.to_dict() for c in self.audit_checks],
        }

    @property
    def dataframes(self) -> dict:
        """Tagged pandas DataFrames, one per statement/schedule. Lazy import."""
        import pandas as pd
        from finplan_engine.periods import period_labels
        from finplan_engine.value_tags import tag_dataframe

        index = pd.Index(period_labels(self.periods), name="period")
        sources = {
            "income_statement": self.income_statement.columns(),
            "balance_sheet": self.balance_sheet.columns(),
            "cash_flow": self.cash_flow.columns(),
            "depreciation": self.schedules.depreciation.columns(),
            "debt": self.schedules.debt.columns(),
            "working_capital": self.schedules.working_capital.columns(),
        }
        if self.schedules.revolver is not None:
            sources["revolver"] = self.schedules.revolver.columns()

        frames = {
            name: tag_dataframe(pd.DataFrame(cols, index=index))
            for name, cols in sources.items()
        }
        frames["scenarios"] = pd.DataFrame([
            {"scenario": s.id, "name": s.name, "npv": s.results.npv,
             "irr": s.results.irr, "payback_period": s.results.payback_period,
             **s.results.key_metrics}
            for s in self.scenarios
        ]).set_index("scenario")
        frames["audit"] = pd.DataFrame([c.to_dict() for c in self.audit_checks]).set_index("id")
        return frames
