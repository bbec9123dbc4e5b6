"""Template data shapes — inputs, validation rules, schedules, levers.

A ModelTemplate is plain data parsed from config/templates/<id>.json. It
declares which inputs a business type needs, how each statement line is
computed (see engine.steps) and which drivers scenarios perturb.

Every template inherits the shared financing / capex / working-capital /
tax inputs and schedule definitions from _common.json. A template may
redefine any common input by id (e.g. a different default).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from finplan_engine.steps import CalculationStep, parse_step

INPUT_KINDS = ("number", "percentage", "currency", "text", "enum")
NUMERIC_KINDS = frozenset({"number", "percentage", "currency"})
INPUT_CATEGORIES = (
    "revenue", "cogs", "opex", "capex",
    "working_capital", "financing", "tax", "valuation",
)
SCHEDULE_KINDS = ("depreciation", "debt", "working_capital")
SCHEDULE_METHODS: dict[str, tuple[str, ...]] = {
    "depreciation": ("declining_balance",),
    "debt": ("fixed_annuity_payment",),
    "working_capital": ("days_outstanding", "inventory_turnover"),
}
COMPARISON_OPS = ("lt", "le", "gt", "ge")


# ── Validation rules ────────────────────────────────────────────


@dataclass(frozen=True)
class RangeRule:
    min: float | None = None
    max: float | None = None
    message: str = ""
    severity: str = "error"

    def contains(self, value: float) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True

    def clamp(self, value: float) -> float:
        if self.min is not None:
            value = max(value, self.min)
        if self.max is not None:
            value = min(value, self.max)
        return value


@dataclass(frozen=True)
class RequiredRule:
    message: str = ""
    severity: str = "error"


@dataclass(frozen=True)
class CrossFieldRule:
    """field <op> other, evaluated after all inputs resolve."""
    field: str
    op: str
    other: str
    message: str = ""
    severity: str = "error"

    def holds(self, left: float, right: float) -> bool:
        if self.op == "lt":
            return left < right
        if self.op == "le":
            return left <= right
        if self.op == "gt":
            return left > right
        if self.op == "ge":
            return left >= right
        raise ValueError(f"Unknown comparison '{self.op}'")


ValidationRule = RangeRule | RequiredRule | CrossFieldRule


def parse_rule(raw: dict) -> ValidationRule:
    kind = raw.get("type")
    message = raw.get("message", "")
    severity = raw.get("severity", "error")
    if severity not in ("error", "warning"):
        raise ValueError(f"Unknown rule severity '{severity}'")
    if kind == "range":
        return RangeRule(raw.get("min"), raw.get("max"), message, severity)
    if kind == "required":
        return RequiredRule(message, severity)
    if kind == "custom":
        if raw.get("op") not in COMPARISON_OPS:
            raise ValueError(f"Custom rule op must be one of {COMPARISON_OPS}")
        return CrossFieldRule(raw["field"], raw["op"], raw["other"], message, severity)
    raise ValueError(f"Unknown validation rule type '{kind}'")


# ── Inputs ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class InputDefinition:
    id: str
    name: str
    kind: str            # number | percentage | currency | text | enum
    category: str        # revenue | cogs | opex | ... | valuation
    required: bool = False
    default: Any = None
    unit: str = ""
    description: str = ""
    options: tuple[str, ...] = ()
    rules: tuple[ValidationRule, ...] = ()

    @property
    def is_numeric(self) -> bool:
        return self.kind in NUMERIC_KINDS

    @property
    def range(self) -> RangeRule | None:
        """The first error-severity range rule, if any."""
        for r in self.rules:
            if isinstance(r, RangeRule) and r.severity == "error":
                return r
        return None


def parse_input(raw: dict) -> InputDefinition:
    kind = raw["kind"]
    if kind not in INPUT_KINDS:
        raise ValueError(f"Input '{raw.get('id')}' has unknown kind '{kind}'")
    category = raw.get("category", "")
    if category not in INPUT_CATEGORIES:
        raise ValueError(f"Input '{raw.get('id')}' has unknown category '{category}'")
    return InputDefinition(
        id=raw["id"],
        name=raw.get("name", raw["id"]),
        kind=kind,
        category=category,
        required=raw.get("required", False),
        default=raw.get("default"),
        unit=raw.get("unit", ""),
        description=raw.get("description", ""),
        options=tuple(raw.get("options", ())),
        rules=tuple(parse_rule(r) for r in raw.get("rules", ())),
    )


# ── Schedules ───────────────────────────────────────────────────


@dataclass(frozen=True)
class ScheduleDefinition:
    """Which calculator a schedule uses and which inputs fill its roles."""
    id: str
    kind: str
    method: str
    drivers: tuple[tuple[str, str], ...] = ()   # (role, input id)

    def driver(self, role: str) -> str | None:
        for r, input_id in self.drivers:
            if r == role:
                return input_id
        return None


def parse_schedule(raw: dict) -> ScheduleDefinition:
    kind = raw["kind"]
    if kind not in SCHEDULE_KINDS:
        raise ValueError(f"Unknown schedule kind '{kind}'")
    method = raw["method"]
    if method not in SCHEDULE_METHODS[kind]:
        raise ValueError(f"Schedule '{kind}' has no method '{method}'")
    return ScheduleDefinition(
        id=raw.get("id", kind),
        kind=kind,
        method=method,
        drivers=tuple(raw.get("drivers", {}).items()),
    )


# ── Scenario levers ─────────────────────────────────────────────


@dataclass(frozen=True)
class ScenarioLevers:
    """Drivers a scenario perturbs.

    growth: multiplied by the growth multiplier
    margin: multiplied by the margin factor (higher = better)
    cost:   divided by the margin factor (lower = better)
    """
    growth: tuple[str, ...] = ()
    margin: tuple[str, ...] = ()
    cost: tuple[str, ...] = ()

    def all(self) -> tuple[str, ...]:
        return self.growth + self.margin + self.cost


# ── ModelTemplate ───────────────────────────────────────────────


@dataclass(frozen=True, eq=False)
class ModelTemplate:
    """Immutable template. Hashes by identity so it can key schedule caches."""
    id: str
    name: str
    version: str
    business_types: tuple[str, ...]
    inputs: tuple[InputDefinition, ...]
    revenue: tuple[CalculationStep, ...]
    cogs: CalculationStep | None
    opex: tuple[tuple[str, CalculationStep], ...]
    schedules: tuple[ScheduleDefinition, ...]
    validation: tuple[CrossFieldRule, ...] = ()
    levers: ScenarioLevers = field(default_factory=ScenarioLevers)
    description: str = ""

    def input(self, input_id: str) -> InputDefinition | None:
        for d in self.inputs:
            if d.id == input_id:
                return d
        return None

    @property
    def input_ids(self) -> tuple[str, ...]:
        return tuple(d.id for d in self.inputs)

    @property
    def required_inputs(self) -> tuple[str, ...]:
        return tuple(d.id for d in self.inputs if d.required)

    def schedule(self, kind: str) -> ScheduleDefinition:
        for s in self.schedules:
            if s.kind == kind:
                return s
        raise KeyError(f"Template '{self.id}' has no {kind} schedule")

    @property
    def opex_categories(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.opex)


def _merge_by_key(own: list[dict], common: list[dict], key: str) -> list[dict]:
    """Template entries first, then common entries the template did not redefine."""
    seen = {e[key] for e in own}
    return own + [e for e in common if e[key] not in seen]


def parse_template(raw: dict, common: dict | None = None) -> ModelTemplate:
    """Build a ModelTemplate from its JSON dict merged over the common fragment."""
    common = common or {}
    inputs_raw = _merge_by_key(raw.get("inputs", []), common.get("inputs", []), "id")
    schedules_raw = _merge_by_key(
        raw.get("schedules", []), common.get("schedules", []), "kind")

    ids = [i["id"] for i in inputs_raw]
    if len(ids) != len(set(ids)):
        raise ValueError(f"Template '{raw.get('id')}' declares an input twice")

    levers = raw.get("levers", {})
    cogs = raw.get("cogs")
    return ModelTemplate(
        id=raw["id"],
        name=raw.get("name", raw["id"]),
        version=str(raw.get("version", "1.0")),
        business_types=tuple(raw.get("business_types", (raw["id"],))),
        inputs=tuple(parse_input(i) for i in inputs_raw),
        revenue=tuple(parse_step(s) for s in raw["revenue"]),
        cogs=parse_step(cogs) if cogs else None,
        opex=tuple((name, parse_step(s)) for name, s in raw.get("opex", {}).items()),
        schedules=tuple(parse_schedule(s) for s in schedules_raw),
        validation=tuple(
            parse_rule({**r, "type": "custom"}) for r in raw.get("validation", ())
        ),
        levers=ScenarioLevers(
            growth=tuple(levers.get("growth", ())),
            margin=tuple(levers.get("margin", ())),
            cost=tuple(levers.get("cost", ())),
        ),
        description=raw.get("description", ""),
    )
