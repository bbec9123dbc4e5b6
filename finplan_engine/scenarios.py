"""Scenario generator + sensitivity sweep engine.

Scenario: perturb the template's lever drivers → rebuild statements →
compute NPV / IRR / payback and headline metrics.

    base         no perturbation
    optimistic   growth levers ×1.2, margin levers ×1.1, cost levers ÷1.1
    pessimistic  growth levers ×0.8, margin levers ×0.9, cost levers ÷0.9
    custom       caller-supplied multipliers and driver overrides

Multipliers come from settings.json. Perturbed values are clamped into the
driver's range so a scenario never produces an input the template rejects.

Sensitivity sweep: rebuild N times with one driver stepped across a range
→ DataFrame. A build is a single pass (plus the revolver solve), so
running dozens of points for a tornado chart is cheap.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from finplan_engine.analytics import irr, key_metrics, npv, payback_period
from finplan_engine.config import EngineSettings, ScenarioPreset
from finplan_engine.normalizer import NormalizedDrivers, normalize
from finplan_engine.statements import build_statements
from finplan_engine.templates import ModelTemplate
from finplan_engine.types import Scenario, ScenarioKind, ScenarioResults, Statements

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomScenario:
    """A caller-defined scenario.

    overrides: input id → value, applied after the lever multipliers and
        re-validated against the template.
    """
    name: str
    overrides: Mapping[str, Any] = field(default_factory=dict)
    growth_multiplier: float = 1.0
    margin_factor: float = 1.0
    discount_multiplier: float = 1.0

    @property
    def id(self) -> str:
        slug = re.sub(r"[^a-z0-9]+", "_", self.name.lower()).strip("_")
        return f"custom_{slug or 'scenario'}"


# ── Perturbation ────────────────────────────────────────────────


def _clamp(template: ModelTemplate, input_id: str, value: float) -> float:
    defn = template.input(input_id)
    if defn is None or defn.range is None:
        return value
    return defn.range.clamp(value)


def perturb_drivers(template: ModelTemplate, drivers: Mapping[str, Any],
                    growth_multiplier: float = 1.0,
                    margin_factor: float = 1.0) -> dict[str, float]:
    """Lever values after applying the multipliers. Only changed ids are returned.

    A negative growth rate is divided by the multiplier so that a
    multiplier above 1 always improves growth.
    """
    changed: dict[str, float] = {}

    def _set(input_id: str, value: float) -> None:
        value = _clamp(template, input_id, value)
        if value != drivers.get(input_id):
            changed[input_id] = value

    for input_id in template.levers.growth:
        g = drivers.get(input_id)
        if g is None or growth_multiplier == 1.0:
            continue
        g = float(g)
        _set(input_id, g * growth_multiplier if g >= 0 else g / growth_multiplier)

    if margin_factor != 1.0:
        for input_id in template.levers.margin:
            v = drivers.get(input_id)
            if v is not None:
                _set(input_id, float(v) * margin_factor)
        for input_id in template.levers.cost:
            v = drivers.get(input_id)
            if v is not None and margin_factor > 0:
                _set(input_id, float(v) / margin_factor)

    return changed


# ── Results ─────────────────────────────────────────────────────


def scenario_results(statements: Statements, discount_rate: float,
                     settings: EngineSettings) -> ScenarioResults:
    """NPV / IRR / payback of net cash flow plus headline metrics."""
    flows = statements.cash_flow.net_cash_flow
    return ScenarioResults(
        npv=npv(discount_rate, flows),
        irr=irr(
            flows,
            guess=settings.irr_guess,
            tol=settings.irr_tolerance,
            max_iter=settings.irr_max_iterations,
            monthly_bracket=settings.irr_monthly_bracket,
        ),
        payback_period=payback_period(flows),
        key_metrics=key_metrics(statements),
    )


def build_scenario(
    template: ModelTemplate,
    base_drivers: NormalizedDrivers,
    periods: int,
    settings: EngineSettings,
    *,
    kind: ScenarioKind,
    scenario_id: str,
    name: str,
    growth_multiplier: float = 1.0,
    margin_factor: float = 1.0,
    discount_multiplier: float = 1.0,
    overrides: Mapping[str, Any] | None = None,
    base_statements: Statements | None = None,
) -> Scenario:
    """Rebuild the statements under one set of assumptions and score them.

    Raises:
        ValidationReport: custom overrides fail the template's rules.
    """
    changed = perturb_drivers(template, base_drivers, growth_multiplier, margin_factor)
    if overrides:
        changed.update(overrides)

    if changed:
        drivers = normalize(template, {**base_drivers.to_dict(), **changed})
        statements = build_statements(template, drivers, periods, settings)
    else:
        drivers = base_drivers
        statements = base_statements or build_statements(template, drivers, periods, settings)

    discount_rate = drivers.number("discount_rate") * discount_multiplier
    results = scenario_results(statements, discount_rate, settings)
    logger.debug(f"Scenario {scenario_id}: npv={results.npv:,.2f} irr={results.irr}")

    return Scenario(
        id=scenario_id,
        name=name,
        kind=kind,
        assumptions={
            "growth_multiplier": growth_multiplier,
            "margin_factor": margin_factor,
            "discount_rate": discount_rate,
            "drivers": {k: drivers[k] for k in changed if k in drivers},
        },
        results=results,
    )


def _from_preset(template: ModelTemplate, drivers: NormalizedDrivers, periods: int,
                 settings: EngineSettings, preset: ScenarioPreset) -> Scenario:
    return build_scenario(
        template, drivers, periods, settings,
        kind=ScenarioKind(preset.kind),
        scenario_id=preset.kind,
        name=preset.name,
        growth_multiplier=preset.growth_multiplier,
        margin_factor=preset.margin_factor,
        discount_multiplier=preset.discount_multiplier,
    )


def generate_scenarios(
    template: ModelTemplate,
    drivers: NormalizedDrivers,
    periods: int,
    settings: EngineSettings,
    base_statements: Statements | None = None,
    custom: tuple[CustomScenario, ...] | list[CustomScenario] = (),
) -> tuple[Scenario, ...]:
    """Base, optimistic, pessimistic, then any custom scenarios, in that order."""
    scenarios = [
        build_scenario(
            template, drivers, periods, settings,
            kind=ScenarioKind.BASE, scenario_id="base", name="Base Case",
            base_statements=base_statements,
        ),
        _from_preset(template, drivers, periods, settings, settings.preset("optimistic")),
        _from_preset(template, drivers, periods, settings, settings.preset("pessimistic")),
    ]
    for custom_scenario in custom:
        scenarios.append(build_scenario(
            template, drivers, periods, settings,
            kind=ScenarioKind.CUSTOM,
            scenario_id=custom_scenario.id,
            name=custom_scenario.name,
            growth_multiplier=custom_scenario.growth_multiplier,
            margin_factor=custom_scenario.margin_factor,
            discount_multiplier=custom_scenario.discount_multiplier,
            overrides=custom_scenario.overrides,
        ))
    return tuple(scenarios)


# ── Sensitivity sweep ───────────────────────────────────────────


@dataclass
class SweepVariable:
    """A driver to sweep in sensitivity analysis.

    driver: input id (e.g. "revenue_growth_rate")
    low: Low end of sweep range (e.g. 0.01)
    high: High end of sweep range (e.g. 0.10)
    steps: Number of steps (e.g. 5 → values at 0.01, 0.0325, ..., 0.10)
    base: Base case value, flagged in the result rows (optional)
    label: Human-readable label for charts (e.g. "Monthly Growth %")
    """
    driver: str
    low: float
    high: float
    steps: int = 9
    base: float | None = None
    label: str = ""

    @property
    def values(self) -> list[float]:
        """Generate sweep values from low to high."""
        if self.steps <= 1:
            return [self.base if self.base is not None else self.low]
        step_size = (self.high - self.low) / (self.steps - 1)
        return [self.low + i * step_size for i in range(self.steps)]


@dataclass
class SweepResult:
    """Result of a sensitivity sweep.

    Each row = one rebuild.
    rows[i] = {driver value, is_base, npv, irr, payback_period, metrics...}
    """
    variable: SweepVariable
    template_id: str
    rows: list[dict] = field(default_factory=list)

    @property
    def dataframe(self):
        """Convert to pandas DataFrame. Lazy import."""
        import pandas as pd
        return pd.DataFrame(self.rows)


def run_sweep(
    registry,
    business_type_id: str,
    raw_inputs: Mapping[str, Any],
    variable: SweepVariable,
    periods: int | None = None,
    settings: EngineSettings | None = None,
) -> SweepResult:
    """Run a single-driver sensitivity sweep.

    For each value in variable.values:
        1. Copy raw_inputs with the driver set to the sweep value
        2. Normalize (an out-of-range point raises ValidationReport)
        3. Build the statements
        4. Score them like a scenario
        5. Collect as a row
    """
    if settings is None:
        settings = EngineSettings.load()
    if periods is None:
        periods = settings.default_periods

    template = registry.get_template(business_type_id)
    if template.input(variable.driver) is None:
        raise KeyError(f"Template '{template.id}' has no input '{variable.driver}'")

    result = SweepResult(variable=variable, template_id=template.id)
    for val in variable.values:
        drivers = normalize(template, {**raw_inputs, variable.driver: val})
        statements = build_statements(template, drivers, periods, settings)
        scored = scenario_results(statements, drivers.number("discount_rate"), settings)

        row = {
            variable.driver: val,
            "is_base": variable.base is not None and abs(val - variable.base) < 1e-10,
            "npv": scored.npv,
            "irr": scored.irr,
            "payback_period": scored.payback_period,
        }
        row.update(scored.key_metrics)
        result.rows.append(row)

    return result


def run_multi_sweep(
    registry,
    business_type_id: str,
    raw_inputs: Mapping[str, Any],
    variables: list[SweepVariable],
    periods: int | None = None,
    settings: EngineSettings | None = None,
) -> list[SweepResult]:
    """Run sweeps for multiple drivers (one at a time, not grid).

    Returns one SweepResult per driver. Used for tornado charts.
    """
    if settings is None:
        settings = EngineSettings.load()
    return [
        run_sweep(registry, business_type_id, raw_inputs, v, periods, settings)
        for v in variables
    ]
