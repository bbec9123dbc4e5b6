"""Scenario generation and sensitivity sweeps."""

from __future__ import annotations

import pytest

from finplan_engine.errors import ValidationReport
from finplan_engine.normalizer import normalize
from finplan_engine.scenarios import (
    CustomScenario,
    SweepVariable,
    generate_scenarios,
    perturb_drivers,
    run_multi_sweep,
    run_sweep,
)
from finplan_engine.types import ScenarioKind


@pytest.fixture
def saas(registry, saas_inputs):
    tpl = registry.get_template("saas")
    return tpl, normalize(tpl, saas_inputs)


def test_presets_in_order(saas, settings):
    tpl, drivers = saas
    scenarios = generate_scenarios(tpl, drivers, 60, settings)
    assert [s.kind for s in scenarios] == [
        ScenarioKind.BASE, ScenarioKind.OPTIMISTIC, ScenarioKind.PESSIMISTIC]
    assert [s.name for s in scenarios] == ["Base Case", "Optimistic Case", "Pessimistic Case"]


def test_npv_ordering(saas, settings):
    tpl, drivers = saas
    base, opt, pess = generate_scenarios(tpl, drivers, 60, settings)
    assert opt.results.npv >= base.results.npv >= pess.results.npv
    assert opt.results.key_metrics["total_revenue"] > base.results.key_metrics["total_revenue"]


def test_preset_assumptions_recorded(saas, settings):
    tpl, drivers = saas
    _, opt, _ = generate_scenarios(tpl, drivers, 60, settings)
    assert opt.assumptions["growth_multiplier"] == 1.2
    assert opt.assumptions["margin_factor"] == 1.1
    assert opt.assumptions["drivers"]["revenue_growth_rate"] == pytest.approx(0.06)
    assert opt.assumptions["drivers"]["gross_margin"] == pytest.approx(0.88)
    assert opt.assumptions["drivers"]["churn_rate"] == pytest.approx(0.02 / 1.1)


def test_perturbation_is_clamped(registry):
    tpl = registry.get_template("saas")
    drivers = normalize(tpl, {"initial_mrr": 1000, "revenue_growth_rate": 0.45,
                              "gross_margin": 0.95})
    changed = perturb_drivers(tpl, drivers, growth_multiplier=1.2, margin_factor=1.1)
    assert changed["revenue_growth_rate"] == 0.5
    assert changed["gross_margin"] == 1


def test_negative_growth_gets_worse_when_pessimistic(registry):
    tpl = registry.get_template("default")
    drivers = normalize(tpl, {"initial_revenue": 10000, "revenue_growth_rate": -0.1})
    changed = perturb_drivers(tpl, drivers, growth_multiplier=0.8)
    assert changed["revenue_growth_rate"] == pytest.approx(-0.125)


def test_custom_scenario_overrides(saas, settings):
    tpl, drivers = saas
    custom = CustomScenario(name="Aggressive Hiring!", overrides={"sales_marketing_budget": 0.6})
    scenarios = generate_scenarios(tpl, drivers, 36, settings, custom=[custom])

    assert len(scenarios) == 4
    last = scenarios[-1]
    assert last.id == "custom_aggressive_hiring"
    assert last.kind is ScenarioKind.CUSTOM
    assert last.assumptions["drivers"] == {"sales_marketing_budget": 0.6}
    assert last.results.npv < scenarios[0].results.npv


def test_custom_discount_multiplier(saas, settings):
    tpl, drivers = saas
    custom = CustomScenario(name="Higher hurdle", discount_multiplier=2.0)
    base, *_, hurdle = generate_scenarios(tpl, drivers, 36, settings, custom=[custom])
    assert hurdle.assumptions["discount_rate"] == pytest.approx(0.24)
    assert hurdle.results.key_metrics == base.results.key_metrics
    assert hurdle.results.irr == base.results.irr


def test_invalid_custom_override_is_rejected(saas, settings):
    tpl, drivers = saas
    bad = CustomScenario(name="Churn spike", overrides={"churn_rate": 0.9})
    with pytest.raises(ValidationReport) as exc:
        generate_scenarios(tpl, drivers, 12, settings, custom=[bad])
    assert exc.value.fields == ["churn_rate"]


def test_sweep_rows(registry, settings, saas_inputs):
    var = SweepVariable("revenue_growth_rate", 0.01, 0.09, steps=5, base=0.05)
    result = run_sweep(registry, "saas", saas_inputs, var, periods=24, settings=settings)

    assert result.template_id == "saas"
    assert len(result.rows) == 5
    assert [r["is_base"] for r in result.rows] == [False, False, True, False, False]
    finals = [r["final_revenue"] for r in result.rows]
    assert finals == sorted(finals)

    df = result.dataframe
    assert list(df["revenue_growth_rate"]) == pytest.approx([0.01, 0.03, 0.05, 0.07, 0.09])
    assert {"npv", "irr", "payback_period", "total_revenue"} <= set(df.columns)


def test_sweep_single_step_uses_base():
    assert SweepVariable("x", 0.0, 1.0, steps=1, base=0.4).values == [0.4]
    assert SweepVariable("x", 0.2, 1.0, steps=1).values == [0.2]


def test_sweep_unknown_driver(registry, saas_inputs):
    with pytest.raises(KeyError):
        run_sweep(registry, "saas", saas_inputs, SweepVariable("headcount", 1, 10))


def test_multi_sweep(registry, settings, saas_inputs):
    results = run_multi_sweep(
        registry, "saas", saas_inputs,
        [SweepVariable("churn_rate", 0.0, 0.1, steps=3),
         SweepVariable("gross_margin", 0.6, 0.9, steps=4)],
        periods=12, settings=settings,
    )
    assert [r.variable.driver for r in results] == ["churn_rate", "gross_margin"]
    assert [len(r.rows) for r in results] == [3, 4]
