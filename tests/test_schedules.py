"""Depreciation, term-debt and working-capital schedules."""

from __future__ import annotations

import math

import pytest

from finplan_engine.errors import ComputationAnomaly
from finplan_engine.formulas import calc_annuity_payment, calc_tax
from finplan_engine.normalizer import normalize
from finplan_engine.schedules import (
    build_debt,
    build_depreciation,
    build_schedules,
    build_working_capital,
    operating_lines,
)


def _drivers(registry, template_id, raw):
    tpl = registry.get_template(template_id)
    return tpl, normalize(tpl, raw)


def test_depreciation_rolls_forward(registry, saas_inputs):
    tpl, drivers = _drivers(registry, "saas", {**saas_inputs, "annual_capex": 24000,
                                               "depreciation_rate": 0.24})
    dep = build_depreciation(tpl.schedule("depreciation"), drivers, 24)

    assert dep.beginning[0] == 0.0
    assert dep.additions[0] == pytest.approx(2000.0)
    assert dep.depreciation[0] == pytest.approx(2000.0 * 0.24 / 12)
    for t in range(24):
        assert dep.ending[t] == pytest.approx(dep.beginning[t] + dep.additions[t] - dep.depreciation[t])
        if t:
            assert dep.beginning[t] == dep.ending[t - 1]
    assert dep.gross_fixed_assets[-1] == pytest.approx(48000.0)
    assert dep.accumulated_depreciation[-1] == pytest.approx(sum(dep.depreciation))


def test_depreciation_opening_asset(registry):
    raw = {"property_value": 1_200_000, "rental_income": 10000,
           "operating_expenses": 2000, "property_taxes": 12000}
    tpl, drivers = _drivers(registry, "real_estate", raw)
    dep = build_depreciation(tpl.schedule("depreciation"), drivers, 12)
    assert dep.opening_value == 1_200_000
    assert dep.beginning[0] == 1_200_000
    assert dep.depreciation[0] == pytest.approx(1_200_000 * 0.0364 / 12)


def test_annuity_payment_formula():
    p, r, n = 100000.0, 0.06, 60
    m = r / 12
    expected = p * m * (1 + m) ** n / ((1 + m) ** n - 1)
    assert calc_annuity_payment(p, r, n) == pytest.approx(expected)
    assert calc_annuity_payment(p, 0.0, n) == pytest.approx(p / n)


def test_debt_amortises_to_zero_by_maturity(registry, saas_inputs):
    tpl, drivers = _drivers(registry, "saas", {**saas_inputs, "initial_debt": 120000,
                                               "interest_rate": 0.07, "debt_maturity_years": 2})
    debt = build_debt(tpl.schedule("debt"), drivers, 36)

    assert debt.beginning[0] == 120000
    assert debt.interest[0] == pytest.approx(120000 * 0.07 / 12)
    for t in range(1, 36):
        assert debt.ending[t] <= debt.ending[t - 1] + 1e-9
        assert debt.beginning[t] == debt.ending[t - 1]
    assert all(b >= 0 for b in debt.ending)
    assert debt.ending[23] == pytest.approx(0.0, abs=1e-6)
    assert debt.ending[-1] == 0.0
    assert sum(debt.principal) == pytest.approx(120000)
    # level payment while the loan is live
    assert debt.payment[0] == pytest.approx(debt.level_payment)
    assert debt.payment[10] == pytest.approx(debt.level_payment)


def test_debt_without_principal_is_all_zero(registry, saas_inputs):
    tpl, drivers = _drivers(registry, "saas", saas_inputs)
    debt = build_debt(tpl.schedule("debt"), drivers, 12)
    assert set(debt.ending) == {0.0}
    assert set(debt.interest) == {0.0}


def test_zero_maturity_with_debt_is_an_anomaly(registry, saas_inputs):
    tpl, drivers = _drivers(registry, "saas", {**saas_inputs, "initial_debt": 50000,
                                               "debt_maturity_years": 0})
    with pytest.raises(ComputationAnomaly) as exc:
        build_debt(tpl.schedule("debt"), drivers, 12)
    assert exc.value.line == "debt.payment"


def test_working_capital_from_days(registry, saas_inputs):
    raw = {**saas_inputs, "days_sales_outstanding": 45, "days_inventory_outstanding": 15,
           "days_payables_outstanding": 60}
    tpl, drivers = _drivers(registry, "saas", raw)
    lines = operating_lines(tpl, drivers, 12)
    wc = build_working_capital(tpl.schedule("working_capital"), drivers,
                               lines.revenue, lines.cost_of_goods_sold)

    assert wc.accounts_receivable[0] == pytest.approx(lines.revenue[0] * 45 / 30)
    assert wc.inventory[0] == pytest.approx(lines.cost_of_goods_sold[0] * 15 / 30)
    assert wc.accounts_payable[0] == pytest.approx(lines.cost_of_goods_sold[0] * 60 / 30)
    assert wc.change_in_working_capital[0] == 0.0
    for t in range(1, 12):
        assert wc.change_in_working_capital[t] == pytest.approx(
            wc.net_working_capital[t] - wc.net_working_capital[t - 1])


def test_working_capital_from_turnover(registry):
    raw = {"units_sold": 100, "unit_price": 50, "unit_cost": 20,
           "manufacturing_capacity": 1000, "fixed_costs": 500, "inventory_turnover": 4}
    tpl, drivers = _drivers(registry, "hardware", raw)
    lines = operating_lines(tpl, drivers, 6)
    wc = build_working_capital(tpl.schedule("working_capital"), drivers,
                               lines.revenue, lines.cost_of_goods_sold)
    # monthly COGS of 2000 held for a quarter of a year
    assert lines.cost_of_goods_sold[0] == pytest.approx(2000)
    assert wc.inventory[0] == pytest.approx(6000)


def test_schedules_are_cached_per_fingerprint(registry, saas_inputs):
    tpl = registry.get_template("saas")
    a = build_schedules(tpl, normalize(tpl, saas_inputs), 24)
    b = build_schedules(tpl, normalize(tpl, dict(saas_inputs)), 24)
    c = build_schedules(tpl, normalize(tpl, {**saas_inputs, "churn_rate": 0.03}), 24)
    assert a is b
    assert a is not c


def test_loss_carryforward_formula():
    tax, pool = calc_tax(-1000.0, 0.25, 0.0)
    assert (tax, pool) == (0.0, -1000.0)
    tax, pool = calc_tax(600.0, 0.25, pool)
    assert (tax, pool) == (0.0, -400.0)
    tax, pool = calc_tax(1000.0, 0.25, pool)
    assert tax == pytest.approx(150.0) and pool == 0.0


def test_operating_lines_are_finite(registry, saas_inputs):
    tpl, drivers = _drivers(registry, "saas", saas_inputs)
    lines = operating_lines(tpl, drivers, 60)
    assert all(math.isfinite(v) for v in lines.revenue)
    assert [name for name, _ in lines.operating_expenses] == [
        "sales_and_marketing", "research_and_development", "general_and_administrative"]
