"""Audit checks, summary and report output."""

from __future__ import annotations

from dataclasses import replace

import pytest

from finplan_audit.checks import (
    check_balance_sheet_identity,
    check_cash_continuity,
    check_cash_flow_health,
    check_debt_amortization,
    check_gross_margin,
    check_interest_coverage,
    check_revenue_growth,
    classify_check,
)
from finplan_audit.report import format_text_report, report_dict
from finplan_audit.runner import run_all_checks, summarize
from finplan_engine.orchestrator import generate
from finplan_engine.types import CheckStatus, DebtSchedule, IncomeStatement


def _income(revenue, gross_profit=None, operating_income=None, interest=None):
    n = len(revenue)
    zeros = (0.0,) * n
    gp = tuple(gross_profit) if gross_profit is not None else tuple(revenue)
    oi = tuple(operating_income) if operating_income is not None else gp
    interest = tuple(interest) if interest is not None else zeros
    return IncomeStatement(
        revenue=tuple(revenue),
        cost_of_goods_sold=tuple(r - g for r, g in zip(revenue, gp)),
        gross_profit=gp,
        operating_expenses=(),
        total_operating_expenses=zeros,
        operating_income=oi,
        term_interest=interest,
        revolver_interest=zeros,
        interest_expense=interest,
        pretax_income=tuple(o - i for o, i in zip(oi, interest)),
        taxes=zeros,
        loss_carryforward=zeros,
        net_income=tuple(o - i for o, i in zip(oi, interest)),
    )


@pytest.fixture
def model(registry, saas_inputs):
    return generate(registry, "saas", saas_inputs, periods=24)


@pytest.mark.parametrize("revenue, status", [
    ([100.0, 90.0, 80.0], CheckStatus.FAIL),
    ([100.0, 110.0, 121.0], CheckStatus.PASS),
    ([100.0, 200.0, 400.0], CheckStatus.WARNING),
])
def test_revenue_growth_thresholds(revenue, status):
    assert check_revenue_growth(_income(revenue)).status is status


@pytest.mark.parametrize("margin, status", [
    (0.05, CheckStatus.FAIL),
    (0.15, CheckStatus.WARNING),
    (0.40, CheckStatus.PASS),
])
def test_gross_margin_thresholds(margin, status):
    rev = [1000.0] * 3
    check = check_gross_margin(_income(rev, [r * margin for r in rev]))
    assert check.status is status
    assert check.value == pytest.approx(margin)


def test_interest_coverage():
    rev = [1000.0] * 4
    assert check_interest_coverage(_income(rev)).value is None
    assert check_interest_coverage(_income(rev)).passed
    weak = _income(rev, operating_income=[150.0] * 4, interest=[100.0] * 4)
    assert check_interest_coverage(weak).status is CheckStatus.WARNING
    bad = _income(rev, operating_income=[100.0] * 4, interest=[100.0] * 4)
    assert check_interest_coverage(bad).status is CheckStatus.FAIL


def test_cash_flow_health(model):
    cf = model.cash_flow
    assert check_cash_flow_health(cf).passed
    burning = replace(cf, net_cash_flow=(-1.0,) * 13)
    assert check_cash_flow_health(burning).status is CheckStatus.FAIL
    some = replace(cf, net_cash_flow=(-1.0,) * 7 + (1.0,) * 10)
    assert check_cash_flow_health(some).status is CheckStatus.WARNING


def test_identity_and_continuity_catch_breaks(model):
    bs = model.balance_sheet
    assert check_balance_sheet_identity(bs).passed
    broken = replace(bs, total_assets=bs.total_assets[:-1] + (bs.total_assets[-1] + 5.0,))
    check = check_balance_sheet_identity(broken)
    assert check.status is CheckStatus.FAIL
    assert check.value == pytest.approx(5.0)
    assert "period 23" in check.message

    cf = model.cash_flow
    assert check_cash_continuity(cf, 50000).passed
    assert not check_cash_continuity(cf, 40000).passed


def test_debt_amortization_flags():
    n = 6
    ok = DebtSchedule(beginning=(0.0,) * n, new_debt=(0.0,) * n, interest=(0.0,) * n,
                      principal=(0.0,) * n, payment=(0.0,) * n,
                      ending=(50.0, 40.0, 30.0, 20.0, 10.0, 0.0))
    assert check_debt_amortization(ok, maturity_periods=6).passed
    assert check_debt_amortization(ok, maturity_periods=3).status is CheckStatus.WARNING
    growing = replace(ok, ending=(50.0, 60.0, 30.0, 20.0, 10.0, 0.0))
    assert check_debt_amortization(growing).status is CheckStatus.FAIL
    # maturity beyond the horizon is not judged
    assert check_debt_amortization(replace(ok, ending=(50.0,) * n), maturity_periods=60).passed


def test_check_families():
    assert classify_check("balance_sheet_identity") == "arithmetic"
    assert classify_check("gross_margin") == "health"


def test_summary_and_report(model):
    data = run_all_checks(model)
    summary = data["summary"]
    assert summary["total"] == 9
    assert summary["arithmetic_fail"] == 0
    assert summary["pass"] + summary["warning"] + summary["fail"] == 9
    assert summarize(model.audit_checks) == summary

    report = report_dict(data)
    assert report["model_id"] == model.id
    assert report["verdict"] in {"BALANCED", "BALANCED_WITH_WARNINGS", "BALANCED_WITH_FAILURES"}
    assert {c["category"] for c in report["checks"]} == {"arithmetic", "health"}

    text = format_text_report(data)
    assert "AUDIT REPORT (saas, 24 periods)" in text
    assert "Balance Sheet Identity" in text
    assert "VERDICT:" in text


def test_report_verdict_on_arithmetic_failure(registry, saas_inputs):
    model = generate(registry, "saas", {**saas_inputs, "initial_equity": 1}, periods=12)
    data = run_all_checks(model)
    assert report_dict(data)["verdict"] == "ARITHMETIC_ERRORS"
    assert "FAIL  Balance Sheet Identity" in format_text_report(data)
