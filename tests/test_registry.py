"""Template registry loading, lookup fallback and template consistency."""

from __future__ import annotations

import json
import shutil
from pathlib import Path

import pytest

from finplan_engine.registry import TemplateRegistry
from finplan_engine.steps import GrowthCompound, LinearPercentage
from finplan_engine.template_validator import validate_all_templates, validate_template

_BUNDLED = Path(__file__).resolve().parent.parent / "finplan_engine" / "config" / "templates"

EXPECTED_TEMPLATES = {
    "saas", "ecommerce", "marketplace", "services", "hardware",
    "manufacturing", "real_estate", "financial", "default",
}


def test_loads_every_bundled_template(registry):
    assert registry.ids() == EXPECTED_TEMPLATES
    assert len(registry) == 9


def test_known_id_returns_its_template(registry):
    tpl = registry.get_template("saas")
    assert tpl.id == "saas"
    assert isinstance(tpl.revenue[0], GrowthCompound)
    assert isinstance(tpl.cogs, LinearPercentage) and tpl.cogs.complement


def test_unknown_id_falls_back_to_default(registry):
    assert registry.get_template("not_a_real_type").id == "default"
    assert registry.get_template("").id == "default"


def test_business_type_alias_resolves(registry):
    assert registry.get_template("fintech").id == "financial"
    assert registry.get_template("consulting").id == "services"


def test_common_inputs_are_merged(registry):
    tpl = registry.get_template("saas")
    for input_id in ("opening_cash", "initial_debt", "tax_rate", "discount_rate",
                     "days_sales_outstanding", "tax_loss_treatment"):
        assert tpl.input(input_id) is not None, input_id
    assert {s.kind for s in tpl.schedules} == {"depreciation", "debt", "working_capital"}


def test_template_override_replaces_common_input(registry):
    # ecommerce holds inventory; the shared default holds none
    assert registry.get_template("ecommerce").input("days_inventory_outstanding").default == 30
    assert registry.get_template("saas").input("days_inventory_outstanding").default == 0


def test_template_schedule_override(registry):
    wc = registry.get_template("hardware").schedule("working_capital")
    assert wc.method == "inventory_turnover"
    assert wc.driver("turnover") == "inventory_turnover"


def test_bundled_templates_are_consistent(registry):
    assert validate_all_templates(registry) == []


def test_registry_is_not_a_singleton(registry):
    other = TemplateRegistry.load()
    assert other is not registry
    assert other.ids() == registry.ids()


def _copy_templates(tmp_path: Path) -> Path:
    target = tmp_path / "templates"
    shutil.copytree(_BUNDLED, target)
    return target


def test_unknown_step_tag_is_a_load_error(tmp_path):
    directory = _copy_templates(tmp_path)
    path = directory / "default.json"
    raw = json.loads(path.read_text())
    raw["revenue"] = [{"step": "eval_formula", "expr": "initial_revenue * 2"}]
    path.write_text(json.dumps(raw))

    with pytest.raises(ValueError, match="eval_formula"):
        TemplateRegistry.load(directory)


def test_missing_fallback_template_is_rejected(tmp_path):
    directory = _copy_templates(tmp_path)
    (directory / "default.json").unlink()

    with pytest.raises(ValueError, match="Fallback"):
        TemplateRegistry.load(directory)


def test_validator_flags_dangling_reference(tmp_path):
    directory = _copy_templates(tmp_path)
    path = directory / "saas.json"
    raw = json.loads(path.read_text())
    raw["levers"]["growth"] = ["no_such_driver"]
    path.write_text(json.dumps(raw))

    issues = validate_template(TemplateRegistry.load(directory)["saas"])
    assert any("no_such_driver" in issue for issue in issues)
