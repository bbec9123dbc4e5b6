"""Template consistency checks.

Cross-check rules, per template:
1. Reference existence — every calculation step, schedule role, custom
   rule and scenario lever names a declared input.
2. Kind fit — steps and levers read numeric inputs only.
3. Defaults — numeric defaults are numbers inside their range rule; enum
   defaults are among the options; enums declare options.
4. Revenue steps — must not read the revenue line they produce.
5. Schedules — depreciation, debt and working capital are all defined.

Usage:
    from finplan_engine.template_validator import validate_all_templates

    issues = validate_all_templates(registry)
    for issue in issues:
        print(issue)
"""

from __future__ import annotations

from finplan_engine.registry import TemplateRegistry
from finplan_engine.steps import needs_revenue, step_inputs
from finplan_engine.templates import (
    SCHEDULE_KINDS,
    CrossFieldRule,
    ModelTemplate,
    RangeRule,
)


def validate_template(template: ModelTemplate) -> list[str]:
    """Check a single template for dangling references and bad defaults.

    Returns:
        List of issue strings (empty = all good).
    """
    issues: list[str] = []
    prefix = f"[{template.id}] "
    numeric = {d.id for d in template.inputs if d.is_numeric}
    declared = set(template.input_ids)

    def _ref(where: str, input_id: str, *, need_numeric: bool = True) -> None:
        if input_id not in declared:
            issues.append(f"{prefix}{where} references unknown input '{input_id}'")
        elif need_numeric and input_id not in numeric:
            issues.append(f"{prefix}{where} reads non-numeric input '{input_id}'")

    # Steps
    for i, step in enumerate(template.revenue):
        if needs_revenue(step):
            issues.append(
                f"{prefix}revenue step {i} ({type(step).__name__}) depends on revenue")
        for input_id in step_inputs(step):
            _ref(f"revenue step {i}", input_id)
    if template.cogs is not None:
        for input_id in step_inputs(template.cogs):
            _ref("cogs step", input_id)
    for name, step in template.opex:
        for input_id in step_inputs(step):
            _ref(f"opex '{name}'", input_id)

    # Schedules
    kinds = {s.kind for s in template.schedules}
    for kind in SCHEDULE_KINDS:
        if kind not in kinds:
            issues.append(f"{prefix}missing {kind} schedule")
    for sched in template.schedules:
        for role, input_id in sched.drivers:
            _ref(f"{sched.kind} schedule role '{role}'", input_id)

    # Custom rules
    rules = list(template.validation) + [
        r for d in template.inputs for r in d.rules if isinstance(r, CrossFieldRule)
    ]
    for rule in rules:
        _ref(f"custom rule {rule.field} {rule.op} {rule.other}", rule.field)
        _ref(f"custom rule {rule.field} {rule.op} {rule.other}", rule.other)

    # Levers
    for input_id in template.levers.all():
        _ref("scenario lever", input_id)

    # Defaults
    for d in template.inputs:
        if d.kind == "enum":
            if not d.options:
                issues.append(f"{prefix}enum input '{d.id}' declares no options")
            elif d.default is not None and d.default not in d.options:
                issues.append(
                    f"{prefix}default '{d.default}' of '{d.id}' is not one of {list(d.options)}")
            continue
        if not d.is_numeric or d.default is None:
            continue
        if isinstance(d.default, bool) or not isinstance(d.default, (int, float)):
            issues.append(f"{prefix}default of '{d.id}' is not a number: {d.default!r}")
            continue
        for rule in d.rules:
            if isinstance(rule, RangeRule) and not rule.contains(d.default):
                issues.append(
                    f"{prefix}default {d.default} of '{d.id}' is outside "
                    f"[{rule.min}, {rule.max}]"
                )

    return issues


def validate_all_templates(registry: TemplateRegistry) -> list[str]:
    """Validate every template in a registry.

    Returns:
        List of all issues across all templates.
    """
    all_issues: list[str] = []
    for template_id in sorted(registry):
        all_issues.extend(validate_template(registry[template_id]))
    return all_issues
