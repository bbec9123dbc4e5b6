"""Model orchestrator — one call from raw inputs to a finished model.

Pipeline:
    1. Resolve template      unknown ids fall back to the default template
    2. Normalize inputs      all violations collected → ValidationReport
    3. Build statements      schedules → IS → CF → BS (revolver solve if enabled)
    4. Scenarios             base / optimistic / pessimistic / custom
    5. Audit                 advisory checks, never blocking

Nothing here holds state between calls. The registry and settings are
passed in explicitly.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

from finplan_engine.config import EngineSettings
from finplan_engine.normalizer import normalize
from finplan_engine.registry import TemplateRegistry
from finplan_engine.scenarios import CustomScenario, generate_scenarios
from finplan_engine.statements import build_statements
from finplan_engine.types import FinancialModel

logger = logging.getLogger(__name__)


def generate(
    registry: TemplateRegistry,
    business_type_id: str,
    raw_inputs: Mapping[str, Any],
    *,
    periods: int | None = None,
    custom_scenarios: tuple[CustomScenario, ...] | list[CustomScenario] = (),
    settings: EngineSettings | None = None,
) -> FinancialModel:
    """Generate a complete three-statement model.

    Args:
        registry: Loaded TemplateRegistry.
        business_type_id: Classified business type; unknown ids use the
            fallback template.
        raw_inputs: Input id → raw answer (numbers or numeric strings).
        periods: Monthly horizon (default from settings, 60).
        custom_scenarios: Extra scenarios to score after the presets.
        settings: EngineSettings (default: settings.json).

    Raises:
        ValidationReport: inputs fail the template (every violation listed).
        ComputationAnomaly: a calculation went non-finite or did not converge.
    """
    from finplan_audit.runner import run_checks

    if settings is None:
        settings = EngineSettings.load()
    if periods is None:
        periods = settings.default_periods
    if not 1 <= periods <= settings.max_periods:
        raise ValueError(f"periods must be between 1 and {settings.max_periods}, got {periods}")

    template = registry.get_template(business_type_id)
    drivers = normalize(template, raw_inputs)

    statements = build_statements(template, drivers, periods, settings)
    scenarios = generate_scenarios(
        template, drivers, periods, settings,
        base_statements=statements, custom=tuple(custom_scenarios),
    )

    maturity = drivers.get("debt_maturity_years")
    checks = run_checks(
        statements,
        opening_cash=drivers.number("opening_cash"),
        maturity_periods=round(float(maturity) * 12) if maturity is not None else None,
        tolerance=settings.balance_tolerance,
    )

    model = FinancialModel(
        id=str(uuid.uuid4()),
        template_id=template.id,
        business_type_id=business_type_id,
        periods=periods,
        drivers=drivers.to_dict(),
        income_statement=statements.income_statement,
        balance_sheet=statements.balance_sheet,
        cash_flow=statements.cash_flow,
        schedules=statements.schedules,
        scenarios=scenarios,
        audit_checks=tuple(checks),
        created_at=datetime.now(timezone.utc).isoformat(),
    )

    flagged = [c.id for c in checks if not c.passed]
    logger.info(
        f"Generated model {model.id} ({template.id}, {periods} periods); "
        f"audit flags: {flagged or 'none'}"
    )
    return model
