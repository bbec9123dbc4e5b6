"""Input normalizer — raw answers in, validated driver set out.

For every input a template declares:
    value = raw[id] if supplied (not None / "") else the template default

then required / kind / range checks run independently per field, followed
by template-level cross-field rules. Every error-severity finding is
collected and raised together as one ValidationReport; warning-severity
findings are logged and kept on the drivers.
"""

from __future__ import annotations

import hashlib
import json
import logging
import math
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Iterator

from finplan_engine.errors import (
    CrossFieldViolation,
    InvalidValue,
    MissingRequiredInput,
    RangeViolation,
    ValidationReport,
    Violation,
)
from finplan_engine.templates import (
    CrossFieldRule,
    InputDefinition,
    ModelTemplate,
    RangeRule,
    RequiredRule,
)

logger = logging.getLogger(__name__)


# ── NormalizedDrivers ───────────────────────────────────────────


class NormalizedDrivers(Mapping):
    """Read-only input id → value mapping for one template.

    Hashes and compares by (template_id, fingerprint), so identical driver
    sets computed twice share schedule cache entries.
    """

    __slots__ = ("_values", "template_id", "fingerprint", "warnings")

    def __init__(self, template_id: str, values: dict[str, Any],
                 warnings: tuple[str, ...] = ()) -> None:
        self._values = MappingProxyType(dict(values))
        self.template_id = template_id
        self.fingerprint = _fingerprint(template_id, values)
        self.warnings = warnings

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __hash__(self) -> int:
        return hash((self.template_id, self.fingerprint))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NormalizedDrivers):
            return NotImplemented
        return (self.template_id, self.fingerprint) == (other.template_id, other.fingerprint)

    def __repr__(self) -> str:
        return f"NormalizedDrivers({self.template_id!r}, {dict(self._values)!r})"

    def number(self, key: str, default: float = 0.0) -> float:
        """Numeric driver value; None (optional input left empty) → default."""
        value = self._values.get(key)
        return default if value is None else float(value)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._values)


def _fingerprint(template_id: str, values: dict[str, Any]) -> str:
    payload = json.dumps([template_id, sorted(values.items())], default=str)
    return hashlib.sha256(payload.encode()).hexdigest()


# ── Field resolution ────────────────────────────────────────────


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _resolve(defn: InputDefinition, raw: Mapping[str, Any],
             violations: list[Violation], warnings: list[str]) -> Any:
    """Resolve one field, appending any findings. Returns the value (or None)."""
    value = raw.get(defn.id)
    if _is_empty(value):
        value = defn.default

    if _is_empty(value):
        required = defn.required or any(
            isinstance(r, RequiredRule) and r.severity == "error" for r in defn.rules
        )
        if required:
            message = next(
                (r.message for r in defn.rules if isinstance(r, RequiredRule) and r.message),
                "",
            )
            violations.append(MissingRequiredInput(defn.id, message))
        return None

    if defn.kind == "enum":
        value = str(value)
        if value not in defn.options:
            violations.append(InvalidValue(
                defn.id, value, f"must be one of {', '.join(defn.options)}"))
            return None
        return value

    if defn.kind == "text":
        return str(value)

    if isinstance(value, bool):
        violations.append(InvalidValue(defn.id, value, "expected a number"))
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        violations.append(InvalidValue(defn.id, value, "expected a number"))
        return None
    if not math.isfinite(number):
        violations.append(InvalidValue(defn.id, value, "must be finite"))
        return None

    for rule in defn.rules:
        if not isinstance(rule, RangeRule) or rule.contains(number):
            continue
        if rule.severity == "error":
            violations.append(
                RangeViolation(defn.id, number, rule.min, rule.max, rule.message))
        else:
            warnings.append(f"{defn.id}: {rule.message or 'outside recommended range'}")
    return number


def _check_cross_field(rule: CrossFieldRule, values: dict[str, Any],
                       violations: list[Violation], warnings: list[str]) -> None:
    left, right = values.get(rule.field), values.get(rule.other)
    if left is None or right is None:
        return
    if rule.holds(float(left), float(right)):
        return
    if rule.severity == "error":
        violations.append(
            CrossFieldViolation(rule.field, rule.other, rule.op, rule.message))
    else:
        warnings.append(rule.message or f"{rule.field} should be {rule.op} {rule.other}")


# ── normalize ───────────────────────────────────────────────────


def normalize(template: ModelTemplate, raw_inputs: Mapping[str, Any]) -> NormalizedDrivers:
    """Resolve and validate raw inputs against a template.

    Raises:
        ValidationReport: listing every error-severity violation found.
    """
    violations: list[Violation] = []
    warnings: list[str] = []
    values: dict[str, Any] = {}

    for defn in template.inputs:
        values[defn.id] = _resolve(defn, raw_inputs, violations, warnings)

    for defn in template.inputs:
        for rule in defn.rules:
            if isinstance(rule, CrossFieldRule):
                _check_cross_field(rule, values, violations, warnings)
    for rule in template.validation:
        _check_cross_field(rule, values, violations, warnings)

    unknown = set(raw_inputs) - set(template.input_ids)
    if unknown:
        logger.debug(f"Ignoring inputs not in template '{template.id}': {sorted(unknown)}")

    if violations:
        raise ValidationReport(template.id, violations)

    for w in warnings:
        logger.warning(f"[{template.id}] {w}")
    return NormalizedDrivers(template.id, values, tuple(warnings))
