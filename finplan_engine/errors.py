"""Error taxonomy for model generation.

Two things can stop a model from being produced:

- ValidationReport: the raw inputs do not satisfy the template. Every
  violation is collected before the report is raised, so callers see the
  complete list in one round trip.
- ComputationAnomaly: inputs were valid but a calculation produced a
  non-finite value or an iterative solve did not converge.

Accounting-identity breaks are NOT errors. They surface as failing audit
checks on an otherwise complete model.
"""

from __future__ import annotations

from dataclasses import dataclass


class ModelError(Exception):
    """Base class for everything the engine raises on purpose."""


# ── Validation violations ───────────────────────────────────────


@dataclass(frozen=True)
class MissingRequiredInput:
    field: str
    message: str = ""

    def describe(self) -> str:
        return self.message or f"{self.field} is required"


@dataclass(frozen=True)
class RangeViolation:
    field: str
    value: float
    min: float | None
    max: float | None
    message: str = ""

    def describe(self) -> str:
        if self.message:
            return f"{self.field}: {self.message} (got {self.value})"
        lo = "-inf" if self.min is None else f"{self.min}"
        hi = "inf" if self.max is None else f"{self.max}"
        return f"{self.field}={self.value} outside [{lo}, {hi}]"


@dataclass(frozen=True)
class InvalidValue:
    """Value of the wrong kind: non-numeric, non-finite, unknown enum option."""
    field: str
    value: object
    reason: str

    def describe(self) -> str:
        return f"{self.field}={self.value!r}: {self.reason}"


@dataclass(frozen=True)
class CrossFieldViolation:
    """A template-level comparison between two inputs failed."""
    field: str
    other: str
    op: str
    message: str = ""

    def describe(self) -> str:
        return self.message or f"{self.field} must be {self.op} {self.other}"


Violation = MissingRequiredInput | RangeViolation | InvalidValue | CrossFieldViolation


class ValidationReport(ModelError):
    """Raised when normalisation fails. Carries every violation found."""

    def __init__(self, template_id: str, violations: list[Violation]) -> None:
        self.template_id = template_id
        self.violations = tuple(violations)
        super().__init__(self._summary())

    def _summary(self) -> str:
        lines = [f"{len(self.violations)} invalid input(s) for template '{self.template_id}':"]
        lines.extend(f"  - {v.describe()}" for v in self.violations)
        return "\n".join(lines)

    @property
    def fields(self) -> list[str]:
        """Input ids named by the violations, in report order."""
        return [v.field for v in self.violations]

    def missing_fields(self) -> list[str]:
        return [v.field for v in self.violations if isinstance(v, MissingRequiredInput)]

    def to_dict(self) -> dict:
        return {
            "template_id": self.template_id,
            "violations": [
                {"kind": type(v).__name__, "field": v.field, "message": v.describe()}
                for v in self.violations
            ],
        }


class ComputationAnomaly(ModelError):
    """A calculation produced NaN/inf, failed to converge or hit a degenerate input."""

    def __init__(self, line: str, detail: str, period: int | None = None) -> None:
        self.line = line
        self.period = period
        self.detail = detail
        where = f"{line}[{period}]" if period is not None else line
        super().__init__(f"{where}: {detail}")
