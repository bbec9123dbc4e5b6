"""Audit report formatter -- JSON-ready dict + text output."""

from __future__ import annotations

from datetime import datetime

from finplan_engine.types import CheckStatus
from finplan_audit.checks import classify_check

_STATUS_LABEL = {
    CheckStatus.PASS: "PASS",
    CheckStatus.WARNING: "WARN",
    CheckStatus.FAIL: "FAIL",
}


def _verdict(summary: dict) -> str:
    if summary["arithmetic_fail"]:
        return "ARITHMETIC_ERRORS"
    if summary["fail"]:
        return "BALANCED_WITH_FAILURES"
    if summary["warning"]:
        return "BALANCED_WITH_WARNINGS"
    return "BALANCED"


def report_dict(audit_data: dict) -> dict:
    """Audit results as a JSON-serialisable dict."""
    results = audit_data["results"]
    summary = audit_data["summary"]
    model = audit_data.get("model")
    return {
        "timestamp": datetime.now().isoformat(),
        "model_id": model.id if model is not None else None,
        "template_id": model.template_id if model is not None else None,
        "summary": summary,
        "verdict": _verdict(summary),
        "checks": [
            {**c.to_dict(), "category": classify_check(c.id)}
            for c in results
        ],
    }


def format_text_report(audit_data: dict) -> str:
    """Format audit results as human-readable text."""
    results = audit_data["results"]
    summary = audit_data["summary"]
    model = audit_data.get("model")
    lines: list[str] = []

    lines.append("=" * 72)
    title = "FINANCIAL MODEL - AUDIT REPORT"
    if model is not None:
        title += f" ({model.template_id}, {model.periods} periods)"
    lines.append(title)
    lines.append("=" * 72)
    lines.append("")

    for family, heading in (("arithmetic", "ARITHMETIC CHECKS (internal consistency)"),
                            ("health", "BUSINESS HEALTH CHECKS (advisory)")):
        checks = [c for c in results if classify_check(c.id) == family]
        if not checks:
            continue
        lines.append(heading)
        lines.append("-" * 72)
        for c in checks:
            lines.append(f"  {_STATUS_LABEL[c.status]:<5} {c.name}")
            lines.append(f"        {c.message}")
            if c.status is not CheckStatus.PASS and c.value is not None:
                lines.append(f"        value:     {c.value:>16,.4f}")
                if c.threshold is not None:
                    lines.append(f"        threshold: {c.threshold:>16,.4f}")
        lines.append("")

    lines.append("=" * 72)
    lines.append("SUMMARY")
    lines.append("=" * 72)
    lines.append(f"  Total checks:     {summary['total']}")
    lines.append(
        f"  Status:           {summary['pass']} pass, "
        f"{summary['warning']} warning, {summary['fail']} fail")
    lines.append(
        f"  Arithmetic:       {summary['arithmetic_pass']} pass, "
        f"{summary['arithmetic_fail']} fail")
    lines.append("")
    lines.append(f"  VERDICT: {_verdict(summary).replace('_', ' ')}")
    lines.append("=" * 72)

    return "\n".join(lines)
