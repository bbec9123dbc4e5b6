"""Template registry — the catalogue of business-type model templates.

Loads config/templates/*.json (files starting with "_" are shared
fragments, not templates) and resolves business-type ids to templates.
An unknown id never fails: it resolves to the fallback template.

The registry is an ordinary immutable value. Build it once and pass it to
generate(); nothing in the engine keeps a module-level instance.

Usage:
    from finplan_engine.registry import TemplateRegistry

    registry = TemplateRegistry.load()
    tpl = registry.get_template("saas")
    tpl = registry.get_template("not_a_real_type")   # -> default template
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterator

from finplan_engine.templates import ModelTemplate, parse_template

logger = logging.getLogger(__name__)

_TEMPLATE_DIR = Path(__file__).resolve().parent / "config" / "templates"
_COMMON_FILE = "_common.json"


class TemplateRegistry:
    """Id → ModelTemplate lookup with fallback to a default template."""

    __slots__ = ("_templates", "_by_business_type", "_fallback_id")

    def __init__(self, templates: dict[str, ModelTemplate],
                 fallback_id: str = "default") -> None:
        if fallback_id not in templates:
            raise ValueError(f"Fallback template '{fallback_id}' is not registered")
        self._templates = dict(templates)
        self._fallback_id = fallback_id

        self._by_business_type: dict[str, str] = {}
        for tpl in templates.values():
            for bt in tpl.business_types:
                self._by_business_type.setdefault(bt, tpl.id)

    # ── Factory ──

    @classmethod
    def load(cls, path: Path | str | None = None,
             fallback_id: str = "default") -> TemplateRegistry:
        """Load every template file under `path` (default: bundled templates)."""
        directory = Path(path) if path is not None else _TEMPLATE_DIR

        common: dict = {}
        common_path = directory / _COMMON_FILE
        if common_path.exists():
            with open(common_path) as f:
                common = json.load(f)

        templates: dict[str, ModelTemplate] = {}
        for file in sorted(directory.glob("*.json")):
            if file.name.startswith("_"):
                continue
            with open(file) as f:
                raw = json.load(f)
            try:
                tpl = parse_template(raw, common)
            except (KeyError, ValueError) as exc:
                raise ValueError(f"{file.name}: {exc}") from exc
            if tpl.id in templates:
                raise ValueError(f"{file.name}: duplicate template id '{tpl.id}'")
            templates[tpl.id] = tpl

        logger.debug(f"Loaded {len(templates)} templates from {directory}")
        return cls(templates, fallback_id=fallback_id)

    # ── Lookups ──

    def get_template(self, business_type_id: str) -> ModelTemplate:
        """Template for a business type; unknown ids get the fallback."""
        tpl = self._templates.get(business_type_id)
        if tpl is not None:
            return tpl
        tpl_id = self._by_business_type.get(business_type_id)
        if tpl_id is not None:
            return self._templates[tpl_id]
        logger.info(
            f"No template for business type '{business_type_id}', "
            f"using '{self._fallback_id}'"
        )
        return self._templates[self._fallback_id]

    @property
    def fallback(self) -> ModelTemplate:
        return self._templates[self._fallback_id]

    def get(self, template_id: str) -> ModelTemplate | None:
        """Exact lookup by template id. Returns None if unknown."""
        return self._templates.get(template_id)

    def __getitem__(self, template_id: str) -> ModelTemplate:
        return self._templates[template_id]

    def __contains__(self, template_id: str) -> bool:
        return template_id in self._templates

    def __len__(self) -> int:
        return len(self._templates)

    def __iter__(self) -> Iterator[str]:
        return iter(self._templates)

    def ids(self) -> frozenset[str]:
        return frozenset(self._templates)

    def values(self) -> list[ModelTemplate]:
        return list(self._templates.values())
