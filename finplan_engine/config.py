"""Engine settings — loads config/settings.json, no template knowledge."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

_CONFIG_DIR = Path(__file__).resolve().parent / "config"


@lru_cache(maxsize=16)
def load_config(name: str) -> dict:
    """Load a JSON config file by name (without .json extension)."""
    path = _CONFIG_DIR / f"{name}.json"
    with open(path, "r") as f:
        return json.load(f)


@dataclass(frozen=True)
class ScenarioPreset:
    """Multipliers applied to a template's scenario levers."""
    kind: str
    name: str
    growth_multiplier: float = 1.0
    margin_factor: float = 1.0
    discount_multiplier: float = 1.0


@dataclass(frozen=True)
class EngineSettings:
    """Consolidated engine settings from settings.json."""
    default_periods: int = 60
    max_periods: int = 360
    fallback_template: str = "default"
    balance_tolerance: float = 0.01

    # Revolver circularity
    revolver_max_iterations: int = 20
    revolver_tolerance: float = 1e-6

    # IRR solver
    irr_guess: float = 0.10
    irr_tolerance: float = 1e-10
    irr_max_iterations: int = 100
    irr_monthly_bracket: tuple[float, float] = (-0.99, 1.0)

    presets: tuple[ScenarioPreset, ...] = field(default_factory=tuple)

    @classmethod
    def load(cls) -> EngineSettings:
        """Load settings.json and derive typed fields."""
        return cls.from_dict(load_config("settings"))

    @classmethod
    def from_dict(cls, raw: dict) -> EngineSettings:
        revolver = raw.get("revolver", {})
        irr = raw.get("irr", {})
        presets = tuple(
            ScenarioPreset(
                kind=kind,
                name=p.get("name", kind.title()),
                growth_multiplier=p.get("growth_multiplier", 1.0),
                margin_factor=p.get("margin_factor", 1.0),
                discount_multiplier=p.get("discount_multiplier", 1.0),
            )
            for kind, p in raw.get("scenarios", {}).items()
        )
        lo, hi = irr.get("monthly_bracket", (-0.99, 1.0))
        return cls(
            default_periods=raw.get("default_periods", 60),
            max_periods=raw.get("max_periods", 360),
            fallback_template=raw.get("fallback_template", "default"),
            balance_tolerance=raw.get("balance_tolerance", 0.01),
            revolver_max_iterations=revolver.get("max_iterations", 20),
            revolver_tolerance=revolver.get("tolerance", 1e-6),
            irr_guess=irr.get("guess", 0.10),
            irr_tolerance=irr.get("tolerance", 1e-10),
            irr_max_iterations=irr.get("max_iterations", 100),
            irr_monthly_bracket=(float(lo), float(hi)),
            presets=presets,
        )

    def preset(self, kind: str) -> ScenarioPreset:
        for p in self.presets:
            if p.kind == kind:
                return p
        raise KeyError(f"No scenario preset '{kind}' in settings")
