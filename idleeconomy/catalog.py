from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Mapping

from idleeconomy.building import BuildingDef
from idleeconomy.curve import (
    CurvePreset,
    ExponentialCurve,
    preset_from_config,
    preset_references,
)
from idleeconomy.multiplier import MultiplierStackDef, StackType
from idleeconomy.requirement import RequirementRegistry
from idleeconomy.resource import ResourceDef
from idleeconomy.upgrade import SynergyDef, UpgradeDef


@dataclass(frozen=True)
class EngineConfig:
    """Shared engine constants.

    The client engine and the trusted offline service must read the same
    values, so they live here and nowhere else.
    """

    base_tick_ms: float = 100.0
    idle_tick_ms: float = 1000.0
    max_offline_seconds: float = 86400.0
    offline_efficiency: float = 0.5
    min_offline_ms: float = 1000.0
    flush_threshold: float = 0.01
    max_affordable_ceiling: int = 1000
    save_version: str = "1.0.0"
    max_backups: int = 3
    time_multiplier: float = 1.0
    cost_stack: str = "building_cost"
    upgrade_cost_stack: str = "upgrade_cost"
    production_stack: str = "all_production"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EngineConfig:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


def default_presets() -> list[CurvePreset]:
    return [
        CurvePreset("cost_standard", ExponentialCurve(1.0, 1.15), "Standard cost"),
        CurvePreset("cost_aggressive", ExponentialCurve(1.0, 1.25), "Aggressive cost"),
        CurvePreset("cost_gentle", ExponentialCurve(1.0, 1.08), "Gentle cost"),
    ]


def default_stacks(config: EngineConfig) -> list[MultiplierStackDef]:
    return [
        MultiplierStackDef(config.production_stack, StackType.MULTIPLICATIVE, name="All production"),
        MultiplierStackDef(config.cost_stack, StackType.MULTIPLICATIVE, min_value=0.01, name="Building cost"),
        MultiplierStackDef(config.upgrade_cost_stack, StackType.MULTIPLICATIVE, min_value=0.01, name="Upgrade cost"),
    ]


@dataclass
class Catalog:
    """Declarative content interpreted by the engine; read-only at runtime."""

    name: str = "Untitled"
    config: EngineConfig = field(default_factory=EngineConfig)
    resources: list[ResourceDef] = field(default_factory=list)
    buildings: list[BuildingDef] = field(default_factory=list)
    curve_presets: list[CurvePreset] = field(default_factory=default_presets)
    stacks: list[MultiplierStackDef] = field(default_factory=list)
    upgrades: list[UpgradeDef] = field(default_factory=list)
    synergies: list[SynergyDef] = field(default_factory=list)
    # Requirement types this catalog's configs may name
    requirement_types: RequirementRegistry = field(
        default_factory=RequirementRegistry, repr=False, compare=False
    )

    # Lookup dicts built in __post_init__
    _resources_by_id: dict[str, ResourceDef] = field(
        default_factory=dict, init=False, repr=False
    )
    _buildings_by_id: dict[str, BuildingDef] = field(
        default_factory=dict, init=False, repr=False
    )
    _upgrades_by_id: dict[str, UpgradeDef] = field(
        default_factory=dict, init=False, repr=False
    )

    def __post_init__(self) -> None:
        self._resources_by_id = {r.id: r for r in self.resources}
        self._buildings_by_id = {b.id: b for b in self.buildings}
        self._upgrades_by_id = {u.id: u for u in self.upgrades}
        self.stacks = list(self.stacks)
        # Engine-level stacks are always present
        declared = {s.id for s in self.stacks}
        for stack in default_stacks(self.config):
            if stack.id not in declared:
                self.stacks.append(stack)

    def get_resource(self, id: str) -> ResourceDef | None:
        return self._resources_by_id.get(id)

    def get_building(self, id: str) -> BuildingDef | None:
        return self._buildings_by_id.get(id)

    def get_upgrade(self, id: str) -> UpgradeDef | None:
        return self._upgrades_by_id.get(id)

    def validate(self) -> list[str]:
        """Check for common catalog errors. Returns list of error messages."""
        errors: list[str] = []
        resource_ids = {r.id for r in self.resources}
        stack_ids = {s.id for s in self.stacks}

        for kind, ids in (
            ("resource", [r.id for r in self.resources]),
            ("building", [b.id for b in self.buildings]),
            ("upgrade", [u.id for u in self.upgrades]),
            ("curve preset", [p.id for p in self.curve_presets]),
            ("stack", [s.id for s in self.stacks]),
        ):
            seen: set[str] = set()
            for item_id in ids:
                if item_id in seen:
                    errors.append(f"Duplicate {kind} ID: {item_id!r}")
                seen.add(item_id)

        for b in self.buildings:
            for cost in b.base_cost:
                if cost.resource_id not in resource_ids:
                    errors.append(
                        f"Building {b.id!r} references unknown resource {cost.resource_id!r} in base_cost"
                    )
            for out in b.production.outputs:
                if out.resource_id not in resource_ids:
                    errors.append(
                        f"Building {b.id!r} produces unknown resource {out.resource_id!r}"
                    )
                if out.chance is not None and not 0 <= out.chance <= 1:
                    errors.append(f"Building {b.id!r} has chance outside [0, 1] for {out.resource_id!r}")
            for inp in b.production.inputs:
                if inp.resource_id not in resource_ids:
                    errors.append(
                        f"Building {b.id!r} consumes unknown resource {inp.resource_id!r}"
                    )
            if b.production.base_interval_ms <= 0:
                errors.append(f"Building {b.id!r} has non-positive base_interval_ms")
            stack_id = b.production.amount_stack_id
            if stack_id is not None and stack_id not in stack_ids:
                errors.append(f"Building {b.id!r} references unknown stack {stack_id!r}")
            if b.max_owned is not None and b.max_owned < 0:
                errors.append(f"Building {b.id!r} has negative max_owned")

        upgrade_ids = {u.id for u in self.upgrades}
        building_ids = {b.id for b in self.buildings}
        for u in self.upgrades:
            for cost in u.cost:
                if cost.resource_id not in resource_ids:
                    errors.append(
                        f"Upgrade {u.id!r} references unknown resource {cost.resource_id!r} in cost"
                    )
            for effect in u.effects:
                if effect.stack_id not in stack_ids:
                    errors.append(f"Upgrade {u.id!r} references unknown stack {effect.stack_id!r}")
            for prereq in u.prerequisites:
                if prereq not in upgrade_ids:
                    errors.append(f"Upgrade {u.id!r} requires unknown upgrade {prereq!r}")
        for s in self.synergies:
            if s.source_building_id not in building_ids:
                errors.append(f"Synergy on {s.stack_id!r} names unknown building {s.source_building_id!r}")
            if s.stack_id not in stack_ids:
                errors.append(f"Synergy from {s.source_building_id!r} targets unknown stack {s.stack_id!r}")

        errors.extend(self._preset_cycle_errors())
        return errors

    def _preset_cycle_errors(self) -> list[str]:
        graph = {p.id: preset_references(p.curve) for p in self.curve_presets}
        errors: list[str] = []
        done: set[str] = set()

        def visit(preset_id: str, path: list[str]) -> None:
            if preset_id in path:
                cycle = path[path.index(preset_id):] + [preset_id]
                errors.append(f"Curve preset cycle: {' -> '.join(cycle)}")
                return
            if preset_id in done or preset_id not in graph:
                return
            for ref in sorted(graph[preset_id]):
                visit(ref, path + [preset_id])
            done.add(preset_id)

        for preset_id in graph:
            visit(preset_id, [])
        return errors

    @classmethod
    def from_dict(
        cls, data: Mapping[str, Any], requirements: RequirementRegistry | None = None
    ) -> Catalog:
        """Load a catalog from a plain mapping (e.g. a parsed JSON document).

        Pass *requirements* to make custom requirement types loadable.
        """
        presets = default_presets()
        custom = [preset_from_config(p) for p in data.get("curvePresets", data.get("curve_presets", ()))]
        custom_ids = {p.id for p in custom}
        requirements = requirements or RequirementRegistry()
        return cls(
            name=data.get("name", "Untitled"),
            config=EngineConfig.from_dict(data.get("config", {})),
            resources=[ResourceDef.from_config(r) for r in data.get("resources", ())],
            buildings=[BuildingDef.from_config(b, requirements) for b in data.get("buildings", ())],
            upgrades=[UpgradeDef.from_config(u, requirements) for u in data.get("upgrades", ())],
            synergies=[SynergyDef.from_config(s) for s in data.get("synergies", ())],
            requirement_types=requirements,
            curve_presets=[p for p in presets if p.id not in custom_ids] + custom,
            stacks=[MultiplierStackDef.from_config(s) for s in data.get("stacks", ())],
        )

