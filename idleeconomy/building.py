from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from idleeconomy.curve import CurveRef, curve_from_config
from idleeconomy.requirement import Req, Requirement, RequirementRegistry


@dataclass(frozen=True)
class ResourceAmount:
    resource_id: str
    amount: float

    @classmethod
    def from_config(cls, data: Mapping[str, Any]) -> ResourceAmount:
        return cls(
            resource_id=data.get("resourceId", data.get("resource_id")),
            amount=float(data["amount"]),
        )


@dataclass(frozen=True)
class ProductionOutput:
    """One resource produced per production cycle.

    ``chance`` below 1 gates the output behind a per-tick trial.
    """

    resource_id: str
    base_amount: float
    chance: float | None = None


@dataclass(frozen=True)
class ProductionDef:
    outputs: tuple[ProductionOutput, ...] = ()
    inputs: tuple[ResourceAmount, ...] = ()
    base_interval_ms: float = 1000.0
    amount_stack_id: str | None = None
    requires_active: bool = False
    idle_efficiency: float = 1.0

    @property
    def consumes_inputs(self) -> bool:
        return bool(self.inputs)


@dataclass
class BuildingDef:
    """Static definition of a production unit."""

    id: str
    name: str = ""
    base_cost: list[ResourceAmount] = field(default_factory=list)
    cost_curve: CurveRef = "cost_standard"
    production: ProductionDef = field(default_factory=ProductionDef)
    unlocked_at_era: int = 1
    unlock_requirements: list[Requirement] = field(default_factory=list)
    max_owned: int | None = None
    resets_on_prestige: bool = True
    category: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            self.name = self.id

    @classmethod
    def from_config(
        cls, data: Mapping[str, Any], requirements: RequirementRegistry | None = None
    ) -> BuildingDef:
        prod = data.get("production", {})
        production = ProductionDef(
            outputs=tuple(
                ProductionOutput(
                    resource_id=o.get("resourceId", o.get("resource_id")),
                    base_amount=float(o.get("baseAmount", o.get("base_amount", 0.0))),
                    chance=o.get("chance"),
                )
                for o in prod.get("outputs", ())
            ),
            inputs=tuple(ResourceAmount.from_config(i) for i in prod.get("inputs", ())),
            base_interval_ms=float(prod.get("baseIntervalMs", prod.get("base_interval_ms", 1000.0))),
            amount_stack_id=prod.get("amountStackId", prod.get("amount_stack_id")),
            requires_active=bool(prod.get("requiresActive", prod.get("requires_active", False))),
            idle_efficiency=float(prod.get("idleEfficiency", prod.get("idle_efficiency", 1.0))),
        )
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            base_cost=[ResourceAmount.from_config(c) for c in data.get("baseCost", data.get("base_cost", ()))],
            cost_curve=curve_from_config(data.get("costCurve", data.get("cost_curve", "cost_standard"))),
            production=production,
            unlocked_at_era=int(data.get("unlockedAtEra", data.get("unlocked_at_era", 1))),
            unlock_requirements=[
                Req.from_config(r, requirements)
                for r in data.get("unlockRequirements", data.get("unlock_requirements", ()))
            ],
            max_owned=data.get("maxOwned", data.get("max_owned")),
            resets_on_prestige=bool(data.get("resetsOnPrestige", data.get("resets_on_prestige", True))),
            category=data.get("category", ""),
        )


@dataclass
class BuildingState:
    """Mutable runtime state for a building."""

    owned: int = 0
    total_purchased: int = 0
    unlocked: bool = False


@dataclass(frozen=True)
class BuildingInfo:
    """Read-only snapshot of a building for query results."""

    id: str
    name: str
    owned: int
    unlocked: bool
    affordable: bool
    next_cost: dict[str, float]
    max_owned: int | None
    production_per_second: dict[str, float]
