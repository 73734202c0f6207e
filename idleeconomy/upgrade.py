"""One-time upgrades and owned-count synergies feeding the multiplier stacks.

Neither is stored in the aggregator directly: the purchased-upgrade set
and the building counts in GameState are the source of truth, and
UpgradeSystem.sync() rebuilds the corresponding stack entries from them.
That keeps the effects correct across loads and prestige resets.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping

from idleeconomy.building import ResourceAmount
from idleeconomy.events import EventBus, GameEvent
from idleeconomy.multiplier import ActiveMultiplier, MultiplierAggregator
from idleeconomy.requirement import Req, Requirement, RequirementRegistry

if TYPE_CHECKING:
    from idleeconomy.catalog import Catalog
    from idleeconomy.state import GameState

logger = logging.getLogger(__name__)


# ── Definitions ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class MultiplierEffect:
    """A fixed entry placed on a stack while its upgrade is owned."""

    stack_id: str
    value: float


@dataclass(frozen=True)
class UpgradeDef:
    id: str
    name: str = ""
    description: str = ""
    cost: list[ResourceAmount] = field(default_factory=list)
    effects: tuple[MultiplierEffect, ...] = ()
    unlocked_at_era: int = 1
    unlock_requirements: list[Requirement] = field(default_factory=list)
    # Upgrades that must be bought first
    prerequisites: tuple[str, ...] = ()
    resets_on_prestige: bool = True
    category: str = ""

    @classmethod
    def from_config(
        cls, data: Mapping[str, Any], requirements: RequirementRegistry | None = None
    ) -> UpgradeDef:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            description=data.get("description", ""),
            cost=[ResourceAmount.from_config(c) for c in data.get("cost", ())],
            effects=tuple(
                MultiplierEffect(e.get("stackId", e.get("stack_id")), float(e["value"]))
                for e in data.get("effects", ())
            ),
            unlocked_at_era=int(data.get("unlockedAtEra", data.get("unlocked_at_era", 1))),
            unlock_requirements=[
                Req.from_config(r, requirements)
                for r in data.get("unlockRequirements", data.get("unlock_requirements", ()))
            ],
            prerequisites=tuple(data.get("prerequisites", ())),
            resets_on_prestige=bool(data.get("resetsOnPrestige", data.get("resets_on_prestige", True))),
            category=data.get("category", ""),
        )


@dataclass(frozen=True)
class SynergyDef:
    """An entry on *stack_id* worth ``base + per_owned * owned`` of a building.

    Absent while none of the source building is owned. Use base 1 on
    multiplicative stacks and base 0 on additive ones.
    """

    source_building_id: str
    stack_id: str
    per_owned: float
    base: float = 1.0
    name: str = ""

    @property
    def source_id(self) -> str:
        return f"synergy:{self.source_building_id}:{self.stack_id}"

    def value(self, owned: int) -> float:
        return self.base + self.per_owned * owned

    @classmethod
    def from_config(cls, data: Mapping[str, Any]) -> SynergyDef:
        return cls(
            source_building_id=data.get("sourceBuildingId", data.get("source_building_id")),
            stack_id=data.get("stackId", data.get("stack_id")),
            per_owned=float(data.get("perOwned", data.get("per_owned", 0.0))),
            base=float(data.get("base", 1.0)),
            name=data.get("name", ""),
        )


def upgrade_source_id(upgrade_id: str, stack_id: str) -> str:
    return f"upgrade:{upgrade_id}:{stack_id}"


@dataclass(frozen=True)
class UpgradeInfo:
    """Read-only snapshot of an upgrade for query results."""

    id: str
    name: str
    purchased: bool
    unlocked: bool
    affordable: bool
    cost: dict[str, float]


# ── System ───────────────────────────────────────────────────────────


class UpgradeSystem:
    """Buys upgrades and keeps upgrade and synergy entries in sync with state."""

    def __init__(
        self,
        catalog: Catalog,
        state: GameState,
        multipliers: MultiplierAggregator,
        events: EventBus | None = None,
    ) -> None:
        self.catalog = catalog
        self.config = catalog.config
        self.state = state
        self.multipliers = multipliers
        self.events = events
        # (stack_id, source_id) pairs this system has placed
        self._applied: set[tuple[str, str]] = set()

        self._scope = events.scope() if events is not None else None
        if self._scope is not None:
            self._scope.subscribe(GameEvent.BUILDING_PURCHASED, lambda _: self.sync())
            self._scope.subscribe(GameEvent.PRESTIGE_EXECUTED, lambda _: self.reset_for_prestige())

        self.sync()

    def close(self) -> None:
        """Detach from the event bus and withdraw every entry placed."""
        if self._scope is not None:
            self._scope.dispose()
        for stack_id, source_id in sorted(self._applied):
            self.multipliers.remove_multiplier(stack_id, source_id)
        self._applied.clear()

    # ── Queries ──────────────────────────────────────────────────────

    def calculate_cost(self, upgrade_id: str) -> dict[str, float]:
        udef = self.catalog.get_upgrade(upgrade_id)
        if udef is None:
            return {}
        scale = self.multipliers.get_value(self.config.upgrade_cost_stack)
        totals: dict[str, float] = {}
        for base in udef.cost:
            totals[base.resource_id] = totals.get(base.resource_id, 0.0) + base.amount * scale
        return {rid: float(math.ceil(amount)) for rid, amount in totals.items()}

    def is_unlocked(self, upgrade_id: str) -> bool:
        """Era gate, prerequisites and every extra requirement are met."""
        udef = self.catalog.get_upgrade(upgrade_id)
        if udef is None or udef.unlocked_at_era > self.state.era:
            return False
        if not all(self.state.has_upgrade(p) for p in udef.prerequisites):
            return False
        return all(req.evaluate(self.state) for req in udef.unlock_requirements)

    def available_upgrades(self) -> list[UpgradeDef]:
        return [
            u for u in self.catalog.upgrades
            if not self.state.has_upgrade(u.id) and self.is_unlocked(u.id)
        ]

    def get_upgrade_info(self, upgrade_id: str) -> UpgradeInfo | None:
        udef = self.catalog.get_upgrade(upgrade_id)
        if udef is None:
            return None
        purchased = self.state.has_upgrade(upgrade_id)
        cost = self.calculate_cost(upgrade_id)
        return UpgradeInfo(
            id=udef.id,
            name=udef.name,
            purchased=purchased,
            unlocked=self.is_unlocked(upgrade_id),
            affordable=not purchased and self.state.can_afford(cost),
            cost=cost,
        )

    # ── Mutation ─────────────────────────────────────────────────────

    def purchase(self, upgrade_id: str) -> bool:
        """Buy an upgrade atomically. Returns True on success."""
        udef = self.catalog.get_upgrade(upgrade_id)
        if udef is None:
            logger.warning("Unknown upgrade %r", upgrade_id)
            return False
        if self.state.has_upgrade(upgrade_id) or not self.is_unlocked(upgrade_id):
            return False

        costs = self.calculate_cost(upgrade_id)
        if not self.state.deduct_costs(costs, f"upgrade:{upgrade_id}"):
            logger.debug("Cannot afford upgrade %s: %s", upgrade_id, costs)
            return False

        self.state.purchase_upgrade(upgrade_id)
        self.sync()
        self._emit(GameEvent.UPGRADE_PURCHASED, {"upgrade_id": upgrade_id, "costs": costs})
        return True

    def reset_for_prestige(self) -> list[str]:
        """Forget upgrades flagged ``resets_on_prestige``. Returns their ids."""
        revoked = [
            u.id for u in self.catalog.upgrades
            if u.resets_on_prestige and self.state.revoke_upgrade(u.id)
        ]
        self.sync()
        return revoked

    def sync(self) -> None:
        """Make the aggregator's upgrade and synergy entries match state."""
        wanted: dict[tuple[str, str], ActiveMultiplier] = {}
        for udef in self.catalog.upgrades:
            if not self.state.has_upgrade(udef.id):
                continue
            for effect in udef.effects:
                source_id = upgrade_source_id(udef.id, effect.stack_id)
                wanted[(effect.stack_id, source_id)] = ActiveMultiplier(
                    source_id, effect.value, source_name=udef.name or udef.id
                )
        for synergy in self.catalog.synergies:
            owned = self.state.building_owned(synergy.source_building_id)
            if owned <= 0:
                continue
            wanted[(synergy.stack_id, synergy.source_id)] = ActiveMultiplier(
                synergy.source_id,
                synergy.value(owned),
                source_name=synergy.name or synergy.source_building_id,
            )

        for key in sorted(self._applied - set(wanted)):
            self.multipliers.remove_multiplier(*key)
        for key, entry in wanted.items():
            stack_id, source_id = key
            current = next(
                (e for e in self.multipliers.entries(stack_id) if e.source_id == source_id),
                None,
            )
            if current is None or current.value != entry.value:
                self.multipliers.add_multiplier(stack_id, entry)
        self._applied = set(wanted)

    def _emit(self, event: GameEvent, payload: dict[str, Any]) -> None:
        if self.events is not None:
            self.events.emit(event, payload)
