from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Mapping

from idleeconomy._types import is_finite
from idleeconomy.building import BuildingState
from idleeconomy.condition import ConditionContext
from idleeconomy.events import EventBus, GameEvent
from idleeconomy.resource import ResourceState

if TYPE_CHECKING:
    from idleeconomy.catalog import Catalog

logger = logging.getLogger(__name__)


@dataclass
class Statistics:
    total_play_time_ms: float = 0.0
    total_clicks: int = 0
    total_buildings_purchased: int = 0
    total_upgrades_purchased: int = 0


class GameState:
    """Mutable runtime container holding the resource ledger and building counts.

    Resource amounts change only through ``change_resource`` so that the
    ledger stays non-negative and lifetime totals never decrease.
    """

    def __init__(self, catalog: Catalog, events: EventBus | None = None) -> None:
        self.events = events
        self.era: int = 1
        self.prestige_level: int = 0
        self.resources: dict[str, ResourceState] = {}
        self.buildings: dict[str, BuildingState] = {}
        self.upgrades: set[str] = set()
        self.statistics = Statistics()
        self.last_played_at: float = 0.0

        for rdef in catalog.resources:
            self.resources[rdef.id] = ResourceState(
                current=rdef.initial_amount,
                lifetime=rdef.initial_amount,
                unlocked=rdef.unlocked_at_era <= self.era,
            )

        for bdef in catalog.buildings:
            self.buildings[bdef.id] = BuildingState()

    # ── Queries ──────────────────────────────────────────────────────

    def resource_amount(self, id: str) -> float:
        rs = self.resources.get(id)
        return rs.current if rs else 0.0

    def resource_lifetime(self, id: str) -> float:
        rs = self.resources.get(id)
        return rs.lifetime if rs else 0.0

    def resource_rate(self, id: str) -> float:
        rs = self.resources.get(id)
        return rs.current_rate if rs else 0.0

    def building_owned(self, id: str) -> int:
        bs = self.buildings.get(id)
        return bs.owned if bs else 0

    def is_building_unlocked(self, id: str) -> bool:
        bs = self.buildings.get(id)
        return bs.unlocked if bs else False

    def has_upgrade(self, id: str) -> bool:
        return id in self.upgrades

    def can_afford(self, costs: Mapping[str, float]) -> bool:
        return all(self.resource_amount(rid) >= amount for rid, amount in costs.items())

    def condition_context(self, current_hour: int = 0) -> ConditionContext:
        return ConditionContext(
            resources={rid: rs.current for rid, rs in self.resources.items()},
            buildings={bid: bs.owned for bid, bs in self.buildings.items()},
            upgrades=frozenset(self.upgrades),
            era=self.era,
            prestige_level=self.prestige_level,
            current_hour=current_hour,
        )

    # ── Mutation ─────────────────────────────────────────────────────

    def change_resource(self, id: str, delta: float, source: str = "") -> float:
        """Add (or subtract) *delta*; returns the change actually applied.

        The current amount is clamped at 0; positive deltas count toward
        the lifetime total.
        """
        rs = self.resources.get(id)
        if rs is None:
            logger.warning("Change to unknown resource %r from %r ignored", id, source)
            return 0.0
        if not is_finite(delta):
            logger.warning("Non-finite change %r to %r from %r ignored", delta, id, source)
            return 0.0

        old = rs.current
        rs.current = max(0.0, old + delta)
        if delta > 0:
            rs.lifetime += delta
        applied = rs.current - old
        if applied != 0 and self.events is not None:
            self.events.emit(GameEvent.RESOURCE_CHANGED, {
                "resource_id": id,
                "amount": rs.current,
                "delta": applied,
                "source": source,
            })
        return applied

    def deduct_costs(self, costs: Mapping[str, float], source: str = "") -> bool:
        """Subtract every cost, or nothing if any one is unaffordable."""
        if not self.can_afford(costs):
            return False
        for rid, amount in costs.items():
            if amount > 0:
                self.change_resource(rid, -amount, source)
        return True

    def add_buildings(self, id: str, count: int) -> None:
        bs = self.buildings.setdefault(id, BuildingState())
        bs.owned += count
        bs.total_purchased += count
        self.statistics.total_buildings_purchased += count

    def unlock_building(self, id: str) -> bool:
        """Unlock a building; returns False if it was already unlocked."""
        bs = self.buildings.setdefault(id, BuildingState())
        if bs.unlocked:
            return False
        bs.unlocked = True
        return True

    def purchase_upgrade(self, id: str) -> bool:
        if id in self.upgrades:
            return False
        self.upgrades.add(id)
        self.statistics.total_upgrades_purchased += 1
        return True

    def revoke_upgrade(self, id: str) -> bool:
        """Drop a purchased upgrade; returns False if it was not owned."""
        if id not in self.upgrades:
            return False
        self.upgrades.discard(id)
        return True

    def unlock_resource(self, id: str) -> None:
        rs = self.resources.get(id)
        if rs is not None:
            rs.unlocked = True

    def reset_resource(self, id: str, amount: float, source: str = "prestige") -> None:
        rs = self.resources.get(id)
        if rs is not None:
            self.change_resource(id, amount - rs.current, source)

    def reset_building(self, id: str) -> None:
        bs = self.buildings.get(id)
        if bs is not None:
            bs.owned = 0
            bs.unlocked = False

    # ── Serialization ────────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        return {
            "era": self.era,
            "prestige_level": self.prestige_level,
            "resources": {
                rid: {"current": rs.current, "lifetime": rs.lifetime, "unlocked": rs.unlocked}
                for rid, rs in self.resources.items()
            },
            "buildings": {
                bid: {
                    "owned": bs.owned,
                    "total_purchased": bs.total_purchased,
                    "unlocked": bs.unlocked,
                }
                for bid, bs in self.buildings.items()
            },
            "upgrades": sorted(self.upgrades),
            "statistics": asdict(self.statistics),
            "last_played_at": self.last_played_at,
        }

    @classmethod
    def from_dict(
        cls, catalog: Catalog, data: Mapping[str, Any], events: EventBus | None = None
    ) -> GameState:
        """Rebuild state from ``to_dict`` output layered over catalog defaults."""
        state = cls(catalog, events)
        state.era = int(data.get("era", 1))
        state.prestige_level = int(data.get("prestige_level", 0))
        for rid, rd in data.get("resources", {}).items():
            state.resources[rid] = ResourceState(
                current=float(rd.get("current", 0.0)),
                lifetime=float(rd.get("lifetime", 0.0)),
                unlocked=bool(rd.get("unlocked", False)),
            )
        for bid, bd in data.get("buildings", {}).items():
            state.buildings[bid] = BuildingState(
                owned=int(bd.get("owned", 0)),
                total_purchased=int(bd.get("total_purchased", 0)),
                unlocked=bool(bd.get("unlocked", False)),
            )
        state.upgrades = set(data.get("upgrades", ()))
        state.statistics = Statistics(**data.get("statistics", {}))
        state.last_played_at = float(data.get("last_played_at", 0.0))
        return state
