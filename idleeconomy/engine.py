from __future__ import annotations

import logging
import math
import random
from typing import Iterable, Iterator

from idleeconomy.accumulator import FlushResult, ProductionAccumulator
from idleeconomy.building import BuildingDef, BuildingInfo
from idleeconomy.catalog import Catalog
from idleeconomy.curve import CurveEvaluator
from idleeconomy.events import EventBus, GameEvent
from idleeconomy.multiplier import MultiplierAggregator
from idleeconomy.pipeline import ProductionPipeline, output_amount, plan_inputs
from idleeconomy.prestige import PrestigeResult
from idleeconomy.state import GameState

logger = logging.getLogger(__name__)


class ProductionEngine:
    """Buys buildings and turns elapsed time into resources."""

    def __init__(
        self,
        catalog: Catalog,
        state: GameState,
        curves: CurveEvaluator,
        multipliers: MultiplierAggregator,
        events: EventBus | None = None,
        rng: random.Random | None = None,
    ) -> None:
        errors = catalog.validate()
        if errors:
            raise ValueError(
                "Invalid Catalog:\n" + "\n".join(f"  - {e}" for e in errors)
            )

        self.catalog = catalog
        self.config = catalog.config
        self.state = state
        self.curves = curves
        self.multipliers = multipliers
        self.events = events
        self.rng = rng or random.Random()
        self.pipeline = ProductionPipeline(multipliers, self.config.production_stack)
        self.accumulator = ProductionAccumulator(state, events, self.config.flush_threshold)

        self._scope = events.scope() if events is not None else None
        if self._scope is not None:
            self._scope.subscribe(
                GameEvent.MULTIPLIER_CHANGED, lambda _: self.recalculate_all_production()
            )

        self.recalculate_all_production()

    def close(self) -> None:
        if self._scope is not None:
            self._scope.dispose()

    # ── Costs & purchases ────────────────────────────────────────────

    def calculate_cost(self, building_id: str, count: int = 1) -> dict[str, float]:
        """Total cost of buying *count* more, each resource rounded up once."""
        bdef = self.catalog.get_building(building_id)
        if bdef is None or count <= 0:
            return {}

        *_, costs = self._running_costs(bdef, count)
        return costs

    def calculate_max_affordable(self, building_id: str) -> int:
        """Largest count purchasable right now, searched up to a fixed ceiling.

        The candidate cost grows by one curve step per count, so the search
        is linear in the answer.
        """
        bdef = self.catalog.get_building(building_id)
        if bdef is None:
            return 0

        ceiling = self.config.max_affordable_ceiling
        if bdef.max_owned is not None:
            ceiling = min(ceiling, bdef.max_owned - self.state.building_owned(building_id))

        count = 0
        for costs in self._running_costs(bdef, ceiling):
            if not self.state.can_afford(costs):
                break
            count += 1
        return count

    def _running_costs(self, bdef: BuildingDef, count: int) -> Iterator[dict[str, float]]:
        """Cumulative rounded cost of the next 1, 2, ... *count* units."""
        owned = self.state.building_owned(bdef.id)
        reduction = self.multipliers.get_value(self.config.cost_stack)
        subtotals = [0.0] * len(bdef.base_cost)
        for i in range(count):
            scale = self.curves.evaluate(bdef.cost_curve, {"owned": owned + i}, default=1.0)
            for j, base in enumerate(bdef.base_cost):
                subtotals[j] += base.amount * scale * reduction
            yield self._rounded_totals(bdef, subtotals)

    @staticmethod
    def _rounded_totals(bdef: BuildingDef, subtotals: list[float]) -> dict[str, float]:
        totals: dict[str, float] = {}
        for base, subtotal in zip(bdef.base_cost, subtotals):
            totals[base.resource_id] = totals.get(base.resource_id, 0.0) + subtotal
        return {rid: float(math.ceil(amount)) for rid, amount in totals.items()}

    def purchase(self, building_id: str, count: int = 1) -> bool:
        """Buy *count* units atomically. Returns True on success."""
        bdef = self.catalog.get_building(building_id)
        if bdef is None or count <= 0:
            return False
        if not self.state.is_building_unlocked(building_id):
            return False

        if bdef.max_owned is not None:
            count = min(count, bdef.max_owned - self.state.building_owned(building_id))
            if count <= 0:
                self._emit(GameEvent.BUILDING_MAXED, {"building_id": building_id})
                return False

        costs = self.calculate_cost(building_id, count)
        if not self.state.deduct_costs(costs, f"building:{building_id}"):
            logger.debug("Cannot afford %d x %s: %s", count, building_id, costs)
            return False

        self.state.add_buildings(building_id, count)
        self._emit(GameEvent.BUILDING_PURCHASED, {
            "building_id": building_id,
            "count": count,
            "owned": self.state.building_owned(building_id),
            "costs": costs,
        })
        self.recalculate_all_production()
        return True

    # ── Production ───────────────────────────────────────────────────

    def process_tick(self, delta_ms: float, active: bool = True) -> None:
        """Produce for *delta_ms* of elapsed time.

        The whole tick is planned against a scratch copy of the ledger
        before anything is written. Buildings flagged ``requires_active``
        only produce while *active*.
        """
        if delta_ms <= 0:
            return

        available = {rid: rs.current for rid, rs in self.state.resources.items()}
        consumed: list[tuple[str, str, float]] = []
        produced: list[tuple[str, str, float]] = []

        for bdef in self.catalog.buildings:
            bs = self.state.buildings.get(bdef.id)
            if bs is None or bs.owned <= 0 or not bs.unlocked:
                continue

            production = bdef.production
            if production.requires_active and not active:
                continue
            plan = plan_inputs(available, production, bs.owned, delta_ms)
            if plan.efficiency <= 0:
                continue
            for rid, amount in plan.consumed.items():
                available[rid] = max(0.0, available.get(rid, 0.0) - amount)
                consumed.append((bdef.id, rid, amount))

            mult = self.pipeline.multiplier(production)
            for out in production.outputs:
                if out.chance is not None and out.chance < 1:
                    # Full amount on success
                    if self.rng.random() >= out.chance:
                        continue
                amount = output_amount(out, production, bs.owned, delta_ms, mult)
                amount *= plan.efficiency
                if amount > 0:
                    produced.append((bdef.id, out.resource_id, amount))

        for building_id, rid, amount in consumed:
            self.state.change_resource(rid, -amount, f"building:{building_id}")
        for building_id, rid, amount in produced:
            self.accumulator.add_and_flush(building_id, rid, amount)

    def flush_all(self) -> list[FlushResult]:
        return self.accumulator.flush_all()

    def calculate_production_per_second(self, building_id: str) -> dict[str, float]:
        bdef = self.catalog.get_building(building_id)
        if bdef is None:
            return {}
        bs = self.state.buildings.get(building_id)
        if bs is None or bs.owned <= 0 or not bs.unlocked:
            return {}
        return self.pipeline.rates(bdef.production, bs.owned)

    def recalculate_all_production(self) -> None:
        totals: dict[str, float] = {rid: 0.0 for rid in self.state.resources}
        for bdef in self.catalog.buildings:
            for rid, rate in self.calculate_production_per_second(bdef.id).items():
                totals[rid] = totals.get(rid, 0.0) + rate
        for rid, rate in totals.items():
            rs = self.state.resources.get(rid)
            if rs is not None:
                rs.current_rate = rate

    def get_production_rate(self, resource_id: str) -> float:
        return self.state.resource_rate(resource_id)

    # ── Unlocks & resets ─────────────────────────────────────────────

    def check_unlocks(self) -> list[str]:
        """Unlock resources reached by the current era and every building whose
        era gate and requirements are met. Returns newly unlocked building ids."""
        unlocked: list[str] = []
        for rdef in self.catalog.resources:
            rs = self.state.resources.get(rdef.id)
            if rs is not None and not rs.unlocked and rdef.unlocked_at_era <= self.state.era:
                self.state.unlock_resource(rdef.id)

        for bdef in self.catalog.buildings:
            if self.state.is_building_unlocked(bdef.id):
                continue
            if bdef.unlocked_at_era > self.state.era:
                continue
            if not all(r.evaluate(self.state) for r in bdef.unlock_requirements):
                continue
            if self.state.unlock_building(bdef.id):
                unlocked.append(bdef.id)
                self._emit(GameEvent.BUILDING_UNLOCKED, {"building_id": bdef.id})

        if unlocked:
            self.recalculate_all_production()
        return unlocked

    def apply_prestige_reset(
        self,
        buildings: Iterable[str] | None = None,
        resources: Iterable[str] | None = None,
    ) -> PrestigeResult:
        """Reset in-scope buildings and resources and raise the prestige level.

        Defaults to buildings flagged ``resets_on_prestige`` and resources
        not flagged ``persists_on_prestige``. Lifetime totals are kept.
        """
        self.flush_all()

        if buildings is None:
            building_ids = [b.id for b in self.catalog.buildings if b.resets_on_prestige]
        else:
            building_ids = list(buildings)
        if resources is None:
            resource_ids = [r.id for r in self.catalog.resources if not r.persists_on_prestige]
        else:
            resource_ids = list(resources)

        for bid in building_ids:
            self.state.reset_building(bid)
            self.accumulator.clear(bid)
        for rid in resource_ids:
            rdef = self.catalog.get_resource(rid)
            self.state.reset_resource(rid, rdef.initial_amount if rdef else 0.0)

        self.state.prestige_level += 1
        logger.info("Prestige reset to level %d", self.state.prestige_level)
        self._emit(GameEvent.PRESTIGE_EXECUTED, {
            "prestige_level": self.state.prestige_level,
            "buildings_reset": building_ids,
            "resources_reset": resource_ids,
        })
        self.recalculate_all_production()
        self.check_unlocks()

        return PrestigeResult(
            success=True,
            prestige_level=self.state.prestige_level,
            resources_reset=resource_ids,
            buildings_reset=building_ids,
        )

    # ── Queries ──────────────────────────────────────────────────────

    def get_building_info(self, building_id: str) -> BuildingInfo | None:
        bdef = self.catalog.get_building(building_id)
        if bdef is None:
            return None
        next_cost = self.calculate_cost(building_id, 1)
        owned = self.state.building_owned(building_id)
        maxed = bdef.max_owned is not None and owned >= bdef.max_owned
        return BuildingInfo(
            id=bdef.id,
            name=bdef.name,
            owned=owned,
            unlocked=self.state.is_building_unlocked(building_id),
            affordable=not maxed and self.state.can_afford(next_cost),
            next_cost=next_cost,
            max_owned=bdef.max_owned,
            production_per_second=self.calculate_production_per_second(building_id),
        )

    def available_buildings(self) -> list[BuildingDef]:
        return [b for b in self.catalog.buildings if self.state.is_building_unlocked(b.id)]

    # ── Private helpers ──────────────────────────────────────────────

    def _emit(self, event: GameEvent, payload: dict) -> None:
        if self.events is not None:
            self.events.emit(event, payload)

