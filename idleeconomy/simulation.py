from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass, field
from typing import Mapping

from idleeconomy.catalog import Catalog
from idleeconomy.game import Game, create_game
from idleeconomy.offline import compute_offline_gain

MAX_TICKS = 10_000_000
# Purchases allowed per tick by the greedy buyer
MAX_BUYS_PER_TICK = 100


@dataclass(frozen=True)
class Snapshot:
    time_s: float
    resources: dict[str, float]
    lifetime: dict[str, float]
    rates: dict[str, float]
    buildings: dict[str, int]


@dataclass(frozen=True)
class PurchaseRecord:
    time_s: float
    building_id: str
    count: int
    costs: dict[str, float]


@dataclass
class SimulationResult:
    catalog_name: str
    duration_s: float
    tick_ms: float
    snapshots: list[Snapshot] = field(default_factory=list)
    purchases: list[PurchaseRecord] = field(default_factory=list)
    outcome: str = ""

    @property
    def final(self) -> Snapshot | None:
        return self.snapshots[-1] if self.snapshots else None


class Simulation:
    """Headless run of a catalog with fixed tick deltas."""

    def __init__(
        self,
        catalog: Catalog,
        duration_s: float = 600.0,
        tick_ms: float = 100.0,
        seed: int | None = None,
        autobuy: bool = False,
        snapshot_interval_s: float = 10.0,
        clicks_per_second: Mapping[str, float] | None = None,
    ) -> None:
        self.catalog = catalog
        self.duration_s = duration_s
        self.tick_ms = tick_ms
        self.autobuy = autobuy
        self.snapshot_interval_s = snapshot_interval_s
        self.clicks_per_second = dict(clicks_per_second or {})

        self._now = 0.0
        self.game: Game = create_game(catalog, seed=seed, clock=self._clock)

    def _clock(self) -> float:
        return self._now

    def run(self) -> SimulationResult:
        result = SimulationResult(self.catalog.name, self.duration_s, self.tick_ms)
        total_ticks = min(MAX_TICKS, math.ceil(self.duration_s * 1000.0 / self.tick_ms))
        next_snapshot = 0.0
        click_carry = {rid: 0.0 for rid in self.clicks_per_second}

        result.snapshots.append(self._snapshot())
        for _ in range(total_ticks):
            self._now += self.tick_ms
            for rid, per_s in self.clicks_per_second.items():
                click_carry[rid] += per_s * self.tick_ms / 1000.0
                while click_carry[rid] >= 1.0:
                    self.game.click(rid)
                    click_carry[rid] -= 1.0

            self.game.tick(self.tick_ms)
            if self.autobuy:
                self._buy_greedy(result)

            state = self.game.state
            if any(not math.isfinite(rs.current) for rs in state.resources.values()):
                result.outcome = "Aborted: NaN/Inf detected"
                return result

            time_s = self._now / 1000.0
            if time_s >= next_snapshot + self.snapshot_interval_s:
                next_snapshot = time_s
                result.snapshots.append(self._snapshot())

        self.game.engine.flush_all()
        result.snapshots.append(self._snapshot())
        result.outcome = "Duration reached"
        return result

    def _buy_greedy(self, result: SimulationResult) -> None:
        """Repeatedly buy the cheapest affordable unlocked building."""
        engine = self.game.engine
        for _ in range(MAX_BUYS_PER_TICK):
            options: list[tuple[float, str, dict[str, float]]] = []
            for bdef in engine.available_buildings():
                info = engine.get_building_info(bdef.id)
                if info is not None and info.affordable:
                    options.append((sum(info.next_cost.values()), bdef.id, info.next_cost))
            if not options:
                return
            _, building_id, costs = min(options)
            if not self.game.purchase(building_id):
                return
            result.purchases.append(
                PurchaseRecord(self._now / 1000.0, building_id, 1, costs)
            )

    def _snapshot(self) -> Snapshot:
        state = self.game.state
        return Snapshot(
            time_s=self._now / 1000.0,
            resources={rid: rs.current for rid, rs in state.resources.items()},
            lifetime={rid: rs.lifetime for rid, rs in state.resources.items()},
            rates={rid: rs.current_rate for rid, rs in state.resources.items()},
            buildings={bid: bs.owned for bid, bs in state.buildings.items()},
        )


# ── Tick / offline parity ────────────────────────────────────────────


@dataclass(frozen=True)
class ParityReport:
    duration_s: float
    tick_ms: float
    tick_totals: dict[str, float]
    offline_totals: dict[str, float]
    max_rel_diff: float
    tolerance: float

    @property
    def ok(self) -> bool:
        return self.max_rel_diff <= self.tolerance


def _parity_catalog(catalog: Catalog) -> Catalog:
    """Copy of *catalog* keeping buildings both paths can compute identically,
    at full idle efficiency."""
    buildings = []
    for bdef in catalog.buildings:
        prod = bdef.production
        if prod.consumes_inputs or prod.requires_active or any(
            o.chance is not None and o.chance < 1 for o in prod.outputs
        ):
            continue
        buildings.append(
            dataclasses.replace(bdef, production=dataclasses.replace(prod, idle_efficiency=1.0))
        )
    return Catalog(
        name=catalog.name,
        config=catalog.config,
        resources=catalog.resources,
        buildings=buildings,
        curve_presets=catalog.curve_presets,
        stacks=catalog.stacks,
    )


def _relative_diff(a: float, b: float) -> float:
    return abs(a - b) / max(1.0, abs(a), abs(b))


def offline_parity(
    catalog: Catalog,
    owned: Mapping[str, int],
    duration_s: float = 3600.0,
    tick_ms: float = 100.0,
    tolerance: float = 1e-9,
) -> ParityReport:
    """Compare tick-by-tick production with one offline computation.

    Offline efficiency is forced to 1 and the clamp is lifted so the two
    paths should agree up to float rounding. Input-consuming and
    chance-gated buildings are left out.
    """
    parity = _parity_catalog(catalog)
    config = dataclasses.replace(
        parity.config,
        offline_efficiency=1.0,
        max_offline_seconds=max(parity.config.max_offline_seconds, duration_s),
        min_offline_ms=0.0,
    )

    game = create_game(parity, seed=0, clock=lambda: 0.0)
    for building_id, count in owned.items():
        if parity.get_building(building_id) is None:
            continue
        game.state.unlock_building(building_id)
        game.state.add_buildings(building_id, count)
    game.engine.recalculate_all_production()

    start = {rid: rs.current for rid, rs in game.state.resources.items()}
    offline = compute_offline_gain(parity, game.state, 0.0, duration_s * 1000.0, config)

    ticks = round(duration_s * 1000.0 / tick_ms)
    for _ in range(ticks):
        game.engine.process_tick(tick_ms)
    game.engine.flush_all()

    tick_totals = {
        rid: rs.current - start[rid]
        for rid, rs in game.state.resources.items()
        if rs.current != start[rid]
    }
    offline_totals = dict(offline.resources_gained) if offline else {}
    diff = max(
        (_relative_diff(tick_totals.get(r, 0.0), offline_totals.get(r, 0.0))
         for r in set(tick_totals) | set(offline_totals)),
        default=0.0,
    )
    return ParityReport(duration_s, tick_ms, tick_totals, offline_totals, diff, tolerance)
