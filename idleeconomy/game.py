from __future__ import annotations

import logging
import random
from typing import Iterable

from idleeconomy._types import Clock, monotonic_ms, now_ms
from idleeconomy.catalog import Catalog
from idleeconomy.curve import CurveEvaluator
from idleeconomy.engine import ProductionEngine
from idleeconomy.errors import SaveError
from idleeconomy.events import EventBus, GameEvent
from idleeconomy.loop import GameLoop
from idleeconomy.multiplier import ActiveMultiplier, MultiplierAggregator
from idleeconomy.offline import OfflineResult, apply_offline_gain, compute_offline_gain
from idleeconomy.prestige import PrestigeResult
from idleeconomy.save import MigrationRegistry, SaveData, SaveManager, SaveStore
from idleeconomy.state import GameState
from idleeconomy.upgrade import UpgradeSystem

logger = logging.getLogger(__name__)

_MS_PER_HOUR = 3_600_000


class Game:
    """Handle to one running game: every collaborator is owned here."""

    def __init__(
        self,
        catalog: Catalog,
        save_manager: SaveManager | None = None,
        rng: random.Random | None = None,
        clock: Clock = now_ms,
        loop_clock: Clock = monotonic_ms,
    ) -> None:
        self.catalog = catalog
        self.config = catalog.config
        self.save_manager = save_manager
        self.rng = rng or random.Random()
        self.clock = clock

        self.events = EventBus()
        self.curves = CurveEvaluator(catalog.curve_presets)
        self.multipliers = MultiplierAggregator(catalog.stacks, self.events, clock)
        self.state = GameState(catalog, self.events)
        self.engine = self._make_engine(self.state)
        self.upgrades = UpgradeSystem(catalog, self.state, self.multipliers, self.events)
        self.loop = GameLoop(
            self.tick,
            tick_ms=self.config.base_tick_ms,
            idle_tick_ms=self.config.idle_tick_ms,
            time_multiplier=self.config.time_multiplier,
            clock=loop_clock,
            events=self.events,
        )

        self.state.last_played_at = clock()
        self.engine.check_unlocks()
        self._refresh_conditions(self.state.last_played_at)

    # ── Core loop ────────────────────────────────────────────────────

    def tick(self, delta_ms: float) -> None:
        """Advance the game by *delta_ms* milliseconds."""
        now = self.clock()
        self.multipliers.process_expired(now)
        self._refresh_conditions(now)
        self.engine.process_tick(delta_ms, active=self.loop.visible)
        if self.engine.check_unlocks():
            self._refresh_conditions(now)
        self.state.statistics.total_play_time_ms += delta_ms
        self.state.last_played_at = now
        self.events.emit(GameEvent.GAME_TICK, {"delta_ms": delta_ms})

    def start(self) -> None:
        self.loop.start()

    def pause(self) -> None:
        self.loop.pause()

    def resume(self) -> None:
        self.loop.resume()

    def set_visible(self, visible: bool) -> None:
        """Foreground/background switch; hidden games tick slower and
        ``requires_active`` buildings stop producing."""
        self.loop.set_visible(visible)

    def close(self) -> None:
        self.loop.stop()
        self.upgrades.close()
        self.engine.close()

    # ── Player actions ───────────────────────────────────────────────

    def purchase(self, building_id: str, count: int = 1) -> bool:
        ok = self.engine.purchase(building_id, count)
        if ok:
            self._refresh_conditions(self.clock())
        return ok

    def click(self, resource_id: str, amount: float = 1.0) -> float:
        """Manual harvest; returns the amount added."""
        self.state.statistics.total_clicks += 1
        return self.state.change_resource(resource_id, amount, "click")

    def purchase_upgrade(self, upgrade_id: str) -> bool:
        """Buy a catalog upgrade; its multiplier effects apply immediately."""
        ok = self.upgrades.purchase(upgrade_id)
        if ok:
            self._refresh_conditions(self.clock())
        return ok

    def add_multiplier(self, stack_id: str, entry: ActiveMultiplier) -> bool:
        return self.multipliers.add_multiplier(stack_id, entry)

    def remove_multiplier(self, stack_id: str, source_id: str) -> bool:
        return self.multipliers.remove_multiplier(stack_id, source_id)

    def prestige(
        self,
        buildings: Iterable[str] | None = None,
        resources: Iterable[str] | None = None,
    ) -> PrestigeResult:
        result = self.engine.apply_prestige_reset(buildings, resources)
        self._refresh_conditions(self.clock())
        return result

    # ── Persistence & offline ────────────────────────────────────────

    def save(self, now: float | None = None) -> SaveData:
        """Flush in-flight production and write a snapshot."""
        if self.save_manager is None:
            raise SaveError("No save manager configured")
        timestamp = self.clock() if now is None else now
        self.engine.flush_all()
        self.state.last_played_at = timestamp
        snapshot = self.save_manager.save(self.state, timestamp)
        self.events.emit(GameEvent.GAME_SAVE, {"timestamp": timestamp})
        return snapshot

    def load(self, now: float | None = None) -> OfflineResult | None:
        """Load the saved game and credit optimistic offline progress.

        Returns the offline result applied, if any.
        """
        if self.save_manager is None:
            raise SaveError("No save manager configured")
        state = self.save_manager.load(self.events)
        if state is None:
            return None

        timestamp = self.clock() if now is None else now
        self._install_state(state)
        result = compute_offline_gain(self.catalog, state, state.last_played_at, timestamp)
        if result is not None:
            apply_offline_gain(state, result)
            self.events.emit(GameEvent.OFFLINE_PROGRESS, result.to_dict())
            logger.info(
                "Credited %.0f s of offline progress", result.offline_time_ms / 1000.0
            )
        state.last_played_at = timestamp
        self.engine.check_unlocks()
        self._refresh_conditions(timestamp)
        self.events.emit(GameEvent.GAME_LOAD, {"timestamp": timestamp})
        return result

    def reconcile_offline(
        self,
        optimistic: OfflineResult | None,
        authoritative: OfflineResult | None,
    ) -> dict[str, float]:
        """Correct the ledger from the local estimate to the trusted result.

        Returns the per-resource adjustments applied.
        """
        local = optimistic.resources_gained if optimistic else {}
        trusted = authoritative.resources_gained if authoritative else {}
        adjustments: dict[str, float] = {}
        for rid in sorted(set(local) | set(trusted)):
            diff = trusted.get(rid, 0.0) - local.get(rid, 0.0)
            if diff != 0:
                adjustments[rid] = self.state.change_resource(rid, diff, "offline:reconcile")
        return adjustments

    # ── Private helpers ──────────────────────────────────────────────

    def _make_engine(self, state: GameState) -> ProductionEngine:
        return ProductionEngine(
            self.catalog, state, self.curves, self.multipliers, self.events, self.rng
        )

    def _install_state(self, state: GameState) -> None:
        self.upgrades.close()
        self.engine.close()
        self.state = state
        self.engine = self._make_engine(state)
        # Re-derives upgrade and synergy entries from the loaded state
        self.upgrades = UpgradeSystem(self.catalog, state, self.multipliers, self.events)

    def _refresh_conditions(self, now: float) -> None:
        hour = int(now // _MS_PER_HOUR) % 24
        self.multipliers.update_condition_context(self.state.condition_context(hour))


def create_game(
    catalog: Catalog,
    store: SaveStore | None = None,
    *,
    seed: int | None = None,
    clock: Clock = now_ms,
    loop_clock: Clock = monotonic_ms,
    migrations: MigrationRegistry | None = None,
) -> Game:
    """Build a fully wired game. Pass *seed* for reproducible chance outputs."""
    manager = SaveManager(store, catalog, migrations=migrations) if store is not None else None
    return Game(
        catalog,
        save_manager=manager,
        rng=random.Random(seed),
        clock=clock,
        loop_clock=loop_clock,
    )
