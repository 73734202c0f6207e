"""Tests for game module."""
import pytest

from idleeconomy.building import BuildingDef, ProductionDef, ProductionOutput, ResourceAmount
from idleeconomy.catalog import Catalog
from idleeconomy.errors import SaveError
from idleeconomy.events import GameEvent
from idleeconomy.game import create_game
from idleeconomy.multiplier import ActiveMultiplier
from idleeconomy.offline import OfflineResult
from idleeconomy.resource import ResourceDef
from idleeconomy.save import MemorySaveStore

_START_MS = 1_700_000_000_000.0
_HOUR_MS = 3_600_000.0


class _FakeClock:
    def __init__(self, now: float = _START_MS) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _make_catalog() -> Catalog:
    return Catalog(
        name="Test",
        resources=[
            ResourceDef("rice", initial_amount=100),
            ResourceDef("gem", persists_on_prestige=True),
        ],
        buildings=[
            BuildingDef(
                "farm",
                base_cost=[ResourceAmount("rice", 10)],
                production=ProductionDef(outputs=(ProductionOutput("rice", 1.0),)),
            ),
        ],
    )


def _make_game(store=None, clock=None):
    return create_game(_make_catalog(), store, seed=0, clock=clock or _FakeClock())


def test_initial_unlocks():
    game = _make_game()
    assert game.state.is_building_unlocked("farm")
    assert game.state.last_played_at == _START_MS


def test_click():
    game = _make_game()
    assert game.click("rice", 5) == 5
    assert game.state.resource_amount("rice") == 105
    assert game.state.statistics.total_clicks == 1


def test_purchase_then_tick():
    game = _make_game()
    assert game.purchase("farm")
    assert game.state.resource_amount("rice") == 90

    game.tick(1000)
    assert game.state.resource_amount("rice") == pytest.approx(91)
    assert game.state.statistics.total_play_time_ms == 1000


def test_tick_emits_event():
    game = _make_game()
    deltas = []
    game.events.on(GameEvent.GAME_TICK, lambda p: deltas.append(p["delta_ms"]))
    game.tick(250)
    assert deltas == [250]


def test_multiplier_updates_rates():
    game = _make_game()
    game.purchase("farm")
    assert game.state.resource_rate("rice") == pytest.approx(1.0)

    game.add_multiplier("all_production", ActiveMultiplier("festival", 2.0))
    assert game.state.resource_rate("rice") == pytest.approx(2.0)
    game.tick(1000)
    assert game.state.resource_amount("rice") == pytest.approx(92)

    assert game.remove_multiplier("all_production", "festival")
    assert game.state.resource_rate("rice") == pytest.approx(1.0)


def test_save_without_manager():
    game = _make_game()
    with pytest.raises(SaveError):
        game.save()
    with pytest.raises(SaveError):
        game.load()


def test_load_without_save():
    game = _make_game(MemorySaveStore())
    assert game.load() is None


def test_save_and_load_credits_offline():
    store = MemorySaveStore()
    clock = _FakeClock()
    game = _make_game(store, clock)
    game.purchase("farm")
    saved = game.save()
    assert saved.timestamp == _START_MS

    later = _FakeClock(_START_MS + _HOUR_MS)
    restored = _make_game(store, later)
    progress = []
    restored.events.on(GameEvent.OFFLINE_PROGRESS, progress.append)

    result = restored.load()
    assert result.offline_time_ms == _HOUR_MS
    assert result.resources_gained == {"rice": pytest.approx(1800)}
    assert restored.state.resource_amount("rice") == pytest.approx(1890)
    assert restored.state.building_owned("farm") == 1
    assert restored.state.last_played_at == later.now
    assert len(progress) == 1


def test_load_below_threshold_gains_nothing():
    store = MemorySaveStore()
    game = _make_game(store)
    game.purchase("farm")
    game.save()

    restored = _make_game(store, _FakeClock(_START_MS + 500))
    assert restored.load() is None
    assert restored.state.resource_amount("rice") == 90


def test_save_flushes_pending_production():
    store = MemorySaveStore()
    game = _make_game(store)
    game.purchase("farm")
    # 0.005 stays below the flush threshold
    game.tick(5)
    assert game.state.resource_amount("rice") == 90

    snapshot = game.save()
    assert snapshot.data["resources"]["rice"]["current"] == pytest.approx(90.005)


def test_reconcile_offline():
    game = _make_game()
    optimistic = OfflineResult(resources_gained={"rice": 100.0})
    trusted = OfflineResult(resources_gained={"rice": 80.0, "gem": 1.0})

    adjustments = game.reconcile_offline(optimistic, trusted)
    assert adjustments == {"gem": pytest.approx(1.0), "rice": pytest.approx(-20.0)}
    assert game.state.resource_amount("rice") == pytest.approx(80)


def test_reconcile_without_trusted_result():
    game = _make_game()
    adjustments = game.reconcile_offline(OfflineResult(resources_gained={"rice": 50.0}), None)
    assert adjustments == {"rice": pytest.approx(-50.0)}


def test_prestige():
    game = _make_game()
    game.purchase("farm")
    game.click("gem", 3)

    result = game.prestige()
    assert result.success
    assert result.prestige_level == 1
    assert result.buildings_reset == ["farm"]
    assert result.resources_reset == ["rice"]
    assert game.state.building_owned("farm") == 0
    assert game.state.resource_amount("rice") == 100
    assert game.state.resource_amount("gem") == 3
    # No requirements, so the farm is unlocked again straight away
    assert game.state.is_building_unlocked("farm")


def test_loop_drives_ticks():
    loop_clock = _FakeClock(0.0)
    game = create_game(_make_catalog(), seed=0, clock=_FakeClock(), loop_clock=loop_clock)
    game.purchase("farm")

    game.start()
    loop_clock.now += 2000
    game.loop.step()
    assert game.state.resource_amount("rice") == pytest.approx(92)

    game.pause()
    loop_clock.now += 60_000
    game.loop.step()
    game.resume()
    assert game.state.resource_amount("rice") == pytest.approx(92)
    game.close()


def test_hidden_game_pauses_active_only_buildings():
    catalog = Catalog(
        name="Active",
        resources=[ResourceDef("rice")],
        buildings=[
            BuildingDef(
                "planter",
                production=ProductionDef(
                    outputs=(ProductionOutput("rice", 1.0),),
                    requires_active=True,
                ),
            ),
        ],
    )
    game = create_game(catalog, seed=0, clock=_FakeClock())
    game.state.add_buildings("planter", 1)
    game.engine.recalculate_all_production()

    game.set_visible(False)
    game.tick(1000)
    assert game.state.resource_amount("rice") == 0

    game.set_visible(True)
    game.tick(1000)
    assert game.state.resource_amount("rice") == pytest.approx(1)
