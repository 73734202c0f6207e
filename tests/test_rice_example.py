"""Integration test with the rice farm example catalog."""
import sys
import os

import pytest

# Ensure examples can be imported
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from examples.rice_example import define_catalog
from idleeconomy.game import create_game
from idleeconomy.save import MemorySaveStore
from idleeconomy.simulation import Simulation, offline_parity


def test_rice_catalog_validates():
    catalog = define_catalog()
    errors = catalog.validate()
    assert errors == [], f"Validation errors: {errors}"


def test_rice_simulation():
    sim = Simulation(
        define_catalog(),
        duration_s=300,
        tick_ms=100,
        seed=3,
        autobuy=True,
        clicks_per_second={"rice": 5},
    )
    result = sim.run()

    assert result.outcome == "Duration reached"
    assert result.purchases[0].building_id == "paddy_field"
    assert result.final.buildings["paddy_field"] >= 1
    assert result.final.lifetime["rice"] > 100
    assert all(v >= 0 for v in result.final.resources.values())


def test_unlock_chain():
    game = create_game(define_catalog(), seed=0, clock=lambda: 0.0)
    state = game.state
    assert state.is_building_unlocked("paddy_field")
    assert not state.is_building_unlocked("family_worker")
    assert not state.is_building_unlocked("buffalo")

    game.click("rice", 1000)
    game.tick(100)
    assert state.is_building_unlocked("family_worker")

    assert game.purchase("paddy_field", 3)
    game.tick(100)
    assert state.is_building_unlocked("well")
    assert not state.is_building_unlocked("buffalo")

    assert game.purchase("well")
    game.tick(100)
    assert state.is_building_unlocked("buffalo")


def test_buffalo_tiered_cost():
    game = create_game(define_catalog(), seed=0, clock=lambda: 0.0)
    assert game.engine.calculate_cost("buffalo", 1) == {"rice": 1000.0}
    # Owned 0..4 cost 1x, owned 5 jumps to 2x
    assert game.engine.calculate_cost("buffalo", 6) == {"rice": 7000.0}


def test_family_worker_is_capped():
    game = create_game(define_catalog(), seed=0, clock=lambda: 0.0)
    game.click("rice", 1_000_000)
    game.tick(100)
    assert game.purchase("family_worker", 50)
    assert game.state.building_owned("family_worker") == 10
    assert not game.purchase("family_worker")


def test_rice_offline_parity():
    report = offline_parity(
        define_catalog(), {"paddy_field": 5, "family_worker": 2, "well": 1}, duration_s=600
    )
    assert report.ok, f"max relative diff {report.max_rel_diff}"


def test_lotus_tokens_survive_prestige():
    store = MemorySaveStore()
    game = create_game(define_catalog(), store, seed=0, clock=lambda: 0.0)
    game.click("lotus_tokens", 4)
    game.click("rice", 500)
    game.prestige()

    assert game.state.resource_amount("lotus_tokens") == 4
    assert game.state.resource_amount("rice") == 60
    assert game.state.prestige_level == 1


def test_better_seeds_and_buffalo_synergy():
    game = create_game(define_catalog(), seed=0, clock=lambda: 0.0)
    game.click("rice", 2000)
    game.purchase("paddy_field")
    base_rate = game.engine.get_production_rate("rice")

    assert [u.id for u in game.upgrades.available_upgrades()] == ["better_seeds"]
    assert game.purchase_upgrade("better_seeds")
    assert game.multipliers.get_value("paddy_production") == pytest.approx(1.25)
    assert game.engine.get_production_rate("rice") == pytest.approx(base_rate * 1.25)

    game.state.add_buildings("buffalo", 2)
    game.upgrades.sync()
    assert game.multipliers.get_value("paddy_production") == pytest.approx(1.45)
