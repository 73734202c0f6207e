"""Tests for requirement module."""
import pytest

from idleeconomy.building import BuildingDef
from idleeconomy.catalog import Catalog
from idleeconomy.requirement import (
    Req,
    Requirement,
    RequirementRegistry,
)
from idleeconomy.resource import ResourceDef
from idleeconomy.state import GameState


def _make_state() -> GameState:
    catalog = Catalog(
        name="Test",
        resources=[ResourceDef("rice", initial_amount=0)],
        buildings=[BuildingDef("paddy_field"), BuildingDef("buffalo")],
    )
    state = GameState(catalog)
    state.change_resource("rice", 500)
    state.change_resource("rice", -400)
    state.add_buildings("paddy_field", 3)
    return state


def test_resource_lifetime_vs_current():
    state = _make_state()
    assert Req.resource_lifetime("rice", 500).evaluate(state)
    assert not Req.resource_current("rice", 500).evaluate(state)
    assert Req.resource_current("rice", 100).evaluate(state)


def test_building_owned():
    state = _make_state()
    assert Req.building_owned("paddy_field", 3).evaluate(state)
    assert not Req.building_owned("paddy_field", 4).evaluate(state)
    assert not Req.building_owned("buffalo").evaluate(state)


def test_upgrade_purchased():
    state = _make_state()
    req = Req.upgrade_purchased("iron_sickle")
    assert not req.evaluate(state)
    state.purchase_upgrade("iron_sickle")
    assert req.evaluate(state)


def test_era_and_prestige():
    state = _make_state()
    assert Req.era_reached(1).evaluate(state)
    assert not Req.era_reached(2).evaluate(state)
    state.era = 2
    assert Req.era_reached(2).evaluate(state)
    assert not Req.prestige_level(1).evaluate(state)
    state.prestige_level = 1
    assert Req.prestige_level(1).evaluate(state)


def test_clicks_and_play_time():
    state = _make_state()
    state.statistics.total_clicks = 25
    state.statistics.total_play_time_ms = 60_000
    assert Req.total_clicks(25).evaluate(state)
    assert not Req.total_clicks(26).evaluate(state)
    assert Req.play_time(60_000).evaluate(state)


def test_progress_ratio():
    state = _make_state()
    assert Req.building_owned("paddy_field", 6).progress(state) == pytest.approx(0.5)
    assert Req.building_owned("paddy_field", 2).progress(state) == 1.0
    assert Req.upgrade_purchased("iron_sickle").progress(state) == 0.0


def test_all_and_any():
    state = _make_state()
    met = Req.building_owned("paddy_field", 1)
    unmet = Req.building_owned("buffalo", 1)
    assert Req.all(met, met).evaluate(state)
    assert not Req.all(met, unmet).evaluate(state)
    assert Req.any(unmet, met).evaluate(state)
    assert (met & met).evaluate(state)
    assert (unmet | met).evaluate(state)
    assert Req.all(met, unmet).progress(state) == pytest.approx(0.5)
    assert Req.any(met, unmet).progress(state) == 1.0


def test_custom():
    state = _make_state()
    assert Req.custom(lambda s: s.building_owned("paddy_field") == 3).evaluate(state)


def test_from_config():
    state = _make_state()
    req = Req.from_config({
        "type": "all",
        "params": {
            "requirements": [
                {"type": "resource_lifetime", "params": {"resource": "rice", "amount": 100}},
                {"type": "building_owned", "params": {"building": "paddy_field", "count": 3}},
            ]
        },
        "description": "Harvest 100 rice and own 3 paddies",
    })
    assert req.evaluate(state)
    assert req.description == "Harvest 100 rice and own 3 paddies"


def test_from_config_play_time_and_prestige():
    state = _make_state()
    state.statistics.total_play_time_ms = 5000
    assert Req.from_config({"type": "play_time", "params": {"milliseconds": 5000}}).evaluate(state)
    assert not Req.from_config({"type": "prestige_level", "params": {"level": 1}}).evaluate(state)


def test_unregistered_type_is_unmet():
    state = _make_state()
    req = Req.from_config({"type": "moon_phase", "params": {}})
    assert req.evaluate(state) is False


class _AlwaysRequirement(Requirement):
    def evaluate(self, state):
        return True


def test_registry_starts_with_builtins():
    types = RequirementRegistry().types()
    assert "resource_lifetime" in types
    assert "all" in types


def test_register_requirement():
    registry = RequirementRegistry()
    registry.register("test_always", lambda params, _: _AlwaysRequirement())
    assert "test_always" in registry.types()
    assert registry.create({"type": "test_always"}).evaluate(_make_state())
    assert Req.from_config({"type": "test_always"}, registry).evaluate(_make_state())


def test_registries_are_independent():
    first = RequirementRegistry()
    first.register("test_always", lambda params, _: _AlwaysRequirement())
    second = RequirementRegistry()
    assert "test_always" not in second.types()
    assert second.create({"type": "test_always"}).evaluate(_make_state()) is False
    # Without a registry only built-in types load
    assert Req.from_config({"type": "test_always"}).evaluate(_make_state()) is False


def test_custom_type_nested_in_composite():
    registry = RequirementRegistry()
    registry.register("test_always", lambda params, _: _AlwaysRequirement())
    req = registry.create({
        "type": "all",
        "params": {"requirements": [{"type": "test_always"}, {"type": "test_always"}]},
    })
    assert req.evaluate(_make_state())


def test_catalog_from_dict_uses_given_registry():
    registry = RequirementRegistry()
    registry.register("test_always", lambda params, _: _AlwaysRequirement())
    catalog = Catalog.from_dict(
        {
            "resources": [{"id": "rice"}],
            "buildings": [{"id": "hut", "unlockRequirements": [{"type": "test_always"}]}],
        },
        requirements=registry,
    )
    assert catalog.requirement_types is registry
    hut = catalog.get_building("hut")
    assert hut.unlock_requirements[0].evaluate(GameState(catalog))
