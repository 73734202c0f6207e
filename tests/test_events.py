"""Tests for events module."""
from idleeconomy.events import EventBus, GameEvent


def test_on_and_emit():
    bus = EventBus()
    seen = []
    bus.on(GameEvent.RESOURCE_CHANGED, seen.append)
    bus.emit(GameEvent.RESOURCE_CHANGED, {"resource_id": "rice"})
    assert seen == [{"resource_id": "rice"}]


def test_emit_without_payload():
    bus = EventBus()
    seen = []
    bus.on(GameEvent.GAME_START, seen.append)
    bus.emit(GameEvent.GAME_START)
    assert seen == [{}]


def test_unsubscribe():
    bus = EventBus()
    seen = []
    off = bus.on(GameEvent.GAME_TICK, seen.append)
    off()
    bus.emit(GameEvent.GAME_TICK, {"delta_ms": 100})
    assert seen == []
    assert bus.subscriber_count(GameEvent.GAME_TICK) == 0


def test_once_fires_once():
    bus = EventBus()
    seen = []
    bus.once(GameEvent.GAME_SAVE, seen.append)
    bus.emit(GameEvent.GAME_SAVE, {"n": 1})
    bus.emit(GameEvent.GAME_SAVE, {"n": 2})
    assert seen == [{"n": 1}]


def test_handler_error_is_isolated():
    bus = EventBus()
    seen = []

    def broken(_payload):
        raise RuntimeError("boom")

    bus.on(GameEvent.BUILDING_PURCHASED, broken)
    bus.on(GameEvent.BUILDING_PURCHASED, seen.append)
    bus.emit(GameEvent.BUILDING_PURCHASED, {"building_id": "paddy_field"})
    assert seen == [{"building_id": "paddy_field"}]


def test_clear():
    bus = EventBus()
    bus.on(GameEvent.GAME_TICK, lambda p: None)
    bus.on(GameEvent.GAME_SAVE, lambda p: None)
    bus.clear(GameEvent.GAME_TICK)
    assert bus.subscriber_count(GameEvent.GAME_TICK) == 0
    assert bus.subscriber_count(GameEvent.GAME_SAVE) == 1
    bus.clear()
    assert bus.subscriber_count(GameEvent.GAME_SAVE) == 0


def test_scope_dispose_removes_all():
    bus = EventBus()
    scope = bus.scope()
    scope.subscribe(GameEvent.GAME_TICK, lambda p: None)
    scope.subscribe(GameEvent.GAME_PAUSE, lambda p: None)
    assert scope.count == 2
    scope.dispose()
    assert scope.count == 0
    assert bus.subscriber_count(GameEvent.GAME_TICK) == 0
    assert bus.subscriber_count(GameEvent.GAME_PAUSE) == 0


def test_scope_context_manager():
    bus = EventBus()
    seen = []
    with bus.scope() as scope:
        scope.subscribe(GameEvent.GAME_TICK, seen.append)
        bus.emit(GameEvent.GAME_TICK, {"delta_ms": 1})
    bus.emit(GameEvent.GAME_TICK, {"delta_ms": 2})
    assert seen == [{"delta_ms": 1}]


def test_scope_add_external_handle():
    bus = EventBus()
    scope = bus.scope()
    scope.add(bus.on(GameEvent.GAME_LOAD, lambda p: None))
    scope.dispose()
    assert bus.subscriber_count(GameEvent.GAME_LOAD) == 0


def test_repeated_components_do_not_leak():
    bus = EventBus()
    for _ in range(10):
        with bus.scope() as scope:
            scope.subscribe(GameEvent.MULTIPLIER_CHANGED, lambda p: None)
    assert bus.subscriber_count(GameEvent.MULTIPLIER_CHANGED) == 0


def test_event_values():
    assert GameEvent.BUILDING_MAXED.value == "building:maxed"
    assert GameEvent("offline:progress") is GameEvent.OFFLINE_PROGRESS
