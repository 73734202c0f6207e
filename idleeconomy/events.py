from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

Payload = dict[str, Any]
Handler = Callable[[Payload], None]
Unsubscribe = Callable[[], None]


class GameEvent(str, Enum):
    GAME_TICK = "game:tick"
    GAME_START = "game:start"
    GAME_PAUSE = "game:pause"
    GAME_RESUME = "game:resume"
    GAME_SAVE = "game:save"
    GAME_LOAD = "game:load"

    RESOURCE_CHANGED = "resource:changed"

    BUILDING_PURCHASED = "building:purchased"
    BUILDING_UNLOCKED = "building:unlocked"
    BUILDING_MAXED = "building:maxed"
    BUILDING_PRODUCTION = "building:production"

    UPGRADE_PURCHASED = "upgrade:purchased"

    MULTIPLIER_ADDED = "multiplier:added"
    MULTIPLIER_REMOVED = "multiplier:removed"
    MULTIPLIER_CHANGED = "multiplier:changed"

    OFFLINE_PROGRESS = "offline:progress"
    PRESTIGE_EXECUTED = "prestige:executed"


@dataclass
class _Subscription:
    id: int
    handler: Handler
    once: bool


class EventBus:
    """Publish/subscribe hub owned by a single game instance."""

    def __init__(self) -> None:
        self._subs: dict[GameEvent, list[_Subscription]] = {}
        self._next_id = 1

    def on(self, event: GameEvent, handler: Handler) -> Unsubscribe:
        """Subscribe; returns a callable that removes the subscription."""
        return self._add(event, handler, once=False)

    def once(self, event: GameEvent, handler: Handler) -> Unsubscribe:
        return self._add(event, handler, once=True)

    def emit(self, event: GameEvent, payload: Payload | None = None) -> None:
        subs = self._subs.get(event)
        if not subs:
            return
        data = payload if payload is not None else {}
        fired_once: list[int] = []
        # Iterate over a copy so handlers may subscribe or unsubscribe
        for sub in list(subs):
            try:
                sub.handler(data)
            except Exception:
                logger.exception("Handler for %s raised", event.value)
            if sub.once:
                fired_once.append(sub.id)
        if fired_once:
            self._subs[event] = [
                s for s in self._subs.get(event, []) if s.id not in fired_once
            ]

    def subscriber_count(self, event: GameEvent) -> int:
        return len(self._subs.get(event, []))

    def clear(self, event: GameEvent | None = None) -> None:
        if event is None:
            self._subs.clear()
        else:
            self._subs.pop(event, None)

    def scope(self) -> SubscriptionScope:
        return SubscriptionScope(self)

    def _add(self, event: GameEvent, handler: Handler, once: bool) -> Unsubscribe:
        sub_id = self._next_id
        self._next_id += 1
        self._subs.setdefault(event, []).append(_Subscription(sub_id, handler, once))

        def _unsubscribe() -> None:
            subs = self._subs.get(event)
            if subs:
                self._subs[event] = [s for s in subs if s.id != sub_id]

        return _unsubscribe


class SubscriptionScope:
    """Subscriptions tied to the lifetime of one component.

    ``dispose()`` (or leaving a ``with`` block) removes every subscription
    made through the scope.
    """

    def __init__(self, bus: EventBus) -> None:
        self.bus = bus
        self._unsubscribers: list[Unsubscribe] = []

    def subscribe(self, event: GameEvent, handler: Handler) -> None:
        self._unsubscribers.append(self.bus.on(event, handler))

    def add(self, unsubscribe: Unsubscribe) -> None:
        self._unsubscribers.append(unsubscribe)

    def dispose(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    @property
    def count(self) -> int:
        return len(self._unsubscribers)

    def __enter__(self) -> SubscriptionScope:
        return self

    def __exit__(self, *exc: object) -> None:
        self.dispose()
