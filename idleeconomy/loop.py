from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from idleeconomy._types import Clock, monotonic_ms
from idleeconomy.events import EventBus, GameEvent

logger = logging.getLogger(__name__)


@dataclass
class LoopStatus:
    running: bool = False
    paused: bool = False
    total_time_ms: float = 0.0
    tick_count: int = 0
    last_tick_time: float = 0.0
    visible: bool = True


class GameLoop:
    """Cooperative scheduler turning wall-clock gaps into tick deltas.

    Pausing never touches game state; resuming resets the time basis so
    the paused interval is not replayed as one huge tick.
    """

    def __init__(
        self,
        on_tick: Callable[[float], None],
        tick_ms: float = 100.0,
        idle_tick_ms: float = 1000.0,
        time_multiplier: float = 1.0,
        clock: Clock = monotonic_ms,
        events: EventBus | None = None,
    ) -> None:
        self.on_tick = on_tick
        self.tick_ms = tick_ms
        self.idle_tick_ms = idle_tick_ms
        self.time_multiplier = time_multiplier
        self.clock = clock
        self.events = events
        self.status = LoopStatus()

    @property
    def running(self) -> bool:
        return self.status.running

    @property
    def paused(self) -> bool:
        return self.status.paused

    @property
    def visible(self) -> bool:
        return self.status.visible

    @property
    def interval_ms(self) -> float:
        """Scheduling interval: ``tick_ms`` in the foreground, ``idle_tick_ms`` behind."""
        return self.tick_ms if self.status.visible else self.idle_tick_ms

    def set_visible(self, visible: bool) -> None:
        if visible == self.status.visible:
            return
        self.status.visible = visible
        logger.debug("Loop %s", "visible" if visible else "hidden")

    def set_time_multiplier(self, multiplier: float) -> None:
        self.time_multiplier = max(1.0, multiplier)
        logger.info("Time multiplier set to %sx", self.time_multiplier)

    def start(self) -> None:
        if self.status.running:
            return
        self.status.running = True
        self.status.paused = False
        self.status.last_tick_time = self.clock()
        self._emit(GameEvent.GAME_START, {})

    def stop(self) -> None:
        self.status.running = False

    def pause(self) -> None:
        if not self.status.running or self.status.paused:
            return
        self.status.paused = True
        self._emit(GameEvent.GAME_PAUSE, {})

    def resume(self) -> None:
        if not self.status.running or not self.status.paused:
            return
        self.status.paused = False
        self.status.last_tick_time = self.clock()
        self._emit(GameEvent.GAME_RESUME, {})

    def step(self) -> float:
        """Run one tick for the time since the last one. Returns the delta used."""
        if not self.status.running or self.status.paused:
            return 0.0

        now = self.clock()
        real_delta = now - self.status.last_tick_time
        self.status.last_tick_time = now
        delta_ms = real_delta * self.time_multiplier
        if delta_ms <= 0:
            return 0.0

        try:
            self.on_tick(delta_ms)
        except Exception:
            logger.exception("Tick of %.1f ms failed", delta_ms)
            return 0.0

        self.status.total_time_ms += delta_ms
        self.status.tick_count += 1
        return delta_ms

    def run(
        self,
        duration_s: float,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Block for *duration_s* of clock time, stepping every ``interval_ms``."""
        self.start()
        deadline = self.clock() + duration_s * 1000.0
        while self.status.running and self.clock() < deadline:
            sleep(self.interval_ms / 1000.0)
            self.step()

    def _emit(self, event: GameEvent, payload: dict) -> None:
        if self.events is not None:
            self.events.emit(event, payload)
