from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

from idleeconomy._types import Clock, now_ms
from idleeconomy.condition import Cond, Condition, ConditionContext
from idleeconomy.events import EventBus, GameEvent

logger = logging.getLogger(__name__)


class StackType(Enum):
    ADDITIVE = "additive"
    MULTIPLICATIVE = "multiplicative"
    DIMINISHING = "diminishing"


@dataclass(frozen=True)
class MultiplierStackDef:
    """Static definition of a named multiplier stack."""

    id: str
    stack_type: StackType = StackType.MULTIPLICATIVE
    base_value: float = 1.0
    min_value: float | None = None
    max_value: float | None = None
    name: str = ""

    @classmethod
    def from_config(cls, data: Mapping[str, Any]) -> MultiplierStackDef:
        return cls(
            id=data["id"],
            stack_type=StackType(data.get("stackType", data.get("stack_type", "multiplicative"))),
            base_value=data.get("baseValue", data.get("base_value", 1.0)),
            min_value=data.get("minValue", data.get("min_value")),
            max_value=data.get("maxValue", data.get("max_value")),
            name=data.get("name", ""),
        )


@dataclass
class ActiveMultiplier:
    """One bonus or penalty contributing to a stack."""

    source_id: str
    value: float
    expires_at: float | None = None
    condition: Condition | None = None
    source_name: str = ""

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now


@dataclass(frozen=True)
class StackBreakdown:
    stack_id: str
    base_value: float
    value: float
    sources: list[tuple[str, float]] = field(default_factory=list)


def combine(stack_type: StackType, base: float, values: list[float]) -> float:
    """Aggregate entry values under a stacking mode.

    additive:       base + sum(values)
    multiplicative: base * prod(values)
    diminishing:    base + S / (1 + S), S = max(0, sum(values)); bounded by base + 1
    """
    if not values:
        return base
    if stack_type is StackType.ADDITIVE:
        return base + math.fsum(values)
    if stack_type is StackType.MULTIPLICATIVE:
        return base * math.prod(values)
    if stack_type is StackType.DIMINISHING:
        total = max(0.0, math.fsum(values))
        return base + total / (1.0 + total)
    return base


@dataclass
class _Stack:
    definition: MultiplierStackDef
    entries: list[ActiveMultiplier] = field(default_factory=list)
    value: float = 1.0
    dirty: bool = True
    # Earliest expiry among entries counted in ``value``
    valid_until: float | None = None


class MultiplierAggregator:
    """Holds multiplier stacks and serves cached aggregate values."""

    def __init__(
        self,
        stacks: Iterable[MultiplierStackDef] = (),
        events: EventBus | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self.events = events
        self._clock = clock
        self._stacks: dict[str, _Stack] = {}
        self._context = ConditionContext()
        self._warned: set[str] = set()
        for definition in stacks:
            self.register_stack(definition)

    # ── Stacks ───────────────────────────────────────────────────────

    def register_stack(self, definition: MultiplierStackDef) -> None:
        self._stacks[definition.id] = _Stack(definition, value=definition.base_value)

    def has_stack(self, stack_id: str) -> bool:
        return stack_id in self._stacks

    def stack_ids(self) -> list[str]:
        return list(self._stacks)

    # ── Mutation ─────────────────────────────────────────────────────

    def add_multiplier(self, stack_id: str, entry: ActiveMultiplier) -> bool:
        """Add (or replace, by source id) an entry. Returns False for unknown stacks."""
        stack = self._stacks.get(stack_id)
        if stack is None:
            logger.warning("Cannot add %r to unknown stack %r", entry.source_id, stack_id)
            return False

        old_value = self.get_value(stack_id)
        stack.entries = [e for e in stack.entries if e.source_id != entry.source_id]
        stack.entries.append(entry)
        stack.dirty = True
        new_value = self.get_value(stack_id)

        self._emit(GameEvent.MULTIPLIER_ADDED, {
            "stack_id": stack_id,
            "source_id": entry.source_id,
            "value": entry.value,
        })
        self._emit_changed(stack_id, old_value, new_value)
        return True

    def add_temporary(
        self,
        stack_id: str,
        source_id: str,
        value: float,
        duration_ms: float,
        condition: Condition | None = None,
        source_name: str = "",
    ) -> bool:
        """Add an entry that expires *duration_ms* from now."""
        entry = ActiveMultiplier(
            source_id=source_id,
            value=value,
            expires_at=self._clock() + duration_ms,
            condition=condition,
            source_name=source_name,
        )
        return self.add_multiplier(stack_id, entry)

    def remove_multiplier(self, stack_id: str, source_id: str) -> bool:
        stack = self._stacks.get(stack_id)
        if stack is None:
            return False
        remaining = [e for e in stack.entries if e.source_id != source_id]
        if len(remaining) == len(stack.entries):
            return False

        old_value = self.get_value(stack_id)
        stack.entries = remaining
        stack.dirty = True
        new_value = self.get_value(stack_id)

        self._emit(GameEvent.MULTIPLIER_REMOVED, {
            "stack_id": stack_id,
            "source_id": source_id,
        })
        self._emit_changed(stack_id, old_value, new_value)
        return True

    def process_expired(self, now: float | None = None) -> list[str]:
        """Purge entries whose expiry has passed. Returns purged source ids."""
        current = self._clock() if now is None else now
        purged: list[str] = []
        for stack_id, stack in self._stacks.items():
            expired = [e for e in stack.entries if e.is_expired(current)]
            if not expired:
                continue
            # Value as it stood while the expired entries still counted
            old_value = self._aggregate(stack.definition, [
                e.value for e in stack.entries
                if e.condition is None or e.condition.evaluate(self._context)
            ])
            stack.entries = [e for e in stack.entries if not e.is_expired(current)]
            stack.dirty = True
            new_value = self._recalculate(stack, current)
            for entry in expired:
                purged.append(entry.source_id)
                self._emit(GameEvent.MULTIPLIER_REMOVED, {
                    "stack_id": stack_id,
                    "source_id": entry.source_id,
                })
            self._emit_changed(stack_id, old_value, new_value)
        return purged

    def update_condition_context(self, context: ConditionContext) -> None:
        """Replace the condition context and refresh stacks with conditional entries."""
        if context == self._context:
            return
        self._context = context
        now = self._clock()
        for stack_id, stack in self._stacks.items():
            if not any(e.condition is not None for e in stack.entries):
                continue
            old_value = stack.value
            stack.dirty = True
            new_value = self._recalculate(stack, now)
            self._emit_changed(stack_id, old_value, new_value)

    @property
    def condition_context(self) -> ConditionContext:
        return self._context

    # ── Queries ──────────────────────────────────────────────────────

    def get_value(self, stack_id: str) -> float:
        """Aggregate value of a stack; unknown stacks are neutral (1)."""
        stack = self._stacks.get(stack_id)
        if stack is None:
            if stack_id not in self._warned:
                self._warned.add(stack_id)
                logger.warning("Unknown multiplier stack %r, using 1", stack_id)
            return 1.0

        now = self._clock()
        if stack.dirty or (stack.valid_until is not None and now >= stack.valid_until):
            self._recalculate(stack, now)
        return stack.value

    def get_breakdown(self, stack_id: str) -> StackBreakdown:
        stack = self._stacks.get(stack_id)
        if stack is None:
            return StackBreakdown(stack_id, 1.0, 1.0)
        now = self._clock()
        active = self._active_entries(stack, now)
        return StackBreakdown(
            stack_id=stack_id,
            base_value=stack.definition.base_value,
            value=self.get_value(stack_id),
            sources=[(e.source_name or e.source_id, e.value) for e in active],
        )

    def entries(self, stack_id: str) -> list[ActiveMultiplier]:
        stack = self._stacks.get(stack_id)
        return list(stack.entries) if stack else []

    # ── Private helpers ──────────────────────────────────────────────

    def _active_entries(self, stack: _Stack, now: float) -> list[ActiveMultiplier]:
        return [
            e for e in stack.entries
            if not e.is_expired(now)
            and (e.condition is None or e.condition.evaluate(self._context))
        ]

    def _recalculate(self, stack: _Stack, now: float) -> float:
        active = self._active_entries(stack, now)
        value = self._aggregate(stack.definition, [e.value for e in active])

        expiries = [e.expires_at for e in active if e.expires_at is not None]
        stack.valid_until = min(expiries) if expiries else None
        stack.value = value
        stack.dirty = False
        return value

    @staticmethod
    def _aggregate(defn: MultiplierStackDef, values: list[float]) -> float:
        value = combine(defn.stack_type, defn.base_value, values)
        if defn.min_value is not None:
            value = max(defn.min_value, value)
        if defn.max_value is not None:
            value = min(defn.max_value, value)
        return value

    def _emit(self, event: GameEvent, payload: dict[str, Any]) -> None:
        if self.events is not None:
            self.events.emit(event, payload)

    def _emit_changed(self, stack_id: str, old_value: float, new_value: float) -> None:
        if old_value == new_value:
            return
        self._emit(GameEvent.MULTIPLIER_CHANGED, {
            "stack_id": stack_id,
            "old_value": old_value,
            "new_value": new_value,
        })


def multiplier_from_config(data: Mapping[str, Any]) -> ActiveMultiplier:
    condition = data.get("condition")
    return ActiveMultiplier(
        source_id=data["sourceId"] if "sourceId" in data else data["source_id"],
        value=float(data["value"]),
        expires_at=data.get("expiresAt", data.get("expires_at")),
        condition=Cond.from_config(condition) if condition else None,
        source_name=data.get("sourceName", data.get("source_name", "")),
    )
