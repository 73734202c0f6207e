from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConditionContext:
    """Snapshot of game facts that multiplier conditions may test."""

    resources: Mapping[str, float] = field(default_factory=dict)
    buildings: Mapping[str, int] = field(default_factory=dict)
    upgrades: frozenset[str] = frozenset()
    era: int = 1
    prestige_level: int = 0
    current_hour: int = 0
    active_events: frozenset[str] = frozenset()


class Condition(ABC):
    """Predicate over a ConditionContext gating a multiplier entry."""

    @abstractmethod
    def evaluate(self, ctx: ConditionContext) -> bool: ...

    def __and__(self, other: Condition) -> Condition:
        return _AllCondition([self, other])

    def __or__(self, other: Condition) -> Condition:
        return _AnyCondition([self, other])

    def __invert__(self) -> Condition:
        return _NotCondition(self)


# ── Private implementations ──────────────────────────────────────────


class _ResourceAtLeast(Condition):
    def __init__(self, resource_id: str, value: float) -> None:
        self.resource_id = resource_id
        self.value = value

    def evaluate(self, ctx: ConditionContext) -> bool:
        return ctx.resources.get(self.resource_id, 0.0) >= self.value


class _ResourceAtMost(Condition):
    def __init__(self, resource_id: str, value: float) -> None:
        self.resource_id = resource_id
        self.value = value

    def evaluate(self, ctx: ConditionContext) -> bool:
        return ctx.resources.get(self.resource_id, 0.0) <= self.value


class _BuildingOwned(Condition):
    def __init__(self, building_id: str, count: int) -> None:
        self.building_id = building_id
        self.count = count

    def evaluate(self, ctx: ConditionContext) -> bool:
        return ctx.buildings.get(self.building_id, 0) >= self.count


class _UpgradePurchased(Condition):
    def __init__(self, upgrade_id: str) -> None:
        self.upgrade_id = upgrade_id

    def evaluate(self, ctx: ConditionContext) -> bool:
        return self.upgrade_id in ctx.upgrades


class _EraAtLeast(Condition):
    def __init__(self, era: int) -> None:
        self.era = era

    def evaluate(self, ctx: ConditionContext) -> bool:
        return ctx.era >= self.era


class _EraEquals(Condition):
    def __init__(self, era: int) -> None:
        self.era = era

    def evaluate(self, ctx: ConditionContext) -> bool:
        return ctx.era == self.era


class _TimeOfDay(Condition):
    def __init__(self, start_hour: int, end_hour: int) -> None:
        self.start_hour = start_hour
        self.end_hour = end_hour

    def evaluate(self, ctx: ConditionContext) -> bool:
        hour = ctx.current_hour
        if self.start_hour <= self.end_hour:
            return self.start_hour <= hour < self.end_hour
        # Overnight range, e.g. 22 -> 6
        return hour >= self.start_hour or hour < self.end_hour


class _EventActive(Condition):
    def __init__(self, event_id: str) -> None:
        self.event_id = event_id

    def evaluate(self, ctx: ConditionContext) -> bool:
        return self.event_id in ctx.active_events


class _PrestigeLevel(Condition):
    def __init__(self, level: int) -> None:
        self.level = level

    def evaluate(self, ctx: ConditionContext) -> bool:
        return ctx.prestige_level >= self.level


class _AllCondition(Condition):
    def __init__(self, conds: list[Condition]) -> None:
        self.conds = conds

    def evaluate(self, ctx: ConditionContext) -> bool:
        return all(c.evaluate(ctx) for c in self.conds)


class _AnyCondition(Condition):
    def __init__(self, conds: list[Condition]) -> None:
        self.conds = conds

    def evaluate(self, ctx: ConditionContext) -> bool:
        return any(c.evaluate(ctx) for c in self.conds)


class _NotCondition(Condition):
    def __init__(self, cond: Condition) -> None:
        self.cond = cond

    def evaluate(self, ctx: ConditionContext) -> bool:
        return not self.cond.evaluate(ctx)


class _UnknownCondition(Condition):
    def __init__(self, type_name: str) -> None:
        self.type_name = type_name

    def evaluate(self, ctx: ConditionContext) -> bool:
        logger.warning("Unknown condition type %r, treating as unmet", self.type_name)
        return False


# ── Public factory ───────────────────────────────────────────────────


class Cond:
    """Factory for multiplier conditions."""

    @staticmethod
    def resource_gte(resource_id: str, value: float) -> Condition:
        return _ResourceAtLeast(resource_id, value)

    @staticmethod
    def resource_lte(resource_id: str, value: float) -> Condition:
        return _ResourceAtMost(resource_id, value)

    @staticmethod
    def building_owned(building_id: str, count: int = 1) -> Condition:
        return _BuildingOwned(building_id, count)

    @staticmethod
    def upgrade_purchased(upgrade_id: str) -> Condition:
        return _UpgradePurchased(upgrade_id)

    @staticmethod
    def era_gte(era: int) -> Condition:
        return _EraAtLeast(era)

    @staticmethod
    def era_eq(era: int) -> Condition:
        return _EraEquals(era)

    @staticmethod
    def time_of_day(start_hour: int = 0, end_hour: int = 24) -> Condition:
        return _TimeOfDay(start_hour, end_hour)

    @staticmethod
    def event_active(event_id: str) -> Condition:
        return _EventActive(event_id)

    @staticmethod
    def prestige_level(level: int) -> Condition:
        return _PrestigeLevel(level)

    @staticmethod
    def all(*conds: Condition) -> Condition:
        return _AllCondition(list(conds))

    @staticmethod
    def any(*conds: Condition) -> Condition:
        return _AnyCondition(list(conds))

    @staticmethod
    def negate(cond: Condition) -> Condition:
        return _NotCondition(cond)

    @staticmethod
    def from_config(data: Mapping[str, Any]) -> Condition:
        """Build a condition from ``{"type": ..., "params": {...}}``."""
        kind = data.get("type", "")
        p = data.get("params", {})
        if kind == "resource_gte":
            return _ResourceAtLeast(p["resource"], p.get("value", 0))
        if kind == "resource_lte":
            return _ResourceAtMost(p["resource"], p.get("value", 0))
        if kind == "building_owned":
            return _BuildingOwned(p["building"], p.get("count", 1))
        if kind == "upgrade_purchased":
            return _UpgradePurchased(p["upgrade"])
        if kind == "era_gte":
            return _EraAtLeast(p.get("era", 1))
        if kind == "era_eq":
            return _EraEquals(p.get("era", 1))
        if kind == "time_of_day":
            return _TimeOfDay(p.get("startHour", 0), p.get("endHour", 24))
        if kind == "event_active":
            return _EventActive(p["event"])
        if kind == "prestige_level":
            return _PrestigeLevel(p.get("value", 0))
        if kind == "and":
            return _AllCondition([Cond.from_config(c) for c in p.get("conditions", [])])
        if kind == "or":
            return _AnyCondition([Cond.from_config(c) for c in p.get("conditions", [])])
        if kind == "not":
            return _NotCondition(Cond.from_config(p["condition"]))
        return _UnknownCondition(kind)
