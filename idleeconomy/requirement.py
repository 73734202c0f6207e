from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Callable, Mapping

from idleeconomy._types import compare

if TYPE_CHECKING:
    from idleeconomy.state import GameState

logger = logging.getLogger(__name__)


class Requirement(ABC):
    """Base class for unlock requirements: boolean conditions on game state."""

    description: str = ""

    @abstractmethod
    def evaluate(self, state: GameState) -> bool: ...

    def progress(self, state: GameState) -> float:
        """Fraction in [0, 1] of the way to being met."""
        return 1.0 if self.evaluate(state) else 0.0

    def __and__(self, other: Requirement) -> Requirement:
        return _AllRequirement([self, other])

    def __or__(self, other: Requirement) -> Requirement:
        return _AnyRequirement([self, other])


def _ratio(value: float, threshold: float) -> float:
    if threshold <= 0:
        return 1.0
    return max(0.0, min(1.0, value / threshold))


# ── Private implementations ──────────────────────────────────────────


class _ThresholdRequirement(Requirement):
    """Requirement of the form ``measure(state) >= threshold``."""

    def __init__(self, threshold: float, op: str = ">=") -> None:
        self.threshold = threshold
        self.op = op

    @abstractmethod
    def measure(self, state: GameState) -> float: ...

    def evaluate(self, state: GameState) -> bool:
        return compare(self.measure(state), self.op, self.threshold)

    def progress(self, state: GameState) -> float:
        if self.evaluate(state):
            return 1.0
        return _ratio(self.measure(state), self.threshold)


class _ResourceLifetimeRequirement(_ThresholdRequirement):
    def __init__(self, resource_id: str, amount: float) -> None:
        super().__init__(amount)
        self.resource_id = resource_id

    def measure(self, state: GameState) -> float:
        return state.resource_lifetime(self.resource_id)


class _ResourceCurrentRequirement(_ThresholdRequirement):
    def __init__(self, resource_id: str, amount: float) -> None:
        super().__init__(amount)
        self.resource_id = resource_id

    def measure(self, state: GameState) -> float:
        return state.resource_amount(self.resource_id)


class _BuildingOwnedRequirement(_ThresholdRequirement):
    def __init__(self, building_id: str, count: int) -> None:
        super().__init__(count)
        self.building_id = building_id

    def measure(self, state: GameState) -> float:
        return state.building_owned(self.building_id)


class _EraReachedRequirement(_ThresholdRequirement):
    def measure(self, state: GameState) -> float:
        return state.era


class _PrestigeLevelRequirement(_ThresholdRequirement):
    def measure(self, state: GameState) -> float:
        return state.prestige_level


class _TotalClicksRequirement(_ThresholdRequirement):
    def measure(self, state: GameState) -> float:
        return state.statistics.total_clicks


class _PlayTimeRequirement(_ThresholdRequirement):
    def measure(self, state: GameState) -> float:
        return state.statistics.total_play_time_ms


class _UpgradePurchasedRequirement(Requirement):
    def __init__(self, upgrade_id: str) -> None:
        self.upgrade_id = upgrade_id

    def evaluate(self, state: GameState) -> bool:
        return state.has_upgrade(self.upgrade_id)


class _AllRequirement(Requirement):
    def __init__(self, reqs: list[Requirement]) -> None:
        self.reqs = reqs

    def evaluate(self, state: GameState) -> bool:
        return all(r.evaluate(state) for r in self.reqs)

    def progress(self, state: GameState) -> float:
        if not self.reqs:
            return 1.0
        return sum(r.progress(state) for r in self.reqs) / len(self.reqs)


class _AnyRequirement(Requirement):
    def __init__(self, reqs: list[Requirement]) -> None:
        self.reqs = reqs

    def evaluate(self, state: GameState) -> bool:
        return any(r.evaluate(state) for r in self.reqs)

    def progress(self, state: GameState) -> float:
        return max((r.progress(state) for r in self.reqs), default=0.0)


class _CustomRequirement(Requirement):
    def __init__(self, fn: Callable[[GameState], bool]) -> None:
        self.fn = fn

    def evaluate(self, state: GameState) -> bool:
        return self.fn(state)


class _UnregisteredRequirement(Requirement):
    def __init__(self, type_name: str) -> None:
        self.type_name = type_name

    def evaluate(self, state: GameState) -> bool:
        logger.warning("Unknown requirement type %r, treating as unmet", self.type_name)
        return False


# ── Registry ─────────────────────────────────────────────────────────

# Factories receive the "params" mapping and the registry building them,
# so composite types can load their children through the same registry.
RequirementFactory = Callable[[Mapping[str, Any], "RequirementRegistry"], Requirement]

_BUILTIN_TYPES: dict[str, RequirementFactory] = {
    "resource_lifetime": lambda p, _: _ResourceLifetimeRequirement(p["resource"], p.get("amount", 0)),
    "resource_current": lambda p, _: _ResourceCurrentRequirement(p["resource"], p.get("amount", 0)),
    "building_owned": lambda p, _: _BuildingOwnedRequirement(p["building"], p.get("count", 1)),
    "upgrade_purchased": lambda p, _: _UpgradePurchasedRequirement(p["upgrade"]),
    "era_reached": lambda p, _: _EraReachedRequirement(p.get("era", 1)),
    "prestige_level": lambda p, _: _PrestigeLevelRequirement(p.get("level", 1)),
    "total_clicks": lambda p, _: _TotalClicksRequirement(p.get("count", 0)),
    "play_time": lambda p, _: _PlayTimeRequirement(p.get("milliseconds", 0)),
    "all": lambda p, reg: _AllRequirement([reg.create(r) for r in p.get("requirements", [])]),
    "any": lambda p, reg: _AnyRequirement([reg.create(r) for r in p.get("requirements", [])]),
}


class RequirementRegistry:
    """Requirement types loadable from config.

    Each registry starts with the built-in types; registering a custom type
    affects only that registry (typically the one owned by a Catalog).
    """

    def __init__(self) -> None:
        self._factories: dict[str, RequirementFactory] = dict(_BUILTIN_TYPES)

    def register(self, type_name: str, factory: RequirementFactory) -> None:
        """Register (or replace) a requirement type."""
        self._factories[type_name] = factory

    def types(self) -> list[str]:
        return sorted(self._factories)

    def create(self, data: Mapping[str, Any]) -> Requirement:
        """Build a requirement from ``{"type": ..., "params": {...}}``.

        Unregistered types give a requirement that is never met.
        """
        kind = data.get("type", "")
        factory = self._factories.get(kind)
        if factory is None:
            req: Requirement = _UnregisteredRequirement(kind)
        else:
            req = factory(data.get("params", {}), self)
        req.description = data.get("description", "")
        return req


# ── Public factory ───────────────────────────────────────────────────


class Req:
    """Factory for built-in requirement types."""

    @staticmethod
    def resource_lifetime(resource_id: str, amount: float) -> Requirement:
        return _ResourceLifetimeRequirement(resource_id, amount)

    @staticmethod
    def resource_current(resource_id: str, amount: float) -> Requirement:
        return _ResourceCurrentRequirement(resource_id, amount)

    @staticmethod
    def building_owned(building_id: str, count: int = 1) -> Requirement:
        return _BuildingOwnedRequirement(building_id, count)

    @staticmethod
    def upgrade_purchased(upgrade_id: str) -> Requirement:
        return _UpgradePurchasedRequirement(upgrade_id)

    @staticmethod
    def era_reached(era: int) -> Requirement:
        return _EraReachedRequirement(era)

    @staticmethod
    def prestige_level(level: int) -> Requirement:
        return _PrestigeLevelRequirement(level)

    @staticmethod
    def total_clicks(count: int) -> Requirement:
        return _TotalClicksRequirement(count)

    @staticmethod
    def play_time(milliseconds: float) -> Requirement:
        return _PlayTimeRequirement(milliseconds)

    @staticmethod
    def all(*reqs: Requirement) -> Requirement:
        return _AllRequirement(list(reqs))

    @staticmethod
    def any(*reqs: Requirement) -> Requirement:
        return _AnyRequirement(list(reqs))

    @staticmethod
    def custom(fn: Callable[[GameState], bool]) -> Requirement:
        return _CustomRequirement(fn)

    @staticmethod
    def from_config(
        data: Mapping[str, Any], registry: RequirementRegistry | None = None
    ) -> Requirement:
        """Load a requirement; without *registry* only built-in types are known."""
        return (registry or RequirementRegistry()).create(data)
