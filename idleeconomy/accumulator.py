from __future__ import annotations

from dataclasses import dataclass

from idleeconomy.events import EventBus, GameEvent
from idleeconomy.state import GameState


@dataclass(frozen=True)
class FlushResult:
    building_id: str
    resource_id: str
    amount: float


class ProductionAccumulator:
    """Fractional production held per (building, resource) until it is
    large enough to write into the ledger."""

    def __init__(
        self,
        state: GameState,
        events: EventBus | None = None,
        flush_threshold: float = 0.01,
    ) -> None:
        self.state = state
        self.events = events
        self.flush_threshold = flush_threshold
        self._pending: dict[str, dict[str, float]] = {}

    def add(self, building_id: str, resource_id: str, amount: float) -> None:
        bucket = self._pending.setdefault(building_id, {})
        bucket[resource_id] = bucket.get(resource_id, 0.0) + amount

    def get(self, building_id: str, resource_id: str) -> float:
        return self._pending.get(building_id, {}).get(resource_id, 0.0)

    def should_flush(self, building_id: str, resource_id: str) -> bool:
        return self.get(building_id, resource_id) >= self.flush_threshold

    def flush(self, building_id: str, resource_id: str) -> FlushResult | None:
        bucket = self._pending.get(building_id)
        if not bucket:
            return None
        amount = bucket.get(resource_id, 0.0)
        if amount <= 0:
            return None

        self.state.change_resource(resource_id, amount, f"building:{building_id}")
        bucket[resource_id] = 0.0
        if self.events is not None:
            self.events.emit(GameEvent.BUILDING_PRODUCTION, {
                "building_id": building_id,
                "outputs": {resource_id: amount},
            })
        return FlushResult(building_id, resource_id, amount)

    def add_and_flush(
        self, building_id: str, resource_id: str, amount: float
    ) -> FlushResult | None:
        self.add(building_id, resource_id, amount)
        if self.should_flush(building_id, resource_id):
            return self.flush(building_id, resource_id)
        return None

    def flush_all(self) -> list[FlushResult]:
        results: list[FlushResult] = []
        for building_id, bucket in self._pending.items():
            for resource_id in list(bucket):
                result = self.flush(building_id, resource_id)
                if result is not None:
                    results.append(result)
        return results

    def pending_total(self, resource_id: str) -> float:
        return sum(bucket.get(resource_id, 0.0) for bucket in self._pending.values())

    def clear(self, building_id: str | None = None) -> None:
        if building_id is None:
            self._pending.clear()
        else:
            self._pending.pop(building_id, None)
