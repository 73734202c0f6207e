"""Offline catch-up.

The same function runs on the client (optimistic display) and on the
trusted service (authoritative result). It reads only the catalog, the
shared ``EngineConfig`` constants and a persisted state snapshot, so both
sides reach the same number from the same save.

Live multipliers are not part of a snapshot and are not applied here.
Buildings that consume any input are skipped entirely: there is no way to
know the inputs were available while the player was away. Buildings that
require active play are skipped too.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from idleeconomy.catalog import Catalog, EngineConfig
from idleeconomy.pipeline import output_rate
from idleeconomy.state import GameState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OfflineResult:
    resources_gained: dict[str, float] = field(default_factory=dict)
    # Elapsed time after the clamp, before efficiency
    offline_time_ms: float = 0.0
    efficiency_applied: float = 1.0
    effective_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "resources_gained": dict(self.resources_gained),
            "offline_time_ms": self.offline_time_ms,
            "efficiency_applied": self.efficiency_applied,
            "effective_seconds": self.effective_seconds,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> OfflineResult:
        return cls(
            resources_gained={k: float(v) for k, v in data.get("resources_gained", {}).items()},
            offline_time_ms=float(data.get("offline_time_ms", 0.0)),
            efficiency_applied=float(data.get("efficiency_applied", 1.0)),
            effective_seconds=float(data.get("effective_seconds", 0.0)),
        )


def compute_offline_gain(
    catalog: Catalog,
    snapshot: GameState | Mapping[str, Any],
    last_played_at: float,
    now: float,
    config: EngineConfig | None = None,
) -> OfflineResult | None:
    """Resources accrued between *last_played_at* and *now* (epoch ms).

    Returns None when less than ``min_offline_ms`` has passed.
    """
    cfg = config or catalog.config
    data = snapshot.to_dict() if isinstance(snapshot, GameState) else snapshot

    elapsed_ms = now - last_played_at
    if elapsed_ms < cfg.min_offline_ms:
        return None

    offline_ms = min(elapsed_ms, cfg.max_offline_seconds * 1000.0)
    effective_seconds = offline_ms / 1000.0 * cfg.offline_efficiency

    gained: dict[str, float] = {}
    for building_id, bs in data.get("buildings", {}).items():
        owned = int(bs.get("owned", 0))
        if owned <= 0 or not bs.get("unlocked", False):
            continue
        bdef = catalog.get_building(building_id)
        if bdef is None:
            logger.warning("Snapshot names unknown building %r, skipped", building_id)
            continue
        production = bdef.production
        if production.consumes_inputs or production.requires_active:
            continue

        seconds = effective_seconds * production.idle_efficiency
        for out in production.outputs:
            amount = output_rate(out, production, owned) * seconds
            if amount > 0:
                gained[out.resource_id] = gained.get(out.resource_id, 0.0) + amount

    return OfflineResult(
        resources_gained=gained,
        offline_time_ms=offline_ms,
        efficiency_applied=cfg.offline_efficiency,
        effective_seconds=effective_seconds,
    )


def apply_offline_gain(state: GameState, result: OfflineResult) -> None:
    """Credit an offline result to the ledger."""
    for resource_id, amount in result.resources_gained.items():
        state.change_resource(resource_id, amount, "offline")
