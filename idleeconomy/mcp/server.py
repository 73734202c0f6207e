"""MCP server exposing the authoritative offline recomputation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any

from mcp.server.fastmcp import FastMCP

from idleeconomy._types import Clock, now_ms
from idleeconomy.catalog import Catalog
from idleeconomy.errors import CorruptionError
from idleeconomy.offline import OfflineResult, apply_offline_gain, compute_offline_gain
from idleeconomy.save import MigrationRegistry, SaveData, deserialize, serialize
from idleeconomy.state import GameState

logger = logging.getLogger(__name__)


@dataclass
class _ServiceHolder:
    """Holds the catalog the service recomputes against and its clock."""

    catalog: Catalog
    migrations: MigrationRegistry = field(default_factory=MigrationRegistry)
    clock: Clock = now_ms


def _rounded(result: OfflineResult) -> OfflineResult:
    return replace(
        result,
        resources_gained={k: round(v, 6) for k, v in result.resources_gained.items()},
    )


def _load(holder: _ServiceHolder, save_json: str) -> tuple[SaveData, GameState]:
    snapshot = SaveData.from_json(save_json)
    state = deserialize(snapshot, holder.catalog, migrations=holder.migrations)
    return snapshot, state


# ── Tool logic functions (testable without MCP protocol) ────────────


def _tool_get_service_info(holder: _ServiceHolder) -> dict[str, Any]:
    catalog = holder.catalog
    cfg = catalog.config
    return {
        "name": catalog.name,
        "save_version": cfg.save_version,
        "max_offline_seconds": cfg.max_offline_seconds,
        "offline_efficiency": cfg.offline_efficiency,
        "min_offline_ms": cfg.min_offline_ms,
        "resources": [{"id": r.id, "name": r.name} for r in catalog.resources],
        "buildings": [
            {
                "id": b.id,
                "name": b.name,
                "consumes_inputs": b.production.consumes_inputs,
                "requires_active": b.production.requires_active,
                "idle_efficiency": b.production.idle_efficiency,
            }
            for b in catalog.buildings
        ],
    }


def _recompute(
    holder: _ServiceHolder, save_json: str
) -> tuple[GameState, float, OfflineResult | None]:
    """Load *save_json* and recompute its gain up to the service clock.

    Raises CorruptionError for a bad save and ValueError for a save stamped
    in the future.
    """
    _, state = _load(holder, save_json)
    now = holder.clock()
    if now < state.last_played_at:
        raise ValueError("Save was last played after the service clock")
    result = compute_offline_gain(holder.catalog, state, state.last_played_at, now)
    return state, now, _rounded(result) if result is not None else None


def _tool_compute_offline_gain(holder: _ServiceHolder, save_json: str) -> dict[str, Any]:
    try:
        _, _, result = _recompute(holder, save_json)
    except CorruptionError as exc:
        logger.warning("Rejected save: %s", exc)
        return {"error": f"Invalid save: {exc}"}
    except ValueError as exc:
        logger.warning("Rejected save: %s", exc)
        return {"error": str(exc)}

    if result is None:
        return {"offline": False, "reason": "Offline time below threshold"}
    return {"offline": True, **result.to_dict()}


def _tool_apply_offline_gain(holder: _ServiceHolder, save_json: str) -> dict[str, Any]:
    try:
        state, now, result = _recompute(holder, save_json)
    except CorruptionError as exc:
        logger.warning("Rejected save: %s", exc)
        return {"error": f"Invalid save: {exc}"}
    except ValueError as exc:
        logger.warning("Rejected save: %s", exc)
        return {"error": str(exc)}

    if result is not None:
        apply_offline_gain(state, result)
    state.last_played_at = now

    updated = serialize(state, now, holder.catalog.config.save_version)
    return {
        "offline": result is not None,
        "result": result.to_dict() if result is not None else None,
        "save_json": updated.to_json(),
    }


def _tool_validate_save(holder: _ServiceHolder, save_json: str) -> dict[str, Any]:
    try:
        snapshot, state = _load(holder, save_json)
    except CorruptionError as exc:
        return {"valid": False, "reason": str(exc)}
    return {
        "valid": True,
        "version": snapshot.version,
        "timestamp": snapshot.timestamp,
        "last_played_at": state.last_played_at,
    }


# ── Server factory ──────────────────────────────────────────────────


def create_server(catalog: Catalog) -> FastMCP:
    """Create an MCP server recomputing offline progress for *catalog*."""
    errors = catalog.validate()
    if errors:
        raise ValueError(
            "Invalid Catalog:\n" + "\n".join(f"  - {e}" for e in errors)
        )
    holder = _ServiceHolder(catalog=catalog)

    mcp = FastMCP(
        name=f"idleeconomy: {catalog.name}",
    )

    @mcp.tool()
    def get_service_info() -> dict[str, Any]:
        """Get the catalog overview and the offline constants this service applies."""
        return _tool_get_service_info(holder)

    @mcp.tool()
    def compute_offline_gain(save_json: str) -> dict[str, Any]:
        """Recompute resources earned between the save's last play time and now."""
        return _tool_compute_offline_gain(holder, save_json)

    @mcp.tool()
    def apply_offline_gain(save_json: str) -> dict[str, Any]:
        """Credit offline gain to a save and return the new authoritative save."""
        return _tool_apply_offline_gain(holder, save_json)

    @mcp.tool()
    def validate_save(save_json: str) -> dict[str, Any]:
        """Check a save's format and checksum."""
        return _tool_validate_save(holder, save_json)

    return mcp
