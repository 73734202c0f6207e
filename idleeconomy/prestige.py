from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class PrestigeResult:
    """Outcome of a prestige reset."""

    success: bool
    prestige_level: int = 0
    resources_reset: list[str] = field(default_factory=list)
    buildings_reset: list[str] = field(default_factory=list)
    reason: str = ""
