from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass
class ResourceDef:
    """Static definition of a resource."""

    id: str
    name: str = ""
    initial_amount: float = 0.0
    unlocked_at_era: int = 1
    persists_on_prestige: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            self.name = self.id

    @classmethod
    def from_config(cls, data: Mapping[str, Any]) -> ResourceDef:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            initial_amount=float(data.get("initialAmount", data.get("initial_amount", 0.0))),
            unlocked_at_era=int(data.get("unlockedAtEra", data.get("unlocked_at_era", 1))),
            persists_on_prestige=bool(
                data.get("persistsOnPrestige", data.get("persists_on_prestige", False))
            ),
        )


@dataclass
class ResourceState:
    """Mutable ledger entry for a resource.

    ``current_rate`` is derived from owned buildings and is not persisted.
    """

    current: float = 0.0
    lifetime: float = 0.0
    unlocked: bool = False
    current_rate: float = 0.0
