"""Persisted snapshots: checksum, migrations, backups and storage.

The checksum is ``"<length>:<sum of code points>"`` over the canonical JSON
of the state payload. It detects accidental corruption (truncation, bit
rot, hand edits gone wrong); it is not a cryptographic integrity or
authenticity guarantee. Anything that needs tamper resistance must use a
keyed hash instead.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Mapping, Protocol

from idleeconomy.errors import CorruptionError, SaveError, UnrecoverableSaveError
from idleeconomy.state import GameState

if TYPE_CHECKING:
    from idleeconomy.catalog import Catalog, EngineConfig
    from idleeconomy.events import EventBus

logger = logging.getLogger(__name__)


def canonical_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), allow_nan=False)


def generate_checksum(data: Mapping[str, Any]) -> str:
    text = canonical_json(data)
    return f"{len(text)}:{sum(map(ord, text))}"


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-finite number {name}")


@dataclass(frozen=True)
class SaveData:
    """A persisted snapshot: version tag, timestamp, state payload, checksum."""

    version: str
    timestamp: float
    data: dict[str, Any]
    checksum: str

    def is_valid(self) -> bool:
        try:
            return generate_checksum(self.data) == self.checksum
        except (TypeError, ValueError):
            # Non-finite or non-JSON values in the payload
            return False

    def to_json(self) -> str:
        return canonical_json({
            "version": self.version,
            "timestamp": self.timestamp,
            "data": self.data,
            "checksum": self.checksum,
        })

    @classmethod
    def from_json(cls, text: str) -> SaveData:
        """Parse a stored snapshot. Raises CorruptionError if malformed."""
        try:
            raw = json.loads(text, parse_constant=_reject_constant)
        except (ValueError, TypeError) as exc:
            raise CorruptionError(f"Save is not valid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise CorruptionError("Save is not a JSON object")
        missing = [k for k in ("version", "timestamp", "data", "checksum") if k not in raw]
        if missing:
            raise CorruptionError(f"Save is missing fields: {', '.join(missing)}")
        if not isinstance(raw["data"], dict):
            raise CorruptionError("Save payload is not an object")
        return cls(
            version=str(raw["version"]),
            timestamp=raw["timestamp"],
            data=raw["data"],
            checksum=str(raw["checksum"]),
        )


# ── Serialize / deserialize ──────────────────────────────────────────


def serialize(state: GameState, timestamp: float, version: str = "1.0.0") -> SaveData:
    data = state.to_dict()
    return SaveData(version, timestamp, data, generate_checksum(data))


def deserialize(
    save: SaveData | str,
    catalog: Catalog,
    events: EventBus | None = None,
    migrations: MigrationRegistry | None = None,
) -> GameState:
    """Rebuild state from a snapshot. Raises CorruptionError if it fails validation."""
    if isinstance(save, str):
        save = SaveData.from_json(save)
    if not save.is_valid():
        raise CorruptionError("Save checksum mismatch")

    data = save.data
    if migrations is not None:
        data = migrations.migrate(data, save.version, catalog.config.save_version)
    try:
        return GameState.from_dict(catalog, data, events)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        raise CorruptionError(f"Save payload is malformed: {exc}") from exc


# ── Migrations ───────────────────────────────────────────────────────

Migration = Callable[[dict[str, Any]], dict[str, Any]]


class MigrationRegistry:
    """Version-to-version upgrade steps applied before a save is accepted.

    A missing step is not an error: the data passes through unchanged.
    """

    def __init__(self) -> None:
        self._steps: dict[str, tuple[str, Migration]] = {}

    def register(self, from_version: str, to_version: str, fn: Migration) -> None:
        self._steps[from_version] = (to_version, fn)

    def migrate(
        self, data: dict[str, Any], from_version: str, to_version: str
    ) -> dict[str, Any]:
        version = from_version
        seen: set[str] = set()
        while version != to_version:
            step = self._steps.get(version)
            if step is None or version in seen:
                logger.info(
                    "No migration from %s to %s, using data unchanged", version, to_version
                )
                break
            seen.add(version)
            next_version, fn = step
            logger.info("Migrating save from %s to %s", version, next_version)
            data = fn(data)
            version = next_version
        return data


# ── Storage ──────────────────────────────────────────────────────────


class SaveStore(Protocol):
    def read(self, key: str) -> str | None: ...

    def write(self, key: str, text: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemorySaveStore:
    def __init__(self) -> None:
        self.items: dict[str, str] = {}

    def read(self, key: str) -> str | None:
        return self.items.get(key)

    def write(self, key: str, text: str) -> None:
        self.items[key] = text

    def delete(self, key: str) -> None:
        self.items.pop(key, None)


class FileSaveStore:
    """One JSON file per key inside *directory*; writes replace files atomically."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def read(self, key: str) -> str | None:
        """Raises CorruptionError if the file is not valid UTF-8."""
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise CorruptionError(f"{path.name} is not valid UTF-8: {exc}") from exc

    def write(self, key: str, text: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, path)

    def delete(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            path.unlink()


# ── Manager ──────────────────────────────────────────────────────────


class SaveManager:
    """Writes snapshots with rotating backups and recovers from corruption."""

    def __init__(
        self,
        store: SaveStore,
        catalog: Catalog,
        config: EngineConfig | None = None,
        migrations: MigrationRegistry | None = None,
        save_key: str = "idleeconomy_save",
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.config = config or catalog.config
        self.migrations = migrations or MigrationRegistry()
        self.save_key = save_key

    def backup_key(self, index: int) -> str:
        return f"{self.save_key}_backup_{index}"

    def save(self, state: GameState, timestamp: float) -> SaveData:
        snapshot = serialize(state, timestamp, self.config.save_version)
        try:
            self._rotate_backups()
            self.store.write(self.save_key, snapshot.to_json())
        except OSError as exc:
            logger.exception("Failed to write save %r", self.save_key)
            raise SaveError(f"Failed to write save: {exc}") from exc
        return snapshot

    def load(self, events: EventBus | None = None) -> GameState | None:
        """Load the main save, falling back through backups newest first.

        Returns None when there is no save at all. Raises
        UnrecoverableSaveError when the save and every backup are corrupt.
        """
        attempts: list[str] = []
        try:
            text = self.store.read(self.save_key)
            if text is None:
                logger.info("No save found under %r", self.save_key)
                return None
            return self._restore(text, events)
        except CorruptionError as exc:
            logger.warning("Save %r is corrupt (%s), trying backups", self.save_key, exc)
            attempts.append(f"{self.save_key}: {exc}")

        for i in range(self.config.max_backups):
            key = self.backup_key(i)
            try:
                backup = self.store.read(key)
                if backup is None:
                    continue
                state = self._restore(backup, events)
            except CorruptionError as exc:
                attempts.append(f"{key}: {exc}")
                continue
            logger.warning("Recovered save from backup %d", i)
            self.store.write(self.save_key, backup)
            return state

        raise UnrecoverableSaveError("Save and all backups are corrupt", attempts)

    def load_snapshot(self) -> SaveData | None:
        text = self.store.read(self.save_key)
        return SaveData.from_json(text) if text is not None else None

    def has_save(self) -> bool:
        try:
            return self.store.read(self.save_key) is not None
        except CorruptionError:
            return True

    def delete_save(self) -> None:
        self.store.delete(self.save_key)
        for i in range(self.config.max_backups):
            self.store.delete(self.backup_key(i))

    def export_save(self) -> str:
        """The current save as base64 text, or "" when there is none."""
        text = self.store.read(self.save_key)
        if text is None:
            return ""
        return base64.b64encode(text.encode("utf-8")).decode("ascii")

    def import_save(self, encoded: str, events: EventBus | None = None) -> GameState:
        """Validate and install an exported save. Raises CorruptionError if invalid."""
        try:
            text = base64.b64decode(encoded.encode("ascii"), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeError, ValueError) as exc:
            raise CorruptionError(f"Import is not valid base64: {exc}") from exc
        state = self._restore(text, events)
        self._rotate_backups()
        self.store.write(self.save_key, text)
        return state

    def _restore(self, text: str, events: EventBus | None) -> GameState:
        return deserialize(text, self.catalog, events, self.migrations)

    def _rotate_backups(self) -> None:
        if self.config.max_backups <= 0:
            return
        for i in range(self.config.max_backups - 1, 0, -1):
            older = self._read_for_rotation(self.backup_key(i - 1))
            if older is not None:
                self.store.write(self.backup_key(i), older)
        current = self._read_for_rotation(self.save_key)
        if current is not None:
            self.store.write(self.backup_key(0), current)

    def _read_for_rotation(self, key: str) -> str | None:
        try:
            return self.store.read(key)
        except CorruptionError as exc:
            logger.warning("Not rotating unreadable save %r: %s", key, exc)
            return None
