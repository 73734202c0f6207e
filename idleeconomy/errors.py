from __future__ import annotations


class IdleEconomyError(Exception):
    """Base class for errors raised by the economy core."""


class SaveError(IdleEconomyError):
    """A snapshot could not be produced or accepted."""


class CorruptionError(SaveError):
    """Snapshot payload is malformed or fails checksum validation."""


class UnrecoverableSaveError(SaveError):
    """The primary save and every backup failed validation."""

    def __init__(self, message: str, attempts: list[str] | None = None) -> None:
        super().__init__(message)
        self.attempts = attempts or []
