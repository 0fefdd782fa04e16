"""Exception types raised by the check-in engine."""

from __future__ import annotations


class CadenceError(Exception):
    """Base class for engine errors."""


class CycleIndexError(CadenceError, RuntimeError):
    """A period or cycle index outside the range the engine accepts."""


class PeriodWalkError(CadenceError, RuntimeError):
    """The period walk exceeded its cap; the anchor date is not trustworthy."""


class UnknownEntityError(CadenceError, KeyError):
    """Lookup of a project, workstream, milestone or task that does not exist."""

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"Unknown {kind}: {entity_id}")

    def __str__(self) -> str:
        return f"Unknown {self.kind}: {self.entity_id}"


class LifecycleError(CadenceError, ValueError):
    """An operation not allowed by the active/inactive state of an entity."""


class ImportDocumentError(CadenceError, ValueError):
    """The onboarding document failed validation."""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message + (f" at {path}" if path else ""))
