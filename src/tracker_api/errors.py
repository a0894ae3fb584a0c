from __future__ import annotations


class TrackerError(Exception):
    """Base class for domain errors raised by the tracker services."""


class NotFoundError(TrackerError):
    """A referenced entity does not exist. Mapped to HTTP 404."""

    def __init__(self, entity: str) -> None:
        super().__init__(f"{entity} not found")
        self.entity = entity


class InvalidOperationError(TrackerError):
    """A well-formed request that the current data does not allow. Mapped to HTTP 400."""
