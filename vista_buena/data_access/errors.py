"""Exceptions raised by the store and the repositories."""

from __future__ import annotations

from typing import Optional


class RepositoryError(Exception):
    """Base class for every data access failure."""

    def __init__(self, message: str, namespace: Optional[str] = None, record_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.namespace = namespace
        self.record_id = record_id


class StorageCorruptionError(RepositoryError):
    """Stored bytes for a namespace could not be decoded."""


class NotFoundError(RepositoryError):
    """No record with the requested id exists."""


class ReferentialIntegrityError(RepositoryError):
    """A reservation points at a missing record, or a referenced record is being deleted."""


class OverlapError(RepositoryError):
    """An active reservation already holds part of the requested slot."""

    def __init__(self, message: str, namespace: Optional[str] = None, record_id: Optional[str] = None,
                 conflicting_id: Optional[str] = None) -> None:
        super().__init__(message, namespace, record_id)
        self.conflicting_id = conflicting_id


class ConflictError(RepositoryError):
    """The namespace changed between our read and our write."""

    def __init__(self, message: str, namespace: Optional[str] = None, expected_version: Optional[int] = None,
                 actual_version: Optional[int] = None) -> None:
        super().__init__(message, namespace)
        self.expected_version = expected_version
        self.actual_version = actual_version


class ValidationError(RepositoryError):
    """Field values violate the record shape."""


class InvalidTransitionError(ValidationError):
    """A reservation status change is not allowed by the workflow."""

    def __init__(self, current: str, requested: str, record_id: Optional[str] = None) -> None:
        super().__init__(f"Cannot move reservation from '{current}' to '{requested}'.", record_id=record_id)
        self.current = current
        self.requested = requested
