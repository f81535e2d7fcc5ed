"""Typed errors raised by the progress engine.

Routers translate these into HTTP responses via ``http_status_for``.
"""
from __future__ import annotations


class ProgressEngineError(Exception):
    """Base class for every error the engine reports to its callers."""

    status_code = 500


class ValidationError(ProgressEngineError):
    """Missing/unknown stage name, missing required field, bad input."""

    status_code = 400


class InvalidDateFormat(ValidationError):
    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid date {value!r}, expected DD/MM/YYYY")


class DegenerateWeightError(ProgressEngineError):
    """Several siblings whose raw weights sum to zero."""

    status_code = 422


class NotFoundError(ProgressEngineError):
    status_code = 404

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} {key} not found")


class StoreError(ProgressEngineError):
    """Backing store unavailable or rejected a write."""

    status_code = 503


class VersionConflictError(StoreError):
    """A project document changed between read and write."""

    status_code = 409

    def __init__(self, project_id: str, expected_version: int):
        self.project_id = project_id
        self.expected_version = expected_version
        super().__init__(
            f"Project {project_id} was modified concurrently (expected version {expected_version})"
        )


class ConcurrentModificationError(StoreError):
    status_code = 409


def http_status_for(exc: ProgressEngineError) -> int:
    return getattr(exc, "status_code", 500)
