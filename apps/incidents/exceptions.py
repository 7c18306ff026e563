"""Incident engine errors."""

from apps.components.exceptions import (
    ConcurrentUpdateError,
    NotFoundError,
    StatusPageError,
    TransactionFailure,
)

__all__ = [
    "ConcurrentUpdateError",
    "IncidentError",
    "IncidentNotFound",
    "IncidentValidationError",
    "NotFoundError",
    "TransactionFailure",
]


class IncidentError(StatusPageError):
    """Base class for incident engine errors."""


class IncidentNotFound(NotFoundError, IncidentError):
    def __init__(self, incident_id):
        self.incident_id = incident_id
        super().__init__(f"Incident {incident_id} not found")


class IncidentValidationError(IncidentError, ValueError):
    """Request rejected before any store access."""
