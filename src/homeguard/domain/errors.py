"""
HomeGuard error taxonomy.

Only conditions surfaced to callers are exceptions. Rejected events,
dropped duplicates and per-channel notification failures are outcomes,
recorded on the pipeline result and in the audit trail.
"""

from typing import Optional

from .enums import IncidentState


class HomeGuardError(Exception):
    """Base class for all HomeGuard errors."""
    pass


class IncidentNotFoundError(HomeGuardError, LookupError):
    """Raised when an operation targets an incident that does not exist."""

    def __init__(self, incident_id: str):
        self.incident_id = incident_id
        super().__init__(f"Incident {incident_id} not found")


class InvalidTransitionError(HomeGuardError, ValueError):
    """Raised when the lifecycle table forbids a state transition.

    The incident is left unchanged.
    """

    def __init__(
        self,
        from_state: IncidentState,
        to_state: IncidentState,
        incident_id: Optional[str] = None,
    ):
        self.incident_id = incident_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid state transition from {from_state.value} to {to_state.value}"
        )
