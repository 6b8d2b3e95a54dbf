"""HomeGuard Domain Models"""

from .enums import (
    # Sensors
    SensorKind,

    # Incidents
    IncidentKind,
    IncidentState,

    # Audit
    AuditEventKind,
)

from .models import (
    SensorEvent,
    Incident,
    NotificationMessage,
    new_incident_id,
)

from .errors import (
    HomeGuardError,
    IncidentNotFoundError,
    InvalidTransitionError,
)

__all__ = [
    # Enums
    'SensorKind',
    'IncidentKind',
    'IncidentState',
    'AuditEventKind',

    # Models
    'SensorEvent',
    'Incident',
    'NotificationMessage',
    'new_incident_id',

    # Errors
    'HomeGuardError',
    'IncidentNotFoundError',
    'InvalidTransitionError',
]
