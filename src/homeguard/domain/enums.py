"""
HomeGuard Core Enums

This module defines the enumerations shared by the ingest pipeline,
the incident lifecycle and the audit trail.
Values are stable strings: they appear in audit records and API payloads.
"""

from enum import Enum


# =============================================================================
# Sensor Kinds
# =============================================================================

class SensorKind(str, Enum):
    """Kind of sensor that produced a reading."""
    CONTACT = "contact"         # Door/window contact, value 0=closed 1=open
    MOTION = "motion"           # PIR motion, value 0=idle 1=active
    SMOKE = "smoke"             # Smoke density, 0-1000
    HEAT = "heat"               # Heat sensor, 0-1000
    WATER_LEAK = "water_leak"   # Leak detector, not correlated


# =============================================================================
# Incident Classification
# =============================================================================

class IncidentKind(str, Enum):
    """Hypothesised incident kind produced by correlation."""
    FIRE = "fire"
    BREAK_IN = "break_in"


# =============================================================================
# Incident Lifecycle States
# =============================================================================

class IncidentState(str, Enum):
    """Incident lifecycle states.

    Transitions are strictly controlled by IncidentLifecycleManager.
    """
    DETECTED = "detected"
    SUSPECTED = "suspected"                     # Single-sensor / low confidence
    CONFIRMED = "confirmed"                     # Corroborated, needs notification
    NOTIFIED = "notified"
    NOTIFICATION_FAILED = "notification_failed"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    CLOSED = "closed"
    ARCHIVED = "archived"                       # Terminal


# =============================================================================
# Audit Record Kinds
# =============================================================================

class AuditEventKind(str, Enum):
    """Kinds of records written to the audit sink."""
    # Ingest
    EVENT_REJECTED = "event_rejected"
    EVENT_DUPLICATE = "event_duplicate"

    # Incident lifecycle
    INCIDENT_CREATED = "incident_created"
    INCIDENT_MERGED = "incident_merged"
    STATE_TRANSITION = "state_transition"
    STATE_TRANSITION_FAILED = "state_transition_failed"

    # Reaction
    ALERT_SUSPECTED = "alert_suspected"
    NOTIFICATION_ATTEMPT = "notification_attempt"
    NOTIFICATION_SENT = "notification_sent"
    NOTIFICATION_FAILED = "notification_failed"
    REACTION_ERROR = "reaction_error"
