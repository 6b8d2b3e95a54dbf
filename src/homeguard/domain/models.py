"""
HomeGuard Core Models

Data models for sensor readings, incidents and outgoing notifications.
Uses Pydantic for validation and serialization.
"""

from datetime import datetime, timezone
from typing import Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import SensorKind, IncidentKind, IncidentState


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_incident_id() -> str:
    return f"inc_{uuid.uuid4().hex[:12]}"


# =============================================================================
# Sensor Event
# =============================================================================

class SensorEvent(BaseModel):
    """Discrete sensor reading as received from the device network.

    Immutable. Identity is ``event_id``; two readings with the same id are
    the same event regardless of their other fields.
    """
    model_config = ConfigDict(frozen=True)

    event_id: str
    device_id: str
    kind: SensorKind
    value: float
    timestamp: datetime
    signature: str = ""

    @field_validator('timestamp')
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        # Naive timestamps are taken as UTC
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


# =============================================================================
# Incident
# =============================================================================

class Incident(BaseModel):
    """Security/safety incident aggregate.

    Owned by IncidentLifecycleManager. Everything handed out of the manager
    is a deep copy, so mutating a returned incident has no effect.
    """
    incident_id: str = Field(default_factory=new_incident_id)
    correlation_key: str
    kind: IncidentKind

    confidence: float = Field(ge=0.0, le=1.0, default=0.0)
    evidence: list[SensorEvent] = Field(default_factory=list)

    state: IncidentState = IncidentState.DETECTED

    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)

    # Revision tracking
    revision: int = 1

    @property
    def evidence_ids(self) -> list[str]:
        return [e.event_id for e in self.evidence]

    def has_evidence(self, event_id: str) -> bool:
        return any(e.event_id == event_id for e in self.evidence)

    def add_evidence(self, events: list[SensorEvent]) -> int:
        """Append events not already present (by event_id).

        Returns:
            Number of events added
        """
        seen = set(self.evidence_ids)
        added = 0
        for event in events:
            if event.event_id in seen:
                continue
            self.evidence.append(event)
            seen.add(event.event_id)
            added += 1
        return added

    def raise_confidence(self, confidence: float) -> bool:
        """Raise confidence to ``confidence`` if higher. Never lowers it."""
        if confidence > self.confidence:
            self.confidence = confidence
            return True
        return False


# =============================================================================
# Notification Message
# =============================================================================

class NotificationMessage(BaseModel):
    """Channel-agnostic message describing an incident."""
    incident_id: str
    kind: IncidentKind
    confidence: float
    state: IncidentState
    title: str
    body: str
    evidence_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utc_now)
    correlation_key: Optional[str] = None

    @classmethod
    def for_incident(cls, incident: Incident) -> "NotificationMessage":
        kind_label = incident.kind.value.replace("_", " ").title()
        return cls(
            incident_id=incident.incident_id,
            kind=incident.kind,
            confidence=incident.confidence,
            state=incident.state,
            title=f"{kind_label} detected",
            body=(
                f"{kind_label} incident {incident.incident_id} "
                f"(confidence {incident.confidence:.2f}, "
                f"{len(incident.evidence)} supporting reading(s))"
            ),
            evidence_ids=incident.evidence_ids,
            correlation_key=incident.correlation_key,
        )
