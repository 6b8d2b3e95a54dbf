"""
Incident Lifecycle State Machine

Owns incident records:
- Idempotent create/merge keyed by correlation key (kind + minute bucket)
- Strict transition table over IncidentState

DETECTED → SUSPECTED → CONFIRMED → NOTIFIED → ACKNOWLEDGED → RESOLVED → CLOSED → ARCHIVED

Key rules:
1. Evidence never holds two readings with the same event id
2. Confidence never decreases across merges
3. State changes only through TRANSITIONS; self-transition is a no-op
4. One incident per correlation key
"""

from datetime import datetime, timezone
from typing import Optional
import logging
import threading

from ..domain.enums import IncidentKind, IncidentState, AuditEventKind
from ..domain.errors import IncidentNotFoundError, InvalidTransitionError
from ..domain.models import Incident, SensorEvent
from .audit_log import AuditSink, record_audit
from .incident_store import IncidentRepository

logger = logging.getLogger(__name__)


# =============================================================================
# Transition Table
# =============================================================================

TRANSITIONS: dict[IncidentState, frozenset[IncidentState]] = {
    IncidentState.DETECTED: frozenset({IncidentState.SUSPECTED, IncidentState.CONFIRMED}),
    IncidentState.SUSPECTED: frozenset({IncidentState.CONFIRMED, IncidentState.RESOLVED}),
    IncidentState.CONFIRMED: frozenset({
        IncidentState.NOTIFIED,
        IncidentState.NOTIFICATION_FAILED,
        IncidentState.RESOLVED,
    }),
    IncidentState.NOTIFIED: frozenset({IncidentState.ACKNOWLEDGED, IncidentState.RESOLVED}),
    IncidentState.NOTIFICATION_FAILED: frozenset({IncidentState.NOTIFIED, IncidentState.RESOLVED}),
    IncidentState.ACKNOWLEDGED: frozenset({IncidentState.RESOLVED}),
    IncidentState.RESOLVED: frozenset({IncidentState.CLOSED}),
    IncidentState.CLOSED: frozenset({IncidentState.ARCHIVED}),
    IncidentState.ARCHIVED: frozenset(),
}

# States in which a full-confidence merge does not try to re-confirm
_NO_AUTO_CONFIRM = (
    IncidentState.CONFIRMED,
    IncidentState.NOTIFIED,
    IncidentState.RESOLVED,
)

CONFIRMED_CONFIDENCE = 1.0


def is_valid_transition(current: IncidentState, new: IncidentState) -> bool:
    """Check the transition table. Self-transition is always allowed."""
    if current == new:
        return True
    return new in TRANSITIONS.get(current, frozenset())


def build_correlation_key(kind: IncidentKind, timestamp: datetime) -> str:
    """Correlation key: incident kind + minute bucket of the triggering event.

    Readings either side of a minute boundary land in different buckets.
    """
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc)
    return f"inc-{kind.value}-{timestamp:%Y%m%d%H%M}"


# =============================================================================
# Lifecycle Manager
# =============================================================================

class IncidentLifecycleManager:
    """Create/merge incidents and enforce the lifecycle table.

    Every read-modify-write runs under one re-entrant lock, so concurrent
    merges into the same correlation key cannot lose evidence or lower
    confidence. Callers only ever receive copies.
    """

    def __init__(
        self,
        repository: IncidentRepository,
        audit_sink: Optional[AuditSink] = None,
    ):
        self.repository = repository
        self.audit_sink = audit_sink
        self._lock = threading.RLock()

    # =========================================================================
    # Create / Merge
    # =========================================================================

    def create_or_update(
        self,
        evidence: list[SensorEvent],
        confidence: float,
        kind: IncidentKind,
        correlation_key: str,
        now: Optional[datetime] = None,
    ) -> Incident:
        """Create the incident for ``correlation_key`` or merge into it.

        Args:
            evidence: Readings supporting the hypothesis
            confidence: Correlation confidence (0.0-1.0)
            kind: Hypothesised incident kind
            correlation_key: Merge identity (see build_correlation_key)
            now: Current time (for testing)

        Returns:
            Snapshot of the created or updated incident
        """
        now = now or datetime.now(timezone.utc)

        with self._lock:
            incident = self.repository.get_by_key(correlation_key)
            if incident is None:
                return self._create(evidence, confidence, kind, correlation_key, now)
            return self._merge(incident, evidence, confidence, now)

    def _create(
        self,
        evidence: list[SensorEvent],
        confidence: float,
        kind: IncidentKind,
        correlation_key: str,
        now: datetime,
    ) -> Incident:
        state = (
            IncidentState.CONFIRMED
            if confidence >= CONFIRMED_CONFIDENCE
            else IncidentState.SUSPECTED
        )
        incident = Incident(
            correlation_key=correlation_key,
            kind=kind,
            confidence=confidence,
            state=state,
            created_at=now,
            updated_at=now,
        )
        incident.add_evidence(evidence)

        self.repository.save(incident)
        self.repository.register_key(correlation_key, incident.incident_id)

        logger.info(
            f"[INCIDENT] Created {kind.value} incident {incident.incident_id} "
            f"(confidence {confidence}, state {state.value}, key {correlation_key})"
        )
        record_audit(
            self.audit_sink,
            AuditEventKind.INCIDENT_CREATED,
            f"Created {kind.value} incident with confidence {confidence} and state {state.value}",
            incident.incident_id,
        )
        return incident.model_copy(deep=True)

    def _merge(
        self,
        incident: Incident,
        evidence: list[SensorEvent],
        confidence: float,
        now: datetime,
    ) -> Incident:
        previous_confidence = incident.confidence
        added = incident.add_evidence(evidence)
        incident.raise_confidence(confidence)

        record_audit(
            self.audit_sink,
            AuditEventKind.INCIDENT_MERGED,
            f"Merged into existing incident for key {incident.correlation_key}: "
            f"{added} new evidence, confidence {previous_confidence} -> {incident.confidence}",
            incident.incident_id,
        )

        if confidence >= CONFIRMED_CONFIDENCE and incident.state not in _NO_AUTO_CONFIRM:
            try:
                self._apply_transition(incident, IncidentState.CONFIRMED, now)
            except InvalidTransitionError as e:
                # Merge still commits; the rejection is already audited
                logger.debug(f"[INCIDENT] Auto-confirm skipped for {incident.incident_id}: {e}")

        incident.updated_at = now
        incident.revision += 1
        self.repository.save(incident)

        logger.info(
            f"[INCIDENT] Merged into {incident.incident_id} "
            f"(+{added} evidence, confidence {incident.confidence}, state {incident.state.value})"
        )
        return incident.model_copy(deep=True)

    # =========================================================================
    # Transitions
    # =========================================================================

    def transition_state(
        self,
        incident_id: str,
        new_state: IncidentState,
        now: Optional[datetime] = None,
    ) -> Incident:
        """Move an incident to ``new_state``.

        Raises:
            IncidentNotFoundError: No incident with ``incident_id``
            InvalidTransitionError: Table forbids the move (incident unchanged)
        """
        now = now or datetime.now(timezone.utc)

        with self._lock:
            incident = self.repository.get_by_id(incident_id)
            if incident is None:
                raise IncidentNotFoundError(incident_id)

            if self._apply_transition(incident, new_state, now):
                incident.revision += 1
                self.repository.save(incident)

            return incident.model_copy(deep=True)

    def _apply_transition(
        self,
        incident: Incident,
        new_state: IncidentState,
        now: datetime,
    ) -> bool:
        """Apply a transition to a loaded incident. Caller holds the lock.

        Returns:
            True if the state changed, False for a self-transition
        """
        old_state = incident.state

        if not is_valid_transition(old_state, new_state):
            error = InvalidTransitionError(old_state, new_state, incident.incident_id)
            logger.warning(f"[INCIDENT] {incident.incident_id}: {error}")
            record_audit(
                self.audit_sink,
                AuditEventKind.STATE_TRANSITION_FAILED,
                str(error),
                incident.incident_id,
            )
            raise error

        if old_state == new_state:
            record_audit(
                self.audit_sink,
                AuditEventKind.STATE_TRANSITION,
                f"No-op transition, already {old_state.value}",
                incident.incident_id,
            )
            return False

        incident.state = new_state
        incident.updated_at = now

        logger.info(
            f"[INCIDENT] {incident.incident_id}: {old_state.value} -> {new_state.value}"
        )
        record_audit(
            self.audit_sink,
            AuditEventKind.STATE_TRANSITION,
            f"Transitioned from {old_state.value} to {new_state.value}",
            incident.incident_id,
        )
        return True

    # =========================================================================
    # Queries
    # =========================================================================

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        return self.repository.get_by_id(incident_id)

    def get_by_key(self, correlation_key: str) -> Optional[Incident]:
        return self.repository.get_by_key(correlation_key)

    def list_incidents(self, state: Optional[IncidentState] = None) -> list[Incident]:
        incidents = self.repository.list_all()
        if state is not None:
            incidents = [i for i in incidents if i.state == state]
        return incidents
