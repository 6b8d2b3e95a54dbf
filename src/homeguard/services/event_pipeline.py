"""
HomeGuard Event Pipeline

Integrates:
- Ingest Validator
- Deduplication Gate
- Correlation Engine
- Incident Lifecycle Manager
- Notification Orchestrator

Pipeline stages:
1. Validate - reject malformed/unsigned events
2. Deduplicate - drop event ids already admitted
3. Correlate - confidence + incident hypothesis
4. Incident - create or merge by correlation key
5. React - notify confirmed incidents, note suspected ones
6. Output - ProcessedEvent result
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import logging
import threading

from ..domain.enums import IncidentState, AuditEventKind
from ..domain.errors import InvalidTransitionError, IncidentNotFoundError
from ..domain.models import SensorEvent, Incident
from .audit_log import AuditSink, record_audit
from .correlation import CorrelationEngine, CorrelationResult
from .dedup_gate import DeduplicationGate
from .incident_sm import IncidentLifecycleManager, build_correlation_key
from .ingest_validator import SensorEventValidator
from .notifier import NotificationOrchestrator
from .output_channels import NotificationOutcome

logger = logging.getLogger(__name__)


# =============================================================================
# Pipeline Result
# =============================================================================

@dataclass
class ProcessedEvent:
    """Result of event processing through the pipeline."""
    event: Optional[SensorEvent]

    # Validation stage
    is_rejected: bool = False
    rejection_errors: list[str] = field(default_factory=list)

    # Dedup stage
    is_duplicate: bool = False

    # Correlation
    correlation: Optional[CorrelationResult] = None

    # Incident snapshot after create/merge/reaction
    incident: Optional[Incident] = None
    incident_created: bool = False

    # Reaction
    notification: Optional[NotificationOutcome] = None
    reaction_error: Optional[str] = None

    @property
    def is_dropped(self) -> bool:
        return self.is_rejected or self.is_duplicate

    def to_dict(self) -> dict:
        return {
            "event_id": self.event.event_id if self.event else None,
            "is_rejected": self.is_rejected,
            "rejection_errors": self.rejection_errors,
            "is_duplicate": self.is_duplicate,
            "confidence": self.correlation.confidence if self.correlation else None,
            "should_escalate": self.correlation.should_escalate if self.correlation else None,
            "incident_kind": (
                self.correlation.incident_kind.value
                if self.correlation and self.correlation.incident_kind else None
            ),
            "incident_id": self.incident.incident_id if self.incident else None,
            "incident_state": self.incident.state.value if self.incident else None,
            "incident_created": self.incident_created,
            "notification": self.notification.to_dict() if self.notification else None,
            "reaction_error": self.reaction_error,
        }


# =============================================================================
# Event Pipeline
# =============================================================================

class EventPipeline:
    """Main event processing pipeline.

    Safe for concurrent callers: every stage guards its own shared state.
    Never raises for downstream notification/transition errors.
    """

    def __init__(
        self,
        validator: SensorEventValidator,
        dedup_gate: DeduplicationGate,
        correlation_engine: CorrelationEngine,
        incident_manager: IncidentLifecycleManager,
        notifier: NotificationOrchestrator,
        audit_sink: Optional[AuditSink] = None,
    ):
        self.validator = validator
        self.dedup_gate = dedup_gate
        self.correlation_engine = correlation_engine
        self.incident_manager = incident_manager
        self.notifier = notifier
        self.audit_sink = audit_sink

        # Incident ids with a notification in flight
        self._notifying: set[str] = set()
        self._notify_lock = threading.Lock()

    def start(self) -> None:
        """Start background maintenance (dedup sweeper)."""
        self.dedup_gate.start()

    async def stop(self) -> None:
        await self.dedup_gate.stop()

    async def process_event(
        self,
        event: Optional[SensorEvent],
        now: Optional[datetime] = None,
    ) -> ProcessedEvent:
        """Process an event through the pipeline.

        Args:
            event: Incoming sensor event
            now: Current time (for testing)

        Returns:
            ProcessedEvent with all processing results
        """
        now = now or datetime.now(timezone.utc)
        result = ProcessedEvent(event=event)

        # Stage 1: Validate
        validation = self.validator.validate(event, now)
        if not validation.is_valid:
            result.is_rejected = True
            result.rejection_errors = validation.errors
            event_id = event.event_id if event else None
            logger.info(f"[PIPELINE] Rejected event {event_id}: {', '.join(validation.errors)}")
            record_audit(
                self.audit_sink,
                AuditEventKind.EVENT_REJECTED,
                f"Invalid event: {', '.join(validation.errors)}",
                event_id,
            )
            return result

        # Stage 2: Deduplicate
        if not self.dedup_gate.try_admit(event.event_id, now):
            result.is_duplicate = True
            logger.info(f"[PIPELINE] Dropped duplicate event {event.event_id}")
            record_audit(
                self.audit_sink,
                AuditEventKind.EVENT_DUPLICATE,
                "Ignored duplicate event",
                event.event_id,
            )
            return result

        # Stage 3: Correlate
        correlation = self.correlation_engine.evaluate(event)
        result.correlation = correlation
        if not correlation.has_hypothesis:
            return result

        # Stage 4: Create or merge incident
        correlation_key = build_correlation_key(correlation.incident_kind, event.timestamp)
        incident = self.incident_manager.create_or_update(
            correlation.evidence,
            correlation.confidence,
            correlation.incident_kind,
            correlation_key,
            now=now,
        )
        result.incident = incident
        # Merges always bump the revision
        result.incident_created = incident.revision == 1

        # Stage 5: React
        if incident.state == IncidentState.CONFIRMED:
            await self._react_to_confirmed(result, incident, now)
        elif correlation.should_escalate:
            logger.info(
                f"[PIPELINE] Suspected {correlation.incident_kind.value} "
                f"({incident.incident_id}), awaiting more evidence"
            )
            record_audit(
                self.audit_sink,
                AuditEventKind.ALERT_SUSPECTED,
                f"Suspected {correlation.incident_kind.value}, waiting for more evidence",
                incident.incident_id,
            )

        return result

    async def _react_to_confirmed(
        self,
        result: ProcessedEvent,
        incident: Incident,
        now: datetime,
    ) -> None:
        """Notify and record the outcome. Errors are logged, never raised.

        Only one reaction per incident runs at a time; a concurrent merge that
        loses the claim, or finds the incident already past CONFIRMED, skips.
        """
        incident_id = incident.incident_id
        if not self._claim_notification(incident_id):
            logger.debug(f"[PIPELINE] Notification for {incident_id} already in flight")
            return

        try:
            current = self.incident_manager.get_incident(incident_id)
            if current is None or current.state != IncidentState.CONFIRMED:
                if current is not None:
                    result.incident = current
                return

            outcome = await self.notifier.notify(current)
            result.notification = outcome
            result.incident = self._record_notification(incident_id, outcome, now)

        except Exception as e:
            result.reaction_error = f"{type(e).__name__}: {e}"
            logger.exception(f"[PIPELINE] Reaction failed for {incident_id}")
            record_audit(
                self.audit_sink,
                AuditEventKind.REACTION_ERROR,
                result.reaction_error,
                incident_id,
            )

        finally:
            self._release_notification(incident_id)

    def _claim_notification(self, incident_id: str) -> bool:
        with self._notify_lock:
            if incident_id in self._notifying:
                return False
            self._notifying.add(incident_id)
            return True

    def _release_notification(self, incident_id: str) -> None:
        with self._notify_lock:
            self._notifying.discard(incident_id)

    def _record_notification(
        self,
        incident_id: str,
        outcome: NotificationOutcome,
        now: datetime,
    ) -> Incident:
        if outcome.success:
            record_audit(
                self.audit_sink,
                AuditEventKind.NOTIFICATION_SENT,
                f"Notified via {outcome.channel}: {outcome.detail}",
                incident_id,
            )
            return self.incident_manager.transition_state(incident_id, IncidentState.NOTIFIED, now)

        record_audit(
            self.audit_sink,
            AuditEventKind.NOTIFICATION_FAILED,
            f"All channels failed, last {outcome.channel}: {outcome.detail}",
            incident_id,
        )
        return self.incident_manager.transition_state(
            incident_id, IncidentState.NOTIFICATION_FAILED, now
        )

    # =========================================================================
    # External Actions
    # =========================================================================

    async def retry_notification(
        self,
        incident_id: str,
        now: Optional[datetime] = None,
    ) -> NotificationOutcome:
        """Re-run notification for an incident whose delivery failed.

        Moves the incident to NOTIFIED on success; a failed retry leaves it in
        NOTIFICATION_FAILED.

        A retry issued while another notification for the same incident is in
        flight sends nothing and returns a failed outcome on channel "none".

        Raises:
            IncidentNotFoundError: No incident with ``incident_id``
            InvalidTransitionError: Incident is not in NOTIFICATION_FAILED
        """
        now = now or datetime.now(timezone.utc)
        if self.incident_manager.get_incident(incident_id) is None:
            raise IncidentNotFoundError(incident_id)

        if not self._claim_notification(incident_id):
            return NotificationOutcome("none", False, "Notification already in progress")

        try:
            incident = self.incident_manager.get_incident(incident_id)
            if incident.state != IncidentState.NOTIFICATION_FAILED:
                raise InvalidTransitionError(incident.state, IncidentState.NOTIFIED, incident_id)

            outcome = await self.notifier.notify(incident)
            if outcome.success:
                self._record_notification(incident_id, outcome, now)
            else:
                record_audit(
                    self.audit_sink,
                    AuditEventKind.NOTIFICATION_FAILED,
                    f"Retry failed, last {outcome.channel}: {outcome.detail}",
                    incident_id,
                )
            return outcome

        finally:
            self._release_notification(incident_id)

    def reset(self) -> None:
        """Reset correlation and dedup state. Incidents are kept."""
        self.dedup_gate.reset()
        self.correlation_engine.reset()
