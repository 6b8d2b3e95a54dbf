"""
Correlation Engine

Keeps a sliding window of recent sensor events and turns each new event
into a confidence-scored incident hypothesis.

Rules:
1. Fire - smoke/heat above threshold, single reading is enough
2. Break-in - contact open + motion active within the window confirms;
   either one alone is a low-confidence signal
3. Anything else - no hypothesis

The window is keyed to event time, not processing time, so replaying the
same sequence always yields the same results.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional
import logging
import threading

from ..domain.enums import SensorKind, IncidentKind
from ..domain.models import SensorEvent

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class CorrelationConfig:
    """Correlation window and scoring thresholds."""
    window_sec: int = 10

    # Fire/heat
    fire_threshold: float = 80.0           # value > threshold raises Fire
    fire_confirm_threshold: float = 90.0   # value > this is full confidence
    fire_confirmed_score: float = 1.0
    fire_suspected_score: float = 0.5

    # Break-in
    breakin_confirmed_score: float = 1.0
    single_sensor_score: float = 0.3

    # Hard cap on window size
    max_window_events: int = 1000


# =============================================================================
# Result
# =============================================================================

@dataclass
class CorrelationResult:
    """Per-event correlation decision. Transient."""
    confidence: float
    should_escalate: bool
    incident_kind: Optional[IncidentKind] = None
    evidence: list[SensorEvent] = field(default_factory=list)

    @property
    def has_hypothesis(self) -> bool:
        return self.incident_kind is not None

    @classmethod
    def none(cls) -> "CorrelationResult":
        return cls(confidence=0.0, should_escalate=False)


# =============================================================================
# Correlation Engine
# =============================================================================

class CorrelationEngine:
    """Multi-sensor correlation over a time window.

    evaluate() is serialized: append, evict and rule evaluation happen in a
    single critical section because window membership is order-sensitive.
    """

    INTRUSION_KINDS = (SensorKind.CONTACT, SensorKind.MOTION)
    FIRE_KINDS = (SensorKind.SMOKE, SensorKind.HEAT)

    def __init__(self, config: Optional[CorrelationConfig] = None):
        self.config = config or CorrelationConfig()
        self._window: deque[SensorEvent] = deque()
        self._lock = threading.Lock()

    @property
    def window(self) -> timedelta:
        return timedelta(seconds=self.config.window_sec)

    @property
    def window_size(self) -> int:
        with self._lock:
            return len(self._window)

    def evaluate(self, event: SensorEvent) -> CorrelationResult:
        """Add ``event`` to the window and evaluate the correlation rules."""
        with self._lock:
            self._append_and_evict(event)

            if event.kind in self.FIRE_KINDS:
                result = self._evaluate_fire(event)
                if result is not None:
                    return result

            if event.kind in self.INTRUSION_KINDS:
                return self._evaluate_intrusion(event)

            return CorrelationResult.none()

    def _append_and_evict(self, event: SensorEvent) -> None:
        self._window.append(event)

        cutoff = event.timestamp - self.window
        kept = [e for e in self._window if e.timestamp >= cutoff]
        if len(kept) > self.config.max_window_events:
            # Drop oldest by event time
            kept.sort(key=lambda e: e.timestamp)
            kept = kept[-self.config.max_window_events:]

        evicted = len(self._window) - len(kept)
        self._window = deque(kept)
        if evicted:
            logger.debug(f"[CORRELATION] Evicted {evicted} event(s) older than {cutoff.isoformat()}")

    def _evaluate_fire(self, event: SensorEvent) -> Optional[CorrelationResult]:
        """Fire rule. Returns None when the reading is below threshold."""
        if event.value <= self.config.fire_threshold:
            return None

        if event.value > self.config.fire_confirm_threshold:
            confidence = self.config.fire_confirmed_score
        else:
            confidence = self.config.fire_suspected_score

        logger.info(
            f"[CORRELATION] Fire hypothesis from {event.kind.value}={event.value} "
            f"({event.device_id}), confidence {confidence}"
        )
        return CorrelationResult(
            confidence=confidence,
            should_escalate=True,
            incident_kind=IncidentKind.FIRE,
            evidence=[event],
        )

    def _evaluate_intrusion(self, event: SensorEvent) -> CorrelationResult:
        contact = self._latest_active(SensorKind.CONTACT)
        motion = self._latest_active(SensorKind.MOTION)

        if contact is not None and motion is not None:
            gap = abs(contact.timestamp - motion.timestamp)
            if gap <= self.window:
                logger.info(
                    f"[CORRELATION] Break-in corroborated: contact {contact.event_id} + "
                    f"motion {motion.event_id} ({gap.total_seconds():.1f}s apart)"
                )
                return CorrelationResult(
                    confidence=self.config.breakin_confirmed_score,
                    should_escalate=True,
                    incident_kind=IncidentKind.BREAK_IN,
                    evidence=[contact, motion],
                )

        return CorrelationResult(
            confidence=self.config.single_sensor_score,
            should_escalate=False,
            incident_kind=IncidentKind.BREAK_IN,
            evidence=[event],
        )

    def _latest_active(self, kind: SensorKind) -> Optional[SensorEvent]:
        """Most recent window member of ``kind`` with value 1.

        Equal timestamps favour the earlier arrival.
        """
        latest: Optional[SensorEvent] = None
        for e in self._window:
            if e.kind != kind or e.value != 1:
                continue
            if latest is None or e.timestamp > latest.timestamp:
                latest = e
        return latest

    def reset(self) -> None:
        """Clear the window."""
        with self._lock:
            self._window.clear()
