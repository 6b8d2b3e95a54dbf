"""
Notification Orchestrator

Delivers an incident notification across an ordered list of channels:
- Channels are tried in registration (priority) order
- Stops at the first success
- Each attempt is bounded by its own deadline
- No retries across invocations; retry policy belongs to the caller
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any
import asyncio
import logging
import time

from ..domain.enums import AuditEventKind
from ..domain.models import Incident, NotificationMessage
from .audit_log import AuditSink, record_audit
from .output_channels import NotificationChannel, NotificationOutcome

logger = logging.getLogger(__name__)


@dataclass
class NotifierConfig:
    """Per-channel delivery deadline."""
    channel_deadline_sec: float = 5.0


class NotificationOrchestrator:
    """
    Ordered fallback across notification channels.

    A channel that times out, raises, or gets cancelled on its own is a
    failure for that channel only. Cancellation of the caller propagates.
    """

    def __init__(
        self,
        channels: Optional[list[NotificationChannel]] = None,
        config: Optional[NotifierConfig] = None,
        audit_sink: Optional[AuditSink] = None,
    ):
        self.config = config or NotifierConfig()
        self.audit_sink = audit_sink
        self.channels: Dict[str, NotificationChannel] = {}
        self.total_notified = 0
        self.total_failed = 0

        for channel in channels or []:
            self.register_channel(channel)

    # =========================================================================
    # Channel Registry
    # =========================================================================

    def register_channel(self, channel: NotificationChannel):
        """Register a channel at the lowest priority."""
        self.channels[channel.name] = channel
        logger.info(f"[NOTIFY] Registered channel: {channel.name}")

    def unregister_channel(self, name: str):
        if name in self.channels:
            del self.channels[name]
            logger.info(f"[NOTIFY] Unregistered channel: {name}")

    def get_channel(self, name: str) -> Optional[NotificationChannel]:
        return self.channels.get(name)

    def enable_channel(self, name: str):
        if name in self.channels:
            self.channels[name].enabled = True
            logger.info(f"[NOTIFY] Enabled channel: {name}")

    def disable_channel(self, name: str):
        if name in self.channels:
            self.channels[name].enabled = False
            logger.info(f"[NOTIFY] Disabled channel: {name}")

    @property
    def channel_order(self) -> list[str]:
        return list(self.channels)

    # =========================================================================
    # Delivery
    # =========================================================================

    async def notify(self, incident: Incident) -> NotificationOutcome:
        """
        Notify about ``incident``, falling back through the channels.

        Returns:
            The first successful channel outcome, or a failed outcome carrying
            the last attempted channel's detail
        """
        message = NotificationMessage.for_incident(incident)
        enabled = [c for c in self.channels.values() if c.enabled]

        if not enabled:
            logger.warning("[NOTIFY] No enabled notification channels")
            self.total_failed += 1
            return NotificationOutcome("none", False, "No enabled notification channels")

        outcome: Optional[NotificationOutcome] = None
        for channel in enabled:
            outcome = await self._attempt(channel, message)

            record_audit(
                self.audit_sink,
                AuditEventKind.NOTIFICATION_ATTEMPT,
                f"{channel.name}: {'success' if outcome.success else 'failure'} - {outcome.detail}",
                incident.incident_id,
            )

            if outcome.success:
                logger.info(
                    f"[NOTIFY] {incident.incident_id} delivered via {channel.name} "
                    f"({outcome.elapsed_sec:.3f}s)"
                )
                self.total_notified += 1
                return outcome

            logger.warning(
                f"[NOTIFY] {channel.name} failed for {incident.incident_id}: {outcome.detail}"
            )

        self.total_failed += 1
        return NotificationOutcome(
            channel=outcome.channel,
            success=False,
            detail=outcome.detail,
            elapsed_sec=outcome.elapsed_sec,
        )

    async def _attempt(
        self,
        channel: NotificationChannel,
        message: NotificationMessage,
    ) -> NotificationOutcome:
        deadline = self.config.channel_deadline_sec
        start = time.monotonic()

        try:
            return await asyncio.wait_for(channel.send(message, deadline), timeout=deadline)

        except asyncio.TimeoutError:
            detail = f"Timed out after {deadline}s"

        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            detail = "Send cancelled"

        except Exception as e:
            detail = f"{type(e).__name__}: {e}"

        channel.record_failure(detail)
        return NotificationOutcome(channel.name, False, detail, time.monotonic() - start)

    def get_status(self) -> Dict[str, Any]:
        return {
            "total_notified": self.total_notified,
            "total_failed": self.total_failed,
            "channel_deadline_sec": self.config.channel_deadline_sec,
            "channel_order": self.channel_order,
            "channels": {
                name: channel.get_status()
                for name, channel in self.channels.items()
            },
        }
