"""
Output Channels - Notification Transports

Supported channels:
- SimulatedChannel: in-process transport with configurable outcome/latency
  (sms / push / email presets)
- FileOutputChannel: local JSON file drop
- WebhookOutputChannel: HTTP POST to a remote endpoint
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any
import asyncio
import json
import logging
import time

import aiohttp

from ..domain.models import NotificationMessage

logger = logging.getLogger(__name__)


# =============================================================================
# Notification Outcome
# =============================================================================

@dataclass
class NotificationOutcome:
    """Result of one delivery attempt (or of the whole fallback chain)."""
    channel: str
    success: bool
    detail: str
    elapsed_sec: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel": self.channel,
            "success": self.success,
            "detail": self.detail,
            "elapsed_sec": round(self.elapsed_sec, 4),
        }


# =============================================================================
# Notification Channel Base
# =============================================================================

class NotificationChannel(ABC):
    """Notification channel base class."""

    def __init__(self, name: str, enabled: bool = True):
        self.name = name
        self.enabled = enabled
        self.success_count = 0
        self.failure_count = 0
        self.last_send_time: Optional[datetime] = None
        self.last_error: Optional[str] = None

    @abstractmethod
    async def send(self, message: NotificationMessage, timeout: float) -> NotificationOutcome:
        """
        Deliver ``message`` through this channel.

        Args:
            message: Message to deliver
            timeout: Seconds this attempt may take

        Returns:
            NotificationOutcome for this channel
        """
        pass

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "enabled": self.enabled,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "last_send_time": self.last_send_time.isoformat() if self.last_send_time else None,
            "last_error": self.last_error,
        }

    def record_success(self):
        self.success_count += 1
        self.last_send_time = datetime.now(timezone.utc)
        self.last_error = None

    def record_failure(self, error: str):
        self.failure_count += 1
        self.last_error = error

    def _disabled_outcome(self) -> NotificationOutcome:
        return NotificationOutcome(self.name, False, "Channel disabled")


# =============================================================================
# Simulated Channel
# =============================================================================

class SimulatedChannel(NotificationChannel):
    """
    In-process channel for demos and tests.

    Presets mirror the gateways of a typical install: SMS gateway timing
    out, push and email delivering.
    """

    PRESETS: Dict[str, Dict[str, Any]] = {
        "sms": {"succeed": False, "latency_sec": 0.1, "detail": "SMS gateway timeout"},
        "push": {"succeed": True, "latency_sec": 0.0, "detail": "Push sent successfully"},
        "email": {"succeed": True, "latency_sec": 0.05, "detail": "Email sent successfully"},
    }

    def __init__(
        self,
        name: str,
        succeed: bool = True,
        latency_sec: float = 0.0,
        detail: Optional[str] = None,
        enabled: bool = True,
    ):
        super().__init__(name, enabled)
        self.succeed = succeed
        self.latency_sec = latency_sec
        self.detail = detail or (f"{name} delivered" if succeed else f"{name} failed")
        self.sent_messages: list[NotificationMessage] = []

    @classmethod
    def preset(cls, name: str) -> "SimulatedChannel":
        if name not in cls.PRESETS:
            raise ValueError(f"Unknown simulated channel preset: {name}")
        return cls(name=name, **cls.PRESETS[name])

    async def send(self, message: NotificationMessage, timeout: float) -> NotificationOutcome:
        if not self.enabled:
            return self._disabled_outcome()

        start = time.monotonic()
        if self.latency_sec:
            await asyncio.sleep(self.latency_sec)
        elapsed = time.monotonic() - start

        if self.succeed:
            self.sent_messages.append(message)
            self.record_success()
        else:
            self.record_failure(self.detail)
        return NotificationOutcome(self.name, self.succeed, self.detail, elapsed)


# =============================================================================
# File Output Channel
# =============================================================================

class FileOutputChannel(NotificationChannel):
    """
    Local outbox channel.

    - One JSON file per message
    - Rotation by file count
    """

    def __init__(
        self,
        name: str = "outbox",
        output_dir: str = "./output/notifications",
        max_files: int = 1000,
        enabled: bool = True,
    ):
        super().__init__(name, enabled)
        self.output_dir = Path(output_dir)
        self.max_files = max_files

        self.output_dir.mkdir(parents=True, exist_ok=True)

    async def send(self, message: NotificationMessage, timeout: float) -> NotificationOutcome:
        if not self.enabled:
            return self._disabled_outcome()

        start = time.monotonic()
        try:
            # notification_<timestamp>_<incident_id>.json
            timestamp = message.created_at.strftime("%Y%m%d_%H%M%S_%f")
            filepath = self.output_dir / f"notification_{timestamp}_{message.incident_id}.json"

            with open(filepath, 'w', encoding='utf-8') as f:
                json.dump(message.model_dump(mode="json"), f, indent=2, ensure_ascii=False)

            self.record_success()
            self._cleanup_old_files()
            return NotificationOutcome(
                self.name, True, f"Written to {filepath.name}", time.monotonic() - start
            )

        except OSError as e:
            error_msg = f"File output failed: {e}"
            self.record_failure(error_msg)
            logger.error(f"[OUTPUT] {error_msg}")
            return NotificationOutcome(self.name, False, error_msg, time.monotonic() - start)

    def _cleanup_old_files(self):
        try:
            files = sorted(
                self.output_dir.glob("notification_*.json"),
                key=lambda f: f.stat().st_mtime,
                reverse=True,
            )
            for old_file in files[self.max_files:]:
                old_file.unlink()
                logger.debug(f"[OUTPUT] Deleted old file: {old_file.name}")
        except OSError as e:
            logger.warning(f"[OUTPUT] Cleanup failed: {e}")

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status.update({
            "output_dir": str(self.output_dir),
            "file_count": len(list(self.output_dir.glob("notification_*.json"))),
            "max_files": self.max_files,
        })
        return status


# =============================================================================
# Webhook Output Channel (HTTP)
# =============================================================================

class WebhookOutputChannel(NotificationChannel):
    """
    HTTP webhook channel.

    - JSON POST with optional bearer token
    - 2xx counts as delivered
    - Optional in-attempt retries (default: none)
    """

    SUCCESS_STATUSES = (200, 201, 202, 204)

    def __init__(
        self,
        name: str = "webhook",
        endpoint_url: str = "https://api.example.com/notify",
        api_key: Optional[str] = None,
        max_retries: int = 1,
        retry_delay_sec: float = 0.5,
        enabled: bool = True,
    ):
        super().__init__(name, enabled)
        self.endpoint_url = endpoint_url
        self.api_key = api_key
        self.max_retries = max(1, max_retries)
        self.retry_delay_sec = retry_delay_sec

    async def send(self, message: NotificationMessage, timeout: float) -> NotificationOutcome:
        if not self.enabled:
            return self._disabled_outcome()

        payload = message.model_dump(mode="json")
        headers = self._prepare_headers()
        start = time.monotonic()
        error_msg = "No attempt made"

        for attempt in range(1, self.max_retries + 1):
            try:
                async with aiohttp.ClientSession() as session:
                    async with session.post(
                        self.endpoint_url,
                        json=payload,
                        headers=headers,
                        timeout=aiohttp.ClientTimeout(total=timeout),
                    ) as response:
                        if response.status in self.SUCCESS_STATUSES:
                            self.record_success()
                            return NotificationOutcome(
                                self.name, True, f"HTTP {response.status}",
                                time.monotonic() - start,
                            )
                        error_text = await response.text()
                        error_msg = f"HTTP {response.status}: {error_text[:100]}"

            except asyncio.TimeoutError:
                error_msg = f"Timeout after {timeout}s"
            except aiohttp.ClientError as e:
                error_msg = f"Webhook error: {e}"

            if attempt < self.max_retries:
                logger.warning(f"[OUTPUT] Webhook retry {attempt}/{self.max_retries}: {error_msg}")
                await asyncio.sleep(self.retry_delay_sec * attempt)

        self.record_failure(error_msg)
        return NotificationOutcome(self.name, False, error_msg, time.monotonic() - start)

    def _prepare_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "HomeGuard-Core/1.0",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def get_status(self) -> Dict[str, Any]:
        status = super().get_status()
        status.update({
            "endpoint_url": self.endpoint_url,
            "max_retries": self.max_retries,
            "has_api_key": self.api_key is not None,
        })
        return status
