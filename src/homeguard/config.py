"""Configuration loader and pipeline wiring"""
import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .services.audit_log import AuditLog
from .services.correlation import CorrelationConfig, CorrelationEngine
from .services.dedup_gate import DedupConfig, DeduplicationGate
from .services.event_pipeline import EventPipeline
from .services.incident_sm import IncidentLifecycleManager
from .services.incident_store import InMemoryIncidentRepository
from .services.ingest_validator import SensorEventValidator, ValidatorConfig
from .services.notifier import NotificationOrchestrator, NotifierConfig
from .services.output_channels import (
    NotificationChannel,
    SimulatedChannel,
    FileOutputChannel,
    WebhookOutputChannel,
)


load_dotenv()

logger = logging.getLogger(__name__)


def _env_list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseModel):
    """Process-level settings, read from HOMEGUARD_* environment variables"""
    log_level: str = Field(default_factory=lambda: os.getenv("HOMEGUARD_LOG_LEVEL", "INFO"))
    shared_secret: str = Field(
        default_factory=lambda: os.getenv("HOMEGUARD_SHARED_SECRET", "homeguard-dev-secret")
    )

    dedup_retention_sec: int = Field(
        default_factory=lambda: int(os.getenv("HOMEGUARD_DEDUP_RETENTION_SEC", "600"))
    )
    dedup_sweep_sec: int = Field(
        default_factory=lambda: int(os.getenv("HOMEGUARD_DEDUP_SWEEP_SEC", "60"))
    )
    correlation_window_sec: int = Field(
        default_factory=lambda: int(os.getenv("HOMEGUARD_CORRELATION_WINDOW_SEC", "10"))
    )
    channel_deadline_sec: float = Field(
        default_factory=lambda: float(os.getenv("HOMEGUARD_CHANNEL_DEADLINE_SEC", "5.0"))
    )

    # Channel names in priority order: sms/push/email presets, "outbox", "webhook"
    channels: list[str] = Field(
        default_factory=lambda: _env_list("HOMEGUARD_CHANNELS", "sms,push,email")
    )
    webhook_url: str = Field(default_factory=lambda: os.getenv("HOMEGUARD_WEBHOOK_URL", ""))
    webhook_api_key: Optional[str] = Field(
        default_factory=lambda: os.getenv("HOMEGUARD_WEBHOOK_API_KEY") or None
    )
    outbox_dir: str = Field(
        default_factory=lambda: os.getenv("HOMEGUARD_OUTBOX_DIR", "./output/notifications")
    )
    audit_log_path: Optional[str] = Field(
        default_factory=lambda: os.getenv("HOMEGUARD_AUDIT_LOG_PATH") or None
    )

    def to_dedup_config(self) -> DedupConfig:
        return DedupConfig(
            retention_sec=self.dedup_retention_sec,
            sweep_interval_sec=self.dedup_sweep_sec,
        )

    def to_correlation_config(self) -> CorrelationConfig:
        return CorrelationConfig(window_sec=self.correlation_window_sec)

    def to_notifier_config(self) -> NotifierConfig:
        return NotifierConfig(channel_deadline_sec=self.channel_deadline_sec)

    def to_validator_config(self) -> ValidatorConfig:
        return ValidatorConfig(shared_secret=self.shared_secret)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def build_channel(name: str, settings: Settings) -> NotificationChannel:
    """Build one notification channel by name.

    Raises:
        ValueError: Unknown channel name, or webhook without a URL
    """
    if name in SimulatedChannel.PRESETS:
        return SimulatedChannel.preset(name)
    if name == "outbox":
        return FileOutputChannel(output_dir=settings.outbox_dir)
    if name == "webhook":
        if not settings.webhook_url:
            raise ValueError("webhook channel requires HOMEGUARD_WEBHOOK_URL")
        return WebhookOutputChannel(
            endpoint_url=settings.webhook_url,
            api_key=settings.webhook_api_key,
        )
    raise ValueError(f"Unknown notification channel: {name}")


def build_pipeline(settings: Optional[Settings] = None) -> EventPipeline:
    """Wire a complete in-memory pipeline from ``settings``."""
    settings = settings or Settings()

    audit_log = AuditLog(log_path=settings.audit_log_path)
    channels = [build_channel(name, settings) for name in settings.channels]

    pipeline = EventPipeline(
        validator=SensorEventValidator(settings.to_validator_config()),
        dedup_gate=DeduplicationGate(settings.to_dedup_config()),
        correlation_engine=CorrelationEngine(settings.to_correlation_config()),
        incident_manager=IncidentLifecycleManager(InMemoryIncidentRepository(), audit_log),
        notifier=NotificationOrchestrator(channels, settings.to_notifier_config(), audit_log),
        audit_sink=audit_log,
    )
    logger.info(f"[PIPELINE] Built pipeline with channels: {', '.join(settings.channels) or 'none'}")
    return pipeline
