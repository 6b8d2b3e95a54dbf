"""HomeGuard Core Services"""

from .audit_log import (
    AuditSink,
    AuditLog,
    AuditEntry,
    record_audit,
)
from .dedup_gate import DeduplicationGate, DedupConfig
from .correlation import (
    CorrelationEngine,
    CorrelationConfig,
    CorrelationResult,
)
from .incident_store import IncidentRepository, InMemoryIncidentRepository
from .incident_sm import (
    IncidentLifecycleManager,
    TRANSITIONS,
    is_valid_transition,
    build_correlation_key,
)
from .ingest_validator import (
    SensorEventValidator,
    ValidatorConfig,
    ValidationResult,
    sign_event_fields,
)
from .output_channels import (
    NotificationChannel,
    NotificationOutcome,
    SimulatedChannel,
    FileOutputChannel,
    WebhookOutputChannel,
)
from .notifier import NotificationOrchestrator, NotifierConfig
from .event_pipeline import EventPipeline, ProcessedEvent

__all__ = [
    # Audit
    'AuditSink',
    'AuditLog',
    'AuditEntry',
    'record_audit',
    # Dedup
    'DeduplicationGate',
    'DedupConfig',
    # Correlation
    'CorrelationEngine',
    'CorrelationConfig',
    'CorrelationResult',
    # Incidents
    'IncidentRepository',
    'InMemoryIncidentRepository',
    'IncidentLifecycleManager',
    'TRANSITIONS',
    'is_valid_transition',
    'build_correlation_key',
    # Ingest
    'SensorEventValidator',
    'ValidatorConfig',
    'ValidationResult',
    'sign_event_fields',
    # Notification
    'NotificationChannel',
    'NotificationOutcome',
    'SimulatedChannel',
    'FileOutputChannel',
    'WebhookOutputChannel',
    'NotificationOrchestrator',
    'NotifierConfig',
    # Pipeline
    'EventPipeline',
    'ProcessedEvent',
]
