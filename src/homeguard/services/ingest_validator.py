"""
Sensor Ingest Validator

Boundary checks applied before an event enters the pipeline:
- Required identifiers
- Timestamp within tolerance of now
- Value range per sensor kind
- HMAC-SHA256 signature under the shared secret
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone, timedelta
from typing import Optional, Union
import hashlib
import hmac

from ..domain.enums import SensorKind
from ..domain.models import SensorEvent


@dataclass
class ValidatorConfig:
    """Ingest validation rules."""
    timestamp_tolerance_sec: int = 300
    shared_secret: str = "homeguard-dev-secret"

    binary_kinds: tuple = (SensorKind.CONTACT, SensorKind.MOTION)
    analog_kinds: tuple = (SensorKind.SMOKE, SensorKind.HEAT)
    analog_min: float = 0.0
    analog_max: float = 1000.0


@dataclass
class ValidationResult:
    """Outcome of validating one event."""
    is_valid: bool
    errors: list[str] = field(default_factory=list)

    @classmethod
    def success(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def failure(cls, *errors: str) -> "ValidationResult":
        return cls(is_valid=False, errors=list(errors))


def sign_event_fields(
    event_id: str,
    device_id: str,
    kind: Union[SensorKind, str],
    value: float,
    timestamp: datetime,
    secret: str,
) -> str:
    """Hex HMAC-SHA256 over ``event_id|device_id|kind|value|timestamp``."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    kind_value = kind.value if isinstance(kind, SensorKind) else str(kind)
    canonical = "|".join([
        event_id,
        device_id,
        kind_value,
        repr(float(value)),
        timestamp.astimezone(timezone.utc).isoformat(),
    ])
    return hmac.new(secret.encode(), canonical.encode(), hashlib.sha256).hexdigest()


class SensorEventValidator:
    """Validates sensor events at the ingest boundary."""

    def __init__(self, config: Optional[ValidatorConfig] = None):
        self.config = config or ValidatorConfig()

    def validate(
        self,
        event: Optional[SensorEvent],
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        """Validate ``event``.

        Args:
            event: Event to check (None is rejected)
            now: Current time (for testing)

        Returns:
            ValidationResult with every problem found
        """
        if event is None:
            return ValidationResult.failure("Event cannot be null")

        now = now or datetime.now(timezone.utc)
        errors: list[str] = []

        if not event.event_id.strip():
            errors.append("event_id is required")
        if not event.device_id.strip():
            errors.append("device_id is required")

        tolerance = timedelta(seconds=self.config.timestamp_tolerance_sec)
        tolerance_min = self.config.timestamp_tolerance_sec / 60
        if event.timestamp > now + tolerance:
            errors.append(f"Timestamp is in the future (tolerance {tolerance_min:g}m)")
        if event.timestamp < now - tolerance:
            errors.append(f"Timestamp is too old (tolerance {tolerance_min:g}m)")

        if event.kind in self.config.binary_kinds:
            if event.value not in (0, 1):
                errors.append(f"Invalid value for {event.kind.value}: must be 0 or 1")
        elif event.kind in self.config.analog_kinds:
            if not self.config.analog_min <= event.value <= self.config.analog_max:
                errors.append(
                    f"Invalid value for {event.kind.value}: out of range "
                    f"{self.config.analog_min:g}-{self.config.analog_max:g}"
                )

        if not self._verify_signature(event):
            errors.append("Invalid signature")

        if errors:
            return ValidationResult.failure(*errors)
        return ValidationResult.success()

    def sign(self, event_id: str, device_id: str, kind: SensorKind, value: float, timestamp: datetime) -> str:
        """Signature for the given fields under this validator's secret."""
        return sign_event_fields(event_id, device_id, kind, value, timestamp, self.config.shared_secret)

    def _verify_signature(self, event: SensorEvent) -> bool:
        if not event.signature:
            return False
        expected = self.sign(event.event_id, event.device_id, event.kind, event.value, event.timestamp)
        return hmac.compare_digest(expected, event.signature)
