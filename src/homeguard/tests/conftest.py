"""
Shared fixtures for HomeGuard tests
"""

import pytest
from datetime import datetime, timezone, timedelta

from homeguard.domain.enums import SensorKind
from homeguard.domain.models import SensorEvent
from homeguard.services.ingest_validator import sign_event_fields


TEST_SECRET = "test-secret"

# 10:30:00 UTC, so BASE + 0..59s share one correlation minute
BASE = datetime(2025, 1, 15, 10, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
def base_time():
    return BASE


@pytest.fixture
def make_event():
    """Factory for signed sensor events.

    make_event("e1", SensorKind.SMOKE, 95, offset_sec=3)
    """
    def _make(
        event_id: str,
        kind: SensorKind,
        value: float,
        offset_sec: float = 0,
        timestamp: datetime = None,
        device_id: str = "dev_01",
        secret: str = TEST_SECRET,
        signature: str = None,
    ) -> SensorEvent:
        ts = timestamp or BASE + timedelta(seconds=offset_sec)
        if signature is None:
            signature = sign_event_fields(event_id, device_id, kind, value, ts, secret)
        return SensorEvent(
            event_id=event_id,
            device_id=device_id,
            kind=kind,
            value=value,
            timestamp=ts,
            signature=signature,
        )

    return _make
