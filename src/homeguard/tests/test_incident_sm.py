"""
Tests for IncidentLifecycleManager

Covers:
- Create vs merge by correlation key
- Evidence de-duplication and monotonic confidence
- Transition table enforcement
"""

import pytest
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone, timedelta

from homeguard.domain.enums import SensorKind, IncidentKind, IncidentState, AuditEventKind
from homeguard.domain.errors import IncidentNotFoundError, InvalidTransitionError
from homeguard.services.audit_log import AuditLog
from homeguard.services.incident_sm import (
    IncidentLifecycleManager,
    is_valid_transition,
    build_correlation_key,
)
from homeguard.services.incident_store import InMemoryIncidentRepository


BASE = datetime(2025, 1, 15, 10, 30, 0, tzinfo=timezone.utc)
KEY = "inc-fire-202501151030"


@pytest.fixture
def audit():
    return AuditLog()


@pytest.fixture
def manager(audit):
    return IncidentLifecycleManager(InMemoryIncidentRepository(), audit)


def _smoke(make_event, event_id, offset=0):
    return make_event(event_id, SensorKind.SMOKE, 95, offset_sec=offset)


# =============================================================================
# Create / Merge
# =============================================================================

class TestCreateOrUpdate:

    def test_create_confirmed(self, manager, make_event, audit):
        incident = manager.create_or_update(
            [_smoke(make_event, "s1")], 1.0, IncidentKind.FIRE, KEY, now=BASE
        )

        assert incident.state == IncidentState.CONFIRMED
        assert incident.confidence == 1.0
        assert incident.evidence_ids == ["s1"]
        assert incident.correlation_key == KEY
        assert incident.revision == 1
        assert incident.created_at == BASE
        assert len(audit.query(kind=AuditEventKind.INCIDENT_CREATED)) == 1

    def test_create_suspected_below_full_confidence(self, manager, make_event):
        incident = manager.create_or_update(
            [_smoke(make_event, "s1")], 0.5, IncidentKind.FIRE, KEY, now=BASE
        )
        assert incident.state == IncidentState.SUSPECTED

    def test_merge_same_key(self, manager, make_event, audit):
        first = manager.create_or_update(
            [_smoke(make_event, "s1")], 0.5, IncidentKind.FIRE, KEY, now=BASE
        )
        merged = manager.create_or_update(
            [_smoke(make_event, "s2", 5)], 0.5, IncidentKind.FIRE, KEY,
            now=BASE + timedelta(seconds=5),
        )

        assert merged.incident_id == first.incident_id
        assert merged.evidence_ids == ["s1", "s2"]
        assert merged.revision == 2
        assert merged.updated_at == BASE + timedelta(seconds=5)
        assert len(manager.list_incidents()) == 1
        assert len(audit.query(kind=AuditEventKind.INCIDENT_MERGED)) == 1

    def test_merge_never_duplicates_evidence(self, manager, make_event):
        s1 = _smoke(make_event, "s1")
        manager.create_or_update([s1], 0.5, IncidentKind.FIRE, KEY, now=BASE)
        merged = manager.create_or_update(
            [s1, _smoke(make_event, "s2", 1)], 0.5, IncidentKind.FIRE, KEY, now=BASE
        )

        assert merged.evidence_ids == ["s1", "s2"]

    def test_confidence_never_decreases(self, manager, make_event):
        manager.create_or_update([_smoke(make_event, "s1")], 0.5, IncidentKind.FIRE, KEY, now=BASE)
        merged = manager.create_or_update(
            [_smoke(make_event, "s2", 1)], 0.3, IncidentKind.FIRE, KEY, now=BASE
        )
        assert merged.confidence == 0.5

    def test_full_confidence_merge_confirms_suspected(self, manager, make_event):
        manager.create_or_update([_smoke(make_event, "s1")], 0.5, IncidentKind.FIRE, KEY, now=BASE)
        merged = manager.create_or_update(
            [_smoke(make_event, "s2", 1)], 1.0, IncidentKind.FIRE, KEY, now=BASE
        )

        assert merged.state == IncidentState.CONFIRMED
        assert merged.confidence == 1.0

    def test_full_confidence_merge_leaves_notified(self, manager, make_event):
        created = manager.create_or_update(
            [_smoke(make_event, "s1")], 1.0, IncidentKind.FIRE, KEY, now=BASE
        )
        manager.transition_state(created.incident_id, IncidentState.NOTIFIED, now=BASE)

        merged = manager.create_or_update(
            [_smoke(make_event, "s2", 1)], 1.0, IncidentKind.FIRE, KEY, now=BASE
        )
        assert merged.state == IncidentState.NOTIFIED
        assert merged.evidence_ids == ["s1", "s2"]

    def test_rejected_auto_confirm_still_commits_merge(self, manager, make_event, audit):
        created = manager.create_or_update(
            [_smoke(make_event, "s1")], 1.0, IncidentKind.FIRE, KEY, now=BASE
        )
        manager.transition_state(created.incident_id, IncidentState.NOTIFIED, now=BASE)
        manager.transition_state(created.incident_id, IncidentState.ACKNOWLEDGED, now=BASE)

        merged = manager.create_or_update(
            [_smoke(make_event, "s2", 1)], 1.0, IncidentKind.FIRE, KEY, now=BASE
        )

        assert merged.state == IncidentState.ACKNOWLEDGED
        assert merged.evidence_ids == ["s1", "s2"]
        assert len(audit.query(kind=AuditEventKind.STATE_TRANSITION_FAILED)) == 1

    def test_different_keys_create_separate_incidents(self, manager, make_event):
        a = manager.create_or_update(
            [_smoke(make_event, "s1")], 1.0, IncidentKind.FIRE, "inc-fire-202501151030", now=BASE
        )
        b = manager.create_or_update(
            [_smoke(make_event, "s2", 60)], 1.0, IncidentKind.FIRE, "inc-fire-202501151031", now=BASE
        )
        assert a.incident_id != b.incident_id
        assert len(manager.list_incidents()) == 2

    def test_returned_incident_is_a_copy(self, manager, make_event):
        incident = manager.create_or_update(
            [_smoke(make_event, "s1")], 1.0, IncidentKind.FIRE, KEY, now=BASE
        )
        incident.state = IncidentState.ARCHIVED
        incident.evidence.clear()

        stored = manager.get_incident(incident.incident_id)
        assert stored.state == IncidentState.CONFIRMED
        assert stored.evidence_ids == ["s1"]

    def test_concurrent_merges_keep_all_evidence(self, manager, make_event):
        events = [_smoke(make_event, f"s{i}", i * 0.1) for i in range(32)]
        confidences = [0.5 if i % 3 else 1.0 for i in range(32)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(
                lambda pair: manager.create_or_update(
                    [pair[0]], pair[1], IncidentKind.FIRE, KEY, now=BASE
                ),
                zip(events, confidences),
            ))

        incidents = manager.list_incidents()
        assert len(incidents) == 1
        assert sorted(incidents[0].evidence_ids) == sorted(e.event_id for e in events)
        assert incidents[0].confidence == 1.0


# =============================================================================
# Transitions
# =============================================================================

class TestTransitions:

    @pytest.fixture
    def confirmed(self, manager, make_event):
        return manager.create_or_update(
            [_smoke(make_event, "s1")], 1.0, IncidentKind.FIRE, KEY, now=BASE
        )

    def test_valid_transition(self, manager, confirmed):
        later = BASE + timedelta(seconds=2)
        updated = manager.transition_state(confirmed.incident_id, IncidentState.NOTIFIED, now=later)

        assert updated.state == IncidentState.NOTIFIED
        assert updated.revision == confirmed.revision + 1
        assert updated.updated_at == later

    def test_confirmed_to_detected_rejected(self, manager, confirmed, audit):
        with pytest.raises(InvalidTransitionError) as exc_info:
            manager.transition_state(confirmed.incident_id, IncidentState.DETECTED)

        assert exc_info.value.from_state == IncidentState.CONFIRMED
        assert exc_info.value.to_state == IncidentState.DETECTED
        assert exc_info.value.incident_id == confirmed.incident_id
        assert manager.get_incident(confirmed.incident_id).state == IncidentState.CONFIRMED
        assert len(audit.query(kind=AuditEventKind.STATE_TRANSITION_FAILED)) == 1

    def test_unknown_incident(self, manager):
        with pytest.raises(IncidentNotFoundError):
            manager.transition_state("inc_missing", IncidentState.NOTIFIED)

    def test_self_transition_is_noop(self, manager, confirmed):
        updated = manager.transition_state(confirmed.incident_id, IncidentState.CONFIRMED)

        assert updated.state == IncidentState.CONFIRMED
        assert updated.revision == confirmed.revision
        assert updated.updated_at == confirmed.updated_at

    def test_full_lifecycle(self, manager, confirmed):
        for state in (
            IncidentState.NOTIFIED,
            IncidentState.ACKNOWLEDGED,
            IncidentState.RESOLVED,
            IncidentState.CLOSED,
            IncidentState.ARCHIVED,
        ):
            manager.transition_state(confirmed.incident_id, state)

        with pytest.raises(InvalidTransitionError):
            manager.transition_state(confirmed.incident_id, IncidentState.RESOLVED)

    def test_list_by_state(self, manager, make_event, confirmed):
        manager.create_or_update(
            [make_event("c1", SensorKind.CONTACT, 1)], 0.3, IncidentKind.BREAK_IN,
            "inc-break_in-202501151030", now=BASE,
        )

        assert len(manager.list_incidents(IncidentState.CONFIRMED)) == 1
        assert len(manager.list_incidents(IncidentState.SUSPECTED)) == 1
        assert manager.list_incidents(IncidentState.CLOSED) == []


@pytest.mark.parametrize("current,new,expected", [
    (IncidentState.DETECTED, IncidentState.SUSPECTED, True),
    (IncidentState.DETECTED, IncidentState.CONFIRMED, True),
    (IncidentState.SUSPECTED, IncidentState.CONFIRMED, True),
    (IncidentState.SUSPECTED, IncidentState.RESOLVED, True),
    (IncidentState.SUSPECTED, IncidentState.NOTIFIED, False),
    (IncidentState.CONFIRMED, IncidentState.NOTIFICATION_FAILED, True),
    (IncidentState.CONFIRMED, IncidentState.DETECTED, False),
    (IncidentState.NOTIFICATION_FAILED, IncidentState.NOTIFIED, True),
    (IncidentState.NOTIFIED, IncidentState.CONFIRMED, False),
    (IncidentState.ACKNOWLEDGED, IncidentState.RESOLVED, True),
    (IncidentState.RESOLVED, IncidentState.CLOSED, True),
    (IncidentState.CLOSED, IncidentState.ARCHIVED, True),
    (IncidentState.ARCHIVED, IncidentState.CLOSED, False),
    (IncidentState.ARCHIVED, IncidentState.ARCHIVED, True),
])
def test_transition_table(current, new, expected):
    assert is_valid_transition(current, new) is expected


class TestCorrelationKey:

    def test_minute_bucket(self):
        assert build_correlation_key(IncidentKind.FIRE, BASE + timedelta(seconds=59)) == KEY

    def test_minute_boundary_splits(self):
        assert build_correlation_key(IncidentKind.FIRE, BASE + timedelta(seconds=60)) == \
            "inc-fire-202501151031"

    def test_converted_to_utc(self):
        local = BASE.astimezone(timezone(timedelta(hours=8)))
        assert build_correlation_key(IncidentKind.BREAK_IN, local) == "inc-break_in-202501151030"
