"""
Incident API Endpoints

Provides REST API for:
- Sensor event ingest
- Incident queries and manual lifecycle transitions
- Notification retry
- Audit trail and channel status
"""

from typing import List, Optional
from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from ..domain import (
    AuditEventKind,
    IncidentState,
    IncidentNotFoundError,
    InvalidTransitionError,
    SensorEvent,
)
from ..services.audit_log import AuditLog
from ..services.event_pipeline import EventPipeline


# Create router
incident_router = APIRouter(prefix="/api", tags=["incidents"])


class TransitionRequest(BaseModel):
    state: IncidentState


def get_pipeline(request: Request) -> EventPipeline:
    """Pipeline owned by the running application."""
    return request.app.state.pipeline


# =============================================================================
# Ingest
# =============================================================================

@incident_router.post("/events", response_model=dict)
async def ingest_event(event: SensorEvent, request: Request):
    """Run one sensor event through the pipeline.

    Rejected and duplicate events are reported in the body, not as HTTP
    errors.
    """
    pipeline = get_pipeline(request)
    result = await pipeline.process_event(event)
    return result.to_dict()


# =============================================================================
# Incidents
# =============================================================================

@incident_router.get("/incidents", response_model=List[dict])
async def list_incidents(
    request: Request,
    state: Optional[IncidentState] = Query(None, description="Filter by lifecycle state"),
):
    pipeline = get_pipeline(request)
    incidents = pipeline.incident_manager.list_incidents(state)
    return [i.model_dump(mode="json") for i in incidents]


@incident_router.get("/incidents/{incident_id}", response_model=dict)
async def get_incident(incident_id: str, request: Request):
    """Get details of a specific incident.

    Raises:
        404: If incident not found
    """
    pipeline = get_pipeline(request)
    incident = pipeline.incident_manager.get_incident(incident_id)

    if not incident:
        raise HTTPException(status_code=404, detail=f"Incident {incident_id} not found")

    return incident.model_dump(mode="json")


@incident_router.post("/incidents/{incident_id}/transition", response_model=dict)
async def transition_incident(incident_id: str, body: TransitionRequest, request: Request):
    """Manually move an incident (acknowledge, resolve, close, archive).

    Raises:
        404: If incident not found
        409: If the lifecycle forbids the transition
    """
    pipeline = get_pipeline(request)
    try:
        incident = pipeline.incident_manager.transition_state(incident_id, body.state)
    except IncidentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return incident.model_dump(mode="json")


@incident_router.post("/incidents/{incident_id}/retry-notification", response_model=dict)
async def retry_notification(incident_id: str, request: Request):
    """Retry delivery for an incident in notification_failed.

    Raises:
        404: If incident not found
        409: If the incident is not in notification_failed
    """
    pipeline = get_pipeline(request)
    try:
        outcome = await pipeline.retry_notification(incident_id)
    except IncidentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))

    incident = pipeline.incident_manager.get_incident(incident_id)
    return {
        "notification": outcome.to_dict(),
        "incident": incident.model_dump(mode="json"),
    }


# =============================================================================
# Audit / Channels
# =============================================================================

@incident_router.get("/audit", response_model=List[dict])
async def get_audit_entries(
    request: Request,
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of results"),
    kind: Optional[AuditEventKind] = Query(None, description="Filter by audit kind"),
    related_id: Optional[str] = Query(None, description="Filter by event/incident id"),
):
    """Most recent audit entries matching the filters, oldest first."""
    pipeline = get_pipeline(request)
    audit = pipeline.audit_sink
    if not isinstance(audit, AuditLog):
        return []

    entries = audit.query(kind=kind, related_id=related_id)
    return [e.to_dict() for e in entries[-limit:]]


@incident_router.get("/channels", response_model=dict)
async def get_channels(request: Request):
    """Notification channel order, counters and per-channel status."""
    pipeline = get_pipeline(request)
    return pipeline.notifier.get_status()
