"""Project registry endpoints."""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from ecosangam_api.commands import MRVCommands
from ecosangam_api.identity.service import Session
from ecosangam_api.routes.deps import get_commands, get_services, get_session, unwrap
from ecosangam_api.schemas import ProjectCreate, ProjectPatch, ProjectView, TokenView
from ecosangam_api.services.container import Services

router = APIRouter(prefix="/v1/projects", tags=["projects"])


class MeasurementView(BaseModel):
    id: str
    type: str
    project_id: str
    recorded_at: datetime
    latitude: float
    longitude: float
    gps_accuracy: Optional[float] = None
    data_json: dict[str, Any]
    photographs: Optional[list[str]] = None
    field_notes: Optional[str] = None
    field_officer: str
    device_id: str
    synced_at: datetime

    class Config:
        from_attributes = True


class AuditEventView(BaseModel):
    id: int
    event_type: str
    event_hash: str
    previous_event_hash: Optional[str] = None
    correlation_id: Optional[str] = None
    payload_json: dict[str, Any]
    created_at: datetime

    class Config:
        from_attributes = True


class AuditTrailResponse(BaseModel):
    project_id: str
    chain_valid: bool
    error: Optional[str] = None
    events: list[AuditEventView]


@router.get("", response_model=list[ProjectView])
async def list_projects(
    status_filter: Optional[str] = Query(None, alias="status"),
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    """Projects visible to the caller."""
    return services.registry.get_projects_visible_to(session.user, status=status_filter)


@router.post("", response_model=ProjectView, status_code=status.HTTP_201_CREATED)
async def create_project(
    request: ProjectCreate,
    session: Session = Depends(get_session),
    commands: MRVCommands = Depends(get_commands),
):
    return unwrap(await commands.create_project(session, request))


@router.get("/{project_id}", response_model=ProjectView)
async def get_project(
    project_id: str,
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    return services.registry.get_project_for(session.user, project_id)


@router.patch("/{project_id}", response_model=ProjectView)
async def update_project(
    project_id: str,
    request: ProjectPatch,
    session: Session = Depends(get_session),
    commands: MRVCommands = Depends(get_commands),
):
    """Update name, description or methodology."""
    patch = request.model_dump(exclude_unset=True)
    return unwrap(await commands.update_project(session, project_id, patch))


@router.get("/{project_id}/measurements", response_model=list[MeasurementView])
async def list_measurements(
    project_id: str,
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    return services.records.get_measurements(project_id, user=session.user)


@router.get("/{project_id}/tokens", response_model=list[TokenView])
async def list_project_tokens(
    project_id: str,
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    services.registry.get_project_for(session.user, project_id)
    return [TokenView.from_token(token) for token in services.ledger.get_tokens_for_project(project_id)]


@router.get("/{project_id}/audit", response_model=AuditTrailResponse)
async def get_audit_trail(
    project_id: str,
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
    commands: MRVCommands = Depends(get_commands),
):
    """Hash-chained audit events for a project and whether the chain verifies."""
    chain_valid, error = unwrap(await commands.verify_audit_chain(session, project_id))
    return AuditTrailResponse(
        project_id=project_id,
        chain_valid=chain_valid,
        error=error,
        events=[AuditEventView.model_validate(event) for event in services.audit.get_events(project_id)],
    )
