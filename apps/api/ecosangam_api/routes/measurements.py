"""Device offline queues and sync."""

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from ecosangam_api.commands import MRVCommands
from ecosangam_api.identity.service import Session
from ecosangam_api.routes.deps import get_commands, get_services, get_session, unwrap
from ecosangam_api.schemas import MeasurementIn, QueueEntryView, SyncReport
from ecosangam_api.services.container import Services

router = APIRouter(prefix="/v1/devices", tags=["measurements"])


class QueuedResponse(BaseModel):
    measurement_id: str
    device_id: str
    sync_status: str = "offline"


@router.post("/{device_id}/measurements", response_model=QueuedResponse, status_code=status.HTTP_202_ACCEPTED)
async def save_offline(
    device_id: str,
    request: MeasurementIn,
    session: Session = Depends(get_session),
    commands: MRVCommands = Depends(get_commands),
):
    """Queue a measurement on the device's offline queue."""
    if request.organization_id is None:
        request = request.model_copy(update={"organization_id": session.user.organization_id})
    measurement_id = unwrap(await commands.save_offline(device_id, request))
    return QueuedResponse(measurement_id=measurement_id, device_id=device_id)


@router.get("/{device_id}/queue", response_model=list[QueueEntryView])
async def list_queue(
    device_id: str,
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    return services.records.list_queue(device_id, user=session.user)


@router.post("/{device_id}/sync", response_model=SyncReport)
async def sync_pending(
    device_id: str,
    session: Session = Depends(get_session),
    commands: MRVCommands = Depends(get_commands),
):
    """Push the device's queued measurements, oldest first."""
    return unwrap(await commands.sync_pending(session, device_id))
