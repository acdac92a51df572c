"""Dashboards, drone flights and monitoring reports."""

from fastapi import APIRouter, Depends, status

from ecosangam_api.commands import MRVCommands
from ecosangam_api.identity.service import Session
from ecosangam_api.reports.dashboards import Dashboard
from ecosangam_api.routes.deps import get_commands, get_services, get_session, unwrap
from ecosangam_api.schemas import FlightIn, FlightView, MonitoringReport
from ecosangam_api.services.container import Services

router = APIRouter(prefix="/v1", tags=["monitoring"])


@router.get("/dashboard", response_model=Dashboard)
async def get_dashboard(
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    """Dashboard for the caller's role."""
    return services.dashboards.build_dashboard(session.user)


@router.post("/flights", response_model=FlightView, status_code=status.HTTP_201_CREATED)
async def record_flight(
    request: FlightIn,
    session: Session = Depends(get_session),
    commands: MRVCommands = Depends(get_commands),
):
    return unwrap(await commands.record_flight(session, request))


@router.get("/projects/{project_id}/flights", response_model=list[FlightView])
async def get_flight_history(
    project_id: str,
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    """Flights over a project, newest first."""
    return services.flights.get_flight_history(session.user, project_id)


@router.get("/projects/{project_id}/monitoring-report", response_model=MonitoringReport)
async def get_monitoring_report(
    project_id: str,
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    return services.flights.get_project_monitoring_report(session.user, project_id)
