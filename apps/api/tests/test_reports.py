"""Tests for role dashboards, flight logs and monitoring reports."""

from datetime import datetime, timedelta

import pytest

from conftest import project_input
from ecosangam_api.errors import AuthorizationError, NotFound, ValidationError
from ecosangam_api.models import FieldMeasurement, User
from ecosangam_api.reports.dashboards import (
    AdminDashboard,
    GovernmentDashboard,
    NGODashboard,
    VerifierDashboard,
)
from ecosangam_api.schemas import FlightIn

STARTED = datetime(2024, 5, 10, 6, 30)


def flight(project_id: str, hours: int = 0, **overrides) -> FlightIn:
    data = {
        "project_id": project_id,
        "drone_id": "DJI-M300-01",
        "pilot_name": "A. Sen",
        "started_at": STARTED + timedelta(hours=hours),
        "ended_at": STARTED + timedelta(hours=hours, minutes=40),
        "images_captured": 320,
        "average_quality_score": 88.0,
        "coverage_area_m2": 125000.0,
        "detected_changes": 2,
    }
    data.update(overrides)
    return FlightIn(**data)


def test_ngo_dashboard_covers_own_projects(services, ngo_user, other_ngo_user, active_project):
    services.registry.create_project(other_ngo_user, project_input(name="Not ours"))

    dashboard = services.dashboards.build_dashboard(ngo_user)

    assert isinstance(dashboard, NGODashboard)
    assert dashboard.projects.total_projects == 1
    assert dashboard.active_projects == 1
    assert dashboard.impact_area_hectares == 450.2
    assert dashboard.projects.recent_projects[0].id == active_project.id


def test_government_dashboard_sees_everything(services, gov_user, ngo_user, other_ngo_user):
    services.registry.create_project(ngo_user, project_input())
    services.registry.create_project(other_ngo_user, project_input(ecosystem_type="seagrass"))

    dashboard = services.dashboards.build_dashboard(gov_user)

    assert isinstance(dashboard, GovernmentDashboard)
    assert dashboard.projects.total_projects == 2
    assert dashboard.projects_by_ecosystem == {"mangrove": 1, "seagrass": 1}
    assert dashboard.projects_by_state == {"West Bengal": 2}
    assert dashboard.compliance_rate == 0.0


def test_admin_dashboard_counts_users(services, admin_user, ngo_user, verifier_user):
    dashboard = services.dashboards.build_dashboard(admin_user)

    assert isinstance(dashboard, AdminDashboard)
    assert dashboard.total_users == 3
    assert dashboard.users_by_role == {"admin": 1, "ngo": 1, "verifier": 1}
    assert dashboard.organizations == 6


def test_verifier_dashboard_starts_empty(services, verifier_user, active_project):
    dashboard = services.dashboards.build_dashboard(verifier_user)

    assert isinstance(dashboard, VerifierDashboard)
    assert dashboard.verified_by_me == 0
    assert dashboard.average_confidence == 0.0


def test_unknown_role_has_no_dashboard(db, services, organizations):
    user = User(
        id="usr-ghost",
        name="Ghost",
        email="ghost@example.org",
        role="auditor",
        organization_id="org-platform",
        credential_hash="x",
    )
    db.add(user)
    db.commit()

    with pytest.raises(AuthorizationError):
        services.dashboards.build_dashboard(user)


def test_record_flight_and_history_newest_first(services, ngo_user, active_project):
    first = services.flights.record_flight(ngo_user, flight(active_project.id))
    second = services.flights.record_flight(ngo_user, flight(active_project.id, hours=24))

    history = services.flights.get_flight_history(ngo_user, active_project.id)

    assert first.id.startswith("flt-")
    assert first.recorded_by == ngo_user.id
    assert [f.id for f in history] == [second.id, first.id]


def test_record_flight_validates(services, ngo_user, active_project):
    bad = flight(
        active_project.id,
        drone_id=" ",
        status="crashed",
        ended_at=STARTED - timedelta(minutes=5),
        average_quality_score=140.0,
    )

    with pytest.raises(ValidationError) as exc_info:
        services.flights.record_flight(ngo_user, bad)

    fields = {v.field for v in exc_info.value.violations}
    assert fields == {"drone_id", "status", "ended_at", "average_quality_score"}


@pytest.mark.parametrize("coverage", [float("inf"), float("nan")])
def test_record_flight_rejects_non_finite_coverage(services, ngo_user, active_project, coverage):
    with pytest.raises(ValidationError) as exc_info:
        services.flights.record_flight(ngo_user, flight(active_project.id, coverage_area_m2=coverage))

    assert [v.field for v in exc_info.value.violations] == ["coverage_area_m2"]


def test_record_flight_needs_capability_and_visibility(services, panchayat_user, other_ngo_user, active_project):
    with pytest.raises(AuthorizationError):
        services.flights.record_flight(panchayat_user, flight(active_project.id))
    with pytest.raises(NotFound):
        services.flights.record_flight(other_ngo_user, flight(active_project.id))


def test_monitoring_report_aggregates(db, services, ngo_user, active_project):
    services.flights.record_flight(ngo_user, flight(active_project.id))
    services.flights.record_flight(ngo_user, flight(active_project.id, hours=2, average_quality_score=92.0))
    db.add(
        FieldMeasurement(
            id="m-monitor",
            type="monitoring",
            project_id=active_project.id,
            recorded_at=STARTED,
            latitude=21.95,
            longitude=88.75,
            data_json={"canopy_cover": 0.62},
            field_officer="R. Das",
            organization_id=ngo_user.organization_id,
            device_id="tablet-01",
            submitted_by=ngo_user.id,
        )
    )
    db.commit()

    report = services.flights.get_project_monitoring_report(ngo_user, active_project.id)

    assert report.total_flights == 2
    assert report.total_images == 640
    assert report.coverage_area_m2 == 250000.0
    assert report.average_quality_score == 90.0
    assert report.detected_changes == 4
    assert report.measurements_by_type == {"monitoring": 1}
    assert len(report.latest_flights) == 2
