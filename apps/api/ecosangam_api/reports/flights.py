"""Drone flight log and per-project monitoring report."""

import logging
import math
import uuid

from sqlalchemy import func

from ecosangam_api.auth.capabilities import require_capability
from ecosangam_api.errors import FieldViolation, ValidationError
from ecosangam_api.models import FieldMeasurement, FlightMission, User
from ecosangam_api.models.measurement import FLIGHT_STATUSES
from ecosangam_api.registry.service import ProjectRegistry
from ecosangam_api.schemas import FlightIn, FlightView, MonitoringReport
from ecosangam_api.services.base import BaseService

logger = logging.getLogger(__name__)

LATEST_FLIGHTS = 5


class FlightService(BaseService):
    """Records flight missions and summarizes monitoring coverage."""

    def __init__(self, db, registry: ProjectRegistry):
        super().__init__(db)
        self.registry = registry

    def record_flight(self, actor: User, data: FlightIn) -> FlightMission:
        require_capability(actor, "flights:record")
        project = self.registry.get_project_for(actor, data.project_id)

        violations = []
        if not data.drone_id.strip():
            violations.append(FieldViolation("drone_id", "must not be empty"))
        if data.status not in FLIGHT_STATUSES:
            violations.append(FieldViolation("status", f"must be one of {', '.join(FLIGHT_STATUSES)}"))
        if data.ended_at is not None and data.ended_at < data.started_at:
            violations.append(FieldViolation("ended_at", "must not be before started_at"))
        if data.images_captured < 0:
            violations.append(FieldViolation("images_captured", "must not be negative"))
        if data.detected_changes < 0:
            violations.append(FieldViolation("detected_changes", "must not be negative"))
        if data.average_quality_score is not None and not 0 <= data.average_quality_score <= 100:
            violations.append(FieldViolation("average_quality_score", "must be within [0, 100]"))
        coverage = data.coverage_area_m2
        if coverage is not None and (not math.isfinite(coverage) or coverage < 0):
            violations.append(FieldViolation("coverage_area_m2", "must be a finite, non-negative number"))
        if violations:
            raise ValidationError(violations)

        with self.unit_of_work():
            flight = FlightMission(
                id=f"flt-{uuid.uuid4().hex[:12]}",
                recorded_by=actor.id,
                **data.model_dump(),
            )
            self.db.add(flight)

        logger.info(f"Recorded flight {flight.id}", extra={"project_id": project.id, "drone_id": flight.drone_id})
        return flight

    def get_flight_history(self, user: User, project_id: str) -> list[FlightMission]:
        """Flights over a project, newest first."""
        self.registry.get_project_for(user, project_id)
        return (
            self.db.query(FlightMission)
            .filter(FlightMission.project_id == project_id)
            .order_by(FlightMission.started_at.desc(), FlightMission.id.desc())
            .all()
        )

    def get_project_monitoring_report(self, user: User, project_id: str) -> MonitoringReport:
        flights = self.get_flight_history(user, project_id)
        scores = [f.average_quality_score for f in flights if f.average_quality_score is not None]

        counts = (
            self.db.query(FieldMeasurement.type, func.count(FieldMeasurement.id))
            .filter(FieldMeasurement.project_id == project_id)
            .group_by(FieldMeasurement.type)
            .all()
        )

        return MonitoringReport(
            project_id=project_id,
            total_flights=len(flights),
            total_images=sum(f.images_captured for f in flights),
            coverage_area_m2=sum(f.coverage_area_m2 or 0.0 for f in flights),
            average_quality_score=round(sum(scores) / len(scores), 2) if scores else 0.0,
            detected_changes=sum(f.detected_changes for f in flights),
            measurements_by_type={measurement_type: count for measurement_type, count in counts},
            latest_flights=[FlightView.model_validate(f) for f in flights[:LATEST_FLIGHTS]],
        )
