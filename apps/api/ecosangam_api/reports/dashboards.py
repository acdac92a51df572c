"""Role dashboards as serializable view models.

Every builder starts from ``ProjectRegistry.get_projects_visible_to`` so a
dashboard never shows a project its viewer could not open directly.
"""

import logging
from collections import Counter
from typing import Annotated, Callable, Literal, Optional, Union

from pydantic import BaseModel, Field
from sqlalchemy import func

from ecosangam_api.errors import AuthorizationError
from ecosangam_api.models import CarbonCreditToken, FieldMeasurement, Organization, Project, User, VerificationRecord
from ecosangam_api.registry.service import ProjectRegistry
from ecosangam_api.schemas import ProjectView
from ecosangam_api.services.base import BaseService

logger = logging.getLogger(__name__)

RECENT_PROJECTS = 5


class ProjectSummary(BaseModel):
    total_projects: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    area_hectares: float = 0.0
    total_credits_issued: int = 0
    available_credits: int = 0
    credits_retired: int = 0
    recent_projects: list[ProjectView] = Field(default_factory=list)


class AdminDashboard(BaseModel):
    role: Literal["admin"] = "admin"
    projects: ProjectSummary
    total_users: int
    users_by_role: dict[str, int]
    organizations: int
    organizations_by_type: dict[str, int]
    pending_reviews: int


class GovernmentDashboard(BaseModel):
    role: Literal["government"] = "government"
    projects: ProjectSummary
    projects_by_state: dict[str, int]
    projects_by_ecosystem: dict[str, int]
    compliance_rate: float  # verified share of closed reviews, percent


class NGODashboard(BaseModel):
    role: Literal["ngo"] = "ngo"
    projects: ProjectSummary
    active_projects: int
    impact_area_hectares: float
    credits_generated: int
    measurements_synced: int


class PanchayatDashboard(BaseModel):
    role: Literal["panchayat"] = "panchayat"
    projects: ProjectSummary
    local_projects: int
    credits_held: int
    measurements_synced: int


class VerifierDashboard(BaseModel):
    role: Literal["verifier"] = "verifier"
    projects: ProjectSummary
    pending_reviews: int
    awaiting_additional_data: int
    verified_by_me: int
    credits_verified: int
    average_confidence: float


Dashboard = Annotated[
    Union[AdminDashboard, GovernmentDashboard, NGODashboard, PanchayatDashboard, VerifierDashboard],
    Field(discriminator="role"),
]


class DashboardService(BaseService):
    """Builds the dashboard for a user's role."""

    def __init__(self, db, registry: ProjectRegistry):
        super().__init__(db)
        self.registry = registry
        self.builders: dict[str, Callable[[User, list[Project]], Dashboard]] = {
            "admin": self._build_admin,
            "government": self._build_government,
            "ngo": self._build_ngo,
            "panchayat": self._build_panchayat,
            "verifier": self._build_verifier,
        }

    def build_dashboard(self, user: User) -> Dashboard:
        builder = self.builders.get(user.role)
        if builder is None:
            raise AuthorizationError("dashboards:view", f"No dashboard for role {user.role}")
        projects = self.registry.get_projects_visible_to(user)
        return builder(user, projects)

    def _retired_credits(self, project_ids: list[str]) -> int:
        if not project_ids:
            return 0
        return int(
            self.db.query(func.coalesce(func.sum(CarbonCreditToken.amount), 0))
            .filter(CarbonCreditToken.project_id.in_(project_ids), CarbonCreditToken.status == "retired")
            .scalar()
        )

    def _measurement_count(self, project_ids: list[str]) -> int:
        if not project_ids:
            return 0
        return self.db.query(FieldMeasurement).filter(FieldMeasurement.project_id.in_(project_ids)).count()

    def _summarize(self, projects: list[Project]) -> ProjectSummary:
        recent = sorted(projects, key=lambda p: p.created_at, reverse=True)[:RECENT_PROJECTS]
        return ProjectSummary(
            total_projects=len(projects),
            by_status=dict(Counter(p.status for p in projects)),
            area_hectares=round(sum(p.area_hectares for p in projects), 2),
            total_credits_issued=sum(p.total_credits_issued for p in projects),
            available_credits=sum(p.available_credits for p in projects),
            credits_retired=self._retired_credits([p.id for p in projects]),
            recent_projects=[ProjectView.model_validate(p) for p in recent],
        )

    def _build_admin(self, user: User, projects: list[Project]) -> AdminDashboard:
        users_by_role = dict(self.db.query(User.role, func.count(User.id)).group_by(User.role).all())
        organizations_by_type = dict(
            self.db.query(Organization.type, func.count(Organization.id)).group_by(Organization.type).all()
        )
        pending_reviews = (
            self.db.query(VerificationRecord)
            .filter(VerificationRecord.status.in_(("pending", "in_progress")))
            .count()
        )
        return AdminDashboard(
            projects=self._summarize(projects),
            total_users=sum(users_by_role.values()),
            users_by_role=users_by_role,
            organizations=sum(organizations_by_type.values()),
            organizations_by_type=organizations_by_type,
            pending_reviews=pending_reviews,
        )

    def _build_government(self, user: User, projects: list[Project]) -> GovernmentDashboard:
        closed = Counter(
            status
            for (status,) in self.db.query(VerificationRecord.status)
            .filter(VerificationRecord.status.in_(("verified", "rejected")))
            .all()
        )
        total_closed = closed["verified"] + closed["rejected"]
        return GovernmentDashboard(
            projects=self._summarize(projects),
            projects_by_state=dict(Counter(p.state or "unknown" for p in projects)),
            projects_by_ecosystem=dict(Counter(p.ecosystem_type for p in projects)),
            compliance_rate=round(100.0 * closed["verified"] / total_closed, 2) if total_closed else 0.0,
        )

    def _build_ngo(self, user: User, projects: list[Project]) -> NGODashboard:
        return NGODashboard(
            projects=self._summarize(projects),
            active_projects=sum(1 for p in projects if p.status in ("active", "verified")),
            impact_area_hectares=round(sum(p.area_hectares for p in projects), 2),
            credits_generated=sum(p.total_credits_issued for p in projects),
            measurements_synced=self._measurement_count([p.id for p in projects]),
        )

    def _build_panchayat(self, user: User, projects: list[Project]) -> PanchayatDashboard:
        credits_held = int(
            self.db.query(func.coalesce(func.sum(CarbonCreditToken.amount), 0))
            .filter(CarbonCreditToken.owner == user.organization_id, CarbonCreditToken.status == "active")
            .scalar()
        )
        return PanchayatDashboard(
            projects=self._summarize(projects),
            local_projects=len(projects),
            credits_held=credits_held,
            measurements_synced=self._measurement_count([p.id for p in projects]),
        )

    def _build_verifier(self, user: User, projects: list[Project]) -> VerifierDashboard:
        records = self.db.query(VerificationRecord).all()
        mine = [r for r in records if r.verifier_id == user.id and r.status == "verified"]
        average: Optional[float] = None
        if mine:
            average = round(sum(r.confidence_score for r in mine) / len(mine), 2)
        return VerifierDashboard(
            projects=self._summarize(projects),
            pending_reviews=sum(1 for r in records if r.status in ("pending", "in_progress")),
            awaiting_additional_data=sum(1 for r in records if r.status == "requires_additional_data"),
            verified_by_me=len(mine),
            credits_verified=sum(r.carbon_credits_recommended for r in mine),
            average_confidence=average or 0.0,
        )
