"""Project registry: authoritative project list, visibility and lifecycle."""

import logging
import math
import uuid
from typing import Any, Optional

from ecosangam_api.auth.capabilities import (
    LEDGER_WRITER,
    RECORD_STORE_WRITER,
    WORKFLOW_WRITER,
    WriterCapability,
    has_capability,
    require_capability,
)
from ecosangam_api.errors import (
    AuthorizationError,
    FieldViolation,
    NotFound,
    StateConflictError,
    ValidationError,
)
from ecosangam_api.models import Project, User
from ecosangam_api.models.project import ECOSYSTEM_TYPES
from ecosangam_api.schemas import ProjectCreate
from ecosangam_api.services.base import UNSCOPED_ROLES, BaseService

logger = logging.getLogger(__name__)

MUTABLE_FIELDS = {"name", "description", "methodology"}
GUARDED_FIELDS = {
    "id",
    "status",
    "total_credits_issued",
    "available_credits",
    "created_by",
    "organization_id",
}

# Allowed project status transitions
PROJECT_TRANSITIONS = {
    "pending": {"active"},
    "active": {"verified", "rejected", "requires_additional_data"},
    "requires_additional_data": {"active", "verified", "rejected"},
    "verified": set(),
    "rejected": set(),
}

# Which writer may drive which transitions (None = any allowed transition)
STATUS_WRITERS = {
    RECORD_STORE_WRITER: {("pending", "active")},
    WORKFLOW_WRITER: None,
    LEDGER_WRITER: {("active", "verified"), ("requires_additional_data", "verified")},
}


def validate_project_input(data: ProjectCreate) -> list[FieldViolation]:
    """Check every creation constraint and return all violations."""
    violations = []
    if not data.name or not data.name.strip():
        violations.append(FieldViolation("name", "must not be empty"))
    if data.area_hectares is None or not math.isfinite(data.area_hectares) or data.area_hectares <= 0:
        violations.append(FieldViolation("area_hectares", "must be greater than 0"))
    if data.ecosystem_type not in ECOSYSTEM_TYPES:
        violations.append(
            FieldViolation("ecosystem_type", f"must be one of {', '.join(ECOSYSTEM_TYPES)}")
        )
    if not -90 <= data.location.lat <= 90:
        violations.append(FieldViolation("location.lat", "must be within [-90, 90]"))
    if not -180 <= data.location.lng <= 180:
        violations.append(FieldViolation("location.lng", "must be within [-180, 180]"))
    return violations


class ProjectRegistry(BaseService):
    """Single writer for project records.

    Status and credit counters only change through ``transition`` and
    ``apply_credit_delta``, which demand the writer capability of the record
    store, verification workflow or credit ledger. Those two methods join the
    caller's unit of work and never commit on their own.
    """

    def create_project(self, actor: User, data: ProjectCreate) -> Project:
        """Register a new project in ``pending`` state."""
        require_capability(actor, "projects:create")

        violations = validate_project_input(data)
        project_id = data.id or f"PRJ-{uuid.uuid4().hex[:10].upper()}"
        if data.id and self.db.get(Project, data.id) is not None:
            violations.append(FieldViolation("id", f"project {data.id} already exists"))
        if violations:
            raise ValidationError(violations)

        with self.unit_of_work():
            project = Project(
                id=project_id,
                name=data.name.strip(),
                description=data.description,
                ecosystem_type=data.ecosystem_type,
                latitude=data.location.lat,
                longitude=data.location.lng,
                state=data.location.state,
                district=data.location.district,
                area_hectares=data.area_hectares,
                methodology=data.methodology,
                start_date=data.start_date,
                status="pending",
                total_credits_issued=0,
                available_credits=0,
                created_by=actor.id,
                organization_id=actor.organization_id,
            )
            self.db.add(project)

        logger.info(
            f"Created project {project.id}",
            extra={"project_id": project.id, "organization_id": project.organization_id},
        )
        return project

    def update_project(self, actor: User, project_id: str, patch: dict[str, Any]) -> Project:
        """Apply a patch to the freely mutable descriptive fields."""
        project = self.get_project_for(actor, project_id)

        guarded = sorted(set(patch) & GUARDED_FIELDS)
        if guarded:
            raise AuthorizationError(
                "projects:lifecycle",
                f"Fields {', '.join(guarded)} are managed by the verification workflow and credit ledger",
            )
        unknown = sorted(set(patch) - MUTABLE_FIELDS)
        if unknown:
            raise ValidationError([FieldViolation(field, "is not an updatable field") for field in unknown])

        if not has_capability(actor, "projects:update_any"):
            require_capability(actor, "projects:update")
            if project.organization_id != actor.organization_id and project.created_by != actor.id:
                raise AuthorizationError("projects:update", "Only the owning organization may update this project")

        if "name" in patch and (patch["name"] is None or not str(patch["name"]).strip()):
            raise ValidationError.single("name", "must not be empty")

        with self.unit_of_work():
            for field, value in patch.items():
                setattr(project, field, value.strip() if field == "name" else value)

        logger.info(f"Updated project {project.id}", extra={"fields": sorted(patch)})
        return project

    def get_project(self, project_id: str) -> Project:
        project = self.db.get(Project, project_id)
        if project is None:
            raise NotFound("project", project_id)
        return project

    def get_project_for(self, user: User, project_id: str) -> Project:
        """Fetch a project the user may see; invisible projects look missing."""
        project = self.get_project(project_id)
        if not self.is_visible_to(user, project):
            raise NotFound("project", project_id)
        return project

    @staticmethod
    def is_visible_to(user: User, project: Project) -> bool:
        if user.role in UNSCOPED_ROLES:
            return True
        return project.organization_id == user.organization_id or project.created_by == user.id

    def get_projects_visible_to(self, user: User, status: Optional[str] = None) -> list[Project]:
        """Projects the user may see: everything for admin/government/verifier,
        own organization's or own projects for ngo/panchayat."""
        query = self._scope_to_user(self.db.query(Project), Project, user)
        if status:
            query = query.filter(Project.status == status)
        return query.order_by(Project.created_at.asc(), Project.id.asc()).all()

    def transition(self, project: Project, new_status: str, capability: WriterCapability) -> bool:
        """Move a project to ``new_status``. Returns False when already there."""
        if capability not in STATUS_WRITERS:
            raise AuthorizationError("projects:lifecycle")
        if project.status == new_status:
            return False

        allowed = PROJECT_TRANSITIONS.get(project.status, set())
        if new_status not in allowed:
            raise StateConflictError(sorted(allowed) or "terminal", project.status)

        writer_edges = STATUS_WRITERS[capability]
        if writer_edges is not None and (project.status, new_status) not in writer_edges:
            raise AuthorizationError("projects:lifecycle", f"{capability.name} may not move a project to {new_status}")

        logger.info(
            f"Project {project.id} {project.status} -> {new_status}",
            extra={"project_id": project.id, "writer": capability.name},
        )
        project.status = new_status
        self.db.flush()
        return True

    def apply_credit_delta(
        self,
        project: Project,
        issued_delta: int,
        available_delta: int,
        capability: WriterCapability,
    ) -> None:
        """Adjust credit counters; only the ledger holds the capability."""
        if capability is not LEDGER_WRITER:
            raise AuthorizationError("projects:credits")
        if issued_delta < 0:
            raise StateConflictError("non-decreasing total_credits_issued", issued_delta)

        total = project.total_credits_issued + issued_delta
        available = project.available_credits + available_delta
        if available < 0 or available > total:
            raise StateConflictError(f"0 <= available_credits <= {total}", available)

        project.total_credits_issued = total
        project.available_credits = available
        self.db.flush()
