"""Organization directory."""

import logging
from typing import Optional

from ecosangam_api.errors import FieldViolation, NotFound, ValidationError
from ecosangam_api.models import Organization
from ecosangam_api.models.account import ORGANIZATION_TYPES
from ecosangam_api.schemas import OrganizationCreate
from ecosangam_api.services.base import BaseService

logger = logging.getLogger(__name__)


class OrganizationDirectory(BaseService):
    """Maps organizations to their type for access scoping and display."""

    def register(self, data: OrganizationCreate) -> Organization:
        """Register an organization; ids are unique."""
        violations = []
        if not data.id.strip():
            violations.append(FieldViolation("id", "must not be empty"))
        elif self.db.get(Organization, data.id) is not None:
            violations.append(FieldViolation("id", f"organization {data.id} already exists"))
        if not data.name.strip():
            violations.append(FieldViolation("name", "must not be empty"))
        if data.type not in ORGANIZATION_TYPES:
            violations.append(
                FieldViolation("type", f"must be one of {', '.join(ORGANIZATION_TYPES)}")
            )
        if violations:
            raise ValidationError(violations)

        with self.unit_of_work():
            organization = Organization(**data.model_dump())
            self.db.add(organization)

        logger.info(f"Registered organization {organization.id}", extra={"type": organization.type})
        return organization

    def get(self, organization_id: str) -> Organization:
        organization = self.db.get(Organization, organization_id)
        if organization is None:
            raise NotFound("organization", organization_id)
        return organization

    def list(self, type: Optional[str] = None) -> list[Organization]:
        query = self.db.query(Organization)
        if type:
            query = query.filter(Organization.type == type)
        return query.order_by(Organization.name.asc()).all()
