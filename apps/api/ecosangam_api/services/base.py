"""Base service class with unit-of-work and organization scoping guardrails."""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

# Roles that see every organization's projects
UNSCOPED_ROLES = ("admin", "government", "verifier")


class BaseService:
    """Base service: one database session, one commit per command."""

    def __init__(self, db: Session):
        """Initialize service with a database session."""
        self.db = db

    @contextmanager
    def unit_of_work(self) -> Iterator[Session]:
        """Commit on success, roll back on any failure (including cancellation)."""
        try:
            yield self.db
            self.db.commit()
        except BaseException:
            self.db.rollback()
            raise

    def _scope_to_user(self, query, model, user):
        """Restrict a query on an organization-owned model to what ``user`` may see."""
        if user.role in UNSCOPED_ROLES:
            return query
        return query.filter(
            (model.organization_id == user.organization_id) | (model.created_by == user.id)
        )
