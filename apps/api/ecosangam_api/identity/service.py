"""Login, logout and session persistence."""

import logging
import re
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session as DBSession

from ecosangam_api.auth.capabilities import require_capability
from ecosangam_api.auth.credentials import hash_credential, verify_credential
from ecosangam_api.errors import FieldViolation, InvalidCredential, UnknownAccount, ValidationError
from ecosangam_api.models import Organization, User
from ecosangam_api.models.account import ROLES
from ecosangam_api.schemas import UserCreate
from ecosangam_api.services.base import BaseService
from ecosangam_api.storage.kv import KeyValueStore
from ecosangam_api.utils.metrics import login_attempts

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_CREDENTIAL_LENGTH = 6


@dataclass
class Session:
    """Authenticated session handed to every command."""

    token: str
    user: User
    expires_at: datetime

    @property
    def expired(self) -> bool:
        return self.expires_at <= datetime.utcnow()


class IdentityService(BaseService):
    """Resolves credentials to users and keeps sessions in the key-value store."""

    def __init__(self, db: DBSession, kv: KeyValueStore, session_ttl_hours: int = 24):
        """Initialize identity service."""
        super().__init__(db)
        self.kv = kv
        self.session_ttl = timedelta(hours=session_ttl_hours)

    @staticmethod
    def _session_key(token: str) -> str:
        return f"session:{token}"

    def login(self, email: str, credential: str) -> Session:
        """Exchange an email and credential for a new session."""
        user = self.db.query(User).filter(User.email == email.strip().lower()).first()
        if user is None:
            login_attempts.labels(outcome="unknown_account").inc()
            raise UnknownAccount(email)

        if not verify_credential(credential, user.credential_hash):
            with self.unit_of_work():
                user.failed_logins += 1
            login_attempts.labels(outcome="invalid_credential").inc()
            logger.info("Login rejected", extra={"user_id": user.id})
            raise InvalidCredential()

        with self.unit_of_work():
            user.failed_logins = 0
            user.last_login_at = datetime.utcnow()

        token = secrets.token_urlsafe(32)
        expires_at = datetime.utcnow() + self.session_ttl
        self.kv.set_json(
            self._session_key(token),
            {"user_id": user.id, "expires_at": expires_at.isoformat()},
            ttl_seconds=int(self.session_ttl.total_seconds()),
        )
        login_attempts.labels(outcome="success").inc()
        logger.info("Login succeeded", extra={"user_id": user.id, "role": user.role})
        return Session(token=token, user=user, expires_at=expires_at)

    def resolve(self, token: Optional[str]) -> Optional[Session]:
        """Look up a session; expired or orphaned sessions are dropped."""
        if not token:
            return None
        blob = self.kv.get_json(self._session_key(token))
        if not blob:
            return None

        expires_at = datetime.fromisoformat(blob["expires_at"])
        user = self.db.get(User, blob["user_id"])
        if user is None or expires_at <= datetime.utcnow():
            self.kv.delete(self._session_key(token))
            return None
        return Session(token=token, user=user, expires_at=expires_at)

    def logout(self, token: Optional[str]) -> None:
        """Clear a session. Always succeeds."""
        if token:
            self.kv.delete(self._session_key(token))

    def register_user(self, actor: User, data: UserCreate) -> User:
        """Register a user with a hashed credential (admin only)."""
        require_capability(actor, "users:register")

        email = data.email.strip().lower()
        violations = []
        if not data.name.strip():
            violations.append(FieldViolation("name", "must not be empty"))
        if not EMAIL_PATTERN.match(email):
            violations.append(FieldViolation("email", "is not a valid email address"))
        elif self.db.query(User).filter(User.email == email).first() is not None:
            violations.append(FieldViolation("email", "is already registered"))
        if data.role not in ROLES:
            violations.append(FieldViolation("role", f"must be one of {', '.join(ROLES)}"))
        if self.db.get(Organization, data.organization_id) is None:
            violations.append(FieldViolation("organization_id", "unknown organization"))
        if len(data.credential) < MIN_CREDENTIAL_LENGTH:
            violations.append(
                FieldViolation("credential", f"must be at least {MIN_CREDENTIAL_LENGTH} characters")
            )
        if violations:
            raise ValidationError(violations)

        with self.unit_of_work():
            user = User(
                id=data.id or f"usr-{uuid.uuid4().hex[:12]}",
                name=data.name.strip(),
                email=email,
                role=data.role,
                organization_id=data.organization_id,
                credential_hash=hash_credential(data.credential),
            )
            self.db.add(user)

        logger.info(f"Registered user {user.id}", extra={"role": user.role, "actor": actor.id})
        return user
