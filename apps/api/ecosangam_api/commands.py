"""Command facade.

Every command returns a ``CommandResult`` carrying either a value or the
``DomainError`` that stopped it. Services raise; this layer is the boundary
where errors become values. Cancellation and unexpected exceptions are not
converted.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from ecosangam_api.auth.capabilities import has_capability, require_capability
from ecosangam_api.errors import AuthorizationError, DomainError
from ecosangam_api.identity.service import Session
from ecosangam_api.models import CarbonCreditToken, CreditTransaction, VerificationRecord
from ecosangam_api.schemas import (
    EvidenceItem,
    Findings,
    FlightIn,
    MeasurementIn,
    OrganizationCreate,
    ProjectCreate,
    ReviewOpen,
    UserCreate,
)
from ecosangam_api.services.container import Services

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CommandResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[DomainError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value


@dataclass
class ApprovalOutcome:
    record: VerificationRecord
    token: Optional[CarbonCreditToken] = None


class MRVCommands:
    """Application commands for one request or unit of work."""

    def __init__(self, services: Services):
        self.services = services

    async def _execute(self, operation: str, fn, *args, **kwargs) -> CommandResult:
        try:
            value = fn(*args, **kwargs)
            if inspect.isawaitable(value):
                value = await value
        except DomainError as e:
            logger.info(f"{operation} failed: {e.code}", extra={"operation": operation, "error": e.message})
            return CommandResult(error=e)
        return CommandResult(value=value)

    # Identity

    async def login(self, email: str, credential: str) -> CommandResult[Session]:
        return await self._execute("login", self.services.identity.login, email, credential)

    async def logout(self, token: str) -> CommandResult[None]:
        return await self._execute("logout", self.services.identity.logout, token)

    async def register_user(self, session: Session, data: UserCreate) -> CommandResult:
        return await self._execute("register_user", self.services.identity.register_user, session.user, data)

    async def register_organization(self, session: Session, data: OrganizationCreate) -> CommandResult:
        def register():
            require_capability(session.user, "organizations:register")
            return self.services.directory.register(data)

        return await self._execute("register_organization", register)

    # Projects

    async def create_project(self, session: Session, data: ProjectCreate) -> CommandResult:
        return await self._execute("create_project", self.services.registry.create_project, session.user, data)

    async def update_project(self, session: Session, project_id: str, patch: dict[str, Any]) -> CommandResult:
        return await self._execute(
            "update_project", self.services.registry.update_project, session.user, project_id, patch
        )

    # Field records

    async def save_offline(self, device_id: str, measurement: MeasurementIn) -> CommandResult[str]:
        return await self._execute("save_offline", self.services.records.save_offline, device_id, measurement)

    async def sync_pending(self, session: Session, device_id: str) -> CommandResult:
        return await self._execute("sync_pending", self.services.records.sync_pending, session, device_id)

    # Verification

    async def open_review(self, session: Session, data: ReviewOpen) -> CommandResult:
        return await self._execute("open_review", self.services.workflow.open_review, session.user, data)

    async def add_evidence(self, session: Session, record_id: str, items: list[EvidenceItem]) -> CommandResult:
        return await self._execute(
            "add_evidence", self.services.workflow.add_evidence, session.user, record_id, items
        )

    async def mark_evidence_verified(
        self, session: Session, record_id: str, urls: Optional[list[str]] = None
    ) -> CommandResult:
        return await self._execute(
            "mark_evidence_verified", self.services.workflow.mark_evidence_verified, session.user, record_id, urls
        )

    async def record_findings(self, session: Session, record_id: str, findings: Findings) -> CommandResult:
        return await self._execute(
            "record_findings", self.services.workflow.record_findings, session.user, record_id, findings
        )

    async def approve(self, session: Session, record_id: str) -> CommandResult[ApprovalOutcome]:
        """Approve a review and mint the recommended credits."""

        async def approve_and_mint():
            record, mint_request = await self.services.workflow.approve(session.user, record_id)
            token = None
            if mint_request is not None:
                token = await self.services.ledger.mint(mint_request)
            return ApprovalOutcome(record=record, token=token)

        return await self._execute("approve", approve_and_mint)

    async def issue_credits(self, session: Session, record_id: str) -> CommandResult[ApprovalOutcome]:
        """Mint for an already verified record whose mint did not complete."""

        async def mint():
            require_capability(session.user, "verifications:review")
            record = self.services.workflow.get_verification(record_id)
            mint_request = self.services.workflow.mint_request_for(record)
            token = await self.services.ledger.mint(mint_request) if mint_request else None
            return ApprovalOutcome(record=record, token=token)

        return await self._execute("issue_credits", mint)

    async def reject(self, session: Session, record_id: str, reason: str) -> CommandResult:
        return await self._execute("reject", self.services.workflow.reject, session.user, record_id, reason)

    async def request_additional_data(self, session: Session, record_id: str, issues: list[str]) -> CommandResult:
        return await self._execute(
            "request_additional_data",
            self.services.workflow.request_additional_data,
            session.user,
            record_id,
            issues,
        )

    # Credits

    def _require_holder(self, session: Session, capability: str, owner: str) -> None:
        require_capability(session.user, capability)
        if owner != session.user.organization_id and not has_capability(session.user, "projects:update_any"):
            raise AuthorizationError(capability, "Credits can only be moved by their holder")

    async def transfer(
        self, session: Session, token_id: str, from_owner: str, to_owner: str, amount: int
    ) -> CommandResult[CreditTransaction]:
        async def transfer():
            self._require_holder(session, "credits:transfer", from_owner)
            return await self.services.ledger.transfer(token_id, from_owner, to_owner, amount)

        return await self._execute("transfer", transfer)

    async def retire(self, session: Session, token_id: str, amount: int, reason: str) -> CommandResult[CreditTransaction]:
        async def retire():
            token = self.services.ledger.get_token(token_id)
            self._require_holder(session, "credits:retire", token.owner)
            return await self.services.ledger.retire(token_id, amount, reason)

        return await self._execute("retire", retire)

    # Monitoring

    async def record_flight(self, session: Session, data: FlightIn) -> CommandResult:
        return await self._execute("record_flight", self.services.flights.record_flight, session.user, data)

    async def verify_audit_chain(self, session: Session, project_id: str) -> CommandResult[tuple[bool, Optional[str]]]:
        def verify():
            require_capability(session.user, "ledger:audit")
            self.services.registry.get_project(project_id)
            return self.services.audit.verify_chain(project_id)

        return await self._execute("verify_audit_chain", verify)
