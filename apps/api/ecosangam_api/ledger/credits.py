"""Carbon credit ledger: mint, transfer and retire whole-tCO2e credit tokens.

Every operation takes the project's lock, validates, waits for the ledger
client to confirm, and then writes token, transaction, project counters and
audit event in one database transaction. Nothing awaits inside that write
block, so a cancelled operation leaves no trace.

Tokens behave like unspent outputs: a transfer moves the amount into a new
recipient token and the source keeps the remainder; a partial retirement
splits the retired amount off into its own token. Tokens created by a mint
form the project's issuance pool, and only movements out of the pool reduce
the project's ``available_credits``.
"""

import hashlib
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ecosangam_api.auth.capabilities import LEDGER_WRITER
from ecosangam_api.errors import (
    AuthorizationError,
    FieldViolation,
    InsufficientBalance,
    NotFound,
    PartialRetirementUnsupported,
    StateConflictError,
    ValidationError,
)
from ecosangam_api.ledger.client import LedgerClient
from ecosangam_api.ledger.locks import KeyedLocks
from ecosangam_api.ledger.service import LedgerService
from ecosangam_api.models import CarbonCreditToken, CreditTransaction, Project, User, VerificationRecord
from ecosangam_api.registry.service import ProjectRegistry
from ecosangam_api.schemas import CreditBalance, TokenView
from ecosangam_api.services.base import UNSCOPED_ROLES, BaseService
from ecosangam_api.settings import Settings, get_settings
from ecosangam_api.utils.metrics import credits_moved, ledger_operations

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MintRequest:
    """Issued by the verification workflow when an approval recommends credits."""

    project_id: str
    verification_id: str
    amount: int
    vintage: int
    owner: str
    verifier: str


def evidence_hash(evidence_items: list[dict]) -> str:
    """Digest of the evidence URLs backing an issuance."""
    urls = sorted(item.get("url", "") for item in evidence_items or [])
    return hashlib.sha256("\n".join(urls).encode()).hexdigest()


class CreditLedger(BaseService):
    """Sole writer of credit tokens and project credit counters."""

    def __init__(
        self,
        db: Session,
        registry: ProjectRegistry,
        client: LedgerClient,
        locks: KeyedLocks,
        settings: Optional[Settings] = None,
    ):
        super().__init__(db)
        self.registry = registry
        self.client = client
        self.locks = locks
        self.settings = settings or get_settings()
        self.audit = LedgerService(db)

    def _load_token(self, token_id: str) -> CarbonCreditToken:
        token = self.db.get(CarbonCreditToken, token_id)
        if token is None:
            raise NotFound("token", token_id)
        # Pick up writes committed through other sessions
        self.db.refresh(token)
        return token

    def _serial_number(self, project_id: str, vintage: int) -> str:
        return f"{self.settings.registry_country_code}-{project_id}-{vintage}-{uuid.uuid4().hex[:8].upper()}"

    @staticmethod
    def _new_token_id() -> str:
        return f"tok-{uuid.uuid4().hex[:16]}"

    def _child_token(self, parent: CarbonCreditToken, amount: int, owner: str, status: str) -> CarbonCreditToken:
        child = CarbonCreditToken(
            id=self._new_token_id(),
            project_id=parent.project_id,
            verification_id=parent.verification_id,
            parent_token_id=parent.id,
            amount=amount,
            vintage=parent.vintage,
            serial_number=f"{parent.serial_number}-{uuid.uuid4().hex[:6].upper()}",
            status=status,
            owner=owner,
            issuer=parent.issuer,
            in_issuance_pool=False,
            metadata_json=dict(parent.metadata_json or {}),
        )
        self.db.add(child)
        return child

    def _record_transaction(
        self,
        token: CarbonCreditToken,
        tx_type: str,
        amount: int,
        from_owner: Optional[str],
        to_owner: Optional[str],
        purpose: Optional[str],
        payload: dict,
    ) -> CreditTransaction:
        event = self.audit.append_event(
            project_id=token.project_id,
            correlation_id=token.id,
            event_type=f"credits_{tx_type}",
            payload=payload,
        )
        transaction = CreditTransaction(
            token_id=token.id,
            project_id=token.project_id,
            tx_type=tx_type,
            from_owner=from_owner,
            to_owner=to_owner,
            amount=amount,
            purpose=purpose,
            transaction_hash=event.event_hash,
        )
        self.db.add(transaction)
        self.db.flush()
        return transaction

    async def mint(self, request: MintRequest) -> CarbonCreditToken:
        """Issue credits backed by a verified verification record."""
        if request.amount <= 0:
            raise ValidationError.single("amount", "must be greater than 0")

        async with self.locks.hold(f"project:{request.project_id}"):
            project = self.registry.get_project(request.project_id)
            self.db.refresh(project)
            record = self.db.get(VerificationRecord, request.verification_id)
            if record is None:
                raise NotFound("verification", request.verification_id)
            if record.project_id != project.id:
                raise ValidationError.single("verification_id", f"does not belong to project {project.id}")
            if record.status != "verified":
                raise StateConflictError("verified", record.status)
            already_minted = (
                self.db.query(CarbonCreditToken)
                .filter(
                    CarbonCreditToken.verification_id == record.id,
                    CarbonCreditToken.parent_token_id.is_(None),
                )
                .first()
            )
            if already_minted is not None:
                raise StateConflictError("unminted verification", "minted")

            await self.client.confirm(
                "mint",
                {"project_id": project.id, "verification_id": record.id, "amount": request.amount},
            )

            with self.unit_of_work():
                token = CarbonCreditToken(
                    id=self._new_token_id(),
                    project_id=project.id,
                    verification_id=record.id,
                    amount=request.amount,
                    vintage=request.vintage,
                    serial_number=self._serial_number(project.id, request.vintage),
                    status="active",
                    owner=request.owner,
                    issuer=self.settings.credit_issuer,
                    in_issuance_pool=True,
                    metadata_json={
                        "ecosystem_type": project.ecosystem_type,
                        "methodology": project.methodology,
                        "verifier": request.verifier,
                        "gps_coordinates": {"lat": project.latitude, "lng": project.longitude},
                        "evidence_hash": evidence_hash(record.evidence_items),
                    },
                )
                self.db.add(token)
                self.db.flush()

                self._record_transaction(
                    token,
                    "mint",
                    request.amount,
                    from_owner=None,
                    to_owner=request.owner,
                    purpose="Initial minting",
                    payload={
                        "token_id": token.id,
                        "serial_number": token.serial_number,
                        "verification_id": record.id,
                        "amount": request.amount,
                    },
                )
                self.registry.apply_credit_delta(project, request.amount, request.amount, LEDGER_WRITER)
                self.registry.transition(project, "verified", LEDGER_WRITER)

        ledger_operations.labels(operation="mint").inc()
        credits_moved.labels(operation="mint").inc(request.amount)
        logger.info(
            f"Minted {request.amount} credits for project {project.id}",
            extra={"token_id": token.id, "serial_number": token.serial_number},
        )
        return token

    async def transfer(self, token_id: str, from_owner: str, to_owner: str, amount: int) -> CreditTransaction:
        """Move ``amount`` from ``from_owner``'s token into a new token for ``to_owner``."""
        violations = []
        if amount <= 0:
            violations.append(FieldViolation("amount", "must be greater than 0"))
        if not to_owner or not to_owner.strip():
            violations.append(FieldViolation("to_owner", "must not be empty"))
        elif to_owner == from_owner:
            violations.append(FieldViolation("to_owner", "must differ from from_owner"))
        if violations:
            raise ValidationError(violations)

        project_id = self._load_token(token_id).project_id
        async with self.locks.hold(f"project:{project_id}"):
            token = self._load_token(token_id)
            if token.status != "active":
                raise StateConflictError("active", token.status)
            held = token.amount if token.owner == from_owner else 0
            if amount > held:
                raise InsufficientBalance(token.id, amount, held)

            await self.client.confirm(
                "transfer",
                {"token_id": token.id, "from": from_owner, "to": to_owner, "amount": amount},
            )

            with self.unit_of_work():
                recipient = self._child_token(token, amount, to_owner, "active")
                token.amount -= amount
                if token.amount == 0:
                    token.status = "transferred"
                if token.in_issuance_pool:
                    project = self.registry.get_project(token.project_id)
                    self.registry.apply_credit_delta(project, 0, -amount, LEDGER_WRITER)
                self.db.flush()
                transaction = self._record_transaction(
                    token,
                    "transfer",
                    amount,
                    from_owner=from_owner,
                    to_owner=to_owner,
                    purpose=f"Transfer to {to_owner}",
                    payload={"token_id": token.id, "recipient_token_id": recipient.id, "amount": amount},
                )

        ledger_operations.labels(operation="transfer").inc()
        credits_moved.labels(operation="transfer").inc(amount)
        logger.info(
            f"Transferred {amount} credits from {from_owner} to {to_owner}",
            extra={"token_id": token_id, "recipient_token_id": recipient.id},
        )
        return transaction

    async def retire(self, token_id: str, amount: int, reason: str) -> CreditTransaction:
        """Retire credits permanently; a partial retirement splits off a retired token."""
        violations = []
        if amount <= 0:
            violations.append(FieldViolation("amount", "must be greater than 0"))
        if not reason or not reason.strip():
            violations.append(FieldViolation("reason", "must not be empty"))
        if violations:
            raise ValidationError(violations)

        project_id = self._load_token(token_id).project_id
        async with self.locks.hold(f"project:{project_id}"):
            token = self._load_token(token_id)
            if token.status != "active":
                raise StateConflictError("active", token.status)
            if amount > token.amount:
                raise InsufficientBalance(token.id, amount, token.amount)
            if amount < token.amount and not self.settings.partial_retirement_enabled:
                raise PartialRetirementUnsupported(
                    f"Retire the full balance of {token.amount} or enable partial retirement"
                )

            await self.client.confirm("retire", {"token_id": token.id, "amount": amount, "reason": reason})

            with self.unit_of_work():
                if amount == token.amount:
                    token.status = "retired"
                    token.retirement_reason = reason
                    retired_token_id = token.id
                else:
                    retired = self._child_token(token, amount, token.owner, "retired")
                    retired.retirement_reason = reason
                    token.amount -= amount
                    retired_token_id = retired.id
                if token.in_issuance_pool:
                    project = self.registry.get_project(token.project_id)
                    self.registry.apply_credit_delta(project, 0, -amount, LEDGER_WRITER)
                self.db.flush()
                transaction = self._record_transaction(
                    token,
                    "retire",
                    amount,
                    from_owner=token.owner,
                    to_owner=None,
                    purpose=reason,
                    payload={"token_id": token.id, "retired_token_id": retired_token_id, "amount": amount},
                )

        ledger_operations.labels(operation="retire").inc()
        credits_moved.labels(operation="retire").inc(amount)
        logger.info(f"Retired {amount} credits", extra={"token_id": token_id, "reason": reason})
        return transaction

    @staticmethod
    def _can_view(viewer: Optional[User], *owners: Optional[str]) -> bool:
        if viewer is None or viewer.role in UNSCOPED_ROLES:
            return True
        return viewer.organization_id in owners

    def _require_owner_visible(self, viewer: Optional[User], owner: str) -> None:
        if not self._can_view(viewer, owner):
            raise AuthorizationError("credits:read", f"Holdings of {owner} are not visible to this organization")

    def get_token(self, token_id: str, viewer: Optional[User] = None) -> CarbonCreditToken:
        """Token by id; tokens of other holders look missing to scoped viewers."""
        token = self.db.get(CarbonCreditToken, token_id)
        if token is None or not self._can_view(viewer, token.owner):
            raise NotFound("token", token_id)
        return token

    def get_tokens_for_project(self, project_id: str) -> list[CarbonCreditToken]:
        return (
            self.db.query(CarbonCreditToken)
            .filter(CarbonCreditToken.project_id == project_id)
            .order_by(CarbonCreditToken.issue_date.asc(), CarbonCreditToken.id.asc())
            .all()
        )

    def get_credit_balance(self, owner: str, viewer: Optional[User] = None) -> CreditBalance:
        """Active and retired credits held by ``owner``."""
        self._require_owner_visible(viewer, owner)
        tokens = (
            self.db.query(CarbonCreditToken)
            .filter(CarbonCreditToken.owner == owner, CarbonCreditToken.amount > 0)
            .order_by(CarbonCreditToken.issue_date.asc(), CarbonCreditToken.id.asc())
            .all()
        )
        return CreditBalance(
            owner=owner,
            active=sum(t.amount for t in tokens if t.status == "active"),
            retired=sum(t.amount for t in tokens if t.status == "retired"),
            tokens=[TokenView.from_token(t) for t in tokens],
        )

    def get_transactions_for(
        self, owner: str, limit: Optional[int] = None, viewer: Optional[User] = None
    ) -> list[CreditTransaction]:
        """Transactions that sent credits to or from ``owner``, newest first."""
        self._require_owner_visible(viewer, owner)
        query = (
            self.db.query(CreditTransaction)
            .filter(or_(CreditTransaction.from_owner == owner, CreditTransaction.to_owner == owner))
            .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def get_transaction(self, transaction_hash: str, viewer: Optional[User] = None) -> CreditTransaction:
        transaction = (
            self.db.query(CreditTransaction)
            .filter(CreditTransaction.transaction_hash == transaction_hash)
            .first()
        )
        if transaction is None or not self._can_view(viewer, transaction.from_owner, transaction.to_owner):
            raise NotFound("transaction", transaction_hash)
        return transaction

    def verify_conservation(self, project_id: str) -> tuple[bool, Optional[str]]:
        """Check active + retired == issued and the pool matches available_credits."""
        project = self.db.get(Project, project_id)
        if project is None:
            raise NotFound("project", project_id)

        def total(*criteria) -> int:
            return int(
                self.db.query(func.coalesce(func.sum(CarbonCreditToken.amount), 0))
                .filter(CarbonCreditToken.project_id == project_id, *criteria)
                .scalar()
            )

        active = total(CarbonCreditToken.status == "active")
        retired = total(CarbonCreditToken.status == "retired")
        pool = total(CarbonCreditToken.status == "active", CarbonCreditToken.in_issuance_pool.is_(True))

        if active + retired != project.total_credits_issued:
            return False, (
                f"active {active} + retired {retired} != issued {project.total_credits_issued}"
            )
        if pool != project.available_credits:
            return False, f"issuance pool {pool} != available_credits {project.available_credits}"
        if project.available_credits > project.total_credits_issued:
            return False, "available_credits exceeds total_credits_issued"
        return True, None
