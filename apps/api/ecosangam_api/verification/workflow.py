"""Verification workflow.

Record states: pending -> in_progress -> verified | rejected |
requires_additional_data, and requires_additional_data -> in_progress on
resubmission. Verified and rejected records are frozen. Approval hands a
``MintRequest`` to the credit ledger instead of minting itself.
"""

import logging
import math
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ecosangam_api.auth.capabilities import WORKFLOW_WRITER, require_capability
from ecosangam_api.errors import (
    FieldViolation,
    IncompleteEvidence,
    NotFound,
    OutstandingCompliance,
    StateConflictError,
    ValidationError,
)
from ecosangam_api.ledger.client import LedgerClient
from ecosangam_api.ledger.credits import MintRequest
from ecosangam_api.ledger.locks import KeyedLocks
from ecosangam_api.ledger.service import LedgerService
from ecosangam_api.models import Project, User, VerificationRecord
from ecosangam_api.models.verification import EVIDENCE_TYPES, VERIFICATION_METHODS
from ecosangam_api.registry.service import ProjectRegistry
from ecosangam_api.schemas import EvidenceItem, Findings, ReviewOpen
from ecosangam_api.services.base import BaseService
from ecosangam_api.settings import Settings, get_settings
from ecosangam_api.utils.metrics import verification_outcomes
from ecosangam_api.verification.confidence import compute_confidence
from ecosangam_api.verification.credits import recommend_credits

logger = logging.getLogger(__name__)

REVIEWABLE_PROJECT_STATUSES = ("active", "verified", "requires_additional_data")
FROZEN_STATUSES = ("verified", "rejected")


def validate_evidence(items: list[EvidenceItem], field: str = "evidence_items") -> list[FieldViolation]:
    violations = []
    for index, item in enumerate(items):
        if item.type not in EVIDENCE_TYPES:
            violations.append(FieldViolation(f"{field}[{index}].type", f"must be one of {', '.join(EVIDENCE_TYPES)}"))
        if not item.url.strip():
            violations.append(FieldViolation(f"{field}[{index}].url", "must not be empty"))
    return violations


def validate_findings(findings: Findings, prefix: str = "") -> list[FieldViolation]:
    """Measured quantities must be finite and non-negative."""
    violations = []
    for field in ("area_verified", "carbon_sequestration_rate", "biomass_estimate"):
        value = getattr(findings, field)
        if not math.isfinite(value) or value < 0:
            violations.append(FieldViolation(f"{prefix}{field}", "must be a finite, non-negative number"))
    return violations


def _serialize_evidence(items: list[EvidenceItem]) -> list[dict]:
    return [item.model_dump(mode="json") for item in items]


class VerificationWorkflow(BaseService):
    """Opens, updates and closes verification reviews."""

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

    def get_verification(self, record_id: str) -> VerificationRecord:
        record = self.db.get(VerificationRecord, record_id)
        if record is None:
            raise NotFound("verification", record_id)
        return record

    def _get_open(self, record_id: str) -> VerificationRecord:
        record = self.get_verification(record_id)
        if record.status in FROZEN_STATUSES or record.immutable_record:
            raise StateConflictError("open review", record.status)
        return record

    def _audit(self, record: VerificationRecord, event_type: str, payload: dict):
        return self.audit.append_event(
            project_id=record.project_id,
            correlation_id=record.id,
            event_type=event_type,
            payload={"verification_id": record.id, "status": record.status, **payload},
        )

    def open_review(self, actor: User, data: ReviewOpen) -> VerificationRecord:
        """Start reviewing a project's evidence."""
        require_capability(actor, "verifications:review")

        violations = validate_evidence(data.evidence_items)
        if data.findings is not None:
            violations.extend(validate_findings(data.findings, prefix="findings."))
        if data.verification_method not in VERIFICATION_METHODS:
            violations.append(
                FieldViolation("verification_method", f"must be one of {', '.join(VERIFICATION_METHODS)}")
            )
        if violations:
            raise ValidationError(violations)

        project = self.registry.get_project(data.project_id)
        if project.status not in REVIEWABLE_PROJECT_STATUSES:
            raise StateConflictError(list(REVIEWABLE_PROJECT_STATUSES), project.status)

        with self.unit_of_work():
            record = VerificationRecord(
                id=f"ver-{uuid.uuid4().hex[:12]}",
                project_id=project.id,
                verifier_id=actor.id,
                verification_method=data.verification_method,
                status="in_progress" if data.evidence_items else "pending",
                evidence_items=_serialize_evidence(data.evidence_items),
                findings_json=(data.findings or Findings()).model_dump(),
                confidence_score=0.0,
                carbon_credits_recommended=0,
                immutable_record=False,
                resubmission_count=0,
                opened_at=datetime.utcnow(),
            )
            self.db.add(record)
            self.db.flush()
            record.confidence_score = compute_confidence(record)
            self._audit(record, "review_opened", {"method": record.verification_method})

        logger.info(
            f"Opened verification {record.id}",
            extra={"project_id": project.id, "verifier_id": actor.id, "status": record.status},
        )
        return record

    def add_evidence(self, actor: User, record_id: str, items: list[EvidenceItem]) -> VerificationRecord:
        """Attach evidence; on a record awaiting more data this is a resubmission."""
        require_capability(actor, "verifications:review")
        if not items:
            raise ValidationError.single("evidence_items", "must not be empty")
        violations = validate_evidence(items)
        if violations:
            raise ValidationError(violations)

        record = self._get_open(record_id)
        with self.unit_of_work():
            record.evidence_items = list(record.evidence_items or []) + _serialize_evidence(items)
            if record.status == "requires_additional_data":
                record.resubmission_count += 1
                project = self.registry.get_project(record.project_id)
                if project.status == "requires_additional_data":
                    self.registry.transition(project, "active", WORKFLOW_WRITER)
            record.status = "in_progress"
            record.confidence_score = compute_confidence(record)
            self._audit(record, "evidence_added", {"count": len(items)})

        logger.info(f"Added {len(items)} evidence item(s) to {record.id}")
        return record

    def mark_evidence_verified(self, actor: User, record_id: str, urls: Optional[list[str]] = None) -> VerificationRecord:
        """Mark evidence items as checked; all of them when ``urls`` is omitted."""
        require_capability(actor, "verifications:review")
        record = self._get_open(record_id)

        items = [dict(item) for item in record.evidence_items or []]
        known = {item["url"] for item in items}
        missing = [url for url in urls or [] if url not in known]
        if missing:
            raise ValidationError([FieldViolation("urls", f"no evidence item with url {url}") for url in missing])

        with self.unit_of_work():
            for item in items:
                if urls is None or item["url"] in urls:
                    item["verified"] = True
            record.evidence_items = items
            record.confidence_score = compute_confidence(record)

        return record

    def record_findings(self, actor: User, record_id: str, findings: Findings) -> VerificationRecord:
        require_capability(actor, "verifications:review")
        violations = validate_findings(findings)
        if violations:
            raise ValidationError(violations)

        record = self._get_open(record_id)
        with self.unit_of_work():
            record.findings_json = findings.model_dump()
            record.confidence_score = compute_confidence(record)
            self._audit(record, "findings_recorded", {"compliance_issues": len(findings.compliance_issues)})

        return record

    def _check_approvable(self, record: VerificationRecord, project: Project) -> None:
        if record.status != "in_progress":
            raise StateConflictError("in_progress", record.status)
        if project.status not in REVIEWABLE_PROJECT_STATUSES:
            raise StateConflictError(list(REVIEWABLE_PROJECT_STATUSES), project.status)
        unverified = [item["url"] for item in record.evidence_items or [] if not item.get("verified")]
        if unverified:
            raise IncompleteEvidence(unverified)
        if record.compliance_issues:
            raise OutstandingCompliance(record.compliance_issues)

    async def approve(self, actor: User, record_id: str) -> tuple[VerificationRecord, Optional[MintRequest]]:
        """Verify a review; returns the mint request the ledger should execute, if any."""
        require_capability(actor, "verifications:review")
        record = self.get_verification(record_id)

        async with self.locks.hold(f"project:{record.project_id}"):
            project = self.registry.get_project(record.project_id)
            self.db.refresh(record)
            self.db.refresh(project)
            self._check_approvable(record, project)

            await self.client.confirm("verify", {"verification_id": record.id, "project_id": project.id})

            # Another command may have touched the record while we waited
            self.db.refresh(record)
            self.db.refresh(project)
            self._check_approvable(record, project)

            findings = Findings(**(record.findings_json or {}))
            recommended = recommend_credits(findings, self.settings)
            now = datetime.utcnow()

            with self.unit_of_work():
                record.status = "verified"
                record.confidence_score = compute_confidence(record)
                record.carbon_credits_recommended = recommended
                record.verified_at = now
                record.closed_at = now
                event = self._audit(
                    record,
                    "verification_approved",
                    {
                        "confidence_score": record.confidence_score,
                        "carbon_credits_recommended": recommended,
                        "findings": record.findings_json,
                    },
                )
                record.blockchain_hash = event.event_hash
                record.immutable_record = True
                if recommended == 0:
                    self.registry.transition(project, "verified", WORKFLOW_WRITER)

        verification_outcomes.labels(outcome="verified", method=record.verification_method).inc()
        logger.info(
            f"Approved verification {record.id}",
            extra={"project_id": project.id, "confidence_score": record.confidence_score, "credits": recommended},
        )

        return record, self.mint_request_for(record)

    def mint_request_for(self, record: VerificationRecord) -> Optional[MintRequest]:
        """Mint request backing a verified record; None when it recommends no credits."""
        if record.status != "verified":
            raise StateConflictError("verified", record.status)
        if record.carbon_credits_recommended <= 0:
            return None
        project = self.registry.get_project(record.project_id)
        return MintRequest(
            project_id=project.id,
            verification_id=record.id,
            amount=record.carbon_credits_recommended,
            vintage=record.verified_at.year,
            owner=project.organization_id,
            verifier=record.verifier.name if record.verifier else record.verifier_id,
        )

    def reject(self, actor: User, record_id: str, reason: str) -> VerificationRecord:
        """Close a review without credits; the project is rejected unless already verified."""
        require_capability(actor, "verifications:review")
        if not reason or not reason.strip():
            raise ValidationError.single("reason", "must not be empty")

        record = self._get_open(record_id)
        with self.unit_of_work():
            findings = dict(record.findings_json or {})
            findings["compliance_issues"] = list(findings.get("compliance_issues", [])) + [reason.strip()]
            record.findings_json = findings
            record.status = "rejected"
            record.closed_at = datetime.utcnow()
            record.confidence_score = compute_confidence(record)
            record.carbon_credits_recommended = 0

            project = self.registry.get_project(record.project_id)
            if project.status != "verified":
                self.registry.transition(project, "rejected", WORKFLOW_WRITER)
            self._audit(record, "verification_rejected", {"reason": reason.strip()})

        verification_outcomes.labels(outcome="rejected", method=record.verification_method).inc()
        logger.info(f"Rejected verification {record.id}", extra={"project_id": record.project_id})
        return record

    def request_additional_data(self, actor: User, record_id: str, issues: list[str]) -> VerificationRecord:
        """Send a review back for more evidence."""
        require_capability(actor, "verifications:review")
        issues = [issue.strip() for issue in issues if issue and issue.strip()]
        if not issues:
            raise ValidationError.single("issues", "must list at least one issue")

        record = self._get_open(record_id)
        if record.status == "requires_additional_data":
            raise StateConflictError(["pending", "in_progress"], record.status)

        with self.unit_of_work():
            findings = dict(record.findings_json or {})
            findings["compliance_issues"] = list(findings.get("compliance_issues", [])) + issues
            record.findings_json = findings
            record.status = "requires_additional_data"
            record.confidence_score = compute_confidence(record)

            project = self.registry.get_project(record.project_id)
            if project.status == "active":
                self.registry.transition(project, "requires_additional_data", WORKFLOW_WRITER)
            self._audit(record, "additional_data_requested", {"issues": issues})

        verification_outcomes.labels(outcome="requires_additional_data", method=record.verification_method).inc()
        logger.info(f"Requested additional data for {record.id}", extra={"issues": len(issues)})
        return record

    def get_verification_queue(
        self,
        status: Optional[str] = None,
        project_id: Optional[str] = None,
        verifier_id: Optional[str] = None,
    ) -> list[VerificationRecord]:
        """Verification records matching the filter, oldest first."""
        query = self.db.query(VerificationRecord)
        if status:
            query = query.filter(VerificationRecord.status == status)
        if project_id:
            query = query.filter(VerificationRecord.project_id == project_id)
        if verifier_id:
            query = query.filter(VerificationRecord.verifier_id == verifier_id)
        return query.order_by(VerificationRecord.opened_at.asc(), VerificationRecord.id.asc()).all()
