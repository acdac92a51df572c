"""Verification workflow endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ecosangam_api.commands import ApprovalOutcome, MRVCommands
from ecosangam_api.identity.service import Session
from ecosangam_api.routes.deps import get_commands, get_services, get_session, unwrap
from ecosangam_api.schemas import EvidenceItem, Findings, ReviewOpen, TokenView, VerificationView
from ecosangam_api.services.container import Services

router = APIRouter(prefix="/v1/verifications", tags=["verifications"])


class EvidenceRequest(BaseModel):
    evidence_items: list[EvidenceItem]


class VerifyEvidenceRequest(BaseModel):
    urls: Optional[list[str]] = Field(None, description="Evidence URLs to mark verified; all when omitted")


class RejectRequest(BaseModel):
    reason: str


class AdditionalDataRequest(BaseModel):
    issues: list[str]


class ApprovalResponse(BaseModel):
    verification: VerificationView
    token: Optional[TokenView] = None


def _approval_response(outcome: ApprovalOutcome) -> ApprovalResponse:
    return ApprovalResponse(
        verification=VerificationView.from_record(outcome.record),
        token=TokenView.from_token(outcome.token) if outcome.token else None,
    )


@router.get("", response_model=list[VerificationView])
async def get_verification_queue(
    status_filter: Optional[str] = Query(None, alias="status"),
    project_id: Optional[str] = None,
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    """Verification records, oldest first, limited to projects the caller can see."""
    visible = {p.id for p in services.registry.get_projects_visible_to(session.user)}
    records = services.workflow.get_verification_queue(status=status_filter, project_id=project_id)
    return [VerificationView.from_record(r) for r in records if r.project_id in visible]


@router.post("", response_model=VerificationView, status_code=status.HTTP_201_CREATED)
async def open_review(
    request: ReviewOpen,
    session: Session = Depends(get_session),
    commands: MRVCommands = Depends(get_commands),
):
    return VerificationView.from_record(unwrap(await commands.open_review(session, request)))


@router.get("/{record_id}", response_model=VerificationView)
async def get_verification(
    record_id: str,
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    record = services.workflow.get_verification(record_id)
    services.registry.get_project_for(session.user, record.project_id)
    return VerificationView.from_record(record)


@router.post("/{record_id}/evidence", response_model=VerificationView)
async def add_evidence(
    record_id: str,
    request: EvidenceRequest,
    session: Session = Depends(get_session),
    commands: MRVCommands = Depends(get_commands),
):
    """Attach evidence; resubmits a record awaiting additional data."""
    return VerificationView.from_record(
        unwrap(await commands.add_evidence(session, record_id, request.evidence_items))
    )


@router.post("/{record_id}/evidence/verify", response_model=VerificationView)
async def verify_evidence(
    record_id: str,
    request: VerifyEvidenceRequest,
    session: Session = Depends(get_session),
    commands: MRVCommands = Depends(get_commands),
):
    return VerificationView.from_record(
        unwrap(await commands.mark_evidence_verified(session, record_id, request.urls))
    )


@router.put("/{record_id}/findings", response_model=VerificationView)
async def record_findings(
    record_id: str,
    request: Findings,
    session: Session = Depends(get_session),
    commands: MRVCommands = Depends(get_commands),
):
    return VerificationView.from_record(unwrap(await commands.record_findings(session, record_id, request)))


@router.post("/{record_id}/approve", response_model=ApprovalResponse)
async def approve(
    record_id: str,
    session: Session = Depends(get_session),
    commands: MRVCommands = Depends(get_commands),
):
    """Approve a review and mint its recommended credits."""
    return _approval_response(unwrap(await commands.approve(session, record_id)))


@router.post("/{record_id}/issue-credits", response_model=ApprovalResponse)
async def issue_credits(
    record_id: str,
    session: Session = Depends(get_session),
    commands: MRVCommands = Depends(get_commands),
):
    """Retry the mint for a verified record."""
    return _approval_response(unwrap(await commands.issue_credits(session, record_id)))


@router.post("/{record_id}/reject", response_model=VerificationView)
async def reject(
    record_id: str,
    request: RejectRequest,
    session: Session = Depends(get_session),
    commands: MRVCommands = Depends(get_commands),
):
    return VerificationView.from_record(unwrap(await commands.reject(session, record_id, request.reason)))


@router.post("/{record_id}/request-data", response_model=VerificationView)
async def request_additional_data(
    record_id: str,
    request: AdditionalDataRequest,
    session: Session = Depends(get_session),
    commands: MRVCommands = Depends(get_commands),
):
    return VerificationView.from_record(
        unwrap(await commands.request_additional_data(session, record_id, request.issues))
    )
