"""Carbon credit ledger endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ecosangam_api.commands import MRVCommands
from ecosangam_api.identity.service import Session
from ecosangam_api.routes.deps import get_commands, get_services, get_session, unwrap
from ecosangam_api.schemas import CreditBalance, RetireIn, TokenView, TransactionView, TransferIn
from ecosangam_api.services.container import Services

router = APIRouter(prefix="/v1/credits", tags=["credits"])


class ConservationResponse(BaseModel):
    project_id: str
    conserved: bool
    error: Optional[str] = None
    total_credits_issued: int
    available_credits: int


@router.get("/balance", response_model=CreditBalance)
async def get_credit_balance(
    owner: Optional[str] = None,
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    """Credits held by ``owner``; defaults to the caller's organization."""
    return services.ledger.get_credit_balance(owner or session.user.organization_id, viewer=session.user)


@router.get("/transactions", response_model=list[TransactionView])
async def get_transactions(
    owner: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    """Recent credit movements to or from ``owner``, newest first."""
    return services.ledger.get_transactions_for(
        owner or session.user.organization_id, limit=limit, viewer=session.user
    )


@router.get("/transactions/{transaction_hash}", response_model=TransactionView)
async def get_transaction(
    transaction_hash: str,
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    return services.ledger.get_transaction(transaction_hash, viewer=session.user)


@router.get("/tokens/{token_id}", response_model=TokenView)
async def get_token(
    token_id: str,
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    return TokenView.from_token(services.ledger.get_token(token_id, viewer=session.user))


@router.post("/tokens/{token_id}/transfer", response_model=TransactionView)
async def transfer(
    token_id: str,
    request: TransferIn,
    session: Session = Depends(get_session),
    commands: MRVCommands = Depends(get_commands),
):
    return unwrap(
        await commands.transfer(session, token_id, request.from_owner, request.to_owner, request.amount)
    )


@router.post("/tokens/{token_id}/retire", response_model=TransactionView)
async def retire(
    token_id: str,
    request: RetireIn,
    session: Session = Depends(get_session),
    commands: MRVCommands = Depends(get_commands),
):
    return unwrap(await commands.retire(session, token_id, request.amount, request.reason))


@router.get("/projects/{project_id}/conservation", response_model=ConservationResponse)
async def verify_conservation(
    project_id: str,
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    """Check that active plus retired credits equal credits issued."""
    project = services.registry.get_project_for(session.user, project_id)
    conserved, error = services.ledger.verify_conservation(project_id)
    return ConservationResponse(
        project_id=project_id,
        conserved=conserved,
        error=error,
        total_credits_issued=project.total_credits_issued,
        available_credits=project.available_credits,
    )
