"""Login, logout, users and organizations."""

from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel

from ecosangam_api.commands import MRVCommands
from ecosangam_api.identity.service import Session
from ecosangam_api.routes.deps import bearer_scheme, get_commands, get_services, get_session, unwrap
from ecosangam_api.schemas import OrganizationCreate, OrganizationView, SessionView, UserCreate, UserView
from ecosangam_api.services.container import Services

router = APIRouter(prefix="/v1", tags=["auth"])


class LoginRequest(BaseModel):
    """Login request."""

    email: str
    credential: str


@router.post("/auth/login", response_model=SessionView)
async def login(request: LoginRequest, commands: MRVCommands = Depends(get_commands)):
    """Exchange email and credential for a bearer session token."""
    session = unwrap(await commands.login(request.email, request.credential))
    return SessionView(token=session.token, user=UserView.model_validate(session.user), expires_at=session.expires_at)


@router.post("/auth/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    commands: MRVCommands = Depends(get_commands),
):
    """Clear the current session. Succeeds even without one."""
    unwrap(await commands.logout(credentials.credentials if credentials else None))


@router.get("/auth/me", response_model=UserView)
async def me(session: Session = Depends(get_session)):
    return session.user


@router.post("/users", response_model=UserView, status_code=status.HTTP_201_CREATED)
async def register_user(
    request: UserCreate,
    session: Session = Depends(get_session),
    commands: MRVCommands = Depends(get_commands),
):
    """Register a user (admin only)."""
    return unwrap(await commands.register_user(session, request))


@router.post("/organizations", response_model=OrganizationView, status_code=status.HTTP_201_CREATED)
async def register_organization(
    request: OrganizationCreate,
    session: Session = Depends(get_session),
    commands: MRVCommands = Depends(get_commands),
):
    """Register an organization (admin only)."""
    return unwrap(await commands.register_organization(session, request))


@router.get("/organizations", response_model=list[OrganizationView])
async def list_organizations(
    type: Optional[str] = None,
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    return services.directory.list(type=type)
