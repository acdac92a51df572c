"""Shared route dependencies: services, bearer session auth, error mapping."""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session as DBSession

from ecosangam_api.commands import CommandResult, MRVCommands
from ecosangam_api.db.session import get_db
from ecosangam_api.errors import DomainError
from ecosangam_api.identity.service import Session
from ecosangam_api.services.container import Services, build_services

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

# HTTP status per domain error code
ERROR_STATUS = {
    "validation_error": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "not_found": status.HTTP_404_NOT_FOUND,
    "authorization_error": status.HTTP_403_FORBIDDEN,
    "state_conflict": status.HTTP_409_CONFLICT,
    "insufficient_balance": status.HTTP_409_CONFLICT,
    "partial_retirement_unsupported": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "incomplete_evidence": status.HTTP_409_CONFLICT,
    "outstanding_compliance": status.HTTP_409_CONFLICT,
    "transient_sync_error": status.HTTP_503_SERVICE_UNAVAILABLE,
    "invalid_credential": status.HTTP_401_UNAUTHORIZED,
    "unknown_account": status.HTTP_401_UNAUTHORIZED,
}


def get_services(db: DBSession = Depends(get_db)) -> Services:
    return build_services(db)


def get_commands(services: Services = Depends(get_services)) -> MRVCommands:
    return MRVCommands(services)


def get_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    services: Services = Depends(get_services),
) -> Session:
    """Resolve the bearer token to a live session."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    session = services.identity.resolve(credentials.credentials)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


def unwrap(result: CommandResult):
    """Return a command's value; its error is rendered by ``domain_error_handler``."""
    return result.unwrap()


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    status_code = ERROR_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST)
    if status_code >= 500:
        logger.warning(
            f"{request.url.path} failed: {exc.message}",
            extra={"correlation_id": getattr(request.state, "correlation_id", None)},
        )
    return JSONResponse(status_code=status_code, content={"detail": exc.to_dict()})
