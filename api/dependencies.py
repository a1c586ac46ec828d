"""
FastAPI dependencies shared by the booking routers.

- get_orchestrator: the BookingOrchestrator built at startup (app.state)
- get_current_identity: caller identity from a Bearer JWT issued by the auth service
- result_or_raise: unwrap a BookingResult, raising the BookingError for its kind
"""

import logging
from typing import Annotated, Any, TypeVar
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from booking.transactions import BookingOrchestrator, BookingResult
from database.models import UserRole
from shared.config import get_settings
from shared.errors import ErrorKind
from shared.identity import Identity

logger = logging.getLogger(__name__)

T = TypeVar("T")

security = HTTPBearer(auto_error=False)

# One table from error kind to HTTP status
ERROR_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.AUTHORIZATION: status.HTTP_403_FORBIDDEN,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_orchestrator(request: Request) -> BookingOrchestrator:
    return request.app.state.orchestrator


def verify_token(token: str) -> dict[str, Any]:
    """
    Verify JWT signature and return its claims.

    Raises:
        HTTPException: 401 if the token is invalid or expired
    """
    settings = get_settings()
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


def identity_from_claims(payload: dict[str, Any]) -> Identity:
    """
    Build an Identity from token claims: sub (user id), role, provider_id.

    Raises:
        HTTPException: 401 if a claim is missing or malformed
    """
    try:
        provider_id = payload.get("provider_id")
        return Identity(
            user_id=UUID(str(payload["sub"])),
            role=UserRole(str(payload.get("role", UserRole.CUSTOMER.value)).upper()),
            provider_id=UUID(str(provider_id)) if provider_id else None,
        )
    except (KeyError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token claims",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None


async def get_current_identity(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
) -> Identity:
    """Dependency resolving the authenticated caller."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return identity_from_claims(verify_token(credentials.credentials))


def result_or_raise(result: BookingResult[T]) -> T:
    """Return the value of a successful result; raise its BookingError otherwise."""
    return result.unwrap()


OrchestratorDep = Annotated[BookingOrchestrator, Depends(get_orchestrator)]
IdentityDep = Annotated[Identity, Depends(get_current_identity)]
