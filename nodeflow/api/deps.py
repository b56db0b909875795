"""API dependencies for FastAPI dependency injection.

Provides database sessions, caller identity and service instances. Tokens
are issued by the external auth service; this API only verifies them.
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated, AsyncGenerator

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from nodeflow.config import settings
from nodeflow.core.database import get_session_maker
from nodeflow.core.execution_engine import WorkflowExecutionEngine
from nodeflow.services.credential_service import CredentialService
from nodeflow.services.execution_service import ExecutionService
from nodeflow.services.trigger_service import TriggerService
from nodeflow.services.workflow_service import WorkflowService

logger = structlog.get_logger()

# Security
_bearer_scheme = HTTPBearer(auto_error=False)


class TokenPayload(BaseModel):
    """JWT claims this API relies on."""

    sub: str
    exp: datetime


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session.

    Yields:
        AsyncSession that will be closed after use
    """
    async with get_session_maker()() as session:
        try:
            yield session
        finally:
            await session.close()


# Type alias for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db_session)]


def create_access_token(user_id: str, expires_minutes: int | None = None) -> str:
    """Create a JWT access token.

    Used by tooling and tests; production tokens come from the auth service.
    """
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes or settings.jwt_access_token_expire_minutes
    )
    return jwt.encode(
        {"sub": user_id, "exp": expire},
        settings.jwt_secret_key.get_secret_value(),
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str) -> TokenPayload:
    """Decode and validate a JWT access token.

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key.get_secret_value(),
            algorithms=[settings.jwt_algorithm],
        )
        return TokenPayload(**payload)
    except (JWTError, ValueError) as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> str:
    """Resolve the caller's user id from the bearer token.

    Raises:
        HTTPException: If not authenticated
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token_data = decode_access_token(credentials.credentials)
    if token_data.exp < datetime.now(timezone.utc):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return token_data.sub


# Type alias for authenticated caller dependency
CurrentUser = Annotated[str, Depends(get_current_user_id)]


# Service dependencies
def get_credential_service(session: DBSession) -> CredentialService:
    """Get credential service instance."""
    return CredentialService(session)


def get_workflow_service(session: DBSession) -> WorkflowService:
    """Get workflow service instance."""
    return WorkflowService(session)


def get_execution_service(session: DBSession) -> ExecutionService:
    """Get execution service instance."""
    return ExecutionService(session)


def get_execution_engine(session: DBSession) -> WorkflowExecutionEngine:
    """Get execution engine bound to the request session."""
    return WorkflowExecutionEngine(session)


def get_trigger_service(
    session: DBSession,
    engine: Annotated[WorkflowExecutionEngine, Depends(get_execution_engine)],
) -> TriggerService:
    """Get trigger service instance."""
    return TriggerService(session, engine)


# Type aliases for service dependencies
CredentialServiceDep = Annotated[CredentialService, Depends(get_credential_service)]
WorkflowServiceDep = Annotated[WorkflowService, Depends(get_workflow_service)]
ExecutionServiceDep = Annotated[ExecutionService, Depends(get_execution_service)]
TriggerServiceDep = Annotated[TriggerService, Depends(get_trigger_service)]
