"""Credential API endpoints.

Handles credential CRUD operations with encryption. Payloads are write-only
except through the masked read.
"""

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, HTTPException, Query, status

from nodeflow.api.deps import CredentialServiceDep, CurrentUser
from nodeflow.models.credential import (
    CREDENTIAL_TYPE_FIELDS,
    CredentialCreate,
    CredentialMasked,
    CredentialRead,
    CredentialType,
    CredentialUpdate,
)
from nodeflow.services.credential_service import (
    CredentialAccessDeniedError,
    CredentialNotFoundError,
    CredentialServiceError,
)

logger = structlog.get_logger()

router = APIRouter()


def _to_http_error(e: CredentialServiceError) -> HTTPException:
    if isinstance(e, CredentialNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, CredentialAccessDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("", response_model=list[CredentialRead])
async def list_credentials(
    user: CurrentUser,
    service: CredentialServiceDep,
    credential_type: Annotated[CredentialType | None, Query(alias="type")] = None,
) -> list[CredentialRead]:
    """List user's credentials.

    Args:
        user: Current authenticated user id
        service: Credential service
        credential_type: Filter by credential type

    Returns:
        List of credentials (without payloads)
    """
    return await service.list_all(user_id=user, credential_type=credential_type)


@router.post("", response_model=CredentialRead, status_code=status.HTTP_201_CREATED)
async def create_credential(
    user: CurrentUser,
    service: CredentialServiceDep,
    data: CredentialCreate,
) -> CredentialRead:
    """Create a new credential.

    The credential data will be encrypted before storage.
    """
    logger.info(
        "credential_creation_requested",
        user_id=user,
        credential_type=data.type.value,
    )

    return await service.create(user_id=user, data=data)


@router.get("/types", response_model=list[dict[str, Any]])
async def list_credential_types() -> list[dict[str, Any]]:
    """List credential types with the payload fields each conventionally holds."""
    return [
        {"type": credential_type.value, "fields": fields}
        for credential_type, fields in CREDENTIAL_TYPE_FIELDS.items()
    ]


@router.get("/{credential_id}", response_model=CredentialMasked)
async def get_credential(
    credential_id: str,
    user: CurrentUser,
    service: CredentialServiceDep,
) -> CredentialMasked:
    """Get a credential with sensitive fields masked."""
    try:
        return await service.get(credential_id=credential_id, user_id=user)
    except CredentialServiceError as e:
        raise _to_http_error(e) from e


@router.put("/{credential_id}", response_model=CredentialRead)
async def update_credential(
    credential_id: str,
    user: CurrentUser,
    service: CredentialServiceDep,
    data: CredentialUpdate,
) -> CredentialRead:
    """Update a credential.

    If data is provided, it will be re-encrypted.
    """
    try:
        return await service.update(
            credential_id=credential_id,
            user_id=user,
            data=data,
        )
    except CredentialServiceError as e:
        raise _to_http_error(e) from e


@router.delete("/{credential_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_credential(
    credential_id: str,
    user: CurrentUser,
    service: CredentialServiceDep,
) -> None:
    """Delete a credential."""
    try:
        await service.delete(credential_id=credential_id, user_id=user)
    except CredentialServiceError as e:
        raise _to_http_error(e) from e
