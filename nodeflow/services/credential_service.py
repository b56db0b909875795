"""Credential service.

Handles CRUD operations for user credentials with encryption.
All credential data is AES-256-GCM encrypted at rest.
"""

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nodeflow.config import settings
from nodeflow.core.encryption import CredentialEncryption, mask_credential_data
from nodeflow.models.credential import (
    Credential,
    CredentialCreate,
    CredentialDecrypted,
    CredentialMasked,
    CredentialRead,
    CredentialType,
    CredentialUpdate,
)

logger = structlog.get_logger()


class CredentialServiceError(Exception):
    """Error in credential service operations."""

    pass


class CredentialNotFoundError(CredentialServiceError):
    """Credential not found."""

    pass


class CredentialAccessDeniedError(CredentialServiceError):
    """User doesn't have access to credential."""

    pass


class CredentialService:
    """Service for managing user credentials.

    Handles:
    - Creating credentials with encryption
    - Reading credentials with masked payloads
    - Decrypting credentials for node execution
    - User-scoped access control

    Example usage:
        service = CredentialService(session)

        cred = await service.create(
            user_id="user-123",
            data=CredentialCreate(
                name="OpenAI",
                type=CredentialType.API_KEY,
                data={"apiKey": "sk-..."},
            ),
        )

        decrypted = await service.load_for_execution(cred.id, "user-123")
    """

    def __init__(
        self,
        session: AsyncSession,
        encryption: CredentialEncryption | None = None,
    ) -> None:
        self._session = session
        self._encryption = encryption or CredentialEncryption(
            settings.encryption_key.get_secret_value()
        )

    async def create(
        self,
        user_id: str,
        data: CredentialCreate,
    ) -> CredentialRead:
        """Create a new credential.

        Args:
            user_id: Owner user ID
            data: Credential creation data

        Returns:
            Created credential (without decrypted data)
        """
        credential = Credential(
            user_id=user_id,
            name=data.name,
            type=data.type,
            encrypted_data=self._encryption.encrypt_data(data.data),
        )

        self._session.add(credential)
        await self._session.commit()
        await self._session.refresh(credential)

        logger.info(
            "credential_created",
            credential_id=credential.id,
            user_id=user_id,
            credential_type=data.type.value,
        )

        return CredentialRead.model_validate(credential)

    async def get(
        self,
        credential_id: str,
        user_id: str,
    ) -> CredentialMasked:
        """Get a credential with its payload masked.

        Raises:
            CredentialNotFoundError: If credential doesn't exist
            CredentialAccessDeniedError: If user doesn't own credential
            DecryptionError: If the stored payload cannot be decrypted
        """
        credential = await self._get_and_verify(credential_id, user_id)
        return self._to_masked(credential)

    async def list_all(
        self,
        user_id: str,
        credential_type: CredentialType | None = None,
    ) -> list[CredentialRead]:
        """List user's credentials (without payloads)."""
        query = (
            select(Credential)
            .where(Credential.user_id == user_id)
            .order_by(Credential.created_at)
        )
        if credential_type:
            query = query.where(Credential.type == credential_type)

        result = await self._session.execute(query)
        return [CredentialRead.model_validate(c) for c in result.scalars().all()]

    async def load_for_execution(
        self,
        credential_id: str,
        user_id: str,
    ) -> CredentialDecrypted | None:
        """Decrypt a credential for a node executor.

        SECURITY: Only call when decrypted values are actually needed.
        Never log the returned data.

        Returns:
            The decrypted credential, or None when it does not exist or
            belongs to another user

        Raises:
            DecryptionError: If the stored payload cannot be decrypted
        """
        query = select(Credential).where(
            Credential.id == credential_id,
            Credential.user_id == user_id,
        )
        result = await self._session.execute(query)
        credential = result.scalar_one_or_none()
        if credential is None:
            return None

        data = self._encryption.decrypt_data(credential.encrypted_data)
        logger.debug(
            "credential_decrypted",
            credential_id=credential_id,
            user_id=user_id,
        )
        return CredentialDecrypted(
            id=credential.id,
            name=credential.name,
            type=credential.type,
            owner_id=credential.user_id,
            data=data,
        )

    async def update(
        self,
        credential_id: str,
        user_id: str,
        data: CredentialUpdate,
    ) -> CredentialRead:
        """Rename a credential or replace its payload.

        Raises:
            CredentialNotFoundError: If credential doesn't exist
            CredentialAccessDeniedError: If user doesn't own credential
        """
        credential = await self._get_and_verify(credential_id, user_id)

        if data.name is not None:
            credential.name = data.name
        if data.data is not None:
            credential.encrypted_data = self._encryption.encrypt_data(data.data)

        await self._session.commit()
        await self._session.refresh(credential)

        logger.info(
            "credential_updated",
            credential_id=credential_id,
            user_id=user_id,
        )

        return CredentialRead.model_validate(credential)

    async def delete(
        self,
        credential_id: str,
        user_id: str,
    ) -> None:
        """Delete a credential.

        Raises:
            CredentialNotFoundError: If credential doesn't exist
            CredentialAccessDeniedError: If user doesn't own credential
        """
        credential = await self._get_and_verify(credential_id, user_id)

        await self._session.delete(credential)
        await self._session.commit()

        logger.info(
            "credential_deleted",
            credential_id=credential_id,
            user_id=user_id,
        )

    async def _get_and_verify(
        self,
        credential_id: str,
        user_id: str,
    ) -> Credential:
        """Get credential and verify ownership.

        Raises:
            CredentialNotFoundError: If not found
            CredentialAccessDeniedError: If wrong owner
        """
        query = select(Credential).where(Credential.id == credential_id)
        result = await self._session.execute(query)
        credential = result.scalar_one_or_none()

        if credential is None:
            raise CredentialNotFoundError(f"Credential '{credential_id}' not found")

        if credential.user_id != user_id:
            logger.warning(
                "credential_access_denied",
                credential_id=credential_id,
                requested_by=user_id,
                owner=credential.user_id,
            )
            raise CredentialAccessDeniedError("Access denied to credential")

        return credential

    def _to_masked(self, credential: Credential) -> CredentialMasked:
        data = self._encryption.decrypt_data(credential.encrypted_data)
        return CredentialMasked(
            id=credential.id,
            name=credential.name,
            type=credential.type,
            user_id=credential.user_id,
            created_at=credential.created_at,
            updated_at=credential.updated_at,
            data=mask_credential_data(data),
        )
