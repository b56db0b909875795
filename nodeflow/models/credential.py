"""Credential entity model.

Defines the Credential table for storing encrypted user credentials.
All credential data is AES-256-GCM encrypted at rest.
Credentials are scoped per-user for multi-tenancy security.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import DateTime
from sqlmodel import Column, Field, SQLModel, Text


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class CredentialType(str, Enum):
    """Kind of secret a credential holds."""

    API_KEY = "API_KEY"
    DATABASE = "DATABASE"
    OAUTH2 = "OAUTH2"
    BASIC_AUTH = "BASIC_AUTH"
    BEARER_TOKEN = "BEARER_TOKEN"
    CUSTOM = "CUSTOM"


class CredentialBase(SQLModel):
    """Base credential fields shared across models."""

    name: str = Field(
        max_length=255,
        min_length=1,
        description="Human-readable credential name",
    )
    type: CredentialType = Field(
        description="Kind of secret held by the credential",
    )


class Credential(CredentialBase, table=True):
    """Credential database entity.

    The encrypted_data field holds ``iv:tag:ciphertext`` of the JSON payload.

    SECURITY NOTES:
    - Never log decrypted credential values
    - Decrypt only when needed, clear from memory immediately
    """

    __tablename__ = "credential"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        description="Unique credential identifier (UUID)",
    )
    user_id: str = Field(
        index=True,
        max_length=255,
        description="Owner user ID",
    )
    encrypted_data: str = Field(
        sa_column=Column(Text, nullable=False),
        description="Encrypted JSON credential data",
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_type=DateTime(timezone=True),
        description="Creation timestamp (UTC)",
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"onupdate": utc_now},
        description="Last update timestamp (UTC)",
    )


# Payload fields each credential type is expected to carry
CREDENTIAL_TYPE_FIELDS: dict[CredentialType, list[str]] = {
    CredentialType.API_KEY: ["apiKey"],
    CredentialType.DATABASE: ["host", "port", "database", "username", "password"],
    CredentialType.OAUTH2: ["accessToken", "refreshToken", "clientId", "clientSecret"],
    CredentialType.BASIC_AUTH: ["username", "password"],
    CredentialType.BEARER_TOKEN: ["token"],
    CredentialType.CUSTOM: [],
}


class CredentialCreate(SQLModel):
    """Schema for creating a new credential.

    The 'data' field contains the raw credential values that will be encrypted.
    """

    name: str = Field(max_length=255, min_length=1)
    type: CredentialType
    data: dict[str, Any] | str = Field(
        description="Raw credential data (will be encrypted)",
    )


class CredentialUpdate(SQLModel):
    """Schema for updating a credential."""

    name: str | None = Field(default=None, max_length=255)
    data: dict[str, Any] | str | None = Field(
        default=None,
        description="New credential data (will be encrypted)",
    )


class CredentialRead(CredentialBase):
    """Schema for reading credential data (excludes encrypted data).

    SECURITY: This schema intentionally excludes the encrypted_data field.
    """

    id: str
    user_id: str
    created_at: datetime
    updated_at: datetime


class CredentialMasked(CredentialRead):
    """Credential with sensitive payload fields partially redacted."""

    data: dict[str, Any] | str


class CredentialDecrypted(SQLModel):
    """Decrypted credential handed to node executors.

    SECURITY WARNING: Exposes decrypted credential values.
    Never log, persist or return this from an API route.
    """

    id: str
    name: str
    type: CredentialType
    owner_id: str
    data: dict[str, Any] | str
