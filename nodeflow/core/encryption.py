"""Credential encryption using AES-256-GCM.

Provides authenticated encryption for credential data using the cryptography library.
All credential values are encrypted before storage and decrypted only when needed.

Stored format: ``hex(iv):hex(auth_tag):hex(ciphertext)``.

SECURITY NOTES:
- Uses AES-256-GCM with a fixed additional-authenticated-data tag
- Encryption key must be 32 bytes, supplied as 64 hex characters
- Never log decrypted credential values
- A tampered IV, tag or ciphertext fails closed with DecryptionError
"""

import json
import secrets
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = structlog.get_logger()

# Binds ciphertexts to their purpose; kept stable so existing rows stay readable.
CREDENTIALS_AAD = b"n8n-credentials"

IV_LENGTH = 16
TAG_LENGTH = 16
KEY_HEX_LENGTH = 64

SENSITIVE_FIELDS = (
    "apiKey",
    "api_key",
    "token",
    "secret",
    "password",
    "key",
    "accessToken",
    "access_token",
    "refreshToken",
    "refresh_token",
    "clientSecret",
    "client_secret",
    "privateKey",
    "private_key",
)

URL_FIELDS = ("connectionString", "connection_string", "url", "uri", "dsn")

_SENSITIVE_QUERY_PARAMS = {name.lower() for name in SENSITIVE_FIELDS}


class EncryptionError(Exception):
    """Base exception for encryption operations."""

    pass


class EncryptionKeyError(EncryptionError):
    """Invalid or missing encryption key."""

    pass


class DecryptionError(EncryptionError):
    """Failed to decrypt data."""

    pass


def _load_key(key: str) -> bytes:
    if not key:
        raise EncryptionKeyError("Encryption key is not configured")
    if len(key) != KEY_HEX_LENGTH:
        raise EncryptionKeyError(
            f"Encryption key must be {KEY_HEX_LENGTH} characters (32 bytes) long, got {len(key)}"
        )
    try:
        return bytes.fromhex(key)
    except ValueError as e:
        raise EncryptionKeyError("Encryption key must be hex-encoded") from e


class CredentialEncryption:
    """AES-256-GCM credential encryption.

    Thread-safe and stateless - can be shared across requests.

    Example usage:
        encryption = CredentialEncryption(key)
        encrypted = encryption.encrypt_data({"apiKey": "sk-..."})
        decrypted = encryption.decrypt_data(encrypted)
    """

    def __init__(self, key: str) -> None:
        """Initialize with a hex-encoded 32 byte key.

        Args:
            key: 64 hex characters

        Raises:
            EncryptionKeyError: If key is invalid
        """
        try:
            self._aesgcm = AESGCM(_load_key(key))
            logger.debug("encryption_initialized")
        except EncryptionKeyError as e:
            logger.error("encryption_key_invalid", error=str(e))
            raise

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext string.

        Args:
            plaintext: Text to encrypt

        Returns:
            ``iv:tag:ciphertext`` hex string

        Raises:
            EncryptionError: If encryption fails
        """
        try:
            iv = secrets.token_bytes(IV_LENGTH)
            sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), CREDENTIALS_AAD)
        except Exception as e:
            logger.error("encryption_failed", error_type=type(e).__name__)
            raise EncryptionError("Failed to encrypt credential data") from e

        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"

    def decrypt(self, encrypted_text: str) -> str:
        """Decrypt an ``iv:tag:ciphertext`` string.

        Args:
            encrypted_text: Value produced by encrypt()

        Returns:
            Decrypted plaintext

        Raises:
            DecryptionError: If the format is malformed or authentication fails
        """
        parts = encrypted_text.split(":") if isinstance(encrypted_text, str) else []
        if len(parts) != 3 or not all(parts[:2]):
            raise DecryptionError(
                "Invalid encrypted text format. Expected: iv:tag:ciphertext"
            )

        iv_hex, tag_hex, ciphertext_hex = parts
        try:
            iv = bytes.fromhex(iv_hex)
            tag = bytes.fromhex(tag_hex)
            ciphertext = bytes.fromhex(ciphertext_hex)
        except ValueError as e:
            raise DecryptionError("Encrypted text is not valid hex") from e

        if len(tag) != TAG_LENGTH:
            raise DecryptionError("Invalid authentication tag length")
        if not iv:
            raise DecryptionError("Missing initialization vector")

        try:
            plaintext = self._aesgcm.decrypt(iv, ciphertext + tag, CREDENTIALS_AAD)
        except InvalidTag as e:
            logger.warning("decryption_invalid_tag")
            raise DecryptionError(
                "Failed to decrypt: authentication failed (wrong key or corrupted data)"
            ) from e
        except ValueError as e:
            raise DecryptionError("Failed to decrypt credential data") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted data is not valid UTF-8") from e

    def encrypt_data(self, data: dict[str, Any] | str) -> str:
        """Encrypt a credential payload (JSON-encoded when it is a dict)."""
        if isinstance(data, str):
            return self.encrypt(data)
        return self.encrypt(json.dumps(data, separators=(",", ":")))

    def decrypt_data(self, encrypted_text: str) -> dict[str, Any] | str:
        """Decrypt a credential payload.

        Returns the parsed JSON object when the plaintext is JSON, otherwise
        the raw string (e.g. a bare API key).
        """
        plaintext = self.decrypt(encrypted_text)
        try:
            return json.loads(plaintext)
        except json.JSONDecodeError:
            return plaintext

    @staticmethod
    def rotate_key(encrypted_text: str, old_key: str, new_key: str) -> str:
        """Re-encrypt data with a new key.

        Used for key rotation without data loss.

        Raises:
            EncryptionError: If rotation fails
        """
        plaintext = CredentialEncryption(old_key).decrypt(encrypted_text)
        rotated = CredentialEncryption(new_key).encrypt(plaintext)
        logger.info("credential_key_rotated")
        return rotated

    @staticmethod
    def generate_key() -> str:
        """Generate a new 32 byte key as 64 hex characters."""
        return secrets.token_hex(32)

    @staticmethod
    def constant_time_compare(a: str, b: str) -> bool:
        """Compare two strings in constant time."""
        return secrets.compare_digest(a.encode(), b.encode())


def mask_credential_value(value: str) -> str:
    """Mask a credential value for display.

    Values longer than 8 characters keep their first and last 4 characters,
    shorter values become all asterisks.
    """
    if len(value) > 8:
        return f"{value[:4]}...{value[-4:]}"
    return "*" * len(value)


def mask_connection_url(value: str) -> str:
    """Hide the password and secret query parameters of a connection URL.

    Values that do not parse as ``scheme://host`` URLs are masked whole.
    """
    try:
        parts = urlsplit(value)
        password = parts.password
    except ValueError:
        return mask_credential_value(value)
    if not parts.scheme or not parts.netloc:
        return mask_credential_value(value)

    netloc = parts.netloc
    if password is not None:
        host = netloc.rpartition("@")[2]
        netloc = f"{parts.username or ''}:****@{host}"

    query = parts.query
    if query:
        params = [
            (name, "****" if name.lower() in _SENSITIVE_QUERY_PARAMS else param)
            for name, param in parse_qsl(query, keep_blank_values=True)
        ]
        query = urlencode(params, safe="*")

    return urlunsplit(parts._replace(netloc=netloc, query=query))


def _mask_field(name: str, value: Any) -> Any:
    if isinstance(value, dict):
        return _mask_mapping(value)
    if isinstance(value, list):
        return [_mask_field(name, item) for item in value]
    if not isinstance(value, str) or not value:
        return value
    if name in SENSITIVE_FIELDS:
        return mask_credential_value(value)
    if name in URL_FIELDS:
        return mask_connection_url(value)
    return value


def _mask_mapping(data: dict[str, Any]) -> dict[str, Any]:
    return {name: _mask_field(name, value) for name, value in data.items()}


def mask_credential_data(data: dict[str, Any] | str) -> dict[str, Any] | str:
    """Mask sensitive fields of a decrypted payload, including nested objects.

    Conventionally-named secret fields are shortened with
    ``mask_credential_value``; URL-shaped fields keep their host but lose the
    password.
    """
    if isinstance(data, str):
        return mask_credential_value(data)
    return _mask_mapping(data)
