"""Helpers shared by database nodes."""

import base64
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any
from uuid import UUID

from nodeflow.models.credential import CredentialDecrypted
from nodeflow.nodes.base import NodeValidationError


def to_jsonable(value: Any) -> Any:
    """Convert driver values (dates, decimals, ids, bytes) to JSON values."""
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def connection_fields(credential: CredentialDecrypted) -> dict[str, Any]:
    """Object payload of a DATABASE credential.

    Raises:
        NodeValidationError: If the payload is not an object
    """
    if not isinstance(credential.data, dict):
        raise NodeValidationError(
            f"Credential {credential.id} must contain connection settings",
            field="credentialId",
        )
    return credential.data


def connection_string(fields: dict[str, Any]) -> str | None:
    for key in ("connectionString", "url", "uri"):
        value = fields.get(key)
        if isinstance(value, str) and value:
            return value
    return None
