"""PostgreSQL query node.

Runs a SQL statement through SQLAlchemy's async engine (asyncpg driver).
Positional ``$1``-style placeholders are bound from a JSON array of
parameters; a JSON object binds ``:name`` placeholders instead.
"""

import re
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from nodeflow.models.credential import CredentialType
from nodeflow.models.execution import LogLevel
from nodeflow.models.node import (
    NodeCategory,
    NodeDefinition,
    NodeField,
    NodeFieldType,
    NodeType,
)
from nodeflow.nodes.base import BaseNode, NodeContext, NodeExecutionError, NodeValidationError
from nodeflow.nodes.database.common import connection_fields, connection_string, to_jsonable
from nodeflow.nodes.helpers import parse_json_config

logger = structlog.get_logger()

OPERATIONS = ("select", "insert", "update", "delete")
RETURN_MODES = ("all_rows", "first_row", "row_count")

_POSITIONAL = re.compile(r"\$(\d+)")


@dataclass
class PostgresConfig:
    """Configuration for PostgreSQL node."""

    credential_id: str
    query: str
    operation: str = "select"
    parameters: Any = None
    return_mode: str = "all_rows"


def bind_parameters(query: str, parameters: Any) -> tuple[str, dict[str, Any]]:
    """Rewrite ``$n`` placeholders to named binds.

    Raises:
        NodeValidationError: If a placeholder has no matching parameter
    """
    if parameters is None:
        return query, {}
    if isinstance(parameters, dict):
        return query, dict(parameters)
    if not isinstance(parameters, list):
        raise NodeValidationError(
            "Parameters must be a JSON array or object", field="parameters"
        )

    def replace(match: re.Match) -> str:
        index = int(match.group(1))
        if index < 1 or index > len(parameters):
            raise NodeValidationError(
                f"Query references ${index} but {len(parameters)} parameters were given",
                field="parameters",
            )
        return f":p{index}"

    rewritten = _POSITIONAL.sub(replace, query)
    return rewritten, {f"p{i}": value for i, value in enumerate(parameters, start=1)}


def build_url(fields: dict[str, Any]) -> URL:
    """SQLAlchemy URL from credential fields.

    A ``postgres://`` or ``postgresql://`` connection string is switched to
    the asyncpg driver.
    """
    raw = connection_string(fields)
    if raw:
        if raw.startswith("postgres://"):
            raw = "postgresql://" + raw[len("postgres://"):]
        url = make_url(raw)
        if url.drivername == "postgresql":
            url = url.set(drivername="postgresql+asyncpg")
        return url

    if not fields.get("host"):
        raise NodeValidationError("Database credential requires a host", field="credentialId")

    port = fields.get("port")
    return URL.create(
        "postgresql+asyncpg",
        username=fields.get("username") or fields.get("user"),
        password=fields.get("password"),
        host=fields.get("host"),
        port=int(port) if port else None,
        database=fields.get("database"),
    )


class PostgresQueryNode(BaseNode[PostgresConfig]):
    """PostgreSQL query node.

    Example:
        {"credentialId": "cred-1", "operation": "select",
         "query": "SELECT * FROM users WHERE id = $1", "parameters": "[42]",
         "returnMode": "first_row"}
    """

    label = "PostgreSQL"

    def get_definition(self) -> NodeDefinition:
        return NodeDefinition(
            node_type=NodeType.POSTGRES_QUERY,
            display_name="PostgreSQL",
            description="Run a SQL query against a PostgreSQL database",
            category=NodeCategory.DATABASE,
            fields=[
                NodeField(
                    name="credentialId",
                    display_name="Credential",
                    type=NodeFieldType.CREDENTIAL,
                    required=True,
                ),
                NodeField(
                    name="operation",
                    display_name="Operation",
                    type=NodeFieldType.STRING,
                    default="select",
                    options=list(OPERATIONS),
                ),
                NodeField(
                    name="query",
                    display_name="SQL Query",
                    type=NodeFieldType.CODE,
                    description="Use $1, $2, ... for parameters",
                    required=True,
                    templated=True,
                ),
                NodeField(
                    name="parameters",
                    display_name="Parameters",
                    type=NodeFieldType.JSON,
                    description='JSON array of parameters, e.g. ["value1", "value2"]',
                    templated=True,
                ),
                NodeField(
                    name="returnMode",
                    display_name="Return",
                    type=NodeFieldType.STRING,
                    default="all_rows",
                    options=list(RETURN_MODES),
                ),
            ],
            credential_types=[CredentialType.DATABASE.value],
            tags=["database", "sql", "postgres"],
        )

    def validate_input(self, data: dict[str, Any]) -> PostgresConfig:
        operation = (data.get("operation") or "select").lower()
        if operation not in OPERATIONS:
            raise NodeValidationError(f"Unknown operation: {operation}", field="operation")

        query = data.get("query")
        if not query or not isinstance(query, str) or not query.strip():
            raise NodeValidationError("SQL query is required", field="query")

        return_mode = data.get("returnMode") or "all_rows"
        if return_mode not in RETURN_MODES:
            raise NodeValidationError(f"Unknown return mode: {return_mode}", field="returnMode")

        return PostgresConfig(
            credential_id=data.get("credentialId") or "",
            query=query,
            operation=operation,
            parameters=data.get("parameters"),
            return_mode=return_mode,
        )

    async def execute(self, config: PostgresConfig, context: NodeContext) -> Any:
        credential = await context.get_credential(
            config.credential_id, [CredentialType.DATABASE], self.label
        )
        url = build_url(connection_fields(credential))

        parameters = context.resolve(config.parameters)
        if isinstance(parameters, str):
            parameters = (
                parse_json_config(parameters, "parameters", "parameters JSON")
                if parameters.strip()
                else None
            )
        query, binds = bind_parameters(context.resolve(config.query), parameters)

        engine = create_async_engine(url, poolclass=NullPool)
        try:
            if config.operation == "select":
                async with engine.connect() as conn:
                    result = await conn.execute(text(query), binds)
                    rows = [dict(row._mapping) for row in result]
                    row_count = len(rows)
            else:
                async with engine.begin() as conn:
                    result = await conn.execute(text(query), binds)
                    rows = [dict(row._mapping) for row in result] if result.returns_rows else []
                    row_count = result.rowcount
        except SQLAlchemyError as e:
            logger.warning(
                "postgres_query_failed",
                node_id=context.node_id,
                operation=config.operation,
                error_type=type(e).__name__,
            )
            raise NodeExecutionError(
                f"Query failed: {getattr(e, 'orig', None) or e}", error_code="DATABASE_ERROR"
            ) from e
        finally:
            await engine.dispose()

        context.log(
            LogLevel.INFO,
            f"PostgreSQL {config.operation} affected {row_count} rows",
            {"operation": config.operation, "rowCount": row_count},
        )

        if config.return_mode == "row_count":
            return {"rowCount": row_count}
        rows = to_jsonable(rows)
        if config.return_mode == "first_row":
            return rows[0] if rows else None
        return rows
