"""MongoDB query node.

Runs find, insert, update, delete and aggregate operations through motor.
``query`` holds the filter, the document(s) to insert or the aggregation
pipeline; ``options`` holds find/aggregate options or the update document.
"""

from dataclasses import dataclass
from typing import Any, Callable

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

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

OPERATIONS = ("find", "insert", "update", "delete", "aggregate")
AGGREGATE_OPTIONS = ("allowDiskUse", "maxTimeMS", "collation", "hint")

ClientFactory = Callable[[dict[str, Any]], Any]


@dataclass
class MongoConfig:
    """Configuration for MongoDB node."""

    credential_id: str
    collection: str
    operation: str = "find"
    query: Any = None
    options: Any = None


def default_client_factory(fields: dict[str, Any]) -> AsyncIOMotorClient:
    uri = connection_string(fields)
    if uri:
        return AsyncIOMotorClient(uri)
    if not fields.get("host"):
        raise NodeValidationError("Database credential requires a host", field="credentialId")
    port = fields.get("port")
    return AsyncIOMotorClient(
        host=fields["host"],
        port=int(port) if port else 27017,
        username=fields.get("username") or None,
        password=fields.get("password") or None,
    )


def _mongo_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: _mongo_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_mongo_value(v) for v in value]
    return value


def _sort_spec(sort: Any) -> list[tuple[str, int]]:
    if isinstance(sort, dict):
        return [(key, int(direction)) for key, direction in sort.items()]
    if isinstance(sort, list):
        return [(item[0], int(item[1])) for item in sort]
    raise NodeValidationError("sort must be an object or list of pairs", field="options")


class MongoQueryNode(BaseNode[MongoConfig]):
    """MongoDB query node.

    Example:
        {"credentialId": "cred-1", "collection": "users", "operation": "find",
         "query": "{\"age\": {\"$gte\": 18}}", "options": "{\"limit\": 10}"}
    """

    label = "MongoDB"

    def __init__(self, client_factory: ClientFactory | None = None) -> None:
        self._client_factory = client_factory or default_client_factory

    def get_definition(self) -> NodeDefinition:
        return NodeDefinition(
            node_type=NodeType.MONGODB_QUERY,
            display_name="MongoDB",
            description="Query or modify a MongoDB collection",
            category=NodeCategory.DATABASE,
            fields=[
                NodeField(
                    name="credentialId",
                    display_name="Credential",
                    type=NodeFieldType.CREDENTIAL,
                    required=True,
                ),
                NodeField(
                    name="collection",
                    display_name="Collection",
                    type=NodeFieldType.STRING,
                    required=True,
                    templated=True,
                ),
                NodeField(
                    name="operation",
                    display_name="Operation",
                    type=NodeFieldType.STRING,
                    default="find",
                    options=list(OPERATIONS),
                ),
                NodeField(
                    name="query",
                    display_name="Query",
                    type=NodeFieldType.JSON,
                    description="Filter, document(s) to insert, or aggregation pipeline",
                    templated=True,
                ),
                NodeField(
                    name="options",
                    display_name="Options",
                    type=NodeFieldType.JSON,
                    description="Find/aggregate options, or the update document",
                    templated=True,
                ),
            ],
            credential_types=[CredentialType.DATABASE.value],
            tags=["database", "mongodb", "nosql"],
        )

    def validate_input(self, data: dict[str, Any]) -> MongoConfig:
        operation = (data.get("operation") or "find").lower()
        if operation not in OPERATIONS:
            raise NodeValidationError(f"Unknown operation: {operation}", field="operation")

        collection = data.get("collection")
        if not collection or not isinstance(collection, str):
            raise NodeValidationError("Collection name is required", field="collection")

        if operation == "insert" and not data.get("query"):
            raise NodeValidationError("Documents to insert are required", field="query")
        if operation == "update" and not data.get("options"):
            raise NodeValidationError("Update document is required", field="options")

        return MongoConfig(
            credential_id=data.get("credentialId") or "",
            collection=collection,
            operation=operation,
            query=data.get("query"),
            options=data.get("options"),
        )

    def _parse(self, value: Any, field: str) -> Any:
        if isinstance(value, str):
            if not value.strip():
                return None
            return parse_json_config(value, field, f"{field} JSON")
        return value

    async def _run(self, collection: Any, config: MongoConfig, query: Any, options: Any) -> Any:
        op = config.operation

        if op == "find":
            options = options or {}
            cursor = collection.find(query or {}, options.get("projection"))
            if options.get("sort"):
                cursor = cursor.sort(_sort_spec(options["sort"]))
            if options.get("skip"):
                cursor = cursor.skip(int(options["skip"]))
            if options.get("limit"):
                cursor = cursor.limit(int(options["limit"]))
            return [_mongo_value(doc) async for doc in cursor]

        if op == "insert":
            if isinstance(query, list):
                result = await collection.insert_many(query)
                return {"insertedIds": [str(i) for i in result.inserted_ids]}
            if not isinstance(query, dict):
                raise NodeValidationError(
                    "Insert requires a document or array of documents", field="query"
                )
            result = await collection.insert_one(query)
            return {"insertedIds": [str(result.inserted_id)]}

        if op == "update":
            if not isinstance(options, dict):
                raise NodeValidationError("Update document must be an object", field="options")
            result = await collection.update_many(query or {}, options)
            return {
                "matchedCount": result.matched_count,
                "modifiedCount": result.modified_count,
            }

        if op == "delete":
            result = await collection.delete_many(query or {})
            return {"deletedCount": result.deleted_count}

        if not isinstance(query, list):
            raise NodeValidationError("Aggregation pipeline must be an array", field="query")
        kwargs = {k: v for k, v in (options or {}).items() if k in AGGREGATE_OPTIONS}
        cursor = collection.aggregate(query, **kwargs)
        return [_mongo_value(doc) async for doc in cursor]

    async def execute(self, config: MongoConfig, context: NodeContext) -> Any:
        credential = await context.get_credential(
            config.credential_id, [CredentialType.DATABASE], self.label
        )
        fields = connection_fields(credential)

        query = self._parse(context.resolve(config.query), "query")
        options = self._parse(context.resolve(config.options), "options")
        if options is not None and not isinstance(options, dict):
            raise NodeValidationError("Options must be a JSON object", field="options")

        database_name = fields.get("database")
        client = self._client_factory(fields)
        try:
            database = (
                client[database_name] if database_name else client.get_default_database()
            )
            collection = database[context.resolve(config.collection)]
            result = await self._run(collection, config, query, options)
        except PyMongoError as e:
            logger.warning(
                "mongodb_query_failed",
                node_id=context.node_id,
                operation=config.operation,
                error_type=type(e).__name__,
            )
            raise NodeExecutionError(f"Query failed: {e}", error_code="DATABASE_ERROR") from e
        finally:
            client.close()

        count = len(result) if isinstance(result, list) else None
        context.log(
            LogLevel.INFO,
            f"MongoDB {config.operation} on {config.collection} completed",
            {"operation": config.operation, "documents": count},
        )
        return to_jsonable(result)
