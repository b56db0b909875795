"""Tests for database nodes."""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from typing import Any

import pytest
from bson import ObjectId

from nodeflow.core.context import ExecutionContext
from nodeflow.models.credential import CredentialType
from nodeflow.models.node import NodeType
from nodeflow.nodes.base import NodeValidationError
from nodeflow.nodes.database import MongoQueryNode, PostgresQueryNode
from nodeflow.nodes.database.common import to_jsonable
from nodeflow.nodes.database.postgres import bind_parameters, build_url

from conftest import decrypted_credential, make_node_context


class TestBindParameters:
    """Tests for positional parameter rewriting."""

    def test_positional(self):
        query, binds = bind_parameters("SELECT * FROM t WHERE a = $1 AND b = $2", [1, "x"])

        assert query == "SELECT * FROM t WHERE a = :p1 AND b = :p2"
        assert binds == {"p1": 1, "p2": "x"}

    def test_named_and_none(self):
        assert bind_parameters("SELECT :a", {"a": 1}) == ("SELECT :a", {"a": 1})
        assert bind_parameters("SELECT 1", None) == ("SELECT 1", {})

    @pytest.mark.parametrize("query,params", [("SELECT $3", [1]), ("SELECT $0", [1]), ("SELECT 1", "x")])
    def test_invalid(self, query, params):
        with pytest.raises(NodeValidationError):
            bind_parameters(query, params)


class TestBuildUrl:
    """Tests for connection URL construction."""

    def test_connection_string_uses_asyncpg(self):
        url = build_url({"connectionString": "postgres://u:p@db:5432/app"})

        assert url.drivername == "postgresql+asyncpg"
        assert url.host == "db"
        assert url.database == "app"

    def test_from_fields(self):
        url = build_url({"host": "db", "port": "6543", "user": "u", "password": "p", "database": "app"})

        assert url.drivername == "postgresql+asyncpg"
        assert url.port == 6543
        assert url.username == "u"

    def test_host_required(self):
        with pytest.raises(NodeValidationError):
            build_url({"database": "app"})


class TestPostgresQueryNode:
    """Tests for PostgresQueryNode, run against SQLite through the same engine path."""

    @pytest.fixture
    def credentials(self, tmp_path):
        url = f"sqlite+aiosqlite:///{tmp_path / 'pg.db'}"
        return {"cred-1": decrypted_credential(CredentialType.DATABASE, {"connectionString": url})}

    async def _run(self, credentials, data: dict[str, Any], state: ExecutionContext | None = None):
        context = make_node_context(
            NodeType.POSTGRES_QUERY, node_id="pg", state=state, credentials=credentials
        )
        return await PostgresQueryNode().run({"credentialId": "cred-1", **data}, context)

    @pytest.mark.asyncio
    async def test_insert_and_select(self, credentials):
        await self._run(
            credentials,
            {"operation": "update", "query": "CREATE TABLE users (id INTEGER, name TEXT)"},
        )
        inserted = await self._run(
            credentials,
            {
                "operation": "insert",
                "query": "INSERT INTO users VALUES ($1, $2), (2, 'Bob')",
                "parameters": "[1, \"Ada\"]",
                "returnMode": "row_count",
            },
        )
        assert inserted.output == {"rowCount": 2}

        rows = await self._run(credentials, {"query": "SELECT id, name FROM users ORDER BY id"})
        assert rows.output == [{"id": 1, "name": "Ada"}, {"id": 2, "name": "Bob"}]

    @pytest.mark.asyncio
    async def test_first_row_with_templated_parameters(self, credentials):
        await self._run(credentials, {"operation": "update", "query": "CREATE TABLE t (v TEXT)"})
        await self._run(credentials, {"operation": "insert", "query": "INSERT INTO t VALUES ('a')"})
        state = ExecutionContext()
        state.set_variable("wanted", "a")

        first = await self._run(
            credentials,
            {"query": "SELECT v FROM t WHERE v = $1", "parameters": '["{{wanted}}"]', "returnMode": "first_row"},
            state,
        )
        missing = await self._run(
            credentials,
            {"query": "SELECT v FROM t WHERE v = 'z'", "returnMode": "first_row"},
        )

        assert first.output == {"v": "a"}
        assert missing.output is None

    @pytest.mark.asyncio
    async def test_sql_error(self, credentials):
        result = await self._run(credentials, {"query": "SELECT * FROM nowhere"})

        assert not result.success
        assert result.error.startswith("PostgreSQL node (pg): Query failed:")

    @pytest.mark.asyncio
    async def test_requires_database_credential(self):
        credentials = {"cred-1": decrypted_credential(CredentialType.API_KEY, "k")}

        result = await self._run(credentials, {"query": "SELECT 1"})

        assert "expected DATABASE, got API_KEY" in result.error

    @pytest.mark.parametrize(
        "data",
        [{"query": ""}, {"query": "SELECT 1", "operation": "merge"}, {"query": "SELECT 1", "returnMode": "many"}],
    )
    def test_invalid_config(self, data):
        with pytest.raises(NodeValidationError):
            PostgresQueryNode().validate_input(data)


class FakeCursor:
    def __init__(self, docs: list[dict]) -> None:
        self.docs = list(docs)

    def sort(self, spec):
        for key, direction in reversed(spec):
            self.docs.sort(key=lambda d: d.get(key), reverse=direction < 0)
        return self

    def skip(self, count):
        self.docs = self.docs[count:]
        return self

    def limit(self, count):
        self.docs = self.docs[:count]
        return self

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for doc in self.docs:
            yield doc


class FakeCollection:
    def __init__(self, docs: list[dict]) -> None:
        self.docs = docs
        self.calls: list[tuple] = []

    def find(self, query, projection=None):
        self.calls.append(("find", query, projection))
        return FakeCursor([d for d in self.docs if all(d.get(k) == v for k, v in query.items())])

    async def insert_one(self, doc):
        self.calls.append(("insert_one", doc))
        return SimpleNamespace(inserted_id=ObjectId("65a000000000000000000001"))

    async def insert_many(self, docs):
        self.calls.append(("insert_many", docs))
        return SimpleNamespace(inserted_ids=[1, 2])

    async def update_many(self, query, update):
        self.calls.append(("update_many", query, update))
        return SimpleNamespace(matched_count=2, modified_count=1)

    async def delete_many(self, query):
        self.calls.append(("delete_many", query))
        return SimpleNamespace(deleted_count=3)

    def aggregate(self, pipeline, **kwargs):
        self.calls.append(("aggregate", pipeline, kwargs))
        return FakeCursor([{"_id": "user", "count": 2}])


class FakeClient:
    def __init__(self, collection: FakeCollection) -> None:
        self.collection = collection
        self.databases: list[str] = []
        self.closed = False

    def __getitem__(self, name):
        self.databases.append(name)
        return {"people": self.collection}

    def get_default_database(self):
        return self["<default>"]

    def close(self):
        self.closed = True


class TestMongoQueryNode:
    """Tests for MongoQueryNode with an in-memory client."""

    PEOPLE = [
        {"_id": ObjectId("65a0000000000000000000aa"), "name": "Ada", "role": "admin", "age": 36},
        {"_id": ObjectId("65a0000000000000000000bb"), "name": "Bob", "role": "user", "age": 17},
        {"_id": ObjectId("65a0000000000000000000cc"), "name": "Cy", "role": "user", "age": 25},
    ]

    @pytest.fixture
    def client(self):
        return FakeClient(FakeCollection(self.PEOPLE))

    async def _run(self, client, data: dict[str, Any], fields: dict | None = None):
        credentials = {
            "cred-1": decrypted_credential(
                CredentialType.DATABASE, fields if fields is not None else {"database": "crm"}
            )
        }
        seen_fields: list[dict] = []

        def factory(credential_fields):
            seen_fields.append(credential_fields)
            return client

        context = make_node_context(NodeType.MONGODB_QUERY, node_id="m", credentials=credentials)
        result = await MongoQueryNode(client_factory=factory).run(
            {"credentialId": "cred-1", "collection": "people", **data}, context
        )
        return result, seen_fields

    @pytest.mark.asyncio
    async def test_find_with_options(self, client):
        result, seen_fields = await self._run(
            client,
            {
                "query": '{"role": "user"}',
                "options": '{"sort": {"age": -1}, "limit": 1, "projection": {"name": 1}}',
            },
        )

        assert result.success
        assert result.output == [
            {"_id": "65a0000000000000000000cc", "name": "Cy", "role": "user", "age": 25}
        ]
        assert client.collection.calls[0] == ("find", {"role": "user"}, {"name": 1})
        assert client.databases == ["crm"]
        assert seen_fields == [{"database": "crm"}]
        assert client.closed

    @pytest.mark.asyncio
    async def test_default_database(self, client):
        await self._run(client, {}, fields={"connectionString": "mongodb://db/app"})

        assert client.databases == ["<default>"]

    @pytest.mark.asyncio
    async def test_insert(self, client):
        one, _ = await self._run(client, {"operation": "insert", "query": '{"name": "Di"}'})
        many, _ = await self._run(client, {"operation": "insert", "query": [{"a": 1}, {"a": 2}]})

        assert one.output == {"insertedIds": ["65a000000000000000000001"]}
        assert many.output == {"insertedIds": ["1", "2"]}

    @pytest.mark.asyncio
    async def test_update_and_delete(self, client):
        updated, _ = await self._run(
            client,
            {"operation": "update", "query": {"role": "user"}, "options": {"$set": {"active": True}}},
        )
        deleted, _ = await self._run(client, {"operation": "delete"})

        assert updated.output == {"matchedCount": 2, "modifiedCount": 1}
        assert deleted.output == {"deletedCount": 3}
        assert client.collection.calls[-1] == ("delete_many", {})

    @pytest.mark.asyncio
    async def test_aggregate_filters_options(self, client):
        result, _ = await self._run(
            client,
            {
                "operation": "aggregate",
                "query": '[{"$group": {"_id": "$role", "count": {"$sum": 1}}}]',
                "options": '{"allowDiskUse": true, "limit": 5}',
            },
        )

        assert result.output == [{"_id": "user", "count": 2}]
        assert client.collection.calls[0][2] == {"allowDiskUse": True}

    @pytest.mark.asyncio
    async def test_aggregate_requires_pipeline(self, client):
        result, _ = await self._run(client, {"operation": "aggregate", "query": "{}"})

        assert not result.success
        assert "pipeline must be an array" in result.error
        assert client.closed

    @pytest.mark.parametrize(
        "data",
        [
            {"operation": "upsert", "collection": "c"},
            {"operation": "find"},
            {"operation": "insert", "collection": "c"},
            {"operation": "update", "collection": "c"},
        ],
    )
    def test_invalid_config(self, data):
        with pytest.raises(NodeValidationError):
            MongoQueryNode().validate_input(data)


def test_to_jsonable():
    assert to_jsonable({"d": date(2026, 1, 2), "n": Decimal("2"), "f": Decimal("1.5"), "b": b"hi"}) == {
        "d": "2026-01-02",
        "n": 2,
        "f": 1.5,
        "b": "aGk=",
    }
