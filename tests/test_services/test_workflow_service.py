"""Tests for workflow service."""

import pytest
from pydantic import ValidationError

from nodeflow.models.workflow import WorkflowCreate
from nodeflow.services.workflow_service import (
    WorkflowAccessDeniedError,
    WorkflowNotFoundError,
    WorkflowService,
    WorkflowValidationError,
    load_workflow,
)

from conftest import OTHER_USER_ID, TEST_USER_ID

NODES = [
    {"id": "t", "type": "MANUAL_TRIGGER", "position": {"x": 10, "y": 20}},
    {"id": "h", "type": "HTTP_REQUEST", "data": {"endpoint": "https://x/y"}},
    {"id": "s", "type": "SET_VARIABLE"},
]
CONNECTIONS = [
    {"source": "t", "target": "h"},
    {"source": "h", "target": "s", "sourceHandle": None},
]


def payload(**overrides) -> WorkflowCreate:
    data = {"name": "Test Workflow", "nodes": NODES, "connections": CONNECTIONS}
    data.update(overrides)
    return WorkflowCreate(**data)


class TestWorkflowCreate:
    """Tests for the WorkflowCreate schema."""

    def test_duplicate_node_ids_rejected(self):
        with pytest.raises(ValidationError, match="unique"):
            payload(nodes=[{"id": "a", "type": "DELAY"}, {"id": "a", "type": "DELAY"}], connections=[])

    def test_unknown_endpoint_rejected(self):
        with pytest.raises(ValidationError, match="unknown node"):
            payload(connections=[{"source": "t", "target": "ghost"}])

    def test_null_handle_means_main(self):
        assert payload().connections[1].sourceHandle == "main"


class TestWorkflowService:
    """Tests for WorkflowService."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, db_session):
        service = WorkflowService(db_session)

        created = await service.create(TEST_USER_ID, payload(description="desc"))
        fetched = await service.get(created.id, TEST_USER_ID)

        assert fetched.name == "Test Workflow"
        assert fetched.description == "desc"
        assert [n.id for n in fetched.nodes] == ["t", "h", "s"]
        assert fetched.nodes[0].position == {"x": 10.0, "y": 20.0}
        assert fetched.nodes[1].data == {"endpoint": "https://x/y"}
        assert [(c.source, c.target) for c in fetched.connections] == [("t", "h"), ("h", "s")]

    @pytest.mark.asyncio
    async def test_load_preserves_insertion_order(self, db_session):
        nodes = [{"id": f"n{i}", "type": "DELAY"} for i in (3, 1, 2)]
        created = await WorkflowService(db_session).create(
            TEST_USER_ID, payload(nodes=nodes, connections=[])
        )

        loaded = await load_workflow(db_session, created.id)

        assert [n.id for n in loaded.nodes] == ["n3", "n1", "n2"]

    @pytest.mark.asyncio
    async def test_unknown_node_type_rejected(self, db_session):
        with pytest.raises(WorkflowValidationError) as exc_info:
            await WorkflowService(db_session).create(
                TEST_USER_ID, payload(nodes=[{"id": "x", "type": "TELEPORT"}], connections=[])
            )

        assert exc_info.value.errors == ["Unknown node type: TELEPORT"]

    @pytest.mark.asyncio
    async def test_self_loop_rejected(self, db_session):
        with pytest.raises(WorkflowValidationError) as exc_info:
            await WorkflowService(db_session).create(
                TEST_USER_ID, payload(connections=[{"source": "h", "target": "h"}])
            )

        assert exc_info.value.errors == ["Self-loop detected on node: h"]

    @pytest.mark.asyncio
    async def test_cycles_allowed_at_save_time(self, db_session):
        created = await WorkflowService(db_session).create(
            TEST_USER_ID,
            payload(connections=[{"source": "h", "target": "s"}, {"source": "s", "target": "h"}]),
        )

        assert len(created.connections) == 2

    @pytest.mark.asyncio
    async def test_get_not_found(self, db_session):
        with pytest.raises(WorkflowNotFoundError):
            await WorkflowService(db_session).get("missing", TEST_USER_ID)

    @pytest.mark.asyncio
    async def test_get_other_users_workflow(self, db_session):
        service = WorkflowService(db_session)
        created = await service.create(TEST_USER_ID, payload())

        with pytest.raises(WorkflowAccessDeniedError):
            await service.get(created.id, OTHER_USER_ID)

    @pytest.mark.asyncio
    async def test_list_is_user_scoped(self, db_session):
        service = WorkflowService(db_session)
        await service.create(TEST_USER_ID, payload(name="mine"))
        await service.create(OTHER_USER_ID, payload(name="theirs"))

        mine = await service.list_all(TEST_USER_ID)

        assert [w.name for w in mine] == ["mine"]

    @pytest.mark.asyncio
    async def test_update_replaces_graph(self, db_session):
        service = WorkflowService(db_session)
        created = await service.create(TEST_USER_ID, payload())

        updated = await service.update(
            created.id,
            TEST_USER_ID,
            payload(
                name="Renamed",
                nodes=[{"id": "t", "type": "MANUAL_TRIGGER"}, {"id": "d", "type": "DELAY"}],
                connections=[{"source": "t", "target": "d"}],
            ),
        )

        assert updated.name == "Renamed"
        assert [n.id for n in updated.nodes] == ["t", "d"]
        assert [(c.source, c.target) for c in updated.connections] == [("t", "d")]

    @pytest.mark.asyncio
    async def test_update_other_users_workflow(self, db_session):
        service = WorkflowService(db_session)
        created = await service.create(TEST_USER_ID, payload())

        with pytest.raises(WorkflowAccessDeniedError):
            await service.update(created.id, OTHER_USER_ID, payload(name="hijack"))

    @pytest.mark.asyncio
    async def test_delete(self, db_session):
        service = WorkflowService(db_session)
        created = await service.create(TEST_USER_ID, payload())

        await service.delete(created.id, TEST_USER_ID)

        with pytest.raises(WorkflowNotFoundError):
            await service.get(created.id, TEST_USER_ID)
