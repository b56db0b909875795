"""Tests for data nodes: set variable, JSON, filter and code execute."""

import os
import threading

import pytest

from nodeflow.core.context import ExecutionContext
from nodeflow.core.sandbox import run_restricted
from nodeflow.models.execution import LogLevel
from nodeflow.models.node import NodeType
from nodeflow.nodes.base import NodeValidationError
from nodeflow.nodes.data import CodeExecuteNode, FilterNode, JsonNode, SetVariableNode
from nodeflow.nodes.data.json_parse import apply_rules, extract_path
from nodeflow.nodes.data.set_variable import coerce_variable

from conftest import make_node_context

USERS = [
    {"name": "Ada", "age": 36, "role": "admin"},
    {"name": "Bob", "age": 17, "role": "user"},
    {"name": "Cy", "age": 25, "role": "user"},
]


class TestSetVariableNode:
    """Tests for SetVariableNode."""

    @pytest.mark.asyncio
    async def test_assigns_and_returns_values(self):
        state = ExecutionContext()
        state.set_variable("r", {"data": {"count": "7"}})
        context = make_node_context(NodeType.SET_VARIABLE, state=state)

        result = await SetVariableNode().run(
            {
                "variables": [
                    {"name": "status", "value": "active"},
                    {"name": "count", "value": "{{r.data.count}}", "type": "number"},
                    {"name": "raw", "value": "{{r.data}}"},
                    {"name": "greeting", "value": "hi {{r.data.count}}"},
                ]
            },
            context,
        )

        assert result.success
        assert result.output == {
            "status": "active",
            "count": 7,
            "raw": {"count": "7"},
            "greeting": "hi 7",
        }
        assert state.get_variable("count") == 7
        assert state.get_variable_type("count") == "number"
        assert state.get_variable_type("raw") == "object"

    @pytest.mark.parametrize(
        "value,type_,expected",
        [
            ("3.5", "number", 3.5),
            ("yes", "boolean", True),
            ("0", "boolean", False),
            ('{"a": 1}', "json", {"a": 1}),
            (12, "string", "12"),
        ],
    )
    def test_coerce_variable(self, value, type_, expected):
        assert coerce_variable("v", value, type_) == expected

    @pytest.mark.parametrize("value,type_", [("abc", "number"), ("maybe", "boolean"), ("{", "json")])
    def test_coerce_variable_errors(self, value, type_):
        with pytest.raises(NodeValidationError):
            coerce_variable("v", value, type_)

    def test_unknown_type_rejected(self):
        with pytest.raises(NodeValidationError):
            SetVariableNode().validate_input({"variables": [{"name": "a", "value": 1, "type": "date"}]})


class TestJsonNode:
    """Tests for JsonNode."""

    @pytest.mark.asyncio
    async def test_parse_input(self):
        context = make_node_context(NodeType.JSON_PARSE, input='{"a": [1, 2]}')

        result = await JsonNode().run({"operation": "parse"}, context)

        assert result.output == {"a": [1, 2]}

    @pytest.mark.asyncio
    async def test_stringify_variable(self):
        state = ExecutionContext()
        state.set_variable("obj", {"a": 1})
        context = make_node_context(NodeType.JSON_PARSE, state=state)

        result = await JsonNode().run({"operation": "stringify", "source": "obj"}, context)

        assert result.output == '{"a": 1}'

    @pytest.mark.asyncio
    async def test_extract(self):
        context = make_node_context(NodeType.JSON_PARSE, input={"data": {"users": USERS}})

        result = await JsonNode().run(
            {"operation": "extract", "jsonPath": "$.data.users[*].name"}, context
        )

        assert result.output == ["Ada", "Bob", "Cy"]

    @pytest.mark.asyncio
    async def test_transform(self):
        context = make_node_context(NodeType.JSON_PARSE, input={"user": USERS[0]})

        result = await JsonNode().run(
            {
                "operation": "transform",
                "transformationRules": '{"who": "$.user.name", "fixed": 1}',
            },
            context,
        )

        assert result.output == {"who": "Ada", "fixed": 1}

    @pytest.mark.asyncio
    async def test_parse_failure_fails_by_default(self):
        context = make_node_context(NodeType.JSON_PARSE, node_id="j", input="{bad")

        result = await JsonNode().run({"operation": "parse"}, context)

        assert not result.success
        assert result.error.startswith("JSON node (j):")

    @pytest.mark.asyncio
    async def test_parse_failure_skip(self):
        context = make_node_context(NodeType.JSON_PARSE, input="{bad")

        result = await JsonNode().run({"operation": "parse", "errorHandling": "skip"}, context)

        assert result.success
        assert result.output is None
        assert result.logs[0].level == LogLevel.WARN

    @pytest.mark.asyncio
    async def test_parse_failure_default_value(self):
        context = make_node_context(NodeType.JSON_PARSE, input="{bad")

        result = await JsonNode().run(
            {"operation": "parse", "errorHandling": "default_value", "defaultValue": "fallback"},
            context,
        )

        assert result.output == "fallback"

    def test_extract_requires_path(self):
        with pytest.raises(NodeValidationError):
            JsonNode().validate_input({"operation": "extract"})

    def test_rule_helpers(self):
        assert extract_path({"items": [{"a": 1}, {"a": 2}]}, "$.items[*].a") == [1, 2]
        assert extract_path({"items": 3}, "$.items[*]") is None
        assert apply_rules({"x": 1}, ["$.x", "lit"]) == [1, "lit"]


class TestFilterNode:
    """Tests for FilterNode."""

    @pytest.mark.asyncio
    async def test_keep(self):
        context = make_node_context(NodeType.FILTER, input={"data": {"users": USERS}})

        result = await FilterNode().run(
            {
                "itemsPath": "data.users",
                "conditions": [{"fieldPath": "age", "operator": "greater_than", "value": "18"}],
            },
            context,
        )

        assert [u["name"] for u in result.output] == ["Ada", "Cy"]

    @pytest.mark.asyncio
    async def test_remove_with_or(self):
        context = make_node_context(NodeType.FILTER, input=USERS)

        result = await FilterNode().run(
            {
                "filterMode": "remove",
                "combineConditions": "OR",
                "conditions": [
                    {"fieldPath": "role", "operator": "equals", "value": "admin"},
                    {"fieldPath": "age", "operator": "less_than", "value": "18"},
                ],
            },
            context,
        )

        assert [u["name"] for u in result.output] == ["Cy"]

    @pytest.mark.asyncio
    async def test_condition_values_are_templated(self):
        state = ExecutionContext()
        state.set_variable("minAge", 30)
        state.set_variable("users", USERS)
        context = make_node_context(NodeType.FILTER, state=state)

        result = await FilterNode().run(
            {
                "source": "users",
                "conditions": [{"fieldPath": "age", "operator": "greater_than", "value": "{{minAge}}"}],
            },
            context,
        )

        assert [u["name"] for u in result.output] == ["Ada"]

    @pytest.mark.asyncio
    async def test_non_array_input_fails(self):
        context = make_node_context(NodeType.FILTER, input={"not": "a list"})

        result = await FilterNode().run({"conditions": []}, context)

        assert not result.success
        assert "must be an array" in result.error

    def test_unknown_operator_rejected(self):
        with pytest.raises(NodeValidationError):
            FilterNode().validate_input(
                {"conditions": [{"fieldPath": "a", "operator": "like", "value": "x"}]}
            )


class TestCodeExecuteNode:
    """Tests for CodeExecuteNode."""

    @pytest.mark.asyncio
    async def test_transforms_input(self):
        state = ExecutionContext()
        state.set_variable("factor", 3)
        context = make_node_context(NodeType.CODE_EXECUTE, state=state, input=[1, 2, 3])

        result = await CodeExecuteNode().run(
            {
                "code": "result = [i * variables['factor'] for i in items]",
                "inputVar": "items",
                "outputVar": "result",
            },
            context,
        )

        assert result.success
        assert result.output == [3, 6, 9]
        assert state.get_variable("result") == [3, 6, 9]

    @pytest.mark.asyncio
    async def test_input_is_not_mutated(self):
        original = {"items": [1]}
        context = make_node_context(NodeType.CODE_EXECUTE, input=original)

        await CodeExecuteNode().run(
            {"code": "input['items'].append(2)\noutput = input"}, context
        )

        assert original == {"items": [1]}

    @pytest.mark.asyncio
    async def test_json_helper_available(self):
        context = make_node_context(NodeType.CODE_EXECUTE, input='{"n": 2}')

        result = await CodeExecuteNode().run(
            {"code": "data = json.loads(input)\noutput = {'double': data['n'] * 2}"}, context
        )

        assert result.output == {"double": 4}

    @pytest.mark.asyncio
    async def test_dunder_access_rejected(self):
        context = make_node_context(NodeType.CODE_EXECUTE, node_id="c", input=1)

        result = await CodeExecuteNode().run({"code": "output = input.__class__"}, context)

        assert not result.success
        assert result.error.startswith("Code Execute node (c): Code compilation failed")

    @pytest.mark.asyncio
    async def test_imports_rejected(self):
        context = make_node_context(NodeType.CODE_EXECUTE)

        result = await CodeExecuteNode().run({"code": "import os\noutput = os.getcwd()"}, context)

        assert not result.success

    @pytest.mark.asyncio
    async def test_runtime_error_fails_node(self):
        context = make_node_context(NodeType.CODE_EXECUTE, input=0)

        result = await CodeExecuteNode().run({"code": "output = 1 / input"}, context)

        assert not result.success
        assert "division by zero" in result.error

    @pytest.mark.asyncio
    async def test_printed_output_is_logged(self):
        context = make_node_context(NodeType.CODE_EXECUTE, input=2)

        result = await CodeExecuteNode().run(
            {"code": "print('got', input)\noutput = input + 1"}, context
        )

        assert result.success
        assert result.output == 3
        printed = [log.data for log in result.logs if log.message == "Code printed output"]
        assert printed == [{"stdout": "got 2\n"}]

    @pytest.mark.asyncio
    async def test_runaway_code_is_killed(self, test_settings):
        settings = test_settings.model_copy(update={"code_execution_timeout": 0.5})
        context = make_node_context(NodeType.CODE_EXECUTE, node_id="n", settings=settings)
        threads_before = set(threading.enumerate())

        result = await CodeExecuteNode().run(
            {"code": "x = 0\nwhile True:\n    x = x + 1\n"}, context
        )

        assert not result.success
        assert result.error == "Code Execute node (n): Code execution timed out after 0.5s"
        pid = next(log.data["pid"] for log in result.logs if log.message == "Code execution killed")
        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)
        for thread in set(threading.enumerate()) - threads_before:
            thread.join(timeout=2)
            assert not thread.is_alive()

    @pytest.mark.asyncio
    async def test_set_output_comes_back_as_list(self):
        context = make_node_context(NodeType.CODE_EXECUTE, input=[3, 3, 1])

        result = await CodeExecuteNode().run({"code": "output = set(input)"}, context)

        assert sorted(result.output) == [1, 3]

    @pytest.mark.parametrize(
        "data",
        [
            {"code": ""},
            {"code": "output = 1", "language": "javascript"},
            {"code": "output = 1", "outputVar": "not valid"},
            {"code": "output = 1", "inputVar": "_private"},
        ],
    )
    def test_invalid_config(self, data):
        with pytest.raises(NodeValidationError):
            CodeExecuteNode().validate_input(data)

    def test_run_restricted_directly(self):
        output, _ = run_restricted("total = sum(values)", "values", [1, 2, 3], "total", {})

        assert output == 6
