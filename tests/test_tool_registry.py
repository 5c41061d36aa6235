from __future__ import annotations

import pytest

from dealdesk.agent.providers.base import ToolSpec
from dealdesk.agent.tool_registry import ToolDef, ToolRegistry, build_copilot_registry


async def _noop(tool_input, context):
    return {}


def _tool(name: str) -> ToolDef:
    return ToolDef(spec=ToolSpec(name, f"{name} tool", {"type": "object"}), executor=_noop)


def test_lookup_and_specs_keep_declaration_order():
    registry = ToolRegistry([_tool("b"), _tool("a")])

    assert registry.names() == ["b", "a"]
    assert [spec.name for spec in registry.specs()] == ["b", "a"]
    assert registry.lookup("a").spec.description == "a tool"
    assert registry.lookup("missing") is None
    assert len(registry) == 2


def test_duplicate_names_are_rejected():
    with pytest.raises(ValueError, match="duplicate"):
        ToolRegistry([_tool("a"), _tool("a")])


def test_copilot_registry_declares_every_tool_with_object_schema():
    registry = build_copilot_registry(repo=None)

    assert set(registry.names()) == {
        "check_the_weather",
        "get_project_details",
        "update_project_tasks",
        "get_contract_details",
        "get_contract_edits_summary",
        "add_note_to_contract",
        "create_new_contract",
        "create_new_contract_version",
    }
    for spec in registry.specs():
        assert spec.description
        assert spec.input_schema["type"] == "object"


def test_only_writing_tools_are_marked_mutating():
    registry = build_copilot_registry(repo=None)
    mutating = {tool.name for tool in registry if tool.mutates}

    assert mutating == {
        "update_project_tasks",
        "add_note_to_contract",
        "create_new_contract",
        "create_new_contract_version",
    }
