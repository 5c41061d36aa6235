from __future__ import annotations

import pytest

from dealdesk.context import ToolContext
from dealdesk.tools.project_tools import build_project_tools, build_quote_csv, summarize_changes


def _tools(repo) -> dict:
    return {tool.name: tool.executor for tool in build_project_tools(repo)}


@pytest.mark.asyncio
async def test_get_project_details_by_id_and_active_selection(repo, make_sdata):
    project = await repo.create_project("Portal", sdata=make_sdata())
    tools = _tools(repo)

    by_id = await tools["get_project_details"]({"id": project["id"]}, ToolContext())
    active = await tools["get_project_details"]({}, ToolContext(active_project_id=project["id"]))

    assert by_id["project_name"] == "Portal"
    assert active["id"] == project["id"]


@pytest.mark.asyncio
async def test_get_project_details_reports_missing_project(repo):
    tools = _tools(repo)

    assert await tools["get_project_details"]({"id": 999}, ToolContext()) == {
        "error": "Project with ID 999 not found."
    }
    assert "error" in await tools["get_project_details"]({}, ToolContext())


@pytest.mark.asyncio
async def test_update_project_tasks_replaces_estimate_and_quote(repo, make_sdata):
    project = await repo.create_project("Portal", sdata=make_sdata())
    new_tasks = [
        {"role": "Backend Dev", "description": "API Development", "hours": 120},
        {"role": "QA Engineer", "description": "Testing", "hours": 40},
    ]

    result = await _tools(repo)["update_project_tasks"]({"id": project["id"], "tasks": new_tasks}, ToolContext())

    assert result["success"] is True
    assert result["newTasks"] == new_tasks
    assert result["total_hours"] == 160
    assert result["total_cost"] == 22000.0
    assert result["changes"] == [
        "Changed Backend Dev - API Development: 100h -> 120h",
        "Added QA Engineer - Testing: 40h",
        "Removed Frontend Dev - UI Implementation: 80h",
    ]

    stored = {stage["name"]: stage for stage in (await repo.get_project(project["id"]))["sdata"]}
    assert stored["estimate"]["tasks"] == new_tasks
    assert stored["quote"]["content"].splitlines()[1] == "API Development,Backend Dev,120,150,18000.00"


@pytest.mark.asyncio
async def test_update_project_tasks_rejects_unknown_roles_without_writing(repo, make_sdata):
    project = await repo.create_project("Portal", sdata=make_sdata())

    result = await _tools(repo)["update_project_tasks"](
        {"id": project["id"], "tasks": [{"role": "Wizard", "description": "Magic", "hours": 1}]},
        ToolContext(),
    )

    assert "Wizard" in result["error"]
    assert (await repo.get_project(project["id"]))["sdata"] == make_sdata()


def test_quote_csv_has_header_and_costed_rows():
    csv_text = build_quote_csv([{"role": "Frontend Dev", "description": "Forms, tables", "hours": 2.5}])

    assert csv_text.splitlines() == [
        "Task,Role,Hours,Rate/Hour,Total Cost",
        '"Forms, tables",Frontend Dev,2.5,120,300.00',
    ]


def test_summarize_changes_reports_nothing_for_identical_lists():
    tasks = [{"role": "Backend Dev", "description": "API", "hours": 10}]
    assert summarize_changes(tasks, list(tasks)) == []
