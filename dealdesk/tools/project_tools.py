"""Project estimate tools: read a project, replace its estimate tasks."""
from __future__ import annotations

import csv
import io
import logging
from datetime import datetime, timezone
from typing import Any

from dealdesk.agent.providers.base import ToolSpec
from dealdesk.agent.tool_registry import ToolDef
from dealdesk.context import ToolContext

logger = logging.getLogger(__name__)

PERSONNEL_RATES: dict[str, int] = {
    "Backend Dev": 150,
    "Frontend Dev": 120,
    "SW Engineer": 180,
    "SW Architect": 220,
    "QA Engineer": 100,
    "DevOps Engineer": 180,
    "Project Manager": 180,
    "Business Analyst": 85,
}

QUOTE_HEADER = ["Task", "Role", "Hours", "Rate/Hour", "Total Cost"]

TASK_SCHEMA = {
    "type": "object",
    "properties": {
        "role": {"type": "string", "description": f"One of: {', '.join(PERSONNEL_RATES)}"},
        "description": {"type": "string"},
        "hours": {"type": "number", "minimum": 0},
    },
    "required": ["role", "description", "hours"],
}


def resolve_project_id(tool_input: dict[str, Any], context: ToolContext) -> int | None:
    raw = tool_input.get("id", tool_input.get("project_id"))
    if raw in (None, ""):
        return context.active_project_id
    return int(raw)


def _format_hours(hours: float) -> str:
    return str(int(hours)) if float(hours).is_integer() else f"{hours:g}"


def build_quote_csv(tasks: list[dict[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(QUOTE_HEADER)
    for task in tasks:
        rate = PERSONNEL_RATES.get(task["role"], 0)
        writer.writerow([
            task["description"],
            task["role"],
            _format_hours(task["hours"]),
            rate,
            f"{task['hours'] * rate:.2f}",
        ])
    return buffer.getvalue().rstrip("\n")


def summarize_changes(old_tasks: list[dict[str, Any]], new_tasks: list[dict[str, Any]]) -> list[str]:
    """Human-readable diff keyed by (role, description)."""
    old = {(t["role"], t["description"]): t["hours"] for t in old_tasks}
    new = {(t["role"], t["description"]): t["hours"] for t in new_tasks}
    changes: list[str] = []
    for key, hours in new.items():
        role, description = key
        if key not in old:
            changes.append(f"Added {role} - {description}: {_format_hours(hours)}h")
        elif old[key] != hours:
            changes.append(
                f"Changed {role} - {description}: {_format_hours(old[key])}h -> {_format_hours(hours)}h"
            )
    for key, hours in old.items():
        if key not in new:
            role, description = key
            changes.append(f"Removed {role} - {description}: {_format_hours(hours)}h")
    return changes


def estimate_tasks(project: dict[str, Any]) -> list[dict[str, Any]]:
    for stage in project.get("sdata") or []:
        if stage.get("name") == "estimate":
            return list(stage.get("tasks") or [])
    return []


def total_hours_and_cost(tasks: list[dict[str, Any]]) -> tuple[float, float]:
    hours = sum(float(t["hours"]) for t in tasks)
    cost = sum(float(t["hours"]) * PERSONNEL_RATES.get(t["role"], 0) for t in tasks)
    return hours, round(cost, 2)


def build_project_tools(repo) -> list[ToolDef]:
    async def get_project_details(tool_input: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        project_id = resolve_project_id(tool_input, context)
        if project_id is None:
            return {"error": "No project id given and no active project selected."}
        project = await repo.get_project(project_id)
        if project is None:
            return {"error": f"Project with ID {project_id} not found."}
        return project

    async def update_project_tasks(tool_input: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        project_id = resolve_project_id(tool_input, context)
        if project_id is None:
            return {"error": "No project id given and no active project selected."}
        project = await repo.get_project(project_id)
        if project is None:
            return {"error": f"Project with ID {project_id} not found."}

        new_tasks = [
            {"role": t["role"], "description": t["description"], "hours": t["hours"]}
            for t in tool_input["tasks"]
        ]
        unknown_roles = sorted({t["role"] for t in new_tasks if t["role"] not in PERSONNEL_RATES})
        if unknown_roles:
            return {
                "error": f"Unknown roles: {', '.join(unknown_roles)}. "
                f"Valid roles are: {', '.join(PERSONNEL_RATES)}."
            }

        old_tasks = estimate_tasks(project)
        now = datetime.now(tz=timezone.utc).isoformat()
        sdata = [dict(stage) for stage in project.get("sdata") or []]
        names = {stage.get("name") for stage in sdata}
        for name in ("estimate", "quote"):
            if name not in names:
                sdata.append({"name": name, "content": None, "approved": None, "approved_by": None, "updated_at": None})
        for stage in sdata:
            if stage.get("name") == "estimate":
                stage["tasks"] = new_tasks
                stage["updated_at"] = now
            elif stage.get("name") == "quote":
                stage["content"] = build_quote_csv(new_tasks)
                stage["updated_at"] = now

        updated = await repo.update_project_sdata(project_id, sdata)
        if updated is None:
            return {"error": f"Project with ID {project_id} not found."}

        total_hours, total_cost = total_hours_and_cost(new_tasks)
        changes = summarize_changes(old_tasks, new_tasks)
        logger.info("estimate tasks replaced for project %s (%d changes)", project_id, len(changes))
        return {
            "success": True,
            "project_id": project_id,
            "newTasks": new_tasks,
            "changes": changes,
            "total_hours": total_hours,
            "total_cost": total_cost,
        }

    return [
        ToolDef(
            spec=ToolSpec(
                name="get_project_details",
                description=(
                    "Get the details of a project: name, creator, and each stage (business case, "
                    "requirements, architecture, estimate tasks, quote). Defaults to the active project."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "id": {"type": "integer", "description": "The project ID. Omit to use the active project."},
                    },
                },
            ),
            executor=get_project_details,
        ),
        ToolDef(
            spec=ToolSpec(
                name="update_project_tasks",
                description=(
                    "Replace the effort estimate tasks of a project. Send the COMPLETE new task list; "
                    "the quote is recalculated from the personnel rates."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "id": {"type": "integer", "description": "The project ID. Omit to use the active project."},
                        "tasks": {"type": "array", "items": TASK_SCHEMA},
                    },
                    "required": ["tasks"],
                },
            ),
            executor=update_project_tasks,
            mutates=True,
        ),
    ]
