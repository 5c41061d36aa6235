"""Agreement tools: read, annotate, draft and version contracts.

Agreements are stored one row per version under a shared ``root_id``;
the highest ``version_number`` is the current text.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any

from dealdesk.agent.providers.base import ToolSpec
from dealdesk.agent.tool_registry import ToolDef
from dealdesk.context import ToolContext
from dealdesk.tools.project_tools import PERSONNEL_RATES, estimate_tasks, total_hours_and_cost

logger = logging.getLogger(__name__)

CONTRACT_TYPES = ("MSA", "SOW", "NDA")

CONTRACT_TITLES = {
    "MSA": "Master Services Agreement",
    "SOW": "Statement of Work",
    "NDA": "Non-Disclosure Agreement",
}

ROOT_ID_SCHEMA = {"type": "string", "description": "The agreement root ID. Omit to use the active agreement."}


def make_short_id() -> str:
    return uuid.uuid4().hex[:10]


def resolve_root_id(tool_input: dict[str, Any], context: ToolContext) -> str | None:
    root_id = str(tool_input.get("root_id") or "").strip()
    return root_id or context.active_agreement_root_id


def _not_found(root_id: str) -> dict[str, str]:
    return {"error": f"Contract with root_id {root_id} not found."}


def apply_edits(text: str, edits: list[dict[str, Any]]) -> str:
    """Apply each edit in order to the first occurrence of its ``old`` text.

    Raises ValueError naming the first edit whose text is missing, so no
    partial version is ever written.
    """
    for position, edit in enumerate(edits, start=1):
        old = edit["old"]
        if old not in text:
            raise ValueError(f"Edit {position}: text not found in the latest version: {old!r}")
        text = text.replace(old, edit["new"], 1)
    return text


def draft_agreement_text(
    contract_type: str,
    project: dict[str, Any],
    counterparty: str,
    rules: list[dict[str, Any]],
) -> str:
    title = CONTRACT_TITLES[contract_type]
    lines = [
        f"{title.upper()}",
        "",
        f"This {title} (the \"Agreement\") is entered into as of [DATE] by and between "
        f"[PARTY A NAME] (\"Provider\") and {counterparty} (\"Client\").",
        "",
        f"Project: {project['project_name']}",
        "",
    ]
    section = 1
    if contract_type == "SOW":
        tasks = estimate_tasks(project)
        lines.append(f"{section}. Scope of Work")
        if tasks:
            for task in tasks:
                lines.append(f"   - {task['role']}: {task['description']} ({task['hours']} hours)")
        else:
            lines.append("   - To be defined by the parties.")
        lines.append("")
        section += 1
        hours, cost = total_hours_and_cost(tasks)
        lines.append(f"{section}. Fees")
        lines.append(
            f"   Estimated effort of {hours:g} hours for a total fee of ${cost:,.2f}, "
            "billed at the following hourly rates:"
        )
        for role in sorted({t["role"] for t in tasks}):
            lines.append(f"   - {role}: ${PERSONNEL_RATES.get(role, 0)}/hour")
        lines.append("")
        section += 1
    for rule in rules:
        lines.append(f"{section}. {rule['title']}")
        lines.append(f"   {rule['content']}")
        lines.append("")
        section += 1
    lines.append(f"{section}. Term and Termination")
    lines.append("   This Agreement remains in effect until terminated by either party on thirty (30) days written notice.")
    lines.append("")
    lines.append("IN WITNESS WHEREOF, the parties have executed this Agreement as of the date above.")
    lines.append("")
    lines.append("[PARTY A NAME]                      " + counterparty)
    lines.append("By: ____________________            By: ____________________")
    return "\n".join(lines)


def build_agreement_tools(repo) -> list[ToolDef]:
    async def get_contract_details(tool_input: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        root_id = resolve_root_id(tool_input, context)
        if root_id is None:
            return {"error": "No root_id given and no active agreement selected."}
        agreement = await repo.get_latest_agreement(root_id)
        if agreement is None:
            return _not_found(root_id)
        return agreement

    async def get_contract_edits_summary(tool_input: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        root_id = resolve_root_id(tool_input, context)
        if root_id is None:
            return {"error": "No root_id given and no active agreement selected."}
        versions = await repo.get_agreements_by_root_id(root_id)
        if not versions:
            return _not_found(root_id)
        history = [
            {
                "version_number": v["version_number"],
                "created_at": v["created_at"],
                "created_by": v["created_by"],
                "edits": v["edits"],
                "notes": v["notes"],
            }
            for v in reversed(versions)
        ]
        return {
            "root_id": root_id,
            "agreement_name": versions[0]["agreement_name"],
            "total_versions": len(versions),
            "edits_history": history,
        }

    async def add_note_to_contract(tool_input: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        root_id = resolve_root_id(tool_input, context)
        if root_id is None:
            return {"error": "No root_id given and no active agreement selected."}
        latest = await repo.get_latest_agreement(root_id)
        if latest is None:
            return _not_found(root_id)
        note = tool_input["note"]
        agreement = await repo.update_agreement_notes(latest["id"], [*latest["notes"], note])
        if agreement is None:
            return _not_found(root_id)
        return {"success": True, "added_note": note, "agreement": agreement}

    async def create_new_contract(tool_input: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        raw_project_id = tool_input.get("project_id")
        project_id = int(raw_project_id) if raw_project_id not in (None, "") else context.active_project_id
        if project_id is None:
            return {"error": "No project_id given and no active project selected."}
        project = await repo.get_project(project_id)
        if project is None:
            return {"error": f"Project with ID {project_id} not found."}

        contract_type = tool_input["contract_type"]
        counterparty = str(tool_input.get("counterparty") or "").strip() or "[PARTY B NAME]"
        rules = await repo.list_policies(policy_type="rule", agreement_type=contract_type)
        agreement = await repo.create_agreement({
            "root_id": make_short_id(),
            "version_number": 1,
            "origin": "internal",
            "notes": [],
            "edits": [],
            "agreement_name": f"{contract_type} - {project['project_name']}",
            "agreement_type": contract_type,
            "created_by": context.user_id,
            "text_content": draft_agreement_text(contract_type, project, counterparty, rules),
            "counterparty": counterparty,
            "project_id": project_id,
        })
        logger.info("drafted %s %s from project %s", contract_type, agreement["root_id"], project_id)
        return {
            "success": True,
            "message": f"Created new {contract_type} contract from project {project_id}",
            "agreement_id": agreement["id"],
            "root_id": agreement["root_id"],
            "agreement": agreement,
        }

    async def create_new_contract_version(tool_input: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        root_id = resolve_root_id(tool_input, context)
        if root_id is None:
            return {"error": "No root_id given and no active agreement selected."}
        latest = await repo.get_latest_agreement(root_id)
        if latest is None:
            return _not_found(root_id)

        edits = [
            {"old": e["old"], "new": e["new"], "note": e.get("note") or ""}
            for e in tool_input["edits"]
        ]
        try:
            text = apply_edits(latest["text_content"], edits)
        except ValueError as exc:
            return {"error": str(exc)}

        agreement = await repo.create_agreement({
            "root_id": root_id,
            "version_number": latest["version_number"] + 1,
            "origin": latest["origin"],
            "notes": [],
            "edits": edits,
            "agreement_name": latest["agreement_name"],
            "agreement_type": latest["agreement_type"],
            "created_by": context.user_id,
            "text_content": text,
            "counterparty": latest["counterparty"],
            "project_id": latest["project_id"],
        })
        return {
            "success": True,
            "message": f"Created version {agreement['version_number']} of contract {root_id}",
            "root_id": root_id,
            "new_version_number": agreement["version_number"],
            "agreement": agreement,
        }

    return [
        ToolDef(
            spec=ToolSpec(
                name="get_contract_details",
                description="Get the latest version of an agreement: text, type, counterparty, notes and edits.",
                input_schema={"type": "object", "properties": {"root_id": ROOT_ID_SCHEMA}},
            ),
            executor=get_contract_details,
        ),
        ToolDef(
            spec=ToolSpec(
                name="get_contract_edits_summary",
                description="Get the version history of an agreement with the edits recorded for each version.",
                input_schema={"type": "object", "properties": {"root_id": ROOT_ID_SCHEMA}},
            ),
            executor=get_contract_edits_summary,
        ),
        ToolDef(
            spec=ToolSpec(
                name="add_note_to_contract",
                description="Add a note to the latest version of an agreement.",
                input_schema={
                    "type": "object",
                    "properties": {
                        "root_id": ROOT_ID_SCHEMA,
                        "note": {"type": "string", "minLength": 1, "description": "The note text."},
                    },
                    "required": ["note"],
                },
            ),
            executor=add_note_to_contract,
            mutates=True,
        ),
        ToolDef(
            spec=ToolSpec(
                name="create_new_contract",
                description=(
                    "Draft a new agreement (version 1) for a project from the company policy rules "
                    "and, for an SOW, the project's effort estimate."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "project_id": {"type": "integer", "description": "Omit to use the active project."},
                        "contract_type": {"type": "string", "enum": list(CONTRACT_TYPES)},
                        "counterparty": {"type": "string", "description": "The client party name."},
                    },
                    "required": ["contract_type"],
                },
            ),
            executor=create_new_contract,
            mutates=True,
        ),
        ToolDef(
            spec=ToolSpec(
                name="create_new_contract_version",
                description=(
                    "Create the next version of an agreement by replacing exact passages of the latest text. "
                    "Every 'old' passage must appear verbatim; otherwise nothing is written."
                ),
                input_schema={
                    "type": "object",
                    "properties": {
                        "root_id": ROOT_ID_SCHEMA,
                        "edits": {
                            "type": "array",
                            "minItems": 1,
                            "items": {
                                "type": "object",
                                "properties": {
                                    "old": {"type": "string", "minLength": 1},
                                    "new": {"type": "string"},
                                    "note": {"type": "string"},
                                },
                                "required": ["old", "new"],
                            },
                        },
                    },
                    "required": ["edits"],
                },
            ),
            executor=create_new_contract_version,
            mutates=True,
        ),
    ]
