"""System prompts: the copilot preamble and the entity grounding text."""
from __future__ import annotations

from typing import Any, Iterable

COPILOT_SYSTEM_PROMPT = """\
You are a project estimation and contract copilot assistant. You help users manage \
project estimates and draft, review, and version business agreements (MSA, SOW, NDA).

You have access to tools that allow you to:
- View a project with its stages and effort estimate
- Replace a project's estimate tasks (roles, descriptions, hours)
- View an agreement, its version history, and its notes
- Add notes to an agreement
- Draft a new agreement from a project, or create a new version by applying edits

Be conversational and helpful. When making changes, confirm what was done and show \
the updated totals.
"""

INSTRUCTIONS = """\
## Instructions

- The user might ask about the currently selected project or agreement, or about other existing ones.
- If they ask about a project or agreement without saying which one, assume the current active one.
- If they name a specific project or agreement, use its ID from the lists above.
- Before changing an estimate or an agreement, fetch its current details.
"""


def _format_projects(projects: Iterable[dict[str, Any]]) -> str:
    lines = [
        f"- {p['project_name']} (project ID {p['id']}), created by {p.get('created_by') or 'unknown'}"
        for p in projects
    ]
    return "\n".join(lines) if lines else "There are no existing projects."


def _format_agreements(agreements: Iterable[dict[str, Any]]) -> str:
    lines = [
        f"- {a['agreement_name']} ({a['agreement_type']}, root ID {a['root_id']}, "
        f"latest version {a['version_number']})"
        for a in agreements
    ]
    return "\n".join(lines) if lines else "There are no existing agreements."


def build_copilot_system_prompt(
    *,
    projects: list[dict[str, Any]],
    agreements: list[dict[str, Any]],
    active_project_id: int | None = None,
    active_agreement_root_id: str | None = None,
) -> str:
    parts = [COPILOT_SYSTEM_PROMPT]

    parts.append("## Projects\n")
    parts.append("Existing projects being evaluated for pricing estimates and planning:\n")
    parts.append(_format_projects(projects) + "\n")

    parts.append("## Agreements\n")
    parts.append(_format_agreements(agreements) + "\n")

    parts.append("## Current selection\n")
    if active_project_id is not None:
        parts.append(f"The current active selected project is: project ID {active_project_id}")
    else:
        parts.append("There is no current active project selected.")
    if active_agreement_root_id:
        parts.append(f"The current active agreement is: root ID {active_agreement_root_id}")
    else:
        parts.append("There is no current active agreement selected.")
    parts.append("")

    parts.append(INSTRUCTIONS)
    return "\n".join(parts).strip()


async def load_copilot_system_prompt(
    repo,
    *,
    active_project_id: int | None = None,
    active_agreement_root_id: str | None = None,
) -> str:
    return build_copilot_system_prompt(
        projects=await repo.list_projects(),
        agreements=await repo.list_latest_agreements(),
        active_project_id=active_project_id,
        active_agreement_root_id=active_agreement_root_id,
    )
