from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class ToolContext:
    """Ambient selection a tool may fall back on when its input omits an id."""

    active_project_id: int | None = None
    active_agreement_root_id: str | None = None
    user_id: str = "user"

    @classmethod
    def from_wire(cls, data: dict[str, Any] | None) -> ToolContext:
        data = data or {}
        project_id = data.get("activeProjectId")
        root_id = data.get("activeAgreementRootId")
        user_id = str(data.get("userId") or "").strip()
        return cls(
            active_project_id=int(project_id) if project_id not in (None, "") else None,
            active_agreement_root_id=str(root_id) if root_id else None,
            user_id=user_id or "user",
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "activeProjectId": self.active_project_id,
            "activeAgreementRootId": self.active_agreement_root_id,
            "userId": self.user_id,
        }
