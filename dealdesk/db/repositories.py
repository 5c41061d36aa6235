from __future__ import annotations

import json
from typing import Any

import aiosqlite

STAGE_NAMES = ("artifacts", "business_case", "requirements", "architecture", "estimate", "quote")

_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ','now')"

_PROJECT_COLUMNS = "id, project_name, created_by, sdata_json, created_at, updated_at"
_AGREEMENT_COLUMNS = (
    "id, root_id, version_number, origin, notes_json, edits_json, agreement_name, agreement_type, "
    "created_by, text_content, counterparty, project_id, created_at"
)
_POLICY_COLUMNS = "id, policy_type, agreement_type, title, content, created_at"


def empty_sdata() -> list[dict[str, Any]]:
    return [
        {
            "name": name,
            "content": None,
            "approved": None,
            "approved_by": None,
            "updated_at": None,
            "tasks": [] if name == "estimate" else None,
        }
        for name in STAGE_NAMES
    ]


def _project_from_row(row: aiosqlite.Row) -> dict[str, Any]:
    item = dict(row)
    item["sdata"] = json.loads(item.pop("sdata_json") or "[]")
    return item


def _agreement_from_row(row: aiosqlite.Row) -> dict[str, Any]:
    item = dict(row)
    item["notes"] = json.loads(item.pop("notes_json") or "[]")
    item["edits"] = json.loads(item.pop("edits_json") or "[]")
    return item


class Repository:
    def __init__(self, conn: aiosqlite.Connection):
        self.conn = conn

    # projects

    async def list_projects(self) -> list[dict[str, Any]]:
        cursor = await self.conn.execute(
            f"SELECT {_PROJECT_COLUMNS} FROM projects ORDER BY updated_at DESC, id DESC"
        )
        rows = await cursor.fetchall()
        return [_project_from_row(row) for row in rows]

    async def get_project(self, project_id: int) -> dict[str, Any] | None:
        cursor = await self.conn.execute(
            f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE id=?",
            (project_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return _project_from_row(row)

    async def create_project(
        self,
        project_name: str,
        created_by: str = "user",
        sdata: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        cursor = await self.conn.execute(
            f"""
            INSERT INTO projects(project_name, created_by, sdata_json, created_at, updated_at)
            VALUES(?, ?, ?, {_NOW}, {_NOW})
            """,
            (project_name, created_by, json.dumps(sdata if sdata is not None else empty_sdata())),
        )
        await self.conn.commit()
        project = await self.get_project(int(cursor.lastrowid))
        assert project is not None
        return project

    async def update_project_sdata(self, project_id: int, sdata: list[dict[str, Any]]) -> dict[str, Any] | None:
        """Replace the whole stage list in one statement."""
        cursor = await self.conn.execute(
            f"UPDATE projects SET sdata_json=?, updated_at={_NOW} WHERE id=?",
            (json.dumps(sdata), project_id),
        )
        await self.conn.commit()
        if cursor.rowcount == 0:
            return None
        return await self.get_project(project_id)

    async def delete_project(self, project_id: int) -> bool:
        cursor = await self.conn.execute(
            "DELETE FROM projects WHERE id=?",
            (project_id,),
        )
        await self.conn.commit()
        return cursor.rowcount > 0

    # agreements (one row per version, grouped by root_id)

    async def list_latest_agreements(self) -> list[dict[str, Any]]:
        cursor = await self.conn.execute(
            f"""
            SELECT {_AGREEMENT_COLUMNS}
            FROM agreements a
            WHERE version_number = (
              SELECT MAX(version_number) FROM agreements b WHERE b.root_id = a.root_id
            )
            ORDER BY created_at DESC, id DESC
            """
        )
        rows = await cursor.fetchall()
        return [_agreement_from_row(row) for row in rows]

    async def get_agreement(self, agreement_id: int) -> dict[str, Any] | None:
        cursor = await self.conn.execute(
            f"SELECT {_AGREEMENT_COLUMNS} FROM agreements WHERE id=?",
            (agreement_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return _agreement_from_row(row)

    async def get_agreements_by_root_id(self, root_id: str) -> list[dict[str, Any]]:
        """All versions, newest first."""
        cursor = await self.conn.execute(
            f"SELECT {_AGREEMENT_COLUMNS} FROM agreements WHERE root_id=? ORDER BY version_number DESC",
            (root_id,),
        )
        rows = await cursor.fetchall()
        return [_agreement_from_row(row) for row in rows]

    async def get_latest_agreement(self, root_id: str) -> dict[str, Any] | None:
        cursor = await self.conn.execute(
            f"""
            SELECT {_AGREEMENT_COLUMNS} FROM agreements
            WHERE root_id=?
            ORDER BY version_number DESC
            LIMIT 1
            """,
            (root_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return _agreement_from_row(row)

    async def create_agreement(self, payload: dict[str, Any]) -> dict[str, Any]:
        cursor = await self.conn.execute(
            f"""
            INSERT INTO agreements(
              root_id, version_number, origin, notes_json, edits_json, agreement_name, agreement_type,
              created_by, text_content, counterparty, project_id, created_at
            ) VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, {_NOW})
            """,
            (
                payload["root_id"],
                int(payload.get("version_number") or 1),
                payload.get("origin") or "internal",
                json.dumps(payload.get("notes") or []),
                json.dumps(payload.get("edits") or []),
                payload["agreement_name"],
                payload["agreement_type"],
                payload.get("created_by") or "user",
                payload.get("text_content") or "",
                payload.get("counterparty"),
                payload.get("project_id"),
            ),
        )
        await self.conn.commit()
        agreement = await self.get_agreement(int(cursor.lastrowid))
        assert agreement is not None
        return agreement

    async def update_agreement_notes(self, agreement_id: int, notes: list[str]) -> dict[str, Any] | None:
        cursor = await self.conn.execute(
            "UPDATE agreements SET notes_json=? WHERE id=?",
            (json.dumps(notes), agreement_id),
        )
        await self.conn.commit()
        if cursor.rowcount == 0:
            return None
        return await self.get_agreement(agreement_id)

    async def delete_agreement(self, agreement_id: int) -> bool:
        cursor = await self.conn.execute(
            "DELETE FROM agreements WHERE id=?",
            (agreement_id,),
        )
        await self.conn.commit()
        return cursor.rowcount > 0

    # policies

    async def list_policies(
        self,
        policy_type: str | None = None,
        agreement_type: str | None = None,
    ) -> list[dict[str, Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        if policy_type:
            clauses.append("policy_type=?")
            params.append(policy_type)
        if agreement_type:
            clauses.append("(agreement_type=? OR agreement_type IS NULL)")
            params.append(agreement_type)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        cursor = await self.conn.execute(
            f"SELECT {_POLICY_COLUMNS} FROM policies {where} ORDER BY policy_type, agreement_type, title",
            tuple(params),
        )
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def create_policy(
        self,
        *,
        policy_type: str,
        title: str,
        content: str,
        agreement_type: str | None = None,
    ) -> dict[str, Any]:
        if policy_type not in {"rule", "example"}:
            raise ValueError(f"Invalid policy type: {policy_type}")
        cursor = await self.conn.execute(
            f"""
            INSERT INTO policies(policy_type, agreement_type, title, content, created_at)
            VALUES(?, ?, ?, ?, {_NOW})
            """,
            (policy_type, agreement_type, title, content),
        )
        await self.conn.commit()
        cursor = await self.conn.execute(
            f"SELECT {_POLICY_COLUMNS} FROM policies WHERE id=?",
            (cursor.lastrowid,),
        )
        row = await cursor.fetchone()
        return dict(row)
