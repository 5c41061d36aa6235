from __future__ import annotations

from fastapi import APIRouter, Depends

from dealdesk.deps import get_repo
from dealdesk.errors import DealdeskApiError, require_text

router = APIRouter(prefix="/v1", tags=["projects"])


def _project_not_found(project_id: int) -> DealdeskApiError:
    return DealdeskApiError(
        code="E_NOT_FOUND",
        message=f"project {project_id} not found",
        retryable=False,
        status_code=404,
        cause="project_not_found",
    )


@router.get("/projects")
async def list_projects(repo=Depends(get_repo)):
    return {"projects": await repo.list_projects()}


@router.post("/projects")
async def create_project(payload: dict, repo=Depends(get_repo)):
    project_name = require_text(payload, "project_name")
    sdata = payload.get("sdata")
    if sdata is not None and not isinstance(sdata, list):
        raise DealdeskApiError(
            code="E_SCHEMA_INVALID",
            message="sdata must be a list of stages",
            retryable=False,
            status_code=422,
            cause="invalid_sdata",
        )
    project = await repo.create_project(
        project_name,
        created_by=str(payload.get("created_by") or "user"),
        sdata=sdata,
    )
    return {"project": project}


@router.get("/projects/{project_id}")
async def get_project(project_id: int, repo=Depends(get_repo)):
    project = await repo.get_project(project_id)
    if project is None:
        raise _project_not_found(project_id)
    return {"project": project}


@router.delete("/projects/{project_id}")
async def delete_project(project_id: int, repo=Depends(get_repo)):
    deleted = await repo.delete_project(project_id)
    if not deleted:
        raise _project_not_found(project_id)
    return {"ok": True}
