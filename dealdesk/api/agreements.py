from __future__ import annotations

from fastapi import APIRouter, Depends

from dealdesk.deps import get_repo
from dealdesk.errors import DealdeskApiError, require_text
from dealdesk.tools.agreement_tools import CONTRACT_TYPES, make_short_id

router = APIRouter(prefix="/v1", tags=["agreements"])


def _check_agreement_type(agreement_type: str) -> str:
    agreement_type = agreement_type.upper()
    if agreement_type not in CONTRACT_TYPES:
        raise DealdeskApiError(
            code="E_SCHEMA_INVALID",
            message=f"agreement_type must be one of {', '.join(CONTRACT_TYPES)}",
            retryable=False,
            status_code=422,
            details={"field": "agreement_type"},
            cause="invalid_agreement_type",
        )
    return agreement_type


@router.get("/agreements")
async def list_agreements(repo=Depends(get_repo)):
    return {"agreements": await repo.list_latest_agreements()}


@router.post("/agreements")
async def create_agreement(payload: dict, repo=Depends(get_repo)):
    """Register version 1 of an agreement, e.g. a draft received from a counterparty."""
    project_id = payload.get("project_id")
    if project_id is not None and await repo.get_project(int(project_id)) is None:
        raise DealdeskApiError(
            code="E_NOT_FOUND",
            message=f"project {project_id} not found",
            retryable=False,
            status_code=404,
            cause="project_not_found",
        )
    agreement = await repo.create_agreement({
        "root_id": make_short_id(),
        "version_number": 1,
        "origin": str(payload.get("origin") or "external"),
        "agreement_name": require_text(payload, "agreement_name"),
        "agreement_type": _check_agreement_type(require_text(payload, "agreement_type")),
        "created_by": str(payload.get("created_by") or "user"),
        "text_content": require_text(payload, "text_content"),
        "counterparty": payload.get("counterparty"),
        "project_id": int(project_id) if project_id is not None else None,
    })
    return {"agreement": agreement}


@router.get("/agreements/{root_id}")
async def get_agreement_versions(root_id: str, repo=Depends(get_repo)):
    versions = await repo.get_agreements_by_root_id(root_id)
    if not versions:
        raise DealdeskApiError(
            code="E_NOT_FOUND",
            message=f"agreement {root_id} not found",
            retryable=False,
            status_code=404,
            cause="agreement_not_found",
        )
    return {"root_id": root_id, "versions": versions}


@router.get("/policies")
async def list_policies(policy_type: str | None = None, agreement_type: str | None = None, repo=Depends(get_repo)):
    return {"policies": await repo.list_policies(policy_type=policy_type, agreement_type=agreement_type)}


@router.post("/policies")
async def create_policy(payload: dict, repo=Depends(get_repo)):
    agreement_type = payload.get("agreement_type")
    policy = await repo.create_policy(
        policy_type=require_text(payload, "policy_type"),
        title=require_text(payload, "title"),
        content=require_text(payload, "content"),
        agreement_type=_check_agreement_type(agreement_type) if agreement_type else None,
    )
    return {"policy": policy}
