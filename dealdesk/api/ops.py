from __future__ import annotations

from fastapi import APIRouter, Depends

from dealdesk.deps import get_gateway, get_settings
from dealdesk.observability.metrics import get_runtime_metrics

router = APIRouter(prefix="/v1", tags=["ops"])

VERSION = "0.1.0"


@router.get("/health")
async def health(settings=Depends(get_settings), gateway=Depends(get_gateway)):
    return {
        "ok": True,
        "version": VERSION,
        "provider": gateway.provider.name,
        "model": settings.model_id,
    }


@router.get("/metrics")
async def metrics():
    return get_runtime_metrics().snapshot()
