from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dealdesk.agent.gateway import InferenceGateway
from dealdesk.agent.provider_router import build_provider
from dealdesk.agent.tool_registry import build_copilot_registry
from dealdesk.api import agreements, chat, inference, ops, projects, tools
from dealdesk.api.ops import VERSION
from dealdesk.config import load_settings
from dealdesk.db.connection import open_connection
from dealdesk.db.migrations import apply_pending
from dealdesk.db.repositories import Repository
from dealdesk.deps import set_dependencies
from dealdesk.errors import error_from_exception
from dealdesk.observability.logging import get_runtime_logger
from dealdesk.trace import TRACE_HEADER, bind_trace_id, current_trace_id, trace_id_from_header

settings = load_settings()
logger = get_runtime_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    conn = await open_connection(settings.db_path)
    applied = await apply_pending(conn)
    if applied:
        logger.info("applied migrations: %s", ", ".join(applied))
    repo = Repository(conn)
    provider = build_provider(
        settings.provider,
        api_key=settings.api_key,
        base_url=settings.base_url or None,
        aws_region=settings.aws_region,
    )
    gateway = InferenceGateway(
        provider,
        model=settings.model_id,
        max_tokens=settings.max_tokens,
        temperature=settings.temperature,
        timeout_seconds=settings.inference_timeout,
    )
    registry = build_copilot_registry(repo)
    set_dependencies(repo, gateway, registry, settings)
    logger.info(
        "runtime ready: provider=%s model=%s tools=%d",
        provider.name,
        settings.model_id,
        len(registry),
    )

    yield

    await conn.close()


app = FastAPI(title="Dealdesk Copilot Runtime", version=VERSION, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def trace_middleware(request: Request, call_next):
    trace_id = trace_id_from_header(request.headers.get(TRACE_HEADER))
    request.state.trace_id = trace_id
    bind_trace_id(trace_id)
    started = datetime.now(tz=timezone.utc)
    try:
        response = await call_next(request)
    except Exception as exc:  # noqa: BLE001
        status_code, payload = error_from_exception(exc, trace_id)
        response = JSONResponse(status_code=status_code, content=payload)
    duration_ms = int((datetime.now(tz=timezone.utc) - started).total_seconds() * 1000)
    logger.info(
        "http_request",
        extra={
            "trace_id": trace_id,
            "path": request.url.path,
            "method": request.method,
            "status": response.status_code,
            "duration_ms": duration_ms,
            "outcome": "ok" if response.status_code < 400 else "error",
        },
    )
    response.headers[TRACE_HEADER] = trace_id
    return response


@app.exception_handler(Exception)
async def exception_handler(request: Request, exc: Exception):
    trace_id = str(getattr(request.state, "trace_id", current_trace_id()))
    status_code, payload = error_from_exception(exc, trace_id)
    if status_code >= 500:
        logger.error("request failed: %s", exc, extra={"trace_id": trace_id, "outcome": "error"}, exc_info=exc)
    response = JSONResponse(status_code=status_code, content=payload)
    response.headers[TRACE_HEADER] = trace_id
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return await exception_handler(request, exc)


app.include_router(inference.router)
app.include_router(chat.router)
app.include_router(tools.router)
app.include_router(projects.router)
app.include_router(agreements.router)
app.include_router(ops.router)


def serve() -> None:
    uvicorn.run("dealdesk.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    serve()
