from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx
from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError

from dealdesk.agent.messages import ConversationError

DEFAULT_INTERNAL_MESSAGE = "Internal server error"


@dataclass(slots=True)
class DealdeskApiError(Exception):
    code: str
    message: str
    retryable: bool
    status_code: int
    details: dict[str, Any] | None = None
    cause: str | None = None


class TransportError(Exception):
    """The provider call failed before or while streaming; fatal for the turn."""

    def __init__(self, message: str, *, cause: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class ToolRoundLimitError(Exception):
    """The model kept requesting tools past the configured round bound."""

    def __init__(self, max_rounds: int) -> None:
        super().__init__(f"too many tool-call rounds (limit {max_rounds})")
        self.max_rounds = max_rounds


class ToolNotFoundError(LookupError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Tool '{name}' not found")
        self.name = name


class ToolInputError(ValueError):
    """Tool input could not be parsed or does not match the tool's schema."""


def build_dealdesk_error(
    *,
    code: str,
    message: str,
    trace_id: str,
    retryable: bool,
    details: dict[str, Any] | None = None,
    cause: str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "code": code,
        "message": message,
        "trace_id": trace_id,
        "retryable": retryable,
        "ts": datetime.now(tz=timezone.utc).isoformat(),
    }
    if details:
        payload["details"] = details
    if cause:
        payload["cause"] = cause
    return payload


def error_response(
    *,
    code: str,
    message: str,
    trace_id: str,
    retryable: bool,
    details: dict[str, Any] | None = None,
    cause: str | None = None,
) -> dict[str, Any]:
    return {
        "error": build_dealdesk_error(
            code=code,
            message=message,
            trace_id=trace_id,
            retryable=retryable,
            details=details,
            cause=cause,
        )
    }


def error_from_exception(exc: Exception, trace_id: str) -> tuple[int, dict[str, Any]]:
    if isinstance(exc, DealdeskApiError):
        return (
            exc.status_code,
            error_response(
                code=exc.code,
                message=exc.message,
                trace_id=trace_id,
                retryable=exc.retryable,
                details=exc.details,
                cause=exc.cause,
            ),
        )

    if isinstance(exc, TransportError):
        return (
            502,
            error_response(
                code="E_PROVIDER_TRANSPORT",
                message=exc.message,
                trace_id=trace_id,
                retryable=True,
                cause=exc.cause or "provider_transport",
            ),
        )

    if isinstance(exc, ToolRoundLimitError):
        return (
            500,
            error_response(
                code="E_TOOL_ROUNDS_EXCEEDED",
                message=str(exc),
                trace_id=trace_id,
                retryable=False,
                details={"max_rounds": exc.max_rounds},
                cause="tool_round_limit",
            ),
        )

    if isinstance(exc, ToolNotFoundError):
        return (
            404,
            error_response(
                code="E_TOOL_NOT_FOUND",
                message=str(exc),
                trace_id=trace_id,
                retryable=False,
                cause="tool_not_found",
            ),
        )

    if isinstance(exc, RequestValidationError):
        return (
            422,
            error_response(
                code="E_SCHEMA_INVALID",
                message="Request validation failed.",
                trace_id=trace_id,
                retryable=False,
                details={"errors": exc.errors()},
                cause="request_validation_error",
            ),
        )

    if isinstance(exc, HTTPException):
        retryable = exc.status_code >= 500
        code = "E_INTERNAL" if retryable else "E_SCHEMA_INVALID"
        if exc.status_code == 404:
            code = "E_NOT_FOUND"
        return (
            exc.status_code,
            error_response(
                code=code,
                message=str(exc.detail),
                trace_id=trace_id,
                retryable=retryable,
                cause="http_exception",
            ),
        )

    if isinstance(exc, ConversationError):
        return (
            400,
            error_response(
                code="E_CONVERSATION_INVALID",
                message=str(exc),
                trace_id=trace_id,
                retryable=False,
                cause="conversation_invariant",
            ),
        )

    if isinstance(exc, ToolInputError):
        return (
            400,
            error_response(
                code="E_TOOL_INPUT_INVALID",
                message=str(exc),
                trace_id=trace_id,
                retryable=False,
                cause="tool_input",
            ),
        )

    if isinstance(exc, asyncio.TimeoutError):
        return (
            504,
            error_response(
                code="E_TIMEOUT",
                message="Operation timed out.",
                trace_id=trace_id,
                retryable=True,
                cause="timeout",
            ),
        )

    if isinstance(exc, httpx.TimeoutException):
        return (
            503,
            error_response(
                code="E_NETWORK_TIMEOUT",
                message="Network timeout.",
                trace_id=trace_id,
                retryable=True,
                cause="network_timeout",
            ),
        )

    if isinstance(exc, (KeyError, ValueError, TypeError)):
        return (
            400,
            error_response(
                code="E_SCHEMA_INVALID",
                message="Invalid request or payload shape.",
                trace_id=trace_id,
                retryable=False,
                cause=exc.__class__.__name__,
            ),
        )

    return (
        500,
        error_response(
            code="E_INTERNAL",
            message=DEFAULT_INTERNAL_MESSAGE,
            trace_id=trace_id,
            retryable=False,
            cause=exc.__class__.__name__,
        ),
    )


def require_text(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise DealdeskApiError(
            code="E_SCHEMA_INVALID",
            message=f"{key} is required",
            retryable=False,
            status_code=422,
            details={"field": key},
            cause="missing_field",
        )
    return value.strip()
