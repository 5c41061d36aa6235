from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

PROVIDERS = {"bedrock", "anthropic", "openai", "mock"}


@dataclass(slots=True)
class Settings:
    db_path: Path
    host: str
    port: int
    provider: str
    model_id: str
    api_key: str
    base_url: str
    aws_region: str
    max_tokens: int
    temperature: float
    max_tool_rounds: int
    inference_timeout: float


def _parse_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}")
    return value


def _parse_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from exc


def load_settings() -> Settings:
    db_path = Path(os.getenv("DEALDESK_DB_PATH", ".dealdesk/runtime.db"))
    db_path.parent.mkdir(parents=True, exist_ok=True)

    provider = os.getenv("DEALDESK_PROVIDER", "bedrock").strip().lower()
    if provider not in PROVIDERS:
        raise RuntimeError(f"DEALDESK_PROVIDER must be one of {sorted(PROVIDERS)}, got {provider!r}")

    inference_timeout = _parse_float("DEALDESK_INFERENCE_TIMEOUT", 120.0)
    if inference_timeout <= 0:
        raise RuntimeError("DEALDESK_INFERENCE_TIMEOUT must be positive")

    return Settings(
        db_path=db_path,
        host=os.getenv("DEALDESK_HOST", "127.0.0.1"),
        port=_parse_int("DEALDESK_PORT", 8050, minimum=1),
        provider=provider,
        model_id=os.getenv("DEALDESK_MODEL_ID", "us.anthropic.claude-haiku-4-5-20251001-v1:0").strip(),
        api_key=os.getenv("DEALDESK_API_KEY", "").strip(),
        base_url=os.getenv("DEALDESK_BASE_URL", "").strip(),
        aws_region=os.getenv("DEALDESK_AWS_REGION", "us-west-2").strip(),
        max_tokens=_parse_int("DEALDESK_MAX_TOKENS", 4192, minimum=1),
        temperature=_parse_float("DEALDESK_TEMPERATURE", 0.25),
        max_tool_rounds=_parse_int("DEALDESK_MAX_TOOL_ROUNDS", 8, minimum=1),
        inference_timeout=inference_timeout,
    )
