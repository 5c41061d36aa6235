from __future__ import annotations

from dealdesk.agent.gateway import InferenceGateway
from dealdesk.agent.tool_registry import ToolRegistry
from dealdesk.config import Settings
from dealdesk.db.repositories import Repository

_repo: Repository | None = None
_gateway: InferenceGateway | None = None
_registry: ToolRegistry | None = None
_settings: Settings | None = None


def set_dependencies(
    repo: Repository,
    gateway: InferenceGateway,
    registry: ToolRegistry,
    settings: Settings,
) -> None:
    global _repo, _gateway, _registry, _settings
    _repo = repo
    _gateway = gateway
    _registry = registry
    _settings = settings


def get_repo() -> Repository:
    if _repo is None:
        raise RuntimeError("Repository not initialized")
    return _repo


def get_gateway() -> InferenceGateway:
    if _gateway is None:
        raise RuntimeError("InferenceGateway not initialized")
    return _gateway


def get_registry() -> ToolRegistry:
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized")
    return _registry


def get_settings() -> Settings:
    if _settings is None:
        raise RuntimeError("Settings not initialized")
    return _settings
