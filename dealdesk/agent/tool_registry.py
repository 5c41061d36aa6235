"""Tool registry: immutable list of (spec, executor) pairs."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Iterator

from dealdesk.agent.providers.base import ToolSpec
from dealdesk.context import ToolContext

Executor = Callable[[dict[str, Any], ToolContext], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class ToolDef:
    spec: ToolSpec
    executor: Executor
    mutates: bool = False  # writes to the data store; clients refresh their view

    @property
    def name(self) -> str:
        return self.spec.name


class ToolRegistry:
    def __init__(self, tools: Iterable[ToolDef] = ()) -> None:
        self._tools: tuple[ToolDef, ...] = tuple(tools)
        seen: set[str] = set()
        for tool in self._tools:
            if tool.name in seen:
                raise ValueError(f"duplicate tool name: {tool.name}")
            seen.add(tool.name)

    def lookup(self, name: str) -> ToolDef | None:
        for tool in self._tools:
            if tool.name == name:
                return tool
        return None

    def names(self) -> list[str]:
        return [tool.name for tool in self._tools]

    def specs(self) -> list[ToolSpec]:
        return [tool.spec for tool in self._tools]

    def __iter__(self) -> Iterator[ToolDef]:
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)


def build_copilot_registry(repo) -> ToolRegistry:
    """The process-wide tool set, bound to the data store."""
    from dealdesk.tools.agreement_tools import build_agreement_tools
    from dealdesk.tools.project_tools import build_project_tools
    from dealdesk.tools.weather_tools import build_weather_tools

    return ToolRegistry([
        *build_weather_tools(),
        *build_project_tools(repo),
        *build_agreement_tools(repo),
    ])
