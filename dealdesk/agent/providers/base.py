"""Provider base types: ToolSpec / InferenceRequest / ProviderAdapter."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from dealdesk.agent.events import StreamEvent
from dealdesk.agent.messages import Message

RawChannel = AsyncIterator[Any]


@dataclass(frozen=True, slots=True)
class ToolSpec:
    name: str
    description: str
    input_schema: dict


@dataclass(slots=True)
class InferenceRequest:
    model: str
    messages: list[Message]
    system_prompt: str = ""
    tools: list[ToolSpec] = field(default_factory=list)
    max_tokens: int = 4096
    temperature: float = 0.0


class ProviderAdapter(ABC):
    name: str = "provider"
    # SDK exceptions the gateway reports as transport failures
    transport_errors: tuple[type[BaseException], ...] = ()

    @abstractmethod
    async def open_stream(self, request: InferenceRequest) -> RawChannel: ...

    @abstractmethod
    def normalize(self, raw: RawChannel) -> AsyncIterator[StreamEvent]: ...
