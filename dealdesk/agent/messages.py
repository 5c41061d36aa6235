"""Conversation types shared by the gateway, the loop and the HTTP surface.

Wire shape (provider neutral)::

    {"role": "user" | "assistant",
     "content": [{"text": ...}
                 | {"toolUse": {"toolUseId", "name", "input"}}
                 | {"toolResult": {"toolUseId", "content": [{"text"}], "status"?}}]}
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, Union

ROLES = ("user", "assistant")


class ConversationError(ValueError):
    """History would violate the append-only / toolResult-after-toolUse rules."""


@dataclass(frozen=True, slots=True)
class TextBlock:
    text: str

    def to_wire(self) -> dict[str, Any]:
        return {"text": self.text}


@dataclass(frozen=True, slots=True)
class ToolUseBlock:
    tool_use_id: str
    name: str
    input: dict[str, Any]

    def to_wire(self) -> dict[str, Any]:
        return {"toolUse": {"toolUseId": self.tool_use_id, "name": self.name, "input": self.input}}


@dataclass(frozen=True, slots=True)
class ToolResultBlock:
    tool_use_id: str
    text: str
    status: str | None = None  # None means success

    @property
    def is_error(self) -> bool:
        return self.status == "error"

    def to_wire(self) -> dict[str, Any]:
        body: dict[str, Any] = {"toolUseId": self.tool_use_id, "content": [{"text": self.text}]}
        if self.status:
            body["status"] = self.status
        return {"toolResult": body}


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock]


@dataclass(frozen=True, slots=True)
class Message:
    role: str
    content: tuple[ContentBlock, ...] = ()

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    @property
    def tool_results(self) -> list[ToolResultBlock]:
        return [b for b in self.content if isinstance(b, ToolResultBlock)]

    def to_wire(self) -> dict[str, Any]:
        return {"role": self.role, "content": [b.to_wire() for b in self.content]}

    @classmethod
    def user_text(cls, text: str) -> Message:
        return cls(role="user", content=(TextBlock(text),))

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> Message:
        if not isinstance(data, dict):
            raise ConversationError("message must be an object")
        role = data.get("role")
        if role not in ROLES:
            raise ConversationError(f"unsupported message role: {role!r}")
        raw_content = data.get("content", [])
        if isinstance(raw_content, str):
            return cls(role=role, content=(TextBlock(raw_content),))
        if not isinstance(raw_content, list):
            raise ConversationError("message content must be a list or a string")
        return cls(role=role, content=tuple(block_from_wire(item) for item in raw_content))


def block_from_wire(item: Any) -> ContentBlock:
    if not isinstance(item, dict):
        raise ConversationError("content block must be an object")
    if "text" in item:
        return TextBlock(str(item["text"]))
    if "toolUse" in item:
        body = item["toolUse"] or {}
        tool_input = body.get("input") or {}
        if not isinstance(tool_input, dict):
            raise ConversationError("toolUse.input must be an object")
        return ToolUseBlock(
            tool_use_id=_require(body, "toolUseId"), name=_require(body, "name"), input=tool_input
        )
    if "toolResult" in item:
        body = item["toolResult"] or {}
        return ToolResultBlock(
            tool_use_id=_require(body, "toolUseId"),
            text=_result_text(body.get("content", [])),
            status=body.get("status") or None,
        )
    raise ConversationError(f"unknown content block keys: {sorted(item)}")


def _require(body: dict[str, Any], key: str) -> str:
    value = body.get(key)
    if not value:
        raise ConversationError(f"content block is missing {key!r}")
    return str(value)


def _result_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    parts: list[str] = []
    for entry in content or []:
        if isinstance(entry, dict) and "text" in entry:
            parts.append(str(entry["text"]))
        elif isinstance(entry, dict) and "json" in entry:
            parts.append(json.dumps(entry["json"], ensure_ascii=False))
    return "\n".join(parts)


class Conversation:
    """Append-only message history.

    Every toolResult must answer a toolUse issued by an earlier assistant
    turn; tool uses only appear in assistant turns and results only in
    user turns.
    """

    def __init__(self, messages: Iterable[Message] = ()) -> None:
        self._messages: list[Message] = []
        self._issued_tool_use_ids: set[str] = set()
        for message in messages:
            self.append(message)

    def append(self, message: Message) -> None:
        if message.role not in ROLES:
            raise ConversationError(f"unsupported message role: {message.role!r}")
        if message.role == "user" and message.tool_uses:
            raise ConversationError("toolUse blocks are only allowed in assistant turns")
        if message.role == "assistant" and message.tool_results:
            raise ConversationError("toolResult blocks are only allowed in user turns")
        for result in message.tool_results:
            if result.tool_use_id not in self._issued_tool_use_ids:
                raise ConversationError(
                    f"toolResult {result.tool_use_id!r} does not answer an earlier toolUse"
                )
        self._messages.append(message)
        self._issued_tool_use_ids.update(b.tool_use_id for b in message.tool_uses)

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def __bool__(self) -> bool:
        return bool(self._messages)

    def __iter__(self):
        return iter(self._messages)

    def to_wire(self) -> list[dict[str, Any]]:
        return [m.to_wire() for m in self._messages]

    @classmethod
    def from_wire(cls, items: Any) -> Conversation:
        if not isinstance(items, list):
            raise ConversationError("messages must be a list")
        return cls(Message.from_wire(item) for item in items)
