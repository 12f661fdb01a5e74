"""Conversation message kinds.

A conversation is an ordered sequence of the message classes below.  Every
class is a frozen dataclass; the tool loop extends a conversation by building
a new list, never by editing messages in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .exceptions import UnsupportedMessageKindError


@dataclass(frozen=True)
class ToolCall:
    """A function call requested by the model.

    ``id`` is the provider's opaque ``function_state_id`` and may be absent.
    ``arguments`` is a JSON-encoded object.
    """

    id: Optional[str]
    name: str
    arguments: str = "{}"


@dataclass(frozen=True)
class ToolResponse:
    """The output of one executed tool call."""

    id: Optional[str]
    name: str
    response_data: str


@dataclass(frozen=True)
class SystemMessage:
    content: str


@dataclass(frozen=True)
class UserMessage:
    content: str
    attachments: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AssistantMessage:
    content: str = ""
    tool_calls: Tuple[ToolCall, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


@dataclass(frozen=True)
class ToolResponseMessage:
    responses: Tuple[ToolResponse, ...] = ()


Message = Union[SystemMessage, UserMessage, AssistantMessage, ToolResponseMessage]

MESSAGE_TYPES = (SystemMessage, UserMessage, AssistantMessage, ToolResponseMessage)


def normalize_conversation(messages: Sequence[Any]) -> List[Any]:
    """Move the first system message to the front of the conversation.

    The relative order of every other message is preserved.  A conversation
    without a system message, or with the system message already first, is
    returned unchanged (as a new list).
    """
    result = list(messages)
    for index, message in enumerate(result):
        if _is_system(message):
            if index > 0:
                result.insert(0, result.pop(index))
            break
    return result


def _is_system(message: Any) -> bool:
    if isinstance(message, SystemMessage):
        return True
    role = getattr(message, "role", None)
    return getattr(role, "value", role) == "system"


def coerce_messages(messages: Iterable[Union[Message, Dict[str, Any]]]) -> List[Message]:
    """Convert role/content dicts into message objects.

    Message objects pass through untouched.  Dicts follow the familiar chat
    shape (``{"role": "user", "content": "..."}``); tool results use role
    ``"function"`` or ``"tool"`` with a ``name``.
    """
    converted: List[Message] = []
    for item in messages:
        if isinstance(item, MESSAGE_TYPES):
            converted.append(item)
            continue
        if not isinstance(item, dict):
            raise UnsupportedMessageKindError(
                f"Unsupported message type: {type(item).__name__}"
            )

        role = item.get("role")
        content = item.get("content") or ""
        if role == "system":
            converted.append(SystemMessage(content=content))
        elif role == "user":
            converted.append(
                UserMessage(
                    content=content,
                    attachments=tuple(item.get("attachments") or ()),
                )
            )
        elif role == "assistant":
            calls = tuple(
                ToolCall(
                    id=tc.get("id"),
                    name=tc["name"],
                    arguments=tc.get("arguments") or "{}",
                )
                for tc in item.get("tool_calls") or []
            )
            converted.append(AssistantMessage(content=content, tool_calls=calls))
        elif role in ("function", "tool"):
            converted.append(
                ToolResponseMessage(
                    responses=(
                        ToolResponse(
                            id=item.get("id"),
                            name=item.get("name", ""),
                            response_data=content,
                        ),
                    )
                )
            )
        else:
            raise UnsupportedMessageKindError(f"Unsupported message role: {role!r}")
    return converted
