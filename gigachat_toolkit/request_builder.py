"""Rendering of conversations and options into GigaChat chat requests."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from .api.models import (
    ChatRequest,
    FunctionCallRequest,
    FunctionDefinition,
    RequestMessage,
    Role,
)
from .exceptions import ConfigurationError, UnsupportedMessageKindError
from .messages import (
    AssistantMessage,
    Message,
    SystemMessage,
    ToolResponseMessage,
    UserMessage,
    normalize_conversation,
)
from .options import ChatOptions, merge_options

logger = logging.getLogger(__name__)

FUNCTION_CALL_NONE = "none"
FUNCTION_CALL_AUTO = "auto"


class ToolResolver(Protocol):
    def resolve(self, names: Iterable[str]) -> List[FunctionDefinition]: ...


def _decode_arguments(arguments: str) -> Dict[str, Any]:
    if not arguments:
        return {}
    try:
        decoded = json.loads(arguments)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Tool call arguments are not valid JSON: {e}") from e
    if not isinstance(decoded, dict):
        raise ConfigurationError("Tool call arguments must encode a JSON object.")
    return decoded


def render_message(message: Message) -> List[RequestMessage]:
    """Render one conversation message as one or more wire messages."""
    if isinstance(message, UserMessage):
        return [
            RequestMessage(
                role=Role.USER,
                content=message.content,
                attachments=list(message.attachments) or None,
            )
        ]
    if isinstance(message, SystemMessage):
        return [RequestMessage(role=Role.SYSTEM, content=message.content)]
    if isinstance(message, AssistantMessage):
        if not message.tool_calls:
            return [RequestMessage(role=Role.ASSISTANT, content=message.content)]
        return [
            RequestMessage(
                role=Role.ASSISTANT,
                content=message.content,
                function_state_id=call.id,
                function_call=FunctionCallRequest(
                    name=call.name, arguments=_decode_arguments(call.arguments)
                ),
            )
            for call in message.tool_calls
        ]
    if isinstance(message, ToolResponseMessage):
        return [
            RequestMessage(
                role=Role.FUNCTION, content=response.response_data, name=response.name
            )
            for response in message.responses
        ]
    raise UnsupportedMessageKindError(
        f"Unsupported message type: {type(message).__name__}"
    )


class RequestBuilder:
    """Builds :class:`ChatRequest` payloads from a conversation and options.

    Args:
        default_options: Options every call falls back to.
        tool_resolver: Maps enabled tool names to function definitions.  Only
            consulted when at least one tool is enabled.
    """

    def __init__(
        self,
        default_options: Optional[ChatOptions] = None,
        tool_resolver: Optional[ToolResolver] = None,
    ) -> None:
        self.default_options = default_options or ChatOptions()
        self.tool_resolver = tool_resolver

    def merged_options(self, runtime_options: Optional[ChatOptions]) -> ChatOptions:
        """Merge *runtime_options* over the defaults and validate the result."""
        merged = merge_options(runtime_options, self.default_options)
        if not merged.model or not merged.model.strip():
            raise ConfigurationError("Model is not set.")
        return merged

    def build(
        self,
        conversation: Sequence[Message],
        runtime_options: Optional[ChatOptions] = None,
        stream: bool = False,
    ) -> ChatRequest:
        options = self.merged_options(runtime_options)

        messages: List[RequestMessage] = []
        for message in conversation:
            messages.extend(render_message(message))
        messages = normalize_conversation(messages)

        request = ChatRequest(
            model=options.model,
            messages=messages,
            stream=stream,
            temperature=options.temperature,
            top_p=options.top_p,
            max_tokens=options.max_tokens,
            repetition_penalty=options.repetition_penalty,
            update_interval=options.update_interval,
            function_call=FUNCTION_CALL_NONE,
        )

        if options.functions:
            request.function_call = FUNCTION_CALL_AUTO
            request.functions = self._resolve_functions(options.functions)

        logger.debug(
            "Built request: model=%s messages=%d functions=%s stream=%s",
            request.model,
            len(request.messages),
            sorted(options.functions),
            stream,
        )
        return request

    def _resolve_functions(self, names: Iterable[str]) -> List[FunctionDefinition]:
        if self.tool_resolver is None:
            raise ConfigurationError(
                f"Tools {sorted(names)} are enabled but no tool resolver is configured."
            )
        wanted = set(names)
        return [d for d in self.tool_resolver.resolve(sorted(wanted)) if d.name in wanted]
