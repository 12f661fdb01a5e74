"""Execution of the tool calls requested in a chat response."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from ..messages import (
    AssistantMessage,
    Message,
    ToolCall,
    ToolResponse,
    ToolResponseMessage,
)
from ..options import ChatOptions
from ..results import ChatResult
from .models import ToolExecutionOutcome
from .tool_factory import ToolFactory

logger = logging.getLogger(__name__)


class ToolExecutor(Protocol):
    async def execute_tool_calls(
        self,
        conversation: Sequence[Message],
        result: ChatResult,
        options: Optional[ChatOptions] = None,
    ) -> ToolExecutionOutcome: ...


class DefaultToolExecutor:
    """Runs tool calls through a :class:`ToolFactory`.

    The outcome's history is the conversation, followed by the assistant turn
    that requested the calls, followed by a single tool-response message with
    one response per call.  The outcome is return-direct only when every tool
    that was called is registered as return-direct.
    """

    def __init__(self, tool_factory: ToolFactory, *, parallel_tools: bool = False) -> None:
        self.tool_factory = tool_factory
        self.parallel_tools = parallel_tools

    async def _handle_one(
        self, tc: ToolCall, context: Optional[Dict[str, Any]]
    ) -> Tuple[ToolResponse, Optional[Dict[str, Any]]]:
        factory = self.tool_factory
        if not tc.name:
            logger.error("Malformed tool call: ID=%s, Name=%s", tc.id, tc.name)
            return ToolResponse(
                id=tc.id,
                name="unknown",
                response_data=json.dumps({"error": "Malformed tool call received."}),
            ), None

        factory.increment_tool_usage(tc.name)
        result = await factory.dispatch_tool(
            tc.name, tc.arguments or "{}", tool_execution_context=context
        )
        if result.error:
            logger.error("Tool error for %s (%s): %s", tc.name, tc.id, result.error)

        payload: Optional[Dict[str, Any]] = None
        if result.payload is not None or result.metadata:
            payload = {"tool_name": tc.name, "metadata": result.metadata or {}}
            if result.payload is not None:
                payload["payload"] = result.payload
        return ToolResponse(id=tc.id, name=tc.name, response_data=result.content), payload

    async def execute_tool_calls(
        self,
        conversation: Sequence[Message],
        result: ChatResult,
        options: Optional[ChatOptions] = None,
    ) -> ToolExecutionOutcome:
        tool_calls = result.tool_calls
        context = options.tool_context if options else None
        logger.info("Executing %d tool call(s).", len(tool_calls))

        if self.parallel_tools:
            pairs = await asyncio.gather(*[self._handle_one(tc, context) for tc in tool_calls])
        else:
            pairs = [await self._handle_one(tc, context) for tc in tool_calls]

        responses = [response for response, _ in pairs]
        payloads = [payload for _, payload in pairs if payload]

        assistant_turn = AssistantMessage(
            content=result.text,
            tool_calls=tuple(tool_calls),
        )
        history: List[Message] = list(conversation)
        history.append(assistant_turn)
        history.append(ToolResponseMessage(responses=tuple(responses)))

        return_direct = bool(tool_calls) and all(
            self.tool_factory.is_return_direct(tc.name) for tc in tool_calls
        )
        return ToolExecutionOutcome(
            conversation_history=history,
            return_direct=return_direct,
            payloads=payloads,
        )
