"""The tool-calling conversation loop.

One logical chat call may take several round trips: whenever the model asks
for tools, the tools are executed, their results are appended to the
conversation and the extended conversation is sent again.  The loop is an
explicit ``while`` over three steps:

* dispatch -- build the request and send it,
* translate -- turn the response into a :class:`ChatResult`, adding its usage
  to the usage carried from the previous round,
* decide -- return the result, or execute the tools and go round again.

Streaming runs the same loop, applying the decision to every frame.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from .api.transport import GigaChatTransport
from .exceptions import ToolError, ToolLoopExceeded
from .messages import AssistantMessage, Message, ToolResponseMessage
from .options import ChatOptions, is_internal_tool_execution_enabled
from .request_builder import RequestBuilder
from .results import ChatResult, Generation, Usage
from .tools.executor import ToolExecutor
from .tools.models import ToolExecutionOutcome
from .translator import ResponseTranslator, StreamAssembler

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_ITERATIONS = 25
RETURN_DIRECT_FINISH_REASON = "returnDirect"


def _log_dropped_tool_run(task: "asyncio.Future[ToolExecutionOutcome]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Tool run of a cancelled call failed: %s", exc, exc_info=exc)


class ToolLoopEngine:
    """Runs chat calls, executing requested tools until the model is done.

    Args:
        transport: Sends chat requests.
        builder: Renders requests from the conversation and options.
        translator: Converts responses into :class:`ChatResult`.
        tool_executor: Executes tool calls; required only when the model
            requests tools with internal execution enabled.
        max_tool_iterations: Default cap on tool-execution rounds per call.
            ``None`` or a non-positive value disables the guard.
            ``ChatOptions.max_tool_iterations`` overrides it per call, where
            ``0`` disables it.
    """

    def __init__(
        self,
        transport: GigaChatTransport,
        builder: RequestBuilder,
        translator: Optional[ResponseTranslator] = None,
        tool_executor: Optional[ToolExecutor] = None,
        *,
        max_tool_iterations: Optional[int] = DEFAULT_MAX_TOOL_ITERATIONS,
    ) -> None:
        self.transport = transport
        self.builder = builder
        self.translator = translator or ResponseTranslator()
        self.assembler = StreamAssembler(self.translator)
        self.tool_executor = tool_executor
        self.max_tool_iterations = (
            max_tool_iterations
            if max_tool_iterations is not None and max_tool_iterations > 0
            else None
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _iteration_limit(self, options: ChatOptions) -> Optional[int]:
        if options.max_tool_iterations is not None:
            return options.max_tool_iterations if options.max_tool_iterations > 0 else None
        return self.max_tool_iterations

    @staticmethod
    def _check_limit(rounds: int, limit: Optional[int]) -> None:
        if limit is not None and rounds > limit:
            logger.error("Tool loop exceeded %d iterations; aborting call.", limit)
            raise ToolLoopExceeded(limit)

    async def _execute_tools(
        self,
        conversation: Sequence[Message],
        result: ChatResult,
        options: ChatOptions,
    ) -> ToolExecutionOutcome:
        if self.tool_executor is None:
            raise ToolError("Received tool calls but no tool executor is configured.")

        # A started tool run is allowed to finish even if the call is
        # cancelled; the cancellation still stops the loop here.
        task = asyncio.ensure_future(
            self.tool_executor.execute_tool_calls(conversation, result, options)
        )
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            logger.info("Call cancelled during tool execution; results will be dropped.")
            task.add_done_callback(_log_dropped_tool_run)
            raise

    @staticmethod
    def _with_usage(result: ChatResult, usage: Usage) -> ChatResult:
        return dataclasses.replace(
            result, metadata=dataclasses.replace(result.metadata, usage=usage)
        )

    @classmethod
    def _carry(cls, result: ChatResult, carried: Optional[Usage]) -> ChatResult:
        if carried is None:
            return result
        return cls._with_usage(result, carried + result.usage)

    @staticmethod
    def _return_direct(
        result: ChatResult,
        outcome: ToolExecutionOutcome,
        payloads: List[Dict[str, Any]],
    ) -> ChatResult:
        history = outcome.conversation_history
        last = history[-1] if history else None
        generations: List[Generation] = []
        if isinstance(last, ToolResponseMessage):
            generations = [
                Generation(
                    output=AssistantMessage(content=response.response_data),
                    finish_reason=RETURN_DIRECT_FINISH_REASON,
                    metadata={"id": response.id, "name": response.name},
                )
                for response in last.responses
            ]
        return dataclasses.replace(result, generations=generations, payloads=payloads)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def call(
        self,
        conversation: Sequence[Message],
        options: Optional[ChatOptions] = None,
    ) -> ChatResult:
        """Run a non-streaming call to completion."""
        merged = self.builder.merged_options(options)
        auto_execute = is_internal_tool_execution_enabled(merged)
        limit = self._iteration_limit(merged)

        history: List[Message] = list(conversation)
        carried: Optional[Usage] = None
        payloads: List[Dict[str, Any]] = []
        rounds = 0

        while True:
            request = self.builder.build(history, options, stream=False)
            response = await self.transport.chat(request)
            result = self.translator.translate(response, carried)

            if not auto_execute or not result.has_tool_calls:
                if payloads:
                    result = dataclasses.replace(result, payloads=payloads)
                return result

            rounds += 1
            self._check_limit(rounds, limit)
            logger.info(
                "Tool calls received: %s (round %d)",
                [tc.name for tc in result.tool_calls],
                rounds,
            )
            outcome = await self._execute_tools(history, result, merged)
            payloads.extend(outcome.payloads)

            if outcome.return_direct:
                return self._return_direct(result, outcome, payloads)

            history = list(outcome.conversation_history)
            carried = result.usage

    async def stream(
        self,
        conversation: Sequence[Message],
        options: Optional[ChatOptions] = None,
    ) -> AsyncIterator[ChatResult]:
        """Stream a call, yielding one :class:`ChatResult` per frame.

        A frame carrying tool calls (with internal execution enabled) is not
        yielded.  The rest of the current stream is drained without being
        yielded: its usage and any further tool calls join the pending round.
        Then the tools run, and the follow-up stream continues the output
        with usage carried forward.
        """
        merged = self.builder.merged_options(options)
        auto_execute = is_internal_tool_execution_enabled(merged)
        limit = self._iteration_limit(merged)

        history: List[Message] = list(conversation)
        carried: Optional[Usage] = None
        rounds = 0

        while True:
            request = self.builder.build(history, options, stream=True)
            frames = self.assembler.assemble(self.transport.stream_chat(request))
            pending: Optional[ChatResult] = None
            round_usage = Usage()
            try:
                async for result in frames:
                    if pending is not None:
                        round_usage = round_usage + result.usage
                        if result.has_tool_calls:
                            pending = dataclasses.replace(
                                pending, generations=pending.generations + result.generations
                            )
                        continue
                    if auto_execute and result.has_tool_calls:
                        pending = result
                        round_usage = result.usage
                        continue
                    yield self._carry(result, carried)
            finally:
                await frames.aclose()

            if pending is None:
                return
            pending = self._carry(self._with_usage(pending, round_usage), carried)

            rounds += 1
            self._check_limit(rounds, limit)
            logger.info(
                "Tool calls received in stream: %s (round %d)",
                [tc.name for tc in pending.tool_calls],
                rounds,
            )
            outcome = await self._execute_tools(history, pending, merged)

            if outcome.return_direct:
                yield self._return_direct(pending, outcome, list(outcome.payloads))
                return

            history = list(outcome.conversation_history)
            carried = pending.usage
