"""Unit tests for the ToolLoopEngine state machine with scripted collaborators."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import pytest

from gigachat_toolkit.api.models import ChatRequest, ChatResponse, Role
from gigachat_toolkit.engine import ToolLoopEngine
from gigachat_toolkit.exceptions import (
    ConfigurationError,
    ToolError,
    ToolLoopExceeded,
    TransportError,
)
from gigachat_toolkit.messages import (
    AssistantMessage,
    Message,
    ToolResponse,
    ToolResponseMessage,
    UserMessage,
)
from gigachat_toolkit.options import ChatOptions
from gigachat_toolkit.request_builder import RequestBuilder
from gigachat_toolkit.results import ChatResult, Usage
from gigachat_toolkit.tools.models import ToolExecutionOutcome

pytestmark = pytest.mark.asyncio


def _usage(p: int, c: int, t: int) -> Dict[str, int]:
    return {"prompt_tokens": p, "completion_tokens": c, "total_tokens": t}


def tool_call_response(
    state_id: str, name: str = "lookup", usage: Optional[Dict[str, int]] = None
) -> ChatResponse:
    return ChatResponse.model_validate(
        {
            "choices": [
                {
                    "message": {
                        "role": "assistant",
                        "content": "",
                        "function_state_id": state_id,
                        "function_call": {"name": name, "arguments": {"q": state_id}},
                    },
                    "finish_reason": "function_call",
                }
            ],
            "usage": usage or _usage(1, 1, 2),
            "model": "giga-1",
        }
    )


def text_response(text: str, usage: Optional[Dict[str, int]] = None) -> ChatResponse:
    return ChatResponse.model_validate(
        {
            "choices": [
                {"message": {"role": "assistant", "content": text}, "finish_reason": "stop"}
            ],
            "usage": usage or _usage(1, 1, 2),
            "model": "giga-1",
        }
    )


def frame(
    content: Optional[str] = None,
    *,
    function_call: Optional[Dict[str, Any]] = None,
    state_id: Optional[str] = None,
    finish_reason: Optional[str] = None,
    usage: Optional[Dict[str, int]] = None,
) -> ChatResponse:
    delta: Dict[str, Any] = {"content": content}
    if function_call is not None:
        delta["function_call"] = function_call
        delta["function_state_id"] = state_id
    data: Dict[str, Any] = {"choices": [{"delta": delta, "finish_reason": finish_reason}]}
    if usage is not None:
        data["usage"] = usage
    return ChatResponse.model_validate(data)


class ScriptedTransport:
    """Replays scripted responses; the last one repeats once the script runs out."""

    def __init__(
        self,
        responses: Sequence[Any] = (),
        streams: Sequence[List[ChatResponse]] = (),
    ) -> None:
        self.responses = list(responses)
        self.streams = list(streams)
        self.requests: List[ChatRequest] = []
        self.closed_streams = 0
        self.frames_sent = 0

    async def chat(self, request: ChatRequest) -> ChatResponse:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[ChatResponse]:
        self.requests.append(request)
        frames = self.streams.pop(0)
        try:
            for item in frames:
                self.frames_sent += 1
                yield item
        finally:
            self.closed_streams += 1


class ExtendingExecutor:
    """Answers every tool call with a fixed string and extends the history."""

    def __init__(self, return_direct: bool = False, response_data: str = "42") -> None:
        self.calls: List[Sequence[Message]] = []
        self.return_direct = return_direct
        self.response_data = response_data

    async def execute_tool_calls(
        self,
        conversation: Sequence[Message],
        result: ChatResult,
        options: Optional[ChatOptions] = None,
    ) -> ToolExecutionOutcome:
        self.calls.append(list(conversation))
        responses = tuple(
            ToolResponse(tc.id, tc.name, self.response_data) for tc in result.tool_calls
        )
        history: List[Message] = list(conversation)
        history.append(AssistantMessage(result.text, tool_calls=tuple(result.tool_calls)))
        history.append(ToolResponseMessage(responses=responses))
        return ToolExecutionOutcome(
            conversation_history=history,
            return_direct=self.return_direct,
            payloads=[{"tool_name": tc.name} for tc in result.tool_calls],
        )


def _engine(
    transport: ScriptedTransport,
    executor: Any = None,
    options: Optional[ChatOptions] = None,
    **kwargs: Any,
) -> ToolLoopEngine:
    builder = RequestBuilder(options or ChatOptions(model="giga-1"))
    return ToolLoopEngine(transport, builder, tool_executor=executor, **kwargs)


CONVERSATION = [UserMessage("What is the answer?")]


@pytest.mark.parametrize("tool_rounds", [0, 1, 3])
async def test_loop_dispatches_n_plus_one_times_and_sums_usage(tool_rounds: int) -> None:
    responses: List[Any] = [
        tool_call_response(f"fs-{i}", usage=_usage(10 + i, 1, 11 + i))
        for i in range(tool_rounds)
    ]
    responses.append(text_response("42", usage=_usage(5, 2, 7)))
    transport = ScriptedTransport(responses)
    executor = ExtendingExecutor()

    result = await _engine(transport, executor).call(CONVERSATION)

    assert len(transport.requests) == tool_rounds + 1
    assert len(executor.calls) == tool_rounds
    assert result.text == "42"
    assert result.has_tool_calls is False
    assert result.usage == Usage(
        prompt_tokens=sum(10 + i for i in range(tool_rounds)) + 5,
        completion_tokens=tool_rounds + 2,
        total_tokens=sum(11 + i for i in range(tool_rounds)) + 7,
    )


async def test_follow_up_request_carries_extended_conversation() -> None:
    transport = ScriptedTransport([tool_call_response("fs-1"), text_response("done")])

    await _engine(transport, ExtendingExecutor(response_data="sunny")).call(CONVERSATION)

    follow_up = transport.requests[1].messages
    assert [m.role for m in follow_up] == [Role.USER, Role.ASSISTANT, Role.FUNCTION]
    assert follow_up[1].function_state_id == "fs-1"
    assert follow_up[1].function_call.arguments == {"q": "fs-1"}
    assert follow_up[2].content == "sunny"
    assert follow_up[2].name == "lookup"


async def test_caller_conversation_is_not_mutated() -> None:
    conversation: List[Message] = [UserMessage("hi")]
    transport = ScriptedTransport([tool_call_response("fs-1"), text_response("ok")])

    await _engine(transport, ExtendingExecutor()).call(conversation)

    assert conversation == [UserMessage("hi")]


async def test_payloads_are_collected_across_rounds() -> None:
    transport = ScriptedTransport(
        [tool_call_response("a"), tool_call_response("b"), text_response("ok")]
    )

    result = await _engine(transport, ExtendingExecutor()).call(CONVERSATION)

    assert result.payloads == [{"tool_name": "lookup"}, {"tool_name": "lookup"}]


async def test_return_direct_short_circuits_after_one_dispatch() -> None:
    transport = ScriptedTransport(
        [tool_call_response("fs-1", name="weather", usage=_usage(9, 4, 13)), text_response("never")]
    )
    executor = ExtendingExecutor(return_direct=True, response_data="sunny, +21")

    result = await _engine(transport, executor).call(CONVERSATION)

    assert len(transport.requests) == 1
    assert [g.output.content for g in result.generations] == ["sunny, +21"]
    assert result.generations[0].finish_reason == "returnDirect"
    assert result.generations[0].metadata == {"id": "fs-1", "name": "weather"}
    assert result.usage == Usage(prompt_tokens=9, completion_tokens=4, total_tokens=13)


async def test_proxy_mode_returns_tool_calls_to_caller() -> None:
    transport = ScriptedTransport([tool_call_response("fs-1")])
    executor = ExtendingExecutor()

    result = await _engine(transport, executor).call(
        CONVERSATION, ChatOptions(internal_tool_execution_enabled=False)
    )

    assert len(transport.requests) == 1
    assert executor.calls == []
    assert result.tool_calls[0].id == "fs-1"


async def test_proxy_mode_from_default_options() -> None:
    transport = ScriptedTransport([tool_call_response("fs-1")])
    engine = _engine(
        transport,
        ExtendingExecutor(),
        ChatOptions(model="giga-1", internal_tool_execution_enabled=False),
    )

    result = await engine.call(CONVERSATION)

    assert result.has_tool_calls is True


async def test_iteration_guard_raises_tool_loop_exceeded() -> None:
    transport = ScriptedTransport([tool_call_response("loop")])
    executor = ExtendingExecutor()

    with pytest.raises(ToolLoopExceeded) as exc_info:
        await _engine(transport, executor, max_tool_iterations=2).call(CONVERSATION)

    assert exc_info.value.max_iterations == 2
    assert len(transport.requests) == 3
    assert len(executor.calls) == 2


async def test_per_call_iteration_limit_overrides_engine_default() -> None:
    transport = ScriptedTransport([tool_call_response("loop")])
    engine = _engine(transport, ExtendingExecutor(), max_tool_iterations=50)

    with pytest.raises(ToolLoopExceeded):
        await engine.call(CONVERSATION, ChatOptions(max_tool_iterations=1))

    assert len(transport.requests) == 2


async def test_disabled_guard_allows_long_loops() -> None:
    responses: List[Any] = [tool_call_response(f"fs-{i}") for i in range(30)]
    responses.append(text_response("finally"))
    transport = ScriptedTransport(responses)

    result = await _engine(transport, ExtendingExecutor(), max_tool_iterations=None).call(
        CONVERSATION
    )

    assert result.text == "finally"
    assert len(transport.requests) == 31


async def test_non_positive_per_call_limit_disables_guard() -> None:
    responses: List[Any] = [tool_call_response(f"fs-{i}") for i in range(3)]
    responses.append(text_response("ok"))
    transport = ScriptedTransport(responses)
    engine = _engine(transport, ExtendingExecutor(), max_tool_iterations=1)

    result = await engine.call(CONVERSATION, ChatOptions(max_tool_iterations=0))

    assert result.text == "ok"


async def test_non_positive_engine_limit_disables_guard() -> None:
    responses: List[Any] = [tool_call_response(f"fs-{i}") for i in range(3)]
    responses.append(text_response("ok"))
    transport = ScriptedTransport(responses)
    engine = _engine(transport, ExtendingExecutor(), max_tool_iterations=0)

    result = await engine.call(CONVERSATION)

    assert engine.max_tool_iterations is None
    assert result.text == "ok"
    assert len(transport.requests) == 4


async def test_blank_model_fails_before_any_dispatch() -> None:
    transport = ScriptedTransport([text_response("unused")])
    engine = _engine(transport, options=ChatOptions())

    with pytest.raises(ConfigurationError):
        await engine.call(CONVERSATION)

    assert transport.requests == []


async def test_transport_failure_mid_loop_aborts_call() -> None:
    transport = ScriptedTransport(
        [tool_call_response("fs-1"), TransportError(503, "unavailable"), text_response("x")]
    )

    with pytest.raises(TransportError) as exc_info:
        await _engine(transport, ExtendingExecutor()).call(CONVERSATION)

    assert exc_info.value.status_code == 503
    assert len(transport.requests) == 2


async def test_tool_calls_without_executor_raise_tool_error() -> None:
    transport = ScriptedTransport([tool_call_response("fs-1")])

    with pytest.raises(ToolError):
        await _engine(transport, executor=None).call(CONVERSATION)


async def test_cancellation_lets_running_tool_finish_but_stops_the_loop() -> None:
    started = asyncio.Event()
    release = asyncio.Event()
    finished: List[bool] = []

    class SlowExecutor(ExtendingExecutor):
        async def execute_tool_calls(self, conversation, result, options=None):
            started.set()
            await release.wait()
            outcome = await super().execute_tool_calls(conversation, result, options)
            finished.append(True)
            return outcome

    transport = ScriptedTransport([tool_call_response("fs-1"), text_response("late")])
    task = asyncio.create_task(_engine(transport, SlowExecutor()).call(CONVERSATION))

    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    release.set()
    await asyncio.sleep(0.01)

    assert finished == [True]
    assert len(transport.requests) == 1


async def test_tool_failure_after_cancellation_is_logged(caplog) -> None:
    started = asyncio.Event()
    release = asyncio.Event()

    class FailingExecutor(ExtendingExecutor):
        async def execute_tool_calls(self, conversation, result, options=None):
            started.set()
            await release.wait()
            raise RuntimeError("tool crashed")

    transport = ScriptedTransport([tool_call_response("fs-1")])
    task = asyncio.create_task(_engine(transport, FailingExecutor()).call(CONVERSATION))

    with caplog.at_level(logging.ERROR, logger="gigachat_toolkit.engine"):
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        release.set()
        await asyncio.sleep(0.01)

    assert "tool crashed" in caplog.text


# ----------------------------------------------------------------------
# Streaming
# ----------------------------------------------------------------------


async def test_stream_without_tools_yields_every_frame() -> None:
    transport = ScriptedTransport(
        streams=[
            [
                frame("2+2"),
                frame("=4"),
                frame("", finish_reason="stop", usage=_usage(2, 3, 5)),
            ]
        ]
    )

    results = [r async for r in _engine(transport).stream(CONVERSATION)]

    assert [r.text for r in results] == ["2+2", "=4", ""]
    assert results[-1].finish_reason == "stop"
    assert results[-1].usage == Usage(prompt_tokens=2, completion_tokens=3, total_tokens=5)
    assert transport.requests[0].stream is True
    assert transport.closed_streams == 1


async def test_stream_executes_tools_and_continues_with_carried_usage() -> None:
    transport = ScriptedTransport(
        streams=[
            [
                frame("Checking"),
                frame(
                    "",
                    function_call={"name": "lookup", "arguments": {"q": "x"}},
                    state_id="fs-1",
                    finish_reason="function_call",
                    usage=_usage(10, 2, 12),
                ),
                frame("trailing"),
            ],
            [
                frame("The answer"),
                frame(" is 42", finish_reason="stop", usage=_usage(20, 3, 23)),
            ],
        ]
    )
    executor = ExtendingExecutor()

    results = [r async for r in _engine(transport, executor).stream(CONVERSATION)]

    assert [r.text for r in results] == ["Checking", "The answer", " is 42"]
    assert results[-1].usage == Usage(prompt_tokens=30, completion_tokens=5, total_tokens=35)
    assert len(executor.calls) == 1
    assert len(transport.requests) == 2
    assert transport.closed_streams == 2
    assert transport.frames_sent == 5
    assert [m.role for m in transport.requests[1].messages] == [
        Role.USER,
        Role.ASSISTANT,
        Role.FUNCTION,
    ]


async def test_stream_counts_usage_arriving_after_tool_call_frame() -> None:
    transport = ScriptedTransport(
        streams=[
            [
                frame(
                    "",
                    function_call={"name": "lookup", "arguments": {"q": "x"}},
                    state_id="fs-1",
                ),
                frame("", finish_reason="function_call", usage=_usage(10, 5, 15)),
            ],
            [frame("done", finish_reason="stop", usage=_usage(3, 1, 4))],
        ]
    )
    executor = ExtendingExecutor()

    results = [r async for r in _engine(transport, executor).stream(CONVERSATION)]

    assert [r.text for r in results] == ["done"]
    assert results[-1].usage == Usage(prompt_tokens=13, completion_tokens=6, total_tokens=19)
    assert len(executor.calls) == 1
    assert transport.frames_sent == 3


async def test_stream_collects_tool_calls_from_trailing_frames() -> None:
    transport = ScriptedTransport(
        streams=[
            [
                frame("", function_call={"name": "first", "arguments": {}}, state_id="fs-1"),
                frame(
                    "",
                    function_call={"name": "second", "arguments": {}},
                    state_id="fs-2",
                    usage=_usage(2, 2, 4),
                ),
            ],
            [frame("ok", finish_reason="stop", usage=_usage(1, 1, 2))],
        ]
    )
    executor = ExtendingExecutor()

    results = [r async for r in _engine(transport, executor).stream(CONVERSATION)]

    assert results[-1].usage.total_tokens == 6
    assert len(executor.calls) == 1
    follow_up = transport.requests[1].messages
    assert [m.name for m in follow_up if m.role == Role.FUNCTION] == ["first", "second"]

    transport = ScriptedTransport(
        streams=[
            [
                frame(
                    "",
                    function_call={"name": "weather", "arguments": {}},
                    state_id="fs-9",
                    usage=_usage(4, 1, 5),
                )
            ]
        ]
    )
    executor = ExtendingExecutor(return_direct=True, response_data="rain")

    results = [r async for r in _engine(transport, executor).stream(CONVERSATION)]

    (result,) = results
    assert result.text == "rain"
    assert result.finish_reason == "returnDirect"
    assert result.usage == Usage(prompt_tokens=4, completion_tokens=1, total_tokens=5)
    assert len(transport.requests) == 1


async def test_stream_proxy_mode_yields_tool_call_frames() -> None:
    transport = ScriptedTransport(
        streams=[
            [
                frame(
                    "",
                    function_call={"name": "lookup", "arguments": {}},
                    state_id="fs-1",
                    usage=_usage(1, 1, 2),
                )
            ]
        ]
    )
    executor = ExtendingExecutor()

    results = [
        r
        async for r in _engine(transport, executor).stream(
            CONVERSATION, ChatOptions(internal_tool_execution_enabled=False)
        )
    ]

    assert results[0].has_tool_calls is True
    assert executor.calls == []


async def test_stream_iteration_guard() -> None:
    tool_frame = frame(
        "", function_call={"name": "lookup", "arguments": {}}, state_id="fs", usage=_usage(1, 1, 2)
    )
    transport = ScriptedTransport(streams=[[tool_frame], [tool_frame], [tool_frame]])

    with pytest.raises(ToolLoopExceeded):
        async for _ in _engine(transport, ExtendingExecutor(), max_tool_iterations=1).stream(
            CONVERSATION
        ):
            pass

    assert len(transport.requests) == 2


async def test_closing_stream_early_closes_transport_stream() -> None:
    transport = ScriptedTransport(streams=[[frame("a"), frame("b"), frame("c")]])

    stream = _engine(transport).stream(CONVERSATION)
    first = await stream.__anext__()
    await stream.aclose()

    assert first.text == "a"
    assert transport.closed_streams == 1
    assert transport.frames_sent == 1
