"""Translation of GigaChat responses into :class:`ChatResult` objects."""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator, List, Optional

from .api.models import ChatResponse, ResponseUsage
from .messages import AssistantMessage, ToolCall
from .results import ChatResult, Generation, ResponseMetadata, Usage

logger = logging.getLogger(__name__)


def usage_from_response(usage: Optional[ResponseUsage]) -> Usage:
    """Convert wire usage to :class:`Usage`, treating missing counts as zero."""
    if usage is None:
        return Usage()
    return Usage(
        prompt_tokens=usage.prompt_tokens or 0,
        completion_tokens=usage.completion_tokens or 0,
        total_tokens=usage.total_tokens or 0,
    )


class ResponseTranslator:
    """Maps full responses and streamed frames onto one result shape."""

    def translate(
        self, response: ChatResponse, carried_usage: Optional[Usage] = None
    ) -> ChatResult:
        """Translate *response*.

        Args:
            response: A complete response or a single streamed frame.
            carried_usage: Usage accumulated by earlier turns of the same
                tool loop; the response's counts are added to it.
        """
        payloads = [c.payload for c in response.choices if c.payload is not None]

        text = "".join(p.content for p in payloads if p.content is not None)
        tool_calls = [
            ToolCall(
                id=str(p.function_state_id) if p.function_state_id is not None else None,
                name=p.function_call.name,
                arguments=json.dumps(p.function_call.arguments or {}, ensure_ascii=False),
            )
            for p in payloads
            if p.function_call is not None
        ]

        usage = usage_from_response(response.usage)
        if carried_usage is not None:
            usage = carried_usage + usage

        generation = Generation(
            output=AssistantMessage(content=text, tool_calls=tuple(tool_calls)),
            finish_reason=self._finish_reason(response),
        )
        return ChatResult(
            generations=[generation],
            metadata=ResponseMetadata(
                usage=usage, model=response.model, created=response.created
            ),
        )

    @staticmethod
    def _finish_reason(response: ChatResponse) -> Optional[str]:
        # Frames without usage are partial; their finish reason is not final.
        usage = response.usage
        if (
            usage is None
            or usage.prompt_tokens is None
            or usage.completion_tokens is None
            or not response.choices
        ):
            return None
        return response.choices[-1].finish_reason


class StreamAssembler:
    """Translates each streamed frame into its own :class:`ChatResult`.

    Frames are not coalesced: the tool loop inspects every frame the same
    way it inspects a unary response.
    """

    def __init__(self, translator: Optional[ResponseTranslator] = None) -> None:
        self.translator = translator or ResponseTranslator()

    async def assemble(
        self,
        frames: AsyncIterator[ChatResponse],
        carried_usage: Optional[Usage] = None,
    ) -> AsyncIterator[ChatResult]:
        try:
            async for frame in frames:
                yield self.translator.translate(frame, carried_usage)
        finally:
            aclose = getattr(frames, "aclose", None)
            if aclose is not None:
                await aclose()


def collect_text(results: List[ChatResult]) -> str:
    """Join the text of streamed results into the full assistant reply."""
    return "".join(r.text for r in results)
