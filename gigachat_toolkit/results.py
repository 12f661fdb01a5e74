"""Normalised results returned to callers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .messages import AssistantMessage, ToolCall


class Usage(BaseModel):
    """Token usage of one response, or of a whole tool loop when accumulated."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass(frozen=True)
class Generation:
    output: AssistantMessage
    finish_reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResponseMetadata:
    usage: Usage
    model: Optional[str] = None
    created: Optional[int] = None


@dataclass(frozen=True)
class ChatResult:
    """One logical chat response (or one streamed frame of it)."""

    generations: List[Generation]
    metadata: ResponseMetadata
    payloads: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def usage(self) -> Usage:
        return self.metadata.usage

    @property
    def text(self) -> str:
        return "".join(g.output.content for g in self.generations if g.output.content)

    @property
    def tool_calls(self) -> List[ToolCall]:
        return [tc for g in self.generations for tc in g.output.tool_calls]

    @property
    def has_tool_calls(self) -> bool:
        return any(g.output.has_tool_calls for g in self.generations)

    @property
    def finish_reason(self) -> Optional[str]:
        return self.generations[-1].finish_reason if self.generations else None


class Embedding(BaseModel):
    vector: List[float]
    index: int


class EmbeddingResult(BaseModel):
    embeddings: List[Embedding] = Field(default_factory=list)
    model: Optional[str] = None
    usage: Usage = Field(default_factory=Usage)
