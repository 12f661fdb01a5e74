"""Pydantic models mirroring the GigaChat REST payloads.

Field names are the ones the service expects on the wire.  Requests are
serialised with :func:`dump_payload`, which drops every ``None`` field so an
option that was never set is absent from the request rather than sent as a
zero or ``null``.  Responses ignore unknown fields.
"""

from __future__ import annotations

import enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Role(str, enum.Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"
    FUNCTION = "function"


class Scope(str, enum.Enum):
    """OAuth scopes accepted by the token endpoint."""

    GIGACHAT_API_PERS = "GIGACHAT_API_PERS"
    GIGACHAT_API_B2B = "GIGACHAT_API_B2B"
    GIGACHAT_API_CORP = "GIGACHAT_API_CORP"


# ---------------------------------------------------------------------------
# Chat request
# ---------------------------------------------------------------------------


class FunctionCallRequest(BaseModel):
    name: str
    partial_arguments: Optional[Dict[str, Any]] = None
    arguments: Optional[Dict[str, Any]] = None


class RequestMessage(BaseModel):
    role: Role
    content: Optional[Any] = None
    function_state_id: Optional[str] = None
    function_call: Optional[FunctionCallRequest] = None
    attachments: Optional[List[str]] = None
    name: Optional[str] = None


class FunctionExample(BaseModel):
    request: str
    params: Optional[Dict[str, Any]] = None


class FunctionDefinition(BaseModel):
    name: str
    description: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    few_shot_examples: Optional[List[FunctionExample]] = None
    return_parameters: Optional[Dict[str, Any]] = None


class ChatRequest(BaseModel):
    model: str
    messages: List[RequestMessage] = Field(default_factory=list)
    function_call: Optional[Union[str, Dict[str, Any]]] = None
    functions: Optional[List[FunctionDefinition]] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    stream: Optional[bool] = None
    max_tokens: Optional[int] = None
    repetition_penalty: Optional[float] = None
    update_interval: Optional[float] = None


# ---------------------------------------------------------------------------
# Chat response
# ---------------------------------------------------------------------------


class _ResponseModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class FunctionCall(_ResponseModel):
    name: str
    arguments: Optional[Dict[str, Any]] = None


class ResponseMessage(_ResponseModel):
    role: Optional[Role] = None
    content: Optional[str] = None
    created: Optional[int] = None
    name: Optional[str] = None
    function_state_id: Optional[str] = None
    function_call: Optional[FunctionCall] = None


class Choice(_ResponseModel):
    message: Optional[ResponseMessage] = None
    delta: Optional[ResponseMessage] = None
    index: Optional[int] = None
    finish_reason: Optional[str] = None

    @property
    def payload(self) -> Optional[ResponseMessage]:
        """The full message when present, otherwise the streaming delta."""
        return self.message if self.message is not None else self.delta


class ResponseUsage(_ResponseModel):
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class ChatResponse(_ResponseModel):
    choices: List[Choice] = Field(default_factory=list)
    created: Optional[int] = None
    model: Optional[str] = None
    usage: Optional[ResponseUsage] = None
    object: Optional[str] = None


# ---------------------------------------------------------------------------
# Embeddings
# ---------------------------------------------------------------------------


class EmbeddingRequest(BaseModel):
    model: str
    input: List[str]


class EmbeddingUsage(_ResponseModel):
    prompt_tokens: Optional[int] = None


class EmbeddingData(_ResponseModel):
    object: Optional[str] = None
    embedding: List[float] = Field(default_factory=list)
    index: Optional[int] = None
    usage: Optional[EmbeddingUsage] = None


class EmbeddingResponse(_ResponseModel):
    object: Optional[str] = None
    data: List[EmbeddingData] = Field(default_factory=list)
    model: Optional[str] = None


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------


class OAuthResponse(_ResponseModel):
    access_token: str
    expires_at: Optional[int] = None  # epoch milliseconds
    expires_in: Optional[float] = None  # seconds, relative


def dump_payload(model: BaseModel) -> Dict[str, Any]:
    """Serialise *model* to a JSON-ready dict without ``None`` fields."""
    return model.model_dump(mode="json", exclude_none=True)
