from .models import (
    ChatRequest,
    ChatResponse,
    EmbeddingRequest,
    EmbeddingResponse,
    FunctionDefinition,
    RequestMessage,
    Role,
    Scope,
)
from .transport import GigaChatTransport

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "EmbeddingRequest",
    "EmbeddingResponse",
    "FunctionDefinition",
    "GigaChatTransport",
    "RequestMessage",
    "Role",
    "Scope",
]
