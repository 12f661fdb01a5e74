# gigachat_toolkit/gigachat_toolkit/__init__.py
import logging
import os

from dotenv import load_dotenv

# Configure basic logging for the library
# Users can customize this further in their application
logging.getLogger(__name__).addHandler(logging.NullHandler())

# Load a .env file from the working directory so GIGACHAT_* settings are
# available before the first client is built.
try:
    dotenv_path = os.path.join(os.getcwd(), ".env")
    if os.path.exists(dotenv_path):
        load_dotenv(dotenv_path=dotenv_path)
except Exception as e:
    logging.getLogger(__name__).warning(f"Could not load .env file: {e}")


# Expose key components for easy import
from .auth import CredentialCache, OAuthTokenEndpoint, TokenGrant  # noqa: E402
from .client import GigaChatClient  # noqa: E402
from .config import GigaChatSettings  # noqa: E402
from .embedding import EmbeddingModel  # noqa: E402
from .engine import ToolLoopEngine  # noqa: E402
from .exceptions import (  # noqa: E402
    AuthError,
    ConfigurationError,
    GigaChatToolkitError,
    ToolError,
    ToolLoopExceeded,
    TransportError,
    UnsupportedMessageKindError,
)
from .messages import (  # noqa: E402
    AssistantMessage,
    SystemMessage,
    ToolCall,
    ToolResponse,
    ToolResponseMessage,
    UserMessage,
)
from .options import ChatOptions  # noqa: E402
from .request_builder import RequestBuilder  # noqa: E402
from .results import ChatResult, EmbeddingResult, Usage  # noqa: E402
from .tools import BaseTool, ToolExecutionResult, ToolFactory  # noqa: E402
from .translator import ResponseTranslator, StreamAssembler  # noqa: E402

__all__ = [
    "GigaChatClient",
    "GigaChatSettings",
    "CredentialCache",
    "OAuthTokenEndpoint",
    "TokenGrant",
    "EmbeddingModel",
    "ToolLoopEngine",
    "RequestBuilder",
    "ResponseTranslator",
    "StreamAssembler",
    "ChatOptions",
    "ChatResult",
    "EmbeddingResult",
    "Usage",
    "SystemMessage",
    "UserMessage",
    "AssistantMessage",
    "ToolCall",
    "ToolResponse",
    "ToolResponseMessage",
    "ToolFactory",
    "BaseTool",
    "ToolExecutionResult",
    "GigaChatToolkitError",
    "AuthError",
    "ConfigurationError",
    "TransportError",
    "UnsupportedMessageKindError",
    "ToolLoopExceeded",
    "ToolError",
]

try:
    from importlib.metadata import version

    __version__ = version("gigachat_toolkit")
except Exception:
    __version__ = "0.0.0-unknown"
