# gigachat_toolkit/gigachat_toolkit/exceptions.py
from typing import Optional


class GigaChatToolkitError(Exception):
    """Base exception class for the gigachat_toolkit library."""

    pass


class ConfigurationError(GigaChatToolkitError):
    """Exception raised for configuration errors (e.g., missing model name)."""

    pass


class AuthError(GigaChatToolkitError):
    """Exception raised when an access token cannot be obtained or refreshed."""

    pass


class TransportError(GigaChatToolkitError):
    """Exception raised for non-2xx responses and connection failures.

    ``status_code`` is ``None`` when the request never produced an HTTP
    response (DNS failure, connection reset, timeout).
    """

    def __init__(self, status_code: Optional[int], body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        if status_code is None:
            message = f"GigaChat request failed: {body}"
        else:
            message = f"GigaChat request failed with HTTP {status_code}: {body}"
        super().__init__(message)


class UnsupportedMessageKindError(GigaChatToolkitError):
    """Exception raised when a message type cannot be rendered for the API."""

    pass


class ToolLoopExceeded(GigaChatToolkitError):
    """Exception raised when a tool-calling loop exceeds its iteration guard."""

    def __init__(self, max_iterations: int) -> None:
        self.max_iterations = max_iterations
        super().__init__(
            f"Tool loop exceeded the maximum of {max_iterations} tool iterations."
        )


class ToolError(GigaChatToolkitError):
    """Exception raised for errors during tool registration or execution."""

    pass
