"""HTTP transport for the GigaChat REST API."""

from __future__ import annotations

import json
import logging
import uuid
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, Optional

import httpx
from pydantic import ValidationError

from ..exceptions import ConfigurationError, TransportError
from .models import (
    ChatRequest,
    ChatResponse,
    EmbeddingRequest,
    EmbeddingResponse,
    dump_payload,
)

if TYPE_CHECKING:
    from ..auth import CredentialCache

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_PATH = "/api/v1/chat/completions"
EMBEDDINGS_PATH = "/api/v1/embeddings"
STREAM_DONE = "[DONE]"


class GigaChatTransport:
    """Sends authenticated requests to the GigaChat API.

    Every request carries a bearer token from the :class:`CredentialCache`,
    the client id, a session id fixed for the lifetime of the transport and a
    fresh request id.
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialCache,
        *,
        client_id: Optional[str] = None,
        timeout: float = 180.0,
        verify_ssl: bool = True,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.client_id = client_id
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.session_id = str(uuid.uuid4())
        self._http_client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Lazily create the ``httpx.AsyncClient``."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout, verify=self.verify_ssl
            )
        return self._http_client

    async def _headers(self, *, streaming: bool = False) -> Dict[str, str]:
        token = await self.credentials.get_token()
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream" if streaming else "application/json",
            "Authorization": f"Bearer {token}",
            "X-Session-ID": self.session_id,
            "X-Request-ID": str(uuid.uuid4()),
        }
        if self.client_id:
            headers["X-Client-ID"] = self.client_id
        return headers

    @staticmethod
    def _raise_for_status(response: httpx.Response, body: str) -> None:
        if response.is_error:
            logger.warning(
                "[%s] %s - %s", response.status_code, response.reason_phrase, body
            )
            raise TransportError(response.status_code, body)

    # ------------------------------------------------------------------
    # Raw calls
    # ------------------------------------------------------------------

    async def post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST *body* as JSON and return the decoded JSON response."""
        headers = await self._headers()
        client = self._get_client()
        logger.debug("POST %s request_id=%s", path, headers["X-Request-ID"])
        try:
            response = await client.post(self.base_url + path, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise TransportError(None, str(e)) from e

        self._raise_for_status(response, response.text)
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(response.status_code, f"Invalid JSON body: {e}") from e

    async def post_streaming(
        self, path: str, body: Dict[str, Any]
    ) -> AsyncIterator[Dict[str, Any]]:
        """POST *body* and yield the JSON frames of a server-sent event stream.

        The stream ends at the ``[DONE]`` sentinel or when the server closes
        the connection.  Closing or cancelling the iterator closes the HTTP
        response.
        """
        headers = await self._headers(streaming=True)
        client = self._get_client()
        logger.debug("POST (stream) %s request_id=%s", path, headers["X-Request-ID"])
        try:
            async with client.stream(
                "POST", self.base_url + path, json=body, headers=headers
            ) as response:
                if response.is_error:
                    raw = await response.aread()
                    self._raise_for_status(
                        response, raw.decode("utf-8", errors="replace")
                    )

                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line or line.startswith(":"):
                        continue
                    if line.startswith(("event:", "id:", "retry:")):
                        continue
                    if line.startswith("data:"):
                        line = line[len("data:"):].strip()
                    if line == STREAM_DONE:
                        break
                    try:
                        frame = json.loads(line)
                    except json.JSONDecodeError as e:
                        raise TransportError(
                            response.status_code, f"Invalid stream frame: {line!r}"
                        ) from e
                    logger.debug("Stream frame: %s", frame)
                    yield frame
        except httpx.HTTPError as e:
            raise TransportError(None, str(e)) from e

    # ------------------------------------------------------------------
    # Typed endpoints
    # ------------------------------------------------------------------

    async def chat(self, request: ChatRequest) -> ChatResponse:
        if request.stream:
            raise ConfigurationError("Streaming must be disabled for a unary chat call.")
        data = await self.post(CHAT_COMPLETIONS_PATH, dump_payload(request))
        return self._validate(ChatResponse, data)

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[ChatResponse]:
        if not request.stream:
            raise ConfigurationError("Streaming must be enabled for a streaming chat call.")
        frames = self.post_streaming(CHAT_COMPLETIONS_PATH, dump_payload(request))
        try:
            async for frame in frames:
                yield self._validate(ChatResponse, frame)
        finally:
            await frames.aclose()

    async def embed(self, request: EmbeddingRequest) -> EmbeddingResponse:
        data = await self.post(EMBEDDINGS_PATH, dump_payload(request))
        return self._validate(EmbeddingResponse, data)

    @staticmethod
    def _validate(model: Any, data: Any) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise TransportError(None, f"Unexpected response payload: {e}") from e

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "GigaChatTransport":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
