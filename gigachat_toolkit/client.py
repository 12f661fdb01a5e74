# gigachat_toolkit/gigachat_toolkit/client.py
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Union

import httpx

from .api.transport import GigaChatTransport
from .auth import CredentialCache, OAuthTokenEndpoint, TokenFetcher
from .config import GigaChatSettings
from .embedding import EmbeddingModel
from .engine import ToolLoopEngine
from .messages import Message, coerce_messages
from .options import ChatOptions
from .request_builder import RequestBuilder
from .results import ChatResult, EmbeddingResult
from .tools.executor import DefaultToolExecutor, ToolExecutor
from .tools.models import ToolExecutionResult
from .tools.tool_factory import ToolFactory
from .translator import ResponseTranslator

module_logger = logging.getLogger(__name__)

MessageInput = Sequence[Union[Message, Dict[str, Any]]]


class GigaChatClient:
    """
    High-level client for GigaChat chat completions and embeddings.
    Wires the credential cache, transport, request builder, response
    translator and tool loop together, and manages tool registration.
    """

    def __init__(
        self,
        settings: Optional[GigaChatSettings] = None,
        *,
        tool_factory: Optional[ToolFactory] = None,
        default_options: Optional[ChatOptions] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        token_fetcher: Optional[TokenFetcher] = None,
        tool_executor: Optional[ToolExecutor] = None,
        parallel_tools: bool = False,
    ) -> None:
        """
        Initializes the GigaChatClient.

        Args:
            settings: Connection settings. Defaults to ``GigaChatSettings.from_env()``.
            tool_factory: An existing ToolFactory. If None, a new one is created.
            default_options: Options every call falls back to. Defaults to the
                settings' model with no tools enabled.
            http_client: Shared ``httpx.AsyncClient`` for API calls. It is not
                closed by :meth:`aclose`.
            token_fetcher: Source of access tokens. Defaults to the OAuth
                endpoint configured in ``settings``.
            tool_executor: Replaces the default executor backed by ``tool_factory``.
            parallel_tools: Run the tool calls of one round concurrently.
        """
        self.settings = settings or GigaChatSettings.from_env()
        self.tool_factory = tool_factory or ToolFactory()
        self.default_options = (
            default_options.model_copy(deep=True)
            if default_options is not None
            else ChatOptions(model=self.settings.model)
        )

        if token_fetcher is None:
            self.settings.require_credentials()
            token_fetcher = OAuthTokenEndpoint(
                self.settings.auth_url,
                self.settings.client_id,
                self.settings.client_secret,
                self.settings.scope,
                verify_ssl=self.settings.verify_ssl,
            )
        self._token_fetcher = token_fetcher

        self.credentials = CredentialCache(
            token_fetcher, safety_margin=self.settings.token_safety_margin
        )
        self.transport = GigaChatTransport(
            self.settings.base_url,
            self.credentials,
            client_id=self.settings.client_id,
            timeout=self.settings.timeout,
            verify_ssl=self.settings.verify_ssl,
            http_client=http_client,
        )
        self.builder = RequestBuilder(self.default_options, self.tool_factory)
        self.engine = ToolLoopEngine(
            self.transport,
            self.builder,
            ResponseTranslator(),
            tool_executor
            or DefaultToolExecutor(self.tool_factory, parallel_tools=parallel_tools),
            max_tool_iterations=self.settings.max_tool_iterations,
        )
        self.embeddings = EmbeddingModel(
            self.transport, ChatOptions(model=self.settings.embedding_model)
        )
        module_logger.info(
            "Initialized GigaChatClient (base_url=%s, model=%s)",
            self.settings.base_url,
            self.default_options.model,
        )

    def register_tool(
        self,
        function: Callable[..., ToolExecutionResult],
        name: Optional[str] = None,
        description: Optional[str] = None,
        parameters: Optional[Dict[str, Any]] = None,
        *,
        return_direct: bool = False,
        enable: bool = True,
    ) -> None:
        """
        Registers a Python function as a tool.

        Args:
            function: The Python function to register.
            name: The tool name. Defaults to the function's ``__name__``.
            description: Description of the tool. Defaults to the function's docstring.
            parameters: JSON schema of the function's parameters.
            return_direct: Return the tool output to the caller instead of the model.
            enable: Add the tool to the default options' enabled functions, so it
                is offered on every call.
        """
        if name is None:
            name = function.__name__
        if description is None:
            docstring = function.__doc__ or ""
            description = docstring.strip() or f"Executes the {name} function."
            if not function.__doc__:
                module_logger.warning(
                    f"Tool function '{name}' has no docstring. Using generic description."
                )

        self.tool_factory.register_tool(
            function=function,
            name=name,
            description=description,
            parameters=parameters,
            return_direct=return_direct,
        )
        if enable:
            self.default_options.functions.add(name)
        module_logger.info(f"Tool '{name}' registered with GigaChatClient's ToolFactory.")

    async def chat(
        self,
        messages: MessageInput,
        options: Optional[ChatOptions] = None,
        stream: bool = False,
    ) -> Union[ChatResult, AsyncIterator[ChatResult]]:
        """
        Sends the conversation and runs the tool loop to completion.

        Args:
            messages: Message objects or ``{"role": ..., "content": ...}`` dicts.
            options: Runtime options merged over the client's defaults.
            stream: If True, returns an async iterator of per-frame results
                instead of the final response (same as :meth:`stream`).

        Returns:
            ChatResult: The final response with usage accumulated over every
            round trip of the call, or an async iterator when ``stream`` is set.

        Raises:
            ConfigurationError: If the merged options have no model.
            AuthError: If an access token cannot be obtained.
            TransportError: If the API answers with an error or is unreachable.
            ToolLoopExceeded: If the tool loop exceeds its iteration guard.
        """
        if stream:
            return self.stream(messages, options)
        conversation = coerce_messages(messages)
        return await self.engine.call(conversation, options)

    def stream(
        self,
        messages: MessageInput,
        options: Optional[ChatOptions] = None,
    ) -> AsyncIterator[ChatResult]:
        """Streams the conversation; yields one ChatResult per frame."""
        conversation = coerce_messages(messages)
        return self.engine.stream(conversation, options)

    async def embed(
        self, texts: List[str], options: Optional[ChatOptions] = None
    ) -> EmbeddingResult:
        """Embeds ``texts`` with the configured embedding model."""
        return await self.embeddings.embed(texts, options)

    async def aclose(self) -> None:
        await self.transport.aclose()
        aclose = getattr(self._token_fetcher, "aclose", None)
        if aclose is not None:
            await aclose()

    async def __aenter__(self) -> "GigaChatClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
