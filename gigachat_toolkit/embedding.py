"""Text embeddings through the GigaChat embeddings endpoint."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .api.models import EmbeddingRequest
from .api.transport import GigaChatTransport
from .exceptions import ConfigurationError, TransportError
from .options import ChatOptions, merge_options
from .results import Embedding, EmbeddingResult, Usage

logger = logging.getLogger(__name__)


class EmbeddingModel:
    """Embeds texts with the model named in the merged options."""

    def __init__(
        self,
        transport: GigaChatTransport,
        default_options: Optional[ChatOptions] = None,
    ) -> None:
        self.transport = transport
        self.default_options = default_options or ChatOptions()

    def build_request(
        self, texts: Sequence[str], options: Optional[ChatOptions] = None
    ) -> EmbeddingRequest:
        if not texts:
            raise ConfigurationError("At least one text is required for embedding.")
        merged = merge_options(options, self.default_options)
        if not merged.model or not merged.model.strip():
            raise ConfigurationError("Model is not set.")
        return EmbeddingRequest(model=merged.model, input=list(texts))

    async def embed(
        self, texts: Sequence[str], options: Optional[ChatOptions] = None
    ) -> EmbeddingResult:
        request = self.build_request(texts, options)
        response = await self.transport.embed(request)

        embeddings = [
            Embedding(
                vector=list(item.embedding),
                index=item.index if item.index is not None else position,
            )
            for position, item in enumerate(response.data)
        ]
        prompt_tokens = sum(
            (item.usage.prompt_tokens or 0) if item.usage else 0 for item in response.data
        )
        logger.debug(
            "Embedded %d text(s) with %s (%d prompt tokens).",
            len(embeddings),
            response.model,
            prompt_tokens,
        )
        return EmbeddingResult(
            embeddings=embeddings,
            model=response.model,
            usage=Usage(prompt_tokens=prompt_tokens, total_tokens=prompt_tokens),
        )

    async def embed_one(self, text: str, options: Optional[ChatOptions] = None) -> List[float]:
        result = await self.embed([text], options)
        if not result.embeddings:
            raise TransportError(None, "Embedding response carries no data.")
        return result.embeddings[0].vector
