"""Connection and default-option settings.

Values come from keyword arguments or from ``GIGACHAT_*`` environment
variables (a ``.env`` file in the working directory is loaded when the
package is imported).
"""

from __future__ import annotations

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from .api.models import Scope
from .auth import DEFAULT_SAFETY_MARGIN
from .engine import DEFAULT_MAX_TOOL_ITERATIONS
from .exceptions import ConfigurationError

DEFAULT_BASE_URL = "https://gigachat.devices.sberbank.ru"
DEFAULT_AUTH_URL = "https://ngw.devices.sberbank.ru:9443"
DEFAULT_MODEL = "GigaChat"
DEFAULT_EMBEDDING_MODEL = "Embeddings"

ENV_PREFIX = "GIGACHAT_"

_FALSE_VALUES = {"0", "false", "no", "off"}
_NONE_VALUES = {"0", "none", "null"}


class GigaChatSettings(BaseModel):
    base_url: str = DEFAULT_BASE_URL
    auth_url: str = DEFAULT_AUTH_URL
    scope: Scope = Scope.GIGACHAT_API_PERS
    client_id: Optional[str] = None
    client_secret: Optional[str] = Field(default=None, repr=False)
    model: str = DEFAULT_MODEL
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    token_safety_margin: float = DEFAULT_SAFETY_MARGIN
    max_tool_iterations: Optional[int] = DEFAULT_MAX_TOOL_ITERATIONS
    timeout: float = 180.0
    verify_ssl: bool = True

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, **overrides: object
    ) -> "GigaChatSettings":
        """Build settings from ``GIGACHAT_*`` variables; *overrides* win."""
        env = os.environ if environ is None else environ
        values: dict = {}

        def read(name: str) -> Optional[str]:
            return env.get(ENV_PREFIX + name)

        for field_name in (
            "base_url",
            "auth_url",
            "scope",
            "client_id",
            "client_secret",
            "model",
            "embedding_model",
            "token_safety_margin",
            "timeout",
        ):
            raw = read(field_name.upper())
            if raw is not None and raw != "":
                values[field_name] = raw

        raw_iterations = read("MAX_TOOL_ITERATIONS")
        if raw_iterations is not None and raw_iterations.strip() != "":
            values["max_tool_iterations"] = (
                None if raw_iterations.strip().lower() in _NONE_VALUES else raw_iterations
            )

        raw_verify = read("VERIFY_SSL")
        if raw_verify is not None:
            values["verify_ssl"] = raw_verify.strip().lower() not in _FALSE_VALUES

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def require_credentials(self) -> None:
        if not self.client_id or not self.client_secret:
            raise ConfigurationError(
                "GigaChat credentials not found. Provide client_id/client_secret or "
                f"set the {ENV_PREFIX}CLIENT_ID and {ENV_PREFIX}CLIENT_SECRET "
                "environment variables."
            )
