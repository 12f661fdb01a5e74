"""OAuth2 client-credentials access tokens and their cache.

:class:`CredentialCache` hands out a bearer token to any number of concurrent
callers.  A token is served from the cache until ``safety_margin`` seconds
before it expires; after that the first caller refreshes it under an
``asyncio.Lock`` while later callers queue on the lock and reuse the token it
produced.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Union

import httpx
from pydantic import ValidationError

from .api.models import OAuthResponse, Scope
from .exceptions import AuthError

logger = logging.getLogger(__name__)

DEFAULT_SAFETY_MARGIN = 60.0
OAUTH_PATH = "/api/v2/oauth"


@dataclass(frozen=True)
class TokenGrant:
    """A freshly issued token.

    The endpoint reports either an absolute expiry (``expires_at``, epoch
    seconds) or a lifetime (``expires_in``, seconds).
    """

    access_token: str
    expires_at: Optional[float] = None
    expires_in: Optional[float] = None


@dataclass(frozen=True)
class CachedToken:
    value: str
    expires_at: float  # wall-clock epoch seconds
    deadline: float  # the same instant on the monotonic clock


class TokenFetcher(Protocol):
    async def fetch_token(self) -> TokenGrant: ...


class OAuthTokenEndpoint:
    """Fetches tokens from the GigaChat OAuth endpoint."""

    def __init__(
        self,
        auth_url: str,
        client_id: str,
        secret: str,
        scope: Union[Scope, str] = Scope.GIGACHAT_API_PERS,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
    ) -> None:
        self.auth_url = auth_url.rstrip("/")
        self.client_id = client_id
        self._secret = secret
        self.scope = Scope(scope)
        self._http_client = http_client
        self._owns_client = http_client is None
        self.timeout = timeout
        self.verify_ssl = verify_ssl

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout, verify=self.verify_ssl
            )
        return self._http_client

    async def fetch_token(self) -> TokenGrant:
        client = self._get_client()
        headers = {
            "Accept": "application/json",
            "RqUID": str(uuid.uuid4()),
        }
        try:
            response = await client.post(
                self.auth_url + OAUTH_PATH,
                data={"scope": self.scope.value},
                headers=headers,
                auth=(self.client_id, self._secret),
            )
        except httpx.HTTPError as e:
            raise AuthError(f"Token request failed: {e}") from e

        if response.is_error:
            logger.warning(
                "[%s] %s - %s",
                response.status_code,
                response.reason_phrase,
                response.text,
            )
            raise AuthError(
                f"Token request failed with HTTP {response.status_code}: {response.text}"
            )

        try:
            payload = OAuthResponse.model_validate_json(response.content)
        except ValidationError as e:
            raise AuthError(f"Malformed token response: {e}") from e

        if payload.expires_at is None and payload.expires_in is None:
            raise AuthError("Token response carries neither expires_at nor expires_in.")

        return TokenGrant(
            access_token=payload.access_token,
            expires_at=payload.expires_at / 1000.0 if payload.expires_at is not None else None,
            expires_in=payload.expires_in,
        )

    async def aclose(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None


class CredentialCache:
    """Process-wide holder of a single bearer token.

    Args:
        fetcher: Collaborator that obtains a new token.
        safety_margin: Seconds before expiry at which a token is treated as
            already expired.
        clock: Wall-clock source (epoch seconds), used to interpret the
            endpoint's absolute expiry.
        monotonic: Monotonic clock used for freshness checks, so wall-clock
            adjustments cannot extend a token's life.
    """

    def __init__(
        self,
        fetcher: TokenFetcher,
        *,
        safety_margin: float = DEFAULT_SAFETY_MARGIN,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        if safety_margin < 0:
            raise ValueError("safety_margin must not be negative.")
        self._fetcher = fetcher
        self.safety_margin = safety_margin
        self._clock = clock
        self._monotonic = monotonic
        self._token: Optional[CachedToken] = None
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    @property
    def cached_token(self) -> Optional[CachedToken]:
        return self._token

    def _fresh(self, token: Optional[CachedToken]) -> bool:
        return (
            token is not None
            and self._monotonic() < token.deadline - self.safety_margin
        )

    async def get_token(self) -> str:
        """Return a valid token, refreshing it at most once per expiry."""
        token = self._token
        if self._fresh(token):
            return token.value  # type: ignore[union-attr]

        async with self._lock:
            # Callers that queued behind a refresh pick up its result here.
            token = self._token
            if self._fresh(token):
                return token.value  # type: ignore[union-attr]

            token = await self._refresh()
            self._token = token
            return token.value

    async def _refresh(self) -> CachedToken:
        logger.info("Refreshing GigaChat access token.")
        try:
            grant = await self._fetcher.fetch_token()
        except AuthError:
            raise
        except Exception as e:
            raise AuthError(f"Token refresh failed: {e}") from e

        if not grant.access_token:
            raise AuthError("Token endpoint returned an empty access token.")

        wall_now = self._clock()
        mono_now = self._monotonic()
        if grant.expires_at is not None:
            expires_at = float(grant.expires_at)
        elif grant.expires_in is not None:
            expires_at = wall_now + float(grant.expires_in)
        else:
            raise AuthError("Token grant carries no expiry.")

        self.refresh_count += 1
        logger.debug(
            "Access token refreshed; valid for %.0fs.", expires_at - wall_now
        )
        return CachedToken(
            value=grant.access_token,
            expires_at=expires_at,
            deadline=mono_now + (expires_at - wall_now),
        )
