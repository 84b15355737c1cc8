"""OAuth2 client-credentials token provider for the partner API.

Holds the access token in memory only (never persisted) together with its
expiry as a POSIX timestamp. Refreshes are serialized behind an asyncio lock
so that concurrent callers hitting a cold or expired cache trigger exactly one
token request.

The clock and HTTP transport are injectable so tests can run against a fake
clock and ``httpx.MockTransport``.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

import httpx
import structlog

from src.partner_sync.errors import AuthError, ConfigError

if TYPE_CHECKING:
    from src.partner_sync.config import Settings

logger = structlog.get_logger(__name__)


class TokenProvider:
    """Acquires and caches a partner access token.

    Args:
        client_id: OAuth2 client id.
        client_secret: OAuth2 client secret.
        token_url: Token endpoint accepting a form-encoded client-credentials grant.
        timeout: Token request timeout in seconds.
        expiry_margin: Seconds subtracted from ``expires_in`` to absorb clock
            skew and in-flight latency.
        clock: Returns the current POSIX time. Defaults to ``time.time``.
        transport: Optional httpx transport (tests inject a MockTransport).
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str,
        *,
        timeout: float = 10.0,
        expiry_margin: int = 60,
        clock: Callable[[], float] = time.time,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        missing = [
            name
            for name, value in (
                ("client_id", client_id),
                ("client_secret", client_secret),
                ("token_url", token_url),
            )
            if not value
        ]
        if missing:
            raise ConfigError(
                f"Missing partner OAuth2 configuration: {', '.join(missing)}",
                missing=missing,
            )

        self._client_id = client_id
        self._client_secret = client_secret
        self._token_url = token_url
        self._timeout = timeout
        self._expiry_margin = expiry_margin
        self._clock = clock
        self._transport = transport

        self._token: str | None = None
        self._expires_at: float | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> TokenProvider:
        """Build a provider from application settings.

        All four partner values are required here, including the API base URL,
        so a half-configured deployment fails at startup rather than on first use.
        """
        if not settings.PARTNER_API_BASE_URL:
            raise ConfigError(
                "Missing partner OAuth2 configuration: api_base_url",
                missing=["api_base_url"],
            )
        return cls(
            client_id=settings.PARTNER_CLIENT_ID,
            client_secret=settings.PARTNER_CLIENT_SECRET,
            token_url=settings.PARTNER_TOKEN_URL,
            timeout=settings.PARTNER_TOKEN_TIMEOUT,
            expiry_margin=settings.PARTNER_TOKEN_EXPIRY_MARGIN,
            transport=transport,
        )

    @property
    def cached_token(self) -> str | None:
        return self._token

    @property
    def expires_at(self) -> float | None:
        return self._expires_at

    def is_token_valid(self) -> bool:
        """True if a token is cached and the clock is before its expiry."""
        return (
            self._token is not None
            and self._expires_at is not None
            and self._clock() < self._expires_at
        )

    async def get_access_token(self) -> str:
        """Return a valid access token, requesting a new one on a cache miss.

        Raises:
            AuthError: The token endpoint failed or returned no token.
        """
        if self.is_token_valid():
            return self._token  # type: ignore[return-value]

        async with self._lock:
            # Another caller may have refreshed while we waited
            if self.is_token_valid():
                return self._token  # type: ignore[return-value]
            return await self._request_token()

    async def refresh(self) -> str:
        """Drop the cached token and acquire a fresh one."""
        self.clear_token_cache()
        return await self.get_access_token()

    def clear_token_cache(self) -> None:
        """Invalidate the cached token (after a downstream 401, or manually)."""
        self._token = None
        self._expires_at = None
        logger.info("partner.token_cache_cleared")

    async def _request_token(self) -> str:
        logger.info("partner.token_requested", token_url=self._token_url)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self._token_url,
                    data={
                        "grant_type": "client_credentials",
                        "client_id": self._client_id,
                        "client_secret": self._client_secret,
                    },
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as exc:
            self._fail_cache()
            logger.error("partner.token_request_failed", error=str(exc))
            raise AuthError(f"OAuth 2.0 authentication failed: {exc}") from exc

        if not response.is_success:
            self._fail_cache()
            logger.error(
                "partner.token_request_failed",
                status_code=response.status_code,
                body=response.text,
            )
            raise AuthError(
                f"OAuth 2.0 authentication failed with status {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            self._fail_cache()
            raise AuthError(
                "OAuth 2.0 token response is not valid JSON",
                status_code=response.status_code,
                body=response.text,
            ) from exc

        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            self._fail_cache()
            raise AuthError(
                "No access token received from OAuth provider",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            expires_in = int(payload.get("expires_in", 3600))
        except (TypeError, ValueError):
            expires_in = 3600

        self._token = access_token
        self._expires_at = self._clock() + expires_in - self._expiry_margin

        logger.info(
            "partner.token_acquired",
            token_type=payload.get("token_type"),
            expires_in=expires_in,
        )
        return access_token

    def _fail_cache(self) -> None:
        self._token = None
        self._expires_at = None
