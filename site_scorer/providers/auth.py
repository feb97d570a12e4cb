"""
Token providers for the ArcGIS-backed geodata services.

The analysis pipeline receives a ``TokenProvider`` and asks it once per run
for a token. A provider that cannot produce one returns ``None``; scorers that
need authentication then skip their provider calls and report missing scores
instead of failing the run.

``ArcGISTokenProvider`` keeps its own cached token and expiry, so each
instance is independent and tests can construct a fresh one per case.

Credential placement (.env, gitignored):
  ARCGIS_USERNAME / ARCGIS_PASSWORD — generateToken grant
  ARCGIS_API_KEY                    — static API key (takes precedence)
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Callable, Optional, Protocol, runtime_checkable

import httpx

if TYPE_CHECKING:
    from site_scorer.config import AuthConfig

logger = logging.getLogger(__name__)

# Refresh this many seconds before the server-side expiry.
_EXPIRY_MARGIN_S = 30.0
_MIN_CACHE_S = 30.0


@runtime_checkable
class TokenProvider(Protocol):
    async def get_token(self) -> Optional[str]: ...


class StaticTokenProvider:
    """Always returns the same token (an API key, or ``None``)."""

    def __init__(self, token: Optional[str]) -> None:
        self._token = token

    async def get_token(self) -> Optional[str]:
        return self._token


class ArcGISTokenProvider:
    """Username/password ``generateToken`` grant with a cached expiry.

    Args:
        http:               Shared async HTTP client.
        username, password: ArcGIS Online credentials.
        token_url:          ``.../sharing/rest/generateToken`` endpoint.
        referer:            Referer the token is bound to.
        expiration_minutes: Requested token lifetime.
        timeout_s:          Request timeout.
        clock:              Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        username: str,
        password: str,
        token_url: str = "https://www.arcgis.com/sharing/rest/generateToken",
        referer: str = "https://www.arcgis.com",
        expiration_minutes: int = 120,
        timeout_s: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.http = http
        self.username = username
        self.password = password
        self.token_url = token_url
        self.referer = referer
        self.expiration_minutes = expiration_minutes
        self.timeout_s = timeout_s
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()

    @property
    def cached_token(self) -> Optional[str]:
        if self._token is not None and self._clock() < self._expires_at:
            return self._token
        return None

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0

    async def get_token(self) -> Optional[str]:
        """Return a valid token, fetching a new one when the cache is stale.

        Returns ``None`` (and logs) when the grant fails for any reason.
        """
        if (token := self.cached_token) is not None:
            return token

        async with self._lock:
            if (token := self.cached_token) is not None:
                return token
            return await self._refresh()

    async def _refresh(self) -> Optional[str]:
        try:
            resp = await self.http.post(
                self.token_url,
                data={
                    "username": self.username,
                    "password": self.password,
                    "client": "referer",
                    "referer": self.referer,
                    "expiration": str(self.expiration_minutes),
                    "f": "json",
                },
                timeout=self.timeout_s,
            )
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("ArcGIS token request failed: %s", exc)
            return None

        token = payload.get("token") if isinstance(payload, dict) else None
        if not token:
            logger.warning("ArcGIS token response had no token: %s", payload)
            return None

        ttl_s = self._ttl_from_payload(payload)
        self._token = token
        self._expires_at = self._clock() + max(_MIN_CACHE_S, ttl_s - _EXPIRY_MARGIN_S)
        logger.info("ArcGIS token obtained (valid ~%.0fs)", ttl_s)
        return token

    def _ttl_from_payload(self, payload: dict) -> float:
        """Seconds until expiry; ``expires`` is epoch milliseconds when present."""
        expires_ms = payload.get("expires")
        if isinstance(expires_ms, (int, float)) and expires_ms > 0:
            return expires_ms / 1000.0 - time.time()
        return self.expiration_minutes * 60.0


def build_token_provider(
    auth: "AuthConfig", http: httpx.AsyncClient, timeout_s: float = 30.0
) -> TokenProvider:
    """Pick the token provider the configured credentials allow."""
    if auth.api_key:
        return StaticTokenProvider(auth.api_key)
    if auth.username and auth.password:
        return ArcGISTokenProvider(
            http,
            username=auth.username,
            password=auth.password,
            token_url=auth.token_url,
            referer=auth.referer,
            expiration_minutes=auth.expiration_minutes,
            timeout_s=timeout_s,
        )
    logger.warning("No ArcGIS credentials configured; authenticated scorers will be skipped.")
    return StaticTokenProvider(None)
