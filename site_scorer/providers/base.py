"""
Shared async HTTP plumbing for the geodata provider clients.

Every provider call goes through ``ProviderClient.request_json`` which applies
one policy:

  - fixed per-call timeout (``RetryPolicy.timeout_s``)
  - up to ``max_retries`` extra attempts with a fixed ``retry_delay_s`` pause
    (``await asyncio.sleep``, never a busy wait)
  - retryable: timeouts, transport errors, HTTP 429 and 5xx, non-JSON bodies,
    and ArcGIS-style ``{"error": {...}}`` payloads returned with HTTP 200
  - not retryable: other 4xx responses

When attempts run out the call raises ``ProviderError``. Scorers catch it per
hexagon and record a missing score; it never escapes a scorer module.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Optional

import httpx

if TYPE_CHECKING:
    from site_scorer.config import ProvidersConfig

logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """A provider call failed after exhausting its retries.

    Attributes:
        provider:    Short provider name (``"places"``, ``"hazard"`` …).
        status_code: Last HTTP status seen, if any.
    """

    def __init__(
        self, provider: str, message: str, status_code: Optional[int] = None
    ) -> None:
        super().__init__(f"[{provider}] {message}")
        self.provider = provider
        self.status_code = status_code


@dataclass(frozen=True)
class RetryPolicy:
    """Timeout and bounded fixed-delay retry settings for provider calls."""

    timeout_s: float = 30.0
    max_retries: int = 2
    retry_delay_s: float = 0.25

    @classmethod
    def from_config(cls, config: "ProvidersConfig") -> "RetryPolicy":
        return cls(
            timeout_s=config.timeout_s,
            max_retries=config.max_retries,
            retry_delay_s=config.retry_delay_s,
        )


class _RetryableError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderClient:
    """Base class for provider clients sharing one ``httpx.AsyncClient``.

    The HTTP client is owned by the caller (the analysis pipeline opens it
    with ``async with httpx.AsyncClient()``); provider clients never close it.
    """

    name: ClassVar[str] = "provider"

    def __init__(
        self,
        http: httpx.AsyncClient,
        policy: Optional[RetryPolicy] = None,
    ) -> None:
        self.http = http
        self.policy = policy or RetryPolicy()

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        params: Optional[dict[str, Any]] = None,
        data: Optional[dict[str, Any]] = None,
        token: Optional[str] = None,
        retries: Optional[int] = None,
    ) -> dict[str, Any]:
        """Issue one logical request, retrying per the policy.

        Args:
            method:  ``"GET"`` or ``"POST"``.
            url:     Absolute endpoint URL.
            params:  Query-string parameters.
            data:    Form body (sent url-encoded).
            token:   ArcGIS token, added as a ``token`` parameter when set.
            retries: Override ``policy.max_retries`` for this call.

        Returns:
            The decoded JSON object.

        Raises:
            ProviderError: On a non-retryable response or once retries are exhausted.
        """
        params = dict(params or {})
        body = dict(data) if data is not None else None
        if token:
            if body is not None:
                body["token"] = token
            else:
                params["token"] = token

        max_retries = self.policy.max_retries if retries is None else retries
        last_error: Optional[_RetryableError] = None

        for attempt in range(max_retries + 1):
            try:
                return await self._attempt(method, url, params, body)
            except _RetryableError as exc:
                last_error = exc
                logger.debug(
                    "%s: attempt %d/%d failed (%s)",
                    self.name, attempt + 1, max_retries + 1, exc,
                )
            if attempt < max_retries:
                await asyncio.sleep(self.policy.retry_delay_s)

        assert last_error is not None
        raise ProviderError(
            self.name,
            f"{method} {url} failed after {max_retries + 1} attempt(s): {last_error}",
            status_code=last_error.status_code,
        )

    async def _attempt(
        self,
        method: str,
        url: str,
        params: dict[str, Any],
        body: Optional[dict[str, Any]],
    ) -> dict[str, Any]:
        try:
            resp = await self.http.request(
                method,
                url,
                params=params or None,
                data=body,
                timeout=self.policy.timeout_s,
            )
        except httpx.TimeoutException as exc:
            raise _RetryableError(f"timeout: {exc}") from exc
        except httpx.HTTPError as exc:
            raise _RetryableError(f"transport error: {exc}") from exc

        status = resp.status_code
        if status == 429 or status >= 500:
            raise _RetryableError(f"HTTP {status}", status_code=status)
        if status >= 400:
            raise ProviderError(self.name, f"HTTP {status} from {url}", status_code=status)

        try:
            payload = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise _RetryableError("malformed payload (not JSON)", status_code=status) from exc

        if not isinstance(payload, dict):
            raise _RetryableError(
                f"malformed payload (expected object, got {type(payload).__name__})",
                status_code=status,
            )
        if payload.get("error"):
            err = payload["error"]
            detail = err.get("message", err) if isinstance(err, dict) else err
            raise _RetryableError(f"provider error: {detail}", status_code=status)
        return payload


# ── ArcGIS request helpers ────────────────────────────────────────────────────

def esri_polygon(rings: list[list[float]], wkid: int = 4326) -> str:
    """Serialise one ring as an ArcGIS JSON polygon geometry string."""
    return json.dumps({"rings": [rings], "spatialReference": {"wkid": wkid}})


def polygon_query_params(
    rings: list[list[float]],
    wkid: int = 4326,
    out_fields: str = "*",
    return_geometry: bool = False,
) -> dict[str, Any]:
    """Form body for a feature-layer ``/query`` polygon intersection."""
    return {
        "geometry": esri_polygon(rings, wkid),
        "geometryType": "esriGeometryPolygon",
        "spatialRel": "esriSpatialRelIntersects",
        "inSR": str(wkid),
        "outFields": out_fields,
        "returnGeometry": "true" if return_geometry else "false",
        "f": "json",
    }


def layer_query_url(layer_url: str) -> str:
    """``<layer>/query`` for a layer URL with or without the suffix."""
    base = layer_url.rstrip("/")
    return base if base.endswith("/query") else f"{base}/query"


def features_of(payload: dict[str, Any]) -> list[dict[str, Any]]:
    """The ``features`` list of a query response, validated.

    Raises:
        ValueError: If ``features`` is present but not a list.
    """
    features = payload.get("features", [])
    if not isinstance(features, list):
        raise ValueError("Query response 'features' is not a list.")
    return [f for f in features if isinstance(f, dict)]
