"""Translation of httpx failures into the provider error taxonomy."""

from __future__ import annotations

from typing import Any

import httpx

from collection_sync.domain.errors import (
    AuthError,
    NotFound,
    ProviderError,
    UpstreamUnavailable,
)

REQUEST_TIMEOUT = 30.0


def _is_rate_limited(response: httpx.Response) -> bool:
    return response.headers.get("x-ratelimit-remaining") == "0" or "retry-after" in response.headers


def raise_for_provider_status(response: httpx.Response, provider: str) -> None:
    """Raise the matching ProviderError subclass for a non-2xx response."""
    if response.is_success:
        return

    status  = response.status_code
    message = f"{provider} API error ({status}) for {response.request.method} {response.request.url.path}"

    if status == 429 or (status == 403 and _is_rate_limited(response)):
        raise UpstreamUnavailable(f"{message}: rate limited", status)
    if status in (401, 403):
        raise AuthError(message, status)
    if status == 404:
        raise NotFound(message, status)
    if status >= 500:
        raise UpstreamUnavailable(message, status)
    raise ProviderError(f"{message}: {response.text[:200]}", status)


def transport_error(exc: httpx.RequestError, provider: str) -> UpstreamUnavailable:
    return UpstreamUnavailable(f"{provider} request failed: {exc!r}")


def malformed_response(exc: Exception, provider: str) -> UpstreamUnavailable:
    return UpstreamUnavailable(f"{provider} returned a malformed response: {exc!r}")


def decode_json(response: httpx.Response, provider: str) -> Any:
    """Body of a successful response as JSON; a non-JSON body counts as an upstream failure."""
    try:
        return response.json()
    except ValueError as exc:
        raise malformed_response(exc, provider) from exc
