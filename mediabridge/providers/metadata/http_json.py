"""Shared JSON GET helper for the metadata adapters.

Maps ``httpx`` outcomes onto the error hierarchy:

- 2xx -> parsed JSON body
- 404 -> ``None`` (or :class:`NotFoundError` with ``not_found_ok=False``)
- 429 -> :class:`RateLimitError`, carrying ``Retry-After`` when present
- any other status, transport error or timeout -> :class:`NetworkFailureError`
"""

from __future__ import annotations

from typing import Any

import httpx

from mediabridge.utils.errors import NetworkFailureError, NotFoundError, RateLimitError

_USER_AGENT = "mediabridge/1.0 (+https://github.com/mediabridge)"


def _retry_after(response: httpx.Response) -> float | None:
    raw = response.headers.get("retry-after")
    try:
        return float(raw) if raw is not None else None
    except ValueError:
        return None


async def get_json(
    http: httpx.AsyncClient,
    url: str,
    provider_name: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout: float = 15.0,
    not_found_ok: bool = True,
) -> Any:
    """GET *url* and return the decoded JSON body."""
    request_headers = {"User-Agent": _USER_AGENT, "Accept": "application/json"}
    if headers:
        request_headers.update(headers)

    try:
        response = await http.get(
            url, params=params, headers=request_headers, timeout=timeout, follow_redirects=True
        )
    except httpx.HTTPError as exc:
        raise NetworkFailureError(
            message=f"Request to {url} failed: {exc.__class__.__name__}: {exc}",
            provider_name=provider_name,
        ) from exc

    return decode_response(response, url, provider_name, not_found_ok=not_found_ok)


def decode_response(
    response: httpx.Response, url: str, provider_name: str, *, not_found_ok: bool = True
) -> Any:
    """Translate *response* into its JSON body or a domain error."""
    status = response.status_code

    if status == 404:
        if not_found_ok:
            return None
        raise NotFoundError(message=f"Not found: {url}", provider_name=provider_name)
    if status == 429:
        raise RateLimitError(
            message=f"Rate limited by {url}",
            provider_name=provider_name,
            retry_after=_retry_after(response),
        )
    if status < 200 or status >= 300:
        raise NetworkFailureError(
            message=f"HTTP {status} from {url}",
            provider_name=provider_name,
            status_code=status,
        )

    try:
        return response.json()
    except ValueError as exc:
        raise NetworkFailureError(
            message=f"Malformed JSON from {url}: {exc}",
            provider_name=provider_name,
            status_code=status,
        ) from exc
