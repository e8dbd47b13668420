"""Async HTTP transport shared by every source of one run."""

from __future__ import annotations

import asyncio
import json
from typing import Mapping, Optional

import httpx

from .config import SourceSettings
from .errors import FetchError
from .logging import get_logger

logger = get_logger(__name__)

BASE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}
XHR_HEADERS = {
    "Accept": "text/html, application/json;q=0.9, */*;q=0.8",
    "X-Requested-With": "XMLHttpRequest",
}
NO_CACHE_HEADERS = {"Cache-Control": "no-cache", "Pragma": "no-cache"}
RETRYABLE_CLIENT_STATUSES = {408, 429}


def unwrap_html(body: str) -> str:
    """Return the ``html`` member of a JSON envelope, or the body unchanged."""
    stripped = body.lstrip()
    if not stripped.startswith("{"):
        return body
    try:
        payload = json.loads(stripped)
    except ValueError:
        return body
    if isinstance(payload, dict) and isinstance(payload.get("html"), str):
        return payload["html"]
    return body


def _is_client_error(exc: httpx.HTTPError) -> bool:
    """4xx answers other than timeouts and rate limits will not change on retry."""
    if not isinstance(exc, httpx.HTTPStatusError):
        return False
    status = exc.response.status_code
    return 400 <= status < 500 and status not in RETRYABLE_CLIENT_STATUSES


class HttpFetcher:
    """Thin retrying wrapper around one ``httpx.AsyncClient``."""

    def __init__(
        self,
        settings: SourceSettings,
        user_agent: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        backoff: float = 1.0,
    ) -> None:
        self.settings = settings
        self.retries = max(1, settings.http_retries)
        self.backoff = backoff
        self._client = httpx.AsyncClient(
            timeout=settings.http_timeout,
            headers={"User-Agent": user_agent, **BASE_HEADERS},
            follow_redirects=True,
            limits=httpx.Limits(
                max_connections=8,
                max_keepalive_connections=2,
                keepalive_expiry=1.0,
            ),
            transport=transport,
        )

    async def __aenter__(self) -> "HttpFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_text(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        referer: Optional[str] = None,
    ) -> str:
        response = await self._request("GET", url, headers=headers, referer=referer)
        return response.text

    async def get_bytes(self, url: str) -> bytes:
        response = await self._request(
            "GET", url, headers={"Accept": "application/pdf,*/*;q=0.8"}
        )
        return response.content

    async def get_fragment(self, url: str, referer: Optional[str] = None) -> str:
        response = await self._request("GET", url, headers=XHR_HEADERS, referer=referer)
        return unwrap_html(response.text)

    async def post_form(
        self,
        url: str,
        data: Mapping[str, str],
        referer: Optional[str] = None,
    ) -> str:
        response = await self._request(
            "POST", url, headers=XHR_HEADERS, referer=referer, data=dict(data)
        )
        return unwrap_html(response.text)

    async def _request(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        referer: Optional[str] = None,
        data: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        request_headers = dict(headers or {})
        if referer:
            request_headers["Referer"] = referer

        for attempt in range(1, self.retries + 1):
            try:
                response = await self._client.request(
                    method, url, headers=request_headers, data=data
                )
                response.raise_for_status()
                return response
            except httpx.HTTPError as exc:
                if _is_client_error(exc):
                    logger.info("http_client_error", method=method, url=url, error=str(exc))
                    raise FetchError(url, str(exc)) from exc
                logger.warning(
                    "http_retry",
                    method=method,
                    url=url,
                    attempt=attempt,
                    retries=self.retries,
                    error=str(exc),
                )
                if attempt == self.retries:
                    raise FetchError(url, str(exc)) from exc
                await asyncio.sleep(min(60.0, self.backoff * 2 ** (attempt - 1)))
        raise FetchError(url, "no attempts made")
