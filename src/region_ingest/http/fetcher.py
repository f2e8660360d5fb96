"""JSON HTTP client with retries and timeout."""

from __future__ import annotations

from typing import Any

import httpx

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; RegionIngestBot/1.0)"


class JsonFetcher:
    """httpx client wrapper with retry, timeout, and user-agent configuration."""

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        user_agent: str = DEFAULT_USER_AGENT,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        base_headers = {"User-Agent": user_agent, "Accept": "application/json"}
        if headers:
            base_headers.update(headers)
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers=base_headers,
            transport=transport or httpx.HTTPTransport(retries=max_retries),
            follow_redirects=True,
        )

    def get_json(self, url: str, *, params: dict[str, str] | None = None) -> Any:
        """GET ``url`` and decode the JSON body.

        Raises ``httpx.HTTPStatusError`` for non-2xx responses, other
        ``httpx.HTTPError`` subclasses for transport failures, and
        ``ValueError`` when the body is not JSON.
        """

        response = self._client.get(url, params=params)
        response.raise_for_status()
        return response.json()

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> JsonFetcher:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
