"""Base class for the upstream HTTP clients (orchestrator, GitHub)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from scripts.keysync.config import HttpConfig

logger = logging.getLogger("keysync.provider")

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class BaseProvider:
    """Owns an ``httpx.AsyncClient`` and retries transient failures.

    Subclasses declare PROVIDER_NAME for log context. An injected client is
    not closed by ``aclose()``.
    """

    PROVIDER_NAME: str = ""

    def __init__(
        self,
        http: HttpConfig,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.http = http
        self._client = client or httpx.AsyncClient(
            timeout=http.timeout_s, follow_redirects=True
        )
        self._owns_client = client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _get(
        self,
        url: str,
        *,
        headers: Optional[dict[str, str]] = None,
        params: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        """GET with bounded retries on transport errors and 429/5xx.

        The last response is returned as-is once retries run out; the last
        transport error is re-raised.
        """
        attempt = 0
        while True:
            try:
                resp = await self._client.get(url, headers=headers, params=params)
            except httpx.TransportError as exc:
                if attempt >= self.http.max_retries:
                    raise
                await self._backoff_sleep(attempt, f"{type(exc).__name__} on {url}")
                attempt += 1
                continue

            if resp.status_code in RETRYABLE_STATUS and attempt < self.http.max_retries:
                await self._backoff_sleep(attempt, f"HTTP {resp.status_code} on {url}")
                attempt += 1
                continue
            return resp

    async def _backoff_sleep(self, attempt: int, reason: str) -> None:
        """Exponential backoff sleep, capped at 60s."""
        delay = min(self.http.backoff_base_s * (2 ** attempt), 60.0)
        logger.warning(
            "%s: %s, retrying in %.1fs (attempt %d)",
            self.PROVIDER_NAME, reason, delay, attempt + 1,
        )
        await asyncio.sleep(delay)

    @staticmethod
    def _next_link(resp: httpx.Response) -> str:
        """Return the rel="next" URL from a Link header, or ""."""
        for part in resp.headers.get("Link", "").split(","):
            if 'rel="next"' in part:
                return part.split(";")[0].strip().strip("<>")
        return ""
