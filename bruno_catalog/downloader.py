"""Async HTTP fetcher with per-source pacing, retries, and streamed size caps."""

import asyncio
import json
import logging
import time
from typing import Dict, Optional

import httpx

from .config import AppConfig
from .errors import NetworkFailure

logger = logging.getLogger("bruno_catalog")


class Downloader:
    def __init__(self, config: AppConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._last_request_time: Dict[str, float] = {}  # per-source timestamps
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.download.timeout, connect=10),
                follow_redirects=True,
                headers={"User-Agent": self.config.download.user_agent},
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def rate_limit(self, source: str, rate: float):
        last = self._last_request_time.get(source, 0)
        elapsed = time.monotonic() - last
        if elapsed < rate:
            await asyncio.sleep(rate - elapsed)
        self._last_request_time[source] = time.monotonic()

    async def fetch_bytes(self, url: str, source: str = "", rate: float = 0) -> bytes:
        """Fetch a URL into memory with retries. Raises NetworkFailure."""
        max_retries = self.config.download.max_retries
        backoff = self.config.download.backoff_factor

        last_error = None
        for attempt in range(max_retries):
            try:
                if rate:
                    await self.rate_limit(source, rate)
                return await self._stream(url)
            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code < 500 and e.response.status_code != 429:
                    break
            except httpx.InvalidURL as e:
                raise NetworkFailure(f"Invalid URL {url!r}: {e}") from e
            except httpx.TransportError as e:
                last_error = e
            wait = backoff ** attempt
            if attempt + 1 < max_retries:
                logger.warning(f"Retry {attempt + 1}/{max_retries} for {url}: {last_error} (wait {wait}s)")
                await asyncio.sleep(wait)

        raise NetworkFailure(f"Failed to download {url}: {last_error}") from last_error

    async def _stream(self, url: str) -> bytes:
        """Stream a response body, enforcing the size cap."""
        chunks = []
        size = 0
        max_size = self.config.download.max_file_size

        async with self.client.stream("GET", url) as resp:
            resp.raise_for_status()

            content_length = resp.headers.get("content-length")
            if content_length and int(content_length) > max_size:
                raise NetworkFailure(f"File too large: {content_length} bytes")

            async for chunk in resp.aiter_bytes(chunk_size=65536):
                size += len(chunk)
                if size > max_size:
                    raise NetworkFailure(f"File exceeded max size during download: {size} bytes")
                chunks.append(chunk)

        return b"".join(chunks)

    async def fetch_json(self, url: str, source: str = "", rate: float = 0):
        content = await self.fetch_bytes(url, source, rate)
        try:
            return json.loads(content)
        except ValueError as e:
            raise NetworkFailure(f"Malformed JSON from {url}") from e
