"""Async GitHub REST client: code search, repo info, file content, quota status."""

import base64
import binascii
import logging
from typing import Optional
from urllib.parse import quote

import httpx

from .config import AppConfig
from .errors import NetworkFailure, QuotaExceeded
from .models import Candidate

logger = logging.getLogger("bruno_catalog")


def is_rate_limited(resp: httpx.Response) -> bool:
    if resp.status_code == 429:
        return True
    if resp.status_code != 403:
        return False
    if resp.headers.get("x-ratelimit-remaining") == "0":
        return True
    return "rate limit" in resp.text.lower()


class GitHubClient:
    def __init__(self, config: AppConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {
                "Accept": "application/vnd.github+json",
                "User-Agent": self.config.download.user_agent,
            }
            if self.config.github.token:
                headers["Authorization"] = f"Bearer {self.config.github.token}"
            self._client = httpx.AsyncClient(
                base_url=self.config.github.api_base,
                timeout=httpx.Timeout(self.config.download.timeout, connect=10),
                follow_redirects=True,
                headers=headers,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _get_json(self, path: str, params: dict = None) -> dict:
        try:
            resp = await self.client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise NetworkFailure(f"Timed out fetching {path}") from e
        except httpx.RequestError as e:
            raise NetworkFailure(f"Request error fetching {path}: {e}") from e

        if is_rate_limited(resp):
            reset = resp.headers.get("x-ratelimit-reset")
            raise QuotaExceeded(
                f"GitHub API rate limit exceeded for {path}",
                reset_at=float(reset) if reset else None,
            )
        if resp.is_error:
            raise NetworkFailure(f"GitHub API HTTP {resp.status_code} for {path}")

        try:
            data = resp.json()
        except ValueError as e:
            raise NetworkFailure(f"Malformed JSON from {path}") from e
        if not isinstance(data, dict):
            raise NetworkFailure(f"Unexpected payload from {path}")
        return data

    async def search_code(self, query: str, page: int = 1, per_page: int = 100,
                          sort: str = "indexed") -> dict:
        """Returns {"items": [Candidate, ...], "total_count": int}."""
        data = await self._get_json("/search/code", params={
            "q": query, "page": page, "per_page": per_page, "sort": sort,
        })

        items = []
        for rank, hit in enumerate(data.get("items") or [], start=1):
            repo = hit.get("repository") or {}
            owner = (repo.get("owner") or {}).get("login")
            if not owner or not repo.get("name") or not hit.get("path"):
                logger.debug(f"Skipping malformed search hit: {hit!r}")
                continue
            items.append(Candidate(
                owner=owner,
                repo_name=repo["name"],
                path=hit["path"],
                search_rank=(page - 1) * per_page + rank,
            ))
        return {"items": items, "total_count": data.get("total_count", 0)}

    async def get_repo_info(self, owner: str, repo: str) -> dict:
        data = await self._get_json(f"/repos/{owner}/{repo}")
        try:
            stars = int(data.get("stargazers_count") or 0)
        except (TypeError, ValueError) as e:
            raise NetworkFailure(f"Unexpected stargazers_count for {owner}/{repo}") from e
        return {
            "popularity_score": stars,
            "description": data.get("description") or "",
            "html_url": data.get("html_url") or f"https://github.com/{owner}/{repo}",
            "name": data.get("name") or repo,
            "full_name": data.get("full_name") or f"{owner}/{repo}",
        }

    async def get_file_content(self, owner: str, repo: str, path: str) -> dict:
        """Returns {"content": bytes, "download_url": str}."""
        data = await self._get_json(f"/repos/{owner}/{repo}/contents/{quote(path)}")

        size = data.get("size") or 0
        if not isinstance(size, int):
            raise NetworkFailure(f"Unexpected size for {owner}/{repo}/{path}")
        if size > self.config.download.max_file_size:
            raise NetworkFailure(f"File too large: {size} bytes")

        encoded = data.get("content")
        if encoded is None:
            raise NetworkFailure(f"No content returned for {owner}/{repo}/{path}")
        try:
            content = base64.b64decode(encoded)
        except (binascii.Error, ValueError) as e:
            raise NetworkFailure(f"Undecodable content for {owner}/{repo}/{path}") from e

        return {"content": content, "download_url": data.get("download_url") or ""}

    async def get_quota(self) -> dict:
        data = await self._get_json("/rate_limit")
        search = (data.get("resources") or {}).get("search") or {}
        try:
            return {
                "remaining": int(search.get("remaining", 0)),
                "limit": int(search.get("limit", 0)),
                "reset": float(search.get("reset", 0)),
            }
        except (TypeError, ValueError) as e:
            raise NetworkFailure("Unexpected /rate_limit payload") from e
