"""GitHub code search crawler for OpenAPI/Swagger files.

Crawl order: filename pattern -> popularity gate -> result page -> hit.
Every search goes through the session's QuotaTracker; every hit is checked
against the session's DedupIndex before any repo-info or content request.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from ..config import AppConfig
from ..db import Database
from ..dedup import DedupIndex, dedup_key
from ..downloader import Downloader
from ..errors import FatalConfigurationError, NetworkFailure, QuotaExceeded, SearchAborted
from ..github_api import GitHubClient
from ..models import Candidate, DiscoveredItem, SubQuery
from ..normalizer import spec_version_of
from ..partitioner import DEFAULT_GATES, partition, validate_gates
from ..quota import QuotaTracker
from .base import BaseSource, DiscoveryOptions

logger = logging.getLogger("bruno_catalog")

SEARCH_RESULT_CAP_PAGES = 10


@dataclass
class CrawlSession:
    """State for one crawl run. Built fresh by every ``discover`` call."""

    quota: QuotaTracker
    dedup: DedupIndex = field(default_factory=DedupIndex)
    accepted: int = 0
    seen: int = 0
    duplicates: int = 0
    already_cataloged: int = 0
    below_threshold: int = 0
    errors: int = 0
    pages: int = 0
    aborted_queries: int = 0

    def summary(self) -> str:
        return (f"{self.accepted} accepted, {self.seen} hits seen, {self.duplicates} duplicates, "
                f"{self.already_cataloged} already cataloged, {self.below_threshold} below threshold, "
                f"{self.errors} errors, {self.aborted_queries} aborted queries, {self.pages} pages")


class GitHubSource(BaseSource):
    name = "github"

    def __init__(self, config: AppConfig, db: Optional[Database] = None,
                 downloader: Optional[Downloader] = None, sleep=None,
                 client: Optional[GitHubClient] = None):
        super().__init__(config, db, downloader, sleep)
        self.client = client or GitHubClient(config)
        self.session: Optional[CrawlSession] = None

    def validate(self):
        if not self.config.github.token:
            raise FatalConfigurationError("GitHub token not configured (set GITHUB_TOKEN)")
        validate_gates(self.config.github.gates or DEFAULT_GATES)

    def new_session(self) -> CrawlSession:
        gh = self.config.github
        return CrawlSession(quota=QuotaTracker(
            self.client,
            threshold=gh.quota_threshold,
            buffer_seconds=gh.quota_buffer,
            max_retries=gh.max_retries,
            sleep=self._sleep,
        ))

    async def close(self):
        await self.client.close()

    async def discover(self, options: DiscoveryOptions) -> AsyncIterator[DiscoveredItem]:
        gh = self.config.github
        min_score = gh.min_stars if options.min_stars is None else options.min_stars
        max_results = gh.max_results if options.max_results is None else options.max_results
        max_pages = min(gh.max_pages, SEARCH_RESULT_CAP_PAGES)

        session = self.new_session()
        self.session = session
        sub_queries = partition(gh.file_patterns, min_score, gh.gates)

        logger.info(f"[{self.name}] Starting search for OpenAPI specs "
                    f"(min stars: {min_score}, max results: {max_results}, "
                    f"{len(sub_queries)} sub-queries)")

        previous_pattern = None
        for sub_query in sub_queries:
            if session.accepted >= max_results:
                logger.info(f"[{self.name}] Reached max results ({max_results}), stopping")
                break
            if previous_pattern is not None and sub_query.pattern != previous_pattern:
                await session.quota.pause(gh.pattern_delay)
            previous_pattern = sub_query.pattern

            async for item in self._crawl_query(session, sub_query, min_score, max_results, max_pages):
                yield item

        logger.info(f"[{self.name}] Search complete: {session.summary()}")

    async def _crawl_query(self, session: CrawlSession, sub_query: SubQuery, min_score: int,
                           max_results: int, max_pages: int) -> AsyncIterator[DiscoveredItem]:
        gh = self.config.github
        logger.info(f"[{self.name}] Searching: {sub_query.query}")

        for page in range(1, max_pages + 1):
            if session.accepted >= max_results:
                return

            await session.quota.check_and_wait()
            try:
                result = await session.quota.call_with_retry(
                    self.client.search_code, sub_query.query, page, gh.per_page, "indexed"
                )
            except SearchAborted as e:
                session.aborted_queries += 1
                logger.error(f"[{self.name}] Abandoning '{sub_query.query}' at page {page}: {e}")
                return
            except NetworkFailure as e:
                session.errors += 1
                logger.error(f"[{self.name}] Search failed for '{sub_query.query}' page {page}: {e}")
                return

            session.pages += 1
            hits = result["items"]
            logger.info(f"[{self.name}] Page {page}: {len(hits)} files "
                        f"(total reported: {result['total_count']})")
            if not hits:
                return

            for hit in hits:
                if session.accepted >= max_results:
                    return
                item = await self._accept(session, hit, min_score)
                if item is None:
                    continue
                yield item
                await session.quota.pause(gh.item_delay)

            await session.quota.pause(gh.page_delay)

    async def _accept(self, session: CrawlSession, hit: Candidate,
                      min_score: int) -> Optional[DiscoveredItem]:
        """Enrich one hit into a DiscoveredItem, or None if it is skipped."""
        session.seen += 1
        key = dedup_key(hit.owner, hit.repo_name, hit.path)
        if session.dedup.has(key):
            session.duplicates += 1
            logger.debug(f"[{self.name}] Skipping duplicate: {key}")
            return None
        if self.db is not None and self.db.source_file_exists(hit.owner, hit.repo_name, hit.path):
            session.already_cataloged += 1
            logger.debug(f"[{self.name}] Already cataloged: {key}")
            return None

        try:
            repo = await self.client.get_repo_info(hit.owner, hit.repo_name)
            # Gates only narrow the search; the configured threshold is the real filter.
            if repo["popularity_score"] < min_score:
                session.below_threshold += 1
                logger.debug(f"[{self.name}] Skipping {repo['full_name']} "
                             f"({repo['popularity_score']} stars < {min_score})")
                return None
            file = await self.client.get_file_content(hit.owner, hit.repo_name, hit.path)
        except (NetworkFailure, QuotaExceeded) as e:
            session.errors += 1
            logger.error(f"[{self.name}] Error processing {key}: {e}")
            return None

        text = file["content"].decode("utf-8", errors="replace")
        spec, raw_text = None, None
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            spec = parsed
        else:
            # Possibly YAML; the normalizer gets another go at it.
            raw_text = text

        info = spec.get("info") if spec and isinstance(spec.get("info"), dict) else {}
        item = DiscoveredItem(
            name=str(info.get("title") or repo["name"]),
            description=str(info.get("description") or repo["description"] or ""),
            version=str(info.get("version") or "1.0.0"),
            source="github-scrape",
            source_url=file["download_url"],
            download_url=file["download_url"],
            github_url=repo["html_url"],
            popularity_score=repo["popularity_score"],
            spec=spec,
            raw_text=raw_text,
            repo_owner=hit.owner,
            repo_name=hit.repo_name,
            file_path=hit.path,
            openapi_version=(spec_version_of(spec) if spec else "") or "",
        )

        session.dedup.add(key)
        session.accepted += 1
        logger.info(f"[{self.name}] Added {repo['full_name']}/{os.path.basename(hit.path)} "
                    f"({repo['popularity_score']} stars)")
        return item
