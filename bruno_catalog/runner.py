"""Batch runner: drive a source through the conversion pipeline and record the run."""

import logging
import sqlite3
from typing import Dict, Optional

from .categorize import Categorizer
from .config import AppConfig
from .db import Database
from .errors import CatalogError, ErrorKind
from .models import ConversionResult, DiscoveredItem, RunStatus, ScrapeRun, utcnow
from .pipeline import ConversionPipeline
from .sources.base import BaseSource, DiscoveryOptions

logger = logging.getLogger("bruno_catalog")


class BatchRunner:
    def __init__(self, config: AppConfig, db: Database, pipeline: ConversionPipeline,
                 categorizer: Optional[Categorizer] = None):
        self.config = config
        self.db = db
        self.pipeline = pipeline
        self.categorizer = categorizer or Categorizer(config.categories)

    def start(self, source: BaseSource) -> ScrapeRun:
        """Validate configuration and create the run record in ``running`` state.

        Raises FatalConfigurationError before anything is recorded.
        """
        source.validate()
        self.config.ensure_dirs()

        run = ScrapeRun(source=source.name, started_at=utcnow(), status=RunStatus.RUNNING)
        self.db.create_scrape_run(run)
        return run

    async def run(self, source: BaseSource, options: Optional[DiscoveryOptions] = None,
                  run: Optional[ScrapeRun] = None) -> ScrapeRun:
        options = options or DiscoveryOptions()
        if run is None:
            run = self.start(source)

        logger.info(f"=== Starting scrape run {run.id} ({source.name}) ===")
        status = RunStatus.FAILED
        error = None
        try:
            async for item in source.discover(options):
                run.items_found += 1
                self.db.update_scrape_run(run.id, items_found=run.items_found)

                result = await self.pipeline.process(item)
                self._record(run, item, result)
            status = RunStatus.COMPLETED
        except CatalogError as e:
            error = str(e)
            logger.error(f"Scrape run {run.id} aborted: {e}")
        finally:
            run.status = status
            run.completed_at = utcnow()
            self.db.update_scrape_run(
                run.id,
                status=status,
                completed_at=run.completed_at,
                items_found=run.items_found,
                items_processed=run.items_processed,
                items_failed=run.items_failed,
                error=error,
            )
            logger.info(f"=== Scrape run {run.id} {status.value} ===")
            logger.info(f"Found {run.items_found}, processed {run.items_processed}, "
                        f"failed {run.items_failed}")
            for failure in run.errors:
                logger.info(f"  - {failure['item']}: {failure['error']}")

        return run

    def _record(self, run: ScrapeRun, item: DiscoveredItem, result: ConversionResult):
        if result.success:
            try:
                self.persist(item, result)
            except sqlite3.Error as e:
                result.success = False
                result.failed_stage = "persist"
                result.error_kind = ErrorKind.STORAGE.value
                result.error_message = f"persist: {e}"
                logger.error(f"✗ Error cataloging {item.name}: {e}")
        if result.success:
            run.items_processed += 1
        else:
            run.items_failed += 1
            run.errors.append({"item": item.name, "error": result.error_message})
        self.db.update_scrape_run(
            run.id, items_processed=run.items_processed, items_failed=run.items_failed
        )

    def persist(self, item: DiscoveredItem, result: ConversionResult):
        self.db.save_api({
            "id": item.id,
            "name": item.name,
            "description": item.description,
            "version": item.version,
            "source": item.source,
            "source_url": item.source_url,
            "github_url": item.github_url,
            "openapi_url": item.download_url,
            "openapi_path": result.openapi_path,
            "collection_path": result.collection_path,
            "docs_path": result.docs_path,
            "stars": item.popularity_score,
            "repo_owner": item.repo_owner,
            "repo_name": item.repo_name,
            "file_path": item.file_path,
            "provider": item.provider,
            "logo_url": item.logo_url,
            "openapi_version": item.openapi_version,
        })
        for tag_name in self.categorizer.tags_for(item.name, item.description, item.categories):
            tag = self.db.get_or_create_tag(tag_name)
            self.db.add_tag_to_api(item.id, tag["id"])

    def regenerate_docs(self, api_id: Optional[str] = None) -> Dict[str, int]:
        """Re-render docs for one API or the whole catalog from stored collections."""
        if api_id:
            api = self.db.get_api(api_id)
            apis = [api] if api else []
        else:
            apis = self.db.list_apis(limit=100000)

        logger.info(f"Regenerating docs for {len(apis)} API(s)...")
        stats = {"regenerated": 0, "failed": 0}
        for api in apis:
            result = self.pipeline.regenerate_docs(api)
            if result.success:
                self.db.update_docs_path(api["id"], result.docs_path)
                stats["regenerated"] += 1
            else:
                stats["failed"] += 1

        logger.info(f"Regenerated: {stats['regenerated']}, failed: {stats['failed']}")
        return stats
