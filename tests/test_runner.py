import shutil
import sqlite3
import tempfile
import unittest

from bruno_catalog.config import AppConfig, GitHubConfig
from bruno_catalog.db import Database
from bruno_catalog.errors import FatalConfigurationError, SearchAborted
from bruno_catalog.models import DiscoveredItem, RunStatus
from bruno_catalog.pipeline import ConversionPipeline
from bruno_catalog.runner import BatchRunner
from bruno_catalog.sources import BaseSource, DiscoveryOptions, GitHubSource


def spec(title, description=""):
    return {"openapi": "3.0.0", "info": {"title": title, "description": description},
            "paths": {"/ping": {"get": {"summary": "Ping"}}}}


class LockedDatabase(Database):
    """Rejects writes for one API name as a busy SQLite file would."""

    def __init__(self, path, locked_name):
        super().__init__(path)
        self.locked_name = locked_name

    def save_api(self, api: dict):
        if api["name"] == self.locked_name:
            raise sqlite3.OperationalError("database is locked")
        return super().save_api(api)


class ListSource(BaseSource):
    name = "list"

    def __init__(self, config, items, fail_after=None):
        super().__init__(config)
        self.items = items
        self.fail_after = fail_after

    async def discover(self, options: DiscoveryOptions):
        for i, item in enumerate(self.items):
            if self.fail_after is not None and i == self.fail_after:
                raise SearchAborted("search backend gone")
            yield item


class TestBatchRunner(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.config = AppConfig(data_dir=self.tmp, db_path=f"{self.tmp}/catalog.db")
        self.db = Database(self.config.db_path)
        self.runner = BatchRunner(self.config, self.db, ConversionPipeline(self.config))

    def tearDown(self):
        self.db.close()
        shutil.rmtree(self.tmp, ignore_errors=True)

    def items(self):
        return [
            DiscoveredItem(name="Stripe", source="github-scrape", download_url="",
                           spec=spec("Stripe", "Payment processing"), popularity_score=4000),
            DiscoveredItem(name="Broken", source="github-scrape", download_url="",
                           raw_text="definitely not openapi"),
            DiscoveredItem(name="Weather", source="apis-guru", download_url="",
                           spec=spec("Weather"), categories=("open_data",)),
        ]

    async def test_one_bad_item_does_not_stop_the_batch(self):
        run = await self.runner.run(ListSource(self.config, self.items()))

        self.assertEqual(run.status, RunStatus.COMPLETED)
        self.assertEqual((run.items_found, run.items_processed, run.items_failed), (3, 2, 1))
        self.assertEqual(run.errors[0]["item"], "Broken")

        record = self.db.get_scrape_run(run.id)
        self.assertEqual(record["status"], "completed")
        self.assertEqual(record["source"], "list")
        self.assertEqual((record["items_found"], record["items_processed"], record["items_failed"]), (3, 2, 1))
        self.assertIsNotNone(record["completed_at"])

    async def test_successful_items_are_cataloged_with_tags(self):
        items = self.items()
        await self.runner.run(ListSource(self.config, items))

        stripe = self.db.get_api(items[0].id)
        self.assertEqual(stripe["stars"], 4000)
        self.assertTrue(stripe["collection_path"].endswith(items[0].id))
        self.assertIn("Payments", self.db.get_api_tags(items[0].id))
        self.assertEqual(self.db.get_api_tags(items[2].id), ["open_data"])
        self.assertIsNone(self.db.get_api(items[1].id))

    async def test_aborted_discovery_keeps_partial_results(self):
        run = await self.runner.run(ListSource(self.config, self.items(), fail_after=1))

        self.assertEqual(run.status, RunStatus.FAILED)
        self.assertEqual(run.items_processed, 1)
        record = self.db.get_scrape_run(run.id)
        self.assertEqual(record["status"], "failed")
        self.assertIn("search backend gone", record["error"])
        self.assertEqual(self.db.count_apis(), 1)

    async def test_unserializable_yaml_is_an_item_failure(self):
        dated = DiscoveredItem(
            name="Dated", source="github-scrape", download_url="", file_path="openapi.yaml",
            raw_text="openapi: 3.0.0\ninfo:\n  title: Dated\npaths: {}\nx-changelog:\n  2021-01-01: first\n",
        )
        good = DiscoveredItem(name="Weather", source="apis-guru", download_url="", spec=spec("Weather"))

        run = await self.runner.run(ListSource(self.config, [dated, good]))

        self.assertEqual(run.status, RunStatus.COMPLETED)
        self.assertEqual((run.items_found, run.items_processed, run.items_failed), (2, 1, 1))
        self.assertEqual(run.errors[0]["item"], "Dated")
        self.assertIsNotNone(self.db.get_api(good.id))

    async def test_catalog_write_failure_is_an_item_failure(self):
        db = LockedDatabase(f"{self.tmp}/locked.db", locked_name="Stripe")
        runner = BatchRunner(self.config, db, ConversionPipeline(self.config))
        items = self.items()
        try:
            run = await runner.run(ListSource(self.config, items))

            self.assertEqual(run.status, RunStatus.COMPLETED)
            self.assertEqual((run.items_found, run.items_processed, run.items_failed), (3, 1, 2))
            self.assertIn("database is locked", run.errors[0]["error"])
            self.assertIsNone(db.get_api(items[0].id))
            self.assertIsNotNone(db.get_api(items[2].id))
            self.assertEqual(db.get_scrape_run(run.id)["items_failed"], 2)
        finally:
            db.close()

    async def test_missing_token_fails_before_any_run_record(self):
        config = AppConfig(data_dir=self.tmp, github=GitHubConfig(token=""))
        runner = BatchRunner(config, self.db, ConversionPipeline(config))

        with self.assertRaises(FatalConfigurationError):
            await runner.run(GitHubSource(config, self.db))
        self.assertIsNone(self.db.get_latest_scrape_run())

    async def test_regenerate_docs(self):
        items = self.items()
        await self.runner.run(ListSource(self.config, items))

        self.assertEqual(self.runner.regenerate_docs(), {"regenerated": 2, "failed": 0})
        self.assertEqual(self.runner.regenerate_docs(items[0].id), {"regenerated": 1, "failed": 0})
        self.assertEqual(self.runner.regenerate_docs("unknown"), {"regenerated": 0, "failed": 0})


if __name__ == "__main__":
    unittest.main()
