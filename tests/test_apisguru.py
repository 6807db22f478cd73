import tempfile
import unittest

from bruno_catalog.config import AppConfig, APIsGuruConfig
from bruno_catalog.db import Database
from bruno_catalog.sources import APIsGuruSource, DiscoveryOptions
from bruno_catalog.sources.apisguru import flatten

API_LIST = {
    "1forge.com": {
        "preferred": "0.0.1",
        "versions": {"0.0.1": {
            "info": {
                "title": "1Forge Finance APIs",
                "description": "Stock and Forex Data",
                "version": "0.0.1",
                "x-logo": {"url": "https://api.apis.guru/v2/cache/logo/1forge.svg"},
                "x-origin": [{"url": "http://1forge.com/openapi.json", "format": "swagger"}],
                "x-providerName": "1forge.com",
                "x-apisguru-categories": ["financial"],
            },
            "swaggerUrl": "https://api.apis.guru/v2/specs/1forge.com/0.0.1/swagger.json",
            "openapiVer": "2.0",
        }},
    },
    "adyen.com:CheckoutService": {
        "preferred": "70",
        "versions": {"70": {
            "info": {"title": "Adyen Checkout API", "version": "70"},
            "swaggerUrl": "https://api.apis.guru/v2/specs/adyen.com/CheckoutService/70/openapi.json",
            "openapiVer": "3.1.0",
        }},
    },
    "broken.example": {"preferred": "2", "versions": {"1": {"info": {"title": "Old"}}}},
    "nourl.example": {"preferred": "1", "versions": {"1": {"info": {"title": "No URL"}}}},
}


class FakeDownloader:
    def __init__(self, payload):
        self.payload = payload
        self.urls = []

    async def fetch_json(self, url, source="", rate=0):
        self.urls.append(url)
        return self.payload

    async def close(self):
        pass


async def no_sleep(seconds):
    pass


class TestFlatten(unittest.TestCase):
    def test_preferred_versions_are_flattened(self):
        items = flatten(API_LIST)
        self.assertEqual([i.name for i in items], ["1Forge Finance APIs", "Adyen Checkout API"])

        forge = items[0]
        self.assertEqual(forge.source, "apis-guru")
        self.assertEqual(forge.version, "0.0.1")
        self.assertEqual(forge.source_url, "http://1forge.com/openapi.json")
        self.assertEqual(forge.download_url, API_LIST["1forge.com"]["versions"]["0.0.1"]["swaggerUrl"])
        self.assertEqual(forge.provider, "1forge.com")
        self.assertEqual(forge.categories, ("financial",))
        self.assertEqual(forge.logo_url, "https://api.apis.guru/v2/cache/logo/1forge.svg")
        self.assertEqual(forge.popularity_score, 0)

    def test_defaults_for_sparse_entries(self):
        adyen = flatten(API_LIST)[1]
        self.assertEqual(adyen.source_url, adyen.download_url)
        self.assertEqual(adyen.provider, "adyen.com:CheckoutService")
        self.assertIsNone(adyen.logo_url)
        self.assertEqual(adyen.openapi_version, "3.1.0")


class TestAPIsGuruSource(unittest.IsolatedAsyncioTestCase):
    def make_source(self, db=None):
        config = AppConfig(apisguru=APIsGuruConfig(delay=0))
        downloader = FakeDownloader(API_LIST)
        return APIsGuruSource(config, db=db, downloader=downloader, sleep=no_sleep), downloader

    async def test_discover_fetches_list_once(self):
        source, downloader = self.make_source()
        items = [i async for i in source.discover(DiscoveryOptions())]
        self.assertEqual(len(items), 2)
        self.assertEqual(downloader.urls, ["https://api.apis.guru/v2/list.json"])

    async def test_existing_entries_are_skipped_before_limit(self):
        with tempfile.TemporaryDirectory() as tmp:
            db = Database(f"{tmp}/catalog.db")
            db.save_api({"id": "x", "name": "1Forge Finance APIs", "version": "0.0.1"})
            source, _ = self.make_source(db)

            items = [i async for i in source.discover(DiscoveryOptions(max_results=1))]
            everything = [i async for i in source.discover(DiscoveryOptions(skip_existing=False))]
            db.close()

        self.assertEqual([i.name for i in items], ["Adyen Checkout API"])
        self.assertEqual(len(everything), 2)


if __name__ == "__main__":
    unittest.main()
