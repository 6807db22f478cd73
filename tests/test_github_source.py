import json
import tempfile
import unittest

from bruno_catalog.config import AppConfig, GitHubConfig
from bruno_catalog.db import Database
from bruno_catalog.errors import FatalConfigurationError, NetworkFailure, QuotaExceeded
from bruno_catalog.models import Candidate
from bruno_catalog.sources import DiscoveryOptions, GitHubSource

TOP_GATE_QUERY = "filename:openapi.json stars:>=1000"


def spec_bytes(title):
    return json.dumps({"openapi": "3.0.0", "info": {"title": title, "version": "2.1.0"},
                       "paths": {}}).encode()


class FakeGitHubClient:
    """Serves canned search pages, repo info and file content."""

    def __init__(self, pages=None, stars=None, files=None, search_error=None):
        self.pages = pages or {}
        self.stars = stars or {}
        self.files = files or {}
        self.search_error = search_error
        self.searches = []
        self.repo_lookups = []

    async def search_code(self, query, page=1, per_page=100, sort="indexed"):
        self.searches.append((query, page))
        if self.search_error is not None:
            raise self.search_error
        pages = self.pages.get(query, [])
        items = pages[page - 1] if page <= len(pages) else []
        return {"items": items, "total_count": sum(len(p) for p in pages)}

    async def get_repo_info(self, owner, repo):
        self.repo_lookups.append(f"{owner}/{repo}")
        stars = self.stars.get(f"{owner}/{repo}", 5000)
        return {"popularity_score": stars, "description": f"{repo} description",
                "html_url": f"https://github.com/{owner}/{repo}", "name": repo,
                "full_name": f"{owner}/{repo}"}

    async def get_file_content(self, owner, repo, path):
        content = self.files.get(f"{owner}/{repo}/{path}", spec_bytes(f"{repo} API"))
        if isinstance(content, Exception):
            raise content
        return {"content": content,
                "download_url": f"https://raw.githubusercontent.com/{owner}/{repo}/main/{path}"}

    async def get_quota(self):
        return {"remaining": 30, "limit": 30, "reset": 0.0}

    async def close(self):
        pass


async def no_sleep(seconds):
    pass


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def make_source(client, token="test-token", db=None, sleep=no_sleep, **github):
    settings = dict(token=token, file_patterns=["openapi.json"], min_stars=1000,
                    item_delay=0, page_delay=0, pattern_delay=0)
    settings.update(github)
    config = AppConfig(github=GitHubConfig(**settings))
    return GitHubSource(config, db=db, sleep=sleep, client=client)


async def collect(source, options=None):
    return [item async for item in source.discover(options or DiscoveryOptions())]


class TestGitHubSource(unittest.IsolatedAsyncioTestCase):
    async def test_duplicate_hits_yield_one_item(self):
        hit = Candidate("acme", "api", "openapi.json")
        client = FakeGitHubClient(pages={TOP_GATE_QUERY: [[hit, Candidate("acme", "api", "openapi.json")]]})
        source = make_source(client)

        items = await collect(source)

        self.assertEqual(len(items), 1)
        self.assertEqual(source.session.duplicates, 1)
        self.assertEqual(client.repo_lookups, ["acme/api"])
        item = items[0]
        self.assertEqual(item.name, "api API")
        self.assertEqual(item.version, "2.1.0")
        self.assertEqual(item.source, "github-scrape")
        self.assertEqual(item.github_url, "https://github.com/acme/api")
        self.assertEqual(item.dedup_key, "acme/api/openapi.json")
        self.assertEqual(item.openapi_version, "3.0.0")

    async def test_hit_seen_under_a_higher_gate_is_not_emitted_again(self):
        shared = Candidate("acme", "shared", "openapi.json")
        client = FakeGitHubClient(pages={
            TOP_GATE_QUERY: [[shared]],
            "filename:openapi.json stars:100..999": [[Candidate("acme", "shared", "openapi.json"),
                                                      Candidate("acme", "fresh", "openapi.json")]],
        })
        source = make_source(client, min_stars=100)

        items = await collect(source)

        self.assertEqual([i.repo_name for i in items], ["shared", "fresh"])
        self.assertEqual(source.session.duplicates, 1)

    async def test_fixed_delays_follow_items_pages_and_patterns(self):
        hits = [Candidate("acme", "one", "openapi.json"), Candidate("acme", "two", "openapi.json")]
        sleep = RecordingSleep()
        source = make_source(FakeGitHubClient(pages={TOP_GATE_QUERY: [hits]}), sleep=sleep,
                             file_patterns=["openapi.json", "swagger.json"],
                             item_delay=1.5, page_delay=3, pattern_delay=7)

        items = await collect(source)

        self.assertEqual(len(items), 2)
        # second openapi.json page and the swagger.json search are empty
        self.assertEqual(sleep.calls, [1.5, 1.5, 3, 7])

    async def test_stops_at_max_results(self):
        hits = [Candidate("acme", f"api{i}", "openapi.json") for i in range(5)]
        source = make_source(FakeGitHubClient(pages={TOP_GATE_QUERY: [hits]}))

        items = await collect(source, DiscoveryOptions(max_results=2))

        self.assertEqual([i.repo_name for i in items], ["api0", "api1"])

    async def test_repos_below_threshold_are_skipped(self):
        hits = [Candidate("acme", "popular", "openapi.json"), Candidate("acme", "niche", "openapi.json")]
        client = FakeGitHubClient(pages={TOP_GATE_QUERY: [hits]}, stars={"acme/niche": 12})
        source = make_source(client)

        items = await collect(source)

        self.assertEqual([i.repo_name for i in items], ["popular"])
        self.assertEqual(source.session.below_threshold, 1)

    async def test_one_failing_candidate_does_not_stop_the_crawl(self):
        hits = [Candidate("acme", "broken", "openapi.json"), Candidate("acme", "fine", "openapi.json")]
        client = FakeGitHubClient(pages={TOP_GATE_QUERY: [hits]},
                                  files={"acme/broken/openapi.json": NetworkFailure("boom")})
        source = make_source(client)

        items = await collect(source)

        self.assertEqual([i.repo_name for i in items], ["fine"])
        self.assertEqual(source.session.errors, 1)

    async def test_pagination_stops_on_empty_page(self):
        page1 = [Candidate("acme", "a", "openapi.json")]
        page2 = [Candidate("acme", "b", "openapi.json")]
        client = FakeGitHubClient(pages={TOP_GATE_QUERY: [page1, page2]})
        source = make_source(client)

        items = await collect(source)

        self.assertEqual(len(items), 2)
        self.assertEqual(client.searches, [(TOP_GATE_QUERY, 1), (TOP_GATE_QUERY, 2), (TOP_GATE_QUERY, 3)])

    async def test_yaml_content_is_passed_on_as_raw_text(self):
        hit = Candidate("acme", "api", "openapi.json")
        client = FakeGitHubClient(pages={TOP_GATE_QUERY: [[hit]]},
                                  files={"acme/api/openapi.json": b"openapi: 3.0.0\ninfo: {}\n"})
        items = await collect(make_source(client))

        self.assertIsNone(items[0].spec)
        self.assertIn("openapi: 3.0.0", items[0].raw_text)
        self.assertEqual(items[0].name, "api")

    async def test_exhausted_quota_abandons_sub_query(self):
        client = FakeGitHubClient(search_error=QuotaExceeded("limited"))
        source = make_source(client, max_retries=2)

        items = await collect(source)

        self.assertEqual(items, [])
        self.assertEqual(source.session.aborted_queries, 1)
        self.assertEqual(len(client.searches), 2)

    async def test_already_cataloged_files_are_skipped(self):
        with tempfile.TemporaryDirectory() as tmp:
            db = Database(f"{tmp}/catalog.db")
            db.save_api({"id": "existing", "name": "Acme", "repo_owner": "acme",
                         "repo_name": "api", "file_path": "openapi.json"})
            client = FakeGitHubClient(pages={TOP_GATE_QUERY: [[Candidate("acme", "api", "openapi.json")]]})
            source = make_source(client, db=db)

            items = await collect(source)
            db.close()

        self.assertEqual(items, [])
        self.assertEqual(source.session.already_cataloged, 1)
        self.assertEqual(client.repo_lookups, [])

    def test_missing_token_is_fatal(self):
        source = make_source(FakeGitHubClient(), token="")
        with self.assertRaises(FatalConfigurationError):
            source.validate()


if __name__ == "__main__":
    unittest.main()
