import io
import shutil
import tempfile
import unittest
from contextlib import redirect_stdout

from bruno_catalog.db import Database
from bruno_catalog.main import build_parser, options_from_args, show_stats
from bruno_catalog.models import RunStatus, ScrapeRun, utcnow


class TestCli(unittest.TestCase):
    def test_github_options(self):
        args = build_parser().parse_args(["--min-stars", "50", "--max-results", "20", "--max-apis", "3"])
        options = options_from_args(args)
        self.assertEqual((options.min_stars, options.max_results, options.skip_existing), (50, 20, True))

    def test_apisguru_uses_max_apis(self):
        args = build_parser().parse_args(["--source", "apisguru", "--max-apis", "3", "--no-skip-existing"])
        options = options_from_args(args)
        self.assertEqual((options.max_results, options.skip_existing), (3, False))

    def test_regenerate_docs_flag(self):
        parser = build_parser()
        self.assertEqual(parser.parse_args(["--regenerate-docs"]).regenerate_docs, "")
        self.assertEqual(parser.parse_args(["--regenerate-docs", "abc"]).regenerate_docs, "abc")
        self.assertIsNone(parser.parse_args([]).regenerate_docs)

    def test_show_stats(self):
        tmp = tempfile.mkdtemp()
        try:
            db = Database(f"{tmp}/catalog.db")
            db.save_api({"id": "a", "name": "Alpha", "source": "apis-guru"})
            db.add_tag_to_api("a", db.get_or_create_tag("Finance")["id"])
            db.create_scrape_run(ScrapeRun(source="apisguru", started_at=utcnow(), status=RunStatus.RUNNING))

            out = io.StringIO()
            with redirect_stdout(out):
                show_stats(db)
            db.close()
        finally:
            shutil.rmtree(tmp, ignore_errors=True)

        text = out.getvalue()
        self.assertIn("apis-guru", text)
        self.assertIn("Finance", text)
        self.assertIn("running", text)


if __name__ == "__main__":
    unittest.main()
