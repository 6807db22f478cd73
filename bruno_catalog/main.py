"""CLI entry point and orchestrator."""

import argparse
import asyncio
import sys

from .config import load_config
from .db import Database
from .downloader import Downloader
from .errors import FatalConfigurationError
from .logger import setup_logger
from .models import RunStatus
from .pipeline import ConversionPipeline
from .runner import BatchRunner
from .sources import ALL_SOURCES, DiscoveryOptions, create_source


async def run_source(config, db, source_name, options: DiscoveryOptions):
    """Discover, convert and catalog everything one source yields."""
    downloader = Downloader(config)
    pipeline = ConversionPipeline(config, downloader)
    source = create_source(source_name, config, db, downloader)
    runner = BatchRunner(config, db, pipeline)

    print(f"\n{'='*60}")
    print(f"  Source: {source_name}")
    print(f"{'='*60}")

    try:
        return await runner.run(source, options)
    finally:
        await source.close()
        await pipeline.close()


def run_regenerate_docs(config, db, api_id=None):
    runner = BatchRunner(config, db, ConversionPipeline(config))
    config.ensure_dirs()
    return runner.regenerate_docs(api_id)


def show_stats(db):
    """Display catalog and last-run statistics."""
    stats = db.get_stats()

    print("\n" + "=" * 60)
    print("  CATALOG STATISTICS")
    print("=" * 60)
    print(f"{'Source':<30} {'APIs':>10}")
    print("-" * 60)
    for source, count in stats["sources"].items():
        print(f"{source:<30} {count:>10}")
    print("-" * 60)
    print(f"{'TOTAL':<30} {stats['total_apis']:>10}")
    print(f"{'Tags':<30} {stats['total_tags']:>10}")

    tags = [t for t in db.list_tags() if t["api_count"]]
    if tags:
        print("\n" + "=" * 60)
        print("  TAGS")
        print("=" * 60)
        for tag in sorted(tags, key=lambda t: -t["api_count"]):
            print(f"{tag['name']:<30} {tag['api_count']:>10}")

    run = stats["latest_scrape_run"]
    if run:
        print("\n" + "=" * 60)
        print("  LATEST RUN")
        print("=" * 60)
        print(f"{'Run':<12} {run['id']}")
        print(f"{'Source':<12} {run['source']}")
        print(f"{'Status':<12} {run['status']}")
        print(f"{'Started':<12} {run['started_at']}")
        print(f"{'Completed':<12} {run['completed_at'] or '-'}")
        print(f"{'Found':<12} {run['items_found']}")
        print(f"{'Processed':<12} {run['items_processed']}")
        print(f"{'Failed':<12} {run['items_failed']}")
        if run["error"]:
            print(f"{'Error':<12} {run['error']}")

    print()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Bruno API Catalog")
    parser.add_argument("--source", type=str, default="github",
                        choices=list(ALL_SOURCES.keys()),
                        help="Discovery source to run")
    parser.add_argument("--min-stars", type=int, default=None,
                        help="Minimum repository stars for GitHub results")
    parser.add_argument("--max-results", type=int, default=None,
                        help="Maximum number of GitHub results to accept")
    parser.add_argument("--max-apis", type=int, default=None,
                        help="Maximum number of APIs.guru entries to import")
    parser.add_argument("--no-skip-existing", action="store_true",
                        help="Re-import APIs already in the catalog")
    parser.add_argument("--regenerate-docs", nargs="?", const="", default=None,
                        metavar="API_ID",
                        help="Re-render docs for one API, or all APIs if no id is given")
    parser.add_argument("--stats", action="store_true",
                        help="Show catalog statistics")
    parser.add_argument("--config", type=str, default="config.yaml",
                        help="Path to config file")
    return parser


def options_from_args(args) -> DiscoveryOptions:
    max_results = args.max_apis if args.source == "apisguru" else args.max_results
    return DiscoveryOptions(
        min_stars=args.min_stars,
        max_results=max_results,
        skip_existing=not args.no_skip_existing,
    )


def main(argv=None):
    args = build_parser().parse_args(argv)

    config = load_config(args.config)
    setup_logger(config.log_dir)
    db = Database(config.db_path)

    try:
        if args.stats:
            show_stats(db)
            return

        if args.regenerate_docs is not None:
            result = run_regenerate_docs(config, db, args.regenerate_docs or None)
            print(f"Regenerated {result['regenerated']} docs, {result['failed']} failed")
            return

        print("Bruno API Catalog")
        print(f"Data directory: {config.data_dir}")
        print(f"Database: {config.db_path}")

        try:
            run = asyncio.run(run_source(config, db, args.source, options_from_args(args)))
        except FatalConfigurationError as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            sys.exit(2)

        show_stats(db)
        if run.status == RunStatus.FAILED:
            sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
