from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from backend.app.config import load_settings
from backend.app.dependencies import get_ingestion_service
from backend.app.logging_config import configure_application_logging
from backend.app.services.news_client import NEWS_CATEGORIES, NewsSourceError

_COMMANDS_NEEDING_API_KEY: frozenset[str] = frozenset({"preview", "fetch"})


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run news ingestion jobs for Newsdesk from the command line.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    preview_parser = subparsers.add_parser(
        "preview", help="List articles from the news source without saving them."
    )
    fetch_parser = subparsers.add_parser(
        "fetch", help="Fetch articles, skip duplicates, and save the rest as posts."
    )
    for category_parser in (preview_parser, fetch_parser):
        category_parser.add_argument(
            "--category",
            default="tech",
            choices=NEWS_CATEGORIES,
            help="News category (default: tech).",
        )
        category_parser.add_argument(
            "--limit",
            type=int,
            default=10,
            help="Number of articles to request (1-100, default: 10).",
        )

    sweep_parser = subparsers.add_parser(
        "sweep", help="Delete the oldest ingested posts beyond the retention limit."
    )
    sweep_parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Ingested posts to keep (default: NEWSDESK_RETENTION_MAX_SOURCED_POSTS).",
    )

    backfill_parser = subparsers.add_parser(
        "backfill", help="Re-extract full content for posts saved with a placeholder body."
    )
    backfill_parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Posts to re-extract (default: NEWSDESK_CONTENT_BACKFILL_BATCH_SIZE).",
    )

    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        settings = load_settings(validate_api_key=args.command in _COMMANDS_NEEDING_API_KEY)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    configure_application_logging(settings)
    ingestion = get_ingestion_service()

    if args.command == "preview":
        try:
            response = ingestion.preview(args.category, args.limit)
        except NewsSourceError as exc:
            print(f"News source error: {exc}", file=sys.stderr)
            return 1
        print(f"Total results: {response.total_results}")
        for article in response.articles:
            print("\t".join([article.published_at or "-", article.source_name, article.title]))
        return 0

    if args.command == "fetch":
        try:
            result = ingestion.fetch_and_save(args.category, args.limit)
        except NewsSourceError as exc:
            print(f"News source error: {exc}", file=sys.stderr)
            return 1
        print(
            f"Fetched {result.total_fetched} articles: saved {result.saved_count}, "
            f"skipped {result.duplicates} duplicates, {len(result.errors)} errors."
        )
        for post in result.saved_posts:
            print(f"saved\t{post.slug}\t{post.source or '-'}")
        for error in result.errors:
            print(f"error\t{error.title}\t{error.error}")
        return 0

    if args.command == "sweep":
        deleted = ingestion.sweep_retention(args.limit)
        print(f"Deleted {deleted} ingested posts.")
        return 0

    if args.command == "backfill":
        updated = ingestion.backfill_content(args.limit)
        print(f"Updated {len(updated)} articles.")
        for post in updated:
            print(f"updated\t{post.post_id}\t{post.content_length}\t{post.title}")
        return 0

    raise RuntimeError(f"Unhandled command: {args.command}")


if __name__ == "__main__":
    raise SystemExit(main())
