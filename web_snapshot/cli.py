"""Command-line entry point for archiving and comparing website snapshots."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, Sequence

from .config import (
    ArchiveConfig,
    BudgetPolicy,
    CrawlConfig,
    LocalizeConfig,
    default_archive_root,
)
from .differ import DiffOptions, HeadingMatch
from .errors import SnapshotError
from .snapshots import archive, compare, list_snapshots

logger = logging.getLogger("web_snapshot.cli")


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--output",
        default=None,
        type=Path,
        help="Archive root directory (default: $WEB_SNAPSHOT_ARCHIVE_ROOT or ./archives)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_archive_arguments(parser: argparse.ArgumentParser) -> None:
    defaults = CrawlConfig()
    parser.add_argument("url", help="Absolute URL of the entry page to capture")
    parser.add_argument(
        "--depth",
        type=int,
        default=1,
        help="How many links away from the entry page to follow (default: 1)",
    )
    parser.add_argument(
        "--max-pages",
        type=int,
        default=defaults.max_pages,
        help="Stop after this many pages have been captured",
    )
    parser.add_argument(
        "--page-bytes",
        type=int,
        default=defaults.per_page_byte_limit,
        help="Skip pages whose body is larger than this many bytes",
    )
    parser.add_argument(
        "--budget-bytes",
        type=int,
        default=defaults.total_byte_budget,
        help="Stop crawling once the captured pages reach this many bytes",
    )
    parser.add_argument(
        "--budget-policy",
        choices=[policy.value for policy in BudgetPolicy],
        default=defaults.budget_policy.value,
        help="Reject the page that would exceed the budget, or keep it and stop",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=defaults.request_timeout,
        help="Per-request timeout in seconds",
    )
    parser.add_argument(
        "--time-budget",
        type=float,
        default=None,
        help="Stop scheduling new fetches after this many seconds",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=LocalizeConfig().asset_workers,
        help="Concurrent asset downloads",
    )


def _add_compare_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("url", help="URL whose snapshots should be compared")
    parser.add_argument("old", help="Identifier of the older snapshot")
    parser.add_argument("new", help="Identifier of the newer snapshot")
    parser.add_argument(
        "--heading-match",
        choices=[policy.value for policy in HeadingMatch],
        default=HeadingMatch.TEXT.value,
        help="Pair headings by their text or by their position within a level",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Capture browsable website snapshots and compare them over time.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    archive_parser = subparsers.add_parser(
        "archive", help="Crawl a site and store a localized snapshot"
    )
    _add_archive_arguments(archive_parser)
    _add_common_arguments(archive_parser)

    list_parser = subparsers.add_parser("list", help="List stored snapshots of a URL")
    list_parser.add_argument("url", help="URL whose snapshots should be listed")
    _add_common_arguments(list_parser)

    compare_parser = subparsers.add_parser(
        "compare", help="Diff the content of two snapshots of a URL"
    )
    _add_compare_arguments(compare_parser)
    _add_common_arguments(compare_parser)

    return parser.parse_args(list(sys.argv[1:] if argv is None else argv))


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )


def _emit(payload: Dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(payload, indent=2) + "\n")
    sys.stdout.flush()


def _run_archive(args: argparse.Namespace, archive_root: Path) -> Dict[str, Any]:
    config = ArchiveConfig(
        archive_root=archive_root,
        crawl=CrawlConfig(
            max_depth=args.depth,
            max_pages=args.max_pages,
            per_page_byte_limit=args.page_bytes,
            total_byte_budget=args.budget_bytes,
            request_timeout=args.timeout,
            time_budget=args.time_budget,
            budget_policy=BudgetPolicy(args.budget_policy),
        ),
        localize=LocalizeConfig(
            asset_workers=args.workers,
            request_timeout=args.timeout,
        ),
    )
    overall_start = time.perf_counter()
    result = archive(args.url, config)
    failed_assets = sum(1 for asset in result.assets if not asset.ok)
    logger.info(
        "Finished in %.2fs (%d page(s), %d/%d asset(s) downloaded)",
        time.perf_counter() - overall_start,
        len(result.pages),
        len(result.assets) - failed_assets,
        len(result.assets),
    )
    return {"success": True, **result.to_dict()}


def _run_list(args: argparse.Namespace, archive_root: Path) -> Dict[str, Any]:
    snapshots = list_snapshots(args.url, archive_root)
    return {"success": True, "snapshots": [info.to_dict() for info in snapshots]}


def _run_compare(args: argparse.Namespace, archive_root: Path) -> Dict[str, Any]:
    options = DiffOptions(heading_match=HeadingMatch(args.heading_match))
    result = compare(args.url, args.old, args.new, archive_root, options)
    if result.success and result.changes is not None:
        logger.info("Found %d change(s)", result.changes.summary.total_changes)
    return result.to_dict()


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    archive_root = (args.output or default_archive_root()).resolve()

    handlers = {
        "archive": _run_archive,
        "list": _run_list,
        "compare": _run_compare,
    }
    try:
        payload = handlers[args.command](args, archive_root)
    except (SnapshotError, ValueError, OSError) as exc:
        logger.error("%s", exc)
        _emit({"success": False, "error": str(exc)})
        return 1
    _emit(payload)
    return 0 if payload.get("success", True) else 1


if __name__ == "__main__":
    sys.exit(main())
