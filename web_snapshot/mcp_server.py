"""MCP server exposing archive/list/compare snapshot tools."""

from __future__ import annotations

import logging
from typing import Any, Dict

import anyio
from mcp.server.fastmcp import FastMCP

from .config import ArchiveConfig, default_archive_root
from .differ import DiffOptions, HeadingMatch
from .errors import SnapshotError
from .snapshots import archive as archive_snapshot
from .snapshots import compare as compare_snapshots
from .snapshots import list_snapshots as list_stored_snapshots

logger = logging.getLogger("web_snapshot.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="web-snapshot")


def _failure(exc: Exception) -> Dict[str, Any]:
    logger.error("%s", exc)
    return {"success": False, "error": str(exc)}


@mcp.tool()
async def archive(url: str, depth: int = 1) -> Dict[str, Any]:
    """Crawl a page and its same-domain links and store a browsable snapshot."""
    config = ArchiveConfig()
    try:
        result = await anyio.to_thread.run_sync(
            lambda: archive_snapshot(url, config, depth=depth)
        )
    except (SnapshotError, ValueError, OSError) as exc:
        return _failure(exc)
    return {"success": True, **result.to_dict()}


@mcp.tool()
async def list_snapshots(url: str) -> Dict[str, Any]:
    """List stored snapshots of a URL, newest first."""
    try:
        snapshots = list_stored_snapshots(url, default_archive_root())
    except SnapshotError as exc:
        return _failure(exc)
    return {"success": True, "snapshots": [info.to_dict() for info in snapshots]}


@mcp.tool()
async def compare(
    url: str,
    old_snapshot: str,
    new_snapshot: str,
    heading_match: str = HeadingMatch.TEXT.value,
) -> Dict[str, Any]:
    """Report content added, removed and modified between two snapshots."""
    try:
        options = DiffOptions(heading_match=HeadingMatch(heading_match))
        result = compare_snapshots(
            url, old_snapshot, new_snapshot, default_archive_root(), options
        )
    except (SnapshotError, ValueError) as exc:
        return _failure(exc)
    return result.to_dict()


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
