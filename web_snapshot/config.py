"""Configuration objects and constants for crawling and archiving."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Tuple

ARCHIVE_ROOT_ENV = "WEB_SNAPSHOT_ARCHIVE_ROOT"
DEFAULT_ARCHIVE_ROOT = "archives"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36 web-snapshot/0.1"
)

# Endpoints that are recorded during link discovery but never traversed.
DEFAULT_SKIP_PATTERNS: Tuple[str, ...] = (
    r"/(login|logout|signin|signout|signup|register)\b",
    r"[?&](goto|auth|acct)=",
    r"/(vote|reply|submit|flag|hide|fave|favorite)\b",
    r"/(account|settings|admin)(/|$)",
    r"/(item|user|story|comment|post)\?id=",
)


class BudgetPolicy(str, Enum):
    """How the total byte budget is enforced against a freshly fetched page."""

    PRECHECK = "precheck"
    TOLERATE = "tolerate"


def default_archive_root() -> Path:
    """Return the archive root, honouring the environment override."""
    override = os.getenv(ARCHIVE_ROOT_ENV)
    if override:
        return Path(override).expanduser()
    return Path(DEFAULT_ARCHIVE_ROOT)


@dataclass
class CrawlConfig:
    """Limits and policies applied by the bounded crawler."""

    max_depth: int = 1
    max_pages: int = 50
    per_page_byte_limit: int = 5 * 1024 * 1024
    total_byte_budget: int = 50 * 1024 * 1024
    request_timeout: float = 15.0
    time_budget: float | None = None
    budget_policy: BudgetPolicy = BudgetPolicy.PRECHECK
    skip_patterns: Tuple[str, ...] = DEFAULT_SKIP_PATTERNS
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self) -> None:
        if self.max_depth < 0:
            raise ValueError("max_depth must be a non-negative integer")
        if self.max_pages < 0:
            raise ValueError("max_pages must be a non-negative integer")
        self.budget_policy = BudgetPolicy(self.budget_policy)


@dataclass
class LocalizeConfig:
    """Settings for downloading and rewriting page resources."""

    asset_workers: int = 8
    max_asset_bytes: int = 20 * 1024 * 1024
    request_timeout: float = 15.0
    user_agent: str = DEFAULT_USER_AGENT


@dataclass
class ArchiveConfig:
    """Top-level settings for producing snapshots on disk."""

    archive_root: Path = field(default_factory=default_archive_root)
    crawl: CrawlConfig = field(default_factory=CrawlConfig)
    localize: LocalizeConfig = field(default_factory=LocalizeConfig)
