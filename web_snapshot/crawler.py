"""Bounded, same-domain traversal that collects raw page markup."""

from __future__ import annotations

import logging
import re
import time
from typing import List, Optional, Sequence, Tuple

import requests
from bs4 import BeautifulSoup

from .config import BudgetPolicy, CrawlConfig
from .models import CrawlSession, PageRecord
from .utils import hostname_of, is_fetchable, normalize_url, resolve_url

logger = logging.getLogger("web_snapshot")

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")
CHUNK_SIZE = 64 * 1024


class FetchError(Exception):
    """A single page could not be fetched; never fatal for the crawl."""


def build_session(user_agent: str) -> requests.Session:
    """Create an HTTP session with browser-like headers."""
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.7",
        }
    )
    return session


def compile_skip_patterns(patterns: Sequence[str]) -> List[re.Pattern[str]]:
    return [re.compile(pattern, re.IGNORECASE) for pattern in patterns]


def should_skip(url: str, patterns: Sequence[re.Pattern[str]]) -> bool:
    """Return True for navigational/administrative endpoints not worth archiving."""
    return any(pattern.search(url) for pattern in patterns)


def fetch_page(
    session: requests.Session,
    url: str,
    timeout: float,
    byte_limit: int,
) -> Tuple[str, str]:
    """Fetch a page and return its decoded markup and final URL."""
    try:
        response = session.get(url, timeout=timeout, stream=True)
    except requests.RequestException as exc:
        raise FetchError(str(exc)) from exc
    try:
        if not 200 <= response.status_code < 300:
            raise FetchError(f"HTTP {response.status_code}")
        content_type = (response.headers.get("Content-Type") or "").lower()
        if content_type and not content_type.startswith(HTML_CONTENT_TYPES):
            raise FetchError(f"unsupported content type {content_type.split(';')[0]}")
        declared = response.headers.get("Content-Length")
        if declared and declared.isdigit() and int(declared) > byte_limit:
            raise FetchError(f"page larger than {byte_limit} bytes")

        body = bytearray()
        try:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                body.extend(chunk)
                if len(body) > byte_limit:
                    raise FetchError(f"page larger than {byte_limit} bytes")
        except requests.RequestException as exc:
            raise FetchError(str(exc)) from exc

        encoding = response.encoding if "charset=" in content_type else None
        try:
            markup = bytes(body).decode(encoding or "utf-8", errors="replace")
        except LookupError:
            logger.debug("Unknown charset %r on %s; decoding as utf-8", encoding, url)
            markup = bytes(body).decode("utf-8", errors="replace")
        return markup, response.url or url
    finally:
        response.close()


def discover_links(markup: str, page_url: str) -> List[str]:
    """Return normalized absolute anchor targets in appearance order."""
    soup = BeautifulSoup(markup, "html.parser")
    base = page_url
    base_tag = soup.find("base", href=True)
    if base_tag:
        base = resolve_url(page_url, base_tag["href"]) or page_url

    links: List[str] = []
    seen = set()
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"]
        if not is_fetchable(href):
            continue
        absolute = resolve_url(base, href)
        if absolute is None:
            logger.debug("Skipping malformed link %r on %s", href, page_url)
            continue
        normalized = normalize_url(absolute)
        if normalized not in seen:
            seen.add(normalized)
            links.append(normalized)
    return links


class BoundedCrawler:
    """Depth-first, domain-restricted crawler driven by an explicit worklist."""

    def __init__(
        self,
        config: CrawlConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config
        self.session = session or build_session(config.user_agent)
        self._skip_patterns = compile_skip_patterns(config.skip_patterns)

    def crawl(self, seed_url: str) -> CrawlSession:
        """Traverse from ``seed_url`` and return the collected session."""
        seed = normalize_url(seed_url)
        state = CrawlSession(seed_url=seed, domain=hostname_of(seed))
        started = time.monotonic()
        worklist: List[Tuple[str, int]] = [(seed, 0)]

        while worklist:
            url, depth = worklist.pop()
            if url in state.visited or depth > self.config.max_depth:
                continue
            if state.page_count >= self.config.max_pages:
                state.stop_reason = "max_pages"
                break
            if self._out_of_time(started):
                state.stop_reason = "time_budget"
                logger.info("Time budget exhausted after %d page(s)", state.page_count)
                break

            state.visited.add(url)
            logger.info("[depth %d] Fetching %s", depth, url)
            try:
                markup, final_url = fetch_page(
                    self.session,
                    url,
                    self.config.request_timeout,
                    self.config.per_page_byte_limit,
                )
            except FetchError as exc:
                logger.warning("Failed to fetch %s: %s", url, exc)
                state.record_failure(url, str(exc))
                continue

            page = PageRecord(url=url, raw_markup=markup)
            if not self._accept_within_budget(state, page):
                break
            state.record_page(page)
            state.visited.add(normalize_url(final_url))

            if (
                self.config.budget_policy is BudgetPolicy.TOLERATE
                and state.total_byte_size > self.config.total_byte_budget
            ):
                state.stop_reason = "byte_budget"
                logger.info(
                    "Byte budget exceeded (%d > %d bytes); stopping crawl",
                    state.total_byte_size,
                    self.config.total_byte_budget,
                )
                break

            if depth < self.config.max_depth:
                children = self._children(state, markup, final_url)
                worklist.extend((child, depth + 1) for child in reversed(children))

        state.elapsed_seconds = time.monotonic() - started
        logger.info(
            "Crawl of %s finished: %d page(s), %d byte(s), %d failure(s)",
            seed,
            state.page_count,
            state.total_byte_size,
            len(state.failures),
        )
        return state

    def _accept_within_budget(self, state: CrawlSession, page: PageRecord) -> bool:
        if self.config.budget_policy is not BudgetPolicy.PRECHECK:
            return True
        if state.total_byte_size + page.byte_size <= self.config.total_byte_budget:
            return True
        state.stop_reason = "byte_budget"
        logger.info(
            "Byte budget of %d bytes would be exceeded by %s; stopping crawl",
            self.config.total_byte_budget,
            page.url,
        )
        return False

    def _out_of_time(self, started: float) -> bool:
        if self.config.time_budget is None:
            return False
        return time.monotonic() - started >= self.config.time_budget

    def _children(self, state: CrawlSession, markup: str, page_url: str) -> List[str]:
        children: List[str] = []
        for link in discover_links(markup, page_url):
            if hostname_of(link) != state.domain or link in state.visited:
                continue
            if should_skip(link, self._skip_patterns):
                if link not in state.skipped:
                    state.skipped.append(link)
                logger.debug("Not traversing %s (skip pattern)", link)
                continue
            children.append(link)
        return children


def crawl(
    seed_url: str,
    config: Optional[CrawlConfig] = None,
    session: Optional[requests.Session] = None,
) -> CrawlSession:
    """Crawl ``seed_url`` within its domain using ``config`` limits."""
    crawler = BoundedCrawler(config or CrawlConfig(), session=session)
    return crawler.crawl(seed_url)
