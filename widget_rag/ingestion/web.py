"""Website scraper and same-domain crawler.

Main functions:
- RequestsFetcher: HTTP GET with timeout, user agent and redirect limit
- scrape_webpage: fetch one page and return cleaned text, title and word count
- extract_links: find and normalize same-domain links from a page
- crawl_website: BFS crawl up to a page limit with a per-request delay

Fetch failures are raised as ScrapeError with a user-facing category:
not_found, forbidden, connection_refused or generic.
"""
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Set
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from widget_rag.config import settings
from widget_rag.errors import ScrapeError
from widget_rag.utils import html_to_text, is_skipped_resource, normalize_url, same_domain

logger = logging.getLogger(__name__)


class HttpFetcher(Protocol):
    def get(self, url: str, params: Optional[Dict[str, str]] = None,
            headers: Optional[Dict[str, str]] = None) -> requests.Response:
        ...


class RequestsFetcher:
    """requests-based fetcher with bounded timeout and redirects."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        max_redirects: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        self.session.max_redirects = max_redirects or settings.HTTP_MAX_REDIRECTS
        self.session.headers["User-Agent"] = user_agent or settings.HTTP_USER_AGENT

    def get(self, url: str, params: Optional[Dict[str, str]] = None,
            headers: Optional[Dict[str, str]] = None) -> requests.Response:
        return self.session.get(url, params=params, headers=headers, timeout=self.timeout)


@dataclass
class ScrapedPage:
    url: str
    title: str
    content: str
    word_count: int


def classify_fetch_error(url: str, exc: requests.RequestException) -> ScrapeError:
    """Turn a requests exception into a categorized ScrapeError."""
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        status = exc.response.status_code
        if status == 404:
            return ScrapeError("Page not found (404)", "not_found", exc)
        if status == 403:
            return ScrapeError(
                "Access forbidden (403). The website may be blocking automated access.", "forbidden", exc
            )
        return ScrapeError(f"Failed to scrape website: HTTP {status}", "generic", exc)
    if isinstance(exc, requests.Timeout):
        return ScrapeError(f"Failed to scrape website: timed out fetching {url}", "generic", exc)
    if isinstance(exc, requests.ConnectionError):
        msg = str(exc)
        if any(s in msg for s in ("Name or service not known", "getaddrinfo", "nodename nor servname",
                                  "NameResolutionError", "Temporary failure in name resolution")):
            return ScrapeError("Website not found. Please check the URL.", "not_found", exc)
        if "Connection refused" in msg or "ECONNREFUSED" in msg:
            return ScrapeError(
                "Connection refused. The website may be blocking automated access.", "connection_refused", exc
            )
    return ScrapeError(f"Failed to scrape website: {exc}", "generic", exc)


def fetch_html(url: str, fetcher: Optional[HttpFetcher] = None) -> str:
    """GET a page and return its body text, raising ScrapeError on failure."""
    fetcher = fetcher or RequestsFetcher()
    try:
        resp = fetcher.get(url)
        resp.raise_for_status()
    except requests.RequestException as exc:
        err = classify_fetch_error(url, exc)
        logger.warning("Error scraping %s: %s", url, err)
        raise err from exc
    return resp.text


def parse_page(url: str, html: str) -> ScrapedPage:
    title, text = html_to_text(html)
    return ScrapedPage(url=url, title=title, content=text, word_count=len(text.split()))


def scrape_webpage(url: str, fetcher: Optional[HttpFetcher] = None) -> ScrapedPage:
    """Fetch a single page and extract its cleaned text.

    Args:
        url: Absolute URL to fetch.
        fetcher: HTTP fetcher; defaults to a RequestsFetcher from settings.

    Returns:
        ScrapedPage: url, title, cleaned content and word count.

    Raises:
        ScrapeError: When the page cannot be fetched.
    """
    return parse_page(url, fetch_html(url, fetcher))


def extract_links(base_url: str, html: str) -> List[str]:
    """Extract and normalize same-domain links from an HTML page.

    Resolves relative links against base_url and drops off-site and non-HTTP links.

    Returns:
        List[str]: Deduplicated list of absolute, normalized URLs in page order.
    """
    soup = BeautifulSoup(html, "lxml")
    seen: Set[str] = set()
    out: List[str] = []
    for a in soup.find_all("a", href=True):
        abs_url = normalize_url(urljoin(base_url, a["href"]))
        if not abs_url.startswith(("http://", "https://")):
            continue
        if not same_domain(abs_url, base_url) or abs_url in seen:
            continue
        seen.add(abs_url)
        out.append(abs_url)
    return out


def crawl_website(
    start_url: str,
    fetcher: Optional[HttpFetcher] = None,
    max_pages: Optional[int] = None,
    min_words: Optional[int] = None,
    delay: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> List[ScrapedPage]:
    """Breadth-first crawl of one site starting at ``start_url``.

    Stays on the start URL's host, dedups normalized URLs, skips non-HTML resources,
    and keeps only pages with at least ``min_words`` words (shorter pages are still
    used to discover links). Per-page failures are logged and skipped.

    Args:
        start_url: First page to visit.
        fetcher: HTTP fetcher; defaults to a RequestsFetcher.
        max_pages: Maximum pages to return; defaults to settings.CRAWL_MAX_PAGES.
        min_words: Minimum word count; defaults to settings.CRAWL_MIN_WORDS.
        delay: Seconds to wait after each request; defaults to settings.CRAWL_DELAY_SECONDS.
        sleep: Sleep function, injectable for tests.

    Returns:
        List[ScrapedPage]: Kept pages in visit order.
    """
    fetcher = fetcher or RequestsFetcher()
    max_pages = settings.CRAWL_MAX_PAGES if max_pages is None else max_pages
    min_words = settings.CRAWL_MIN_WORDS if min_words is None else min_words
    delay = settings.CRAWL_DELAY_SECONDS if delay is None else delay

    start = normalize_url(start_url)
    queue = deque([start])
    visited: Set[str] = set()
    pages: List[ScrapedPage] = []

    while queue and len(pages) < max_pages:
        url = queue.popleft()
        if url in visited:
            continue
        visited.add(url)
        if is_skipped_resource(url):
            continue

        try:
            html = fetch_html(url, fetcher)
        except ScrapeError as exc:
            logger.warning("Crawl skipped %s: %s", url, exc)
            sleep(delay)
            continue

        page = parse_page(url, html)
        if page.word_count >= min_words:
            pages.append(page)
            logger.info("Crawled %d/%d %s (%d words)", len(pages), max_pages, url, page.word_count)
        else:
            logger.debug("Skipping thin page %s (%d words)", url, page.word_count)

        for nxt in extract_links(url, html):
            if nxt not in visited and same_domain(nxt, start) and not is_skipped_resource(nxt):
                queue.append(nxt)
        sleep(delay)

    return pages
