"""Utility helpers for URL normalization and HTML text extraction.

This module provides:
- normalize_url: normalization to make URLs consistent for deduplication
- same_domain: host comparison used to keep crawls on one site
- is_skipped_resource: detect links to non-HTML resources by extension
- collapse_whitespace: squash whitespace runs to single spaces
- html_to_text: strip non-content markup and return (title, text)
- utcnow: current UTC time as a naive datetime, matching the DateTime columns
"""
import re
from datetime import datetime, timezone
from typing import Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup

# Elements that never carry page content
NON_CONTENT_TAGS = ["script", "style", "nav", "footer", "header", "iframe", "noscript"]

SKIPPED_EXTENSIONS = (
    ".pdf", ".jpg", ".jpeg", ".png", ".gif", ".svg", ".webp", ".ico",
    ".css", ".js", ".json", ".xml", ".zip", ".gz", ".tar", ".rar",
    ".mp3", ".mp4", ".avi", ".mov", ".wav", ".doc", ".docx", ".xls", ".xlsx",
    ".ppt", ".pptx", ".woff", ".woff2", ".ttf", ".eot",
)


def normalize_url(u: str) -> str:
    """Normalize URLs by removing fragments and trailing slashes.

    Args:
        u: Raw URL.

    Returns:
        str: Normalized URL suitable for deduplication.
    """
    u = re.sub(r"#.*$", "", u.strip())
    if len(u) > 1 and u.endswith("/"):
        u = u[:-1]
    return u


def same_domain(a: str, b: str) -> bool:
    """True when both URLs share a hostname (case-insensitive)."""
    return (urlparse(a).hostname or "").lower() == (urlparse(b).hostname or "").lower()


def is_skipped_resource(u: str) -> bool:
    """True when the URL path ends in a known non-HTML file extension."""
    return urlparse(u).path.lower().endswith(SKIPPED_EXTENSIONS)


def collapse_whitespace(s: str) -> str:
    return re.sub(r"\s+", " ", s).strip()


def html_to_text(html: str) -> Tuple[str, str]:
    """Convert an HTML page into (title, cleaned body text).

    Title comes from <title>, else the first <h1>, else "Untitled Page". Scripts,
    styles, navigation, headers, footers and embeds are removed before the body
    text is extracted and whitespace is collapsed.

    Args:
        html: Raw HTML string.

    Returns:
        Tuple[str, str]: (title, text).
    """
    soup = BeautifulSoup(html, "lxml")

    title = ""
    if soup.title and soup.title.string:
        title = soup.title.string
    if not title.strip():
        h1 = soup.find("h1")
        title = h1.get_text(" ", strip=True) if h1 else ""
    title = collapse_whitespace(title) or "Untitled Page"

    for tag in soup(NON_CONTENT_TAGS):
        tag.decompose()

    root = soup.body if soup.body else soup
    text = collapse_whitespace(root.get_text(" "))
    return title, text


def utcnow() -> datetime:
    """Current UTC time without tzinfo, as stored in the naive DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
