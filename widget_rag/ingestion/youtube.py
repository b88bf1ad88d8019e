"""YouTube transcript fetcher.

Resolves a video id from the common URL shapes and fetches the transcript from an
external transcript API, concatenating its text segments into one document.
"""
import logging
import re
from dataclasses import dataclass
from typing import Optional

import requests

from widget_rag.config import settings
from widget_rag.errors import AuthFailed, InputError, NotFound, RateLimited, Unavailable, Unknown
from widget_rag.ingestion.web import HttpFetcher, RequestsFetcher
from widget_rag.utils import collapse_whitespace

logger = logging.getLogger(__name__)

_VIDEO_ID_PATTERNS = [
    re.compile(r"(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/shorts/)([A-Za-z0-9_-]{11})"),
    re.compile(r"^([A-Za-z0-9_-]{11})$"),
]


@dataclass
class Transcript:
    video_id: str
    text: str
    word_count: int

    @property
    def url(self) -> str:
        return f"https://www.youtube.com/watch?v={self.video_id}"


def extract_video_id(url: str) -> str:
    """Return the 11-character video id from a watch, short, embed or shorts URL, or a bare id.

    Raises:
        InputError: If no video id can be found.
    """
    candidate = (url or "").strip()
    for pattern in _VIDEO_ID_PATTERNS:
        match = pattern.search(candidate)
        if match:
            return match.group(1)
    raise InputError("Invalid YouTube URL format")


def fetch_transcript(
    video_url: str,
    api_key: Optional[str] = None,
    fetcher: Optional[HttpFetcher] = None,
    api_url: Optional[str] = None,
) -> Transcript:
    """Fetch and flatten the transcript of a YouTube video.

    Args:
        video_url: Any supported YouTube URL or a bare video id.
        api_key: Transcript API key; defaults to settings.TRANSCRIPT_API_KEY.
        fetcher: HTTP fetcher; defaults to a RequestsFetcher.
        api_url: Transcript endpoint; defaults to settings.TRANSCRIPT_API_URL.

    Raises:
        InputError: Unrecognized URL.
        NotFound / AuthFailed / RateLimited / Unavailable / Unknown: API failures.
    """
    video_id = extract_video_id(video_url)
    fetcher = fetcher or RequestsFetcher()
    api_key = api_key if api_key is not None else settings.TRANSCRIPT_API_KEY
    logger.info("Fetching transcript for %s", video_id)

    try:
        resp = fetcher.get(
            api_url or settings.TRANSCRIPT_API_URL,
            params={"video_url": video_id, "format": "json"},
            headers={"Authorization": f"Bearer {api_key}"},
        )
    except requests.RequestException as exc:
        raise Unavailable(f"Transcript API unreachable: {exc}", provider="transcript", cause=exc) from exc

    status = resp.status_code
    if status == 404:
        raise NotFound(f"No transcript available for video {video_id}", provider="transcript")
    if status in (401, 403):
        raise AuthFailed("Transcript API rejected credentials", provider="transcript")
    if status == 429:
        raise RateLimited("Transcript API rate limit reached", provider="transcript")
    if status >= 500:
        raise Unavailable(f"Transcript API error (HTTP {status})", provider="transcript")
    if status >= 400:
        raise Unknown(f"Failed to get transcript (HTTP {status})", provider="transcript")

    try:
        segments = resp.json().get("transcript") or []
    except ValueError as exc:
        raise Unknown("Transcript API returned invalid JSON", provider="transcript", cause=exc) from exc

    text = collapse_whitespace(" ".join(str(seg.get("text", "")) for seg in segments))
    if not text:
        raise NotFound(f"Transcript for video {video_id} is empty", provider="transcript")
    word_count = len(text.split())
    logger.info("Transcript fetched for %s: %d words", video_id, word_count)
    return Transcript(video_id=video_id, text=text, word_count=word_count)
