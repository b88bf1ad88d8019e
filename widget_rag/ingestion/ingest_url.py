"""Command-line website and YouTube ingestor.

Scrapes one page (or crawls its site) or fetches a YouTube transcript, then stores
the content for a tenant and optional bot through the ingestion pipeline.

Usage:
  python -m widget_rag.ingestion.ingest_url --tenant-id 1 --bot-id 3 --url https://example.com
  python -m widget_rag.ingestion.ingest_url --tenant-id 1 --bot-id 3 --url https://example.com --crawl --max-pages 10
  python -m widget_rag.ingestion.ingest_url --tenant-id 1 --youtube --url https://youtu.be/dQw4w9WgXcQ

Configuration:
- Database: widget_rag.config.settings.DATABASE_URL
- Embeddings: widget_rag.config.settings.OPENAI_EMBEDDING_MODEL
- Chunk params: widget_rag.config.settings.CHUNK_SIZE, CHUNK_OVERLAP
"""
import argparse
import logging
from typing import List, Optional

from widget_rag.db import init_db
from widget_rag.errors import RagError
from widget_rag.ingestion.pipeline import IngestionPipeline, IngestRequest, IngestResult
from widget_rag.ingestion.web import HttpFetcher, crawl_website, scrape_webpage
from widget_rag.ingestion.youtube import fetch_transcript
from widget_rag.obs import configure_logging
from widget_rag.services import get_fetcher, get_pipeline
from widget_rag.utils import utcnow

logger = logging.getLogger(__name__)


def ingest_website(
    pipeline: IngestionPipeline,
    fetcher: HttpFetcher,
    tenant_id: int,
    bot_id: Optional[int],
    url: str,
    crawl: bool = False,
    max_pages: Optional[int] = None,
) -> List[IngestResult]:
    """Scrape or crawl ``url`` and ingest each page as a website document."""
    pages = crawl_website(url, fetcher, max_pages=max_pages) if crawl else [scrape_webpage(url, fetcher)]
    results: List[IngestResult] = []
    for page in pages:
        results.append(
            pipeline.ingest(
                IngestRequest(
                    tenant_id=tenant_id,
                    bot_id=bot_id,
                    title=page.title,
                    content_type="website",
                    source_url=page.url,
                    content=page.content,
                    metadata={"scrapedAt": utcnow().isoformat(), "wordCount": page.word_count, "url": page.url},
                )
            )
        )
    return results


def ingest_youtube(
    pipeline: IngestionPipeline,
    fetcher: HttpFetcher,
    tenant_id: int,
    bot_id: Optional[int],
    url: str,
) -> IngestResult:
    transcript = fetch_transcript(url, fetcher=fetcher)
    return pipeline.ingest(
        IngestRequest(
            tenant_id=tenant_id,
            bot_id=bot_id,
            title=f"YouTube video {transcript.video_id}",
            content_type="youtube",
            source_url=transcript.url,
            content=transcript.text,
            metadata={"videoId": transcript.video_id, "wordCount": transcript.word_count},
        )
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Ingest a web page, site or YouTube transcript.")
    parser.add_argument("--url", required=True, help="Page URL, or YouTube URL with --youtube")
    parser.add_argument("--tenant-id", type=int, required=True)
    parser.add_argument("--bot-id", type=int, default=None, help="Omit for legacy tenant-wide content")
    parser.add_argument("--crawl", action="store_true", help="Crawl same-domain pages from --url")
    parser.add_argument("--max-pages", type=int, default=None)
    parser.add_argument("--youtube", action="store_true", help="Treat --url as a YouTube video")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity (default: INFO)",
    )
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    logger.info("Starting ingestion for %s", args.url)

    init_db()
    pipeline, fetcher = get_pipeline(), get_fetcher()
    try:
        if args.youtube:
            results = [ingest_youtube(pipeline, fetcher, args.tenant_id, args.bot_id, args.url)]
        else:
            results = ingest_website(
                pipeline, fetcher, args.tenant_id, args.bot_id, args.url, args.crawl, args.max_pages
            )
    except RagError:
        logger.exception("Ingestion failed for %s", args.url)
        return 1

    for r in results:
        logger.info(
            "Document %d: %d chunks stored, %d embedded", r.document_id, r.chunks_stored, r.chunks_embedded
        )
    print(f"[INGEST] {args.url} -> {len(results)} documents, {sum(r.chunks_stored for r in results)} chunks")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
