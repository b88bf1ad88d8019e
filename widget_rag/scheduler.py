"""Scheduled retrain of website-sourced content.

A scan runs on a fixed period (hourly by default). For every bot whose retrain slot
(``HH:00`` UTC) matches the current hour and whose frequency is not ``none``, the
bot is checked for due-ness:

- never retrained: due
- daily: at least 23 hours since the last run
- weekly: at least 167 hours
- monthly: at least 719 hours

The thresholds sit just under whole days so scan jitter cannot skip a cycle.

For a due bot each website document is re-scraped, deleted together with its
chunks and re-ingested under the same source URL and scope. Pages are refreshed
independently: a failure of any kind is logged and skipped. A bot that fails outright
is reported as ``failed`` and the scan moves on. Fetches are throttled by a fixed
delay. The bot's ``last_retrained_at`` is then set even if every page failed, so the
next scan does not immediately retrigger it.

Scans never overlap: a scan that finds the guard held is skipped.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Literal, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from widget_rag.db import ensure_vector_index, session_scope
from widget_rag.ingestion.pipeline import IngestionPipeline, IngestRequest
from widget_rag.ingestion.web import ScrapedPage, scrape_webpage
from widget_rag.locks import LocalScanGuard, ScanGuard
from widget_rag.models import Bot, Document
from widget_rag.obs import span
from widget_rag.utils import utcnow

logger = logging.getLogger(__name__)

DUE_AFTER_HOURS = {"daily": 23, "weekly": 167, "monthly": 719}

BotStatus = Literal["retrained", "not_due", "no_documents", "failed"]
NOT_DUE: BotStatus = "not_due"


def is_due(frequency: str, last_retrained_at: Optional[datetime], now: datetime) -> bool:
    """Whether a bot with the given policy should be retrained at ``now``.

    ``none`` and unknown frequencies are never due; a bot never retrained is always due.
    """
    if frequency == "none" or frequency not in DUE_AFTER_HOURS:
        return False
    if last_retrained_at is None:
        return True
    hours_since = (now - last_retrained_at).total_seconds() / 3600.0
    return hours_since >= DUE_AFTER_HOURS[frequency]


def current_slot(now: datetime) -> str:
    """The ``HH:00`` retrain slot for a UTC timestamp."""
    return f"{now.hour:02d}:00"


@dataclass
class BotRetrainResult:
    bot_id: int
    status: BotStatus
    pages_total: int = 0
    pages_updated: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class ScanReport:
    """Outcome of one scan. Bots marked retrained with zero updated pages are visible here."""
    slot: str
    started_at: datetime
    bots: List[BotRetrainResult] = field(default_factory=list)

    @property
    def retrained(self) -> List[BotRetrainResult]:
        return [b for b in self.bots if b.status == "retrained"]


class RetrainScheduler:
    """Periodic retrain scan with an injectable clock and a run-in-progress guard.

    Args:
        session_factory: SQLAlchemy sessionmaker.
        pipeline: Ingestion pipeline used to delete and re-ingest documents.
        scraper: Fetches a page by URL; defaults to scrape_webpage.
        clock: Returns the current naive UTC datetime.
        sleep: Used for the inter-fetch delay.
        guard: Prevents overlapping scans; defaults to an in-process lock.
        page_delay: Seconds between page fetches.
        interval: Seconds between scans when running in the background.
        initial_delay: Seconds before the first background scan.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        pipeline: IngestionPipeline,
        scraper: Callable[[str], ScrapedPage] = scrape_webpage,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
        guard: Optional[ScanGuard] = None,
        page_delay: float = 0.5,
        interval: float = 3600.0,
        initial_delay: float = 10.0,
    ):
        self.session_factory = session_factory
        self.pipeline = pipeline
        self.scraper = scraper
        self.clock = clock
        self.sleep = sleep
        self.guard = guard or LocalScanGuard()
        self.page_delay = page_delay
        self.interval = interval
        self.initial_delay = initial_delay

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_scheduled_retrain(self) -> Optional[ScanReport]:
        """Run one scan. Returns None when another scan is already in progress."""
        if not self.guard.acquire():
            logger.warning("Retrain scan already in progress, skipping")
            return None
        try:
            return self._scan()
        finally:
            self.guard.release()

    def _scan(self) -> ScanReport:
        now = self.clock()
        report = ScanReport(slot=current_slot(now), started_at=now)
        logger.info("Checking for scheduled retrains at %s UTC", report.slot)

        with session_scope(self.session_factory) as db:
            bots = db.execute(
                select(Bot.id, Bot.tenant_id, Bot.retrain_frequency, Bot.last_retrained_at)
                .where(Bot.retrain_frequency != "none", Bot.retrain_time == report.slot)
                .order_by(Bot.id)
            ).all()

        if not bots:
            logger.info("No bots scheduled for retrain at %s", report.slot)
            return report

        with span("retrain.scan", {"slot": report.slot, "bots": len(bots)}):
            for bot in bots:
                try:
                    result = self._retrain_bot(bot, now)
                except Exception as exc:
                    # One bot's failure never stops the rest of the scan
                    logger.exception("Retrain of bot %s failed", bot.id)
                    result = BotRetrainResult(bot_id=bot.id, status="failed", errors=[str(exc)])
                report.bots.append(result)

        if report.retrained:
            bind = self.session_factory.kw.get("bind")
            try:
                ensure_vector_index(bind)
            except SQLAlchemyError as exc:
                logger.warning("Vector index check failed after retrain: %s", exc)
        return report

    def _website_documents(self, bot_id: int, tenant_id: int):
        with session_scope(self.session_factory) as db:
            return db.execute(
                select(Document.id, Document.source_url)
                .where(
                    Document.bot_id == bot_id,
                    Document.tenant_id == tenant_id,
                    Document.content_type == "website",
                    Document.source_url.isnot(None),
                )
                .order_by(Document.id)
            ).all()

    def _retrain_bot(self, bot, now: datetime) -> BotRetrainResult:
        if not is_due(bot.retrain_frequency, bot.last_retrained_at, now):
            logger.info("Bot %s: not due yet (%s, last: %s)", bot.id, bot.retrain_frequency, bot.last_retrained_at)
            return BotRetrainResult(bot_id=bot.id, status=NOT_DUE)

        docs = self._website_documents(bot.id, bot.tenant_id)
        if not docs:
            logger.info("Bot %s: no website documents to retrain", bot.id)
            return BotRetrainResult(bot_id=bot.id, status="no_documents")

        logger.info("Bot %s: starting scheduled retrain (%s, %d pages)", bot.id, bot.retrain_frequency, len(docs))
        result = BotRetrainResult(bot_id=bot.id, status="retrained", pages_total=len(docs))
        refreshed: List[int] = []
        for i, doc in enumerate(docs):
            if i > 0:
                self.sleep(self.page_delay)
            try:
                page = self.scraper(doc.source_url)
                self.pipeline.delete_document(doc.id)
                ingested = self.pipeline.ingest(
                    IngestRequest(
                        tenant_id=bot.tenant_id,
                        bot_id=bot.id,
                        title=page.title,
                        content_type="website",
                        source_url=doc.source_url,
                        content=page.content,
                        metadata={
                            "scrapedAt": now.isoformat(),
                            "wordCount": page.word_count,
                            "url": page.url,
                            "scheduledRetrain": True,
                        },
                    )
                )
                refreshed.append(ingested.document_id)
                result.pages_updated += 1
            except Exception as exc:
                logger.exception("Failed to retrain doc %s (%s)", doc.id, doc.source_url)
                result.errors.append(f"{doc.source_url}: {exc}")

        with session_scope(self.session_factory) as db:
            db.execute(update(Bot).where(Bot.id == bot.id).values(last_retrained_at=now))
            if refreshed:
                db.execute(update(Document).where(Document.id.in_(refreshed)).values(last_retrained_at=now))

        logger.info("Bot %s: retrain complete. %d/%d pages updated", bot.id, result.pages_updated, result.pages_total)
        return result

    def start(self) -> None:
        """Start background scans on a daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Retrain scheduler is already running")
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run_loop, name="retrain-scheduler", daemon=True)
        self._thread.start()
        logger.info("Retrain scheduler started, checking every %.0f seconds", self.interval)

    def stop(self, timeout: float = 30.0) -> None:
        """Signal the background loop to stop and wait for the current scan."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Retrain scheduler did not stop within %.0f seconds", timeout)
            self._thread = None

    def _run_loop(self) -> None:
        if self._stop.wait(self.initial_delay):
            return
        while True:
            try:
                self.run_scheduled_retrain()
            except Exception:
                # Keep the timer alive; the next scan retries
                logger.exception("Retrain scan failed")
            if self._stop.wait(self.interval):
                break
