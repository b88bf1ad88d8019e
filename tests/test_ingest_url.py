"""
Tests for the website/YouTube ingestion helpers and the command-line entrypoint.
"""

import json

import pytest

from test_web import FakeFetcher, _page
from widget_rag.ingestion import ingest_url
from widget_rag.ingestion.ingest_url import ingest_website, ingest_youtube
from widget_rag.models import Document

WORDS = "fresh bread and pastries baked every single morning " * 8


@pytest.fixture
def site():
    return FakeFetcher({
        "https://bakery.example.com": _page("Bakery", WORDS, ["/menu", "/contact"]),
        "https://bakery.example.com/menu": _page("Menu", WORDS),
        "https://bakery.example.com/contact": _page("Contact", WORDS),
    })


def test_single_page_ingest(pipeline, site, tenant_bots):
    [result] = ingest_website(pipeline, site, tenant_bots["tenant_a"], tenant_bots["bot_a1"], "https://bakery.example.com")

    doc = pipeline.get_document(result.document_id)
    assert doc.content_type == "website"
    assert doc.source_url == "https://bakery.example.com"
    assert doc.title == "Bakery"
    assert doc.meta["url"] == "https://bakery.example.com"
    assert doc.meta["wordCount"] > 50
    assert result.chunks_stored > 0


def test_crawl_ingests_each_page(pipeline, site, tenant_bots, monkeypatch):
    monkeypatch.setattr("widget_rag.config.settings.CRAWL_DELAY_SECONDS", 0)
    results = ingest_website(
        pipeline, site, tenant_bots["tenant_a"], tenant_bots["bot_a1"], "https://bakery.example.com",
        crawl=True, max_pages=3,
    )
    urls = [pipeline.get_document(r.document_id).source_url for r in results]
    assert urls == [
        "https://bakery.example.com",
        "https://bakery.example.com/menu",
        "https://bakery.example.com/contact",
    ]


def test_youtube_ingest(pipeline, tenant_bots, monkeypatch):
    monkeypatch.setattr("widget_rag.config.settings.TRANSCRIPT_API_URL", "https://transcripts.example.com/v1")
    fetcher = FakeFetcher({
        "https://transcripts.example.com/v1": json.dumps({"transcript": [{"text": "Welcome to the bakery tour."}]}),
    })

    result = ingest_youtube(pipeline, fetcher, tenant_bots["tenant_a"], None, "https://youtu.be/dQw4w9WgXcQ")

    doc = pipeline.get_document(result.document_id)
    assert doc.content_type == "youtube"
    assert doc.bot_id is None
    assert doc.source_url == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
    assert doc.meta == {"videoId": "dQw4w9WgXcQ", "wordCount": 5}


@pytest.fixture
def cli(pipeline, site, monkeypatch):
    monkeypatch.setattr(ingest_url, "init_db", lambda: "unsupported")
    monkeypatch.setattr(ingest_url, "get_pipeline", lambda: pipeline)
    monkeypatch.setattr(ingest_url, "get_fetcher", lambda: site)
    return ingest_url.main


def test_cli_ingests_page(cli, session_factory, tenant_bots, capsys):
    argv = ["--url", "https://bakery.example.com", "--tenant-id", str(tenant_bots["tenant_a"]),
            "--bot-id", str(tenant_bots["bot_a1"]), "--log-level", "WARNING"]

    assert cli(argv) == 0
    assert "[INGEST] https://bakery.example.com -> 1 documents" in capsys.readouterr().out
    with session_factory() as db:
        assert db.query(Document).count() == 1


def test_cli_reports_failure(cli, tenant_bots):
    argv = ["--url", "https://bakery.example.com/missing", "--tenant-id", str(tenant_bots["tenant_a"])]
    assert cli(argv) == 1
