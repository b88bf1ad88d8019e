"""Observability utilities: logging setup and OpenTelemetry spans.

This module centralizes lightweight observability features:
- configure_logging: process-wide logging format shared by the API, CLI and scheduler.
- span: context manager that opens an OpenTelemetry span with attributes. A console
  exporter is attached when OTEL_CONSOLE_EXPORT is enabled; otherwise spans go to
  whatever tracer provider the host process configured.

Environment/config dependencies are read from widget_rag.config.settings.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from widget_rag.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_otel_inited: bool = False


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging with the shared format.

    Args:
        level: Level name; defaults to settings.LOG_LEVEL.
    """
    name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(level=getattr(logging, name, logging.INFO), format=LOG_FORMAT)


def _init_otel() -> None:
    """Install a tracer provider with console export, once, when enabled."""
    global _otel_inited
    if _otel_inited:
        return
    _otel_inited = True
    if not settings.OTEL_CONSOLE_EXPORT:
        return
    tp = TracerProvider()
    tp.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(tp)


@contextmanager
def span(name: str, attributes: Optional[Dict[str, Any]] = None):
    """Open an OpenTelemetry span around the enclosed block.

    Exceptions raised inside the block are recorded on the span and re-raised.
    """
    _init_otel()
    tracer = trace.get_tracer("widget_rag")
    with tracer.start_as_current_span(name, attributes=attributes or {}):
        yield
