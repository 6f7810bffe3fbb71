"""
Prometheus metrics collectors for html2pdf-service.

This module defines custom Prometheus metrics that expose PDF generation,
page rendering and rendering engine metrics for monitoring and observability.

Note: Counters are incremented when events occur (not synced from external state).
      Gauges are updated periodically to reflect current state.
"""

import logging
from typing import TYPE_CHECKING

import psutil
from prometheus_client import Counter, Gauge, Histogram, Info

if TYPE_CHECKING:
    from app.chromium_manager import ChromiumManager


logger = logging.getLogger(__name__)


# Generation counters - these are incremented when events occur
# DO NOT set these directly - use the increment functions below
pdf_generations_total = Counter(
    "pdf_generations_total",
    "Total number of successful multi-page PDF generations",
)

pdf_generation_failures_total = Counter(
    "pdf_generation_failures_total",
    "Total number of failed PDF generations by error kind",
    ["kind"],
)

pages_rendered_total = Counter(
    "pages_rendered_total",
    "Total number of HTML pages rendered to PDF",
)

font_resolution_failures_total = Counter(
    "font_resolution_failures_total",
    "Total number of web fonts that could not be fetched and fell back to system fonts",
)

pdf_generation_duration_seconds = Histogram(
    "pdf_generation_duration_seconds",
    "Duration of a whole /generate-pdf request in seconds",
    buckets=[0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
)

page_render_duration_seconds = Histogram(
    "page_render_duration_seconds",
    "Duration of a single page render in seconds",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

# Rendering engine gauges
active_browsers = Gauge(
    "active_browsers",
    "Current number of Chromium browsers owned by in-flight requests",
)

uptime_seconds = Gauge(
    "uptime_seconds",
    "Rendering engine uptime in seconds",
)

process_memory_bytes = Gauge(
    "process_memory_bytes",
    "Resident memory of the service process in bytes",
)

system_memory_available_bytes = Gauge(
    "system_memory_available_bytes",
    "Available system memory in bytes",
)

chromium_info = Info(
    "chromium",
    "Chromium browser information",
)


def increment_pdf_generation_success(duration_seconds: float, page_count: int) -> None:
    """Increment successful generation counter, record duration and rendered pages."""
    pdf_generations_total.inc()
    pdf_generation_duration_seconds.observe(duration_seconds)
    pages_rendered_total.inc(page_count)


def increment_pdf_generation_failure(kind: str) -> None:
    """Increment failed generation counter for one error kind."""
    pdf_generation_failures_total.labels(kind=kind).inc()


def observe_page_render(duration_seconds: float) -> None:
    """Record the duration of one successfully rendered page."""
    page_render_duration_seconds.observe(duration_seconds)


def increment_font_resolution_failure() -> None:
    """Increment the font fallback counter."""
    font_resolution_failures_total.inc()


def update_gauges_from_chromium_manager(chromium_manager: "ChromiumManager") -> None:
    """
    Update Prometheus gauges from ChromiumManager current state.

    This function should be called before serving metrics to ensure
    gauges reflect the current state. It ONLY updates gauges, not counters.

    Args:
        chromium_manager: ChromiumManager instance to collect metrics from
    """
    try:
        metrics = chromium_manager.get_metrics()

        active_browsers.set(float(metrics["active_browsers"]))
        uptime_seconds.set(float(metrics["uptime_seconds"]))
        process_memory_bytes.set(float(psutil.Process().memory_info().rss))
        system_memory_available_bytes.set(float(psutil.virtual_memory().available))

        chromium_version = chromium_manager.get_version()
        if chromium_version:
            chromium_info.info({"version": chromium_version})

        logger.debug("Prometheus gauges updated from ChromiumManager")

    except Exception as e:
        logger.error("Failed to update Prometheus gauges: %s", e, exc_info=True)
