"""
Dedicated metrics server for Prometheus metrics endpoint.

The /metrics endpoint is served by its own minimal FastAPI application on
METRICS_PORT, so scraping can be firewalled separately from the PDF API.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from typing import Annotated

import uvicorn
from fastapi import Depends, FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.chromium_manager import ChromiumManager, get_chromium_manager
from app.prometheus_metrics import update_gauges_from_chromium_manager
from app.service_config import is_enabled

logger = logging.getLogger(__name__)

# Port constants
MIN_VALID_PORT = 1024
MAX_VALID_PORT = 65535
DEFAULT_METRICS_PORT = 9180
STARTUP_TIMEOUT_SECONDS = 10.0

# Minimal FastAPI app for metrics only
metrics_app = FastAPI(
    title="HTML to PDF Metrics",
    version="1.0.0",
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)


@metrics_app.get("/metrics")
async def metrics(chromium_manager: Annotated[ChromiumManager, Depends(get_chromium_manager)]) -> Response:
    """
    Expose Prometheus metrics endpoint.

    Returns metrics in Prometheus text format:
    - PDF generation counters and durations, failures by error kind
    - Page render durations and font fallbacks
    - Rendering engine gauges (active browsers, uptime) and process memory

    Counters are incremented when events occur; this endpoint only refreshes the gauges.
    """
    update_gauges_from_chromium_manager(chromium_manager)
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def get_metrics_port() -> int:
    """
    Get metrics server port from environment variable.

    Returns:
        Port number from METRICS_PORT env var (default: 9180).
        Falls back to default if invalid value provided.
    """
    port_str = os.environ.get("METRICS_PORT", str(DEFAULT_METRICS_PORT))
    try:
        port = int(port_str)
        if not (MIN_VALID_PORT <= port <= MAX_VALID_PORT):
            logger.warning("METRICS_PORT must be between %d and %d, using default: %d", MIN_VALID_PORT, MAX_VALID_PORT, DEFAULT_METRICS_PORT)
            return DEFAULT_METRICS_PORT
        return port
    except ValueError:
        logger.warning("Invalid METRICS_PORT value '%s', using default: %d", port_str, DEFAULT_METRICS_PORT)
        return DEFAULT_METRICS_PORT


def is_metrics_server_enabled() -> bool:
    """True if METRICS_SERVER_ENABLED is not set or set to a truthy value."""
    return is_enabled(os.environ.get("METRICS_SERVER_ENABLED"), default=True)


class MetricsServer:
    """Background uvicorn server exposing metrics_app on its own port."""

    def __init__(self, port: int = DEFAULT_METRICS_PORT) -> None:
        self.port = port
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task[None] | None = None
        self._started = False

    async def start(self) -> None:
        """
        Serve metrics_app in a background task and wait until it accepts connections.

        Raises:
            TimeoutError: If uvicorn does not report ready within STARTUP_TIMEOUT_SECONDS.
        """
        if self._started:
            logger.warning("Metrics server already started")
            return

        self._server = uvicorn.Server(uvicorn.Config(app=metrics_app, host="", port=self.port, log_level="warning"))
        self._task = asyncio.create_task(self._server.serve())

        loop = asyncio.get_event_loop()
        deadline = loop.time() + STARTUP_TIMEOUT_SECONDS
        while not self._server.started:
            if loop.time() > deadline:
                logger.error("Metrics server failed to start within %s seconds", STARTUP_TIMEOUT_SECONDS)
                await self.stop()
                raise TimeoutError(f"Metrics server failed to start within {STARTUP_TIMEOUT_SECONDS} seconds")
            await asyncio.sleep(0.01)

        self._started = True
        logger.info("Metrics server listening on port %d", self.port)

    async def stop(self) -> None:
        """Ask uvicorn to exit; the serving task is cancelled if it does not finish within 5 seconds."""
        if not self._started:
            return

        if self._server is not None:
            self._server.should_exit = True

        task, self._task = self._task, None
        if task is not None:
            try:
                await asyncio.wait_for(task, timeout=5.0)
            except TimeoutError:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        self._started = False
        logger.info("Metrics server stopped")

    @property
    def is_running(self) -> bool:
        return self._started
