"""
Chromium rendering engine management via Playwright.

The Playwright driver is started once per worker process. Browsers are not
shared between requests: every PDF generation launches its own headless
Chromium through ChromiumManager.launch_browser() and owns it exclusively
until the context manager exits.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from playwright.async_api import async_playwright

from app.service_config import ServiceConfig, get_service_config

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from playwright.async_api import Browser, Playwright

BROWSER_LAUNCH_TIMEOUT_MS = 60000

_COMMON_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-software-rasterizer",
    "--disable-extensions",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-features=VizDisplayCompositor",
    "--hide-scrollbars",
    "--mute-audio",
    "--no-first-run",
]

# Serverless platforms run without /dev/shm and zygote support and with a tight memory limit
SERVERLESS_BROWSER_ARGS = [*_COMMON_ARGS, "--single-process", "--no-zygote", "--memory-pressure-off"]

LOCAL_BROWSER_ARGS = [
    *_COMMON_ARGS,
    "--disable-background-networking",
    "--disable-client-side-phishing-detection",
    "--disable-default-apps",
    "--disable-hang-monitor",
    "--disable-popup-blocking",
    "--disable-sync",
    "--no-default-browser-check",
    "--no-pings",
]


@dataclass
class RenderMetrics:
    """
    In-process metrics of PDF generation and browser usage.

    Attributes:
        total_generations: Successful PDF generations since start.
        failed_generations: Failed PDF generations since start.
        failures_by_kind: Failed generations per error kind.
        total_generation_time_ms: Time spent in successful generations (for averaging).
        avg_generation_time_ms: Average duration of a successful generation.
        pages_rendered: HTML pages rendered by successful generations.
        browsers_launched: Browsers launched since start.
        browsers_closed: Browsers released since start (successfully or not).
        browser_close_failures: Browser releases that raised an error.
        active_browsers: Browsers currently owned by in-flight requests.
        uptime_seconds: Time since the manager was started.
    """

    total_generations: int = 0
    failed_generations: int = 0
    failures_by_kind: dict[str, int] = field(default_factory=dict)
    total_generation_time_ms: float = 0.0
    avg_generation_time_ms: float = 0.0
    pages_rendered: int = 0

    browsers_launched: int = 0
    browsers_closed: int = 0
    browser_close_failures: int = 0
    active_browsers: int = 0

    uptime_seconds: float = 0.0
    start_time: float = field(default_factory=time.time)

    def record_success(self, duration_ms: float, page_count: int) -> None:
        """Record a successful PDF generation."""
        self.total_generations += 1
        self.pages_rendered += page_count
        self.total_generation_time_ms += duration_ms
        self.avg_generation_time_ms = self.total_generation_time_ms / self.total_generations

    def record_failure(self, kind: str) -> None:
        """Record a failed PDF generation."""
        self.failed_generations += 1
        self.failures_by_kind[kind] = self.failures_by_kind.get(kind, 0) + 1

    def record_browser_launch(self) -> None:
        self.browsers_launched += 1
        self.active_browsers += 1

    def record_browser_close(self, succeeded: bool) -> None:
        self.browsers_closed += 1
        self.active_browsers = max(0, self.active_browsers - 1)
        if not succeeded:
            self.browser_close_failures += 1

    def update_uptime(self) -> None:
        self.uptime_seconds = time.time() - self.start_time

    def reset_start_time(self) -> None:
        self.start_time = time.time()
        self.uptime_seconds = 0.0

    def get_error_rate(self) -> float:
        """Calculate error rate as percentage of all generations."""
        total_attempts = self.total_generations + self.failed_generations
        if total_attempts == 0:
            return 0.0
        return (self.failed_generations / total_attempts) * 100.0


class ChromiumManager:
    """
    Rendering engine capability backed by Playwright's Chromium.

    The manager owns the Playwright driver, hands out one freshly launched
    browser per request and keeps the in-process render metrics.
    """

    def __init__(
        self,
        config: ServiceConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """
        Initialize ChromiumManager.

        Args:
            config: Service configuration. If None, the process-wide configuration is used.
            logger: Optional logger; if None, a module-level logger is used.
        """
        self.log = logger or logging.getLogger(__name__)
        self.config = config or get_service_config()

        self._playwright: Playwright | None = None
        self._lock = asyncio.Lock()
        self._started = False
        self._browser_version: str | None = None

        self.metrics = RenderMetrics()

    async def start(self) -> None:
        """
        Start the Playwright driver.

        Raises:
            Exception: Whatever Playwright raises when the driver cannot be started.
        """
        async with self._lock:
            if self._started:
                self.log.warning("Playwright already started")
                return

            try:
                self.log.info("Starting Playwright driver (%s profile)...", self.config.environment)
                self._playwright = await async_playwright().start()
                self._started = True
                self.metrics.reset_start_time()
                self.log.info("Playwright driver started successfully")
            except Exception as e:
                self.log.error("Failed to start Playwright: %s", e)
                self._started = False
                self._playwright = None
                raise

    async def stop(self) -> None:
        """Stop the Playwright driver. Browsers of in-flight requests are closed by their owners."""
        async with self._lock:
            if not self._started:
                return

            try:
                if self._playwright:
                    await self._playwright.stop()
                self.log.info("Playwright driver stopped successfully")
            except Exception as e:  # noqa: BLE001
                self.log.error("Error stopping Playwright: %s", e)
            finally:
                # Always mark as stopped, even if cleanup fails
                self._started = False
                self._playwright = None

    def is_available(self) -> bool:
        """Check whether browsers can be launched in this environment."""
        return self._started and self._playwright is not None

    def health_check(self) -> bool:
        """
        Perform a health check on the rendering engine.

        Returns:
            True if the Playwright driver is running, False otherwise.
        """
        try:
            return self.is_available()
        except Exception as e:  # noqa: BLE001
            self.log.error("Health check failed: %s", e)
            return False

    def get_version(self) -> str | None:
        """
        Get the Chromium version of the most recently launched browser.

        Returns:
            Chromium version string (e.g., "131.0.6778.69") or None if no browser was launched yet.
        """
        return self._browser_version

    def launch_options(self) -> dict[str, Any]:
        """Playwright launch keyword arguments for the active deployment profile."""
        options: dict[str, Any] = {
            "headless": True,
            "args": list(SERVERLESS_BROWSER_ARGS if self.config.serverless else LOCAL_BROWSER_ARGS),
            "timeout": BROWSER_LAUNCH_TIMEOUT_MS,
        }
        if self.config.chromium_executable_path:
            options["executable_path"] = self.config.chromium_executable_path
        return options

    @asynccontextmanager
    async def launch_browser(self) -> AsyncIterator[Browser]:
        """
        Context manager launching a dedicated browser for one request.

        The browser is closed on every exit path. Close failures are logged and
        counted but never replace the outcome of the request.

        Raises:
            RuntimeError: If the Playwright driver is not running.
        """
        if not self.is_available() or self._playwright is None:
            raise RuntimeError("Playwright driver is not running")

        browser = await self._playwright.chromium.launch(**self.launch_options())
        self.metrics.record_browser_launch()
        self._browser_version = self._parse_version(browser.version)
        self.log.debug("Launched Chromium %s", self._browser_version)

        try:
            yield browser
        finally:
            await self._close_browser(browser)

    async def _close_browser(self, browser: Browser) -> None:
        try:
            await browser.close()
        except Exception as e:  # noqa: BLE001
            self.metrics.record_browser_close(succeeded=False)
            self.log.warning("Error closing browser: %s", e)
        else:
            self.metrics.record_browser_close(succeeded=True)
            self.log.debug("Browser closed")

    @staticmethod
    def _parse_version(version_string: str) -> str:
        # Extract version number from "HeadlessChrome/131.0.6778.69" format
        if "/" in version_string:
            return version_string.split("/")[1]
        return version_string

    def get_metrics(self) -> dict[str, Any]:
        """
        Get current metrics for monitoring and observability.

        Returns:
            Dictionary with the fields of RenderMetricsSchema:
            - pdf_generations, failed_pdf_generations, failures_by_kind
            - avg_pdf_generation_time_ms, error_rate_percent, pages_rendered
            - browsers_launched, browsers_closed, browser_close_failures, active_browsers
            - uptime_seconds (0 while the engine is not started)
        """
        if self._started:
            self.metrics.update_uptime()
        else:
            self.metrics.uptime_seconds = 0.0

        return {
            "pdf_generations": self.metrics.total_generations,
            "failed_pdf_generations": self.metrics.failed_generations,
            "failures_by_kind": dict(self.metrics.failures_by_kind),
            "avg_pdf_generation_time_ms": round(self.metrics.avg_generation_time_ms, 2),
            "error_rate_percent": round(self.metrics.get_error_rate(), 2),
            "pages_rendered": self.metrics.pages_rendered,
            "browsers_launched": self.metrics.browsers_launched,
            "browsers_closed": self.metrics.browsers_closed,
            "browser_close_failures": self.metrics.browser_close_failures,
            "active_browsers": self.metrics.active_browsers,
            "uptime_seconds": round(self.metrics.uptime_seconds, 2),
        }


# Global singleton instance
_chromium_manager: ChromiumManager | None = None


def get_chromium_manager() -> ChromiumManager:
    """
    Get the global ChromiumManager singleton instance.

    Returns:
        The ChromiumManager instance.

    Note:
        This is intended for dependency injection in FastAPI endpoints.
    """
    global _chromium_manager  # noqa: PLW0603
    if _chromium_manager is None:
        _chromium_manager = ChromiumManager()
    return _chromium_manager
