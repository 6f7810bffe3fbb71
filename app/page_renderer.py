"""
Single page rendering via Playwright/Chromium.

Each HTML document is rendered in its own browser context and page (an
isolated rendering session), which is always closed again, whatever the
outcome of the render.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from playwright.async_api import ViewportSize

from app.errors import PdfServiceError, classify_render_failure
from app.prometheus_metrics import observe_page_render
from app.schemas import MAX_RENDER_TIMEOUT_MS, PdfRenderOptions

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from playwright.async_api import Browser, BrowserContext, Page, Route

VIEWPORT_WIDTH = 1280
VIEWPORT_HEIGHT = 720
FONT_SETTLE_DELAY_MS = 500
# Budget for page.pdf() itself, on top of the content load timeout
PRINT_TIMEOUT_SECONDS = 30.0

ADMITTED_RESOURCE_TYPES = frozenset({"document", "script", "stylesheet", "font", "image"})


def admit_resource(resource_type: str) -> bool:
    """
    Decide whether Chromium may fetch a sub-resource while rendering.

    Documents, scripts, stylesheets, fonts and images are fetched, from any host.
    XHR/fetch, media, websockets, manifests, beacons and everything else are aborted.
    """
    return resource_type in ADMITTED_RESOURCE_TYPES


def effective_timeout_ms(options: PdfRenderOptions) -> float:
    return min(options.timeout, MAX_RENDER_TIMEOUT_MS)


def build_pdf_kwargs(options: PdfRenderOptions) -> dict[str, Any]:
    """
    Translate the closed option set into ``page.pdf()`` keyword arguments.

    - format / width + height: page size; exactly one of them is passed
    - landscape: paper orientation
    - scale: zoom of the rendered content (0.1 - 2.0)
    - print_background: print CSS background colors and images
    - display_header_footer, header_template, footer_template: page header/footer
    - margin: page margins, omitted sides are 0
    - prefer_css_page_size: a CSS ``@page { size }`` rule wins over the page size options
    """
    kwargs: dict[str, Any] = {
        "landscape": options.landscape,
        "scale": options.scale,
        "print_background": options.print_background,
        "display_header_footer": options.display_header_footer,
        "prefer_css_page_size": options.prefer_css_page_size,
        "margin": options.margin.model_dump(exclude_none=True),
    }

    page_format = options.effective_format
    if page_format is not None:
        kwargs["format"] = page_format
    else:
        kwargs["width"] = options.width
        kwargs["height"] = options.height

    if options.header_template is not None:
        kwargs["header_template"] = options.header_template
    if options.footer_template is not None:
        kwargs["footer_template"] = options.footer_template

    return kwargs


class PageRenderer:
    """
    Render one HTML document to PDF bytes in an isolated browser context.

    Args:
        font_settle_ms: Grace period after the content settled, for async font-face activation.
        print_timeout: Seconds allowed for page.pdf() on top of the content load timeout.
        logger: Optional logger; if None, a module-level logger is used.
    """

    def __init__(
        self,
        font_settle_ms: int = FONT_SETTLE_DELAY_MS,
        print_timeout: float = PRINT_TIMEOUT_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self.font_settle_ms = font_settle_ms
        self.print_timeout = print_timeout
        self.log = logger or logging.getLogger(__name__)

    async def render(self, browser: Browser, html: str, options: PdfRenderOptions) -> bytes:
        """
        Render ``html`` with ``options``.

        Raises:
            PdfServiceError: TIMEOUT_ERROR, RESOURCE_ERROR or RENDER_ERROR.
        """
        timeout_ms = effective_timeout_ms(options)
        deadline = timeout_ms / 1000 + self.font_settle_ms / 1000 + self.print_timeout
        start_time = time.time()

        try:
            async with self._open_session(browser) as page:
                pdf_bytes = await asyncio.wait_for(self._render_in_page(page, html, options, timeout_ms), timeout=deadline)
        except PdfServiceError:
            raise
        except Exception as e:
            error = classify_render_failure(e)
            self.log.warning("Page render failed (%s): %s", error.kind.value, error.details)
            raise error from e

        duration = time.time() - start_time
        observe_page_render(duration)
        self.log.debug("Page rendered in %.0f ms, %d bytes", duration * 1000, len(pdf_bytes))
        return pdf_bytes

    async def _render_in_page(self, page: Page, html: str, options: PdfRenderOptions, timeout_ms: float) -> bytes:
        await page.route("**/*", self._handle_route)
        page.set_default_timeout(timeout_ms)

        await page.set_content(html, wait_until=options.wait_until, timeout=timeout_ms)

        if self.font_settle_ms > 0:
            await asyncio.sleep(self.font_settle_ms / 1000)

        return await page.pdf(**build_pdf_kwargs(options))

    async def _handle_route(self, route: Route) -> None:
        request = route.request
        if admit_resource(request.resource_type):
            await route.continue_()
        else:
            self.log.debug("Blocked %s request", request.resource_type)
            await route.abort()

    @asynccontextmanager
    async def _open_session(self, browser: Browser) -> AsyncIterator[Page]:
        """
        Context manager yielding a fresh page in its own browser context.

        The page and its context are closed on every exit path, including
        cancellation by the batch scheduler or by a timeout.
        """
        context: BrowserContext | None = None
        page: Page | None = None
        try:
            context = await browser.new_context(
                viewport=ViewportSize(width=VIEWPORT_WIDTH, height=VIEWPORT_HEIGHT),
                device_scale_factor=1,
                ignore_https_errors=True,
            )
            page = await context.new_page()
            yield page
        finally:
            await self._close_session(page, context)

    async def _close_session(self, page: Page | None, context: BrowserContext | None) -> None:
        if page is not None:
            try:
                await page.close()
            except Exception as e:  # noqa: BLE001
                self.log.warning("Error closing page: %s", e)

        if context is not None:
            try:
                await context.close()
            except Exception as e:  # noqa: BLE001
                self.log.warning("Error closing context: %s", e)
