"""
HTML pages to one PDF document.

Pipeline of a single request:
  1. resolve the optional web font into an @font-face rule
  2. inject the rule into every page
  3. launch one browser for the request
  4. render the pages in windows of bounded concurrency
  5. release the browser
  6. merge the rendered pages in input order
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from app.batch_scheduler import BatchScheduler, RenderJob
from app.document_assembler import DocumentAssembler
from app.errors import ErrorKind, PdfServiceError
from app.font_resolver import FontResolver
from app.html_preprocessor import HtmlPreprocessor
from app.page_renderer import PageRenderer

if TYPE_CHECKING:
    from contextlib import AbstractAsyncContextManager

    from playwright.async_api import Browser

    from app.schemas import PdfRequest
    from app.service_config import ServiceConfig

ENGINE_UNAVAILABLE_MESSAGE = "Rendering engine is not available in this environment."


class RenderingEngine(Protocol):
    """What the pipeline needs from a rendering engine; implemented by ChromiumManager."""

    def is_available(self) -> bool: ...

    def launch_browser(self) -> AbstractAsyncContextManager[Browser]: ...


@dataclass(frozen=True)
class PdfGenerationResult:
    """
    Outcome of a successful generation.

    Attributes:
        content: The merged PDF document.
        page_count: Number of HTML pages rendered.
        output_page_count: Number of pages of the merged PDF (an HTML page can print onto several).
        font_used: Family of the embedded web font, or None when system fonts were used.
    """

    content: bytes
    page_count: int
    output_page_count: int
    font_used: str | None


class PdfPipeline:
    def __init__(
        self,
        engine: RenderingEngine,
        config: ServiceConfig,
        font_resolver: FontResolver | None = None,
        preprocessor: HtmlPreprocessor | None = None,
        renderer: PageRenderer | None = None,
        scheduler: BatchScheduler | None = None,
        assembler: DocumentAssembler | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.engine = engine
        self.config = config
        self.font_resolver = font_resolver or FontResolver()
        self.preprocessor = preprocessor or HtmlPreprocessor()
        self.renderer = renderer or PageRenderer()
        self.scheduler = scheduler or BatchScheduler()
        self.assembler = assembler or DocumentAssembler()
        self.log = logger or logging.getLogger(__name__)

    async def generate(self, request: PdfRequest) -> PdfGenerationResult:
        """
        Render all pages of a validated request and merge them.

        Raises:
            PdfServiceError: UNKNOWN_ERROR when no browser can be launched, otherwise
                the classified failure of the first failing page.
        """
        if not self.engine.is_available():
            raise PdfServiceError(ErrorKind.UNKNOWN_ERROR, ENGINE_UNAVAILABLE_MESSAGE)

        start_time = time.time()

        font_css = await self.font_resolver.resolve(request.font)
        font_used = request.font.family if font_css and request.font else None

        jobs = [RenderJob(index=i, html=self.preprocessor.inject(html, font_css), options=request.options) for i, html in enumerate(request.pages)]
        self.log.info("Rendering %d page(s) with concurrency %d", len(jobs), self.config.max_concurrency)

        # Browser launch failures propagate unclassified and end up as UNKNOWN_ERROR
        async with self.engine.launch_browser() as browser:

            async def render_job(job: RenderJob) -> bytes:
                return await self.renderer.render(browser, job.html, job.options)

            buffers = await self.scheduler.run_all(jobs, render_job, self.config.max_concurrency)

        content = self.assembler.merge(buffers)
        output_page_count = self.assembler.count_pages(content)

        self.log.info(
            "Generated PDF from %d page(s): %d PDF page(s), %d bytes in %.0f ms",
            len(jobs),
            output_page_count,
            len(content),
            (time.time() - start_time) * 1000,
        )
        return PdfGenerationResult(content=content, page_count=len(jobs), output_page_count=output_page_count, font_used=font_used)
