"""Tests for single page rendering against the fake browser."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from app.errors import ErrorKind, PdfServiceError
from app.page_renderer import VIEWPORT_HEIGHT, VIEWPORT_WIDTH, PageRenderer, admit_resource, build_pdf_kwargs, effective_timeout_ms
from app.schemas import PdfRenderOptions
from tests.fake_engine import FakeBrowser
from tests.utils_pdf import extract_page_texts


def make_route(resource_type: str, url: str) -> MagicMock:
    route = MagicMock()
    route.request.resource_type = resource_type
    route.request.url = url
    route.continue_ = AsyncMock()
    route.abort = AsyncMock()
    return route


class TestAdmitResource:
    @pytest.mark.parametrize("resource_type", ["document", "script", "stylesheet", "font", "image"])
    def test_admitted_types(self, resource_type):
        assert admit_resource(resource_type)

    @pytest.mark.parametrize("resource_type", ["xhr", "fetch", "media", "websocket", "manifest", "texttrack", "eventsource", "ping", "other"])
    def test_blocked_types(self, resource_type):
        assert not admit_resource(resource_type)


class TestBuildPdfKwargs:
    def test_defaults(self):
        kwargs = build_pdf_kwargs(PdfRenderOptions())

        assert kwargs == {
            "format": "A4",
            "landscape": False,
            "scale": 1.0,
            "print_background": False,
            "display_header_footer": False,
            "prefer_css_page_size": False,
            "margin": {"top": "0.5cm", "right": "0.5cm", "bottom": "0.5cm", "left": "0.5cm"},
        }

    def test_dimensions_replace_format(self):
        kwargs = build_pdf_kwargs(PdfRenderOptions.model_validate({"width": 800, "height": 600}))

        assert "format" not in kwargs
        assert kwargs["width"] == 800
        assert kwargs["height"] == 600

    def test_templates_and_flags(self):
        options = PdfRenderOptions.model_validate(
            {
                "format": "Letter",
                "landscape": True,
                "scale": 0.8,
                "printBackground": True,
                "displayHeaderFooter": True,
                "headerTemplate": "<div>head</div>",
                "footerTemplate": "<div>foot</div>",
                "preferCSSPageSize": True,
                "margin": {"top": "2cm"},
            }
        )

        kwargs = build_pdf_kwargs(options)

        assert kwargs["format"] == "Letter"
        assert kwargs["landscape"] is True
        assert kwargs["scale"] == 0.8
        assert kwargs["print_background"] is True
        assert kwargs["display_header_footer"] is True
        assert kwargs["header_template"] == "<div>head</div>"
        assert kwargs["footer_template"] == "<div>foot</div>"
        assert kwargs["prefer_css_page_size"] is True
        assert kwargs["margin"] == {"top": "2cm"}


def test_effective_timeout():
    assert effective_timeout_ms(PdfRenderOptions()) == 60000
    assert effective_timeout_ms(PdfRenderOptions(timeout=5000)) == 5000


@pytest.mark.asyncio
async def test_render_returns_pdf_and_closes_session():
    browser = FakeBrowser()
    renderer = PageRenderer(font_settle_ms=0)

    pdf = await renderer.render(browser, "<p>PAGE-7</p>", PdfRenderOptions.model_validate({"waitUntil": "load", "timeout": 5000}))

    assert extract_page_texts(pdf) == ["PAGE-7"]
    [context] = browser.contexts
    [page] = browser.pages
    assert context.options["viewport"] == {"width": VIEWPORT_WIDTH, "height": VIEWPORT_HEIGHT}
    assert context.options["device_scale_factor"] == 1
    assert page.wait_until == "load"
    assert page.default_timeout == 5000
    assert page.pdf_kwargs["format"] == "A4"
    assert page.closed
    assert context.closed


@pytest.mark.asyncio
async def test_render_installs_resource_filter():
    browser = FakeBrowser()

    await PageRenderer(font_settle_ms=0).render(browser, "<p>PAGE-0</p>", PdfRenderOptions())

    handler = browser.pages[0].route_handler
    allowed = make_route("stylesheet", "https://example.com/site.css")
    blocked = make_route("media", "https://example.com/video.mp4")
    await handler(allowed)
    await handler(blocked)

    allowed.continue_.assert_awaited_once()
    allowed.abort.assert_not_awaited()
    blocked.abort.assert_awaited_once()
    blocked.continue_.assert_not_awaited()


@pytest.mark.asyncio
async def test_render_aborts_fetch_even_to_font_cdn():
    browser = FakeBrowser()

    await PageRenderer(font_settle_ms=0).render(browser, "<p>PAGE-0</p>", PdfRenderOptions())

    route = make_route("fetch", "https://fonts.googleapis.com/css2?family=Inter")
    await browser.pages[0].route_handler(route)

    route.abort.assert_awaited_once()
    route.continue_.assert_not_awaited()


@pytest.mark.asyncio
async def test_render_passes_fractional_timeout():
    browser = FakeBrowser()

    await PageRenderer(font_settle_ms=0).render(browser, "<p>PAGE-0</p>", PdfRenderOptions.model_validate({"timeout": 1500.5}))

    assert browser.pages[0].default_timeout == 1500.5


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "kind"),
    [
        (PlaywrightTimeoutError("Timeout 5000ms exceeded."), ErrorKind.TIMEOUT_ERROR),
        (PlaywrightError("net::ERR_CONNECTION_REFUSED at https://example.com/x.css"), ErrorKind.RESOURCE_ERROR),
        (PlaywrightError("Target crashed"), ErrorKind.RENDER_ERROR),
    ],
)
async def test_render_failure_is_classified_and_session_closed(error, kind):
    browser = FakeBrowser(failures={"PAGE-bad": error})

    with pytest.raises(PdfServiceError) as exc_info:
        await PageRenderer(font_settle_ms=0).render(browser, "<p>PAGE-bad</p>", PdfRenderOptions())

    assert exc_info.value.kind == kind
    assert exc_info.value.details == str(error)
    assert browser.pages[0].closed
    assert browser.contexts[0].closed


@pytest.mark.asyncio
async def test_render_deadline_is_timeout_error():
    browser = FakeBrowser(delays={"PAGE-slow": 5.0})
    renderer = PageRenderer(font_settle_ms=0, print_timeout=0)

    with pytest.raises(PdfServiceError) as exc_info:
        await renderer.render(browser, "<p>PAGE-slow</p>", PdfRenderOptions(timeout=1000))

    assert exc_info.value.kind == ErrorKind.TIMEOUT_ERROR
    assert browser.contexts[0].closed


@pytest.mark.asyncio
async def test_render_close_errors_are_swallowed(caplog):
    browser = FakeBrowser()

    async def broken_close():
        raise PlaywrightError("Target closed")

    original_new_context = browser.new_context

    async def new_context(**options):
        context = await original_new_context(**options)
        context.close = broken_close
        return context

    browser.new_context = new_context

    with caplog.at_level("WARNING", logger="app.page_renderer"):
        pdf = await PageRenderer(font_settle_ms=0).render(browser, "<p>PAGE-0</p>", PdfRenderOptions())

    assert extract_page_texts(pdf) == ["PAGE-0"]
    assert "Error closing context: Target closed" in caplog.text


@pytest.mark.asyncio
async def test_render_cancellation_closes_session():
    browser = FakeBrowser(delays={"PAGE-slow": 5.0})

    task = asyncio.create_task(PageRenderer(font_settle_ms=0).render(browser, "<p>PAGE-slow</p>", PdfRenderOptions()))
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert browser.pages[0].closed
    assert browser.contexts[0].closed


@pytest.mark.asyncio
async def test_font_settle_delay_is_applied():
    browser = FakeBrowser()
    loop = asyncio.get_running_loop()

    start = loop.time()
    await PageRenderer(font_settle_ms=50).render(browser, "<p>PAGE-0</p>", PdfRenderOptions())

    assert loop.time() - start >= 0.05
