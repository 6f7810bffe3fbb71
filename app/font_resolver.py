"""
Web font download and embedding.

A requested font is downloaded once per request and embedded into every page
as a base64 data URL, so Chromium never fetches it again while rendering.
Font problems are never fatal: any failure falls back to system fonts.
"""

from __future__ import annotations

import asyncio
import base64
import logging

import httpx

from app.prometheus_metrics import increment_font_resolution_failure
from app.sanitization import sanitize_url_for_logging
from app.schemas import FontDescriptor

FONT_FETCH_TIMEOUT_SECONDS = 10.0
MAX_FONT_BYTES = 2 * 1024 * 1024

FONT_MIME_TYPES = {
    "woff": "font/woff",
    "woff2": "font/woff2",
    "ttf": "font/ttf",
    "otf": "font/otf",
}

# CSS format() hints differ from the file extensions for TrueType and OpenType
FONT_FORMAT_HINTS = {
    "woff": "woff",
    "woff2": "woff2",
    "ttf": "truetype",
    "otf": "opentype",
}


class FontTooLargeError(Exception):
    pass


def build_font_face_css(font: FontDescriptor, font_bytes: bytes) -> str:
    """Return an @font-face rule embedding ``font_bytes`` for the descriptor's family/weight/style."""
    encoded = base64.b64encode(font_bytes).decode("ascii")
    return (
        "\n@font-face {\n"
        f"  font-family: '{font.family}';\n"
        f"  src: url('data:{FONT_MIME_TYPES[font.format]};base64,{encoded}') format('{FONT_FORMAT_HINTS[font.format]}');\n"
        f"  font-weight: {font.weight};\n"
        f"  font-style: {font.style};\n"
        "  font-display: swap;\n"
        "}\n"
    )


class FontResolver:
    """
    Resolve an optional FontDescriptor into an embeddable style fragment.

    Args:
        timeout: Hard upper bound in seconds for the whole download.
        max_bytes: Fonts larger than this are not embedded.
        transport: Optional httpx transport (tests use httpx.MockTransport).
        logger: Optional logger; if None, a module-level logger is used.
    """

    def __init__(
        self,
        timeout: float = FONT_FETCH_TIMEOUT_SECONDS,
        max_bytes: int = MAX_FONT_BYTES,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.timeout = timeout
        self.max_bytes = max_bytes
        self._transport = transport
        self.log = logger or logging.getLogger(__name__)

    async def resolve(self, font: FontDescriptor | None) -> str | None:
        """
        Download the font and build its @font-face rule.

        Returns:
            The CSS fragment, or None when no complete descriptor was given or the
            font could not be fetched (the pages then render with system fonts).
        """
        if font is None or not font.is_complete:
            return None

        url = str(font.url)
        safe_url = sanitize_url_for_logging(url)
        self.log.info("Downloading font '%s' from %s", font.family, safe_url)

        try:
            font_bytes = await asyncio.wait_for(self._download(url), timeout=self.timeout)
        except TimeoutError:
            self.log.warning("Font download timed out after %.1fs: %s", self.timeout, safe_url)
        except FontTooLargeError as e:
            self.log.warning("Font too large, using system fonts: %s (%s)", safe_url, e)
        except httpx.HTTPStatusError as e:
            # The exception text repeats the full URL, query string included
            self.log.warning("Font download failed, using system fonts: %s (HTTP %d)", safe_url, e.response.status_code)
        except httpx.HTTPError as e:
            self.log.warning("Font download failed, using system fonts: %s (%s)", safe_url, e.__class__.__name__)
        else:
            self.log.info("Font downloaded: %d bytes", len(font_bytes))
            return build_font_face_css(font, font_bytes)

        increment_font_resolution_failure()
        return None

    async def _download(self, url: str) -> bytes:
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True, transport=self._transport) as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()

                declared_length = response.headers.get("content-length", "")
                if declared_length.isdigit() and int(declared_length) > self.max_bytes:
                    raise FontTooLargeError(f"{declared_length} bytes declared, limit is {self.max_bytes}")

                chunks: list[bytes] = []
                received = 0
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    if received > self.max_bytes:
                        raise FontTooLargeError(f"more than {self.max_bytes} bytes received")
                    chunks.append(chunk)

        return b"".join(chunks)
