from __future__ import annotations

import logging
import re

from bs4 import BeautifulSoup, Tag
from bs4.exceptions import ParserRejectedMarkup

logger = logging.getLogger(__name__)

_START_TAGS = {
    "head": re.compile(r"<head\b[^>]*>", re.IGNORECASE),
    "html": re.compile(r"<html\b[^>]*>", re.IGNORECASE),
}


class HtmlPreprocessor:
    """
    Inject style fragments into HTML documents without re-serializing them.

    BeautifulSoup is only used to locate the structural anchors: the
    ``html.parser`` builder records where every start tag begins, so a
    ``<head>`` that appears inside a comment or a script is never mistaken for
    the real one. The fragment is then spliced into the original string, which
    keeps the rest of the document byte-for-byte unchanged. Markup the parser
    rejects is searched with plain start tag patterns instead.

    Insertion point, first match wins:
      * right after the ``<head ...>`` start tag
      * right after the ``<html ...>`` start tag, wrapped into a new ``<head>``
      * before all other content
    """

    def __init__(self, parser: str = "html.parser") -> None:
        self.parser = parser

    def inject(self, html: str, css: str | None) -> str:
        """Return ``html`` with ``<style>css</style>`` injected; never raises for odd markup."""
        if not css:
            return html

        try:
            soup: BeautifulSoup | None = BeautifulSoup(html, self.parser)
        except ParserRejectedMarkup as e:
            logger.debug("Parser rejected markup, locating start tags by pattern: %s", e)
            soup = None

        head_end = self._start_tag_end(html, soup, "head")
        if head_end is not None:
            logger.debug("Injecting style after <head> start tag at offset %d", head_end)
            return f"{html[:head_end]}\n<style>{css}</style>\n{html[head_end:]}"

        html_end = self._start_tag_end(html, soup, "html")
        if html_end is not None:
            logger.debug("No <head> found, injecting synthetic head after <html> start tag at offset %d", html_end)
            return f"{html[:html_end]}\n<head><style>{css}</style></head>\n{html[html_end:]}"

        logger.debug("No document structure found, prepending style")
        return f"<style>{css}</style>\n{html}"

    @staticmethod
    def _start_tag_end(html: str, soup: BeautifulSoup | None, name: str) -> int | None:
        """Offset just past the first ``<name ...>`` start tag, or None if there is none."""
        if soup is None:
            match = _START_TAGS[name].search(html)
            return match.end() if match else None

        tag = soup.find(name)
        if not isinstance(tag, Tag) or tag.sourceline is None or tag.sourcepos is None:
            return None

        offset = HtmlPreprocessor._offset_of(html, tag.sourceline, tag.sourcepos)
        if offset is None:
            return None

        match = _START_TAGS[name].match(html, offset)
        return match.end() if match else None

    @staticmethod
    def _offset_of(html: str, line: int, column: int) -> int | None:
        """Convert a 1-based line and 0-based column (as recorded by html.parser) to a string offset."""
        offset = 0
        for _ in range(line - 1):
            newline = html.find("\n", offset)
            if newline == -1:
                return None
            offset = newline + 1
        return offset + column
