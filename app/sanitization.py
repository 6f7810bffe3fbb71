"""Utilities for input sanitization in the HTML to PDF service."""

import re
from urllib.parse import quote, urlparse

DEFAULT_FILENAME = "document.pdf"

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|;]')


def sanitize_for_logging(text: str, max_length: int = 1000) -> str:
    """Sanitize text for safe logging by:
    - Converting non-string input to string
    - Removing all control characters
    - Replacing newlines with spaces
    - Truncating to `max_length` and appending '...[truncated]' if necessary

    Args:
        text (str): The input text to sanitize.
        max_length (int, optional): Maximum allowed length of the sanitized text. Defaults to 1000.

    Returns:
        str: The sanitized text safe for logging.

    """
    if not isinstance(text, str):
        text = str(text)

    # Replace newlines with spaces first (before removing other control characters)
    text = text.replace("\n", " ").replace("\r", " ")
    text = _CONTROL_CHARS.sub("", text)

    if len(text) > max_length:
        text = text[:max_length] + "...[truncated]"

    return text


def sanitize_url_for_logging(url: str | None) -> str:
    """Sanitize URL for safe logging by removing query parameters and credentials.

    Font URLs frequently carry API keys or signed tokens in the query string,
    so only scheme, host, port and path are kept.

    Args:
        url: The URL to sanitize. If None, returns 'None'.

    Returns:
        str: Sanitized URL.

    """
    if url is None:
        return "None"

    try:
        parsed = urlparse(str(url))
        safe_url = f"{parsed.scheme}://{parsed.hostname or ''}"
        if parsed.port:
            safe_url += f":{parsed.port}"
        safe_url += parsed.path or "/"
        return sanitize_for_logging(safe_url, max_length=200)
    except ValueError:
        # urlparse raises ValueError for invalid ports or IPv6 literals
        return sanitize_for_logging(str(url), max_length=200)


def sanitize_filename(filename: str | None) -> str:
    """Reduce a client supplied filename to something safe for a download name.

    Path separators, quotes and characters that are reserved on common file
    systems are replaced by underscores, control characters are removed and a
    missing ``.pdf`` extension is appended.
    """
    if not filename:
        return DEFAULT_FILENAME

    name = _CONTROL_CHARS.sub("", filename)
    name = _UNSAFE_FILENAME_CHARS.sub("_", name).strip(" .")
    if not name:
        return DEFAULT_FILENAME
    if not name.lower().endswith(".pdf"):
        name += ".pdf"
    return name


def content_disposition(filename: str | None) -> str:
    """Build an attachment Content-Disposition header value.

    Non-ASCII names get an ASCII fallback plus an RFC 5987 ``filename*`` parameter.
    """
    name = sanitize_filename(filename)
    try:
        name.encode("ascii")
    except UnicodeEncodeError:
        fallback = name.encode("ascii", "replace").decode("ascii").replace("?", "_")
        return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(name, safe='')}"
    return f'attachment; filename="{name}"'


def sanitize_header_value(value: str) -> str:
    """Make a client supplied value safe for an HTTP response header.

    Control characters are removed and non-ASCII characters are percent-encoded,
    since header values are sent as latin-1.
    """
    value = _CONTROL_CHARS.sub("", value)
    return quote(value, safe=" !#$&'()*+,-./:;=?@[]^_`{|}~")
