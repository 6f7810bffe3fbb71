"""
Error taxonomy for the HTML to PDF pipeline.

Every failure that leaves the pipeline is a single PdfServiceError carrying one
ErrorKind. Render failures are classified once, where they happen
(classify_render_failure); anything that reaches the HTTP layer unclassified
goes through classify_failure.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from pydantic import ValidationError

NETWORK_ERROR_MARKER = "net::"

TIMEOUT_MESSAGE = "Rendering timed out. Try reducing content complexity or external resources."
RESOURCE_MESSAGE = "Failed to load external resources (fonts/images)."
RENDER_MESSAGE = "Failed to render page to PDF."
UNKNOWN_MESSAGE = "Failed to generate PDF."


class ErrorKind(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RENDER_ERROR = "RENDER_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    RESOURCE_ERROR = "RESOURCE_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

    @property
    def http_status(self) -> int:
        return 400 if self is ErrorKind.VALIDATION_ERROR else 500


class PdfServiceError(Exception):
    """
    Classified failure of a PDF generation request.

    Attributes:
        kind: The error category; decides the HTTP status code.
        message: Human readable message, safe to show to API clients.
        details: Optional engine or parser specific information (error text, validation errors).
    """

    def __init__(self, kind: ErrorKind, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details

    @property
    def status_code(self) -> int:
        return self.kind.http_status

    def to_envelope(self) -> dict[str, Any]:
        """Return the JSON error envelope sent to API clients."""
        error: dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return {"error": error}

    def __repr__(self) -> str:
        return f"PdfServiceError(kind={self.kind.value}, message={self.message!r})"


def classify_render_failure(error: BaseException) -> PdfServiceError:
    """
    Classify an exception raised while rendering a single page.

    First match wins: a timeout, then a network-layer load failure (Chromium
    reports those as ``net::ERR_...``), then a generic render failure.
    """
    if isinstance(error, PdfServiceError):
        return error
    if isinstance(error, (PlaywrightTimeoutError, TimeoutError)):
        return PdfServiceError(ErrorKind.TIMEOUT_ERROR, TIMEOUT_MESSAGE, _error_text(error))
    if NETWORK_ERROR_MARKER in str(error):
        return PdfServiceError(ErrorKind.RESOURCE_ERROR, RESOURCE_MESSAGE, _error_text(error))
    return PdfServiceError(ErrorKind.RENDER_ERROR, RENDER_MESSAGE, _error_text(error))


def classify_failure(error: BaseException) -> PdfServiceError:
    """
    Map any failure that reached the request boundary to exactly one PdfServiceError.

    Precedence: validation failures, then already classified errors (returned
    unchanged), then everything else as UNKNOWN_ERROR.
    """
    if isinstance(error, ValidationError):
        return validation_failure(error)
    if isinstance(error, PdfServiceError):
        return error
    return PdfServiceError(ErrorKind.UNKNOWN_ERROR, UNKNOWN_MESSAGE, _error_text(error))


def validation_failure(error: ValidationError) -> PdfServiceError:
    errors = error.errors(include_url=False, include_context=False, include_input=False)
    message = ", ".join(f"{_format_location(e['loc'])}: {_format_reason(e['msg'])}" for e in errors)
    return PdfServiceError(ErrorKind.VALIDATION_ERROR, message or "Invalid request", details=errors)


def _format_location(loc: tuple[int | str, ...]) -> str:
    if not loc:
        return "body"
    return ".".join(str(part) for part in loc)


def _format_reason(msg: str) -> str:
    return msg.removeprefix("Value error, ")


def _error_text(error: BaseException) -> str:
    text = str(error)
    return text if text else error.__class__.__name__
