from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from app.errors import ErrorKind, PdfServiceError, validation_failure
from app.schemas import PdfRequest

logger = logging.getLogger(__name__)


def parse_json_body(raw: bytes) -> Any:
    """Decode a JSON request body, reporting malformed input as a validation failure."""
    if not raw.strip():
        raise PdfServiceError(ErrorKind.VALIDATION_ERROR, "body: Request body must be a JSON object")
    try:
        return json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Rejected malformed JSON body: %s", e)
        raise PdfServiceError(ErrorKind.VALIDATION_ERROR, "body: Request body is not valid JSON", str(e)) from e


def validate_pdf_request(payload: Any, max_pages: int) -> PdfRequest:
    """
    Validate and normalize a /generate-pdf payload.

    Args:
        payload: Decoded JSON body.
        max_pages: Page ceiling of the active deployment profile.

    Returns:
        The typed request with defaults applied.

    Raises:
        PdfServiceError: VALIDATION_ERROR naming every violated field.
    """
    try:
        request = PdfRequest.model_validate(payload, context={"max_pages": max_pages})
    except ValidationError as e:
        error = validation_failure(e)
        logger.warning("Request validation failed: %s", error.message)
        raise error from e

    logger.debug(
        "Validated request: pages=%d, format=%s, font=%s",
        len(request.pages),
        request.options.effective_format or f"{request.options.width}x{request.options.height}",
        request.font.family if request.font else None,
    )
    return request
