"""
Merging of per-page PDFs into one document.
"""

import gc
import logging
from collections.abc import Sequence
from io import BytesIO

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError

from app.errors import ErrorKind, PdfServiceError

GC_INTERVAL = 3
ASSEMBLY_MESSAGE = "Failed to assemble rendered pages into a single PDF."

logger = logging.getLogger(__name__)


class DocumentAssembler:
    """Concatenates rendered PDF buffers, page by page, in the given order.

    Every page of every buffer is copied, so an HTML page that printed onto
    several PDF pages contributes all of them.
    """

    def __init__(self, gc_interval: int = GC_INTERVAL) -> None:
        self.gc_interval = gc_interval

    def merge(self, buffers: Sequence[bytes]) -> bytes:
        """Merge ``buffers`` into a single PDF and return its bytes."""
        writer = PdfWriter()

        for index, buffer in enumerate(buffers):
            try:
                reader = PdfReader(BytesIO(buffer), strict=False)
                if reader.is_encrypted:
                    reader.decrypt("")
                for page in reader.pages:
                    writer.add_page(page)
            except (PyPdfError, ValueError, KeyError) as e:
                logger.error("Could not merge rendered page %d: %s", index + 1, e)
                raise PdfServiceError(ErrorKind.RENDER_ERROR, ASSEMBLY_MESSAGE, f"page {index + 1}: {e}") from e

            # Release parsed buffers regularly, large batches otherwise pile up
            if self.gc_interval > 0 and index > 0 and index % self.gc_interval == 0:
                gc.collect()

        output = BytesIO()
        writer.write(output)
        merged = output.getvalue()
        logger.debug("Merged %d rendered pages into %d PDF pages (%d bytes)", len(buffers), len(writer.pages), len(merged))
        return merged

    @staticmethod
    def count_pages(pdf_bytes: bytes) -> int:
        return len(PdfReader(BytesIO(pdf_bytes)).pages)
