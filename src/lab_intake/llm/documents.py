# ============================================================================
# src/lab_intake/llm/documents.py
# ============================================================================
"""
Document to image conversion for vision models.

Vision endpoints take images, not PDFs, so PDF pages are rendered to PNG
with PyMuPDF. JPEG and PNG uploads pass through untouched.
"""

import logging
from typing import List, Tuple

import pymupdf

from ..utils.exceptions import ExtractionError

logger = logging.getLogger(__name__)


def render_pdf_pages(content: bytes, max_pages: int = 10, dpi: int = 150) -> List[bytes]:
    """
    Render the first ``max_pages`` pages of a PDF to PNG bytes.

    Raises:
        ExtractionError: if the PDF cannot be opened or has no pages
    """
    try:
        doc = pymupdf.open(stream=content, filetype="pdf")
    except Exception as e:
        raise ExtractionError(f"Could not open PDF: {e}") from e

    try:
        page_count = doc.page_count
        if page_count == 0:
            raise ExtractionError("PDF has no pages")

        zoom = dpi / 72
        matrix = pymupdf.Matrix(zoom, zoom)
        images = []
        for page_num in range(min(page_count, max_pages)):
            pix = doc[page_num].get_pixmap(matrix=matrix)
            images.append(pix.tobytes("png"))
    finally:
        doc.close()

    if page_count > max_pages:
        logger.warning(f"PDF has {page_count} pages, only the first {max_pages} are sent")
    logger.info(f"Rendered {len(images)} PDF page(s) at {dpi} DPI")
    return images


def document_to_images(
    content: bytes,
    mime_type: str,
    max_pages: int = 10,
    dpi: int = 150
) -> List[Tuple[str, bytes]]:
    """
    Returns:
        (mime_type, image_bytes) per page
    """
    if mime_type == "application/pdf":
        return [("image/png", page) for page in render_pdf_pages(content, max_pages, dpi)]
    return [(mime_type, content)]
