"""
PDF merging for rendered cover and pages documents.
"""

from __future__ import annotations

import io
import logging
from typing import Optional

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError

from .errors import MergeError

logger = logging.getLogger(__name__)

# Errors pypdf lets through on structurally broken input besides its own hierarchy
_PARSE_ERRORS = (PyPdfError, ValueError, KeyError, TypeError, IndexError)


def _read(data: bytes, label: str) -> PdfReader:
    try:
        reader = PdfReader(io.BytesIO(data))
        # Force the page tree to load so corruption surfaces here
        len(reader.pages)
    except _PARSE_ERRORS as exc:
        raise MergeError(f"{label} PDF could not be parsed: {exc}") from exc
    return reader


def count_pages(data: bytes, label: str = "Pages") -> int:
    """Return the number of pages in ``data``, raising MergeError if it is not a readable PDF."""
    return len(_read(data, label).pages)


def merge_documents(cover: Optional[bytes], pages: Optional[bytes]) -> bytes:
    """
    Combine the cover and pages PDFs into one document.

    With both inputs, every cover page is followed by every pages page, each
    in original order. With a single input its bytes are returned untouched so
    that a project with only one rendered asset is never re-encoded.

    Raises:
        MergeError: If both inputs are missing, or a present input is corrupt
            while a merge is needed
    """
    if cover is None and pages is None:
        raise MergeError("No PDF input available to merge")
    if cover is None:
        logger.info("Only pages PDF available, using it directly")
        return pages  # type: ignore[return-value]
    if pages is None:
        logger.info("Only cover PDF available, using it directly")
        return cover

    logger.info("Starting PDF merge process")
    cover_reader = _read(cover, "Cover")
    pages_reader = _read(pages, "Pages")

    writer = PdfWriter()
    try:
        for page in cover_reader.pages:
            writer.add_page(page)
        for page in pages_reader.pages:
            writer.add_page(page)
        buffer = io.BytesIO()
        writer.write(buffer)
    except _PARSE_ERRORS as exc:
        raise MergeError(f"PDF merge failed: {exc}") from exc

    merged = buffer.getvalue()
    logger.info(
        f"PDF merge completed: {len(cover_reader.pages)} cover + {len(pages_reader.pages)} pages, "
        f"merged size: {len(merged)} bytes"
    )
    return merged
