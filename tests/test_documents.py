"""
Tests for merging cover and pages PDFs.
"""

import io

import pytest
from pypdf import PdfReader

from helpers import make_pdf
from print_render_backend.documents import count_pages, merge_documents
from print_render_backend.errors import MergeError


def _page_widths(data: bytes) -> list:
    return [float(page.mediabox.width) for page in PdfReader(io.BytesIO(data)).pages]


class TestMergeDocuments:
    """Tests for merge_documents."""

    def test_cover_pages_come_first(self):
        cover = make_pdf(2, width=1000)
        pages = make_pdf(3, width=500)

        merged = merge_documents(cover, pages)

        assert _page_widths(merged) == [1000, 1000, 500, 500, 500]

    def test_pages_only_passes_through(self):
        pages = make_pdf(4)
        assert merge_documents(None, pages) is pages

    def test_cover_only_passes_through(self):
        cover = make_pdf(1)
        assert merge_documents(cover, None) is cover

    def test_single_input_is_not_parsed(self):
        """A lone asset is returned untouched even if it would not parse."""
        assert merge_documents(None, b"not really a pdf") == b"not really a pdf"

    def test_both_missing_raises(self):
        with pytest.raises(MergeError):
            merge_documents(None, None)

    def test_corrupt_cover_raises(self):
        with pytest.raises(MergeError, match="Cover"):
            merge_documents(b"garbage bytes", make_pdf(1))

    def test_corrupt_pages_raises(self):
        with pytest.raises(MergeError, match="Pages"):
            merge_documents(make_pdf(1), b"garbage bytes")

    def test_merging_twice_gives_same_content(self):
        cover = make_pdf(2, width=1000)
        pages = make_pdf(3, width=500)

        first = merge_documents(cover, pages)
        second = merge_documents(cover, pages)

        assert first == second
        assert _page_widths(first) == [1000, 1000, 500, 500, 500]


class TestCountPages:
    """Tests for count_pages."""

    def test_counts_pages(self):
        assert count_pages(make_pdf(24)) == 24

    def test_corrupt_input_raises(self):
        with pytest.raises(MergeError):
            count_pages(b"%PDF-1.4 truncated")
