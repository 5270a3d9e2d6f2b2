"""Tests for rendering scanned PDFs."""

from __future__ import annotations

import fitz
import pytest

from rulier.exceptions import PDFProcessingError
from rulier.pdf_processor import PDFProcessor


def _ruled_pdf(pages: int = 2) -> bytes:
    doc = fitz.open()
    for _ in range(pages):
        page = doc.new_page(width=200, height=100)
        page.draw_line((10, 50), (190, 50), width=2)
    data = doc.tobytes()
    doc.close()
    return data


def test_render_page_in_memory():
    data = _ruled_pdf()
    assert PDFProcessor.page_count(data) == 2

    gray = PDFProcessor().render_page(data, 1, dpi=72)
    assert gray.shape == (100, 200)
    assert gray[50, 100] < 128
    assert gray[10, 100] > 200


def test_render_page_out_of_range():
    with pytest.raises(PDFProcessingError):
        PDFProcessor().render_page(_ruled_pdf(1), 3)


def test_render_file(tmp_path):
    path = tmp_path / "scan.pdf"
    path.write_bytes(_ruled_pdf(3))
    pages = PDFProcessor().render_pdf_to_images(path, dpi=72)
    assert [index for index, _ in pages] == [0, 1, 2]


def test_missing_file(tmp_path):
    with pytest.raises(PDFProcessingError):
        PDFProcessor().render_pdf_to_images(tmp_path / "absent.pdf")
