"""
Rendering of scanned PDF documents into gray page images.
"""

from pathlib import Path
from typing import Iterator, List, Tuple
import logging

import numpy as np
import fitz

from .exceptions import PDFProcessingError
from .memory_manager import MemoryManager

logger = logging.getLogger(__name__)


class PDFProcessor:
    """Handles PDF file processing and conversion to images."""

    def __init__(self, memory_manager: MemoryManager = None):
        self.memory_manager = memory_manager or MemoryManager()

    def iter_pages(self, pdf_path: Path, dpi: int = 300) -> Iterator[Tuple[int, np.ndarray]]:
        """Yield ``(page_index, gray_image)`` for every page of a PDF.

        Pages that fail to render are logged and skipped.
        """
        pdf_path = Path(pdf_path)
        if not pdf_path.is_file():
            raise PDFProcessingError("PDF 파일을 찾을 수 없습니다", str(pdf_path))
        try:
            doc = fitz.open(pdf_path.as_posix())
        except (RuntimeError, ValueError) as e:
            raise PDFProcessingError(f"PDF를 열 수 없습니다: {e}", str(pdf_path)) from e

        try:
            matrix = fitz.Matrix(dpi / 72.0, dpi / 72.0)
            total_pages = len(doc)
            logger.info(f"{pdf_path.name}: {total_pages} 페이지 렌더링 (DPI: {dpi})")

            for page_index in range(total_pages):
                try:
                    with self.memory_manager.memory_guard(f"PDF 페이지 {page_index} 렌더링"):
                        page = doc.load_page(page_index)
                        pix = page.get_pixmap(matrix=matrix, colorspace=fitz.csGRAY, alpha=False)
                        img = np.frombuffer(pix.samples, dtype=np.uint8).reshape(pix.height, pix.stride)
                        img = img[:, :pix.width].copy()
                except RuntimeError as e:
                    logger.warning(f"페이지 {page_index} 렌더링 실패 (건너뜀): {e}")
                    continue
                logger.debug(f"페이지 {page_index + 1}/{total_pages} 렌더링 완료: {img.shape}")
                yield page_index, img
        finally:
            doc.close()

    def render_pdf_to_images(self, pdf_path: Path, dpi: int = 300) -> List[Tuple[int, np.ndarray]]:
        """Render every page; raises PDFProcessingError if none could be rendered."""
        images = list(self.iter_pages(pdf_path, dpi))
        if not images:
            raise PDFProcessingError("PDF에서 렌더링된 페이지가 없습니다", str(pdf_path))
        return images

    def render_page(self, pdf_bytes: bytes, page_index: int = 0, dpi: int = 300) -> np.ndarray:
        """Render one page of an in-memory PDF."""
        try:
            doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        except (RuntimeError, ValueError) as e:
            raise PDFProcessingError(f"PDF를 열 수 없습니다: {e}") from e
        try:
            if not 0 <= page_index < len(doc):
                raise PDFProcessingError(f"페이지 번호가 범위를 벗어났습니다: {page_index} (총 {len(doc)})")
            matrix = fitz.Matrix(dpi / 72.0, dpi / 72.0)
            pix = doc.load_page(page_index).get_pixmap(matrix=matrix, colorspace=fitz.csGRAY, alpha=False)
            img = np.frombuffer(pix.samples, dtype=np.uint8).reshape(pix.height, pix.stride)
            return img[:, :pix.width].copy()
        finally:
            doc.close()

    @staticmethod
    def page_count(pdf_bytes: bytes) -> int:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        try:
            return len(doc)
        finally:
            doc.close()
