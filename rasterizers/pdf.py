"""PDF rasterizer backed by PyMuPDF."""

from __future__ import annotations

import logging

import fitz

from placement_errors import DocumentLoadError, PageRenderError
from placement_types import Bitmap

from . import base

logger = logging.getLogger(__name__)

# Magnification applied to every rendered page.
RENDER_SCALE = 2.0


class Rasterizer(base.Rasterizer):
    """Keeps the document open so page changes do not re-parse it."""

    def __init__(self, data: bytes, scale: float = RENDER_SCALE) -> None:
        super().__init__(data)
        self._scale = scale
        self._doc: fitz.Document | None = None
        self._pages: dict[int, Bitmap] = {}

    @property
    def total_pages(self) -> int:
        return self._doc.page_count if self._doc is not None else 0

    def load(self) -> int:
        return self._open().page_count

    def _open(self) -> fitz.Document:
        self.close()
        if not self._data:
            raise DocumentLoadError("Template PDF is empty.")
        try:
            doc = fitz.open(stream=self._data, filetype="pdf")
        except (RuntimeError, ValueError) as exc:
            raise DocumentLoadError(f"Unable to open template PDF: {exc}") from exc
        if doc.page_count < 1:
            doc.close()
            raise DocumentLoadError("Template PDF has no pages.")
        self._doc = doc
        logger.debug("Loaded PDF with %d pages", doc.page_count)
        return doc

    def render(self, page: int = 1) -> Bitmap:
        doc = self._doc if self._doc is not None else self._open()

        cached = self._pages.get(page)
        if cached is not None:
            return cached

        if page < 1 or page > doc.page_count:
            raise PageRenderError(
                page,
                f"Page {page} is outside 1..{doc.page_count}.",
            )
        try:
            pdf_page = doc.load_page(page - 1)
            pix = pdf_page.get_pixmap(matrix=fitz.Matrix(self._scale, self._scale))
            bitmap = Bitmap(
                png=pix.tobytes("png"),
                width=pix.width,
                height=pix.height,
                page=page,
            )
        except (RuntimeError, ValueError) as exc:
            raise PageRenderError(page, f"Unable to render page {page}: {exc}") from exc

        self._pages[page] = bitmap
        return bitmap

    def close(self) -> None:
        self._pages.clear()
        if self._doc is not None:
            self._doc.close()
            self._doc = None
