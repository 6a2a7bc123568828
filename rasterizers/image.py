"""Pass-through rasterizer for PNG and JPEG templates."""

from __future__ import annotations

from io import BytesIO

from PIL import Image, UnidentifiedImageError

from placement_errors import DocumentLoadError, PageRenderError
from placement_types import Bitmap

from . import base


class Rasterizer(base.Rasterizer):
    """Images are displayed as-is; only the pixel size is read."""

    def __init__(self, data: bytes) -> None:
        super().__init__(data)
        self._size: tuple[int, int] | None = None

    def load(self) -> int:
        self._read_size()
        return 1

    def _read_size(self) -> tuple[int, int]:
        if not self._data:
            raise DocumentLoadError("Template image is empty.")
        try:
            with Image.open(BytesIO(self._data)) as img:
                self._size = img.size
        except (UnidentifiedImageError, OSError) as exc:
            raise DocumentLoadError(f"Unable to read template image: {exc}") from exc
        return self._size

    def render(self, page: int = 1) -> Bitmap:
        if page != 1:
            raise PageRenderError(page, f"Images have a single page, not page {page}.")
        width, height = self._size or self._read_size()
        return Bitmap(png=self._data, width=width, height=height, page=1)

    def close(self) -> None:
        self._size = None
