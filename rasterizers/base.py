"""Abstract base class for template rasterizers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from placement_types import Bitmap


class Rasterizer(ABC):
    """Turns one page of a template asset into a displayable bitmap."""

    def __init__(self, data: bytes) -> None:
        self._data = data

    @property
    def total_pages(self) -> int:
        """Return the page count of the loaded asset."""

        return 1

    @abstractmethod
    def load(self) -> int:
        """Parse the asset and return its page count.

        Raises ``DocumentLoadError`` when the bytes cannot be parsed.
        """

    @abstractmethod
    def render(self, page: int = 1) -> Bitmap:
        """Return the bitmap for the 1-based ``page``.

        Raises ``PageRenderError`` when the page cannot be rasterized.
        """

    def close(self) -> None:
        """Release any parsed document state."""
