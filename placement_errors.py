"""Error types shared by the editor, the form and the API client."""

from __future__ import annotations


class PlacementError(RuntimeError):
    """Base class for recoverable QR placement failures."""


class DocumentLoadError(PlacementError):
    """The template bytes could not be fetched or parsed."""


class PageRenderError(PlacementError):
    """A single page failed to rasterize."""

    def __init__(self, page: int, message: str) -> None:
        super().__init__(message)
        self.page = page


class UnsupportedAssetError(PlacementError):
    pass


class PositionRequiredError(PlacementError):
    """A visual asset is attached but no position was confirmed for it."""


class FormValidationError(PlacementError):
    pass


class UploadRejectedError(PlacementError):
    pass


class AssetFetchError(PlacementError):
    pass


class ApiError(PlacementError):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
