"""Interactive QR position editor session over a template asset."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable

from interaction import (
    EventHub,
    InteractionController,
    KeyEvent,
    Mode,
    PointerEvent,
    Viewport,
)
from placement_errors import (
    AssetFetchError,
    DocumentLoadError,
    PageRenderError,
    PlacementError,
)
from placement_geometry import clamp_to_bounds, with_size, with_x, with_y
from placement_types import Bitmap, Position, TemplateAsset
from rasterizers import Rasterizer, get_rasterizer

logger = logging.getLogger(__name__)

ZOOM_STEP = 0.25
MIN_ZOOM = 0.5
MAX_ZOOM = 3.0

AssetFetcher = Callable[[str], bytes]


class EditorStatus(StrEnum):
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
    CLOSED = "closed"


@dataclass(frozen=True)
class RenderRequest:
    """Tag attached to an in-flight render; stale tags are discarded."""

    page: int
    generation: int


class PositionEditor:
    """Composes rasterizer, coordinate model and input handling.

    The editor never talks to the network on save; ``on_save`` receives the
    final ``Position`` and the caller merges it into its own draft.
    """

    def __init__(
        self,
        asset: TemplateAsset,
        *,
        default: Position,
        on_save: Callable[[Position], None],
        on_cancel: Callable[[], None],
        initial: Position | None = None,
        window: EventHub | None = None,
        fetch_asset: AssetFetcher | None = None,
        lock_aspect: bool = True,
    ) -> None:
        self._asset = asset
        self._default = default
        self._on_save = on_save
        self._on_cancel = on_cancel
        self._fetch_asset = fetch_asset
        self.window = window or EventHub()

        self.viewport = Viewport(width=0.0, height=0.0)
        self.controller = InteractionController(
            self.window,
            self.viewport,
            clamp_to_bounds(initial or default),
            lock_aspect=lock_aspect,
            on_save=self.save,
            on_cancel=self.cancel,
        )

        self.show_grid = False
        self.status = EditorStatus.LOADING
        self.error: PlacementError | None = None
        self.current_page = 1
        self.total_pages = 1
        self.bitmap: Bitmap | None = None

        self._rasterizer: Rasterizer | None = None
        self._generation = 0
        self._pending: RenderRequest | None = None

    # -- state -----------------------------------------------------------

    @property
    def asset(self) -> TemplateAsset:
        return self._asset

    @property
    def position(self) -> Position:
        return self.controller.position

    @property
    def zoom(self) -> float:
        return self.viewport.zoom

    @property
    def lock_aspect(self) -> bool:
        return self.controller.lock_aspect

    @property
    def render_in_flight(self) -> bool:
        return self._pending is not None

    @property
    def closed(self) -> bool:
        return self.status is EditorStatus.CLOSED

    def snapshot(self) -> dict[str, object]:
        return {
            "status": self.status.value,
            "error": str(self.error) if self.error else None,
            "asset_kind": self._asset.kind.value,
            "current_page": self.current_page,
            "total_pages": self.total_pages,
            "zoom": self.zoom,
            "show_grid": self.show_grid,
            "lock_aspect": self.lock_aspect,
            "mode": self.controller.mode.value,
            "position": self.position.to_dict(),
            "bitmap": (
                {"width": self.bitmap.width, "height": self.bitmap.height}
                if self.bitmap
                else None
            ),
        }

    # -- loading and rendering --------------------------------------------

    def open(self) -> EditorStatus:
        """Load the asset and render the current page."""

        if self.closed:
            return self.status
        self.status = EditorStatus.LOADING
        self.error = None
        try:
            self._rasterizer = self._create_rasterizer()
            self.total_pages = self._rasterizer.load()
        except DocumentLoadError as exc:
            logger.warning("Template load failed: %s", exc)
            self._fail(exc)
            return self.status

        self.current_page = min(max(self.current_page, 1), self.total_pages)
        self._render_current()
        return self.status

    def retry(self) -> EditorStatus:
        if self._rasterizer is not None:
            self._rasterizer.close()
            self._rasterizer = None
        self._generation += 1
        self._pending = None
        return self.open()

    def load_asset(self, asset: TemplateAsset) -> EditorStatus:
        """Swap in a new asset; page selection and bitmap start over."""

        if self.closed:
            return self.status
        if self._rasterizer is not None:
            self._rasterizer.close()
            self._rasterizer = None
        self._asset = asset
        self._generation += 1
        self._pending = None
        self.current_page = 1
        self.total_pages = 1
        self.bitmap = None
        return self.open()

    def begin_render(self, page: int) -> RenderRequest:
        request = RenderRequest(page=page, generation=self._generation)
        self._pending = request
        self.status = EditorStatus.LOADING
        return request

    def complete_render(
        self,
        request: RenderRequest,
        bitmap: Bitmap | None = None,
        error: PlacementError | None = None,
    ) -> bool:
        """Apply a finished render; return ``False`` when it was stale."""

        if (
            self.closed
            or request.generation != self._generation
            or request.page != self.current_page
        ):
            logger.debug("Discarding stale render of page %d", request.page)
            if self._pending == request:
                self._pending = None
            return False

        self._pending = None
        if error is not None or bitmap is None:
            self._fail(
                error
                or PageRenderError(request.page, "Render finished without a bitmap.")
            )
            return True

        self.bitmap = bitmap
        self.error = None
        self.status = EditorStatus.READY
        if self.viewport.width <= 0 or self.viewport.height <= 0:
            self.viewport.width = float(bitmap.width)
            self.viewport.height = float(bitmap.height)
        return True

    def _render_current(self) -> None:
        rasterizer = self._rasterizer
        if rasterizer is None:
            raise DocumentLoadError("Template is not loaded.")
        request = self.begin_render(self.current_page)
        try:
            bitmap = rasterizer.render(request.page)
        except PageRenderError as exc:
            logger.warning("Page %d failed to render: %s", request.page, exc)
            self.complete_render(request, error=exc)
            return
        self.complete_render(request, bitmap=bitmap)

    def _create_rasterizer(self) -> Rasterizer:
        data = self._asset.data
        if data is None:
            if not self._asset.url:
                raise DocumentLoadError("Template asset has neither bytes nor URL.")
            if self._fetch_asset is None:
                raise DocumentLoadError(
                    f"No fetcher configured for template URL '{self._asset.url}'."
                )
            try:
                data = self._fetch_asset(self._asset.url)
            except AssetFetchError as exc:
                raise DocumentLoadError(str(exc)) from exc
        return get_rasterizer(self._asset.kind, data)

    def _fail(self, error: PlacementError) -> None:
        self.error = error
        self.status = EditorStatus.ERROR

    # -- toolbar -----------------------------------------------------------

    def _controls_enabled(self) -> bool:
        return self.status is EditorStatus.READY and not self.render_in_flight

    def go_to_page(self, page: int) -> bool:
        if not self._controls_enabled():
            return False
        if page < 1 or page > self.total_pages or page == self.current_page:
            return False
        self.current_page = page
        self._render_current()
        return True

    def next_page(self) -> bool:
        return self.go_to_page(self.current_page + 1)

    def previous_page(self) -> bool:
        return self.go_to_page(self.current_page - 1)

    def zoom_in(self) -> float:
        if self._controls_enabled():
            self.viewport.zoom = min(self.viewport.zoom + ZOOM_STEP, MAX_ZOOM)
        return self.viewport.zoom

    def zoom_out(self) -> float:
        if self._controls_enabled():
            self.viewport.zoom = max(self.viewport.zoom - ZOOM_STEP, MIN_ZOOM)
        return self.viewport.zoom

    def layout(self, left: float, top: float, width: float, height: float) -> None:
        """Record where the unscaled container sits on screen."""

        self.viewport.left = left
        self.viewport.top = top
        self.viewport.width = width
        self.viewport.height = height

    def toggle_grid(self) -> bool:
        self.show_grid = not self.show_grid
        return self.show_grid

    def toggle_aspect_lock(self) -> bool:
        self.controller.lock_aspect = not self.controller.lock_aspect
        return self.controller.lock_aspect

    def reset_position(self) -> Position:
        self.controller.position = clamp_to_bounds(self._default)
        return self.position

    def set_x(self, value: float) -> Position:
        self.controller.position = with_x(self.position, value)
        return self.position

    def set_y(self, value: float) -> Position:
        self.controller.position = with_y(self.position, value)
        return self.position

    def set_size(self, value: float) -> Position:
        self.controller.position = with_size(self.position, value, self.lock_aspect)
        return self.position

    # -- input -------------------------------------------------------------

    def pointer_down(self, event: PointerEvent) -> bool:
        if self.status is not EditorStatus.READY:
            return False
        return self.controller.pointer_down(event)

    def touch_start(self, event: PointerEvent) -> bool:
        if self.status is not EditorStatus.READY:
            return False
        return self.controller.touch_start(event)

    def key_down(self, event: KeyEvent) -> bool:
        """Deliver a key press through the window, like a global listener.

        Returns whether the editor's own handler consumed the key.
        """

        if self.closed:
            return False
        self.controller.last_key_consumed = False
        self.window.emit("keydown", event)
        return self.controller.last_key_consumed

    @property
    def mode(self) -> Mode:
        return self.controller.mode

    # -- lifecycle ---------------------------------------------------------

    def save(self) -> Position | None:
        """Hand the current position to the caller and close."""

        if self.status is not EditorStatus.READY:
            logger.debug("Save ignored while editor is %s", self.status)
            return None
        position = self.position
        self.close()
        self._on_save(position)
        return position

    def cancel(self) -> None:
        if self.closed:
            return
        self.close()
        self._on_cancel()

    def close(self) -> None:
        """Tear down listeners and any document state."""

        if self.closed:
            return
        self.controller.dispose()
        if self._rasterizer is not None:
            self._rasterizer.close()
            self._rasterizer = None
        self._generation += 1
        self._pending = None
        self.status = EditorStatus.CLOSED
