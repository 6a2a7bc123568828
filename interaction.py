"""Pointer, touch and keyboard handling for the placement rectangle."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Callable

from placement_geometry import nudge, nudge_step, resize, translate
from placement_types import Corner, Direction, Position

logger = logging.getLogger(__name__)

# Distance in screen pixels within which a press grabs a corner handle.
HANDLE_HIT_RADIUS = 12.0

POINTER_MOVE = "pointermove"
POINTER_UP = "pointerup"
TOUCH_MOVE = "touchmove"
TOUCH_END = "touchend"
KEY_DOWN = "keydown"

_ARROW_KEYS = {
    "ArrowLeft": Direction.LEFT,
    "ArrowRight": Direction.RIGHT,
    "ArrowUp": Direction.UP,
    "ArrowDown": Direction.DOWN,
}


class Mode(StrEnum):
    IDLE = "idle"
    DRAGGING = "dragging"
    RESIZING = "resizing"


@dataclass(frozen=True)
class PointerEvent:
    client_x: float
    client_y: float
    touches: int = 1


@dataclass(frozen=True)
class KeyEvent:
    key: str
    shift: bool = False
    ctrl: bool = False
    meta: bool = False


@dataclass(frozen=True)
class ScreenBox:
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height


Handler = Callable[[Any], None]


class Subscription:
    """Handle returned by ``EventHub.subscribe``; ``close`` detaches it."""

    def __init__(self, hub: EventHub, kind: str, handler: Handler) -> None:
        self._hub = hub
        self.kind = kind
        self.handler = handler
        self.active = True

    def close(self) -> None:
        if self.active:
            self._hub._remove(self)
            self.active = False


class EventHub:
    """Window-level event dispatcher that input listeners attach to."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = {}

    def subscribe(self, kind: str, handler: Handler) -> Subscription:
        subscription = Subscription(self, kind, handler)
        self._subscriptions.setdefault(kind, []).append(subscription)
        return subscription

    def emit(self, kind: str, event: Any) -> int:
        """Dispatch ``event`` to every handler of ``kind``; return the count."""

        handlers = list(self._subscriptions.get(kind, []))
        for subscription in handlers:
            if subscription.active:
                subscription.handler(event)
        return len(handlers)

    def listener_count(self, kind: str | None = None) -> int:
        if kind is not None:
            return len(self._subscriptions.get(kind, []))
        return sum(len(subs) for subs in self._subscriptions.values())

    def _remove(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.kind, [])
        if subscription in subs:
            subs.remove(subscription)
        if not subs:
            self._subscriptions.pop(subscription.kind, None)


class ListenerScope:
    """Group of subscriptions released together."""

    def __init__(self, hub: EventHub) -> None:
        self._hub = hub
        self._subscriptions: list[Subscription] = []

    def listen(self, kind: str, handler: Handler) -> None:
        self._subscriptions.append(self._hub.subscribe(kind, handler))

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions.clear()

    def __enter__(self) -> ListenerScope:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()


class Viewport:
    """Container geometry with a display-only zoom around its centre.

    ``left``, ``top``, ``width`` and ``height`` describe the unscaled
    container on screen.
    """

    def __init__(
        self,
        width: float,
        height: float,
        left: float = 0.0,
        top: float = 0.0,
        zoom: float = 1.0,
    ) -> None:
        self.left = left
        self.top = top
        self.width = width
        self.height = height
        self.zoom = zoom

    def screen_box(self) -> ScreenBox:
        """Return the container's bounding box as drawn at the current zoom."""

        scaled_w = self.width * self.zoom
        scaled_h = self.height * self.zoom
        center_x = self.left + self.width / 2.0
        center_y = self.top + self.height / 2.0
        return ScreenBox(
            left=center_x - scaled_w / 2.0,
            top=center_y - scaled_h / 2.0,
            width=scaled_w,
            height=scaled_h,
        )

    def delta_to_percent(self, dx: float, dy: float) -> tuple[float, float]:
        """Convert an on-screen pointer delta to percent of the logical page."""

        box = self.screen_box()
        if box.width <= 0 or box.height <= 0:
            return 0.0, 0.0
        return dx / box.width * 100.0, dy / box.height * 100.0

    def rect_on_screen(self, pos: Position) -> ScreenBox:
        box = self.screen_box()
        return ScreenBox(
            left=box.left + pos.x / 100.0 * box.width,
            top=box.top + pos.y / 100.0 * box.height,
            width=pos.width / 100.0 * box.width,
            height=pos.height / 100.0 * box.height,
        )


class InteractionController:
    """State machine mapping input events onto ``Position`` mutations."""

    def __init__(
        self,
        window: EventHub,
        viewport: Viewport,
        position: Position,
        *,
        lock_aspect: bool = True,
        hit_radius: float = HANDLE_HIT_RADIUS,
        on_change: Callable[[Position], None] | None = None,
        on_save: Callable[[], None] | None = None,
        on_cancel: Callable[[], None] | None = None,
    ) -> None:
        self.window = window
        self.viewport = viewport
        self.lock_aspect = lock_aspect
        self.hit_radius = hit_radius
        self._position = position
        self._on_change = on_change
        self._on_save = on_save
        self._on_cancel = on_cancel

        self._mode = Mode.IDLE
        self._corner: Corner | None = None
        self._last_pointer = (0.0, 0.0)
        self._drag_origin = (0.0, 0.0)
        self._drag_start_position = position
        self._pointer_scope: ListenerScope | None = None
        self._disposed = False
        self.last_key_consumed = False
        self._key_subscription: Subscription | None = window.subscribe(
            KEY_DOWN, self.key_down
        )

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def corner(self) -> Corner | None:
        return self._corner

    @property
    def position(self) -> Position:
        return self._position

    @position.setter
    def position(self, value: Position) -> None:
        self._set_position(value)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def hit_corner(self, client_x: float, client_y: float) -> Corner | None:
        rect = self.viewport.rect_on_screen(self._position)
        corners = {
            Corner.NW: (rect.left, rect.top),
            Corner.NE: (rect.right, rect.top),
            Corner.SW: (rect.left, rect.bottom),
            Corner.SE: (rect.right, rect.bottom),
        }
        for corner, (cx, cy) in corners.items():
            if (
                abs(client_x - cx) < self.hit_radius
                and abs(client_y - cy) < self.hit_radius
            ):
                return corner
        return None

    def hit_body(self, client_x: float, client_y: float) -> bool:
        rect = self.viewport.rect_on_screen(self._position)
        return (
            rect.left <= client_x <= rect.right
            and rect.top <= client_y <= rect.bottom
        )

    def pointer_down(self, event: PointerEvent) -> bool:
        """Start a drag or resize; return ``True`` when the press was taken."""

        if self._disposed or self._mode is not Mode.IDLE:
            return False

        corner = self.hit_corner(event.client_x, event.client_y)
        if corner is not None:
            self._corner = corner
            self._last_pointer = (event.client_x, event.client_y)
            self._enter(Mode.RESIZING)
            return True

        if self.hit_body(event.client_x, event.client_y):
            self._drag_origin = (event.client_x, event.client_y)
            self._drag_start_position = self._position
            self._enter(Mode.DRAGGING)
            return True

        return False

    def touch_start(self, event: PointerEvent) -> bool:
        if event.touches != 1:
            return False
        return self.pointer_down(event)

    def pointer_move(self, event: PointerEvent) -> None:
        if self._disposed:
            return

        if self._mode is Mode.DRAGGING:
            dx, dy = self.viewport.delta_to_percent(
                event.client_x - self._drag_origin[0],
                event.client_y - self._drag_origin[1],
            )
            self._set_position(translate(self._drag_start_position, dx, dy))
        elif self._mode is Mode.RESIZING and self._corner is not None:
            dx, dy = self.viewport.delta_to_percent(
                event.client_x - self._last_pointer[0],
                event.client_y - self._last_pointer[1],
            )
            self._last_pointer = (event.client_x, event.client_y)
            self._set_position(
                resize(self._position, self._corner, dx, dy, self.lock_aspect)
            )

    def touch_move(self, event: PointerEvent) -> None:
        if event.touches == 1:
            self.pointer_move(event)

    def pointer_up(self, event: PointerEvent | None = None) -> None:
        if self._mode is not Mode.IDLE:
            self._enter(Mode.IDLE)

    def key_down(self, event: KeyEvent) -> bool:
        """Handle a global key press; return ``True`` when it was consumed.

        The result is also kept in ``last_key_consumed`` for callers that
        deliver keys through the window.
        """

        self.last_key_consumed = self._handle_key(event)
        return self.last_key_consumed

    def _handle_key(self, event: KeyEvent) -> bool:
        if self._disposed or self._mode is not Mode.IDLE:
            return False

        step = nudge_step(event.shift)
        direction = _ARROW_KEYS.get(event.key)
        if direction is not None:
            self._set_position(nudge(self._position, direction, step))
            return True
        if event.key in ("+", "="):
            self._set_position(
                nudge(self._position, Direction.GROW, step, self.lock_aspect)
            )
            return True
        if event.key == "-":
            self._set_position(
                nudge(self._position, Direction.SHRINK, step, self.lock_aspect)
            )
            return True
        if event.key == "Escape":
            if self._on_cancel is not None:
                self._on_cancel()
            return True
        if event.key == "Enter" and (event.ctrl or event.meta):
            if self._on_save is not None:
                self._on_save()
            return True
        return False

    def dispose(self) -> None:
        """Detach every listener; later events no longer mutate the position."""

        if self._disposed:
            return
        self._release_pointer_scope()
        if self._key_subscription is not None:
            self._key_subscription.close()
            self._key_subscription = None
        self._mode = Mode.IDLE
        self._corner = None
        self._disposed = True

    def _enter(self, mode: Mode) -> None:
        logger.debug("Interaction %s -> %s", self._mode, mode)
        self._release_pointer_scope()
        self._mode = mode
        if mode is Mode.IDLE:
            self._corner = None
            return

        scope = ListenerScope(self.window)
        scope.listen(POINTER_MOVE, self.pointer_move)
        scope.listen(POINTER_UP, self.pointer_up)
        scope.listen(TOUCH_MOVE, self.touch_move)
        scope.listen(TOUCH_END, self.pointer_up)
        self._pointer_scope = scope

    def _release_pointer_scope(self) -> None:
        if self._pointer_scope is not None:
            self._pointer_scope.close()
            self._pointer_scope = None

    def _set_position(self, value: Position) -> None:
        if self._disposed or value == self._position:
            return
        self._position = value
        if self._on_change is not None:
            self._on_change(value)
