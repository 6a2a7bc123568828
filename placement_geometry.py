"""Percentage-space geometry for the QR placement rectangle."""

from __future__ import annotations

import math

from placement_types import Corner, Direction, Position

MIN_SIZE = 5.0
MAX_PERCENT = 100.0

NUDGE_STEP = 1.0
NUDGE_STEP_FAST = 5.0


def _finite(value: float, fallback: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if math.isnan(number) or math.isinf(number):
        return fallback
    return number


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


def _fit(origin: float, size: float) -> float:
    """Shrink ``size`` so ``origin + size`` does not pass the page edge."""

    size = min(size, MAX_PERCENT - origin)
    while origin + size > MAX_PERCENT:
        size = math.nextafter(size, 0.0)
    return size


def _fit_origin(origin: float, size: float) -> float:
    origin = _clamp(origin, 0.0, MAX_PERCENT - size)
    while origin > 0.0 and origin + size > MAX_PERCENT:
        origin = math.nextafter(origin, 0.0)
    return origin


def _square(pos: Position) -> Position:
    side = min(pos.width, pos.height)
    return Position(pos.x, pos.y, side, side, pos.rotation)


def nudge_step(modifier: bool) -> float:
    """Return the keyboard step, larger while a modifier key is held."""

    return NUDGE_STEP_FAST if modifier else NUDGE_STEP


def clamp_to_bounds(pos: Position) -> Position:
    """Force ``pos`` fully inside the page with sides of at least ``MIN_SIZE``.

    Sizes are clamped first, then the origin, and finally the sides are
    shrunk so the far edges stay on the page.
    """

    width = _clamp(_finite(pos.width, MIN_SIZE), MIN_SIZE, MAX_PERCENT)
    height = _clamp(_finite(pos.height, MIN_SIZE), MIN_SIZE, MAX_PERCENT)
    x = _clamp(_finite(pos.x, 0.0), 0.0, MAX_PERCENT - MIN_SIZE)
    y = _clamp(_finite(pos.y, 0.0), 0.0, MAX_PERCENT - MIN_SIZE)
    return Position(
        x=x,
        y=y,
        width=_fit(x, width),
        height=_fit(y, height),
        rotation=_finite(pos.rotation, 0.0),
    )


def translate(pos: Position, dx: float, dy: float) -> Position:
    """Move ``pos`` by ``(dx, dy)`` without changing its size."""

    pos = clamp_to_bounds(pos)
    x = _fit_origin(pos.x + _finite(dx, 0.0), pos.width)
    y = _fit_origin(pos.y + _finite(dy, 0.0), pos.height)
    return Position(x, y, pos.width, pos.height, pos.rotation)


def resize(
    pos: Position,
    corner: Corner,
    dx: float,
    dy: float,
    lock_aspect: bool = False,
) -> Position:
    """Drag ``corner`` by ``(dx, dy)``.

    West corners move the left edge, north corners the top edge. Under
    ``lock_aspect`` the height follows the width and the result is square:
    ``ne`` keeps its bottom edge in place, while ``nw`` moves its top edge
    by ``dy`` like an unlocked drag.
    """

    pos = clamp_to_bounds(pos)
    corner = Corner(corner)
    dx = _finite(dx, 0.0)
    dy = _finite(dy, 0.0)

    right = pos.right
    bottom = pos.bottom
    top_follows_pointer = lock_aspect and corner is Corner.NW

    width = pos.width - dx if corner.is_west else pos.width + dx
    if lock_aspect:
        height = width
    elif corner.is_north:
        height = pos.height - dy
    else:
        height = pos.height + dy

    width = max(width, MIN_SIZE)
    height = max(height, MIN_SIZE)

    if corner.is_west:
        width = min(width, right)
        x = right - width
    else:
        x = pos.x
        width = _fit(x, width)

    if top_follows_pointer:
        y = _clamp(pos.y + dy, 0.0, MAX_PERCENT - MIN_SIZE)
        height = _fit(y, height)
    elif corner.is_north:
        height = min(height, bottom)
        y = bottom - height
    else:
        y = pos.y
        height = _fit(y, height)

    if lock_aspect:
        side = min(width, height)
        if corner.is_west:
            x = right - side
        if corner is Corner.NE:
            y = bottom - side
        width = height = side

    resized = clamp_to_bounds(Position(x, y, width, height, pos.rotation))
    if lock_aspect and resized.width != resized.height:
        resized = _square(resized)
    return resized


def nudge(
    pos: Position,
    direction: Direction,
    step: float = NUDGE_STEP,
    lock_aspect: bool = False,
) -> Position:
    """Apply a keyboard step: move for arrows, grow or shrink otherwise."""

    pos = clamp_to_bounds(pos)
    direction = Direction(direction)
    step = abs(_finite(step, NUDGE_STEP))

    if direction is Direction.LEFT:
        return translate(pos, -step, 0.0)
    if direction is Direction.RIGHT:
        return translate(pos, step, 0.0)
    if direction is Direction.UP:
        return translate(pos, 0.0, -step)
    if direction is Direction.DOWN:
        return translate(pos, 0.0, step)

    if direction is Direction.GROW:
        width = _fit(pos.x, pos.width + step)
        if lock_aspect:
            width = height = _fit(pos.y, width)
        else:
            height = _fit(pos.y, pos.height + step)
    else:
        width = max(MIN_SIZE, pos.width - step)
        height = width if lock_aspect else max(MIN_SIZE, pos.height - step)

    nudged = clamp_to_bounds(Position(pos.x, pos.y, width, height, pos.rotation))
    if lock_aspect and nudged.width != nudged.height:
        nudged = _square(nudged)
    return nudged


def with_x(pos: Position, value: float) -> Position:
    pos = clamp_to_bounds(pos)
    x = _fit_origin(_finite(value, pos.x), pos.width)
    return Position(x, pos.y, pos.width, pos.height, pos.rotation)


def with_y(pos: Position, value: float) -> Position:
    pos = clamp_to_bounds(pos)
    y = _fit_origin(_finite(value, pos.y), pos.height)
    return Position(pos.x, y, pos.width, pos.height, pos.rotation)


def with_size(pos: Position, value: float, lock_aspect: bool = False) -> Position:
    """Set the width from a numeric field; the height follows under lock."""

    pos = clamp_to_bounds(pos)
    width = _clamp(_finite(value, pos.width), MIN_SIZE, MAX_PERCENT)
    height = width if lock_aspect else pos.height
    resized = clamp_to_bounds(Position(pos.x, pos.y, width, height, pos.rotation))
    if lock_aspect and resized.width != resized.height:
        resized = _square(resized)
    return resized


def is_within_bounds(pos: Position) -> bool:
    return (
        pos.x >= 0.0
        and pos.y >= 0.0
        and pos.width >= MIN_SIZE
        and pos.height >= MIN_SIZE
        and pos.right <= MAX_PERCENT
        and pos.bottom <= MAX_PERCENT
    )
