from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Mapping


class Corner(StrEnum):
    NW = "nw"
    NE = "ne"
    SW = "sw"
    SE = "se"

    @property
    def is_west(self) -> bool:
        return self in (Corner.NW, Corner.SW)

    @property
    def is_north(self) -> bool:
        return self in (Corner.NW, Corner.NE)


class Direction(StrEnum):
    LEFT = "left"
    RIGHT = "right"
    UP = "up"
    DOWN = "down"
    GROW = "grow"
    SHRINK = "shrink"


class AssetKind(StrEnum):
    IMAGE = "image"
    PDF = "pdf"


@dataclass(frozen=True)
class Position:
    """QR placement in percent of the rendered page."""

    x: float
    y: float
    width: float
    height: float
    rotation: float = 0.0

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def to_dict(self) -> dict[str, float]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "rotation": self.rotation,
        }

    def to_template_fields(self) -> dict[str, float]:
        return {
            "qr_position_x": self.x,
            "qr_position_y": self.y,
            "qr_width": self.width,
            "qr_height": self.height,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Position:
        return cls(
            x=float(payload.get("x") or 0.0),
            y=float(payload.get("y") or 0.0),
            width=float(payload.get("width") or 0.0),
            height=float(payload.get("height") or 0.0),
            rotation=float(payload.get("rotation") or 0.0),
        )

    @classmethod
    def from_template_fields(
        cls,
        record: Mapping[str, Any],
        default: Position,
    ) -> Position:
        """Read template columns, falling back per field on missing or zero."""

        return cls(
            x=float(record.get("qr_position_x") or default.x),
            y=float(record.get("qr_position_y") or default.y),
            width=float(record.get("qr_width") or default.width),
            height=float(record.get("qr_height") or default.height),
            rotation=0.0,
        )


@dataclass(frozen=True)
class TemplateAsset:
    """Visual asset the QR code is placed on.

    Either ``data`` holds the bytes of a fresh upload, or ``url`` points at an
    already stored asset.
    """

    kind: AssetKind
    data: bytes | None = None
    url: str = ""
    mime_type: str = ""
    name: str = ""


@dataclass(frozen=True)
class Bitmap:
    png: bytes
    width: int
    height: int
    page: int = 1


@dataclass(frozen=True)
class TemplateRecord:
    id: str
    name: str
    base_file_url: str
    file_type: AssetKind = AssetKind.IMAGE
    qr_position_x: float | None = None
    qr_position_y: float | None = None
    qr_width: float | None = None
    qr_height: float | None = None
    is_active: bool = True

    def qr_position(self, default: Position) -> Position:
        return Position.from_template_fields(
            {
                "qr_position_x": self.qr_position_x,
                "qr_position_y": self.qr_position_y,
                "qr_width": self.qr_width,
                "qr_height": self.qr_height,
            },
            default,
        )

    def asset(self) -> TemplateAsset:
        return TemplateAsset(
            kind=self.file_type,
            url=self.base_file_url,
            name=self.name,
        )
