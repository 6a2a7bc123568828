"""Rasterizer loader; backends are imported only when an asset needs them."""

from __future__ import annotations

import logging
from importlib import import_module
from typing import Iterable

from placement_errors import UnsupportedAssetError
from placement_types import AssetKind

from .base import Rasterizer

logger = logging.getLogger(__name__)

_BACKENDS = {
    AssetKind.IMAGE: "image",
    AssetKind.PDF: "pdf",
}


def _load_backend_module(kind: AssetKind):
    return import_module(f"{__name__}.{_BACKENDS[kind]}")


def get_rasterizer(kind: AssetKind | str, data: bytes) -> Rasterizer:
    """Instantiate the rasterizer backend for ``kind`` over ``data``."""

    try:
        key = AssetKind(str(kind).lower())
    except ValueError:
        available = ", ".join(sorted(k.value for k in _BACKENDS))
        raise UnsupportedAssetError(
            f"Unknown asset kind '{kind}'. Available kinds: {available}"
        ) from None

    module = _load_backend_module(key)
    rasterizer_cls: type[Rasterizer] | None = getattr(module, "Rasterizer", None)
    if not rasterizer_cls or not issubclass(rasterizer_cls, Rasterizer):
        raise UnsupportedAssetError(
            f"Backend '{key}' does not export a valid Rasterizer class"
        )

    logger.debug("Using %s rasterizer for %d bytes", key, len(data))
    return rasterizer_cls(data)


def list_asset_kinds() -> Iterable[str]:
    return sorted(k.value for k in _BACKENDS)


__all__ = ["Rasterizer", "get_rasterizer", "list_asset_kinds"]
