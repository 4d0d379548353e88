"""Storage module - uploaded image files."""

from trading_bridge.storage.images import ImageStore, StoredImage

__all__ = [
    "ImageStore",
    "StoredImage",
]
