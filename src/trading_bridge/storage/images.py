"""Local storage for uploaded chart images."""

import asyncio
import base64
import binascii
import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path

from trading_bridge.config import StorageConfig
from trading_bridge.core.errors import InvalidArgument

logger = logging.getLogger(__name__)

DEFAULT_MIME = "image/png"

_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?;base64,(?P<data>.*)$", re.DOTALL)


@dataclass
class StoredImage:
    """A saved image and where the vision API can fetch it."""

    public_url: str
    filename: str
    mime: str
    size: int


def decode_base64_image(data: str) -> tuple[bytes, str]:
    """Decode a raw base64 string or a ``data:`` URL into bytes and MIME type."""
    if not isinstance(data, str) or not data.strip():
        raise InvalidArgument("Image is required")

    mime = DEFAULT_MIME
    payload = data.strip()
    match = _DATA_URL.match(payload)
    if match:
        mime = (match.group("mime") or DEFAULT_MIME).lower()
        payload = match.group("data")
    try:
        raw = base64.b64decode("".join(payload.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidArgument("Image could not be decoded") from e
    if not raw:
        raise InvalidArgument("Image is empty")
    return raw, mime


class ImageStore:
    """Writes images under the upload root and builds their public URLs."""

    def __init__(self, config: StorageConfig) -> None:
        self._config = config

    def _write(self, directory: Path, filename: str, raw: bytes) -> None:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / filename
        path.write_bytes(raw)
        path.chmod(0o644)

    async def save_base64(self, data: str, subfolder: str) -> StoredImage:
        raw, mime = decode_base64_image(data)
        ext = (mime.split("/")[1] or "png").lower()
        filename = f"{uuid.uuid4()}.{ext}"
        directory = Path(self._config.upload_root) / subfolder
        await asyncio.to_thread(self._write, directory, filename, raw)

        base_url = self._config.public_base_url.rstrip("/")
        stored = StoredImage(
            public_url=f"{base_url}/{subfolder}/{filename}",
            filename=filename,
            mime=mime,
            size=len(raw),
        )
        logger.debug(f"Saved image {stored.filename} ({stored.size} bytes)")
        return stored

    async def save_temp_base64(self, data: str) -> StoredImage:
        """Save an image under the temporary subfolder.

        Raises:
            InvalidArgument: Missing or undecodable image
        """
        return await self.save_base64(data, self._config.temp_subfolder)
