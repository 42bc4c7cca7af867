from __future__ import annotations

import asyncio
import io
import logging
from pathlib import Path
from typing import Protocol

import qrcode
from qrcode.image.pure import PyPNGImage

logger = logging.getLogger(__name__)

QR_BOX_SIZE = 10
QR_BORDER = 2
PNG_CONTENT_TYPE = "image/png"


class ArtifactStore(Protocol):
    async def save(self, path: str, content: bytes, *, content_type: str = PNG_CONTENT_TYPE) -> str:
        """Persist ``content`` under ``path`` and return its public URL."""
        ...


def render_qr_png(token: str) -> bytes:
    """Encode ``token`` as a QR code PNG; a scanner reading it recovers the token verbatim."""

    code = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=QR_BOX_SIZE,
        border=QR_BORDER,
    )
    code.add_data(token)
    code.make(fit=True)
    image = code.make_image(image_factory=PyPNGImage)
    buffer = io.BytesIO()
    image.save(buffer)
    return buffer.getvalue()


def ticket_artifact_path(order_id: str, token: str) -> str:
    return f"tickets/{order_id}/{token}.png"


class LocalArtifactStore:
    """Write artifacts below a directory that is served at ``base_url``."""

    def __init__(self, directory: str | Path, base_url: str) -> None:
        self._directory = Path(directory)
        self._base_url = base_url.rstrip("/")

    async def save(self, path: str, content: bytes, *, content_type: str = PNG_CONTENT_TYPE) -> str:
        target = self._resolve(path)
        await asyncio.to_thread(self._write, target, content)
        logger.debug("Stored %s artifact at %s", content_type, target)
        return f"{self._base_url}/{path.lstrip('/')}"

    def _resolve(self, path: str) -> Path:
        root = self._directory.resolve()
        target = (root / path.lstrip("/")).resolve()
        if root not in target.parents:
            raise ValueError(f"Artifact path escapes storage root: {path}")
        return target

    @staticmethod
    def _write(target: Path, content: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
