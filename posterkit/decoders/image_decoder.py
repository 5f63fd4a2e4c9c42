from __future__ import annotations

import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from posterkit.errors import AssetFetchError

LOGGER = logging.getLogger("posterkit.decoder")

_HEIF_REGISTERED = False


def _register_heif_opener() -> bool:
    global _HEIF_REGISTERED
    if _HEIF_REGISTERED:
        return True
    try:
        from pillow_heif import register_heif_opener
    except ImportError:
        return False
    register_heif_opener()
    _HEIF_REGISTERED = True
    return True


def _looks_like_heif(data: bytes) -> bool:
    return len(data) >= 12 and data[4:8] == b"ftyp" and data[8:12] in {b"heic", b"heix", b"mif1", b"msf1", b"hevc"}


def decode_image_bytes(data: bytes, *, ref: str, kind: str) -> Image.Image:
    """Decode fetched bytes into an RGBA image, honouring EXIF orientation."""
    if not data:
        raise AssetFetchError(ref, kind, "empty response body")
    if _looks_like_heif(data) and not _register_heif_opener():
        raise AssetFetchError(ref, kind, "pillow-heif is required to decode HEIF/HEIC photos")
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            return ImageOps.exif_transpose(image).convert("RGBA")
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        LOGGER.warning("cannot decode %s asset: %s", kind, exc)
        raise AssetFetchError(ref, kind, f"undecodable image data ({type(exc).__name__})") from exc
