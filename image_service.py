# image_service.py
"""
Turns image data URLs from the designer into page-drawable images.

Nothing here raises into the renderer: a missing, oversized, malformed or
unsupported image yields None and a log line, and the slot is left empty.
"""
import base64
import binascii
import io
import logging
from dataclasses import dataclass
from urllib.parse import unquote_to_bytes

from PIL import Image, UnidentifiedImageError
from reportlab.lib.utils import ImageReader

from config import Config

logger = logging.getLogger(__name__)

PNG_MAGIC = b"\x89PNG"
JPEG_MAGIC = b"\xff\xd8\xff"
SVG_MARKER = b"<svg"

SUPPORTED_FORMATS = ("png", "jpeg", "jpg", "svg")


class ImageRejected(ValueError):
    pass


@dataclass
class EmbeddedImage:
    reader: ImageReader
    width: int
    height: int
    format: str


def validate_image_data(data, max_bytes: int | None = None) -> None:
    limit = Config.MAX_IMAGE_BYTES if max_bytes is None else max_bytes
    if not data:
        raise ImageRejected("No image data provided")
    if not isinstance(data, str):
        raise ImageRejected("Invalid image data format")
    if not data.startswith("data:"):
        raise ImageRejected("Invalid data URL format")
    if len(data) > limit:
        raise ImageRejected("Image file too large")


def _split_data_url(data: str) -> tuple[str, bytes]:
    """Returns (mime type, decoded bytes) of a data URL."""
    header, sep, body = data.partition(",")
    if not sep:
        raise ImageRejected("Data URL has no payload")
    meta = header[len("data:"):]
    mime = meta.split(";", 1)[0].strip().lower()
    if ";base64" in meta.lower():
        try:
            raw = base64.b64decode(body, validate=False)
        except (binascii.Error, ValueError) as e:
            raise ImageRejected(f"Invalid base64 payload: {e}") from e
    else:
        raw = unquote_to_bytes(body)
    if not raw:
        raise ImageRejected("Data URL payload is empty")
    return mime, raw


def _classify(mime: str, raw: bytes) -> str:
    head = raw[:8]
    if head.startswith(PNG_MAGIC):
        return "png"
    if head.startswith(JPEG_MAGIC):
        return "jpeg"
    if SVG_MARKER in raw[:256].lower():
        return "svg"
    if mime == "image/png":
        return "png"
    if mime in ("image/jpeg", "image/jpg"):
        return "jpeg"
    if mime == "image/svg+xml":
        return "svg"
    return "unknown"


def detect_image_type(data: str) -> str:
    """png, jpeg, svg or unknown. Header bytes decide; the MIME type is a tie-breaker."""
    try:
        mime, raw = _split_data_url(data)
    except ImageRejected:
        return "unknown"
    return _classify(mime, raw)


def _open_as(raw: bytes, expected: str) -> EmbeddedImage:
    try:
        img = Image.open(io.BytesIO(raw))
        img.load()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValueError(f"Not a decodable image: {e}") from e
    fmt = (img.format or "").upper()
    if fmt != expected:
        raise ValueError(f"Expected {expected}, decoded {fmt or 'unknown'}")
    reader = ImageReader(img)
    width, height = reader.getSize()
    return EmbeddedImage(reader=reader, width=int(width), height=int(height), format=expected.lower())


def _embed_png(raw: bytes) -> EmbeddedImage:
    return _open_as(raw, "PNG")


def _embed_jpeg(raw: bytes) -> EmbeddedImage:
    return _open_as(raw, "JPEG")


class ImageEmbedder:
    """
    embed(page, data) -> EmbeddedImage | None

    Decoded images are cached on the page, so an image drawn twice on the
    same page is decoded once.
    """

    def __init__(self, max_bytes: int | None = None):
        self.max_bytes = Config.MAX_IMAGE_BYTES if max_bytes is None else max_bytes

    def embed(self, page, data) -> EmbeddedImage | None:
        try:
            validate_image_data(data, self.max_bytes)
        except ImageRejected as e:
            logger.warning("Image rejected: %s", e)
            return None

        cache = getattr(page, "image_cache", None)
        if cache is not None and data in cache:
            return cache[data]

        embedded = self._embed(data)
        if cache is not None:
            cache[data] = embedded
        return embedded

    def _embed(self, data: str) -> EmbeddedImage | None:
        try:
            mime, raw = _split_data_url(data)
        except ImageRejected as e:
            logger.warning("Image rejected: %s", e)
            return None

        kind = _classify(mime, raw)
        try:
            if kind == "png":
                return _embed_png(raw)
            if kind == "jpeg":
                return _embed_jpeg(raw)
            if kind == "svg":
                logger.info("SVG images cannot be embedded; skipping")
                return None
            try:
                return _embed_png(raw)
            except ValueError:
                return _embed_jpeg(raw)
        except Exception:
            logger.warning("Error embedding %s image", kind, exc_info=True)
            return None


def process_image(data, image_type: str = "") -> dict:
    """Validation endpoint helper: echoes the image back when it is usable."""
    try:
        validate_image_data(data)
        kind = detect_image_type(data)
        if kind == "unknown":
            raise ImageRejected("Unrecognized image format")
        return {
            "success": True,
            "processedImageData": data,
            "detectedType": kind,
            "message": f"{image_type or kind} image processed successfully",
        }
    except ImageRejected as e:
        return {"success": False, "message": str(e)}
