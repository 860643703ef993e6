"""Normalization of uploaded correction pictures.

Every picture is decoded (using the declared content type when it names
a known format, sniffing the magic bytes otherwise) and re-encoded as
PNG from a fresh raster. Stored pictures therefore share one format and
one encoder, so two uploads with the same pixels produce the same bytes
and the same digest.
"""

import io
import logging

from PIL import Image, ImageOps

logger = logging.getLogger("tracker.images")

MAX_DIMENSION = 10_000
MAX_ENCODED_BYTES = 5 * 1024 * 1024

CONTENT_TYPE_FORMATS = {
    "image/png": "PNG",
    "image/jpeg": "JPEG",
    "image/gif": "GIF",
    "image/webp": "WEBP",
    "image/tiff": "TIFF",
    "image/bmp": "BMP",
    "image/x-icon": "ICO",
    "image/avif": "AVIF",
}


class ImageError(ValueError):
    """Base class for pictures rejected during normalization."""


class ImageUndecodable(ImageError):
    """The bytes could not be decoded as an image."""


class ImageTooLarge(ImageError):
    """The decoded picture exceeds the allowed dimensions."""


class EncodedImageTooLarge(ImageError):
    """The canonical PNG exceeds the allowed size."""


def declared_format(content_type: str | None) -> str | None:
    """Map a `Content-Type` header value to a Pillow format name.

    Unknown or missing types return None so the caller falls back to
    sniffing.
    """
    if not content_type:
        return None
    mime = content_type.split(";", 1)[0].strip().lower()
    return CONTENT_TYPE_FORMATS.get(mime)


def _open(data: bytes, content_type: str | None) -> Image.Image:
    fmt = declared_format(content_type)
    formats = [fmt] if fmt else None
    try:
        return Image.open(io.BytesIO(data), formats=formats)
    except Image.DecompressionBombError as exc:
        raise ImageTooLarge(str(exc)) from exc
    except Exception as exc:
        raise ImageUndecodable(f"cannot identify image: {exc}") from exc


def _check_dimensions(width: int, height: int) -> None:
    if width > MAX_DIMENSION or height > MAX_DIMENSION:
        raise ImageTooLarge(f"picture is {width}x{height}, limit is {MAX_DIMENSION}x{MAX_DIMENSION}")


def _canonical_mode(img: Image.Image) -> str:
    if img.mode in ("RGBA", "LA", "PA") or "transparency" in img.info:
        return "RGBA"
    return "RGB"


def normalize_image(data: bytes, content_type: str | None = None) -> bytes:
    """Decode `data` and return the canonical PNG encoding of its first frame.

    Raises `ImageUndecodable`, `ImageTooLarge` or `EncodedImageTooLarge`.
    Dimensions are checked from the header, before pixel data is decoded.
    """
    with _open(data, content_type) as img:
        _check_dimensions(*img.size)
        try:
            img.load()
            oriented = ImageOps.exif_transpose(img)
            mode = _canonical_mode(oriented)
            raster = oriented.convert(mode)
        except Image.DecompressionBombError as exc:
            raise ImageTooLarge(str(exc)) from exc
        except Exception as exc:
            raise ImageUndecodable(f"cannot decode image: {exc}") from exc

    _check_dimensions(*raster.size)
    # Rebuilding from raw pixels drops every ancillary chunk (ICC, EXIF, text).
    clean = Image.frombytes(raster.mode, raster.size, raster.tobytes())
    out = io.BytesIO()
    clean.save(out, format="PNG", optimize=False, compress_level=6)
    png = out.getvalue()
    if len(png) > MAX_ENCODED_BYTES:
        raise EncodedImageTooLarge(f"encoded picture is {len(png)} bytes, limit is {MAX_ENCODED_BYTES}")
    logger.debug("normalized %s %sx%s picture to %d PNG bytes", mode, clean.width, clean.height, len(png))
    return png
