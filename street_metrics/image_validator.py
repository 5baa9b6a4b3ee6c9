from io import BytesIO

from PIL import Image, UnidentifiedImageError

from .errors import InvalidRequest

MEDIA_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}


def detect_media_type(data: bytes) -> str:
    try:
        with Image.open(BytesIO(data)) as img:
            fmt = (img.format or "").upper()
            img.verify()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise InvalidRequest("image could not be decoded") from exc
    media_type = MEDIA_TYPES.get(fmt)
    if media_type is None:
        raise InvalidRequest(f"unsupported image format: {fmt or 'unknown'}")
    return media_type


def validate_image_bytes(data: bytes, max_size_mb: int) -> str:
    """Return the media type of ``data`` or raise InvalidRequest."""
    if not data:
        raise InvalidRequest("image is empty")
    size_mb = len(data) / (1024 * 1024)
    if size_mb > max_size_mb:
        raise InvalidRequest(f"image is {size_mb:.1f} MB, limit is {max_size_mb} MB")
    return detect_media_type(data)
