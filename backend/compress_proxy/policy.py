"""
Compression-worthiness heuristic.

Decides whether re-encoding an origin image is likely to save enough bytes
to be worth the CPU. Pure function, no I/O.
"""

from .config import MIN_COMPRESS_LENGTH


def should_compress(
    origin_type: str,
    origin_size: int,
    range_requested: bool,
    target_is_webp: bool,
    min_compress_length: int = MIN_COMPRESS_LENGTH,
) -> bool:
    """
    Decide whether to transcode an origin response.

    Rules are evaluated in order and the first match decides:
    1. Non-images are never transcoded.
    2. Unknown length or a Range request: stream as-is.
    3. PNG/GIF to a non-webp target only above 100 * min_compress_length.
    4. Webp target only at or above min_compress_length.
    5. Everything else is transcoded.

    Args:
        origin_type: Origin Content-Type
        origin_size: Origin Content-Length, 0 if unknown
        range_requested: Inbound request carried a Range header
        target_is_webp: Output format is webp
        min_compress_length: Size threshold in bytes

    Returns:
        True if the image should be transcoded
    """
    origin_type = (origin_type or "").lower()

    if not origin_type.startswith("image"):
        return False

    if origin_size == 0 or range_requested:
        return False

    # Media type without parameters, e.g. "image/png; charset=binary"
    media_type = origin_type.split(";", 1)[0].strip()

    if (
        not target_is_webp
        and (media_type.endswith("png") or media_type.endswith("gif"))
        and origin_size < min_compress_length * 100
    ):
        return False

    if target_is_webp and origin_size < min_compress_length:
        return False

    return True
