"""
Image Transcoder

Handles:
- Incremental decoding of the origin stream (Pillow ImageFile.Parser)
- Height ceiling resize, grayscale, format conversion
- Re-encoding to WebP/JPEG with the fastest encoder settings

Decode and encode steps are CPU-bound and run in a bounded worker pool.
A worker slot is taken per step, never while waiting on the origin.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from io import BytesIO
from typing import AsyncIterable, Awaitable, Callable, Optional

from PIL import Image, ImageFile

from .errors import ClientDisconnected, DecodeError, EncodeError
from .models import ImageFormat, TranscodeOptions

logger = logging.getLogger(__name__)

DisconnectCheck = Callable[[], Awaitable[bool]]


@dataclass
class TranscodedImage:
    """Encoded output of one transcode."""
    data: bytes
    content_type: str
    width: int
    height: int


# ============================================
# Pixel Operations (run in worker threads)
# ============================================

def _flatten_alpha(img: Image.Image) -> Image.Image:
    """Composite transparency onto a white background."""
    if img.mode == "P":
        img = img.convert("RGBA")
    if img.mode in ("RGBA", "LA"):
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img.convert("RGBA"), mask=img.getchannel("A"))
        return background
    return img


def prepare_image(img: Image.Image, options: TranscodeOptions) -> Image.Image:
    """
    Apply resize, grayscale and mode conversion for the target encoder.

    Args:
        img: Decoded image
        options: Transcode settings

    Returns:
        Image ready to be saved in options.target_format
    """
    width, height = img.size
    if height > options.max_output_height:
        new_height = options.max_output_height
        new_width = max(1, round(width * new_height / height))
        img = img.resize((new_width, new_height), Image.Resampling.LANCZOS)
        logger.debug(f"Resized {width}x{height} -> {new_width}x{new_height}")

    has_alpha = img.mode in ("RGBA", "LA", "PA") or (
        img.mode == "P" and "transparency" in img.info
    )

    if options.target_format is ImageFormat.JPEG:
        img = _flatten_alpha(img) if has_alpha else img
        if options.grayscale:
            return img.convert("L")
        return img if img.mode in ("RGB", "L") else img.convert("RGB")

    # WebP only takes RGB/RGBA
    if options.grayscale:
        if has_alpha:
            return img.convert("LA").convert("RGBA")
        return img.convert("L").convert("RGB")
    return img.convert("RGBA" if has_alpha else "RGB") if img.mode not in ("RGB", "RGBA") else img


def encode_image(img: Image.Image, options: TranscodeOptions) -> bytes:
    """Encode with lossless off and the fastest encoder effort."""
    output = BytesIO()
    save_kwargs = {"format": options.target_format.pil_format, "quality": options.quality}

    if options.target_format is ImageFormat.WEBP:
        save_kwargs["lossless"] = False
        save_kwargs["method"] = 0   # Compression method (0-6), 0 is fastest
    else:
        save_kwargs["optimize"] = False
        save_kwargs["progressive"] = False

    img.save(output, **save_kwargs)
    return output.getvalue()


# ============================================
# Transcoder
# ============================================

class Transcoder:
    """
    Decodes an async byte stream and re-encodes it.

    Usage:
        transcoder = Transcoder(max_concurrent=4)
        result = await transcoder.transcode(origin.body, options)
    """

    def __init__(self, max_concurrent: int = 1):
        self.max_concurrent = max(1, max_concurrent)
        self.semaphore = asyncio.Semaphore(self.max_concurrent)
        self.executor = ThreadPoolExecutor(
            max_workers=self.max_concurrent,
            thread_name_prefix="transcode",
        )
        logger.info(f"[CompressProxy] Transcoder initialized: max_concurrent={self.max_concurrent}")

    def shutdown(self):
        self.executor.shutdown(wait=False, cancel_futures=True)

    async def _run(self, func, *args):
        async with self.semaphore:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self.executor, func, *args)

    async def decode(
        self,
        chunks: AsyncIterable[bytes],
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> Image.Image:
        """
        Feed chunks to an incremental parser as they arrive.

        Raises:
            DecodeError: Payload is not a decodable image
            ClientDisconnected: Client went away while decoding
        """
        parser = ImageFile.Parser()
        try:
            async for chunk in chunks:
                if is_disconnected is not None and await is_disconnected():
                    raise ClientDisconnected("Client disconnected during decode")
                await self._run(parser.feed, chunk)
            img = await self._run(parser.close)
        except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
            raise DecodeError(f"Failed to decode image: {e}") from e
        return img

    async def encode(self, img: Image.Image, options: TranscodeOptions) -> TranscodedImage:
        """
        Resize/desaturate and encode a decoded image, then release it.

        Raises:
            EncodeError: Conversion or encoding failed
        """
        def _work() -> TranscodedImage:
            prepared = None
            try:
                prepared = prepare_image(img, options)
                data = encode_image(prepared, options)
                width, height = prepared.size
            finally:
                if prepared is not None and prepared is not img:
                    prepared.close()
                img.close()
            return TranscodedImage(
                data=data,
                content_type=options.target_format.mime_type,
                width=width,
                height=height,
            )

        try:
            return await self._run(_work)
        except (OSError, ValueError, KeyError) as e:
            raise EncodeError(f"Failed to encode image: {e}") from e

    async def transcode(
        self,
        chunks: AsyncIterable[bytes],
        options: TranscodeOptions,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> TranscodedImage:
        """
        Decode and re-encode one image.

        Args:
            chunks: Origin body
            options: Transcode settings
            is_disconnected: Polled between chunks; aborts when it returns True

        Returns:
            TranscodedImage with the encoded bytes
        """
        img = await self.decode(chunks, is_disconnected)
        return await self.encode(img, options)
