"""
Media Probe for Postmedia.

Resolves the intrinsic geometry of a binary media object without a full
render: natural pixel size for images (Pillow header read) and pixel size
plus duration for video (ffprobe container metadata).
"""

import asyncio
import io
import json
import mimetypes
import os
import tempfile
import time
import uuid
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from PIL import Image, ImageOps, UnidentifiedImageError

from ..core.config import settings
from ..core.logging import get_logger, performance_logger, with_logging_context
from ..observability.metrics import metrics
from .errors import DecodeError
from .geometry import Dimensions

logger = get_logger("media.probe")

_IMAGE_ERRORS = (UnidentifiedImageError, OSError, ValueError, SyntaxError, Image.DecompressionBombError)

# EXIF Orientation values whose display size swaps the stored axes
_EXIF_ORIENTATION = 0x0112
_TRANSPOSED_ORIENTATIONS = {5, 6, 7, 8}


@dataclass
class MediaBlob:
    """Opaque media bytes with their declared type tag."""

    data: bytes
    content_type: str
    filename: str | None = None
    media_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class VideoInfo:
    """Container metadata of a video."""

    duration: float  # seconds
    dimensions: Dimensions


def _read_image_header(data: bytes) -> Dimensions:
    """Read natural (display-oriented) size from the image header only."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
            if img.getexif().get(_EXIF_ORIENTATION) in _TRANSPOSED_ORIENTATIONS:
                width, height = height, width
    except _IMAGE_ERRORS as e:
        raise DecodeError(f"Could not load image: {e}") from e

    if width <= 0 or height <= 0:
        raise DecodeError(f"Image reports invalid size {width}x{height}")

    return Dimensions(width, height)


def _decode_image(data: bytes) -> Image.Image:
    """Fully decode an image into an RGBA raster."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            return ImageOps.exif_transpose(img).convert("RGBA")
    except _IMAGE_ERRORS as e:
        raise DecodeError(f"Could not decode image: {e}") from e


def parse_ffprobe_output(raw: bytes | str) -> VideoInfo:
    """
    Extract duration and display size from ``ffprobe -print_format json``.

    Duration comes from the first video stream, falling back to the container.
    A +/-90 degree rotation tag swaps width and height, matching what players
    report for portrait phone footage.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"Unreadable ffprobe output: {e}") from e

    stream = next(
        (s for s in data.get("streams", []) if s.get("codec_type") == "video"),
        None,
    )
    if stream is None:
        raise DecodeError("No video stream found")

    width = int(stream.get("width") or 0)
    height = int(stream.get("height") or 0)
    if width <= 0 or height <= 0:
        raise DecodeError(f"Video stream reports invalid size {width}x{height}")

    raw_duration = stream.get("duration") or data.get("format", {}).get("duration")
    try:
        duration = float(raw_duration)
    except (TypeError, ValueError):
        raise DecodeError("Video duration is unavailable") from None

    if duration <= 0:
        raise DecodeError(f"Video reports invalid duration {duration}")

    if abs(_rotation_of(stream)) % 180 == 90:
        width, height = height, width

    return VideoInfo(duration=duration, dimensions=Dimensions(width, height))


def _rotation_of(stream: dict[str, Any]) -> int:
    rotate = stream.get("tags", {}).get("rotate")
    if rotate is not None:
        try:
            return int(rotate)
        except (TypeError, ValueError):
            return 0

    for side_data in stream.get("side_data_list", []):
        if "rotation" in side_data:
            try:
                return int(side_data["rotation"])
            except (TypeError, ValueError):
                return 0

    return 0


@asynccontextmanager
async def spooled_to_disk(blob: MediaBlob):
    """Write the blob to a temporary file for the duration of the block."""
    suffix = mimetypes.guess_extension(blob.content_type) or ""
    fd, path = tempfile.mkstemp(prefix="postmedia_probe_", suffix=suffix)

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(blob.data)
        yield path
    finally:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass


class MediaProbe:
    """
    Asynchronous metadata reader for images and video.

    Concurrent probes of the same media object share a single in-flight
    operation; probes of different objects are independent.
    """

    def __init__(self, ffprobe_binary: str | None = None, timeout: float | None = None):
        self.ffprobe_binary = ffprobe_binary or settings.media.ffprobe_binary
        self.timeout = timeout or settings.media.probe_timeout
        self._inflight: dict[tuple[str, str], asyncio.Future] = {}

    async def probe_image(self, blob: MediaBlob) -> Dimensions:
        """Natural pixel size of an image."""
        return await self._run_once(blob, "image", self._probe_image)

    async def probe_video(self, blob: MediaBlob) -> VideoInfo:
        """Duration and native pixel size of a video."""
        return await self._run_once(blob, "video", self._probe_video)

    async def decode_image(self, blob: MediaBlob) -> Image.Image:
        """Full RGBA decode used by the transform session."""
        return await self._run_once(blob, "decode", self._decode)

    async def _run_once(self, blob: MediaBlob, operation: str,
                        func: Callable[[MediaBlob], Awaitable[Any]]) -> Any:
        key = (blob.media_id, operation)

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._timed(blob, operation, func))
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        else:
            logger.debug("Joining in-flight probe", media_id=blob.media_id, operation=operation)

        return await asyncio.shield(task)

    def _forget(self, key: tuple[str, str], task: asyncio.Future):
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _timed(self, blob: MediaBlob, operation: str,
                     func: Callable[[MediaBlob], Awaitable[Any]]) -> Any:
        start_time = time.time()
        media_type = "video" if operation == "video" else "image"

        with with_logging_context(media_id=blob.media_id):
            try:
                result = await func(blob)
            except DecodeError as e:
                execution_time = time.time() - start_time
                metrics.track_media_probe(media_type, False, execution_time)
                performance_logger.log_probe(operation, execution_time, False, error=str(e))
                logger.warning("Media probe failed", operation=operation, error=str(e))
                raise

            execution_time = time.time() - start_time
            metrics.track_media_probe(media_type, True, execution_time)
            performance_logger.log_probe(operation, execution_time, True, file_size=blob.size)

            return result

    async def _probe_image(self, blob: MediaBlob) -> Dimensions:
        return await asyncio.get_event_loop().run_in_executor(None, _read_image_header, blob.data)

    async def _decode(self, blob: MediaBlob) -> Image.Image:
        return await asyncio.get_event_loop().run_in_executor(None, _decode_image, blob.data)

    async def _probe_video(self, blob: MediaBlob) -> VideoInfo:
        async with spooled_to_disk(blob) as path:
            stdout = await self._run_ffprobe(path)

        return parse_ffprobe_output(stdout)

    async def _run_ffprobe(self, file_path: str) -> bytes:
        cmd = [
            self.ffprobe_binary, '-v', 'error',
            '-print_format', 'json',
            '-show_streams',
            '-show_format',
            file_path
        ]

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError as e:
            raise DecodeError(f"ffprobe binary not found: {self.ffprobe_binary}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise DecodeError(f"ffprobe timed out after {self.timeout}s") from None

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise DecodeError(f"Could not load video: {message or 'ffprobe failed'}")

        return stdout


# Global probe instance
media_probe = MediaProbe()


# Convenience functions
async def probe_image(blob: MediaBlob) -> Dimensions:
    """Natural pixel size of an image."""
    return await media_probe.probe_image(blob)


async def probe_video(blob: MediaBlob) -> VideoInfo:
    """Duration and native pixel size of a video."""
    return await media_probe.probe_video(blob)
