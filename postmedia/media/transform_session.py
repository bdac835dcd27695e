"""
Transform Session for Postmedia.

Interactive image editing state machine: a decoded source, a display-space
preview re-rendered on every mutation (rotate, flip, crop selection) and a
commit step that bakes the same transform stack into a raster at original
resolution.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum

from PIL import Image

from ..core.config import settings
from ..core.logging import get_logger, performance_logger, with_logging_context
from ..observability.metrics import metrics
from . import raster
from .errors import ExportError, SessionStateError
from .geometry import CropRect, Dimensions, centered_square, clamp_rect, fit_within, scale_rect
from .probe import MediaBlob, MediaProbe, media_probe

logger = get_logger("media.transform_session")

MIN_CROP_EXTENT = 20
HANDLE_TOLERANCE = 5


class SessionState(Enum):
    """Lifecycle of a transform session."""
    LOADING = "loading"
    READY = "ready"
    CROPPING = "cropping"
    COMMITTED = "committed"
    CANCELLED = "cancelled"


class Handle(Enum):
    """Grab points of the crop rectangle."""
    TOP_LEFT = "top-left"
    TOP_RIGHT = "top-right"
    BOTTOM_LEFT = "bottom-left"
    BOTTOM_RIGHT = "bottom-right"
    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"
    MOVE = "move"


@dataclass(frozen=True)
class Viewport:
    """Size of the container hosting the preview surface."""
    width: float
    height: float


@dataclass
class TransformState:
    """Pending edits of a session."""
    rotation_deg: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False
    crop_mode: bool = False
    crop_rect: CropRect = field(default_factory=CropRect.empty)


@dataclass(frozen=True)
class ExportedRaster:
    """Encoded output of a committed session."""
    data: bytes
    content_type: str
    dimensions: Dimensions

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class _Drag:
    handle: Handle | None  # None while drawing a new rect
    start_x: float
    start_y: float
    origin: CropRect


def display_dimensions(source: Dimensions, viewport: Viewport, padding: float = 32,
                       min_width: float = 200, min_height: float = 150) -> Dimensions:
    """
    Preview surface size for a source inside a viewport.

    Fits the source into the padded content box without upscaling, applies
    the minimum surface size and truncates to whole pixels.
    """
    content_box = Dimensions(max(viewport.width - padding, 1), max(viewport.height - padding, 1))
    fitted = fit_within(source, content_box)

    width = max(fitted.width, min_width)
    height = max(fitted.height, min_height)

    return Dimensions(int(width), int(height))


def handle_at_point(rect: CropRect, x: float, y: float,
                    tolerance: float = HANDLE_TOLERANCE) -> Handle | None:
    """Which handle (if any) of ``rect`` lies under the pointer."""
    corner_reach = raster.HANDLE_SIZE / 2 + tolerance
    corners = [
        (Handle.TOP_LEFT, rect.x, rect.y),
        (Handle.TOP_RIGHT, rect.right, rect.y),
        (Handle.BOTTOM_LEFT, rect.x, rect.bottom),
        (Handle.BOTTOM_RIGHT, rect.right, rect.bottom),
    ]
    for handle, cx, cy in corners:
        if abs(x - cx) <= corner_reach and abs(y - cy) <= corner_reach:
            return handle

    long_reach = raster.SIDE_HANDLE_LENGTH / 2 + tolerance
    short_reach = raster.SIDE_HANDLE_THICKNESS / 2 + tolerance
    mid_x = rect.x + rect.width / 2
    mid_y = rect.y + rect.height / 2

    if abs(x - mid_x) <= long_reach:
        if abs(y - rect.y) <= short_reach:
            return Handle.TOP
        if abs(y - rect.bottom) <= short_reach:
            return Handle.BOTTOM
    if abs(y - mid_y) <= long_reach:
        if abs(x - rect.x) <= short_reach:
            return Handle.LEFT
        if abs(x - rect.right) <= short_reach:
            return Handle.RIGHT

    if rect.contains(x, y):
        return Handle.MOVE

    return None


def resize_rect(rect: CropRect, handle: Handle, x: float, y: float,
                minimum: float = MIN_CROP_EXTENT) -> CropRect:
    """Drag one handle of ``rect`` to ``(x, y)`` keeping a minimum extent."""
    left, top, right, bottom = rect.x, rect.y, rect.right, rect.bottom

    if handle in (Handle.TOP_LEFT, Handle.BOTTOM_LEFT, Handle.LEFT):
        left = min(x, right - minimum)
    if handle in (Handle.TOP_RIGHT, Handle.BOTTOM_RIGHT, Handle.RIGHT):
        right = left + max(minimum, x - left)
    if handle in (Handle.TOP_LEFT, Handle.TOP_RIGHT, Handle.TOP):
        top = min(y, bottom - minimum)
    if handle in (Handle.BOTTOM_LEFT, Handle.BOTTOM_RIGHT, Handle.BOTTOM):
        bottom = top + max(minimum, y - top)

    return CropRect(x=left, y=top, width=right - left, height=bottom - top,
                    aspect_ratio=rect.aspect_ratio)


class TransformSession:
    """
    One editor instance over one source image.

    States: LOADING -> READY <-> CROPPING -> COMMITTED | CANCELLED.
    Only ``load`` suspends; every other operation is synchronous and
    re-renders the preview before returning.
    """

    def __init__(self, viewport: Viewport, probe: MediaProbe | None = None):
        self.session_id = uuid.uuid4().hex
        self.viewport = viewport
        self.probe = probe or media_probe
        self.transform = TransformState()
        self.crop_preview = False

        self._state = SessionState.LOADING
        self._blob: MediaBlob | None = None
        self._source: Image.Image | None = None
        self._display_source: Image.Image | None = None
        self._original_dims: Dimensions | None = None
        self._display_dims: Dimensions | None = None
        self._preview: Image.Image | None = None
        self._drag: _Drag | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def original_dims(self) -> Dimensions | None:
        return self._original_dims

    @property
    def display_dims(self) -> Dimensions | None:
        return self._display_dims

    @property
    def preview(self) -> Image.Image | None:
        """Current display-space rendering (RGBA)."""
        return self._preview

    @property
    def is_closed(self) -> bool:
        return self._state in (SessionState.COMMITTED, SessionState.CANCELLED)

    async def load(self, blob: MediaBlob):
        """
        Decode the source and enter READY.

        Raises:
            DecodeError: the source could not be decoded; the session stays
                in LOADING with no source
            SessionStateError: the session already has a source or is closed
        """
        if self._state != SessionState.LOADING or self._source is not None:
            raise SessionStateError(f"Cannot load media in state {self._state.value}")

        with with_logging_context(media_id=blob.media_id, session_id=self.session_id):
            source = await self.probe.decode_image(blob)

            if self.is_closed:
                logger.info("Discarding late decode for closed session", state=self._state.value)
                return
            if self._source is not None:
                logger.warning("Discarding decode from a concurrent load", state=self._state.value)
                raise SessionStateError("Media already loaded")

            self._blob = blob
            self._source = source
            self._original_dims = Dimensions(source.width, source.height)
            self._state = SessionState.READY
            self._resize_display()
            metrics.session_opened()

            logger.info(
                "Transform session ready",
                original_size=str(self._original_dims),
                display_size=str(self._display_dims),
            )

    # Transform mutations
    def rotate(self):
        """Advance rotation by 90 degrees clockwise."""
        self._require_source()
        self.transform.rotation_deg = (self.transform.rotation_deg + 90) % 360
        self._render()

    def flip_horizontal(self):
        self._require_source()
        self.transform.flip_horizontal = not self.transform.flip_horizontal
        self._render()

    def flip_vertical(self):
        self._require_source()
        self.transform.flip_vertical = not self.transform.flip_vertical
        self._render()

    def toggle_crop_mode(self):
        """Enter crop mode with a centered square, or leave it and clear the rect."""
        self._require_source()
        if self.transform.crop_mode:
            self._exit_crop_mode()
        else:
            self._enter_crop_mode(centered_square(self._display_dims))
        self._render()

    def apply_crop_suggestion(self, suggestion: CropRect):
        """Enter crop mode seeded with a rect given in original pixel space."""
        self._require_source()
        rect = scale_rect(suggestion, self._original_dims, self._display_dims)
        self._enter_crop_mode(clamp_rect(rect, self._display_dims))
        self._render()

    def toggle_crop_preview(self):
        """Switch between the overlay and a zoomed view of the crop region."""
        self._require_source()
        if not (self.transform.crop_mode and self.transform.crop_rect.has_extent):
            return
        self.crop_preview = not self.crop_preview
        self._render()

    # Pointer input, display-space coordinates
    def pointer_down(self, x: float, y: float):
        self._require_source()
        if not self.transform.crop_mode:
            return

        surface = self._display_dims
        if x < 0 or x > surface.width or y < 0 or y > surface.height:
            self._exit_crop_mode()
            self._render()
            return

        rect = self.transform.crop_rect
        handle = handle_at_point(rect, x, y) if rect.has_extent else None
        self._drag = _Drag(handle=handle, start_x=x, start_y=y, origin=rect)

        if handle is None:
            self.transform.crop_rect = CropRect(x=x, y=y, width=0, height=0)
            self._render()

    def pointer_move(self, x: float, y: float):
        self._require_source()
        if not self.transform.crop_mode or self._drag is None:
            return

        drag = self._drag
        surface = self._display_dims

        if drag.handle is None:
            rect = CropRect(
                x=min(drag.start_x, x),
                y=min(drag.start_y, y),
                width=abs(x - drag.start_x),
                height=abs(y - drag.start_y),
            )
        elif drag.handle == Handle.MOVE:
            moved = CropRect(
                x=drag.origin.x + (x - drag.start_x),
                y=drag.origin.y + (y - drag.start_y),
                width=drag.origin.width,
                height=drag.origin.height,
                aspect_ratio=drag.origin.aspect_ratio,
            )
            rect = clamp_rect(moved, surface)
        else:
            rect = clamp_rect(resize_rect(self.transform.crop_rect, drag.handle, x, y), surface)

        self.transform.crop_rect = rect
        self._render()

    def pointer_up(self):
        self._require_source()
        self._drag = None

    def resize_viewport(self, viewport: Viewport):
        """Re-size the preview surface, keeping rotation, flips and crop position."""
        self._require_open()
        self.viewport = viewport
        if self._source is None:
            return

        old_dims = self._display_dims
        self._resize_display()
        self._drag = None

        if self.transform.crop_rect.has_extent and old_dims != self._display_dims:
            rect = scale_rect(self.transform.crop_rect, old_dims, self._display_dims)
            self.transform.crop_rect = clamp_rect(rect, self._display_dims)
            self._render()

    # Terminal operations
    def commit(self) -> ExportedRaster:
        """
        Render the edits at original resolution and encode them.

        Raises:
            ExportError: allocation or encoding failed; the session is unchanged
            SessionStateError: no source loaded or session already closed
        """
        self._require_source()
        start_time = time.time()

        with with_logging_context(media_id=self._blob.media_id, session_id=self.session_id):
            try:
                exported = self._export()
            except ExportError as e:
                execution_time = time.time() - start_time
                metrics.track_export(False, execution_time)
                performance_logger.log_export(execution_time, False, error=str(e))
                raise

            execution_time = time.time() - start_time
            metrics.track_export(True, execution_time, exported.size)
            performance_logger.log_export(
                execution_time, True, output_size=exported.size,
                dimensions=str(exported.dimensions),
            )

            self._close(SessionState.COMMITTED)
            return exported

    def cancel(self):
        """Discard the session without producing output."""
        self._require_open()
        with with_logging_context(session_id=self.session_id):
            logger.info("Transform session cancelled", state=self._state.value)
            self._close(SessionState.CANCELLED)

    # Internals
    def _export(self) -> ExportedRaster:
        original = self._original_dims
        display = self._display_dims
        media = settings.media

        crop = self.transform.crop_rect
        if self.transform.crop_mode and crop.has_extent:
            region = scale_rect(crop, display, original)
        else:
            region = CropRect(0, 0, original.width, original.height)

        size = raster.output_size(region)
        if size.width * size.height > media.max_export_pixels:
            raise ExportError(
                f"Export of {size} exceeds the limit of {media.max_export_pixels} pixels"
            )

        surface = (int(size.width), int(size.height))
        try:
            rendered = raster.draw_region(
                self._source, surface, surface, region,
                self.transform.rotation_deg,
                self.transform.flip_horizontal,
                self.transform.flip_vertical,
                resample=Image.Resampling.BICUBIC,
            )
            data = raster.encode(
                rendered, media.export_content_type, media.export_quality, media.export_background
            )
        except (MemoryError, OSError, ValueError) as e:
            raise ExportError(f"Could not export image: {e}") from e

        return ExportedRaster(data=data, content_type=media.export_content_type, dimensions=size)

    def _enter_crop_mode(self, rect: CropRect):
        self.transform.crop_mode = True
        self.transform.crop_rect = rect
        self.crop_preview = False
        self._drag = None
        self._state = SessionState.CROPPING

    def _exit_crop_mode(self):
        self.transform.crop_mode = False
        self.transform.crop_rect = CropRect.empty()
        self.crop_preview = False
        self._drag = None
        self._state = SessionState.READY

    def _resize_display(self):
        media = settings.media
        dims = display_dimensions(
            self._original_dims,
            self.viewport,
            padding=media.viewport_padding,
            min_width=media.preview_min_width,
            min_height=media.preview_min_height,
        )
        if dims != self._display_dims or self._display_source is None:
            self._display_dims = dims
            self._display_source = self._source.resize(
                (int(dims.width), int(dims.height)), Image.Resampling.LANCZOS
            )
        self._render()

    def _render(self):
        surface = (int(self._display_dims.width), int(self._display_dims.height))
        transform = self.transform
        crop = transform.crop_rect

        if transform.crop_mode and crop.has_extent and self.crop_preview:
            self._preview = raster.render_crop_preview(
                self._display_source, surface, crop,
                transform.rotation_deg, transform.flip_horizontal, transform.flip_vertical,
            )
            return

        frame = raster.render_frame(
            self._display_source, surface,
            transform.rotation_deg, transform.flip_horizontal, transform.flip_vertical,
        )
        if transform.crop_mode and crop.has_extent:
            frame = raster.draw_crop_overlay(frame, crop)

        self._preview = frame

    def _close(self, state: SessionState):
        if self._source is not None:
            metrics.session_closed()

        self._state = state
        self._drag = None
        self._source = None
        self._display_source = None
        self._preview = None
        self.transform = TransformState()

    def _require_open(self):
        if self.is_closed:
            raise SessionStateError(f"Session is {self._state.value}")

    def _require_source(self):
        self._require_open()
        if self._source is None:
            raise SessionStateError("No source image loaded")


async def open_session(blob: MediaBlob, viewport: Viewport,
                       probe: MediaProbe | None = None) -> TransformSession:
    """Create a session and load ``blob`` into it."""
    session = TransformSession(viewport, probe)
    await session.load(blob)
    return session
