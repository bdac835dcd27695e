"""
Rasterization surface for the transform session.

Draws a source image onto an output surface through the editor transform
stack (center translate, rotate, mirror, stretch), paints the crop overlay
and encodes the final raster. Affine matrices are composed with numpy and
applied with Pillow's affine resampler.
"""

import io
import math

import numpy as np
from PIL import Image, ImageDraw

from .geometry import CropRect, Dimensions

OVERLAY_COLOR = (0, 0, 0, 178)  # black at 70%
CROP_BORDER_COLOR = (59, 130, 246, 255)  # #3b82f6
HANDLE_OUTLINE_COLOR = (255, 255, 255, 255)
CROP_BORDER_WIDTH = 3
PREVIEW_BORDER_WIDTH = 2
HANDLE_SIZE = 12
SIDE_HANDLE_LENGTH = 20
SIDE_HANDLE_THICKNESS = 8

_FORMATS = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
}


def translation(tx: float, ty: float) -> np.ndarray:
    return np.array([[1.0, 0.0, tx], [0.0, 1.0, ty], [0.0, 0.0, 1.0]])


def scaling(fx: float, fy: float) -> np.ndarray:
    return np.array([[fx, 0.0, 0.0], [0.0, fy, 0.0], [0.0, 0.0, 1.0]])


def rotation(degrees: float) -> np.ndarray:
    """Rotation in y-down space; positive angles turn clockwise on screen."""
    if degrees % 90 == 0:
        # Exact values for quarter turns
        cos, sin = [(1, 0), (0, 1), (-1, 0), (0, -1)][int(degrees // 90) % 4]
    else:
        radians = math.radians(degrees)
        cos, sin = math.cos(radians), math.sin(radians)

    return np.array([[cos, -sin, 0.0], [sin, cos, 0.0], [0.0, 0.0, 1.0]], dtype=float)


def placement_matrix(surface: tuple[float, float], draw_size: tuple[float, float],
                     region: CropRect, rotation_deg: int,
                     flip_horizontal: bool, flip_vertical: bool) -> np.ndarray:
    """
    Map source pixel coordinates onto the output surface.

    ``region`` of the source is stretched to ``draw_size`` and centered on the
    surface, then rotated and mirrored about the surface center.
    """
    surface_w, surface_h = surface
    draw_w, draw_h = draw_size

    return (
        translation(surface_w / 2, surface_h / 2)
        @ rotation(rotation_deg)
        @ scaling(-1.0 if flip_horizontal else 1.0, -1.0 if flip_vertical else 1.0)
        @ translation(-draw_w / 2, -draw_h / 2)
        @ scaling(draw_w / region.width, draw_h / region.height)
        @ translation(-region.x, -region.y)
    )


def draw_region(source: Image.Image, surface: tuple[int, int], draw_size: tuple[float, float],
                region: CropRect, rotation_deg: int = 0,
                flip_horizontal: bool = False, flip_vertical: bool = False,
                resample: Image.Resampling = Image.Resampling.BILINEAR) -> Image.Image:
    """
    Render ``region`` of ``source`` onto a transparent surface.

    Only pixels inside the region contribute; the rest of the surface stays
    transparent.
    """
    # Enclosing whole-pixel box of the region, clipped to the source
    left = max(0, math.floor(region.x))
    top = max(0, math.floor(region.y))
    right = min(source.width, math.ceil(region.right))
    bottom = min(source.height, math.ceil(region.bottom))

    if right <= left or bottom <= top:
        return Image.new("RGBA", surface, (0, 0, 0, 0))

    clipped = source.crop((left, top, right, bottom))

    forward = placement_matrix(
        surface, draw_size, region, rotation_deg, flip_horizontal, flip_vertical
    ) @ translation(left, top)
    inverse = np.linalg.inv(forward)

    return clipped.transform(
        surface,
        Image.Transform.AFFINE,
        data=tuple(float(v) for v in inverse[:2].flatten()),
        resample=resample,
        fillcolor=(0, 0, 0, 0),
    )


def render_frame(source: Image.Image, surface: tuple[int, int], rotation_deg: int,
                 flip_horizontal: bool, flip_vertical: bool) -> Image.Image:
    """Whole source stretched over the surface under the transform stack."""
    full = CropRect(0, 0, source.width, source.height)
    return draw_region(source, surface, surface, full, rotation_deg, flip_horizontal, flip_vertical)


def _pixel_box(rect: CropRect, surface: tuple[int, int]) -> tuple[int, int, int, int]:
    width, height = surface
    return (
        max(0, min(width, round(rect.x))),
        max(0, min(height, round(rect.y))),
        max(0, min(width, round(rect.right))),
        max(0, min(height, round(rect.bottom))),
    )


def _handle_boxes(rect: CropRect) -> list[tuple[float, float, float, float]]:
    half = HANDLE_SIZE / 2
    corners = [
        (rect.x, rect.y),
        (rect.right, rect.y),
        (rect.x, rect.bottom),
        (rect.right, rect.bottom),
    ]
    boxes = [(cx - half, cy - half, cx + half, cy + half) for cx, cy in corners]

    mid_x = rect.x + rect.width / 2
    mid_y = rect.y + rect.height / 2
    long_half = SIDE_HANDLE_LENGTH / 2
    short_half = SIDE_HANDLE_THICKNESS / 2
    boxes.extend([
        (mid_x - long_half, rect.y - short_half, mid_x + long_half, rect.y + short_half),
        (mid_x - long_half, rect.bottom - short_half, mid_x + long_half, rect.bottom + short_half),
        (rect.x - short_half, mid_y - long_half, rect.x + short_half, mid_y + long_half),
        (rect.right - short_half, mid_y - long_half, rect.right + short_half, mid_y + long_half),
    ])
    return boxes


def draw_crop_overlay(frame: Image.Image, crop: CropRect) -> Image.Image:
    """
    Darken the frame outside ``crop`` and draw the border and handles.

    The crop area keeps the original frame pixels.
    """
    shade = Image.new("RGBA", frame.size, OVERLAY_COLOR)
    result = Image.alpha_composite(frame, shade)

    box = _pixel_box(crop, frame.size)
    if box[2] > box[0] and box[3] > box[1]:
        result.paste(frame.crop(box), box[:2])

    draw = ImageDraw.Draw(result)
    draw.rectangle(
        [crop.x, crop.y, crop.right, crop.bottom],
        outline=CROP_BORDER_COLOR,
        width=CROP_BORDER_WIDTH,
    )
    for handle in _handle_boxes(crop):
        draw.rectangle(handle, fill=CROP_BORDER_COLOR, outline=HANDLE_OUTLINE_COLOR, width=2)

    return result


def render_crop_preview(source: Image.Image, surface: tuple[int, int], crop: CropRect,
                        rotation_deg: int, flip_horizontal: bool, flip_vertical: bool) -> Image.Image:
    """Only the crop region, zoomed to fit the surface, with a thin border."""
    surface_w, surface_h = surface
    scale = min(surface_w / crop.width, surface_h / crop.height)
    scaled_w = crop.width * scale
    scaled_h = crop.height * scale

    result = draw_region(
        source, surface, (scaled_w, scaled_h), crop,
        rotation_deg, flip_horizontal, flip_vertical,
    )

    offset_x = (surface_w - scaled_w) / 2
    offset_y = (surface_h - scaled_h) / 2
    ImageDraw.Draw(result).rectangle(
        [offset_x, offset_y, offset_x + scaled_w, offset_y + scaled_h],
        outline=CROP_BORDER_COLOR,
        width=PREVIEW_BORDER_WIDTH,
    )
    return result


def output_size(region: CropRect) -> Dimensions:
    """Whole-pixel export size for a region, at least 1x1."""
    return Dimensions(max(round(region.width), 1), max(round(region.height), 1))


def flatten(img: Image.Image, background: tuple[int, int, int]) -> Image.Image:
    """Composite an RGBA raster onto an opaque background."""
    flat = Image.new("RGB", img.size, background)
    flat.paste(img, mask=img.getchannel("A"))
    return flat


def encode(img: Image.Image, content_type: str, quality: float,
           background: tuple[int, int, int] = (0, 0, 0)) -> bytes:
    """
    Encode an RGBA raster.

    JPEG and WebP output is flattened onto ``background``; PNG keeps alpha.
    ``quality`` is in ``(0, 1]``.
    """
    output_format = _FORMATS.get(content_type)
    if output_format is None:
        raise ValueError(f"Unsupported export type: {content_type}")

    buffer = io.BytesIO()

    if output_format == "PNG":
        img.save(buffer, "PNG", optimize=True)
    else:
        flatten(img, background).save(buffer, output_format, quality=int(round(quality * 100)))

    return buffer.getvalue()
