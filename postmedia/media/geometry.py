"""
Geometry utilities for media validation and editing.

Pure functions for aspect-ratio matching, centered crop computation and
scaling rectangles between display space and original pixel space.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass

DEFAULT_TOLERANCE = 0.10
FREEFORM = "Freeform"


@dataclass(frozen=True)
class Dimensions:
    """Pixel extent of a raster."""

    width: float
    height: float

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Dimensions must be positive, got {self.width}x{self.height}")

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    def as_tuple(self) -> tuple[float, float]:
        return (self.width, self.height)

    def __str__(self) -> str:
        return f"{self.width:g}×{self.height:g}"


@dataclass(frozen=True)
class AspectRatioSpec:
    """Named target aspect ratio with reference dimensions."""

    key: str
    name: str
    ratio: float
    width: int
    height: int

    @property
    def dimensions(self) -> Dimensions:
        return Dimensions(self.width, self.height)


@dataclass(frozen=True)
class CropRect:
    """Crop rectangle in whichever coordinate space the caller works in."""

    x: float
    y: float
    width: float
    height: float
    aspect_ratio: str = FREEFORM

    @classmethod
    def empty(cls) -> "CropRect":
        return cls(0, 0, 0, 0)

    @property
    def has_extent(self) -> bool:
        return self.width > 0 and self.height > 0

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def contains(self, px: float, py: float) -> bool:
        return self.x <= px <= self.right and self.y <= py <= self.bottom

    def to_dict(self) -> dict:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "aspect_ratio": self.aspect_ratio,
        }


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up."""
    return math.floor(value + 0.5)


def aspect_ratio(dimensions: Dimensions) -> float:
    return dimensions.width / dimensions.height


def closest_spec(ratio: float, catalog: Sequence[AspectRatioSpec]) -> AspectRatioSpec:
    """
    Return the catalog entry whose ratio is nearest to ``ratio``.

    Ties go to the entry declared first.
    """
    if not catalog:
        raise ValueError("Aspect ratio catalog is empty")

    best = catalog[0]
    smallest_diff = abs(ratio - best.ratio)

    for spec in catalog[1:]:
        diff = abs(ratio - spec.ratio)
        if diff < smallest_diff:
            smallest_diff = diff
            best = spec

    return best


def matches_within_tolerance(ratio: float, spec: AspectRatioSpec,
                             tolerance: float = DEFAULT_TOLERANCE) -> bool:
    """Absolute-difference match, not a percentage of the ratio."""
    return abs(ratio - spec.ratio) <= tolerance


def compute_crop_rect(original: Dimensions, target: AspectRatioSpec) -> CropRect:
    """
    Largest centered rectangle at ``target.ratio`` that fits inside ``original``.

    Values are rounded to whole pixels and clamped to the source bounds.
    """
    orig_width, orig_height = original.width, original.height

    if orig_width / orig_height > target.ratio:
        # Wider than target: keep full height, trim the sides
        crop_height = orig_height
        crop_width = orig_height * target.ratio
        crop_x = (orig_width - crop_width) / 2
        crop_y = 0.0
    else:
        # Taller than (or equal to) target: keep full width, trim top/bottom
        crop_width = orig_width
        crop_height = orig_width / target.ratio
        crop_x = 0.0
        crop_y = (orig_height - crop_height) / 2

    width = max(1, min(round_half_up(crop_width), math.floor(orig_width)))
    height = max(1, min(round_half_up(crop_height), math.floor(orig_height)))
    x = max(0, min(round_half_up(crop_x), math.floor(orig_width) - width))
    y = max(0, min(round_half_up(crop_y), math.floor(orig_height) - height))

    return CropRect(x=x, y=y, width=width, height=height, aspect_ratio=target.name)


def scale_rect(rect: CropRect, from_space: Dimensions, to_space: Dimensions) -> CropRect:
    """Scale a rect between spaces with independent X and Y factors."""
    scale_x = to_space.width / from_space.width
    scale_y = to_space.height / from_space.height

    return CropRect(
        x=rect.x * scale_x,
        y=rect.y * scale_y,
        width=rect.width * scale_x,
        height=rect.height * scale_y,
        aspect_ratio=rect.aspect_ratio,
    )


def clamp_rect(rect: CropRect, bounds: Dimensions) -> CropRect:
    """Shift and shrink a rect so it lies inside ``bounds``."""
    width = min(rect.width, bounds.width)
    height = min(rect.height, bounds.height)
    x = max(0.0, min(rect.x, bounds.width - width))
    y = max(0.0, min(rect.y, bounds.height - height))
    return CropRect(x=x, y=y, width=width, height=height, aspect_ratio=rect.aspect_ratio)


def centered_square(surface: Dimensions, fraction: float = 0.6) -> CropRect:
    """Centered square whose side is ``fraction`` of the shorter surface side."""
    size = min(surface.width, surface.height) * fraction
    return CropRect(
        x=surface.width / 2 - size / 2,
        y=surface.height / 2 - size / 2,
        width=size,
        height=size,
    )


def fit_within(source: Dimensions, box: Dimensions, allow_upscale: bool = False) -> Dimensions:
    """
    Fit ``source`` inside ``box`` keeping its aspect ratio.

    Without ``allow_upscale`` the result never exceeds the source itself.
    """
    ratio = source.aspect_ratio

    if ratio > box.aspect_ratio:
        width = box.width if allow_upscale else min(box.width, source.width)
        height = width / ratio
    else:
        height = box.height if allow_upscale else min(box.height, source.height)
        width = height * ratio

    return Dimensions(width, height)
