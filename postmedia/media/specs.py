"""
Platform media limits table.

The table holds platform limits per media kind: minimum and recommended
dimensions, byte-size caps, supported type tags, the aspect ratio catalog
and matching tolerance, and the video duration and ratio bounds.
It is built once at startup (defaults or a YAML file) and is read-only after.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from ..core.config import settings
from ..core.logging import get_logger
from .errors import SpecTableError
from .geometry import DEFAULT_TOLERANCE, AspectRatioSpec, Dimensions

logger = get_logger("media.specs")

MB = 1024 * 1024
GB = 1024 * MB


class MediaKind(Enum):
    """Kinds of media the engine accepts."""

    IMAGE = "image"
    VIDEO = "video"


@dataclass(frozen=True)
class ImageSpec:
    """Limits for still images."""

    min_dimensions: Dimensions
    recommended_dimensions: Dimensions
    max_file_size: int
    supported_formats: tuple[str, ...]
    aspect_ratios: tuple[AspectRatioSpec, ...]
    aspect_ratio_tolerance: float = DEFAULT_TOLERANCE


@dataclass(frozen=True)
class VideoSpec:
    """Limits for video."""

    min_duration: float
    max_duration: float
    max_file_size: int
    recommended_dimensions: Dimensions
    min_aspect_ratio: float
    max_aspect_ratio: float
    supported_formats: tuple[str, ...]
    aspect_ratios: tuple[AspectRatioSpec, ...]
    low_resolution_floor: int = 480
    recommended_fps: int = 30


@dataclass(frozen=True)
class MediaSpecTable:
    """Immutable per-kind limits table."""

    image: ImageSpec
    video: VideoSpec
    version: str = field(default="builtin")

    def for_kind(self, kind: MediaKind) -> ImageSpec | VideoSpec:
        return self.image if kind == MediaKind.IMAGE else self.video


IMAGE_ASPECT_RATIOS = (
    AspectRatioSpec(key="LANDSCAPE", name="Landscape (1.91:1)", ratio=1.91, width=1080, height=566),
    AspectRatioSpec(key="SQUARE", name="Square (1:1)", ratio=1.0, width=1080, height=1080),
    AspectRatioSpec(key="PORTRAIT", name="Portrait (4:5)", ratio=0.8, width=1080, height=1350),
)

VIDEO_ASPECT_RATIOS = (
    AspectRatioSpec(key="SQUARE", name="Square (1:1)", ratio=1.0, width=1080, height=1080),
    AspectRatioSpec(key="PORTRAIT", name="Portrait (4:5)", ratio=0.8, width=1080, height=1350),
    AspectRatioSpec(key="LANDSCAPE", name="Landscape (16:9)", ratio=1.78, width=1080, height=608),
)

IMAGE_SPECS = ImageSpec(
    min_dimensions=Dimensions(552, 368),
    recommended_dimensions=Dimensions(1200, 627),
    max_file_size=10 * MB,
    supported_formats=("image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"),
    aspect_ratios=IMAGE_ASPECT_RATIOS,
)

VIDEO_SPECS = VideoSpec(
    min_duration=3,
    max_duration=600,
    max_file_size=4 * GB,
    recommended_dimensions=Dimensions(1920, 1080),
    min_aspect_ratio=1 / 2.4,
    max_aspect_ratio=2.4 / 1,
    supported_formats=("video/mp4", "video/webm", "video/quicktime"),
    aspect_ratios=VIDEO_ASPECT_RATIOS,
)

DEFAULT_SPEC_TABLE = MediaSpecTable(image=IMAGE_SPECS, video=VIDEO_SPECS)


def _parse_dimensions(raw: Any, fallback: Dimensions) -> Dimensions:
    if raw is None:
        return fallback
    return Dimensions(float(raw["width"]), float(raw["height"]))


def _parse_catalog(raw: Any, fallback: tuple[AspectRatioSpec, ...]) -> tuple[AspectRatioSpec, ...]:
    if raw is None:
        return fallback
    # Mapping order is the declaration order used for tie-breaking
    return tuple(
        AspectRatioSpec(
            key=key,
            name=entry["name"],
            ratio=float(entry["ratio"]),
            width=int(entry["width"]),
            height=int(entry["height"]),
        )
        for key, entry in raw.items()
    )


def spec_table_from_dict(data: dict[str, Any]) -> MediaSpecTable:
    """
    Build a spec table from a mapping, falling back to defaults per field.

    Expected layout mirrors the dataclasses::

        version: "2024-06"
        image:
          min_dimensions: {width: 552, height: 368}
          max_file_size: 10485760
          aspect_ratio_tolerance: 0.1
          aspect_ratios:
            LANDSCAPE: {name: "Landscape (1.91:1)", ratio: 1.91, width: 1080, height: 566}
        video:
          min_duration: 3
          max_duration: 600
    """
    try:
        image_raw = data.get("image") or {}
        video_raw = data.get("video") or {}

        image = ImageSpec(
            min_dimensions=_parse_dimensions(image_raw.get("min_dimensions"), IMAGE_SPECS.min_dimensions),
            recommended_dimensions=_parse_dimensions(
                image_raw.get("recommended_dimensions"), IMAGE_SPECS.recommended_dimensions
            ),
            max_file_size=int(image_raw.get("max_file_size", IMAGE_SPECS.max_file_size)),
            supported_formats=tuple(image_raw.get("supported_formats", IMAGE_SPECS.supported_formats)),
            aspect_ratios=_parse_catalog(image_raw.get("aspect_ratios"), IMAGE_SPECS.aspect_ratios),
            aspect_ratio_tolerance=float(
                image_raw.get("aspect_ratio_tolerance", IMAGE_SPECS.aspect_ratio_tolerance)
            ),
        )

        video = VideoSpec(
            min_duration=float(video_raw.get("min_duration", VIDEO_SPECS.min_duration)),
            max_duration=float(video_raw.get("max_duration", VIDEO_SPECS.max_duration)),
            max_file_size=int(video_raw.get("max_file_size", VIDEO_SPECS.max_file_size)),
            recommended_dimensions=_parse_dimensions(
                video_raw.get("recommended_dimensions"), VIDEO_SPECS.recommended_dimensions
            ),
            min_aspect_ratio=float(video_raw.get("min_aspect_ratio", VIDEO_SPECS.min_aspect_ratio)),
            max_aspect_ratio=float(video_raw.get("max_aspect_ratio", VIDEO_SPECS.max_aspect_ratio)),
            supported_formats=tuple(video_raw.get("supported_formats", VIDEO_SPECS.supported_formats)),
            aspect_ratios=_parse_catalog(video_raw.get("aspect_ratios"), VIDEO_SPECS.aspect_ratios),
            low_resolution_floor=int(video_raw.get("low_resolution_floor", VIDEO_SPECS.low_resolution_floor)),
            recommended_fps=int(video_raw.get("recommended_fps", VIDEO_SPECS.recommended_fps)),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise SpecTableError(f"Invalid spec table: {e}") from e

    if not image.aspect_ratios:
        raise SpecTableError("Invalid spec table: image aspect ratio catalog is empty")
    if image.aspect_ratio_tolerance < 0:
        raise SpecTableError("Invalid spec table: aspect ratio tolerance must not be negative")
    if video.min_duration > video.max_duration:
        raise SpecTableError("Invalid spec table: video min_duration exceeds max_duration")
    if video.min_aspect_ratio > video.max_aspect_ratio:
        raise SpecTableError("Invalid spec table: video min_aspect_ratio exceeds max_aspect_ratio")

    return MediaSpecTable(image=image, video=video, version=str(data.get("version", "custom")))


def load_spec_table(file_path: str | Path) -> MediaSpecTable:
    """Load a spec table from a YAML file."""
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise SpecTableError(f"Failed to read spec table {file_path}: {e}") from e

    if not isinstance(data, dict):
        raise SpecTableError(f"Spec table {file_path} must contain a mapping")

    table = spec_table_from_dict(data)

    logger.info(
        "Media spec table loaded",
        file_path=str(file_path),
        version=table.version,
        image_ratios=[spec.key for spec in table.image.aspect_ratios],
    )

    return table


def with_tolerance(table: MediaSpecTable, tolerance: float) -> MediaSpecTable:
    """Copy of ``table`` with a different image matching tolerance."""
    return replace(table, image=replace(table.image, aspect_ratio_tolerance=tolerance))


@lru_cache(maxsize=1)
def get_spec_table() -> MediaSpecTable:
    """Process-wide spec table built from settings on first use."""
    table = DEFAULT_SPEC_TABLE

    if settings.media.spec_table_path:
        table = load_spec_table(settings.media.spec_table_path)

    if settings.media.aspect_ratio_tolerance is not None:
        table = with_tolerance(table, settings.media.aspect_ratio_tolerance)

    return table
