"""
Media Validator for Postmedia.

Checks a media object against the spec table and produces a verdict with
errors, warnings, recommendations and, for images whose aspect ratio is
outside every catalog band, an auto-crop suggestion in original pixel space.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..core.logging import get_logger, with_logging_context
from ..observability.metrics import metrics
from .errors import DecodeError
from .geometry import (
    AspectRatioSpec,
    CropRect,
    Dimensions,
    closest_spec,
    compute_crop_rect,
    matches_within_tolerance,
)
from .probe import MediaBlob, MediaProbe, media_probe
from .specs import GB, MB, ImageSpec, MediaKind, MediaSpecTable, VideoSpec, get_spec_table

logger = get_logger("media.validator")


class ValidationErrorType(Enum):
    """Error taxonomy for validation failures."""
    UNSUPPORTED_TYPE = "unsupported_type"
    SIZE_LIMIT_EXCEEDED = "size_limit_exceeded"
    DIMENSION_TOO_SMALL = "dimension_too_small"
    DURATION_OUT_OF_RANGE = "duration_out_of_range"
    ASPECT_RATIO_OUT_OF_RANGE = "aspect_ratio_out_of_range"
    DECODE_ERROR = "decode_error"
    EXPORT_ERROR = "export_error"


@dataclass
class BestFit:
    """Result of matching a size against an aspect ratio catalog."""
    spec: AspectRatioSpec
    auto_crop_suggestion: CropRect | None = None


@dataclass
class ValidationVerdict:
    """Result of media validation."""
    media_kind: MediaKind
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    error_codes: list[ValidationErrorType] = field(default_factory=list)
    suggested_size: Dimensions | None = None
    suggested_aspect_ratio: str | None = None
    auto_crop_suggestion: CropRect | None = None
    dimensions: Dimensions | None = None
    duration: float | None = None
    file_size: int = 0
    validation_time: float = 0.0
    is_valid: bool = False

    def add_error(self, code: ValidationErrorType, message: str):
        self.error_codes.append(code)
        self.errors.append(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert verdict to dictionary."""
        return {
            "is_valid": self.is_valid,
            "media_kind": self.media_kind.value,
            "errors": list(self.errors),
            "error_codes": [code.value for code in self.error_codes],
            "warnings": list(self.warnings),
            "recommendations": list(self.recommendations),
            "suggested_size": (
                {"width": self.suggested_size.width, "height": self.suggested_size.height}
                if self.suggested_size else None
            ),
            "suggested_aspect_ratio": self.suggested_aspect_ratio,
            "auto_crop_suggestion": self.auto_crop_suggestion.to_dict() if self.auto_crop_suggestion else None,
            "dimensions": (
                {"width": self.dimensions.width, "height": self.dimensions.height}
                if self.dimensions else None
            ),
            "duration": self.duration,
            "file_size": self.file_size,
            "validation_time": self.validation_time,
        }


def format_size_limit(size: int) -> str:
    """Restate a byte limit in human units."""
    if size >= GB:
        return f"{size / GB:.1f}GB"
    return f"{size / MB:.0f}MB"


def _px(dimensions: Dimensions) -> str:
    return f"{dimensions.width:g}×{dimensions.height:g}px"


def analyze_best_fit(dimensions: Dimensions, catalog: tuple[AspectRatioSpec, ...],
                     tolerance: float) -> BestFit:
    """
    Match a size against the catalog.

    The first entry within tolerance wins and needs no crop. Otherwise the
    closest entry is chosen and a centered crop toward it is suggested.
    """
    ratio = dimensions.aspect_ratio

    for spec in catalog:
        if matches_within_tolerance(ratio, spec, tolerance):
            return BestFit(spec=spec)

    closest = closest_spec(ratio, catalog)
    return BestFit(spec=closest, auto_crop_suggestion=compute_crop_rect(dimensions, closest))


def get_recommended_dimensions(kind: MediaKind, spec_table: MediaSpecTable | None = None) -> list[Dimensions]:
    """Reference sizes of every catalog entry for a media kind."""
    table = spec_table or get_spec_table()
    return [spec.dimensions for spec in table.for_kind(kind).aspect_ratios]


def detect_media_kind(content_type: str) -> MediaKind | None:
    """Route a type tag to a media kind by its prefix."""
    prefix = (content_type or "").split("/", 1)[0].lower()
    if prefix == "image":
        return MediaKind.IMAGE
    if prefix == "video":
        return MediaKind.VIDEO
    return None


class MediaValidator:
    """Validates media objects against a spec table."""

    def __init__(self, probe: MediaProbe | None = None):
        self.probe = probe or media_probe

    async def validate(self, blob: MediaBlob, kind: MediaKind,
                       spec_table: MediaSpecTable | None = None) -> ValidationVerdict:
        """
        Validate a media object.

        Args:
            blob: Media bytes with their type tag
            kind: Image or video
            spec_table: Limits to check against (process table by default)

        Returns:
            Verdict; ``is_valid`` is true iff no errors were found
        """
        table = spec_table or get_spec_table()
        start_time = time.time()

        with with_logging_context(media_id=blob.media_id):
            logger.info(
                "Starting media validation",
                media_kind=kind.value,
                content_type=blob.content_type,
                file_size=blob.size,
            )

            verdict = ValidationVerdict(media_kind=kind, file_size=blob.size)

            if kind == MediaKind.IMAGE:
                await self._validate_image(blob, table.image, verdict)
            else:
                await self._validate_video(blob, table.video, verdict)

            verdict.is_valid = len(verdict.errors) == 0
            verdict.validation_time = time.time() - start_time

            metrics.track_media_validation(
                media_type=kind.value,
                is_valid=verdict.is_valid,
                error_types=[code.value for code in verdict.error_codes],
                duration=verdict.validation_time,
            )
            if verdict.auto_crop_suggestion:
                metrics.track_auto_crop_suggestion(verdict.auto_crop_suggestion.aspect_ratio)

            logger.info(
                "Media validation completed",
                media_kind=kind.value,
                is_valid=verdict.is_valid,
                errors=len(verdict.errors),
                warnings=len(verdict.warnings),
                auto_crop=verdict.auto_crop_suggestion is not None,
                validation_time=verdict.validation_time,
            )

            return verdict

    def _check_type_and_size(self, blob: MediaBlob, spec: ImageSpec | VideoSpec,
                             label: str, verdict: ValidationVerdict):
        if blob.content_type not in spec.supported_formats:
            verdict.add_error(
                ValidationErrorType.UNSUPPORTED_TYPE,
                f"Unsupported {label} format. Supported: {', '.join(spec.supported_formats)}"
            )

        if blob.size > spec.max_file_size:
            verdict.add_error(
                ValidationErrorType.SIZE_LIMIT_EXCEEDED,
                f"File too large. Maximum size: {format_size_limit(spec.max_file_size)}"
            )

    async def _validate_image(self, blob: MediaBlob, spec: ImageSpec, verdict: ValidationVerdict):
        self._check_type_and_size(blob, spec, "image", verdict)

        try:
            dimensions = await self.probe.probe_image(blob)
        except DecodeError:
            verdict.add_error(ValidationErrorType.DECODE_ERROR, "Could not read image dimensions")
            return

        verdict.dimensions = dimensions

        # Minimum dimensions
        minimum = spec.min_dimensions
        if dimensions.width < minimum.width or dimensions.height < minimum.height:
            verdict.add_error(
                ValidationErrorType.DIMENSION_TOO_SMALL,
                f"Image too small. Minimum: {_px(minimum)}"
            )

        # Best fit and auto-crop
        best_fit = analyze_best_fit(dimensions, spec.aspect_ratios, spec.aspect_ratio_tolerance)
        verdict.suggested_size = best_fit.spec.dimensions
        verdict.suggested_aspect_ratio = best_fit.spec.name

        if best_fit.auto_crop_suggestion:
            crop = best_fit.auto_crop_suggestion
            verdict.auto_crop_suggestion = crop
            verdict.warnings.append("Image doesn't match recommended aspect ratios")
            verdict.recommendations.append(
                f"Auto-crop suggestion: {best_fit.spec.name} ({best_fit.spec.width}×{best_fit.spec.height}px)"
            )
            verdict.recommendations.append(
                f"Crop area: {crop.width}×{crop.height}px from position ({crop.x}, {crop.y})"
            )
        else:
            verdict.recommendations.append(f"Perfect! Image matches {best_fit.spec.name} aspect ratio")

        # Resolution quality
        recommended = spec.recommended_dimensions
        if dimensions.width < recommended.width or dimensions.height < recommended.height:
            verdict.warnings.append("Image resolution is below recommended size")
            verdict.recommendations.append(f"Recommended size: {_px(recommended)} for best quality")

        verdict.recommendations.append(
            f"Current size: {_px(dimensions)} ({dimensions.aspect_ratio:.2f}:1)"
        )

    async def _validate_video(self, blob: MediaBlob, spec: VideoSpec, verdict: ValidationVerdict):
        self._check_type_and_size(blob, spec, "video", verdict)

        try:
            info = await self.probe.probe_video(blob)
        except DecodeError:
            verdict.add_error(ValidationErrorType.DECODE_ERROR, "Could not read video information")
            return

        verdict.duration = info.duration
        verdict.dimensions = info.dimensions

        # Duration
        if info.duration < spec.min_duration:
            verdict.add_error(
                ValidationErrorType.DURATION_OUT_OF_RANGE,
                f"Video too short. Minimum duration: {spec.min_duration:g} seconds"
            )
        if info.duration > spec.max_duration:
            max_text = f"{spec.max_duration:g} seconds"
            if spec.max_duration >= 60 and spec.max_duration % 60 == 0:
                max_text += f" ({spec.max_duration / 60:g} minutes)"
            verdict.add_error(
                ValidationErrorType.DURATION_OUT_OF_RANGE,
                f"Video too long. Maximum duration: {max_text}"
            )

        # Continuous aspect ratio bounds, no crop offered for video
        ratio = info.dimensions.aspect_ratio
        if ratio < spec.min_aspect_ratio or ratio > spec.max_aspect_ratio:
            verdict.add_error(
                ValidationErrorType.ASPECT_RATIO_OUT_OF_RANGE,
                f"Invalid aspect ratio. Supported range: "
                f"1:{1 / spec.min_aspect_ratio:g} to {spec.max_aspect_ratio:g}:1"
            )

        # Resolution
        floor = spec.low_resolution_floor
        if info.dimensions.width < floor and info.dimensions.height < floor:
            recommended = spec.recommended_dimensions
            verdict.warnings.append("Video resolution is low")
            verdict.recommendations.append(
                f"Recommended: {_px(recommended)} ({recommended.height:g}p HD)"
            )

        verdict.recommendations.append(
            f"Duration: {info.duration:.1f}s, Size: {_px(info.dimensions)}"
        )
        verdict.recommendations.append(f"File size: {blob.size / MB:.1f}MB")


# Global validator instance
media_validator = MediaValidator()


# Convenience functions
async def validate(blob: MediaBlob, kind: MediaKind,
                   spec_table: MediaSpecTable | None = None) -> ValidationVerdict:
    """Validate a media object of a known kind."""
    return await media_validator.validate(blob, kind, spec_table)


async def validate_image(blob: MediaBlob, spec_table: MediaSpecTable | None = None) -> ValidationVerdict:
    """Validate an image."""
    return await media_validator.validate(blob, MediaKind.IMAGE, spec_table)


async def validate_video(blob: MediaBlob, spec_table: MediaSpecTable | None = None) -> ValidationVerdict:
    """Validate a video."""
    return await media_validator.validate(blob, MediaKind.VIDEO, spec_table)


async def validate_media(blob: MediaBlob, kind: MediaKind | None = None,
                         spec_table: MediaSpecTable | None = None) -> ValidationVerdict:
    """
    Validate a media object, inferring its kind from the type tag if needed.

    A type tag that is neither image nor video is reported as an unsupported
    image without probing.
    """
    kind = kind or detect_media_kind(blob.content_type)
    if kind is None:
        table = spec_table or get_spec_table()
        verdict = ValidationVerdict(media_kind=MediaKind.IMAGE, file_size=blob.size)
        supported = table.image.supported_formats + table.video.supported_formats
        verdict.add_error(
            ValidationErrorType.UNSUPPORTED_TYPE,
            f"Unsupported media format. Supported: {', '.join(supported)}"
        )
        return verdict

    return await media_validator.validate(blob, kind, spec_table)
