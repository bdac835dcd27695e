"""
Media geometry and validation engine for Postmedia.

This module provides:
- MediaValidator: platform limits, best-fit aspect ratio, auto-crop suggestions
- MediaProbe: image header and ffprobe metadata reads
- TransformSession: rotate, flip and crop editing with full-resolution export
- Geometry utilities and the media spec table
"""

from .errors import (
    MediaEngineError,
    DecodeError,
    ExportError,
    SessionStateError,
    SpecTableError,
)

from .geometry import (
    Dimensions,
    AspectRatioSpec,
    CropRect,
    aspect_ratio,
    closest_spec,
    matches_within_tolerance,
    compute_crop_rect,
    scale_rect,
    clamp_rect,
    fit_within,
)

from .specs import (
    MediaKind,
    ImageSpec,
    VideoSpec,
    MediaSpecTable,
    DEFAULT_SPEC_TABLE,
    load_spec_table,
    get_spec_table,
)

from .probe import (
    MediaBlob,
    VideoInfo,
    MediaProbe,
    media_probe,
    probe_image,
    probe_video,
)

from .validator import (
    MediaValidator,
    media_validator,
    ValidationVerdict,
    ValidationErrorType,
    BestFit,
    analyze_best_fit,
    get_recommended_dimensions,
    detect_media_kind,
    validate,
    validate_image,
    validate_video,
    validate_media,
)

from .transform_session import (
    TransformSession,
    TransformState,
    SessionState,
    Viewport,
    ExportedRaster,
    open_session,
)


__all__ = [
    # Errors
    "MediaEngineError",
    "DecodeError",
    "ExportError",
    "SessionStateError",
    "SpecTableError",
    # Geometry
    "Dimensions",
    "AspectRatioSpec",
    "CropRect",
    "aspect_ratio",
    "closest_spec",
    "matches_within_tolerance",
    "compute_crop_rect",
    "scale_rect",
    "clamp_rect",
    "fit_within",
    # Spec table
    "MediaKind",
    "ImageSpec",
    "VideoSpec",
    "MediaSpecTable",
    "DEFAULT_SPEC_TABLE",
    "load_spec_table",
    "get_spec_table",
    # Probe
    "MediaBlob",
    "VideoInfo",
    "MediaProbe",
    "media_probe",
    "probe_image",
    "probe_video",
    # Validator
    "MediaValidator",
    "media_validator",
    "ValidationVerdict",
    "ValidationErrorType",
    "BestFit",
    "analyze_best_fit",
    "get_recommended_dimensions",
    "detect_media_kind",
    "validate",
    "validate_image",
    "validate_video",
    "validate_media",
    # Transform session
    "TransformSession",
    "TransformState",
    "SessionState",
    "Viewport",
    "ExportedRaster",
    "open_session",
]
