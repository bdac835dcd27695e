"""
Unit tests for the media validator.

Tests image and video validation against the spec table:
- Aspect ratio best fit and auto-crop suggestions
- Accumulated errors for type, size, dimensions and duration
- Decode failures contributing a single error
"""

import io
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from postmedia.media.errors import DecodeError
from postmedia.media.geometry import CropRect, Dimensions
from postmedia.media.probe import MediaBlob, MediaProbe, VideoInfo
from postmedia.media.specs import DEFAULT_SPEC_TABLE, MB, MediaKind, with_tolerance
from postmedia.media.validator import (
    MediaValidator,
    ValidationErrorType,
    analyze_best_fit,
    detect_media_kind,
    get_recommended_dimensions,
    validate_media,
)


def make_validator(dimensions: Dimensions | None = None, video: VideoInfo | None = None,
                   error: Exception | None = None) -> MediaValidator:
    """Validator with a stubbed probe."""
    probe = MagicMock()
    probe.probe_image = AsyncMock(return_value=dimensions, side_effect=error)
    probe.probe_video = AsyncMock(return_value=video, side_effect=error)
    return MediaValidator(probe=probe)


def image_blob(content_type: str = "image/jpeg", size: int = 1024) -> MediaBlob:
    return MediaBlob(data=b"\x00" * size, content_type=content_type)


def video_blob(content_type: str = "video/mp4", size: int = 2048) -> MediaBlob:
    return MediaBlob(data=b"\x00" * size, content_type=content_type)


class TestAnalyzeBestFit:
    """Test best-fit matching against the image catalog."""

    CATALOG = DEFAULT_SPEC_TABLE.image.aspect_ratios

    def test_match_within_tolerance_has_no_crop(self):
        best_fit = analyze_best_fit(Dimensions(2000, 1000), self.CATALOG, 0.10)

        assert best_fit.spec.key == "LANDSCAPE"
        assert best_fit.auto_crop_suggestion is None

    def test_first_declared_match_wins(self):
        # 1.3 is within a 1.0 tolerance of every entry
        best_fit = analyze_best_fit(Dimensions(1300, 1000), self.CATALOG, 1.0)

        assert best_fit.spec.key == "LANDSCAPE"

    def test_no_match_suggests_crop_to_closest(self):
        best_fit = analyze_best_fit(Dimensions(2000, 500), self.CATALOG, 0.10)

        assert best_fit.spec.key == "LANDSCAPE"
        assert best_fit.auto_crop_suggestion == CropRect(523, 0, 955, 500, "Landscape (1.91:1)")


class TestImageValidation:
    """Test image validation flow."""

    @pytest.mark.asyncio
    async def test_landscape_image_matches(self):
        validator = make_validator(Dimensions(2000, 1000))

        verdict = await validator.validate(image_blob(), MediaKind.IMAGE, DEFAULT_SPEC_TABLE)

        assert verdict.is_valid
        assert verdict.errors == []
        assert verdict.auto_crop_suggestion is None
        assert verdict.suggested_aspect_ratio == "Landscape (1.91:1)"
        assert verdict.suggested_size == Dimensions(1080, 566)
        assert "Perfect! Image matches Landscape (1.91:1) aspect ratio" in verdict.recommendations
        assert "Current size: 2000×1000px (2.00:1)" in verdict.recommendations

    @pytest.mark.asyncio
    async def test_panorama_gets_auto_crop(self):
        validator = make_validator(Dimensions(2000, 500))

        verdict = await validator.validate(image_blob(), MediaKind.IMAGE, DEFAULT_SPEC_TABLE)

        assert verdict.is_valid
        assert verdict.auto_crop_suggestion.to_dict() == {
            "x": 523, "y": 0, "width": 955, "height": 500, "aspect_ratio": "Landscape (1.91:1)",
        }
        assert "Image doesn't match recommended aspect ratios" in verdict.warnings
        assert "Auto-crop suggestion: Landscape (1.91:1) (1080×566px)" in verdict.recommendations
        assert "Crop area: 955×500px from position (523, 0)" in verdict.recommendations

    @pytest.mark.asyncio
    async def test_small_image_error_and_resolution_warning(self):
        validator = make_validator(Dimensions(500, 500))

        verdict = await validator.validate(image_blob(), MediaKind.IMAGE, DEFAULT_SPEC_TABLE)

        assert not verdict.is_valid
        assert verdict.errors == ["Image too small. Minimum: 552×368px"]
        assert verdict.error_codes == [ValidationErrorType.DIMENSION_TOO_SMALL]
        assert "Image resolution is below recommended size" in verdict.warnings
        assert "Recommended size: 1200×627px for best quality" in verdict.recommendations

    @pytest.mark.asyncio
    async def test_minimum_dimensions_are_inclusive(self):
        validator = make_validator(Dimensions(552, 368))

        verdict = await validator.validate(image_blob(), MediaKind.IMAGE, DEFAULT_SPEC_TABLE)

        assert ValidationErrorType.DIMENSION_TOO_SMALL not in verdict.error_codes

    @pytest.mark.asyncio
    @pytest.mark.parametrize("width,height", [(551, 368), (552, 367)])
    async def test_one_pixel_under_minimum_fails(self, width, height):
        validator = make_validator(Dimensions(width, height))

        verdict = await validator.validate(image_blob(), MediaKind.IMAGE, DEFAULT_SPEC_TABLE)

        assert not verdict.is_valid
        assert verdict.error_codes == [ValidationErrorType.DIMENSION_TOO_SMALL]

    @pytest.mark.asyncio
    async def test_exif_rotated_photo_uses_display_orientation(self):
        img = Image.new("RGB", (1600, 1200), (90, 120, 150))
        exif = Image.Exif()
        exif[0x0112] = 6
        buffer = io.BytesIO()
        img.save(buffer, "JPEG", exif=exif)
        blob = MediaBlob(data=buffer.getvalue(), content_type="image/jpeg")

        verdict = await MediaValidator(probe=MediaProbe()).validate(blob, MediaKind.IMAGE, DEFAULT_SPEC_TABLE)

        assert verdict.is_valid
        assert verdict.dimensions == Dimensions(1200, 1600)
        assert verdict.suggested_aspect_ratio == "Portrait (4:5)"
        assert verdict.auto_crop_suggestion is None
        assert "Image doesn't match recommended aspect ratios" not in verdict.warnings

    @pytest.mark.asyncio
    async def test_type_and_size_errors_accumulate(self):
        validator = make_validator(Dimensions(1200, 1200))
        blob = image_blob(content_type="image/tiff", size=10 * MB + 1)

        verdict = await validator.validate(blob, MediaKind.IMAGE, DEFAULT_SPEC_TABLE)

        assert not verdict.is_valid
        assert verdict.error_codes == [
            ValidationErrorType.UNSUPPORTED_TYPE,
            ValidationErrorType.SIZE_LIMIT_EXCEEDED,
        ]
        assert verdict.errors[0].startswith("Unsupported image format. Supported: image/jpeg")
        assert verdict.errors[1] == "File too large. Maximum size: 10MB"

    @pytest.mark.asyncio
    async def test_size_limit_is_inclusive(self):
        validator = make_validator(Dimensions(1200, 1200))

        verdict = await validator.validate(image_blob(size=10 * MB), MediaKind.IMAGE, DEFAULT_SPEC_TABLE)

        assert verdict.is_valid

    @pytest.mark.asyncio
    async def test_decode_failure_is_single_error(self):
        validator = make_validator(error=DecodeError("corrupt"))

        verdict = await validator.validate(image_blob(), MediaKind.IMAGE, DEFAULT_SPEC_TABLE)

        assert not verdict.is_valid
        assert verdict.errors == ["Could not read image dimensions"]
        assert verdict.error_codes == [ValidationErrorType.DECODE_ERROR]
        assert verdict.suggested_size is None
        assert verdict.recommendations == []

    @pytest.mark.asyncio
    async def test_decode_failure_keeps_earlier_errors(self):
        validator = make_validator(error=DecodeError("corrupt"))

        verdict = await validator.validate(image_blob(content_type="image/bmp"), MediaKind.IMAGE, DEFAULT_SPEC_TABLE)

        assert verdict.error_codes == [ValidationErrorType.UNSUPPORTED_TYPE, ValidationErrorType.DECODE_ERROR]

    @pytest.mark.asyncio
    async def test_tolerance_comes_from_spec_table(self):
        validator = make_validator(Dimensions(1200, 1000))

        strict = await validator.validate(image_blob(), MediaKind.IMAGE, DEFAULT_SPEC_TABLE)
        relaxed = await validator.validate(image_blob(), MediaKind.IMAGE, with_tolerance(DEFAULT_SPEC_TABLE, 0.25))

        assert strict.auto_crop_suggestion is not None
        assert relaxed.auto_crop_suggestion is None
        assert relaxed.suggested_aspect_ratio == "Square (1:1)"

    @pytest.mark.asyncio
    async def test_to_dict(self):
        validator = make_validator(Dimensions(2000, 500))

        verdict = await validator.validate(image_blob(), MediaKind.IMAGE, DEFAULT_SPEC_TABLE)
        data = verdict.to_dict()

        assert data["is_valid"] is True
        assert data["media_kind"] == "image"
        assert data["suggested_size"] == {"width": 1080, "height": 566}
        assert data["auto_crop_suggestion"]["x"] == 523
        assert data["dimensions"] == {"width": 2000, "height": 500}
        assert data["file_size"] == 1024


class TestVideoValidation:
    """Test video validation flow."""

    @pytest.mark.asyncio
    async def test_valid_video(self):
        validator = make_validator(video=VideoInfo(duration=30.0, dimensions=Dimensions(1920, 1080)))

        verdict = await validator.validate(video_blob(), MediaKind.VIDEO, DEFAULT_SPEC_TABLE)

        assert verdict.is_valid
        assert verdict.auto_crop_suggestion is None
        assert "Duration: 30.0s, Size: 1920×1080px" in verdict.recommendations
        assert any(r.startswith("File size: ") for r in verdict.recommendations)

    @pytest.mark.asyncio
    async def test_short_video(self):
        validator = make_validator(video=VideoInfo(duration=2.0, dimensions=Dimensions(1920, 1080)))

        verdict = await validator.validate(video_blob(), MediaKind.VIDEO, DEFAULT_SPEC_TABLE)

        assert not verdict.is_valid
        assert verdict.errors == ["Video too short. Minimum duration: 3 seconds"]
        assert verdict.error_codes == [ValidationErrorType.DURATION_OUT_OF_RANGE]

    @pytest.mark.asyncio
    async def test_long_video(self):
        validator = make_validator(video=VideoInfo(duration=601.0, dimensions=Dimensions(1920, 1080)))

        verdict = await validator.validate(video_blob(), MediaKind.VIDEO, DEFAULT_SPEC_TABLE)

        assert verdict.errors == ["Video too long. Maximum duration: 600 seconds (10 minutes)"]

    @pytest.mark.asyncio
    async def test_duration_bounds_are_inclusive(self):
        for duration in (3.0, 600.0):
            validator = make_validator(video=VideoInfo(duration=duration, dimensions=Dimensions(1920, 1080)))

            verdict = await validator.validate(video_blob(), MediaKind.VIDEO, DEFAULT_SPEC_TABLE)

            assert verdict.is_valid

    @pytest.mark.asyncio
    async def test_extreme_aspect_ratio_has_no_crop(self):
        validator = make_validator(video=VideoInfo(duration=10.0, dimensions=Dimensions(3000, 1000)))

        verdict = await validator.validate(video_blob(), MediaKind.VIDEO, DEFAULT_SPEC_TABLE)

        assert not verdict.is_valid
        assert verdict.errors == ["Invalid aspect ratio. Supported range: 1:2.4 to 2.4:1"]
        assert verdict.error_codes == [ValidationErrorType.ASPECT_RATIO_OUT_OF_RANGE]
        assert verdict.auto_crop_suggestion is None

    @pytest.mark.asyncio
    async def test_low_resolution_warning(self):
        validator = make_validator(video=VideoInfo(duration=10.0, dimensions=Dimensions(320, 240)))

        verdict = await validator.validate(video_blob(), MediaKind.VIDEO, DEFAULT_SPEC_TABLE)

        assert verdict.is_valid
        assert "Video resolution is low" in verdict.warnings
        assert "Recommended: 1920×1080px (1080p HD)" in verdict.recommendations

    @pytest.mark.asyncio
    async def test_one_small_axis_is_not_low_resolution(self):
        validator = make_validator(video=VideoInfo(duration=10.0, dimensions=Dimensions(854, 400)))

        verdict = await validator.validate(video_blob(), MediaKind.VIDEO, DEFAULT_SPEC_TABLE)

        assert "Video resolution is low" not in verdict.warnings

    @pytest.mark.asyncio
    async def test_probe_failure_stops(self):
        validator = make_validator(error=DecodeError("moov atom not found"))

        verdict = await validator.validate(video_blob(), MediaKind.VIDEO, DEFAULT_SPEC_TABLE)

        assert verdict.errors == ["Could not read video information"]
        assert verdict.recommendations == []

    @pytest.mark.asyncio
    async def test_oversized_video(self):
        validator = make_validator(video=VideoInfo(duration=10.0, dimensions=Dimensions(1920, 1080)))
        # Stand-in blob so the test does not allocate 4GB
        huge = MagicMock(spec=MediaBlob)
        huge.content_type = "video/mp4"
        huge.size = DEFAULT_SPEC_TABLE.video.max_file_size + 1
        huge.media_id = "huge"

        verdict = await validator.validate(huge, MediaKind.VIDEO, DEFAULT_SPEC_TABLE)

        assert verdict.errors == ["File too large. Maximum size: 4.0GB"]


class TestHelpers:
    """Test kind detection and recommended sizes."""

    @pytest.mark.parametrize("content_type,kind", [
        ("image/png", MediaKind.IMAGE),
        ("IMAGE/JPEG", MediaKind.IMAGE),
        ("video/quicktime", MediaKind.VIDEO),
        ("application/pdf", None),
        ("", None),
    ])
    def test_detect_media_kind(self, content_type, kind):
        assert detect_media_kind(content_type) == kind

    def test_recommended_dimensions(self):
        dims = get_recommended_dimensions(MediaKind.IMAGE, DEFAULT_SPEC_TABLE)

        assert dims == [Dimensions(1080, 566), Dimensions(1080, 1080), Dimensions(1080, 1350)]

    @pytest.mark.asyncio
    async def test_validate_media_rejects_unknown_kind(self):
        blob = MediaBlob(data=b"%PDF-1.7", content_type="application/pdf")

        verdict = await validate_media(blob)

        assert not verdict.is_valid
        assert verdict.error_codes == [ValidationErrorType.UNSUPPORTED_TYPE]
