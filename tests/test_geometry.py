"""
Unit tests for media geometry utilities.

Covers:
- Aspect ratio matching and closest-entry selection
- Centered crop computation with whole-pixel rounding
- Scaling and clamping rectangles between coordinate spaces
"""

import pytest

from postmedia.media.geometry import (
    AspectRatioSpec,
    CropRect,
    Dimensions,
    aspect_ratio,
    centered_square,
    clamp_rect,
    closest_spec,
    compute_crop_rect,
    fit_within,
    matches_within_tolerance,
    round_half_up,
    scale_rect,
)
from postmedia.media.specs import IMAGE_ASPECT_RATIOS


LANDSCAPE, SQUARE, PORTRAIT = IMAGE_ASPECT_RATIOS


class TestDimensions:
    """Test the Dimensions value type."""

    def test_aspect_ratio(self):
        assert Dimensions(2000, 1000).aspect_ratio == 2.0
        assert aspect_ratio(Dimensions(1080, 1350)) == pytest.approx(0.8)

    @pytest.mark.parametrize("width,height", [(0, 100), (100, 0), (-5, 10)])
    def test_rejects_non_positive(self, width, height):
        with pytest.raises(ValueError):
            Dimensions(width, height)

    def test_str(self):
        assert str(Dimensions(1200, 627)) == "1200×627"


class TestAspectRatioMatching:
    """Test catalog matching."""

    def test_closest_spec_picks_nearest(self):
        assert closest_spec(4.0, IMAGE_ASPECT_RATIOS) == LANDSCAPE
        assert closest_spec(1.1, IMAGE_ASPECT_RATIOS) == SQUARE
        assert closest_spec(0.5, IMAGE_ASPECT_RATIOS) == PORTRAIT

    def test_closest_spec_tie_goes_to_first_declared(self):
        first = AspectRatioSpec(key="A", name="A", ratio=1.0, width=100, height=100)
        second = AspectRatioSpec(key="B", name="B", ratio=2.0, width=200, height=100)

        assert closest_spec(1.5, (first, second)) == first
        assert closest_spec(1.5, (second, first)) == second

    def test_closest_spec_empty_catalog(self):
        with pytest.raises(ValueError):
            closest_spec(1.0, ())

    def test_tolerance_is_absolute_difference(self):
        assert matches_within_tolerance(1.05, SQUARE)
        assert matches_within_tolerance(0.95, SQUARE)
        assert not matches_within_tolerance(1.2, SQUARE)
        assert matches_within_tolerance(1.2, SQUARE, tolerance=0.25)


class TestComputeCropRect:
    """Test centered auto-crop computation."""

    def test_wide_source_trims_sides(self):
        rect = compute_crop_rect(Dimensions(2000, 500), LANDSCAPE)

        assert (rect.x, rect.y, rect.width, rect.height) == (523, 0, 955, 500)
        assert rect.aspect_ratio == "Landscape (1.91:1)"

    def test_tall_source_trims_top_and_bottom(self):
        rect = compute_crop_rect(Dimensions(1000, 3000), PORTRAIT)

        assert rect.x == 0
        assert rect.width == 1000
        assert rect.height == 1250
        assert rect.y == 875

    def test_equal_ratio_keeps_full_frame(self):
        rect = compute_crop_rect(Dimensions(1080, 1080), SQUARE)

        assert (rect.x, rect.y, rect.width, rect.height) == (0, 0, 1080, 1080)

    def test_cropping_a_crop_keeps_full_frame(self):
        first = compute_crop_rect(Dimensions(2000, 500), LANDSCAPE)

        second = compute_crop_rect(Dimensions(first.width, first.height), LANDSCAPE)

        assert (first.width, first.height) == (955, 500)
        assert (second.x, second.y, second.width, second.height) == (0, 0, 955, 500)

    def test_rect_stays_inside_source(self):
        for dims in [Dimensions(3, 1), Dimensions(1, 7), Dimensions(4001, 999), Dimensions(640, 2000)]:
            for target in IMAGE_ASPECT_RATIOS:
                rect = compute_crop_rect(dims, target)

                assert rect.x >= 0 and rect.y >= 0
                assert rect.width >= 1 and rect.height >= 1
                assert rect.x + rect.width <= dims.width
                assert rect.y + rect.height <= dims.height

    def test_round_half_up(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(1.5) == 2
        assert round_half_up(2.5) == 3
        assert round_half_up(2.49) == 2


class TestRectSpaces:
    """Test scaling and clamping of rectangles."""

    def test_scale_rect_uses_independent_factors(self):
        rect = CropRect(x=10, y=20, width=100, height=50, aspect_ratio="Square (1:1)")
        scaled = scale_rect(rect, Dimensions(400, 300), Dimensions(4000, 600))

        assert (scaled.x, scaled.y, scaled.width, scaled.height) == (100, 40, 1000, 100)
        assert scaled.aspect_ratio == "Square (1:1)"

    def test_scale_rect_does_not_round(self):
        scaled = scale_rect(CropRect(1, 1, 1, 1), Dimensions(3, 3), Dimensions(1, 1))

        assert scaled.x == pytest.approx(1 / 3)

    @pytest.mark.parametrize("rect,space_a,space_b", [
        (CropRect(37, 12, 211, 98), Dimensions(400, 300), Dimensions(4032, 3024)),
        (CropRect(0, 0, 1, 1), Dimensions(3, 7), Dimensions(1000, 10)),
        (CropRect(5.5, 2.25, 10.75, 3.125), Dimensions(123, 45), Dimensions(67, 891)),
    ])
    def test_scale_rect_round_trip(self, rect, space_a, space_b):
        back = scale_rect(scale_rect(rect, space_a, space_b), space_b, space_a)

        assert back.x == pytest.approx(rect.x)
        assert back.y == pytest.approx(rect.y)
        assert back.width == pytest.approx(rect.width)
        assert back.height == pytest.approx(rect.height)

    def test_clamp_rect_shifts_inside(self):
        clamped = clamp_rect(CropRect(350, -10, 100, 80), Dimensions(400, 300))

        assert (clamped.x, clamped.y, clamped.width, clamped.height) == (300, 0, 100, 80)

    def test_clamp_rect_shrinks_oversized(self):
        clamped = clamp_rect(CropRect(0, 0, 900, 900), Dimensions(400, 300))

        assert (clamped.width, clamped.height) == (400, 300)

    def test_centered_square(self):
        rect = centered_square(Dimensions(400, 300))

        assert rect.width == rect.height == pytest.approx(180)
        assert rect.x == pytest.approx(110)
        assert rect.y == pytest.approx(60)

    def test_empty_rect(self):
        assert not CropRect.empty().has_extent
        assert CropRect(0, 0, 1, 1).has_extent


class TestFitWithin:
    """Test aspect-preserving fitting."""

    def test_downscales_wide_source(self):
        fitted = fit_within(Dimensions(4000, 1000), Dimensions(400, 400))

        assert fitted.as_tuple() == (400, 100)

    def test_downscales_tall_source(self):
        fitted = fit_within(Dimensions(1000, 4000), Dimensions(400, 400))

        assert fitted.as_tuple() == (100, 400)

    def test_no_upscale_by_default(self):
        assert fit_within(Dimensions(100, 50), Dimensions(400, 400)).as_tuple() == (100, 50)
        assert fit_within(Dimensions(100, 50), Dimensions(400, 400), allow_upscale=True).as_tuple() == (400, 200)
