"""
Tests for bitmap utilities.
"""

import pytest
import numpy as np
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


class TestBinarization:
    """Test grayscale conversion and binarization."""

    @pytest.fixture
    def sample_image(self):
        """Dark ink on light paper."""
        img = np.ones((30, 40), dtype=np.uint8) * 255
        img[5:10, 5:20] = 0
        img[15:20, 10:30] = 100
        img[22:25, 5:10] = 200
        return img

    @pytest.fixture
    def sample_color_image(self):
        img = np.ones((30, 40, 3), dtype=np.uint8) * 255
        img[5:10, 5:20] = [0, 0, 0]
        return img

    def test_to_grayscale_already_gray(self, sample_image):
        """Test that grayscale images are returned unchanged."""
        from bookrec.recog.images import to_grayscale

        result = to_grayscale(sample_image)

        assert result.shape == sample_image.shape
        np.testing.assert_array_equal(result, sample_image)

    def test_to_grayscale_from_color(self, sample_color_image):
        from bookrec.recog.images import to_grayscale

        result = to_grayscale(sample_color_image)

        assert len(result.shape) == 2
        assert result.shape[:2] == sample_color_image.shape[:2]

    def test_binarize_threshold(self, sample_image):
        """Pixels darker than the threshold are foreground."""
        from bookrec.recog.images import binarize

        result = binarize(sample_image, threshold=150)

        assert result.dtype == np.uint8
        assert set(np.unique(result)) <= {0, 1}
        assert result[5:10, 5:20].all()
        assert result[15:20, 10:30].all()
        assert not result[22:25, 5:10].any()
        assert int(result.sum()) == 5 * 15 + 5 * 20

    def test_binarize_keeps_binary_input(self, zero_glyph):
        from bookrec.recog.images import binarize

        np.testing.assert_array_equal(binarize(zero_glyph), zero_glyph)
        np.testing.assert_array_equal(binarize(zero_glyph.astype(bool)), zero_glyph)

    def test_binarize_dark_scan_as_gray(self):
        """A scan holding only levels 0 and 1 is almost black, not blank."""
        from bookrec.recog.images import binarize

        scan = np.zeros((8, 8), dtype=np.uint8)
        scan[0, 0] = 1

        assert binarize(scan, binary=False).all()
        assert int(binarize(scan).sum()) == 1
        assert int(binarize(scan, binary=True).sum()) == 1

    def test_binarize_color(self, sample_color_image):
        from bookrec.recog.images import binarize

        result = binarize(sample_color_image)

        assert int(result.sum()) == 5 * 15


class TestMeasurements:
    """Test centroids, counts and clipping."""

    def test_centroid_of_ring(self, zero_glyph):
        from bookrec.recog.images import centroid, foreground_count

        cx, cy = centroid(zero_glyph)

        assert cx == pytest.approx(4.5)
        assert cy == pytest.approx(7.5)
        assert foreground_count(zero_glyph) == 160 - 72

    def test_centroid_of_empty_bitmap(self):
        from bookrec.recog.images import centroid

        assert centroid(np.zeros((5, 9), dtype=np.uint8)) == (4.0, 2.0)

    def test_clip_to_foreground(self, one_glyph):
        from bookrec.recog.images import clip_to_foreground

        canvas = np.zeros((40, 30), dtype=np.uint8)
        canvas[7:23, 11:21] = one_glyph

        clipped, origin = clip_to_foreground(canvas)

        assert origin == (11, 7)
        np.testing.assert_array_equal(clipped, one_glyph)

    def test_clip_empty(self):
        from bookrec.recog.images import clip_to_foreground

        clipped, _ = clip_to_foreground(np.zeros((5, 5), dtype=np.uint8))

        assert clipped.size == 0


class TestTransforms:
    """Test scaling, outlines and erosion."""

    def test_scale_to_height_keeps_aspect(self, zero_glyph):
        from bookrec.recog.images import scale_bitmap

        result = scale_bitmap(zero_glyph, 0, 32)

        assert result.shape == (32, 20)
        assert set(np.unique(result)) <= {0, 1}

    def test_scale_both_zero_is_copy(self, zero_glyph):
        from bookrec.recog.images import scale_bitmap

        result = scale_bitmap(zero_glyph, 0, 0)

        np.testing.assert_array_equal(result, zero_glyph)
        assert result is not zero_glyph

    def test_scale_fixed_size(self, one_glyph):
        from bookrec.recog.images import scale_bitmap

        assert scale_bitmap(one_glyph, 12, 24).shape == (24, 12)

    def test_thin_and_dilate_thins_thick_strokes(self):
        from bookrec.recog.images import thin_and_dilate

        bar = np.zeros((20, 30), dtype=np.uint8)
        bar[5:15, 3:27] = 1

        skeleton = thin_and_dilate(bar, iterations=0)
        outline = thin_and_dilate(bar, iterations=1)

        assert skeleton.shape == bar.shape
        assert 0 < skeleton.sum() < bar.sum()
        assert outline.sum() >= skeleton.sum()
        assert not (skeleton & (1 - bar)).any()

    def test_erode_bitmap(self, zero_glyph):
        from bookrec.recog.images import erode_bitmap

        eroded = erode_bitmap(zero_glyph, 1)

        assert eroded.sum() < zero_glyph.sum()
        np.testing.assert_array_equal(erode_bitmap(zero_glyph, 0), zero_glyph)

    def test_concatenate_horizontally(self, zero_glyph, one_glyph):
        from bookrec.recog.images import concatenate_horizontally

        line, offsets = concatenate_horizontally([zero_glyph, one_glyph], gap=3, margin=1)

        assert offsets == [1, 14]
        assert line.shape == (16, 1 + 10 + 3 + 10 + 1)
        np.testing.assert_array_equal(line[:, 14:24], one_glyph)
        assert not line[:, 11:14].any()
