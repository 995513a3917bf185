"""
Tests for image processing utilities.
"""

import pytest
import numpy as np
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


def _encode(image, ext=".png"):
    import cv2

    ok, buf = cv2.imencode(ext, image)
    assert ok
    return buf.tobytes()


class TestDecodeEncode:
    """Test decoding and encoding of image buffers."""

    @pytest.fixture
    def sample_color_image(self):
        img = np.full((120, 160, 3), 200, dtype=np.uint8)
        img[20:60, 30:90] = [10, 80, 200]
        return img

    def test_decode_empty_raises(self):
        from docscan.utils.images import decode_image
        from docscan.exceptions import ImageProcessingException

        with pytest.raises(ImageProcessingException):
            decode_image(b"")

    def test_decode_garbage_raises(self):
        from docscan.utils.images import decode_image
        from docscan.exceptions import ImageProcessingException

        with pytest.raises(ImageProcessingException):
            decode_image(b"definitely not an image")

    def test_decode_png(self, sample_color_image):
        from docscan.utils.images import decode_image

        decoded = decode_image(_encode(sample_color_image))
        np.testing.assert_array_equal(decoded, sample_color_image)

    def test_encode_magic_bytes(self, sample_color_image):
        from docscan.config import ImageFormat
        from docscan.utils.images import encode_image

        jpeg = encode_image(sample_color_image, ImageFormat.JPEG, 0.8)
        png = encode_image(sample_color_image, ImageFormat.PNG, 0.8)

        assert jpeg[:2] == b"\xff\xd8"
        assert png[:4] == b"\x89PNG"

    def test_sniff_format(self, sample_color_image):
        from docscan.config import ImageFormat
        from docscan.utils.images import sniff_format

        assert sniff_format(_encode(sample_color_image, ".png")) is ImageFormat.PNG
        assert sniff_format(_encode(sample_color_image, ".jpg")) is ImageFormat.JPEG
        assert sniff_format(b"garbage") is None

    def test_read_dimensions(self, sample_color_image):
        from docscan.utils.images import read_dimensions

        assert read_dimensions(_encode(sample_color_image)) == (160, 120)
        assert read_dimensions(b"garbage") is None


class TestColourTransforms:
    """Test grayscale, equalization and binarization."""

    @pytest.fixture
    def low_contrast_image(self):
        """Horizontal gradient squeezed into [100, 150]."""
        ramp = np.linspace(100, 150, 200).astype(np.uint8)
        gray = np.tile(ramp, (100, 1))
        return np.dstack([gray, gray, gray])

    def test_to_grayscale_already_gray(self):
        from docscan.utils.images import to_grayscale

        img = np.full((10, 10), 77, dtype=np.uint8)
        np.testing.assert_array_equal(to_grayscale(img), img)

    def test_luminance_weights(self):
        from docscan.utils.images import luminance

        img = np.zeros((1, 1, 3), dtype=np.uint8)
        img[0, 0] = [0, 0, 255]  # pure red in BGR
        assert luminance(img)[0, 0] == pytest.approx(0.299 * 255, abs=0.01)

    def test_equalize_spreads_range(self, low_contrast_image):
        from docscan.utils.images import equalize_channels

        result = equalize_channels(low_contrast_image, clip_limit=2.0)

        assert result.shape == low_contrast_image.shape
        assert result.min() == 0
        assert result.max() == 255
        assert result.std() > low_contrast_image.std()

    def test_equalize_flat_channel_unchanged(self):
        from docscan.utils.images import equalize_channels

        flat = np.full((50, 50, 3), 128, dtype=np.uint8)
        np.testing.assert_array_equal(equalize_channels(flat), flat)

    def test_clip_histogram_preserves_total(self):
        from docscan.utils.images import clip_histogram

        hist = np.zeros(256, dtype=np.int64)
        hist[10] = 1000
        hist[20] = 24
        clipped = clip_histogram(hist, 50)

        assert clipped.sum() == hist.sum()
        assert clipped[10] < hist[10]

    def test_enhance_contrast_gray_and_color(self, low_contrast_image):
        from docscan.utils.images import enhance_contrast

        gray = low_contrast_image[:, :, 0]
        assert enhance_contrast(gray).shape == gray.shape
        assert enhance_contrast(low_contrast_image).shape == low_contrast_image.shape

    def test_binarize_two_levels(self):
        from docscan.utils.images import binarize

        img = np.full((100, 100, 3), 40, dtype=np.uint8)
        img[:, 50:] = 210
        binary, threshold = binarize(img)

        assert set(np.unique(binary)) <= {0, 255}
        assert 40 <= threshold < 210
        assert binary[0, 0] == 0
        assert binary[0, 99] == 255


class TestGeometry:
    """Test rotation, output sizing, warping and resizing."""

    def test_rotate_quarter_turn_swaps_dimensions(self):
        from docscan.utils.images import rotate_image

        img = np.zeros((300, 400, 3), dtype=np.uint8)
        assert rotate_image(img, 90).shape[:2] == (400, 300)
        assert rotate_image(img, 180).shape[:2] == (300, 400)
        assert rotate_image(img, -90).shape[:2] == (400, 300)

    def test_four_rotations_identity(self):
        from docscan.utils.images import rotate_image

        img = np.random.RandomState(0).randint(0, 255, (30, 40, 3), dtype=np.uint8)
        result = img
        for _ in range(4):
            result = rotate_image(result, 90)
        np.testing.assert_array_equal(result, img)

    def test_half_quarter_ties_round_up(self):
        from docscan.utils.images import rotate_image

        img = np.zeros((30, 40), dtype=np.uint8)
        assert rotate_image(img, 45).shape == (40, 30)
        assert rotate_image(img, 135).shape == (30, 40)
        assert rotate_image(img, 225).shape == (40, 30)
        assert rotate_image(img, 315) is img

    def test_rotate_clockwise(self):
        from docscan.utils.images import rotate_image

        img = np.zeros((2, 3), dtype=np.uint8)
        img[0, 0] = 255  # top-left
        rotated = rotate_image(img, 90)
        assert rotated[0, -1] == 255  # top-left moves to top-right

    def test_output_dimensions_auto(self):
        from docscan.utils.images import calculate_output_dimensions

        corners = [(0, 0), (400, 0), (400, 300), (0, 300)]
        assert calculate_output_dimensions(corners) == (400, 300)

    def test_output_dimensions_minimum(self):
        from docscan.utils.images import calculate_output_dimensions

        corners = [(0, 0), (10, 0), (10, 10), (0, 10)]
        assert calculate_output_dimensions(corners) == (100, 100)

    def test_output_dimensions_format_landscape(self):
        from docscan.config import DocumentFormat
        from docscan.utils.images import calculate_output_dimensions

        corners = [(0, 0), (400, 0), (400, 300), (0, 300)]
        width, height = calculate_output_dimensions(corners, DocumentFormat.ISO_A)

        assert width == 400
        assert width / height == pytest.approx(2 ** 0.5, rel=0.01)

    def test_output_dimensions_format_portrait(self):
        from docscan.config import DocumentFormat
        from docscan.utils.images import calculate_output_dimensions

        corners = [(0, 0), (300, 0), (300, 600), (0, 600)]
        width, height = calculate_output_dimensions(corners, DocumentFormat.US_LETTER)

        assert width <= 300 and height <= 600
        assert width / height == pytest.approx(8.5 / 11, rel=0.01)

    def test_warp_fills_outside_with_white(self):
        from docscan.utils.images import warp_perspective

        img = np.zeros((100, 100, 3), dtype=np.uint8)
        corners = [(-50, -50), (150, -50), (150, 150), (-50, 150)]
        warped = warp_perspective(img, corners, 200, 200)

        assert warped.shape == (200, 200, 3)
        assert tuple(warped[0, 0]) == (255, 255, 255)
        assert tuple(warped[100, 100]) == (0, 0, 0)

    def test_limit_long_edge_downscales(self):
        from docscan.utils.images import limit_long_edge

        img = np.zeros((1000, 3000), dtype=np.uint8)
        assert max(limit_long_edge(img, 2500).shape) == 2500

    def test_limit_long_edge_never_upscales(self):
        from docscan.utils.images import limit_long_edge

        img = np.zeros((100, 200), dtype=np.uint8)
        assert limit_long_edge(img, 2500) is img

    def test_resize_for_resolution(self):
        from docscan.config import PdfResolution
        from docscan.utils.images import resize_for_resolution

        img = np.zeros((2000, 3000), dtype=np.uint8)
        assert resize_for_resolution(img, PdfResolution.ORIGINAL).shape == (2000, 3000)
        assert max(resize_for_resolution(img, PdfResolution.QUALITY).shape) == 2500
        assert max(resize_for_resolution(img, PdfResolution.SIZE).shape) == 1200


class TestPipeline:
    """Test the batch preprocessing pipeline."""

    def test_pipeline_records_steps(self):
        from docscan.config import ProcessingOptions
        from docscan.utils.images import preprocess_image

        img = np.full((200, 300, 3), 120, dtype=np.uint8)
        result = preprocess_image(img, ProcessingOptions())

        assert result.was_grayscale
        assert result.image.ndim == 2
        assert "grayscale" in result.transformations
        assert not result.perspective_corrected

    def test_pipeline_without_steps_keeps_image(self):
        from docscan.config import ProcessingOptions
        from docscan.utils.images import preprocess_image

        img = np.full((200, 300, 3), 120, dtype=np.uint8)
        options = ProcessingOptions(
            convert_to_grayscale=False,
            enhance_contrast=False,
            auto_correct_perspective=False,
        )
        result = preprocess_image(img, options)

        np.testing.assert_array_equal(result.image, img)
        assert result.transformations == []

    def test_image_stats(self):
        from docscan.utils.images import get_image_stats

        img = np.zeros((10, 20), dtype=np.uint8)
        img[:, 10:] = 255
        stats = get_image_stats(img)

        assert stats.width == 20 and stats.height == 10
        assert stats.is_grayscale
        assert stats.contrast_range == 255
        assert stats.mean_intensity == pytest.approx(127.5)
