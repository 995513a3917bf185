"""
Tests for document boundary detection.
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


@pytest.fixture
def document_photo():
    """A bright sheet on a dark desk, 800x600."""
    img = np.full((600, 800, 3), 30, dtype=np.uint8)
    img[80:520, 100:700] = 235
    return img


@pytest.fixture
def blank_photo():
    return np.full((600, 800, 3), 128, dtype=np.uint8)


class TestCornerGeometry:
    """Test corner ordering and fallbacks."""

    def test_order_corners_from_shuffled(self):
        from docscan.utils.edges import order_corners

        points = np.array([[700, 520], [100, 80], [100, 520], [700, 80]])
        tl, tr, br, bl = order_corners(points)

        assert tl == (100.0, 80.0)
        assert tr == (700.0, 80.0)
        assert br == (700.0, 520.0)
        assert bl == (100.0, 520.0)

    def test_order_corners_satisfies_relations(self):
        from docscan.utils.edges import order_corners, corners_are_ordered

        # Quadrilateral rotated by ~45 degrees
        points = np.array([[50, 0], [100, 50], [50, 100], [0, 50]])
        assert corners_are_ordered(order_corners(points))

    def test_fallback_corners(self):
        from docscan.utils.edges import fallback_corners

        assert fallback_corners(800, 600) == ((0.0, 0.0), (800.0, 0.0), (800.0, 600.0), (0.0, 600.0))
        assert fallback_corners() == ((0.0, 0.0), (100.0, 0.0), (100.0, 100.0), (0.0, 100.0))


class TestEdgeDetector:
    """Test detection on synthetic photos."""

    def test_detects_sheet(self, document_photo):
        from docscan.utils.edges import EdgeDetector

        result = EdgeDetector().detect(_encode(document_photo))

        assert not result.is_fallback
        assert result.confidence > 0.4
        expected = [(100, 80), (700, 80), (700, 520), (100, 520)]
        for (x, y), (ex, ey) in zip(result.corners, expected):
            assert abs(x - ex) <= 10
            assert abs(y - ey) <= 10

    def test_large_image_scaled_back(self, document_photo):
        import cv2
        from docscan.utils.edges import EdgeDetector

        big = cv2.resize(document_photo, (1600, 1200), interpolation=cv2.INTER_NEAREST)
        result = EdgeDetector().detect(_encode(big))

        assert not result.is_fallback
        assert abs(result.corners[2][0] - 1400) <= 20
        assert abs(result.corners[2][1] - 1040) <= 20

    def test_blank_image_falls_back_to_bounds(self, blank_photo):
        from docscan.utils.edges import EdgeDetector

        result = EdgeDetector().detect(_encode(blank_photo))

        assert result.is_fallback
        assert result.corners == ((0.0, 0.0), (800.0, 0.0), (800.0, 600.0), (0.0, 600.0))

    def test_garbage_never_raises(self):
        from docscan.utils.edges import EdgeDetector

        result = EdgeDetector().detect(b"not an image at all")

        assert result.is_fallback
        assert result.corners[2] == (100.0, 100.0)

    def test_empty_bytes_never_raises(self):
        from docscan.utils.edges import EdgeDetector

        assert EdgeDetector().detect(b"").is_fallback


class TestEdgeCache:
    """Test the content-hash cache."""

    def test_second_call_hits_cache(self, document_photo):
        from docscan.utils.edges import EdgeDetector

        detector = EdgeDetector()
        data = _encode(document_photo)
        first = detector.detect(data)
        second = detector.detect(data)

        assert first == second
        assert detector.cache.stats == {"size": 1, "hits": 1, "misses": 1}

    def test_clear(self, blank_photo):
        from docscan.utils.edges import EdgeDetector

        detector = EdgeDetector()
        detector.detect(_encode(blank_photo))
        assert len(detector.cache) == 1

        detector.cache.clear()
        assert len(detector.cache) == 0

    def test_concurrent_access(self, document_photo):
        from concurrent.futures import ThreadPoolExecutor
        from docscan.utils.edges import EdgeDetector

        detector = EdgeDetector()
        data = _encode(document_photo)
        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(detector.detect, [data] * 8))

        assert all(r.corners == results[0].corners for r in results)
        assert len(detector.cache) == 1
