"""
Document boundary detection.

Finds the largest convex quadrilateral in a photograph (the sheet of paper)
and returns its corners ordered top-left, top-right, bottom-right,
bottom-left. Detection is advisory: when no confident boundary is found the
full image bounds are returned instead.
"""

import hashlib
import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..config import Corner, EdgeDetectionConfig
from ..exceptions import ImageProcessingException
from .images import decode_image, read_dimensions, to_grayscale

logger = logging.getLogger(__name__)

UNIT_BOX_SIZE = 100.0


@dataclass(frozen=True)
class EdgeDetectionResult:
    """Corners of a detected (or assumed) document boundary."""
    corners: Tuple[Corner, Corner, Corner, Corner]
    confidence: float = 0.0
    is_fallback: bool = True
    image_size: Optional[Tuple[int, int]] = None

    def to_list(self) -> List[List[float]]:
        return [[x, y] for x, y in self.corners]

    def to_dict(self) -> Dict:
        return {
            "corners": self.to_list(),
            "confidence": self.confidence,
            "isFallback": self.is_fallback,
            "imageSize": list(self.image_size) if self.image_size else None,
        }


# ============================================================================
# Corner Geometry
# ============================================================================

def fallback_corners(width: Optional[float] = None, height: Optional[float] = None) -> Tuple[Corner, ...]:
    """Full image bounds, or a 100x100 unit box when the size is unknown."""
    if not width or not height:
        width = height = UNIT_BOX_SIZE
    w, h = float(width), float(height)
    return ((0.0, 0.0), (w, 0.0), (w, h), (0.0, h))


def corners_are_ordered(corners: Sequence[Corner]) -> bool:
    """Check the tl/tr/br/bl ordering relations."""
    tl, tr, br, bl = corners
    return tl[0] <= tr[0] and tl[1] <= bl[1] and br[0] >= bl[0] and br[1] >= tr[1]


def order_corners(points: np.ndarray) -> Tuple[Corner, ...]:
    """
    Order four points as top-left, top-right, bottom-right, bottom-left.

    Top-left has the smallest x+y, bottom-right the largest; top-right has
    the smallest y-x, bottom-left the largest. If that assignment does not
    satisfy the ordering relations the axis-aligned bounding box is used.

    Args:
        points: Array of shape (4, 2)

    Returns:
        Ordered corners as float tuples
    """
    pts = np.asarray(points, dtype=np.float64).reshape(4, 2)
    sums = pts.sum(axis=1)
    diffs = pts[:, 1] - pts[:, 0]

    ordered = (
        tuple(pts[np.argmin(sums)]),
        tuple(pts[np.argmin(diffs)]),
        tuple(pts[np.argmax(sums)]),
        tuple(pts[np.argmax(diffs)]),
    )
    ordered = tuple((float(x), float(y)) for x, y in ordered)

    if len(set(ordered)) == 4 and corners_are_ordered(ordered):
        return ordered

    x_min, y_min = pts.min(axis=0)
    x_max, y_max = pts.max(axis=0)
    logger.debug("Corner ordering ambiguous, using bounding box")
    return (
        (float(x_min), float(y_min)),
        (float(x_max), float(y_min)),
        (float(x_max), float(y_max)),
        (float(x_min), float(y_max)),
    )


# ============================================================================
# Cache
# ============================================================================

class EdgeCache:
    """
    Thread-safe map from image content hash to detection result.

    Only corner results are stored. Two threads asking for the same uncached
    image may both run detection; the last write wins.
    """

    def __init__(self):
        self._entries: Dict[str, EdgeDetectionResult] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def key_for(image_data: bytes) -> str:
        return hashlib.sha256(bytes(image_data)).hexdigest()

    def get(self, key: str) -> Optional[EdgeDetectionResult]:
        with self._lock:
            result = self._entries.get(key)
            if result is None:
                self._misses += 1
            else:
                self._hits += 1
            return result

    def put(self, key: str, result: EdgeDetectionResult) -> None:
        with self._lock:
            self._entries[key] = result

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
        logger.debug("Edge cache cleared")

    @property
    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"size": len(self._entries), "hits": self._hits, "misses": self._misses}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# ============================================================================
# Detector
# ============================================================================

class EdgeDetector:
    """Canny + contour based document boundary detector with a result cache."""

    def __init__(self, config: Optional[EdgeDetectionConfig] = None, cache: Optional[EdgeCache] = None):
        self.config = config or EdgeDetectionConfig()
        self.cache = cache if cache is not None else EdgeCache()

    def detect(self, image_data: bytes) -> EdgeDetectionResult:
        """
        Detect document corners in encoded image bytes. Never raises.

        Args:
            image_data: Encoded image

        Returns:
            EdgeDetectionResult; ``is_fallback`` is set when no confident
            boundary was found
        """
        key = EdgeCache.key_for(image_data or b"")
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Edge cache hit for {key[:12]}")
            return cached

        try:
            image = decode_image(image_data)
        except ImageProcessingException as e:
            logger.warning(f"Edge detection could not decode image: {e}")
            size = read_dimensions(image_data) if image_data else None
            result = EdgeDetectionResult(
                corners=fallback_corners(*size) if size else fallback_corners(),
                image_size=size,
            )
        else:
            result = self.detect_array(image)

        self.cache.put(key, result)
        return result

    def detect_array(self, image: np.ndarray) -> EdgeDetectionResult:
        """Detect document corners in a decoded image."""
        import cv2

        h, w = image.shape[:2]
        cfg = self.config

        scale = min(1.0, cfg.max_dimension / max(h, w))
        small = image
        if scale < 1.0:
            small = cv2.resize(image, (int(round(w * scale)), int(round(h * scale))),
                               interpolation=cv2.INTER_AREA)

        gray = to_grayscale(small)
        k = cfg.blur_kernel_size | 1
        blurred = cv2.GaussianBlur(gray, (k, k), 0)
        edges = cv2.Canny(blurred, cfg.canny_low, cfg.canny_high)
        edges = cv2.dilate(edges, np.ones((3, 3), np.uint8), iterations=1)

        contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        contours = sorted(contours, key=cv2.contourArea, reverse=True)[:cfg.max_candidates]

        frame_area = float(small.shape[0] * small.shape[1])
        for contour in contours:
            area = cv2.contourArea(contour)
            ratio = area / frame_area if frame_area else 0.0
            if ratio < cfg.min_area_ratio:
                break

            peri = cv2.arcLength(contour, True)
            approx = cv2.approxPolyDP(contour, cfg.approx_epsilon * peri, True)
            if len(approx) != 4 or not cv2.isContourConvex(approx):
                continue

            points = approx.reshape(4, 2).astype(np.float64) / scale
            points[:, 0] = np.clip(points[:, 0], 0, w)
            points[:, 1] = np.clip(points[:, 1], 0, h)
            corners = order_corners(points)

            logger.info(f"Detected document boundary (area ratio {ratio:.2f})")
            return EdgeDetectionResult(
                corners=corners,
                confidence=float(min(1.0, ratio)),
                is_fallback=False,
                image_size=(w, h),
            )

        logger.info("No confident document boundary, using full image bounds")
        return EdgeDetectionResult(corners=fallback_corners(w, h), image_size=(w, h))
