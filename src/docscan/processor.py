"""
Image processor facade.

Wraps the raster functions in ``docscan.utils.images`` and the boundary
detector behind four operations on encoded bytes:

- process_image: batch pipeline driven by ProcessingOptions
- apply_image_editing: interactive rotate / crop / filter pipeline
- detect_document_edges: advisory corner detection (cached)
- analyze_image_quality: advisory diagnostics

Blocking work can be pushed onto the processor's thread pool through the
``*_async`` variants.
"""

import asyncio
import functools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import numpy as np

from .config import (
    ColorFilter,
    Corner,
    EditingOptions,
    ImageConfig,
    EdgeDetectionConfig,
    ImageFormat,
    ProcessingOptions,
)
from .exceptions import ImageProcessingException
from .utils.edges import EdgeCache, EdgeDetectionResult, EdgeDetector
from .utils.images import (
    binarize,
    calculate_output_dimensions,
    decode_image,
    encode_image,
    equalize_channels,
    get_image_stats,
    laplacian_variance,
    preprocess_image,
    rotate_image,
    sniff_format,
    warp_perspective,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class ImageProcessingBackend(Protocol):
    """Interface the scanner service drives."""

    def process_image(self, image_data: bytes, options: ProcessingOptions) -> bytes:
        ...

    def apply_image_editing(self, image_data: bytes, options: EditingOptions) -> bytes:
        ...

    def detect_document_edges(self, image_data: bytes) -> List[Corner]:
        ...

    def analyze_image_quality(self, image_data: bytes) -> "QualityReport":
        ...

    async def process_image_async(self, image_data: bytes, options: ProcessingOptions) -> bytes:
        ...

    async def run_in_executor(self, func, *args, **kwargs):
        ...

    def close(self) -> None:
        ...


@dataclass
class QualityReport:
    """Diagnostics about a captured image."""
    width: int = 0
    height: int = 0
    aspect_ratio: float = 0.0
    blur_score: float = 0.0
    is_blurry: bool = False
    brightness: float = 0.0
    contrast: float = 0.0
    has_document: bool = False
    suggestions: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {
            "width": data["width"],
            "height": data["height"],
            "aspectRatio": data["aspect_ratio"],
            "blurScore": data["blur_score"],
            "isBlurry": data["is_blurry"],
            "brightness": data["brightness"],
            "contrast": data["contrast"],
            "hasDocument": data["has_document"],
            "suggestions": data["suggestions"],
            "error": data["error"],
        }


class ImageProcessor:
    """Document image processor with an edge cache and a worker pool."""

    def __init__(
        self,
        image_config: Optional[ImageConfig] = None,
        edge_config: Optional[EdgeDetectionConfig] = None,
        max_workers: int = 2,
        edge_cache: Optional[EdgeCache] = None
    ):
        self.image_config = image_config or ImageConfig()
        self.detector = EdgeDetector(edge_config, edge_cache)
        self._max_workers = max(1, max_workers)
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    @classmethod
    def from_config(cls, config) -> "ImageProcessor":
        """Build a processor from a ScannerConfig."""
        return cls(
            image_config=config.image,
            edge_config=config.edges,
            max_workers=config.max_workers,
        )

    @property
    def edge_cache(self) -> EdgeCache:
        return self.detector.cache

    # ========================================================================
    # Batch pipeline
    # ========================================================================

    def process_image(self, image_data: bytes, options: Optional[ProcessingOptions] = None) -> bytes:
        """
        Run the batch pipeline on encoded image bytes.

        Args:
            image_data: Encoded input image
            options: Steps to apply and output encoding

        Returns:
            Encoded output in ``options.output_format``

        Raises:
            ImageProcessingException: If the input cannot be decoded
        """
        options = options or ProcessingOptions()
        image = decode_image(image_data)
        logger.info(f"Processing image {image.shape[1]}x{image.shape[0]}")

        corners = None
        if options.auto_correct_perspective:
            detection = self.detector.detect(image_data)
            if detection.is_fallback:
                logger.debug("Skipping perspective correction, no confident boundary")
            else:
                corners = detection.corners

        result = preprocess_image(image, options, corners=corners, config=self.image_config)
        return encode_image(result.image, options.output_format, options.compression_quality)

    # ========================================================================
    # Interactive pipeline
    # ========================================================================

    def apply_image_editing(self, image_data: bytes, options: Optional[EditingOptions] = None) -> bytes:
        """
        Rotate, crop and filter an image.

        The output keeps the input's codec unless ``options.output_format``
        is set.

        Raises:
            ImageProcessingException: If the input cannot be decoded
        """
        options = options or EditingOptions()
        image = decode_image(image_data)

        rotation = options.normalized_rotation
        if rotation:
            image = rotate_image(image, rotation)

        if options.crop_corners is not None:
            width, height = calculate_output_dimensions(options.crop_corners, options.document_format)
            image = warp_perspective(image, options.crop_corners, width, height)

        image = self.apply_color_filter(image, options.color_filter)

        output_format = options.output_format or sniff_format(image_data) or ImageFormat.JPEG
        quality = options.compression_quality
        if quality is None:
            quality = self.image_config.editing_quality

        logger.info(
            f"Edited image: rotation={rotation} filter={options.color_filter.value} "
            f"crop={'yes' if options.crop_corners else 'no'} -> {output_format.value}"
        )
        return encode_image(image, output_format, quality)

    def apply_color_filter(self, image: np.ndarray, color_filter: ColorFilter) -> np.ndarray:
        if color_filter is ColorFilter.HIGH_CONTRAST:
            return equalize_channels(image, clip_limit=self.image_config.contrast_clip_limit)
        if color_filter is ColorFilter.BLACK_AND_WHITE:
            binary, _ = binarize(image)
            return binary
        return image

    # ========================================================================
    # Advisory operations
    # ========================================================================

    def detect_edges(self, image_data: bytes) -> EdgeDetectionResult:
        """Full detection result including confidence and fallback flag."""
        return self.detector.detect(image_data)

    def detect_document_edges(self, image_data: bytes) -> List[Corner]:
        """Four document corners ordered tl, tr, br, bl. Never raises."""
        return list(self.detector.detect(image_data).corners)

    def clear_edge_cache(self) -> None:
        self.detector.cache.clear()

    def analyze_image_quality(self, image_data: bytes) -> QualityReport:
        """
        Advisory quality diagnostics. Never raises.

        Undecodable input yields a report with ``error`` set.
        """
        try:
            image = decode_image(image_data)
        except ImageProcessingException as e:
            logger.warning(f"Quality analysis failed: {e}")
            return QualityReport(error=str(e))

        stats = get_image_stats(image)
        blur_score = laplacian_variance(image)
        is_blurry = blur_score < self.image_config.blur_threshold
        brightness = stats.mean_intensity / 255.0
        contrast = stats.contrast_range / 255.0
        aspect = stats.aspect_ratio

        detection = self.detector.detect(image_data)
        has_document = 0.5 < aspect < 2.0 and not detection.is_fallback

        suggestions = []
        if is_blurry:
            suggestions.append("Image appears blurry. Hold the camera steady and refocus.")
        if brightness < 0.3:
            suggestions.append("Image is too dark. Add more light.")
        elif brightness > 0.8:
            suggestions.append("Image is too bright. Reduce glare or direct light.")
        if contrast < 0.3:
            suggestions.append("Low contrast. Place the document on a contrasting background.")
        if not has_document:
            suggestions.append("No document boundary detected. Make sure all four corners are visible.")

        return QualityReport(
            width=stats.width,
            height=stats.height,
            aspect_ratio=aspect,
            blur_score=blur_score,
            is_blurry=is_blurry,
            brightness=brightness,
            contrast=contrast,
            has_document=has_document,
            suggestions=suggestions,
        )

    # ========================================================================
    # Async variants
    # ========================================================================

    @property
    def executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="docscan"
                )
            return self._executor

    async def run_in_executor(self, func, *args, **kwargs):
        """Run a blocking callable on the processor's worker pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, functools.partial(func, *args, **kwargs))

    async def process_image_async(self, image_data: bytes, options: Optional[ProcessingOptions] = None) -> bytes:
        return await self.run_in_executor(self.process_image, image_data, options)

    async def apply_image_editing_async(self, image_data: bytes, options: Optional[EditingOptions] = None) -> bytes:
        return await self.run_in_executor(self.apply_image_editing, image_data, options)

    async def detect_document_edges_async(self, image_data: bytes) -> List[Corner]:
        return await self.run_in_executor(self.detect_document_edges, image_data)

    async def analyze_image_quality_async(self, image_data: bytes) -> QualityReport:
        return await self.run_in_executor(self.analyze_image_quality, image_data)

    def close(self) -> None:
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def __enter__(self) -> "ImageProcessor":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
