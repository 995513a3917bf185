"""
Image processing utilities for the document scanning pipeline.

Provides:
- Decoding / encoding of raw image buffers
- Grayscale conversion and contrast enhancement (CLAHE and clipped equalization)
- Otsu binarization
- Quarter-turn rotation
- Perspective rectification
- Resolution policy (long-edge caps)
- Batch preprocessing pipeline
"""

import io
import logging
import math
from dataclasses import dataclass, field
from typing import Tuple, Optional, List, Sequence

import numpy as np

from ..config import (
    ImageConfig,
    ImageFormat,
    PdfResolution,
    DocumentFormat,
    ProcessingOptions,
    Corner,
    quarter_turns,
)
from ..exceptions import ImageProcessingException

logger = logging.getLogger(__name__)

MIN_OUTPUT_SIDE = 100
WHITE = 255


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class PreprocessingResult:
    """Result of the batch preprocessing pipeline."""
    image: np.ndarray
    original_shape: Tuple[int, int]
    perspective_corrected: bool = False
    was_grayscale: bool = False
    was_contrast_enhanced: bool = False
    was_resized: bool = False
    corners: Optional[List[Corner]] = None
    transformations: List[str] = field(default_factory=list)


@dataclass
class ImageStats:
    """Luminance statistics about an image."""
    height: int
    width: int
    channels: int
    mean_intensity: float
    std_intensity: float
    min_intensity: float
    max_intensity: float
    is_grayscale: bool = False

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height if self.height else 0.0

    @property
    def contrast_range(self) -> float:
        return self.max_intensity - self.min_intensity


# ============================================================================
# Decoding / Encoding
# ============================================================================

def decode_image(image_data: bytes) -> np.ndarray:
    """
    Decode a raw image buffer into a BGR raster.

    EXIF orientation is applied by OpenCV during decoding.

    Args:
        image_data: Encoded image bytes (any codec OpenCV can read)

    Returns:
        Numpy array in BGR format

    Raises:
        ImageProcessingException: If the buffer is empty or not a decodable image
    """
    import cv2

    if not image_data:
        raise ImageProcessingException("Failed to decode image data: empty buffer")

    buffer = np.frombuffer(bytes(image_data), dtype=np.uint8)
    try:
        image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise ImageProcessingException(f"Failed to decode image data: {e}") from e

    if image is None:
        raise ImageProcessingException("Failed to decode image data")

    logger.debug(f"Decoded image with shape {image.shape}")
    return image


def sniff_format(image_data: bytes) -> Optional[ImageFormat]:
    """Identify the codec of an encoded buffer without decoding pixels."""
    from PIL import Image, UnidentifiedImageError

    try:
        with Image.open(io.BytesIO(image_data)) as pil_image:
            name = (pil_image.format or "").upper()
    except (UnidentifiedImageError, OSError, ValueError):
        return None

    return {
        "JPEG": ImageFormat.JPEG,
        "MPO": ImageFormat.JPEG,
        "PNG": ImageFormat.PNG,
        "WEBP": ImageFormat.WEBP,
    }.get(name)


def read_dimensions(image_data: bytes) -> Optional[Tuple[int, int]]:
    """Read (width, height) from the image header, or None when unreadable."""
    from PIL import Image, UnidentifiedImageError

    try:
        with Image.open(io.BytesIO(image_data)) as pil_image:
            return pil_image.size
    except (UnidentifiedImageError, OSError, ValueError):
        return None


def encode_image(
    image: np.ndarray,
    output_format: ImageFormat = ImageFormat.JPEG,
    quality: float = 0.8
) -> bytes:
    """
    Encode a raster into the requested codec.

    Args:
        image: BGR or grayscale image
        output_format: Target codec
        quality: Compression quality in [0, 1]; ignored for PNG

    Returns:
        Encoded bytes
    """
    import cv2

    level = int(min(100, max(1, round(quality * 100))))

    if output_format is ImageFormat.JPEG:
        ok, encoded = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, level])
    elif output_format is ImageFormat.PNG:
        ok, encoded = cv2.imencode(".png", image)
    elif output_format is ImageFormat.WEBP:
        ok, encoded = cv2.imencode(".webp", image, [cv2.IMWRITE_WEBP_QUALITY, level])
    else:
        raise ValueError(f"Unknown output format: {output_format}")

    if not ok:
        raise ImageProcessingException(f"Failed to encode image as {output_format.value}")

    return encoded.tobytes()


# ============================================================================
# Colour Transforms
# ============================================================================

def to_grayscale(image: np.ndarray) -> np.ndarray:
    """
    Convert image to grayscale if it's color.

    Args:
        image: Input image (BGR, BGRA or grayscale)

    Returns:
        Grayscale image
    """
    import cv2

    if len(image.shape) == 2:
        return image
    elif len(image.shape) == 3:
        if image.shape[2] == 3:
            return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        elif image.shape[2] == 4:
            return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        elif image.shape[2] == 1:
            return image.squeeze(axis=2)

    raise ValueError(f"Unexpected image shape: {image.shape}")


def luminance(image: np.ndarray) -> np.ndarray:
    """Per-pixel luminance (0.299R + 0.587G + 0.114B) as float32."""
    if len(image.shape) == 2:
        return image.astype(np.float32)
    b = image[:, :, 0].astype(np.float32)
    g = image[:, :, 1].astype(np.float32)
    r = image[:, :, 2].astype(np.float32)
    return 0.299 * r + 0.587 * g + 0.114 * b


def enhance_contrast(
    image: np.ndarray,
    clip_limit: float = 2.0,
    grid_size: int = 8
) -> np.ndarray:
    """
    Enhance contrast with CLAHE (Contrast Limited Adaptive Histogram Equalization).

    Grayscale images are equalized on their single channel; colour images
    are equalized channel by channel.

    Args:
        image: Input image
        clip_limit: Threshold for contrast limiting
        grid_size: Size of grid for histogram equalization

    Returns:
        Contrast-enhanced image
    """
    import cv2

    clahe = cv2.createCLAHE(
        clipLimit=clip_limit,
        tileGridSize=(grid_size, grid_size)
    )

    if len(image.shape) == 2:
        enhanced = clahe.apply(image)
    else:
        channels = [clahe.apply(channel) for channel in cv2.split(image)]
        enhanced = cv2.merge(channels)

    logger.debug(f"Applied CLAHE contrast enhancement (clip={clip_limit})")
    return enhanced


def clip_histogram(histogram: np.ndarray, clip_threshold: int) -> np.ndarray:
    """
    Clip histogram bins and redistribute the excess evenly.

    Args:
        histogram: 256-bin integer histogram
        clip_threshold: Maximum count allowed per bin

    Returns:
        New clipped histogram with the same total count
    """
    clipped = histogram.astype(np.int64).copy()
    excess = int(np.sum(np.maximum(clipped - clip_threshold, 0)))
    if excess <= 0:
        return clipped

    clipped = np.minimum(clipped, clip_threshold)
    bins = len(clipped)
    clipped += excess // bins
    clipped[: excess % bins] += 1
    return clipped


def equalization_lookup(channel: np.ndarray, clip_limit: float = 2.0) -> np.ndarray:
    """
    Build a 256-entry lookup table for clipped histogram equalization.

    The CDF is normalized over the intensity range actually present in the
    channel, so its darkest value maps to 0 and its brightest to 255.
    A flat channel gets the identity table.
    """
    lo = int(channel.min())
    hi = int(channel.max())
    identity = np.arange(256, dtype=np.uint8)
    if hi <= lo:
        return identity

    histogram = np.bincount(channel.ravel(), minlength=256)
    total = int(channel.size)
    clip_threshold = max(1, int(round(total * clip_limit / 256)))
    cdf = np.cumsum(clip_histogram(histogram, clip_threshold)).astype(np.float64)

    lookup = identity.copy()
    span = cdf[hi] - cdf[lo]
    if span <= 0:
        return identity
    levels = (cdf[lo:hi + 1] - cdf[lo]) / span * 255.0
    lookup[lo:hi + 1] = np.clip(np.round(levels), 0, 255).astype(np.uint8)
    lookup[:lo] = 0
    lookup[hi + 1:] = 255
    return lookup


def equalize_channels(image: np.ndarray, clip_limit: float = 2.0) -> np.ndarray:
    """
    Per-channel histogram equalization with a clip limit.

    Args:
        image: Grayscale or BGR uint8 image
        clip_limit: Multiple of the uniform bin height a bin may reach

    Returns:
        Equalized image of the same shape
    """
    import cv2

    if len(image.shape) == 2:
        return cv2.LUT(image, equalization_lookup(image, clip_limit))

    channels = [
        cv2.LUT(channel, equalization_lookup(channel, clip_limit))
        for channel in cv2.split(image)
    ]
    logger.debug(f"Applied clipped per-channel equalization (clip={clip_limit})")
    return cv2.merge(channels)


def binarize(image: np.ndarray) -> Tuple[np.ndarray, float]:
    """
    Convert image to black and white using Otsu's threshold on luminance.

    Args:
        image: Input image (grayscale or color)

    Returns:
        Tuple of (binary image, threshold)
    """
    import cv2

    gray = to_grayscale(image)
    threshold, binary = cv2.threshold(
        gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU
    )

    logger.debug(f"Applied Otsu binarization (threshold={threshold:.0f})")
    return binary, float(threshold)


# ============================================================================
# Geometry
# ============================================================================

def rotate_image(image: np.ndarray, degrees: int) -> np.ndarray:
    """
    Rotate clockwise by a multiple of 90 degrees.

    Args:
        image: Input image
        degrees: Rotation, snapped to the nearest quarter turn

    Returns:
        Rotated image
    """
    import cv2

    turns = quarter_turns(degrees)
    if turns == 0:
        return image

    rotate_code = {
        1: cv2.ROTATE_90_CLOCKWISE,
        2: cv2.ROTATE_180,
        3: cv2.ROTATE_90_COUNTERCLOCKWISE,
    }[turns]

    logger.debug(f"Rotated image by {turns * 90} degrees")
    return cv2.rotate(image, rotate_code)


def _distance(a: Corner, b: Corner) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def calculate_output_dimensions(
    corners: Sequence[Corner],
    document_format: Optional[DocumentFormat] = None
) -> Tuple[int, int]:
    """
    Size of the rectangle a quadrilateral is rectified into.

    Uses the longest opposite edges as the baseline. For a specific document
    format the rectangle is fitted inside that baseline with the format's
    aspect ratio, in landscape when the quadrilateral is wider than tall.

    Args:
        corners: Four corners ordered top-left, top-right, bottom-right, bottom-left
        document_format: Optional format controlling aspect ratio

    Returns:
        (width, height) in pixels, each at least 100
    """
    if len(corners) != 4:
        return (400, 300)

    tl, tr, br, bl = corners
    max_width = math.ceil(max(_distance(tl, tr), _distance(bl, br)))
    max_height = math.ceil(max(_distance(tl, bl), _distance(tr, br)))

    if document_format is None or document_format is DocumentFormat.AUTO:
        return (max(MIN_OUTPUT_SIDE, max_width), max(MIN_OUTPUT_SIDE, max_height))

    aspect = document_format.aspect_ratio
    if max_width > max_height:
        aspect = 1.0 / aspect

    if aspect >= 1.0:
        out_w, out_h = float(max_width), max_width / aspect
        if out_h > max_height:
            out_h, out_w = float(max_height), max_height * aspect
    else:
        out_h, out_w = float(max_height), max_height * aspect
        if out_w > max_width:
            out_w, out_h = float(max_width), max_width / aspect

    return (
        max(MIN_OUTPUT_SIDE, int(round(out_w))),
        max(MIN_OUTPUT_SIDE, int(round(out_h))),
    )


def warp_perspective(
    image: np.ndarray,
    corners: Sequence[Corner],
    width: int,
    height: int
) -> np.ndarray:
    """
    Rectify a quadrilateral region into an upright width x height image.

    Samples outside the source are filled with white.

    Args:
        image: Source image
        corners: Quadrilateral ordered top-left, top-right, bottom-right, bottom-left
        width: Output width
        height: Output height

    Returns:
        Rectified image
    """
    import cv2

    source = np.array(corners, dtype=np.float32)
    destination = np.array([
        [0, 0],
        [width - 1, 0],
        [width - 1, height - 1],
        [0, height - 1],
    ], dtype=np.float32)

    matrix = cv2.getPerspectiveTransform(source, destination)
    border = (WHITE, WHITE, WHITE) if len(image.shape) == 3 else WHITE
    warped = cv2.warpPerspective(
        image,
        matrix,
        (width, height),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=border
    )

    logger.debug(f"Warped quadrilateral to {width}x{height}")
    return warped


def limit_long_edge(image: np.ndarray, max_long_edge: int) -> np.ndarray:
    """Downscale so the longer edge is at most ``max_long_edge``; never upscales."""
    import cv2

    h, w = image.shape[:2]
    long_edge = max(h, w)
    if long_edge <= max_long_edge:
        return image

    scale = max_long_edge / long_edge
    new_width = max(1, int(round(w * scale)))
    new_height = max(1, int(round(h * scale)))
    resized = cv2.resize(image, (new_width, new_height), interpolation=cv2.INTER_AREA)

    logger.debug(f"Resized image: {image.shape[:2]} -> {resized.shape[:2]} (scale={scale:.2f})")
    return resized


def max_long_edge_for(resolution: PdfResolution, config: ImageConfig) -> Optional[int]:
    """Long-edge cap for a resolution policy; None means keep native size."""
    if resolution is PdfResolution.QUALITY:
        return config.quality_max_long_edge
    if resolution is PdfResolution.SIZE:
        return config.size_max_long_edge
    return None


def resize_for_resolution(
    image: np.ndarray,
    resolution: PdfResolution,
    config: Optional[ImageConfig] = None
) -> np.ndarray:
    """Apply the resolution policy to an image."""
    cap = max_long_edge_for(resolution, config or ImageConfig())
    if cap is None:
        return image
    return limit_long_edge(image, cap)


# ============================================================================
# Main Preprocessing Pipeline
# ============================================================================

def preprocess_image(
    image: np.ndarray,
    options: ProcessingOptions,
    corners: Optional[Sequence[Corner]] = None,
    config: Optional[ImageConfig] = None
) -> PreprocessingResult:
    """
    Apply the batch processing pipeline to a decoded image.

    Args:
        image: Input image (BGR)
        options: Processing options selecting the steps
        corners: Detected document corners; None skips rectification
        config: Image configuration (clip limit, long-edge caps)

    Returns:
        PreprocessingResult with processed image and metadata
    """
    config = config or ImageConfig()
    original_shape = image.shape[:2]
    processed = image
    transformations = []
    perspective_corrected = False

    # 1. Perspective correction
    if options.auto_correct_perspective and corners is not None:
        width, height = calculate_output_dimensions(corners, options.document_format)
        processed = warp_perspective(processed, corners, width, height)
        perspective_corrected = True
        transformations.append("perspective")

    # 2. Grayscale
    if options.convert_to_grayscale:
        processed = to_grayscale(processed)
        transformations.append("grayscale")

    # 3. Contrast
    if options.enhance_contrast:
        processed = enhance_contrast(
            processed,
            clip_limit=config.contrast_clip_limit,
            grid_size=config.contrast_grid_size
        )
        transformations.append("enhance_contrast")

    # 4. Resolution policy
    before = processed.shape[:2]
    processed = resize_for_resolution(processed, options.pdf_resolution, config)
    was_resized = processed.shape[:2] != before
    if was_resized:
        transformations.append(f"resize_{options.pdf_resolution.value}")

    logger.info(f"Preprocessing complete: {' -> '.join(transformations) or 'no changes'}")

    return PreprocessingResult(
        image=processed,
        original_shape=original_shape,
        perspective_corrected=perspective_corrected,
        was_grayscale=options.convert_to_grayscale,
        was_contrast_enhanced=options.enhance_contrast,
        was_resized=was_resized,
        corners=list(corners) if perspective_corrected else None,
        transformations=transformations
    )


def get_image_stats(image: np.ndarray) -> ImageStats:
    """
    Calculate luminance statistics about an image.

    Args:
        image: Input image

    Returns:
        ImageStats with image properties
    """
    h, w = image.shape[:2]
    channels = 1 if len(image.shape) == 2 else image.shape[2]

    lum = luminance(image)

    return ImageStats(
        height=h,
        width=w,
        channels=channels,
        mean_intensity=float(np.mean(lum)),
        std_intensity=float(np.std(lum)),
        min_intensity=float(np.min(lum)),
        max_intensity=float(np.max(lum)),
        is_grayscale=(channels == 1)
    )


def laplacian_variance(image: np.ndarray) -> float:
    """Variance of the Laplacian, a sharpness score (low means blurry)."""
    import cv2

    gray = to_grayscale(image)
    return float(cv2.Laplacian(gray, cv2.CV_64F).var())
