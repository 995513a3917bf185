"""
Configuration and constants for the document scanning pipeline.

This module provides:
- Logging setup
- Tag enumerations (image formats, resolutions, document formats, filters)
- Processing and editing option records with presets
- Scanner configuration sections with environment overrides
"""

import logging
import math
import os
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Dict, Any, Sequence, Type, TypeVar

logger = logging.getLogger(__name__)


# ============================================================================
# Logging Configuration
# ============================================================================

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    """Configure root logging for command-line use and return the package logger."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    package_logger = logging.getLogger("docscan")
    package_logger.setLevel(level)
    return package_logger


# ============================================================================
# Tag Enumerations
# ============================================================================

E = TypeVar("E", bound=Enum)


def parse_tag(enum_cls: Type[E], value: Any, default: Optional[E]) -> Optional[E]:
    """
    Decode a stored tag string into an enum member.

    Accepts the stable value (``"jpeg"``), the legacy ``"ImageFormat.jpeg"``
    form and enum members themselves. Anything else maps to ``default``.
    """
    if value is None:
        return default
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        for member in enum_cls:
            if member.value == value:
                return member
        if "." in value:
            suffix = value.rsplit(".", 1)[1]
            for member in enum_cls:
                if member.value == suffix:
                    return member
    logger.debug(f"Unknown {enum_cls.__name__} tag {value!r}, using {default}")
    return default


class ImageFormat(Enum):
    """Output codecs for processed images."""
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"

    @property
    def extension(self) -> str:
        return ".jpg" if self is ImageFormat.JPEG else f".{self.value}"



class PdfResolution(Enum):
    """Resolution policy for processed images and embedded PDF images."""
    ORIGINAL = "original"
    QUALITY = "quality"  # ~300 DPI
    SIZE = "size"        # ~150 DPI


class DocumentFormat(Enum):
    """Physical document formats controlling aspect ratio and PDF page size."""
    AUTO = "auto"
    ISO_A = "isoA"
    US_LETTER = "usLetter"
    US_LEGAL = "usLegal"
    SQUARE = "square"
    RECEIPT = "receipt"
    BUSINESS_CARD = "businessCard"

    @property
    def aspect_ratio(self) -> float:
        """Portrait width/height ratio; AUTO returns 1.0 as a placeholder."""
        return _FORMAT_ASPECT_RATIOS[self]

    @property
    def page_size_mm(self) -> Tuple[float, float]:
        """PDF page (width, height) in millimetres."""
        return _FORMAT_PAGE_SIZES_MM[self]


_FORMAT_ASPECT_RATIOS = {
    DocumentFormat.AUTO: 1.0,
    DocumentFormat.ISO_A: 1.0 / math.sqrt(2.0),
    DocumentFormat.US_LETTER: 8.5 / 11.0,
    DocumentFormat.US_LEGAL: 8.5 / 14.0,
    DocumentFormat.SQUARE: 1.0,
    DocumentFormat.RECEIPT: 0.6,
    DocumentFormat.BUSINESS_CARD: 3.5 / 2.0,
}

_FORMAT_PAGE_SIZES_MM = {
    DocumentFormat.AUTO: (210.0, 297.0),
    DocumentFormat.ISO_A: (210.0, 297.0),
    DocumentFormat.US_LETTER: (215.9, 279.4),
    DocumentFormat.US_LEGAL: (215.9, 355.6),
    DocumentFormat.SQUARE: (210.0, 210.0),
    DocumentFormat.RECEIPT: (80.0, 297.0),
    DocumentFormat.BUSINESS_CARD: (85.0, 55.0),
}


class ColorFilter(Enum):
    """Colour filters for interactive editing."""
    NONE = "none"
    HIGH_CONTRAST = "highContrast"
    BLACK_AND_WHITE = "blackAndWhite"


# ============================================================================
# Processing Options
# ============================================================================

def _clamp_quality(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


def quarter_turns(degrees: float) -> int:
    """Number of clockwise quarter turns nearest to ``degrees``; ties round up."""
    return int((degrees % 360 + 45) // 90) % 4


@dataclass(frozen=True)
class ProcessingOptions:
    """Options for the batch processing pipeline."""
    convert_to_grayscale: bool = True
    enhance_contrast: bool = True
    auto_correct_perspective: bool = True
    compression_quality: float = 0.8
    output_format: ImageFormat = ImageFormat.JPEG
    generate_pdf: bool = True
    save_image_file: bool = False
    pdf_resolution: PdfResolution = PdfResolution.QUALITY
    document_format: Optional[DocumentFormat] = None
    custom_filename: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "compression_quality", _clamp_quality(self.compression_quality))

    def with_changes(self, **changes: Any) -> "ProcessingOptions":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "convertToGrayscale": self.convert_to_grayscale,
            "enhanceContrast": self.enhance_contrast,
            "autoCorrectPerspective": self.auto_correct_perspective,
            "compressionQuality": self.compression_quality,
            "outputFormat": self.output_format.value,
            "generatePdf": self.generate_pdf,
            "saveImageFile": self.save_image_file,
            "pdfResolution": self.pdf_resolution.value,
            "documentFormat": self.document_format.value if self.document_format else None,
            "customFilename": self.custom_filename,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ProcessingOptions":
        """Build options from a dict; missing keys take the constructor defaults."""
        data = data or {}
        document_format = None
        if data.get("documentFormat") is not None:
            document_format = parse_tag(DocumentFormat, data["documentFormat"], DocumentFormat.AUTO)
        return cls(
            convert_to_grayscale=data.get("convertToGrayscale", True),
            enhance_contrast=data.get("enhanceContrast", True),
            auto_correct_perspective=data.get("autoCorrectPerspective", True),
            compression_quality=float(data.get("compressionQuality", 0.8)),
            output_format=parse_tag(ImageFormat, data.get("outputFormat"), ImageFormat.JPEG),
            generate_pdf=data.get("generatePdf", True),
            save_image_file=data.get("saveImageFile", False),
            pdf_resolution=parse_tag(PdfResolution, data.get("pdfResolution"), PdfResolution.QUALITY),
            document_format=document_format,
            custom_filename=data.get("customFilename"),
        )


# Presets for the document types the scanner knows about
RECEIPT_OPTIONS = ProcessingOptions(
    convert_to_grayscale=True,
    enhance_contrast=True,
    auto_correct_perspective=True,
    compression_quality=0.9,
)

MANUAL_OPTIONS = ProcessingOptions(
    convert_to_grayscale=False,
    enhance_contrast=False,
    auto_correct_perspective=True,
    compression_quality=0.7,
)

DOCUMENT_OPTIONS = ProcessingOptions(
    convert_to_grayscale=True,
    enhance_contrast=True,
    auto_correct_perspective=True,
    compression_quality=0.8,
)


# ============================================================================
# Editing Options
# ============================================================================

Corner = Tuple[float, float]


@dataclass(frozen=True)
class EditingOptions:
    """Options for the interactive editing pipeline."""
    rotation_degrees: int = 0
    color_filter: ColorFilter = ColorFilter.NONE
    crop_corners: Optional[Tuple[Corner, ...]] = None
    document_format: Optional[DocumentFormat] = None
    output_format: Optional[ImageFormat] = None  # None = keep input codec
    compression_quality: Optional[float] = None

    def __post_init__(self):
        if self.crop_corners is not None:
            corners = tuple((float(x), float(y)) for x, y in self.crop_corners)
            if len(corners) != 4:
                raise ValueError(f"crop_corners needs exactly 4 points, got {len(corners)}")
            object.__setattr__(self, "crop_corners", corners)
        if self.compression_quality is not None:
            object.__setattr__(self, "compression_quality", _clamp_quality(self.compression_quality))

    @property
    def normalized_rotation(self) -> int:
        """Rotation snapped to the nearest quarter turn, in [0, 360)."""
        return quarter_turns(self.rotation_degrees) * 90

    def with_changes(self, **changes: Any) -> "EditingOptions":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


# ============================================================================
# Scanner Configuration
# ============================================================================

@dataclass
class ImageConfig:
    """Image processing configuration."""
    contrast_clip_limit: float = 2.0
    contrast_grid_size: int = 8
    quality_max_long_edge: int = 2500
    size_max_long_edge: int = 1200
    editing_quality: float = 0.9
    blur_threshold: float = 100.0


@dataclass
class EdgeDetectionConfig:
    """Document boundary detection configuration."""
    max_dimension: int = 800
    blur_kernel_size: int = 5
    canny_low: int = 50
    canny_high: int = 150
    min_area_ratio: float = 0.1
    approx_epsilon: float = 0.02
    max_candidates: int = 5


@dataclass
class PdfConfig:
    """PDF assembly configuration."""
    margin_pt: float = 5.0
    default_author: str = "Document Scanner"
    page_number_font_size: int = 10
    quality_dpi: int = 300
    size_dpi: int = 150
    embed_quality: int = 90


@dataclass
class StorageConfig:
    """Where finished documents are written."""
    output_dir: Optional[Path] = None
    app_name: str = "DocumentScanner"


@dataclass
class ScannerConfig:
    """Main scanner configuration."""
    image: ImageConfig = field(default_factory=ImageConfig)
    edges: EdgeDetectionConfig = field(default_factory=EdgeDetectionConfig)
    pdf: PdfConfig = field(default_factory=PdfConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    max_workers: int = 2
    debug_mode: bool = False


# ============================================================================
# Default Configuration Instance
# ============================================================================

def get_config() -> ScannerConfig:
    """Get the default scanner configuration with environment overrides."""
    config = ScannerConfig()

    output_dir = os.environ.get("DOCSCAN_OUTPUT_DIR")
    if output_dir:
        config.storage.output_dir = Path(output_dir)

    app_name = os.environ.get("DOCSCAN_APP_NAME")
    if app_name:
        config.storage.app_name = app_name

    if os.environ.get("DOCSCAN_DEBUG", "").lower() == "true":
        config.debug_mode = True

    max_workers = os.environ.get("DOCSCAN_MAX_WORKERS")
    if max_workers:
        try:
            config.max_workers = max(1, int(max_workers))
        except ValueError:
            logger.warning(f"Ignoring invalid DOCSCAN_MAX_WORKERS={max_workers!r}")

    return config


def corners_from_sequence(points: Sequence[Sequence[float]]) -> Tuple[Corner, ...]:
    """Normalise any sequence of (x, y) pairs into a tuple of float corners."""
    return tuple((float(p[0]), float(p[1])) for p in points)
