"""
Utility modules for the document scanner.
"""

from .io import StorageHelper, load_image_bytes, save_json
from .images import preprocess_image, binarize, enhance_contrast, equalize_channels, rotate_image
from .edges import EdgeDetector, EdgeCache, EdgeDetectionResult
from .document import Document, Page, ScanResult, QRScanResult, DocumentType, ScanResultType, QRContentType
from .session import ScanSession
from .export import PdfGenerator

__all__ = [
    # IO
    "StorageHelper", "load_image_bytes", "save_json",
    # Images
    "preprocess_image", "binarize", "enhance_contrast", "equalize_channels", "rotate_image",
    # Edges
    "EdgeDetector", "EdgeCache", "EdgeDetectionResult",
    # Model
    "Document", "Page", "ScanResult", "QRScanResult",
    "DocumentType", "ScanResultType", "QRContentType",
    # Sessions
    "ScanSession",
    # Export
    "PdfGenerator",
]
