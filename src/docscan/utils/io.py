"""
I/O utilities for scanned documents.

Handles:
- Output directory resolution
- Filename generation
- Writing image / PDF bytes
- Reading input images
- JSON serialization of results
"""

import json
import logging
import re
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np

from ..config import ImageFormat, StorageConfig
from ..exceptions import StorageError
from .document import DocumentType

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.webp', '.bmp', '.tiff', '.tif'}

_INVALID_CHARS = re.compile(r'[<>:"/\\|?*]')
_WHITESPACE = re.compile(r'\s+')
_REPEATED_UNDERSCORES = re.compile(r'_+')


def clean_filename(value: str) -> str:
    """Replace characters that are unsafe in filenames with underscores."""
    cleaned = _INVALID_CHARS.sub('_', value)
    cleaned = _WHITESPACE.sub('_', cleaned)
    cleaned = _REPEATED_UNDERSCORES.sub('_', cleaned)
    return cleaned.strip()


# ============================================================================
# Storage Helper
# ============================================================================

class StorageHelper:
    """Writes finished documents under an explicitly configured directory."""

    def __init__(self, config: Optional[StorageConfig] = None):
        self.config = config or StorageConfig()

    def get_output_directory(self) -> Path:
        """
        Resolve and create the output directory.

        Uses ``config.output_dir`` when set, otherwise
        ``~/Documents/<app_name>``.

        Raises:
            StorageError: If the directory cannot be created
        """
        directory = self.config.output_dir
        if directory is None:
            directory = Path.home() / "Documents" / self.config.app_name
        directory = Path(directory).expanduser()
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create output directory {directory}: {e}") from e
        return directory

    def generate_filename(
        self,
        document_type: DocumentType,
        timestamp: Optional[datetime] = None,
        custom_filename: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Base filename (no extension) for a document.

        Precedence: custom name, ``metadata['suggestedFilename']``,
        ``<date>_<brand>_<model>_<Type>`` when product details are present,
        then ``<date>_<Type>``.
        """
        if custom_filename:
            return custom_filename

        metadata = metadata or {}
        if metadata.get("suggestedFilename"):
            return str(metadata["suggestedFilename"])

        timestamp = timestamp or datetime.now()
        suffix = document_type.filename_suffix
        brand = metadata.get("productBrand")
        model = metadata.get("productModel")
        if brand and model:
            date_str = metadata.get("purchaseDate") or f"{timestamp:%Y%m%d}"
            return f"{date_str}_{clean_filename(str(brand))}_{clean_filename(str(model))}_{suffix}"

        return f"{timestamp:%Y%m%d}_{suffix}"

    def _write(self, path: Path, data: bytes) -> Path:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e
        logger.debug(f"Saved {len(data)} bytes: {path}")
        return path

    def save_image_file(
        self,
        filename: str,
        image_data: bytes,
        directory: Optional[Path] = None,
        image_format: ImageFormat = ImageFormat.JPEG
    ) -> Path:
        directory = Path(directory) if directory else self.get_output_directory()
        return self._write(directory / f"{filename}{image_format.extension}", image_data)

    def save_pdf_file(self, filename: str, pdf_data: bytes, directory: Optional[Path] = None) -> Path:
        directory = Path(directory) if directory else self.get_output_directory()
        return self._write(directory / f"{filename}.pdf", pdf_data)

    def save_files(
        self,
        filename: str,
        image_data: Optional[bytes] = None,
        pdf_data: Optional[bytes] = None,
        directory: Optional[Path] = None,
        image_format: ImageFormat = ImageFormat.JPEG
    ) -> Dict[str, Path]:
        """
        Save whichever payloads are given.

        Returns:
            Mapping with ``image`` and/or ``pdf`` keys
        """
        paths = {}
        if image_data is not None:
            paths["image"] = self.save_image_file(filename, image_data, directory, image_format)
        if pdf_data is not None:
            paths["pdf"] = self.save_pdf_file(filename, pdf_data, directory)
        if paths:
            logger.info(f"Saved {', '.join(str(p) for p in paths.values())}")
        return paths


# ============================================================================
# Input Loading
# ============================================================================

def load_image_bytes(image_path: Union[str, Path]) -> bytes:
    """
    Read an encoded image file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the extension is not a supported image type
    """
    image_path = Path(image_path)
    if not image_path.exists():
        raise FileNotFoundError(f"Image file not found: {image_path}")
    if image_path.suffix.lower() not in SUPPORTED_EXTENSIONS:
        raise ValueError(f"Unsupported image type: {image_path.suffix}")
    return image_path.read_bytes()


def list_images(folder: Union[str, Path]) -> List[Path]:
    """Supported image files in a folder, sorted by name."""
    folder = Path(folder)
    if not folder.is_dir():
        raise NotADirectoryError(f"Not a directory: {folder}")
    return sorted(p for p in folder.iterdir() if p.suffix.lower() in SUPPORTED_EXTENSIONS)


# ============================================================================
# JSON Serialization
# ============================================================================

class ScanJSONEncoder(json.JSONEncoder):
    """JSON encoder for numpy values, enums, paths and timestamps."""

    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Path):
            return str(obj)
        if isinstance(obj, (bytes, bytearray)):
            return None
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        return super().default(obj)


def to_json(data: Any, indent: int = 2) -> str:
    return json.dumps(data, indent=indent, ensure_ascii=False, cls=ScanJSONEncoder)


def save_json(data: Any, output_path: Union[str, Path], indent: int = 2) -> Path:
    """
    Save data to a JSON file.

    Args:
        data: Data to serialize (dict, list, or any object with ``to_dict``)
        output_path: Path to save the JSON file
        indent: Indentation level for pretty printing

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', encoding='utf-8') as f:
        f.write(to_json(data, indent=indent))

    logger.debug(f"Saved JSON: {output_path}")
    return output_path
