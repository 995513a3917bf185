"""
Document model: pages, scanned documents and scan results.

All records are immutable; updates go through ``with_*`` builders that
return new values. ``to_dict`` output never contains binary payloads.
"""

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..config import DocumentFormat, ProcessingOptions, parse_tag

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "User cancelled operation"


class DocumentType(Enum):
    """Kinds of scanned document."""
    RECEIPT = "receipt"
    MANUAL = "manual"
    DOCUMENT = "document"
    OTHER = "other"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @property
    def filename_suffix(self) -> str:
        return "Scan" if self is DocumentType.OTHER else self.display_name

    @property
    def default_document_format(self) -> DocumentFormat:
        if self is DocumentType.RECEIPT:
            return DocumentFormat.RECEIPT
        if self in (DocumentType.MANUAL, DocumentType.DOCUMENT):
            return DocumentFormat.ISO_A
        return DocumentFormat.AUTO


class ScanResultType(Enum):
    """How a scan result was obtained."""
    SCAN = "scan"
    IMPORT = "import"
    DOWNLOAD = "download"
    QR_SCAN = "qrScan"


class QRContentType(Enum):
    """Classification of decoded QR payloads."""
    URL = "url"
    PDF_LINK = "pdfLink"
    MANUAL_LINK = "manualLink"
    TEXT = "text"
    UNKNOWN = "unknown"


def _parse_time(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now()
    return datetime.fromisoformat(value)


def _new_id() -> str:
    return str(uuid.uuid4())


# ============================================================================
# Page
# ============================================================================

@dataclass(frozen=True)
class Page:
    """A single captured page of a (possibly multi-page) document."""
    id: str
    page_number: int
    original_path: str
    scan_time: datetime = field(default_factory=datetime.now)
    processed_path: Optional[str] = None
    raw_image_data: Optional[bytes] = field(default=None, repr=False)
    processed_image_data: Optional[bytes] = field(default=None, repr=False)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        page_number: int,
        raw_image_data: Optional[bytes] = None,
        original_path: str = "",
        metadata: Optional[Dict[str, Any]] = None
    ) -> "Page":
        """New page with a fresh id and the current time."""
        return cls(
            id=_new_id(),
            page_number=page_number,
            original_path=original_path,
            raw_image_data=raw_image_data,
            metadata=dict(metadata or {}),
        )

    @property
    def image_data(self) -> Optional[bytes]:
        """Best available payload: processed, else raw."""
        return self.processed_image_data or self.raw_image_data

    def with_processed(
        self,
        path: Optional[str] = None,
        image_data: Optional[bytes] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> "Page":
        """Copy with processed output attached; metadata is merged."""
        return replace(
            self,
            processed_path=path if path is not None else self.processed_path,
            processed_image_data=image_data if image_data is not None else self.processed_image_data,
            metadata={**self.metadata, **(metadata or {})},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "pageNumber": self.page_number,
            "originalPath": self.original_path,
            "processedPath": self.processed_path,
            "scanTime": self.scan_time.isoformat(),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Page":
        return cls(
            id=data.get("id") or _new_id(),
            page_number=int(data.get("pageNumber", 1)),
            original_path=data.get("originalPath", ""),
            processed_path=data.get("processedPath"),
            scan_time=_parse_time(data.get("scanTime")),
            metadata=dict(data.get("metadata") or {}),
        )


# ============================================================================
# Document
# ============================================================================

@dataclass(frozen=True)
class Document:
    """
    A scanned document.

    When ``pages`` is non-empty, ``is_multi_page`` always equals
    ``len(pages) > 1``; the flag passed in is ignored.
    """
    id: str
    type: DocumentType
    original_path: str
    scan_time: datetime = field(default_factory=datetime.now)
    processing_options: ProcessingOptions = field(default_factory=ProcessingOptions)
    processed_path: Optional[str] = None
    pdf_path: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    raw_image_data: Optional[bytes] = field(default=None, repr=False)
    processed_image_data: Optional[bytes] = field(default=None, repr=False)
    pdf_data: Optional[bytes] = field(default=None, repr=False)
    pages: Tuple[Page, ...] = ()
    is_multi_page: bool = False

    def __post_init__(self):
        pages = tuple(self.pages or ())
        object.__setattr__(self, "pages", pages)
        if pages:
            object.__setattr__(self, "is_multi_page", len(pages) > 1)

    @classmethod
    def create(
        cls,
        document_type: DocumentType,
        raw_image_data: Optional[bytes] = None,
        processing_options: Optional[ProcessingOptions] = None,
        original_path: str = "",
        metadata: Optional[Dict[str, Any]] = None
    ) -> "Document":
        """New single-image document with a fresh id."""
        return cls(
            id=_new_id(),
            type=document_type,
            original_path=original_path,
            processing_options=processing_options or ProcessingOptions(),
            raw_image_data=raw_image_data,
            metadata=dict(metadata or {}),
        )

    @property
    def page_count(self) -> int:
        return len(self.pages) if self.pages else 1

    @property
    def image_data(self) -> Optional[bytes]:
        return self.processed_image_data or self.raw_image_data

    def image_pages(self) -> List[bytes]:
        """Image payloads in page order (processed, else raw)."""
        if self.pages:
            return [p.image_data for p in self.pages if p.image_data]
        return [self.image_data] if self.image_data else []

    def with_processed(
        self,
        path: Optional[str] = None,
        image_data: Optional[bytes] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> "Document":
        return replace(
            self,
            processed_path=path if path is not None else self.processed_path,
            processed_image_data=image_data if image_data is not None else self.processed_image_data,
            metadata={**self.metadata, **(metadata or {})},
        )

    def with_pdf(self, path: Optional[str] = None, pdf_data: Optional[bytes] = None) -> "Document":
        return replace(
            self,
            pdf_path=path if path is not None else self.pdf_path,
            pdf_data=pdf_data if pdf_data is not None else self.pdf_data,
        )

    def with_metadata(self, **entries: Any) -> "Document":
        return replace(self, metadata={**self.metadata, **entries})

    def with_changes(self, **changes: Any) -> "Document":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "originalPath": self.original_path,
            "processedPath": self.processed_path,
            "pdfPath": self.pdf_path,
            "scanTime": self.scan_time.isoformat(),
            "processingOptions": self.processing_options.to_dict(),
            "metadata": dict(self.metadata),
            "pages": [p.to_dict() for p in self.pages],
            "isMultiPage": self.is_multi_page,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Document":
        return cls(
            id=data.get("id") or _new_id(),
            type=parse_tag(DocumentType, data.get("type"), DocumentType.OTHER),
            original_path=data.get("originalPath", ""),
            processed_path=data.get("processedPath"),
            pdf_path=data.get("pdfPath"),
            scan_time=_parse_time(data.get("scanTime")),
            processing_options=ProcessingOptions.from_dict(data.get("processingOptions")),
            metadata=dict(data.get("metadata") or {}),
            pages=tuple(Page.from_dict(p) for p in data.get("pages") or []),
            is_multi_page=bool(data.get("isMultiPage", False)),
        )


# ============================================================================
# Results
# ============================================================================

@dataclass(frozen=True)
class ScanResult:
    """Outcome of a scan, import or download. Callers branch on ``success``."""
    success: bool
    document: Optional[Document] = None
    error: Optional[str] = None
    type: ScanResultType = ScanResultType.SCAN
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.success != (self.document is not None):
            raise ValueError("success must be True exactly when a document is present")
        if not self.success and not self.error:
            raise ValueError("a failed result needs an error message")

    @classmethod
    def from_document(
        cls,
        document: Document,
        result_type: ScanResultType = ScanResultType.SCAN,
        metadata: Optional[Dict[str, Any]] = None
    ) -> "ScanResult":
        return cls(success=True, document=document, type=result_type, metadata=dict(metadata or {}))

    @classmethod
    def from_error(
        cls,
        error: str,
        result_type: ScanResultType = ScanResultType.SCAN,
        metadata: Optional[Dict[str, Any]] = None
    ) -> "ScanResult":
        return cls(success=False, error=error or "Unknown error", type=result_type,
                   metadata=dict(metadata or {}))

    @classmethod
    def cancelled(cls, result_type: ScanResultType = ScanResultType.SCAN) -> "ScanResult":
        return cls.from_error(CANCELLED_MESSAGE, result_type)

    @property
    def is_cancelled(self) -> bool:
        return not self.success and self.error == CANCELLED_MESSAGE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "document": self.document.to_dict() if self.document else None,
            "error": self.error,
            "type": self.type.value,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScanResult":
        document = Document.from_dict(data["document"]) if data.get("document") else None
        return cls(
            success=document is not None,
            document=document,
            error=data.get("error") or (None if document else "Unknown error"),
            type=parse_tag(ScanResultType, data.get("type"), ScanResultType.SCAN),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class QRScanResult(ScanResult):
    """Scan result for a QR code; the payload classification rides along."""
    type: ScanResultType = ScanResultType.QR_SCAN
    qr_data: Optional[str] = None
    content_type: QRContentType = QRContentType.UNKNOWN

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["qrData"] = self.qr_data
        data["contentType"] = self.content_type.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QRScanResult":
        base = ScanResult.from_dict(data)
        return cls(
            success=base.success,
            document=base.document,
            error=base.error,
            metadata=base.metadata,
            qr_data=data.get("qrData"),
            content_type=parse_tag(QRContentType, data.get("contentType"), QRContentType.UNKNOWN),
        )
