"""
Multi-page scan session.

A ScanSession accumulates pages until it is finalized into a Document.
Every transition returns a new session; the original is never modified.
"""

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Optional, Sequence, Tuple

from ..config import ProcessingOptions
from .document import Document, DocumentType, Page

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanSession:
    """Ordered, immutable collection of pages being scanned as one document."""
    session_id: str
    document_type: DocumentType
    processing_options: ProcessingOptions = field(default_factory=ProcessingOptions)
    start_time: datetime = field(default_factory=datetime.now)
    custom_filename: Optional[str] = None
    pages: Tuple[Page, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "pages", tuple(self.pages))

    @classmethod
    def start(
        cls,
        document_type: DocumentType,
        processing_options: Optional[ProcessingOptions] = None,
        custom_filename: Optional[str] = None
    ) -> "ScanSession":
        """Begin an empty session with a fresh id."""
        session = cls(
            session_id=str(uuid.uuid4()),
            document_type=document_type,
            processing_options=processing_options or ProcessingOptions(),
            custom_filename=custom_filename,
        )
        logger.info(f"Started {document_type.value} session {session.session_id}")
        return session

    # ========================================================================
    # Transitions
    # ========================================================================

    def add_page(self, page: Page) -> "ScanSession":
        return replace(self, pages=self.pages + (page,))

    def remove_page(self, page_id: str) -> "ScanSession":
        """Remove the first page with ``page_id``; unknown ids are a no-op."""
        for index, page in enumerate(self.pages):
            if page.id == page_id:
                return replace(self, pages=self.pages[:index] + self.pages[index + 1:])
        logger.debug(f"remove_page: no page with id {page_id}")
        return self

    def reorder_pages(self, new_order: Sequence[Page]) -> "ScanSession":
        """Replace the page list with ``new_order`` as given."""
        return replace(self, pages=tuple(new_order))

    def replace_page(self, page: Page) -> "ScanSession":
        """Swap in an updated page with the same id."""
        return replace(self, pages=tuple(page if p.id == page.id else p for p in self.pages))

    # ========================================================================
    # Queries
    # ========================================================================

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def is_empty(self) -> bool:
        return not self.pages

    @property
    def is_ready_for_finalization(self) -> bool:
        return self.page_count >= 1

    @property
    def next_page_number(self) -> int:
        return self.page_count + 1

    def summary(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "documentType": self.document_type.value,
            "pageCount": self.page_count,
            "startTime": self.start_time.isoformat(),
            "isReadyForFinalization": self.is_ready_for_finalization,
            "customFilename": self.custom_filename,
        }

    # ========================================================================
    # Finalization
    # ========================================================================

    def to_scanned_document(self) -> Document:
        """Build the finished Document. The session itself is unchanged."""
        return Document(
            id=self.session_id,
            type=self.document_type,
            original_path=self.pages[0].original_path if self.pages else "",
            scan_time=self.start_time,
            processing_options=self.processing_options,
            pages=self.pages,
            is_multi_page=self.page_count > 1,
            metadata={
                "pageCount": self.page_count,
                "sessionStartTime": self.start_time.isoformat(),
                "customFilename": self.custom_filename,
            },
        )

    finalize = to_scanned_document
