"""
Scanner service.

Wires the image processor, the PDF generator and storage together and
reports every outcome as a ScanResult. Expected failures (undecodable
images, PDF assembly, writing files) never escape as exceptions.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from .config import (
    DOCUMENT_OPTIONS,
    MANUAL_OPTIONS,
    RECEIPT_OPTIONS,
    EditingOptions,
    ProcessingOptions,
    ScannerConfig,
)
from .exceptions import DocScanError
from .processor import ImageProcessingBackend, ImageProcessor
from .utils.document import Document, DocumentType, Page, ScanResult, ScanResultType
from .utils.export import PdfGenerator
from .utils.io import StorageHelper
from .utils.session import ScanSession

logger = logging.getLogger(__name__)


def default_options_for(document_type: DocumentType) -> ProcessingOptions:
    """Preset processing options for a document type."""
    if document_type is DocumentType.RECEIPT:
        return RECEIPT_OPTIONS
    if document_type is DocumentType.MANUAL:
        return MANUAL_OPTIONS
    return DOCUMENT_OPTIONS


class DocumentScanner:
    """
    Document scanning service.

    Args:
        config: Scanner configuration; passed explicitly, never global
        processor: Optional pre-built image processor (shares its edge cache and pool)
    """

    def __init__(self, config: ScannerConfig, processor: Optional[ImageProcessingBackend] = None):
        self.config = config
        self.processor: ImageProcessingBackend = processor or ImageProcessor.from_config(config)
        self.pdf_generator = PdfGenerator(config.pdf, config.image)
        self.storage = StorageHelper(config.storage)

        if config.debug_mode:
            logging.getLogger("docscan").setLevel(logging.DEBUG)

    # ========================================================================
    # Single image
    # ========================================================================

    def import_image(
        self,
        image_data: bytes,
        document_type: DocumentType,
        options: Optional[ProcessingOptions] = None,
        original_path: str = "",
        result_type: ScanResultType = ScanResultType.IMPORT
    ) -> ScanResult:
        """Process an image, build a document and finalize it."""
        options = options or default_options_for(document_type)
        try:
            processed = self.processor.process_image(image_data, options)
        except DocScanError as e:
            logger.error(f"Import failed: {e}")
            return ScanResult.from_error(f"Failed to import document: {e}", result_type)

        document = Document.create(
            document_type,
            raw_image_data=image_data,
            processing_options=options,
            original_path=original_path,
            metadata={"source": result_type.value, "originalSize": len(image_data)},
        ).with_processed(image_data=processed, metadata={"processedSize": len(processed)})

        return self.finalize_scan_result(document, options.custom_filename, result_type)

    def edit_document(self, document: Document, editing_options: EditingOptions) -> Document:
        """
        Apply interactive edits to a document's raw image.

        Raises:
            ImageProcessingException: If the document image cannot be decoded
        """
        source = document.raw_image_data or document.processed_image_data
        if source is None:
            raise ValueError(f"Document {document.id} has no image data to edit")
        edited = self.processor.apply_image_editing(source, editing_options)
        return document.with_processed(
            image_data=edited,
            metadata={
                "edited": True,
                "rotation": editing_options.normalized_rotation,
                "colorFilter": editing_options.color_filter.value,
            },
        )

    def finalize_scan_result(
        self,
        document: Document,
        custom_filename: Optional[str] = None,
        result_type: ScanResultType = ScanResultType.SCAN
    ) -> ScanResult:
        """
        Generate the PDF if requested and missing, then write outputs.

        Metadata gains ``finalized``, ``finalizedAt``, ``pdfSize``,
        ``savedAt`` and ``externalPath``.
        """
        try:
            pdf_data = document.pdf_data
            if pdf_data is None and document.processing_options.generate_pdf:
                pdf_data = self.pdf_generator.generate_document_pdf(document)

            document = document.with_pdf(pdf_data=pdf_data).with_metadata(
                finalized=True,
                finalizedAt=datetime.now().isoformat(),
                pdfSize=len(pdf_data) if pdf_data is not None else None,
            )
            document = self._save(document, custom_filename)
        except DocScanError as e:
            logger.error(f"Finalization failed: {e}")
            return ScanResult.from_error(f"Failed to finalize scan result: {e}", result_type)

        logger.info(f"Finalized document {document.id}")
        return ScanResult.from_document(document, result_type)

    def _save(self, document: Document, custom_filename: Optional[str]) -> Document:
        options = document.processing_options
        timestamp = datetime.now()
        directory = self.storage.get_output_directory()
        filename = self.storage.generate_filename(
            document.type,
            timestamp,
            custom_filename or options.custom_filename,
            document.metadata,
        )

        image_data = None
        if options.save_image_file and document.processed_image_data is not None:
            image_data = document.processed_image_data

        paths = self.storage.save_files(
            filename,
            image_data=image_data,
            pdf_data=document.pdf_data,
            directory=directory,
            image_format=options.output_format,
        )

        updated = document.with_processed(
            path=str(paths["image"]) if "image" in paths else None,
            metadata={"savedAt": timestamp.isoformat(), "externalPath": str(directory)},
        )
        if "pdf" in paths:
            updated = updated.with_pdf(path=str(paths["pdf"]))
        return updated

    # ========================================================================
    # Multi-page sessions
    # ========================================================================

    def start_session(
        self,
        document_type: DocumentType,
        options: Optional[ProcessingOptions] = None,
        custom_filename: Optional[str] = None
    ) -> ScanSession:
        return ScanSession.start(document_type, options or default_options_for(document_type), custom_filename)

    def add_page(self, session: ScanSession, image_data: bytes, original_path: str = "") -> ScanSession:
        """Append a raw capture as the next page of the session."""
        page = Page.create(session.next_page_number, raw_image_data=image_data, original_path=original_path)
        return session.add_page(page)

    def process_session_pages(self, session: ScanSession) -> ScanSession:
        """
        Fill in processed bytes for every page that has raw data.

        Raises:
            ImageProcessingException: If a page image cannot be decoded
        """
        for page in session.pages:
            if page.processed_image_data is None and page.raw_image_data is not None:
                processed = self.processor.process_image(page.raw_image_data, session.processing_options)
                session = session.replace_page(self._processed_page(page, processed))
        return session

    @staticmethod
    def _processed_page(page: Page, processed: bytes) -> Page:
        return page.with_processed(
            image_data=processed,
            metadata={"processedAt": datetime.now().isoformat(), "processedSize": len(processed)},
        )

    def finalize_session(self, session: ScanSession) -> ScanResult:
        """Process all pages, assemble the document and finalize it."""
        if not session.is_ready_for_finalization:
            return ScanResult.from_error("Cannot finalize an empty scan session")
        try:
            session = self.process_session_pages(session)
        except DocScanError as e:
            logger.error(f"Session {session.session_id} failed: {e}")
            return ScanResult.from_error(f"Failed to process session pages: {e}")

        logger.info(f"Finalizing session {session.session_id} with {session.page_count} pages")
        return self.finalize_scan_result(session.to_scanned_document(), session.custom_filename)

    def cancelled(self, result_type: ScanResultType = ScanResultType.SCAN) -> ScanResult:
        return ScanResult.cancelled(result_type)

    # ========================================================================
    # Async variants
    # ========================================================================

    async def import_image_async(
        self,
        image_data: bytes,
        document_type: DocumentType,
        options: Optional[ProcessingOptions] = None,
        original_path: str = "",
        result_type: ScanResultType = ScanResultType.IMPORT
    ) -> ScanResult:
        return await self.processor.run_in_executor(
            self.import_image, image_data, document_type, options, original_path, result_type
        )

    async def process_session_pages_async(self, session: ScanSession) -> ScanSession:
        """Process pending pages concurrently on the processor's pool."""
        pending = [
            p for p in session.pages
            if p.processed_image_data is None and p.raw_image_data is not None
        ]
        outputs = await asyncio.gather(*[
            self.processor.process_image_async(p.raw_image_data, session.processing_options)
            for p in pending
        ])
        for page, processed in zip(pending, outputs):
            session = session.replace_page(self._processed_page(page, processed))
        return session

    async def finalize_session_async(self, session: ScanSession) -> ScanResult:
        if not session.is_ready_for_finalization:
            return ScanResult.from_error("Cannot finalize an empty scan session")
        try:
            session = await self.process_session_pages_async(session)
        except DocScanError as e:
            logger.error(f"Session {session.session_id} failed: {e}")
            return ScanResult.from_error(f"Failed to process session pages: {e}")

        return await self.processor.run_in_executor(
            self.finalize_scan_result, session.to_scanned_document(), session.custom_filename
        )

    def close(self) -> None:
        self.processor.close()

    def __enter__(self) -> "DocumentScanner":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
