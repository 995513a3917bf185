"""
PDF export for scanned documents.

Provides:
- Single-page and multi-page PDF assembly (fpdf2)
- Page sizes per document format with a 5 pt margin
- Resolution-aware image embedding
- PDF metadata (title, author, subject, keywords, creator)
"""

import io
import logging
import math
import warnings
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..config import DocumentFormat, ImageConfig, PdfConfig, PdfResolution, ProcessingOptions
from ..exceptions import ImageProcessingException, PdfGenerationError
from .document import Document, DocumentType, Page
from .images import decode_image, encode_image, limit_long_edge, max_long_edge_for

logger = logging.getLogger(__name__)

POINTS_PER_MM = 72.0 / 25.4
PAGE_NUMBER_GREY = (97, 97, 97)


def page_size_points(document_format: DocumentFormat) -> Tuple[float, float]:
    """PDF page (width, height) in points."""
    width_mm, height_mm = document_format.page_size_mm
    return (width_mm * POINTS_PER_MM, height_mm * POINTS_PER_MM)


def image_box(
    page_width: float,
    page_height: float,
    document_format: Optional[DocumentFormat],
    margin: float = 5.0
) -> Tuple[float, float]:
    """
    Maximum (width, height) the page image may occupy.

    Args:
        page_width: Page width in points
        page_height: Page height in points
        document_format: Format controlling the box aspect; None or AUTO uses the full usable area
        margin: Margin on each side in points

    Returns:
        Box dimensions in points
    """
    usable_w = page_width - 2 * margin
    usable_h = page_height - 2 * margin

    if document_format in (None, DocumentFormat.AUTO, DocumentFormat.ISO_A):
        return (usable_w, usable_h)
    if document_format is DocumentFormat.US_LETTER:
        return (usable_w, min(usable_h, usable_w * 11.0 / 8.5))
    if document_format is DocumentFormat.US_LEGAL:
        return (usable_w, min(usable_h, usable_w * 14.0 / 8.5))
    if document_format is DocumentFormat.SQUARE:
        side = min(usable_w, usable_h)
        return (side, side)
    if document_format is DocumentFormat.RECEIPT:
        return (min(usable_w, usable_h * 3.0 / 11.0), usable_h)
    if document_format is DocumentFormat.BUSINESS_CARD:
        return (usable_w, min(usable_h, usable_w * 2.0 / 3.5))
    return (usable_w, usable_h)


def _type_name(document_type: DocumentType) -> str:
    return "Document" if document_type is DocumentType.OTHER else document_type.display_name


class PdfGenerator:
    """Assemble page images into PDF documents."""

    def __init__(self, config: Optional[PdfConfig] = None, image_config: Optional[ImageConfig] = None):
        self.config = config or PdfConfig()
        self.image_config = image_config or ImageConfig()

    # ========================================================================
    # Public API
    # ========================================================================

    def generate_pdf(
        self,
        image_data: bytes,
        document_type: DocumentType,
        resolution: PdfResolution = PdfResolution.QUALITY,
        document_format: Optional[DocumentFormat] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> bytes:
        """
        Build a single-page PDF.

        Raises:
            PdfGenerationError: If the image cannot be decoded
        """
        return self._build([image_data], document_type, resolution, document_format,
                           metadata, number_pages=False)

    def generate_multi_page_pdf(
        self,
        image_data_list: Sequence[bytes],
        document_type: DocumentType,
        resolution: PdfResolution = PdfResolution.QUALITY,
        document_format: Optional[DocumentFormat] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> bytes:
        """
        Build a PDF with one page per image and an "i/n" footer on each page.

        Raises:
            PdfGenerationError: If the list is empty or any image cannot be decoded
        """
        return self._build(list(image_data_list), document_type, resolution, document_format,
                           metadata, number_pages=True)

    def generate_document_pdf(self, document: Document) -> bytes:
        """PDF for a scanned document, using its pages in list order when present."""
        images = document.image_pages()
        if not images:
            raise PdfGenerationError(f"Document {document.id} has no image data")

        options = document.processing_options
        metadata = dict(document.metadata)
        if options.custom_filename:
            metadata["customFilename"] = options.custom_filename
        if options.document_format is not None:
            metadata.setdefault("documentFormat", options.document_format.value)

        if len(images) > 1:
            return self.generate_multi_page_pdf(
                images, document.type, options.pdf_resolution, options.document_format, metadata
            )
        return self.generate_pdf(
            images[0], document.type, options.pdf_resolution, options.document_format, metadata
        )

    def generate_pages_pdf(
        self,
        pages: Sequence[Page],
        options: ProcessingOptions,
        document_type: DocumentType = DocumentType.DOCUMENT,
        metadata: Optional[Dict[str, Any]] = None
    ) -> bytes:
        """Multi-page PDF from session pages (processed payload, else raw)."""
        images = [p.image_data for p in pages if p.image_data]
        if not images:
            raise PdfGenerationError("No page image data to assemble")
        metadata = dict(metadata or {})
        if options.custom_filename:
            metadata.setdefault("customFilename", options.custom_filename)
        return self.generate_multi_page_pdf(
            images, document_type, options.pdf_resolution, options.document_format, metadata
        )

    def generate_receipt_pdf(self, image_data: bytes, metadata: Optional[Dict[str, Any]] = None) -> bytes:
        warnings.warn(
            "generate_receipt_pdf is deprecated, use generate_pdf",
            DeprecationWarning,
            stacklevel=2
        )
        return self.generate_pdf(image_data, DocumentType.RECEIPT, PdfResolution.QUALITY,
                                 DocumentFormat.RECEIPT, metadata)

    def generate_manual_pdf(self, image_data: bytes, metadata: Optional[Dict[str, Any]] = None) -> bytes:
        warnings.warn(
            "generate_manual_pdf is deprecated, use generate_pdf",
            DeprecationWarning,
            stacklevel=2
        )
        return self.generate_pdf(image_data, DocumentType.MANUAL, PdfResolution.QUALITY,
                                 DocumentFormat.ISO_A, metadata)

    # ========================================================================
    # Metadata
    # ========================================================================

    def prepare_metadata(
        self,
        document_type: DocumentType,
        metadata: Optional[Dict[str, Any]],
        page_count: int,
        now: Optional[datetime] = None
    ) -> Dict[str, str]:
        """Title, author, subject, keywords and creator for the PDF info dict."""
        metadata = metadata or {}
        now = now or datetime.now()
        type_name = _type_name(document_type)

        title = metadata.get("customFilename") or f"{type_name} - {now:%Y-%m-%d}"
        author = metadata.get("author") or metadata.get("appName") or self.config.default_author
        subject = metadata.get("subject")
        if not subject:
            subject = f"{type_name} ({page_count} pages)" if page_count > 1 else type_name

        keywords = [type_name, "scanned"]
        if metadata.get("source"):
            keywords.append(str(metadata["source"]))
        custom = metadata.get("keywords")
        if isinstance(custom, str):
            keywords.append(custom)
        elif isinstance(custom, (list, tuple)):
            keywords.extend(str(k) for k in custom)
        if metadata.get("documentFormat") is not None:
            keywords.append(str(metadata["documentFormat"]))

        return {
            "title": str(title),
            "author": str(author),
            "creator": str(author),
            "subject": str(subject).strip(),
            "keywords": ", ".join(keywords),
        }

    # ========================================================================
    # Assembly
    # ========================================================================

    def _build(
        self,
        images: List[bytes],
        document_type: DocumentType,
        resolution: PdfResolution,
        document_format: Optional[DocumentFormat],
        metadata: Optional[Dict[str, Any]],
        number_pages: bool
    ) -> bytes:
        from fpdf import FPDF

        if not images:
            raise PdfGenerationError("Cannot generate a PDF without images")

        page_format = document_format or document_type.default_document_format
        page_w, page_h = page_size_points(page_format)
        margin = self.config.margin_pt
        box_w, box_h = image_box(page_w, page_h, document_format, margin)
        fill = document_format not in (None, DocumentFormat.AUTO)

        info = self.prepare_metadata(document_type, metadata, len(images))
        pdf = FPDF(unit="pt", format=(page_w, page_h))
        pdf.set_auto_page_break(auto=False)
        pdf.set_margins(margin, margin, margin)
        pdf.set_title(info["title"])
        pdf.set_author(info["author"])
        pdf.set_creator(info["creator"])
        pdf.set_subject(info["subject"])
        pdf.set_keywords(info["keywords"])

        total = len(images)
        for index, image_data in enumerate(images, start=1):
            try:
                image = decode_image(image_data)
            except ImageProcessingException as e:
                raise PdfGenerationError(f"Failed to generate PDF: page {index}: {e}") from e

            img_h, img_w = image.shape[:2]
            if fill:
                draw_w, draw_h = box_w, box_h
            else:
                scale = min(box_w / img_w, box_h / img_h)
                draw_w, draw_h = img_w * scale, img_h * scale

            embedded = self._resample(image, resolution, draw_w, draw_h)

            pdf.add_page()
            x = (page_w - draw_w) / 2
            y = (page_h - draw_h) / 2
            pdf.image(io.BytesIO(embedded), x=x, y=y, w=draw_w, h=draw_h)

            if number_pages:
                self._draw_page_number(pdf, f"{index}/{total}", page_w, page_h)

        logger.info(
            f"Generated {total}-page PDF ({page_format.value}, {resolution.value})"
        )
        return bytes(pdf.output())

    def _resample(self, image: np.ndarray, resolution: PdfResolution, draw_w: float, draw_h: float) -> bytes:
        """Apply the long-edge policy and the DPI cap, then encode as JPEG."""
        cap = max_long_edge_for(resolution, self.image_config)
        if cap is not None:
            image = limit_long_edge(image, cap)

        dpi = None
        if resolution is PdfResolution.QUALITY:
            dpi = self.config.quality_dpi
        elif resolution is PdfResolution.SIZE:
            dpi = self.config.size_dpi

        if dpi:
            max_w = math.ceil(draw_w / 72.0 * dpi)
            max_h = math.ceil(draw_h / 72.0 * dpi)
            h, w = image.shape[:2]
            scale = min(max_w / w, max_h / h)
            if scale < 1.0:
                image = limit_long_edge(image, max(1, int(max(h, w) * scale)))

        return encode_image(image, quality=self.config.embed_quality / 100.0)

    def _draw_page_number(self, pdf, label: str, page_w: float, page_h: float) -> None:
        offset = self.config.margin_pt + 5
        pdf.set_font("Helvetica", size=self.config.page_number_font_size)
        pdf.set_text_color(*PAGE_NUMBER_GREY)
        text_w = pdf.get_string_width(label)
        pdf.text(page_w - offset - text_w, page_h - offset, label)
