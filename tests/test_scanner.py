"""
Tests for the scanner service.
"""

import asyncio

import pytest
import numpy as np
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


def _encode(image, ext=".jpg"):
    import cv2

    ok, buf = cv2.imencode(ext, image)
    assert ok
    return buf.tobytes()


@pytest.fixture
def config(tmp_path):
    from docscan.config import ScannerConfig

    config = ScannerConfig(max_workers=2)
    config.storage.output_dir = tmp_path / "scans"
    return config


@pytest.fixture
def scanner(config):
    from docscan.scanner import DocumentScanner

    with DocumentScanner(config) as scanner:
        yield scanner


@pytest.fixture
def photo():
    img = np.full((600, 800, 3), 30, dtype=np.uint8)
    img[80:520, 100:700] = 235
    img[200:215, 200:600] = 20
    return _encode(img)


class TestImport:
    """Test single-image import and finalization."""

    def test_import_success(self, scanner, photo, config):
        from docscan.utils.document import DocumentType, ScanResultType

        result = scanner.import_image(photo, DocumentType.RECEIPT, original_path="/cam/1.jpg")

        assert result.success
        assert result.type is ScanResultType.IMPORT
        document = result.document
        assert document.processed_image_data[:2] == b"\xff\xd8"
        assert document.pdf_data.startswith(b"%PDF")
        assert document.metadata["finalized"] is True
        assert document.metadata["pdfSize"] == len(document.pdf_data)
        assert document.metadata["externalPath"] == str(config.storage.output_dir)
        assert Path(document.pdf_path).exists()
        assert document.processed_path is None

    def test_import_saves_image_when_requested(self, scanner, photo):
        from docscan.config import ProcessingOptions
        from docscan.utils.document import DocumentType

        options = ProcessingOptions(save_image_file=True, generate_pdf=False, custom_filename="kept")
        result = scanner.import_image(photo, DocumentType.DOCUMENT, options)

        assert result.success
        assert Path(result.document.processed_path).name == "kept.jpg"
        assert result.document.pdf_path is None
        assert result.document.metadata["pdfSize"] is None

    def test_import_garbage_is_failure(self, scanner):
        from docscan.utils.document import DocumentType

        result = scanner.import_image(b"not an image", DocumentType.RECEIPT)

        assert not result.success
        assert result.document is None
        assert "Failed to import document" in result.error

    def test_finalize_existing_pdf_not_regenerated(self, scanner, photo):
        from docscan.utils.document import Document, DocumentType

        document = Document.create(DocumentType.MANUAL, raw_image_data=photo).with_pdf(pdf_data=b"%PDF-existing")
        result = scanner.finalize_scan_result(document, "manual_2024")

        assert result.success
        assert result.document.pdf_data == b"%PDF-existing"
        assert Path(result.document.pdf_path).name == "manual_2024.pdf"

    def test_finalize_without_image_is_failure(self, scanner):
        from docscan.utils.document import Document, DocumentType

        result = scanner.finalize_scan_result(Document.create(DocumentType.MANUAL))

        assert not result.success
        assert result.error.startswith("Failed to finalize scan result")

    def test_edit_document(self, scanner, photo):
        from docscan.config import EditingOptions, ColorFilter
        from docscan.utils.document import Document, DocumentType

        document = Document.create(DocumentType.DOCUMENT, raw_image_data=photo)
        edited = scanner.edit_document(document, EditingOptions(rotation_degrees=270,
                                                                color_filter=ColorFilter.BLACK_AND_WHITE))

        assert edited.processed_image_data[:2] == b"\xff\xd8"
        assert edited.metadata["rotation"] == 270
        assert edited.metadata["colorFilter"] == "blackAndWhite"

    def test_uses_given_processor(self, config, photo):
        from docscan.processor import ImageProcessor
        from docscan.scanner import DocumentScanner
        from docscan.utils.document import DocumentType

        processor = ImageProcessor.from_config(config)
        with DocumentScanner(config, processor=processor) as scanner:
            assert scanner.processor is processor
            assert scanner.import_image(photo, DocumentType.RECEIPT).success
            assert len(processor.edge_cache) == 1

    def test_cancelled(self, scanner):
        from docscan.utils.document import ScanResultType

        result = scanner.cancelled(ScanResultType.SCAN)
        assert result.is_cancelled


class TestSessions:
    """Test multi-page session finalization."""

    def test_finalize_empty_session_fails(self, scanner):
        from docscan.utils.document import DocumentType

        result = scanner.finalize_session(scanner.start_session(DocumentType.MANUAL))
        assert not result.success

    def test_finalize_multi_page(self, scanner, photo):
        from docscan.utils.document import DocumentType

        session = scanner.start_session(DocumentType.MANUAL, custom_filename="blender")
        session = scanner.add_page(session, photo, "/cam/1.jpg")
        session = scanner.add_page(session, photo, "/cam/2.jpg")

        assert [p.page_number for p in session.pages] == [1, 2]

        result = scanner.finalize_session(session)

        assert result.success
        document = result.document
        assert document.id == session.session_id
        assert document.is_multi_page
        assert all(p.processed_image_data for p in document.pages)
        assert Path(document.pdf_path).name == "blender.pdf"
        assert document.metadata["pageCount"] == 2

    def test_process_session_pages(self, scanner, photo):
        from docscan.utils.document import DocumentType

        session = scanner.add_page(scanner.start_session(DocumentType.DOCUMENT), photo)
        processed = scanner.process_session_pages(session)

        assert processed.pages[0].processed_image_data is not None
        assert session.pages[0].processed_image_data is None

    def test_bad_page_fails_session(self, scanner, photo):
        from docscan.utils.document import DocumentType

        session = scanner.start_session(DocumentType.DOCUMENT)
        session = scanner.add_page(session, photo)
        session = scanner.add_page(session, b"junk")

        result = scanner.finalize_session(session)
        assert not result.success
        assert "Failed to process session pages" in result.error


class TestAsyncScanner:
    """Test async service variants."""

    def test_finalize_session_async(self, scanner, photo):
        from docscan.utils.document import DocumentType

        session = scanner.start_session(DocumentType.RECEIPT)
        for _ in range(3):
            session = scanner.add_page(session, photo)

        result = asyncio.run(scanner.finalize_session_async(session))

        assert result.success
        assert result.document.page_count == 3

    def test_import_image_async(self, scanner, photo):
        from docscan.utils.document import DocumentType

        result = asyncio.run(scanner.import_image_async(photo, DocumentType.DOCUMENT))
        assert result.success
