"""
Tests for multi-page scan sessions.
"""

from datetime import datetime

import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


@pytest.fixture
def session():
    from docscan.utils.document import DocumentType
    from docscan.utils.session import ScanSession

    return ScanSession(
        session_id="session-1",
        document_type=DocumentType.RECEIPT,
        start_time=datetime(2024, 1, 15, 10, 30, 0),
        custom_filename="receipts",
    )


def _page(page_id, number):
    from docscan.utils.document import Page

    return Page(id=page_id, page_number=number, original_path=f"/tmp/{page_id}.jpg")


class TestScanSession:
    """Test session transitions and finalization."""

    def test_empty_session(self, session):
        assert session.page_count == 0
        assert session.is_empty
        assert not session.is_ready_for_finalization

    def test_add_page_is_immutable(self, session):
        updated = session.add_page(_page("a", 1))

        assert session.page_count == 0
        assert updated.page_count == 1
        assert updated.is_ready_for_finalization
        assert updated.next_page_number == 2

    def test_remove_page(self, session):
        s = session.add_page(_page("a", 1)).add_page(_page("b", 2))

        assert [p.id for p in s.remove_page("a").pages] == ["b"]
        assert s.remove_page("missing") == s

    def test_remove_first_match_only(self, session):
        s = session.add_page(_page("a", 1)).add_page(_page("a", 2))
        remaining = s.remove_page("a").pages

        assert len(remaining) == 1
        assert remaining[0].page_number == 2

    def test_reorder_pages_verbatim(self, session):
        a, b = _page("a", 1), _page("b", 2)
        s = session.add_page(a).add_page(b)

        assert [p.id for p in s.reorder_pages([b, a]).pages] == ["b", "a"]
        # Not validated against the current pages
        assert [p.id for p in s.reorder_pages([b, b, b]).pages] == ["b", "b", "b"]

    def test_summary(self, session):
        summary = session.summary()

        assert summary["sessionId"] == "session-1"
        assert summary["documentType"] == "receipt"
        assert summary["pageCount"] == 0
        assert summary["isReadyForFinalization"] is False
        assert summary["customFilename"] == "receipts"

    def test_to_scanned_document_single(self, session):
        s = session.add_page(_page("a", 1))
        document = s.to_scanned_document()

        assert document.id == "session-1"
        assert document.is_multi_page is False
        assert document.original_path == "/tmp/a.jpg"
        assert document.scan_time == datetime(2024, 1, 15, 10, 30, 0)
        assert document.metadata["pageCount"] == 1
        assert document.metadata["sessionStartTime"] == "2024-01-15T10:30:00"
        assert document.metadata["customFilename"] == "receipts"

    def test_finalize_multi(self, session):
        from docscan.utils.document import DocumentType

        s = session.add_page(_page("a", 1)).add_page(_page("b", 2))
        document = s.finalize()

        assert document.type is DocumentType.RECEIPT
        assert document.is_multi_page is True
        assert len(document.pages) == 2
        assert s.page_count == 2

    def test_finalize_empty_has_blank_path(self, session):
        assert session.to_scanned_document().original_path == ""

    def test_replace_page(self, session):
        s = session.add_page(_page("a", 1))
        updated = s.replace_page(s.pages[0].with_processed(image_data=b"done"))

        assert updated.pages[0].processed_image_data == b"done"
        assert s.pages[0].processed_image_data is None

    def test_start_generates_id(self):
        from docscan.utils.document import DocumentType
        from docscan.utils.session import ScanSession

        first = ScanSession.start(DocumentType.MANUAL)
        second = ScanSession.start(DocumentType.MANUAL)
        assert first.session_id != second.session_id
