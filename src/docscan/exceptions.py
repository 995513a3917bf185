# docscan/exceptions.py
class DocScanError(Exception):
    """Base exception for the docscan package."""
    pass

class ImageProcessingException(DocScanError):
    """Raised when image bytes cannot be decoded or processed."""
    pass

class PdfGenerationError(DocScanError):
    """Raised when a PDF cannot be assembled from the supplied pages."""
    pass

class StorageError(DocScanError):
    """Raised when output files cannot be written."""
    pass
