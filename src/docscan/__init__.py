"""
Document Scanner
================

Turns photographs of paper documents into clean images and PDFs.

Main components:
- Image processing (perspective correction, grayscale, contrast, resolution policy)
- Interactive editing (rotation, crop, colour filters)
- Document boundary detection and quality analysis
- Multi-page scan sessions
- PDF assembly and storage
"""

__version__ = "1.0.0"
__author__ = "Document Scanner Team"
