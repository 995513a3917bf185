#!/usr/bin/env python
"""
Command-line interface for the document scanner.

Usage:
    docscan scan <image> [<image> ...] --output <dir> [options]
    docscan edit <image> --output <file> [--rotate 90] [--filter blackAndWhite]
    docscan edges <image>
    docscan analyze <image>

Examples:
    # Scan a receipt into a PDF
    docscan scan receipt.jpg --type receipt --output ./scans

    # Scan a folder of pages into one multi-page PDF
    docscan scan ./pages --type manual --resolution size --output ./scans

    # Rotate and binarize a photo
    docscan edit photo.png --rotate 90 --filter blackAndWhite --output clean.png
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import (
    ColorFilter,
    DocumentFormat,
    EditingOptions,
    ImageFormat,
    PdfResolution,
    configure_logging,
    corners_from_sequence,
    get_config,
)
from .exceptions import DocScanError
from .processor import ImageProcessor
from .scanner import DocumentScanner, default_options_for
from .utils.document import DocumentType, ScanResultType
from .utils.io import list_images, load_image_bytes, to_json

logger = logging.getLogger("docscan")


def _enum_values(enum_cls) -> List[str]:
    return [member.value for member in enum_cls]


def setup_argparser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="docscan",
        description="Document Scanner - turn photos of paper documents into clean images and PDFs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Scan a receipt:
    docscan scan receipt.jpg --type receipt --output ./scans

  Scan several pages into one PDF:
    docscan scan page1.jpg page2.jpg page3.jpg --filename manual_2024

  Print detected document corners:
    docscan edges photo.jpg
        """
    )

    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    parser.add_argument("--quiet", "-q", action="store_true", help="Suppress non-error output")
    parser.add_argument("--debug", action="store_true", help="Re-raise unexpected errors")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # scan
    scan = subparsers.add_parser("scan", help="Process images into a document (PDF and/or image)")
    scan.add_argument("inputs", nargs="+", help="Image files, or a folder of images")
    scan.add_argument("--output", "-o", default=None,
                      help="Output directory (default: $DOCSCAN_OUTPUT_DIR or ~/Documents/<app>)")
    scan.add_argument("--type", "-t", choices=_enum_values(DocumentType), default="document",
                      help="Document type, selects preset options (default: document)")
    scan.add_argument("--grayscale", dest="grayscale", action="store_true", default=None,
                      help="Convert to grayscale")
    scan.add_argument("--no-grayscale", dest="grayscale", action="store_false",
                      help="Keep colour")
    scan.add_argument("--contrast", dest="contrast", action="store_true", default=None,
                      help="Enhance contrast")
    scan.add_argument("--no-contrast", dest="contrast", action="store_false",
                      help="Skip contrast enhancement")
    scan.add_argument("--no-perspective", action="store_true",
                      help="Skip automatic perspective correction")
    scan.add_argument("--format", "-f", choices=_enum_values(ImageFormat), default=None,
                      help="Processed image codec (default: jpeg)")
    scan.add_argument("--quality", type=float, default=None,
                      help="Compression quality between 0 and 1")
    scan.add_argument("--resolution", choices=_enum_values(PdfResolution), default=None,
                      help="Resolution policy (default: quality)")
    scan.add_argument("--document-format", choices=_enum_values(DocumentFormat), default=None,
                      help="Physical document format (aspect ratio and PDF page size)")
    scan.add_argument("--filename", default=None, help="Custom output filename (no extension)")
    scan.add_argument("--save-image", action="store_true", help="Also save the processed image")
    scan.add_argument("--no-pdf", action="store_true", help="Do not generate a PDF")

    # edit
    edit = subparsers.add_parser("edit", help="Rotate, crop and filter a single image")
    edit.add_argument("input", help="Image file")
    edit.add_argument("--output", "-o", required=True, help="Output image file")
    edit.add_argument("--rotate", type=int, default=0, help="Clockwise rotation in degrees")
    edit.add_argument("--filter", choices=_enum_values(ColorFilter), default="none",
                      help="Colour filter (default: none)")
    edit.add_argument("--crop", default=None,
                      help="Four corners 'x,y;x,y;x,y;x,y' (tl;tr;br;bl) to crop and rectify")
    edit.add_argument("--auto-crop", action="store_true",
                      help="Crop to the detected document boundary")
    edit.add_argument("--document-format", choices=_enum_values(DocumentFormat), default=None,
                      help="Aspect ratio for the cropped output")
    edit.add_argument("--format", "-f", choices=_enum_values(ImageFormat), default=None,
                      help="Output codec (default: same as input)")
    edit.add_argument("--quality", type=float, default=None,
                      help="Compression quality between 0 and 1 (default: 0.9)")

    # edges / analyze
    edges = subparsers.add_parser("edges", help="Print detected document corners as JSON")
    edges.add_argument("input", help="Image file")

    analyze = subparsers.add_parser("analyze", help="Print image quality diagnostics as JSON")
    analyze.add_argument("input", help="Image file")

    return parser


def parse_corners(value: str):
    """Parse 'x,y;x,y;x,y;x,y' into corner tuples."""
    try:
        points = [tuple(float(v) for v in part.split(",")) for part in value.split(";") if part.strip()]
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid corner list {value!r}: {e}") from e
    if any(len(p) != 2 for p in points):
        raise argparse.ArgumentTypeError(f"Each corner needs exactly two coordinates: {value!r}")
    return corners_from_sequence(points)


def collect_inputs(inputs: List[str]) -> List[Path]:
    """Expand folders into their image files, keeping the given order."""
    paths = []
    for item in inputs:
        path = Path(item)
        if path.is_dir():
            paths.extend(list_images(path))
        else:
            paths.append(path)
    return paths


# ============================================================================
# Commands
# ============================================================================

def run_scan(args) -> int:
    config = get_config()
    if args.output:
        config.storage.output_dir = Path(args.output)

    document_type = DocumentType(args.type)
    options = default_options_for(document_type)
    changes = {}
    if args.grayscale is not None:
        changes["convert_to_grayscale"] = args.grayscale
    if args.contrast is not None:
        changes["enhance_contrast"] = args.contrast
    if args.no_perspective:
        changes["auto_correct_perspective"] = False
    if args.format:
        changes["output_format"] = ImageFormat(args.format)
    if args.quality is not None:
        changes["compression_quality"] = args.quality
    if args.resolution:
        changes["pdf_resolution"] = PdfResolution(args.resolution)
    if args.document_format:
        changes["document_format"] = DocumentFormat(args.document_format)
    if args.filename:
        changes["custom_filename"] = args.filename
    if args.save_image:
        changes["save_image_file"] = True
    if args.no_pdf:
        changes["generate_pdf"] = False
    options = options.with_changes(**changes)

    paths = collect_inputs(args.inputs)
    if not paths:
        logger.error("No images to process")
        return 1

    with DocumentScanner(config) as scanner:
        if len(paths) == 1:
            data = load_image_bytes(paths[0])
            result = scanner.import_image(data, document_type, options, str(paths[0]), ScanResultType.IMPORT)
        else:
            session = scanner.start_session(document_type, options, args.filename)
            for path in paths:
                session = scanner.add_page(session, load_image_bytes(path), str(path))
            logger.info(f"Session summary: {session.summary()}")
            result = scanner.finalize_session(session)

    if not result.success:
        logger.error(result.error)
        return 1

    if not args.quiet:
        print(to_json(result.to_dict()))
    return 0


def run_edit(args) -> int:
    data = load_image_bytes(args.input)

    with ImageProcessor.from_config(get_config()) as processor:
        crop = parse_corners(args.crop) if args.crop else None
        if crop is None and args.auto_crop:
            detection = processor.detect_edges(data)
            if detection.is_fallback:
                logger.warning("No document boundary detected, not cropping")
            else:
                crop = detection.corners

        options = EditingOptions(
            rotation_degrees=args.rotate,
            color_filter=ColorFilter(args.filter),
            crop_corners=crop,
            document_format=DocumentFormat(args.document_format) if args.document_format else None,
            output_format=ImageFormat(args.format) if args.format else None,
            compression_quality=args.quality,
        )
        edited = processor.apply_image_editing(data, options)

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(edited)
    logger.info(f"Saved edited image: {output_path}")
    return 0


def run_edges(args) -> int:
    data = load_image_bytes(args.input)
    with ImageProcessor.from_config(get_config()) as processor:
        detection = processor.detect_edges(data)
    print(to_json(detection.to_dict()))
    return 0


def run_analyze(args) -> int:
    data = load_image_bytes(args.input)
    with ImageProcessor.from_config(get_config()) as processor:
        report = processor.analyze_image_quality(data)
    print(to_json(report.to_dict()))
    return 0 if report.ok else 1


COMMANDS = {
    "scan": run_scan,
    "edit": run_edit,
    "edges": run_edges,
    "analyze": run_analyze,
}


def run(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, run the command and return the exit code."""
    parser = setup_argparser()
    args = parser.parse_args(argv)

    level = logging.INFO
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.ERROR
    configure_logging(level)

    try:
        return COMMANDS[args.command](args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except (DocScanError, OSError, ValueError, argparse.ArgumentTypeError) as e:
        logger.error(f"{args.command} failed: {e}")
        if args.debug:
            raise
        return 1


def main():
    """Main entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
