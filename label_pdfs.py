#!/usr/bin/env python3
"""Merge PDF files and label every page.

The first page of each input gets a title ("<prefix> <n>", n being the
input's position) and every page gets a running page number. Labels can sit
in any corner and optionally on a light gray box.

Usage examples:
  python label_pdfs.py a.pdf b.pdf -o out.pdf -p DOC --page-number-position bottom-right
  python label_pdfs.py -o combined.pdf --background  # labels all PDFs in current dir
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from PyPDF2 import PdfReader, PdfWriter
from reportlab.pdfgen import canvas

from page_layout import (
    AttributionCursor,
    Corner,
    DrawInstruction,
    DrawText,
    FillRect,
    LabelOptions,
    OverlaySpec,
    SourceFile,
    overlay_for_page,
)

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT = "processed_documents.pdf"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


class PdfProcessingError(ValueError):
    """A processing pass failed; no output was written."""


class SourceReadError(PdfProcessingError):
    pass


class MergeError(PdfProcessingError):
    pass


class OutputWriteError(PdfProcessingError):
    pass


def is_pdf_path(name: str) -> bool:
    return name.lower().endswith(".pdf")


def _open_reader(f: str) -> PdfReader:
    path = Path(f)
    if not path.exists() or not path.is_file():
        raise SourceReadError(f"File not found: {f}")
    try:
        reader = PdfReader(str(path))
    except Exception as e:
        raise SourceReadError(f"There was a problem reading the document: {f}: {e}") from e
    if getattr(reader, "is_encrypted", False):
        try:
            # try decrypt with empty password
            decrypted = reader.decrypt("")
        except Exception as e:
            raise SourceReadError(f"Encrypted PDF: {f}") from e
        if not decrypted:
            raise SourceReadError(f"Encrypted PDF: {f}")
    return reader


def load_page_count(f: str) -> int:
    reader = _open_reader(f)
    try:
        return len(reader.pages)
    except Exception as e:
        raise SourceReadError(f"There was a problem reading the document: {f}: {e}") from e


def merge_pdfs(files: Iterable[str], output: str) -> str:
    """Merge the list of PDF filenames into `output`, in order.

    Raises SourceReadError if an input cannot be opened and MergeError if the
    pages cannot be combined or written. Returns the output filename.
    """
    writer = PdfWriter()
    files_list: List[str] = list(files)
    for f in files_list:
        reader = _open_reader(f)
        try:
            for p in reader.pages:
                writer.add_page(p)
        except Exception as e:
            raise MergeError(f"Could not merge {f}: {e}") from e

    try:
        with open(output, "wb") as out_f:
            writer.write(out_f)
    except Exception as e:
        raise MergeError(f"Could not write merged document: {e}") from e
    return output


def page_size(page) -> Tuple[float, float]:
    return float(page.mediabox.width), float(page.mediabox.height)


def _draw(c: canvas.Canvas, op: DrawInstruction) -> None:
    if isinstance(op, FillRect):
        c.setFillColorRGB(*op.rgb)
        c.rect(op.x, op.y, op.width, op.height, stroke=0, fill=1)
    elif isinstance(op, DrawText):
        c.setFillColorRGB(*op.rgb)
        c.setFont(op.font_name, op.font_size)
        c.drawString(op.x, op.y, op.text)
    else:
        raise TypeError(f"Unknown draw instruction: {op!r}")


def render_overlay(specs: Iterable[OverlaySpec], output: str) -> int:
    """Draw one overlay page per spec into `output`. Returns the page count.

    A label that fails to draw is logged and skipped; the rest of the page
    is still rendered.
    """
    c = canvas.Canvas(str(output))
    count = 0
    for spec in specs:
        c.setPageSize((spec.page_width, spec.page_height))
        for placement, ops in spec.instructions_by_placement():
            try:
                for op in ops:
                    _draw(c, op)
            except Exception as e:
                logger.warning("Could not draw %r on overlay page %d: %s", placement.text, count + 1, e)
        c.showPage()
        count += 1
    c.save()
    return count


def composite_overlay(overlay: str, base: str) -> PdfWriter:
    """Stamp each overlay page onto the base page with the same index."""
    base_reader = PdfReader(str(base))
    overlay_reader = PdfReader(str(overlay))
    if len(base_reader.pages) != len(overlay_reader.pages):
        raise MergeError(
            f"Overlay has {len(overlay_reader.pages)} page(s) but the merged document has {len(base_reader.pages)}"
        )
    writer = PdfWriter()
    for page, stamp in zip(base_reader.pages, overlay_reader.pages):
        page.merge_page(stamp)
        writer.add_page(page)
    return writer


def write_output(writer: PdfWriter, output: str) -> str:
    """Write `writer` to `output` without ever leaving a partial file behind."""
    target = Path(output)
    tmp_name: Optional[str] = None
    try:
        with tempfile.NamedTemporaryFile(
            "wb", dir=str(target.parent), prefix=".tmp-", suffix=".pdf", delete=False
        ) as out_f:
            tmp_name = out_f.name
            writer.write(out_f)
        os.replace(tmp_name, str(target))
    except Exception as e:
        if tmp_name and os.path.exists(tmp_name):
            os.remove(tmp_name)
        raise OutputWriteError(f"Could not write {output}: {e}") from e
    return str(target)


def process_pdfs(files: Iterable[str], output: str, options: Optional[LabelOptions] = None) -> str:
    """Merge `files` in order, label every page and save the result to `output`.

    Returns the output filename. Raises a PdfProcessingError subclass on any
    failure, in which case `output` is left untouched.
    """
    options = options or LabelOptions()
    files_list: List[str] = [str(f) for f in files]
    if not files_list:
        raise PdfProcessingError("No input files")

    sources = [SourceFile(f, load_page_count(f)) for f in files_list]
    cursor = AttributionCursor.for_sources(sources)
    if cursor.total_pages == 0:
        raise PdfProcessingError("The input files contain no pages")
    logger.info("Labelling %d file(s), %d page(s) into %s", len(sources), cursor.total_pages, output)

    with tempfile.TemporaryDirectory(prefix="pdfpagemaster-") as tmpdir:
        merged_path = str(Path(tmpdir) / "merged.pdf")
        overlay_path = str(Path(tmpdir) / "overlay.pdf")

        merge_pdfs(files_list, merged_path)
        try:
            merged = PdfReader(merged_path)
            merged_pages = list(merged.pages)
        except Exception as e:
            raise MergeError(f"Could not read merged document: {e}") from e
        if len(merged_pages) != cursor.total_pages:
            raise MergeError(
                f"Merged document has {len(merged_pages)} page(s), expected {cursor.total_pages}"
            )

        def specs():
            for index, page in enumerate(merged_pages):
                attribution = cursor.attribute(index)
                width, height = page_size(page)
                logger.debug(
                    "page %d: source %d page %d (%gx%g)%s",
                    attribution.page_number,
                    attribution.source_ordinal,
                    attribution.page_in_source,
                    width,
                    height,
                    " first" if attribution.is_first_page_of_source else "",
                )
                yield overlay_for_page(attribution, width, height, options)

        try:
            render_overlay(specs(), overlay_path)
        except PdfProcessingError:
            raise
        except Exception as e:
            raise PdfProcessingError(f"Could not render overlay: {e}") from e

        try:
            writer = composite_overlay(overlay_path, merged_path)
        except PdfProcessingError:
            raise
        except Exception as e:
            raise MergeError(f"Could not apply overlay: {e}") from e

        write_output(writer, output)

    logger.info("Wrote %s", output)
    return str(output)


def _gather_files(args: argparse.Namespace) -> List[str]:
    files: List[str] = []
    pattern = "**/*.pdf" if args.recursive else "*.pdf"
    if args.files:
        for item in args.files:
            p = Path(item)
            if p.is_dir():
                files.extend(sorted(str(x) for x in p.glob(pattern) if x.is_file()))
            elif is_pdf_path(p.name):
                files.append(str(p))
            else:
                logger.warning("Skipping %s: not a PDF file", p)
    else:
        files = sorted(str(x) for x in Path('.').glob(pattern) if x.is_file())
    return files


def _corner_arg(value: str) -> Corner:
    return Corner.parse(value)


def main(argv: list[str] | None = None) -> int:
    corners = ", ".join(c.label for c in Corner)
    p = argparse.ArgumentParser(description="Merge PDF files and label each page")
    p.add_argument("files", nargs="*", help="PDF files or directories, in the order to merge")
    p.add_argument("-o", "--output", default=DEFAULT_OUTPUT, help=f"Output filename (default {DEFAULT_OUTPUT})")
    p.add_argument("-r", "--recursive", action="store_true", help="Search directories recursively")
    p.add_argument("-p", "--prefix", default="DOCUMENTO", help="Title text put before each document number")
    p.add_argument(
        "--title-position",
        type=_corner_arg,
        default=Corner.TOP_LEFT,
        help=f"Corner for the document title: {corners} or 0-3. Default top-left.",
    )
    p.add_argument(
        "--page-number-position",
        type=_corner_arg,
        default=Corner.TOP_LEFT,
        help=f"Corner for page numbers: {corners} or 0-3. Default top-left.",
    )
    p.add_argument("-b", "--background", action="store_true", help="Draw a gray box behind the labels")
    p.add_argument("-q", "--quiet", action="store_true")
    p.add_argument("-v", "--verbose", action="store_true")
    args = p.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)

    files = _gather_files(args)
    if not files:
        print("No PDF files found.", file=sys.stderr)
        return 2

    options = LabelOptions(
        prefix=args.prefix,
        title_corner=args.title_position,
        page_number_corner=args.page_number_position,
        background=args.background,
    )
    try:
        process_pdfs(files, args.output, options)
    except Exception as exc:
        print("Error:", exc, file=sys.stderr)
        return 1

    if not args.quiet:
        print(f"PDFs processed successfully: {args.output} ({len(files)} file(s))")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
