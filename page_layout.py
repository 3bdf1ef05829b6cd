"""Page attribution and overlay layout for labelled PDF merges.

Two pieces live here:

* ``AttributionCursor`` walks the merged document once and reports, for each
  merged page, which source file it came from and whether it is that source's
  first page.
* ``layout_text`` / ``place`` compute where a label goes on a page (one of four
  corners, 50pt margin) and the draw instructions needed to render it.

Nothing in this module touches files; text widths come from reportlab's
standard Helvetica-Bold metrics.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from reportlab.pdfbase.pdfmetrics import stringWidth

logger = logging.getLogger(__name__)

MARGIN = 50.0
PADDING = 5.0
FONT_NAME = "Helvetica-Bold"
TITLE_FONT_SIZE = 12.0
PAGE_NUMBER_FONT_SIZE = 10.0
BLACK: Tuple[float, float, float] = (0.0, 0.0, 0.0)
BACKGROUND_GRAY: Tuple[float, float, float] = (200 / 255, 200 / 255, 200 / 255)

# standard-14 fonts are written with WinAnsiEncoding
_FONT_ENCODING = "cp1252"


class Corner(IntEnum):
    TOP_LEFT = 0
    TOP_RIGHT = 1
    BOTTOM_LEFT = 2
    BOTTOM_RIGHT = 3

    @classmethod
    def parse(cls, value: Union["Corner", int, str, None]) -> "Corner":
        """Return the corner for ``value``; unknown values mean TOP_LEFT.

        Accepts a Corner, its number (0-3, also as a string) or a name such as
        ``top-right``, ``Top-Right`` or ``bottom_left``.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower().replace("_", "-").replace(" ", "-")
            if key.isdigit():
                value = int(key)
            else:
                for corner in cls:
                    if corner.label == key:
                        return corner
                logger.debug("unrecognized corner %r, using top-left", value)
                return cls.TOP_LEFT
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                pass
        logger.debug("unrecognized corner %r, using top-left", value)
        return cls.TOP_LEFT

    @property
    def label(self) -> str:
        return self.name.lower().replace("_", "-")


@dataclass(frozen=True)
class SourceFile:
    path: str
    page_count: int


@dataclass(frozen=True)
class PageAttribution:
    merged_page_index: int
    source_index: int
    page_in_source: int
    is_first_page_of_source: bool
    page_number: int

    @property
    def source_ordinal(self) -> int:
        """1-based position of the source file in the input order."""
        return self.source_index + 1


@dataclass
class AttributionCursor:
    """Scan state for one pass over a merged document.

    Call :meth:`attribute` once per merged page, with indices 0, 1, 2, ...
    """

    page_counts: Sequence[int]
    current_source_index: int = -1
    pages_consumed_in_current_source: int = 0
    running_page_number: int = 1
    _next_index: int = field(default=0, repr=False)

    def __post_init__(self) -> None:
        self.page_counts = tuple(self.page_counts)
        if not self.page_counts:
            raise ValueError("At least one source file is required")
        for count in self.page_counts:
            if count < 0:
                raise ValueError(f"Page count must not be negative: {count}")

    @classmethod
    def for_sources(cls, sources: Sequence[SourceFile]) -> "AttributionCursor":
        return cls([s.page_count for s in sources])

    @property
    def total_pages(self) -> int:
        return sum(self.page_counts)

    def _current_exhausted(self) -> bool:
        if self.current_source_index < 0:
            return True
        return self.pages_consumed_in_current_source >= self.page_counts[self.current_source_index]

    def attribute(self, merged_page_index: int) -> PageAttribution:
        if merged_page_index != self._next_index:
            raise ValueError(
                f"Pages must be attributed in order: expected index {self._next_index}, got {merged_page_index}"
            )
        if merged_page_index >= self.total_pages:
            raise ValueError(
                f"Page index {merged_page_index} is beyond the {self.total_pages} merged page(s)"
            )

        # enter the next source with pages; zero-page sources are skipped
        while self._current_exhausted():
            self.current_source_index += 1
            self.pages_consumed_in_current_source = 0

        result = PageAttribution(
            merged_page_index=merged_page_index,
            source_index=self.current_source_index,
            page_in_source=self.pages_consumed_in_current_source + 1,
            is_first_page_of_source=self.pages_consumed_in_current_source == 0,
            page_number=self.running_page_number,
        )
        self.pages_consumed_in_current_source += 1
        self.running_page_number += 1
        self._next_index += 1
        return result


def attribute_pages(page_counts: Sequence[int]) -> Iterator[PageAttribution]:
    """Yield the attribution of every merged page, in order."""
    cursor = AttributionCursor(page_counts)
    for index in range(cursor.total_pages):
        yield cursor.attribute(index)


@dataclass(frozen=True)
class FillRect:
    x: float
    y: float
    width: float
    height: float
    rgb: Tuple[float, float, float] = BACKGROUND_GRAY


@dataclass(frozen=True)
class DrawText:
    x: float
    y: float
    text: str
    font_name: str = FONT_NAME
    font_size: float = PAGE_NUMBER_FONT_SIZE
    rgb: Tuple[float, float, float] = BLACK


DrawInstruction = Union[FillRect, DrawText]


@dataclass(frozen=True)
class TextPlacement:
    text: str
    corner: Corner
    is_title: bool
    page_width: float
    page_height: float
    font_size: float
    text_width: float
    text_height: float
    origin_x: float
    origin_y: float
    rect_x: float
    rect_y: float
    rect_width: float
    rect_height: float

    def instructions(self, with_background: bool) -> List[DrawInstruction]:
        ops: List[DrawInstruction] = []
        if with_background:
            ops.append(FillRect(self.rect_x, self.rect_y, self.rect_width, self.rect_height, BACKGROUND_GRAY))
        ops.append(DrawText(self.origin_x, self.origin_y, self.text, FONT_NAME, self.font_size, BLACK))
        return ops


def drawable_text(text: str) -> str:
    """Drop characters Helvetica-Bold cannot encode."""
    kept = []
    for ch in text:
        try:
            ch.encode(_FONT_ENCODING)
        except UnicodeEncodeError:
            continue
        kept.append(ch)
    result = "".join(kept)
    if result != text:
        logger.warning("Skipping characters %s cannot render in %r", FONT_NAME, text)
    return result


def text_width(text: str, font_size: float) -> float:
    """Width in points of ``text`` in Helvetica-Bold at ``font_size``."""
    return stringWidth(drawable_text(text), FONT_NAME, font_size)


def layout_text(
    page_width: float,
    page_height: float,
    text: str,
    corner: Union[Corner, int, str],
    is_title: bool,
) -> TextPlacement:
    corner = Corner.parse(corner)
    text = drawable_text(text)
    font_size = TITLE_FONT_SIZE if is_title else PAGE_NUMBER_FONT_SIZE
    width = text_width(text, font_size)
    height = font_size

    if corner is Corner.TOP_RIGHT:
        x, y = page_width - MARGIN - width, page_height - MARGIN
    elif corner is Corner.BOTTOM_LEFT:
        x, y = MARGIN, MARGIN
    elif corner is Corner.BOTTOM_RIGHT:
        x, y = page_width - MARGIN - width, MARGIN
    else:
        x, y = MARGIN, page_height - MARGIN

    return TextPlacement(
        text=text,
        corner=corner,
        is_title=is_title,
        page_width=page_width,
        page_height=page_height,
        font_size=font_size,
        text_width=width,
        text_height=height,
        origin_x=x,
        origin_y=y,
        rect_x=x - PADDING,
        rect_y=y - PADDING,
        rect_width=width + 2 * PADDING,
        rect_height=height + PADDING,
    )


def place(
    page_width: float,
    page_height: float,
    text: str,
    corner: Union[Corner, int, str],
    is_title: bool,
    with_background: bool,
) -> List[DrawInstruction]:
    """Draw instructions for one label: optional gray box, then the text."""
    return layout_text(page_width, page_height, text, corner, is_title).instructions(with_background)


@dataclass(frozen=True)
class LabelOptions:
    prefix: str = "DOCUMENTO"
    title_corner: Corner = Corner.TOP_LEFT
    page_number_corner: Corner = Corner.TOP_LEFT
    background: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "title_corner", Corner.parse(self.title_corner))
        object.__setattr__(self, "page_number_corner", Corner.parse(self.page_number_corner))

    def title_for(self, source_ordinal: int) -> str:
        prefix = drawable_text(self.prefix)
        if not prefix.strip():
            return str(source_ordinal)
        return f"{prefix} {source_ordinal}"


@dataclass(frozen=True)
class OverlaySpec:
    page_width: float
    page_height: float
    page_number: TextPlacement
    title: Optional[TextPlacement] = None
    with_background: bool = False

    @property
    def placements(self) -> List[TextPlacement]:
        return [p for p in (self.title, self.page_number) if p is not None]

    def instructions_by_placement(self) -> List[Tuple[TextPlacement, List[DrawInstruction]]]:
        """Draw instructions grouped per label, title first."""
        return [(p, p.instructions(self.with_background)) for p in self.placements]

    def instructions(self) -> List[DrawInstruction]:
        ops: List[DrawInstruction] = []
        for _, placement_ops in self.instructions_by_placement():
            ops.extend(placement_ops)
        return ops


def overlay_for_page(
    attribution: PageAttribution,
    page_width: float,
    page_height: float,
    options: LabelOptions,
) -> OverlaySpec:
    title = None
    if attribution.is_first_page_of_source:
        title = layout_text(
            page_width, page_height, options.title_for(attribution.source_ordinal), options.title_corner, True
        )
    number = layout_text(
        page_width, page_height, str(attribution.page_number), options.page_number_corner, False
    )
    return OverlaySpec(page_width, page_height, number, title, options.background)
