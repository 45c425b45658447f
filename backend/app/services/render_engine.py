"""
Render Engine

Superimposes highlight markup onto the contract text for display.

The document is HTML-escaped first, then one ``<span>`` is inserted per
highlighted segment, working from the highest offset to the lowest so an
insertion never moves the offsets of segments still to be processed. Stored
highlight offsets are never modified.

Two steps keep the output well-formed:

* Escaping lengthens ``& < > " '``, so original offsets are translated to
  escaped offsets through a prefix table before slicing.
* Overlapping highlights are split into maximal non-overlapping segments
  (event sweep over all start/end boundaries). A segment covered by several
  highlights is shown with the innermost one, the covering highlight with the
  greatest start offset, and lists every covering id.
"""

import html
import logging
import re
from itertools import accumulate

from app.models.highlight_types import Highlight, HighlightCategory, is_hex_color

logger = logging.getLogger(__name__)

NEUTRAL_COLOR = "#E0E0E0"
HIGHLIGHT_CLASS = "contract-highlight"

_WRAPPER_OPEN = re.compile(rf'<span class="{HIGHLIGHT_CLASS}"[^>]*>')
_WRAPPER_CLOSE = re.compile(r"</span>")


class _Segment:
    """A character range with a constant set of covering highlights.

    Attributes:
        start: Start offset in the original document (inclusive).
        end: End offset in the original document (exclusive).
        covering: (order, highlight) pairs active over the whole range.
    """

    __slots__ = ("covering", "end", "start")

    def __init__(self, start: int, end: int, covering: list[tuple[int, Highlight]]):
        self.start = start
        self.end = end
        self.covering = covering

    @property
    def top(self) -> Highlight:
        # Innermost wins; among equal starts, the one created last
        return max(self.covering, key=lambda item: (item[1].start_index, item[0]))[1]


def resolve_offsets(
    document: str, highlight: Highlight, relocate: bool = True
) -> tuple[int, int] | None:
    """
    Find the range a highlight should cover in the current document.

    Offsets are trusted when they are in bounds and still select the cached
    text. Otherwise, with ``relocate`` on, the cached text is searched for and
    the occurrence nearest to the stored start wins.

    Returns:
        tuple[int, int] | None: (start, end), or None if the highlight cannot be placed
    """
    start, end = highlight.start_index, highlight.end_index
    in_bounds = 0 <= start < end <= len(document)

    if in_bounds and (not relocate or document[start:end] == highlight.text):
        return start, end
    if not relocate or not highlight.text:
        return None

    best = None
    position = document.find(highlight.text)
    while position != -1:
        if best is None or abs(position - start) < abs(best - start):
            best = position
        position = document.find(highlight.text, position + 1)

    if best is None:
        return None
    return best, best + len(highlight.text)


def _segments(placed: list[tuple[int, int, int, Highlight]]) -> list[_Segment]:
    """Split placed highlights into non-overlapping segments."""
    boundaries = sorted({offset for start, end, _, _ in placed for offset in (start, end)})
    segments = []
    for left, right in zip(boundaries, boundaries[1:]):
        covering = [
            (order, highlight)
            for start, end, order, highlight in placed
            if start <= left and end >= right
        ]
        if covering:
            segments.append(_Segment(left, right, covering))
    return segments


def _escaped_offsets(document: str) -> tuple[str, list[int]]:
    """Escape the document and map every original offset to its escaped offset."""
    pieces = [html.escape(char) for char in document]
    offsets = [0, *accumulate(len(piece) for piece in pieces)]
    return "".join(pieces), offsets


def _segment_color(highlight: Highlight, category: HighlightCategory | None) -> str:
    if is_hex_color(highlight.color):
        return highlight.color
    if category is not None and is_hex_color(category.color):
        return category.color
    return NEUTRAL_COLOR


def _wrap(content: str, segment: _Segment, categories: dict[str, HighlightCategory]) -> str:
    top = segment.top
    category = categories.get(top.category)
    title = category.name if category is not None else top.category
    if top.note:
        title = f"{title}: {top.note}"
    ids = " ".join(highlight.id for _, highlight in segment.covering)

    attributes = {
        "class": HIGHLIGHT_CLASS,
        "data-highlight-id": top.id,
        "data-category": top.category,
        "data-highlight-ids": ids,
        "title": title,
        "role": "button",
        "tabindex": "0",
        "style": (
            f"background-color: {_segment_color(top, category)}; "
            "padding: 0 2px; border-radius: 2px; cursor: pointer;"
        ),
    }
    rendered = " ".join(
        f'{name}="{html.escape(value, quote=True)}"' for name, value in attributes.items()
    )
    return f"<span {rendered}>{content}</span>"


def render(
    document: str,
    highlights: list[Highlight],
    categories: list[HighlightCategory] | None = None,
    *,
    relocate: bool = True,
) -> str:
    """
    Render the document as escaped HTML with highlight spans inserted.

    Args:
        document: Plain contract text
        highlights: Highlights to superimpose, in creation order
        categories: Registered categories, used for titles and color fallback
        relocate: Search for the cached text when stored offsets went stale

    Returns:
        str: Markup that is safe to display as rich text
    """
    if not document:
        return ""

    by_id = {category.id: category for category in categories or []}

    placed = []
    for order, highlight in enumerate(highlights):
        resolved = resolve_offsets(document, highlight, relocate)
        if resolved is None:
            logger.debug(
                f"Skipping highlight {highlight.id}: "
                f"[{highlight.start_index}, {highlight.end_index}) no longer matches"
            )
            continue
        placed.append((resolved[0], resolved[1], order, highlight))

    result, offsets = _escaped_offsets(document)

    for segment in sorted(_segments(placed), key=lambda s: s.start, reverse=True):
        start, end = offsets[segment.start], offsets[segment.end]
        if not 0 <= start < end <= len(result):
            logger.debug(f"Skipping out of range segment [{start}, {end})")
            continue
        result = result[:start] + _wrap(result[start:end], segment, by_id) + result[end:]

    return result


def strip_highlight_markup(markup: str) -> str:
    """Remove highlight wrapper spans, leaving the escaped document text."""
    return _WRAPPER_CLOSE.sub("", _WRAPPER_OPEN.sub("", markup))
