"""
Selection Mapper

Turns a user's text selection into a candidate highlight payload with
character offsets relative to the full contract text.

A selection source only has to answer two questions: what text is selected,
and how many characters of the container's text content come before the
selection start. Browser clients report selections as positions inside the
rendered container markup (``MarkupSelection``); other callers can pass
offsets into the plain document directly (``OffsetSelection``).
"""

import logging
from typing import Protocol

from bs4 import BeautifulSoup

from app.models.highlight_types import SelectionPayload

logger = logging.getLogger(__name__)


class SelectionSource(Protocol):
    """Abstract text selection inside a rendered document container"""

    def get_selected_text(self) -> str: ...

    def get_offset_of_selection_start(self, container_root: str) -> int: ...


class InvalidSelectionRange(ValueError):
    """Raised by selection sources when the range cannot be resolved."""


def _text_content(markup: str) -> str:
    """Serialized text content of a markup fragment, entities decoded."""
    return BeautifulSoup(markup, "html.parser").get_text()


def _check_cut_point(markup: str, position: int) -> None:
    if position < 0 or position > len(markup):
        raise InvalidSelectionRange(f"Position {position} outside container markup")
    # A cut point inside a tag or an entity does not correspond to a text boundary
    prefix = markup[:position]
    if prefix.rfind("<") > prefix.rfind(">"):
        raise InvalidSelectionRange(f"Position {position} falls inside a tag")
    if prefix.rfind("&") > prefix.rfind(";"):
        raise InvalidSelectionRange(f"Position {position} falls inside an entity")


class OffsetSelection:
    """Selection given directly as offsets into the plain document text."""

    def __init__(self, document: str, start: int, end: int):
        self.document = document
        self.start = start
        self.end = end

    def get_selected_text(self) -> str:
        if self.start < 0:
            raise InvalidSelectionRange(f"Negative selection start {self.start}")
        # Ends past the document are trimmed by the slice and again by the store
        if self.end <= self.start:
            return ""
        return self.document[self.start : self.end]

    def get_offset_of_selection_start(self, container_root: str) -> int:
        return self.start


class MarkupSelection:
    """
    Selection given as positions in the rendered container markup.

    ``markup`` is the container's HTML as rendered by the render engine;
    ``start`` and ``end`` are indices into that string that fall on text
    boundaries (never inside a tag or an entity).
    """

    def __init__(self, markup: str, start: int, end: int):
        self.markup = markup
        self.start = start
        self.end = end

    def get_selected_text(self) -> str:
        _check_cut_point(self.markup, self.start)
        _check_cut_point(self.markup, self.end)
        if self.end <= self.start:
            return ""
        # Measure rather than parse the slice: a slice can start inside an element
        before_start = len(_text_content(self.markup[: self.start]))
        before_end = _text_content(self.markup[: self.end])
        return before_end[before_start:]

    def get_offset_of_selection_start(self, container_root: str) -> int:
        root = container_root or self.markup
        _check_cut_point(root, self.start)
        return len(_text_content(root[: self.start]))


def map_selection(
    source: SelectionSource, container_root: str = ""
) -> SelectionPayload | None:
    """
    Compute the highlight payload for a selection.

    Args:
        source: The selection to map
        container_root: Rendered markup of the document container

    Returns:
        SelectionPayload | None: Text and offsets, or None when the selection is
        empty or its range cannot be resolved
    """
    try:
        text = source.get_selected_text()
        if not text:
            return None
        start_index = source.get_offset_of_selection_start(container_root)
        return SelectionPayload(
            text=text, start_index=start_index, end_index=start_index + len(text)
        )
    except Exception as e:
        logger.warning(f"Could not map text selection: {e}")
        return None
