"""
Unit tests for the selection mapper.

Tests cover:
- Offset selections on plain text
- Selections reported as positions in rendered markup
- Empty, collapsed and invalid selections mapping to None
"""

from unittest.mock import Mock

from app.models.highlight_types import Highlight
from app.services.render_engine import render
from app.services.selection_mapper import (
    MarkupSelection,
    OffsetSelection,
    map_selection,
)

DOCUMENT = "The term is 30 days."


def make_highlight(start, end, text, **kwargs):
    defaults = {
        "id": f"h-{start}",
        "color": "#F44336",
        "category": "risk",
        "created_at": "2026-10-18T09:00:00.000Z",
    }
    defaults.update(kwargs)
    return Highlight(id=defaults.pop("id"), text=text, start_index=start, end_index=end, **defaults)


class TestOffsetSelection:
    def test_maps_offsets(self):
        payload = map_selection(OffsetSelection(DOCUMENT, 12, 19))
        assert payload.text == "30 days"
        assert payload.start_index == 12
        assert payload.end_index == 19
        assert DOCUMENT[payload.start_index : payload.end_index] == payload.text

    def test_collapsed_selection(self):
        assert map_selection(OffsetSelection(DOCUMENT, 5, 5)) is None

    def test_selection_past_end_is_trimmed(self):
        payload = map_selection(OffsetSelection(DOCUMENT, 12, 40))
        assert payload.text == "30 days."
        assert payload.start_index == 12
        assert payload.end_index == 20

    def test_negative_start_is_invalid(self):
        assert map_selection(OffsetSelection(DOCUMENT, -1, 5)) is None

    def test_start_past_end_of_document(self):
        assert map_selection(OffsetSelection(DOCUMENT, 30, 40)) is None


class TestMarkupSelection:
    def test_plain_markup(self):
        markup = render(DOCUMENT, [])
        start = markup.index("30 days")
        payload = map_selection(MarkupSelection(markup, start, start + 7), markup)

        assert payload.text == "30 days"
        assert payload.start_index == DOCUMENT.index("30 days")

    def test_offsets_skip_existing_highlight_markup(self):
        markup = render(DOCUMENT, [make_highlight(0, 8, "The term")])
        start = markup.index("30 days")
        payload = map_selection(MarkupSelection(markup, start, start + 7), markup)

        assert payload.text == "30 days"
        assert payload.start_index == 12
        assert payload.end_index == 19

    def test_selection_across_highlight_boundary(self):
        markup = render(DOCUMENT, [make_highlight(4, 8, "term")])
        start = markup.index("The")
        end = markup.index(" is")
        payload = map_selection(MarkupSelection(markup, start, end), markup)

        assert payload.text == "The term"
        assert payload.start_index == 0
        assert payload.end_index == 8

    def test_escaped_characters_count_once(self):
        document = "A & B shall pay <all> fees."
        markup = render(document, [])
        start = markup.index("fees")
        payload = map_selection(MarkupSelection(markup, start, start + 4), markup)

        assert payload.text == "fees"
        assert payload.start_index == document.index("fees")

    def test_cut_inside_tag_is_invalid(self):
        markup = render(DOCUMENT, [make_highlight(0, 3, "The")])
        inside_tag = markup.index("data-category")
        assert map_selection(MarkupSelection(markup, inside_tag, len(markup)), markup) is None

    def test_collapsed_markup_selection(self):
        markup = render(DOCUMENT, [])
        assert map_selection(MarkupSelection(markup, 4, 4), markup) is None


class TestFailures:
    def test_source_raising_returns_none(self):
        source = Mock()
        source.get_selected_text.return_value = "term"
        source.get_offset_of_selection_start.side_effect = RuntimeError("detached")

        assert map_selection(source, "<div></div>") is None

    def test_empty_text_returns_none(self):
        source = Mock()
        source.get_selected_text.return_value = ""

        assert map_selection(source) is None
        source.get_offset_of_selection_start.assert_not_called()
