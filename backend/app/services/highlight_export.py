"""
Highlight Export

Serializes a highlight collection to CSV for download.
"""

import logging
import time

from app.models.highlight_types import Highlight

logger = logging.getLogger(__name__)

CSV_HEADER = ("Text", "Category", "Note", "Created At")


class EmptyExportError(ValueError):
    """Raised when there are no highlights to export."""


def _quote(value: str | None) -> str:
    # Quoted fields keep commas and newlines; embedded quotes are doubled
    return '"' + (value or "").replace('"', '""') + '"'


def _quote_if_needed(value: str) -> str:
    if any(char in value for char in ',"\r\n'):
        return _quote(value)
    return value


def export_csv(highlights: list[Highlight]) -> bytes:
    """
    Build the CSV export of a highlight collection.

    Text and note are always quoted. Category ids are quoted only when they
    contain a separator; ISO timestamps are written as-is.

    Args:
        highlights: Highlights in the order they should appear

    Returns:
        bytes: UTF-8 encoded CSV with a header row

    Raises:
        EmptyExportError: If highlights is empty
    """
    if not highlights:
        raise EmptyExportError("No highlights to export")

    rows = [",".join(CSV_HEADER)]
    for highlight in highlights:
        rows.append(
            ",".join(
                (
                    _quote(highlight.text),
                    _quote_if_needed(highlight.category),
                    _quote(highlight.note),
                    highlight.created_at,
                )
            )
        )

    logger.info(f"Exported {len(highlights)} highlights to CSV")
    return ("\r\n".join(rows) + "\r\n").encode("utf-8")


def export_filename(now_ms: int | None = None) -> str:
    """Download filename, e.g. contract-highlights-1760778000000.csv"""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"contract-highlights-{now_ms}.csv"
