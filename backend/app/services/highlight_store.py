"""
Highlight Store

In-memory, authoritative collection of the highlights of one contract. All
mutations go through this class: it stamps ids, timestamps and the active
category, keeps the offset invariant when the document text is known, and
schedules a write of the whole collection after every change.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from pydantic import ValidationError

from app.models.highlight_types import (
    Highlight,
    HighlightCategory,
    HighlightPatch,
    SelectionPayload,
)

from .category_registry import CategoryRegistry
from .persistence_writer import PersistenceWriter

logger = logging.getLogger(__name__)


class HighlightRangeError(ValueError):
    """Raised when a payload has no characters left after bounds clamping."""


def iso_timestamp(moment: datetime | None = None) -> str:
    """UTC ISO-8601 timestamp with millisecond precision, e.g. 2026-10-18T09:00:00.000Z"""
    moment = moment or datetime.now(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


class HighlightStore:
    """Single source of truth for the highlights of a document review session"""

    def __init__(
        self,
        registry: CategoryRegistry,
        writer: PersistenceWriter,
        storage_key: str,
        document: str | None = None,
    ):
        """
        Args:
            registry: Supplies the active category and color for new highlights
            writer: Fire-and-forget persistence writer
            storage_key: Key the highlight collection is stored under
            document: Contract text, used to clamp offsets on create
        """
        self.registry = registry
        self.writer = writer
        self.storage_key = storage_key
        self.document = document
        self._highlights: list[Highlight] = []
        self._selected_id: str | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self) -> int:
        """
        Restore the persisted collection.

        Returns:
            int: Number of highlights loaded
        """
        stored = self.writer.load(self.storage_key)
        if not isinstance(stored, list):
            self._highlights = []
            return 0

        highlights = []
        for raw in stored:
            try:
                highlights.append(Highlight.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Skipping invalid stored highlight: {e}")
        self._highlights = highlights
        logger.info(f"Loaded {len(highlights)} highlights for {self.storage_key}")
        return len(highlights)

    def _persist(self) -> None:
        self.writer.submit(self.storage_key, self.to_json())

    def to_json(self) -> list[dict]:
        """Collection in its persisted shape (camelCase keys)."""
        return [
            highlight.model_dump(by_alias=True, exclude_none=True)
            for highlight in self._highlights
        ]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, payload: SelectionPayload) -> Highlight:
        """
        Add a highlight for a mapped selection.

        Offsets are clamped to the document bounds and the text is re-read from
        the document so that ``text == document[start:end]`` holds at creation.

        Raises:
            HighlightRangeError: If the clamped range is empty
        """
        start, end, text = payload.start_index, payload.end_index, payload.text
        if self.document is not None:
            length = len(self.document)
            start = min(max(start, 0), length)
            end = min(max(end, 0), length)
            text = self.document[start:end]
        else:
            start = max(start, 0)

        if end <= start or not text:
            raise HighlightRangeError(
                f"Empty highlight range {payload.start_index}-{payload.end_index}"
            )

        category = self.registry.active_category
        highlight = Highlight(
            id=str(uuid.uuid4()),
            text=text,
            start_index=start,
            end_index=end,
            color=category.color,
            category=category.id,
            created_at=iso_timestamp(),
        )
        self._highlights.append(highlight)
        logger.info(
            f"Created highlight {highlight.id} [{start}, {end}) category={category.id}"
        )
        self._persist()
        return highlight.model_copy()

    def update(self, highlight_id: str, patch: HighlightPatch) -> Highlight | None:
        """
        Shallow-merge the set fields of patch into a highlight.

        Reassigning the category without an explicit color takes the new
        category's current color.

        Returns:
            Highlight | None: The updated highlight, or None if the id is unknown
        """
        changes = patch.model_dump(exclude_unset=True)
        for index, highlight in enumerate(self._highlights):
            if highlight.id != highlight_id:
                continue

            if "category" in changes and changes["category"] is None:
                del changes["category"]
            if "color" in changes and changes["color"] is None:
                del changes["color"]
            if "category" in changes and "color" not in changes:
                category = self.registry.get_category(changes["category"])
                if category is not None:
                    changes["color"] = category.color

            updated = highlight.model_copy(update=changes)
            self._highlights[index] = updated
            logger.info(f"Updated highlight {highlight_id}: {sorted(changes)}")
            self._persist()
            return updated.model_copy()

        logger.debug(f"Ignoring update for unknown highlight {highlight_id}")
        return None

    def remove(self, highlight_id: str) -> bool:
        """Delete a highlight. Returns False if the id is unknown."""
        remaining = [h for h in self._highlights if h.id != highlight_id]
        if len(remaining) == len(self._highlights):
            return False

        self._highlights = remaining
        if self._selected_id == highlight_id:
            self._selected_id = None
        logger.info(f"Removed highlight {highlight_id}")
        self._persist()
        return True

    def clear(self) -> int:
        """Remove every highlight. Returns how many were removed."""
        removed = len(self._highlights)
        self._highlights = []
        self._selected_id = None
        logger.info(f"Cleared {removed} highlights for {self.storage_key}")
        self._persist()
        return removed

    def select(self, highlight_id: str | None) -> str | None:
        """Point the selection (note editing) pointer at a highlight."""
        if highlight_id is not None and self.get(highlight_id) is None:
            highlight_id = None
        self._selected_id = highlight_id
        return highlight_id

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._highlights)

    def get(self, highlight_id: str) -> Highlight | None:
        for highlight in self._highlights:
            if highlight.id == highlight_id:
                return highlight.model_copy()
        return None

    def query(
        self,
        predicate: Callable[[Highlight], bool] | None = None,
        *,
        category: str | None = None,
        sort_by_start: bool = False,
    ) -> list[Highlight]:
        """
        Read-only filtering over the collection.

        Args:
            predicate: Optional filter function
            category: Only highlights tagged with this category id
            sort_by_start: Order by start offset instead of creation order

        Returns:
            list[Highlight]: Copies of the matching highlights
        """
        results = [
            h.model_copy()
            for h in self._highlights
            if (category is None or h.category == category)
            and (predicate is None or predicate(h))
        ]
        if sort_by_start:
            results.sort(key=lambda h: (h.start_index, h.end_index))
        return results

    def summarize_by_category(
        self, categories: list[HighlightCategory]
    ) -> list[dict]:
        """
        Group highlights by category in registry order.

        Each group is sorted by start offset. Highlights whose category is no
        longer registered are grouped under their raw category id at the end.
        """
        known_ids = [category.id for category in categories]
        groups = []
        for category in categories:
            items = self.query(category=category.id, sort_by_start=True)
            if items:
                groups.append(
                    {"category": category, "count": len(items), "highlights": items}
                )

        orphans: dict[str, list[Highlight]] = {}
        for highlight in self.query(sort_by_start=True):
            if highlight.category not in known_ids:
                orphans.setdefault(highlight.category, []).append(highlight)
        for category_id, items in orphans.items():
            groups.append(
                {
                    "category": HighlightCategory(
                        id=category_id, name=category_id, color=items[0].color
                    ),
                    "count": len(items),
                    "highlights": items,
                }
            )
        return groups
