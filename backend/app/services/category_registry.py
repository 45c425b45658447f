"""
Category Registry Module

Owns the set of categories a contract highlight can be tagged with and tracks
which category new highlights inherit. One registry is built per document
review session; it is restored with ``load()`` and written back through the
persistence writer after every mutation.
"""

import logging
import re

from pydantic import ValidationError

from app.models.highlight_types import HighlightCategory, is_hex_color

from .persistence_writer import PersistenceWriter

logger = logging.getLogger(__name__)

# Seed values are shared with the browser client and must not change
DEFAULT_CATEGORIES: tuple[HighlightCategory, ...] = (
    HighlightCategory(
        id="risk",
        name="Risk",
        color="#F44336",
        description="Clauses that expose a party to liability or loss",
    ),
    HighlightCategory(
        id="obligation",
        name="Obligation",
        color="#2196F3",
        description="Duties a party must perform",
    ),
    HighlightCategory(
        id="key-term",
        name="Key Term",
        color="#4CAF50",
        description="Defined terms, amounts and dates",
    ),
    HighlightCategory(
        id="custom",
        name="Custom",
        color="#FFEB3B",
        description="General purpose highlights",
    ),
)
DEFAULT_CATEGORY_IDS = frozenset(category.id for category in DEFAULT_CATEGORIES)
DEFAULT_ACTIVE_CATEGORY = "custom"


class CategoryNotFoundError(LookupError):
    """Raised when a category id is not in the registry."""

    def __init__(self, category_id: str):
        super().__init__(f"Unknown category '{category_id}'")
        self.category_id = category_id


class DuplicateCategoryError(ValueError):
    """Raised when a new category slugifies to an id that already exists."""


class ProtectedCategoryError(ValueError):
    """Raised when removing one of the default categories."""


def slugify(name: str) -> str:
    """Lowercase the name and join whitespace-separated words with hyphens."""
    return re.sub(r"\s+", "-", name.strip().lower())


class CategoryRegistry:
    """
    Ordered collection of highlight categories.

    Defaults come first, user categories follow in insertion order. The active
    color is always looked up from the active category, so recoloring a
    category affects highlights created afterwards only.
    """

    def __init__(self, writer: PersistenceWriter, storage_key: str):
        """
        Args:
            writer: Fire-and-forget persistence writer
            storage_key: Key the category list is stored under
        """
        self.writer = writer
        self.storage_key = storage_key
        self._categories: list[HighlightCategory] = [
            category.model_copy() for category in DEFAULT_CATEGORIES
        ]
        self._active_id = DEFAULT_ACTIVE_CATEGORY

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self) -> None:
        """
        Restore the persisted category set, or seed the defaults if none exists.

        Defaults missing from the stored set are put back in front so the
        registry always contains them.
        """
        stored = self.writer.load(self.storage_key)
        if not isinstance(stored, list) or not stored:
            logger.info(f"No stored categories for {self.storage_key}, using defaults")
            self._categories = [category.model_copy() for category in DEFAULT_CATEGORIES]
            return

        loaded: list[HighlightCategory] = []
        seen: set[str] = set()
        for raw in stored:
            try:
                category = HighlightCategory.model_validate(raw)
            except ValidationError as e:
                logger.warning(f"Skipping invalid stored category {raw!r}: {e}")
                continue
            if category.id in seen:
                continue
            seen.add(category.id)
            loaded.append(category)

        missing = [
            category.model_copy()
            for category in DEFAULT_CATEGORIES
            if category.id not in seen
        ]
        self._categories = missing + loaded

        if self.get_category(self._active_id) is None:
            self._active_id = DEFAULT_ACTIVE_CATEGORY
        logger.info(f"Loaded {len(self._categories)} categories for {self.storage_key}")

    def persist(self) -> None:
        """Schedule a write of the full category list."""
        self.writer.submit(
            self.storage_key,
            [category.model_dump(exclude_none=True) for category in self._categories],
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_categories(self) -> list[HighlightCategory]:
        return [category.model_copy() for category in self._categories]

    def get_category(self, category_id: str) -> HighlightCategory | None:
        for category in self._categories:
            if category.id == category_id:
                return category.model_copy()
        return None

    @property
    def active_category(self) -> HighlightCategory:
        category = self.get_category(self._active_id)
        if category is None:
            # The active id always points at a registered category
            raise CategoryNotFoundError(self._active_id)
        return category

    @property
    def active_color(self) -> str:
        return self.active_category.color

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_category(
        self, name: str, color: str, description: str | None = None
    ) -> HighlightCategory:
        """
        Append a user-defined category.

        Args:
            name: Display name, slugified into the category id
            color: ``#RRGGBB`` hex color
            description: Optional explanation of the category

        Returns:
            HighlightCategory: The new category

        Raises:
            ValueError: If the name is blank or the color is not hex
            DuplicateCategoryError: If the slug is already registered
        """
        category_id = slugify(name)
        if not category_id:
            raise ValueError("Category name must not be blank")
        if not is_hex_color(color):
            raise ValueError(f"Invalid category color: {color}")
        if self.get_category(category_id) is not None:
            raise DuplicateCategoryError(f"Category '{category_id}' already exists")

        category = HighlightCategory(
            id=category_id,
            name=name.strip(),
            color=color,
            description=description or None,
        )
        self._categories.append(category)
        logger.info(f"Added category {category_id} ({color})")
        self.persist()
        return category.model_copy()

    def update_category(
        self,
        category_id: str,
        name: str | None = None,
        color: str | None = None,
        description: str | None = None,
    ) -> HighlightCategory:
        """Change a category's name, color or description. The id never changes."""
        if color is not None and not is_hex_color(color):
            raise ValueError(f"Invalid category color: {color}")

        for index, category in enumerate(self._categories):
            if category.id != category_id:
                continue
            changes = {
                field: value
                for field, value in (
                    ("name", name),
                    ("color", color),
                    ("description", description),
                )
                if value is not None
            }
            updated = category.model_copy(update=changes)
            self._categories[index] = updated
            logger.info(f"Updated category {category_id}: {changes}")
            self.persist()
            return updated.model_copy()

        raise CategoryNotFoundError(category_id)

    def set_category_color(self, category_id: str, color: str) -> HighlightCategory:
        return self.update_category(category_id, color=color)

    def remove_category(self, category_id: str) -> None:
        """
        Remove a user-defined category.

        Highlights tagged with it keep their category id and stored color.
        """
        if category_id in DEFAULT_CATEGORY_IDS:
            raise ProtectedCategoryError(f"Default category '{category_id}' cannot be removed")
        if self.get_category(category_id) is None:
            raise CategoryNotFoundError(category_id)

        self._categories = [c for c in self._categories if c.id != category_id]
        if self._active_id == category_id:
            self._active_id = DEFAULT_ACTIVE_CATEGORY
        logger.info(f"Removed category {category_id}")
        self.persist()

    def set_active_category(self, category_id: str) -> HighlightCategory:
        """Make category_id the category new highlights are tagged with."""
        category = self.get_category(category_id)
        if category is None:
            raise CategoryNotFoundError(category_id)
        self._active_id = category_id
        return category
