"""
Annotation Session Service

Wires the annotation engine together for each contract under review. A
session owns one category registry and one highlight store, plus the
document text and whether highlight mode is switched on. Sessions are
created and restored from storage on first access.

Control flow for a selection:
    selection mapper -> highlight store (tagged with the active category)
    -> persistence writer (fire-and-forget) -> render engine on next read
"""

import logging
import threading
from dataclasses import dataclass

from app.config import settings
from app.models.highlight_types import Highlight, HighlightPatch

from .category_registry import CategoryNotFoundError, CategoryRegistry
from .highlight_store import HighlightStore
from .persistence_adapter import create_persistence_adapter
from .persistence_writer import PersistenceWriter
from .render_engine import render
from .selection_mapper import SelectionSource, map_selection

logger = logging.getLogger(__name__)


@dataclass
class AnnotationSession:
    """Annotation state for one document"""

    document_id: str
    registry: CategoryRegistry
    store: HighlightStore
    highlight_mode: bool = True

    @property
    def document(self) -> str:
        return self.store.document or ""

    def render(self, relocate: bool = True) -> str:
        return render(
            self.document,
            self.store.query(),
            self.registry.list_categories(),
            relocate=relocate,
        )


class AnnotationSessionService:
    """Registry of annotation sessions keyed by document id"""

    def __init__(
        self,
        writer: PersistenceWriter,
        highlights_key: str = "contract-highlights",
        categories_key: str = "contract-highlight-categories",
        relocate_stale: bool = True,
    ):
        self.writer = writer
        self.highlights_key = highlights_key
        self.categories_key = categories_key
        self.relocate_stale = relocate_stale
        self._sessions: dict[str, AnnotationSession] = {}
        self._lock = threading.Lock()

    def get_session(self, document_id: str) -> AnnotationSession:
        """Return the session for document_id, restoring it from storage if new."""
        with self._lock:
            session = self._sessions.get(document_id)
            if session is not None:
                return session

            registry = CategoryRegistry(
                self.writer, f"{self.categories_key}:{document_id}"
            )
            registry.load()
            store = HighlightStore(
                registry, self.writer, f"{self.highlights_key}:{document_id}"
            )
            store.load()

            session = AnnotationSession(
                document_id=document_id, registry=registry, store=store
            )
            self._sessions[document_id] = session
            logger.info(
                f"Opened annotation session for {document_id} ({len(store)} highlights)"
            )
            return session

    def close_session(self, document_id: str) -> bool:
        """
        Drop a session from memory. Stored state is kept, and writes still
        queued for it are served to the next ``get_session`` by the writer.
        """
        with self._lock:
            return self._sessions.pop(document_id, None) is not None

    def set_document(self, document_id: str, text: str) -> AnnotationSession:
        """
        Set the contract text of a session.

        Existing highlights keep their stored offsets; rendering relocates them
        if the new text moved their content.
        """
        session = self.get_session(document_id)
        session.store.document = text
        logger.info(f"Set document text for {document_id} ({len(text)} characters)")
        return session

    def set_highlight_mode(self, document_id: str, enabled: bool) -> bool:
        session = self.get_session(document_id)
        session.highlight_mode = enabled
        return enabled

    def toggle_highlight_mode(self, document_id: str) -> bool:
        session = self.get_session(document_id)
        return self.set_highlight_mode(document_id, not session.highlight_mode)

    def handle_selection(
        self, document_id: str, source: SelectionSource, container_root: str = ""
    ) -> Highlight | None:
        """
        Create a highlight from a user selection.

        Returns None without side effects when highlight mode is off or the
        selection does not map to a range.
        """
        session = self.get_session(document_id)
        if not session.highlight_mode:
            logger.debug(f"Highlight mode off for {document_id}, ignoring selection")
            return None

        payload = map_selection(source, container_root)
        if payload is None:
            return None
        return session.store.create(payload)

    def update_highlight(
        self, document_id: str, highlight_id: str, patch: HighlightPatch
    ) -> Highlight | None:
        """Apply a patch, rejecting categories that are not registered."""
        session = self.get_session(document_id)
        if patch.category is not None and session.registry.get_category(patch.category) is None:
            raise CategoryNotFoundError(patch.category)
        return session.store.update(highlight_id, patch)

    def render(self, document_id: str) -> str:
        return self.get_session(document_id).render(relocate=self.relocate_stale)


def _build_default_service() -> AnnotationSessionService:
    adapter = create_persistence_adapter(settings.persistence_backend, settings.db_path)
    return AnnotationSessionService(
        PersistenceWriter(adapter),
        highlights_key=settings.highlights_key,
        categories_key=settings.categories_key,
        relocate_stale=settings.relocate_stale_highlights,
    )


# Global instance used by the routers
annotation_service = _build_default_service()
