from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Response
from pydantic import BaseModel, model_validator

from ..models.highlight_types import (
    CategoryCreate,
    CategoryUpdate,
    Highlight,
    HighlightCategory,
    HighlightPatch,
)
from ..services.annotation_session_service import annotation_service
from ..services.category_registry import (
    CategoryNotFoundError,
    DuplicateCategoryError,
    ProtectedCategoryError,
)
from ..services.highlight_export import EmptyExportError, export_csv, export_filename
from ..services.highlight_store import HighlightRangeError
from ..services.selection_mapper import MarkupSelection, OffsetSelection

router = APIRouter(prefix="/annotations", tags=["annotations"])


class DocumentRequest(BaseModel):
    text: str


class HighlightModeRequest(BaseModel):
    enabled: bool


class ActiveCategoryRequest(BaseModel):
    category_id: str


class SelectedHighlightRequest(BaseModel):
    highlight_id: Optional[str] = None


class SelectionRequest(BaseModel):
    # Offsets into the plain document text
    start_offset: Optional[int] = None
    end_offset: Optional[int] = None
    # Positions inside the rendered container markup
    markup: Optional[str] = None
    markup_start: Optional[int] = None
    markup_end: Optional[int] = None

    @model_validator(mode="after")
    def check_one_form(self):
        has_offsets = self.start_offset is not None and self.end_offset is not None
        has_markup = self.markup_start is not None and self.markup_end is not None
        if has_offsets == has_markup:
            raise ValueError(
                "Provide either start_offset/end_offset or markup_start/markup_end"
            )
        return self


class SelectionResponse(BaseModel):
    highlight: Optional[Highlight] = None


class SessionStateResponse(BaseModel):
    document_id: str
    document_length: int
    highlight_mode: bool
    active_category: HighlightCategory
    highlights_count: int
    selected_highlight_id: Optional[str] = None


class RenderResponse(BaseModel):
    document_id: str
    html: str


class CategorySummary(BaseModel):
    category: HighlightCategory
    count: int
    highlights: List[Highlight]


def _session_state(document_id: str) -> SessionStateResponse:
    session = annotation_service.get_session(document_id)
    return SessionStateResponse(
        document_id=document_id,
        document_length=len(session.document),
        highlight_mode=session.highlight_mode,
        active_category=session.registry.active_category,
        highlights_count=len(session.store),
        selected_highlight_id=session.store.selected_id,
    )


@router.get("/{document_id}", response_model=SessionStateResponse)
async def get_session_state(document_id: str):
    """
    Get the annotation state of a document.

    Returns:
        SessionStateResponse: Highlight mode, active category and counts
    """
    try:
        return _session_state(document_id)
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error retrieving session: {str(e)}"
        )


@router.put("/{document_id}/document", response_model=SessionStateResponse)
async def set_document(document_id: str, payload: DocumentRequest):
    """
    Set the contract text highlights are anchored to.

    Args:
        document_id: Identifier of the contract
        payload: The full plain text of the contract
    """
    try:
        annotation_service.set_document(document_id, payload.text)
        return _session_state(document_id)
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error setting document: {str(e)}"
        )


@router.put("/{document_id}/mode", response_model=SessionStateResponse)
async def set_highlight_mode(document_id: str, payload: HighlightModeRequest):
    """Switch highlight mode on or off. Selections are ignored while it is off."""
    try:
        annotation_service.set_highlight_mode(document_id, payload.enabled)
        return _session_state(document_id)
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error setting highlight mode: {str(e)}"
        )


# ========================================
# CATEGORIES
# ========================================


@router.get("/{document_id}/categories", response_model=List[HighlightCategory])
async def list_categories(document_id: str):
    """List categories, defaults first."""
    try:
        return annotation_service.get_session(document_id).registry.list_categories()
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error retrieving categories: {str(e)}"
        )


@router.post("/{document_id}/categories", response_model=HighlightCategory)
async def add_category(document_id: str, payload: CategoryCreate):
    """
    Add a user-defined category.

    Raises:
        HTTPException: 409 if the name slugifies to an existing id
    """
    try:
        registry = annotation_service.get_session(document_id).registry
        return registry.add_category(payload.name, payload.color, payload.description)
    except DuplicateCategoryError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error adding category: {str(e)}"
        )


@router.put("/{document_id}/categories/active", response_model=HighlightCategory)
async def set_active_category(document_id: str, payload: ActiveCategoryRequest):
    """Choose the category new highlights are tagged with."""
    try:
        registry = annotation_service.get_session(document_id).registry
        return registry.set_active_category(payload.category_id)
    except CategoryNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error setting active category: {str(e)}"
        )


@router.patch("/{document_id}/categories/{category_id}", response_model=HighlightCategory)
async def update_category(document_id: str, category_id: str, payload: CategoryUpdate):
    """
    Rename, recolor or describe a category.

    Existing highlights keep the color they were created with.
    """
    try:
        registry = annotation_service.get_session(document_id).registry
        return registry.update_category(
            category_id,
            name=payload.name,
            color=payload.color,
            description=payload.description,
        )
    except CategoryNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error updating category: {str(e)}"
        )


@router.delete("/{document_id}/categories/{category_id}")
async def delete_category(document_id: str, category_id: str):
    """
    Remove a user-defined category. Highlights tagged with it are kept.

    Raises:
        HTTPException: 400 for default categories, 404 if not found
    """
    try:
        annotation_service.get_session(document_id).registry.remove_category(category_id)
        return {"message": "Category deleted successfully"}
    except ProtectedCategoryError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CategoryNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error deleting category: {str(e)}"
        )


# ========================================
# HIGHLIGHTS
# ========================================


@router.post("/{document_id}/selection", response_model=SelectionResponse)
async def create_highlight_from_selection(document_id: str, payload: SelectionRequest):
    """
    Create a highlight from a text selection.

    The selection is given either as offsets into the plain text, or as
    positions inside the rendered markup the client displayed. Empty or
    unresolvable selections, and selections made while highlight mode is off,
    return ``{"highlight": null}``.
    """
    try:
        session = annotation_service.get_session(document_id)
        if payload.start_offset is not None and payload.end_offset is not None:
            source = OffsetSelection(
                session.document, payload.start_offset, payload.end_offset
            )
            container_root = ""
        else:
            container_root = payload.markup if payload.markup is not None else session.render()
            source = MarkupSelection(
                container_root, payload.markup_start, payload.markup_end
            )

        highlight = annotation_service.handle_selection(
            document_id, source, container_root
        )
        return SelectionResponse(highlight=highlight)
    except HighlightRangeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error creating highlight: {str(e)}"
        )


@router.get("/{document_id}/highlights", response_model=List[Highlight])
async def list_highlights(
    document_id: str, category: Optional[str] = None, sort: Optional[str] = None
):
    """
    List highlights, optionally filtered by category.

    Args:
        category: Only return highlights with this category id
        sort: "start" to order by position in the document
    """
    try:
        store = annotation_service.get_session(document_id).store
        return store.query(category=category, sort_by_start=sort == "start")
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error retrieving highlights: {str(e)}"
        )


@router.patch("/{document_id}/highlights/{highlight_id}", response_model=Highlight)
async def update_highlight(document_id: str, highlight_id: str, patch: HighlightPatch):
    """Edit a highlight's note or reassign its category."""
    try:
        updated = annotation_service.update_highlight(document_id, highlight_id, patch)
        if updated is None:
            raise HTTPException(status_code=404, detail="Highlight not found")
        return updated
    except HTTPException:
        raise
    except CategoryNotFoundError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error updating highlight: {str(e)}"
        )


@router.delete("/{document_id}/highlights/{highlight_id}")
async def delete_highlight(document_id: str, highlight_id: str):
    """Delete a single highlight."""
    try:
        store = annotation_service.get_session(document_id).store
        if not store.remove(highlight_id):
            raise HTTPException(status_code=404, detail="Highlight not found")
        return {"message": "Highlight deleted successfully"}
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error deleting highlight: {str(e)}"
        )


@router.delete("/{document_id}/highlights")
async def clear_highlights(document_id: str) -> Dict[str, Any]:
    """Delete every highlight of the document."""
    try:
        removed = annotation_service.get_session(document_id).store.clear()
        return {"message": "All highlights cleared", "removed": removed}
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error clearing highlights: {str(e)}"
        )


@router.put("/{document_id}/selected", response_model=SessionStateResponse)
async def select_highlight(document_id: str, payload: SelectedHighlightRequest):
    """Mark a highlight as the one being edited, or clear the mark with null."""
    try:
        annotation_service.get_session(document_id).store.select(payload.highlight_id)
        return _session_state(document_id)
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error selecting highlight: {str(e)}"
        )


# ========================================
# RENDER, SUMMARY, EXPORT
# ========================================


@router.get("/{document_id}/render", response_model=RenderResponse)
async def render_document(document_id: str):
    """Render the document as HTML with all highlights superimposed."""
    try:
        return RenderResponse(
            document_id=document_id, html=annotation_service.render(document_id)
        )
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error rendering document: {str(e)}"
        )


@router.get("/{document_id}/summary", response_model=List[CategorySummary])
async def get_highlights_summary(document_id: str):
    """Highlights grouped by category, each group ordered by position."""
    try:
        session = annotation_service.get_session(document_id)
        groups = session.store.summarize_by_category(session.registry.list_categories())
        return [CategorySummary(**group) for group in groups]
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error summarizing highlights: {str(e)}"
        )


@router.get("/{document_id}/export.csv")
async def export_highlights_csv(document_id: str):
    """
    Download highlights as CSV.

    Raises:
        HTTPException: 400 if there is nothing to export
    """
    try:
        highlights = annotation_service.get_session(document_id).store.query()
        content = export_csv(highlights)
        return Response(
            content=content,
            media_type="text/csv; charset=utf-8",
            headers={
                "Content-Disposition": f'attachment; filename="{export_filename()}"'
            },
        )
    except EmptyExportError:
        raise HTTPException(status_code=400, detail="No highlights to export")
    except Exception as e:
        raise HTTPException(
            status_code=500, detail=f"Error exporting highlights: {str(e)}"
        )
