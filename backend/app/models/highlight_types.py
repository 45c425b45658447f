"""
Contract Highlight Type Models

Pydantic models for highlights and highlight categories. Field names are
snake_case in Python; the camelCase aliases are the persisted JSON shape
shared with the browser client (``startIndex``, ``endIndex``, ``createdAt``).
"""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

HEX_COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")


def is_hex_color(value: object) -> bool:
    """Return True if value is a ``#RRGGBB`` color string."""
    return isinstance(value, str) and bool(HEX_COLOR_PATTERN.match(value))


class Highlight(BaseModel):
    """A single tagged span of the contract text"""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    text: str
    start_index: int = Field(alias="startIndex", ge=0)
    end_index: int = Field(alias="endIndex", ge=0)
    color: str
    category: str
    note: str | None = None
    created_at: str = Field(alias="createdAt")  # ISO-8601, UTC


class HighlightCategory(BaseModel):
    """A named, colored classification applied to highlights"""

    id: str
    name: str
    color: str
    description: str | None = None


class SelectionPayload(BaseModel):
    """Candidate highlight produced by the selection mapper"""

    text: str
    start_index: int
    end_index: int


class HighlightPatch(BaseModel):
    """
    Partial highlight for updates.
    Only note, category and color are mutable after creation.
    """

    note: str | None = None
    category: str | None = None
    color: str | None = None

    @field_validator("color")
    @classmethod
    def validate_color(cls, value: str | None) -> str | None:
        if value is not None and not is_hex_color(value):
            raise ValueError("color must be a #RRGGBB hex string")
        return value


class CategoryCreate(BaseModel):
    """Request model for adding a category"""

    name: str = Field(min_length=1)
    color: str = "#9C27B0"
    description: str | None = None

    @field_validator("color")
    @classmethod
    def validate_color(cls, value: str) -> str:
        if not is_hex_color(value):
            raise ValueError("color must be a #RRGGBB hex string")
        return value


class CategoryUpdate(BaseModel):
    """Partial category for updates"""

    name: str | None = None
    color: str | None = None
    description: str | None = None

    @field_validator("color")
    @classmethod
    def validate_color(cls, value: str | None) -> str | None:
        if value is not None and not is_hex_color(value):
            raise ValueError("color must be a #RRGGBB hex string")
        return value
