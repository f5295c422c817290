"""Drawing-surface element and diff models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class CanvasElement(BaseModel):
    """A drawing-surface element.

    Only ``id``, ``type`` and ``version`` take part in diffing; every other
    field the surface sends (coordinates, colours, labels ...) is kept as is.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    type: str
    version: int = 1
    is_deleted: bool = Field(default=False, alias="isDeleted")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


# Server bookkeeping fields stripped before an element reaches the surface.
SERVER_ONLY_FIELDS = frozenset(
    {"createdAt", "updatedAt", "syncedAt", "source", "syncTimestamp"}
)


def element_from_wire(data: dict[str, Any]) -> CanvasElement:
    """Build a :class:`CanvasElement` from a canvas-server payload."""
    clean = {k: v for k, v in data.items() if k not in SERVER_ONLY_FIELDS}
    return CanvasElement.model_validate(clean)


class CanvasDiff(BaseModel):
    """User-inflicted changes between two drawing-surface states."""

    added: list[CanvasElement] = Field(default_factory=list)
    removed: list[CanvasElement] = Field(default_factory=list)
    modified: list[CanvasElement] = Field(default_factory=list)
    summary: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.modified)

    @property
    def description(self) -> str:
        """Conversation-turn text for this diff."""
        return f"User made changes to canvas: {self.summary}"
