"""Drawing-surface abstraction."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import Any

from canvaskit.models.canvas import CanvasElement

logger = logging.getLogger("canvaskit.canvas.surface")

SurfaceChangeListener = Callable[[Sequence[CanvasElement]], Any]


class DrawingSurface(ABC):
    """The shared canvas both the user and the agent draw on.

    Every scene update, whoever caused it, raises a change notification
    with the full element list. Notifications carry no origin.
    """

    @property
    @abstractmethod
    def elements(self) -> list[CanvasElement]:
        """Current elements in scene order."""
        ...

    @abstractmethod
    def update_scene(self, elements: Sequence[CanvasElement]) -> None:
        """Replace the scene and notify listeners."""
        ...

    @abstractmethod
    def on_change(self, listener: SurfaceChangeListener) -> None: ...


class InMemoryDrawingSurface(DrawingSurface):
    """Surface kept in memory; listeners run synchronously on each update."""

    def __init__(self, elements: Sequence[CanvasElement] | None = None) -> None:
        self._elements: list[CanvasElement] = list(elements or [])
        self._listeners: list[SurfaceChangeListener] = []

    @property
    def elements(self) -> list[CanvasElement]:
        return list(self._elements)

    def update_scene(self, elements: Sequence[CanvasElement]) -> None:
        self._elements = list(elements)
        snapshot = tuple(self._elements)
        for listener in self._listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Error in surface change listener")

    def on_change(self, listener: SurfaceChangeListener) -> None:
        self._listeners.append(listener)

    def upsert(self, element: CanvasElement) -> None:
        """Add *element*, or replace the element with the same id."""
        replaced = False
        updated: list[CanvasElement] = []
        for el in self._elements:
            if el.id == element.id:
                updated.append(element)
                replaced = True
            else:
                updated.append(el)
        if not replaced:
            updated.append(element)
        self.update_scene(updated)

    def remove(self, element_id: str) -> None:
        self.update_scene([el for el in self._elements if el.id != element_id])
