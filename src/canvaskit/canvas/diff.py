"""Diff two drawing-surface states into a human-readable summary."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence

from canvaskit.models.canvas import CanvasDiff, CanvasElement


def active_elements(elements: Iterable[CanvasElement]) -> tuple[CanvasElement, ...]:
    """Drop elements the surface has marked as deleted."""
    return tuple(el for el in elements if not el.is_deleted)


def summarize_types(elements: Sequence[CanvasElement]) -> str:
    """``"rectangle (x2), text"``, in first-seen order."""
    counts = Counter(el.type for el in elements)
    return ", ".join(t if n == 1 else f"{t} (x{n})" for t, n in counts.items())


def compute_diff(
    previous: Sequence[CanvasElement], current: Sequence[CanvasElement]
) -> CanvasDiff:
    """Classify *current* against *previous* by element id and version.

    An id only in *current* is added, an id only in *previous* is removed,
    and an id in both with a different version is modified.
    """
    prev_by_id = {el.id: el for el in previous}
    curr_ids = {el.id for el in current}

    added = [el for el in current if el.id not in prev_by_id]
    removed = [el for el in previous if el.id not in curr_ids]
    modified = [
        el for el in current if el.id in prev_by_id and prev_by_id[el.id].version != el.version
    ]

    changes: list[str] = []
    if added:
        changes.append(f"Added {len(added)} element(s): {summarize_types(added)}")
    if removed:
        changes.append(f"Removed {len(removed)} element(s): {summarize_types(removed)}")
    if modified:
        changes.append(f"Modified {len(modified)} element(s): {summarize_types(modified)}")

    return CanvasDiff(added=added, removed=removed, modified=modified, summary="; ".join(changes))
