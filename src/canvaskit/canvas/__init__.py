"""Drawing surface, diffing and echo suppression."""

from canvaskit.canvas.diff import active_elements, compute_diff, summarize_types
from canvaskit.canvas.echo import CanvasEchoSuppressor
from canvaskit.canvas.surface import DrawingSurface, InMemoryDrawingSurface
from canvaskit.canvas.sync import CanvasSyncClient

__all__ = [
    "CanvasEchoSuppressor",
    "CanvasSyncClient",
    "DrawingSurface",
    "InMemoryDrawingSurface",
    "active_elements",
    "compute_diff",
    "summarize_types",
]
