"""textual widgets for podcast canvas."""

from .canvas_view import CanvasView, NodeClicked, render_canvas
from .script_panel import ScriptPanel, NodeDetail, save_indicator

__all__ = [
    "CanvasView",
    "NodeClicked",
    "render_canvas",
    "ScriptPanel",
    "NodeDetail",
    "save_indicator",
]
