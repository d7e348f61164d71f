"""canvas view: the laid-out podcast tree drawn on a character grid.

positions come from the layout engine; each lane width maps to a fixed
number of columns and each vertical gap to two rows. click to select.
"""

from __future__ import annotations

from typing import Iterable, Optional

from textual.widgets import Static
from textual.message import Message
from rich.text import Text

from ...core.layout import HORIZONTAL_SPACING, VERTICAL_GAP, Position, layout_bounds
from ...core.models import NodeType, PodcastNode
from ...core.store import PodcastStore


# --- configuration ---

COLUMN_WIDTH = 18  # characters per lane
ROWS_PER_LEVEL = 2

_TYPE_STYLES = {
    NodeType.ROOT: "bold blue",
    NodeType.TOPIC: "green",
    NodeType.CONTENT: "white",
    NodeType.ENDING: "magenta",
    NodeType.MORE: "dim",
}

_MARKERS = {
    NodeType.ROOT: "◆",
    NodeType.TOPIC: "•",
    NodeType.CONTENT: "¶",
    NodeType.ENDING: "■",
    NodeType.MORE: "+",
}


class NodeClicked(Message):
    """message emitted when a node is clicked on the canvas."""

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__()


def node_label(node: PodcastNode, width: int = COLUMN_WIDTH - 2) -> str:
    """short one-line label, cut to fit a lane."""
    label = f"{_MARKERS[node.node_type]} {node.title}"
    if node.node_type == NodeType.CONTENT and node.content:
        label += f" ({len(node.content)})"
    return label if len(label) <= width else label[: width - 1] + "…"


def grid_cells(positions: dict[str, Position]) -> dict[str, tuple[int, int]]:
    """map layout positions to (row, col) cells, origin at the top-left."""
    bounds = layout_bounds(positions)
    if bounds is None:
        return {}
    cells = {}
    for node_id, pos in positions.items():
        row = round((pos.y - bounds.min_y) / VERTICAL_GAP * ROWS_PER_LEVEL)
        col = round((pos.x - bounds.min_x) / HORIZONTAL_SPACING * COLUMN_WIDTH)
        cells[node_id] = (row, col)
    return cells


def render_canvas(
    nodes: Iterable[PodcastNode],
    positions: dict[str, Position],
    path_ids: Iterable[str] = (),
    active_id: Optional[str] = None,
    streaming_id: Optional[str] = None,
) -> Text:
    """draw every positioned node as a label at its grid cell."""
    by_id = {n.id: n for n in nodes}
    cells = {nid: cell for nid, cell in grid_cells(positions).items() if nid in by_id}
    if not cells:
        return Text("(empty canvas)", style="dim")

    on_path = set(path_ids)
    rows: dict[int, list[tuple[int, str]]] = {}
    for node_id, (row, col) in cells.items():
        rows.setdefault(row, []).append((col, node_id))

    text = Text()
    for row in range(max(rows) + 1):
        cursor = 0
        for col, node_id in sorted(rows.get(row, [])):
            node = by_id[node_id]
            col = max(col, cursor)
            text.append(" " * (col - cursor))
            label = node_label(node)

            style = _TYPE_STYLES[node.node_type]
            if node_id in on_path:
                style = "bold cyan"
            if node_id == streaming_id:
                style = "bold yellow"
            if node_id == active_id:
                style += " reverse"
            text.append(label, style=style)
            cursor = col + len(label)
        text.append("\n")
    return text


class CanvasView(Static):
    """the podcast tree at its computed positions."""

    DEFAULT_CSS = """
    CanvasView {
        height: 1fr;
        padding: 1;
        border: solid $surface-lighten-2;
        overflow: auto;
    }
    """

    def __init__(self, store: PodcastStore, **kwargs) -> None:
        super().__init__(**kwargs)
        self.store = store
        self.positions: dict[str, Position] = {}
        self._cells: dict[str, tuple[int, int]] = {}

    def render(self) -> Text:
        self._cells = grid_cells(self.positions)
        return render_canvas(
            self.store.nodes.values(),
            self.positions,
            path_ids=self.store.selected_path,
            active_id=self.store.active_node_id,
            streaming_id=self.store.streaming.target_node_id,
        )

    def node_at(self, row: int, col: int) -> Optional[str]:
        """id of the node whose label covers (row, col)."""
        for node_id, (r, c) in self._cells.items():
            node = self.store.get_node(node_id)
            if node and r == row and c <= col < c + len(node_label(node)):
                return node_id
        return None

    def on_click(self, event) -> None:
        """handle click to select a node."""
        # account for the padding
        node_id = self.node_at(event.y - 1, event.x - 1)
        if node_id:
            self.post_message(NodeClicked(node_id))

    def refresh_canvas(self, positions: dict[str, Position]) -> None:
        """update with a new layout."""
        self.positions = positions
        self.refresh()
