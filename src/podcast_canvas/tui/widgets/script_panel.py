"""script panel: the selected node in full, plus the save indicator."""

from __future__ import annotations

from typing import Optional

from textual.containers import ScrollableContainer
from textual.widgets import Static
from rich.panel import Panel
from rich.text import Text

from ...core.models import NodeType, PodcastNode
from ...core.store import PodcastStore, SaveStatus


_SAVE_LABELS = {
    SaveStatus.IDLE: ("", "dim"),
    SaveStatus.SAVING: ("saving...", "yellow"),
    SaveStatus.SAVED: ("saved", "green"),
    SaveStatus.ERROR: ("save failed", "bold red"),
}


def save_indicator(store: PodcastStore) -> Text:
    """one-line autosave status."""
    label, style = _SAVE_LABELS[store.autosave.save_status]
    text = Text(label, style=style)
    if store.is_dirty and store.autosave.save_status != SaveStatus.SAVING:
        text.append(" (unsaved changes)" if label else "unsaved changes", style="dim italic")
    return text


class NodeDetail(Static):
    """full title and body of one node."""

    def __init__(self, node: Optional[PodcastNode] = None, streaming: bool = False, **kwargs) -> None:
        super().__init__(**kwargs)
        self.node = node
        self.streaming = streaming

    def render(self) -> Panel:
        if self.node is None:
            return Panel(Text("(select a node)", style="dim"), border_style="dim")

        body = Text(self.node.content or "")
        if self.streaming:
            body.append("▌", style="blink")
        elif not self.node.has_content and self.node.node_type in (NodeType.CONTENT, NodeType.ENDING):
            body = Text("(not generated yet)", style="dim italic")

        return Panel(
            body,
            title=self.node.title,
            title_align="left",
            subtitle=self.node.node_type.value,
            border_style="yellow" if self.streaming else "blue",
            padding=(0, 1),
        )


class ScriptPanel(ScrollableContainer):
    """selected node and save status."""

    DEFAULT_CSS = """
    ScriptPanel {
        width: 40%;
        padding: 0 1;
        border: solid $surface-lighten-2;
    }

    #save-status {
        height: 1;
    }
    """

    def __init__(self, store: PodcastStore, **kwargs) -> None:
        super().__init__(**kwargs)
        self.store = store

    def compose(self):
        yield Static(save_indicator(self.store), id="save-status")
        yield NodeDetail(id="node-detail")

    def refresh_panel(self) -> None:
        """redraw for the current selection and save state."""
        self.query_one("#save-status", Static).update(save_indicator(self.store))
        detail = self.query_one("#node-detail", NodeDetail)
        node_id = self.store.active_node_id
        detail.node = self.store.get_node(node_id) if node_id else None
        detail.streaming = bool(node_id) and self.store.streaming.target_node_id == node_id
        detail.refresh()
