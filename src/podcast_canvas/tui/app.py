"""podcast canvas: main textual application.

keyboard-driven studio: pick a node on the canvas, expand it into
topics, stream a script segment into it, finish with an ending.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import Footer, Header, Input, Static

from ..core.client import ClaudeGenerationService, GenerationService, MockGenerationService
from ..core.layout import Position
from ..core.models import NodeType
from ..core.persistence import JsonFilePersistence, PersistenceError, PersistenceService
from ..core.studio import PodcastStudio
from .widgets.canvas_view import CanvasView, NodeClicked
from .widgets.script_panel import ScriptPanel

logger = logging.getLogger(__name__)


# --- configuration ---

STREAM_REFRESH_INTERVAL = 0.2  # seconds


class PodcastCanvasApp(App):
    """main application."""

    TITLE = "podcast canvas"

    CSS = """
    Screen {
        layout: vertical;
    }

    #main-container {
        height: 1fr;
    }

    #status {
        display: none;
        text-align: center;
        padding: 0 1;
        background: $surface;
    }

    #status.visible {
        display: block;
    }

    #start-prompt {
        height: auto;
        padding: 1;
        border: solid $primary;
        margin: 1;
    }

    #start-prompt-label {
        margin-bottom: 1;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "quit"),
        Binding("j", "select_next", "next"),
        Binding("k", "select_previous", "prev"),
        Binding("t", "expand_topics", "topics"),
        Binding("m", "more_topics", "more"),
        Binding("g", "generate", "generate"),
        Binding("space", "toggle_expand", "expand"),
        Binding("d", "delete", "delete"),
        Binding("s", "save", "save"),
        Binding("e", "export", "export"),
    ]

    def __init__(
        self,
        podcast_id: Optional[str] = None,
        persistence: Optional[PersistenceService] = None,
        generator: Optional[GenerationService] = None,
        export_dir: Optional[Path] = None,
    ):
        super().__init__()
        self.podcast_id = podcast_id
        self.persistence = persistence or JsonFilePersistence()
        self.studio = PodcastStudio(self.persistence, generator or ClaudeGenerationService())
        self.export_dir = export_dir
        self._busy = False

    @property
    def store(self):
        return self.studio.store

    def compose(self) -> ComposeResult:
        """compose the app layout."""
        yield Header()

        with Vertical(id="main-container"):
            yield Static("generating...", id="status")

            # start prompt (shown when no podcast is open)
            with Vertical(id="start-prompt"):
                yield Static("what should this podcast be about?", id="start-prompt-label")
                yield Input(placeholder="root topic, e.g. 金字塔之谜", id="topic-input")

            with Horizontal(id="workspace"):
                yield CanvasView(self.store, id="canvas")
                yield ScriptPanel(self.store, id="script")

        yield Footer()

    async def on_mount(self) -> None:
        """open the podcast, or ask for a topic."""
        if self.podcast_id:
            try:
                await self.studio.load(self.podcast_id)
            except PersistenceError as e:
                self.notify(f"failed to load: {e}", severity="error")
                self._show_start_prompt()
                return
            self._open()
        else:
            self._show_start_prompt()

    async def on_unmount(self) -> None:
        """flush unsaved changes before exit."""
        try:
            await self.studio.close()
        except PersistenceError as e:
            logger.error("final save failed: %s", e)

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        """handle root topic submission."""
        if event.input.id != "topic-input":
            return
        topic = event.input.value.strip()
        if not topic:
            return
        try:
            await self.studio.create_podcast(title=topic, root_topic=topic)
        except PersistenceError as e:
            self.notify(f"failed to create podcast: {e}", severity="error")
            return
        self._open()

    def _open(self) -> None:
        self._hide_start_prompt()
        if self.store.active_node_id is None:
            root = self.store.get_root_node()
            self.studio.select(root.id if root else None)
        self.studio.start()
        self.set_interval(STREAM_REFRESH_INTERVAL, self._tick)
        self._refresh_all()

    def _show_start_prompt(self) -> None:
        self.query_one("#start-prompt").display = True
        self.query_one("#workspace").display = False
        self.query_one("#topic-input", Input).focus()

    def _hide_start_prompt(self) -> None:
        self.query_one("#start-prompt").display = False
        self.query_one("#workspace").display = True

    # --- selection ---

    def on_node_clicked(self, event: NodeClicked) -> None:
        self.studio.select(event.node_id)
        self._refresh_all()

    def _ordered_ids(self) -> list[str]:
        """node ids in reading order: top to bottom, left to right."""
        positions: dict[str, Position] = self.studio.positions
        return sorted(positions, key=lambda nid: (positions[nid].y, positions[nid].x))

    def _step_selection(self, step: int) -> None:
        ids = self._ordered_ids()
        if not ids:
            return
        current = self.store.active_node_id
        index = ids.index(current) + step if current in ids else 0
        self.studio.select(ids[index % len(ids)])
        self._refresh_all()

    def action_select_next(self) -> None:
        self._step_selection(1)

    def action_select_previous(self) -> None:
        self._step_selection(-1)

    # --- generation ---

    def _selected(self):
        node_id = self.store.active_node_id
        node = self.store.get_node(node_id) if node_id else None
        if node is None:
            self.notify("no node selected", severity="warning")
        return node

    def _start(self, work, label: str) -> None:
        """run a generation in a worker so the canvas keeps redrawing.

        work: callable returning the coroutine, only called when idle.
        """
        if self._busy:
            self.notify("generation in progress", severity="warning")
            return
        self._busy = True
        status = self.query_one("#status", Static)
        status.update(label)
        status.add_class("visible")
        self.run_worker(work(), exclusive=True)

    def _done(self) -> None:
        self._busy = False
        self.query_one("#status").remove_class("visible")
        self._refresh_all()

    async def _expand(self, node_id: str, more: bool) -> None:
        try:
            if more:
                result = await self.studio.load_more_topics(node_id)
            else:
                result = await self.studio.expand_topics(node_id)
            if not result.ok:
                self.notify(f"topic generation failed: {result.error}", severity="error")
        finally:
            self._done()

    async def _stream(self, node_id: str, ending: bool) -> None:
        try:
            if ending:
                result = await self.studio.generate_ending(node_id)
            else:
                result = await self.studio.generate_content(node_id)
                if result.ok:
                    self.studio.select(result.node_id)
            if not result.ok:
                self.notify(f"generation failed: {result.error}", severity="error")
        finally:
            self._done()

    def action_expand_topics(self) -> None:
        node = self._selected()
        if node is None:
            return
        if node.node_type == NodeType.MORE:
            self._start(lambda: self._expand(node.parent_id, more=True), "loading more topics...")
        else:
            self._start(lambda: self._expand(node.id, more=False), f"expanding {node.title}...")

    def action_more_topics(self) -> None:
        node = self._selected()
        if node is None:
            return
        parent_id = node.parent_id if node.node_type == NodeType.MORE else node.id
        self._start(lambda: self._expand(parent_id, more=True), "loading more topics...")

    def action_generate(self) -> None:
        """stream content for a topic, or the closing segment for an ending."""
        node = self._selected()
        if node is None:
            return
        if node.node_type == NodeType.ENDING:
            self._start(lambda: self._stream(node.id, ending=True), "writing the ending...")
        elif node.node_type == NodeType.MORE:
            self.action_more_topics()
        else:
            self._start(lambda: self._stream(node.id, ending=False), f"writing {node.title}...")

    # --- editing ---

    def action_toggle_expand(self) -> None:
        node = self._selected()
        if node is not None:
            self.studio.toggle_expand(node.id)
            self._refresh_all()

    def action_delete(self) -> None:
        node = self._selected()
        if node is None:
            return
        if node.node_type == NodeType.ROOT:
            self.notify("the root can't be deleted", severity="warning")
            return
        parent_id = node.parent_id
        self.studio.delete_node(node.id)
        self.studio.select(parent_id)
        self._refresh_all()

    async def action_save(self) -> None:
        if await self.studio.save():
            self.notify("saved")
        elif self.store.is_dirty:
            self.notify("save failed", severity="error")
        else:
            self.notify("nothing to save")
        self._refresh_all()

    def action_export(self) -> None:
        """write the narrated path to a markdown file."""
        if self.studio.podcast is None:
            return
        result = self.studio.export()
        export_dir = self.export_dir or Path.cwd()
        export_path = export_dir / f"{self.studio.podcast.title}.md"
        try:
            export_path.write_text(result.markdown, encoding="utf-8")
        except OSError as e:
            self.notify(f"export failed: {e}", severity="error")
            return
        self.notify(f"exported {result.char_count} chars (~{result.estimated_minutes} min) to {export_path}")

    # --- rendering ---

    def _tick(self) -> None:
        # streamed fragments don't re-layout, only redraw
        if self.store.streaming.is_streaming or self.store.is_dirty:
            self._refresh_all(relayout=False)

    def _refresh_all(self, relayout: bool = True) -> None:
        positions = self.studio.layout() if relayout else self.studio.positions
        self.query_one("#canvas", CanvasView).refresh_canvas(positions)
        self.query_one("#script", ScriptPanel).refresh_panel()
        if self.studio.podcast:
            self.sub_title = self.studio.podcast.title


def run(
    podcast_id: Optional[str] = None,
    data_dir: Optional[str] = None,
    mock: bool = False,
) -> None:
    """run the podcast canvas app."""
    app = PodcastCanvasApp(
        podcast_id=podcast_id,
        persistence=JsonFilePersistence(Path(data_dir) if data_dir else None),
        generator=MockGenerationService() if mock else None,
    )
    app.run()


if __name__ == "__main__":
    run()
