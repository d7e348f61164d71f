"""tree store: the single source of truth for a podcast session.

holds the podcast metadata and its nodes keyed by id, the narrated path,
and the streaming/autosave state that the rest of the session reads.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from .models import Podcast, PodcastNode, NodeType, ENDING_ORDER_INDEX

logger = logging.getLogger(__name__)


class SaveStatus(Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


@dataclass
class StreamingState:
    is_streaming: bool = False
    target_node_id: Optional[str] = None


@dataclass
class AutoSaveState:
    is_dirty: bool = False
    last_save_at: Optional[datetime] = None
    save_status: SaveStatus = SaveStatus.IDLE


class PodcastStore:
    """in-memory tree of podcast nodes.

    all operations are total: an unknown id is a silent no-op, since a
    stale reference can legitimately outlive a pruned node.
    """

    def __init__(self) -> None:
        self.podcast: Optional[Podcast] = None
        self.nodes: dict[str, PodcastNode] = {}
        self.selected_path: list[str] = []
        self.active_node_id: Optional[str] = None
        self.streaming = StreamingState()
        self.autosave = AutoSaveState()
        self.revision = 0  # bumped on every dirtying mutation
        self._listeners: list[Callable[[], None]] = []

    # --- dirty state ---

    @property
    def is_dirty(self) -> bool:
        return self.autosave.is_dirty

    def mark_dirty(self) -> None:
        self.autosave.is_dirty = True
        self.revision += 1
        for listener in list(self._listeners):
            listener()

    def add_listener(self, listener: Callable[[], None]) -> None:
        """call `listener` after every dirtying mutation."""
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def mark_clean(self) -> None:
        self.autosave.is_dirty = False

    def set_save_status(self, status: SaveStatus) -> None:
        self.autosave.save_status = status

    def mark_saved(self, revision: int) -> None:
        """record a successful save of the snapshot taken at `revision`.

        the dirty flag is only cleared when nothing changed while the
        save was in flight.
        """
        self.autosave.save_status = SaveStatus.SAVED
        self.autosave.last_save_at = datetime.now()
        if revision == self.revision:
            self.autosave.is_dirty = False

    # --- podcast ---

    def set_podcast(self, podcast: Podcast) -> None:
        self.podcast = podcast

    def update_podcast(self, **updates) -> None:
        if self.podcast is None:
            return
        self.podcast = dataclasses.replace(self.podcast, **updates)
        self.mark_dirty()

    # --- node mutation ---

    def set_nodes(self, nodes: list[PodcastNode]) -> None:
        """replace the whole node set (initial load); clears dirty state."""
        self.nodes = {n.id: n for n in nodes}
        root = self.get_root_node()
        self.selected_path = [root.id] if root else []
        self.active_node_id = None
        self.mark_clean()

    def add_nodes(self, nodes: list[PodcastNode], mark_dirty: bool = True) -> None:
        """insert-or-replace by id."""
        for node in nodes:
            self.nodes[node.id] = node
        if mark_dirty:
            self.mark_dirty()

    def update_node(self, node_id: str, mark_dirty: bool = True, **updates) -> None:
        """shallow-merge fields into a node."""
        existing = self.nodes.get(node_id)
        if existing is None:
            return
        self.nodes[node_id] = dataclasses.replace(existing, **updates)
        if mark_dirty:
            self.mark_dirty()

    def append_to_node_content(self, node_id: str, text: str) -> None:
        """append a streamed fragment.

        does not mark dirty: the body is incoherent until the stream ends,
        and the controller marks dirty once it completes.
        """
        existing = self.nodes.get(node_id)
        if existing is None:
            return
        existing.content = (existing.content or "") + text

    def remove_nodes(self, node_ids: list[str]) -> None:
        """delete nodes by id; callers pass the full descendant closure."""
        doomed = set(node_ids)
        if not doomed:
            return
        for nid in doomed:
            self.nodes.pop(nid, None)
        self.selected_path = [nid for nid in self.selected_path if nid not in doomed]
        if self.active_node_id in doomed:
            self.active_node_id = None
        self.mark_dirty()

    def set_active_node(self, node_id: Optional[str]) -> None:
        self.active_node_id = node_id

    def set_streaming(self, is_streaming: bool, target_node_id: Optional[str] = None) -> None:
        self.streaming = StreamingState(is_streaming, target_node_id)

    # --- queries ---

    def get_node(self, node_id: str) -> Optional[PodcastNode]:
        return self.nodes.get(node_id)

    def get_root_node(self) -> Optional[PodcastNode]:
        for node in self.nodes.values():
            if node.node_type == NodeType.ROOT and node.parent_id is None:
                return node
        return None

    def get_child_nodes(self, parent_id: str) -> list[PodcastNode]:
        """children of a node, ascending by order_index."""
        children = [n for n in self.nodes.values() if n.parent_id == parent_id]
        return sorted(children, key=lambda n: n.order_index)

    def get_descendant_ids(self, node_id: str) -> list[str]:
        """all descendant ids of a node (not including the node itself)."""
        children_map: dict[str, list[str]] = {}
        for node in self.nodes.values():
            if node.parent_id:
                children_map.setdefault(node.parent_id, []).append(node.id)

        descendants: list[str] = []
        stack = list(children_map.get(node_id, []))
        seen = {node_id}
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            descendants.append(current)
            stack.extend(children_map.get(current, []))
        return descendants

    def next_order_index(self, parent_id: str) -> int:
        """next unused order_index for a new topic child."""
        indices = [
            n.order_index
            for n in self.nodes.values()
            if n.parent_id == parent_id and n.order_index < ENDING_ORDER_INDEX
        ]
        return max(indices) + 1 if indices else 0

    # --- narrated path ---

    def add_to_path(self, node_id: str) -> None:
        self.selected_path.append(node_id)
        self.mark_dirty()

    def set_path(self, node_ids: list[str]) -> None:
        """restore a saved path (on load); unknown ids are dropped.

        an empty result keeps the current path. not a change, so not dirty.
        """
        path = [nid for nid in node_ids if nid in self.nodes]
        if path:
            self.selected_path = path

    def get_path_nodes(self) -> list[PodcastNode]:
        """nodes of the narrated branch, skipping ids that no longer exist."""
        return [self.nodes[nid] for nid in self.selected_path if nid in self.nodes]

    def reset(self) -> None:
        """drop all session state, listeners included.

        revision keeps counting so a save still in flight can't match it.
        """
        self._listeners = []
        self.podcast = None
        self.nodes = {}
        self.selected_path = []
        self.active_node_id = None
        self.streaming = StreamingState()
        self.autosave = AutoSaveState()
