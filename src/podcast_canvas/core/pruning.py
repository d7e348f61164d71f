"""pruning: keep a single active narrative branch.

committing to a node deletes all of its siblings' subtrees. the local
store is authoritative: removal happens immediately, then a best-effort
delete goes to storage in the background. remote failures are logged
and counted, never retried or rolled back.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

from .models import NodeType
from .persistence import PersistenceService
from .store import PodcastStore

logger = logging.getLogger(__name__)


class PruningCoordinator:
    """deletes abandoned subtrees locally and, best-effort, remotely."""

    def __init__(self, store: PodcastStore, persistence: Optional[PersistenceService] = None):
        self.store = store
        self.persistence = persistence
        self.failed_deletes = 0
        self._pending: set[asyncio.Task] = set()

    def commit(self, node_id: str) -> list[str]:
        """prune every sibling subtree of node_id. returns the removed ids."""
        node = self.store.get_node(node_id)
        if node is None or node.parent_id is None:
            return []  # unknown node, or the root (no siblings)

        doomed: list[str] = []
        for sibling in self.store.get_child_nodes(node.parent_id):
            if sibling.id != node_id:
                doomed.extend(self._closure(sibling.id))
        return self._prune(doomed, reason=f"commit {node_id}")

    def clear_children(self, node_id: str, lanes: Optional[Iterable[NodeType]] = None) -> list[str]:
        """remove existing children of a node before it's re-expanded.

        lanes: only clear children of these node types (default: all).
        """
        cleared = set(lanes) if lanes is not None else None
        doomed: list[str] = []
        for child in self.store.get_child_nodes(node_id):
            if cleared is not None and child.node_type not in cleared:
                continue
            doomed.extend(self._closure(child.id))
        return self._prune(doomed, reason=f"clear {node_id}")

    def delete_subtree(self, node_id: str) -> list[str]:
        """explicit user deletion of a node and its descendants.

        the root can't be deleted.
        """
        node = self.store.get_node(node_id)
        if node is None or node.node_type == NodeType.ROOT:
            return []
        return self._prune(self._closure(node_id), reason=f"delete {node_id}")

    async def drain(self) -> None:
        """wait for outstanding remote deletes."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    @property
    def pending(self) -> int:
        return len(self._pending)

    # --- internals ---

    def _closure(self, node_id: str) -> list[str]:
        return [node_id, *self.store.get_descendant_ids(node_id)]

    def _prune(self, node_ids: list[str], reason: str) -> list[str]:
        ids = list(dict.fromkeys(node_ids))
        if not ids:
            return []
        self.store.remove_nodes(ids)
        logger.debug("pruned %d nodes (%s)", len(ids), reason)
        self._delete_remote(ids)
        return ids

    def _delete_remote(self, node_ids: list[str]) -> None:
        if self.persistence is None or self.store.podcast is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("no event loop; %d pruned nodes not deleted from storage", len(node_ids))
            self.failed_deletes += 1
            return
        task = loop.create_task(self._delete(self.store.podcast.id, node_ids))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _delete(self, podcast_id: str, node_ids: list[str]) -> None:
        try:
            await self.persistence.delete_nodes(podcast_id, node_ids)
        except Exception as e:
            self.failed_deletes += 1
            logger.warning("failed to delete %d pruned nodes from storage: %s", len(node_ids), e)
