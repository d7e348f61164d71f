"""autosave: debounced and periodic snapshots of the local tree.

every dirtying mutation (re)arms a short debounce timer; a slower
periodic loop catches anything the debounce missed. a save sends the
whole local tree, so nodes pruned locally are dropped from storage
even when their background delete failed.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from datetime import datetime
from typing import Callable, Optional

from .persistence import PersistenceService
from .store import PodcastStore, SaveStatus

logger = logging.getLogger(__name__)


# --- configuration ---

DEFAULT_DEBOUNCE = 3.0  # seconds after the last change
DEFAULT_AUTOSAVE_INTERVAL = 30.0  # seconds


def default_canvas_state(store: PodcastStore) -> dict:
    """view state stored alongside the nodes."""
    return {
        "selected_path": list(store.selected_path),
        "active_node_id": store.active_node_id,
    }


class AutosaveScheduler:
    """saves the store's tree when it's dirty."""

    def __init__(
        self,
        store: PodcastStore,
        persistence: PersistenceService,
        debounce: float = DEFAULT_DEBOUNCE,
        interval: float = DEFAULT_AUTOSAVE_INTERVAL,
        canvas_state: Optional[Callable[[PodcastStore], dict]] = None,
    ):
        """debounce/interval: seconds; 0 disables that trigger."""
        self.store = store
        self.persistence = persistence
        self.debounce = debounce
        self.interval = interval
        self.canvas_state = canvas_state or default_canvas_state
        self.saves = 0
        self.failures = 0
        self._saving = False
        self._debounce_handle: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()
        self._periodic_task: Optional[asyncio.Task] = None
        self._started = False

    @property
    def is_saving(self) -> bool:
        return self._saving

    @property
    def is_running(self) -> bool:
        return self._started

    def start(self) -> None:
        """start the periodic loop and listen for store changes."""
        if self._started:
            return
        self._started = True
        self.store.add_listener(self.notify)
        if self.interval > 0:
            self._periodic_task = asyncio.get_running_loop().create_task(self._periodic_loop())

    async def stop(self, flush: bool = True) -> None:
        """stop both triggers; with flush, save pending changes first."""
        self.store.remove_listener(self.notify)
        self._started = False
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
            self._debounce_handle = None
        if self._periodic_task is not None:
            self._periodic_task.cancel()
            try:
                await self._periodic_task
            except asyncio.CancelledError:
                pass
            self._periodic_task = None
        # let saves already in flight finish
        if self._tasks:
            await asyncio.gather(*list(self._tasks))
        if flush:
            await self.save_now()

    def notify(self) -> None:
        """re-arm the debounce timer. no-op outside a running loop."""
        if self.debounce <= 0:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._debounce_handle is not None:
            self._debounce_handle.cancel()
        self._debounce_handle = loop.call_later(self.debounce, self._fire_debounced)

    async def save_now(self) -> bool:
        """save a snapshot if dirty. returns True if a save succeeded.

        mutations made while the save is in flight keep the store dirty,
        so they go out with the next save. nothing is saved while a
        stream is in flight: its node holds partial text, and the stream
        marks the store dirty again once it ends.
        """
        podcast = self.store.podcast
        if not self.store.is_dirty or podcast is None or self._saving:
            return False
        if self.store.streaming.is_streaming:
            logger.debug("autosave of %s deferred until the stream ends", podcast.id)
            return False

        self._saving = True
        revision = self.store.revision
        nodes = [dataclasses.replace(n) for n in self.store.nodes.values()]
        canvas_state = self.canvas_state(self.store)
        self.store.set_save_status(SaveStatus.SAVING)
        try:
            await self.persistence.autosave(podcast.id, nodes, canvas_state)
        except Exception as e:
            self.failures += 1
            self.store.set_save_status(SaveStatus.ERROR)
            logger.error("autosave of %s failed: %s", podcast.id, e)
            return False
        finally:
            self._saving = False

        self.saves += 1
        self.store.mark_saved(revision)
        if self.store.podcast is not None and self.store.podcast.id == podcast.id:
            # bypass update_podcast: recording the save isn't a change
            self.store.podcast.canvas_state = canvas_state
            self.store.podcast.last_autosave_at = datetime.now().isoformat()
        logger.debug("autosaved %s (%d nodes, revision %d)", podcast.id, len(nodes), revision)
        if self.store.is_dirty and self._started:
            self.notify()  # changed mid-save
        return True

    # --- loops ---

    def _fire_debounced(self) -> None:
        self._debounce_handle = None
        task = asyncio.get_running_loop().create_task(self.save_now())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _periodic_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.save_now()
