"""studio session: wires user actions to the store, generators and storage.

one session edits one podcast. every action follows the same order:
prune (when committing to a branch), mutate the store, re-layout.
generation actions build their context from the narrated path first.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from .autosave import AutosaveScheduler, DEFAULT_AUTOSAVE_INTERVAL, DEFAULT_DEBOUNCE
from .client import GenerationService
from .export import ExportResult, export_markdown
from .layout import Position, apply_layout
from .models import (
    ContentRequest,
    GenerationError,
    GenerationKind,
    NodeType,
    Podcast,
    PodcastNode,
    ScriptStyle,
    StreamResult,
    TopicRequest,
    TopicResult,
    TopicSuggestion,
)
from .persistence import PersistenceError, PersistenceService
from .pruning import PruningCoordinator
from .store import PodcastStore
from .streaming import StreamingIngestionController

logger = logging.getLogger(__name__)


# --- configuration ---

DEFAULT_TOPIC_COUNT = 7
DEFAULT_MORE_COUNT = 5
DEFAULT_USER_ID = "local"


class PodcastStudio:
    """one editing session over a single podcast."""

    def __init__(
        self,
        persistence: PersistenceService,
        generator: GenerationService,
        store: Optional[PodcastStore] = None,
        debounce: float = DEFAULT_DEBOUNCE,
        autosave_interval: float = DEFAULT_AUTOSAVE_INTERVAL,
    ):
        self.persistence = persistence
        self.generator = generator
        self.store = store or PodcastStore()
        self.pruning = PruningCoordinator(self.store, persistence)
        self.controller = StreamingIngestionController(self.store)
        self.autosave = AutosaveScheduler(
            self.store, persistence, debounce=debounce, interval=autosave_interval
        )
        self.positions: dict[str, Position] = {}

    @property
    def podcast(self) -> Optional[Podcast]:
        return self.store.podcast

    # --- lifecycle ---

    async def create_podcast(
        self,
        title: str,
        root_topic: str,
        script_style: ScriptStyle = ScriptStyle.MONOLOGUE,
        host_name: Optional[str] = None,
        co_host_name: Optional[str] = None,
        user_id: str = DEFAULT_USER_ID,
    ) -> Podcast:
        """create and persist a podcast with its root node, then open it."""
        podcast = Podcast.create(
            user_id=user_id,
            title=title,
            root_topic=root_topic,
            script_style=script_style,
            host_name=host_name,
            co_host_name=co_host_name,
        )
        root = PodcastNode.create_root(podcast.id, root_topic)
        await self.persistence.create_podcast(podcast, root)
        logger.info("created podcast %s (%s)", podcast.id, title)
        self._install(podcast, [root])
        return podcast

    async def load(self, podcast_id: str) -> Podcast:
        """open a stored podcast. raises PersistenceError if it doesn't exist."""
        podcast = await self.persistence.get_podcast(podcast_id)
        if podcast is None:
            raise PersistenceError(f"podcast not found: {podcast_id}")
        nodes = await self.persistence.fetch_nodes(podcast_id)
        self._install(podcast, nodes)
        logger.info("loaded podcast %s with %d nodes", podcast_id, len(nodes))
        return podcast

    def start(self) -> None:
        """start autosaving. needs a running event loop."""
        self.autosave.start()

    async def close(self) -> None:
        """flush pending changes and outstanding deletes, then drop the session."""
        await self.autosave.stop(flush=True)
        await self.pruning.drain()
        self.store.reset()
        self.positions = {}

    def _install(self, podcast: Podcast, nodes: list[PodcastNode]) -> None:
        self.store.reset()
        if self.autosave.is_running:
            self.store.add_listener(self.autosave.notify)
        self.store.set_podcast(podcast)
        self.store.set_nodes(nodes)

        # the narrated path and selection saved with the last autosave
        saved = podcast.canvas_state or {}
        self.store.set_path(saved.get("selected_path") or [])
        active = saved.get("active_node_id")
        if active and self.store.get_node(active) is not None:
            self.store.set_active_node(active)
        self.layout()

    # --- topics ---

    async def expand_topics(self, node_id: str, count: int = DEFAULT_TOPIC_COUNT) -> TopicResult:
        """commit to a node and replace all of its children with fresh sub-topics.

        the ending and "more" affordances are added only once topics
        arrive; a failed request leaves the node without children.
        """
        node = self.store.get_node(node_id)
        if node is None or self.podcast is None:
            return TopicResult(error=f"node not found: {node_id}")
        if node.node_type == NodeType.MORE:
            return await self.load_more_topics(node.parent_id, DEFAULT_MORE_COUNT)
        if node.node_type == NodeType.ENDING:
            return TopicResult(error="the ending can't be expanded")

        self.pruning.commit(node_id)
        self.pruning.clear_children(node_id)
        self.layout()

        request = TopicRequest(
            root_topic=self.podcast.root_topic,
            path_nodes=self.store.get_path_nodes(),
            count=count,
            current_topic=None if node.node_type == NodeType.ROOT else node.title,
        )
        return await self._request_topics(node_id, request)

    async def load_more_topics(self, node_id: str, count: int = DEFAULT_MORE_COUNT) -> TopicResult:
        """append more sub-topics to a node without repeating existing titles."""
        node = self.store.get_node(node_id) if node_id else None
        if node is None or self.podcast is None:
            return TopicResult(error=f"node not found: {node_id}")

        existing = [
            c.title for c in self.store.get_child_nodes(node_id) if c.node_type == NodeType.TOPIC
        ]
        request = TopicRequest(
            root_topic=self.podcast.root_topic,
            path_nodes=self.store.get_path_nodes(),
            count=count,
            existing_titles=existing,
            current_topic=None if node.node_type == NodeType.ROOT else node.title,
        )
        return await self._request_topics(node_id, request)

    async def _request_topics(self, parent_id: str, request: TopicRequest) -> TopicResult:
        try:
            topics = await self.generator.generate_topics(request)
        except GenerationError as e:
            logger.warning("topic generation for %s failed: %s", parent_id, e)
            return TopicResult(error=str(e))

        if self.store.get_node(parent_id) is None:
            # pruned while the request was in flight
            return TopicResult(topics=topics, error=f"node removed during generation: {parent_id}")

        nodes = self._insert_topics(parent_id, topics)
        self.layout()
        return TopicResult(topics=topics, nodes=nodes)

    def _insert_topics(self, parent_id: str, topics: list[TopicSuggestion]) -> list[PodcastNode]:
        podcast_id = self.podcast.id
        start = self.store.next_order_index(parent_id)
        nodes = [
            PodcastNode.create_topic(podcast_id, parent_id, t.title, t.summary, start + i)
            for i, t in enumerate(topics)
        ]
        if not nodes:
            return []

        lanes = {c.node_type for c in self.store.get_child_nodes(parent_id)}
        extras = []
        if NodeType.ENDING not in lanes:
            extras.append(PodcastNode.create_ending(podcast_id, parent_id))
        if NodeType.MORE not in lanes:
            extras.append(PodcastNode.create_more(podcast_id, parent_id))
        self.store.add_nodes(nodes + extras)
        return nodes

    # --- streamed generation ---

    async def generate_content(self, node_id: str) -> StreamResult:
        """commit to a topic and stream its script into a fresh content child."""
        node = self.store.get_node(node_id)
        if node is None or self.podcast is None:
            return StreamResult(node_id=node_id, error=f"node not found: {node_id}")
        if node.node_type not in (NodeType.TOPIC, NodeType.ROOT):
            return StreamResult(node_id=node_id, error=f"can't generate content for a {node.node_type.value} node")
        if self.controller.is_busy:
            return StreamResult(node_id=node_id, error="another generation is in progress")

        self.pruning.commit(node_id)
        self.pruning.clear_children(node_id, lanes=(NodeType.CONTENT,))

        request = self._content_request(node.title, GenerationKind.CONTENT)
        placeholder = PodcastNode.create_content(
            self.podcast.id, node_id, node.title, self.store.next_order_index(node_id)
        )
        self.store.add_nodes([placeholder], mark_dirty=False)
        self.store.add_to_path(placeholder.id)
        self.layout()

        result = await self._stream(placeholder.id, request)
        self.layout()
        return result

    async def generate_ending(self, node_id: str) -> StreamResult:
        """stream the closing segment into an ending node."""
        node = self.store.get_node(node_id)
        if node is None or self.podcast is None:
            return StreamResult(node_id=node_id, error=f"node not found: {node_id}")
        if node.node_type != NodeType.ENDING:
            return StreamResult(node_id=node_id, error=f"not an ending node: {node_id}")
        if self.controller.is_busy:
            return StreamResult(node_id=node_id, error="another generation is in progress")

        request = self._content_request(node.title, GenerationKind.ENDING)
        if node_id not in self.store.selected_path:
            self.store.add_to_path(node_id)

        result = await self._stream(node_id, request)
        self.layout()
        return result

    def _content_request(self, current_topic: str, kind: GenerationKind) -> ContentRequest:
        podcast = self.podcast
        return ContentRequest(
            root_topic=podcast.root_topic,
            path_nodes=self.store.get_path_nodes(),
            current_topic=current_topic,
            script_style=podcast.script_style,
            host_name=podcast.host_name,
            co_host_name=podcast.co_host_name,
            kind=kind,
        )

    async def _stream(self, node_id: str, request: ContentRequest) -> StreamResult:
        result = await self.controller.run(node_id, self.generator.stream_content(request))
        if result.ok:
            logger.info("generated %d chars into %s", len(result.text), node_id)
        return result

    # --- editing ---

    def delete_node(self, node_id: str) -> list[str]:
        """delete a node and its subtree. the root is kept."""
        removed = self.pruning.delete_subtree(node_id)
        if removed:
            self.layout()
        return removed

    def toggle_expand(self, node_id: str) -> Optional[bool]:
        """flip a node's expanded flag. returns the new value."""
        node = self.store.get_node(node_id)
        if node is None:
            return None
        self.store.update_node(node_id, is_expanded=not node.is_expanded)
        return not node.is_expanded

    def select(self, node_id: Optional[str]) -> None:
        if node_id is None or self.store.get_node(node_id) is not None:
            self.store.set_active_node(node_id)

    async def update_podcast(self, **fields) -> Podcast:
        """edit podcast metadata (title, style, hosts) and persist it now."""
        if self.podcast is None:
            raise PersistenceError("no podcast loaded")
        style: Union[ScriptStyle, str, None] = fields.get("script_style")
        if isinstance(style, str):
            fields["script_style"] = ScriptStyle(style)
        updated = await self.persistence.update_podcast(self.podcast.id, **fields)
        self.store.set_podcast(updated)
        return updated

    # --- derived views ---

    def layout(self) -> dict[str, Position]:
        """recompute positions for the current tree."""
        self.positions = apply_layout(self.store)
        return self.positions

    def export(self, path_ids: Optional[list[str]] = None) -> ExportResult:
        """markdown for the narrated path, or the whole tree when there's none."""
        if self.podcast is None:
            raise PersistenceError("no podcast loaded")
        ids = path_ids or list(self.store.selected_path) or list(self.store.nodes)
        return export_markdown(self.podcast, self.store.nodes.values(), ids)

    async def save(self) -> bool:
        """save now if there are unsaved changes."""
        return await self.autosave.save_now()
