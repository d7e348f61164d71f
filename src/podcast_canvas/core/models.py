"""core data model for podcast canvas.

a podcast is a tree of nodes: one root topic, generated sub-topics,
streamed script content, and a closing segment.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, asdict, fields
from datetime import datetime
from enum import Enum
from typing import Optional


# --- configuration ---

# reserved sibling indices for the terminal lanes, far above any topic index
ENDING_ORDER_INDEX = 1_000_000
MORE_ORDER_INDEX = 1_000_001

ENDING_TITLE = "结束语"
MORE_TITLE = "更多话题"
DEFAULT_HOST_NAME = "主播"


class NodeType(Enum):
    ROOT = "root"         # the podcast's root topic
    TOPIC = "topic"       # generated sub-topic (title + one-line summary)
    CONTENT = "content"   # streamed script segment for a topic
    ENDING = "ending"     # closing segment
    MORE = "more"         # "load more topics" affordance


class ScriptStyle(Enum):
    MONOLOGUE = "monologue"
    DIALOGUE = "dialogue"


class PodcastStatus(Enum):
    DRAFT = "draft"
    COMPLETED = "completed"


def _now() -> str:
    return datetime.now().isoformat()


def _generate_id() -> str:
    """generate a unique id."""
    return uuid.uuid4().hex


@dataclass
class Podcast:
    """podcast session metadata."""

    id: str
    user_id: str
    title: str
    root_topic: str
    script_style: ScriptStyle = ScriptStyle.MONOLOGUE
    host_name: str = DEFAULT_HOST_NAME
    co_host_name: Optional[str] = None
    status: PodcastStatus = PodcastStatus.DRAFT
    canvas_state: dict = field(default_factory=dict)
    last_autosave_at: Optional[str] = None
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    @classmethod
    def create(
        cls,
        user_id: str,
        title: str,
        root_topic: str,
        script_style: ScriptStyle = ScriptStyle.MONOLOGUE,
        host_name: Optional[str] = None,
        co_host_name: Optional[str] = None,
    ) -> Podcast:
        """create a new draft podcast."""
        return cls(
            id=_generate_id(),
            user_id=user_id,
            title=title,
            root_topic=root_topic,
            script_style=script_style,
            host_name=host_name or DEFAULT_HOST_NAME,
            co_host_name=co_host_name,
        )

    def to_dict(self) -> dict:
        """serialize to dict for json."""
        d = asdict(self)
        d["script_style"] = self.script_style.value
        d["status"] = self.status.value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Podcast:
        """deserialize from dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        d = {k: v for k, v in d.items() if k in known}
        d["script_style"] = ScriptStyle(d.get("script_style") or ScriptStyle.MONOLOGUE.value)
        d["status"] = PodcastStatus(d.get("status") or PodcastStatus.DRAFT.value)
        if not d.get("host_name"):
            d["host_name"] = DEFAULT_HOST_NAME
        return cls(**d)


@dataclass
class PodcastNode:
    """single node in the podcast tree."""

    id: str
    podcast_id: str
    node_type: NodeType
    title: str
    parent_id: Optional[str] = None
    content: Optional[str] = None  # None/empty while awaiting generation
    position_x: float = 0.0        # cache only, layout is authoritative
    position_y: float = 0.0
    is_expanded: bool = False
    is_selected: bool = False
    order_index: int = 0
    created_at: str = field(default_factory=_now)
    metadata: dict = field(default_factory=dict)

    @classmethod
    def create_root(cls, podcast_id: str, topic: str) -> PodcastNode:
        """create the root node for a podcast."""
        return cls(
            id=_generate_id(),
            podcast_id=podcast_id,
            node_type=NodeType.ROOT,
            title=topic,
        )

    @classmethod
    def create_topic(
        cls,
        podcast_id: str,
        parent_id: str,
        title: str,
        summary: str,
        order_index: int,
    ) -> PodcastNode:
        """create a generated sub-topic; the summary is kept as its body."""
        return cls(
            id=_generate_id(),
            podcast_id=podcast_id,
            parent_id=parent_id,
            node_type=NodeType.TOPIC,
            title=title,
            content=summary,
            order_index=order_index,
        )

    @classmethod
    def create_content(
        cls, podcast_id: str, parent_id: str, title: str, order_index: int = 0
    ) -> PodcastNode:
        """create an empty content placeholder that a stream will fill."""
        return cls(
            id=_generate_id(),
            podcast_id=podcast_id,
            parent_id=parent_id,
            node_type=NodeType.CONTENT,
            title=title,
            content="",
            is_expanded=True,
            order_index=order_index,
        )

    @classmethod
    def create_ending(cls, podcast_id: str, parent_id: str) -> PodcastNode:
        return cls(
            id=_generate_id(),
            podcast_id=podcast_id,
            parent_id=parent_id,
            node_type=NodeType.ENDING,
            title=ENDING_TITLE,
            order_index=ENDING_ORDER_INDEX,
        )

    @classmethod
    def create_more(cls, podcast_id: str, parent_id: str) -> PodcastNode:
        return cls(
            id=_generate_id(),
            podcast_id=podcast_id,
            parent_id=parent_id,
            node_type=NodeType.MORE,
            title=MORE_TITLE,
            order_index=MORE_ORDER_INDEX,
        )

    @property
    def has_content(self) -> bool:
        return bool(self.content and self.content.strip())

    def to_dict(self) -> dict:
        """serialize to dict for json."""
        d = asdict(self)
        d["node_type"] = self.node_type.value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> PodcastNode:
        """deserialize from dict.

        records written before the "more" node type existed carry an
        isMoreButton metadata flag instead; those are migrated here.
        """
        known = {f.name for f in fields(cls)}
        d = {k: v for k, v in d.items() if k in known}
        metadata = dict(d.get("metadata") or {})
        if metadata.pop("isMoreButton", False):
            d["node_type"] = NodeType.MORE.value
        d["metadata"] = metadata
        d["node_type"] = NodeType(d["node_type"])
        return cls(**d)


# --- results ---

@dataclass
class TopicSuggestion:
    """one generated sub-topic before it becomes a node."""
    title: str
    summary: str = ""


class GenerationKind(Enum):
    CONTENT = "content"
    ENDING = "ending"


@dataclass
class TopicRequest:
    """one-shot topic expansion request."""
    root_topic: str
    path_nodes: list[PodcastNode]
    count: int
    existing_titles: list[str] = field(default_factory=list)
    current_topic: Optional[str] = None  # title of the node being expanded


@dataclass
class ContentRequest:
    """streamed content/ending request."""
    root_topic: str
    path_nodes: list[PodcastNode]
    current_topic: str
    script_style: ScriptStyle = ScriptStyle.MONOLOGUE
    host_name: str = DEFAULT_HOST_NAME
    co_host_name: Optional[str] = None
    kind: GenerationKind = GenerationKind.CONTENT


@dataclass
class TopicResult:
    """outcome of a topic request; failures carry an error instead of raising."""
    topics: list[TopicSuggestion] = field(default_factory=list)
    nodes: list[PodcastNode] = field(default_factory=list)  # filled once inserted
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class StreamResult:
    """outcome of one streamed generation into a node."""
    node_id: str
    text: str = ""
    frames: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class GenerationError(RuntimeError):
    """generation service failure (transport, status, or unparseable output)."""
