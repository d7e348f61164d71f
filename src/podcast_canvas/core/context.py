"""context compression for generation requests.

keeps prompt size bounded as the narrated path grows: only the most
recent segments are sent in full, older ones are cut to a short prefix.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Literal

from .models import PodcastNode, NodeType


# --- configuration ---

DEFAULT_KEEP_RECENT = 3
DEFAULT_PREFIX_LENGTH = 100
TRUNCATION_MARKER = "..."


@dataclass(frozen=True)
class ContextMessage:
    role: Literal["system", "user", "assistant"]
    content: str


def compress_context(
    path: list[PodcastNode],
    keep_recent: int = DEFAULT_KEEP_RECENT,
    prefix_length: int = DEFAULT_PREFIX_LENGTH,
) -> list[PodcastNode]:
    """compress older path nodes, keep the last `keep_recent` intact.

    titles always survive; bodies of older nodes are cut to
    `prefix_length` chars plus a marker. input nodes are never modified.
    """
    if len(path) <= keep_recent:
        return list(path)

    cutoff = len(path) - keep_recent
    compressed = []
    for index, node in enumerate(path):
        if index >= cutoff or not node.content:
            compressed.append(node)
            continue
        compressed.append(
            dataclasses.replace(node, content=node.content[:prefix_length] + TRUNCATION_MARKER)
        )
    return compressed


def build_context_messages(root_topic: str, path: list[PodcastNode]) -> list[ContextMessage]:
    """frame the root topic, then summarize what's been narrated so far.

    the root node is skipped in the summary since its topic is already
    the framing message.
    """
    messages = [ContextMessage(role="user", content=f"## 播客主题\n{root_topic}")]

    narrated = [n for n in path if n.node_type != NodeType.ROOT]
    if narrated:
        sections = []
        for i, node in enumerate(narrated, start=1):
            heading = f"### {i}. {node.title}"
            sections.append(f"{heading}\n{node.content}" if node.content else heading)
        messages.append(ContextMessage(role="user", content="## 已讨论内容\n" + "\n\n".join(sections)))

    return messages


def render_context(messages: list[ContextMessage]) -> str:
    """flatten context messages into a single prompt block."""
    return "\n\n---\n\n".join(m.content for m in messages)
