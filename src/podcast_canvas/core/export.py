"""markdown export of a narrated path."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from .models import ENDING_TITLE, NodeType, Podcast, PodcastNode


# --- configuration ---

CHARS_PER_MINUTE = 250  # spoken mandarin reading rate


@dataclass
class ExportResult:
    markdown: str
    char_count: int
    estimated_minutes: int
    path_node_ids: list[str]


def estimate_minutes(char_count: int) -> int:
    return max(1, round(char_count / CHARS_PER_MINUTE))


def _format_date(d: date) -> str:
    return f"{d.year}年{d.month}月{d.day}日"


def export_markdown(
    podcast: Podcast,
    nodes: Iterable[PodcastNode],
    path_ids: list[str],
    today: Optional[date] = None,
) -> ExportResult:
    """flatten the nodes on `path_ids` (in that order) into one document.

    ids missing from `nodes` are skipped. topic and content nodes without
    a body are left out; the ending always gets its heading.
    """
    by_id = {n.id: n for n in nodes}
    path = [by_id[nid] for nid in path_ids if nid in by_id]

    lines = [f"# {podcast.title}", ""]
    for node in path:
        if node.node_type == NodeType.ROOT:
            lines += [f"> 主题：{node.title}", ""]
        elif node.node_type == NodeType.ENDING:
            lines += [f"## {ENDING_TITLE}", ""]
            if node.content:
                lines += [node.content, ""]
        elif node.node_type in (NodeType.TOPIC, NodeType.CONTENT) and node.has_content:
            lines += [f"## {node.title}", "", node.content, ""]

    char_count = sum(len(n.content or "") for n in path)
    minutes = estimate_minutes(char_count)
    stamp = _format_date(today or date.today())
    lines += ["---", "", f"*生成于 {stamp} | 总字数 {char_count} 字 | 预计时长 {minutes} 分钟*"]

    return ExportResult(
        markdown="\n".join(lines),
        char_count=char_count,
        estimated_minutes=minutes,
        path_node_ids=[n.id for n in path],
    )
