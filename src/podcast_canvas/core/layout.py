"""tree layout for the podcast canvas.

positions are recomputed from scratch on every tree change, so the
layout is a pure function of the node set: no state survives between
calls and the input order does not matter.

each node's children are split into lanes:
  content  - stacked directly below the parent, at the parent's x
  topic    - a row below the content lane, centered under the parent
  ending   - centered below the topic row
  more     - below the ending (or the topic row when there's no ending)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, TYPE_CHECKING

from .models import PodcastNode, NodeType

if TYPE_CHECKING:
    from .store import PodcastStore


# --- configuration ---

VERTICAL_GAP = 120
HORIZONTAL_SPACING = 280  # one lane width


@dataclass(frozen=True)
class Position:
    x: float
    y: float


@dataclass(frozen=True)
class Bounds:
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y


@dataclass(frozen=True)
class _Subtree:
    width: float
    height: float
    positions: dict[str, Position]  # relative to the subtree's own node at (0, 0)


def compute_layout(nodes: Iterable[PodcastNode]) -> dict[str, Position]:
    """compute canvas positions for every node reachable from the root.

    returns a fresh id -> position map. nodes not connected to the root
    are left out; the caller may fall back to their cached position.
    """
    nodes = list(nodes)
    root = _find_root(nodes)
    if root is None:
        return {}
    children_map = _build_children_map(nodes)
    return _layout_subtree(root, children_map).positions


def subtree_width(node_id: str, nodes: Iterable[PodcastNode]) -> float:
    """reported width of the subtree rooted at node_id."""
    nodes = list(nodes)
    by_id = {n.id: n for n in nodes}
    if node_id not in by_id:
        return 0.0
    return _layout_subtree(by_id[node_id], _build_children_map(nodes)).width


def layout_bounds(positions: dict[str, Position]) -> Optional[Bounds]:
    """bounding box of a layout, or None when it's empty."""
    if not positions:
        return None
    xs = [p.x for p in positions.values()]
    ys = [p.y for p in positions.values()]
    return Bounds(min(xs), min(ys), max(xs), max(ys))


def apply_layout(store: PodcastStore) -> dict[str, Position]:
    """recompute the layout and write it into the nodes' position cache.

    the cache is derived data, so this does not mark the store dirty.
    """
    positions = compute_layout(store.nodes.values())
    for node_id, pos in positions.items():
        node = store.get_node(node_id)
        if node and (node.position_x, node.position_y) != (pos.x, pos.y):
            store.update_node(node_id, mark_dirty=False, position_x=pos.x, position_y=pos.y)
    return positions


# --- internals ---

def _find_root(nodes: list[PodcastNode]) -> Optional[PodcastNode]:
    roots = [n for n in nodes if n.node_type == NodeType.ROOT and n.parent_id is None]
    if not roots:
        return None
    # exactly one is expected; pick deterministically if the data disagrees
    return min(roots, key=lambda n: (n.created_at, n.id))


def _build_children_map(nodes: list[PodcastNode]) -> dict[str, list[PodcastNode]]:
    children_map: dict[str, list[PodcastNode]] = {}
    for node in nodes:
        if node.parent_id:
            children_map.setdefault(node.parent_id, []).append(node)
    for siblings in children_map.values():
        siblings.sort(key=lambda n: (n.order_index, n.created_at, n.id))
    return children_map


def _shifted(positions: dict[str, Position], dx: float, dy: float) -> dict[str, Position]:
    return {nid: Position(p.x + dx, p.y + dy) for nid, p in positions.items()}


def _layout_subtree(node: PodcastNode, children_map: dict[str, list[PodcastNode]]) -> _Subtree:
    positions: dict[str, Position] = {node.id: Position(0.0, 0.0)}
    children = children_map.get(node.id, [])

    content = [c for c in children if c.node_type == NodeType.CONTENT]
    topics = [c for c in children if c.node_type == NodeType.TOPIC]
    endings = [c for c in children if c.node_type == NodeType.ENDING]
    more = [c for c in children if c.node_type == NodeType.MORE]

    width = float(HORIZONTAL_SPACING)
    y = float(VERTICAL_GAP)

    # content lane: stacked below the parent, doesn't widen the row
    for child in content:
        sub = _layout_subtree(child, children_map)
        positions.update(_shifted(sub.positions, 0.0, y))
        y += sub.height

    # topic lane: lay out each subtree first, then center the row
    if topics:
        subs = [_layout_subtree(child, children_map) for child in topics]
        widths = [max(sub.width, HORIZONTAL_SPACING) for sub in subs]
        total = sum(widths)
        offset = -total / 2
        for sub, w in zip(subs, widths):
            positions.update(_shifted(sub.positions, offset + w / 2, y))
            offset += w
        width = max(total, HORIZONTAL_SPACING)
        y += max(sub.height for sub in subs)

    for child in endings + more:
        sub = _layout_subtree(child, children_map)
        positions.update(_shifted(sub.positions, 0.0, y))
        y += sub.height

    return _Subtree(width=width, height=y, positions=positions)
