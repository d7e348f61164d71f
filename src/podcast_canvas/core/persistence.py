"""persistence backends for podcasts and their nodes.

json files on disk for real use, an in-memory backend for tests. both
copy records on the way in and out so callers never share node objects
with storage.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from .models import Podcast, PodcastNode

logger = logging.getLogger(__name__)


# --- configuration ---

DATA_DIR_ENV_VAR = "PODCAST_CANVAS_DIR"


class PersistenceError(RuntimeError):
    """storage backend failure."""


def get_data_dir() -> Path:
    """get the default podcast storage directory."""
    override = os.environ.get(DATA_DIR_ENV_VAR)
    data_dir = Path(override).expanduser() if override else Path.home() / ".podcast-canvas"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


@runtime_checkable
class PersistenceService(Protocol):
    """protocol for podcast storage (file-backed or in-memory)."""

    async def create_podcast(self, podcast: Podcast, root: PodcastNode) -> None: ...

    async def get_podcast(self, podcast_id: str) -> Optional[Podcast]: ...

    async def list_podcasts(self, user_id: Optional[str] = None) -> list[Podcast]: ...

    async def update_podcast(self, podcast_id: str, **fields) -> Podcast: ...

    async def fetch_nodes(self, podcast_id: str) -> list[PodcastNode]: ...

    async def upsert_nodes(self, podcast_id: str, nodes: list[PodcastNode]) -> None: ...

    async def delete_nodes(self, podcast_id: str, node_ids: list[str]) -> None: ...

    async def autosave(self, podcast_id: str, nodes: list[PodcastNode], canvas_state: dict) -> None: ...


def _copy_node(node: PodcastNode) -> PodcastNode:
    return PodcastNode.from_dict(node.to_dict())


def _apply_podcast_fields(podcast: Podcast, fields: dict) -> Podcast:
    d = podcast.to_dict()
    for key, value in fields.items():
        if key not in d:
            raise PersistenceError(f"unknown podcast field: {key}")
        d[key] = value.value if hasattr(value, "value") else value
    d["updated_at"] = datetime.now().isoformat()
    return Podcast.from_dict(d)


def _by_creation(nodes: list[PodcastNode]) -> list[PodcastNode]:
    return sorted(nodes, key=lambda n: n.created_at)


class MemoryPersistence:
    """in-memory storage for tests.

    set `failing = True` to make every call raise PersistenceError.
    """

    def __init__(self) -> None:
        self.podcasts: dict[str, Podcast] = {}
        self.nodes: dict[str, dict[str, PodcastNode]] = {}
        self.failing = False
        self.calls: list[str] = []

    def _check(self, op: str) -> None:
        self.calls.append(op)
        if self.failing:
            raise PersistenceError(f"storage unavailable: {op}")

    def _require(self, podcast_id: str) -> dict[str, PodcastNode]:
        if podcast_id not in self.podcasts:
            raise PersistenceError(f"podcast not found: {podcast_id}")
        return self.nodes.setdefault(podcast_id, {})

    async def create_podcast(self, podcast: Podcast, root: PodcastNode) -> None:
        self._check("create_podcast")
        self.podcasts[podcast.id] = Podcast.from_dict(podcast.to_dict())
        self.nodes[podcast.id] = {root.id: _copy_node(root)}

    async def get_podcast(self, podcast_id: str) -> Optional[Podcast]:
        self._check("get_podcast")
        podcast = self.podcasts.get(podcast_id)
        return Podcast.from_dict(podcast.to_dict()) if podcast else None

    async def list_podcasts(self, user_id: Optional[str] = None) -> list[Podcast]:
        self._check("list_podcasts")
        podcasts = [p for p in self.podcasts.values() if user_id is None or p.user_id == user_id]
        return sorted(podcasts, key=lambda p: p.updated_at, reverse=True)

    async def update_podcast(self, podcast_id: str, **fields) -> Podcast:
        self._check("update_podcast")
        self._require(podcast_id)
        self.podcasts[podcast_id] = _apply_podcast_fields(self.podcasts[podcast_id], fields)
        return self.podcasts[podcast_id]

    async def fetch_nodes(self, podcast_id: str) -> list[PodcastNode]:
        self._check("fetch_nodes")
        return _by_creation([_copy_node(n) for n in self._require(podcast_id).values()])

    async def upsert_nodes(self, podcast_id: str, nodes: list[PodcastNode]) -> None:
        self._check("upsert_nodes")
        stored = self._require(podcast_id)
        for node in nodes:
            stored[node.id] = _copy_node(node)

    async def delete_nodes(self, podcast_id: str, node_ids: list[str]) -> None:
        self._check("delete_nodes")
        stored = self._require(podcast_id)
        for nid in node_ids:
            stored.pop(nid, None)

    async def autosave(self, podcast_id: str, nodes: list[PodcastNode], canvas_state: dict) -> None:
        """store a full snapshot of the local tree; nodes absent from it are dropped."""
        self._check("autosave")
        self._require(podcast_id)
        self.podcasts[podcast_id] = _apply_podcast_fields(
            self.podcasts[podcast_id],
            {"canvas_state": canvas_state, "last_autosave_at": datetime.now().isoformat()},
        )
        self.nodes[podcast_id] = {n.id: _copy_node(n) for n in nodes}


class JsonFilePersistence:
    """one json file per podcast: {"podcast": {...}, "nodes": {id: {...}}}."""

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = Path(base_dir) if base_dir else get_data_dir()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, podcast_id: str) -> Path:
        return self.base_dir / f"{podcast_id}.json"

    def _read(self, podcast_id: str) -> dict:
        path = self._path(podcast_id)
        if not path.exists():
            raise PersistenceError(f"podcast not found: {podcast_id}")
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"failed to read {path}: {e}") from e

    def _write(self, podcast_id: str, data: dict) -> None:
        """write atomically: temp file in the same dir, then rename."""
        path = self._path(podcast_id)
        try:
            fd, tmp = tempfile.mkstemp(dir=self.base_dir, prefix=f".{podcast_id}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
        except OSError as e:
            raise PersistenceError(f"failed to write {path}: {e}") from e

    async def create_podcast(self, podcast: Podcast, root: PodcastNode) -> None:
        self._write(podcast.id, {"podcast": podcast.to_dict(), "nodes": {root.id: root.to_dict()}})

    async def get_podcast(self, podcast_id: str) -> Optional[Podcast]:
        if not self._path(podcast_id).exists():
            return None
        return Podcast.from_dict(self._read(podcast_id)["podcast"])

    async def list_podcasts(self, user_id: Optional[str] = None) -> list[Podcast]:
        podcasts = []
        for path in self.base_dir.glob("*.json"):
            if path.name.startswith("."):
                continue
            try:
                with open(path, encoding="utf-8") as f:
                    podcast = Podcast.from_dict(json.load(f)["podcast"])
            except (OSError, json.JSONDecodeError, KeyError, ValueError, TypeError):
                logger.warning("skipping unreadable podcast file %s", path)
                continue
            if user_id is None or podcast.user_id == user_id:
                podcasts.append(podcast)
        return sorted(podcasts, key=lambda p: p.updated_at, reverse=True)

    async def update_podcast(self, podcast_id: str, **fields) -> Podcast:
        data = self._read(podcast_id)
        podcast = _apply_podcast_fields(Podcast.from_dict(data["podcast"]), fields)
        data["podcast"] = podcast.to_dict()
        self._write(podcast_id, data)
        return podcast

    async def fetch_nodes(self, podcast_id: str) -> list[PodcastNode]:
        data = self._read(podcast_id)
        return _by_creation([PodcastNode.from_dict(nd) for nd in data.get("nodes", {}).values()])

    async def upsert_nodes(self, podcast_id: str, nodes: list[PodcastNode]) -> None:
        data = self._read(podcast_id)
        stored = data.setdefault("nodes", {})
        for node in nodes:
            stored[node.id] = node.to_dict()
        self._write(podcast_id, data)

    async def delete_nodes(self, podcast_id: str, node_ids: list[str]) -> None:
        data = self._read(podcast_id)
        stored = data.setdefault("nodes", {})
        for nid in node_ids:
            stored.pop(nid, None)
        self._write(podcast_id, data)

    async def autosave(self, podcast_id: str, nodes: list[PodcastNode], canvas_state: dict) -> None:
        """store a full snapshot of the local tree; nodes absent from it are dropped."""
        data = self._read(podcast_id)
        podcast = _apply_podcast_fields(
            Podcast.from_dict(data["podcast"]),
            {"canvas_state": canvas_state, "last_autosave_at": datetime.now().isoformat()},
        )
        data["podcast"] = podcast.to_dict()
        data["nodes"] = {n.id: n.to_dict() for n in nodes}
        self._write(podcast_id, data)
