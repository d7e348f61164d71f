"""fastapi server for podcast canvas.

exposes podcast storage, topic generation and streamed script
generation as REST endpoints for a browser canvas.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from ..core.client import ClaudeGenerationService, GenerationService, MockGenerationService
from ..core.export import export_markdown
from ..core.frames import FrameDecoder, FrameType
from ..core.models import (
    ContentRequest,
    GenerationError,
    GenerationKind,
    NodeType,
    Podcast,
    PodcastNode,
    PodcastStatus,
    ScriptStyle,
    TopicRequest,
)
from ..core.persistence import JsonFilePersistence, PersistenceError, PersistenceService
from ..core.store import PodcastStore
from ..core.studio import DEFAULT_MORE_COUNT, DEFAULT_TOPIC_COUNT, DEFAULT_USER_ID

logger = logging.getLogger(__name__)


# --- configuration ---

STREAM_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


# --- pydantic models for api ---

class PodcastCreate(BaseModel):
    """request to create a podcast."""
    title: str
    root_topic: str
    script_style: str = ScriptStyle.MONOLOGUE.value
    host_name: Optional[str] = None
    co_host_name: Optional[str] = None
    user_id: str = DEFAULT_USER_ID


class PodcastUpdate(BaseModel):
    """editable podcast fields; unset fields are left alone."""
    title: Optional[str] = None
    script_style: Optional[str] = None
    host_name: Optional[str] = None
    co_host_name: Optional[str] = None
    status: Optional[str] = None


class AutosaveRequest(BaseModel):
    """full snapshot of the client's tree."""
    nodes: list[dict]
    canvas_state: dict = {}


class NodeDelete(BaseModel):
    node_ids: list[str]


class TopicGenerate(BaseModel):
    """request to expand a node into sub-topics."""
    podcast_id: str
    parent_node_id: str
    root_topic: str
    path_nodes: list[dict] = []
    count: Optional[int] = None
    existing_titles: list[str] = []


class ContentGenerate(BaseModel):
    """request to stream a content segment into a node."""
    podcast_id: str
    node_id: str
    root_topic: str
    current_topic: str
    path_nodes: list[dict] = []
    script_style: Optional[str] = None
    host_name: Optional[str] = None
    co_host_name: Optional[str] = None


class EndingGenerate(BaseModel):
    """request to stream the closing segment into an ending node."""
    podcast_id: str
    node_id: str
    root_topic: str
    path_nodes: list[dict] = []
    script_style: Optional[str] = None
    host_name: Optional[str] = None
    co_host_name: Optional[str] = None


class ExportRequest(BaseModel):
    podcast_id: str
    path_node_ids: list[str]


# --- app state ---

class AppState:
    """shared storage and generation backends."""

    def __init__(self, data_dir: Optional[Path] = None, mock: bool = False):
        self.data_dir = data_dir
        self.mock = mock
        self._persistence: Optional[PersistenceService] = None
        self._generator: Optional[GenerationService] = None

    @property
    def persistence(self) -> PersistenceService:
        if self._persistence is None:
            self._persistence = JsonFilePersistence(self.data_dir)
        return self._persistence

    @property
    def generator(self) -> GenerationService:
        if self._generator is None:
            if self.mock:
                self._generator = MockGenerationService()
            else:
                self._generator = ClaudeGenerationService()
        return self._generator


state = AppState()


# --- helpers ---

def _parse_style(value: Optional[str]) -> Optional[ScriptStyle]:
    if value is None:
        return None
    try:
        return ScriptStyle(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"invalid script_style: {value}")


def _parse_nodes(records: list[dict]) -> list[PodcastNode]:
    try:
        return [PodcastNode.from_dict(r) for r in records]
    except (KeyError, TypeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"invalid node: {e}")


async def _require_podcast(podcast_id: str) -> Podcast:
    podcast = await state.persistence.get_podcast(podcast_id)
    if podcast is None:
        raise HTTPException(status_code=404, detail=f"podcast not found: {podcast_id}")
    return podcast


async def _require_node(podcast_id: str, node_id: str) -> tuple[list[PodcastNode], PodcastNode]:
    nodes = await state.persistence.fetch_nodes(podcast_id)
    for node in nodes:
        if node.id == node_id:
            return nodes, node
    raise HTTPException(status_code=404, detail=f"node not found: {node_id}")


async def _stream_and_store(
    podcast_id: str, node_id: str, chunks: AsyncIterator[bytes]
) -> AsyncIterator[bytes]:
    """pass frames through to the client, then store the finished text."""
    decoder = FrameDecoder()
    parts: list[str] = []
    finished = False
    async for chunk in chunks:
        for frame in decoder.feed(chunk):
            if frame.type == FrameType.TEXT:
                parts.append(frame.text)
            elif frame.type == FrameType.DONE:
                finished = True
        yield chunk

    if not finished:
        return
    try:
        nodes = await state.persistence.fetch_nodes(podcast_id)
        stored = [n for n in nodes if n.id == node_id]
        if stored:
            stored[0].content = "".join(parts)
            await state.persistence.upsert_nodes(podcast_id, stored)
    except PersistenceError as e:
        # the client's next autosave carries the text anyway
        logger.warning("failed to store generated text for %s: %s", node_id, e)


# --- lifespan ---

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("podcast canvas api starting (mock=%s)", state.mock)
    yield


# --- app ---

app = FastAPI(
    title="podcast canvas api",
    description="REST API for branching podcast script generation",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- endpoints ---

@app.get("/health")
async def health():
    """health check."""
    return {"status": "ok"}


@app.post("/podcast")
async def create_podcast(req: PodcastCreate):
    """create a podcast and its root node."""
    if not req.title.strip() or not req.root_topic.strip():
        raise HTTPException(status_code=400, detail="title and root_topic are required")

    podcast = Podcast.create(
        user_id=req.user_id,
        title=req.title.strip(),
        root_topic=req.root_topic.strip(),
        script_style=_parse_style(req.script_style),
        host_name=req.host_name,
        co_host_name=req.co_host_name,
    )
    root = PodcastNode.create_root(podcast.id, podcast.root_topic)
    await state.persistence.create_podcast(podcast, root)
    logger.info("created podcast %s", podcast.id)
    return {"podcast": podcast.to_dict(), "root": root.to_dict()}


@app.get("/podcast")
async def list_podcasts(user_id: Optional[str] = None):
    """list podcasts, most recently updated first."""
    podcasts = await state.persistence.list_podcasts(user_id)
    return [p.to_dict() for p in podcasts]


@app.get("/podcast/{podcast_id}")
async def get_podcast(podcast_id: str):
    """get a podcast with all of its nodes."""
    podcast = await _require_podcast(podcast_id)
    nodes = await state.persistence.fetch_nodes(podcast_id)
    return {"podcast": podcast.to_dict(), "nodes": [n.to_dict() for n in nodes]}


@app.patch("/podcast/{podcast_id}")
async def update_podcast(podcast_id: str, req: PodcastUpdate):
    """edit title, style or hosts."""
    await _require_podcast(podcast_id)
    fields = req.model_dump(exclude_none=True)
    if "script_style" in fields:
        fields["script_style"] = _parse_style(fields["script_style"])
    if "status" in fields:
        try:
            fields["status"] = PodcastStatus(fields["status"])
        except ValueError:
            raise HTTPException(status_code=400, detail=f"invalid status: {fields['status']}")
    if not fields:
        raise HTTPException(status_code=400, detail="nothing to update")

    podcast = await state.persistence.update_podcast(podcast_id, **fields)
    return podcast.to_dict()


@app.put("/podcast/{podcast_id}/autosave")
async def autosave(podcast_id: str, req: AutosaveRequest):
    """store the client's full tree snapshot."""
    await _require_podcast(podcast_id)
    nodes = _parse_nodes(req.nodes)
    foreign = [n.id for n in nodes if n.podcast_id != podcast_id]
    if foreign:
        raise HTTPException(status_code=400, detail=f"nodes belong to another podcast: {foreign}")

    try:
        await state.persistence.autosave(podcast_id, nodes, req.canvas_state)
    except PersistenceError as e:
        logger.error("autosave of %s failed: %s", podcast_id, e)
        raise HTTPException(status_code=500, detail="failed to save podcast")

    podcast = await _require_podcast(podcast_id)
    return {"saved": True, "node_count": len(nodes), "last_autosave_at": podcast.last_autosave_at}


@app.delete("/podcast/{podcast_id}/nodes")
async def delete_nodes(podcast_id: str, req: NodeDelete):
    """delete nodes by id; the caller sends the full subtree closure."""
    if not req.node_ids:
        raise HTTPException(status_code=400, detail="node_ids is required")
    await _require_podcast(podcast_id)
    await state.persistence.delete_nodes(podcast_id, req.node_ids)
    return {"deleted": req.node_ids}


async def _generate_topics(req: TopicGenerate, default_count: int) -> dict:
    if not req.root_topic.strip():
        raise HTTPException(status_code=400, detail="root_topic is required")
    await _require_podcast(req.podcast_id)
    nodes, parent = await _require_node(req.podcast_id, req.parent_node_id)

    request = TopicRequest(
        root_topic=req.root_topic,
        path_nodes=_parse_nodes(req.path_nodes),
        count=req.count or default_count,
        existing_titles=req.existing_titles,
        current_topic=None if parent.node_type == NodeType.ROOT else parent.title,
    )
    try:
        topics = await state.generator.generate_topics(request)
    except GenerationError as e:
        logger.error("topic generation failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))

    siblings = PodcastStore()
    siblings.set_nodes(nodes)
    start = siblings.next_order_index(parent.id)
    new_nodes = [
        PodcastNode.create_topic(req.podcast_id, parent.id, t.title, t.summary, start + i)
        for i, t in enumerate(topics)
    ]
    await state.persistence.upsert_nodes(req.podcast_id, new_nodes)
    return {"topics": [n.to_dict() for n in new_nodes]}


@app.post("/generate/topics")
async def generate_topics(req: TopicGenerate):
    """expand a node into sub-topics and store them."""
    return await _generate_topics(req, DEFAULT_TOPIC_COUNT)


@app.post("/generate/more-topics")
async def generate_more_topics(req: TopicGenerate):
    """add more sub-topics, avoiding existing titles."""
    return await _generate_topics(req, DEFAULT_MORE_COUNT)


async def _content_stream(req, podcast: Podcast, current_topic: str, kind: GenerationKind):
    request = ContentRequest(
        root_topic=req.root_topic,
        path_nodes=_parse_nodes(req.path_nodes),
        current_topic=current_topic,
        script_style=_parse_style(req.script_style) or podcast.script_style,
        host_name=req.host_name or podcast.host_name,
        co_host_name=req.co_host_name or podcast.co_host_name,
        kind=kind,
    )
    chunks = state.generator.stream_content(request)
    return StreamingResponse(
        _stream_and_store(req.podcast_id, req.node_id, chunks),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )


@app.post("/generate/content")
async def generate_content(req: ContentGenerate):
    """stream a content segment as `data: {json}` frames."""
    if not req.root_topic.strip() or not req.current_topic.strip():
        raise HTTPException(status_code=400, detail="root_topic and current_topic are required")
    podcast = await _require_podcast(req.podcast_id)
    return await _content_stream(req, podcast, req.current_topic, GenerationKind.CONTENT)


@app.post("/generate/ending")
async def generate_ending(req: EndingGenerate):
    """stream the closing segment as `data: {json}` frames."""
    if not req.root_topic.strip():
        raise HTTPException(status_code=400, detail="root_topic is required")
    podcast = await _require_podcast(req.podcast_id)
    return await _content_stream(req, podcast, req.root_topic, GenerationKind.ENDING)


@app.post("/export/markdown")
async def export(req: ExportRequest):
    """render the visited path as a markdown document."""
    if not req.path_node_ids:
        raise HTTPException(status_code=400, detail="path_node_ids is required")
    podcast = await _require_podcast(req.podcast_id)
    nodes = await state.persistence.fetch_nodes(req.podcast_id)
    result = export_markdown(podcast, nodes, req.path_node_ids)
    return {
        "markdown": result.markdown,
        "char_count": result.char_count,
        "estimated_minutes": result.estimated_minutes,
    }


# --- entrypoint ---

def main():
    """run the api server."""
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="podcast canvas api server")
    parser.add_argument("--host", default="0.0.0.0", help="host to bind")
    parser.add_argument("--port", "-p", type=int, default=8000, help="port to bind")
    parser.add_argument("--data-dir", "-d", help="podcast storage directory")
    parser.add_argument("--mock", "-m", action="store_true", help="use mock generation service")
    parser.add_argument("--log-level", default="info", help="logging level")

    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper())

    global state
    state = AppState(
        data_dir=Path(args.data_dir) if args.data_dir else None,
        mock=args.mock,
    )

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
