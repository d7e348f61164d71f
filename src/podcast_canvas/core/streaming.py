"""streaming ingestion: one live generation stream into one node.

state machine:
    idle -> requesting -> streaming -> completing -> idle
    any non-idle state -> error

only one stream may be in flight per store; callers serialize their
generation requests. there is no cancel operation: a caller that stops
caring simply stops consuming, and fragments for a node that no longer
exists are dropped by the store.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import AsyncIterable, Callable, Optional, Union

from .frames import Frame, FrameDecoder, FrameType
from .models import PodcastNode, StreamResult
from .store import PodcastStore

logger = logging.getLogger(__name__)

Chunk = Union[bytes, str]


class StreamState(Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    COMPLETING = "completing"
    ERROR = "error"


class StreamAborted(Exception):
    """the service sent an explicit error frame."""


class StreamingIngestionController:
    """decodes a framed transport into store mutations for a target node."""

    def __init__(
        self,
        store: PodcastStore,
        on_state_change: Optional[Callable[[StreamState], None]] = None,
    ):
        self.store = store
        self.state = StreamState.IDLE
        self.target_node_id: Optional[str] = None
        self._on_state_change = on_state_change

    @property
    def is_busy(self) -> bool:
        return self.state in (StreamState.REQUESTING, StreamState.STREAMING, StreamState.COMPLETING)

    async def run(
        self,
        node_id: str,
        chunks: AsyncIterable[Chunk],
        placeholder: Optional[PodcastNode] = None,
    ) -> StreamResult:
        """consume a transport stream into node_id.

        placeholder: node to insert first when the target doesn't exist yet.
        returns a StreamResult; failures are reported in it, never raised.
        """
        if self.is_busy:
            return StreamResult(
                node_id=node_id,
                error=f"stream already in progress for node {self.target_node_id}",
            )

        self._begin(node_id, placeholder)
        result = StreamResult(node_id=node_id)
        decoder = FrameDecoder()
        iterator = chunks.__aiter__()

        try:
            async for chunk in iterator:
                if self._apply_all(decoder.feed(chunk), result):
                    return self._complete(result)
            self._apply_all(decoder.flush(), result)
            return self._complete(result)

        except StreamAborted as e:
            return self._fail(result, str(e))
        except asyncio.CancelledError:
            self._finish(StreamState.IDLE)
            raise
        except Exception as e:
            # transport failure: whatever arrived so far stays in the node
            return self._fail(result, f"stream transport failed: {e}")

        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception:
                    logger.debug("ignoring error closing stream", exc_info=True)

    # --- transitions ---

    def _set_state(self, state: StreamState) -> None:
        self.state = state
        if self._on_state_change:
            self._on_state_change(state)

    def _begin(self, node_id: str, placeholder: Optional[PodcastNode]) -> None:
        self.target_node_id = node_id
        self._set_state(StreamState.REQUESTING)
        self.store.set_streaming(True, node_id)

        # optimistic: an empty expanded body; not dirty until the text is whole
        if placeholder is not None and self.store.get_node(node_id) is None:
            self.store.add_nodes([placeholder], mark_dirty=False)
        self.store.update_node(node_id, mark_dirty=False, content="", is_expanded=True)

    def _apply_all(self, frames: list[Frame], result: StreamResult) -> bool:
        """apply decoded frames in order. returns True on a done frame."""
        for frame in frames:
            if self.state == StreamState.REQUESTING:
                self._set_state(StreamState.STREAMING)

            if frame.type == FrameType.ERROR:
                raise StreamAborted(frame.error or "generation failed")
            if frame.type == FrameType.DONE:
                return True

            result.frames += 1
            result.text += frame.text
            self.store.append_to_node_content(result.node_id, frame.text)
        return False

    def _complete(self, result: StreamResult) -> StreamResult:
        self._set_state(StreamState.COMPLETING)
        if self.store.get_node(result.node_id) is None:
            logger.debug("stream target %s gone before completion", result.node_id)
        else:
            self.store.mark_dirty()
        self._finish(StreamState.IDLE)
        return result

    def _fail(self, result: StreamResult, error: str) -> StreamResult:
        logger.warning("stream into %s failed: %s", result.node_id, error)
        result.error = error
        # partial text is kept, so it's eligible for the next save
        if self.store.get_node(result.node_id) is not None:
            self.store.mark_dirty()
        self._finish(StreamState.ERROR)
        return result

    def _finish(self, state: StreamState) -> None:
        self.store.set_streaming(False, None)
        self.target_node_id = None
        self._set_state(state)
