"""generation service clients.

the claude client talks to the model through claude-agent-sdk; the mock
client returns canned topics and fragments for tests and offline use.
both expose the same two calls: a one-shot topic expansion and a framed
content stream.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import AsyncIterator, Optional, Protocol, runtime_checkable

from claude_agent_sdk import (
    ClaudeAgentOptions,
    ClaudeSDKClient,
)

from .frames import done_frame, error_frame, text_frame
from .models import ContentRequest, GenerationError, TopicRequest, TopicSuggestion
from .prompts import assemble_content_prompt, assemble_topic_prompt, parse_topics

logger = logging.getLogger(__name__)


# --- configuration ---

DEFAULT_MODEL = "sonnet"
MODEL_ENV_VAR = "PODCAST_CANVAS_MODEL"


def get_model() -> str:
    return os.environ.get(MODEL_ENV_VAR) or DEFAULT_MODEL


@runtime_checkable
class GenerationService(Protocol):
    """protocol for generation backends (real or mock)."""

    async def generate_topics(self, request: TopicRequest) -> list[TopicSuggestion]:
        """expand a node into sub-topics. raises GenerationError on failure."""
        ...

    def stream_content(self, request: ContentRequest) -> AsyncIterator[bytes]:
        """stream a content/ending script as transport frames."""
        ...


class MockGenerationService:
    """mock generation service for testing without api calls."""

    def __init__(
        self,
        topics: Optional[list[TopicSuggestion]] = None,
        fragments: Optional[list[str]] = None,
        delay: float = 0.0,
        chunk_size: Optional[int] = None,
        stream_error: Optional[str] = None,
        topic_error: Optional[str] = None,
    ):
        """init with canned responses.

        chunk_size: if set, the encoded stream is re-cut into byte chunks
        of this size so frames straddle chunk boundaries.
        stream_error: if set, an error frame follows the fragments.
        topic_error: if set, generate_topics raises GenerationError.
        """
        self.topics = topics if topics is not None else [
            TopicSuggestion(title=f"话题{i + 1}", summary=f"模拟概述{i + 1}") for i in range(3)
        ]
        self.fragments = fragments if fragments is not None else ["这是", "一段", "模拟内容。"]
        self.delay = delay
        self.chunk_size = chunk_size
        self.stream_error = stream_error
        self.topic_error = topic_error
        self.topic_requests: list[TopicRequest] = []
        self.content_requests: list[ContentRequest] = []

    async def generate_topics(self, request: TopicRequest) -> list[TopicSuggestion]:
        self.topic_requests.append(request)
        await asyncio.sleep(self.delay)
        if self.topic_error:
            raise GenerationError(self.topic_error)
        return list(self.topics[: request.count])

    async def stream_content(self, request: ContentRequest) -> AsyncIterator[bytes]:
        self.content_requests.append(request)
        payload = b"".join(text_frame(f) for f in self.fragments)
        payload += error_frame(self.stream_error) if self.stream_error else done_frame()

        size = self.chunk_size or len(payload)
        for start in range(0, len(payload), size):
            await asyncio.sleep(self.delay)
            yield payload[start:start + size]


class ClaudeGenerationService:
    """generation service backed by claude-agent-sdk.

    creates a fresh sdk client per request to avoid state conflicts.
    """

    def __init__(self, model: Optional[str] = None, cwd: Optional[Path] = None):
        self.model = model or get_model()
        self.cwd = cwd or Path.cwd()

    def _options(self, system_prompt: str, stream: bool = False) -> ClaudeAgentOptions:
        # no tools - pure text generation
        return ClaudeAgentOptions(
            cwd=str(self.cwd),
            model=self.model,
            system_prompt=system_prompt,
            allowed_tools=[],
            max_turns=1,
            include_partial_messages=stream,
        )

    async def generate_topics(self, request: TopicRequest) -> list[TopicSuggestion]:
        system, prompt = assemble_topic_prompt(request)
        parts = [text async for text in self._query(system, prompt, stream=False)]
        return parse_topics("".join(parts))

    async def stream_content(self, request: ContentRequest) -> AsyncIterator[bytes]:
        """stream the script as frames; failures become an error frame."""
        system, prompt = assemble_content_prompt(request)
        try:
            async for delta in self._query(system, prompt, stream=True):
                yield text_frame(delta)
        except GenerationError as e:
            logger.error("content stream failed: %s", e)
            yield error_frame(str(e))
            return
        yield done_frame()

    async def _query(self, system: str, prompt: str, stream: bool) -> AsyncIterator[str]:
        """yield text from the model, as deltas when streaming."""
        client: Optional[ClaudeSDKClient] = None
        try:
            client = ClaudeSDKClient(self._options(system, stream=stream))
            await client.connect()
            await client.query(prompt)

            streamed = False
            async for message in client.receive_response():
                logger.debug("event type: %s", type(message).__name__)

                # partial message events carry raw api stream deltas
                event = getattr(message, "event", None)
                if isinstance(event, dict):
                    if event.get("type") == "content_block_delta":
                        delta = event.get("delta") or {}
                        if delta.get("type") == "text_delta" and delta.get("text"):
                            streamed = True
                            yield delta["text"]
                    continue

                # full assistant messages; skipped once deltas have covered them
                content = getattr(message, "content", None)
                if streamed or not isinstance(content, list):
                    continue
                for block in content:
                    text = getattr(block, "text", None)
                    if text:
                        yield text

        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(f"claude api error: {e}") from e

        finally:
            if client:
                try:
                    await client.disconnect()
                except Exception:
                    logger.debug("ignoring sdk disconnect error", exc_info=True)
