"""event-frame codec for streamed generation.

the transport is newline-delimited `data: {json}` lines (server-sent
event style). each payload is one of:
    {"text": "..."}   - append a fragment
    {"done": true}    - generation finished
    {"error": "..."}  - generation failed, abort
"""

from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

logger = logging.getLogger(__name__)

FRAME_PREFIX = "data:"
FRAME_DELIMITER = "\n"


class FrameType(Enum):
    TEXT = "text"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class Frame:
    type: FrameType
    text: str = ""
    error: Optional[str] = None


# --- encoding ---

def encode_frame(payload: dict) -> bytes:
    """encode one payload as a transport frame (blank line terminated)."""
    return f"{FRAME_PREFIX} {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")


def text_frame(text: str) -> bytes:
    return encode_frame({"text": text})


def done_frame() -> bytes:
    return encode_frame({"done": True})


def error_frame(message: str) -> bytes:
    return encode_frame({"error": message})


# --- decoding ---

def parse_frame_line(line: str) -> Optional[list[Frame]]:
    """decode one complete line.

    returns [] for lines that carry nothing (blank, comments, empty text),
    and None for malformed frames so the caller can count and skip them.
    """
    trimmed = line.strip()
    if not trimmed or not trimmed.startswith(FRAME_PREFIX):
        return []
    try:
        data = json.loads(trimmed[len(FRAME_PREFIX):].strip())
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    if data.get("error"):
        return [Frame(FrameType.ERROR, error=str(data["error"]))]

    frames = []
    text = data.get("text")
    if isinstance(text, str) and text:
        frames.append(Frame(FrameType.TEXT, text=text))
    if data.get("done"):
        frames.append(Frame(FrameType.DONE))
    return frames


class FrameDecoder:
    """incremental decoder: feed raw transport chunks, get complete frames.

    a line not yet terminated by the delimiter stays buffered until a
    later chunk completes it. bytes are decoded incrementally, so a
    multi-byte character split across chunks survives intact.
    """

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""
        self.skipped = 0  # malformed frames dropped so far

    def feed(self, chunk: Union[bytes, str]) -> list[Frame]:
        if isinstance(chunk, bytes):
            chunk = self._utf8.decode(chunk)
        self._buffer += chunk

        *lines, self._buffer = self._buffer.split(FRAME_DELIMITER)
        frames: list[Frame] = []
        for line in lines:
            frames.extend(self._decode_line(line))
        return frames

    def flush(self) -> list[Frame]:
        """decode whatever remains once the transport has closed."""
        self._buffer += self._utf8.decode(b"", final=True)
        residual, self._buffer = self._buffer, ""
        return self._decode_line(residual)

    def _decode_line(self, line: str) -> list[Frame]:
        parsed = parse_frame_line(line)
        if parsed is None:
            self.skipped += 1
            logger.debug("skipping malformed frame: %r", line[:80])
            return []
        return parsed
