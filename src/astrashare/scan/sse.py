# src/astrashare/scan/sse.py

"""
Event-stream frame decoder.

Pure framing layer: raw chunks in, `(event_type, payload)` frames out.

Framing rules:
- lines are separated by "\\n" (a trailing "\\r" is tolerated)
- only lines starting with DATA_PREFIX carry a payload, one JSON document each
- a trailing partial line is buffered until the next chunk completes it
- at end of stream any still-buffered partial line is discarded, never parsed
- a line with malformed JSON is logged and skipped; the stream continues

The decoder knows nothing about payload schemas. The event type is whatever the
payload's own "type" field says (None if absent or the payload is not an object).
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from typing import Any, NamedTuple

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "


class Frame(NamedTuple):
    event_type: str | None
    payload: Any


class SSEDecoder:
    """Incremental decoder; feed() chunks in order, close() at end of stream."""

    def __init__(self, prefix: str = DATA_PREFIX) -> None:
        self._prefix = prefix
        self._buffer = ""
        # Multi-byte UTF-8 sequences may be split across byte chunks.
        self._text = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.dropped = 0

    def feed(self, chunk: bytes | str) -> list[Frame]:
        if isinstance(chunk, (bytes, bytearray)):
            text = self._text.decode(bytes(chunk))
        else:
            text = chunk
        if not text:
            return []

        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")

        frames: list[Frame] = []
        for line in lines:
            frame = self._parse_line(line.rstrip("\r"))
            if frame is not None:
                frames.append(frame)
        return frames

    def close(self) -> None:
        """Flush: whatever is still buffered is an abandoned partial line."""
        tail = self._buffer + self._text.decode(b"", final=True)
        if tail.strip():
            logger.debug("Discarding partial trailing line (%d chars)", len(tail))
        self._buffer = ""

    def _parse_line(self, line: str) -> Frame | None:
        if not line.startswith(self._prefix):
            return None
        raw = line[len(self._prefix):]
        try:
            payload = json.loads(raw)
        except ValueError:
            self.dropped += 1
            logger.warning("Dropping malformed stream frame: %.120r", raw)
            return None
        event_type = payload.get("type") if isinstance(payload, dict) else None
        return Frame(event_type=event_type if isinstance(event_type, str) else None, payload=payload)


async def iter_frames(chunks: AsyncIterable[bytes | str]) -> AsyncIterator[Frame]:
    """Lazily decode an async chunk source into frames."""
    decoder = SSEDecoder()
    try:
        async for chunk in chunks:
            for frame in decoder.feed(chunk):
                yield frame
    finally:
        decoder.close()
        # Release the underlying response when the consumer stops early.
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()


def decode_frames(chunks: Iterable[bytes | str]) -> Iterator[Frame]:
    """Synchronous variant of iter_frames (used for recorded streams and tests)."""
    decoder = SSEDecoder()
    try:
        for chunk in chunks:
            yield from decoder.feed(chunk)
    finally:
        decoder.close()
