from __future__ import annotations

import codecs
import json
import logging
from typing import AsyncIterable, AsyncIterator, Iterable, Iterator, List, Union

from app.gateway.events import StreamEvent, event_from_payload

logger = logging.getLogger(__name__)


class SSEEventParser:
    """
    Incremental parser for the analyze event stream.

    One instance per response; it owns the partial-line buffer and the
    current `event:` kind, so it must never be shared between requests.

        parser = SSEEventParser()
        for chunk in chunks:
            for ev in parser.feed(chunk):
                ...
        events_tail = parser.close()
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._event_kind = ""
        self._closed = False

    def feed(self, chunk: Union[bytes, str]) -> List[StreamEvent]:
        if self._closed:
            raise RuntimeError("parser already closed")

        text = chunk if isinstance(chunk, str) else self._decoder.decode(chunk)
        self._buffer += text

        lines = self._buffer.split("\n")
        # last piece is either "" (chunk ended on a newline) or a partial line
        self._buffer = lines.pop()
        return self._consume(lines)

    def close(self) -> List[StreamEvent]:
        """Flush a final line the server did not terminate."""
        if self._closed:
            return []
        self._closed = True
        self._buffer += self._decoder.decode(b"", final=True)
        tail, self._buffer = self._buffer, ""
        return self._consume([tail]) if tail else []

    def _consume(self, lines: List[str]) -> List[StreamEvent]:
        out: List[StreamEvent] = []
        for raw_line in lines:
            line = raw_line.rstrip("\r")

            if not line:
                # blank line ends the block
                self._event_kind = ""
                continue

            if line.startswith("event:"):
                self._event_kind = line[len("event:"):].strip()
                continue

            if line.startswith("data:"):
                data = line[len("data:"):]
                if data.startswith(" "):
                    data = data[1:]
                try:
                    payload = json.loads(data)
                except json.JSONDecodeError:
                    logger.debug("skipping malformed data line kind=%s len=%d", self._event_kind, len(data))
                    continue

                ev = event_from_payload(self._event_kind, payload)
                if ev is None:
                    logger.debug("skipping unrecognised event kind=%s", self._event_kind)
                    continue
                out.append(ev)
            # comments (":") and unknown fields are ignored
        return out


def iter_events(chunks: Iterable[Union[bytes, str]]) -> Iterator[StreamEvent]:
    """Lazily yield events, in wire order, from a synchronous chunk source."""
    parser = SSEEventParser()
    for chunk in chunks:
        yield from parser.feed(chunk)
    yield from parser.close()


async def aiter_events(chunks: AsyncIterable[Union[bytes, str]]) -> AsyncIterator[StreamEvent]:
    parser = SSEEventParser()
    async for chunk in chunks:
        for ev in parser.feed(chunk):
            yield ev
    for ev in parser.close():
        yield ev
