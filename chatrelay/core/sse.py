"""SSE (Server-Sent Events) line decoding and encoding."""

import json
import logging
from typing import Any, Optional

logger = logging.getLogger("chatrelay")

TOKEN_EVENT = "youChatToken"
TOKEN_FIELD = "youChatToken"

DONE_SENTINEL = b"data: [DONE]\n\n"


def encode_sse_data(payload: Any) -> bytes:
    """Encode one ``data:`` frame terminated by a blank line."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")


class LineBuffer:
    """Splits a byte stream into complete lines.

    Bytes after the last newline stay buffered until more data arrives, so a
    line is never handed out in fragments. Decoding is incremental, which also
    keeps multi-byte UTF-8 sequences split across chunks intact.
    """

    def __init__(self) -> None:
        self._pending = bytearray()

    def feed(self, chunk: bytes) -> list[str]:
        if not chunk:
            return []
        self._pending.extend(chunk)
        lines: list[str] = []
        while True:
            index = self._pending.find(b"\n")
            if index == -1:
                break
            raw = bytes(self._pending[:index])
            del self._pending[: index + 1]
            lines.append(raw.decode("utf-8", errors="replace").rstrip("\r"))
        return lines

    def flush(self) -> list[str]:
        if not self._pending:
            return []
        raw = bytes(self._pending)
        self._pending.clear()
        return [raw.decode("utf-8", errors="replace").rstrip("\r")]


class TokenEventDecoder:
    """Extracts answer tokens from an event-tagged SSE stream.

    A frame is an ``event: <name>`` line followed by a ``data: <json>`` line.
    The decoder is a two-state machine: an ``event:`` line records the pending
    event name, the next ``data:`` line consumes and clears it. Only data
    lines paired with ``token_event`` yield text, read from ``token_field`` of
    the JSON body. Unparseable data lines yield nothing.
    """

    def __init__(self, token_event: str = TOKEN_EVENT, token_field: str = TOKEN_FIELD) -> None:
        self.token_event = token_event
        self.token_field = token_field
        self._lines = LineBuffer()
        self._pending_event: Optional[str] = None

    def feed(self, chunk: bytes) -> list[str]:
        tokens: list[str] = []
        for line in self._lines.feed(chunk):
            token = self._consume_line(line)
            if token:
                tokens.append(token)
        return tokens

    def flush(self) -> list[str]:
        """Reset at end of stream.

        An unterminated trailing line is an incomplete frame and is dropped
        unparsed, together with any pending event name.
        """
        dropped = self._lines.flush()
        if dropped:
            logger.debug("Dropping unterminated trailing line: %r", dropped[0][:200])
        self._pending_event = None
        return []

    def _consume_line(self, line: str) -> Optional[str]:
        if line.startswith("event:"):
            self._pending_event = line[len("event:"):].strip()
            return None
        if not line.startswith("data:"):
            return None
        event, self._pending_event = self._pending_event, None
        if event != self.token_event:
            return None
        try:
            payload = json.loads(line[len("data:"):].strip())
        except json.JSONDecodeError:
            logger.debug("Skipping unparseable token frame: %r", line[:200])
            return None
        if not isinstance(payload, dict):
            return None
        token = payload.get(self.token_field)
        return token if isinstance(token, str) else None


class DataLineDecoder:
    """``data:``-only framing used by OpenAI-style streams.

    Yields ``("data", value)`` for each data line (``value`` stripped of the
    prefix) and ``("text", line)`` for any other non-blank, non-comment line.
    """

    def __init__(self) -> None:
        self._lines = LineBuffer()

    def feed(self, chunk: bytes) -> list[tuple[str, str]]:
        return self._classify(self._lines.feed(chunk))

    def flush(self) -> list[tuple[str, str]]:
        return self._classify(self._lines.flush())

    @staticmethod
    def _classify(lines: list[str]) -> list[tuple[str, str]]:
        items: list[tuple[str, str]] = []
        for line in lines:
            if not line.strip() or line.startswith(":"):
                continue
            if line.startswith("data:"):
                items.append(("data", line[len("data:"):].strip()))
            elif line.startswith(("event:", "id:", "retry:")):
                continue
            else:
                items.append(("text", line))
        return items
