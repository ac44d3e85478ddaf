"""
Incremental decoder for the completion service's server-sent-event stream.

Wire format, one frame per line:

    : keep-alive                        comment → skipped
                                        blank → skipped
    data: {"choices":[{"delta":{"content":"Hel"}}]}
    data: [DONE]                        terminator; later bytes are ignored

Reads arrive in arbitrary chunks.  The decoder keeps the unterminated tail of
the buffer between reads, decodes UTF-8 incrementally so a multi-byte
character split across reads is not garbled, and holds back a complete line
whose JSON does not parse so it can be joined with the following line.

    decoder = SSEFrameDecoder()
    for chunk in response.iter_content(chunk_size=None):
        fragments.extend(decoder.feed(chunk))
        if decoder.done:
            break
    fragments.extend(decoder.finish())
"""

from __future__ import annotations

import codecs
import json
import logging

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"

# A held-back payload longer than this is dropped instead of growing forever.
MAX_HELD_CHARS = 64 * 1024


def extract_fragment(event: dict) -> str | None:
    """Return ``choices[0].delta.content`` or None when absent."""
    try:
        content = event["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None
    return content if isinstance(content, str) else None


class SSEFrameDecoder:
    """Stateful line/frame decoder.  One instance per response."""

    def __init__(self, *, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        self._held: str | None = None
        self.done = False
        self.dropped_frames = 0

    # ── Public API ───────────────────────────────────────────────────────

    def feed(self, chunk: bytes | str) -> list[str]:
        """Consume one read; return the text fragments completed by it."""
        if self.done:
            return []
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk

        fragments: list[str] = []
        while not self.done:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1:]
            self._handle_line(line, fragments)
        return fragments

    def finish(self) -> list[str]:
        """Final pass at end of stream over whatever is still buffered.

        An unterminated last line is parsed as if it ended with a newline.
        A payload that still does not parse is dropped and logged.
        """
        fragments: list[str] = []
        if not self.done:
            self._buffer += self._decoder.decode(b"", final=True)
            tail, self._buffer = self._buffer, ""
            if tail.strip():
                self._handle_line(tail, fragments)
        if self._held is not None:
            self._drop_held("stream ended")
        return fragments

    # ── Internal ─────────────────────────────────────────────────────────

    def _handle_line(self, line: str, fragments: list[str]) -> None:
        if line.endswith("\r"):
            line = line[:-1]

        if self._held is not None:
            if self._starts_frame(line):
                self._drop_held("next frame started")
            else:
                self._parse_payload(self._held + "\n" + line, fragments)
                return

        if line.startswith(":") or line.strip() == "":
            return
        if not line.startswith(DATA_PREFIX):
            return

        payload = line[len(DATA_PREFIX):].strip()
        if payload == DONE_SENTINEL:
            self.done = True
            return
        self._parse_payload(payload, fragments)

    @staticmethod
    def _starts_frame(line: str) -> bool:
        return line.startswith(DATA_PREFIX) or line.startswith(":") or line.strip() == ""

    def _parse_payload(self, payload: str, fragments: list[str]) -> None:
        try:
            event = json.loads(payload)
        except ValueError:
            self._held = payload
            if len(payload) > MAX_HELD_CHARS:
                self._drop_held("held payload too large")
            return
        self._held = None
        content = extract_fragment(event)
        if content:
            fragments.append(content)

    def _drop_held(self, why: str) -> None:
        self.dropped_frames += 1
        logger.warning(
            "Dropping unparsable stream frame (%s, %d chars)", why, len(self._held or ""),
        )
        self._held = None
