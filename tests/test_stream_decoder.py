"""Tests for the incremental SSE frame decoder.

Coverage:
  1. Frames split at arbitrary byte offsets (mid-JSON, mid-UTF-8 character)
  2. Comments, blank lines and non-data lines are skipped
  3. [DONE] terminates decoding; later bytes are ignored
  4. A held-back line is joined with its continuation, or dropped (and
     logged) when a new frame starts
  5. finish() parses an unterminated trailing line
"""

import json
import logging

import pytest

from consultflow.ai.stream import MAX_HELD_CHARS, SSEFrameDecoder, extract_fragment


def _frame(content) -> str:
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]},
                                 ensure_ascii=False) + "\n"


class TestExtractFragment:
    def test_reads_delta_content(self):
        assert extract_fragment({"choices": [{"delta": {"content": "Hi"}}]}) == "Hi"

    @pytest.mark.parametrize("event", [
        {},
        {"choices": []},
        {"choices": [{"delta": {"role": "assistant"}}]},
        {"choices": [{"delta": {"content": 5}}]},
        {"choices": [{"delta": None}]},
        [],
    ])
    def test_missing_content_is_none(self, event):
        assert extract_fragment(event) is None


class TestChunkBoundaries:
    def test_json_split_across_reads(self):
        body = _frame("Hello").encode()
        decoder = SSEFrameDecoder()

        assert decoder.feed(body[:20]) == []
        assert decoder.feed(body[20:]) == ["Hello"]

    def test_multibyte_character_split_across_reads(self):
        body = _frame("café ☕").encode("utf-8")
        cut = body.index("é".encode("utf-8")) + 1
        decoder = SSEFrameDecoder()

        fragments = decoder.feed(body[:cut]) + decoder.feed(body[cut:])

        assert fragments == ["café ☕"]
        assert "�" not in "".join(fragments)

    def test_byte_at_a_time(self):
        body = (_frame("a") + _frame("b") + "data: [DONE]\n").encode()
        decoder = SSEFrameDecoder()
        fragments = []
        for i in range(len(body)):
            fragments.extend(decoder.feed(body[i:i + 1]))
        assert fragments == ["a", "b"]
        assert decoder.done is True

    def test_crlf_line_endings(self):
        body = _frame("x").replace("\n", "\r\n").encode()
        assert SSEFrameDecoder().feed(body) == ["x"]


class TestFraming:
    def test_comments_and_blank_lines_skipped(self):
        body = (": keep-alive\n\n" + _frame("x") + "event: ping\n\n").encode()
        assert SSEFrameDecoder().feed(body) == ["x"]

    def test_done_stops_decoding(self):
        decoder = SSEFrameDecoder()
        body = (_frame("a") + "data: [DONE]\n" + _frame("b")).encode()

        assert decoder.feed(body) == ["a"]
        assert decoder.done is True
        assert decoder.feed(_frame("c").encode()) == []
        assert decoder.finish() == []

    def test_empty_content_fragments_ignored(self):
        body = (_frame("") + _frame("z")).encode()
        assert SSEFrameDecoder().feed(body) == ["z"]


class TestHeldLines:
    def test_held_line_joined_with_continuation(self):
        body = b'data: {"choices":[{"delta":\n{"content":"joined"}}]}\n'
        decoder = SSEFrameDecoder()

        assert decoder.feed(body) == ["joined"]
        assert decoder.dropped_frames == 0

    def test_held_line_dropped_when_next_frame_starts(self, caplog):
        decoder = SSEFrameDecoder()
        with caplog.at_level(logging.WARNING, logger="consultflow.ai.stream"):
            fragments = decoder.feed(b"data: {broken\n" + _frame("ok").encode())

        assert fragments == ["ok"]
        assert decoder.dropped_frames == 1
        assert "Dropping unparsable stream frame" in caplog.text

    def test_oversized_held_payload_dropped(self):
        decoder = SSEFrameDecoder()
        decoder.feed(("data: {" + "x" * (MAX_HELD_CHARS + 1) + "\n").encode())
        assert decoder.dropped_frames == 1

    def test_held_line_at_end_of_stream_dropped(self):
        decoder = SSEFrameDecoder()
        decoder.feed(b"data: {never closed\n")
        assert decoder.finish() == []
        assert decoder.dropped_frames == 1


class TestFinish:
    def test_unterminated_trailing_line_parsed(self):
        decoder = SSEFrameDecoder()
        body = _frame("tail").rstrip("\n").encode()

        assert decoder.feed(body) == []
        assert decoder.finish() == ["tail"]

    def test_whitespace_tail_ignored(self):
        decoder = SSEFrameDecoder()
        decoder.feed(_frame("a").encode() + b"   ")
        assert decoder.finish() == []
        assert decoder.dropped_frames == 0
