"""Tests for SSE chunking and framing."""

import json

import pytest

from toolrelay.services.stream import DONE_FRAME, StreamEmitter, delta_frame, error_frame


def decode(frame: str) -> dict:
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    return json.loads(frame[len("data: ") : -2])


class TestChunks:
    """Tests for text chunking."""

    @pytest.mark.parametrize("text", ["", "a", "abcd", "abcde", "abcdef", "Hello, world! 🌤 forecast", "x" * 103])
    def test_chunks_reassemble_text(self, text):
        """Test that concatenated chunks reproduce the text exactly."""
        emitter = StreamEmitter()
        assert "".join(emitter.chunks(text)) == text

    def test_chunk_sizes(self):
        """Test that all chunks but the last are exactly chunk_size long."""
        chunks = list(StreamEmitter(chunk_size=5).chunks("abcdefghijkl"))
        assert chunks == ["abcde", "fghij", "kl"]

    def test_empty_text_yields_nothing(self):
        """Test that zero-length text produces no chunks."""
        assert list(StreamEmitter().chunks("")) == []

    def test_custom_chunk_size(self):
        """Test a non-default chunk size."""
        assert list(StreamEmitter(chunk_size=3).chunks("abcdefg")) == ["abc", "def", "g"]

    def test_invalid_chunk_size(self):
        """Test that a chunk size below one is rejected."""
        with pytest.raises(ValueError):
            StreamEmitter(chunk_size=0)

    def test_chunking_is_restartable(self):
        """Test that each call produces a fresh, identical sequence."""
        emitter = StreamEmitter()
        assert list(emitter.chunks("restartable")) == list(emitter.chunks("restartable"))


class TestFrames:
    """Tests for SSE frame encoding."""

    def test_frames_end_with_done(self):
        """Test that the frame sequence ends with the DONE frame."""
        frames = list(StreamEmitter().frames(["Hello world"]))
        assert frames[-1] == "data: [DONE]\n\n"
        assert frames[:-1] == [delta_frame("Hello"), delta_frame(" worl"), delta_frame("d")]

    def test_frames_reassemble_text(self):
        """Test that delta frames reproduce the text in order."""
        text = "There is a heat advisory in Los Angeles County."
        frames = list(StreamEmitter().frames([text]))
        assert "".join(decode(frame)["delta"]["text"] for frame in frames[:-1]) == text

    def test_chunks_do_not_span_blocks(self):
        """Test that each text block is chunked separately."""
        frames = list(StreamEmitter(chunk_size=5).frames(["abc", "defgh"]))
        assert [decode(frame)["delta"]["text"] for frame in frames[:-1]] == ["abc", "defgh"]

    def test_no_text_only_done(self):
        """Test that an answer without text still terminates the stream."""
        assert list(StreamEmitter().frames([])) == [DONE_FRAME]
        assert list(StreamEmitter().frames([""])) == [DONE_FRAME]

    def test_delta_frame_escapes_json(self):
        """Test that quotes and newlines are JSON-escaped inside frames."""
        frame = delta_frame('a "b"\n')
        assert decode(frame) == {"delta": {"text": 'a "b"\n'}}

    def test_error_frame(self):
        """Test error frame shape."""
        assert decode(error_frame("boom")) == {"error": "boom"}
