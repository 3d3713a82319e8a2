"""Server-sent event framing for finalized answers."""

import json
from collections.abc import Iterable, Iterator

DONE_FRAME = "data: [DONE]\n\n"


class StreamEmitter:
    """Splits already-complete text into fixed-size chunks and SSE frames.

    The answer is fully known before the first frame goes out; chunking only
    gives the client progressive delivery. Every call returns a fresh finite
    iterator, so the emitter holds no per-stream state.
    """

    def __init__(self, chunk_size: int = 5):
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.chunk_size = chunk_size

    def chunks(self, text: str) -> Iterator[str]:
        """Yield consecutive chunk_size slices of text (the last may be shorter)."""
        for start in range(0, len(text), self.chunk_size):
            yield text[start : start + self.chunk_size]

    def frames(self, texts: Iterable[str]) -> Iterator[str]:
        """Yield a delta frame for every chunk of every text, then the DONE frame.

        Chunks never span two texts: each text block is chunked on its own.
        """
        for text in texts:
            for chunk in self.chunks(text):
                yield delta_frame(chunk)
        yield DONE_FRAME


def delta_frame(chunk: str) -> str:
    return f"data: {json.dumps({'delta': {'text': chunk}})}\n\n"


def error_frame(message: str) -> str:
    return f"data: {json.dumps({'error': message})}\n\n"
