"""Fixed-size sliding-window chunking."""

from __future__ import annotations

from typing import Iterator

from juno.models import Chunk


class TextChunker:
    """Splits text into overlapping character windows.

    Window ``i`` starts at ``i * (chunk_size - overlap)`` and spans
    ``chunk_size`` characters, clamped to the text length. The last window
    always ends at the end of the text.
    """

    def __init__(self, chunk_size: int, overlap: int) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if overlap < 0 or overlap >= chunk_size:
            raise ValueError("overlap must be non-negative and less than chunk_size")
        self.chunk_size = chunk_size
        self.overlap = overlap

    @property
    def stride(self) -> int:
        return self.chunk_size - self.overlap

    def iter_chunks(self, text: str) -> Iterator[Chunk]:
        index = 0
        start = 0
        while start < len(text):
            yield Chunk(text=text[start : start + self.chunk_size], offset=start, index=index)
            if start + self.chunk_size >= len(text):
                break
            start += self.stride
            index += 1

    def split(self, text: str) -> list[Chunk]:
        return list(self.iter_chunks(text))


def split_text(text: str, chunk_size: int, overlap: int) -> list[Chunk]:
    return TextChunker(chunk_size, overlap).split(text)
