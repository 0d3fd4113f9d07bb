"""Batch indexing of source files into the vector index."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Callable, Sequence

from juno.errors import EmbeddingProviderError, VectorIndexError
from juno.llm.embeddings import Embedder
from juno.models import Chunk, IndexedItem, IndexingReport, SourceFile
from juno.retrieval.chunker import TextChunker
from juno.retrieval.index import VectorIndex

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_FILE_SIZE = 30_000

ProgressCallback = Callable[[int, int], None]


class RepositoryIndexer:
    """Chunks, embeds and stores files.

    A file is only written once all of its chunks are embedded; its previous
    items are then replaced by the new ones in a single transaction. A file
    whose stored content hash matches is left untouched. Cancelling stops
    between embedding windows and keeps whatever files were already written.
    """

    def __init__(
        self,
        embedder: Embedder,
        index: VectorIndex,
        chunker: TextChunker,
        *,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        concurrency: int = 1,
        progress: ProgressCallback | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._embedder = embedder
        self._index = index
        self._chunker = chunker
        self._max_file_size = max_file_size
        self._concurrency = concurrency
        self._progress = progress

    async def index_file(self, file: SourceFile, cancel_event: asyncio.Event | None = None) -> IndexingReport:
        return await self.index_files([file], cancel_event=cancel_event)

    async def index_files(
        self,
        files: Sequence[SourceFile],
        cancel_event: asyncio.Event | None = None,
    ) -> IndexingReport:
        self._index.ensure_created()
        report = IndexingReport()

        pending: list[tuple[SourceFile, list[Chunk]]] = []
        for file in files:
            if len(file.text) > self._max_file_size:
                LOGGER.warning("skipping %s due to excessive size (%d characters)", file.path, len(file.text))
                report.skipped_files.append(file.path)
                continue
            if file.content_hash in self._index.content_hashes(file.path):
                LOGGER.debug("%s is unchanged since it was last indexed", file.path)
                report.unchanged_files.append(file.path)
                continue
            pending.append((file, self._chunker.split(file.text)))

        total = sum(len(chunks) for _, chunks in pending)
        LOGGER.info("indexing %d chunks from %d files", total, len(pending))
        done = 0
        for file, chunks in pending:
            try:
                vectors = await self._embed_chunks(chunks, cancel_event, done, total)
            except EmbeddingProviderError as exc:
                LOGGER.warning("failed to index %s: %s", file.path, exc)
                report.failed_files[file.path] = str(exc)
                done += len(chunks)
                continue
            if vectors is None:
                LOGGER.warning("Indexing cancelled; %d files were indexed", len(report.indexed_files))
                report.cancelled = True
                break

            items = [
                IndexedItem(vector=vector, metadata=_metadata(file, chunk))
                for chunk, vector in zip(chunks, vectors, strict=True)
            ]
            done += len(chunks)
            try:
                evicted = self._index.replace_items(file.path, items)
            except VectorIndexError as exc:
                LOGGER.warning("failed to store %s: %s", file.path, exc)
                report.failed_files[file.path] = str(exc)
                continue
            if evicted:
                LOGGER.debug("evicted %d stale items for %s", evicted, file.path)
            report.indexed_files.append(file.path)
            report.chunks_indexed += len(chunks)

        return report

    async def _embed_chunks(
        self,
        chunks: list[Chunk],
        cancel_event: asyncio.Event | None,
        done: int,
        total: int,
    ) -> list[list[float]] | None:
        """Embed ``chunks`` in windows; ``None`` means the batch was cancelled."""

        vectors: list[list[float]] = []
        for start in range(0, len(chunks), self._concurrency):
            if cancel_event is not None and cancel_event.is_set():
                return None
            window = chunks[start : start + self._concurrency]
            results = await asyncio.gather(
                *(self._embedder.embed(chunk.text) for chunk in window),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result
                vectors.append(result)
            if self._progress is not None:
                self._progress(done + len(vectors), total)
        return vectors


def _metadata(file: SourceFile, chunk: Chunk) -> dict[str, Any]:
    return {
        "text": chunk.text,
        "filePath": file.path,
        "fileName": os.path.basename(file.path),
        "languageId": file.language_id,
        "chunkIndex": chunk.index,
        "page": chunk.index + 1,
        "offset": chunk.offset,
        "lineCount": file.line_count,
        "contentHash": file.content_hash,
    }
