"""
Chunking Service
Splits page texts into overlapping fixed-size chunks with page provenance.
"""
from typing import Iterator, List
import structlog

from docqa.errors import ConfigurationError
from docqa.models.schemas import ChunkData
from docqa.services.text_extractor import SENTENCE_TERMINATORS

logger = structlog.get_logger()


class ChunkingService:
    """Sliding-window chunker over per-page text."""

    def __init__(self, chunk_size: int, overlap: int):
        if chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0 or overlap >= chunk_size:
            raise ConfigurationError(
                f"overlap must be >= 0 and < chunk_size ({chunk_size}), got {overlap}"
            )
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.stride = chunk_size - overlap

    def chunk(self, pages: List[str]) -> List[ChunkData]:
        """
        Chunk an ordered list of page texts.

        Args:
            pages: Page texts, first page first

        Returns:
            Chunks in page order then in-page order, with a chunk_index that
            keeps counting across pages
        """
        chunks = []
        chunk_index = 0

        for page_number, text in enumerate(pages, start=1):
            if not text or not text.strip():
                continue
            for content in self._windows(text):
                chunks.append(ChunkData(
                    page_number=page_number,
                    chunk_index=chunk_index,
                    content=content,
                ))
                chunk_index += 1

        logger.info(
            "Chunking complete",
            page_count=len(pages),
            chunk_count=len(chunks),
            chunk_size=self.chunk_size,
            overlap=self.overlap,
        )
        return chunks

    def _windows(self, text: str) -> Iterator[str]:
        length = len(text)
        start = 0

        while True:
            end = min(start + self.chunk_size, length)
            if end < length:
                end = self._snap_to_sentence(text, start, end)

            content = text[start:end].strip()
            if content:
                yield content

            if start + self.chunk_size >= length:
                break
            start += self.stride

    def _snap_to_sentence(self, text: str, start: int, end: int) -> int:
        """
        Pull a window end back to the last sentence end inside its overlap tail.

        Only the tail at offsets >= stride is searched, so the text cut off
        here is always covered by the next window.
        """
        window = text[start:end]
        cut = max(window.rfind(t, self.stride) for t in SENTENCE_TERMINATORS)
        if cut == -1:
            return end
        return start + cut + 1
