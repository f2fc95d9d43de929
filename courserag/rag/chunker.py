"""Boundary-respecting text chunking for the RAG pipeline.

Content is packed greedily into chunks of at most ``max_length`` characters,
splitting on paragraphs first, then sentences, and hard-cutting only a
sentence that is longer than the limit on its own.
"""
import re
from typing import List

import structlog

from courserag import config
from courserag.rag.models import Chunk, Document

logger = structlog.get_logger()

PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n")
SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")

PARAGRAPH_SEPARATOR = "\n\n"
SENTENCE_SEPARATOR = " "


class _Packer:
    """Greedy accumulator that never emits a chunk longer than the limit."""

    def __init__(self, max_length: int):
        self.max_length = max_length
        self.chunks: List[str] = []
        self.buffer = ""

    def add(self, piece: str, separator: str) -> None:
        candidate = f"{self.buffer}{separator}{piece}" if self.buffer else piece
        if len(candidate) <= self.max_length:
            self.buffer = candidate
            return
        self.flush()
        self.buffer = piece

    def emit(self, text: str) -> None:
        text = text.strip()
        if text:
            self.chunks.append(text)

    def flush(self) -> None:
        self.emit(self.buffer)
        self.buffer = ""


def split(content: str, max_length: int = 1000) -> List[str]:
    """Split content into ordered, trimmed chunks of at most ``max_length``.

    Args:
        content: Text to split
        max_length: Maximum chunk length in characters

    Returns:
        Chunks in input order; empty for empty or whitespace-only input

    Raises:
        ValueError: If max_length is not positive
    """
    if max_length <= 0:
        raise ValueError(f"max_length must be positive, got {max_length}")

    packer = _Packer(max_length)

    for paragraph in PARAGRAPH_BREAK.split(content or ""):
        paragraph = paragraph.strip()
        if not paragraph:
            continue

        if len(paragraph) <= max_length:
            packer.add(paragraph, PARAGRAPH_SEPARATOR)
            continue

        # Paragraph too long: pack its sentences instead
        separator = PARAGRAPH_SEPARATOR
        for sentence in SENTENCE_BREAK.split(paragraph):
            sentence = sentence.strip()
            if not sentence:
                continue

            if len(sentence) <= max_length:
                packer.add(sentence, separator)
            else:
                packer.flush()
                for start in range(0, len(sentence), max_length):
                    packer.emit(sentence[start : start + max_length])
            separator = SENTENCE_SEPARATOR

    packer.flush()
    return packer.chunks


class TextChunker:
    """Turns documents into ordinal-numbered chunks."""

    def __init__(self, max_length: int = None):
        """Initialize the text chunker.

        Args:
            max_length: Maximum chunk length in characters (default from config)
        """
        self.max_length = max_length or config.CHUNK_SIZE

        if self.max_length <= 0:
            raise ValueError(f"Chunk size must be positive, got {self.max_length}")

    def chunk_document(self, document: Document) -> List[Chunk]:
        """Split a document into chunks that keep document order.

        Args:
            document: Document to chunk

        Returns:
            List of Chunk objects with ordinals 0..n-1
        """
        texts = split(document.content, self.max_length)
        chunks = [
            Chunk(text=text, ordinal=ordinal, parent_document_id=document.id)
            for ordinal, text in enumerate(texts)
        ]

        logger.debug(
            "document_chunked",
            document_id=document.id,
            content_length=len(document.content),
            chunk_count=len(chunks),
        )

        return chunks

    def get_chunk_stats(self, chunks: List[Chunk]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of Chunk objects

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
            }

        chunk_sizes = [len(c.text) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
        }
