"""Sentence-aligned chunking with word overlap."""

from __future__ import annotations

import re
from dataclasses import dataclass

from rag_assistant.config import ChunkingConfig
from rag_assistant.types import Chunk, ChunkMetadata

_SENTENCE_BOUNDARY = re.compile(r"[.!?]+")
_SENTENCE_JOINER = ". "


@dataclass(slots=True)
class _ChunkState:
    text: str = ""
    first_sentence: int = 0
    last_sentence: int = -1
    new_chars: int = 0


@dataclass(slots=True)
class _PendingChunk:
    text: str
    first_sentence: int
    last_sentence: int


class SentenceChunker:
    """Packs sentences into bounded chunks that overlap by whole words.

    Design notes:
    1. Sentence boundaries only.
       Text is split on runs of ``.``, ``!`` and ``?``; empty fragments are
       dropped. A sentence is never split, so one sentence longer than
       ``chunk_size_chars`` becomes a chunk of its own.

    2. Greedy packing.
       Before a sentence is appended, the length of the prospective buffer is
       computed. If it exceeds ``chunk_size_chars`` and the buffer already holds
       text, the buffer is closed as a chunk and the next buffer is seeded with
       the last ``overlap_words`` words of the closed chunk followed by the new
       sentence. The overlap keeps context available on both sides of a
       boundary for retrieval.

    3. Short tails.
       When ``min_tail_chars`` is set, a final buffer whose own sentences (not
       counting the overlap seed) are shorter than that is folded into the
       previous chunk.

    Chunking is a pure function of text and options.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def chunk(
        self,
        text: str,
        label: str,
        *,
        chunk_size_chars: int | None = None,
        overlap_words: int | None = None,
        min_tail_chars: int | None = None,
    ) -> list[Chunk]:
        """Split ``text`` into ordered chunks tagged with ``label``.

        Args:
            text: Extracted document text.
            label: Document label stored in each chunk's metadata.
            chunk_size_chars: Soft character limit per chunk.
            overlap_words: Words carried over from the previous chunk.
            min_tail_chars: Minimum size of a trailing chunk's new content.

        Returns:
            Chunks with contiguous ``chunk_index`` values starting at 0.
        """

        size = self.config.chunk_size_chars if chunk_size_chars is None else chunk_size_chars
        overlap = self.config.overlap_words if overlap_words is None else overlap_words
        min_tail = self.config.min_tail_chars if min_tail_chars is None else min_tail_chars
        if size < 1:
            raise ValueError("chunk_size_chars must be positive")
        if overlap < 0 or min_tail < 0:
            raise ValueError("overlap_words and min_tail_chars must not be negative")

        sentences = self.split_sentences(text)
        pending: list[_PendingChunk] = []
        state = _ChunkState()

        for index, sentence in enumerate(sentences):
            prospective = (
                state.text + _SENTENCE_JOINER + sentence if state.text else sentence
            )
            if len(prospective) > size and state.text:
                closed = _PendingChunk(
                    text=state.text.strip(),
                    first_sentence=state.first_sentence,
                    last_sentence=state.last_sentence,
                )
                pending.append(closed)
                seed = self._tail_words(closed.text, overlap)
                state = _ChunkState(
                    text=seed + _SENTENCE_JOINER + sentence if seed else sentence,
                    first_sentence=index,
                    last_sentence=index,
                    new_chars=len(sentence),
                )
                continue

            state.text = prospective
            state.last_sentence = index
            state.new_chars += len(sentence)

        if state.text.strip():
            tail_sentences = sentences[state.first_sentence : state.last_sentence + 1]
            merged = (
                pending[-1].text + _SENTENCE_JOINER + _SENTENCE_JOINER.join(tail_sentences)
                if pending
                else ""
            )
            # A merged tail may overrun the limit by at most one sentence.
            fits = len(merged) <= size + max(len(s) for s in tail_sentences)
            if pending and state.new_chars < min_tail and fits:
                pending[-1] = _PendingChunk(
                    text=merged,
                    first_sentence=pending[-1].first_sentence,
                    last_sentence=state.last_sentence,
                )
            else:
                pending.append(
                    _PendingChunk(
                        text=state.text.strip(),
                        first_sentence=state.first_sentence,
                        last_sentence=state.last_sentence,
                    )
                )

        return [
            Chunk(
                content=item.text,
                chunk_index=position,
                metadata=ChunkMetadata(
                    document_label=label,
                    sentence_range=(item.first_sentence, item.last_sentence),
                    length=len(item.text),
                ),
            )
            for position, item in enumerate(pending)
        ]

    @staticmethod
    def split_sentences(text: str) -> list[str]:
        return [part.strip() for part in _SENTENCE_BOUNDARY.split(text) if part.strip()]

    @staticmethod
    def _tail_words(text: str, count: int) -> str:
        if count <= 0:
            return ""
        return " ".join(text.split()[-count:])
