import pytest

from rag_assistant.config import ChunkingConfig
from rag_assistant.ingest.chunker import SentenceChunker

REFUNDS = "Refunds are processed within ten days"
SHIPPING = "Shipping is free for orders above fifty"
SUPPORT = "Support is available by phone during office hours"
POLICY_TEXT = f"{REFUNDS}. {SHIPPING}. {SUPPORT}."


def _make_long_text(sentence_count: int = 40) -> str:
    sentences = [
        f"Section {i} requires strict access control and encryption of stored records"
        for i in range(sentence_count)
    ]
    return ". ".join(sentences) + "."


def test_three_sentences_split_into_two_overlapping_chunks() -> None:
    assert len(POLICY_TEXT) == 130
    chunker = SentenceChunker()

    chunks = chunker.chunk(POLICY_TEXT, "policy", chunk_size_chars=100, overlap_words=2)

    assert len(chunks) == 2
    first_tail = " ".join(chunks[0].content.split()[-2:])
    assert first_tail == "above fifty"
    assert chunks[1].content.startswith(first_tail)
    assert chunks[1].content.endswith(SUPPORT)
    assert [chunk.chunk_index for chunk in chunks] == [0, 1]
    assert chunks[0].metadata.sentence_range == (0, 1)
    assert chunks[1].metadata.sentence_range == (2, 2)


def test_chunk_bound_and_sentence_coverage() -> None:
    text = _make_long_text()
    chunker = SentenceChunker(ChunkingConfig(chunk_size_chars=300, overlap_words=5))
    sentences = chunker.split_sentences(text)
    longest_sentence = max(len(sentence) for sentence in sentences)

    chunks = chunker.chunk(text, "security")

    assert len(chunks) >= 2
    assert all(chunk.metadata.length <= 300 + longest_sentence for chunk in chunks)
    assert all(chunk.metadata.length == len(chunk.content) for chunk in chunks)
    assert chunks[0].metadata.sentence_range[0] == 0
    assert chunks[-1].metadata.sentence_range[1] == len(sentences) - 1
    for previous, current in zip(chunks, chunks[1:]):
        assert current.metadata.sentence_range[0] == previous.metadata.sentence_range[1] + 1
    for chunk in chunks:
        first, last = chunk.metadata.sentence_range
        assert chunk.content.endswith(". ".join(sentences[first : last + 1]))


def test_short_text_yields_single_chunk() -> None:
    chunker = SentenceChunker()

    chunks = chunker.chunk("  Short text. Another bit.  ", "notes")

    assert len(chunks) == 1
    assert chunks[0].content == "Short text. Another bit"
    assert chunks[0].metadata.document_label == "notes"


def test_empty_text_yields_no_chunks() -> None:
    assert SentenceChunker().chunk("", "empty") == []
    assert SentenceChunker().chunk(" ... !? ", "punctuation") == []


def test_oversized_sentence_is_kept_whole() -> None:
    long_sentence = "word " * 60
    chunker = SentenceChunker(ChunkingConfig(chunk_size_chars=50, overlap_words=0))

    chunks = chunker.chunk(f"Intro. {long_sentence}. Outro.", "long")

    assert [chunk.content for chunk in chunks] == ["Intro", long_sentence.strip(), "Outro"]


def test_short_tail_is_merged_into_previous_chunk() -> None:
    chunker = SentenceChunker()

    chunks = chunker.chunk(
        POLICY_TEXT, "policy", chunk_size_chars=80, overlap_words=0, min_tail_chars=60
    )

    assert len(chunks) == 1
    assert chunks[0].content == f"{REFUNDS}. {SHIPPING}. {SUPPORT}"
    assert chunks[0].metadata.sentence_range == (0, 2)


def test_tail_merge_never_breaks_chunk_bound() -> None:
    text = " ".join(f"Rule {i:02d} applies today." for i in range(10))
    chunker = SentenceChunker(ChunkingConfig(chunk_size_chars=100, overlap_words=0))
    longest_sentence = max(len(sentence) for sentence in chunker.split_sentences(text))

    chunks = chunker.chunk(text, "rules", min_tail_chars=120)

    assert all(chunk.metadata.length <= 100 + longest_sentence for chunk in chunks)
    assert [chunk.metadata.sentence_range for chunk in chunks] == [(0, 3), (4, 7), (8, 9)]


def test_chunking_is_deterministic() -> None:
    chunker = SentenceChunker(ChunkingConfig(chunk_size_chars=120, overlap_words=3))
    text = _make_long_text(12)

    assert chunker.chunk(text, "a") == chunker.chunk(text, "a")


def test_invalid_options_are_rejected() -> None:
    with pytest.raises(ValueError):
        SentenceChunker().chunk(POLICY_TEXT, "policy", chunk_size_chars=0)
