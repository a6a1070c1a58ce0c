from novah.core.config import settings
from novah.services.chunker import chunk_text, target_chunk_size


def test_empty_and_whitespace_input_yield_no_chunks():
    assert chunk_text("") == []
    assert chunk_text("   \n\t ") == []
    assert chunk_text(None) == []


def test_sentences_are_packed_up_to_the_target():
    chunks = chunk_text("One. Two. Three.", chunk_size=10)
    assert chunks == ["One. Two.", "Three."]


def test_oversized_sentence_becomes_its_own_chunk_unsplit():
    long_sentence = "x" * 50 + "."
    chunks = chunk_text(f"Short. {long_sentence} Tail.", chunk_size=20)
    assert chunks == ["Short.", long_sentence, "Tail."]


def test_separators_inside_a_chunk_are_preserved():
    text = "First line.\nSecond line!  Third?"
    assert chunk_text(text, chunk_size=500) == [text]


def test_no_content_is_lost_between_chunks():
    sentences = [f"Sentence number {i} talks about solar power." for i in range(40)]
    text = " ".join(sentences)
    chunks = chunk_text(text, chunk_size=120)
    assert len(chunks) > 1
    assert " ".join(chunks) == text
    for chunk in chunks:
        assert len(chunk) <= 120


def test_non_latin_sentence_terminators_split():
    chunks = chunk_text("مرحبا؟ كيف الحال؟", chunk_size=8)
    assert chunks == ["مرحبا؟", "كيف الحال؟"]


def test_target_chunk_size_grows_for_large_documents():
    assert target_chunk_size("a" * 10, threshold=100) == settings.CHUNK_SIZE_SMALL
    assert target_chunk_size("a" * 101, threshold=100) == settings.CHUNK_SIZE_LARGE
