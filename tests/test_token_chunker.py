import pytest

from longscribe.token_chunker import chunk_for_summary, find_longest_period_gap, split_tokens


class CharEncoding:
    """One token per character."""

    def encode(self, text):
        return [ord(c) for c in text]

    def decode(self, tokens):
        return "".join(chr(t) for t in tokens)


class ByteEncoding:
    """One token per UTF-8 byte, like a byte-level BPE with no merges."""

    def encode(self, text):
        return list(text.encode("utf-8"))

    def decode_bytes(self, tokens):
        return bytes(tokens)

    def decode(self, tokens):
        return bytes(tokens).decode("utf-8", errors="replace")


ENC = CharEncoding()


def _assert_partition(chunks, text, n):
    assert "".join(c.text for c in chunks) == text
    assert chunks[0].start_token_index == 0
    assert chunks[-1].end_token_index == n
    for prev, nxt in zip(chunks, chunks[1:]):
        assert prev.end_token_index == nxt.start_token_index
        assert prev.end_token_index > prev.start_token_index


def test_text_without_periods_uses_fixed_boundaries():
    text = "a" * 25
    chunks = chunk_for_summary(text, 10, encoding=ENC)
    assert [c.token_count for c in chunks] == [10, 10, 5]
    _assert_partition(chunks, text, 25)


def test_single_period_moves_boundary():
    text = "abcdefgh." + "x" * 20
    chunks = chunk_for_summary(text, 10, encoding=ENC)
    assert chunks[0].text == "abcdefgh."
    _assert_partition(chunks, text, len(text))


def test_many_periods_end_chunks_on_sentences():
    sentences = [f"Sentence number {i} is here." for i in range(30)]
    text = " ".join(sentences)
    chunks = chunk_for_summary(text, 60, encoding=ENC)
    _assert_partition(chunks, text, len(text))
    for chunk in chunks[:-1]:
        assert chunk.text.endswith(".")


def test_nearer_period_wins_and_ties_go_backward():
    # naive boundary at 10; periods at 8 and 12 are equally near.
    tokens = ENC.encode("aaaaaaaa.aaa.aaaaaaaaaaaaa")
    assert split_tokens(tokens, 10, True, ENC)[0] == 9
    # period at 11 is nearer than the one at 5.
    tokens = ENC.encode("aaaaa.aaaaa.aaaaaaaaaaaaaa")
    assert split_tokens(tokens, 10, True, ENC)[0] == 12


def test_boundaries_strictly_increase_when_period_is_at_start():
    tokens = ENC.encode("." + "a" * 300)
    boundaries = split_tokens(tokens, 50, True, ENC)
    assert boundaries == sorted(set(boundaries))
    assert boundaries[-1] == 301
    assert boundaries[0] == 1


def test_empty_text():
    assert chunk_for_summary("", 10, encoding=ENC) == []


def test_multibyte_characters_are_never_split():
    text = "héllo wörld ünïcode çhärs " * 5
    enc = ByteEncoding()
    chunks = chunk_for_summary(text, 7, encoding=enc)
    assert "".join(c.text for c in chunks) == text
    assert all("�" not in c.text for c in chunks)


def test_longest_period_gap():
    info = find_longest_period_gap("One. Two three four. Five.", ENC)
    assert info.has_period
    assert info.gap_text == " Two three four"
    assert info.longest_gap_chars == 15
    assert info.gap_tokens == 15


def test_no_period_gap():
    info = find_longest_period_gap("no periods here", ENC)
    assert not info.has_period
    assert info.longest_gap_chars == -1


def test_long_sentence_logs_warning(caplog):
    text = "Short. " + "word " * 50 + "end."
    with caplog.at_level("WARNING"):
        chunks = chunk_for_summary(text, 20, encoding=ENC)
    assert "exceeds the max per-chunk token length" in caplog.text
    _assert_partition(chunks, text, len(text))


def test_max_tokens_must_be_positive():
    with pytest.raises(ValueError):
        split_tokens([1, 2, 3], 0, False, ENC)
