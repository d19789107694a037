import pytest

from longscribe.models import ProviderMetadata, TranscriptResult
from longscribe.reassembler import combine_cue_tracks, reassemble


def _result(text, **meta):
    return TranscriptResult(text=text, metadata=ProviderMetadata(**meta))


def test_simple_join_drops_period_before_lowercase():
    results = [_result("We went to the."), _result("store today."), _result("Then home.")]
    assert reassemble(results).full_text == "We went to the store today. Then home."


def test_simple_join_preserves_order():
    results = [_result(f"Segment {i}.") for i in range(4)]
    assert reassemble(results).full_text == "Segment 0. Segment 1. Segment 2. Segment 3."


def test_direct_join_concatenates():
    results = [_result("First part. "), _result("second part.")]
    assert reassemble(results, mode="direct").full_text == "First part. second part."


def test_unknown_mode():
    with pytest.raises(ValueError):
        reassemble([], mode="fancy")


def test_metadata_is_merged():
    results = [
        _result("a", duration_seconds=906.0, language="en", speakers=2),
        _result("b", duration_seconds=882.0, language="fr", speakers=1),
        _result("c", duration_seconds=None, language="en"),
    ]
    meta = reassemble(results).metadata
    assert meta.duration_seconds == 906.0
    assert meta.languages == ["en", "fr"]
    assert meta.speakers == 3


def test_metadata_without_speaker_counts():
    meta = reassemble([_result("a"), _result("b")]).metadata
    assert meta.speakers is None
    assert meta.duration_seconds is None
    assert meta.languages == []


def test_combine_cue_tracks_skips_empty_tracks():
    results = [
        TranscriptResult(text="a", cue_track="00:00:00.000\na"),
        TranscriptResult(text="b"),
        TranscriptResult(text="c", cue_track="00:15:06.000\nc"),
    ]
    assert combine_cue_tracks(results) == "00:00:00.000\na\n\n00:15:06.000\nc"
