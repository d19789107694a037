from unittest.mock import Mock

import pytest
from pydub.exceptions import CouldntDecodeError

import longscribe.audio_processor as ap
from longscribe.errors import PreconditionError


def test_probe_source_reads_duration(tmp_path, monkeypatch):
    path = tmp_path / "talk.MP3"
    path.write_bytes(b"0" * 2048)
    monkeypatch.setattr(ap, "mediainfo", lambda p: {"duration": "3600.250000"})
    source = ap.probe_source(str(path))
    assert source.byte_size == 2048
    assert source.duration_seconds == 3600.25
    assert source.extension == ".mp3"


def test_probe_source_unknown_duration_is_zero(tmp_path, monkeypatch):
    path = tmp_path / "talk.webm"
    path.write_bytes(b"0")
    monkeypatch.setattr(ap, "mediainfo", lambda p: {})
    assert ap.probe_source(str(path)).duration_seconds == 0.0


def test_probe_source_rejects_unsupported(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("hi")
    with pytest.raises(PreconditionError):
        ap.probe_source(str(path))
    with pytest.raises(PreconditionError):
        ap.probe_source(str(tmp_path / "missing.mp3"))


def test_downsample_to_mono_16k_aac(tmp_path, monkeypatch):
    source = tmp_path / "talk.wav"
    source.write_bytes(b"0" * 100)
    audio = Mock()
    audio.set_channels.return_value = audio
    audio.set_frame_rate.return_value = audio
    audio.export.side_effect = lambda out, **kw: open(out, "wb").close()
    monkeypatch.setattr(ap.AudioSegment, "from_file", Mock(return_value=audio))

    out = ap.downsample(str(source), str(tmp_path / "out"))

    assert out.endswith("talk-downsampled.m4a")
    audio.set_channels.assert_called_once_with(1)
    audio.set_frame_rate.assert_called_once_with(16_000)
    kwargs = audio.export.call_args[1]
    assert kwargs["codec"] == "aac"
    assert kwargs["bitrate"] == "32k"


def test_is_supported_audio():
    assert ap.is_supported_audio("a.mpga")
    assert not ap.is_supported_audio("a.ogg")


def test_cleanup_temp_file(tmp_path):
    path = tmp_path / "tmp.m4a"
    path.write_bytes(b"")
    ap.cleanup_temp_file(str(path))
    assert not path.exists()
    ap.cleanup_temp_file(None)
    ap.cleanup_temp_file(str(path))


def test_convert_to_wav_is_mono_16k(tmp_path, monkeypatch):
    source = tmp_path / "chunk-000.mp3"
    source.write_bytes(b"0" * 100)
    audio = Mock()
    audio.set_channels.return_value = audio
    audio.set_frame_rate.return_value = audio
    audio.export.side_effect = lambda out, **kw: open(out, "wb").close()
    monkeypatch.setattr(ap.AudioSegment, "from_file", Mock(return_value=audio))

    out = ap.convert_to_wav(str(source))

    assert out.endswith(".wav")
    audio.set_channels.assert_called_once_with(1)
    audio.set_frame_rate.assert_called_once_with(16_000)
    assert audio.export.call_args[1] == {"format": "wav"}
    ap.cleanup_temp_file(out)


def test_undecodable_audio_is_a_precondition_error(tmp_path, monkeypatch):
    source = tmp_path / "talk.m4a"
    source.write_bytes(b"not audio")
    monkeypatch.setattr(ap.AudioSegment, "from_file", Mock(side_effect=CouldntDecodeError("bad header")))
    with pytest.raises(PreconditionError):
        ap.downsample(str(source), str(tmp_path / "out"))
    with pytest.raises(PreconditionError):
        ap.convert_to_wav(str(source))
