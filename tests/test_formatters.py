"""Tests for time helpers and transcript formatters."""

import json

import pytest

from scribe.models.transcript import Speaker, SpeakerSegment, Transcript
from scribe.output.formatters import (
    format_speaker_transcript,
    format_srt_time,
    format_time,
    format_transcript,
    format_vtt_time,
    ms_to_seconds,
    seconds_to_ms,
)


@pytest.mark.parametrize(
    "seconds, expected",
    [(0, "0:00"), (5, "0:05"), (60, "1:00"), (125, "2:05"), (3661, "61:01")],
)
def test_format_time(seconds, expected):
    assert format_time(seconds) == expected


def test_format_time_truncates_fractions():
    assert format_time(59.99) == "0:59"


@pytest.mark.parametrize("bad", [-5, float("nan"), float("inf")])
def test_format_time_invalid_values_clamp_to_zero(bad):
    assert format_time(bad) == "0:00"


def test_ms_conversions():
    assert ms_to_seconds(2500) == 2.5
    assert ms_to_seconds(None) == 0.0
    assert seconds_to_ms(1.25) == 1250


def test_srt_and_vtt_timestamps():
    assert format_srt_time(3661.5) == "01:01:01,500"
    assert format_vtt_time(3661.5) == "01:01:01.500"
    # Millisecond rounding overflow carries into seconds
    assert format_srt_time(59.9999) == "00:01:00,000"


def test_format_speaker_transcript(segments):
    assert format_speaker_transcript(segments) == "Speaker 1: Hello John.\n\nSpeaker 2: Hi John."


def test_format_speaker_transcript_empty():
    assert format_speaker_transcript([]) == ""


@pytest.fixture
def named_transcript(transcript) -> Transcript:
    speakers = [
        transcript.speakers[0].model_copy(update={"custom_name": "Alice"}),
        transcript.speakers[1],
    ]
    return transcript.model_copy(update={"speakers": speakers})


def test_text_export_uses_custom_names(named_transcript):
    text = format_transcript(named_transcript, "txt")
    assert text == "Alice: Hello John.\n\nSpeaker 2: Hi John.\n"


def test_srt_export(named_transcript):
    srt = format_transcript(named_transcript, ".srt")
    assert srt.splitlines()[:3] == ["1", "00:00:00,000 --> 00:00:02,000", "Alice: Hello John."]


def test_vtt_export_escapes_markup():
    transcript = Transcript(
        id="t",
        user_id="u",
        speakers=[Speaker(speaker_id=1, speaker_tag="Speaker A")],
        speaker_segments=[
            SpeakerSegment(speaker_tag="Speaker A", start_time=0, end_time=1, text="a < b & c"),
        ],
    )
    vtt = format_transcript(transcript, "vtt")
    assert vtt.startswith("WEBVTT\n")
    assert "<v Speaker A>a &lt; b &amp; c" in vtt


def test_json_export_is_camel_case(transcript):
    data = json.loads(format_transcript(transcript, "json"))
    assert data["speakerSegments"][0]["speakerTag"] == "Speaker 1"
    assert data["transcriptWithSpeakers"].startswith("Speaker 1:")


@pytest.mark.parametrize("fmt", ["", "  ", "docx"])
def test_unknown_format_rejected(transcript, fmt):
    with pytest.raises(ValueError):
        format_transcript(transcript, fmt)
