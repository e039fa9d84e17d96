"""Output formatting for speaker transcripts."""

from scribe.output.formatters import (
    format_speaker_transcript,
    format_time,
    format_transcript,
    ms_to_seconds,
    seconds_to_ms,
)

__all__ = [
    "format_speaker_transcript",
    "format_time",
    "format_transcript",
    "ms_to_seconds",
    "seconds_to_ms",
]
