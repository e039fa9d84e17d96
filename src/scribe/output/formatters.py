"""Time helpers and output formatters for speaker transcripts."""

import html
import math

from scribe.models.transcript import SpeakerSegment, Transcript


# =============================================================================
# Time conversion and formatting
# =============================================================================

def ms_to_seconds(ms: float | int | None) -> float:
    """Convert provider milliseconds to seconds."""
    if ms is None:
        return 0.0
    return ms / 1000


def seconds_to_ms(seconds: float) -> int:
    """Convert seconds to whole milliseconds."""
    return int(round(seconds * 1000))


def _clamp_seconds(seconds: float) -> float:
    # Handle invalid values (negative, NaN, infinity, wrong type)
    if not isinstance(seconds, (int, float)) or not math.isfinite(seconds) or seconds < 0:
        return 0.0
    return float(seconds)


def _parse_time_components(seconds: float) -> tuple[int, int, int, int]:
    """Parse seconds into (hours, minutes, secs, millis) with validation."""
    seconds = _clamp_seconds(seconds)

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    millis = round((seconds % 1) * 1000)

    # Handle millisecond overflow (e.g., 999.9999 -> 1000ms)
    if millis >= 1000:
        millis = 0
        secs += 1
        if secs >= 60:
            secs = 0
            minutes += 1
            if minutes >= 60:
                minutes = 0
                hours += 1

    return hours, minutes, secs, millis


def format_time(seconds: float) -> str:
    """Format seconds as M:SS with unbounded minutes.

    >>> format_time(125)
    '2:05'
    >>> format_time(3661)
    '61:01'
    """
    seconds = _clamp_seconds(seconds)
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes}:{secs:02d}"


def format_srt_time(seconds: float) -> str:
    """Format seconds as SRT timestamp (HH:MM:SS,mmm)."""
    hours, minutes, secs, millis = _parse_time_components(seconds)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def format_vtt_time(seconds: float) -> str:
    """Format seconds as VTT timestamp (HH:MM:SS.mmm)."""
    hours, minutes, secs, millis = _parse_time_components(seconds)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}"


# =============================================================================
# Transcript text
# =============================================================================

def format_speaker_transcript(segments: list[SpeakerSegment]) -> str:
    """Render segments as blank-line separated "{speakerTag}: {text}" blocks.

    This is both the stored ``transcriptWithSpeakers`` view and the format
    exchanged with the text-generation provider.
    """
    blocks = [f"{seg.speaker_tag}: {seg.text}" for seg in segments]
    return "\n\n".join(blocks).strip()


def _display_names(transcript: Transcript) -> dict[str, str]:
    """Map speaker tags to custom names where the user renamed a speaker."""
    return {
        speaker.speaker_tag: speaker.custom_name
        for speaker in transcript.speakers
        if speaker.custom_name
    }


def _clean_line(text: str) -> str:
    return (text or "").strip().replace("\n", " ").replace("\r", "")


def to_json(transcript: Transcript, indent: int = 2) -> str:
    """Export transcript as camelCase JSON with proper Unicode handling."""
    return transcript.model_dump_json(indent=indent, by_alias=True)


def to_text(transcript: Transcript) -> str:
    """Export transcript as speaker-labeled plain text using display names."""
    names = _display_names(transcript)
    blocks = [
        f"{names.get(seg.speaker_tag, seg.speaker_tag)}: {seg.text}"
        for seg in transcript.speaker_segments
    ]
    return "\n\n".join(blocks).strip() + "\n" if blocks else ""


def to_srt(transcript: Transcript) -> str:
    """Export transcript as SRT subtitles with speaker prefixes."""
    names = _display_names(transcript)
    lines = []
    entry_num = 1

    for seg in transcript.speaker_segments:
        text = _clean_line(seg.text)
        if not text:
            continue

        speaker = names.get(seg.speaker_tag, seg.speaker_tag)
        lines.append(f"{entry_num}")
        lines.append(f"{format_srt_time(seg.start_time)} --> {format_srt_time(seg.end_time)}")
        lines.append(f"{speaker}: {text}")
        lines.append("")
        entry_num += 1

    return "\n".join(lines) + "\n" if lines else ""


def to_vtt(transcript: Transcript) -> str:
    """Export transcript as WebVTT with voice spans."""
    names = _display_names(transcript)
    lines = ["WEBVTT", ""]

    for seg in transcript.speaker_segments:
        text = _clean_line(seg.text)
        if not text:
            continue

        # WebVTT uses HTML-like markup, so <, >, & need escaping
        speaker = html.escape(names.get(seg.speaker_tag, seg.speaker_tag), quote=False)
        text = html.escape(text, quote=False)

        lines.append(f"{format_vtt_time(seg.start_time)} --> {format_vtt_time(seg.end_time)}")
        lines.append(f"<v {speaker}>{text}")
        lines.append("")

    return "\n".join(lines) + "\n"


FORMATTERS = {
    "json": to_json,
    "srt": to_srt,
    "vtt": to_vtt,
    "txt": to_text,
    "text": to_text,
}


def format_transcript(transcript: Transcript, output_format: str) -> str:
    """Format transcript based on file extension or format name."""
    if not output_format or not output_format.strip():
        raise ValueError("Output format cannot be empty")

    formatter = FORMATTERS.get(output_format.lower().lstrip("."))
    if not formatter:
        raise ValueError(
            f"Unknown format: {output_format}. "
            f"Supported: {', '.join(FORMATTERS.keys())}"
        )

    return formatter(transcript)
