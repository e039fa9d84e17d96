"""Segment-level diff between original and corrected transcripts."""

from scribe.models.correction import DiffEntry
from scribe.models.transcript import SpeakerSegment
from scribe.output.formatters import format_time


def generate_diff(
    original: list[SpeakerSegment],
    corrected: list[SpeakerSegment],
) -> list[DiffEntry]:
    """List segments whose text changed, compared by position.

    Comparison is exact string inequality. The speaker tag and timestamp
    come from the original segment.

    Raises:
        ValueError: If the lists have different lengths.
    """
    if len(original) != len(corrected):
        raise ValueError(
            f"Cannot diff {len(original)} original segments against {len(corrected)} corrected"
        )

    return [
        DiffEntry(
            segment_index=i,
            speaker_tag=old.speaker_tag,
            timestamp=format_time(old.start_time),
            old_text=old.text,
            new_text=new.text,
        )
        for i, (old, new) in enumerate(zip(original, corrected))
        if old.text != new.text
    ]


def merge_rewrites(
    regex_segments: list[SpeakerSegment],
    rewritten: list[SpeakerSegment],
) -> list[SpeakerSegment]:
    """Overlay model rewrites on regex output, position by position.

    Only segments whose text the model actually changed are replaced.
    """
    if len(regex_segments) != len(rewritten):
        raise ValueError("Rewrite and regex segment counts differ")
    return [
        new if new.text != base.text else base
        for base, new in zip(regex_segments, rewritten)
    ]
