"""Diarization post-processing: raw ASR output to canonical speaker segments.

Two provider shapes are supported:

- Utterances: the provider already grouped contiguous same-speaker speech,
  so each utterance becomes exactly one segment and speakers are ordered by
  their numeric id.
- Words: a flat speaker-tagged word list; consecutive same-speaker runs are
  grouped into segments and speakers are ordered by first appearance.

Zero-length spans (end == start) are never emitted on their own. Their text
is coalesced into the previous segment when it has the same speaker, and
dropped otherwise.
"""

import logging
from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from scribe.config import DiarizationConfig
from scribe.diarization.language import normalize_language
from scribe.diarization.payloads import (
    ProviderWord,
    UtterancePayload,
    WordPayload,
    parse_provider_payload,
)
from scribe.errors import ProviderFailure
from scribe.models.transcript import Speaker, SpeakerSegment
from scribe.output.formatters import format_speaker_transcript, ms_to_seconds

logger = logging.getLogger(__name__)

SPEAKER_TAG_PREFIX = "Speaker "


class DiarizationResult(BaseModel):
    """Canonical speaker-segmented transcript produced from provider output."""

    text: str = ""
    speakers: list[Speaker] = Field(default_factory=list)
    speaker_segments: list[SpeakerSegment] = Field(default_factory=list)
    transcript_with_speakers: str = ""
    speaker_count: int = 0
    duration_seconds: float | None = None
    language: str | None = None
    language_confidence: float | None = None
    confidence: float | None = None


def speaker_id_from_label(label: str) -> int:
    """Derive a stable numeric id from a raw speaker label.

    Numeric labels parse directly ("2" -> 2). Letters map by alphabetic
    position (A -> 1, b -> 2, Z -> 26). Other labels fall back to the
    position of their first letter, or 0.
    """
    label = label.strip()
    if label.isdigit():
        return int(label)
    if label and label[0].isascii() and label[0].isalpha():
        return ord(label[0].upper()) - 64
    return 0


def speaker_tag_for(label: str) -> str:
    """Display tag for a raw provider label."""
    return f"{SPEAKER_TAG_PREFIX}{label}"


def resolve_duration(
    provider_duration: float | None,
    segments: list[SpeakerSegment],
) -> float | None:
    """Resolve total duration in seconds.

    Precedence: a non-zero provider duration verbatim, else the end time of
    the last segment in original order (not the maximum), else None.
    """
    if provider_duration:
        return provider_duration
    if segments:
        return segments[-1].end_time
    return None


def check_chronological(segments: list[SpeakerSegment], strict: bool = False) -> bool:
    """Verify segments are non-decreasing by start time.

    Never reorders. Returns False and logs a warning on violation, or raises
    ProviderFailure when ``strict`` is set.
    """
    for i in range(1, len(segments)):
        if segments[i].start_time < segments[i - 1].start_time:
            message = (
                f"Provider returned out-of-order segments: segment {i} starts at "
                f"{segments[i].start_time}s before segment {i - 1} at {segments[i - 1].start_time}s"
            )
            if strict:
                raise ProviderFailure(message)
            logger.warning(message)
            return False
    return True


@dataclass
class _SpeakerStats:
    speaker_id: int
    speaker_tag: str
    first_appearance: float
    total_speaking_time: float = 0.0
    word_count: int = 0

    def to_speaker(self) -> Speaker:
        return Speaker(
            speaker_id=self.speaker_id,
            speaker_tag=self.speaker_tag,
            total_speaking_time=round(self.total_speaking_time, 3),
            word_count=self.word_count,
            first_appearance=self.first_appearance,
        )


@dataclass
class _SegmentBuilder:
    """Accumulates segments, coalescing zero-length spans into the same speaker's previous segment."""

    segments: list[SpeakerSegment] = field(default_factory=list)
    dropped: int = 0
    coalesced: int = 0

    def add(self, segment: SpeakerSegment) -> None:
        if segment.end_time > segment.start_time:
            self.segments.append(segment)
            return

        previous = self.segments[-1] if self.segments else None
        # Never move words across speakers
        if previous is None or previous.speaker_tag != segment.speaker_tag:
            self.dropped += 1
            reason = "no predecessor" if previous is None else f"previous segment is {previous.speaker_tag}"
            logger.warning(
                f"Dropping zero-length segment at {segment.start_time}s from {segment.speaker_tag} "
                f"({reason}): {segment.text[:50]!r}"
            )
            return

        text = segment.text.strip()
        if text:
            self.segments[-1] = previous.model_copy(update={"text": f"{previous.text} {text}"})
        self.coalesced += 1


def _finish(
    payload: UtterancePayload | WordPayload,
    speakers: list[Speaker],
    builder: _SegmentBuilder,
    config: DiarizationConfig,
) -> DiarizationResult:
    segments = builder.segments
    check_chronological(segments, strict=config.strict_ordering)

    if builder.coalesced or builder.dropped:
        logger.info(
            f"Zero-length segments: {builder.coalesced} coalesced, {builder.dropped} dropped"
        )

    logger.info(f"Processed {len(speakers)} speakers with {len(segments)} segments")

    return DiarizationResult(
        text=payload.text or " ".join(seg.text for seg in segments),
        speakers=speakers,
        speaker_segments=segments,
        transcript_with_speakers=format_speaker_transcript(segments),
        speaker_count=len(speakers),
        duration_seconds=resolve_duration(payload.duration, segments),
        language=normalize_language(payload.language_code),
        language_confidence=payload.language_confidence,
        confidence=payload.confidence,
    )


def normalize_utterances(
    payload: UtterancePayload,
    config: DiarizationConfig | None = None,
) -> DiarizationResult:
    """Build speakers and one segment per utterance."""
    config = config or DiarizationConfig()
    stats: dict[str, _SpeakerStats] = {}
    builder = _SegmentBuilder()

    for utterance in payload.utterances:
        tag = speaker_tag_for(utterance.speaker)
        if tag not in stats:
            stats[tag] = _SpeakerStats(
                speaker_id=speaker_id_from_label(utterance.speaker),
                speaker_tag=tag,
                first_appearance=ms_to_seconds(utterance.start),
            )

        speaker = stats[tag]
        speaker.total_speaking_time += ms_to_seconds(utterance.end - utterance.start)
        if utterance.words:
            speaker.word_count += len(utterance.words)
        else:
            speaker.word_count += len(utterance.text.split(" "))

        builder.add(SpeakerSegment(
            speaker_tag=tag,
            start_time=ms_to_seconds(utterance.start),
            end_time=ms_to_seconds(utterance.end),
            text=utterance.text,
            confidence=utterance.confidence,
        ))

    speakers = sorted((s.to_speaker() for s in stats.values()), key=lambda s: s.speaker_id)
    return _finish(payload, speakers, builder, config)


def _close_run(tag: str, words: list[ProviderWord]) -> SpeakerSegment:
    confidences = [w.confidence for w in words if w.confidence is not None]
    return SpeakerSegment(
        speaker_tag=tag,
        start_time=ms_to_seconds(words[0].start),
        end_time=ms_to_seconds(words[-1].end),
        text=" ".join(w.text for w in words),
        confidence=sum(confidences) / len(confidences) if confidences else None,
    )


def normalize_words(
    payload: WordPayload,
    config: DiarizationConfig | None = None,
) -> DiarizationResult:
    """Group consecutive same-speaker words into segments."""
    config = config or DiarizationConfig()
    stats: dict[str, _SpeakerStats] = {}
    builder = _SegmentBuilder()

    run_tag: str | None = None
    run_words: list[ProviderWord] = []

    def close_run() -> None:
        if run_tag is None or not run_words:
            return
        segment = _close_run(run_tag, run_words)
        stats[run_tag].total_speaking_time += segment.end_time - segment.start_time
        builder.add(segment)

    skipped = 0
    for word in payload.words:
        if word.speaker is None or not word.text:
            skipped += 1
            continue

        tag = speaker_tag_for(word.speaker)
        if tag not in stats:
            stats[tag] = _SpeakerStats(
                speaker_id=speaker_id_from_label(word.speaker),
                speaker_tag=tag,
                first_appearance=ms_to_seconds(word.start),
            )
        stats[tag].word_count += 1

        if tag != run_tag:
            close_run()
            run_tag = tag
            run_words = [word]
        else:
            run_words.append(word)
    close_run()

    if skipped:
        logger.debug(f"Skipped {skipped} words without speaker tag or text")

    # Dict preserves insertion order, which is first appearance
    speakers = [s.to_speaker() for s in stats.values()]
    return _finish(payload, speakers, builder, config)


def normalize(
    payload: UtterancePayload | WordPayload | dict,
    config: DiarizationConfig | None = None,
) -> DiarizationResult:
    """Normalize a provider payload (raw dict or parsed model).

    Raises:
        ProviderFailure: If the payload reports a terminal error or is malformed.
    """
    if isinstance(payload, dict):
        payload = parse_provider_payload(payload)
    elif payload.status == "error":
        raise ProviderFailure("Transcription failed: provider reported an error")

    if isinstance(payload, WordPayload):
        return normalize_words(payload, config)
    return normalize_utterances(payload, config)
