"""Diarization post-processing for raw ASR output."""

from scribe.diarization.language import LANGUAGE_MAP, normalize_language
from scribe.diarization.normalizer import (
    DiarizationResult,
    check_chronological,
    normalize,
    normalize_utterances,
    normalize_words,
    resolve_duration,
    speaker_id_from_label,
)
from scribe.diarization.payloads import UtterancePayload, WordPayload, parse_provider_payload

__all__ = [
    "LANGUAGE_MAP",
    "DiarizationResult",
    "UtterancePayload",
    "WordPayload",
    "check_chronological",
    "normalize",
    "normalize_language",
    "normalize_utterances",
    "normalize_words",
    "parse_provider_payload",
    "resolve_duration",
    "speaker_id_from_label",
]
