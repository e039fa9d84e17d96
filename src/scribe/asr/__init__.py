"""ASR provider contract and job polling."""

from scribe.asr.base import ASROptions, ASRProvider
from scribe.asr.polling import build_word_boost, transcribe_with_diarization, wait_for_completion

__all__ = [
    "ASROptions",
    "ASRProvider",
    "build_word_boost",
    "transcribe_with_diarization",
    "wait_for_completion",
]
