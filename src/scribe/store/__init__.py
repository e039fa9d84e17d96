"""Transcript persistence."""

from scribe.store.base import TranscriptStore
from scribe.store.sqlite import SqliteTranscriptStore

__all__ = ["SqliteTranscriptStore", "TranscriptStore"]
