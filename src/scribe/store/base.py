"""Persistence contract for transcripts and their derived analyses."""

from abc import ABC, abstractmethod
from typing import Any

from scribe.models.transcript import Transcript


class TranscriptStore(ABC):
    """Abstract transcript document store.

    Patches use the camelCase field names of the stored document
    (``transcriptText``, ``speakerSegments``, ...).
    """

    @abstractmethod
    def get_transcript(self, transcript_id: str) -> Transcript | None:
        """Fetch a transcript, or None if it does not exist."""
        ...

    @abstractmethod
    def update_transcript(
        self,
        transcript_id: str,
        patch: dict[str, Any],
        expected_version: int | None = None,
    ) -> Transcript:
        """
        Apply a partial update as a single write.

        Args:
            transcript_id: Transcript to update
            patch: Fields to overwrite
            expected_version: If given, the write only succeeds when the
                stored version still equals it

        Returns:
            The updated transcript, with its version incremented

        Raises:
            NotFound: If the transcript does not exist
            Conflict: If ``expected_version`` is stale
        """
        ...

    @abstractmethod
    def delete_analyses(self, transcript_id: str, user_id: str) -> list[str]:
        """Delete all analyses derived from a transcript; return the deleted ids."""
        ...

    @abstractmethod
    def save_transcript(self, transcript: Transcript) -> Transcript:
        """Insert or replace a whole transcript."""
        ...

    @abstractmethod
    def rename_speaker(
        self,
        transcript_id: str,
        user_id: str,
        speaker_id: int,
        custom_name: str | None,
    ) -> Transcript:
        """Set or clear a speaker's display name."""
        ...
