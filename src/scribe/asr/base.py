"""Abstract contract for asynchronous ASR providers."""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field


class ASROptions(BaseModel):
    """Job options sent to the provider on submission."""

    speaker_labels: bool = True
    language_detection: bool = True
    language_confidence_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    language_code: str | None = Field(
        default=None, description="Force a language instead of detecting it"
    )
    word_boost: list[str] = Field(default_factory=list)


class ASRProvider(ABC):
    """Abstract base class for hosted ASR providers.

    Providers are job-based: ``submit`` starts a transcription and returns a
    job id, ``poll`` returns the raw job payload. Payloads carry a ``status``
    of ``queued``, ``processing``, ``completed`` or ``error``.
    """

    @abstractmethod
    def submit(self, audio_url: str, options: ASROptions) -> str:
        """
        Submit audio for transcription.

        Args:
            audio_url: URL the provider can fetch the audio from
            options: Diarization and language options

        Returns:
            Provider job id
        """
        ...

    @abstractmethod
    def poll(self, job_id: str) -> dict[str, Any]:
        """Fetch the current raw payload for a job."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for display."""
        ...
