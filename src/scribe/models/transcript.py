"""Pydantic models for speaker-segmented transcripts.

Field names are snake_case in Python and camelCase on the wire; dump with
``model_dump(by_alias=True)`` to get the JSON contract.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

TranscriptStatus = Literal["pending", "processing", "completed", "error"]


class CamelModel(BaseModel):
    """Base model serializing to camelCase JSON while accepting either form."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Speaker(CamelModel):
    """Aggregated statistics for one diarized speaker."""

    speaker_id: int = Field(description="Derived from the raw provider label")
    speaker_tag: str = Field(min_length=1, description="Display tag, e.g. 'Speaker A'")
    total_speaking_time: float = Field(default=0.0, ge=0.0, description="Seconds")
    word_count: int = Field(default=0, ge=0)
    first_appearance: float = Field(default=0.0, ge=0.0, description="Seconds")
    custom_name: str | None = None

    @field_validator("custom_name")
    @classmethod
    def validate_custom_name(cls, v: str | None) -> str | None:
        """Treat blank names as no name."""
        if v is not None and not v.strip():
            return None
        return v


class SpeakerSegment(CamelModel):
    """One speaker, one time range, one text string.

    Corrections only ever change ``text``; the other fields drive playback
    seek and citations and must survive every correction untouched.
    """

    speaker_tag: str = Field(min_length=1)
    start_time: float = Field(ge=0.0, description="Start time in seconds")
    end_time: float = Field(ge=0.0, description="End time in seconds")
    text: str
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)

    @field_validator("end_time")
    @classmethod
    def validate_end_after_start(cls, v: float, info) -> float:
        """Ensure end time is not before start time."""
        if "start_time" in info.data and v < info.data["start_time"]:
            raise ValueError("end time must be >= start time")
        return v


class Transcript(CamelModel):
    """A persisted transcript record as seen by the correction subsystem."""

    id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    status: TranscriptStatus = "pending"
    transcript_text: str | None = None
    transcript_with_speakers: str | None = None
    speakers: list[Speaker] = Field(default_factory=list)
    speaker_segments: list[SpeakerSegment] = Field(default_factory=list)
    translations: dict[str, Any] = Field(default_factory=dict, description="Keyed by language code")
    generated_analysis_ids: list[str] = Field(default_factory=list)
    language: str | None = None
    duration_seconds: float | None = Field(default=None, ge=0.0)
    version: int = Field(default=0, ge=0, description="Incremented on every write")
    updated_at: datetime = Field(default_factory=datetime.now)
