"""Provider payload shapes, parsed at the boundary into a tagged union.

ASR providers return loosely-typed JSON. Everything provider-specific
(millisecond timestamps, ``word`` vs ``text``, ``audio_duration``) is absorbed
here; the normalizer only ever sees these models.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    Field,
    TypeAdapter,
    ValidationError,
    model_validator,
)

from scribe.errors import ProviderFailure


def _coerce_label(v: Any) -> Any:
    # Providers send speaker labels as "A", "1" or 1
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(int(v))
    return v


SpeakerLabel = Annotated[str, BeforeValidator(_coerce_label)]


class _TimedSpan(BaseModel):
    """Millisecond span whose end must not precede its start."""

    start: float = Field(ge=0.0, validation_alias=AliasChoices("start", "start_ms"))
    end: float = Field(ge=0.0, validation_alias=AliasChoices("end", "end_ms"))

    @model_validator(mode="after")
    def validate_end_after_start(self):
        if self.end < self.start:
            raise ValueError(f"end ({self.end}) is before start ({self.start})")
        return self


class ProviderWord(_TimedSpan):
    """A single recognized word, timestamps in milliseconds."""

    text: str = Field(validation_alias=AliasChoices("text", "word"))
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    speaker: SpeakerLabel | None = Field(
        default=None, validation_alias=AliasChoices("speaker", "speaker_tag", "speakerTag")
    )


class ProviderUtterance(_TimedSpan):
    """A contiguous span of one speaker's speech, timestamps in milliseconds."""

    speaker: SpeakerLabel = Field(min_length=1)
    text: str
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    words: list[ProviderWord] | None = None


class _PayloadBase(BaseModel):
    status: str = "completed"
    text: str | None = None
    language_code: str | None = None
    language_confidence: float | None = None
    confidence: float | None = None
    # Seconds, as reported by the provider
    duration: float | None = Field(
        default=None, validation_alias=AliasChoices("duration", "audio_duration")
    )


class UtterancePayload(_PayloadBase):
    """Provider output grouped into utterances."""

    kind: Literal["utterances"] = "utterances"
    utterances: list[ProviderUtterance] = Field(default_factory=list)


class WordPayload(_PayloadBase):
    """Provider output as a flat, speaker-tagged word list."""

    kind: Literal["words"] = "words"
    words: list[ProviderWord] = Field(default_factory=list)


ProviderPayload = Annotated[Union[UtterancePayload, WordPayload], Field(discriminator="kind")]

_payload_adapter: TypeAdapter[ProviderPayload] = TypeAdapter(ProviderPayload)


def _detect_kind(raw: dict[str, Any]) -> str:
    # Utterances win when a provider sends both
    if raw.get("kind") in ("utterances", "words"):
        return raw["kind"]
    if raw.get("utterances"):
        return "utterances"
    if raw.get("words"):
        return "words"
    return "utterances"


def parse_provider_payload(raw: dict[str, Any]) -> UtterancePayload | WordPayload:
    """Validate a raw provider response into the tagged union.

    Raises:
        ProviderFailure: If the provider reported a terminal error, or the
            payload does not match either known shape.
    """
    if not isinstance(raw, dict):
        raise ProviderFailure(f"Unexpected provider payload type: {type(raw).__name__}")

    if raw.get("status") == "error":
        raise ProviderFailure(f"Transcription failed: {raw.get('error') or 'unknown error'}")

    try:
        return _payload_adapter.validate_python({**raw, "kind": _detect_kind(raw)})
    except ValidationError as e:
        raise ProviderFailure(f"Malformed provider payload: {e.error_count()} validation errors") from e
