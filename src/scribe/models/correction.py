"""Models for the correction pipeline."""

from typing import Literal

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from scribe.models.transcript import CamelModel, SpeakerSegment, Transcript


class CorrectionRule(CamelModel):
    """A deterministic literal find/replace rule produced by the router."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    find: str = Field(min_length=1, description="Literal text to find")
    replace: str = Field(description="Replacement text")
    case_sensitive: bool = False
    whole_word: bool = False
    estimated_matches: int = Field(default=0, ge=0)
    confidence: Literal["high", "medium", "low"] = "medium"


class UnmatchedRule(CamelModel):
    """A parsed substitution that matched nothing in the transcript."""

    find: str
    replace: str
    suggestion: str | None = Field(default=None, description="Closest term in the transcript")


class EstimatedTime(CamelModel):
    """Rough wall-clock hints for the two correction paths."""

    regex: str = "< 1 second"
    ai: str = "0 seconds"
    total: str = "< 1 second"


class RoutingSummary(CamelModel):
    """Aggregate counts for a routing plan."""

    total_corrections: int = 0
    simple_count: int = 0
    complex_count: int = 0
    total_segments_affected: int = 0
    total_segments: int = 0
    percentage_affected: float = Field(default=0.0, ge=0.0, le=1.0, description="Fraction 0..1")


class RoutingPlan(CamelModel):
    """Output of the router: cheap rules plus instructions needing a model."""

    simple_replacements: list[CorrectionRule] = Field(default_factory=list)
    complex_corrections: list[str] = Field(default_factory=list)
    unmatched: list[UnmatchedRule] = Field(default_factory=list)
    estimated_time: EstimatedTime = Field(default_factory=EstimatedTime)
    summary: RoutingSummary = Field(default_factory=RoutingSummary)


class ReplacementResult(CamelModel):
    """Segments after deterministic rules ran."""

    corrected_segments: list[SpeakerSegment]
    affected_count: int = Field(default=0, ge=0)


class SegmentMatch(CamelModel):
    """A single occurrence of a search term inside a segment."""

    segment_index: int = Field(ge=0)
    char_offset: int = Field(ge=0)
    matched_text: str
    context: str


class DiffEntry(CamelModel):
    """One changed segment, for review before commit."""

    segment_index: int = Field(ge=0)
    speaker_tag: str
    timestamp: str = Field(description="M:SS of the segment start")
    old_text: str
    new_text: str


class PreviewSummary(CamelModel):
    """Counts shown alongside a preview diff."""

    total_changes: int = 0
    affected_segments: int = 0


class CorrectionPreview(CamelModel):
    """Result of a preview call; nothing has been written."""

    diff: list[DiffEntry] = Field(default_factory=list)
    summary: PreviewSummary = Field(default_factory=PreviewSummary)
    plan: RoutingPlan | None = None


class CorrectionApplyResponse(CamelModel):
    """Result of a committed correction."""

    success: bool
    transcription: Transcript
    deleted_analysis_ids: list[str] = Field(default_factory=list)
    cleared_translations: list[str] = Field(default_factory=list)
