"""Data models for transcripts and corrections."""

from scribe.models.correction import (
    CorrectionApplyResponse,
    CorrectionPreview,
    CorrectionRule,
    DiffEntry,
    EstimatedTime,
    PreviewSummary,
    ReplacementResult,
    RoutingPlan,
    RoutingSummary,
    SegmentMatch,
    UnmatchedRule,
)
from scribe.models.transcript import Speaker, SpeakerSegment, Transcript, TranscriptStatus

__all__ = [
    "CorrectionApplyResponse",
    "CorrectionPreview",
    "CorrectionRule",
    "DiffEntry",
    "EstimatedTime",
    "PreviewSummary",
    "ReplacementResult",
    "RoutingPlan",
    "RoutingSummary",
    "SegmentMatch",
    "Speaker",
    "SpeakerSegment",
    "Transcript",
    "TranscriptStatus",
    "UnmatchedRule",
]
