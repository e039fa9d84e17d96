"""Correction orchestration: validate, route, apply, persist, invalidate.

One correction request runs as a small state machine:

    VALIDATING -> ROUTING -> PREVIEWING
    VALIDATING -> ROUTING -> APPLYING -> PERSISTING -> INVALIDATING -> COMMITTED

Everything up to PERSISTING happens in memory, so a failure at any earlier
step (including a model timeout) leaves the stored transcript untouched.
Apply calls are serialized per transcript by a non-blocking file lock, and the
single write is conditional on the version read during validation.
"""

import logging
import time
from datetime import datetime
from enum import Enum

from scribe.config import ScribeConfig, load_config, transcript_lock
from scribe.errors import (
    InvalidInstruction,
    NoSegments,
    NotFound,
    NotReady,
    ReassemblyMismatch,
    ScribeError,
)
from scribe.logging import CorrectionLogger, set_logger
from scribe.models.correction import (
    CorrectionApplyResponse,
    CorrectionPreview,
    PreviewSummary,
    RoutingPlan,
)
from scribe.models.transcript import SpeakerSegment, Transcript
from scribe.nlp.diff import generate_diff, merge_rewrites
from scribe.nlp.replacer import apply_simple_replacements
from scribe.nlp.rewriter import AIRewriteApplier, ClaudeTextGenerator
from scribe.nlp.router import CorrectionRouter
from scribe.output.formatters import format_speaker_transcript
from scribe.store.base import TranscriptStore

logger = logging.getLogger(__name__)


class CorrectionState(str, Enum):
    VALIDATING = "validating"
    ROUTING = "routing"
    PREVIEWING = "previewing"
    APPLYING = "applying"
    PERSISTING = "persisting"
    INVALIDATING = "invalidating"
    COMMITTED = "committed"


_TRANSITIONS: dict[CorrectionState | None, set[CorrectionState]] = {
    None: {CorrectionState.VALIDATING},
    CorrectionState.VALIDATING: {CorrectionState.ROUTING},
    CorrectionState.ROUTING: {CorrectionState.PREVIEWING, CorrectionState.APPLYING},
    CorrectionState.APPLYING: {CorrectionState.PERSISTING},
    CorrectionState.PERSISTING: {CorrectionState.INVALIDATING},
    CorrectionState.INVALIDATING: {CorrectionState.COMMITTED},
}


class CorrectionSession:
    """Tracks one request's progress through the correction states."""

    def __init__(self, transcript_id: str, mode: str, audit: CorrectionLogger | None = None):
        self.transcript_id = transcript_id
        self.mode = mode
        self.audit = audit
        self.state: CorrectionState | None = None
        self.history: list[CorrectionState] = []

    def advance(self, state: CorrectionState) -> None:
        """Move to ``state``; raises RuntimeError on an illegal transition."""
        if state not in _TRANSITIONS.get(self.state, set()):
            current = self.state.value if self.state else "start"
            raise RuntimeError(f"Illegal correction transition: {current} -> {state.value}")
        self.state = state
        self.history.append(state)
        logger.debug(f"[{self.transcript_id}] {self.mode}: {state.value}")
        if self.audit:
            self.audit.log_state(state.value)


class CorrectionOrchestrator:
    """Entry point for previewing and applying transcript corrections."""

    def __init__(
        self,
        store: TranscriptStore,
        rewriter: AIRewriteApplier | None = None,
        router: CorrectionRouter | None = None,
        config: ScribeConfig | None = None,
        audit_log: bool = True,
    ):
        self.store = store
        self.config = config or load_config()
        self.router = router or CorrectionRouter(self.config.router)
        self._rewriter = rewriter
        self.audit_log = audit_log

    @property
    def rewriter(self) -> AIRewriteApplier:
        """Model-based rewriter, created on first complex correction."""
        if self._rewriter is None:
            self._rewriter = AIRewriteApplier(
                ClaudeTextGenerator(self.config.rewrite),
                timeout_seconds=self.config.rewrite.timeout_seconds,
            )
        return self._rewriter

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _validate(self, user_id: str, transcript_id: str, instruction: str) -> Transcript:
        transcript = self.store.get_transcript(transcript_id)
        if transcript is None or transcript.user_id != user_id:
            raise NotFound()
        if transcript.status != "completed" or not transcript.transcript_text:
            raise NotReady()
        if not transcript.speaker_segments:
            raise NoSegments()
        if not instruction or not instruction.strip():
            raise InvalidInstruction()
        return transcript

    def _route(self, transcript: Transcript, instruction: str) -> RoutingPlan:
        formatted = transcript.transcript_with_speakers or format_speaker_transcript(
            transcript.speaker_segments
        )
        return self.router.analyze_and_route(
            transcript.speaker_segments,
            instruction,
            formatted,
            transcript.duration_seconds,
        )

    def _correct(
        self,
        segments: list[SpeakerSegment],
        plan: RoutingPlan,
        audit: CorrectionLogger | None,
    ) -> list[SpeakerSegment]:
        """Compute corrected segments in memory: rules first, then the model."""
        corrected = segments
        if plan.simple_replacements:
            result = apply_simple_replacements(segments, plan.simple_replacements)
            corrected = result.corrected_segments
            if audit:
                audit.log_rules_applied(plan.simple_replacements, result.affected_count)

        if plan.complex_corrections:
            started = time.monotonic()
            # The model works on top of the regex output, so rule results carry through
            rewritten = self.rewriter.rewrite_segments(
                corrected, "\n".join(plan.complex_corrections)
            )
            merged = merge_rewrites(corrected, rewritten)
            if audit:
                changed = sum(1 for a, b in zip(corrected, merged) if a.text != b.text)
                audit.log_rewrite(changed, time.monotonic() - started)
            corrected = merged

        return corrected

    def _invalidate(
        self,
        transcript: Transcript,
        user_id: str,
        audit: CorrectionLogger | None,
    ) -> list[str]:
        try:
            return self.store.delete_analyses(transcript.id, user_id)
        except Exception as e:
            # The correction is already committed; stale analyses are recoverable
            logger.warning(f"Failed to delete analyses for transcript {transcript.id}: {e}")
            if audit:
                audit.log_invalidation_failed(str(e))
            return []

    def _audit(self, transcript_id: str, mode: str) -> CorrectionLogger | None:
        return CorrectionLogger(transcript_id, mode=mode) if self.audit_log else None

    @staticmethod
    def _fail(audit: CorrectionLogger | None, error: ScribeError) -> None:
        if audit is None:
            return
        if isinstance(error, ReassemblyMismatch):
            audit.log_correction_rejected("reassembly_mismatch", {
                "expected": error.expected,
                "received": error.received,
            })
        elif isinstance(error, InvalidInstruction) and error.message != InvalidInstruction.user_message:
            audit.log_correction_rejected("no_changes", {"message": error.message})
        audit.log_error(type(error).__name__, error.message)

    @staticmethod
    def _no_changes(plan: RoutingPlan) -> InvalidInstruction:
        message = "Nothing in the transcript matched your instructions."
        hints = [f"'{u.suggestion}' instead of '{u.find}'" for u in plan.unmatched if u.suggestion]
        if hints:
            message += " Did you mean " + ", ".join(hints) + "?"
        return InvalidInstruction(message)

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def preview_correction(
        self,
        user_id: str,
        transcript_id: str,
        instruction: str,
    ) -> CorrectionPreview:
        """Compute the diff a correction would produce without writing anything."""
        audit = self._audit(transcript_id, "preview")
        session = CorrectionSession(transcript_id, "preview", audit)
        set_logger(audit)
        try:
            session.advance(CorrectionState.VALIDATING)
            transcript = self._validate(user_id, transcript_id, instruction)

            session.advance(CorrectionState.ROUTING)
            plan = self._route(transcript, instruction)
            if audit:
                audit.log_routing(plan)

            session.advance(CorrectionState.PREVIEWING)
            corrected = self._correct(transcript.speaker_segments, plan, audit)
            diff = generate_diff(transcript.speaker_segments, corrected)

            logger.info(f"Preview for {transcript_id}: {len(diff)} segments would change")
            return CorrectionPreview(
                diff=diff,
                summary=PreviewSummary(total_changes=len(diff), affected_segments=len(diff)),
                plan=plan,
            )
        except ScribeError as e:
            self._fail(audit, e)
            raise
        finally:
            if audit:
                audit.finalize()
            set_logger(None)

    def apply_correction(
        self,
        user_id: str,
        transcript_id: str,
        instruction: str,
    ) -> CorrectionApplyResponse:
        """Apply a correction, persist it in one write, and invalidate derived data.

        Raises:
            NotFound, NotReady, NoSegments, InvalidInstruction: Before any
                provider call or write.
            ProviderFailure, ReassemblyMismatch: Before any write.
            Conflict: If another apply holds the transcript or the stored
                version changed underneath this one.
        """
        audit = self._audit(transcript_id, "apply")
        session = CorrectionSession(transcript_id, "apply", audit)
        set_logger(audit)
        try:
            with transcript_lock(transcript_id):
                session.advance(CorrectionState.VALIDATING)
                transcript = self._validate(user_id, transcript_id, instruction)

                session.advance(CorrectionState.ROUTING)
                plan = self._route(transcript, instruction)
                if audit:
                    audit.log_routing(plan)

                session.advance(CorrectionState.APPLYING)
                corrected = self._correct(transcript.speaker_segments, plan, audit)
                changed = len(generate_diff(transcript.speaker_segments, corrected))
                if changed == 0:
                    raise self._no_changes(plan)

                session.advance(CorrectionState.PERSISTING)
                formatted = format_speaker_transcript(corrected)
                patch = {
                    "transcriptText": formatted,
                    "transcriptWithSpeakers": formatted,
                    "speakerSegments": [seg.model_dump(by_alias=True) for seg in corrected],
                    "translations": {},
                    "generatedAnalysisIds": [],
                    "updatedAt": datetime.now(),
                }
                updated = self.store.update_transcript(
                    transcript_id, patch, expected_version=transcript.version
                )

                session.advance(CorrectionState.INVALIDATING)
                deleted = self._invalidate(transcript, user_id, audit)
                cleared = list(transcript.translations.keys())

                session.advance(CorrectionState.COMMITTED)
                if audit:
                    audit.log_committed(updated.version, changed, deleted, cleared)

            logger.info(
                f"Applied correction to {transcript_id}: {changed} segments changed, "
                f"{len(deleted)} analyses deleted, {len(cleared)} translations cleared"
            )
            return CorrectionApplyResponse(
                success=True,
                transcription=self.store.get_transcript(transcript_id) or updated,
                deleted_analysis_ids=deleted,
                cleared_translations=cleared,
            )
        except ScribeError as e:
            self._fail(audit, e)
            raise
        finally:
            if audit:
                audit.finalize()
            set_logger(None)

