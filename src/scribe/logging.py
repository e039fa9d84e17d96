"""Structured audit log for correction sessions.

Logs each preview or apply to ~/.scribe/logs/ in JSON-lines format, so rule
quality and rejection causes can be analyzed later.

Example usage:
    from scribe.logging import CorrectionLogger

    logger = CorrectionLogger("abc123", mode="apply")
    logger.log_state("routing")
    logger.log_routing(plan)
    logger.log_rules_applied(rules, affected_count=3)
    logger.log_committed(version=4, segments_changed=3)
    logger.finalize()
"""

import atexit
import json
import sys
import threading
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from scribe.config import LOGS_DIR
from scribe.models.correction import CorrectionRule, RoutingPlan


def _preview(text: str, limit: int = 100) -> str:
    return text[:limit] + "..." if len(text) > limit else text


@dataclass
class SessionMetrics:
    """Aggregated metrics for one correction session."""

    simple_rules: int = 0
    complex_corrections: int = 0
    unmatched_rules: int = 0
    segments_changed: int = 0
    corrections_applied: int = 0
    corrections_rejected: int = 0
    rewrite_seconds: float = 0.0


@dataclass
class CorrectionLogger:
    """Session-based logger for correction pipeline events."""

    transcript_id: str
    mode: str = "preview"
    session_id: str = field(default_factory=lambda: datetime.now().strftime("%Y%m%d_%H%M%S_%f"))
    log_file: Path = field(init=False)
    metrics: SessionMetrics = field(default_factory=SessionMetrics)
    _started: datetime = field(default_factory=datetime.now)
    _rule_terms: list[str] = field(default_factory=list)
    # Buffer log events to reduce file I/O
    _log_buffer: list[dict[str, Any]] = field(default_factory=list)
    _BUFFER_SIZE: int = field(default=10, repr=False)
    _buffer_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        LOGS_DIR.mkdir(parents=True, exist_ok=True)
        self.log_file = LOGS_DIR / f"session_{self.session_id}.jsonl"
        self._write_event("session_start", {
            "transcript_id": self.transcript_id,
            "mode": self.mode,
            "timestamp": self._started.isoformat(),
        })

    def log_state(self, state: str) -> None:
        """Log a state machine transition."""
        self._write_event("state", {"state": state})

    def log_routing(self, plan: RoutingPlan) -> None:
        """Log the routing decision."""
        self.metrics.simple_rules = len(plan.simple_replacements)
        self.metrics.complex_corrections = len(plan.complex_corrections)
        self.metrics.unmatched_rules = len(plan.unmatched)
        self._rule_terms.extend(rule.find for rule in plan.simple_replacements)

        self._write_event("routing", {
            "rules": [
                {
                    "find": rule.find,
                    "replace": rule.replace,
                    "matches": rule.estimated_matches,
                    "confidence": rule.confidence,
                }
                for rule in plan.simple_replacements
            ],
            "complex": [_preview(c) for c in plan.complex_corrections],
            "unmatched": [u.find for u in plan.unmatched],
            "segments_affected": plan.summary.total_segments_affected,
            "total_segments": plan.summary.total_segments,
        })

    def log_rules_applied(self, rules: list[CorrectionRule], affected_count: int) -> None:
        """Log regex replacement results."""
        self._write_event("rules_applied", {
            "rule_count": len(rules),
            "segments_changed": affected_count,
        })

    def log_rewrite(self, segments_changed: int, elapsed_seconds: float) -> None:
        """Log a completed model rewrite."""
        self.metrics.rewrite_seconds += elapsed_seconds
        self._write_event("rewrite", {
            "segments_changed": segments_changed,
            "elapsed_seconds": round(elapsed_seconds, 3),
        })

    def log_correction_rejected(self, reason: str, details: dict | None = None) -> None:
        """Log a correction that was computed but not accepted."""
        self.metrics.corrections_rejected += 1
        self._write_event("correction_rejected", {
            "reason": reason,
            "details": details or {},
        })

    def log_committed(
        self,
        version: int,
        segments_changed: int,
        deleted_analysis_ids: list[str] | None = None,
        cleared_translations: list[str] | None = None,
    ) -> None:
        """Log a persisted correction."""
        self.metrics.corrections_applied += 1
        self.metrics.segments_changed = segments_changed
        self._write_event("committed", {
            "version": version,
            "segments_changed": segments_changed,
            "deleted_analysis_ids": deleted_analysis_ids or [],
            "cleared_translations": cleared_translations or [],
        })

    def log_invalidation_failed(self, message: str) -> None:
        """Log a failure to delete derived analyses after a commit."""
        self._write_event("invalidation_failed", {"message": message})

    def log_error(self, error_type: str, message: str, details: dict | None = None) -> None:
        """Log an error event."""
        self._write_event("error", {
            "error_type": error_type,
            "message": message,
            "details": details or {},
        })

    def finalize(self) -> dict:
        """Finalize session and write summary.

        Returns:
            Summary metrics dict
        """
        elapsed = (datetime.now() - self._started).total_seconds()
        summary = {
            "transcript_id": self.transcript_id,
            "mode": self.mode,
            "duration_seconds": round(elapsed, 3),
            "simple_rules": self.metrics.simple_rules,
            "complex_corrections": self.metrics.complex_corrections,
            "unmatched_rules": self.metrics.unmatched_rules,
            "segments_changed": self.metrics.segments_changed,
            "corrections_applied": self.metrics.corrections_applied,
            "corrections_rejected": self.metrics.corrections_rejected,
            "rewrite_seconds": round(self.metrics.rewrite_seconds, 3),
            "rule_terms": self._rule_terms,
        }

        self._write_event("session_complete", summary)
        self._flush_logs()
        return summary

    def _write_event(self, event_type: str, data: dict) -> None:
        """Buffer a JSON event and flush when the buffer is full."""
        event = {
            "event": event_type,
            "ts": datetime.now().isoformat(),
            **data,
        }

        with self._buffer_lock:
            self._log_buffer.append(event)
            critical_events = {"session_start", "session_complete", "error", "committed"}
            should_flush = len(self._log_buffer) >= self._BUFFER_SIZE or event_type in critical_events

        # Flush outside the lock to avoid holding lock during I/O
        if should_flush:
            self._flush_logs()

    def _flush_logs(self) -> None:
        """Flush buffered log events to disk."""
        with self._buffer_lock:
            if not self._log_buffer:
                return
            events_to_write = self._log_buffer.copy()

        try:
            with open(self.log_file, "a", encoding="utf-8") as f:
                for event in events_to_write:
                    f.write(json.dumps(event, ensure_ascii=False, default=str) + "\n")

            # Only clear what was written; events may have arrived meanwhile
            with self._buffer_lock:
                self._log_buffer = self._log_buffer[len(events_to_write):]

        except OSError as e:
            # Keep buffer intact for retry
            print(f"Warning: Failed to flush logs to {self.log_file}: {e}", file=sys.stderr)


# Session logger for the current thread or task; each preview/apply sets its own
_current_logger: ContextVar[CorrectionLogger | None] = ContextVar("correction_logger", default=None)
# Every logger still set somewhere, for the exit flush
_active_loggers: dict[int, CorrectionLogger] = {}
_logger_lock = threading.Lock()


def get_logger() -> CorrectionLogger | None:
    """Get the session logger of the current context."""
    return _current_logger.get()


def set_logger(logger: CorrectionLogger | None) -> None:
    """Set the session logger of the current context; other threads are unaffected."""
    previous = _current_logger.get()
    with _logger_lock:
        if previous is not None:
            _active_loggers.pop(id(previous), None)
        if logger is not None:
            _active_loggers[id(logger)] = logger
    _current_logger.set(logger)


def log_event(event_type: str, data: dict) -> None:
    """Log to the current context's session if one is active."""
    logger = _current_logger.get()
    if logger:
        logger._write_event(event_type, data)


def _flush_on_exit():
    with _logger_lock:
        loggers = list(_active_loggers.values())
    for logger in loggers:
        if logger._log_buffer:
            logger._flush_logs()


atexit.register(_flush_on_exit)


def analyze_logs(limit: int = 10) -> dict[str, Any]:
    """Aggregate the most recent correction sessions.

    Returns counts of applied and rejected corrections, the acceptance rate,
    and the most frequently corrected terms.
    """
    if not LOGS_DIR.exists():
        return {"error": "No logs directory found"}

    log_files = sorted(LOGS_DIR.glob("session_*.jsonl"), reverse=True)[:limit]
    if not log_files:
        return {"error": "No log files found"}

    summaries = []
    rejection_reasons: dict[str, int] = {}
    term_counts: dict[str, int] = {}

    for log_file in log_files:
        try:
            content = log_file.read_text(encoding="utf-8")
        except OSError:
            continue

        for line in content.splitlines():
            if not line.strip():
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue

            kind = event.get("event")
            if kind == "session_complete":
                summaries.append(event)
                for term in event.get("rule_terms", []):
                    term_counts[term.lower()] = term_counts.get(term.lower(), 0) + 1
            elif kind == "correction_rejected":
                reason = event.get("reason", "unknown")
                rejection_reasons[reason] = rejection_reasons.get(reason, 0) + 1

    applied = sum(s.get("corrections_applied", 0) for s in summaries)
    rejected = sum(s.get("corrections_rejected", 0) for s in summaries)
    acceptance_rate = round(applied / (applied + rejected) * 100, 1) if applied + rejected else None

    return {
        "sessions_analyzed": len(log_files),
        "previews": sum(1 for s in summaries if s.get("mode") == "preview"),
        "applies": sum(1 for s in summaries if s.get("mode") == "apply"),
        "total_applied": applied,
        "total_rejected": rejected,
        "acceptance_rate": acceptance_rate,
        "rejection_reasons": rejection_reasons,
        "common_rule_terms": sorted(term_counts.items(), key=lambda x: -x[1])[:20],
    }
