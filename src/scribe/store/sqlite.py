"""SQLite reference implementation of the transcript store.

Transcripts are stored as JSON documents next to a version counter used for
conditional writes. Uses WAL mode so previews can read while an apply writes.
"""

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator
from uuid import uuid4

from scribe.errors import Conflict, NotFound
from scribe.models.transcript import Transcript
from scribe.store.base import TranscriptStore

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS transcripts (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 0,
    document TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS analyses (
    id TEXT PRIMARY KEY,
    transcript_id TEXT NOT NULL REFERENCES transcripts(id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    kind TEXT NOT NULL DEFAULT 'summary',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_analyses_transcript ON analyses(transcript_id, user_id);
"""


def _to_aliases(patch: dict[str, Any]) -> dict[str, Any]:
    # Accept snake_case or camelCase keys; merge on the camelCase form
    aliases = {name: field.alias or name for name, field in Transcript.model_fields.items()}
    return {aliases.get(key, key): value for key, value in patch.items()}


class SqliteTranscriptStore(TranscriptStore):
    """Transcript store backed by a single SQLite file."""

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self._init_db()

    def _init_db(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self.connection() as conn:
            conn.executescript(SCHEMA)
            conn.commit()
        # Set restrictive permissions on the database file
        if self.db_path.exists():
            os.chmod(self.db_path, 0o600)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for a connection that is closed on exit."""
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for a write transaction with commit/rollback."""
        with self.connection() as conn:
            try:
                # Take the write lock up front so the version check and write are atomic
                conn.execute("BEGIN IMMEDIATE")
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    @staticmethod
    def _row_to_transcript(row: sqlite3.Row) -> Transcript:
        transcript = Transcript.model_validate_json(row["document"])
        return transcript.model_copy(update={"version": row["version"]})

    @staticmethod
    def _dump(transcript: Transcript) -> str:
        return transcript.model_dump_json(by_alias=True)

    def get_transcript(self, transcript_id: str) -> Transcript | None:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT document, version FROM transcripts WHERE id = ?", (transcript_id,)
            ).fetchone()
        return self._row_to_transcript(row) if row else None

    def save_transcript(self, transcript: Transcript) -> Transcript:
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO transcripts (id, user_id, version, document, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    user_id = excluded.user_id,
                    version = excluded.version,
                    document = excluded.document,
                    updated_at = excluded.updated_at
                """,
                (
                    transcript.id,
                    transcript.user_id,
                    transcript.version,
                    self._dump(transcript),
                    transcript.updated_at.isoformat(),
                ),
            )
        logger.debug(f"Saved transcript {transcript.id} (version {transcript.version})")
        return transcript

    def update_transcript(
        self,
        transcript_id: str,
        patch: dict[str, Any],
        expected_version: int | None = None,
    ) -> Transcript:
        with self.transaction() as conn:
            row = conn.execute(
                "SELECT document, version FROM transcripts WHERE id = ?", (transcript_id,)
            ).fetchone()
            if row is None:
                raise NotFound(f"Transcript {transcript_id} not found")

            current = self._row_to_transcript(row)
            if expected_version is not None and current.version != expected_version:
                raise Conflict(
                    f"Transcript {transcript_id} is at version {current.version}, "
                    f"expected {expected_version}"
                )

            patch = _to_aliases(patch)
            merged = {**current.model_dump(by_alias=True), **patch, "version": current.version + 1}
            if "updatedAt" not in patch:
                merged["updatedAt"] = datetime.now()
            updated = Transcript.model_validate(merged)

            cursor = conn.execute(
                """
                UPDATE transcripts SET document = ?, version = ?, updated_at = ?
                WHERE id = ? AND version = ?
                """,
                (
                    self._dump(updated),
                    updated.version,
                    updated.updated_at.isoformat(),
                    transcript_id,
                    current.version,
                ),
            )
            if cursor.rowcount != 1:
                raise Conflict(f"Transcript {transcript_id} was modified concurrently")

        logger.info(f"Updated transcript {transcript_id} to version {updated.version}")
        return updated

    def add_analysis(self, transcript_id: str, user_id: str, kind: str = "summary") -> str:
        """Record a derived analysis for a transcript; return its id."""
        analysis_id = str(uuid4())
        with self.transaction() as conn:
            conn.execute(
                "INSERT INTO analyses (id, transcript_id, user_id, kind, created_at) VALUES (?, ?, ?, ?, ?)",
                (analysis_id, transcript_id, user_id, kind, datetime.now().isoformat()),
            )
        return analysis_id

    def list_analyses(self, transcript_id: str, user_id: str) -> list[str]:
        """Ids of analyses derived from a transcript, oldest first."""
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT id FROM analyses WHERE transcript_id = ? AND user_id = ? ORDER BY created_at, id",
                (transcript_id, user_id),
            ).fetchall()
        return [row["id"] for row in rows]

    def delete_analyses(self, transcript_id: str, user_id: str) -> list[str]:
        with self.transaction() as conn:
            rows = conn.execute(
                "SELECT id FROM analyses WHERE transcript_id = ? AND user_id = ? ORDER BY created_at, id",
                (transcript_id, user_id),
            ).fetchall()
            ids = [row["id"] for row in rows]
            conn.execute(
                "DELETE FROM analyses WHERE transcript_id = ? AND user_id = ?",
                (transcript_id, user_id),
            )
        if ids:
            logger.info(f"Deleted {len(ids)} analyses for transcript {transcript_id}")
        return ids

    def rename_speaker(
        self,
        transcript_id: str,
        user_id: str,
        speaker_id: int,
        custom_name: str | None,
    ) -> Transcript:
        transcript = self.get_transcript(transcript_id)
        if transcript is None or transcript.user_id != user_id:
            raise NotFound()

        if not any(s.speaker_id == speaker_id for s in transcript.speakers):
            raise NotFound(f"Speaker {speaker_id} not found in transcript {transcript_id}")

        speakers = [
            s.model_copy(update={"custom_name": (custom_name or "").strip() or None})
            if s.speaker_id == speaker_id else s
            for s in transcript.speakers
        ]
        return self.update_transcript(
            transcript_id,
            {"speakers": [s.model_dump(by_alias=True) for s in speakers]},
            expected_version=transcript.version,
        )
