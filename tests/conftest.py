"""Pytest fixtures for scribe tests."""

from pathlib import Path

import pytest

import scribe.config
import scribe.logging
from scribe.config import ScribeConfig, StoreConfig
from scribe.models.transcript import Speaker, SpeakerSegment, Transcript
from scribe.nlp.rewriter import AIRewriteApplier, TextGenerationProvider
from scribe.store.sqlite import SqliteTranscriptStore

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def scribe_home(tmp_path, monkeypatch) -> Path:
    """Redirect config, lock and log directories into a temp dir."""
    home = tmp_path / "scribe_home"
    monkeypatch.setattr(scribe.config, "CONFIG_DIR", home)
    monkeypatch.setattr(scribe.config, "CONFIG_FILE", home / "config.toml")
    monkeypatch.setattr(scribe.config, "LOCK_DIR", home / "locks")
    monkeypatch.setattr(scribe.config, "LOGS_DIR", home / "logs")
    monkeypatch.setattr(scribe.logging, "LOGS_DIR", home / "logs")
    return home


@pytest.fixture
def fixtures_dir() -> Path:
    """Return path to fixtures directory."""
    return FIXTURES_DIR


@pytest.fixture
def config(tmp_path) -> ScribeConfig:
    return ScribeConfig(store=StoreConfig(db_path=tmp_path / "transcripts.db"))


@pytest.fixture
def segments() -> list[SpeakerSegment]:
    """Two-speaker exchange mentioning John twice."""
    return [
        SpeakerSegment(speaker_tag="Speaker 1", start_time=0, end_time=2, text="Hello John.", confidence=0.95),
        SpeakerSegment(speaker_tag="Speaker 2", start_time=2, end_time=4, text="Hi John.", confidence=0.92),
    ]


@pytest.fixture
def transcript(segments) -> Transcript:
    return Transcript(
        id="test-transcript-id",
        user_id="test-user-id",
        status="completed",
        transcript_text="Speaker 1: Hello John. Speaker 2: Hi John.",
        transcript_with_speakers="Speaker 1: Hello John.\n\nSpeaker 2: Hi John.",
        speakers=[
            Speaker(speaker_id=1, speaker_tag="Speaker 1", total_speaking_time=2, word_count=2),
            Speaker(speaker_id=2, speaker_tag="Speaker 2", total_speaking_time=2, word_count=2, first_appearance=2),
        ],
        speaker_segments=segments,
        translations={"es": {"text": "Hola John."}, "fr": {"text": "Bonjour John."}},
        generated_analysis_ids=["analysis-1", "analysis-2"],
        language="en-us",
        duration_seconds=4.0,
    )


@pytest.fixture
def store(tmp_path) -> SqliteTranscriptStore:
    return SqliteTranscriptStore(tmp_path / "transcripts.db")


@pytest.fixture
def seeded_store(store, transcript) -> SqliteTranscriptStore:
    """Store holding the sample transcript and two derived analyses."""
    store.save_transcript(transcript)
    store.add_analysis(transcript.id, transcript.user_id)
    store.add_analysis(transcript.id, transcript.user_id)
    return store


class FakeTextGenerator(TextGenerationProvider):
    """Text generator returning a canned response (or a function of the input)."""

    def __init__(self, response=None, error: Exception | None = None, delay: float = 0.0):
        self.response = response
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, str]] = []

    def rewrite(self, full_text: str, instruction: str) -> str:
        self.calls.append((full_text, instruction))
        if self.delay:
            import time
            time.sleep(self.delay)
        if self.error:
            raise self.error
        if callable(self.response):
            return self.response(full_text)
        return self.response if self.response is not None else full_text


@pytest.fixture
def fake_generator() -> FakeTextGenerator:
    return FakeTextGenerator()


@pytest.fixture
def rewriter(fake_generator) -> AIRewriteApplier:
    return AIRewriteApplier(fake_generator, timeout_seconds=5)


@pytest.fixture
def make_generator():
    """Factory for text generators with a custom response, error or delay."""
    return FakeTextGenerator
