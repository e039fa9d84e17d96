"""Tests for the SQLite transcript store."""

import pytest

from scribe.errors import Conflict, NotFound


class TestTranscripts:
    def test_round_trip(self, seeded_store, transcript):
        loaded = seeded_store.get_transcript(transcript.id)

        assert loaded.speaker_segments == transcript.speaker_segments
        assert loaded.translations == transcript.translations
        assert loaded.version == 0

    def test_missing(self, store):
        assert store.get_transcript("nope") is None

    def test_update_increments_version(self, seeded_store, transcript):
        updated = seeded_store.update_transcript(transcript.id, {"transcriptText": "changed"})

        assert updated.version == 1
        assert updated.transcript_text == "changed"
        assert seeded_store.get_transcript(transcript.id).version == 1

    def test_update_accepts_snake_case(self, seeded_store, transcript):
        updated = seeded_store.update_transcript(transcript.id, {"generated_analysis_ids": []})
        assert updated.generated_analysis_ids == []

    def test_update_leaves_other_fields(self, seeded_store, transcript):
        updated = seeded_store.update_transcript(transcript.id, {"translations": {}})

        assert updated.translations == {}
        assert updated.speaker_segments == transcript.speaker_segments
        assert updated.speakers == transcript.speakers

    def test_stale_version_conflicts(self, seeded_store, transcript):
        seeded_store.update_transcript(transcript.id, {"transcriptText": "first"}, expected_version=0)

        with pytest.raises(Conflict):
            seeded_store.update_transcript(transcript.id, {"transcriptText": "second"}, expected_version=0)
        assert seeded_store.get_transcript(transcript.id).transcript_text == "first"

    def test_update_missing(self, store):
        with pytest.raises(NotFound):
            store.update_transcript("nope", {"transcriptText": "x"})

    def test_invalid_patch_rolls_back(self, seeded_store, transcript):
        with pytest.raises(ValueError):
            seeded_store.update_transcript(transcript.id, {"status": "bogus"})
        assert seeded_store.get_transcript(transcript.id).version == 0


class TestAnalyses:
    def test_delete_returns_ids(self, seeded_store, transcript):
        existing = seeded_store.list_analyses(transcript.id, transcript.user_id)

        deleted = seeded_store.delete_analyses(transcript.id, transcript.user_id)

        assert deleted == existing
        assert len(deleted) == 2
        assert seeded_store.list_analyses(transcript.id, transcript.user_id) == []

    def test_delete_scoped_to_user(self, seeded_store, transcript):
        assert seeded_store.delete_analyses(transcript.id, "someone-else") == []
        assert len(seeded_store.list_analyses(transcript.id, transcript.user_id)) == 2

    def test_delete_none(self, seeded_store, transcript):
        seeded_store.delete_analyses(transcript.id, transcript.user_id)
        assert seeded_store.delete_analyses(transcript.id, transcript.user_id) == []


class TestRenameSpeaker:
    def test_sets_custom_name(self, seeded_store, transcript):
        updated = seeded_store.rename_speaker(transcript.id, transcript.user_id, 2, "Maria")

        assert [s.custom_name for s in updated.speakers] == [None, "Maria"]
        assert updated.version == 1

    def test_blank_name_clears(self, seeded_store, transcript):
        seeded_store.rename_speaker(transcript.id, transcript.user_id, 1, "Ana")
        updated = seeded_store.rename_speaker(transcript.id, transcript.user_id, 1, "   ")
        assert updated.speakers[0].custom_name is None

    def test_wrong_user(self, seeded_store, transcript):
        with pytest.raises(NotFound):
            seeded_store.rename_speaker(transcript.id, "intruder", 1, "Ana")

    def test_unknown_speaker(self, seeded_store, transcript):
        with pytest.raises(NotFound):
            seeded_store.rename_speaker(transcript.id, transcript.user_id, 9, "Ana")

    def test_segments_untouched(self, seeded_store, transcript):
        updated = seeded_store.rename_speaker(transcript.id, transcript.user_id, 1, "Ana")
        assert updated.speaker_segments == transcript.speaker_segments
