"""Tests for device-side storage: key/value files, categories, timestamps."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from indigo.models import DEFAULT_AI_PROFILE, DEFAULT_SETTINGS
from indigo.sync.local import (
    IMAGE_PLACEHOLDER,
    KeyValueStore,
    LocalState,
    category_key,
    timestamp_key,
)
from indigo.sync.models import DataCategory, SyncState


class TestKeyValueStore:
    """One file per key under the store root."""

    def test_missing_key_is_none(self, tmp_path: Path) -> None:
        store = KeyValueStore(tmp_path / "kv")
        assert store.get_item("indigo_messages") is None

    def test_set_get_remove(self, tmp_path: Path) -> None:
        store = KeyValueStore(tmp_path / "kv")
        store.set_item("indigo_journal", "[]")
        assert store.get_item("indigo_journal") == "[]"
        assert (tmp_path / "kv" / "indigo_journal.json").exists()

        store.remove_item("indigo_journal")
        assert store.get_item("indigo_journal") is None

    def test_remove_missing_is_noop(self, tmp_path: Path) -> None:
        KeyValueStore(tmp_path).remove_item("indigo_nothing")

    @pytest.mark.parametrize("key", ["../escape", "a/b", "", "spaces here"])
    def test_invalid_key_rejected(self, tmp_path: Path, key: str) -> None:
        with pytest.raises(ValueError, match="Invalid storage key"):
            KeyValueStore(tmp_path).set_item(key, "x")


class TestCategories:
    """Loading, saving and defaults."""

    def test_defaults_when_empty(self, local: LocalState) -> None:
        assert local.load_category(DataCategory.MESSAGES) == []
        assert local.load_category(DataCategory.JOURNAL) == []
        assert local.load_category(DataCategory.AI_PROFILE) == DEFAULT_AI_PROFILE
        assert local.load_category(DataCategory.SETTINGS) == DEFAULT_SETTINGS

    def test_default_is_a_copy(self, local: LocalState) -> None:
        profile = local.load_category(DataCategory.AI_PROFILE)
        profile["name"] = "Changed"
        assert DEFAULT_AI_PROFILE["name"] == "Indigo"

    def test_save_and_load(self, local: LocalState) -> None:
        memories = [{"id": "m1", "content": "Likes tea"}]
        assert local.save_category(DataCategory.MEMORIES, memories) is True
        assert local.load_category(DataCategory.MEMORIES) == memories

    def test_corrupt_json_falls_back(self, local: LocalState) -> None:
        local.store.set_item(category_key(DataCategory.JOURNAL), "{not json")
        assert local.load_category(DataCategory.JOURNAL) == []

    def test_wrong_shape_falls_back(self, local: LocalState) -> None:
        local.store.set_item(category_key(DataCategory.MESSAGES), '{"a": 1}')
        assert local.load_category(DataCategory.MESSAGES) == []

    def test_save_failure_returns_false(
        self, local: LocalState, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def boom(key, value):
            raise OSError("disk full")

        monkeypatch.setattr(local.store, "set_item", boom)
        assert local.save_category(DataCategory.JOURNAL, [{"id": "j1"}]) is False

    def test_remove_restores_default(self, local: LocalState) -> None:
        local.save_category(DataCategory.MESSAGES, [{"id": "1"}])
        local.remove_category(DataCategory.MESSAGES)
        assert local.load_category(DataCategory.MESSAGES) == []


class TestSerializeForSync:
    """What a category looks like once it leaves the device."""

    def test_messages_lose_file_content_and_images(self, local: LocalState) -> None:
        local.save_category(DataCategory.MESSAGES, [
            {"id": "1", "content": "look", "imageUrl": "data:image/png;base64,AAAA"},
            {"id": "2", "content": "file", "fileContent": "huge text", "fileName": "a.txt"},
            {"id": "3", "content": "plain"},
        ])

        synced = json.loads(local.serialize_for_sync(DataCategory.MESSAGES))

        assert synced[0] == {"id": "1", "content": "look", "imageUrl": IMAGE_PLACEHOLDER}
        assert synced[1] == {"id": "2", "content": "file", "fileName": "a.txt"}
        assert synced[2] == {"id": "3", "content": "plain"}

    def test_local_messages_unchanged(self, local: LocalState) -> None:
        original = [{"id": "1", "imageUrl": "data:image/png;base64,AAAA"}]
        local.save_category(DataCategory.MESSAGES, original)
        local.serialize_for_sync(DataCategory.MESSAGES)
        assert local.load_category(DataCategory.MESSAGES) == original

    def test_settings_secrets_blanked(self, local: LocalState) -> None:
        settings = dict(DEFAULT_SETTINGS)
        settings.update(llmApiKey="sk-llm", imageApiKey="sk-img", hfApiKey="hf-key",
                        llmModel="big-model")
        local.save_category(DataCategory.SETTINGS, settings)

        text = local.serialize_for_sync(DataCategory.SETTINGS)
        synced = json.loads(text)

        assert synced["llmApiKey"] == ""
        assert synced["imageApiKey"] == ""
        assert synced["hfApiKey"] == ""
        assert synced["llmModel"] == "big-model"
        assert "sk-llm" not in text

    def test_other_categories_verbatim(self, local: LocalState) -> None:
        journal = [{"id": "j1", "content": "Dear diary"}]
        local.save_category(DataCategory.JOURNAL, journal)
        assert json.loads(local.serialize_for_sync(DataCategory.JOURNAL)) == journal


class TestApplyRemote:
    """Writing pulled plaintext back to the device."""

    def test_replaces_category(self, local: LocalState) -> None:
        local.save_category(DataCategory.MEMORIES, [{"id": "old"}])
        local.apply_remote(DataCategory.MEMORIES, '[{"id": "new"}]')
        assert local.load_category(DataCategory.MEMORIES) == [{"id": "new"}]

    def test_settings_keep_local_secrets(self, local: LocalState) -> None:
        settings = dict(DEFAULT_SETTINGS, llmApiKey="sk-local", llmModel="old")
        local.save_category(DataCategory.SETTINGS, settings)

        remote = dict(DEFAULT_SETTINGS, llmApiKey="", llmModel="new")
        local.apply_remote(DataCategory.SETTINGS, json.dumps(remote))

        result = local.load_category(DataCategory.SETTINGS)
        assert result["llmApiKey"] == "sk-local"
        assert result["llmModel"] == "new"

    def test_invalid_json_raises(self, local: LocalState) -> None:
        with pytest.raises(ValueError):
            local.apply_remote(DataCategory.JOURNAL, "not json")


class TestSyncTimestamps:

    def test_zero_when_never_synced(self, local: LocalState) -> None:
        assert local.get_sync_timestamp(DataCategory.MESSAGES) == 0

    def test_set_and_get(self, local: LocalState) -> None:
        local.set_sync_timestamp(DataCategory.JOURNAL, 1_700_000_000_123)
        assert local.get_sync_timestamp(DataCategory.JOURNAL) == 1_700_000_000_123
        assert local.store.get_item(timestamp_key(DataCategory.JOURNAL)) == "1700000000123"

    def test_garbage_reads_as_zero(self, local: LocalState) -> None:
        local.store.set_item(timestamp_key(DataCategory.JOURNAL), "yesterday")
        assert local.get_sync_timestamp(DataCategory.JOURNAL) == 0

    def test_clear_all(self, local: LocalState) -> None:
        for category in DataCategory:
            local.set_sync_timestamp(category, 42)
        local.clear_sync_timestamps()
        assert all(local.get_sync_timestamp(c) == 0 for c in DataCategory)


class TestSyncState:

    def test_defaults(self, local: LocalState) -> None:
        assert local.load_sync_state() == SyncState()

    def test_round_trip(self, local: LocalState) -> None:
        state = SyncState(enabled=True, encryption_passphrase="pw", auto_sync=True)
        local.save_sync_state(state)
        assert local.load_sync_state() == state

    def test_partial_state_merged_over_defaults(self, local: LocalState) -> None:
        local.store.set_item("indigo_sync_state", '{"enabled": true}')
        state = local.load_sync_state()
        assert state.enabled is True
        assert state.last_sync_at == 0
        assert state.encryption_passphrase == ""

    def test_invalid_state_falls_back(self, local: LocalState) -> None:
        local.store.set_item("indigo_sync_state", '{"last_sync_at": "soon"}')
        assert local.load_sync_state() == SyncState()
