"""
Tests for the durable local store (secretary_sync/storage/local.py).
"""

import json
import os

import pytest

from secretary_sync.storage.local import LocalStore

pytestmark = pytest.mark.io


class TestLocalStoreMemory:
    """Tests for a store without a backing directory."""

    def test_set_get_remove(self):
        store = LocalStore()
        assert store.set("schedule-2024-01-01", {"summary": "Busy"})
        assert store.get("schedule-2024-01-01") == {"summary": "Busy"}
        assert store.contains("schedule-2024-01-01")

        assert store.remove("schedule-2024-01-01")
        assert store.get("schedule-2024-01-01") is None
        assert store.remove("schedule-2024-01-01")

    def test_keys_are_filtered_by_namespace(self):
        store = LocalStore(prefix="app-")
        store.set("task-a", {})
        store.set("task-b", {})
        store.set("settings", {})
        assert store.keys("task-") == ["task-a", "task-b"]
        assert store.keys() == ["settings", "task-a", "task-b"]

    def test_unserializable_value_is_reported(self):
        store = LocalStore()
        assert store.set("bad", {"value": object()}) is False
        assert "serialize" in store.last_error
        assert store.get("bad") is None

    def test_quota_exhaustion_keeps_previous_value(self):
        store = LocalStore(quota_bytes=60)
        assert store.set("k", {"v": "small"})
        assert store.set("k", {"v": "x" * 100}) is False
        assert "quota" in store.last_error
        assert store.get("k") == {"v": "small"}

    def test_usage_tracks_replacements(self):
        store = LocalStore()
        store.set("k", {"v": "aaaa"})
        first = store.usage_bytes
        store.set("k", {"v": "a"})
        assert store.usage_bytes == first - 3
        store.remove("k")
        assert store.usage_bytes == 0

    def test_export_and_import(self):
        source = LocalStore()
        source.set("task-1", {"text": "One"})
        source.set("settings", {"theme": "dark"})
        backup = source.export_data()
        assert backup["version"] == "1.0"
        assert set(backup["data"]) == {"task-1", "settings"}

        target = LocalStore()
        assert target.import_data(backup) == 2
        assert target.get("settings") == {"theme": "dark"}

    def test_import_rejects_malformed_backup(self):
        with pytest.raises(ValueError):
            LocalStore().import_data({"records": []})

    def test_clear(self):
        store = LocalStore()
        store.set("a", 1)
        store.set("b", 2)
        assert store.clear() == 2
        assert store.keys() == []


class TestLocalStoreDirectory:
    """Tests for a store persisted to disk."""

    def test_records_survive_reopen(self, tmp_path):
        directory = str(tmp_path / "store")
        store = LocalStore(directory=directory)
        store.set("task-task-1", {"text": "Persist me"})
        store.set("task-task-1-synced", {"status": "pending"})

        reopened = LocalStore(directory=directory)
        assert reopened.get("task-task-1") == {"text": "Persist me"}
        assert reopened.keys("task-") == ["task-task-1", "task-task-1-synced"]
        assert reopened.usage_bytes == store.usage_bytes

    def test_one_file_per_key(self, tmp_path):
        directory = tmp_path / "store"
        store = LocalStore(directory=str(directory), prefix="p-")
        store.set("schedule-2024-01-01", {"a": 1})
        files = [name for name in os.listdir(directory) if not name.startswith(".")]
        assert files == ["p-schedule-2024-01-01.json"]
        with open(directory / files[0], encoding="utf-8") as handle:
            assert json.load(handle) == {"a": 1}

        store.remove("schedule-2024-01-01")
        assert [n for n in os.listdir(directory) if not n.startswith(".")] == []

    def test_other_prefixes_are_ignored(self, tmp_path):
        directory = str(tmp_path / "store")
        LocalStore(directory=directory, prefix="one-").set("k", 1)
        assert LocalStore(directory=directory, prefix="two-").keys() == []

    def test_corrupt_file_is_skipped(self, tmp_path):
        directory = tmp_path / "store"
        directory.mkdir()
        (directory / "secretary-ai-broken.json").write_text("{not json", encoding="utf-8")
        store = LocalStore(directory=str(directory))
        assert store.keys() == []
