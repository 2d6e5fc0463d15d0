"""
Tests for History Stores
"""

import json
import pytest
from datetime import datetime
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np

from integrations.history_store import InMemoryHistoryStore, JsonHistoryStore, append_capped


class TestInMemoryHistoryStore:
    """Tests for InMemoryHistoryStore."""

    def test_missing_key(self):
        assert InMemoryHistoryStore().load_history("nothing") is None

    def test_values_are_copied(self):
        store = InMemoryHistoryStore()
        data = {"items": [1, 2]}
        store.save_history("k", data)

        data["items"].append(3)
        loaded = store.load_history("k")
        loaded["items"].append(4)

        assert store.load_history("k") == {"items": [1, 2]}

    def test_behaves_like_json(self):
        store = InMemoryHistoryStore()
        store.save_history("k", {"when": datetime(2026, 1, 2, 3, 4, 5), "n": np.float64(0.5)})

        assert store.load_history("k") == {"when": "2026-01-02T03:04:05", "n": 0.5}

    def test_unserializable_returns_false(self):
        store = InMemoryHistoryStore()

        assert store.save_history("k", {"bad": object()}) is False
        assert store.load_history("k") is None
        assert store.save_count == 0

    def test_list_keys(self):
        store = InMemoryHistoryStore({"b": 1})
        store.save_history("a", 2)

        assert store.list_keys() == ["a", "b"]


class TestJsonHistoryStore:
    """Tests for JsonHistoryStore."""

    def test_round_trip(self, tmp_path):
        store = JsonHistoryStore(tmp_path)

        assert store.save_history("filter_rules", {"relevance_threshold": 0.54})
        assert JsonHistoryStore(tmp_path).load_history("filter_rules") == {"relevance_threshold": 0.54}

    def test_envelope_on_disk(self, tmp_path):
        store = JsonHistoryStore(tmp_path)
        store.save_history("run_history", {"runs": []})

        with open(tmp_path / "run_history.json") as f:
            raw = json.load(f)

        assert raw["_storage"]["key"] == "run_history"
        assert raw["payload"] == {"runs": []}
        assert not (tmp_path / "run_history.json.tmp").exists()

    def test_corrupt_file_means_no_state(self, tmp_path):
        (tmp_path / "trend_history.json").write_text("{not json")

        assert JsonHistoryStore(tmp_path).load_history("trend_history") is None

    def test_plain_json_file_is_accepted(self, tmp_path):
        (tmp_path / "legacy.json").write_text(json.dumps({"a": 1}))

        assert JsonHistoryStore(tmp_path).load_history("legacy") == {"a": 1}

    def test_unsafe_keys_are_sanitized(self, tmp_path):
        store = JsonHistoryStore(tmp_path)
        store.save_history("../escape/attempt", 1)

        assert store.list_keys() == ["escape_attempt"]
        assert store.load_history("../escape/attempt") == 1

    def test_write_failure_returns_false(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        store = JsonHistoryStore(blocker)

        assert store.save_history("k", {"a": 1}) is False


class TestAppendCapped:
    """Tests for append_capped."""

    def test_keeps_newest(self):
        history = [1, 2, 3]
        append_capped(history, 4, 3)

        assert history == [2, 3, 4]

    def test_zero_means_unbounded(self):
        history = [1]
        append_capped(history, 2, 0)

        assert history == [1, 2]
