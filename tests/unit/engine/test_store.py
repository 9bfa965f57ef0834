"""Tests for JSON state persistence"""
import json

import pytest

from oversight.engine.store import EngineStore
from oversight.errors import StorageError


def test_creates_storage_dir(tmp_path):
    store = EngineStore(tmp_path / "nested" / "state")
    assert store.storage_dir.is_dir()


def test_save_and_load(store):
    assert store.save(EngineStore.STATS_FILE, {"stats": {"total_tasks": 3}}) is True

    data = store.load(EngineStore.STATS_FILE)

    assert data["stats"] == {"total_tasks": 3}
    assert "last_updated" in data


def test_save_does_not_mutate_payload(store):
    payload = {"stats": {}}
    store.save(EngineStore.STATS_FILE, payload)
    assert payload == {"stats": {}}


def test_missing_file_loads_empty(store):
    assert store.load(EngineStore.RANKINGS_FILE) == {}


def test_corrupt_file_loads_empty(store):
    store.path_for(EngineStore.RANKINGS_FILE).write_text("{not json")
    assert store.load(EngineStore.RANKINGS_FILE) == {}


def test_non_object_document_loads_empty(store):
    store.path_for(EngineStore.RANKINGS_FILE).write_text(json.dumps([1, 2, 3]))
    assert store.load(EngineStore.RANKINGS_FILE) == {}


def test_read_raises_on_corrupt_file(store):
    store.path_for(EngineStore.STATS_FILE).write_text("{not json")
    with pytest.raises(StorageError):
        store.read(EngineStore.STATS_FILE)


def test_save_failure_returns_false(store):
    store.path_for(EngineStore.STATS_FILE).mkdir()
    assert store.save(EngineStore.STATS_FILE, {"stats": {}}) is False


def test_non_serializable_values_stringified(store):
    store.save(EngineStore.STATS_FILE, {"path": store.storage_dir})
    assert store.load(EngineStore.STATS_FILE)["path"] == str(store.storage_dir)
