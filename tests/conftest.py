"""Pytest configuration and fixtures."""

import pytest

from oversight.config.manager import ConfigManager
from oversight.config.schema import OversightConfig
from oversight.engine.accountability import AccountabilityEngine
from oversight.engine.store import EngineStore
from oversight.output.formatter import reset_formatter


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep user config and state out of the real home directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)
    ConfigManager.reset()
    reset_formatter()
    yield home
    ConfigManager.reset()
    reset_formatter()


@pytest.fixture
def storage_dir(tmp_path):
    """Directory engine state is persisted to."""
    return tmp_path / "state"


@pytest.fixture
def store(storage_dir):
    return EngineStore(storage_dir)


@pytest.fixture
def config(storage_dir):
    """Default configuration pointing at the temporary storage dir."""
    cfg = OversightConfig.default()
    cfg.engine.storage_dir = str(storage_dir)
    return cfg


@pytest.fixture
def engine(config, store):
    return AccountabilityEngine(config, store=store)


@pytest.fixture
def auth_task():
    return {
        "id": "task-auth",
        "description": "Implement secure auth with JWT",
        "type": "implementation",
        "complexity": 0.7,
    }


@pytest.fixture
def auth_context():
    return {"goals": ["Implement secure user authentication"]}
