#!/usr/bin/env python3
"""
Tests for configuration and path handling.
"""

import json

import pytest

from secretary_sync.context import AppContext, load_remote_client
from secretary_sync.core.config import StoreConfig, load_config, save_config
from secretary_sync.core.exceptions import ConfigurationError
from secretary_sync.core.paths import PathManager

from tests.fakes import FakeRemoteStore

pytestmark = pytest.mark.unit


class TestStoreConfig:

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "absent.json"))
        assert config.page_size == 50
        assert config.dedup_on_load is True

    def test_save_and_load(self, tmp_path):
        path = str(tmp_path / "config.json")
        config = StoreConfig(data_dir=str(tmp_path / "data"), user_id="alice", page_size=10)
        config.retry.max_attempts = 3
        assert save_config(config, path)

        loaded = load_config(path)
        assert loaded.user_id == "alice"
        assert loaded.page_size == 10
        assert loaded.retry.max_attempts == 3
        assert loaded.data_dir == str(tmp_path / "data")

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"store": {"page_size": 0}}))
        with pytest.raises(ConfigurationError):
            load_config(str(path))

        path.write_text(json.dumps({"store": {"page_size": "many"}}))
        with pytest.raises(ConfigurationError):
            load_config(str(path))

    def test_home_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv(PathManager.HOME_ENV_VAR, str(tmp_path))
        manager = PathManager()
        assert manager.config_path == tmp_path.resolve() / "config.json"
        assert StoreConfig().resolve_data_dir(manager) == str(tmp_path.resolve() / "data")


class TestRemoteClientLoading:

    def test_factory_path(self, store_config):
        store_config.remote_client = "tests.fakes:make_remote"
        context = AppContext.create(store_config)
        assert isinstance(context.remote, FakeRemoteStore)
        assert context.coordinator.remote_available

    @pytest.mark.parametrize("path", [
        "no-colon",
        "tests.no_such_module:factory",
        "tests.fakes:missing",
        "tests.fakes:not_a_client",
    ])
    def test_bad_paths(self, store_config, path):
        with pytest.raises(ConfigurationError):
            load_remote_client(path, store_config)
