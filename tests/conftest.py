#!/usr/bin/env python3
"""
Global pytest configuration and fixtures.

This module provides:
- Marker registration
- A fake remote store and a fully wired AppContext per test
- Task factories
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from secretary_sync.context import AppContext
from secretary_sync.core.config import StoreConfig
from secretary_sync.core.models import Task

from tests.fakes import FakeRemoteStore

BASE_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "integration: tests wiring several components together")
    config.addinivalue_line("markers", "sync: sync coordinator and reconciliation tests")
    config.addinivalue_line("markers", "index: task index tests")
    config.addinivalue_line("markers", "dedup: deduplication tests")
    config.addinivalue_line("markers", "io: tests touching the filesystem")


# Common test fixtures

@pytest.fixture
def remote() -> FakeRemoteStore:
    """An available in-memory remote store."""
    return FakeRemoteStore()


@pytest.fixture
def store_config(tmp_path) -> StoreConfig:
    """Config with an isolated data directory and startup dedup disabled."""
    return StoreConfig(data_dir=str(tmp_path / "data"), dedup_on_load=False)


@pytest.fixture
def context(store_config, remote) -> AppContext:
    return AppContext.create(store_config, remote=remote)


@pytest.fixture
def offline_context(store_config) -> AppContext:
    """Context with no remote store at all."""
    return AppContext.create(store_config)


@pytest.fixture
def make_task() -> Callable[..., Task]:
    """Factory for tasks with deterministic timestamps.

    ``minutes`` offsets createdAt from a fixed base time.
    """
    counter = {"n": 0}

    def _make(text: str = "Buy milk", minutes: int = 0, **fields: Any) -> Task:
        counter["n"] += 1
        fields.setdefault("id", f"task-{counter['n']:04d}")
        created = BASE_TIME + timedelta(minutes=minutes)
        fields.setdefault("created_at", created)
        return Task.new(text, fields.pop("section", "today"), fields.pop("priority", "medium"),
                        now=created, **fields)

    return _make
