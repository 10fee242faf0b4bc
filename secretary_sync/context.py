"""
Application context.

Owns one instance of every component and wires them together, so callers
receive their collaborators explicitly instead of looking them up.
"""

import importlib
import logging
from dataclasses import dataclass
from typing import Optional

from .core.config import StoreConfig
from .core.exceptions import ConfigurationError
from .index.engine import TaskIndexEngine
from .storage.local import LocalStore
from .storage.remote import RemoteStoreClient
from .sync.coordinator import SyncCoordinator
from .sync.deduplicator import DeduplicationEngine
from .sync.retry import RetryPolicy
from .tasks.schedules import ScheduleService
from .tasks.service import TaskService


def load_remote_client(path: str, config: StoreConfig) -> RemoteStoreClient:
    """
    Build the remote store client named by a ``"module:factory"`` path.

    The factory is called with the StoreConfig and must return an object
    implementing RemoteStoreClient.

    Raises:
        ConfigurationError: if the path cannot be resolved or the factory
            does not produce a usable client
    """
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ConfigurationError(f"remote_client must look like 'module:factory', got {path!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigurationError(f"Cannot import remote client module {module_name!r}: {exc}") from exc

    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise ConfigurationError(f"{module_name!r} has no callable {attr!r}")

    client = factory(config)
    if not isinstance(client, RemoteStoreClient):
        raise ConfigurationError(f"{path} did not return a remote store client")
    return client


@dataclass
class AppContext:
    """Owned references to every component of the store."""

    config: StoreConfig
    local: LocalStore
    coordinator: SyncCoordinator
    index: TaskIndexEngine
    deduplicator: DeduplicationEngine
    tasks: TaskService
    schedules: ScheduleService
    remote: Optional[RemoteStoreClient] = None

    @classmethod
    def create(cls,
               config: Optional[StoreConfig] = None,
               remote: Optional[RemoteStoreClient] = None,
               logger: Optional[logging.Logger] = None) -> "AppContext":
        """
        Build a fully wired context.

        Args:
            config: Store configuration; defaults are used when omitted
            remote: Remote store client; when omitted it is resolved from
                ``config.remote_client``, or left out for offline use
            logger: Optional logger shared by every component
        """
        config = config or StoreConfig()
        if remote is None and config.remote_client:
            remote = load_remote_client(config.remote_client, config)

        local = LocalStore(
            directory=config.resolve_data_dir(),
            prefix=config.key_prefix,
            quota_bytes=config.quota_bytes,
            logger=logger,
        )
        coordinator = SyncCoordinator(
            local, remote, retry_policy=RetryPolicy.from_settings(config.retry), logger=logger,
        )
        index = TaskIndexEngine(logger=logger)
        deduplicator = DeduplicationEngine(index, coordinator, logger=logger)
        return cls(
            config=config,
            local=local,
            coordinator=coordinator,
            index=index,
            deduplicator=deduplicator,
            tasks=TaskService(coordinator, index, deduplicator, config=config, logger=logger),
            schedules=ScheduleService(coordinator, user_id=config.user_id, logger=logger),
            remote=remote,
        )
