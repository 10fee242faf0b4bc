"""
Configuration management for secretary-sync.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

from ..utils.io import safe_read_json, safe_write_json
from .exceptions import ConfigurationError
from .models import DEFAULT_USER_ID
from .paths import PathManager

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "secretary-ai-"
DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024


@dataclass
class RetrySettings:
    """Backoff parameters for replaying pending records."""

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 300.0
    exponential_base: float = 2.0
    jitter: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> RetrySettings:
        defaults = cls()
        return cls(
            max_attempts=int(data.get("max_attempts", defaults.max_attempts)),
            base_delay=float(data.get("base_delay", defaults.base_delay)),
            max_delay=float(data.get("max_delay", defaults.max_delay)),
            exponential_base=float(data.get("exponential_base", defaults.exponential_base)),
            jitter=bool(data.get("jitter", defaults.jitter)),
        )


@dataclass
class StoreConfig:
    """Configuration for the local store, sync and index layers."""

    data_dir: Optional[str] = None
    key_prefix: str = DEFAULT_KEY_PREFIX
    user_id: str = DEFAULT_USER_ID
    quota_bytes: int = DEFAULT_QUOTA_BYTES
    page_size: int = 50
    text_max_length: int = 500
    # Reconciliation sweep
    sweep_interval: float = 60.0
    retry: RetrySettings = field(default_factory=RetrySettings)
    # Deduplication
    dedup_on_load: bool = True
    dedup_interval_hours: float = 24.0
    # "module:factory" path of the remote store client, None for offline-only
    remote_client: Optional[str] = None
    remote_options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.data_dir:
            self.data_dir = os.path.abspath(os.path.expanduser(self.data_dir))
        if self.page_size <= 0:
            raise ConfigurationError("page_size must be positive")
        if self.quota_bytes <= 0:
            raise ConfigurationError("quota_bytes must be positive")
        if self.retry.max_attempts <= 0:
            raise ConfigurationError("retry.max_attempts must be positive")

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        return {
            "paths": {"data_dir": self.data_dir},
            "store": {
                "key_prefix": self.key_prefix,
                "user_id": self.user_id,
                "quota_bytes": self.quota_bytes,
                "page_size": self.page_size,
                "text_max_length": self.text_max_length,
            },
            "sync": {
                "sweep_interval": self.sweep_interval,
                "retry": asdict(self.retry),
                "remote_client": self.remote_client,
                "remote_options": self.remote_options,
            },
            "dedup": {
                "on_load": self.dedup_on_load,
                "interval_hours": self.dedup_interval_hours,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> StoreConfig:
        paths = data.get("paths", {})
        store = data.get("store", {})
        sync = data.get("sync", {})
        dedup = data.get("dedup", {})
        defaults = cls()
        try:
            return cls(
                data_dir=paths.get("data_dir"),
                key_prefix=store.get("key_prefix", defaults.key_prefix),
                user_id=store.get("user_id", defaults.user_id),
                quota_bytes=int(store.get("quota_bytes", defaults.quota_bytes)),
                page_size=int(store.get("page_size", defaults.page_size)),
                text_max_length=int(store.get("text_max_length", defaults.text_max_length)),
                sweep_interval=float(sync.get("sweep_interval", defaults.sweep_interval)),
                retry=RetrySettings.from_dict(sync.get("retry", {})),
                remote_client=sync.get("remote_client"),
                remote_options=dict(sync.get("remote_options") or {}),
                dedup_on_load=bool(dedup.get("on_load", defaults.dedup_on_load)),
                dedup_interval_hours=float(dedup.get("interval_hours", defaults.dedup_interval_hours)),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid configuration value: {exc}") from exc

    @classmethod
    def load_from_file(cls, config_path: str) -> StoreConfig:
        config_path = os.path.abspath(os.path.expanduser(config_path))
        if not os.path.exists(config_path):
            return cls()
        data = safe_read_json(config_path, default={})
        if not isinstance(data, dict):
            return cls()
        return cls.from_dict(data)

    def save_to_file(self, config_path: str) -> bool:
        config_path = os.path.abspath(os.path.expanduser(config_path))
        return safe_write_json(config_path, self.to_dict())

    def resolve_data_dir(self, manager: Optional[PathManager] = None) -> str:
        """Return the configured data directory, falling back to the working dir."""
        if self.data_dir:
            return self.data_dir
        manager = manager or PathManager()
        return str(manager.data_dir)


def get_default_config_path() -> str:
    """Get the default configuration file path."""
    return str(PathManager().config_path)


def load_config(config_path: Optional[str] = None) -> StoreConfig:
    """
    Load configuration from file or return defaults.

    Args:
        config_path: Optional path to config file. Uses default if not provided.

    Returns:
        StoreConfig object
    """
    if config_path is None:
        config_path = get_default_config_path()
    config = StoreConfig.load_from_file(config_path)
    logger.debug("Loaded configuration from %s", config_path)
    return config


def save_config(config: StoreConfig, config_path: Optional[str] = None) -> bool:
    """
    Save configuration to file.

    Args:
        config: StoreConfig object to save
        config_path: Optional path to save to. Uses default if not provided.
    """
    if config_path is None:
        manager = PathManager()
        manager.ensure_directories()
        config_path = str(manager.config_path)
    return config.save_to_file(config_path)
