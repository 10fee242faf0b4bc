"""
Centralized path management for secretary-sync.

Resolves the working directory that holds the configuration file and
the local record store.
"""

import os
import sys
from pathlib import Path
from typing import Optional
import logging


class PathManager:
    """Manages secretary-sync file paths."""

    # Directory names
    WORKING_DIR_NAME = ".secretary-sync"
    DATA_DIR_NAME = "data"
    BACKUP_DIR_NAME = "backups"

    # File names
    CONFIG_FILE = "config.json"

    # Environment override for the working directory
    HOME_ENV_VAR = "SECRETARY_SYNC_HOME"

    def __init__(self, working_dir: Optional[str] = None, logger: Optional[logging.Logger] = None):
        """Initialize path manager."""
        self.logger = logger or logging.getLogger(__name__)
        self._working_dir: Optional[Path] = Path(working_dir).expanduser() if working_dir else None

    def _default_user_dir(self) -> Path:
        """Platform-appropriate per-user data directory."""
        if sys.platform.startswith("win"):
            appdata = os.environ.get("APPDATA")
            if appdata:
                return Path(appdata) / "secretary-sync"
        return Path.home() / self.WORKING_DIR_NAME

    @property
    def working_dir(self) -> Path:
        """
        Get the working directory for secretary-sync data.

        Priority order:
        1. Explicit directory passed to the constructor
        2. SECRETARY_SYNC_HOME environment variable
        3. ~/.secretary-sync (or %APPDATA%/secretary-sync on Windows)
        """
        if self._working_dir is not None:
            return self._working_dir

        env_override = os.environ.get(self.HOME_ENV_VAR)
        if env_override:
            self._working_dir = Path(env_override).expanduser().resolve()
            self.logger.debug("Using %s override: %s", self.HOME_ENV_VAR, self._working_dir)
        else:
            self._working_dir = self._default_user_dir()
        return self._working_dir

    @property
    def config_path(self) -> Path:
        return self.working_dir / self.CONFIG_FILE

    @property
    def data_dir(self) -> Path:
        return self.working_dir / self.DATA_DIR_NAME

    @property
    def backup_dir(self) -> Path:
        return self.working_dir / self.BACKUP_DIR_NAME

    def ensure_directories(self) -> None:
        """Create the working directories if they do not exist."""
        for directory in (self.working_dir, self.data_dir, self.backup_dir):
            directory.mkdir(parents=True, exist_ok=True)
