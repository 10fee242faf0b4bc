"""Backup commands - export and import the local store."""

import logging
import os

from ..context import AppContext
from ..utils.io import safe_read_json, safe_write_json


class ExportCommand:
    """Command for writing every local record to a JSON backup."""

    def __init__(self, context: AppContext, verbose: bool = False):
        self.context = context
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)

    def run(self, path: str) -> bool:
        backup = self.context.local.export_data()
        if not safe_write_json(path, backup):
            print(f"Failed to write backup to {path}")
            return False
        print(f"✓ Exported {len(backup['data'])} records to {path}")
        return True


class ImportCommand:
    """Command for restoring records from a JSON backup."""

    def __init__(self, context: AppContext, verbose: bool = False):
        self.context = context
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)

    def run(self, path: str) -> bool:
        if not os.path.exists(path):
            print(f"Backup file not found: {path}")
            return False

        backup = safe_read_json(path, default=None)
        try:
            imported = self.context.local.import_data(backup)
        except ValueError as exc:
            print(f"Invalid backup {path}: {exc}")
            return False

        queued = self.context.coordinator.queue_untracked()
        self.context.tasks.load_local()
        print(f"✓ Imported {imported} records from {path}, {queued} queued for sync")
        return True
