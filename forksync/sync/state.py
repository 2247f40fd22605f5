"""Sync state — the ``.forksync.json`` file at the root of a fork.

Read once at the start of a run. A run writes it back in exactly two
places: when the upstream protection defaults change (before diffing) and
after a fully successful apply.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from forksync.models.sync import SyncConfig, SyncError
from forksync.sync.protection import load_default_protected_areas

logger = logging.getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncStateStore:
    """Loads and saves the sync configuration for one project."""

    CONFIG_FILE = ".forksync.json"

    def __init__(self, project_root: str | Path):
        self.project_root = Path(project_root)
        self.config_path = self.project_root / self.CONFIG_FILE

    def exists(self) -> bool:
        return self.config_path.is_file()

    def load(self) -> SyncConfig:
        """Read the sync configuration.

        Raises:
            SyncError: kind ``config`` if the file is missing or malformed.
                Nothing else can run safely without a protection set.
        """
        if not self.exists():
            raise SyncError(
                "config",
                f"No {self.CONFIG_FILE} found; not a project created from the framework",
                self.config_path,
            )
        try:
            data = json.loads(self.config_path.read_text(encoding="utf-8"))
            config = SyncConfig.from_dict(data)
        except (OSError, ValueError) as e:
            raise SyncError("config", f"Failed to read {self.CONFIG_FILE}: {e}", self.config_path) from e

        if "protectedAreas" not in data:
            config.protected_areas = load_default_protected_areas()
            logger.debug("no protectedAreas stored, using %d defaults", len(config.protected_areas))
        return config

    def save(self, config: SyncConfig) -> None:
        try:
            self.config_path.write_text(
                json.dumps(config.to_dict(), indent=2) + "\n", encoding="utf-8"
            )
        except OSError as e:
            raise SyncError("persist", f"Failed to write {self.CONFIG_FILE}: {e}", self.config_path) from e
        logger.debug("saved sync config to %s", self.config_path)

    def initialize(self, version: str = "latest", branch: str = "") -> SyncConfig:
        """Create a fresh configuration with the bundled protection defaults."""
        now = utc_now()
        config = SyncConfig(
            framework_version=version,
            framework_branch=branch,
            created_at=now,
            last_sync_at=now,
            protected_areas=load_default_protected_areas(),
        )
        self.save(config)
        return config

    def mark_synced(self, config: SyncConfig, version: str, branch: str = "") -> SyncConfig:
        """Record a successful sync.

        Only the version, branch and timestamp change; protection lists are
        written back exactly as loaded.
        """
        config.last_sync_at = utc_now()
        config.framework_version = version
        if branch:
            config.framework_branch = branch
        self.save(config)
        return config
