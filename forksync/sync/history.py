"""Sync history — an append-only record of completed syncs.

Every successful run appends one JSON line to ``.forksync-history.jsonl``
at the project root, so a user can see which framework versions were
applied, when, and what they touched.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

from forksync.models.sync import ChangeKind, FileChange, SyncError
from forksync.sync.state import utc_now


@dataclass
class SyncRecord:
    """One completed sync."""

    framework_version: str
    framework_branch: str = ""
    synced_at: str = ""  # ISO 8601
    added: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    upstream_commit: str = ""

    @property
    def change_count(self) -> int:
        return len(self.added) + len(self.modified) + len(self.deleted)

    @classmethod
    def from_changes(cls, version: str, branch: str, changes: list[FileChange]) -> SyncRecord:
        by_kind: dict[ChangeKind, list[str]] = {kind: [] for kind in ChangeKind}
        for change in changes:
            by_kind[change.kind].append(change.relative_path)
        return cls(
            framework_version=version,
            framework_branch=branch,
            added=by_kind[ChangeKind.ADDED],
            modified=by_kind[ChangeKind.MODIFIED],
            deleted=by_kind[ChangeKind.DELETED],
        )


class SyncHistory:
    """Stores and retrieves sync records for a project."""

    HISTORY_FILE = ".forksync-history.jsonl"

    def __init__(self, project_root: str | Path):
        self.project_root = Path(project_root)
        self.store_file = self.project_root / self.HISTORY_FILE

    def record(self, record: SyncRecord) -> None:
        """Append a sync record.

        Raises:
            SyncError: kind ``persist`` if the history file cannot be written.
        """
        if not record.synced_at:
            record.synced_at = utc_now()

        entry = {
            "framework_version": record.framework_version,
            "framework_branch": record.framework_branch,
            "synced_at": record.synced_at,
            "added": record.added,
            "modified": record.modified,
            "deleted": record.deleted,
            "upstream_commit": record.upstream_commit,
        }

        try:
            with open(self.store_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry) + "\n")
        except OSError as e:
            raise SyncError("persist", f"Failed to write {self.HISTORY_FILE}: {e}", self.store_file) from e

    def get_history(self) -> list[SyncRecord]:
        """Retrieve all sync records, oldest first."""
        if not self.store_file.exists():
            return []

        records = []
        with open(self.store_file, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)
                records.append(
                    SyncRecord(
                        framework_version=data["framework_version"],
                        framework_branch=data.get("framework_branch", ""),
                        synced_at=data.get("synced_at", ""),
                        added=data.get("added", []),
                        modified=data.get("modified", []),
                        deleted=data.get("deleted", []),
                        upstream_commit=data.get("upstream_commit", ""),
                    )
                )
        return records

    def get_latest(self) -> SyncRecord | None:
        history = self.get_history()
        return history[-1] if history else None
