"""Core data models for framework sync.

Covers: the persisted sync configuration, per-run change records,
manifest diffs, sample directory classification, and structured errors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class ChangeKind(Enum):
    """What the applier must do for a single path."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


class SampleDirectoryState(Enum):
    """How a downstream sample directory relates to the upstream copy."""

    REMOVED = "removed"  # User deleted it
    MODIFIED = "modified"  # User changed something tracked inside it
    UNMODIFIED = "unmodified"  # Still identical, safe to sync


# --- Errors ---


@dataclass
class SyncIssue:
    """A structured error surfaced to the caller."""

    kind: str  # config | fetch | registry | diff | apply | persist
    message: str
    path: str = ""

    def __str__(self) -> str:
        if self.path:
            return f"[{self.kind}] {self.message} ({self.path})"
        return f"[{self.kind}] {self.message}"


class SyncError(Exception):
    """Raised by the sync core; carries a ``SyncIssue``."""

    def __init__(self, kind: str, message: str, path: str | Path = ""):
        super().__init__(message)
        self.issue = SyncIssue(kind=kind, message=message, path=str(path) if path else "")

    @property
    def kind(self) -> str:
        return self.issue.kind

    @property
    def path(self) -> str:
        return self.issue.path


# --- Sync configuration ---


@dataclass
class SyncConfig:
    """Per-project sync state, stored as ``.forksync.json``."""

    framework_version: str = "latest"
    framework_branch: str = ""
    created_at: str = ""  # ISO 8601
    last_sync_at: str = ""  # ISO 8601
    protected_areas: list[str] = field(default_factory=list)
    user_protected_areas: list[str] = field(default_factory=list)
    user_unprotected_areas: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)  # Unknown keys, kept on save

    _FIELD_KEYS = {
        "framework_version": "frameworkVersion",
        "framework_branch": "frameworkBranch",
        "created_at": "createdAt",
        "last_sync_at": "lastSyncAt",
        "protected_areas": "protectedAreas",
        "user_protected_areas": "userProtectedAreas",
        "user_unprotected_areas": "userUnprotectedAreas",
    }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncConfig:
        if not isinstance(data, dict):
            raise ValueError("sync config must be a JSON object")
        known = set(cls._FIELD_KEYS.values())
        config = cls(
            framework_version=str(data.get("frameworkVersion", "latest")),
            framework_branch=str(data.get("frameworkBranch", "") or ""),
            created_at=str(data.get("createdAt", "")),
            last_sync_at=str(data.get("lastSyncAt", "")),
            protected_areas=_string_list(data, "protectedAreas"),
            user_protected_areas=_string_list(data, "userProtectedAreas"),
            user_unprotected_areas=_string_list(data, "userUnprotectedAreas"),
            extra={k: v for k, v in data.items() if k not in known},
        )
        return config

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "frameworkVersion": self.framework_version,
            "createdAt": self.created_at,
            "lastSyncAt": self.last_sync_at,
            "protectedAreas": list(self.protected_areas),
            "userProtectedAreas": list(self.user_protected_areas),
            "userUnprotectedAreas": list(self.user_unprotected_areas),
        }
        if self.framework_branch:
            data["frameworkBranch"] = self.framework_branch
        data.update(self.extra)
        return data


def _string_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key) or []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"'{key}' must be a list of strings")
    return list(value)


# --- Manifest diff ---


@dataclass
class ManifestDiff:
    """What the framework added or changed in a package manifest.

    ``added_*`` lists keys only the framework has. ``modified_*`` lists keys
    both sides have with different values; the framework value wins, so
    these are user edits that a merge overwrites.
    """

    added_attributes: list[str] = field(default_factory=list)
    modified_attributes: list[str] = field(default_factory=list)
    added_scripts: list[str] = field(default_factory=list)
    modified_scripts: list[str] = field(default_factory=list)
    added_dependencies: list[str] = field(default_factory=list)
    modified_dependencies: list[str] = field(default_factory=list)
    added_dev_dependencies: list[str] = field(default_factory=list)
    modified_dev_dependencies: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return any(
            (
                self.added_attributes,
                self.modified_attributes,
                self.added_scripts,
                self.modified_scripts,
                self.added_dependencies,
                self.modified_dependencies,
                self.added_dev_dependencies,
                self.modified_dev_dependencies,
            )
        )

    @property
    def conflicts(self) -> list[str]:
        """Dotted names of downstream values the merge replaces."""
        return (
            list(self.modified_attributes)
            + [f"scripts.{k}" for k in self.modified_scripts]
            + [f"dependencies.{k}" for k in self.modified_dependencies]
            + [f"devDependencies.{k}" for k in self.modified_dev_dependencies]
        )

    def summary_lines(self) -> list[str]:
        lines = []
        for label, values in (
            ("attributes added", self.added_attributes),
            ("attributes changed", self.modified_attributes),
            ("scripts added", self.added_scripts),
            ("scripts changed", self.modified_scripts),
            ("dependencies added", self.added_dependencies),
            ("dependencies changed", self.modified_dependencies),
            ("devDependencies added", self.added_dev_dependencies),
            ("devDependencies changed", self.modified_dev_dependencies),
        ):
            if values:
                lines.append(f"{label}: {', '.join(values)}")
        return lines


@dataclass
class ManifestComparison:
    """Result of structurally comparing two manifests."""

    should_merge: bool
    diff: ManifestDiff = field(default_factory=ManifestDiff)
    merged_content: dict[str, Any] | None = None


# --- Changes ---


@dataclass
class FileChange:
    """A single path the applier will add, overwrite, or remove."""

    kind: ChangeKind
    relative_path: str  # POSIX, relative to the project root
    target_path: Path
    source_path: Path | None = None  # None for deletions
    manifest: ManifestComparison | None = None  # Cached structural merge
    is_directory: bool = False

    @property
    def is_manifest_merge(self) -> bool:
        return self.manifest is not None and self.kind == ChangeKind.MODIFIED
