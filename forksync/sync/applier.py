"""Change applier — carry out a computed change set on the fork.

Every operation is idempotent on its own, so a run interrupted halfway
can simply be repeated: copies and deletions trivially, manifest merges
because re-merging a manifest that already holds the framework values is a
no-op.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from forksync.models.sync import ChangeKind, FileChange, SyncError
from forksync.sync.manifest import compare_manifest_files, render_manifest

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    """Outcome of applying (or rehearsing) a change set."""

    dry_run: bool = False
    applied: list[FileChange] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.applied)


def apply_changes(changes: list[FileChange], dry_run: bool = False) -> ApplyResult:
    """Apply *changes* in order.

    With ``dry_run`` nothing is touched; the result lists what would have
    been applied.

    Raises:
        SyncError: kind ``apply`` on the first filesystem failure. Changes
            before it stay applied.
    """
    result = ApplyResult(dry_run=dry_run)
    for change in changes:
        if dry_run:
            logger.debug("dry run: would apply %s %s", change.kind.value, change.relative_path)
        else:
            logger.debug("applying %s: %s", change.kind.value, change.relative_path)
            try:
                _apply_one(change)
            except OSError as e:
                raise SyncError(
                    "apply", f"Failed to apply {change.kind.value} change: {e}", change.relative_path
                ) from e
        result.applied.append(change)
    return result


def _apply_one(change: FileChange) -> None:
    target = change.target_path

    if change.kind == ChangeKind.DELETED:
        _remove(target)
        return

    if change.source_path is None:
        raise SyncError("apply", "Change has no source file", change.relative_path)

    if change.kind == ChangeKind.MODIFIED and change.manifest is not None:
        _write_manifest(change)
        return

    # Links are recreated, never written through.
    if target.is_symlink() or target.is_dir() or change.source_path.is_symlink():
        _remove(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(change.source_path, target, follow_symlinks=False)


def _write_manifest(change: FileChange) -> None:
    comparison = change.manifest
    if comparison is None or comparison.merged_content is None:
        comparison = compare_manifest_files(change.source_path, change.target_path)
    if comparison is None:
        # One side stopped parsing since the diff; replace the file whole.
        shutil.copyfile(change.source_path, change.target_path)
        return
    if not comparison.should_merge:
        return
    change.target_path.write_text(render_manifest(comparison.merged_content), encoding="utf-8")


def _remove(target: Path) -> None:
    if target.is_symlink() or target.is_file():
        target.unlink()
    elif target.is_dir():
        shutil.rmtree(target)
