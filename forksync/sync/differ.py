"""Tree differ — compute the change set that brings a fork up to date.

Two passes over the trees:

1. Forward, over upstream: every unprotected, non-ignored file that is
   missing downstream is ADDED; every one whose content differs is
   MODIFIED. Manifests are compared structurally instead of byte by byte.
   Sample directories the user removed or edited are skipped whole.
2. Reverse, over downstream: every unprotected, non-ignored path outside
   the sample directories that upstream no longer has is DELETED.

Symlinks are compared by their target and never followed.
"""

from __future__ import annotations

import difflib
import logging
from pathlib import Path

from forksync.models.sync import ChangeKind, FileChange, SampleDirectoryState, SyncError
from forksync.sync.manifest import compare_manifest_files, is_manifest, render_manifest
from forksync.sync.protection import ProtectionSet
from forksync.sync.samples import (
    SAMPLE_DIRECTORIES,
    classify_sample_directory,
    inside_sample_directory,
    is_sample_directory,
)
from forksync.utils.file_scanner import (
    DEFAULT_IGNORE,
    IgnoreRules,
    join_relative,
    list_dir,
    same_content,
    scan_tree,
)

logger = logging.getLogger(__name__)

_NO_IGNORE = IgnoreRules(dirs=frozenset(), files=frozenset())


class TreeDiffer:
    """Walks an upstream and a downstream tree and collects ``FileChange``s.

    Both roots must be absolute; every path in the result is relative to
    them and uses POSIX separators.
    """

    def __init__(
        self,
        upstream_root: str | Path,
        downstream_root: str | Path,
        protection: ProtectionSet,
        ignore: IgnoreRules = DEFAULT_IGNORE,
        sample_dirs: tuple[str, ...] = SAMPLE_DIRECTORIES,
    ):
        self.upstream_root = Path(upstream_root)
        self.downstream_root = Path(downstream_root)
        self.protection = protection
        self.ignore = ignore
        self.sample_dirs = tuple(sample_dirs)
        self.sample_states: dict[str, SampleDirectoryState] = {}
        self._changes: list[FileChange] = []

    def compute(self) -> list[FileChange]:
        if not self.upstream_root.is_dir():
            raise SyncError("diff", "Upstream tree does not exist", self.upstream_root)
        if not self.downstream_root.is_dir():
            raise SyncError("diff", "Project directory does not exist", self.downstream_root)

        self._changes = []
        self.sample_states = {}
        try:
            self._forward("")
            self._reverse("")
        except PermissionError as e:
            raise SyncError("diff", f"Permission denied: {e.strerror}", e.filename or "") from e
        return list(self._changes)

    @property
    def skipped_samples(self) -> dict[str, SampleDirectoryState]:
        return {
            rel: state
            for rel, state in self.sample_states.items()
            if state != SampleDirectoryState.UNMODIFIED
        }

    # ── Forward pass ─────────────────────────────────────────────────

    def _forward(self, relative: str, replaced: bool = False) -> None:
        """*replaced* means the downstream path above is about to be deleted."""
        for entry in list_dir(self.upstream_root / relative):
            rel = join_relative(relative, entry.name)
            is_dir = entry.is_dir(follow_symlinks=False)

            if self._excluded(rel, is_dir):
                continue

            if not is_dir:
                self._compare_file(rel, replaced)
                continue

            if is_sample_directory(rel, self.sample_dirs):
                state = classify_sample_directory(
                    self.upstream_root / rel, self.downstream_root / rel, self.ignore
                )
                self.sample_states[rel] = state
                logger.debug("sample %s: %s", rel, state.value)
                if state != SampleDirectoryState.UNMODIFIED:
                    continue

            target = self.downstream_root / rel
            blocked = not replaced and (target.is_file() or target.is_symlink())
            if blocked:
                # A file or link is in the way of an upstream directory.
                self._add(ChangeKind.DELETED, rel)
            self._forward(rel, replaced or blocked)

    def _compare_file(self, rel: str, replaced: bool = False) -> None:
        source = self.upstream_root / rel
        target = self.downstream_root / rel

        if replaced or (not target.exists() and not target.is_symlink()):
            logger.debug("added: %s", rel)
            self._add(ChangeKind.ADDED, rel, source)
            return

        linked = source.is_symlink() or target.is_symlink()

        if target.is_dir() and not target.is_symlink():
            logger.debug("modified: %s (directory replaced by file)", rel)
            self._add(ChangeKind.MODIFIED, rel, source)
            return

        if is_manifest(rel) and not linked:
            comparison = compare_manifest_files(source, target)
            if comparison is not None:
                if comparison.should_merge:
                    logger.debug("modified: %s (manifest merge)", rel)
                    self._add(ChangeKind.MODIFIED, rel, source, manifest=comparison)
                else:
                    logger.debug("unchanged: %s (manifest already up to date)", rel)
                return
            logger.debug("manifest %s unparseable, comparing bytes", rel)

        try:
            same = same_content(source, target)
        except OSError as e:
            raise SyncError("diff", f"Cannot compare file: {e}", rel) from e
        if same:
            logger.debug("unchanged: %s", rel)
        else:
            logger.debug("modified: %s", rel)
            self._add(ChangeKind.MODIFIED, rel, source)

    # ── Reverse pass ─────────────────────────────────────────────────

    def _reverse(self, relative: str) -> None:
        for entry in list_dir(self.downstream_root / relative):
            rel = join_relative(relative, entry.name)
            is_dir = entry.is_dir(follow_symlinks=False)

            if self._excluded(rel, is_dir):
                continue
            if inside_sample_directory(rel, self.sample_dirs):
                logger.debug("sample subtree %s is never deleted", rel)
                continue

            upstream = self.upstream_root / rel
            upstream_exists = upstream.exists() or upstream.is_symlink()

            if not is_dir:
                if not upstream_exists:
                    logger.debug("deleted: %s", rel)
                    self._add(ChangeKind.DELETED, rel)
                continue

            if upstream.is_dir() and not upstream.is_symlink():
                self._reverse(rel)
            elif upstream_exists:
                # Upstream has a file or link here; the forward pass replaces the directory.
                continue
            elif self._disposable(rel):
                logger.debug("deleted: %s/ (whole directory)", rel)
                self._add(ChangeKind.DELETED, rel, is_directory=True)
            else:
                self._reverse(rel)

    def _disposable(self, relative: str) -> bool:
        """True if nothing below *relative* is protected, ignored or a sample."""
        for rel, is_dir in scan_tree(self.downstream_root, _NO_IGNORE, relative):
            if self.ignore(rel, is_dir) or self.protection.match(rel) is not None:
                return False
            if is_sample_directory(rel, self.sample_dirs):
                return False
        return True

    # ── Helpers ──────────────────────────────────────────────────────

    def _excluded(self, rel: str, is_dir: bool) -> bool:
        if self.protection.is_protected(rel):
            return True
        if self.ignore(rel, is_dir):
            logger.debug("ignored: %s", rel)
            return True
        return False

    def _add(self, kind: ChangeKind, rel: str, source: Path | None = None, **kwargs) -> None:
        self._changes.append(
            FileChange(
                kind=kind,
                relative_path=rel,
                target_path=self.downstream_root / rel,
                source_path=source,
                **kwargs,
            )
        )


def compute_changes(
    upstream_root: str | Path,
    downstream_root: str | Path,
    protection: ProtectionSet | list[str],
    ignore: IgnoreRules = DEFAULT_IGNORE,
    sample_dirs: tuple[str, ...] = SAMPLE_DIRECTORIES,
) -> list[FileChange]:
    """Compute the ordered change set: additions and modifications in
    upstream walk order, then deletions in downstream walk order."""
    if not isinstance(protection, ProtectionSet):
        protection = ProtectionSet(protection)
    return TreeDiffer(upstream_root, downstream_root, protection, ignore, sample_dirs).compute()


def render_text_diff(change: FileChange) -> str:
    """Unified diff of what applying *change* does to the fork's file.

    Returns an empty string for binary files, symlinks and deletions of
    directories.
    """
    if change.is_directory:
        return ""

    before = _read_text(change.target_path) if change.target_path.is_file() else ""
    if change.kind == ChangeKind.DELETED:
        after = ""
    elif change.is_manifest_merge:
        after = render_manifest(change.manifest.merged_content)
    else:
        after = _read_text(change.source_path)

    if before is None or after is None:
        return ""

    diff = difflib.unified_diff(
        before.splitlines(),
        after.splitlines(),
        fromfile=f"a/{change.relative_path}",
        tofile=f"b/{change.relative_path}",
        lineterm="",
    )
    return "\n".join(diff)


def _read_text(path: Path | None) -> str | None:
    if path is None:
        return ""
    if path.is_symlink():
        return None
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return None
