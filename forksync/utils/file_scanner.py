"""File scanner — decide which paths a sync walk should never look at.

One ``IgnoreRules`` instance is shared by the forward diff pass, the
deletion pass, and the sample directory comparator so the three never
disagree about what counts as noise.
"""

from __future__ import annotations

import filecmp
import fnmatch
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

# Directories to always skip: dependency caches, VCS metadata, build output,
# and the framework's own tooling packages
SKIP_DIRS = {
    "node_modules", ".git", ".turbo", "dist", "build", ".svelte-kit",
    "cdk.out", "packages", "future-changes", ".forksync-temp", "__pycache__", ".venv",
}

# Files owned by forksync itself; never synced in either direction
TOOL_FILES = {".forksync.json", ".forksync-history.jsonl"}

# Extra noise ignored only when deciding if a sample directory was touched
SAMPLE_NOISE = {
    "package-lock.json", "pnpm-lock.yaml", "yarn.lock", "bun.lockb",
    ".env*", ".cache", ".DS_Store", "coverage",
    "README*", "readme*",
}


@dataclass(frozen=True)
class IgnoreRules:
    """Name-based ignore predicate.

    ``dirs`` match directory basenames exactly. ``files`` are shell-style
    patterns matched against the basename of files *and* directories.
    """

    dirs: frozenset[str] = field(default_factory=lambda: frozenset(SKIP_DIRS))
    files: frozenset[str] = field(default_factory=lambda: frozenset(TOOL_FILES))

    def __call__(self, relative_path: str, is_dir: bool = False) -> bool:
        name = relative_path.rstrip("/").rsplit("/", 1)[-1]
        if is_dir and name in self.dirs:
            return True
        return any(fnmatch.fnmatchcase(name, pattern) for pattern in self.files)

    def extended(self, dirs: set[str] | None = None, files: set[str] | None = None) -> IgnoreRules:
        """Return a copy with additional directory names and file patterns."""
        return IgnoreRules(
            dirs=self.dirs | frozenset(dirs or ()),
            files=self.files | frozenset(files or ()),
        )

    def for_samples(self) -> IgnoreRules:
        """The same rules plus lockfiles, env files, caches and READMEs."""
        return self.extended(files=SAMPLE_NOISE)


DEFAULT_IGNORE = IgnoreRules()


def list_dir(path: Path) -> list[os.DirEntry]:
    """Sorted directory entries so every walk is deterministic."""
    with os.scandir(path) as it:
        return sorted(it, key=lambda e: e.name)


def join_relative(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def scan_tree(root: Path, ignore: IgnoreRules = DEFAULT_IGNORE, relative: str = "") -> Iterator[tuple[str, bool]]:
    """Yield ``(relative_path, is_dir)`` for everything under *root*.

    Ignored entries are skipped along with their whole subtree. Symlinked
    directories are reported but not followed.
    """
    base = root / relative if relative else root
    for entry in list_dir(base):
        rel = join_relative(relative, entry.name)
        is_dir = entry.is_dir(follow_symlinks=False)
        if ignore(rel, is_dir):
            continue
        yield rel, is_dir
        if is_dir:
            yield from scan_tree(root, ignore, rel)


def same_content(a: Path, b: Path) -> bool:
    """Byte-compare two files. A symlink only equals a symlink with the same target."""
    if a.is_symlink() or b.is_symlink():
        return a.is_symlink() and b.is_symlink() and os.readlink(a) == os.readlink(b)
    return filecmp.cmp(a, b, shallow=False)
