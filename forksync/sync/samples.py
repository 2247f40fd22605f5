"""Sample directories — optional example subtrees users may delete or edit.

A sample directory is synced only while the user has left it alone. Once
they delete it or change anything tracked inside it, the whole subtree
belongs to them: it is never recreated and never reported as deleted.
"""

from __future__ import annotations

import logging
from pathlib import Path

from forksync.models.sync import SampleDirectoryState
from forksync.utils.file_scanner import DEFAULT_IGNORE, IgnoreRules, same_content, scan_tree

logger = logging.getLogger(__name__)

SAMPLE_DIRECTORIES = (
    "services/samples/weather",
    "apps/samples/enterprise-site",
)


def is_sample_directory(relative_path: str, sample_dirs=SAMPLE_DIRECTORIES) -> bool:
    return relative_path.rstrip("/") in sample_dirs


def inside_sample_directory(relative_path: str, sample_dirs=SAMPLE_DIRECTORIES) -> bool:
    return any(
        relative_path == d or relative_path.startswith(d + "/") for d in sample_dirs
    )


def classify_sample_directory(
    upstream_dir: Path,
    downstream_dir: Path,
    ignore: IgnoreRules = DEFAULT_IGNORE,
) -> SampleDirectoryState:
    """Decide whether a sample directory is removed, modified or untouched.

    Lockfiles, env files, caches and READMEs are ignored on both sides so
    that installing or running the sample does not count as a change.
    """
    if not downstream_dir.is_dir():
        return SampleDirectoryState.REMOVED

    noise = ignore.for_samples()
    upstream_entries = dict(scan_tree(upstream_dir, noise)) if upstream_dir.is_dir() else {}
    downstream_entries = dict(scan_tree(downstream_dir, noise))

    if upstream_entries.keys() != downstream_entries.keys():
        only_up = sorted(upstream_entries.keys() - downstream_entries.keys())
        only_down = sorted(downstream_entries.keys() - upstream_entries.keys())
        logger.debug(
            "sample %s: entries differ (missing=%s, extra=%s)",
            downstream_dir, only_up[:5], only_down[:5],
        )
        return SampleDirectoryState.MODIFIED

    for rel, is_dir in upstream_entries.items():
        if is_dir != downstream_entries[rel]:
            logger.debug("sample %s: %s changed type", downstream_dir, rel)
            return SampleDirectoryState.MODIFIED
        if not is_dir and not same_content(upstream_dir / rel, downstream_dir / rel):
            logger.debug("sample %s: %s content differs", downstream_dir, rel)
            return SampleDirectoryState.MODIFIED

    return SampleDirectoryState.UNMODIFIED
