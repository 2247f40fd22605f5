"""Structural merge for ``package.json`` manifests.

A textual merge of two manifests is almost always wrong: users add their
own scripts and dependencies while the framework bumps versions. Instead
the framework manifest is laid over the fork's:

- keys only the fork has are kept untouched
- keys only the framework has are added
- keys both have take the framework value; for ``scripts``,
  ``dependencies`` and ``devDependencies`` this happens entry by entry so
  fork-only entries survive
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any

from forksync.models.sync import ManifestComparison, ManifestDiff

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "package.json"

CONTAINER_KEYS = ("scripts", "dependencies", "devDependencies")

_DIFF_FIELDS = {
    "scripts": ("added_scripts", "modified_scripts"),
    "dependencies": ("added_dependencies", "modified_dependencies"),
    "devDependencies": ("added_dev_dependencies", "modified_dev_dependencies"),
}


def is_manifest(relative_path: str) -> bool:
    return relative_path.rsplit("/", 1)[-1] == MANIFEST_FILENAME


def compare_manifests(upstream: dict[str, Any], downstream: dict[str, Any]) -> ManifestComparison:
    """Compare two parsed manifests and compute the merged result.

    Args:
        upstream: The framework manifest.
        downstream: The fork's manifest.

    Returns:
        ManifestComparison. ``merged_content`` is only set when
        ``should_merge`` is True.
    """
    diff = ManifestDiff()

    for key, value in upstream.items():
        if key not in downstream:
            diff.added_attributes.append(key)
            logger.debug("manifest: attribute %r added by framework", key)
            continue

        if key in CONTAINER_KEYS and isinstance(value, dict) and isinstance(downstream[key], dict):
            added, modified = _compare_entries(value, downstream[key])
            added_field, modified_field = _DIFF_FIELDS[key]
            getattr(diff, added_field).extend(added)
            getattr(diff, modified_field).extend(modified)
            for name in added:
                logger.debug("manifest: %s.%s added by framework", key, name)
            for name in modified:
                logger.debug("manifest: %s.%s differs, framework value wins", key, name)
            continue

        if value != downstream[key]:
            diff.modified_attributes.append(key)
            logger.debug("manifest: attribute %r differs, framework value wins", key)

    if not diff.has_changes:
        return ManifestComparison(should_merge=False, diff=diff)

    return ManifestComparison(
        should_merge=True,
        diff=diff,
        merged_content=merge_manifests(upstream, downstream, diff),
    )


def merge_manifests(
    upstream: dict[str, Any],
    downstream: dict[str, Any],
    diff: ManifestDiff | None = None,
) -> dict[str, Any]:
    """Lay *upstream* over a deep copy of *downstream*.

    The result is the same whichever keys ``diff`` classified as added or
    modified; it only narrows which top-level keys are copied across.
    """
    merged = copy.deepcopy(downstream)

    if diff is None:
        changed = list(upstream)
    else:
        changed = diff.added_attributes + diff.modified_attributes
    for key in changed:
        if key in CONTAINER_KEYS and isinstance(upstream[key], dict) and isinstance(merged.get(key), dict):
            continue  # unioned below
        merged[key] = copy.deepcopy(upstream[key])

    for key in CONTAINER_KEYS:
        framework_entries = upstream.get(key)
        if not isinstance(framework_entries, dict):
            continue
        fork_entries = merged.get(key)
        if not isinstance(fork_entries, dict):
            merged[key] = copy.deepcopy(framework_entries)
            continue
        combined = dict(fork_entries)
        combined.update(copy.deepcopy(framework_entries))
        merged[key] = combined

    return merged


def _compare_entries(upstream: dict[str, Any], downstream: dict[str, Any]) -> tuple[list[str], list[str]]:
    added = []
    modified = []
    for name, value in upstream.items():
        if name not in downstream:
            added.append(name)
        elif downstream[name] != value:
            modified.append(name)
    return added, modified


def load_manifest(path: Path) -> dict[str, Any] | None:
    """Parse a manifest, returning None if it is not a JSON object."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.debug("manifest: cannot parse %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.debug("manifest: %s is not a JSON object", path)
        return None
    return data


def compare_manifest_files(source: Path, target: Path) -> ManifestComparison | None:
    """Compare two manifest files on disk.

    Returns None when either side fails to parse; the caller should then
    treat the file like any other and replace it whole.
    """
    upstream = load_manifest(source)
    downstream = load_manifest(target)
    if upstream is None or downstream is None:
        return None
    return compare_manifests(upstream, downstream)


def render_manifest(content: dict[str, Any]) -> str:
    """Serialize the way npm does: two-space indent, trailing newline."""
    return json.dumps(content, indent=2, ensure_ascii=False) + "\n"
