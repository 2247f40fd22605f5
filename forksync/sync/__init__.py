"""Framework sync — bring a forked project up to date with its upstream.

This package provides the primitives for:
- Protection: path rules that keep user-owned files out of a sync
- Diffing: the change set between the framework tree and the fork
- Manifest merge: structural merge of package.json files
- Applying: carrying out a change set, idempotently
- State: the persisted sync configuration and history
"""

from forksync.sync.applier import ApplyResult, apply_changes
from forksync.sync.differ import TreeDiffer, compute_changes
from forksync.sync.manifest import compare_manifests
from forksync.sync.protection import effective_protection_set, is_protected
from forksync.sync.registry import RegistryUpdate, update_protection_registry

__all__ = [
    "ApplyResult",
    "RegistryUpdate",
    "TreeDiffer",
    "apply_changes",
    "compare_manifests",
    "compute_changes",
    "effective_protection_set",
    "is_protected",
    "update_protection_registry",
]
