"""Protection registry — refresh the default protection list from upstream.

The framework is authoritative for the *default* protected areas. If the
upstream tree ships a different list, it replaces the stored one before
the diff runs, so new rules already apply to the same sync. The user's
own additions and removals are left alone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from forksync.models.sync import SyncConfig, SyncError
from forksync.sync.protection import read_protection_resource
from forksync.sync.state import SyncStateStore

logger = logging.getLogger(__name__)

UPSTREAM_DEFAULTS_PATH = ".forksync/protected-areas.json"


@dataclass
class RegistryUpdate:
    """What changed in the stored default protection list."""

    changed: bool = False
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    source: str = ""

    def summary_lines(self) -> list[str]:
        return [f"+ {rule}" for rule in self.added] + [f"- {rule}" for rule in self.removed]


def update_protection_registry(
    upstream_root: str | Path,
    config: SyncConfig,
    store: SyncStateStore | None = None,
) -> RegistryUpdate:
    """Replace ``config.protected_areas`` with upstream's list if it differs.

    Order is ignored when comparing. When a change is made and *store* is
    given, the config is persisted immediately.

    Raises:
        SyncError: kind ``registry`` if the upstream file exists but is
            malformed.
    """
    resource = Path(upstream_root) / UPSTREAM_DEFAULTS_PATH
    try:
        upstream_rules = read_protection_resource(resource)
    except (OSError, ValueError) as e:
        raise SyncError("registry", f"Invalid protection defaults: {e}", resource) from e

    if upstream_rules is None:
        logger.debug("no protection defaults shipped upstream at %s", UPSTREAM_DEFAULTS_PATH)
        return RegistryUpdate(source=str(resource))

    current = set(config.protected_areas)
    incoming = set(upstream_rules)
    if current == incoming:
        logger.debug("protection defaults unchanged (%d rules)", len(incoming))
        return RegistryUpdate(source=str(resource))

    update = RegistryUpdate(
        changed=True,
        added=[r for r in upstream_rules if r not in current],
        removed=[r for r in config.protected_areas if r not in incoming],
        source=str(resource),
    )
    config.protected_areas = list(dict.fromkeys(upstream_rules))
    for line in update.summary_lines():
        logger.info("protected areas: %s", line)

    if store is not None:
        store.save(config)
    return update
