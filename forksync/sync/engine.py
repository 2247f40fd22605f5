"""Sync engine — one end-to-end run against a project.

Phases run strictly in order::

    IDLE -> FETCHING -> REGISTRY_UPDATE -> DIFFING
         -> REPORTING                                  (dry run)
         -> CONFIRMING -> APPLYING -> PERSISTING       (real run)
         -> IDLE

A failure before APPLYING leaves the project untouched apart from a
protection-default refresh that was already saved. The sync config is
written only after every change has been applied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable

from forksync.config import settings
from forksync.models.sync import FileChange, SampleDirectoryState, SyncError, SyncIssue
from forksync.sync.applier import ApplyResult, apply_changes
from forksync.sync.differ import TreeDiffer
from forksync.sync.history import SyncHistory, SyncRecord
from forksync.sync.protection import ProtectionSet, effective_protection_set
from forksync.sync.registry import RegistryUpdate, update_protection_registry
from forksync.sync.samples import SAMPLE_DIRECTORIES
from forksync.sync.state import SyncStateStore
from forksync.utils.file_scanner import DEFAULT_IGNORE, IgnoreRules
from forksync.utils.git_ops import LATEST, RepoHandle, commit_sync, fetch_upstream

logger = logging.getLogger(__name__)


class RunPhase(Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    REGISTRY_UPDATE = "registry_update"
    DIFFING = "diffing"
    REPORTING = "reporting"
    CONFIRMING = "confirming"
    APPLYING = "applying"
    PERSISTING = "persisting"


@dataclass
class SyncOptions:
    """What to sync from, and how."""

    source: str = ""  # Git URL or local directory; defaults to settings.repo_url
    version: str = LATEST
    branch: str = ""
    dry_run: bool = False
    commit: bool = True


@dataclass
class SyncPlan:
    """Everything the diff phase found, ready to be shown to the user."""

    changes: list[FileChange]
    protection: ProtectionSet
    registry: RegistryUpdate = field(default_factory=RegistryUpdate)
    skipped_samples: dict[str, SampleDirectoryState] = field(default_factory=dict)
    upstream_commit: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.changes


@dataclass
class SyncOutcome:
    """Result of a run. ``issues`` holds fatal errors, ``warnings`` the rest."""

    plan: SyncPlan | None = None
    applied: ApplyResult | None = None
    issues: list[SyncIssue] = field(default_factory=list)
    warnings: list[SyncIssue] = field(default_factory=list)
    failed_phase: RunPhase | None = None
    cancelled: bool = False
    commit_sha: str = ""

    @property
    def success(self) -> bool:
        return not self.issues and not self.cancelled

    @property
    def up_to_date(self) -> bool:
        return self.success and self.plan is not None and self.plan.is_empty


class SyncEngine:
    """Runs a sync for the project rooted at ``project_root``.

    Args:
        project_root: Absolute path of the fork.
        options: Source, version and run flags.
        fetcher: Callable ``(source, version, branch) -> RepoHandle``;
            swap it out to sync from somewhere other than git.
    """

    def __init__(
        self,
        project_root: str | Path,
        options: SyncOptions | None = None,
        fetcher: Callable[[str, str | None, str | None], RepoHandle] = fetch_upstream,
        ignore: IgnoreRules = DEFAULT_IGNORE,
        sample_dirs: tuple[str, ...] = SAMPLE_DIRECTORIES,
    ):
        self.project_root = Path(project_root).resolve()
        self.options = options or SyncOptions()
        self.fetcher = fetcher
        self.ignore = ignore
        self.sample_dirs = sample_dirs
        self.store = SyncStateStore(self.project_root)
        self.history = SyncHistory(self.project_root)
        self.phase = RunPhase.IDLE

    def run(
        self,
        confirm: Callable[[SyncPlan], bool] | None = None,
        report: Callable[[SyncPlan], None] | None = None,
    ) -> SyncOutcome:
        """Run one sync.

        Args:
            confirm: Asked before anything is applied; returning False
                cancels the run. None means apply without asking.
            report: Called with the plan right after diffing.
        """
        outcome = SyncOutcome()
        try:
            self._run(outcome, confirm, report)
        except SyncError as e:
            logger.debug("sync failed during %s: %s", self.phase.value, e.issue)
            outcome.issues.append(e.issue)
            outcome.failed_phase = self.phase
        finally:
            self._enter(RunPhase.IDLE)
        return outcome

    def _run(self, outcome: SyncOutcome, confirm, report) -> None:
        opts = self.options
        config = self.store.load()

        self._enter(RunPhase.FETCHING)
        with self.fetcher(opts.source or settings.repo_url, opts.version, opts.branch or None) as upstream:
            self._enter(RunPhase.REGISTRY_UPDATE)
            registry = update_protection_registry(upstream.local_path, config, self.store)

            self._enter(RunPhase.DIFFING)
            protection = effective_protection_set(config)
            differ = TreeDiffer(
                upstream.local_path, self.project_root, protection, self.ignore, self.sample_dirs
            )
            changes = differ.compute()
            plan = SyncPlan(
                changes=changes,
                protection=protection,
                registry=registry,
                skipped_samples=differ.skipped_samples,
                upstream_commit=upstream.commit_sha,
            )
            outcome.plan = plan
            logger.debug("%d change(s) found", len(changes))

            if report is not None:
                report(plan)

            if opts.dry_run:
                self._enter(RunPhase.REPORTING)
                outcome.applied = apply_changes(changes, dry_run=True)
                return

            if plan.is_empty:
                return

            self._enter(RunPhase.CONFIRMING)
            if confirm is not None and not confirm(plan):
                logger.debug("sync cancelled before applying")
                outcome.cancelled = True
                return

            self._enter(RunPhase.APPLYING)
            outcome.applied = apply_changes(changes)

            self._enter(RunPhase.PERSISTING)
            self.store.mark_synced(config, opts.version, opts.branch)
            record = SyncRecord.from_changes(opts.version, opts.branch, changes)
            record.upstream_commit = upstream.commit_sha
            try:
                self.history.record(record)
            except SyncError as e:
                # The changes and the config are already written; only the log is lost.
                outcome.warnings.append(e.issue)

            if opts.commit:
                try:
                    outcome.commit_sha = commit_sync(
                        self.project_root, f"sync: update framework to {opts.version}"
                    )
                except SyncError as e:
                    outcome.warnings.append(e.issue)

    def _enter(self, phase: RunPhase) -> None:
        if phase != self.phase:
            logger.debug("phase: %s -> %s", self.phase.value, phase.value)
        self.phase = phase
