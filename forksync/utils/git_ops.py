"""Git operations — fetch the upstream framework, commit a finished sync."""

from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

from forksync.models.sync import SyncError

logger = logging.getLogger(__name__)

LATEST = "latest"


@dataclass
class RepoHandle:
    """Tracks a materialized upstream tree, including whether it was cloned.

    Use as a context manager to ensure temp clones are cleaned up::

        with fetch_upstream(url, version="v1.2.0") as handle:
            compute_changes(handle.local_path, project_root, protection)
        # temp clone (if any) is deleted here
    """

    local_path: Path
    """Filesystem path to the upstream tree root (may be a temp clone)."""

    source: str = ""
    """URL or directory the tree came from."""

    ref: str = ""
    """Branch or tag that was checked out, empty for the default branch."""

    commit_sha: str = ""

    is_temp_clone: bool = False
    """True when ``local_path`` is a temporary clone that should be cleaned up."""

    def __enter__(self) -> "RepoHandle":
        return self

    def __exit__(self, *exc) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        """Remove the temporary clone directory, if applicable."""
        if self.is_temp_clone and self.local_path.exists():
            shutil.rmtree(self.local_path, ignore_errors=True)


def resolve_ref(version: str | None, branch: str | None) -> str:
    """A concrete version (tag) wins over a branch; ``latest`` means neither."""
    if version and version != LATEST:
        return version
    return branch or ""


def fetch_upstream(source: str, version: str | None = None, branch: str | None = None) -> RepoHandle:
    """Materialize the upstream framework tree.

    Args:
        source: Git URL, path to a local git repository, or a plain
            directory holding an already materialized tree.
        version: Tag or branch to check out; ``latest`` or None for the
            default branch.
        branch: Branch to use when no concrete version is given.

    Returns:
        A ``RepoHandle``. Use it as a context manager so temporary clones
        are removed.

    Raises:
        SyncError: kind ``fetch`` if the tree cannot be obtained. Nothing
            is left behind in that case.
    """
    ref = resolve_ref(version, branch)
    path = Path(source)

    if path.is_dir() and not ref:
        logger.debug("using local upstream tree %s", path)
        return RepoHandle(
            local_path=path.resolve(),
            source=source,
            commit_sha=_head_sha(path),
            is_temp_clone=False,
        )

    if path.is_dir() or source.startswith(("http://", "https://", "git@", "git://", "file://", "ssh://")):
        clone_dir = _clone_repo(source, ref)
        return RepoHandle(
            local_path=clone_dir,
            source=source,
            ref=ref,
            commit_sha=_head_sha(clone_dir),
            is_temp_clone=True,
        )

    raise SyncError("fetch", f"Not a valid upstream path or URL: {source}", source)


def _clone_repo(url: str, ref: str = "") -> Path:
    """Shallow-clone a repo to a temporary directory."""
    clone_dir = Path(tempfile.mkdtemp(prefix="forksync_"))
    kwargs = {"depth": 1}
    if ref:
        kwargs["branch"] = ref
    logger.debug("cloning %s (%s) into %s", url, ref or "default branch", clone_dir)
    try:
        Repo.clone_from(url, clone_dir, **kwargs)
    except GitCommandError as e:
        shutil.rmtree(clone_dir, ignore_errors=True)
        detail = (e.stderr or str(e)).strip()
        raise SyncError("fetch", f"Failed to download framework: {detail}", url) from e
    return clone_dir


def _head_sha(path: Path) -> str:
    """Return the HEAD commit of a repo, or empty string for plain directories."""
    try:
        return Repo(path).head.commit.hexsha
    except (InvalidGitRepositoryError, NoSuchPathError, ValueError):
        return ""


def is_git_repository(path: str | Path) -> bool:
    try:
        Repo(path, search_parent_directories=True)
    except (InvalidGitRepositoryError, NoSuchPathError):
        return False
    return True


def commit_sync(project_root: str | Path, message: str) -> str:
    """Stage everything under *project_root* and commit it.

    Returns:
        The new commit SHA.

    Raises:
        SyncError: kind ``persist`` if the project is not a git repository
            or the commit fails (for example, nothing to commit).
    """
    root = Path(project_root)
    if not is_git_repository(root):
        raise SyncError("persist", "Not a git repository", root)

    repo = Repo(root, search_parent_directories=True)
    try:
        repo.git.add("--all", "--", str(root))
        repo.git.commit("-m", message)
    except GitCommandError as e:
        detail = (e.stderr or e.stdout or str(e)).strip()
        raise SyncError("persist", f"git commit failed: {detail}", root) from e
    sha = repo.head.commit.hexsha
    logger.debug("committed %s: %s", sha[:12], message)
    return sha
