"""Tests for fetching the upstream tree and committing a sync."""

import tempfile
from pathlib import Path

import pytest
from git import Actor, Repo

from forksync.models.sync import SyncError
from forksync.utils.git_ops import commit_sync, fetch_upstream, is_git_repository, resolve_ref

AUTHOR = Actor("Fork Sync Tests", "tests@example.com")


def _repo_with_commits(path: Path) -> Repo:
    """A repo with a v1 tag, a later commit on main, and a 'next' branch."""
    repo = Repo.init(path)
    (path / "VERSION").write_text("1")
    repo.git.add("--all")
    repo.index.commit("v1", author=AUTHOR, committer=AUTHOR)
    repo.create_tag("v1.0.0")
    (path / "VERSION").write_text("2")
    repo.git.add("--all")
    repo.index.commit("v2", author=AUTHOR, committer=AUTHOR)
    repo.create_head("next")
    return repo


def test_resolve_ref():
    assert resolve_ref("latest", "") == ""
    assert resolve_ref(None, "release") == "release"
    assert resolve_ref("latest", "release") == "release"
    assert resolve_ref("v1.0.0", "release") == "v1.0.0"


def test_plain_directory_used_in_place():
    with tempfile.TemporaryDirectory() as tmpdir:
        with fetch_upstream(tmpdir) as handle:
            assert handle.local_path == Path(tmpdir).resolve()
            assert not handle.is_temp_clone
            assert handle.commit_sha == ""
        assert Path(tmpdir).exists()


def test_clone_tag_and_cleanup():
    with tempfile.TemporaryDirectory() as tmpdir:
        source = Path(tmpdir) / "framework"
        source.mkdir()
        repo = _repo_with_commits(source)

        with fetch_upstream(str(source), version="v1.0.0") as handle:
            clone = handle.local_path
            assert handle.is_temp_clone
            assert handle.ref == "v1.0.0"
            assert (clone / "VERSION").read_text() == "1"
            assert handle.commit_sha == repo.tags["v1.0.0"].commit.hexsha
        assert not clone.exists()


def test_clone_branch():
    with tempfile.TemporaryDirectory() as tmpdir:
        source = Path(tmpdir) / "framework"
        source.mkdir()
        _repo_with_commits(source)

        with fetch_upstream(str(source), branch="next") as handle:
            assert (handle.local_path / "VERSION").read_text() == "2"


def test_unknown_ref_is_fetch_error():
    with tempfile.TemporaryDirectory() as tmpdir:
        source = Path(tmpdir) / "framework"
        source.mkdir()
        _repo_with_commits(source)

        with pytest.raises(SyncError) as exc:
            fetch_upstream(str(source), version="v9.9.9")
        assert exc.value.kind == "fetch"


def test_invalid_source_is_fetch_error():
    with pytest.raises(SyncError) as exc:
        fetch_upstream("/definitely/not/here")
    assert exc.value.kind == "fetch"


def test_commit_sync():
    with tempfile.TemporaryDirectory() as tmpdir:
        project = Path(tmpdir)
        repo = _repo_with_commits(project)
        with repo.config_writer() as cw:
            cw.set_value("user", "name", AUTHOR.name)
            cw.set_value("user", "email", AUTHOR.email)
        (project / "new.md").write_text("synced")

        sha = commit_sync(project, "sync: update framework to v2.0.0")

        assert sha == repo.head.commit.hexsha
        assert repo.head.commit.message.strip() == "sync: update framework to v2.0.0"
        assert not repo.is_dirty(untracked_files=True)


def test_commit_sync_outside_repository():
    with tempfile.TemporaryDirectory() as tmpdir:
        assert not is_git_repository(tmpdir)
        with pytest.raises(SyncError) as exc:
            commit_sync(tmpdir, "sync")
        assert exc.value.kind == "persist"
