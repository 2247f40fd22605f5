"""Tests for the tree differ."""

import json
import os
import tempfile
from pathlib import Path

import pytest

from forksync.models.sync import SampleDirectoryState, SyncError
from forksync.sync.applier import apply_changes
from forksync.sync.differ import TreeDiffer, compute_changes, render_text_diff
from forksync.sync.protection import ProtectionSet


def _write_tree(root: Path, files: dict[str, str]) -> None:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def _summary(changes) -> list[tuple[str, str]]:
    return [(c.kind.value, c.relative_path) for c in changes]


BASE = {
    "README.md": "# framework",
    "apps/web/src/app.ts": "export const app = 1;",
    "services/api/index.ts": "handler",
}

PROTECTED = ProtectionSet(["services/custom/", ".env", "pika.config.ts"])


@pytest.fixture
def trees():
    with tempfile.TemporaryDirectory() as tmpdir:
        up, down = Path(tmpdir) / "up", Path(tmpdir) / "down"
        _write_tree(up, BASE)
        _write_tree(down, BASE)
        yield up, down


def test_identical_trees_have_no_changes(trees):
    up, down = trees
    assert compute_changes(up, down, PROTECTED) == []


def test_added_file(trees):
    up, down = trees
    _write_tree(up, {"docs/new.md": "new"})
    changes = compute_changes(up, down, PROTECTED)
    assert _summary(changes) == [("added", "docs/new.md")]
    assert changes[0].source_path == up / "docs/new.md"
    assert changes[0].target_path == down / "docs/new.md"


def test_modified_file(trees):
    up, down = trees
    _write_tree(up, {"apps/web/src/app.ts": "export const app = 2;"})
    assert _summary(compute_changes(up, down, PROTECTED)) == [("modified", "apps/web/src/app.ts")]


def test_deleted_file_has_no_source(trees):
    up, down = trees
    _write_tree(down, {"apps/web/src/old.ts": "old"})
    changes = compute_changes(up, down, PROTECTED)
    assert _summary(changes) == [("deleted", "apps/web/src/old.ts")]
    assert changes[0].source_path is None


def test_downstream_only_directory_deleted_once(trees):
    up, down = trees
    _write_tree(down, {"legacy/a.ts": "a", "legacy/b/c.ts": "c"})
    changes = compute_changes(up, down, PROTECTED)
    assert _summary(changes) == [("deleted", "legacy")]
    assert changes[0].is_directory


def test_directory_with_protected_content_deleted_file_by_file(trees):
    up, down = trees
    _write_tree(down, {"legacy/a.ts": "a", "legacy/.env": "SECRET=1"})
    changes = compute_changes(up, down, PROTECTED)
    assert _summary(changes) == [("deleted", "legacy/a.ts")]


def test_protected_paths_never_touched(trees):
    up, down = trees
    _write_tree(up, {"pika.config.ts": "framework", "services/custom/x.ts": "framework"})
    _write_tree(down, {"pika.config.ts": "mine", "services/custom/y.ts": "mine", ".env": "A=1"})
    assert compute_changes(up, down, PROTECTED) == []


def test_custom_segment_never_deleted(trees):
    up, down = trees
    _write_tree(down, {"services/custom-foo/index.ts": "mine"})
    assert compute_changes(up, down, ProtectionSet([])) == []


def test_ignored_directories_skipped(trees):
    up, down = trees
    _write_tree(up, {"node_modules/a/index.js": "x", "dist/out.js": "x"})
    _write_tree(down, {"apps/web/node_modules/b/index.js": "y", ".git/HEAD": "ref"})
    assert compute_changes(up, down, PROTECTED) == []


def test_tool_files_are_never_synced(trees):
    up, down = trees
    _write_tree(up, {".forksync.json": "{}"})
    _write_tree(down, {".forksync.json": '{"frameworkVersion": "v1"}', ".forksync-history.jsonl": ""})
    assert compute_changes(up, down, PROTECTED) == []


def test_forward_changes_come_before_deletions(trees):
    up, down = trees
    _write_tree(up, {"z/new.md": "new"})
    _write_tree(down, {"a/old.md": "old"})
    assert _summary(compute_changes(up, down, PROTECTED)) == [
        ("added", "z/new.md"),
        ("deleted", "a"),
    ]


def test_manifest_structural_merge(trees):
    up, down = trees
    _write_tree(up, {"package.json": json.dumps({"dependencies": {"zod": "^3.0.0"}})})
    _write_tree(down, {"package.json": json.dumps({"dependencies": {"left-pad": "^1.0.0"}})})
    changes = compute_changes(up, down, PROTECTED)
    assert _summary(changes) == [("modified", "package.json")]
    assert changes[0].is_manifest_merge
    assert changes[0].manifest.diff.added_dependencies == ["zod"]


def test_manifest_with_only_fork_additions_is_unchanged(trees):
    up, down = trees
    _write_tree(up, {"package.json": json.dumps({"name": "app", "scripts": {"dev": "vite"}})})
    _write_tree(
        down,
        {"package.json": json.dumps({"name": "app", "scripts": {"dev": "vite", "mine": "x"}}, indent=4)},
    )
    assert compute_changes(up, down, PROTECTED) == []


def test_unparseable_manifest_replaced_whole(trees):
    up, down = trees
    _write_tree(up, {"package.json": '{"name": "app"}'})
    _write_tree(down, {"package.json": "{ broken"})
    changes = compute_changes(up, down, PROTECTED)
    assert _summary(changes) == [("modified", "package.json")]
    assert changes[0].manifest is None


def test_removed_sample_skipped(trees):
    up, down = trees
    _write_tree(up, {"services/samples/weather/index.ts": "sample"})
    differ = TreeDiffer(up, down, PROTECTED)
    assert differ.compute() == []
    assert differ.skipped_samples == {"services/samples/weather": SampleDirectoryState.REMOVED}


def test_modified_sample_fully_excluded(trees):
    up, down = trees
    _write_tree(up, {"services/samples/weather/index.ts": "sample v2", "services/samples/weather/a.ts": "a"})
    _write_tree(down, {"services/samples/weather/index.ts": "my edit", "services/samples/weather/mine.ts": "x"})
    differ = TreeDiffer(up, down, PROTECTED)
    assert differ.compute() == []
    assert differ.skipped_samples["services/samples/weather"] == SampleDirectoryState.MODIFIED


def test_unmodified_sample_synced_normally(trees):
    up, down = trees
    _write_tree(up, {"services/samples/weather/index.ts": "sample"})
    _write_tree(down, {"services/samples/weather/index.ts": "sample"})
    assert compute_changes(up, down, PROTECTED) == []


def test_sample_parent_missing_upstream_keeps_sample(trees):
    up, down = trees
    _write_tree(down, {"services/samples/weather/index.ts": "sample", "services/samples/notes.md": "x"})
    changes = compute_changes(up, down, PROTECTED)
    assert _summary(changes) == [("deleted", "services/samples/notes.md")]


def test_file_blocking_upstream_directory(trees):
    up, down = trees
    _write_tree(up, {"docs/guide/intro.md": "intro"})
    _write_tree(down, {"docs/guide": "a file"})
    changes = compute_changes(up, down, PROTECTED)
    assert _summary(changes) == [("deleted", "docs/guide"), ("added", "docs/guide/intro.md")]


def test_compute_changes_is_deterministic(trees):
    up, down = trees
    _write_tree(up, {"b.md": "b", "a.md": "a", "c/d.md": "d"})
    _write_tree(down, {"x.md": "x"})
    first = _summary(compute_changes(up, down, PROTECTED))
    assert first == _summary(compute_changes(up, down, PROTECTED))
    assert first == [("added", "a.md"), ("added", "b.md"), ("added", "c/d.md"), ("deleted", "x.md")]


def test_apply_then_diff_is_empty(trees):
    up, down = trees
    _write_tree(
        up,
        {
            "docs/new.md": "new",
            "apps/web/src/app.ts": "v2",
            "package.json": json.dumps({"scripts": {"build": "tsc -p ."}, "dependencies": {"zod": "^3.0.0"}}),
        },
    )
    _write_tree(
        down,
        {
            "legacy/x.ts": "x",
            "package.json": json.dumps({"scripts": {"build": "tsc --watch"}, "dependencies": {"left-pad": "^1.0.0"}}),
        },
    )
    apply_changes(compute_changes(up, down, PROTECTED))
    assert compute_changes(up, down, PROTECTED) == []

    merged = json.loads((down / "package.json").read_text())
    assert merged["scripts"]["build"] == "tsc -p ."
    assert merged["dependencies"] == {"left-pad": "^1.0.0", "zod": "^3.0.0"}


def test_missing_upstream_root_is_an_error(trees):
    _, down = trees
    with pytest.raises(SyncError) as exc:
        compute_changes(down / "nope", down, PROTECTED)
    assert exc.value.kind == "diff"


def test_render_text_diff(trees):
    up, down = trees
    _write_tree(up, {"apps/web/src/app.ts": "export const app = 2;\n"})
    change = compute_changes(up, down, PROTECTED)[0]
    text = render_text_diff(change)
    assert "--- a/apps/web/src/app.ts" in text
    assert "+export const app = 2;" in text


def test_symlinked_directory_added_as_link(trees):
    up, down = trees
    os.symlink("apps", up / "apps-link")
    changes = compute_changes(up, down, PROTECTED)
    assert _summary(changes) == [("added", "apps-link")]
    assert render_text_diff(changes[0]) == ""

    apply_changes(changes)
    assert os.readlink(down / "apps-link") == "apps"
    assert compute_changes(up, down, PROTECTED) == []


def test_symlink_retargeted(trees):
    up, down = trees
    os.symlink("apps", up / "link")
    os.symlink("services", down / "link")
    changes = compute_changes(up, down, PROTECTED)
    assert _summary(changes) == [("modified", "link")]

    apply_changes(changes)
    assert os.readlink(down / "link") == "apps"


def test_directory_replaced_by_upstream_link(trees):
    up, down = trees
    os.symlink("apps", up / "shared")
    _write_tree(down, {"shared/local.ts": "mine"})
    changes = compute_changes(up, down, PROTECTED)
    assert _summary(changes) == [("modified", "shared")]

    apply_changes(changes)
    assert os.readlink(down / "shared") == "apps"
    assert (down / "apps/web/src/app.ts").exists()


def test_downstream_link_replaced_by_upstream_directory(trees):
    up, down = trees
    _write_tree(up, {"src/app.ts": "export const app = 1;"})
    os.symlink("apps/web/src", down / "src")
    changes = compute_changes(up, down, PROTECTED)
    assert _summary(changes) == [("deleted", "src"), ("added", "src/app.ts")]

    apply_changes(changes)
    assert not (down / "src").is_symlink()
    assert (down / "src/app.ts").read_text() == "export const app = 1;"
    assert (down / "apps/web/src/app.ts").exists()
