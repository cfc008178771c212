"""
Tests for committing a staged keg into the prefix and rolling it back.
"""

from pathlib import Path

from formulary.core.prefix import Prefix
from formulary.core.services.install.execution.commit import commit_keg, rollback_commit
from formulary.core.services.install.execution.download import file_sha256


def _stage(keg: Path, files: dict[str, str]) -> list[dict]:
    staged = []
    for rel, content in files.items():
        path = keg / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        staged.append({
            "path": rel,
            "kind": rel.split("/", 1)[0],
            "sha256": file_sha256(path),
        })
    return staged


def _snapshot(root: Path) -> dict[str, str]:
    return {
        str(p.relative_to(root)): p.read_text()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


class TestCommitKeg:
    def test_fresh_commit(self, tmp_path: Path, prefix: Prefix):
        prefix.ensure()
        keg = tmp_path / "keg"
        files = _stage(keg, {"bin/tool": "v1", "etc/tool/a.yml": "a: 1\n"})

        result = commit_keg(keg, prefix, files, backup_root=tmp_path / "backup")

        assert result["ok"] is True
        assert (prefix.bin / "tool").read_text() == "v1"
        assert (prefix.etc / "tool" / "a.yml").read_text() == "a: 1\n"
        assert [f["preserved"] for f in result["files"]] == [False, False]

    def test_upgrade_replaces_and_removes_stale(self, tmp_path: Path, prefix: Prefix):
        prefix.ensure()
        old = _stage(tmp_path / "keg1", {"bin/tool": "v1", "bin/tool-helper": "h1"})
        commit_keg(tmp_path / "keg1", prefix, old, backup_root=tmp_path / "b1")

        new = _stage(tmp_path / "keg2", {"bin/tool": "v2"})
        previous = {f["path"]: f["sha256"] for f in old}
        result = commit_keg(tmp_path / "keg2", prefix, new, backup_root=tmp_path / "b2", previous=previous)

        assert result["ok"] is True
        assert (prefix.bin / "tool").read_text() == "v2"
        assert not (prefix.bin / "tool-helper").exists()

    def test_user_modified_config_preserved(self, tmp_path: Path, prefix: Prefix):
        prefix.ensure()
        first = _stage(tmp_path / "keg1", {"bin/tool": "v1", "etc/tool/a.yml": "a: 1\n"})
        commit_keg(tmp_path / "keg1", prefix, first, backup_root=tmp_path / "b1")
        (prefix.etc / "tool" / "a.yml").write_text("a: mine\n")

        second = _stage(tmp_path / "keg2", {"bin/tool": "v2", "etc/tool/a.yml": "a: 2\n"})
        previous = {f["path"]: f["sha256"] for f in first}
        result = commit_keg(tmp_path / "keg2", prefix, second, backup_root=tmp_path / "b2", previous=previous)

        assert result["ok"] is True
        assert (prefix.etc / "tool" / "a.yml").read_text() == "a: mine\n"
        assert (prefix.etc / "tool" / "a.yml.default").read_text() == "a: 2\n"
        etc = [f for f in result["files"] if f["kind"] == "etc"]
        assert etc == [{
            "path": "etc/tool/a.yml.default",
            "kind": "etc",
            "sha256": second[1]["sha256"],
            "preserved": True,
        }]

    def test_unmodified_config_is_updated(self, tmp_path: Path, prefix: Prefix):
        prefix.ensure()
        first = _stage(tmp_path / "keg1", {"bin/tool": "v1", "etc/tool/a.yml": "a: 1\n"})
        commit_keg(tmp_path / "keg1", prefix, first, backup_root=tmp_path / "b1")

        second = _stage(tmp_path / "keg2", {"bin/tool": "v2", "etc/tool/a.yml": "a: 2\n"})
        previous = {f["path"]: f["sha256"] for f in first}
        commit_keg(tmp_path / "keg2", prefix, second, backup_root=tmp_path / "b2", previous=previous)

        assert (prefix.etc / "tool" / "a.yml").read_text() == "a: 2\n"
        assert not (prefix.etc / "tool" / "a.yml.default").exists()

    def test_foreign_config_preserved_on_first_install(self, tmp_path: Path, prefix: Prefix):
        prefix.ensure()
        (prefix.etc / "tool").mkdir()
        (prefix.etc / "tool" / "a.yml").write_text("hand-written\n")

        files = _stage(tmp_path / "keg", {"bin/tool": "v1", "etc/tool/a.yml": "a: 1\n"})
        commit_keg(tmp_path / "keg", prefix, files, backup_root=tmp_path / "b")

        assert (prefix.etc / "tool" / "a.yml").read_text() == "hand-written\n"
        assert (prefix.etc / "tool" / "a.yml.default").read_text() == "a: 1\n"


class TestRollbackCommit:
    def test_restores_exact_previous_state(self, tmp_path: Path, prefix: Prefix):
        prefix.ensure()
        old = _stage(tmp_path / "keg1", {"bin/tool": "v1", "bin/tool-helper": "h1"})
        commit_keg(tmp_path / "keg1", prefix, old, backup_root=tmp_path / "b1")
        before = _snapshot(prefix.root)

        new = _stage(tmp_path / "keg2", {"bin/tool": "v2", "etc/tool/new.yml": "n\n"})
        previous = {f["path"]: f["sha256"] for f in old}
        result = commit_keg(tmp_path / "keg2", prefix, new, backup_root=tmp_path / "b2", previous=previous)
        assert result["ok"] is True

        assert rollback_commit(result["actions"]) == []
        assert _snapshot(prefix.root) == before
        assert not (prefix.etc / "tool").exists()

    def test_partial_commit_rolled_back(self, tmp_path: Path, prefix: Prefix):
        prefix.ensure()
        keg = tmp_path / "keg"
        files = _stage(keg, {"bin/tool": "v1"})
        files.append({"path": "bin/ghost", "kind": "bin", "sha256": "0" * 64})  # never staged

        result = commit_keg(keg, prefix, files, backup_root=tmp_path / "b")
        assert result["ok"] is False
        assert result["kind"] == "commit_failed"

        rollback_commit(result["actions"])
        assert not (prefix.bin / "tool").exists()
