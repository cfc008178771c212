"""
Tests for CLI commands — install, test, uninstall, fetch, info, list,
check, history, and global options.
"""

import json
import textwrap
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from formulary.main import cli

from conftest import formula_data, sha256_of

_ENV_VARS = (
    "FORMULARY_PREFIX",
    "FORMULARY_CACHE_DIR",
    "FORMULARY_FORMULA_PATH",
    "FORMULARY_DOWNLOAD_TIMEOUT",
    "FORMULARY_DOWNLOAD_RETRIES",
    "FORMULARY_LOG_LEVEL",
    "FORMULARY_LOG_FILE",
)


@pytest.fixture
def workspace(tmp_path: Path, tool_archive: Path, monkeypatch) -> dict[str, Path]:
    """A settings file, a formula directory with ``tool.yml``, and a prefix."""
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    formulas = tmp_path / "formulas"
    formulas.mkdir()
    data = formula_data(tool_archive.as_uri(), sha256_of(tool_archive))
    (formulas / "tool.yml").write_text(yaml.safe_dump(data))

    settings = tmp_path / "config.yml"
    settings.write_text(textwrap.dedent(f"""\
        cache_dir: {tmp_path / 'cache'}
        formula_paths:
          - {formulas}
        download_retries: 0
    """))
    return {"settings": settings, "formulas": formulas, "prefix": tmp_path / "prefix"}


def _run(workspace: dict[str, Path], *args: str):
    runner = CliRunner()
    return runner.invoke(cli, [
        "--settings", str(workspace["settings"]),
        "--prefix", str(workspace["prefix"]),
        *args,
    ])


class TestCLIGlobal:
    def test_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "formulary" in result.output
        for command in ("install", "uninstall", "test", "fetch", "info", "list", "check", "history"):
            assert command in result.output

    def test_version(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_missing_settings_file(self, tmp_path: Path):
        runner = CliRunner()
        result = runner.invoke(cli, ["--settings", str(tmp_path / "nope.yml"), "list"])
        assert result.exit_code == 1
        assert "Settings file not found" in result.output


class TestInstallCommand:
    def test_install(self, workspace):
        result = _run(workspace, "install", "tool", "--platform", "linux")
        assert result.exit_code == 0, result.output
        assert "Installed: tool 1.0" in result.output
        assert "Smoke test: passed" in result.output
        assert (workspace["prefix"] / "bin" / "tool").is_file()

    def test_install_by_path(self, workspace):
        path = workspace["formulas"] / "tool.yml"
        result = _run(workspace, "install", str(path), "--platform", "linux", "--no-test")
        assert result.exit_code == 0, result.output
        assert "Smoke test" not in result.output

    def test_install_twice(self, workspace):
        _run(workspace, "install", "tool", "--platform", "linux")
        result = _run(workspace, "install", "tool", "--platform", "linux")
        assert result.exit_code == 0
        assert "Already installed" in result.output

    def test_install_json(self, workspace):
        result = _run(workspace, "install", "tool", "--platform", "linux", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["ok"] is True
        assert data["status"] == "installed"
        assert data["files"][0] == "bin/tool"

    def test_verbose_lists_files(self, workspace):
        result = _run(workspace, "-v", "install", "tool", "--platform", "linux")
        assert "• etc/tool/default.yml" in result.output

    def test_unknown_formula(self, workspace):
        result = _run(workspace, "install", "nope")
        assert result.exit_code == 1
        assert "No formula named 'nope'" in result.output

    def test_unknown_formula_json(self, workspace):
        result = _run(workspace, "-q", "install", "nope", "--json")
        assert result.exit_code == 1
        assert json.loads(result.output)["ok"] is False

    def test_checksum_failure(self, workspace, tool_archive):
        data = formula_data(tool_archive.as_uri(), "0" * 64)
        (workspace["formulas"] / "tool.yml").write_text(yaml.safe_dump(data))

        result = _run(workspace, "-q", "install", "tool", "--platform", "linux", "--json")
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["error_kind"] == "checksum_mismatch"
        assert not (workspace["prefix"] / "bin" / "tool").exists()

    def test_bad_platform_choice(self, workspace):
        result = _run(workspace, "install", "tool", "--platform", "windows")
        assert result.exit_code == 2


class TestLifecycleCommands:
    def test_test_command(self, workspace):
        _run(workspace, "install", "tool", "--platform", "linux", "--no-test")
        result = _run(workspace, "test", "tool")
        assert result.exit_code == 0, result.output
        assert "Smoke test passed" in result.output

    def test_test_not_installed(self, workspace):
        result = _run(workspace, "test", "tool")
        assert result.exit_code == 1
        assert "not installed" in result.output

    def test_uninstall(self, workspace):
        _run(workspace, "install", "tool", "--platform", "linux")
        result = _run(workspace, "uninstall", "tool")
        assert result.exit_code == 0
        assert "Uninstalled: tool 1.0" in result.output
        assert not (workspace["prefix"] / "bin" / "tool").exists()

    def test_uninstall_not_installed(self, workspace):
        result = _run(workspace, "uninstall", "tool")
        assert result.exit_code == 1

    def test_fetch(self, workspace):
        result = _run(workspace, "fetch", "tool", "--platform", "linux")
        assert result.exit_code == 0, result.output
        assert "Fetched: tool 1.0" in result.output
        assert not (workspace["prefix"] / "bin").exists()


class TestQueryCommands:
    def test_list_empty(self, workspace):
        result = _run(workspace, "list")
        assert result.exit_code == 0
        assert "Nothing installed" in result.output

    def test_list(self, workspace):
        _run(workspace, "install", "tool", "--platform", "linux")
        result = _run(workspace, "list")
        assert result.exit_code == 0
        assert "tool" in result.output
        assert "[linux]" in result.output

    def test_list_json(self, workspace):
        _run(workspace, "install", "tool", "--platform", "linux")
        data = json.loads(_run(workspace, "list", "--json").output)
        assert [i["name"] for i in data["installed"]] == ["tool"]
        assert data["installed"][0]["intact"] is True

    def test_info(self, workspace):
        result = _run(workspace, "info", "tool")
        assert result.exit_code == 0
        assert "tool 1.0" in result.output
        assert "etc/tool/default.yml" in result.output
        assert "Not installed" in result.output

    def test_info_json_installed(self, workspace):
        _run(workspace, "install", "tool", "--platform", "linux")
        data = json.loads(_run(workspace, "info", "tool", "--json").output)
        assert data["installed"] is True
        assert data["installed_version"] == "1.0"

    def test_history(self, workspace):
        assert "No history yet." in _run(workspace, "history").output

        _run(workspace, "install", "tool", "--platform", "linux")
        _run(workspace, "uninstall", "tool")
        result = _run(workspace, "history", "--json")
        entries = json.loads(result.output)
        assert [e["operation_type"] for e in entries] == ["install", "uninstall"]
        assert _run(workspace, "history", "-n", "1").output.count("ok") == 1


class TestCheckCommand:
    def test_valid(self, workspace):
        result = _run(workspace, "check", "tool")
        assert result.exit_code == 0
        assert "Formula is valid" in result.output

    def test_valid_shows_summary(self, workspace):
        result = _run(workspace, "check", "tool")
        assert "Formula:   tool 1.0" in result.output
        assert "Platforms: linux, mac" in result.output
        assert "Formula errors" not in result.output

    def test_shipped_formula(self, workspace, repo_root: Path):
        result = _run(workspace, "check", str(repo_root / "formulas" / "inkan-bin.yml"))
        assert result.exit_code == 0
        assert "Warnings" in result.output

    def test_invalid(self, workspace):
        (workspace["formulas"] / "broken.yml").write_text("version: 1.0\ninstall: []\n")
        result = _run(workspace, "check", "broken")
        assert result.exit_code == 1
        assert "Formula errors" in result.output

    def test_json(self, workspace):
        result = _run(workspace, "check", "tool", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["valid"] is True
        assert data["name"] == "tool"
