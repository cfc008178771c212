"""
Tests for the formula check and status use cases.
"""

from pathlib import Path

import yaml

from formulary.core.services.install import install_formula
from formulary.core.use_cases.formula_check import check_formula
from formulary.core.use_cases.status import formula_info, installed_status

from conftest import formula_data

SHA_A = "a" * 64
SHA_B = "b" * 64


def _write(directory: Path, data: dict, name: str = "tool") -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{name}.yml"
    path.write_text(yaml.safe_dump(data))
    return path


def _data(**overrides) -> dict:
    data = formula_data("https://example.com/{version}/tool.tgz", SHA_A, install=[{"bin": "tool"}])
    data["platforms"]["linux"] = {"url": "https://example.com/{version}/tool-linux.tgz", "sha256": SHA_B}
    data.update(overrides)
    return data


class TestCheckFormula:
    def test_clean(self, tmp_path: Path):
        path = _write(tmp_path, _data())
        result = check_formula(str(path))
        assert result.valid is True
        assert result.errors == []
        assert result.warnings == []
        assert result.to_dict()["platforms"] == ["linux", "mac"]

    def test_by_name(self, tmp_path: Path):
        _write(tmp_path, _data())
        assert check_formula("tool", [tmp_path]).valid is True

    def test_not_found(self, tmp_path: Path):
        result = check_formula("missing", [tmp_path])
        assert result.valid is False
        assert "No formula named 'missing'" in result.errors[0]

    def test_schema_error(self, tmp_path: Path):
        path = _write(tmp_path, _data(install=[]))
        result = check_formula(str(path))
        assert result.valid is False
        assert "at least one executable" in result.errors[0]

    def test_missing_metadata_warns(self, tmp_path: Path):
        path = _write(tmp_path, _data(desc="", homepage=""))
        warnings = check_formula(str(path)).warnings
        assert "No desc given." in warnings
        assert "No homepage given." in warnings

    def test_missing_platform_warns(self, tmp_path: Path):
        data = _data()
        del data["platforms"]["mac"]
        result = check_formula(str(_write(tmp_path, data)))
        assert result.valid is True
        assert "No artifact for: mac" in result.warnings

    def test_plain_http_warns(self, tmp_path: Path):
        data = _data()
        data["platforms"]["mac"]["url"] = "http://example.com/{version}/tool.tgz"
        result = check_formula(str(_write(tmp_path, data)))
        assert any("not HTTPS" in w for w in result.warnings)

    def test_shared_checksum_warns(self, tmp_path: Path):
        data = _data()
        data["platforms"]["linux"]["sha256"] = SHA_A
        result = check_formula(str(_write(tmp_path, data)))
        assert result.valid is True
        assert any("share the same sha256" in w for w in result.warnings)

    def test_unknown_placeholder_is_error(self, tmp_path: Path):
        data = _data()
        data["platforms"]["mac"]["url"] = "https://example.com/{arch}/tool.tgz"
        result = check_formula(str(_write(tmp_path, data)))
        assert result.valid is False
        assert "placeholder" in result.errors[0]

    def test_version_not_in_urls_warns(self, tmp_path: Path):
        data = _data()
        data["platforms"]["mac"]["url"] = "https://example.com/latest/tool.tgz"
        data["platforms"]["linux"]["url"] = "https://example.com/latest/tool-linux.tgz"
        result = check_formula(str(_write(tmp_path, data)))
        assert "Version does not appear in any artifact URL." in result.warnings


class TestInstalledStatus:
    def test_empty_prefix(self, prefix):
        status = installed_status(prefix)
        assert status.receipts == []
        assert status.to_dict()["installed"] == []

    def test_lists_installs_and_flags_broken(self, make_formula, prefix, settings):
        install_formula(make_formula(), prefix, settings, platform="linux", backoff=0)
        install_formula(make_formula(name="other"), prefix, settings, platform="linux", backoff=0)
        (prefix.etc / "tool" / "default.yml").unlink()

        status = installed_status(prefix)
        assert [r.name for r in status.receipts] == ["other", "tool"]
        # both share etc/tool/default.yml
        assert sorted(status.broken) == ["other", "tool"]
        entry = status.to_dict()["installed"][1]
        assert entry["name"] == "tool"
        assert entry["intact"] is False
        assert entry["smoke_test"] == "passed"


class TestFormulaInfo:
    def test_not_installed(self, make_formula, prefix):
        info = formula_info(make_formula(), prefix)
        data = info.to_dict()
        assert data["installed"] is False
        assert data["outdated"] is False
        assert data["executables"] == ["tool"]
        assert data["install"] == ["bin/tool", "etc/tool/conventional.yml", "etc/tool/default.yml"]
        assert set(data["platforms"]) == {"linux", "mac"}

    def test_installed_and_outdated(self, make_formula, prefix, settings):
        install_formula(make_formula(), prefix, settings, platform="linux", backoff=0)

        current = formula_info(make_formula(), prefix)
        assert current.intact is True
        assert current.outdated is False

        newer = formula_info(make_formula(version="1.1"), prefix)
        assert newer.outdated is True
        assert newer.to_dict()["installed_version"] == "1.0"

    def test_reports_conflicts(self, make_formula, prefix, settings):
        install_formula(make_formula(name="legacy-tool"), prefix, settings, platform="linux", backoff=0)
        info = formula_info(make_formula(conflicts_with=["legacy-tool"]), prefix)
        assert info.conflicts == ["legacy-tool"]


def test_expanded_urls_in_info(make_formula, prefix, tool_archive):
    data = formula_info(make_formula(), prefix).to_dict()
    assert data["platforms"]["linux"]["url"] == tool_archive.as_uri()
    assert data["desc"] == "A test tool"
