"""
Tests for contract analysis and size-bounded source access.
"""

import pytest

from analysis.contract import analyze_file, analyze_source
from analysis.errors import FileNotFound, FileTooLarge, NotASourceFile
from analysis.indicators import Severity
from analysis.source import file_info, find_solidity_files, read_source


class TestAnalyzeSource:
    def test_vault_summary(self, vault_source):
        analysis = analyze_source(vault_source)

        assert analysis.contracts == ["VulnerableVault"]
        assert analysis.compiler_versions == ["^0.7.6"]
        assert analysis.has_floating_pragma
        assert analysis.has_outdated_compiler
        assert not analysis.has_reentrancy_guard
        assert not analysis.has_access_control
        assert not analysis.has_safe_math
        assert analysis.privileged_functions == ["withdraw", "withdrawAll", "setOwner"]
        assert analysis.count(Severity.CRITICAL) == 3

    def test_registry_summary(self, registry_source):
        analysis = analyze_source(registry_source)

        assert analysis.indicators == []
        assert analysis.has_reentrancy_guard
        assert analysis.has_access_control
        assert analysis.has_safe_math
        assert analysis.has_open_zeppelin
        assert analysis.privileged_functions == []
        assert analysis.protocols == ["OpenZeppelin"]

    def test_function_summary(self, vault_source):
        summary = analyze_source(vault_source).function_summary()

        assert summary == {
            "totalFunctions": 4,
            "external": 4,
            "public": 0,
            "payable": 1,
            "view": 0,
            "stateChanging": 4,
        }

    def test_to_dict(self, vault_source):
        data = analyze_source(vault_source).to_dict()

        assert set(data) == {"file", "metadata", "summary", "security", "protocols", "functions"}
        assert data["metadata"]["hasOpenZeppelin"] is False
        assert data["security"]["severityBreakdown"]["critical"] == 3
        assert data["security"]["privilegedFunctionsWithoutAccessControl"] == ["withdraw", "withdrawAll", "setOwner"]
        assert data["functions"]["external"][0] == {"name": "deposit", "line": 8, "mutability": "payable"}

    def test_info_derived_without_path(self):
        analysis = analyze_source("contract A {}\n")
        assert analysis.file["lines"] == 2
        assert analysis.file["path"] is None


class TestSourceAccess:
    def test_analyze_file(self, vault_file):
        analysis, src = analyze_file(vault_file)

        assert "VulnerableVault" in src
        assert analysis.file["name"] == "VulnerableVault.sol"
        assert analysis.file["size"] == vault_file.stat().st_size

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFound) as exc:
            read_source(tmp_path / "Nope.sol")
        assert exc.value.to_dict()["code"] == "FILE_NOT_FOUND"

    def test_wrong_extension(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("contract A {}")
        with pytest.raises(NotASourceFile):
            read_source(path)

    def test_too_large(self, vault_file):
        with pytest.raises(FileTooLarge) as exc:
            read_source(vault_file, max_size=10)
        assert exc.value.details["limit"] == 10

    def test_directory_is_not_a_file(self, tmp_path):
        with pytest.raises(FileNotFound):
            read_source(tmp_path)

    def test_file_info(self, vault_file, vault_source):
        info = file_info(vault_file, vault_source)
        assert info["lines"] == len(vault_source.split("\n"))

    def test_find_solidity_files(self, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "node_modules").mkdir()
        (tmp_path / ".hidden").mkdir()
        (tmp_path / "A.sol").write_text("contract A {}")
        (tmp_path / "src" / "B.sol").write_text("contract B {}")
        (tmp_path / "node_modules" / "C.sol").write_text("contract C {}")
        (tmp_path / ".hidden" / "D.sol").write_text("contract D {}")
        (tmp_path / "readme.md").write_text("")

        found = [p.name for p in find_solidity_files(tmp_path)]
        top_level = [p.name for p in find_solidity_files(tmp_path, recursive=False)]

        assert found == ["A.sol", "B.sol"]
        assert top_level == ["A.sol"]

    def test_find_in_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFound):
            find_solidity_files(tmp_path / "missing")
