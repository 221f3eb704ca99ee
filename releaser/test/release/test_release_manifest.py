from __future__ import annotations

import json
from pathlib import Path

from releaser.core.result import Err, Ok
from releaser.release.manifest import (
    PackageJsonManifest,
    PyprojectManifest,
    open_manifest,
)


class TestPackageJson:
    def test_bump_keeps_other_fields(self, tmp_path: Path) -> None:
        path = tmp_path / "package.json"
        path.write_text(
            json.dumps({"name": "widgets", "version": "1.0.0", "private": False}, indent=2) + "\n",
            encoding="utf-8",
        )

        result = PackageJsonManifest(root=tmp_path).bump("1.1.0")

        assert result == Ok(None)
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data == {"name": "widgets", "version": "1.1.0", "private": False}

    def test_bump_preserves_indentation_and_newline(self, tmp_path: Path) -> None:
        path = tmp_path / "package.json"
        path.write_text('{\n    "name": "widgets",\n    "version": "1.0.0"\n}\n', encoding="utf-8")

        PackageJsonManifest(root=tmp_path).bump("2.0.0")

        assert path.read_text(encoding="utf-8") == (
            '{\n    "name": "widgets",\n    "version": "2.0.0"\n}\n'
        )

    def test_bump_adds_missing_version(self, tmp_path: Path) -> None:
        path = tmp_path / "package.json"
        path.write_text('{"name": "widgets"}', encoding="utf-8")

        PackageJsonManifest(root=tmp_path).bump("0.1.0")

        assert json.loads(path.read_text(encoding="utf-8"))["version"] == "0.1.0"
        assert not path.read_text(encoding="utf-8").endswith("\n")

    def test_missing_file(self, tmp_path: Path) -> None:
        result = PackageJsonManifest(root=tmp_path).bump("1.0.0")

        assert isinstance(result, Err)
        assert "manifest not found" in result.error.message
        assert result.error.path == tmp_path / "package.json"

    def test_invalid_json(self, tmp_path: Path) -> None:
        (tmp_path / "package.json").write_text("{oops", encoding="utf-8")

        result = PackageJsonManifest(root=tmp_path).bump("1.0.0")

        assert isinstance(result, Err)
        assert "invalid JSON" in result.error.message

    def test_non_object(self, tmp_path: Path) -> None:
        (tmp_path / "package.json").write_text("[1, 2]", encoding="utf-8")

        result = PackageJsonManifest(root=tmp_path).bump("1.0.0")

        assert isinstance(result, Err)
        assert "JSON object" in result.error.message


class TestPyproject:
    def test_bump_project_version(self, tmp_path: Path) -> None:
        path = tmp_path / "pyproject.toml"
        path.write_text(
            "[build-system]\n"
            'requires = ["setuptools"]\n'
            "\n"
            "[project]\n"
            'name = "widgets"\n'
            'version = "0.3.1"  # bumped on release\n'
            "\n"
            "[tool.other]\n"
            'version = "9.9.9"\n',
            encoding="utf-8",
        )

        result = PyprojectManifest(root=tmp_path).bump("0.4.0")

        assert result == Ok(None)
        text = path.read_text(encoding="utf-8")
        assert 'version = "0.4.0"  # bumped on release' in text
        assert 'version = "9.9.9"' in text

    def test_bump_poetry_version(self, tmp_path: Path) -> None:
        path = tmp_path / "pyproject.toml"
        path.write_text(
            "[tool.poetry]\nname = 'widgets'\nversion = '1.0.0'\n", encoding="utf-8"
        )

        PyprojectManifest(root=tmp_path).bump("1.0.1")

        assert "version = '1.0.1'" in path.read_text(encoding="utf-8")

    def test_dynamic_version_is_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "pyproject.toml"
        original = '[project]\nname = "widgets"\ndynamic = ["version"]\n'
        path.write_text(original, encoding="utf-8")

        result = PyprojectManifest(root=tmp_path).bump("1.0.0")

        assert isinstance(result, Err)
        assert "no version to update" in result.error.message
        assert path.read_text(encoding="utf-8") == original


class TestOpenManifest:
    def test_prefers_package_json(self, tmp_path: Path) -> None:
        (tmp_path / "package.json").write_text("{}", encoding="utf-8")
        (tmp_path / "pyproject.toml").write_text("", encoding="utf-8")

        result = open_manifest(tmp_path)

        assert result == Ok(PackageJsonManifest(root=tmp_path))

    def test_falls_back_to_pyproject(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text("", encoding="utf-8")

        result = open_manifest(tmp_path)

        assert result == Ok(PyprojectManifest(root=tmp_path))

    def test_nothing_found(self, tmp_path: Path) -> None:
        result = open_manifest(tmp_path)

        assert isinstance(result, Err)
        assert "no manifest found" in result.error.message

    def test_explicit_nested_name(self, tmp_path: Path) -> None:
        result = open_manifest(tmp_path, "packages/core/package.json")

        assert isinstance(result, Ok)
        assert result.value.name == "packages/core/package.json"

    def test_unsupported_name(self, tmp_path: Path) -> None:
        result = open_manifest(tmp_path, "Cargo.toml")

        assert isinstance(result, Err)
        assert result.error.message == "unsupported manifest: Cargo.toml"
