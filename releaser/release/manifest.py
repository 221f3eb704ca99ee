"""Package manifest version bumps.

Supported manifests:

- ``package.json``: rewritten as JSON, keeping the file's indentation
- ``pyproject.toml``: ``[project].version`` (or ``[tool.poetry].version``)
  replaced in place so comments and formatting survive
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from releaser.core.result import Err, Ok, Result
from releaser.platform.files import atomic_write_text

PACKAGE_JSON = "package.json"
PYPROJECT_TOML = "pyproject.toml"
DEFAULT_MANIFESTS = (PACKAGE_JSON, PYPROJECT_TOML)

_VERSION_LINE_RE = re.compile(r"""^(version\s*=\s*)(["'])[^"'\n]*\2""", re.MULTILINE)
_TOML_SECTIONS = (
    re.compile(r"^\[project\][^\n]*\n.*?(?=^\[|\Z)", re.MULTILINE | re.DOTALL),
    re.compile(r"^\[tool\.poetry\][^\n]*\n.*?(?=^\[|\Z)", re.MULTILINE | re.DOTALL),
)
_JSON_INDENT_RE = re.compile(r"^\{\s*?\n([ \t]+)\S")


@dataclass(frozen=True, slots=True)
class ManifestError:
    message: str
    path: Path | None = None


class Manifest(Protocol):
    """A file that records the package version."""

    @property
    def name(self) -> str:
        """Path relative to the repository root (what gets committed)."""
        ...

    def bump(self, version: str) -> Result[None, ManifestError]: ...


def _read(path: Path) -> Result[str, ManifestError]:
    try:
        return Ok(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return Err(ManifestError(f"manifest not found: {path}", path=path))
    except (OSError, UnicodeDecodeError) as e:
        return Err(ManifestError(f"cannot read {path}: {e}", path=path))


def _write(path: Path, content: str) -> Result[None, ManifestError]:
    try:
        atomic_write_text(path, content)
    except OSError as e:
        return Err(ManifestError(f"cannot write {path}: {e}", path=path))
    return Ok(None)


@dataclass(frozen=True, slots=True)
class PackageJsonManifest:
    root: Path
    name: str = PACKAGE_JSON

    def bump(self, version: str) -> Result[None, ManifestError]:
        path = self.root / self.name
        text = _read(path)
        if isinstance(text, Err):
            return text

        try:
            data: object = json.loads(text.value)
        except json.JSONDecodeError as e:
            return Err(ManifestError(f"invalid JSON in {path}: {e}", path=path))
        if not isinstance(data, dict):
            return Err(ManifestError(f"{path} must contain a JSON object", path=path))

        data["version"] = version
        m = _JSON_INDENT_RE.match(text.value)
        indent: str | int = m.group(1) if m else 2
        content = json.dumps(data, indent=indent, ensure_ascii=False)
        if text.value.endswith("\n"):
            content += "\n"
        return _write(path, content)


@dataclass(frozen=True, slots=True)
class PyprojectManifest:
    root: Path
    name: str = PYPROJECT_TOML

    def bump(self, version: str) -> Result[None, ManifestError]:
        path = self.root / self.name
        text = _read(path)
        if isinstance(text, Err):
            return text

        content = text.value
        for section_re in _TOML_SECTIONS:
            section = section_re.search(content)
            if section is None:
                continue
            updated, count = _VERSION_LINE_RE.subn(
                lambda m: f"{m.group(1)}{m.group(2)}{version}{m.group(2)}",
                section.group(0),
                count=1,
            )
            if count:
                new_content = content[: section.start()] + updated + content[section.end() :]
                return _write(path, new_content)

        return Err(
            ManifestError(
                f"no version to update in {path} (expected [project].version "
                "or [tool.poetry].version)",
                path=path,
            )
        )


def open_manifest(root: Path, name: str | None = None) -> Result[Manifest, ManifestError]:
    """Manifest at ``root/name``, or the first default one that exists."""
    if name is None:
        for candidate in DEFAULT_MANIFESTS:
            if (root / candidate).is_file():
                name = candidate
                break
        else:
            return Err(
                ManifestError(
                    f"no manifest found in {root} (looked for {', '.join(DEFAULT_MANIFESTS)})"
                )
            )

    filename = Path(name).name
    if filename == PACKAGE_JSON:
        return Ok(PackageJsonManifest(root=root, name=name))
    if filename == PYPROJECT_TOML:
        return Ok(PyprojectManifest(root=root, name=name))
    return Err(ManifestError(f"unsupported manifest: {name}", path=root / name))
