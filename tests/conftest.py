"""Shared pytest fixtures for peer-dep-helper tests."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from peer_dep_helper.engines.fixer.package_manager import InstallResult


class Project:
    """A throwaway JS project on disk."""

    def __init__(self, root: Path):
        self.root = root

    def manifest(self, data: dict, sub: str = "") -> Path:
        directory = self.root / sub if sub else self.root
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / "package.json"
        path.write_text(json.dumps(data, indent=2))
        return path

    def install(self, name: str, version: str | None, sub: str = "") -> Path:
        base = self.root / sub if sub else self.root
        pkg_dir = base / "node_modules" / name
        pkg_dir.mkdir(parents=True, exist_ok=True)
        data: dict = {"name": name}
        if version is not None:
            data["version"] = version
        (pkg_dir / "package.json").write_text(json.dumps(data))
        return pkg_dir

    def read_manifest(self, sub: str = "") -> dict:
        directory = self.root / sub if sub else self.root
        return json.loads((directory / "package.json").read_text())


class FakeRegistry:
    """In-memory registry; also usable as an async context manager."""

    def __init__(self, latest=None, versions=None, fail: bool = False):
        self.latest = dict(latest or {})
        self.versions = dict(versions or {})
        self.fail = fail
        self.calls: list[tuple[str, str]] = []

    async def latest_version(self, name: str) -> str | None:
        self.calls.append(("latest", name))
        if self.fail:
            raise RuntimeError("registry down")
        return self.latest.get(name)

    async def list_published_versions(self, name: str) -> list[str] | None:
        self.calls.append(("versions", name))
        if self.fail:
            raise RuntimeError("registry down")
        return self.versions.get(name)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return None


class FakeInstaller:
    """Records install calls; optionally writes the packages into node_modules."""

    def __init__(self, materialize: bool = True, default_version: str = "1.0.0", error=None):
        self.materialize = materialize
        self.default_version = default_version
        self.error = error
        self.calls: list[tuple[str, list[str]]] = []

    async def __call__(self, package_manager, install_args, cwd, *, logger=None):
        self.calls.append((package_manager, list(install_args)))
        if self.error is not None:
            raise self.error
        if self.materialize:
            project = Project(Path(cwd))
            for arg in install_args:
                name, _, version = arg.rpartition("@")
                if not name:
                    name, version = arg, self.default_version
                project.install(name, version)
        return InstallResult(stdout="added packages", stderr="")


@pytest.fixture
def project(tmp_path):
    return Project(tmp_path)


@pytest.fixture
def fake_registry():
    return FakeRegistry


@pytest.fixture
def fake_installer():
    return FakeInstaller


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep PEER_DEP_HELPER_* variables from the outer shell out of tests."""
    for key in list(os.environ):
        if key.startswith("PEER_DEP_HELPER_"):
            monkeypatch.delenv(key)
