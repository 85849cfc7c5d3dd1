"""Manifest reader — load a single package.json."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from peer_dep_helper.engines.peer_scanner.models import Manifest, PeerDependencyMeta
from peer_dep_helper.exceptions import ManifestError, RootManifestNotFoundError

MANIFEST_FILE = "package.json"


def _string_map(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): v if isinstance(v, str) else "" for k, v in value.items()}


def _meta_map(value: Any) -> dict[str, PeerDependencyMeta]:
    if not isinstance(value, dict):
        return {}
    return {
        str(name): PeerDependencyMeta(optional=isinstance(meta, dict) and meta.get("optional") is True)
        for name, meta in value.items()
    }


def _workspace_patterns(value: Any) -> list[str]:
    # Either ["packages/*"] or {"packages": ["packages/*"], "nohoist": [...]}
    if isinstance(value, dict):
        value = value.get("packages")
    if not isinstance(value, list):
        return []
    return [p for p in value if isinstance(p, str)]


def parse_manifest(path: Path, content: str) -> Manifest:
    """Parse package.json *content*; raises :class:`ManifestError` on bad JSON."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ManifestError(path, str(exc)) from exc
    if not isinstance(data, dict):
        raise ManifestError(path, "top-level value is not a JSON object")

    name = data.get("name")
    version = data.get("version")
    return Manifest(
        path=path,
        name=name if isinstance(name, str) and name else None,
        version=version if isinstance(version, str) and version else None,
        dependencies=_string_map(data.get("dependencies")),
        peer_dependencies=_string_map(data.get("peerDependencies")),
        peer_dependencies_meta=_meta_map(data.get("peerDependenciesMeta")),
        workspaces=_workspace_patterns(data.get("workspaces")),
        raw=data,
    )


def read_manifest(directory: Path) -> Manifest | None:
    """Read ``<directory>/package.json``.

    Returns None when the file does not exist.  Any other read failure or a
    malformed file raises :class:`ManifestError`.
    """
    path = directory / MANIFEST_FILE
    try:
        content = path.read_text(encoding="utf-8")
    except (FileNotFoundError, NotADirectoryError):
        return None
    except OSError as exc:
        raise ManifestError(path, exc.strerror or str(exc)) from exc
    except UnicodeDecodeError as exc:
        raise ManifestError(path, f"not valid UTF-8 ({exc.reason} at byte {exc.start})") from exc
    return parse_manifest(path, content)


def read_root_manifest(cwd: Path) -> Manifest:
    """Like :func:`read_manifest`, but a missing root manifest is fatal."""
    manifest = read_manifest(cwd)
    if manifest is None:
        raise RootManifestNotFoundError(cwd / MANIFEST_FILE)
    return manifest


def write_dependencies(cwd: Path, updates: dict[str, str]) -> bool:
    """Merge *updates* into the root manifest's ``dependencies`` and save it.

    Other keys are preserved in their original order.  Returns False when
    there is no manifest to update.
    """
    manifest = read_manifest(cwd)
    if manifest is None:
        return False
    data = dict(manifest.raw)
    deps = data.get("dependencies")
    deps = dict(deps) if isinstance(deps, dict) else {}
    deps.update(updates)
    data["dependencies"] = deps
    manifest.path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return True
