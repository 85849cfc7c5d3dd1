"""Workspace locator — expand workspace declarations into member directories."""

from __future__ import annotations

import os
from pathlib import Path

import structlog

from peer_dep_helper.engines.peer_scanner.models import Manifest

log = structlog.get_logger("peer_dep_helper.engine")

PNPM_WORKSPACE_FILE = "pnpm-workspace.yaml"
# pnpm-workspace.yaml is not parsed; its members are assumed to live here.
PNPM_MEMBER_DIRS = ("packages", "apps")


def _subdirectories(base: Path) -> list[Path]:
    """Immediate non-hidden subdirectories of *base*, sorted by name.

    Raises OSError when *base* cannot be listed.
    """
    return sorted(
        (entry for entry in base.iterdir() if entry.is_dir() and not entry.name.startswith(".")),
        key=lambda p: p.name,
    )


def _normalize(path: Path) -> Path:
    return Path(os.path.normpath(path))


def _expand_pattern(cwd: Path, pattern: str, bound_log) -> list[Path]:
    if pattern.endswith("/*"):
        base = _normalize(cwd / pattern[:-2])
        try:
            return _subdirectories(base)
        except OSError as exc:
            bound_log.debug("workspace.pattern_unreadable", pattern=pattern, error=str(exc))
            return []

    # A literal member is kept as soon as the directory exists, whether or
    # not it has subdirectories of its own.
    base = _normalize(cwd / pattern)
    if base.is_dir():
        return [base]
    bound_log.debug("workspace.path_missing", pattern=pattern, path=str(base))
    return []


def locate_workspaces(
    cwd: Path,
    root_manifest: Manifest | None,
    *,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> list[Path]:
    """Return the deduplicated workspace member directories of *cwd*.

    A ``dir/*`` pattern contributes the non-hidden subdirectories of ``dir``;
    any other pattern names one member directory and counts when that
    directory exists, even an empty one.  Read failures on any candidate
    directory are swallowed: partial discovery is preferred over aborting
    the run.
    """
    bound_log = logger or log
    found: list[Path] = []

    if root_manifest is not None:
        for pattern in root_manifest.workspaces:
            found.extend(_expand_pattern(cwd, pattern, bound_log))

    if (cwd / PNPM_WORKSPACE_FILE).is_file():
        for member_dir in PNPM_MEMBER_DIRS:
            try:
                found.extend(_subdirectories(cwd / member_dir))
            except OSError:
                continue

    unique = list(dict.fromkeys(found))
    bound_log.debug("workspace.detected", cwd=str(cwd), count=len(unique))
    return unique


def package_paths(cwd: Path, workspaces: list[Path]) -> list[Path]:
    """The canonical PackagePath list: root first, then workspaces, deduplicated."""
    return list(dict.fromkeys([_normalize(cwd), *workspaces]))
