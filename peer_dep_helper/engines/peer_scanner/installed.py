"""Installed-package scanner — read versions out of node_modules."""

from __future__ import annotations

from pathlib import Path

import structlog

from peer_dep_helper.engines.peer_scanner.manifest import read_manifest
from peer_dep_helper.exceptions import InstallScanError, ManifestError

log = structlog.get_logger("peer_dep_helper.engine")

INSTALL_DIR = "node_modules"


def _package_dirs(install_dir: Path) -> list[tuple[str, Path]]:
    """(directory-derived name, path) for every package one level deep.

    ``@scope`` directories are descended into once.
    """
    found: list[tuple[str, Path]] = []
    for entry in sorted(install_dir.iterdir(), key=lambda p: p.name):
        if entry.name.startswith(".") or not entry.is_dir():
            continue
        if entry.name.startswith("@"):
            for scoped in sorted(entry.iterdir(), key=lambda p: p.name):
                if scoped.name.startswith(".") or not scoped.is_dir():
                    continue
                found.append((f"{entry.name}/{scoped.name}", scoped))
        else:
            found.append((entry.name, entry))
    return found


def scan_installed(
    package_path: Path,
    *,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> dict[str, str | None]:
    """Map installed package name -> version for ``<package_path>/node_modules``.

    A missing install directory yields an empty mapping.  Any other failure
    raises :class:`InstallScanError`.
    """
    bound_log = logger or log
    install_dir = package_path / INSTALL_DIR
    installed: dict[str, str | None] = {}

    try:
        candidates = _package_dirs(install_dir)
    except FileNotFoundError:
        bound_log.debug("installed.no_install_dir", path=str(install_dir))
        return installed
    except OSError as exc:
        raise InstallScanError(f"Failed to scan {install_dir}: {exc}") from exc

    for dir_name, pkg_dir in candidates:
        try:
            manifest = read_manifest(pkg_dir)
        except ManifestError as exc:
            raise InstallScanError(f"Failed to scan {install_dir}: {exc}") from exc
        if manifest is None:
            continue
        installed[manifest.name or dir_name] = manifest.version

    bound_log.debug("installed.scanned", path=str(install_dir), count=len(installed))
    return installed


def merge_installed(indexes: list[dict[str, str | None]]) -> dict[str, str | None]:
    """Merge per-path indexes in order; later paths win for the same name."""
    merged: dict[str, str | None] = {}
    for index in indexes:
        merged.update(index)
    return merged
