"""Detection pipeline — workspaces -> manifests/installs -> demands -> issues."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import structlog

from peer_dep_helper.config import Config
from peer_dep_helper.engines.peer_scanner.cache import CacheStore
from peer_dep_helper.engines.peer_scanner.classifier import classify_all, filter_ignored
from peer_dep_helper.engines.peer_scanner.demands import aggregate_demands
from peer_dep_helper.engines.peer_scanner.installed import merge_installed, scan_installed
from peer_dep_helper.engines.peer_scanner.manifest import read_manifest, read_root_manifest
from peer_dep_helper.engines.peer_scanner.models import Issue, Manifest
from peer_dep_helper.engines.peer_scanner.workspace import locate_workspaces, package_paths
from peer_dep_helper.registry.client import VersionLookup

log = structlog.get_logger("peer_dep_helper.engine")


@dataclass
class ProjectSnapshot:
    """Everything read from disk for one pipeline run."""

    cwd: Path
    paths: list[Path]
    manifests: list[tuple[Path, Manifest | None]] = field(default_factory=list)
    installed: dict[str, str | None] = field(default_factory=dict)


def read_project(
    cwd: Path,
    root: Manifest | None = None,
    *,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> ProjectSnapshot:
    """Read the root manifest (fatal if absent), workspaces, manifests and installs."""
    bound_log = logger or log
    if root is None:
        root = read_root_manifest(cwd)
    workspaces = locate_workspaces(cwd, root, logger=bound_log)
    paths = package_paths(cwd, workspaces)
    bound_log.info("scan.packages", count=len(paths), workspaces=len(workspaces))

    manifests: list[tuple[Path, Manifest | None]] = [(paths[0], root)]
    manifests.extend((p, read_manifest(p)) for p in paths[1:])
    installed = merge_installed([scan_installed(p, logger=bound_log) for p in paths])
    return ProjectSnapshot(cwd=cwd, paths=paths, manifests=manifests, installed=installed)


async def detect_issues(
    config: Config,
    registry: VersionLookup,
    *,
    use_cache: bool | None = None,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> list[Issue]:
    """Run the full detection pipeline for ``config.cwd``.

    The cache is consulted and refreshed only when *use_cache* (default:
    ``config.use_cache``) is true.  The ignore list filters the returned
    issues but never what is cached.
    """
    bound_log = (logger or log).bind(cwd=str(config.cwd))
    cwd = config.cwd
    use_cache = config.use_cache if use_cache is None else use_cache
    cache = CacheStore(cwd, logger=bound_log)

    # The root manifest must exist even when the cache could answer.
    root = read_root_manifest(cwd)

    if use_cache:
        cached = cache.read()
        if cached is not None:
            bound_log.info("scan.cache_used", issues=len(cached))
            return filter_ignored(cached, config.ignore)

    snapshot = read_project(cwd, root, logger=bound_log)
    demands = aggregate_demands(snapshot.manifests)
    bound_log.debug("scan.demands", dependencies=len(demands))
    issues = await classify_all(
        demands, snapshot.installed, config.strategy, registry, logger=bound_log
    )

    if use_cache:
        cache.write(issues)

    return filter_ignored(issues, config.ignore)
