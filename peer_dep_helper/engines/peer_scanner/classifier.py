"""Issue classifier — turn aggregated demands into one status per dependency."""

from __future__ import annotations

import asyncio

import structlog

from peer_dep_helper import semver
from peer_dep_helper.engines.peer_scanner.demands import DemandMap, flatten_demands
from peer_dep_helper.engines.peer_scanner.models import (
    DemandEntry,
    Issue,
    IssueStatus,
    PeerDemand,
)
from peer_dep_helper.engines.peer_scanner.resolver import resolve_range
from peer_dep_helper.registry.client import VersionLookup

log = structlog.get_logger("peer_dep_helper.engine")


def _always_satisfied(version_range: str | None) -> bool:
    return not version_range or version_range == "*"


def satisfies_all(installed_version: str, demands: list[PeerDemand]) -> bool:
    return all(
        _always_satisfied(d.version_range) or semver.satisfies(installed_version, d.version_range)
        for d in demands
    )


def is_outdated(installed_version: str | None, latest_version: str | None) -> bool:
    if not installed_version or not latest_version:
        return False
    try:
        return semver.lt(installed_version, latest_version)
    except semver.InvalidVersionError:
        return False


def classify(
    dependency_name: str,
    demands: list[PeerDemand],
    installed_version: str | None,
    resolved_range: str | None,
    latest_version: str | None,
) -> Issue | None:
    """Classify one dependency.  Returns None when nothing should be reported.

    Order matters: missing, then outdated, then mismatch, then valid.
    """
    if not installed_version and not any(not d.optional for d in demands):
        # Only optional demands and nothing installed.
        return None

    required_by = ", ".join(dict.fromkeys(d.required_by for d in demands))
    issue = Issue(
        package=dependency_name,
        required_by=required_by,
        required_version=resolved_range,
        installed_version=installed_version,
        status=IssueStatus.VALID,
        demanded_by=[DemandEntry(d.required_by, d.version_range, d.optional) for d in demands],
        latest_version=latest_version,
    )

    if not installed_version:
        issue.status = IssueStatus.MISSING
    elif is_outdated(installed_version, latest_version):
        issue.status = IssueStatus.OUTDATED
        issue.required_version = latest_version
    elif not satisfies_all(installed_version, demands):
        issue.status = IssueStatus.VERSION_MISMATCH
    return issue


async def _lookup_latest(
    registry: VersionLookup,
    name: str,
    bound_log: structlog.stdlib.BoundLogger,
) -> str | None:
    try:
        return await registry.latest_version(name)
    except Exception as exc:
        bound_log.warning("classifier.latest_lookup_failed", package=name, error=str(exc))
        return None


async def classify_all(
    demands: DemandMap,
    installed: dict[str, str | None],
    strategy: str,
    registry: VersionLookup,
    *,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> list[Issue]:
    """Classify every demanded dependency, looking up latest versions concurrently."""
    bound_log = logger or log
    names = list(demands)
    latest_versions = await asyncio.gather(
        *(_lookup_latest(registry, name, bound_log) for name in names)
    )

    issues: list[Issue] = []
    for name, latest in zip(names, latest_versions):
        flat = flatten_demands(demands[name])
        resolved = resolve_range([d.version_range for d in flat], strategy, logger=bound_log)
        issue = classify(name, flat, installed.get(name) or None, resolved, latest)
        if issue is None:
            bound_log.debug("classifier.optional_skipped", package=name)
            continue
        bound_log.debug(
            "classifier.classified",
            package=name,
            status=issue.status.value,
            installed=issue.installed_version,
            latest=latest,
        )
        issues.append(issue)
    return issues


def filter_ignored(issues: list[Issue], ignore: list[str]) -> list[Issue]:
    if not ignore:
        return list(issues)
    ignored = set(ignore)
    return [i for i in issues if i.package not in ignored]
