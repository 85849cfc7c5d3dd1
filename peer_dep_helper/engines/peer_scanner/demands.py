"""Demand aggregator — collect peer dependency declarations across packages."""

from __future__ import annotations

from pathlib import Path

from peer_dep_helper.engines.peer_scanner.models import Manifest, PeerDemand

# dependency name -> version range -> requiring package -> demand
DemandMap = dict[str, dict[str, dict[str, PeerDemand]]]


def aggregate_demands(manifests: list[tuple[Path, Manifest | None]]) -> DemandMap:
    """Build the demand map from ``(package_path, manifest)`` pairs.

    Pairs are consumed in the given (canonical) order.  A requiring package
    is identified by its manifest name, falling back to its path.  The same
    range from two packages, and two ranges from one package, are all kept.
    """
    demands: DemandMap = {}
    for package_path, manifest in manifests:
        if manifest is None or not manifest.peer_dependencies:
            continue
        required_by = manifest.name or str(package_path)
        for dep_name, version_range in manifest.peer_dependencies.items():
            by_range = demands.setdefault(dep_name, {})
            by_range.setdefault(version_range, {})[required_by] = PeerDemand(
                dependency_name=dep_name,
                version_range=version_range,
                optional=manifest.is_optional_peer(dep_name),
                required_by=required_by,
            )
    return demands


def flatten_demands(by_range: dict[str, dict[str, PeerDemand]]) -> list[PeerDemand]:
    """All demands for one dependency, grouped by range in first-seen order."""
    return [demand for by_pkg in by_range.values() for demand in by_pkg.values()]
