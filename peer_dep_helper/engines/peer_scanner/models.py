"""Data models for the peer dependency scanner engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class IssueStatus(Enum):
    """Classification of a single peer dependency."""

    MISSING = "missing"
    OUTDATED = "outdated"
    VERSION_MISMATCH = "version_mismatch"
    VALID = "valid"

    @property
    def fixable(self) -> bool:
        return self in (IssueStatus.MISSING, IssueStatus.VERSION_MISMATCH)


@dataclass(frozen=True)
class PeerDependencyMeta:
    optional: bool = False


@dataclass(frozen=True)
class Manifest:
    """The parts of a package.json the scanner consumes."""

    path: Path
    name: str | None
    version: str | None = None
    dependencies: dict[str, str] = field(default_factory=dict)
    peer_dependencies: dict[str, str] = field(default_factory=dict)
    peer_dependencies_meta: dict[str, PeerDependencyMeta] = field(default_factory=dict)
    workspaces: list[str] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    def is_optional_peer(self, name: str) -> bool:
        meta = self.peer_dependencies_meta.get(name)
        return meta is not None and meta.optional


@dataclass(frozen=True)
class PeerDemand:
    """One package's declared requirement for a peer dependency."""

    dependency_name: str
    version_range: str
    optional: bool
    required_by: str


@dataclass
class DemandEntry:
    """A single ``demandedBy`` row of an issue."""

    name: str
    version_range: str
    optional: bool

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "versionRange": self.version_range, "optional": self.optional}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DemandEntry:
        return cls(
            name=data["name"],
            version_range=data.get("versionRange", ""),
            optional=bool(data.get("optional", False)),
        )


@dataclass
class Issue:
    """The report unit: one per distinct demanded peer dependency."""

    package: str
    required_by: str  # comma-joined requiring package names
    required_version: str | None
    installed_version: str | None
    status: IssueStatus
    demanded_by: list[DemandEntry] = field(default_factory=list)
    latest_version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "package": self.package,
            "requiredBy": self.required_by,
            "requiredVersion": self.required_version,
            "installedVersion": self.installed_version,
            "status": self.status.value,
            "demandedBy": [d.to_dict() for d in self.demanded_by],
            "latestVersion": self.latest_version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Issue:
        return cls(
            package=data["package"],
            required_by=data.get("requiredBy", ""),
            required_version=data.get("requiredVersion"),
            installed_version=data.get("installedVersion"),
            status=IssueStatus(data["status"]),
            demanded_by=[DemandEntry.from_dict(d) for d in data.get("demandedBy") or []],
            latest_version=data.get("latestVersion"),
        )


@dataclass
class CacheEntry:
    """Persisted classification results for one project root."""

    timestamp: int  # milliseconds since epoch
    file_hashes: dict[str, str | None]
    issues: list[Issue] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "fileHashes": dict(self.file_hashes),
            "issues": [i.to_dict() for i in self.issues],
        }
