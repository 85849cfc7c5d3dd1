"""npm registry access."""

from peer_dep_helper.registry.client import (
    RegistryClient,
    VersionLookup,
    resolve_install_version,
)

__all__ = ["RegistryClient", "VersionLookup", "resolve_install_version"]
