"""Async npm registry client — best-effort version lookups."""

from __future__ import annotations

import asyncio
from typing import Any, Protocol
from urllib.parse import quote

import httpx
import structlog

from peer_dep_helper import semver

log = structlog.get_logger("peer_dep_helper.registry")

DEFAULT_REGISTRY_URL = "https://registry.npmjs.org"

_MAX_ATTEMPTS = 2
_RETRY_BASE_DELAY = 0.5  # seconds
_ABBREVIATED = "application/vnd.npm.install-v1+json; q=1.0, application/json; q=0.8"


class VersionLookup(Protocol):
    """What the classifier and fixer need from a registry."""

    async def latest_version(self, name: str) -> str | None: ...

    async def list_published_versions(self, name: str) -> list[str] | None: ...


def _package_path(name: str) -> str:
    # Scoped names keep the leading @ but escape the slash: @scope%2Fname
    return "/" + quote(name, safe="@")


def _by_precedence(versions: list[str]) -> list[str]:
    """Ascending semver order; unparsable versions trail in registry order."""
    parsed = sorted((v for v in versions if semver.valid(v)), key=semver.parse_version)
    return parsed + [v for v in versions if not semver.valid(v)]


class RegistryClient:
    """Thin async wrapper around the npm registry HTTP API.

    Every failure (HTTP error, timeout, malformed payload) degrades to None.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_REGISTRY_URL,
        timeout: float = 10.0,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Accept": "application/json"},
            timeout=timeout,
            follow_redirects=True,
        )
        self._log = logger or log
        self._latest: dict[str, str | None] = {}
        self._versions: dict[str, list[str] | None] = {}

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> RegistryClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    async def latest_version(self, name: str) -> str | None:
        """The ``latest`` dist-tag of *name*, or None if unknown."""
        if name in self._latest:
            return self._latest[name]
        data = await self._get_json(f"{_package_path(name)}/latest")
        version = data.get("version") if isinstance(data, dict) else None
        result = version if isinstance(version, str) and version else None
        self._latest[name] = result
        return result

    async def list_published_versions(self, name: str) -> list[str] | None:
        """Every published version of *name*, or None if unknown."""
        if name in self._versions:
            return self._versions[name]
        data = await self._get_json(_package_path(name), headers={"Accept": _ABBREVIATED})
        versions = data.get("versions") if isinstance(data, dict) else None
        result = _by_precedence(list(versions)) if isinstance(versions, dict) else None
        self._versions[name] = result
        return result

    # ── internal ───────────────────────────────────────────────────────────

    async def _get_json(self, path: str, headers: dict[str, str] | None = None) -> Any:
        """GET *path* and decode JSON; retries once on timeout and 5xx."""
        for attempt in range(_MAX_ATTEMPTS):
            try:
                resp = await self._client.get(path, headers=headers)
                if resp.status_code < 500:
                    resp.raise_for_status()
                    return resp.json()
                self._log.debug(
                    "registry.server_error",
                    path=path,
                    status=resp.status_code,
                    attempt=attempt + 1,
                )
            except httpx.TimeoutException:
                self._log.debug("registry.timeout", path=path, attempt=attempt + 1)
            except (httpx.HTTPError, ValueError) as exc:
                self._log.debug("registry.lookup_failed", path=path, error=str(exc))
                return None

            if attempt < _MAX_ATTEMPTS - 1:
                await asyncio.sleep(_RETRY_BASE_DELAY * (2**attempt))

        self._log.warning("registry.unavailable", path=path, attempts=_MAX_ATTEMPTS)
        return None


async def resolve_install_version(
    registry: VersionLookup,
    name: str,
    version_range: str | None,
) -> str | None:
    """Best installable version of *name* for *version_range*.

    None means no specific version could be determined and the package
    manager should pick one.
    """
    latest = await registry.latest_version(name)
    if not latest:
        return None
    versions = await registry.list_published_versions(name)
    if not versions:
        return None
    if not version_range or not version_range.strip() or version_range == "*":
        return latest
    return semver.max_satisfying(versions, version_range) or latest
