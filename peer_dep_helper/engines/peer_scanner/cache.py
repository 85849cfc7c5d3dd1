"""Cache store — persist classification results keyed by a content fingerprint."""

from __future__ import annotations

import hashlib
import json
import time
from pathlib import Path

import structlog

from peer_dep_helper.engines.peer_scanner.models import CacheEntry, Issue
from peer_dep_helper.exceptions import CacheAccessError, CacheCorruptedError

log = structlog.get_logger("peer_dep_helper.engine")

CACHE_FILE_NAME = ".peer-dep-helper-cache.json"
HASHED_FILES = ("package.json", "package-lock.json", "yarn.lock", "pnpm-lock.yaml")


def fingerprint(
    cwd: Path,
    *,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> dict[str, str | None]:
    """Hash each manifest/lockfile; absent files map to None."""
    hashes: dict[str, str | None] = {}
    for name in HASHED_FILES:
        try:
            content = (cwd / name).read_bytes()
        except FileNotFoundError:
            hashes[name] = None
            continue
        except OSError as exc:
            (logger or log).warning("cache.hash_failed", file=name, error=str(exc))
            hashes[name] = None
            continue
        hashes[name] = hashlib.md5(content, usedforsecurity=False).hexdigest()
    return hashes


class CacheStore:
    """The cache file of one project root.

    Entries are never updated in place: they are written after an uncached
    scan and deleted after fixes are applied.

    The key covers manifest and lockfile content only.  ``strategy`` is not
    part of it, so a result computed under another strategy is served until
    one of those files changes.  Pass ``--no-cache`` after switching.
    """

    def __init__(self, cwd: Path, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self.cwd = cwd
        self.path = cwd / CACHE_FILE_NAME
        self._log = logger or log

    def fingerprint(self) -> dict[str, str | None]:
        return fingerprint(self.cwd, logger=self._log)

    def load(self) -> CacheEntry | None:
        """Load the persisted entry without validating it.

        Returns None if there is no cache file.
        """
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CacheAccessError(f"Could not read cache file {self.path}: {exc}") from exc

        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise CacheCorruptedError(f"Invalid JSON in cache {self.path}: {exc}") from exc

        try:
            return CacheEntry(
                timestamp=int(data["timestamp"]),
                file_hashes=dict(data["fileHashes"]),
                issues=[Issue.from_dict(i) for i in data["issues"]],
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise CacheCorruptedError(f"Unexpected cache layout in {self.path}: {exc!r}") from exc

    def read(self) -> list[Issue] | None:
        """Return cached issues if the stored fingerprint still matches, else None."""
        entry = self.load()
        if entry is None:
            self._log.debug("cache.miss", reason="no_cache_file")
            return None
        current = self.fingerprint()
        if entry.file_hashes != current:
            self._log.debug("cache.miss", reason="fingerprint_changed")
            return None
        self._log.debug("cache.hit", issues=len(entry.issues))
        return entry.issues

    def write(self, issues: list[Issue]) -> CacheEntry:
        entry = CacheEntry(
            timestamp=int(time.time() * 1000),
            file_hashes=self.fingerprint(),
            issues=list(issues),
        )
        payload = json.dumps(entry.to_dict(), indent=2)
        try:
            try:
                self.path.write_text(payload, encoding="utf-8")
            except FileNotFoundError:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.path.write_text(payload, encoding="utf-8")
        except OSError as exc:
            raise CacheAccessError(f"Could not write cache file {self.path}: {exc}") from exc
        self._log.debug("cache.written", path=str(self.path), issues=len(issues))
        return entry

    def clear(self) -> bool:
        """Delete the cache file.  Returns False if there was none."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise CacheAccessError(f"Could not clear cache file {self.path}: {exc}") from exc
        self._log.info("cache.cleared", path=str(self.path))
        return True
