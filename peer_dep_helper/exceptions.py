"""Custom exceptions for peer-dep-helper."""

from __future__ import annotations

from pathlib import Path


class PeerDepHelperError(Exception):
    """Base exception for all peer-dep-helper errors."""


class ConfigError(PeerDepHelperError):
    """Raised when a config file cannot be parsed or holds invalid values."""


class ManifestError(PeerDepHelperError):
    """Raised when a package.json exists but cannot be parsed."""

    def __init__(self, path: Path | str, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Failed to read or parse {self.path}: {reason}")


class RootManifestNotFoundError(ManifestError):
    """Raised when the project root has no package.json."""

    def __init__(self, path: Path | str):
        super().__init__(path, "no package.json found at project root")


class InstallScanError(PeerDepHelperError):
    """Raised when node_modules exists but cannot be read."""


class CacheCorruptedError(PeerDepHelperError):
    """Raised when the cache file holds malformed JSON or an unexpected shape."""


class CacheAccessError(PeerDepHelperError):
    """Raised on permission or other OS failures while touching the cache file."""


class UnsupportedPackageManagerError(PeerDepHelperError):
    """Raised when an install command is requested for an unknown manager."""


class InstallError(PeerDepHelperError):
    """Raised when the package manager exits with a non-zero code."""

    def __init__(self, command: list[str], returncode: int, stdout: str, stderr: str):
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        detail = stderr.strip() or stdout.strip()
        super().__init__(
            f"{' '.join(command)} failed (exit {returncode})" + (f": {detail}" if detail else "")
        )


class AllowListViolationError(PeerDepHelperError, ValueError):
    """Raised when issues outside the active ``only`` list reach the fixer or report."""

    def __init__(self, where: str, packages: list[str]):
        self.packages = packages
        super().__init__(
            f"{where}: issues list contains packages not in only: {', '.join(packages)}"
        )
