"""Package manager detection and the install subprocess."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path

import structlog

from peer_dep_helper.exceptions import InstallError, UnsupportedPackageManagerError

log = structlog.get_logger("peer_dep_helper.engine")

# Checked in order; the first lockfile present decides.
LOCKFILES: tuple[tuple[str, str], ...] = (
    ("yarn.lock", "yarn"),
    ("package-lock.json", "npm"),
    ("pnpm-lock.yaml", "pnpm"),
)
DEFAULT_PACKAGE_MANAGER = "npm"

_INSTALL_SUBCOMMANDS = {"npm": "install", "yarn": "add", "pnpm": "add"}


@dataclass
class InstallResult:
    stdout: str
    stderr: str


def detect_package_manager(cwd: Path) -> str:
    for lockfile, manager in LOCKFILES:
        if (cwd / lockfile).exists():
            return manager
    return DEFAULT_PACKAGE_MANAGER


def install_command(package_manager: str, install_args: list[str]) -> list[str]:
    subcommand = _INSTALL_SUBCOMMANDS.get(package_manager)
    if subcommand is None:
        raise UnsupportedPackageManagerError(f"Unsupported package manager: {package_manager}")
    return [package_manager, subcommand, *install_args]


async def run_install(
    package_manager: str,
    install_args: list[str],
    cwd: Path,
    *,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> InstallResult:
    """Run the package manager in *cwd*.

    Raises :class:`InstallError` on a non-zero exit code.
    """
    cmd = install_command(package_manager, install_args)
    (logger or log).info("fix.executing", command=" ".join(cmd), cwd=str(cwd))
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise InstallError(cmd, 127, "", str(exc)) from exc
    stdout, stderr = await proc.communicate()
    out = stdout.decode(errors="replace")
    err = stderr.decode(errors="replace")
    if proc.returncode != 0:
        raise InstallError(cmd, proc.returncode, out, err)
    return InstallResult(stdout=out, stderr=err)
