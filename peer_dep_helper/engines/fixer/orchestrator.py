"""Fix orchestrator — install missing/mismatched peers and re-verify until stable."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from peer_dep_helper.config import Config
from peer_dep_helper.engines.fixer.package_manager import (
    InstallResult,
    detect_package_manager,
    run_install,
)
from peer_dep_helper.engines.peer_scanner.cache import CacheStore
from peer_dep_helper.engines.peer_scanner.manifest import write_dependencies
from peer_dep_helper.engines.peer_scanner.models import Issue
from peer_dep_helper.engines.peer_scanner.scanner import detect_issues
from peer_dep_helper.exceptions import AllowListViolationError
from peer_dep_helper.registry.client import VersionLookup, resolve_install_version

log = structlog.get_logger("peer_dep_helper.engine")

MAX_FIX_ITERATIONS = 5

Installer = Callable[..., Awaitable[InstallResult]]
Detector = Callable[..., Awaitable[list[Issue]]]


@dataclass
class PlannedInstall:
    """One package the fixer would install."""

    package: str
    required_range: str | None
    version: str | None  # None: let the package manager choose

    @property
    def install_arg(self) -> str:
        return f"{self.package}@{self.version}" if self.version else self.package

    @property
    def manifest_value(self) -> str:
        return self.version or "*"

    def to_dict(self) -> dict[str, str | None]:
        return {"package": self.package, "version": self.version, "requiredRange": self.required_range}


@dataclass
class FixOutcome:
    iterations: int = 0
    converged: bool = False
    dry_run: bool = False
    plans: list[list[PlannedInstall]] = field(default_factory=list)
    remaining: list[Issue] = field(default_factory=list)


def check_allow_list(issues: list[Issue], only: list[str], where: str = "fix") -> None:
    """Raise unless every issue is in *only* (an empty list allows everything)."""
    if not only:
        return
    allowed = set(only)
    outside = [i.package for i in issues if i.package not in allowed]
    if outside:
        raise AllowListViolationError(where, outside)


def fixable_issues(issues: list[Issue], only: list[str] | None = None) -> list[Issue]:
    """Missing/mismatched issues, optionally restricted to *only*."""
    out = [i for i in issues if i.status.fixable]
    if only:
        allowed = set(only)
        out = [i for i in out if i.package in allowed]
    return out


class FixOrchestrator:
    """Bounded install -> re-detect loop for one project root."""

    def __init__(
        self,
        config: Config,
        registry: VersionLookup,
        *,
        installer: Installer | None = None,
        detector: Detector | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._installer = installer or run_install
        self._detector = detector or detect_issues
        self._log = (logger or log).bind(cwd=str(config.cwd))

    @property
    def cwd(self) -> Path:
        return self._config.cwd

    # ── planning ─────────────────────────────────────────────────────────

    async def _resolve(self, package: str, version_range: str | None) -> str | None:
        try:
            return await resolve_install_version(self._registry, package, version_range)
        except Exception as exc:
            self._log.warning("fix.version_resolution_failed", package=package, error=str(exc))
            return None

    async def plan(self, issues: list[Issue]) -> list[PlannedInstall]:
        """Resolve an installable version for every fixable issue."""
        wanted: dict[str, str | None] = {}
        for issue in fixable_issues(issues):
            wanted[issue.package] = issue.required_version
        versions = await asyncio.gather(
            *(self._resolve(pkg, rng) for pkg, rng in wanted.items())
        )
        return [
            PlannedInstall(package=pkg, required_range=rng, version=version)
            for (pkg, rng), version in zip(wanted.items(), versions)
        ]

    # ── execution ────────────────────────────────────────────────────────

    async def _apply(self, plan: list[PlannedInstall]) -> None:
        """Install, optionally write back to package.json, then drop the cache."""
        package_manager = detect_package_manager(self.cwd)
        result = await self._installer(
            package_manager,
            [p.install_arg for p in plan],
            self.cwd,
            logger=self._log,
        )
        self._log.info("fix.installed", package_manager=package_manager, packages=len(plan))
        if result.stdout:
            self._log.debug("fix.install_stdout", output=result.stdout.strip())
        if result.stderr:
            self._log.debug("fix.install_stderr", output=result.stderr.strip())

        if self._config.write:
            updated = write_dependencies(self.cwd, {p.package: p.manifest_value for p in plan})
            if updated:
                self._log.info("fix.manifest_updated", packages=len(plan))
            else:
                self._log.warning("fix.manifest_missing")

        CacheStore(self.cwd, logger=self._log).clear()

    async def run(self, issues: list[Issue]) -> FixOutcome:
        """Fix *issues*, re-detecting after each install.

        Stops when no fixable issue remains or after ``MAX_FIX_ITERATIONS``
        follow-up passes.  Install failures propagate and end the loop.
        """
        only = self._config.only
        check_allow_list(issues, only)

        outcome = FixOutcome(dry_run=self._config.dry_run)
        pending = fixable_issues(issues, only)
        iteration = 0

        while True:
            if not pending:
                self._log.info("fix.nothing_to_fix", iteration=iteration)
                outcome.converged = True
                return outcome

            plan = await self.plan(pending)
            outcome.plans.append(plan)

            if self._config.dry_run:
                for p in plan:
                    self._log.info(
                        "fix.dry_run_would_install",
                        package=p.package,
                        version=p.manifest_value,
                        required_range=p.required_range,
                    )
                outcome.remaining = pending
                return outcome

            self._log.info("fix.iteration", iteration=iteration + 1, packages=len(plan))
            await self._apply(plan)
            outcome.iterations = iteration + 1

            detected = await self._detector(self._config, self._registry, use_cache=False)
            pending = fixable_issues(detected, only)
            outcome.remaining = pending

            if not pending:
                self._log.info("fix.converged", iterations=outcome.iterations)
                outcome.converged = True
                return outcome

            if iteration >= MAX_FIX_ITERATIONS:
                self._log.warning(
                    "fix.max_iterations_reached",
                    iterations=outcome.iterations,
                    remaining=[i.package for i in pending],
                )
                return outcome

            iteration += 1
