"""Tests for the fix orchestrator and the package manager helpers."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from peer_dep_helper.config import Config
from peer_dep_helper.engines.fixer.orchestrator import (
    MAX_FIX_ITERATIONS,
    FixOrchestrator,
    PlannedInstall,
    check_allow_list,
    fixable_issues,
)
from peer_dep_helper.engines.fixer.package_manager import (
    detect_package_manager,
    install_command,
    run_install,
)
from peer_dep_helper.engines.peer_scanner.cache import CACHE_FILE_NAME, CacheStore
from peer_dep_helper.engines.peer_scanner.models import Issue, IssueStatus
from peer_dep_helper.engines.peer_scanner.scanner import detect_issues
from peer_dep_helper.exceptions import (
    AllowListViolationError,
    InstallError,
    UnsupportedPackageManagerError,
)


# ── helpers ──────────────────────────────────────────────────────────────


def _registry(fake_registry):
    return fake_registry(
        latest={"right-pad": "1.1.1", "left-pad": "1.3.0"},
        versions={"right-pad": ["1.0.0", "1.1.1"], "left-pad": ["1.0.0", "1.3.0"]},
    )


def _issue(package: str, status: IssueStatus = IssueStatus.MISSING) -> Issue:
    return Issue(package, "app", "^1.0.0", None, status)


# ── package manager ──────────────────────────────────────────────────────


class TestPackageManager:
    def test_default_is_npm(self, tmp_path):
        assert detect_package_manager(tmp_path) == "npm"

    @pytest.mark.parametrize(
        "lockfile, expected",
        [("yarn.lock", "yarn"), ("package-lock.json", "npm"), ("pnpm-lock.yaml", "pnpm")],
    )
    def test_lockfile_detection(self, tmp_path, lockfile, expected):
        (tmp_path / lockfile).write_text("")
        assert detect_package_manager(tmp_path) == expected

    def test_yarn_lock_takes_precedence(self, tmp_path):
        (tmp_path / "pnpm-lock.yaml").write_text("")
        (tmp_path / "yarn.lock").write_text("")
        assert detect_package_manager(tmp_path) == "yarn"

    def test_install_commands(self):
        assert install_command("npm", ["a@1.0.0"]) == ["npm", "install", "a@1.0.0"]
        assert install_command("yarn", ["a", "b"]) == ["yarn", "add", "a", "b"]
        assert install_command("pnpm", ["a"]) == ["pnpm", "add", "a"]

    def test_unsupported_manager(self):
        with pytest.raises(UnsupportedPackageManagerError):
            install_command("bun", ["a"])


class TestRunInstall:
    @pytest.mark.asyncio
    async def test_success(self, tmp_path):
        proc = MagicMock()
        proc.communicate = AsyncMock(return_value=(b"added 1 package", b""))
        proc.returncode = 0
        with patch(
            "peer_dep_helper.engines.fixer.package_manager.asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=proc),
        ) as exec_mock:
            result = await run_install("npm", ["react@18.2.0"], tmp_path)
        assert result.stdout == "added 1 package"
        args, kwargs = exec_mock.call_args
        assert args == ("npm", "install", "react@18.2.0")
        assert kwargs["cwd"] == str(tmp_path)

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, tmp_path):
        proc = MagicMock()
        proc.communicate = AsyncMock(return_value=(b"", b"ERESOLVE could not resolve"))
        proc.returncode = 1
        with patch(
            "peer_dep_helper.engines.fixer.package_manager.asyncio.create_subprocess_exec",
            new=AsyncMock(return_value=proc),
        ):
            with pytest.raises(InstallError) as exc_info:
                await run_install("yarn", ["react"], tmp_path)
        assert exc_info.value.returncode == 1
        assert "ERESOLVE" in str(exc_info.value)
        assert exc_info.value.command == ["yarn", "add", "react"]

    @pytest.mark.asyncio
    async def test_executable_not_found(self, tmp_path):
        with patch(
            "peer_dep_helper.engines.fixer.package_manager.asyncio.create_subprocess_exec",
            new=AsyncMock(side_effect=FileNotFoundError("pnpm")),
        ):
            with pytest.raises(InstallError) as exc_info:
                await run_install("pnpm", ["react"], tmp_path)
        assert exc_info.value.returncode == 127


# ── allow list ───────────────────────────────────────────────────────────


class TestAllowList:
    def test_empty_allows_everything(self):
        check_allow_list([_issue("a"), _issue("b")], [])

    def test_violation_names_packages(self):
        with pytest.raises(AllowListViolationError) as exc_info:
            check_allow_list([_issue("a"), _issue("b"), _issue("c")], ["a"])
        assert exc_info.value.packages == ["b", "c"]
        assert "b, c" in str(exc_info.value)

    def test_fixable_issues(self):
        issues = [
            _issue("a"),
            _issue("b", IssueStatus.VERSION_MISMATCH),
            _issue("c", IssueStatus.OUTDATED),
            _issue("d", IssueStatus.VALID),
        ]
        assert [i.package for i in fixable_issues(issues)] == ["a", "b"]
        assert [i.package for i in fixable_issues(issues, ["b", "c"])] == ["b"]


# ── orchestrator ─────────────────────────────────────────────────────────


class TestPlannedInstall:
    def test_with_version(self):
        p = PlannedInstall("right-pad", "^1.0.0", "1.1.1")
        assert p.install_arg == "right-pad@1.1.1"
        assert p.manifest_value == "1.1.1"

    def test_without_version(self):
        p = PlannedInstall("right-pad", "^1.0.0", None)
        assert p.install_arg == "right-pad"
        assert p.manifest_value == "*"


class TestFixOrchestrator:
    @pytest.mark.asyncio
    async def test_plan_resolves_versions(self, project, fake_registry):
        project.manifest({"name": "app"})
        orchestrator = FixOrchestrator(Config(cwd=project.root), _registry(fake_registry))
        plan = await orchestrator.plan([_issue("right-pad"), _issue("unknown")])
        assert [(p.package, p.version) for p in plan] == [("right-pad", "1.1.1"), ("unknown", None)]

    @pytest.mark.asyncio
    async def test_plan_survives_registry_failure(self, project, fake_registry):
        project.manifest({"name": "app"})
        orchestrator = FixOrchestrator(Config(cwd=project.root), fake_registry(fail=True))
        plan = await orchestrator.plan([_issue("right-pad")])
        assert plan[0].version is None

    @pytest.mark.asyncio
    async def test_converges_after_one_install(self, project, fake_registry, fake_installer):
        project.manifest({"name": "app", "peerDependencies": {"right-pad": "^1.0.0"}})
        registry = _registry(fake_registry)
        config = Config(cwd=project.root)
        installer = fake_installer()

        issues = await detect_issues(config, registry, use_cache=False)
        outcome = await FixOrchestrator(config, registry, installer=installer).run(issues)

        assert outcome.converged is True
        assert outcome.iterations == 1
        assert installer.calls == [("npm", ["right-pad@1.1.1"])]
        after = await detect_issues(config, registry, use_cache=False)
        assert after[0].status is IssueStatus.VALID

    @pytest.mark.asyncio
    async def test_uses_detected_package_manager(self, project, fake_registry, fake_installer):
        project.manifest({"name": "app", "peerDependencies": {"right-pad": "^1.0.0"}})
        (project.root / "yarn.lock").write_text("")
        registry = _registry(fake_registry)
        config = Config(cwd=project.root)
        installer = fake_installer()

        issues = await detect_issues(config, registry, use_cache=False)
        await FixOrchestrator(config, registry, installer=installer).run(issues)
        assert installer.calls[0][0] == "yarn"

    @pytest.mark.asyncio
    async def test_nothing_to_fix(self, project, fake_registry, fake_installer):
        project.manifest({"name": "app"})
        installer = fake_installer()
        outcome = await FixOrchestrator(
            Config(cwd=project.root), fake_registry(), installer=installer
        ).run([_issue("x", IssueStatus.OUTDATED)])
        assert outcome.converged is True
        assert outcome.iterations == 0
        assert installer.calls == []

    @pytest.mark.asyncio
    async def test_dry_run_has_no_side_effects(self, project, fake_registry, fake_installer):
        project.manifest({"name": "app", "peerDependencies": {"right-pad": "^1.0.0"}})
        before = (project.root / "package.json").read_text()
        registry = _registry(fake_registry)
        config = Config(cwd=project.root, dry_run=True, write=True)
        CacheStore(config.cwd).write([])
        installer = fake_installer()

        issues = await detect_issues(config, registry, use_cache=False)
        outcome = await FixOrchestrator(config, registry, installer=installer).run(issues)

        assert outcome.dry_run is True
        assert outcome.iterations == 0
        assert [(p.package, p.version) for p in outcome.plans[0]] == [("right-pad", "1.1.1")]
        assert installer.calls == []
        assert (project.root / "package.json").read_text() == before
        assert (project.root / CACHE_FILE_NAME).is_file()
        assert not (project.root / "node_modules").exists()

    @pytest.mark.asyncio
    async def test_write_updates_manifest(self, project, fake_registry, fake_installer):
        project.manifest({"name": "app", "peerDependencies": {"right-pad": "^1.0.0"}})
        registry = _registry(fake_registry)
        config = Config(cwd=project.root, write=True)

        issues = await detect_issues(config, registry, use_cache=False)
        await FixOrchestrator(config, registry, installer=fake_installer()).run(issues)

        data = project.read_manifest()
        assert data["dependencies"] == {"right-pad": "1.1.1"}
        assert data["peerDependencies"] == {"right-pad": "^1.0.0"}

    @pytest.mark.asyncio
    async def test_write_unknown_version_uses_star(self, project, fake_registry, fake_installer):
        project.manifest({"name": "app", "peerDependencies": {"right-pad": "^1.0.0"}})
        registry = fake_registry()
        config = Config(cwd=project.root, write=True)
        installer = fake_installer()

        issues = await detect_issues(config, registry, use_cache=False)
        outcome = await FixOrchestrator(config, registry, installer=installer).run(issues)

        assert installer.calls == [("npm", ["right-pad"])]
        assert outcome.converged is True
        assert project.read_manifest()["dependencies"] == {"right-pad": "*"}

    @pytest.mark.asyncio
    async def test_install_clears_cache(self, project, fake_registry, fake_installer):
        project.manifest({"name": "app", "peerDependencies": {"right-pad": "^1.0.0"}})
        registry = _registry(fake_registry)
        config = Config(cwd=project.root)

        issues = await detect_issues(config, registry)
        assert (project.root / CACHE_FILE_NAME).is_file()
        await FixOrchestrator(config, registry, installer=fake_installer()).run(issues)
        assert not (project.root / CACHE_FILE_NAME).exists()

    @pytest.mark.asyncio
    async def test_allow_list_violation_before_install(self, project, fake_registry, fake_installer):
        project.manifest(
            {"name": "app", "peerDependencies": {"right-pad": "^1.0.0", "left-pad": "^1.0.0"}}
        )
        registry = _registry(fake_registry)
        config = Config(cwd=project.root, only=["right-pad"])
        installer = fake_installer()

        issues = await detect_issues(config, registry, use_cache=False)
        with pytest.raises(AllowListViolationError):
            await FixOrchestrator(config, registry, installer=installer).run(issues)
        assert installer.calls == []

    @pytest.mark.asyncio
    async def test_allow_list_scopes_reverification(self, project, fake_registry, fake_installer):
        project.manifest(
            {"name": "app", "peerDependencies": {"right-pad": "^1.0.0", "left-pad": "^1.0.0"}}
        )
        registry = _registry(fake_registry)
        config = Config(cwd=project.root, only=["right-pad"])
        installer = fake_installer()

        issues = await detect_issues(config, registry, use_cache=False)
        outcome = await FixOrchestrator(config, registry, installer=installer).run(
            fixable_issues(issues, config.only)
        )
        # left-pad is still missing but outside the allow-list
        assert outcome.converged is True
        assert installer.calls == [("npm", ["right-pad@1.1.1"])]

    @pytest.mark.asyncio
    async def test_stops_after_max_iterations(self, project, fake_registry, fake_installer):
        project.manifest({"name": "app", "peerDependencies": {"right-pad": "^1.0.0"}})
        registry = _registry(fake_registry)
        config = Config(cwd=project.root)
        installer = fake_installer(materialize=False)

        issues = await detect_issues(config, registry, use_cache=False)
        outcome = await FixOrchestrator(config, registry, installer=installer).run(issues)

        assert outcome.converged is False
        assert len(installer.calls) == MAX_FIX_ITERATIONS + 1
        assert outcome.iterations == MAX_FIX_ITERATIONS + 1
        assert [i.package for i in outcome.remaining] == ["right-pad"]

    @pytest.mark.asyncio
    async def test_install_failure_propagates(self, project, fake_registry, fake_installer):
        project.manifest({"name": "app", "peerDependencies": {"right-pad": "^1.0.0"}})
        before = (project.root / "package.json").read_text()
        registry = _registry(fake_registry)
        config = Config(cwd=project.root, write=True)
        installer = fake_installer(error=InstallError(["npm", "install"], 1, "", "boom"))

        issues = await detect_issues(config, registry, use_cache=False)
        with pytest.raises(InstallError):
            await FixOrchestrator(config, registry, installer=installer).run(issues)
        assert (project.root / "package.json").read_text() == before

    @pytest.mark.asyncio
    async def test_custom_detector_is_used(self, project, fake_registry, fake_installer):
        project.manifest({"name": "app"})
        detector = AsyncMock(return_value=[])
        config = Config(cwd=project.root)
        outcome = await FixOrchestrator(
            config, _registry(fake_registry), installer=fake_installer(), detector=detector
        ).run([_issue("right-pad")])
        assert outcome.converged is True
        detector.assert_awaited_once()
        assert detector.call_args.kwargs == {"use_cache": False}
