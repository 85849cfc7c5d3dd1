"""CLI entry point: peer-dep-helper.

Subcommands:
    peer-dep-helper audit [--fix]                 # Report peer dependency issues
    peer-dep-helper fix [--write] [--only a,b]    # Install missing/mismatched peers
"""

from __future__ import annotations

import asyncio
import sys
from typing import Any

import click
import structlog
from click.core import ParameterSource

from peer_dep_helper import __version__
from peer_dep_helper.config import Config, load_config
from peer_dep_helper.core.logging import setup_logging
from peer_dep_helper.engines.fixer.orchestrator import FixOrchestrator, fixable_issues
from peer_dep_helper.engines.peer_scanner.resolver import STRATEGIES
from peer_dep_helper.engines.peer_scanner.scanner import detect_issues
from peer_dep_helper.exceptions import PeerDepHelperError
from peer_dep_helper.registry.client import RegistryClient
from peer_dep_helper.report import has_problems, print_plan, print_report, render_plan

log = structlog.get_logger("peer_dep_helper.cli")

# CLI parameter name -> config field name, for parameters that differ
_PARAM_FIELDS = {"no_cache": "use_cache"}


def _explicit_params(ctx: click.Context, params: dict[str, Any]) -> dict[str, Any]:
    """Keep only parameters the user actually passed on the command line."""
    given: dict[str, Any] = {}
    for name, value in params.items():
        if name == "verbose" or ctx.get_parameter_source(name) is ParameterSource.DEFAULT:
            continue
        if name == "no_cache":
            value = not value
        elif name in ("ignore", "only"):
            value = list(value)
        given[_PARAM_FIELDS.get(name, name)] = value
    return given


def _load(ctx: click.Context, command_params: dict[str, Any]) -> Config:
    flags = dict(ctx.obj or {})
    flags.update(_explicit_params(ctx, command_params))
    try:
        return load_config(flags)
    except PeerDepHelperError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


def _say(config: Config, message: str) -> None:
    if not (config.silent or config.json_output):
        click.echo(message)


def _run(config: Config, coro_factory) -> None:
    try:
        exit_code = asyncio.run(coro_factory(config))
    except PeerDepHelperError as exc:
        log.debug("cli.failed", error=str(exc), exc_info=True)
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    if exit_code:
        sys.exit(exit_code)


@click.group()
@click.option("--cwd", type=click.Path(file_okay=False), default=None, help="Custom working directory")
@click.option(
    "--strategy",
    type=click.Choice(STRATEGIES),
    default="compatible",
    help="Version resolution strategy",
)
@click.option("--dry-run", is_flag=True, help="Show what would change without changing anything")
@click.option("--fail-on-issues", is_flag=True, help="Exit non-zero if issues remain (for CI)")
@click.option("--ignore", multiple=True, help="Package(s) to leave out of the report (comma-separated)")
@click.option("--json", "json", is_flag=True, help="Output report as JSON")
@click.option("--silent", is_flag=True, help="Suppress all output except errors")
@click.option("--no-cache", is_flag=True, help="Do not read or write the result cache")
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
@click.version_option(__version__, prog_name="peer-dep-helper")
@click.pass_context
def main(ctx: click.Context, verbose: bool, silent: bool, **params: Any) -> None:
    """peer-dep-helper: detect, audit, and fix peer dependency issues."""
    if verbose:
        setup_logging(level="DEBUG")
    elif silent:
        setup_logging(level="ERROR")
    else:
        setup_logging()
    ctx.obj = _explicit_params(ctx, {"silent": silent, **params})


# ── audit ──


@main.command("audit")
@click.option("--fix", "fix", is_flag=True, help="Automatically fix issues after auditing")
@click.pass_context
def audit(ctx: click.Context, fix: bool) -> None:
    """Print all peer dependency issues."""
    # The allow-list only scopes the fix command.
    config = _load(ctx, {}).model_copy(update={"only": []})

    async def _audit(config: Config) -> int:
        async with RegistryClient(config.registry_url, config.registry_timeout) as registry:
            issues = await detect_issues(config, registry)
            print_report(issues, config)
            problems = has_problems(issues)

            if fix and problems:
                _say(config, "\nAttempting to fix issues...")
                outcome = await FixOrchestrator(config, registry).run(fixable_issues(issues))
                if config.dry_run:
                    print_plan(outcome.plans[0] if outcome.plans else [], config, dry_run=True)
                    return 1 if config.fail_on_issues else 0
                _say(config, "Fix attempt complete. Re-auditing...")
                issues = await detect_issues(config, registry)
                print_report(issues, config)
                problems = has_problems(issues)

        return 1 if config.fail_on_issues and problems else 0

    _run(config, _audit)


# ── fix ──


@main.command("fix")
@click.option("--write", is_flag=True, help="Write fixed dependencies to package.json")
@click.option("--only", multiple=True, help="Fix only these packages (comma-separated)")
@click.option("--dry-run", is_flag=True, help="Show what would be installed without installing")
@click.pass_context
def fix(ctx: click.Context, write: bool, only: tuple[str, ...], dry_run: bool) -> None:
    """Install the correct versions of missing or mismatched peers."""
    config = _load(ctx, {"write": write, "only": only, "dry_run": dry_run})

    async def _fix(config: Config) -> int:
        async with RegistryClient(config.registry_url, config.registry_timeout) as registry:
            issues = await detect_issues(config, registry, use_cache=False)
            if config.only:
                allowed = set(config.only)
                issues = [i for i in issues if i.package in allowed]

            fixable = fixable_issues(issues)
            if not fixable:
                if config.dry_run:
                    print_plan([], config, dry_run=True)
                else:
                    _say(config, "No fixable peer dependency issues found.")
                return 0

            orchestrator = FixOrchestrator(config, registry)
            if config.dry_run:
                outcome = await orchestrator.run(fixable)
                print_plan(outcome.plans[0] if outcome.plans else [], config, dry_run=True)
                return 0

            _say(config, "Applying fixes...")
            outcome = await orchestrator.run(fixable)
            for plan in outcome.plans:
                _say(config, render_plan(plan, dry_run=False))
            if outcome.converged:
                _say(config, "All peer dependencies resolved!")
            else:
                _say(config, "Maximum fix iterations reached. Some peer dependencies may still be missing.")

            _say(config, "Fixes applied. Re-auditing...")
            updated = await detect_issues(config, registry)
            to_report = updated
            if config.only:
                allowed = set(config.only)
                to_report = [i for i in updated if i.package in allowed]
            print_report(to_report, config)

        return 1 if config.fail_on_issues and has_problems(updated) else 0

    _run(config, _fix)


if __name__ == "__main__":
    main()
