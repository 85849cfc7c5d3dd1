"""Report rendering — text and JSON views of an issue list."""

from __future__ import annotations

import json
from collections.abc import Callable

import click

from peer_dep_helper.config import Config
from peer_dep_helper.engines.fixer.orchestrator import PlannedInstall, check_allow_list
from peer_dep_helper.engines.peer_scanner.models import Issue, IssueStatus


def has_problems(issues: list[Issue]) -> bool:
    return any(i.status is not IssueStatus.VALID for i in issues)


def render_json(issues: list[Issue]) -> str:
    return json.dumps(
        {
            "status": "fail" if has_problems(issues) else "success",
            "issues": [i.to_dict() for i in issues],
        },
        indent=2,
    )


def _by_status(issues: list[Issue], status: IssueStatus) -> list[Issue]:
    return [i for i in issues if i.status is status]


def _section(
    lines: list[str],
    title: str,
    issues: list[Issue],
    color: str,
    describe: Callable[[Issue], str],
) -> None:
    if not issues:
        return
    lines.append(click.style(title, fg=color, bold=True))
    for issue in issues:
        lines.append(f"  - {click.style(issue.package, fg='cyan')} (required by {issue.required_by}) {describe(issue)}")
        if issue.demanded_by:
            lines.append(click.style("    Demanded by:", fg="bright_black"))
            for d in issue.demanded_by:
                optional = ", optional" if d.optional else ""
                lines.append(
                    click.style(f"      - {d.name} (range: {d.version_range}{optional})", fg="bright_black")
                )
    lines.append("")


def render_text(issues: list[Issue]) -> str:
    if not issues:
        return click.style("No peer dependency issues found.", fg="green")

    missing = _by_status(issues, IssueStatus.MISSING)
    mismatched = _by_status(issues, IssueStatus.VERSION_MISMATCH)
    outdated = _by_status(issues, IssueStatus.OUTDATED)
    valid = _by_status(issues, IssueStatus.VALID)

    lines = [click.style("Peer Dependency Audit Report:", bold=True), ""]
    lines.append(click.style("Summary:", bold=True))
    for label, count in (
        ("Missing", len(missing)),
        ("Mismatched", len(mismatched)),
        ("Outdated", len(outdated)),
        ("Valid", len(valid)),
        ("Total Checked", len(issues)),
    ):
        lines.append(f"  {label:<16}{count:>6}")
    lines.append("")

    _section(
        lines, "Missing Peer Dependencies:", missing, "red",
        lambda i: f"requires {i.required_version} but is missing.",
    )
    _section(
        lines, "Version Mismatch Peer Dependencies:", mismatched, "yellow",
        lambda i: f"requires {i.required_version}, but {i.installed_version} is installed.",
    )
    _section(
        lines, "Outdated Peer Dependencies:", outdated, "blue",
        lambda i: f"has {i.installed_version} installed, but {i.latest_version} is available.",
    )
    _section(
        lines, "Valid Peer Dependencies:", valid, "green",
        lambda i: f"requires {i.required_version} and {i.installed_version} is installed.",
    )

    if missing or mismatched or outdated:
        lines.append(click.style("Action Required:", fg="red", bold=True))
        lines.append("  Run `peer-dep-helper fix` to attempt to resolve these issues.")
    else:
        lines.append(click.style("All peer dependencies are correctly installed.", fg="green"))
    return "\n".join(lines)


def print_report(issues: list[Issue], config: Config) -> None:
    """Echo the report for *issues*; refuses issues outside ``config.only``."""
    check_allow_list(issues, config.only, where="report")
    if config.json_output:
        click.echo(render_json(issues))
        return
    if config.silent:
        return
    click.echo(render_text(issues))


def render_plan_json(plan: list[PlannedInstall], *, dry_run: bool) -> str:
    return json.dumps({"dryRun": dry_run, "plan": [p.to_dict() for p in plan]}, indent=2)


def render_plan(plan: list[PlannedInstall], *, dry_run: bool) -> str:
    if not plan:
        prefix = "[Dry Run] " if dry_run else ""
        return f"{prefix}No fixable peer dependency issues found."
    if not dry_run:
        return "Installing: " + " ".join(p.install_arg for p in plan)
    lines = [
        "[Dry Run] No changes will be made.",
        "[Dry Run] Packages that would be installed/updated:",
    ]
    for p in plan:
        lines.append(
            f"[Dry Run] Would install: {p.package}@{p.manifest_value} (required range: {p.required_range})"
        )
    return "\n".join(lines)


def print_plan(plan: list[PlannedInstall], config: Config, *, dry_run: bool) -> None:
    """Echo an install plan; with ``--json`` it is printed even when silent."""
    if config.json_output:
        click.echo(render_plan_json(plan, dry_run=dry_run))
        return
    if config.silent:
        return
    click.echo(render_plan(plan, dry_run=dry_run))
