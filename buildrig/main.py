"""
buildrig — CLI entrypoint.

Usage:
    buildrig --help
    buildrig run [TARGET]... -p key=value
    buildrig plan
    buildrig targets
    buildrig toolchain
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from buildrig import __version__
from buildrig.core.observability.logging_config import (
    ENV_LOG_FILE,
    ENV_LOG_FILE_LEVEL,
    resolve_level,
    setup_logging,
)

_STATE_STYLE = {
    "succeeded": ("✓", "green"),
    "failed": ("✗", "red"),
    "skipped": ("⊘", "yellow"),
}


@click.group()
@click.version_option(version=__version__, prog_name="buildrig")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to build.yml (default: search upward from the current directory).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """buildrig — self-bootstrapping build pipeline orchestrator."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get(ENV_LOG_FILE),
        log_file_level=os.environ.get(ENV_LOG_FILE_LEVEL),
    )


# ── run ─────────────────────────────────────────────────────────────


@cli.command()
@click.argument("targets", nargs=-1)
@click.option(
    "--param", "-p", "params", multiple=True, metavar="KEY=VALUE",
    help="Set a build parameter (repeatable).",
)
@click.option("--configuration", default=None, help="Build configuration (Debug or Release).")
@click.option("--parallelism", "-j", type=click.IntRange(min=1), default=None,
              help="Maximum concurrent action invocations.")
@click.option("--deadline", type=click.FloatRange(min=0), default=None,
              help="Stop dispatching new work after this many seconds.")
@click.option("--dry-run", is_flag=True, help="Walk the graph but don't execute actions.")
@click.option("--no-bootstrap", is_flag=True, help="Never download or install a toolchain.")
@click.option("--mock", is_flag=True, help="Use mock adapters (no real execution).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def run(
    ctx: click.Context,
    targets: tuple[str, ...],
    params: tuple[str, ...],
    configuration: str | None,
    parallelism: int | None,
    deadline: float | None,
    dry_run: bool,
    no_bootstrap: bool,
    mock: bool,
    as_json: bool,
) -> None:
    """Build TARGETS (the default target when none are given).

    Examples:

        buildrig run

        buildrig run pack -p api_key=$NUGET_KEY --configuration Release

        buildrig run test --dry-run -j 8
    """
    from buildrig.core.config.parameters import parse_assignments
    from buildrig.core.errors import ParameterError
    from buildrig.core.use_cases.run import EXIT_CONFIG, run_build

    try:
        arguments = parse_assignments(params)
    except ParameterError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(EXIT_CONFIG)

    quiet = ctx.obj.get("quiet", False)

    def progress(name, state):
        if as_json or quiet or state.value not in _STATE_STYLE:
            return
        icon, color = _STATE_STYLE[state.value]
        click.secho(f"   {icon} {name}", fg=color)

    result = run_build(
        targets=list(targets) or None,
        config_path=ctx.obj.get("config_path"),
        arguments=arguments,
        configuration=configuration,
        parallelism=parallelism,
        deadline=deadline,
        dry_run=dry_run,
        bootstrap=not no_bootstrap,
        mock_mode=mock,
        on_progress=progress,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    report = result.report
    if report is None:
        click.secho(f"❌ {result.redact(result.error)}", fg="red", err=True)
        sys.exit(result.exit_code)

    # ── Details ─────────────────────────────────────────────────
    verbose = ctx.obj.get("verbose", False)
    click.echo()
    for outcome in report.outcomes.values():
        if outcome.state.value == "failed":
            click.secho(f"   ✗ {outcome.name}: {result.redact(str(outcome.error))}", fg="red")
            for receipt in outcome.receipts:
                if receipt.failed and receipt.error:
                    click.echo(f"     │ {receipt.action_id}: {result.redact(receipt.error.splitlines()[0])}")
        elif outcome.state.value == "skipped" and verbose:
            click.secho(f"   ⊘ {outcome.name} ({outcome.reason})", fg="yellow")
        if verbose and len(outcome.receipts) > 1:
            for receipt in outcome.receipts:
                click.echo(f"     • {receipt.action_id} [{receipt.status}] ({receipt.duration_ms}ms)")

    # ── Summary ─────────────────────────────────────────────────
    mode_label = "[dry-run] " if dry_run else "[mock] " if mock else ""
    status_color = {"ok": "green", "partial": "yellow", "failed": "red"}.get(report.status, "white")
    click.secho(
        f"   {mode_label}Result: {len(report.succeeded)}/{len(report.outcomes)} succeeded, "
        f"{len(report.failed)} failed, {len(report.skipped)} skipped",
        fg=status_color,
        bold=True,
    )
    if result.error:
        click.secho(f"   ⚠️  {result.redact(result.error)}", fg="yellow")
    click.echo()

    sys.exit(result.exit_code)


# ── plan / targets ──────────────────────────────────────────────────


@cli.command()
@click.argument("targets", nargs=-1)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plan(ctx: click.Context, targets: tuple[str, ...], as_json: bool) -> None:
    """Show the execution order for TARGETS without running anything."""
    from buildrig.core.use_cases.plan import show_plan

    result = show_plan(list(targets) or None, config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if not result.valid:
        click.secho("❌ Invalid build graph:", fg="red", bold=True, err=True)
        for err in result.errors:
            click.echo(f"   • {err}", err=True)
        sys.exit(result.exit_code)

    assert result.plan is not None
    click.secho(f"\n📋 Execution plan ({len(result.plan)} targets)", fg="cyan", bold=True)
    for i, target in enumerate(result.plan.targets, 1):
        extras = []
        if target.fans_out:
            extras.append("matrix " + " × ".join(target.matrix))
        if target.policy.value != "fail-fast":
            extras.append(target.policy.value)
        if not target.load_bearing:
            extras.append("optional")
        suffix = f"  ({', '.join(extras)})" if extras else ""
        click.echo(f"   {i:>2}. {target.name}{suffix}")
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def targets(ctx: click.Context, as_json: bool) -> None:
    """List every declared target."""
    from buildrig.core.use_cases.plan import describe_target, list_targets

    result = list_targets(config_path=ctx.obj.get("config_path"))

    if as_json:
        data = result.to_dict()
        if result.graph is not None:
            data["targets"] = [describe_target(t) for t in result.graph]
        click.echo(json.dumps(data, indent=2))
        sys.exit(result.exit_code)

    if not result.valid:
        click.secho("❌ Invalid build graph:", fg="red", bold=True, err=True)
        for err in result.errors:
            click.echo(f"   • {err}", err=True)
        sys.exit(result.exit_code)

    assert result.graph is not None
    click.echo()
    for target in result.graph:
        default = " (default)" if target.name == result.graph.default else ""
        click.secho(f"   • {target.name}{default}", fg="white", bold=True, nl=False)
        click.echo(f"  {target.description}" if target.description else "")
        if target.depends_on and not ctx.obj.get("quiet"):
            click.echo(f"       depends on: {', '.join(target.depends_on)}")
    click.echo()


# ── toolchain ───────────────────────────────────────────────────────


@cli.command()
@click.option("--no-install", is_flag=True, help="Only report a system or cached runtime.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def toolchain(ctx: click.Context, no_install: bool, as_json: bool) -> None:
    """Resolve the build runtime, installing it privately if needed."""
    from buildrig.core.use_cases.toolchain import resolve_toolchain

    result = resolve_toolchain(config_path=ctx.obj.get("config_path"), install=not no_install)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(result.exit_code)

    if result.toolchain is None:
        click.secho("⊘ No system or cached toolchain", fg="yellow")
        click.echo(f"   Private install dir: {result.install_dir}")
        return

    spec = f" ({result.toolchain.spec})" if result.toolchain.spec else ""
    click.secho(f"✅ {result.toolchain.source} toolchain{spec}", fg="green", bold=True)
    click.echo(f"   {result.toolchain.executable}")


if __name__ == "__main__":
    cli()
