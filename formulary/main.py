"""
formulary — CLI entrypoint.

Usage:
    python -m formulary.main --help
    formulary install formulas/inkan-bin.yml
    formulary test inkan-bin
    formulary uninstall inkan-bin
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from formulary import __version__
from formulary.core.config.loader import FormulaError, resolve_formula
from formulary.core.config.settings import ConfigError, Settings, load_settings
from formulary.core.models.formula import Formula
from formulary.core.observability.logging_config import setup_logging
from formulary.core.prefix import Prefix

if TYPE_CHECKING:
    from formulary.core.services.install import OperationResult

_PLATFORMS = click.Choice(["mac", "linux"])


@click.group()
@click.version_option(version=__version__, prog_name="formulary")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--prefix",
    "prefix_path",
    type=click.Path(file_okay=False),
    default=None,
    help="Install prefix (default: ~/.local/formulary or $FORMULARY_PREFIX).",
)
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(exists=False, dir_okay=False),
    default=None,
    help="Path to settings YAML (default: ~/.config/formulary/config.yml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    prefix_path: str | None,
    settings_path: str | None,
) -> None:
    """formulary — install prebuilt tools from declarative formulas."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["prefix_path"] = Path(prefix_path) if prefix_path else None
    ctx.obj["settings_path"] = Path(settings_path) if settings_path else None

    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("FORMULARY_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("FORMULARY_LOG_FILE"),
        log_file_level=os.environ.get("FORMULARY_LOG_FILE_LEVEL"),
        quiet_progress=not debug,
    )


# ── Helpers ─────────────────────────────────────────────────────


def _settings(ctx: click.Context) -> Settings:
    """Load settings once per invocation; exit 1 on invalid config."""
    if "settings" not in ctx.obj:
        try:
            ctx.obj["settings"] = load_settings(ctx.obj.get("settings_path"))
        except ConfigError as e:
            click.secho(f"❌ {e}", fg="red")
            sys.exit(1)
    return ctx.obj["settings"]


def _prefix(ctx: click.Context) -> Prefix:
    explicit: Path | None = ctx.obj.get("prefix_path")
    return Prefix.at(explicit or _settings(ctx).prefix_path())


def _formula(ctx: click.Context, ref: str, as_json: bool = False) -> Formula:
    try:
        return resolve_formula(ref, _settings(ctx).search_paths())
    except FormulaError as e:
        if as_json:
            click.echo(json.dumps({"ok": False, "error": str(e)}, indent=2))
        else:
            click.secho(f"❌ {e}", fg="red")
        sys.exit(1)


def _report(ctx: click.Context, result: OperationResult, as_json: bool) -> None:
    """Print an OperationResult and exit 1 if it failed."""
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        if not result.ok:
            sys.exit(1)
        return

    quiet = ctx.obj.get("quiet", False)

    if result.ok:
        labels = {
            "installed": "🍺 Installed",
            "reinstalled": "🍺 Reinstalled",
            "already_installed": "✓ Already installed",
            "uninstalled": "🗑  Uninstalled",
            "passed": "✅ Smoke test passed",
            "fetched": "📦 Fetched",
        }
        label = labels.get(result.status, result.status)
        click.secho(f"{label}: {result.name} {result.version}", fg="green", bold=True)
        if not quiet:
            if result.platform:
                click.echo(f"   Platform: {result.platform}")
            if result.artifact_path:
                cached = " (cached)" if result.cached else ""
                click.echo(f"   Artifact: {result.artifact_path}{cached}")
            if ctx.obj.get("verbose"):
                for path in result.files:
                    click.echo(f"     • {path}")
            if result.smoke_test != "skipped":
                click.echo(f"   Smoke test: {result.smoke_test}")
            if result.caveats:
                click.echo()
                click.secho("   ⚠️  Caveats:", fg="yellow")
                for line in result.caveats.strip().splitlines():
                    click.echo(f"   {line}")
        click.echo()
        return

    if result.status == "installed_unverified":
        click.secho(
            f"⚠️  Installed {result.name} {result.version}, but the smoke test failed",
            fg="yellow", bold=True,
        )
    click.secho(f"❌ {result.error}", fg="red")
    sys.exit(1)


# ── Commands ────────────────────────────────────────────────────


@cli.command()
@click.argument("formula_ref", metavar="FORMULA")
@click.option("--platform", type=_PLATFORMS, default=None, help="Override OS detection.")
@click.option("--force", is_flag=True, help="Reinstall even if already installed.")
@click.option("--no-test", is_flag=True, help="Skip the post-install smoke test.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(
    ctx: click.Context,
    formula_ref: str,
    platform: str | None,
    force: bool,
    no_test: bool,
    as_json: bool,
) -> None:
    """Download, verify and install a formula.

    Examples:

        formulary install formulas/inkan-bin.yml

        formulary install inkan-bin --force
    """
    from formulary.core.services.install import install_formula

    formula = _formula(ctx, formula_ref, as_json)
    result = install_formula(
        formula,
        _prefix(ctx),
        _settings(ctx),
        platform=platform,
        force=force,
        run_test=False if no_test else None,
    )
    _report(ctx, result, as_json)


@cli.command("test")
@click.argument("formula_ref", metavar="FORMULA")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def test_cmd(ctx: click.Context, formula_ref: str, as_json: bool) -> None:
    """Run the smoke test of an installed formula."""
    from formulary.core.services.install import run_formula_test

    formula = _formula(ctx, formula_ref, as_json)
    _report(ctx, run_formula_test(formula, _prefix(ctx)), as_json)


@cli.command()
@click.argument("name")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def uninstall(ctx: click.Context, name: str, as_json: bool) -> None:
    """Remove an installed formula."""
    from formulary.core.services.install import uninstall_formula

    _report(ctx, uninstall_formula(name, _prefix(ctx)), as_json)


@cli.command()
@click.argument("formula_ref", metavar="FORMULA")
@click.option("--platform", type=_PLATFORMS, default=None, help="Override OS detection.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def fetch(ctx: click.Context, formula_ref: str, platform: str | None, as_json: bool) -> None:
    """Download and verify a formula's artifact into the cache."""
    from formulary.core.services.install import fetch_formula

    formula = _formula(ctx, formula_ref, as_json)
    _report(ctx, fetch_formula(formula, _settings(ctx), platform=platform), as_json)


@cli.command()
@click.argument("formula_ref", metavar="FORMULA")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def info(ctx: click.Context, formula_ref: str, as_json: bool) -> None:
    """Show a formula and whether it is installed."""
    from formulary.core.use_cases.status import formula_info

    result = formula_info(_formula(ctx, formula_ref, as_json), _prefix(ctx))
    data = result.to_dict()

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    click.secho(f"\n📋 {data['name']} {data['version']}", fg="cyan", bold=True)
    if data["desc"]:
        click.echo(f"   {data['desc']}")
    if data["homepage"]:
        click.echo(f"   🔗 {data['homepage']}")
    click.echo()

    click.secho("   Artifacts:", fg="white", bold=True)
    for platform, artifact in data["platforms"].items():
        click.echo(f"     • {platform}: {artifact['url']}")
        click.echo(f"       sha256 {artifact['sha256']}")

    click.secho("   Installs:", fg="white", bold=True)
    for target in data["install"]:
        click.echo(f"     • {target}")

    if data["conflicts_with"]:
        click.echo(f"   Conflicts with: {', '.join(data['conflicts_with'])}")

    click.echo()
    if data["installed"]:
        state = "✓ intact" if data["intact"] else "✗ files missing"
        click.echo(f"   Installed: {data['installed_version']} ({state})")
        if data["outdated"]:
            click.secho(f"   Outdated: formula is at {data['version']}", fg="yellow")
    else:
        click.echo("   Not installed")
    if data["conflicts"]:
        click.secho(f"   ⚠️  Conflicting installs: {', '.join(data['conflicts'])}", fg="yellow")
    click.echo()


@cli.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_cmd(ctx: click.Context, as_json: bool) -> None:
    """List installed formulas."""
    from formulary.core.use_cases.status import installed_status

    status = installed_status(_prefix(ctx))

    if as_json:
        click.echo(json.dumps(status.to_dict(), indent=2))
        return

    if not status.receipts:
        click.echo(f"Nothing installed in {status.prefix.root}")
        return

    click.secho(f"\n📦 {status.prefix.root}", fg="cyan", bold=True)
    for r in status.receipts:
        marker = " ✗ files missing" if r.name in status.broken else ""
        test = {"passed": "✓", "failed": "✗"}.get(r.smoke_test, "·")
        click.echo(f"   {test} {r.name:<24} {r.version:<14} [{r.platform}]{marker}")
    click.echo()


@cli.command()
@click.argument("formula_ref", metavar="FORMULA")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def check(ctx: click.Context, formula_ref: str, as_json: bool) -> None:
    """Validate a formula file."""
    from formulary.core.use_cases.formula_check import check_formula

    result = check_formula(formula_ref, _settings(ctx).search_paths())

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    formula = result.formula
    if result.valid and formula is not None:
        click.secho("✅ Formula is valid", fg="green", bold=True)
        click.echo(f"   Formula:   {formula.name} {formula.version}")
        click.echo(f"   Platforms: {', '.join(sorted(p.value for p in formula.platforms))}")
    else:
        click.secho("❌ Formula errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


@cli.command()
@click.option("--limit", "-n", default=20, type=int, help="Number of entries to show.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, limit: int, as_json: bool) -> None:
    """Show recent install operations."""
    from formulary.core.persistence.audit import AuditWriter

    entries = AuditWriter(_prefix(ctx).audit_path).read_recent(limit)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No history yet.")
        return

    for e in entries:
        color = "green" if e.status == "ok" else "red"
        click.echo(f"   {e.timestamp[:19]}  {e.operation_type:<10} ", nl=False)
        click.secho(f"{e.status:<7}", fg=color, nl=False)
        click.echo(f" {e.formula} {e.version}")
        if e.errors and ctx.obj.get("verbose"):
            for err in e.errors:
                click.echo(f"     │ {err.splitlines()[0]}")


if __name__ == "__main__":
    cli()
