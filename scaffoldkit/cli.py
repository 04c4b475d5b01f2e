"""Command-line interface: ``scaffoldkit`` / ``python -m scaffoldkit``.

Examples::

    scaffoldkit pack add ./packs/service-pack
    scaffoldkit pack add https://github.com/org/packs.git --ref v1.2.0
    scaffoldkit pack list
    scaffoldkit generate service-pack:api -t ./my-api --set name=orders
    scaffoldkit generate service-pack:api -t ./my-api --dry-run
    scaffoldkit state show -t ./my-api
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import yaml
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from scaffoldkit.config import Config
from scaffoldkit.errors import ScaffoldError
from scaffoldkit.generator.orchestrator import (
    DryRunPreview,
    GenerateRequest,
    GenerationOrchestrator,
    GenerationResult,
)
from scaffoldkit.state import ProjectStateManager
from scaffoldkit.store import PackResolver, PackStore, fetch_source
from scaffoldkit.utils import (
    console,
    format_duration,
    print_error,
    print_success,
    print_summary_table,
    print_warning,
)
from scaffoldkit.version import __version__

logger = logging.getLogger("scaffoldkit")


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=verbose)],
        force=True,
    )


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------


def _parse_pairs(pairs: list[str], option: str) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"{option} expects KEY=VALUE, got '{pair}'")
        parsed[key] = value
    return parsed


OUTPUT_TAIL_LINES = 20


def _tail(text: str, lines: int = OUTPUT_TAIL_LINES) -> str:
    kept = text.rstrip().splitlines()
    if len(kept) <= lines:
        return "\n".join(kept)
    return "\n".join([f"... ({len(kept) - lines} earlier line(s) omitted)", *kept[-lines:]])


def print_command_output(details: dict[str, Any]) -> None:
    """Show the exit code and captured output of a failed hook or check."""
    if "exitCode" not in details:
        return
    console.print(f"  Exit code: {details['exitCode']}")
    for label in ("stderr", "stdout"):
        text = details.get(label) or ""
        if text.strip():
            console.print(f"  {label}:", style="bold")
            console.print(_tail(text), markup=False, highlight=False)


def _load_data(args: argparse.Namespace) -> dict[str, Any]:
    data: dict[str, Any] = {}
    if args.data_file:
        try:
            loaded = yaml.safe_load(Path(args.data_file).read_text(encoding="utf-8")) or {}
        except OSError as exc:
            raise argparse.ArgumentTypeError(f"--data-file could not be read: {exc}") from exc
        except yaml.YAMLError as exc:
            raise argparse.ArgumentTypeError(f"--data-file is not valid YAML: {exc}") from exc
        if not isinstance(loaded, dict):
            raise argparse.ArgumentTypeError("--data-file must contain a mapping")
        data.update(loaded)
    data.update(_parse_pairs(args.set or [], "--set"))
    return data


# ---------------------------------------------------------------------------
# Pack commands
# ---------------------------------------------------------------------------


async def cmd_pack_add(config: Config, args: argparse.Namespace) -> None:
    store = PackStore(config)
    fetched = await fetch_source(
        args.source, cache_dir=config.cache_dir, ref=args.ref, timeout=config.fetch_timeout
    )
    try:
        result = await store.install(fetched.path, fetched.origin)
    finally:
        fetched.cleanup()

    if result.status.value == "already_installed":
        print_warning(f"{result.pack_id}@{result.version} is already installed")
    else:
        print_success(f"Installed {result.pack_id}@{result.version}")
    print_summary_table(
        {"Pack": result.pack_id, "Version": result.version, "Hash": result.hash, "Store": str(result.dest_dir)},
        title="Pack",
    )


async def cmd_pack_list(config: Config, args: argparse.Namespace) -> None:
    entries = await PackStore(config).list_packs()
    if not entries:
        console.print("[dim]No packs installed.[/dim]")
        return

    table = Table(title="Installed packs", show_header=True, header_style="bold cyan")
    table.add_column("Pack", no_wrap=True)
    table.add_column("Current")
    table.add_column("Installs", justify="right")
    table.add_column("Origin")
    for entry in entries:
        table.add_row(entry.id, entry.current_version, str(len(entry.installs)), entry.origin.type)
    console.print(table)


async def cmd_pack_versions(config: Config, args: argparse.Namespace) -> None:
    store = PackStore(config)
    versions = await PackResolver(store.registry).list_versions(args.pack_id)
    for index, version in enumerate(versions):
        marker = " [green](latest)[/green]" if index == 0 else ""
        console.print(f"  {version}{marker}")


async def cmd_pack_remove(config: Config, args: argparse.Namespace) -> None:
    result = await PackStore(config).remove(args.pack_id, args.version)
    removed = ", ".join(sorted({r.version for r in result.removed}))
    print_success(f"Removed {args.pack_id} {removed}")
    if result.remaining is not None:
        console.print(f"  Current version is now {result.remaining.current_version}")


# ---------------------------------------------------------------------------
# Generate
# ---------------------------------------------------------------------------


def print_preview(result: GenerationResult, preview: DryRunPreview) -> None:
    lines = [f"[bold]{result.pack_id}@{result.pack_version}[/bold] : {result.archetype_id}"]
    lines.append(f"Target: {result.target_dir}")
    lines.append("")
    for path in preview.creates:
        lines.append(f"  [green]CREATE[/green] {path}")
    for path in preview.modifies:
        lines.append(f"  [yellow]MODIFY[/yellow] {path}")
    if preview.patches:
        lines.append("")
        lines.append("Patches:")
        lines.extend(f"  {p.kind} {p.file} ({p.idempotency_key})" for p in preview.patches)
    if preview.post_generate:
        lines.append("")
        lines.append("Post-generate hooks:")
        lines.extend(f"  $ {cmd}" for cmd in preview.post_generate)
    if preview.checks:
        lines.append("")
        lines.append("Checks:")
        lines.extend(f"  $ {cmd}" for cmd in preview.checks)
    if preview.modifies:
        lines.append("")
        lines.append(
            f"[yellow]{len(preview.modifies)} existing file(s) would be overwritten; "
            "--force is required.[/yellow]"
        )
    console.print(Panel("\n".join(lines), title="Dry run (no files written)", border_style="cyan"))


def print_report(result: GenerationResult, verbose: bool = False) -> None:
    commit = result.commit
    created = len(commit.created) if commit else 0
    updated = len(commit.updated) if commit else 0
    print_success(
        f"Generated {result.pack_id}:{result.archetype_id} ({result.pack_version}) "
        f"into {result.target_dir}"
    )
    console.print(f"  Files: {created} created, {updated} updated")

    if result.patches and result.patches.results:
        console.print(
            f"  Patches: {result.patches.applied} applied, {result.patches.skipped} skipped"
        )
        for patch_result in result.patches.results:
            console.print(f"    {patch_result.report_line()}")
    for label, summary in (("Hooks", result.hooks), ("Checks", result.checks)):
        if summary and summary.total:
            console.print(
                f"  {label}: {summary.succeeded}/{summary.total} passed "
                f"in {format_duration(summary.duration)}"
            )

    if verbose:
        table = Table(title=f"Trace {result.trace.correlation_id}", header_style="bold cyan")
        table.add_column("Phase")
        table.add_column("Status")
        table.add_column("Duration", justify="right")
        for phase in result.trace.phases:
            table.add_row(phase.name, phase.status.value, format_duration(phase.duration or 0.0))
        console.print(table)


async def cmd_generate(config: Config, args: argparse.Namespace) -> None:
    request = GenerateRequest(
        ref=args.ref,
        target_dir=Path(args.target),
        version=args.version,
        data=_load_data(args),
        rename_rules=_parse_pairs(args.rename or [], "--rename"),
        force=args.force,
        dry_run=args.dry_run,
    )
    result = await GenerationOrchestrator(config).generate(request)
    if result.preview is not None:
        print_preview(result, result.preview)
    else:
        print_report(result, verbose=args.verbose)


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


async def cmd_state_show(config: Config, args: argparse.Namespace) -> None:
    state = await ProjectStateManager(config.state_dir_name).read(Path(args.target))
    if state is None:
        console.print(f"[dim]No scaffoldkit state in {args.target}.[/dim]")
        return

    table = Table(title=f"Generations (schema v{state.schema_version})", header_style="bold cyan")
    table.add_column("When", no_wrap=True)
    table.add_column("Pack")
    table.add_column("Archetype")
    table.add_column("Status")
    for record in state.generations:
        table.add_row(
            record.timestamp,
            f"{record.pack_id}@{record.pack_version}",
            record.archetype_id,
            record.status.value,
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scaffoldkit",
        description="Scaffold projects from versioned template packs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Examples::", 1)[1] if __doc__ else None,
    )
    parser.add_argument("--version", action="version", version=f"scaffoldkit {__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging and phase trace")
    parser.add_argument("--store-dir", default=None, help="Override the pack store directory")
    sub = parser.add_subparsers(dest="command", required=True)

    pack = sub.add_parser("pack", help="Manage installed packs")
    pack_sub = pack.add_subparsers(dest="pack_command", required=True)

    add = pack_sub.add_parser("add", help="Install a pack from a directory, git URL or zip URL")
    add.add_argument("source")
    add.add_argument("--ref", default=None, help="Git branch or tag")
    add.set_defaults(handler=cmd_pack_add)

    pack_sub.add_parser("list", help="List installed packs").set_defaults(handler=cmd_pack_list)

    versions = pack_sub.add_parser("versions", help="List installed versions of a pack")
    versions.add_argument("pack_id")
    versions.set_defaults(handler=cmd_pack_versions)

    remove = pack_sub.add_parser("remove", help="Remove a pack (or one version of it)")
    remove.add_argument("pack_id")
    remove.add_argument("--version", dest="version", default=None)
    remove.set_defaults(handler=cmd_pack_remove)

    gen = sub.add_parser("generate", help="Generate an archetype into a directory")
    gen.add_argument("ref", help="packId:archetypeId")
    gen.add_argument("--target", "-t", default=".", help="Target directory (default: .)")
    gen.add_argument("--version", dest="version", default=None, help="Exact pack version")
    gen.add_argument("--set", action="append", metavar="KEY=VALUE", help="Template variable")
    gen.add_argument("--data-file", default=None, help="YAML/JSON file with template variables")
    gen.add_argument("--rename", action="append", metavar="FROM=TO", help="Path rename rule")
    gen.add_argument("--force", action="store_true", help="Overwrite existing files")
    gen.add_argument("--dry-run", action="store_true", help="Preview without writing anything")
    gen.set_defaults(handler=cmd_generate)

    state = sub.add_parser("state", help="Inspect project state")
    state_sub = state.add_subparsers(dest="state_command", required=True)
    show = state_sub.add_parser("show", help="Show the generation history of a project")
    show.add_argument("--target", "-t", default=".")
    show.set_defaults(handler=cmd_state_show)

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.  Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = Config.from_env()
        if args.store_dir:
            config = Config(**{**config.model_dump(), "store_dir": Path(args.store_dir).resolve()})
        asyncio.run(args.handler(config, args))
    except ScaffoldError as exc:
        print_error(f"Error [{exc.code.value}]: {exc.message}")
        if exc.hint:
            console.print(exc.hint, style="dim", markup=False)
        print_command_output(exc.details)
        logger.debug("Error details: %s", exc.to_dict())
        return exc.exit_code
    except argparse.ArgumentTypeError as exc:
        print_error(f"Error: {exc}")
        return 2
    except KeyboardInterrupt:
        print_error("Interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
