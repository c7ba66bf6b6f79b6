"""Command line interface for Iconic."""

from __future__ import annotations

import asyncio
import copy
import difflib
from dataclasses import asdict
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Optional, Tuple, TypeVar

import click
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from iconic.classification import AnalysisError, OracleError
from iconic.config import ConfigError, ConfigManager, IconicConfig, resolve_with_precedence
from iconic.ingestion import Bundle
from iconic.library import Library, LibraryError, LibraryStatus
from iconic.log import configure_logging
from iconic.organization import OperationSummary, OrganizationError
from iconic.state import StateError

console = Console()

T = TypeVar("T")

_OPERATION_ERRORS = (
    AnalysisError,
    ConfigError,
    LibraryError,
    OracleError,
    OrganizationError,
    StateError,
)


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    details: Any | None = None,
    original: Exception | None = None,
) -> None:
    """Emit a standardized error and terminate the command appropriately.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        details: Optional structured details to include in the payload.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output to terminate the command.
        click.ClickException: For non-JSON flows to surface the error.
    """

    if json_output:
        payload: dict[str, Any] = {"error": {"code": code, "message": message}}
        if details is not None:
            payload["error"]["details"] = details
        console.print_json(data=payload)
        raise SystemExit(1)

    if isinstance(original, click.ClickException):
        raise original

    raise click.ClickException(message) from original


def _error_code(exc: Exception) -> str:
    """Derive a snake_case error code from an exception class name."""
    name = type(exc).__name__.removesuffix("Error") or "error"
    return "".join(f"_{char.lower()}" if char.isupper() else char for char in name).lstrip("_")


def _emit_message(message: Any, *, mode: str, quiet: bool, summary_only: bool) -> None:
    """Conditionally print CLI output according to quiet/summary settings.

    Args:
        message: Renderable or string to emit.
        mode: Output mode identifier (`detail`, `summary`, `warning`, or `error`).
        quiet: Whether quiet mode is active.
        summary_only: Whether only summary lines should be emitted.
    """

    if quiet and mode != "error":
        return

    important_modes = {"summary", "warning", "error"}
    if summary_only and mode not in important_modes:
        return

    console.print(message)


def _format_summary_line(command: str, root: Path | str, metrics: dict[str, Any]) -> str:
    """Return a consistent summary line for CLI commands.

    Args:
        command: Command name to include in the summary.
        root: Target root path relevant to the command.
        metrics: Ordered mapping of metric names to values.

    Returns:
        str: Rich-formatted summary string.
    """

    parts = ", ".join(f"{key}={value}" for key, value in metrics.items())
    return f"[green]{command} summary for {root}: {parts}.[/green]"


def _load_config(ctx: click.Context) -> IconicConfig:
    """Load the effective configuration and configure logging for the command."""
    manager = ConfigManager()
    manager.ensure_exists()
    config = manager.load()
    verbose = bool((ctx.find_root().obj or {}).get("verbose"))
    configure_logging(config.logging, manager.config_path.parent, verbose=verbose)
    return config


def _resolve_modes(
    ctx: click.Context,
    config: IconicConfig,
    *,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> Tuple[bool, bool]:
    """Combine quiet/summary flags with configured defaults.

    Returns:
        Tuple[bool, bool]: Effective ``(quiet, summary_only)``.

    Raises:
        click.ClickException: If the requested modes conflict.
    """

    explicit_quiet = ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE
    explicit_summary = ctx.get_parameter_source("summary_mode") == ParameterSource.COMMANDLINE

    quiet_enabled = quiet if explicit_quiet else config.cli.quiet_default
    summary_only = summary_mode if explicit_summary else config.cli.summary_default

    if json_output:
        if explicit_quiet and quiet_enabled:
            raise click.ClickException("--json cannot be combined with --quiet.")
        if explicit_summary and summary_only:
            raise click.ClickException("--json cannot be combined with --summary.")
        return False, False

    if quiet_enabled and summary_only:
        raise click.ClickException(
            "Quiet and summary modes cannot both be enabled. Adjust CLI defaults or flags."
        )
    return quiet_enabled, summary_only


def _run_with_library(
    path: str,
    config: IconicConfig,
    action: Callable[[Library], Awaitable[T]],
    *,
    persist: bool = True,
    on_status: Optional[Callable[[Optional[str]], None]] = None,
) -> T:
    """Open the library at ``path``, run ``action`` and flush pending state."""

    async def runner() -> T:
        library = Library(Path(path).expanduser(), config, on_status=on_status)
        try:
            await library.open()
            result = await action(library)
            if persist:
                await library.flush()
            return result
        finally:
            library.stop_analysis()

    return asyncio.run(runner())


def _bundle_table(bundles: Iterable[Bundle], title: str) -> Table:
    table = Table(title=title, show_lines=False)
    table.add_column("Name", style="bold")
    table.add_column("Category")
    table.add_column("Tags")
    table.add_column("Status")
    table.add_column("Path", overflow="fold")
    for bundle in bundles:
        name = f"[dim]{bundle.name} (duplicate)[/dim]" if bundle.is_duplicate else bundle.name
        table.add_row(
            name,
            bundle.category or "-",
            ", ".join(bundle.tags) or "-",
            bundle.status.value,
            bundle.path,
        )
    return table


def _bundle_payload(bundle: Bundle) -> dict[str, Any]:
    return bundle.model_dump(
        mode="json",
        include={
            "id",
            "name",
            "path",
            "category",
            "tags",
            "status",
            "is_duplicate",
            "content_hash",
        },
    )


def _emit_operation(
    command: str,
    root: str,
    summary: OperationSummary,
    *,
    json_output: bool,
    quiet: bool,
    summary_only: bool,
) -> None:
    """Render an operation summary as JSON or as a move table plus summary line."""

    if json_output:
        console.print_json(data=summary.model_dump(mode="json", by_alias=True))
        return

    if summary.manifest.moves:
        heading = "Planned moves" if summary.dry_run else "Moves"
        table = Table(title=heading)
        table.add_column("From", overflow="fold")
        table.add_column("To", overflow="fold")
        for record in summary.manifest.moves:
            table.add_row(record.original_path, record.new_path)
        _emit_message(table, mode="detail", quiet=quiet, summary_only=summary_only)

    for failure in summary.failures:
        _emit_message(f"[red]  - {failure}[/red]", mode="error", quiet=quiet, summary_only=summary_only)

    metrics: dict[str, Any] = {"dry_run": summary.dry_run}
    if summary.operation == "revert":
        metrics.update(restored=summary.restored, skipped=summary.skipped)
    else:
        metrics.update(
            moved=summary.moved,
            copies=summary.copies,
            duplicates_deleted=summary.deleted_duplicates,
            leftovers=summary.leftovers_relocated,
            skipped=summary.skipped,
        )
    metrics.update(failures=len(summary.failures), pruned=len(summary.pruned))
    _emit_message(
        _format_summary_line(command, root, metrics),
        mode="summary",
        quiet=quiet,
        summary_only=summary_only,
    )


def _assign_nested(target: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a nested value within a dictionary for a dotted path.

    Raises:
        ConfigError: If a non-mapping value is encountered along the path.
    """

    node = target
    for segment in path[:-1]:
        existing = node.get(segment)
        if existing is None:
            existing = {}
            node[segment] = existing
        elif not isinstance(existing, dict):
            raise ConfigError(
                f"Cannot assign into '{segment}' because it is not a mapping in the config file."
            )
        node = existing
    node[path[-1]] = value


def _output_options(func):
    """Attach the shared ``--json``, ``--summary`` and ``--quiet`` flags."""
    func = click.option("--quiet", is_flag=True, help="Suppress non-error output.")(func)
    func = click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")(
        func
    )
    func = click.option("--json", "json_output", is_flag=True, help="Emit JSON output.")(func)
    return func


_PATH_ARGUMENT = click.argument(
    "path", type=click.Path(exists=True, file_okay=False, path_type=str)
)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="iconic")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging on the console.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Iconic organizes plugin-preset libraries into category folders."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@cli.command()
@_PATH_ARGUMENT
@_output_options
@click.pass_context
def scan(
    ctx: click.Context, path: str, json_output: bool, summary_mode: bool, quiet: bool
) -> None:
    """Scan PATH, restore saved tags and flag duplicates."""
    try:
        config = _load_config(ctx)
        quiet_enabled, summary_only = _resolve_modes(
            ctx, config, json_output=json_output, summary_mode=summary_mode, quiet=quiet
        )

        async def action(library: Library) -> tuple[list[Bundle], LibraryStatus]:
            return library.collection.values(), await library.status()

        bundles, status_info = _run_with_library(path, config, action)
    except _OPERATION_ERRORS as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(
            data={
                "bundles": [_bundle_payload(bundle) for bundle in bundles],
                "leftovers": status_info.leftovers,
                "duplicates": status_info.duplicates,
            }
        )
        return

    _emit_message(
        _bundle_table(bundles, f"Bundles in {status_info.root}"),
        mode="detail",
        quiet=quiet_enabled,
        summary_only=summary_only,
    )
    _emit_message(
        _format_summary_line(
            "Scan",
            path,
            {
                "bundles": status_info.bundles,
                "leftovers": status_info.leftovers,
                "duplicates": status_info.duplicates,
            },
        ),
        mode="summary",
        quiet=quiet_enabled,
        summary_only=summary_only,
    )


@cli.command()
@_PATH_ARGUMENT
@click.option("--only", "only", multiple=True, help="Analyze only this bundle (repeatable).")
@_output_options
@click.pass_context
def analyze(
    ctx: click.Context,
    path: str,
    only: tuple[str, ...],
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Classify bundles in PATH using learned rules and the oracle."""
    try:
        config = _load_config(ctx)
        quiet_enabled, summary_only = _resolve_modes(
            ctx, config, json_output=json_output, summary_mode=summary_mode, quiet=quiet
        )

        def on_status(text: Optional[str]) -> None:
            if text:
                _emit_message(
                    f"[cyan]{text}[/cyan]", mode="detail", quiet=quiet_enabled, summary_only=summary_only
                )

        async def action(library: Library):
            selection = [bundle.id for bundle in library.resolve(only)] if only else None
            return await library.analyze(selection), library.last_summary

        report, executed = _run_with_library(
            path, config, action, on_status=None if json_output else on_status
        )
    except _OPERATION_ERRORS as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
        return

    if json_output:
        payload: dict[str, Any] = {"analysis": asdict(report)}
        if executed is not None:
            payload["organize"] = executed.model_dump(mode="json", by_alias=True)
        console.print_json(data=payload)
        return

    _emit_message(
        _format_summary_line(
            "Analyze",
            path,
            {
                "targets": report.targets,
                "memory_hits": report.memory_hits,
                "categorized": report.categorized,
                "retried": report.retried,
                "errors": report.errors,
                "reset": report.reset,
            },
        ),
        mode="summary",
        quiet=quiet_enabled,
        summary_only=summary_only,
    )
    if executed is not None:
        _emit_operation(
            "Organize",
            path,
            executed,
            json_output=False,
            quiet=quiet_enabled,
            summary_only=summary_only,
        )


@cli.command()
@_PATH_ARGUMENT
@click.option("--dry-run", is_flag=True, help="Preview changes without modifying files.")
@click.option("--single-tag", is_flag=True, help="Only copy bundles into their primary category.")
@click.option("--keep-duplicates", is_flag=True, help="Do not delete bundles flagged as duplicates.")
@_output_options
@click.pass_context
def org(
    ctx: click.Context,
    path: str,
    dry_run: bool,
    single_tag: bool,
    keep_duplicates: bool,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Move bundles in PATH into category folders."""
    try:
        config = _load_config(ctx)
        quiet_enabled, summary_only = _resolve_modes(
            ctx, config, json_output=json_output, summary_mode=summary_mode, quiet=quiet
        )

        async def action(library: Library) -> OperationSummary:
            return await library.organize(
                multi_tag=False if single_tag else None,
                deduplicate=False if keep_duplicates else None,
                dry_run=True if dry_run else None,
            )

        summary = _run_with_library(path, config, action)
    except _OPERATION_ERRORS as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
        return

    _emit_operation(
        "Organize",
        path,
        summary,
        json_output=json_output,
        quiet=quiet_enabled,
        summary_only=summary_only,
    )


@cli.command()
@_PATH_ARGUMENT
@click.option("--dry-run", is_flag=True, help="Preview changes without modifying files.")
@_output_options
@click.pass_context
def flatten(
    ctx: click.Context,
    path: str,
    dry_run: bool,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Move every nested bundle in PATH back to the root folder."""
    try:
        config = _load_config(ctx)
        quiet_enabled, summary_only = _resolve_modes(
            ctx, config, json_output=json_output, summary_mode=summary_mode, quiet=quiet
        )

        async def action(library: Library) -> OperationSummary:
            return await library.flatten(dry_run=dry_run)

        summary = _run_with_library(path, config, action)
    except _OPERATION_ERRORS as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
        return

    _emit_operation(
        "Flatten",
        path,
        summary,
        json_output=json_output,
        quiet=quiet_enabled,
        summary_only=summary_only,
    )


@cli.command()
@_PATH_ARGUMENT
@click.option("--dry-run", is_flag=True, help="Preview the rollback without applying it.")
@_output_options
@click.pass_context
def undo(
    ctx: click.Context,
    path: str,
    dry_run: bool,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Revert the last organize or flatten run in PATH."""
    try:
        config = _load_config(ctx)
        quiet_enabled, summary_only = _resolve_modes(
            ctx, config, json_output=json_output, summary_mode=summary_mode, quiet=quiet
        )

        async def action(library: Library) -> OperationSummary:
            return await library.undo(dry_run=dry_run)

        summary = _run_with_library(path, config, action)
    except _OPERATION_ERRORS as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
        return

    _emit_operation(
        "Undo",
        path,
        summary,
        json_output=json_output,
        quiet=quiet_enabled,
        summary_only=summary_only,
    )


@cli.command()
@_PATH_ARGUMENT
@click.argument("names", nargs=-1, required=True)
@click.option("--category", "-c", required=True, help="Category to apply.")
@click.option("--toggle", is_flag=True, help="Remove the category when every bundle already has it.")
@click.pass_context
def tag(ctx: click.Context, path: str, names: tuple[str, ...], category: str, toggle: bool) -> None:
    """Tag the bundles called NAMES with a category and learn from it."""
    try:
        config = _load_config(ctx)

        async def action(library: Library) -> list[Bundle]:
            ids = [bundle.id for bundle in library.resolve(names)]
            if toggle:
                return library.toggle_tag(ids, category)
            return library.quick_tag(ids, category)

        updated = _run_with_library(path, config, action)
    except _OPERATION_ERRORS as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=False, original=exc)
        return

    for bundle in updated:
        console.print(f"{bundle.name}: {', '.join(bundle.tags) or '-'}")
    console.print(f"[green]Updated {len(updated)} bundles.[/green]")


@cli.command()
@_PATH_ARGUMENT
@click.argument("name")
@click.argument("new_name")
@click.pass_context
def rename(ctx: click.Context, path: str, name: str, new_name: str) -> None:
    """Change the display name of bundle NAME (applied to files on org)."""
    try:
        config = _load_config(ctx)

        async def action(library: Library) -> list[Bundle]:
            return [
                library.rename_bundle(bundle.id, new_name) for bundle in library.resolve([name])
            ]

        updated = _run_with_library(path, config, action)
    except _OPERATION_ERRORS as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=False, original=exc)
        return

    console.print(f"[green]Renamed {len(updated)} bundle(s) to {updated[0].name}.[/green]")


@cli.command()
@_PATH_ARGUMENT
@click.argument("names", nargs=-1, required=True)
@click.option("--clear", is_flag=True, help="Remove the duplicate flag instead of setting it.")
@click.pass_context
def duplicate(ctx: click.Context, path: str, names: tuple[str, ...], clear: bool) -> None:
    """Flag bundles as duplicates (deleted on org) or clear the flag."""
    try:
        config = _load_config(ctx)

        async def action(library: Library) -> list[Bundle]:
            ids = [bundle.id for bundle in library.resolve(names)]
            return library.set_duplicate(ids, not clear)

        updated = _run_with_library(path, config, action)
    except _OPERATION_ERRORS as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=False, original=exc)
        return

    verb = "Restored" if clear else "Marked"
    console.print(f"[green]{verb} {len(updated)} bundles.[/green]")


@cli.group()
def categories() -> None:
    """Inspect and edit the category list of a library."""


def _category_command(
    ctx: click.Context, path: str, edit: Callable[[Library], Any], message: str
) -> None:
    try:
        config = _load_config(ctx)

        async def action(library: Library) -> list[str]:
            result = edit(library)
            if asyncio.iscoroutine(result):
                await result
            return library.categories.to_list()

        names = _run_with_library(path, config, action)
    except _OPERATION_ERRORS as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=False, original=exc)
        return

    if message:
        console.print(f"[green]{message}[/green]")
    for name in names:
        console.print(f"  {name}")


@categories.command("list")
@_PATH_ARGUMENT
@click.pass_context
def categories_list(ctx: click.Context, path: str) -> None:
    """Show the categories of PATH."""
    _category_command(ctx, path, lambda library: None, "")


@categories.command("add")
@_PATH_ARGUMENT
@click.argument("name")
@click.pass_context
def categories_add(ctx: click.Context, path: str, name: str) -> None:
    """Add category NAME."""
    _category_command(
        ctx, path, lambda library: library.add_category(name), f"Added category {name.strip()}."
    )


@categories.command("rename")
@_PATH_ARGUMENT
@click.argument("old")
@click.argument("new")
@click.pass_context
def categories_rename(ctx: click.Context, path: str, old: str, new: str) -> None:
    """Rename category OLD to NEW and retag every bundle using it."""
    _category_command(
        ctx,
        path,
        lambda library: library.rename_category(old, new),
        f"Renamed category {old} to {new.strip()}.",
    )


@categories.command("remove")
@_PATH_ARGUMENT
@click.argument("name")
@click.pass_context
def categories_remove(ctx: click.Context, path: str, name: str) -> None:
    """Remove category NAME and strip it from bundles."""
    _category_command(
        ctx, path, lambda library: library.remove_category(name), f"Removed category {name}."
    )


@categories.command("profile")
@_PATH_ARGUMENT
@click.argument("profile")
@click.pass_context
def categories_profile(ctx: click.Context, path: str, profile: str) -> None:
    """Replace the categories of PATH with a configured PROFILE."""
    _category_command(
        ctx,
        path,
        lambda library: library.apply_profile(profile),
        f"Applied profile {profile}.",
    )


@categories.command("suggest")
@_PATH_ARGUMENT
@click.option("--apply", "apply_changes", is_flag=True, help="Replace the list with the suggestion.")
@click.pass_context
def categories_suggest(ctx: click.Context, path: str, apply_changes: bool) -> None:
    """Ask the oracle for a category list that fits the bundles in PATH."""
    message = "Applied suggested categories." if apply_changes else "Suggested categories:"
    try:
        config = _load_config(ctx)

        async def action(library: Library) -> list[str]:
            return await library.suggest_categories(apply=apply_changes)

        names = _run_with_library(path, config, action, persist=apply_changes)
    except _OPERATION_ERRORS as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=False, original=exc)
        return

    console.print(f"[green]{message}[/green]")
    for name in names:
        console.print(f"  {name}")


@cli.group()
def rules() -> None:
    """Inspect and forget learned tagging rules."""


@rules.command("list")
@_PATH_ARGUMENT
@click.option("--json", "json_output", is_flag=True, help="Emit rules as JSON.")
@click.pass_context
def rules_list(ctx: click.Context, path: str, json_output: bool) -> None:
    """Show the rules learned for PATH."""
    try:
        config = _load_config(ctx)

        async def action(library: Library):
            return library.memory

        memory = _run_with_library(path, config, action, persist=False)
    except _OPERATION_ERRORS as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(
            data={key: rule.model_dump(mode="json") for key, rule in memory.items()}
        )
        return

    table = Table(title="Learned rules")
    table.add_column("Key", style="bold")
    table.add_column("Tags")
    table.add_column("Count", justify="right")
    table.add_column("Active")
    for key, rule in sorted(memory.items()):
        table.add_row(key, ", ".join(rule.tags), str(rule.count), "yes" if memory.is_strong(rule) else "no")
    console.print(table)


@rules.command("forget")
@_PATH_ARGUMENT
@click.argument("key")
@click.pass_context
def rules_forget(ctx: click.Context, path: str, key: str) -> None:
    """Forget the rule stored under normalized KEY."""
    try:
        config = _load_config(ctx)

        async def action(library: Library) -> bool:
            return library.forget_rule(key)

        removed = _run_with_library(path, config, action)
    except _OPERATION_ERRORS as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=False, original=exc)
        return

    if not removed:
        raise click.ClickException(f"No rule stored under {key!r}.")
    console.print(f"[green]Forgot rule for {key}.[/green]")


@cli.command()
@_PATH_ARGUMENT
@_output_options
@click.pass_context
def status(
    ctx: click.Context, path: str, json_output: bool, summary_mode: bool, quiet: bool
) -> None:
    """Display bundle counts, duplicates, rules and undo availability for PATH."""
    try:
        config = _load_config(ctx)
        quiet_enabled, summary_only = _resolve_modes(
            ctx, config, json_output=json_output, summary_mode=summary_mode, quiet=quiet
        )

        async def action(library: Library) -> LibraryStatus:
            return await library.status()

        info = _run_with_library(path, config, action, persist=False)
    except _OPERATION_ERRORS as exc:
        _handle_cli_error(str(exc), code=_error_code(exc), json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(data=asdict(info))
        return

    table = Table(title=f"Categories in {info.root}")
    table.add_column("Category", style="bold")
    table.add_column("Bundles", justify="right")
    for name, count in sorted(info.by_category.items()):
        table.add_row(name, str(count))
    _emit_message(table, mode="detail", quiet=quiet_enabled, summary_only=summary_only)

    statuses = ", ".join(f"{name}={count}" for name, count in sorted(info.by_status.items()))
    _emit_message(
        f"Statuses: {statuses or 'none'}", mode="detail", quiet=quiet_enabled, summary_only=summary_only
    )
    _emit_message(
        _format_summary_line(
            "Status",
            path,
            {
                "bundles": info.bundles,
                "leftovers": info.leftovers,
                "duplicates": info.duplicates,
                "rules": info.rules,
                "undo_available": info.undo_available,
            },
        ),
        mode="summary",
        quiet=quiet_enabled,
        summary_only=summary_only,
    )


@cli.group()
def config() -> None:
    """Manage Iconic configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules.

    Raises:
        click.ClickException: If configuration cannot be loaded.
    """
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        effective = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(effective.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    Raises:
        click.ClickException: If parsing, assignment, or validation fails.
    """
    manager = ConfigManager()
    manager.ensure_exists()

    before = manager.read_text().splitlines()
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise click.ClickException("KEY must specify a dotted path such as 'analysis.batch_size'.")

    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    try:
        file_data = manager.load_file_overrides()
        original_data = copy.deepcopy(file_data)
        _assign_nested(file_data, segments, parsed_value)
        resolve_with_precedence(defaults=IconicConfig(), file_overrides=file_data)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    if file_data == original_data:
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    manager.save(file_data)
    after = manager.read_text().splitlines()

    diff = list(
        difflib.unified_diff(
            before,
            after,
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
    )
    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {'.'.join(segments)}.[/green]")


@config.command("edit")
def config_edit() -> None:
    """Open the configuration file in an interactive editor session.

    Raises:
        click.ClickException: If edited content is invalid or cannot be saved.
    """
    manager = ConfigManager()
    manager.ensure_exists()

    original = manager.read_text()
    edited = click.edit(original, extension=".yaml")

    if edited is None:
        console.print("[yellow]Edit cancelled; no changes applied.[/yellow]")
        return

    if edited == original:
        console.print("[yellow]No changes detected.[/yellow]")
        return

    try:
        parsed = yaml.safe_load(edited) or {}
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Invalid YAML: {exc}") from exc

    if not isinstance(parsed, dict):
        raise click.ClickException("Configuration file must contain a top-level mapping.")

    try:
        resolve_with_precedence(defaults=IconicConfig(), file_overrides=parsed)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(parsed)
    console.print("[green]Configuration updated successfully.[/green]")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
