"""Command line interface for ore-monitor.

Searches the Ore plugin catalog, shows plugin and version details, installs
plugin versions and checks a directory of installed plugins for updates.

Examples
--------
Check the plugins of a server:

    oremon check ./mods

Install a specific version into a directory:

    oremon install nucleus 2.1.4 --dir ./mods
"""

from __future__ import annotations

import contextlib
import enum
import logging
import typing as t
from pathlib import Path

import rich.console
import rich.logging
import rich.table
import typer
from rich.markup import escape

from oremon._private_path import PrivatePath
from oremon.client import CatalogClient
from oremon.config import Settings, load_settings
from oremon.errors import OreMonitorError
from oremon.installer import Installer
from oremon.inventory import scan
from oremon.models import (
    Category,
    Classification,
    PluginSummary,
    ProjectSort,
    ReconcilePolicy,
    ReconciliationResult,
    SearchPage,
    VersionRecord,
)
from oremon.reconcile import Reconciler
from oremon.resolver import (
    PluginResolution,
    VersionListResolution,
    VersionResolution,
    VersionResolver,
)

EXIT_USAGE = 2

app = typer.Typer(
    help="Search, install and check plugins from the Ore catalog.",
    invoke_without_command=True,
)
console = rich.console.Console()
err_console = rich.console.Console(stderr=True)


class Order(enum.StrEnum):
    ASC = "asc"
    DESC = "desc"


_STATUS_LABELS: dict[Classification, str] = {
    Classification.UP_TO_DATE: "[green]UP TO DATE[/green]",
    Classification.OUTDATED: "[yellow]OUTDATED[/yellow]",
    Classification.UNKNOWN_TO_CATALOG: "[dim]UNKNOWN[/dim]",
    Classification.UNPARSEABLE: "[red]UNPARSEABLE[/red]",
    Classification.LOOKUP_FAILED: "[red]ERROR[/red]",
}


def _setup_logging(verbose: bool) -> None:
    handler = rich.logging.RichHandler(console=err_console, show_path=False, show_time=False)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    ctx: typer.Context,
    config: t.Annotated[
        t.Optional[Path],
        typer.Option("--config", help="Settings file (YAML).", dir_okay=False),
    ] = None,
    api_key: t.Annotated[
        t.Optional[str],
        typer.Option("--api-key", help="Ore API key for privileged operations."),
    ] = None,
    verbose: t.Annotated[bool, typer.Option("--verbose", "-v", help="Log debug output.")] = False,
) -> None:
    """Search, install and check plugins from the Ore catalog."""
    _setup_logging(verbose)
    with _reporting():
        ctx.obj = load_settings(config, api_key=api_key)
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@contextlib.contextmanager
def _reporting() -> t.Iterator[None]:
    """Turn engine errors into an error line and a class-specific exit status."""
    try:
        yield
    except OreMonitorError as exc:
        err_console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise SystemExit(exc.exit_code) from exc
    except ValueError as exc:
        err_console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise SystemExit(EXIT_USAGE) from exc


def _settings(ctx: typer.Context) -> Settings:
    obj = ctx.find_root().obj
    return obj if isinstance(obj, Settings) else Settings()


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _fmt_time(value: t.Any) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value is not None else "-"


def render_search(page: SearchPage) -> None:
    table = rich.table.Table(title="Ore Plugins")
    table.add_column("Plugin ID", style="bold")
    table.add_column("Name")
    table.add_column("Owner")
    table.add_column("Promoted")
    table.add_column("Downloads", justify="right")
    table.add_column("Stars", justify="right")
    for plugin in page.plugins:
        table.add_row(
            escape(plugin.plugin_id),
            escape(plugin.name),
            escape(plugin.owner),
            escape(plugin.promoted.name) if plugin.promoted else "[dim]-[/dim]",
            str(plugin.stats.downloads),
            str(plugin.stats.stars),
        )
    console.print(table)
    shown = len(page.plugins)
    if shown:
        console.print(
            f"Showing {page.offset + 1}-{page.offset + shown} of {page.total}"
            f" (sort: {page.sort.value}, {page.order})"
        )
    else:
        console.print(f"No plugins at offset {page.offset} ({page.total} available).")


def render_plugin(summary: PluginSummary) -> None:
    console.print(f"[bold]Plugin ID :[/bold] {escape(summary.plugin_id)}")
    console.print(f"[bold]Name :[/bold] {escape(summary.name)}")
    console.print(f"[bold]Author :[/bold] {escape(summary.owner)}")
    console.print(f"[bold]Category :[/bold] {escape(summary.category)}")
    console.print(f"[bold]Description :[/bold] {escape(summary.description or '')}")
    console.print(f"[bold]Last Updated :[/bold] {_fmt_time(summary.last_updated)}")
    if summary.promoted_versions:
        for pv in summary.promoted_versions:
            tags = ", ".join(
                f"{tag.name} {tag.display_data or tag.data or ''}".strip() for tag in pv.tags
            )
            suffix = f" ({escape(tags)})" if tags else ""
            console.print(f"[bold]Promoted Version :[/bold] {escape(pv.version)}{suffix}")
    else:
        console.print("[bold]Promoted Version :[/bold] [dim]none[/dim]")
    console.print(f"[bold]Downloads :[/bold] {summary.stats.downloads}")
    console.print(f"[bold]Stars :[/bold] {summary.stats.stars}")


def render_version(record: VersionRecord) -> None:
    console.rule(f"[bold]{escape(record.plugin_id)} {escape(record.name)}[/bold]")
    console.print(f"[bold]Author :[/bold] {escape(record.author or '')}")
    console.print(f"[bold]Created at :[/bold] {_fmt_time(record.published_at)}")
    console.print(f"[bold]Review State :[/bold] {escape(record.review_state or '-')}")
    console.print(f"[bold]Promoted :[/bold] {'yes' if record.promoted else 'no'}")
    console.print(f"[bold]Tags :[/bold] {escape(', '.join(record.platform_tags))}")
    console.print(f"[bold]Dependencies :[/bold] {escape(', '.join(record.dependencies))}")
    console.print(f"[bold]Downloads :[/bold] {record.downloads}")
    size = f"{record.size_bytes or 0} bytes"
    console.print(f"[bold]File :[/bold] {escape(record.file_name or '-')} ({size})")
    console.print(f"[bold]MD5 :[/bold] {escape(record.md5 or 'Not Available')}")
    console.print(f"[bold]Download :[/bold] {escape(record.download_url)}")


def render_versions(resolution: VersionListResolution) -> None:
    table = rich.table.Table(title=f"Versions of {escape(resolution.plugin_id)}")
    table.add_column("Version", style="bold")
    table.add_column("Published")
    table.add_column("Promoted")
    table.add_column("Downloads", justify="right")
    table.add_column("Tags")
    for record in resolution.versions:
        table.add_row(
            escape(record.name),
            _fmt_time(record.published_at),
            "[green]yes[/green]" if record.promoted else "",
            str(record.downloads),
            escape(", ".join(record.platform_tags)),
        )
    console.print(table)
    console.print(f"{len(resolution.versions)} of {resolution.total} version(s)")


def render_check(results: list[ReconciliationResult], root: Path) -> None:
    table = rich.table.Table(title="Version Check")
    table.add_column("File")
    table.add_column("Plugin ID")
    table.add_column("Local Version")
    table.add_column("Remote Version")
    table.add_column("Status")
    for result in results:
        artifact = result.artifact
        try:
            shown = artifact.path.relative_to(root)
        except ValueError:
            shown = artifact.path
        remote = result.reference or "-"
        if result.error is not None:
            remote = f"[dim]{escape(str(result.error))}[/dim]"
        elif artifact.error is not None:
            remote = f"[dim]{escape(artifact.error.reason)}[/dim]"
        else:
            remote = escape(remote)
        table.add_row(
            escape(str(PrivatePath(shown))),
            escape(artifact.plugin_id or "-"),
            escape(artifact.version or "-"),
            remote,
            _STATUS_LABELS[result.classification],
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def search(
    ctx: typer.Context,
    query: t.Annotated[t.Optional[str], typer.Argument(help="Search text.")] = None,
    category: t.Annotated[
        t.Optional[list[Category]],
        typer.Option("--category", "-c", help="Category filter (repeatable)."),
    ] = None,
    tag: t.Annotated[
        t.Optional[list[str]],
        typer.Option("--tag", "-t", help="Tag filter (repeatable)."),
    ] = None,
    owner: t.Annotated[
        t.Optional[str],
        typer.Option("--owner", "-o", help="Project owner."),
    ] = None,
    sort: t.Annotated[
        t.Optional[ProjectSort],
        typer.Option("--sort", "-s", help="Sort strategy (default: updated)."),
    ] = None,
    order: t.Annotated[Order, typer.Option("--order", help="Result order.")] = Order.DESC,
    relevance: t.Annotated[
        t.Optional[bool],
        typer.Option(
            "--relevance/--no-relevance",
            help="Weigh relevance when sorting (default: the catalog's own choice).",
        ),
    ] = None,
    limit: t.Annotated[
        t.Optional[int],
        typer.Option("--limit", "-l", help="Page size, clamped to 1-25."),
    ] = None,
    offset: t.Annotated[int, typer.Option("--offset", help="Results to skip.")] = 0,
) -> None:
    """Search the catalog for plugins."""
    with _reporting(), CatalogClient(_settings(ctx)) as client:
        page = client.search(
            query,
            categories=[c.value for c in category or []],
            tags=tag or [],
            owner=owner,
            sort=sort,
            order=order.value,
            relevance=relevance,
            limit=limit,
            offset=offset,
        )
        render_search(page)


@app.command()
def plugin(
    ctx: typer.Context,
    plugin_id: t.Annotated[str, typer.Argument(help="The plugin ID to look up.")],
    version: t.Annotated[
        t.Optional[str],
        typer.Argument(help="Version name to inspect (with --versions)."),
    ] = None,
    versions: t.Annotated[
        bool,
        typer.Option("--versions", "-V", help="List versions, or inspect VERSION."),
    ] = False,
    tag: t.Annotated[
        t.Optional[list[str]],
        typer.Option("--tag", "-t", help="Version tag filter (repeatable)."),
    ] = None,
    limit: t.Annotated[
        t.Optional[int],
        typer.Option("--limit", "-l", help="Versions to list (default: all)."),
    ] = None,
    offset: t.Annotated[int, typer.Option("--offset", help="Versions to skip.")] = 0,
) -> None:
    """Show a plugin, its versions, or one version."""
    with _reporting(), CatalogClient(_settings(ctx)) as client:
        resolution = VersionResolver(client).resolve(
            plugin_id,
            versions=versions,
            version=version,
            limit=limit,
            offset=offset,
            tags=tag or [],
        )
        if isinstance(resolution, PluginResolution):
            render_plugin(resolution.summary)
        elif isinstance(resolution, VersionListResolution):
            render_versions(resolution)
        else:
            render_version(resolution.record)


@app.command()
def install(
    ctx: typer.Context,
    plugin_id: t.Annotated[str, typer.Argument(help="The plugin ID to install.")],
    version: t.Annotated[str, typer.Argument(help="The version to install.")],
    directory: t.Annotated[
        t.Optional[Path],
        typer.Option("--dir", "-d", help="Directory to install into.", file_okay=False),
    ] = None,
) -> None:
    """Install a plugin version."""
    with _reporting(), CatalogClient(_settings(ctx)) as client:
        path = Installer(client).install(plugin_id, version, directory)
    where = escape(str(PrivatePath(path.parent)))
    console.print(f"Installed [bold]'{escape(path.name)}'[/bold] into '{where}'")


@app.command()
def check(
    ctx: typer.Context,
    path: t.Annotated[
        Path,
        typer.Argument(help="Plugin file or directory to check."),
    ] = Path("."),
    policy: t.Annotated[
        t.Optional[ReconcilePolicy],
        typer.Option("--policy", "-p", help="Remote version to compare against."),
    ] = None,
    fail_outdated: t.Annotated[
        bool,
        typer.Option("--fail-outdated", help="Exit with code 1 when anything is outdated."),
    ] = False,
) -> None:
    """Compare local plugin versions against the catalog."""
    settings = _settings(ctx)
    with _reporting():
        artifacts = list(scan(path))
        if not artifacts:
            console.print(f"No plugin archives found in '{escape(str(PrivatePath(path)))}'.")
            return
        with CatalogClient(settings) as client:
            reconciler = Reconciler(
                client,
                policy=policy or settings.policy,
                max_workers=settings.max_workers,
            )
            results = reconciler.reconcile(artifacts)

    render_check(results, path if path.is_dir() else path.parent)
    outdated = sum(r.classification is Classification.OUTDATED for r in results)
    if outdated:
        console.print(f"\n[yellow]{outdated} plugin(s) outdated.[/yellow]")
    else:
        console.print("\n[green]No outdated plugins found.[/green]")
    if outdated and fail_outdated:
        raise SystemExit(1)


@app.command(name="help")
def help_(ctx: typer.Context) -> None:
    """Show this message and exit."""
    parent = ctx.parent or ctx
    console.print(parent.get_help())


if __name__ == "__main__":
    app()
