"""Main CLI entry point for DashboardTV.

The commands operate on the persisted state under the data directory, so a
``configure`` followed by ``status`` or ``next`` in separate invocations sees
the same targets.
"""

import asyncio
import sys
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import IO, Any, AsyncIterator, Callable, Coroutine, Optional, Tuple, TypeVar

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from dashboardtv import __version__
from dashboardtv.core.config import BackendId, RotationState, SelectionPolicy
from dashboardtv.core.context import DATA_DIR_ENV, AppContext, default_data_dir
from dashboardtv.core.selector import BackendSelector
from dashboardtv.core.shelf import ShelfSnapshot, read_shelf
from dashboardtv.utils.log import enable_file_logging, get_logger

console = Console()
logger = get_logger()

T = TypeVar("T")


def _run(factory: Callable[[], Coroutine[Any, Any, T]]) -> T:
    return asyncio.run(factory())


@asynccontextmanager
async def _open_context(data_dir: Path) -> AsyncIterator[AppContext]:
    context = AppContext.create(data_dir)
    try:
        yield context
    finally:
        await context.aclose()


def _print_state(state: RotationState) -> None:
    if not state.targets:
        console.print("[yellow]No dashboards configured[/yellow]")
        return
    table = Table(title="Dashboards")
    table.add_column("#", justify="right")
    table.add_column("Name")
    table.add_column("URL")
    for index, target in enumerate(state.targets):
        marker = "▶ " if index == state.current_index else ""
        table.add_row(f"{marker}{index + 1}", escape(target.name or ""), escape(target.url))
    console.print(table)


def _print_current(state: RotationState) -> None:
    target = state.current_target
    if target is None:
        console.print("[yellow]No current dashboard[/yellow]")
        return
    console.print(
        f"[cyan]{state.current_index + 1}/{len(state.targets)}[/cyan] {escape(target.display_name)}"
    )


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar=DATA_DIR_ENV,
    default=None,
    help="Directory holding persisted state (default: ~/.dashboardtv)",
)
@click.option("--log-file", is_flag=True, help="Also write debug logs under the data directory")
@click.pass_context
def cli(ctx: click.Context, data_dir: Optional[Path], log_file: bool) -> None:
    """Rotate through dashboards pushed from the companion app."""
    ctx.ensure_object(dict)
    resolved = data_dir or default_data_dir()
    ctx.obj["data_dir"] = resolved
    if log_file:
        enable_file_logging(resolved)


@cli.command(name="status")
@click.pass_context
def status_cmd(ctx: click.Context) -> None:
    """Show dashboards, rotation settings and AI backend preferences."""

    async def _status() -> None:
        async with _open_context(ctx.obj["data_dir"]) as context:
            _print_state(context.controller.state)
            settings = context.controller.settings
            console.print(f"Rotation interval: {settings.rotation_interval_seconds:g}s")
            console.print(f"Dark mode: {settings.dark_mode_enabled}")
            console.print(f"AI assist: {settings.ai_assist_enabled}")
            console.print(f"Alert threshold: {settings.alert_threshold:g}")
            prefs = context.selector.preferences
            console.print(f"AI backend: {prefs.selected_backend} (enabled: {prefs.ai_enabled})")
            console.print(f"Model: {prefs.selected_model}")
            for backend in BackendId:
                console.print(f"  {backend.display_name}: {prefs.base_urls[backend]}")

    _run(_status)


@cli.command(name="configure")
@click.argument("config_file", type=click.File("r"))
@click.pass_context
def configure_cmd(ctx: click.Context, config_file: IO[str]) -> None:
    """Apply a configuration push from CONFIG_FILE ("-" reads stdin)."""
    raw = config_file.read()

    async def _configure() -> RotationState:
        async with _open_context(ctx.obj["data_dir"]) as context:
            context.receiver.handle_json(raw, source=getattr(config_file, "name", None))
            return context.controller.state

    try:
        state = _run(_configure)
    except ValidationError as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from exc
    console.print(f"[green]Configured {len(state.targets)} dashboard(s)[/green]")
    _print_state(state)


def _step(data_dir: Path, forward: bool) -> RotationState:
    async def _move() -> RotationState:
        async with _open_context(data_dir) as context:
            if forward:
                context.controller.next()
            else:
                context.controller.previous()
            return context.controller.state

    return _run(_move)


@cli.command(name="next")
@click.pass_context
def next_cmd(ctx: click.Context) -> None:
    """Show the next dashboard."""
    _print_current(_step(ctx.obj["data_dir"], forward=True))


@cli.command(name="previous")
@click.pass_context
def previous_cmd(ctx: click.Context) -> None:
    """Show the previous dashboard."""
    _print_current(_step(ctx.obj["data_dir"], forward=False))


@cli.command(name="probe")
@click.pass_context
def probe_cmd(ctx: click.Context) -> None:
    """Probe the AI backends and report which one is active."""

    async def _probe() -> None:
        async with _open_context(ctx.obj["data_dir"]) as context:
            selector = context.selector
            await selector.probe_all()
            table = Table(title="AI Backends")
            table.add_column("Backend")
            table.add_column("URL")
            table.add_column("Available")
            for descriptor in selector.descriptors():
                table.add_row(
                    descriptor.backend_id.display_name,
                    escape(descriptor.base_url),
                    "[green]yes[/green]" if descriptor.available else "[red]no[/red]",
                )
            console.print(table)
            if selector.ollama_models:
                console.print(f"Ollama models: {', '.join(selector.ollama_models)}")
            console.print(f"Status: {selector.status_text()}")

    _run(_probe)


@cli.command(name="suggest")
@click.option("--hour", type=click.IntRange(0, 23), default=None, help="Hour of day (default: now)")
@click.option("--apply", "apply_order", is_flag=True, help="Reorder the saved dashboards")
@click.pass_context
def suggest_cmd(ctx: click.Context, hour: Optional[int], apply_order: bool) -> None:
    """Ask the active AI backend for a dashboard priority order."""

    async def _suggest() -> Tuple[Optional[list], RotationState]:
        async with _open_context(ctx.obj["data_dir"]) as context:
            await context.selector.probe_all()
            names = [target.display_name for target in context.controller.targets]
            hour_of_day = datetime.now().hour if hour is None else hour
            suggestion = await context.selector.suggest_priority(names, hour_of_day)
            if suggestion and apply_order:
                context.controller.apply_priority(suggestion)
            return suggestion, context.controller.state

    suggestion, state = _run(_suggest)
    if not suggestion:
        console.print("[yellow]No suggestion[/yellow]")
        return
    for position, name in enumerate(suggestion, start=1):
        console.print(f"{position}. {escape(name)}")
    if apply_order:
        _print_state(state)


@cli.command(name="backend")
@click.option(
    "--select",
    "selection",
    type=click.Choice(["auto"] + [backend.value for backend in BackendId]),
    default=None,
    help="Backend to use, or auto to prefer the local server",
)
@click.option("--url", "urls", multiple=True, metavar="BACKEND=URL", help="Set a backend base URL")
@click.option("--model", default=None, help="Ollama model name")
@click.option("--enable/--disable", "enabled", default=None, help="Turn AI assistance on or off")
@click.pass_context
def backend_cmd(
    ctx: click.Context,
    selection: Optional[str],
    urls: Tuple[str, ...],
    model: Optional[str],
    enabled: Optional[bool],
) -> None:
    """Edit AI backend preferences."""
    parsed_urls = []
    for item in urls:
        key, sep, value = item.partition("=")
        if not sep or not value:
            raise click.BadParameter(f"expected BACKEND=URL, got {item!r}", param_hint="--url")
        try:
            parsed_urls.append((BackendId(key), value))
        except ValueError as exc:
            raise click.BadParameter(f"unknown backend {key!r}", param_hint="--url") from exc

    async def _edit() -> str:
        async with _open_context(ctx.obj["data_dir"]) as context:
            selector = context.selector
            if selection is not None:
                selector.set_policy(SelectionPolicy.from_selection(selection))
            for backend, value in parsed_urls:
                selector.set_base_url(backend, value)
            if model is not None:
                selector.set_model(model)
            if enabled is not None:
                selector.set_ai_enabled(enabled)
            return selector.preferences.model_dump_json(indent=2)

    console.print(_run(_edit), markup=False)


@cli.command(name="run")
@click.option("--probe/--no-probe", default=True, help="Probe AI backends on start")
@click.option(
    "--priority-every",
    type=click.FloatRange(min=0),
    default=3600.0,
    show_default=True,
    help="Seconds between AI priority refreshes (0 disables)",
)
@click.option(
    "--watch-every",
    type=click.FloatRange(min=0, min_open=True),
    default=2.0,
    show_default=True,
    help="Seconds between checks for changes saved by other commands",
)
@click.pass_context
def run_cmd(ctx: click.Context, probe: bool, priority_every: float, watch_every: float) -> None:
    """Rotate through the saved dashboards until interrupted.

    ``configure``, ``next`` and ``backend`` run from another shell take
    effect within ``--watch-every`` seconds.
    """

    async def _rotate() -> None:
        async with _open_context(ctx.obj["data_dir"]) as context:
            controller = context.controller
            selector = context.selector
            last_ai_status = ""

            def _print_ai_status(changed: BackendSelector) -> None:
                nonlocal last_ai_status
                text = changed.status_text()
                if text != last_ai_status:
                    last_ai_status = text
                    console.print(f"AI: {text}")

            controller.add_listener(_print_current)
            selector.add_listener(_print_ai_status)
            if probe:
                await selector.probe_all()
            _print_ai_status(selector)
            if not controller.targets:
                console.print("[yellow]No dashboards configured yet; waiting for one[/yellow]")
            controller.start()

            async def _refresh_priority() -> None:
                while priority_every > 0:
                    await controller.refresh_priority(selector)
                    await asyncio.sleep(priority_every)

            async def _follow_store() -> None:
                while True:
                    await asyncio.sleep(watch_every)
                    context.sync_from_disk()

            await asyncio.gather(_refresh_priority(), _follow_store())

    try:
        _run(_rotate)
    except KeyboardInterrupt:
        console.print("\n[yellow]Rotation stopped[/yellow]")


@cli.command(name="shelf")
@click.option("--clear", "clear_shelf", is_flag=True, help="Remove the published entries")
@click.pass_context
def shelf_cmd(ctx: click.Context, clear_shelf: bool) -> None:
    """Show the data published for the Top Shelf extension."""

    async def _shelf() -> ShelfSnapshot:
        async with _open_context(ctx.obj["data_dir"]) as context:
            if clear_shelf:
                context.shelf.clear()
            return read_shelf(context.shared_store)

    snapshot = _run(_shelf)
    console.print(f"Current: {escape(snapshot.current_dashboard_url or '-')}")
    console.print(f"Rotation enabled: {snapshot.rotation_enabled}")
    console.print(f"Last update: {snapshot.last_update_time or '-'}")
    if not snapshot.dashboards:
        console.print("[yellow]No dashboards published[/yellow]")
        return
    table = Table(title="Top Shelf")
    table.add_column("Name")
    table.add_column("URL")
    for entry in snapshot.dashboards:
        table.add_row(escape(entry["name"]), escape(entry["url"]))
    console.print(table)


@cli.command(name="version")
def version_cmd() -> None:
    """Show version information"""
    console.print(f"DashboardTV version {__version__}")


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)
    except SystemExit:
        raise
    except (RuntimeError, ValueError, OSError, click.ClickException) as e:
        console.print(f"[red]Fatal error: {escape(str(e))}[/red]")
        logger.warning(
            "[cli] Fatal error in main CLI entrypoint: %s: %s",
            type(e).__name__,
            e,
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
