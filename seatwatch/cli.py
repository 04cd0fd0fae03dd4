"""
CLI interface for SeatWatch.

Commands:
    rosters   — Show the available rosters (terms)
    search    — Search a subject's classes, e.g. "CS 21"
    track     — Start tracking a section by class number
    untrack   — Stop tracking a section
    list      — Show tracked sections and their last known status
    settings  — View or change sound, notification and polling settings
    watch     — Poll tracked sections and alert when one opens
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import click

from seatwatch import __version__
from seatwatch.config import POLLING_OPTIONS, WatchConfig, load_config


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------

@click.group()
@click.version_option(version=__version__, prog_name="seatwatch")
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False),
              help="JSON config file.")
@click.option("--db", default=None, help="Database URL for watcher state.")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output.")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], db: Optional[str], verbose: bool) -> None:
    """SeatWatch — track class sections and get alerted when a seat opens."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))
    if db:
        config.db_url = db
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


def _service(config: WatchConfig, **listeners):
    from seatwatch.console import ConsoleIndicators, ConsoleNotifier, TerminalBell
    from seatwatch.service import WatchService

    return WatchService(
        config,
        indicators=ConsoleIndicators(),
        tone=TerminalBell(),
        notifier=ConsoleNotifier(),
        **listeners,
    )


async def _load_catalog(service) -> None:
    await service.load_catalog()
    if service.init_error:
        await service.stop()
        raise click.ClickException(service.init_error)


# ---------------------------------------------------------------------------
# rosters
# ---------------------------------------------------------------------------

@cli.command()
@click.pass_context
def rosters(ctx: click.Context) -> None:
    """Show available rosters; the default one is starred."""
    service = _service(ctx.obj["config"])

    async def run() -> None:
        await _load_catalog(service)
        await service.stop()

    asyncio.run(run())
    for roster in service.rosters:
        marker = "*" if roster.slug == service.current_roster else " "
        click.echo(f" {marker} {roster.slug:8s} {roster.descr}")


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("query")
@click.pass_context
def search(ctx: click.Context, query: str) -> None:
    """Search classes, e.g. "CS", "CS 21" or "MATH1920"."""
    from seatwatch.search.coordinator import SearchInvalid

    service = _service(ctx.obj["config"])

    async def run():
        await _load_catalog(service)
        outcome = service.submit_search_input(query)
        await service.search.wait_idle()
        await service.stop()
        return outcome

    outcome = asyncio.run(run())
    if isinstance(outcome, SearchInvalid):
        click.echo("Enter a subject code to search (e.g. CS, MATH, INFO)")
        return
    if service.search.error is not None:
        raise click.ClickException(service.search.error.message)

    courses = service.search.results
    if not courses:
        click.echo("No classes found")
        return
    click.echo(f"Roster: {service.roster_label}")
    for course in courses:
        if not course.sections:
            continue
        count = len(course.sections)
        click.echo(f"\n{course.code}  {course.title} ({count} section{'s' if count != 1 else ''})")
        for sec in course.sections:
            click.echo(
                f"  {sec.class_nbr:>6s} | {sec.section:5s} | {sec.component:4s} | {sec.status.label}"
            )


# ---------------------------------------------------------------------------
# track / untrack / list
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("subject")
@click.argument("class_nbr")
@click.pass_context
def track(ctx: click.Context, subject: str, class_nbr: str) -> None:
    """Track section CLASS_NBR of SUBJECT in the default roster."""
    service = _service(ctx.obj["config"])

    async def run():
        service.restore_state()
        await _load_catalog(service)
        service.submit_search_input(subject)
        await service.search.wait_idle()
        error = service.search.error
        found = None
        for course in service.search.cached_courses:
            for sec in course.sections:
                if sec.class_nbr == class_nbr:
                    found = (course, sec)
        item = service.track_section(*found) if found else None
        await service.stop()
        return error, found, item

    error, found, item = asyncio.run(run())
    if error is not None:
        raise click.ClickException(error.message)
    if found is None:
        raise click.ClickException(f"Class {class_nbr} not found in {subject.upper()}.")
    if item is None:
        click.echo(f"Class {class_nbr} is already tracked.")
        return
    click.echo(f"Tracking {item.label} sec {item.section} ({item.last_status.label}).")


@cli.command()
@click.argument("class_nbr")
@click.option("--roster", default=None, help="Only untrack in this roster.")
@click.pass_context
def untrack(ctx: click.Context, class_nbr: str, roster: Optional[str]) -> None:
    """Stop tracking CLASS_NBR."""
    service = _service(ctx.obj["config"])
    service.restore_state()
    removed = service.untrack_section(class_nbr, roster)
    asyncio.run(service.stop())
    if not removed:
        click.echo(f"Class {class_nbr} is not tracked.")
        return
    for r, c in removed:
        click.echo(f"Untracked {r}:{c}")


@cli.command(name="list")
@click.pass_context
def list_tracked(ctx: click.Context) -> None:
    """Show tracked sections."""
    service = _service(ctx.obj["config"])
    service.restore_state()
    items = service.store.list()
    asyncio.run(service.stop())

    if not items:
        click.echo("No sections tracked yet")
        return
    click.echo(f"Tracked sections ({len(items)}):")
    for item in items:
        checked = item.last_checked_at.strftime("%Y-%m-%d %H:%M") if item.last_checked_at else "never"
        click.echo(
            f"  {item.roster:6s} | {item.class_nbr:>6s} | {item.label:12s} | "
            f"sec {item.section:5s} | {item.last_status.label:8s} | checked {checked}"
        )


# ---------------------------------------------------------------------------
# settings
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--sound/--no-sound", default=None, help="Play a tone when a section opens.")
@click.option("--notify/--no-notify", default=None, help="Send a notification when a section opens.")
@click.option("--interval", type=click.Choice([str(s) for s in POLLING_OPTIONS]), default=None,
              help="Polling interval in seconds.")
@click.pass_context
def settings(
    ctx: click.Context,
    sound: Optional[bool],
    notify: Optional[bool],
    interval: Optional[str],
) -> None:
    """View or change settings."""
    from seatwatch.tracker.database import StateDB

    config: WatchConfig = ctx.obj["config"]
    db = StateDB(config.db_url)
    current = db.load_settings(config.default_polling_interval)
    if sound is not None:
        current.sound_enabled = sound
    if notify is not None:
        current.notify_enabled = notify
    if interval is not None:
        current.polling_interval = int(interval)
    if sound is not None or notify is not None or interval is not None:
        db.save_settings(current)
    db.close()

    click.echo(f"Sound:         {'on' if current.sound_enabled else 'off'}")
    click.echo(f"Notifications: {'on' if current.notify_enabled else 'off'}")
    click.echo(f"Polling:       every {current.polling_interval}s")


# ---------------------------------------------------------------------------
# watch
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--interval", type=click.Choice([str(s) for s in POLLING_OPTIONS]), default=None,
              help="Override the polling interval for this run (also saved).")
@click.pass_context
def watch(ctx: click.Context, interval: Optional[str]) -> None:
    """Poll tracked sections until interrupted (Ctrl-C)."""

    def on_tick(result) -> None:
        stamp = result.checked_at.astimezone().strftime("%H:%M")
        if result.ok:
            click.echo(f"Updated: {stamp} ({result.updated} section(s), {result.fetches} request(s))")
        else:
            click.secho(f"Refresh failed at {stamp}: {result.error_message}", fg="red")

    service = _service(ctx.obj["config"], tick_listener=on_tick)

    async def run() -> None:
        async with service:
            if service.init_error:
                click.secho(service.init_error, fg="red")
            if interval is not None:
                service.set_polling_interval(int(interval))
            if not len(service.store):
                click.echo("No sections tracked yet. Use `seatwatch track` first.")
                return
            click.echo(
                f"Watching {len(service.store)} section(s) every "
                f"{service.settings.polling_interval}s. Keep this running to get alerted."
            )
            await asyncio.Event().wait()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        click.echo("\nStopped.")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
