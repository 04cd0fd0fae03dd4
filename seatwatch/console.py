"""
Terminal implementations of the alert ports.

Used by the command-line front end: indicators and notifications are
printed with click, and the alert tone is the terminal bell rung on a
fixed cadence until stopped.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import click

from seatwatch.tracker.store import SectionKey, TrackedSection

BELL_PERIOD_SECONDS = 1.5


class ConsoleIndicators:
    """Print a banner when a section opens and when its alert is withdrawn."""

    def show_indicator(self, section: TrackedSection) -> None:
        click.secho(
            f"  OPEN  {section.label} sec {section.section} ({section.component}) "
            f"[{section.roster}:{section.class_nbr}]",
            fg="green",
            bold=True,
        )

    def remove_indicator(self, key: SectionKey) -> None:
        click.secho(f"  alert cleared for {key[0]}:{key[1]}", dim=True)


class TerminalBell:
    """Ring the terminal bell every BELL_PERIOD_SECONDS while active."""

    def __init__(self, period: float = BELL_PERIOD_SECONDS) -> None:
        self.period = period
        self._task: Optional[asyncio.Task] = None

    @property
    def ringing(self) -> bool:
        return self._task is not None and not self._task.done()

    def start_tone(self) -> None:
        if self.ringing:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            click.echo("\a", nl=False)
            return
        self._task = loop.create_task(self._ring())

    def stop_tone(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _ring(self) -> None:
        while True:
            click.echo("\a", nl=False)
            await asyncio.sleep(self.period)


class ConsoleNotifier:
    def notify(self, title: str, body: str) -> None:
        click.secho(f"[{title}] {body}", fg="yellow", bold=True)
