"""Shared helpers for commands: config source resolution and live progress."""

import asyncio
import logging
import signal
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator

import click

from ..config import BUNDLED_SOURCE, Item, is_url, load_config_source
from ..errors import format_suggestion
from ..execution import STDERR, OutputEvent, ProcessExecutor
from ..history import add_to_history, most_recent
from ..installer import ItemStatus, Orchestrator
from ..paths import get_env_config_source

_logging = logging.getLogger(__name__)


def resolve_config_source(explicit: str | None) -> str:
    """Pick the config source: --config, $ONBOARD_CONFIG, last used, then bundled."""
    if explicit:
        return explicit
    env_source = get_env_config_source()
    if env_source:
        return env_source
    recent = most_recent()
    if recent:
        _logging.debug(f"Using most recent config from history: {recent}")
        return recent
    return BUNDLED_SOURCE


def normalize_source(source: str) -> str:
    if source == BUNDLED_SOURCE or is_url(source):
        return source
    return str(Path(source).expanduser().resolve())


def record_source(source: str) -> None:
    if source == BUNDLED_SOURCE:
        return
    try:
        add_to_history(source)
    except OSError as e:
        _logging.warning(f"Could not update config history: {e}")


async def open_orchestrator(obj: dict) -> Orchestrator:
    """Load the configured document and build an orchestrator for it.

    Raises:
        ConfigError: If the config cannot be loaded or validated
    """
    source = normalize_source(resolve_config_source(obj.get("config")))
    executor = ProcessExecutor()
    config = await load_config_source(source, executor)
    _logging.debug(f"Loaded config '{config.name}' from {source}")
    record_source(source)
    return Orchestrator(config, executor)


def require_items(orchestrator: Orchestrator, item_ids: list[str]) -> list[Item]:
    """Look up items by id, exiting with an error on the first unknown one."""
    items = []
    for item_id in item_ids:
        item = orchestrator.item(item_id)
        if item is None:
            click.echo(
                format_suggestion(
                    f"item '{item_id}' not found",
                    "run 'onboard status' to see available items",
                ),
                err=True,
            )
            sys.exit(1)
        items.append(item)
    return items


def follow_progress(orchestrator: Orchestrator, show_output: bool = True) -> Callable[[], None]:
    """Echo action starts and, optionally, every streamed output line."""
    last_status: dict[str, ItemStatus] = {}

    def on_state(item_id: str) -> None:
        state = orchestrator.state(item_id)
        previous = last_status.get(item_id)
        last_status[item_id] = state.status
        if state.status is ItemStatus.INSTALLING and previous is not ItemStatus.INSTALLING:
            item = orchestrator.item(item_id)
            click.secho(f"{state.action.progressive} {item.name}...", bold=True)

    def on_output(event: OutputEvent) -> None:
        for line in event.data.splitlines():
            if line.strip():
                color = "red" if event.stream == STDERR else None
                click.secho(f"  │ {line}", fg=color, dim=color is None)

    unsubscribers = [orchestrator.store.subscribe(on_state)]
    if show_output:
        unsubscribers.append(orchestrator.executor.bus.subscribe(None, on_output))

    def unsubscribe() -> None:
        for fn in unsubscribers:
            fn()

    return unsubscribe


@contextmanager
def cancel_on_interrupt(orchestrator: Orchestrator) -> Iterator[None]:
    """Turn Ctrl+C into cancellation of the running processes."""
    loop = asyncio.get_running_loop()

    def handle_interrupt() -> None:
        if orchestrator.cancel_all():
            click.echo("\nCancelling...", err=True)

    try:
        loop.add_signal_handler(signal.SIGINT, handle_interrupt)
        installed = True
    except (NotImplementedError, RuntimeError, ValueError) as e:
        _logging.debug(f"SIGINT handler unavailable: {e}")
        installed = False

    try:
        yield
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)
