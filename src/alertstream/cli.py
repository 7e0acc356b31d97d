"""CLI entry point for alertstream."""

from __future__ import annotations

import click

from .core.enums import EventStoreBackend, ReadStoreBackend
from .core.ids import parse_uuid


def _overrides(event_store: str | None, read_store: str | None) -> dict:
    overrides: dict = {}
    if event_store:
        overrides["event_store"] = {"backend": event_store}
    if read_store:
        overrides["read_store"] = read_store
    return overrides


_config_option = click.option(
    "--config", default=None, help="Config file path (TOML)",
)
_event_store_option = click.option(
    "--event-store",
    type=click.Choice([b.value for b in EventStoreBackend]),
    default=None,
    help="Event store backend override",
)
_read_store_option = click.option(
    "--read-store",
    type=click.Choice([b.value for b in ReadStoreBackend]),
    default=None,
    help="Read store backend override",
)


@click.group()
def main() -> None:
    """Event-sourced alert lifecycle service."""


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@_config_option
@_event_store_option
@_read_store_option
def ingest(file: str, config: str | None, event_store: str | None, read_store: str | None) -> None:
    """Ingest inbound alert messages from a JSON Lines FILE."""
    import asyncio

    from .main import run_ingest

    report = asyncio.run(
        run_ingest(file, config_path=config, overrides=_overrides(event_store, read_store))
    )
    click.echo(
        f"Accepted {report.accepted}, invalid {report.invalid}, failed {report.failed}"
    )


@main.command()
@_config_option
@_event_store_option
@_read_store_option
def rebuild(config: str | None, event_store: str | None, read_store: str | None) -> None:
    """Drop the read model and replay every stored event into it."""
    import asyncio

    from .main import run_rebuild

    count = asyncio.run(
        run_rebuild(config_path=config, overrides=_overrides(event_store, read_store))
    )
    click.echo(f"Rebuilt projection from {count} events.")


@main.command()
@click.argument("alert_id")
@_config_option
@_event_store_option
def show(alert_id: str, config: str | None, event_store: str | None) -> None:
    """Replay one alert from the event store and print its state."""
    import asyncio

    from .core.errors import AlertNotFound
    from .main import run_show

    try:
        aid = parse_uuid(alert_id)
    except ValueError:
        raise click.BadParameter(f"not a UUID: {alert_id}", param_hint="ALERT_ID") from None

    try:
        state = asyncio.run(
            run_show(aid, config_path=config, overrides=_overrides(event_store, None))
        )
    except AlertNotFound:
        click.echo(f"Alert {alert_id} not found.")
        raise SystemExit(1)

    click.echo(f"Alert {state.alert_id}  [{state.status.value}]  v{state.version}")
    click.echo(f"  severity:     {state.severity.value}")
    click.echo(f"  description:  {state.description}")
    click.echo(f"  source:       {state.source}")
    click.echo(f"  created:      {state.created_at.isoformat()}")
    click.echo(f"  updated:      {state.updated_at.isoformat()}")
    if state.assignee:
        click.echo(f"  assignee:     {state.assignee}")
    for label, by, at in (
        ("acknowledged", state.acknowledged_by, state.acknowledged_at),
        ("resolved", state.resolved_by, state.resolved_at),
        ("closed", state.closed_by, state.closed_at),
        ("deleted", state.deleted_by, state.deleted_at),
    ):
        if at is not None:
            click.echo(f"  {label + ':':<14}{by or '-'} at {at.isoformat()}")
    for note in state.notes:
        click.echo(f"  note [{note.timestamp.isoformat()}] {note.author}: {note.text}")


if __name__ == "__main__":
    main()
