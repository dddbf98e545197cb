"""courier sessions — inspect and reset stored conversation sessions."""

from __future__ import annotations

from pathlib import Path

import click

from courier.config.models import CourierConfig
from courier.config.parser import ConfigError, load_config
from courier.sessions.store import SessionStore


def _open_store(config_file: str | None) -> SessionStore:
    try:
        config: CourierConfig = load_config(Path(config_file) if config_file else None)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc
    return SessionStore(config.sessions_file)


_config_option = click.option(
    "-f",
    "--file",
    "config_file",
    type=click.Path(exists=False),
    default=None,
    help="Path to courier.yaml (default: ./courier.yaml).",
)


@click.group()
def sessions() -> None:
    """Inspect or reset stored conversation sessions."""


@sessions.command("list")
@_config_option
def list_sessions(config_file: str | None) -> None:
    """List every conversation with a stored session."""
    store = _open_store(config_file)
    chat_ids = store.list_chat_ids()
    if not chat_ids:
        click.echo("No stored sessions.")
        return

    for chat_id in sorted(chat_ids):
        record = store.get_session(chat_id)
        if record is None:
            continue
        click.echo(
            f"  {chat_id}  {record.type:<5}  {record.session_id}  {record.last_active}"
        )
    click.echo(f"\n{len(chat_ids)} session(s) in {store.path}")


@sessions.command("clear")
@_config_option
@click.argument("chat_id", required=False)
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
def clear_sessions(config_file: str | None, chat_id: str | None, yes: bool) -> None:
    """Forget CHAT_ID's session, or every session when CHAT_ID is omitted.

    The next message in a cleared conversation starts a fresh agent session.
    """
    store = _open_store(config_file)

    if chat_id is not None:
        if chat_id not in store:
            raise click.ClickException(f"No stored session for {chat_id}")
        store.remove_session(chat_id)
        click.echo(f"Cleared session for {chat_id}")
        return

    count = len(store)
    if count == 0:
        click.echo("No stored sessions.")
        return
    if not yes:
        click.confirm(f"Clear all {count} session(s)?", abort=True)
    for existing in store.list_chat_ids():
        store.remove_session(existing)
    click.echo(f"Cleared {count} session(s)")
