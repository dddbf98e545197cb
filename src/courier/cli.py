"""Root CLI group and version flag."""

import signal

import click

from courier import __version__
from courier.commands.down import down
from courier.commands.init import init
from courier.commands.sessions import sessions
from courier.commands.up import up

# A closed stdout pipe must not kill the process mid-turn.
if hasattr(signal, "SIGPIPE"):
    signal.signal(signal.SIGPIPE, signal.SIG_IGN)


@click.group()
@click.version_option(version=__version__, prog_name="courier")
def cli() -> None:
    """Courier — Signal conversations routed to Claude agents."""


cli.add_command(init)
cli.add_command(up)
cli.add_command(down)
cli.add_command(sessions)
