"""courier init — scaffold a new courier deployment."""

from __future__ import annotations

from pathlib import Path

import click

from courier.agent.prompts import COMMON_PROMPT, KIND_PROMPTS, bundled_prompt
from courier.config.parser import DEFAULT_CONFIG_NAME

ENV_EXAMPLE_FILENAME = ".env.example"
PROMPTS_DIRNAME = "prompts"

TEMPLATE_YAML = """\
# courier configuration
agent_name: Courier

# The assistant's own Signal number (E.164). signal-cli must already be
# registered or linked for it.
agent_phone_number: "+15551234567"

# model: claude-sonnet-4-5-20250929
# data_dir: data          # sessions.json and the run journal
# workspace: .            # agent working directory; attachments go to ./downloads
prompts_dir: prompts
# turn_timeout: 600       # seconds before a turn is abandoned

# transport:
#   command: signal-cli
#   attachments_dir: ~/.local/share/signal-cli/attachments

# Extra MCP servers available to every conversation. ${VAR} is read from
# the environment; ${DATA_DIR} is the data directory.
# mcp_servers:
#   memes:
#     type: stdio
#     command: meme-mcp
#     env:
#       IMGFLIP_USERNAME: ${IMGFLIP_USERNAME}
#   search:
#     type: sse
#     url: http://localhost:8080/sse
#     enabled: false
"""

TEMPLATE_ENV_EXAMPLE = """\
# Copy this file to .env and fill in the values.
# Values here override the matching courier.yaml keys.

ANTHROPIC_API_KEY=
# AGENT_NAME=
# AGENT_PHONE_NUMBER=
# ANTHROPIC_MODEL=
# DATA_DIR=
"""


def _write(path: Path, content: str, force: bool) -> None:
    if path.exists() and not force:
        click.echo(f"  Skipped {path.name} (already exists)")
        return
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise click.ClickException(f"Cannot write {path.name}: {exc}") from exc
    click.echo(f"  Created {path.name}")


@click.command()
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite existing files.",
)
def init(force: bool) -> None:
    """Scaffold courier.yaml, .env.example and editable prompts."""
    cwd = Path.cwd()
    config_path = cwd / DEFAULT_CONFIG_NAME

    if config_path.exists() and not force:
        raise click.ClickException(
            f"{DEFAULT_CONFIG_NAME} already exists. Use --force to overwrite."
        )

    _write(config_path, TEMPLATE_YAML, force=True)
    _write(cwd / ENV_EXAMPLE_FILENAME, TEMPLATE_ENV_EXAMPLE, force)

    prompts_dir = cwd / PROMPTS_DIRNAME
    prompts_dir.mkdir(exist_ok=True)
    for filename in (COMMON_PROMPT, *KIND_PROMPTS.values()):
        _write(prompts_dir / filename, bundled_prompt(filename), force)

    click.echo()
    click.echo("Next steps:")
    click.echo(f"  1. Set agent_phone_number in {DEFAULT_CONFIG_NAME}")
    click.echo("  2. Copy .env.example to .env and add your API key")
    click.echo("  3. Run `courier up`")
