"""System prompt loading with ``{KEY}`` substitution."""

from __future__ import annotations

import logging
from importlib import resources
from pathlib import Path

from courier.constants import ChatType

logger = logging.getLogger(__name__)

#: Shared preamble prepended to every conversation prompt.
COMMON_PROMPT = "common.md"

#: Per-kind prompt files.
KIND_PROMPTS: dict[str, str] = {"dm": "dm.md", "group": "group.md"}


class PromptProvider:
    """Builds the system prompt for a conversation.

    ``common.md`` and ``dm.md`` / ``group.md`` are joined with a blank line
    and every ``{KEY}`` is replaced with its value.  Files missing from
    *prompts_dir* fall back to the copies bundled with the package.
    """

    def __init__(self, prompts_dir: Path | None = None) -> None:
        self._prompts_dir = prompts_dir

    @property
    def prompts_dir(self) -> Path | None:
        return self._prompts_dir

    def load(self, kind: ChatType, variables: dict[str, str]) -> str:
        common = self._read(COMMON_PROMPT)
        specific = self._read(KIND_PROMPTS[kind])

        combined = f"{common}\n\n{specific}"
        for key, value in variables.items():
            combined = combined.replace(f"{{{key}}}", value)
        return combined

    def _read(self, filename: str) -> str:
        if self._prompts_dir is not None:
            path = self._prompts_dir / filename
            if path.is_file():
                return path.read_text(encoding="utf-8")
            logger.debug("%s not found in %s, using bundled copy", filename, self._prompts_dir)
        return bundled_prompt(filename)


def bundled_prompt(filename: str) -> str:
    """Return the text of a prompt file shipped inside the package."""
    return resources.files("courier").joinpath("prompts", filename).read_text(encoding="utf-8")
