"""GroupCache — resolves Signal group ids to display names."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


class GroupCache:
    """Group id to name mapping built from ``signal-cli listGroups``.

    Call :meth:`load` at startup; :meth:`get_name_with_refresh` reloads the
    list when an unknown group shows up.  Lookup failures are logged and
    leave the cache as it was.
    """

    def __init__(self, phone_number: str, command: str = "signal-cli") -> None:
        self._phone_number = phone_number
        self._command = command
        self._names: dict[str, str] = {}

    @property
    def args(self) -> list[str]:
        return [self._command, "-a", self._phone_number, "listGroups", "-d", "-o", "json"]

    async def load(self) -> None:
        groups = await self._fetch_groups()
        self._update(groups)
        logger.info("Loaded %d group name(s)", len(self._names))

    def get_name(self, group_id: str) -> str | None:
        return self._names.get(group_id)

    def has_group(self, group_id: str) -> bool:
        return group_id in self._names

    async def get_name_with_refresh(self, group_id: str) -> str | None:
        """Return the cached name, reloading the group list once on a miss."""
        cached = self._names.get(group_id)
        if cached is not None:
            return cached

        self._update(await self._fetch_groups())
        return self._names.get(group_id)

    async def _fetch_groups(self) -> list[Any]:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await proc.communicate()
        except OSError as exc:
            logger.error("Failed to fetch group list: %s", exc)
            return []

        if proc.returncode != 0:
            logger.error(
                "Failed to fetch group list: exit code %s: %s",
                proc.returncode,
                stderr.decode("utf-8", errors="replace").strip(),
            )
            return []

        try:
            parsed = json.loads(stdout.decode("utf-8", errors="replace"))
        except json.JSONDecodeError as exc:
            logger.error("Failed to fetch group list: %s", exc)
            return []

        return parsed if isinstance(parsed, list) else []

    def _update(self, groups: list[Any]) -> None:
        for group in groups:
            if not isinstance(group, dict):
                continue
            group_id = group.get("id")
            name = group.get("name")
            if isinstance(group_id, str) and group_id and isinstance(name, str):
                self._names[group_id] = name
