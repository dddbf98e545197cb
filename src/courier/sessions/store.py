"""Session store — durable conversation → agent-session mapping."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from courier.constants import ChatType

logger = logging.getLogger(__name__)

#: Characters of a session id shown in log lines.
_ID_PREVIEW = 20


class SessionRecord(BaseModel):
    """Stored session for one conversation."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: ChatType
    session_id: str = Field(alias="sessionId")
    last_active: str = Field(alias="lastActive", description="ISO 8601 timestamp")

    @classmethod
    def now(cls, chat_type: ChatType, session_id: str) -> SessionRecord:
        """Build a record stamped with the current UTC time."""
        return cls(type=chat_type, session_id=session_id, last_active=iso_now())


class SessionStore:
    """Maps conversation ids (phones for DMs, group ids for groups) to
    agent session ids so conversations resume across restarts.

    The file is rewritten on every change.  A missing, unreadable or
    corrupted file never raises: the store starts empty and logs why.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._sessions: dict[str, SessionRecord] = {}
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def get_session(self, chat_id: str) -> SessionRecord | None:
        return self._sessions.get(chat_id)

    def save_session(self, chat_id: str, record: SessionRecord) -> None:
        """Store *record* for *chat_id* and persist immediately."""
        self._sessions[chat_id] = record
        self._persist()
        logger.info(
            "Saved session for %s: %s...",
            chat_id,
            record.session_id[:_ID_PREVIEW],
        )

    def remove_session(self, chat_id: str) -> None:
        """Forget *chat_id*'s session (e.g. after a stale resume)."""
        if self._sessions.pop(chat_id, None) is not None:
            self._persist()

    def list_chat_ids(self) -> list[str]:
        return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, chat_id: object) -> bool:
        return chat_id in self._sessions

    # ------------------------------------------------------------------ #
    # Disk I/O
    # ------------------------------------------------------------------ #

    def _load(self) -> None:
        if not self._path.exists():
            logger.info("No sessions file at %s, starting fresh", self._path)
            return

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.error("Failed to load sessions from %s: %s", self._path, exc)
            return

        chats = data.get("chats") if isinstance(data, dict) else None
        if not isinstance(chats, dict):
            logger.warning("Sessions file %s has no 'chats' mapping", self._path)
            return

        for chat_id, raw in chats.items():
            try:
                self._sessions[chat_id] = SessionRecord.model_validate(raw)
            except ValidationError as exc:
                logger.warning(
                    "Skipping invalid session entry for %s: %s", chat_id, exc
                )

        logger.info(
            "Loaded %d session(s) from %s", len(self._sessions), self._path
        )

    def _persist(self) -> None:
        data = {
            "chats": {
                chat_id: record.model_dump(by_alias=True)
                for chat_id, record in self._sessions.items()
            }
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def iso_now() -> str:
    """Return the current UTC time as ISO 8601 with milliseconds."""
    return datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
