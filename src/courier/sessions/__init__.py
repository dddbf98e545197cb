"""Durable conversation → agent-session mapping."""

from courier.sessions.store import SessionRecord, SessionStore, iso_now

__all__ = ["SessionRecord", "SessionStore", "iso_now"]
