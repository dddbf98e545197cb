"""Courier — routes Signal conversations to resumable Claude agent sessions."""

__version__ = "0.1.0"
