"""Offline-first local store and sync engine for DoNow tasks and events."""

__version__ = "0.1.0"
