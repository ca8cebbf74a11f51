"""Sink backends."""

from olang.storage.backends.file import FileSink
from olang.storage.backends.sqlite import SQLiteSink

__all__ = ["FileSink", "SQLiteSink"]
