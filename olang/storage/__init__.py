"""Persistence sinks for Persist steps."""

from olang.storage.interface import Sink
from olang.storage.registry import SinkRegistry

__all__ = ["Sink", "SinkRegistry"]
