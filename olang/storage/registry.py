"""Maps ``Persist`` destinations to sinks."""

import re
from typing import Dict, Optional, Tuple

from olang.config import Settings
from olang.storage.backends.file import FileSink
from olang.storage.backends.sqlite import SQLiteSink
from olang.storage.interface import Sink

_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9_+-]*):(?!//)(.+)$")


class SinkRegistry:
    """Destination routing: ``scheme:collection`` or a file path."""

    def __init__(self, file_sink: Optional[Sink] = None):
        self.file_sink = file_sink or FileSink()
        self._sinks: Dict[str, Sink] = {}
        self._initialized: set = set()

    @classmethod
    def from_settings(cls, settings: Settings) -> "SinkRegistry":
        registry = cls(file_sink=FileSink(base_dir=settings.sink_base_dir))
        registry.register(settings.database_scheme, SQLiteSink(settings.database_url))
        return registry

    def register(self, scheme: str, sink: Sink) -> None:
        self._sinks[scheme.lower()] = sink

    def route(self, destination: str) -> Tuple[Sink, str]:
        """Pick the sink and collection name for a destination."""
        match = _SCHEME_RE.match(destination.strip())
        if match and match.group(1).lower() in self._sinks:
            return self._sinks[match.group(1).lower()], match.group(2).strip()
        return self.file_sink, destination

    async def get(self, destination: str) -> Tuple[Sink, str]:
        sink, collection = self.route(destination)
        if id(sink) not in self._initialized:
            await sink.initialize()
            self._initialized.add(id(sink))
        return sink, collection

    async def close(self) -> None:
        for sink in [self.file_sink, *self._sinks.values()]:
            if id(sink) in self._initialized:
                await sink.close()
        self._initialized.clear()
