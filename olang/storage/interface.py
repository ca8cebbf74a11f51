"""Persistence sink interface."""

from abc import ABC, abstractmethod
from typing import Any, Optional


class Sink(ABC):
    """Abstract base class for persistence sinks.

    ``collection`` is the file path for file sinks and the logical
    collection name for database sinks.
    """

    async def initialize(self) -> None:
        """Prepare the sink (open connections, create tables)."""
        pass

    async def close(self) -> None:
        """Release resources held by the sink."""
        pass

    @abstractmethod
    async def write(
        self,
        collection: str,
        value: Any,
        workflow_name: Optional[str] = None,
    ) -> None:
        """Persist one value."""
        pass
