"""Canned answers for demos and tests."""

import re
from typing import Any, Mapping, Optional

import structlog

from resolvers.base import Resolver

logger = structlog.get_logger(__name__)

_SEARCH_RE = re.compile(r"^Search for\s+(.+)$", re.IGNORECASE)
_ASK_RE = re.compile(r"^Ask\s+(.+)$", re.IGNORECASE | re.DOTALL)
_NOTIFY_RE = re.compile(r"^Notify\s+(.+)$", re.IGNORECASE)
_AGENT_RE = re.compile(r"^(Debrief|Evolve)\b", re.IGNORECASE)


class MockResolver(Resolver):
    """Answers a handful of sentence shapes without calling anything real."""

    name = "mock"

    def __init__(self, name: Optional[str] = None):
        if name:
            self.name = name
        self.calls = []

    async def resolve(self, action: str, context: Mapping[str, Any]) -> Any:
        self.calls.append(action)

        match = _SEARCH_RE.match(action)
        if match:
            topic = match.group(1).strip()
            return {
                "title": f"Results for {topic}",
                "text": f"Mock search result about {topic}.",
                "url": "https://example.com/search",
            }

        match = _ASK_RE.match(action)
        if match:
            return f"Mock answer to: {match.group(1).strip()}"

        match = _NOTIFY_RE.match(action)
        if match:
            logger.info("mock_notification", target=match.group(1).strip())
            return "sent"

        if _AGENT_RE.match(action):
            return "acknowledged"

        return None
