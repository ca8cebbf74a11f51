"""
Pytest configuration and fixtures for the O-Lang test suite.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest

from olang.config import Settings
from olang.runtime.events import EventBus
from resolvers.base import FunctionResolver


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and the working directory."""
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'olang.db'}",
        sink_base_dir=str(tmp_path),
        disallowed_log_path=None,
    )


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def answers():
    """Scripted prompt answers consumed in order."""
    return []


@pytest.fixture
def input_provider(answers):
    async def provide(question: str) -> str:
        if not answers:
            raise EOFError(question)
        return answers.pop(0)
    return provide


@pytest.fixture
def recording_resolver():
    """Factory for resolvers that record the actions they see."""
    def make(name: str, reply=None):
        seen = []

        def handle(action, context):
            seen.append(action)
            return reply(action, context) if callable(reply) else reply

        resolver = FunctionResolver(name, handle)
        resolver.seen = seen
        return resolver
    return make
