"""SQLite sink implementation."""

import asyncio
import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiosqlite
import structlog

from olang.exceptions import SinkError
from olang.storage.interface import Sink

logger = structlog.get_logger(__name__)


class SQLiteSink(Sink):
    """Stores persisted values in a single ``olang_records`` table."""

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.db_path = self._parse_database_url(database_url)
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock: Optional[asyncio.Lock] = None

    @staticmethod
    def _parse_database_url(database_url: str) -> str:
        """Parse database URL to get file path."""
        for prefix in ("sqlite+aiosqlite:///", "sqlite:///", "sqlite://"):
            if database_url.startswith(prefix):
                return database_url[len(prefix):]
        return database_url

    async def initialize(self) -> None:
        """Open the database and create the records table."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if self._connection:
                return

            if self.db_path != ":memory:":
                if not os.path.isabs(self.db_path):
                    self.db_path = os.path.abspath(self.db_path)
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            self._connection = await aiosqlite.connect(self.db_path)
            await self._connection.executescript("""
                CREATE TABLE IF NOT EXISTS olang_records (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    collection TEXT NOT NULL,
                    workflow TEXT,
                    payload TEXT NOT NULL,
                    created_at DATETIME NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_olang_records_collection
                    ON olang_records(collection);
            """)
            await self._connection.commit()
            logger.info("sqlite_sink_initialized", path=self.db_path)

    async def close(self) -> None:
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def write(
        self,
        collection: str,
        value: Any,
        workflow_name: Optional[str] = None,
    ) -> None:
        if not self._connection:
            await self.initialize()

        try:
            await self._connection.execute(
                """
                INSERT INTO olang_records (collection, workflow, payload, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    collection,
                    workflow_name,
                    json.dumps(value, default=str),
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            await self._connection.commit()
        except aiosqlite.Error as e:
            raise SinkError(f"SQLite write to {collection!r} failed: {e}") from e

    async def load_records(self, collection: str) -> List[Dict[str, Any]]:
        """Return stored values for a collection, oldest first."""
        if not self._connection:
            await self.initialize()

        cursor = await self._connection.execute(
            "SELECT workflow, payload, created_at FROM olang_records "
            "WHERE collection = ? ORDER BY id ASC",
            (collection,),
        )
        rows = await cursor.fetchall()
        return [
            {"workflow": row[0], "value": json.loads(row[1]), "created_at": row[2]}
            for row in rows
        ]
