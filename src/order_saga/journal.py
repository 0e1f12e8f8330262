import asyncio
import json
import logging
from datetime import datetime
from typing import Any, List, Optional

import aiosqlite

from .models import JournalEntry
from .protocols import Journal


def _dumps(payload: Any) -> str:
    try:
        return json.dumps(payload, default=str)
    except (TypeError, ValueError):
        # Non-string keys and circular references are kept as their repr.
        return json.dumps(repr(payload))


def _jsonable(payload: Any) -> Any:
    """Detaches the payload from live service state and makes it storable."""
    return json.loads(_dumps(payload))


class MemoryJournal(Journal):
    """Keeps entries in a list for the lifetime of the process."""

    def __init__(self):
        self._entries: List[JournalEntry] = []

    async def start(self):
        pass

    async def record(self, entry: JournalEntry) -> JournalEntry:
        stored = entry.model_copy(
            update={"sequence": len(self._entries) + 1, "payload": _jsonable(entry.payload)}
        )
        self._entries.append(stored)
        return stored

    async def entries(
        self, topic: Optional[str] = None, kind: Optional[str] = None
    ) -> List[JournalEntry]:
        return [
            e
            for e in self._entries
            if (topic is None or e.topic == topic) and (kind is None or e.kind == kind)
        ]

    async def close(self):
        pass


class SQLiteJournal(Journal):
    """
    Writes journal entries to a SQLite table through aiosqlite.

    The default database is `:memory:`, which lives exactly as long as the
    journal's connection. A file path keeps the diagnostics around for
    inspection after the run; the services never read them back.
    """

    def __init__(self, db_path: str = ":memory:"):
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def start(self):
        """Connects to the DB and ensures the schema exists."""
        if self._conn:
            return
        self._conn = await aiosqlite.connect(self._db_path)
        await self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS journal (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                topic TEXT NOT NULL,
                kind TEXT NOT NULL,
                payload TEXT,
                handler TEXT,
                error TEXT
            )
        """
        )
        await self._conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_journal_topic_kind ON journal (topic, kind)"
        )
        await self._conn.commit()
        logging.info(f"Journal opened at {self._db_path}")

    async def record(self, entry: JournalEntry) -> JournalEntry:
        if self._conn is None:
            raise RuntimeError("Journal is not started")
        async with self._write_lock:
            try:
                cursor = await self._conn.execute(
                    """
                    INSERT INTO journal (timestamp, topic, kind, payload, handler, error)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entry.timestamp.isoformat(),
                        entry.topic,
                        entry.kind,
                        _dumps(entry.payload),
                        entry.handler,
                        entry.error,
                    ),
                )
                await self._conn.commit()
            except Exception as e:
                await self._conn.rollback()
                logging.error(f"Failed to write journal entry for {entry.topic}: {e}")
                raise
        return entry.model_copy(
            update={"sequence": cursor.lastrowid, "payload": _jsonable(entry.payload)}
        )

    async def entries(
        self, topic: Optional[str] = None, kind: Optional[str] = None
    ) -> List[JournalEntry]:
        if self._conn is None:
            raise RuntimeError("Journal is not started")
        conditions: List[str] = []
        params: List[Any] = []
        if topic is not None:
            conditions.append("topic = ?")
            params.append(topic)
        if kind is not None:
            conditions.append("kind = ?")
            params.append(kind)
        where = "WHERE " + " AND ".join(conditions) if conditions else ""
        query = f"SELECT id, timestamp, topic, kind, payload, handler, error FROM journal {where} ORDER BY id"

        result: List[JournalEntry] = []
        async with self._conn.execute(query, params) as cursor:
            async for row in cursor:
                _id, ts, row_topic, row_kind, payload, handler, error = row
                try:
                    result.append(
                        JournalEntry(
                            sequence=_id,
                            timestamp=datetime.fromisoformat(ts),
                            topic=row_topic,
                            kind=row_kind,
                            payload=json.loads(payload) if payload else None,
                            handler=handler,
                            error=error,
                        )
                    )
                except (json.JSONDecodeError, ValueError) as e:
                    logging.warning(f"Skipping malformed journal row with id {_id}: {e}")
        return result

    async def close(self):
        if self._conn:
            await self._conn.close()
            self._conn = None
            logging.info(f"Journal closed at {self._db_path}")


def create_journal(journal_path: Optional[str]) -> Journal:
    if journal_path is None:
        return MemoryJournal()
    return SQLiteJournal(journal_path)
