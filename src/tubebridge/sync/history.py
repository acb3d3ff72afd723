"""Append-only log of sync pass outcomes."""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import aiosqlite

from tubebridge.sync.models import SyncHistoryEntry, SyncResult

logger = logging.getLogger(__name__)


class SyncHistory:
    """Stores one row per finished sync pass in SQLite."""

    def __init__(self, db_path: Path):
        """Initialize the history store.

        Args:
            db_path: Path to the SQLite database
        """
        self.db_path = db_path

    async def initialize(self) -> None:
        """Initialize the database schema."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS sync_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task TEXT NOT NULL,
                    sync_time TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    status TEXT NOT NULL,
                    processed INTEGER DEFAULT 0,
                    failed INTEGER DEFAULT 0,
                    details TEXT
                )
            """)
            await db.execute("CREATE INDEX IF NOT EXISTS idx_sync_history_task ON sync_history(task)")
            await db.commit()

    async def add_entry(self, entry: SyncHistoryEntry) -> int:
        """Add an entry to the sync history.

        Args:
            entry: The entry to store

        Returns:
            ID of the history entry
        """
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("""
                INSERT INTO sync_history
                (task, sync_time, status, processed, failed, details)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                entry.task,
                entry.sync_time.isoformat(),
                entry.status,
                entry.processed,
                entry.failed,
                entry.details,
            ))
            await db.commit()
            entry.id = cursor.lastrowid
            return entry.id

    async def record_result(self, result: SyncResult) -> int:
        details = result.summary()
        if result.errors:
            details += "; " + "; ".join(result.errors[:10])
        return await self.add_entry(SyncHistoryEntry(
            task=result.task,
            status=result.status.value,
            processed=result.processed,
            failed=result.failed,
            details=details,
            sync_time=result.finished_at or datetime.now(),
        ))

    async def get_history(self, task: Optional[str] = None, limit: int = 50) -> List[SyncHistoryEntry]:
        """Get the most recent history entries, newest first.

        Args:
            task: Only return entries for this task
            limit: Maximum number of entries

        Returns:
            List of sync history entries
        """
        query = "SELECT * FROM sync_history"
        params: tuple = ()
        if task:
            query += " WHERE task = ?"
            params = (task,)
        query += " ORDER BY sync_time DESC, id DESC LIMIT ?"
        params += (limit,)

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = sqlite3.Row

            history = []
            async with db.execute(query, params) as cursor:
                async for row in cursor:
                    history.append(SyncHistoryEntry(
                        id=row['id'],
                        task=row['task'],
                        sync_time=datetime.fromisoformat(row['sync_time']),
                        status=row['status'],
                        processed=row['processed'],
                        failed=row['failed'],
                        details=row['details'],
                    ))
            return history
