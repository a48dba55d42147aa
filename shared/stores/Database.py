"""SQLite access layer.

Owns the single connection, the schema and the translation of sqlite3
errors into PersistenceFailure. Statements run in a worker thread behind a
lock so the event loop never blocks on disk I/O.

All timestamps are produced by the database clock (column defaults and
RETURNING), never by the application.
"""

import asyncio
import os
import sqlite3
import threading
from typing import Any, Sequence

from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import ErrorKind, PipelineError

# seconds since the epoch with millisecond precision, from the database clock
DB_NOW_SECONDS = "((julianday('now') - 2440587.5) * 86400.0)"
DB_NOW_MILLIS = "(CAST((julianday('now') - 2440587.5) * 86400000.0 AS INTEGER))"

SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS documents (
  id TEXT PRIMARY KEY,
  title TEXT NOT NULL,
  content_type TEXT,
  uploaded_at INTEGER NOT NULL DEFAULT {DB_NOW_MILLIS},
  chunk_count INTEGER NOT NULL DEFAULT 0,
  metadata TEXT
);
CREATE INDEX IF NOT EXISTS idx_documents_uploaded_at ON documents(uploaded_at);

CREATE TABLE IF NOT EXISTS notes (
  id TEXT PRIMARY KEY,
  document_id TEXT REFERENCES documents(id) ON DELETE CASCADE,
  text TEXT NOT NULL,
  chunk_index INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_notes_document_id ON notes(document_id);

CREATE TABLE IF NOT EXISTS conversations (
  id TEXT PRIMARY KEY,
  created_at REAL NOT NULL DEFAULT {DB_NOW_SECONDS}
);
CREATE INDEX IF NOT EXISTS idx_conversations_created_at ON conversations(created_at);

CREATE TABLE IF NOT EXISTS messages (
  seq INTEGER PRIMARY KEY AUTOINCREMENT,
  id TEXT NOT NULL UNIQUE,
  conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
  role TEXT NOT NULL CHECK (role IN ('user', 'assistant', 'system-summary')),
  content TEXT NOT NULL,
  sources TEXT,
  archived INTEGER NOT NULL DEFAULT 0,
  client_key TEXT,
  reply_to TEXT,
  created_at REAL NOT NULL DEFAULT {DB_NOW_SECONDS}
);
CREATE INDEX IF NOT EXISTS idx_messages_conversation_id ON messages(conversation_id, created_at, seq);
CREATE UNIQUE INDEX IF NOT EXISTS idx_messages_client_key
  ON messages(conversation_id, client_key) WHERE client_key IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_messages_reply_to ON messages(reply_to) WHERE reply_to IS NOT NULL;

CREATE TABLE IF NOT EXISTS blobs (
  key TEXT PRIMARY KEY,
  value BLOB NOT NULL,
  metadata TEXT,
  updated_at REAL NOT NULL DEFAULT {DB_NOW_SECONDS}
);
"""

Statement = tuple[str, Sequence[Any]]


class Database:
    """Async facade over one sqlite3 connection."""

    def __init__(self, helper_config: HelperConfig, path: str | None = None) -> None:
        self.logging = helper_config.get_logger()
        self._path = path or helper_config.get_string_val("DATABASE_PATH", default="data/rag.db")
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def boot(self) -> None:
        """Open the connection and make sure the schema exists."""
        if self._path != ":memory:":
            directory = os.path.dirname(os.path.abspath(self._path))
            os.makedirs(directory, exist_ok=True)
        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.executescript(SCHEMA_SQL)
        self._conn.commit()
        self.logging.info("SQLite database ready: %s", self._path)

    async def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    ##########################################
    ############### EXECUTION ################
    ##########################################

    def _run_transaction(self, statements: list[Statement]) -> list[list[sqlite3.Row]]:
        if self._conn is None:
            raise PipelineError(ErrorKind.PERSISTENCE_FAILURE, "database not initialised, call boot() first")
        with self._lock:
            try:
                results: list[list[sqlite3.Row]] = []
                with self._conn:
                    for sql, params in statements:
                        cursor = self._conn.execute(sql, tuple(params))
                        results.append(cursor.fetchall())
                return results
            except sqlite3.Error as exc:
                raise PipelineError(ErrorKind.PERSISTENCE_FAILURE, f"sqlite error: {exc}") from exc

    async def transaction(self, statements: list[Statement]) -> list[list[sqlite3.Row]]:
        """Run statements atomically. Returns the fetched rows of each statement.

        Raises:
            PipelineError: PersistenceFailure on any sqlite error (the transaction is rolled back).
        """
        return await asyncio.to_thread(self._run_transaction, statements)

    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        results = await self.transaction([(sql, params)])
        return results[0]

    async def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        rows = await self.fetch_all(sql, params)
        return rows[0] if rows else None

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        await self.transaction([(sql, params)])
