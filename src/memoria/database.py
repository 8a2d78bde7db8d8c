"""
Memoria Database -- async SQLite access with optional sqlite-vec acceleration.

One aiosqlite connection per process. Statements run in autocommit mode; the
store is written by a single event loop, so there are no concurrent writers to
coordinate. The four primitives (run / get / all / script) are the only way
the rest of the package touches SQL.

The sqlite-vec extension is optional. It is detected by loading it and probing
a KNN query against the vec0 table, never by version number. When anything in
that chain fails, vector search falls back to a linear scan.
"""

import logging
import os
import sqlite3
import stat
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import aiosqlite

from memoria.config import MemoriaConfig, StorageMode
from memoria.errors import TransientStoreError
from memoria.fingerprint import encode_vector

logger = logging.getLogger("memoria.database")

VECTOR_INDEX_TABLE = "fingerprints_vec"

_TABLES = {
    "messages": """
        CREATE TABLE IF NOT EXISTS messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            role TEXT NOT NULL,
            content TEXT NOT NULL,
            created_at INTEGER NOT NULL,
            metadata TEXT,
            importance TEXT DEFAULT 'low'
        )
    """,
    "active_files": """
        CREATE TABLE IF NOT EXISTS active_files (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            filename TEXT UNIQUE,
            last_action TEXT,
            last_accessed INTEGER,
            metadata TEXT
        )
    """,
    "milestones": """
        CREATE TABLE IF NOT EXISTS milestones (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT,
            description TEXT,
            importance TEXT DEFAULT 'medium',
            created_at INTEGER,
            metadata TEXT
        )
    """,
    "decisions": """
        CREATE TABLE IF NOT EXISTS decisions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT,
            content TEXT,
            reasoning TEXT,
            importance TEXT DEFAULT 'medium',
            created_at INTEGER,
            metadata TEXT
        )
    """,
    "requirements": """
        CREATE TABLE IF NOT EXISTS requirements (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT,
            content TEXT,
            importance TEXT DEFAULT 'medium',
            created_at INTEGER,
            metadata TEXT
        )
    """,
    "episodes": """
        CREATE TABLE IF NOT EXISTS episodes (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            actor TEXT,
            action TEXT,
            content TEXT,
            timestamp INTEGER,
            importance TEXT DEFAULT 'low',
            context TEXT,
            metadata TEXT
        )
    """,
    "fingerprints": """
        CREATE TABLE IF NOT EXISTS fingerprints (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            content_id INTEGER NOT NULL,
            content_type TEXT NOT NULL,
            vector BLOB NOT NULL,
            dimensions INTEGER NOT NULL,
            created_at INTEGER NOT NULL,
            metadata TEXT
        )
    """,
    "code_files": """
        CREATE TABLE IF NOT EXISTS code_files (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            file_path TEXT UNIQUE,
            language TEXT,
            last_indexed INTEGER,
            size INTEGER,
            metadata TEXT
        )
    """,
    "code_snippets": """
        CREATE TABLE IF NOT EXISTS code_snippets (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            file_id INTEGER,
            start_line INTEGER,
            end_line INTEGER,
            content TEXT,
            symbol_type TEXT,
            metadata TEXT,
            FOREIGN KEY (file_id) REFERENCES code_files(id)
        )
    """,
}

_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_fingerprints_content_type ON fingerprints(content_type)",
    "CREATE INDEX IF NOT EXISTS idx_fingerprints_content_id ON fingerprints(content_id)",
    "CREATE INDEX IF NOT EXISTS idx_messages_created_at ON messages(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_episodes_timestamp ON episodes(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_code_snippets_file_id ON code_snippets(file_id)",
)


def secure_create(db_path: Path) -> None:
    """Pre-create the DB file with 0600 permissions, tightening existing files."""
    db_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    if not db_path.exists():
        fd = os.open(str(db_path), os.O_CREAT | os.O_WRONLY, 0o600)
        os.close(fd)
        return
    current_mode = db_path.stat().st_mode
    if current_mode & (stat.S_IRWXG | stat.S_IRWXO):
        os.chmod(str(db_path), 0o600)


class Database:
    """Async SQLite connection plus schema and vector-index management."""

    def __init__(self, config: MemoriaConfig):
        self.config = config
        self.dimensions = config.dimensions
        self._conn: Optional[aiosqlite.Connection] = None
        self.vec_loaded = False  # sqlite-vec extension loaded
        self.vec_available = False  # vec0 table exists and answers KNN queries

    @property
    def mode(self) -> StorageMode:
        return self.config.mode

    @property
    def connected(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        if self._conn is not None:
            return
        target = self.config.database
        if self.mode is StorageMode.PERSISTENT and self.config.db_path is not None:
            secure_create(self.config.db_path)

        conn = await aiosqlite.connect(target, isolation_level=None)
        conn.row_factory = aiosqlite.Row
        if self.mode is StorageMode.PERSISTENT:
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute("PRAGMA synchronous=NORMAL")
        await conn.execute("PRAGMA busy_timeout=30000")
        await conn.execute("PRAGMA foreign_keys=ON")

        try:
            import sqlite_vec

            await conn.enable_load_extension(True)
            await conn.load_extension(sqlite_vec.loadable_path())
            await conn.enable_load_extension(False)
            self.vec_loaded = True
        except Exception as e:
            logger.warning("sqlite-vec not available, vector search will use full scans: %s", e)
            self.vec_loaded = False

        self._conn = conn
        logger.info("Connected to %s (%s mode)", target, self.mode.value)

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            await conn.close()
        except Exception as e:
            logger.debug("Database close failed: %s", e)

    def _require(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise TransientStoreError("Database not initialized")
        return self._conn

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    async def run(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute a write. Returns lastrowid for INSERTs, rowcount otherwise."""
        conn = self._require()
        try:
            cursor = await conn.execute(sql, tuple(params))
            try:
                if sql.lstrip()[:6].upper() == "INSERT":
                    return cursor.lastrowid
                return cursor.rowcount
            finally:
                await cursor.close()
        except sqlite3.Error as e:
            raise TransientStoreError(f"Statement failed: {e}") from e

    async def get(self, sql: str, params: Sequence[Any] = ()) -> Optional[aiosqlite.Row]:
        conn = self._require()
        try:
            async with conn.execute(sql, tuple(params)) as cursor:
                return await cursor.fetchone()
        except sqlite3.Error as e:
            raise TransientStoreError(f"Query failed: {e}") from e

    async def all(self, sql: str, params: Sequence[Any] = ()) -> List[aiosqlite.Row]:
        conn = self._require()
        try:
            async with conn.execute(sql, tuple(params)) as cursor:
                return list(await cursor.fetchall())
        except sqlite3.Error as e:
            raise TransientStoreError(f"Query failed: {e}") from e

    async def execute_script(self, script: str) -> None:
        conn = self._require()
        try:
            await conn.executescript(script)
        except sqlite3.Error as e:
            raise TransientStoreError(f"Script failed: {e}") from e

    async def scalar(self, sql: str, params: Sequence[Any] = (), default: Any = 0) -> Any:
        row = await self.get(sql, params)
        if row is None or row[0] is None:
            return default
        return row[0]

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    async def init_schema(self) -> None:
        """Create tables and plain indexes. Failures propagate (critical path)."""
        for name, ddl in _TABLES.items():
            await self.run(ddl)
            logger.debug("Table %s verified/created", name)
        await self.execute_script(";\n".join(_INDEXES) + ";")

    async def table_counts(self) -> Dict[str, int]:
        counts = {}
        for name in _TABLES:
            counts[name] = int(await self.scalar(f"SELECT COUNT(*) FROM {name}"))
        return counts

    async def create_vector_index(self) -> bool:
        """Create the vec0 KNN table and verify it answers queries. Never raises."""
        self.vec_available = False
        if not self.vec_loaded:
            return False
        try:
            await self.run(
                f"CREATE VIRTUAL TABLE IF NOT EXISTS {VECTOR_INDEX_TABLE} USING vec0("
                f"content_type text, "
                f"embedding float[{self.dimensions}] distance_metric=cosine)"
            )
            sample = [1.0] + [0.0] * (self.dimensions - 1)
            await self.all(
                f"SELECT rowid, distance FROM {VECTOR_INDEX_TABLE} "
                f"WHERE embedding MATCH ? AND k = ? AND content_type = ?",
                (encode_vector(sample), 1, "__knn_check__"),
            )
            self.vec_available = True
            logger.info("Vector similarity index ready (%d dimensions)", self.dimensions)
        except Exception as e:
            logger.warning("Could not create vector similarity index, using full scans: %s", e)
            self.vec_available = False
        return self.vec_available

    async def drop_vector_index(self) -> None:
        self.vec_available = False
        if not self.vec_loaded:
            return
        await self.run(f"DROP TABLE IF EXISTS {VECTOR_INDEX_TABLE}")
