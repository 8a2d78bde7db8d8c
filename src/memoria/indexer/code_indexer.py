"""
Memoria Code Indexer -- file and message code into fingerprints.

index_file() is the single entry point for source files: it upserts the
code_files row, fingerprints a bounded sample of the content, and for code
languages replaces the file's snippets (and their fingerprints) wholesale.
It never raises; failures are logged and reported as False.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Optional

from memoria.database import Database
from memoria.fingerprint import embed
from memoria.indexer.detect import extract_code_blocks
from memoria.indexer.snippets import detect_language, extract_snippets, is_code_language
from memoria.indexer.tasks import TaskQueue
from memoria.vector_store import FingerprintStore, now_ms

logger = logging.getLogger("memoria.indexer")

SAMPLE_THRESHOLD = 10_000
SAMPLE_EDGE = 5_000

# Extensions never worth re-indexing from the recent-files trigger
_SKIP_REINDEX_EXTENSIONS = frozenset({"", ".md", ".txt", ".json"})


def sample_content(content: str) -> str:
    """Head and tail of large files, whole content otherwise."""
    if len(content) > SAMPLE_THRESHOLD:
        return content[:SAMPLE_EDGE] + "\n...\n" + content[-SAMPLE_EDGE:]
    return content


def _read(path: str):
    p = Path(path)
    return p.read_text(encoding="utf-8"), p.stat().st_size


class CodeIndexer:
    def __init__(self, db: Database, store: FingerprintStore, queue: Optional[TaskQueue] = None):
        self.db = db
        self.store = store
        self.queue = queue

    async def index_file(self, path: str, action: str = "open") -> bool:
        if action == "close":
            return False
        try:
            content, size = await asyncio.to_thread(_read, path)
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Could not read %s for indexing: %s", path, e)
            return False
        if not content:
            logger.debug("Skipping empty file %s", path)
            return False

        try:
            language = detect_language(path)
            file_id = await self._upsert_file(path, language, size)

            await self.store.delete_for_content("code_file", [file_id])
            await self.store.store(
                file_id,
                "code_file",
                embed(sample_content(content), self.db.dimensions),
                {"language": language, "size": size, "path": path},
            )

            if is_code_language(language):
                count = await self._replace_snippets(file_id, content, language)
                logger.info("Indexed %s (%s, %d snippets)", path, language, count)
            else:
                logger.info("Indexed %s (%s)", path, language)
            return True
        except Exception as e:
            logger.error("Failed to index %s: %s", path, e)
            return False

    async def _upsert_file(self, path: str, language: str, size: int) -> int:
        await self.db.run(
            """INSERT INTO code_files (file_path, language, last_indexed, size)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(file_path) DO UPDATE SET
                   language = excluded.language,
                   last_indexed = excluded.last_indexed,
                   size = excluded.size""",
            (path, language, now_ms(), size),
        )
        return int(await self.db.scalar("SELECT id FROM code_files WHERE file_path = ?", (path,)))

    async def _replace_snippets(self, file_id: int, content: str, language: str) -> int:
        old = await self.db.all("SELECT id FROM code_snippets WHERE file_id = ?", (file_id,))
        await self.store.delete_for_content("code_snippet", [r["id"] for r in old])
        await self.db.run("DELETE FROM code_snippets WHERE file_id = ?", (file_id,))

        snippets = extract_snippets(content, language)
        for snippet in snippets:
            snippet_id = await self.db.run(
                "INSERT INTO code_snippets (file_id, start_line, end_line, content, symbol_type, metadata) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    file_id,
                    snippet.start_line,
                    snippet.end_line,
                    snippet.content,
                    snippet.kind,
                    json.dumps({"symbol": snippet.symbol}),
                ),
            )
            await self.store.store(
                snippet_id,
                "code_snippet",
                embed(snippet.content, self.db.dimensions),
                {"file_id": file_id, "symbol": snippet.symbol, "type": snippet.kind},
            )
        return len(snippets)

    async def index_message_code(self, message_id: int, content: str) -> int:
        """Fingerprint code blocks of an assistant message, linked to the message id."""
        count = 0
        for index, block in enumerate(extract_code_blocks(content)):
            try:
                await self.store.store(
                    message_id,
                    "assistant_code_snippet",
                    embed(block["content"], self.db.dimensions),
                    {"language": block["language"], "block": index},
                )
                count += 1
            except Exception as e:
                logger.error("Failed to fingerprint code block %d of message %s: %s", index, message_id, e)
        if count:
            logger.debug("Stored %d code block fingerprints for message %s", count, message_id)
        return count

    async def reindex_recent(self, limit: int = 10) -> int:
        """Queue recently active code files that are unindexed or modified since indexing."""
        if self.queue is None:
            return 0
        rows = await self.db.all(
            """SELECT af.filename, cf.last_indexed
               FROM active_files af
               LEFT JOIN code_files cf ON cf.file_path = af.filename
               ORDER BY af.last_accessed DESC LIMIT ?""",
            (limit,),
        )
        queued = 0
        for row in rows:
            path = row["filename"]
            if os.path.splitext(path)[1].lower() in _SKIP_REINDEX_EXTENSIONS:
                continue
            try:
                modified_ms = int(os.stat(path).st_mtime * 1000)
            except OSError as e:
                logger.debug("Skipping %s: %s", path, e)
                continue
            if row["last_indexed"] is None or row["last_indexed"] < modified_ms:
                self.queue.enqueue(f"index:{path}", lambda p=path: self.index_file(p, "update"))
                queued += 1
        if queued:
            logger.info("Queued %d files for background indexing", queued)
        return queued
