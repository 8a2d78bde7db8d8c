"""
Memoria Service -- high-level API used by the MCP handlers and the CLI.

MemoryService wires the database, fingerprint store, search, scorer, context
assembler, indexer, task queue and maintenance together. Write operations
commit the record and return; fingerprinting and file indexing are queued on
the single background worker, so semantic results are eventually consistent.
Tests await drain() before asserting on fingerprints.

Public API:
    Session:     banner, health, init_conversation, end_conversation
    Records:     store_message, track_file, store_milestone, store_decision,
                 store_requirement, record_episode, recent_messages,
                 active_files, recent_episodes
    Retrieval:   context, stats
    Vectors:     store_vector, search_vectors, update_vector, delete_vector
    Maintenance: run_maintenance, index_file
    Lifecycle:   start, close, drain, get_service, reset_service
"""

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional

from memoria.config import MemoriaConfig, StorageMode
from memoria.context import ContextAssembler, iso
from memoria.database import Database
from memoria.fingerprint import embed
from memoria.indexer.code_indexer import CodeIndexer
from memoria.indexer.detect import is_code_related
from memoria.indexer.maintenance import Maintenance, MaintenanceReport
from memoria.indexer.tasks import TaskQueue
from memoria.records import RecordRepository, format_relative
from memoria.relevance import RelevanceScorer
from memoria.similarity import SimilaritySearch
from memoria.vector_store import FingerprintStore, now_ms

logger = logging.getLogger("memoria.service")

BANNER_UNAVAILABLE = "🧠 Memory System: Issue\n🗂️ Total Memories: Unknown\n🕚 Latest Memory: Unknown"


def format_banner(status: str, memory_count: int, last_accessed: str) -> str:
    return "\n".join([
        f"🧠 Memory System: {status}",
        f"🗂️ Total Memories: {memory_count}",
        f"🕚 Latest Memory: {last_accessed}",
    ])


class MemoryService:
    def __init__(self, config: Optional[MemoriaConfig] = None):
        self.config = config or MemoriaConfig.from_env()
        self.db = Database(self.config)
        self.store = FingerprintStore(self.db)
        self.search = SimilaritySearch(self.db, self.store)
        self.scorer = RelevanceScorer(self.store)
        self.records = RecordRepository(self.db)
        self.assembler = ContextAssembler(self.db, self.records, self.scorer, self.search, self.config)
        self.queue = TaskQueue(self.config.task_delay_s)
        self.indexer = CodeIndexer(self.db, self.store, self.queue)
        self.maintenance = Maintenance(self.db, self.store, self.config)
        self.started = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, schedule_maintenance: bool = True) -> "MemoryService":
        if self.started:
            return self
        await self.db.connect()
        await self.db.init_schema()
        await self.db.create_vector_index()
        self.queue.start()
        if schedule_maintenance:
            self.maintenance.schedule(self.queue)
        self.started = True
        logger.info("Memory service started (%s)", self.config.mode.value)
        return self

    async def drain(self) -> None:
        """Wait for every queued background task to finish."""
        await self.queue.join()

    async def close(self) -> None:
        await self.maintenance.cancel_schedule()
        await self.queue.stop()
        await self.db.close()
        self.started = False

    # ------------------------------------------------------------------
    # Background fingerprinting
    # ------------------------------------------------------------------

    def _enqueue_fingerprint(
        self,
        content_id: int,
        content_type: str,
        text: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        async def task():
            await self.store.store(content_id, content_type, embed(text, self.config.dimensions), metadata)

        self.queue.enqueue(f"fingerprint:{content_type}:{content_id}", task)

    def _enqueue_reindex(self) -> None:
        if self.config.mode is StorageMode.EPHEMERAL:
            return
        self.queue.enqueue("reindex-recent", self.indexer.reindex_recent)

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def banner(self) -> Dict[str, Any]:
        memory_count = await self.records.memory_count()
        last_accessed = format_relative(await self.records.latest_activity())
        return {
            "formatted_banner": format_banner("Active", memory_count, last_accessed),
            "memory_system": "active",
            "mode": self.config.mode.value,
            "memory_count": memory_count,
            "last_accessed": last_accessed,
        }

    async def health(self) -> Dict[str, Any]:
        await self.db.scalar("SELECT 1")
        counts = await self.db.table_counts()
        return {
            "mode": self.config.mode.value,
            "message_count": counts["messages"],
            "active_files_count": counts["active_files"],
            "fingerprint_count": counts["fingerprints"],
            "vector_index": self.db.vec_available,
            "pending_tasks": len(self.queue),
            "current_directory": os.getcwd(),
            "timestamp": iso(now_ms()),
        }

    async def init_conversation(
        self, content: str, importance: str = "low", metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        message_id = await self.store_message("user", content, importance, metadata)
        if is_code_related(content):
            logger.debug("Code-related message %d, checking recent files", message_id)
            self._enqueue_reindex()
        return {
            "display": {"banner": await self.banner()},
            "internal": {
                "context": await self.context(content),
                "messageId": message_id,
                "messageStored": True,
                "timestamp": iso(now_ms()),
            },
        }

    async def end_conversation(
        self,
        content: str,
        milestone_title: str,
        milestone_description: Optional[str] = None,
        importance: str = "medium",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        message_id = await self.store_message("assistant", content, importance, metadata)
        milestone_id = await self.store_milestone(milestone_title, milestone_description, importance, metadata)
        episode_id = await self.record_episode(
            "assistant",
            "completion",
            f"Completed: {milestone_title}",
            importance,
            "conversation",
            metadata,
        )
        return {
            "assistantMessage": {"id": message_id, "stored": True},
            "milestone": {"id": milestone_id, "title": milestone_title, "stored": True},
            "episode": {"id": episode_id, "action": "completion", "stored": True},
        }

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def store_message(
        self, role: str, content: str, importance: str = "low", metadata: Optional[Dict[str, Any]] = None
    ) -> int:
        message_id = await self.records.add_message(role, content, importance, metadata)
        self._enqueue_fingerprint(message_id, f"{role}_message", content, {"role": role, "importance": importance})
        if role == "assistant" and is_code_related(content):
            self.queue.enqueue(
                f"message-code:{message_id}",
                lambda: self.indexer.index_message_code(message_id, content),
            )
        return message_id

    async def track_file(self, filename: str, action: str, metadata: Optional[Dict[str, Any]] = None) -> int:
        file_id = await self.records.track_file(filename, action, metadata)
        if action != "close":
            self.queue.enqueue(f"index:{filename}", lambda: self.indexer.index_file(filename, action))
        return file_id

    async def store_milestone(
        self,
        title: str,
        description: Optional[str] = None,
        importance: str = "medium",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        milestone_id = await self.records.add_milestone(title, description, importance, metadata)
        self._enqueue_fingerprint(milestone_id, "milestone", f"{title}\n{description or ''}")
        return milestone_id

    async def store_decision(
        self,
        title: str,
        content: str,
        reasoning: Optional[str] = None,
        importance: str = "medium",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        decision_id = await self.records.add_decision(title, content, reasoning, importance, metadata)
        self._enqueue_fingerprint(decision_id, "decision", f"{title}\n{content}\n{reasoning or ''}")
        return decision_id

    async def store_requirement(
        self,
        title: str,
        content: str,
        importance: str = "medium",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        requirement_id = await self.records.add_requirement(title, content, importance, metadata)
        self._enqueue_fingerprint(requirement_id, "requirement", f"{title}\n{content}")
        return requirement_id

    async def record_episode(
        self,
        actor: str,
        action: str,
        content: str,
        importance: str = "low",
        context: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        episode_id = await self.records.add_episode(actor, action, content, importance, context, metadata)
        self._enqueue_fingerprint(episode_id, "episode", f"{actor} {action} {content}")
        return episode_id

    async def recent_messages(self, limit: int = 10, importance: Optional[str] = None) -> List[Dict[str, Any]]:
        rows = await self.records.recent_messages(limit, importance)
        return [{**r, "created_at": iso(r["created_at"])} for r in rows]

    async def active_files(self, limit: int = 10) -> List[Dict[str, Any]]:
        rows = await self.records.active_files(limit)
        return [{**r, "last_accessed": iso(r["last_accessed"])} for r in rows]

    async def recent_episodes(self, limit: int = 10, context: Optional[str] = None) -> List[Dict[str, Any]]:
        rows = await self.records.recent_episodes(limit, context)
        return [{**r, "timestamp": iso(r["timestamp"])} for r in rows]

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def context(self, query: Optional[str] = None) -> Dict[str, Any]:
        return await self.assembler.assemble(query)

    async def stats(self) -> Dict[str, Any]:
        stats = await self.records.stats()
        stats["latestActivity"] = iso(stats["latestActivity"])
        stats["mode"] = self.config.mode.value
        stats["vectorIndex"] = self.db.vec_available
        return stats

    # ------------------------------------------------------------------
    # Vectors
    # ------------------------------------------------------------------

    async def store_vector(
        self,
        content_id: int,
        content_type: str,
        vector: List[float],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if not vector:
            raise ValueError("vector must be a non-empty array of numbers")
        record_id = await self.store.store(content_id, content_type, vector, metadata)
        return {
            "id": record_id,
            "contentId": content_id,
            "contentType": content_type,
            "dimensions": len(vector),
            "timestamp": iso(now_ms()),
        }

    async def search_vectors(
        self,
        vector: List[float],
        content_type: Optional[str] = None,
        limit: int = 10,
        threshold: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        if not vector:
            raise ValueError("vector must be a non-empty array of numbers")
        threshold = self.config.search_threshold if threshold is None else threshold
        hits = await self.search.search(vector, content_type, limit, threshold)
        return [h.to_dict() for h in hits]

    async def update_vector(
        self, vector_id: int, vector: List[float], metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        if not vector:
            raise ValueError("vector must be a non-empty array of numbers")
        record = await self.store.update(vector_id, vector, metadata)
        return {
            "id": record.id,
            "contentId": record.content_id,
            "contentType": record.content_type,
            "dimensions": record.dimensions,
            "timestamp": iso(record.created_at),
        }

    async def delete_vector(self, vector_id: int) -> Dict[str, Any]:
        await self.store.delete(vector_id)
        return {"id": vector_id, "deleted": True}

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def run_maintenance(
        self, force_rebuild: bool = False, clean_orphans: bool = True, optimize_storage: bool = True
    ) -> MaintenanceReport:
        # Serialize with in-flight indexing by letting queued work finish first
        await self.drain()
        return await self.maintenance.run(force_rebuild, clean_orphans, optimize_storage)

    async def index_file(self, path: str, action: str = "open") -> bool:
        return await self.indexer.index_file(path, action)


# ---------------------------------------------------------------------------
# Lazy singleton
# ---------------------------------------------------------------------------

_service_instance: Optional[MemoryService] = None
_service_lock: Optional[asyncio.Lock] = None


async def get_service() -> MemoryService:
    """Get or create the started MemoryService singleton."""
    global _service_instance, _service_lock
    if _service_instance is not None:
        return _service_instance
    if _service_lock is None:
        _service_lock = asyncio.Lock()
    async with _service_lock:
        if _service_instance is None:
            service = MemoryService()
            await service.start()
            _service_instance = service
    return _service_instance


async def reset_service() -> None:
    """Close and forget the singleton (useful for testing)."""
    global _service_instance, _service_lock
    if _service_instance is not None:
        try:
            await _service_instance.close()
        except Exception as e:
            logger.debug("Service close failed during reset: %s", e)
    _service_instance = None
    _service_lock = None
