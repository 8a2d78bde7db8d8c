"""
Memoria fingerprint maintenance.

Three independent phases, run in this order, each reporting its own failure:

1. Orphan cleanup: delete fingerprints whose owning row is gone.
2. Duplicate collapse: keep one fingerprint per (content_id, content_type),
   the newest by created_at, highest id on ties.
3. Index rebuild: reindex the base table and drop and repopulate the vec0
   mirror (forced, or when it has drifted after the deletions above).
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from memoria.config import MemoriaConfig, StorageMode
from memoria.database import Database
from memoria.indexer.tasks import TaskQueue
from memoria.vector_store import FingerprintStore

logger = logging.getLogger("memoria.maintenance")

# content types -> owning table; unknown types are never treated as orphans
OWNER_TABLES: Dict[str, str] = {
    "user_message": "messages",
    "assistant_message": "messages",
    "assistant_code_snippet": "messages",
    "code_file": "code_files",
    "code_snippet": "code_snippets",
    "milestone": "milestones",
    "decision": "decisions",
    "requirement": "requirements",
    "episode": "episodes",
}

INITIAL_DELAY_S = 30


@dataclass
class MaintenanceReport:
    indexes_rebuilt: bool = False
    orphans_removed: int = 0
    vectors_optimized: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = asdict(self)
        return {
            "indexesRebuilt": data["indexes_rebuilt"],
            "orphansRemoved": data["orphans_removed"],
            "vectorsOptimized": data["vectors_optimized"],
            "errors": data["errors"],
        }


class Maintenance:
    def __init__(self, db: Database, store: FingerprintStore, config: MemoriaConfig):
        self.db = db
        self.store = store
        self.config = config
        self._schedule_task: Optional[asyncio.Task] = None

    async def run(
        self,
        force_rebuild: bool = False,
        clean_orphans: bool = True,
        optimize_storage: bool = True,
    ) -> MaintenanceReport:
        report = MaintenanceReport()
        logger.info("Starting fingerprint maintenance")

        if clean_orphans:
            try:
                report.orphans_removed = await self.remove_orphans()
            except Exception as e:
                report.errors.append(f"Error cleaning up orphaned fingerprints: {e}")
                logger.error(report.errors[-1])

        if optimize_storage:
            try:
                report.vectors_optimized = await self.collapse_duplicates()
            except Exception as e:
                report.errors.append(f"Error optimizing fingerprint storage: {e}")
                logger.error(report.errors[-1])

        try:
            if force_rebuild or not await self.store.index_in_sync():
                await self.db.run("REINDEX fingerprints")
                await self.store.rebuild_index()
                report.indexes_rebuilt = True
        except Exception as e:
            report.errors.append(f"Error rebuilding indexes: {e}")
            logger.error(report.errors[-1])

        logger.info(
            "Maintenance done: %d orphans, %d duplicates removed, rebuilt=%s",
            report.orphans_removed,
            report.vectors_optimized,
            report.indexes_rebuilt,
        )
        return report

    async def remove_orphans(self) -> int:
        removed = 0
        for content_type, table in OWNER_TABLES.items():
            rows = await self.db.all(
                f"""SELECT f.id FROM fingerprints f
                    LEFT JOIN {table} o ON o.id = f.content_id
                    WHERE f.content_type = ? AND o.id IS NULL""",
                (content_type,),
            )
            if rows:
                logger.debug("Found %d orphaned %s fingerprints", len(rows), content_type)
                removed += await self.store.delete_many([r["id"] for r in rows])
        return removed

    async def collapse_duplicates(self) -> int:
        groups = await self.db.all(
            """SELECT content_id, content_type FROM fingerprints
               GROUP BY content_id, content_type HAVING COUNT(*) > 1"""
        )
        stale: List[int] = []
        for group in groups:
            rows = await self.db.all(
                """SELECT id FROM fingerprints WHERE content_id = ? AND content_type = ?
                   ORDER BY created_at DESC, id DESC""",
                (group["content_id"], group["content_type"]),
            )
            stale.extend(r["id"] for r in rows[1:])
        return await self.store.delete_many(stale) if stale else 0

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule(
        self,
        queue: TaskQueue,
        interval_minutes: Optional[float] = None,
        initial_delay: float = INITIAL_DELAY_S,
    ) -> Optional[asyncio.Task]:
        """Start the periodic loop. Ephemeral stores and a zero interval are never scheduled."""
        interval = self.config.maintenance_interval_min if interval_minutes is None else interval_minutes
        if self.config.mode is StorageMode.EPHEMERAL:
            logger.info("Not scheduling maintenance for ephemeral storage")
            return None
        if interval <= 0:
            return None
        if self._schedule_task is not None and not self._schedule_task.done():
            return self._schedule_task

        async def loop():
            await asyncio.sleep(initial_delay)
            while True:
                queue.enqueue("maintenance", self.run)
                await asyncio.sleep(interval * 60)

        logger.info("Scheduling maintenance every %s minutes", interval)
        self._schedule_task = asyncio.get_running_loop().create_task(loop(), name="memoria-maintenance")
        return self._schedule_task

    async def cancel_schedule(self) -> None:
        task, self._schedule_task = self._schedule_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
