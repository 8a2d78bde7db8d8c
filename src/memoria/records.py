"""
Memoria domain records -- messages, active files, milestones, decisions,
requirements and the episode log.

Thin async SQL wrappers over the Database primitives. Rows come back as plain
dicts with millisecond timestamps; presentation (ISO strings, relevance) is
the context assembler's job.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from memoria.database import Database
from memoria.vector_store import now_ms

logger = logging.getLogger("memoria.records")

IMPORTANCE_LEVELS = ("low", "medium", "high", "critical")
LONG_TERM_IMPORTANCE = ("medium", "high", "critical")

# Tables counted as "memories" for the banner and stats
MEMORY_TABLES = ("messages", "milestones", "decisions", "requirements", "episodes")


def validate_importance(importance: Optional[str], default: str) -> str:
    value = (importance or default).strip().lower()
    if value not in IMPORTANCE_LEVELS:
        raise ValueError(f"importance must be one of {', '.join(IMPORTANCE_LEVELS)}, got {importance!r}")
    return value


def _dumps(metadata: Optional[Dict[str, Any]]) -> Optional[str]:
    return json.dumps(metadata) if metadata else None


def _row_dict(row) -> Dict[str, Any]:
    out = dict(row)
    raw = out.get("metadata")
    if isinstance(raw, str):
        try:
            out["metadata"] = json.loads(raw)
        except ValueError:
            pass
    return out


def format_relative(timestamp_ms: Optional[int], now: Optional[datetime] = None) -> str:
    """Human-friendly 'N minutes ago' / 'Today at 9:05' rendering for the banner."""
    if not timestamp_ms:
        return "Never"
    now = now or datetime.now()
    when = datetime.fromtimestamp(timestamp_ms / 1000)
    delta = now - when
    clock = f"{when.hour}:{when.minute:02d}"

    if delta < timedelta(hours=1):
        minutes = max(0, int(delta.total_seconds() // 60))
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    if when.date() == now.date():
        return f"Today at {clock}"
    if when.date() == (now - timedelta(days=1)).date():
        return f"Yesterday at {clock}"
    if delta < timedelta(days=7):
        return f"{when.strftime('%A')} at {clock}"
    return f"{when.strftime('%Y-%m-%d')} at {clock}"


class RecordRepository:
    """CRUD for every memory partition."""

    def __init__(self, db: Database):
        self.db = db

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def add_message(
        self, role: str, content: str, importance: str = "low", metadata: Optional[Dict[str, Any]] = None
    ) -> int:
        if role not in ("user", "assistant"):
            raise ValueError(f"role must be 'user' or 'assistant', got {role!r}")
        importance = validate_importance(importance, "low")
        message_id = await self.db.run(
            "INSERT INTO messages (role, content, created_at, importance, metadata) VALUES (?, ?, ?, ?, ?)",
            (role, content, now_ms(), importance, _dumps(metadata)),
        )
        logger.debug("Stored %s message %d", role, message_id)
        return message_id

    async def get_message(self, message_id: int) -> Optional[Dict[str, Any]]:
        row = await self.db.get(
            "SELECT id, role, content, created_at, importance, metadata FROM messages WHERE id = ?",
            (message_id,),
        )
        return _row_dict(row) if row else None

    async def recent_messages(self, limit: int = 10, importance: Optional[str] = None) -> List[Dict[str, Any]]:
        if importance:
            rows = await self.db.all(
                "SELECT id, role, content, created_at, importance, metadata FROM messages "
                "WHERE importance = ? ORDER BY created_at DESC, id DESC LIMIT ?",
                (validate_importance(importance, "low"), limit),
            )
        else:
            rows = await self.db.all(
                "SELECT id, role, content, created_at, importance, metadata FROM messages "
                "ORDER BY created_at DESC, id DESC LIMIT ?",
                (limit,),
            )
        return [_row_dict(r) for r in rows]

    async def delete_message(self, message_id: int) -> bool:
        return await self.db.run("DELETE FROM messages WHERE id = ?", (message_id,)) > 0

    # ------------------------------------------------------------------
    # Active files
    # ------------------------------------------------------------------

    async def track_file(self, filename: str, action: str, metadata: Optional[Dict[str, Any]] = None) -> int:
        """Upsert the file by name and log the action to the episode log."""
        stamp = now_ms()
        await self.db.run(
            """INSERT INTO active_files (filename, last_action, last_accessed, metadata)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(filename) DO UPDATE SET
                   last_action = excluded.last_action,
                   last_accessed = excluded.last_accessed,
                   metadata = excluded.metadata""",
            (filename, action, stamp, _dumps(metadata)),
        )
        file_id = await self.db.scalar("SELECT id FROM active_files WHERE filename = ?", (filename,))
        await self.add_episode("user", action, filename, context="file-tracking", timestamp=stamp)
        logger.debug("Tracked file %s (%s)", filename, action)
        return int(file_id)

    async def active_files(self, limit: int = 10) -> List[Dict[str, Any]]:
        rows = await self.db.all(
            """SELECT af.id, af.filename, af.last_action, af.last_accessed, af.metadata,
                      cf.id AS code_file_id
               FROM active_files af
               LEFT JOIN code_files cf ON cf.file_path = af.filename
               ORDER BY af.last_accessed DESC, af.id DESC LIMIT ?""",
            (limit,),
        )
        return [_row_dict(r) for r in rows]

    # ------------------------------------------------------------------
    # Long-term records
    # ------------------------------------------------------------------

    async def add_milestone(
        self,
        title: str,
        description: Optional[str] = None,
        importance: str = "medium",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        importance = validate_importance(importance, "medium")
        stamp = now_ms()
        milestone_id = await self.db.run(
            "INSERT INTO milestones (title, description, importance, created_at, metadata) VALUES (?, ?, ?, ?, ?)",
            (title, description, importance, stamp, _dumps(metadata)),
        )
        await self.add_episode(
            "system", "milestone_created", title, importance, "milestone-tracking", timestamp=stamp
        )
        return milestone_id

    async def add_decision(
        self,
        title: str,
        content: str,
        reasoning: Optional[str] = None,
        importance: str = "medium",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        importance = validate_importance(importance, "medium")
        stamp = now_ms()
        decision_id = await self.db.run(
            "INSERT INTO decisions (title, content, reasoning, importance, created_at, metadata) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (title, content, reasoning, importance, stamp, _dumps(metadata)),
        )
        await self.add_episode("system", "decision_made", title, importance, "decision-tracking", timestamp=stamp)
        return decision_id

    async def add_requirement(
        self,
        title: str,
        content: str,
        importance: str = "medium",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        importance = validate_importance(importance, "medium")
        stamp = now_ms()
        requirement_id = await self.db.run(
            "INSERT INTO requirements (title, content, importance, created_at, metadata) VALUES (?, ?, ?, ?, ?)",
            (title, content, importance, stamp, _dumps(metadata)),
        )
        await self.add_episode(
            "system", "requirement_added", title, importance, "requirement-tracking", timestamp=stamp
        )
        return requirement_id

    async def _long_term(self, table: str, columns: str, limit: int) -> List[Dict[str, Any]]:
        placeholders = ", ".join("?" for _ in LONG_TERM_IMPORTANCE)
        rows = await self.db.all(
            f"SELECT {columns} FROM {table} WHERE importance IN ({placeholders}) "
            f"ORDER BY created_at DESC, id DESC LIMIT ?",
            (*LONG_TERM_IMPORTANCE, limit),
        )
        return [_row_dict(r) for r in rows]

    async def recent_milestones(self, limit: int = 10) -> List[Dict[str, Any]]:
        return await self._long_term("milestones", "id, title, description, importance, created_at", limit)

    async def recent_decisions(self, limit: int = 10) -> List[Dict[str, Any]]:
        return await self._long_term("decisions", "id, title, content, reasoning, importance, created_at", limit)

    async def recent_requirements(self, limit: int = 10) -> List[Dict[str, Any]]:
        return await self._long_term("requirements", "id, title, content, importance, created_at", limit)

    # ------------------------------------------------------------------
    # Episodes
    # ------------------------------------------------------------------

    async def add_episode(
        self,
        actor: str,
        action: str,
        content: str,
        importance: str = "low",
        context: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        timestamp: Optional[int] = None,
    ) -> int:
        importance = validate_importance(importance, "low")
        return await self.db.run(
            "INSERT INTO episodes (actor, action, content, timestamp, importance, context, metadata) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (actor, action, content, timestamp or now_ms(), importance, context, _dumps(metadata)),
        )

    async def recent_episodes(self, limit: int = 10, context: Optional[str] = None) -> List[Dict[str, Any]]:
        if context:
            rows = await self.db.all(
                "SELECT id, actor, action, content, timestamp, importance, context FROM episodes "
                "WHERE context = ? ORDER BY timestamp DESC, id DESC LIMIT ?",
                (context, limit),
            )
        else:
            rows = await self.db.all(
                "SELECT id, actor, action, content, timestamp, importance, context FROM episodes "
                "ORDER BY timestamp DESC, id DESC LIMIT ?",
                (limit,),
            )
        return [_row_dict(r) for r in rows]

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    async def memory_count(self) -> int:
        total = 0
        for table in MEMORY_TABLES:
            total += int(await self.db.scalar(f"SELECT COUNT(*) FROM {table}"))
        return total

    async def latest_activity(self) -> Optional[int]:
        """Newest message or episode timestamp in ms, None for an empty store."""
        last_message = await self.db.scalar("SELECT MAX(created_at) FROM messages", default=None)
        last_episode = await self.db.scalar("SELECT MAX(timestamp) FROM episodes", default=None)
        stamps = [s for s in (last_message, last_episode) if s]
        return max(stamps) if stamps else None

    async def stats(self) -> Dict[str, Any]:
        counts = await self.db.table_counts()
        by_type = await self.db.all(
            "SELECT content_type, COUNT(*) AS n FROM fingerprints GROUP BY content_type ORDER BY content_type"
        )
        return {
            "counts": counts,
            "memoryCount": sum(counts[t] for t in MEMORY_TABLES),
            "fingerprintsByType": {r["content_type"]: r["n"] for r in by_type},
            "latestActivity": await self.latest_activity(),
        }
