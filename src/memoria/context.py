"""
Memoria Context Assembler -- one ranked snapshot across every memory partition.

Partitions:
- shortTerm: recent messages and active files
- longTerm: milestones, decisions and requirements of importance >= medium
- episodic: the recent episode log
- semantic: cross-type similarity hits (only when a query is given)

Each partition fetches a superset ordered by recency, then either ranks it by
relevance to the query fingerprint or keeps the newest rows. A failing
partition is reported inside that partition and never fails the snapshot.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import numpy as np

from memoria.config import MemoriaConfig
from memoria.database import Database
from memoria.fingerprint import embed
from memoria.records import RecordRepository
from memoria.relevance import RelevanceScorer
from memoria.similarity import SimilarityHit, SimilaritySearch

logger = logging.getLogger("memoria.context")

MESSAGE_TYPES = ("user_message", "assistant_message")


@dataclass(frozen=True)
class PartitionCap:
    fetch: int
    keep: int


CAPS = {
    "recentMessages": PartitionCap(15, 5),
    "activeFiles": PartitionCap(10, 5),
    "milestones": PartitionCap(10, 3),
    "decisions": PartitionCap(10, 3),
    "requirements": PartitionCap(10, 3),
    "recentEpisodes": PartitionCap(15, 5),
}

SIMILAR_MESSAGES_LIMIT = 3
SIMILAR_FILES_LIMIT = 2
SIMILAR_SNIPPETS_LIMIT = 3


def iso(timestamp_ms: Optional[int]) -> Optional[str]:
    """Millisecond epoch -> ISO-8601 UTC string."""
    if timestamp_ms is None:
        return None
    when = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return when.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _present(item: Dict[str, Any], time_field: str) -> Dict[str, Any]:
    out = dict(item)
    out[time_field] = iso(out.get(time_field))
    out.setdefault("relevance", None)
    return out


def group_snippets_by_file(snippets: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Group snippet hits by owning file, ranked by their best similarity."""
    groups: Dict[Any, Dict[str, Any]] = {}
    for snippet in snippets:
        path = snippet.get("file_path")
        group = groups.get(path)
        if group is None:
            group = groups[path] = {"file_path": path, "relevance": snippet["similarity"], "snippets": []}
        group["snippets"].append(snippet)
        group["relevance"] = max(group["relevance"], snippet["similarity"])
    return sorted(groups.values(), key=lambda g: g["relevance"], reverse=True)


class ContextAssembler:
    def __init__(
        self,
        db: Database,
        records: RecordRepository,
        scorer: RelevanceScorer,
        search: SimilaritySearch,
        config: MemoriaConfig,
    ):
        self.db = db
        self.records = records
        self.scorer = scorer
        self.search = search
        self.config = config

    async def _partition(
        self,
        name: str,
        fetch: Callable[[int], Awaitable[List[Dict[str, Any]]]],
        query: Optional[np.ndarray],
        primary_type: str,
        secondary_type: Optional[str] = None,
        time_field: str = "created_at",
        id_key: str = "id",
    ):
        cap = CAPS[name]
        try:
            rows = await fetch(cap.fetch)
            if query is not None:
                rows = await self.scorer.score(
                    rows,
                    query,
                    primary_type,
                    secondary_type,
                    threshold=self.config.relevance_threshold,
                    id_key=id_key,
                )
            return [_present(r, time_field) for r in rows[: cap.keep]]
        except Exception as e:
            logger.error("Context partition %s failed: %s", name, e)
            return {"error": str(e)}

    async def assemble(self, query_text: Optional[str] = None) -> Dict[str, Any]:
        snapshot: Dict[str, Any] = {
            "shortTerm": {},
            "longTerm": {},
            "episodic": {},
            "semantic": {},
            "system": {
                "healthy": True,
                "timestamp": iso(int(datetime.now(timezone.utc).timestamp() * 1000)),
                "mode": self.config.mode.value,
                "vectorIndex": self.db.vec_available,
            },
        }

        query = None
        if query_text:
            try:
                query = embed(query_text, self.config.dimensions)
            except Exception as e:
                logger.error("Query fingerprint failed: %s", e)
                snapshot["error"] = str(e)

        snapshot["shortTerm"] = {
            "recentMessages": await self._partition(
                "recentMessages", self.records.recent_messages, query, *MESSAGE_TYPES
            ),
            "activeFiles": await self._partition(
                "activeFiles",
                self.records.active_files,
                query,
                "code_file",
                time_field="last_accessed",
                id_key="code_file_id",
            ),
        }
        snapshot["longTerm"] = {
            "milestones": await self._partition("milestones", self.records.recent_milestones, query, "milestone"),
            "decisions": await self._partition("decisions", self.records.recent_decisions, query, "decision"),
            "requirements": await self._partition(
                "requirements", self.records.recent_requirements, query, "requirement"
            ),
        }
        snapshot["episodic"] = {
            "recentEpisodes": await self._partition(
                "recentEpisodes", self.records.recent_episodes, query, "episode", time_field="timestamp"
            ),
        }

        if query is not None:
            snapshot["semantic"] = await self._semantic(query)
        return snapshot

    # ------------------------------------------------------------------
    # Semantic partition
    # ------------------------------------------------------------------

    async def _semantic(self, query: np.ndarray) -> Dict[str, Any]:
        threshold = self.config.semantic_threshold
        semantic: Dict[str, Any] = {}

        try:
            hits: List[SimilarityHit] = []
            for content_type in MESSAGE_TYPES:
                hits.extend(await self.search.search(query, content_type, SIMILAR_MESSAGES_LIMIT, threshold))
            hits.sort(key=lambda h: h.similarity, reverse=True)
            semantic["similarMessages"] = [await self._hydrate(h) for h in hits[:SIMILAR_MESSAGES_LIMIT]]
        except Exception as e:
            logger.error("Semantic message search failed: %s", e)
            semantic["similarMessages"] = {"error": str(e)}

        try:
            hits = await self.search.search(query, "code_file", SIMILAR_FILES_LIMIT, threshold)
            semantic["similarFiles"] = [await self._hydrate(h) for h in hits]
        except Exception as e:
            logger.error("Semantic file search failed: %s", e)
            semantic["similarFiles"] = {"error": str(e)}

        try:
            hits = await self.search.search(query, "code_snippet", SIMILAR_SNIPPETS_LIMIT, threshold)
            semantic["similarSnippets"] = group_snippets_by_file([await self._hydrate(h) for h in hits])
        except Exception as e:
            logger.error("Semantic snippet search failed: %s", e)
            semantic["similarSnippets"] = {"error": str(e)}

        logger.debug(
            "Semantic context: %s messages, %s files, %s snippet groups",
            len(semantic["similarMessages"]),
            len(semantic["similarFiles"]),
            len(semantic["similarSnippets"]),
        )
        return semantic

    async def _hydrate(self, hit: SimilarityHit) -> Dict[str, Any]:
        """Attach the owning row's fields to a hit. Vanished owners keep the bare hit."""
        item: Dict[str, Any] = {"id": hit.content_id, "type": hit.content_type, "similarity": hit.similarity}
        if hit.content_type in MESSAGE_TYPES:
            row = await self.db.get(
                "SELECT role, content, created_at, importance FROM messages WHERE id = ?", (hit.content_id,)
            )
            if row:
                item.update(
                    role=row["role"],
                    content=row["content"],
                    created_at=iso(row["created_at"]),
                    importance=row["importance"],
                )
        elif hit.content_type == "code_file":
            row = await self.db.get(
                "SELECT file_path, language, last_indexed FROM code_files WHERE id = ?", (hit.content_id,)
            )
            if row:
                item.update(path=row["file_path"], language=row["language"], last_indexed=iso(row["last_indexed"]))
        elif hit.content_type == "code_snippet":
            row = await self.db.get(
                """SELECT cs.content, cs.start_line, cs.end_line, cs.symbol_type, cf.file_path
                   FROM code_snippets cs JOIN code_files cf ON cs.file_id = cf.id
                   WHERE cs.id = ?""",
                (hit.content_id,),
            )
            if row:
                item.update(
                    content=row["content"],
                    file_path=row["file_path"],
                    lines=f"{row['start_line']}-{row['end_line']}",
                    symbol_type=row["symbol_type"],
                )
        return item
