"""
Memoria Fingerprint Store -- persistence for (content id, type, vector) rows.

Vectors are stored as little-endian float32 BLOBs in the ``fingerprints``
table. When the sqlite-vec index is available, non-zero rows whose
dimensionality matches the index are mirrored into the vec0 table under the
same rowid so KNN queries can join back by id. The base table is the source
of truth; the mirror can always be rebuilt from it.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from memoria.database import VECTOR_INDEX_TABLE, Database
from memoria.errors import NotFound
from memoria.fingerprint import VectorLike, as_vector, decode_vector, encode_vector

logger = logging.getLogger("memoria.vector_store")


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class FingerprintRecord:
    id: int
    content_id: int
    content_type: str
    vector: np.ndarray
    created_at: int
    metadata: Optional[Dict[str, Any]] = field(default=None)

    @property
    def dimensions(self) -> int:
        return int(self.vector.shape[0])


def _loads(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.debug("Ignoring unparseable fingerprint metadata")
        return None


def _indexable(vector: np.ndarray) -> bool:
    # Zero-norm vectors have no cosine distance and can never meet a positive threshold
    return bool(np.any(vector))


def _row_to_record(row) -> FingerprintRecord:
    return FingerprintRecord(
        id=row["id"],
        content_id=row["content_id"],
        content_type=row["content_type"],
        vector=decode_vector(row["vector"]),
        created_at=row["created_at"],
        metadata=_loads(row["metadata"]),
    )


_SELECT = "SELECT id, content_id, content_type, vector, created_at, metadata FROM fingerprints"


class FingerprintStore:
    """CRUD and bulk scans over stored fingerprints."""

    def __init__(self, db: Database):
        self.db = db

    @property
    def index_available(self) -> bool:
        return self.db.vec_available

    async def _mirror(self, record_id: int, content_type: str, vector: np.ndarray) -> None:
        """Copy a row into the vec0 index. Index failures never fail the write."""
        if not self.db.vec_available or vector.shape[0] != self.db.dimensions or not _indexable(vector):
            return
        try:
            await self.db.run(f"DELETE FROM {VECTOR_INDEX_TABLE} WHERE rowid = ?", (record_id,))
            await self.db.run(
                f"INSERT INTO {VECTOR_INDEX_TABLE}(rowid, content_type, embedding) VALUES (?, ?, ?)",
                (record_id, content_type, encode_vector(vector)),
            )
        except Exception as e:
            logger.debug("Failed to mirror fingerprint %s into vector index: %s", record_id, e)

    async def _unmirror(self, record_ids: Iterable[int]) -> None:
        if not self.db.vec_available:
            return
        for record_id in record_ids:
            try:
                await self.db.run(f"DELETE FROM {VECTOR_INDEX_TABLE} WHERE rowid = ?", (record_id,))
            except Exception as e:
                logger.debug("Failed to delete vector index row %s: %s", record_id, e)

    async def store(
        self,
        content_id: int,
        content_type: str,
        vector: VectorLike,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Insert one fingerprint row. Duplicates are allowed until maintenance collapses them."""
        vec = as_vector(vector)
        record_id = await self.db.run(
            "INSERT INTO fingerprints (content_id, content_type, vector, dimensions, created_at, metadata) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                int(content_id),
                content_type,
                encode_vector(vec),
                int(vec.shape[0]),
                now_ms(),
                json.dumps(metadata) if metadata else None,
            ),
        )
        await self._mirror(record_id, content_type, vec)
        logger.debug("Stored %d-d fingerprint for %s %s", vec.shape[0], content_type, content_id)
        return record_id

    async def get(self, record_id: int) -> FingerprintRecord:
        row = await self.db.get(f"{_SELECT} WHERE id = ?", (int(record_id),))
        if row is None:
            raise NotFound("Vector", record_id)
        return _row_to_record(row)

    async def update(self, record_id: int, vector: VectorLike, metadata: Optional[Dict[str, Any]] = None) -> FingerprintRecord:
        existing = await self.get(record_id)
        vec = as_vector(vector)
        stamp = now_ms()
        await self.db.run(
            "UPDATE fingerprints SET vector = ?, dimensions = ?, metadata = ?, created_at = ? WHERE id = ?",
            (
                encode_vector(vec),
                int(vec.shape[0]),
                json.dumps(metadata) if metadata else None,
                stamp,
                existing.id,
            ),
        )
        if vec.shape[0] == self.db.dimensions and _indexable(vec):
            await self._mirror(existing.id, existing.content_type, vec)
        else:
            await self._unmirror([existing.id])
        existing.vector = vec
        existing.metadata = metadata
        existing.created_at = stamp
        return existing

    async def delete(self, record_id: int) -> None:
        row = await self.db.get("SELECT id FROM fingerprints WHERE id = ?", (int(record_id),))
        if row is None:
            raise NotFound("Vector", record_id)
        await self.db.run("DELETE FROM fingerprints WHERE id = ?", (row["id"],))
        await self._unmirror([row["id"]])

    async def delete_many(self, record_ids: List[int]) -> int:
        """Bulk delete used by maintenance and re-indexing. Missing ids are ignored."""
        removed = 0
        for record_id in record_ids:
            removed += await self.db.run("DELETE FROM fingerprints WHERE id = ?", (record_id,))
        await self._unmirror(record_ids)
        return removed

    async def delete_for_content(self, content_type: str, content_ids: Iterable[int]) -> int:
        ids = [
            row["id"]
            for cid in content_ids
            for row in await self.db.all(
                "SELECT id FROM fingerprints WHERE content_type = ? AND content_id = ?", (content_type, cid)
            )
        ]
        return await self.delete_many(ids)

    async def scan(self, content_type: Optional[str] = None) -> List[FingerprintRecord]:
        """All fingerprints, optionally restricted to one content type, in storage order."""
        if content_type:
            rows = await self.db.all(f"{_SELECT} WHERE content_type = ? ORDER BY id", (content_type,))
        else:
            rows = await self.db.all(f"{_SELECT} ORDER BY id")
        return [_row_to_record(r) for r in rows]

    async def scan_types(self, content_types: Iterable[str]) -> List[FingerprintRecord]:
        types = [t for t in content_types if t]
        if not types:
            return []
        placeholders = ", ".join("?" for _ in types)
        rows = await self.db.all(f"{_SELECT} WHERE content_type IN ({placeholders}) ORDER BY id", types)
        return [_row_to_record(r) for r in rows]

    async def count(self) -> int:
        return int(await self.db.scalar("SELECT COUNT(*) FROM fingerprints"))

    # ------------------------------------------------------------------
    # Index maintenance
    # ------------------------------------------------------------------

    async def _indexable_rows(self) -> List[tuple]:
        rows = await self.db.all(
            "SELECT id, content_type, vector FROM fingerprints WHERE dimensions = ? ORDER BY id",
            (self.db.dimensions,),
        )
        decoded = [(row["id"], row["content_type"], decode_vector(row["vector"])) for row in rows]
        return [r for r in decoded if _indexable(r[2])]

    async def rebuild_index(self) -> int:
        """Drop and repopulate the vec0 mirror from the base table. Returns rows indexed."""
        await self.db.drop_vector_index()
        if not await self.db.create_vector_index():
            return 0
        rows = await self._indexable_rows()
        for record_id, content_type, vector in rows:
            await self._mirror(record_id, content_type, vector)
        logger.info("Rebuilt vector index with %d fingerprints", len(rows))
        return len(rows)

    async def index_in_sync(self) -> bool:
        if not self.db.vec_available:
            return True
        try:
            indexed = await self.db.scalar(f"SELECT COUNT(*) FROM {VECTOR_INDEX_TABLE}")
        except Exception as e:
            logger.debug("Vector index count failed: %s", e)
            return False
        return int(indexed) == len(await self._indexable_rows())
