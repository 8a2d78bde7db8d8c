"""
Memoria Similarity Search -- top-K fingerprints by cosine similarity.

Two interchangeable execution paths:

1. Index: sqlite-vec KNN over the vec0 mirror, filtered by content type inside
   the KNN query, over-fetching 2x the limit before threshold filtering.
2. Linear scan: decode every candidate fingerprint and compute cosine in
   process. Always correct; used whenever the index cannot answer.

Both return the same hits for the same inputs, up to ordering of ties.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from memoria.config import DEFAULT_SEARCH_THRESHOLD
from memoria.database import VECTOR_INDEX_TABLE, Database
from memoria.fingerprint import VectorLike, as_vector, cosine_similarity, encode_vector
from memoria.vector_store import FingerprintStore

logger = logging.getLogger("memoria.similarity")

INDEX_OVERFETCH = 2


@dataclass(frozen=True)
class SimilarityHit:
    record_id: int
    content_id: int
    content_type: str
    similarity: float

    def to_dict(self) -> dict:
        return {
            "id": self.record_id,
            "contentId": self.content_id,
            "contentType": self.content_type,
            "similarity": self.similarity,
        }


class SimilaritySearch:
    def __init__(self, db: Database, store: FingerprintStore):
        self.db = db
        self.store = store

    def _index_usable(self, query: np.ndarray, threshold: float) -> bool:
        # Zero-norm queries and non-positive thresholds would need the
        # "similarity 0" rows that vec0 cannot report, so those go to the scan.
        return (
            self.db.vec_available
            and query.shape[0] == self.db.dimensions
            and threshold > 0
            and float(np.linalg.norm(query)) > 0.0
        )

    async def search(
        self,
        query_vector: VectorLike,
        content_type: Optional[str] = None,
        limit: int = 10,
        threshold: float = DEFAULT_SEARCH_THRESHOLD,
    ) -> List[SimilarityHit]:
        """Return up to ``limit`` hits with similarity >= threshold, best first."""
        if limit <= 0:
            return []
        query = as_vector(query_vector)

        if self._index_usable(query, threshold):
            try:
                return await self.search_index(query, content_type, limit, threshold)
            except Exception as e:
                # Top-K unsupported at runtime is recoverable, not an error
                logger.debug("Vector index search failed, falling back to full scan: %s", e)

        return await self.search_linear(query, content_type, limit, threshold)

    async def search_index(
        self,
        query: np.ndarray,
        content_type: Optional[str],
        limit: int,
        threshold: float,
    ) -> List[SimilarityHit]:
        k = limit * INDEX_OVERFETCH
        blob = encode_vector(query)
        if content_type:
            rows = await self.db.all(
                f"""SELECT v.rowid AS id, v.distance AS distance, f.content_id, f.content_type
                    FROM {VECTOR_INDEX_TABLE} v
                    JOIN fingerprints f ON f.id = v.rowid
                    WHERE v.embedding MATCH ? AND k = ? AND v.content_type = ?
                    ORDER BY v.distance""",
                (blob, k, content_type),
            )
        else:
            rows = await self.db.all(
                f"""SELECT v.rowid AS id, v.distance AS distance, f.content_id, f.content_type
                    FROM {VECTOR_INDEX_TABLE} v
                    JOIN fingerprints f ON f.id = v.rowid
                    WHERE v.embedding MATCH ? AND k = ?
                    ORDER BY v.distance""",
                (blob, k),
            )

        hits = []
        for row in rows:
            distance = row["distance"]
            similarity = 0.0 if distance is None else 1.0 - float(distance)
            if not math.isfinite(similarity):
                similarity = 0.0
            similarity = max(-1.0, min(1.0, similarity))
            if similarity >= threshold:
                hits.append(SimilarityHit(row["id"], row["content_id"], row["content_type"], similarity))
        hits.sort(key=lambda h: h.similarity, reverse=True)
        return hits[:limit]

    async def search_linear(
        self,
        query_vector: VectorLike,
        content_type: Optional[str] = None,
        limit: int = 10,
        threshold: float = DEFAULT_SEARCH_THRESHOLD,
    ) -> List[SimilarityHit]:
        if limit <= 0:
            return []
        query = as_vector(query_vector)
        hits = []
        for record in await self.store.scan(content_type):
            similarity = cosine_similarity(query, record.vector)
            if similarity >= threshold:
                hits.append(SimilarityHit(record.id, record.content_id, record.content_type, similarity))
        # sort() is stable, so ties keep storage order
        hits.sort(key=lambda h: h.similarity, reverse=True)
        return hits[:limit]
