"""Relevance scoring of domain records against a query fingerprint."""

import logging
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from memoria.config import DEFAULT_RELEVANCE_THRESHOLD
from memoria.fingerprint import cosine_similarity
from memoria.vector_store import FingerprintStore

logger = logging.getLogger("memoria.relevance")


class RelevanceScorer:
    """Joins records to their fingerprints by id and ranks them by cosine similarity.

    A record with no fingerprint scores 0, so it only survives when the
    threshold is <= 0. Input dicts are copied, never mutated.
    """

    def __init__(self, store: FingerprintStore):
        self.store = store

    async def _lookup(self, content_types: Sequence[str]) -> Dict[int, np.ndarray]:
        vectors: Dict[int, np.ndarray] = {}
        newest: Dict[int, tuple] = {}
        for record in await self.store.scan_types(content_types):
            # Newest fingerprint wins when duplicates have not been collapsed yet
            key = (record.created_at, record.id)
            if record.content_id not in newest or key > newest[record.content_id]:
                newest[record.content_id] = key
                vectors[record.content_id] = record.vector
        return vectors

    async def score(
        self,
        items: List[Dict[str, Any]],
        query_vector: np.ndarray,
        primary_type: str,
        secondary_type: Optional[str] = None,
        threshold: float = DEFAULT_RELEVANCE_THRESHOLD,
        id_key: str = "id",
    ) -> List[Dict[str, Any]]:
        if not items:
            return []
        types = [primary_type] + ([secondary_type] if secondary_type else [])
        vectors = await self._lookup(types)

        scored = []
        for item in items:
            fingerprint = vectors.get(item.get(id_key))
            relevance = cosine_similarity(query_vector, fingerprint) if fingerprint is not None else 0.0
            if relevance >= threshold:
                scored.append({**item, "relevance": relevance})

        scored.sort(key=lambda i: i["relevance"], reverse=True)
        logger.debug("Scored %d %s items, %d above %.2f", len(items), primary_type, len(scored), threshold)
        return scored
