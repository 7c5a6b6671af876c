"""
Tidings Embedding Cache
-----------------------
Qdrant-backed cache of record embeddings keyed 1:1 by record id.

Vectors are written lazily by hybrid search the first time a record is
scored and overwritten on re-put; nothing here tracks staleness because any
vector can be recomputed from the record text.
"""

import logging
import uuid
from typing import Optional, List, Dict, Sequence

from qdrant_client import QdrantClient
from qdrant_client.models import Distance, VectorParams, PointStruct

logger = logging.getLogger("Tidings.Vector")

DEFAULT_COLLECTION = "tidings_embeddings"
DEFAULT_DIMS = 64


def point_id_for(record_id: str) -> str:
    return str(uuid.uuid5(uuid.NAMESPACE_DNS, record_id))


class EmbeddingCache:
    """Record-id → vector cache in local Qdrant (on disk, or ``":memory:"``)."""

    def __init__(
        self,
        data_path: str = ":memory:",
        collection_name: str = DEFAULT_COLLECTION,
        embedding_dims: int = DEFAULT_DIMS,
    ):
        self.data_path = str(data_path)
        self.collection_name = collection_name
        self.embedding_dims = embedding_dims
        self._client: Optional[QdrantClient] = None
        self._initialize()

    def _get_client(self) -> QdrantClient:
        if self._client is None:
            if self.data_path == ":memory:":
                self._client = QdrantClient(location=":memory:")
            else:
                self._client = QdrantClient(path=self.data_path)
        return self._client

    def _initialize(self):
        client = self._get_client()
        collections = [c.name for c in client.get_collections().collections]
        if self.collection_name not in collections:
            # DOT keeps stored vectors verbatim (COSINE would renormalize zero vectors)
            client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(size=self.embedding_dims, distance=Distance.DOT),
            )
            logger.info("Created embedding collection '%s' (%d dims)", self.collection_name, self.embedding_dims)

    def put(self, record_id: str, vector: Sequence[float]) -> str:
        """Insert or overwrite the vector for ``record_id``. Returns the point id."""
        if len(vector) != self.embedding_dims:
            raise ValueError(
                f"vector for {record_id} has {len(vector)} dims, cache expects {self.embedding_dims}"
            )
        point_id = point_id_for(record_id)
        self._get_client().upsert(
            collection_name=self.collection_name,
            points=[
                PointStruct(
                    id=point_id,
                    vector=[float(v) for v in vector],
                    payload={"record_id": record_id, "dimensions": len(vector)},
                )
            ],
        )
        return point_id

    def get(self, record_ids: List[str]) -> Dict[str, List[float]]:
        """Cached vectors for whichever of ``record_ids`` have one."""
        if not record_ids:
            return {}
        points = self._get_client().retrieve(
            collection_name=self.collection_name,
            ids=[point_id_for(rid) for rid in record_ids],
            with_vectors=True,
            with_payload=True,
        )
        found: Dict[str, List[float]] = {}
        for point in points:
            if not point.payload or "record_id" not in point.payload or point.vector is None:
                continue
            vec = point.vector
            # Qdrant returns a dict for named vectors, a list otherwise
            if isinstance(vec, dict):
                vec = vec.get("default", next(iter(vec.values()), []))
            found[point.payload["record_id"]] = list(vec)
        return found

    def delete(self, record_id: str) -> bool:
        self._get_client().delete(
            collection_name=self.collection_name,
            points_selector=[point_id_for(record_id)],
        )
        return True

    def count(self) -> int:
        info = self._get_client().get_collection(self.collection_name)
        return info.points_count or 0

    def close(self):
        if self._client:
            self._client.close()
            self._client = None
