"""Local FAISS vector store for development without a hosted database.

Handles:
- FAISS index initialization and loading
- Dimension validation against the configured embedding model
- Cosine similarity search with threshold and limit
- Document and metadata persistence

Vectors are L2-normalized and stored in an inner-product index, so the score
FAISS returns is the cosine similarity (``1 - cosine_distance``).
"""
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import faiss
import numpy as np
import structlog

from folio import config
from folio.errors import ConfigurationError

logger = structlog.get_logger()


class FAISSVectorStore:
    """FAISS-backed store implementing the same contract as the Supabase store."""

    def __init__(
        self,
        index_dir: Path = None,
        embedding_model: str = None,
        dimension: int = None,
    ):
        """Initialize the FAISS vector store.

        Args:
            index_dir: Directory to store index and metadata (default: DATA_DIR)
            embedding_model: Embedding model name (default from config)
            dimension: Expected embedding dimension (default from config)
        """
        self.index_dir = Path(index_dir or config.DATA_DIR)
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL
        self.dimension = dimension or config.EMBEDDING_DIMENSION

        self.index_path = self.index_dir / "vectors.index"
        self.metadata_path = self.index_dir / "metadata.json"

        self.index: Optional[faiss.Index] = None
        self.documents: List[Dict[str, Any]] = []

        logger.info(
            "faiss_store_initialized",
            index_dir=str(self.index_dir),
            embedding_model=self.embedding_model,
            dimension=self.dimension,
        )

    def init_new_index(self) -> None:
        """Initialize a new, empty index."""
        # Exact search; six facts do not need anything smarter
        self.index = faiss.IndexFlatIP(self.dimension)
        self.documents = []

        logger.info("faiss_index_initialized", dimension=self.dimension, index_type="IndexFlatIP")

    def load_index(self) -> None:
        """Load an existing index from disk.

        Raises:
            FileNotFoundError: If index files don't exist
            ConfigurationError: If the stored dimension differs from the configured one
        """
        if not self.index_path.exists():
            raise FileNotFoundError(f"Index not found: {self.index_path}")

        if not self.metadata_path.exists():
            raise FileNotFoundError(f"Metadata not found: {self.metadata_path}")

        with open(self.metadata_path, "r") as f:
            metadata = json.load(f)

        stored_model = metadata.get("embedding_model")
        stored_dim = metadata.get("embedding_dimension")

        if stored_dim != self.dimension:
            raise ConfigurationError(
                f"Dimension mismatch: index was built with {stored_model} "
                f"(dim={stored_dim}), but {self.embedding_model} is configured "
                f"with dim={self.dimension}. Rebuild the index with scripts/seed.py --rebuild."
            )

        self.index = faiss.read_index(str(self.index_path))
        self.documents = metadata.get("documents", [])

        logger.info(
            "faiss_index_loaded",
            dimension=self.dimension,
            vector_count=self.index.ntotal,
            model=stored_model,
        )

    def save_index(self) -> None:
        """Save index and metadata to disk."""
        if self.index is None:
            raise RuntimeError("No index to save. Initialize or load an index first.")

        self.index_dir.mkdir(parents=True, exist_ok=True)

        faiss.write_index(self.index, str(self.index_path))

        metadata = {
            "embedding_model": self.embedding_model,
            "embedding_dimension": self.dimension,
            "index_type": "IndexFlatIP",
            "vector_count": self.index.ntotal,
            "documents": self.documents,
        }
        with open(self.metadata_path, "w") as f:
            json.dump(metadata, f, indent=2)

        logger.info(
            "faiss_index_saved",
            index_path=str(self.index_path),
            vector_count=self.index.ntotal,
        )

    def init_or_load(self) -> "FAISSVectorStore":
        """Load the index from disk if present, otherwise start an empty one."""
        if self.index_path.exists() and self.metadata_path.exists():
            logger.info("existing_index_detected", path=str(self.index_path))
            self.load_index()
        else:
            logger.info("no_index_found_initializing_new")
            self.init_new_index()
        return self

    def _as_unit_matrix(self, vectors: List[List[float]]) -> np.ndarray:
        matrix = np.array(vectors, dtype=np.float32)

        if matrix.ndim != 2 or matrix.shape[1] != self.dimension:
            got = matrix.shape[-1] if matrix.ndim else 0
            raise ConfigurationError(
                f"Embedding dimension mismatch: expected {self.dimension}, got {got}"
            )

        faiss.normalize_L2(matrix)
        return matrix

    async def insert_document(self, content: str, embedding: List[float]) -> None:
        """Append one knowledge row and persist the index."""
        if self.index is None:
            self.init_or_load()

        self.index.add(self._as_unit_matrix([embedding]))
        self.documents.append({"id": len(self.documents), "content": content})
        self.save_index()

        logger.debug("faiss_row_inserted", content_preview=content[:20])

    async def match_documents(
        self,
        query_embedding: List[float],
        match_threshold: float,
        match_count: int,
    ) -> List[Dict[str, Any]]:
        """Return rows whose cosine similarity exceeds the threshold.

        Results are ordered by descending similarity; equal scores keep
        insertion order.

        Returns:
            Rows with id, content and similarity, best match first
        """
        if self.index is None:
            self.init_or_load()

        if self.index.ntotal == 0 or match_count <= 0:
            return []

        query = self._as_unit_matrix([query_embedding])
        scores, indices = self.index.search(query, self.index.ntotal)

        candidates = [
            (float(score), int(idx))
            for score, idx in zip(scores[0].tolist(), indices[0].tolist())
            if idx >= 0 and score > match_threshold
        ]
        candidates.sort(key=lambda pair: (-pair[0], pair[1]))

        rows = [
            {
                "id": self.documents[idx]["id"],
                "content": self.documents[idx]["content"],
                "similarity": score,
            }
            for score, idx in candidates[:match_count]
        ]

        logger.debug(
            "faiss_match_completed",
            candidates=len(candidates),
            returned=len(rows),
        )

        return rows

    async def clear(self) -> None:
        """Delete the index files and start over."""
        logger.warning("rebuilding_index", index_dir=str(self.index_dir))

        if self.index_path.exists():
            self.index_path.unlink()
        if self.metadata_path.exists():
            self.metadata_path.unlink()

        self.init_new_index()

    async def count(self) -> int:
        if self.index is None:
            self.init_or_load()
        return self.index.ntotal

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the vector store."""
        if self.index is None:
            return {"backend": "faiss", "initialized": False, "vector_count": 0}

        return {
            "backend": "faiss",
            "initialized": True,
            "vector_count": self.index.ntotal,
            "dimension": self.dimension,
            "embedding_model": self.embedding_model,
            "index_exists_on_disk": self.index_path.exists(),
        }
