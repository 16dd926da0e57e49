"""Retriever for semantic search over the portfolio knowledge base.

Handles:
- Query vector validation
- Similarity search through the configured vector store
- Result filtering and formatting
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import structlog

from folio import config
from folio.errors import AssistantError, ConfigurationError, UpstreamProtocolError, UpstreamUnavailable

logger = structlog.get_logger()

DEFAULT_THRESHOLD = 0.5
DEFAULT_LIMIT = 3


class VectorStore(Protocol):
    """What the retriever needs from a store."""

    async def match_documents(
        self, query_embedding: List[float], match_threshold: float, match_count: int
    ) -> List[Dict[str, Any]]:
        ...


@dataclass
class RetrievalQuery:
    """Parameters of one similarity search."""

    query_embedding: List[float]
    threshold: float = DEFAULT_THRESHOLD
    limit: int = DEFAULT_LIMIT


@dataclass
class RetrievalResult:
    """A single retrieved knowledge snippet."""

    content: str
    similarity: float
    id: Optional[Any] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def distance(self) -> float:
        """Cosine distance to the query."""
        return 1.0 - self.similarity


class Retriever:
    """Semantic retriever for the RAG pipeline."""

    def __init__(
        self,
        vector_store: VectorStore,
        dimension: int = None,
        threshold: float = None,
        limit: int = None,
    ):
        """Initialize the retriever.

        Args:
            vector_store: Store implementing ``match_documents``
            dimension: Expected query vector length (default from config)
            threshold: Minimum similarity, exclusive (default 0.5)
            limit: Maximum number of results (default 3)
        """
        self.vector_store = vector_store
        self.dimension = dimension or config.EMBEDDING_DIMENSION
        self.threshold = DEFAULT_THRESHOLD if threshold is None else threshold
        self.limit = limit or DEFAULT_LIMIT

    def build_query(
        self,
        query_embedding: List[float],
        threshold: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> RetrievalQuery:
        """Build a query, enforcing the dimension invariant.

        Raises:
            ConfigurationError: If the vector length differs from the configured dimension
        """
        if len(query_embedding) != self.dimension:
            raise ConfigurationError(
                f"Embedding has {len(query_embedding)} dimensions but the store "
                f"expects {self.dimension}; check EMBEDDING_MODEL and EMBEDDING_DIMENSION"
            )

        return RetrievalQuery(
            query_embedding=query_embedding,
            threshold=self.threshold if threshold is None else threshold,
            limit=self.limit if limit is None else limit,
        )

    async def retrieve(
        self,
        query_embedding: List[float],
        threshold: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[RetrievalResult]:
        """Retrieve snippets similar to a query vector.

        Args:
            query_embedding: Query vector
            threshold: Minimum similarity, exclusive (overrides default)
            limit: Number of results to return (overrides default)

        Returns:
            List of RetrievalResult, most similar first; empty when nothing
            exceeds the threshold

        Raises:
            ConfigurationError: On a dimension mismatch
            UpstreamUnavailable: If the store cannot be queried
        """
        query = self.build_query(query_embedding, threshold=threshold, limit=limit)

        logger.info("retrieval_started", threshold=query.threshold, limit=query.limit)

        try:
            rows = await self.vector_store.match_documents(
                query.query_embedding, query.threshold, query.limit
            )
        except AssistantError:
            raise
        except Exception as e:
            logger.error("retrieval_failed", error=str(e), error_type=type(e).__name__)
            raise UpstreamUnavailable(f"Vector store query failed: {e}", provider="vector_store") from e

        results = []
        for row in rows:
            try:
                result = RetrievalResult(
                    content=row["content"],
                    similarity=float(row["similarity"]),
                    id=row.get("id"),
                    metadata={k: v for k, v in row.items() if k not in ("id", "content", "similarity")},
                )
            except (KeyError, TypeError, ValueError) as e:
                raise UpstreamProtocolError(
                    f"Malformed match row: {str(row)[:100]}", provider="vector_store"
                ) from e

            # The store already filters; keep the contract even if it is misconfigured
            if result.similarity > query.threshold:
                results.append(result)

        results = results[: query.limit]

        logger.info(
            "retrieval_completed",
            results_returned=len(results),
            top_similarity=results[0].similarity if results else None,
        )

        return results
