"""Seeding pipeline for the portfolio knowledge base.

Orchestrates:
- Embedding each fact independently
- Inserting content/embedding rows into the vector store
- Optional clearing of the store before a rebuild
"""
from typing import Any, Callable, Dict, List, Optional, Protocol

import structlog

from folio.errors import AssistantError, ConfigurationError, UpstreamQuotaExceeded
from folio.rag.knowledge import PORTFOLIO_FACTS

logger = structlog.get_logger()


class Embedder(Protocol):
    async def embed(self, text: str) -> List[float]:
        ...


class WritableStore(Protocol):
    async def insert_document(self, content: str, embedding: List[float]) -> None:
        ...

    async def clear(self) -> None:
        ...


class IngestPipeline:
    """Pipeline for loading facts into the RAG vector store."""

    def __init__(
        self,
        embedder: Embedder,
        vector_store: WritableStore,
        facts: Optional[List[str]] = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            embedder: Client providing ``embed(text)``
            vector_store: Store providing ``insert_document`` and ``clear``
            facts: Texts to load (default: PORTFOLIO_FACTS)
        """
        self.embedder = embedder
        self.vector_store = vector_store
        self.facts = list(PORTFOLIO_FACTS if facts is None else facts)
        self.stats = self._empty_stats()

        logger.info("ingest_pipeline_initialized", fact_count=len(self.facts))

    @staticmethod
    def _empty_stats() -> Dict[str, int]:
        return {
            "facts_processed": 0,
            "facts_failed": 0,
            "embeddings_generated": 0,
        }

    async def ingest_fact(self, text: str) -> None:
        """Embed one fact and insert it."""
        embedding = await self.embedder.embed(text)
        self.stats["embeddings_generated"] += 1

        await self.vector_store.insert_document(text, embedding)
        self.stats["facts_processed"] += 1

        logger.info("fact_inserted", content_preview=text[:20])

    async def ingest_all(
        self,
        rebuild: bool = False,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> Dict[str, Any]:
        """Load every fact into the store.

        Args:
            rebuild: If True, clear the store before inserting
            progress_callback: Optional callback function(current, total, text)

        Returns:
            Dictionary with ingestion statistics

        Raises:
            ConfigurationError: On a configuration problem (aborts the run)
            UpstreamQuotaExceeded: When the provider is out of quota (aborts the run)
        """
        logger.info("starting_ingest_all", rebuild=rebuild, fact_count=len(self.facts))

        if rebuild:
            await self.vector_store.clear()
            logger.info("vector_store_cleared")

        self.stats = self._empty_stats()

        for idx, text in enumerate(self.facts, 1):
            if progress_callback:
                progress_callback(idx, len(self.facts), text)

            try:
                await self.ingest_fact(text)
            except (ConfigurationError, UpstreamQuotaExceeded):
                raise
            except AssistantError as e:
                logger.error(
                    "fact_ingestion_failed",
                    content_preview=text[:20],
                    error=str(e),
                    error_kind=e.kind.value,
                )
                self.stats["facts_failed"] += 1
                # Continue with next fact instead of failing entirely

        logger.info("ingest_all_completed", stats=self.stats)

        return self.stats
