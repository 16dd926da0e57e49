"""Chat request pipeline: embed, retrieve, assemble, stream.

One ChatPipeline serves many requests; it holds only settings and stateless
clients. ``start`` runs every stage up to and including the first streamed
fragment, so all failures that can be reported as a JSON error surface there.
Whatever fails afterwards aborts the already-open event stream.
"""
from typing import AsyncIterator, Optional

import structlog

from folio.config import Settings
from folio.errors import UpstreamProtocolError, UpstreamUnavailable
from folio.llm_client import OpenAIClient
from folio.models import ChatRequest
from folio.rag.prompt import assemble_messages
from folio.rag.retriever import Retriever
from folio.rag.store_faiss import FAISSVectorStore
from folio.rag.store_supabase import SupabaseVectorStore

logger = structlog.get_logger()


def build_vector_store(settings: Settings, write: bool = False):
    """Create the configured vector store.

    Args:
        settings: Application settings
        write: Use write credentials (seeding)
    """
    if settings.vector_store == "faiss":
        return FAISSVectorStore(
            index_dir=settings.data_dir,
            embedding_model=settings.embedding_model,
            dimension=settings.embedding_dimension,
        )

    return SupabaseVectorStore(
        url=settings.supabase_url,
        api_key=settings.supabase_service_role_key if write else settings.supabase_anon_key,
        table=settings.supabase_table,
        match_function=settings.supabase_match_function,
        timeout=settings.upstream_timeout,
    )


def build_llm_client(settings: Settings) -> OpenAIClient:
    return OpenAIClient(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        chat_model=settings.chat_model,
        embedding_model=settings.embedding_model,
        timeout=settings.upstream_timeout,
    )


class ChatPipeline:
    """Orchestrates one grounded, streamed answer per request."""

    def __init__(self, settings: Settings, llm, retriever: Retriever):
        """
        Args:
            settings: Settings; validated at the start of every request
            llm: Object providing ``embed(text)`` and ``stream_chat(messages)``
            retriever: Similarity retriever over the knowledge base
        """
        self.settings = settings
        self.llm = llm
        self.retriever = retriever

    @classmethod
    def from_settings(cls, settings: Settings) -> "ChatPipeline":
        """Wire the real collaborators. No network or disk I/O happens here."""
        retriever = Retriever(
            build_vector_store(settings),
            dimension=settings.embedding_dimension,
            threshold=settings.match_threshold,
            limit=settings.match_count,
        )
        return cls(settings, build_llm_client(settings), retriever)

    async def start(self, chat_request: ChatRequest) -> "FragmentStream":
        """Run the pipeline until the first fragment is available.

        Returns:
            FragmentStream over every fragment, starting with the first one;
            closing it closes the upstream stream even if never iterated

        Raises:
            ConfigurationError: Missing/malformed settings, before any upstream call
            InvalidInput: If the last user message is empty
            UpstreamUnavailable: Embedding, retrieval or completion failures
            UpstreamQuotaExceeded: Provider usage limits hit
            UpstreamProtocolError: Undecodable provider response
        """
        self.settings.check()

        query = chat_request.last_user_message.content

        embedding = await self.llm.embed(query)

        try:
            results = await self.retriever.retrieve(embedding)
        except (UpstreamUnavailable, UpstreamProtocolError) as e:
            if not self.settings.degrade_on_retrieval_error:
                raise
            logger.warning("retrieval_degraded", error=str(e), error_kind=e.kind.value)
            results = []

        if not results:
            logger.info("no_relevant_context_found")

        messages = assemble_messages(results, chat_request.messages, self.settings.owner_name)

        logger.info(
            "prompt_assembled",
            snippets=len(results),
            message_count=len(messages),
        )

        fragments = self.llm.stream_chat(messages)

        try:
            first: Optional[str] = await fragments.__anext__()
        except StopAsyncIteration:
            first = None

        return FragmentStream(first, fragments)


class FragmentStream:
    """The prefetched first fragment followed by the rest of an upstream stream.

    ``aclose`` always closes the upstream stream, which is already open by the
    time this object exists.
    """

    def __init__(self, first: Optional[str], rest: AsyncIterator[str]):
        self._first = first
        self._rest = rest

    def __aiter__(self) -> "FragmentStream":
        return self

    async def __anext__(self) -> str:
        if self._first is not None:
            first, self._first = self._first, None
            return first
        return await self._rest.__anext__()

    async def aclose(self) -> None:
        self._first = None
        await self._rest.aclose()
