"""Pytest configuration and shared fixtures."""
from typing import Dict, List, Optional

import httpx
import pytest

from folio.config import Settings
from folio.main import create_app
from folio.pipeline import ChatPipeline
from folio.rag.retriever import Retriever

DIMENSION = 4
QUERY_VECTOR = [0.1, 0.2, 0.3, 0.4]


class FakeLLM:
    """Stands in for OpenAIClient; records every call."""

    def __init__(
        self,
        embedding: Optional[List[float]] = None,
        fragments: List[str] = (),
        embed_error: Optional[Exception] = None,
        stream_error: Optional[Exception] = None,
        fail_at: int = 0,
    ):
        self.embedding = list(QUERY_VECTOR if embedding is None else embedding)
        self.fragments = list(fragments)
        self.embed_error = embed_error
        self.stream_error = stream_error
        self.fail_at = fail_at
        self.embed_calls: List[str] = []
        self.stream_calls: List[List[Dict[str, str]]] = []
        self.stream_closed = False

    async def embed(self, text: str) -> List[float]:
        self.embed_calls.append(text)
        if self.embed_error is not None:
            raise self.embed_error
        return self.embedding

    async def stream_chat(self, messages):
        self.stream_calls.append(messages)
        try:
            for index, fragment in enumerate(self.fragments):
                if self.stream_error is not None and index == self.fail_at:
                    raise self.stream_error
                yield fragment
            if self.stream_error is not None and self.fail_at >= len(self.fragments):
                raise self.stream_error
        finally:
            self.stream_closed = True


class FakeStore:
    """In-memory stand-in for a vector store; records match calls."""

    def __init__(self, rows: List[dict] = (), error: Optional[Exception] = None):
        self.rows = list(rows)
        self.error = error
        self.match_calls = []
        self.inserted = []
        self.cleared = 0

    async def match_documents(self, query_embedding, match_threshold, match_count):
        self.match_calls.append((query_embedding, match_threshold, match_count))
        if self.error is not None:
            raise self.error
        return self.rows

    async def insert_document(self, content, embedding):
        if self.error is not None:
            raise self.error
        self.inserted.append((content, embedding))

    async def clear(self):
        self.cleared += 1
        self.inserted = []


class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered in the given chunks, optionally cut off at the end."""

    def __init__(self, chunks: List[bytes], broken: bool = False):
        self.chunks = chunks
        self.broken = broken

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        if self.broken:
            raise httpx.RemoteProtocolError("peer closed connection without sending complete message body")


@pytest.fixture
def settings() -> Settings:
    """Valid settings that never point at a real service."""
    return Settings(
        openai_api_key="sk-test",
        openai_base_url="https://api.openai.test/v1",
        supabase_url="https://example.supabase.test",
        supabase_anon_key="anon-test",
        embedding_dimension=DIMENSION,
    )


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM(fragments=["Manuela ", "is a Full Stack Developer ", "with 5 years of experience."])


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore(
        rows=[
            {
                "id": 1,
                "content": "My name is Manuela. I am a Full Stack Developer with 5 years of experience.",
                "similarity": 0.82,
            }
        ]
    )


def make_pipeline(settings: Settings, llm: FakeLLM, store: FakeStore) -> ChatPipeline:
    retriever = Retriever(
        store,
        dimension=settings.embedding_dimension,
        threshold=settings.match_threshold,
        limit=settings.match_count,
    )
    return ChatPipeline(settings, llm, retriever)


@pytest.fixture
def make_app():
    """Build an app wired to fakes; records how often the pipeline is built."""

    def _make(settings: Settings, llm: FakeLLM, store: FakeStore):
        factory_calls = []

        def factory(s: Settings) -> ChatPipeline:
            factory_calls.append(s)
            return make_pipeline(s, llm, store)

        app = create_app(settings=settings, pipeline_factory=factory)
        app.factory_calls = factory_calls
        return app

    return _make


@pytest.fixture
def user_conversation() -> dict:
    return {"messages": [{"id": "1", "role": "user", "content": "What is Manuela's experience?"}]}
