"""Tests for seeding the knowledge base."""
import pytest

from folio.errors import UpstreamQuotaExceeded, UpstreamUnavailable
from folio.rag.ingest import IngestPipeline
from folio.rag.knowledge import PORTFOLIO_FACTS

from conftest import FakeLLM, FakeStore


class FlakyEmbedder(FakeLLM):
    """Fails on chosen texts."""

    def __init__(self, failures):
        super().__init__()
        self.failures = failures

    async def embed(self, text):
        self.embed_calls.append(text)
        if text in self.failures:
            raise self.failures[text]
        return self.embedding


async def test_every_fact_is_embedded_and_inserted():
    llm, store = FakeLLM(), FakeStore()

    stats = await IngestPipeline(llm, store).ingest_all()

    assert stats == {
        "facts_processed": len(PORTFOLIO_FACTS),
        "facts_failed": 0,
        "embeddings_generated": len(PORTFOLIO_FACTS),
    }
    assert [content for content, _ in store.inserted] == PORTFOLIO_FACTS
    assert store.cleared == 0


async def test_rebuild_clears_first():
    store = FakeStore()

    await IngestPipeline(FakeLLM(), store, facts=["one"]).ingest_all(rebuild=True)

    assert store.cleared == 1
    assert len(store.inserted) == 1


async def test_failed_fact_does_not_stop_the_run():
    llm = FlakyEmbedder({"two": UpstreamUnavailable("timeout")})
    store = FakeStore()

    stats = await IngestPipeline(llm, store, facts=["one", "two", "three"]).ingest_all()

    assert stats["facts_processed"] == 2
    assert stats["facts_failed"] == 1
    assert [content for content, _ in store.inserted] == ["one", "three"]


async def test_quota_aborts_the_run():
    llm = FlakyEmbedder({"two": UpstreamQuotaExceeded("quota")})
    store = FakeStore()

    with pytest.raises(UpstreamQuotaExceeded):
        await IngestPipeline(llm, store, facts=["one", "two", "three"]).ingest_all()

    assert llm.embed_calls == ["one", "two"]


async def test_progress_callback():
    progress = []

    await IngestPipeline(FakeLLM(), FakeStore(), facts=["a", "b"]).ingest_all(
        progress_callback=lambda current, total, text: progress.append((current, total, text))
    )

    assert progress == [(1, 2, "a"), (2, 2, "b")]
