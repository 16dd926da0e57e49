"""Tests for the Supabase store against a mocked PostgREST API."""
import json

import httpx
import pytest

from folio.errors import UpstreamProtocolError, UpstreamQuotaExceeded, UpstreamUnavailable
from folio.rag.store_supabase import SupabaseVectorStore


def make_store(handler) -> SupabaseVectorStore:
    return SupabaseVectorStore(
        url="https://example.supabase.test/",
        api_key="anon-test",
        table="documents",
        match_function="match_documents",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


async def test_match_calls_stored_procedure():
    requests = []
    rows = [{"id": 1, "content": "My name is Manuela.", "similarity": 0.82}]

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json=rows)

    result = await make_store(handler).match_documents([0.1, 0.2], 0.5, 3)

    assert result == rows
    request = requests[0]
    assert request.method == "POST"
    assert request.url == "https://example.supabase.test/rest/v1/rpc/match_documents"
    assert request.headers["apikey"] == "anon-test"
    assert request.headers["Authorization"] == "Bearer anon-test"
    assert json.loads(request.content) == {
        "query_embedding": [0.1, 0.2],
        "match_threshold": 0.5,
        "match_count": 3,
    }


async def test_match_null_result_is_empty():
    store = make_store(lambda request: httpx.Response(200, content=b"null"))

    assert await store.match_documents([0.1], 0.5, 3) == []


async def test_match_unexpected_result_type():
    store = make_store(lambda request: httpx.Response(200, json={"rows": []}))

    with pytest.raises(UpstreamProtocolError):
        await store.match_documents([0.1], 0.5, 3)


@pytest.mark.parametrize("status", [400, 404, 500])
async def test_match_query_failure(status):
    store = make_store(lambda request: httpx.Response(status, json={"message": "function does not exist"}))

    with pytest.raises(UpstreamUnavailable, match="function does not exist"):
        await store.match_documents([0.1], 0.5, 3)


async def test_match_rate_limited():
    store = make_store(lambda request: httpx.Response(429, text="Too Many Requests"))

    with pytest.raises(UpstreamQuotaExceeded):
        await store.match_documents([0.1], 0.5, 3)


async def test_match_unreachable():
    def handler(request):
        raise httpx.ConnectError("name resolution failed", request=request)

    with pytest.raises(UpstreamUnavailable):
        await make_store(handler).match_documents([0.1], 0.5, 3)


async def test_insert_document():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(201)

    await make_store(handler).insert_document("Contact me via LinkedIn.", [0.3, 0.4])

    request = requests[0]
    assert request.url == "https://example.supabase.test/rest/v1/documents"
    assert request.headers["Prefer"] == "return=minimal"
    assert json.loads(request.content) == {"content": "Contact me via LinkedIn.", "embedding": [0.3, 0.4]}


async def test_clear_filters_on_id():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(204)

    await make_store(handler).clear()

    assert requests[0].method == "DELETE"
    assert requests[0].url.params["id"] == "gte.0"


async def test_count_reads_content_range():
    store = make_store(lambda request: httpx.Response(200, headers={"Content-Range": "0-5/6"}))

    assert await store.count() == 6
