"""Tests for the POST /api/chat endpoint and health probes."""
import pytest

from folio.errors import (
    ConfigurationError,
    UpstreamProtocolError,
    UpstreamQuotaExceeded,
    UpstreamUnavailable,
)
from folio.client import SSEDecoder
from folio.main import EventStream, event_stream, format_event
from folio.models import parse_chat_request

from conftest import FakeLLM, FakeStore, make_pipeline


async def test_end_to_end_stream_body(settings, fake_llm, fake_store, make_app, user_conversation):
    """Fragments from the model arrive as data records, in order, with nothing else."""
    app = make_app(settings, fake_llm, fake_store)
    client = app.test_client()

    response = await client.post("/api/chat", json=user_conversation)
    body = await response.get_data(as_text=True)

    assert response.status_code == 200
    assert body == (
        "data: Manuela \n\n"
        "data: is a Full Stack Developer \n\n"
        "data: with 5 years of experience.\n\n"
    )

    # The latest user turn was embedded and the grounded prompt reached the model
    assert fake_llm.embed_calls == ["What is Manuela's experience?"]
    messages = fake_llm.stream_calls[0]
    assert messages[0]["role"] == "system"
    assert "5 years of experience" in messages[0]["content"]
    assert messages[1:] == [{"role": "user", "content": "What is Manuela's experience?"}]


async def test_stream_headers(settings, fake_llm, fake_store, make_app, user_conversation):
    app = make_app(settings, fake_llm, fake_store)
    client = app.test_client()

    response = await client.post("/api/chat", json=user_conversation)
    await response.get_data()

    assert response.headers["Content-Type"] == "text/event-stream"
    assert response.headers["Cache-Control"] == "no-cache"
    assert response.headers["Connection"] == "keep-alive"
    assert response.headers["Access-Control-Allow-Origin"] == "*"


async def test_missing_credential_short_circuits(settings, fake_llm, fake_store, make_app, user_conversation):
    """No upstream is contacted when a required credential is missing."""
    broken = settings.model_copy(update={"openai_api_key": ""})
    app = make_app(broken, fake_llm, fake_store)
    client = app.test_client()

    response = await client.post("/api/chat", json=user_conversation)
    data = await response.get_json()

    assert response.status_code == 500
    assert "error" in data
    assert fake_llm.embed_calls == []
    assert fake_store.match_calls == []
    assert fake_llm.stream_calls == []
    assert app.factory_calls == []


async def test_quota_exceeded_maps_to_503(settings, fake_store, make_app, user_conversation):
    llm = FakeLLM(stream_error=UpstreamQuotaExceeded("openai quota exceeded (HTTP 429)"))
    app = make_app(settings, llm, fake_store)
    client = app.test_client()

    response = await client.post("/api/chat", json=user_conversation)
    data = await response.get_json()

    assert response.status_code == 503
    assert "temporarily unavailable" in data["error"]


async def test_quota_during_embedding_maps_to_503(settings, fake_store, make_app, user_conversation):
    llm = FakeLLM(embed_error=UpstreamQuotaExceeded("openai quota exceeded (HTTP 429)"))
    app = make_app(settings, llm, fake_store)
    client = app.test_client()

    response = await client.post("/api/chat", json=user_conversation)

    assert response.status_code == 503
    assert fake_store.match_calls == []


@pytest.mark.parametrize(
    "llm_kwargs",
    [
        {"embed_error": UpstreamUnavailable("openai unreachable")},
        {"stream_error": UpstreamUnavailable("openai request failed (HTTP 500)")},
        {"stream_error": UpstreamProtocolError("Malformed event from OpenAI")},
    ],
)
async def test_upstream_failures_before_streaming_are_json_500(
    settings, fake_store, make_app, user_conversation, llm_kwargs
):
    app = make_app(settings, FakeLLM(**llm_kwargs), fake_store)
    client = app.test_client()

    response = await client.post("/api/chat", json=user_conversation)
    data = await response.get_json()

    assert response.status_code == 500
    assert response.headers["Content-Type"].startswith("application/json")
    assert "temporarily unavailable" not in data["error"]


async def test_retrieval_failure_aborts_request(settings, fake_llm, make_app, user_conversation):
    store = FakeStore(error=UpstreamUnavailable("supabase unreachable"))
    app = make_app(settings, fake_llm, store)
    client = app.test_client()

    response = await client.post("/api/chat", json=user_conversation)

    assert response.status_code == 500
    assert fake_llm.stream_calls == []


async def test_dimension_mismatch_is_configuration_error(settings, fake_store, make_app, user_conversation):
    llm = FakeLLM(embedding=[0.1] * 1536, fragments=["x"])
    app = make_app(settings, llm, fake_store)
    client = app.test_client()

    response = await client.post("/api/chat", json=user_conversation)
    data = await response.get_json()

    assert response.status_code == 500
    assert data["error"] == ConfigurationError.public_message
    assert fake_store.match_calls == []


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"messages": []},
        {"messages": [{"id": "1", "role": "robot", "content": "hi"}]},
        {"messages": [{"id": "1", "role": "assistant", "content": "Hello!"}]},
        {"messages": [{"id": "1", "role": "user", "content": "   "}]},
    ],
)
async def test_invalid_body_is_400(settings, fake_llm, fake_store, make_app, body):
    app = make_app(settings, fake_llm, fake_store)
    client = app.test_client()

    response = await client.post("/api/chat", json=body)
    data = await response.get_json()

    assert response.status_code == 400
    assert data["error"]
    assert fake_llm.embed_calls == []


async def test_non_json_body_is_400(settings, fake_llm, fake_store, make_app):
    app = make_app(settings, fake_llm, fake_store)
    client = app.test_client()

    response = await client.post("/api/chat", data="not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400


async def test_pipeline_is_built_once(settings, fake_llm, fake_store, make_app, user_conversation):
    app = make_app(settings, fake_llm, fake_store)
    client = app.test_client()

    for _ in range(2):
        response = await client.post("/api/chat", json=user_conversation)
        await response.get_data()

    assert len(app.factory_calls) == 1


async def test_preflight(settings, fake_llm, fake_store, make_app):
    app = make_app(settings, fake_llm, fake_store)
    client = app.test_client()

    response = await client.options("/api/chat")

    assert response.status_code == 204
    assert "POST" in response.headers["Access-Control-Allow-Methods"]
    assert response.headers["Access-Control-Allow-Origin"] == "*"


async def test_health_probes(settings, fake_llm, fake_store, make_app):
    client = make_app(settings, fake_llm, fake_store).test_client()

    live = await client.get("/health/live")
    ready = await client.get("/health/ready")

    assert live.status_code == 200
    assert (await live.get_json()) == {"status": "alive"}
    assert ready.status_code == 200


async def test_ready_probe_reports_missing_settings(settings, fake_llm, fake_store, make_app):
    broken = settings.model_copy(update={"supabase_url": ""})
    client = make_app(broken, fake_llm, fake_store).test_client()

    response = await client.get("/health/ready")
    data = await response.get_json()

    assert response.status_code == 503
    assert "SUPABASE_URL" in data["error"]


async def _fragments(items, error=None):
    for item in items:
        yield item
    if error is not None:
        raise error


async def test_event_stream_frames_fragments():
    frames = [frame async for frame in event_stream(_fragments(["a", "b c"]))]

    assert frames == [b"data: a\n\n", b"data: b c\n\n"]


async def test_event_stream_reraises_mid_stream_failure():
    """A failure after headers are sent aborts the stream instead of closing it cleanly."""
    frames = []
    stream = event_stream(_fragments(["partial"], error=UpstreamUnavailable("connection reset")))

    with pytest.raises(UpstreamUnavailable):
        async for frame in stream:
            frames.append(frame)

    assert frames == [format_event("partial")]


def test_format_event_encodes_utf8():
    assert format_event("olá") == "data: olá\n\n".encode("utf-8")


def test_format_event_splits_lines_into_data_fields():
    assert format_event("a\nb") == b"data: a\ndata: b\n\n"
    assert format_event("\n") == b"data: \ndata: \n\n"
    assert format_event("\n\n") == b"data: \ndata: \ndata: \n\n"


async def test_newline_fragments_survive_the_stream(settings, fake_store, make_app, user_conversation):
    fragments = ["Projects:", "\n", "Project Alpha", "\n\n", "Project Beta", "\n"]
    app = make_app(settings, FakeLLM(fragments=fragments), fake_store)
    client = app.test_client()

    response = await client.post("/api/chat", json=user_conversation)
    body = await response.get_data()

    decoder = SSEDecoder()
    received = decoder.feed(body)

    assert received == fragments
    assert "".join(received) == "Projects:\nProject Alpha\n\nProject Beta\n"
    assert decoder.pending == ""


async def test_closing_unread_body_closes_upstream(settings, fake_llm, fake_store, user_conversation):
    """A response torn down before its first record is pulled still releases the model stream."""
    pipeline = make_pipeline(settings, fake_llm, fake_store)
    fragments = await pipeline.start(parse_chat_request(user_conversation))
    assert fake_llm.stream_closed is False

    await EventStream(fragments).aclose()

    assert fake_llm.stream_closed is True


async def test_event_stream_body_closes_upstream_when_done(settings, fake_llm, fake_store, user_conversation):
    pipeline = make_pipeline(settings, fake_llm, fake_store)
    body = EventStream(await pipeline.start(parse_chat_request(user_conversation)))

    frames = [frame async for frame in body]

    assert len(frames) == 3
    assert fake_llm.stream_closed is True
