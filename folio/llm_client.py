"""OpenAI LLM client wrapper with error handling."""
import json
from typing import AsyncIterator, Dict, List, Optional

import httpx
import structlog

from folio import config
from folio.errors import (
    AssistantError,
    InvalidInput,
    UpstreamProtocolError,
    error_from_payload,
    error_from_response,
    error_from_transport,
)

logger = structlog.get_logger()

PROVIDER = "openai"


class OpenAIClient:
    """Async client for the OpenAI embeddings and chat completions APIs."""

    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        chat_model: str = None,
        embedding_model: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (defaults to config.OPENAI_API_KEY)
            base_url: API base URL (defaults to config.OPENAI_BASE_URL)
            chat_model: Chat model (defaults to config.CHAT_MODEL)
            embedding_model: Embedding model (defaults to config.EMBEDDING_MODEL)
            timeout: Per-call timeout in seconds; bounds each read while streaming
            transport: Optional httpx transport (used by tests)
        """
        self.api_key = api_key if api_key is not None else config.OPENAI_API_KEY
        self.base_url = (base_url or config.OPENAI_BASE_URL).rstrip("/")
        self.chat_model = chat_model or config.CHAT_MODEL
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL
        self.timeout = timeout or config.UPSTREAM_TIMEOUT
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

    async def embed(self, text: str, model: str = None) -> List[float]:
        """Generate an embedding for a text.

        Newlines are replaced by spaces before the text is submitted.

        Args:
            text: Non-empty text to embed
            model: Model to use (defaults to the client's embedding model)

        Returns:
            Embedding vector

        Raises:
            InvalidInput: If text is empty
            UpstreamUnavailable: If OpenAI is unreachable or fails
            UpstreamQuotaExceeded: If usage limits are hit
            UpstreamProtocolError: If the response carries no embedding
        """
        if not text or not text.strip():
            raise InvalidInput("Cannot embed empty text")

        model = model or self.embedding_model
        payload = {
            "model": model,
            "input": text.replace("\n", " "),
        }

        try:
            async with self._client() as client:
                logger.debug(
                    "openai_embedding_request",
                    model=model,
                    text_length=len(text),
                )

                response = await client.post(f"{self.base_url}/embeddings", json=payload)

                if response.is_error:
                    raise error_from_response(response, PROVIDER)

                data = response.json()

        except httpx.RequestError as e:
            logger.error("openai_embedding_unreachable", error=str(e), base_url=self.base_url)
            raise error_from_transport(e, PROVIDER) from e
        except AssistantError as e:
            logger.error("openai_embedding_error", error=str(e), error_kind=e.kind.value)
            raise
        except ValueError as e:
            logger.error("openai_embedding_invalid_json", error=str(e))
            raise UpstreamProtocolError(f"OpenAI returned invalid JSON: {e}", provider=PROVIDER) from e

        try:
            embedding = data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamProtocolError("OpenAI response has no embedding", provider=PROVIDER) from e

        if not embedding:
            raise UpstreamProtocolError("Empty embedding returned from OpenAI", provider=PROVIDER)

        logger.debug("openai_embedding_response", model=model, dimension=len(embedding))

        return embedding

    async def stream_chat(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """Stream a chat completion as text fragments.

        The returned async generator is lazy and single-use: nothing is sent
        until the first fragment is requested, and it ends when OpenAI sends
        ``[DONE]`` or closes the body. Fragment boundaries are whatever the
        provider emits and may split words.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use (defaults to the client's chat model)
            temperature: Sampling temperature (0.0-2.0)

        Yields:
            Non-empty content fragments in arrival order

        Raises:
            UpstreamUnavailable: On connection failures, timeouts or HTTP errors
            UpstreamQuotaExceeded: On HTTP 429 or an in-stream quota error
            UpstreamProtocolError: On an undecodable event or in-stream error
        """
        model = model or self.chat_model

        payload = {
            "model": model,
            "messages": messages,
            "stream": True,
        }

        if temperature is not None:
            payload["temperature"] = temperature

        fragment_count = 0

        try:
            async with self._client() as client:
                logger.info(
                    "openai_chat_request",
                    model=model,
                    message_count=len(messages),
                    stream=True,
                )

                async with client.stream(
                    "POST", f"{self.base_url}/chat/completions", json=payload
                ) as response:
                    if response.is_error:
                        await response.aread()
                        raise error_from_response(response, PROVIDER)

                    async for line in response.aiter_lines():
                        fragment = _parse_stream_line(line)
                        if fragment is _DONE:
                            break
                        if fragment:
                            fragment_count += 1
                            yield fragment

        except httpx.RequestError as e:
            logger.error(
                "openai_stream_unreachable",
                error=str(e),
                fragments_sent=fragment_count,
            )
            raise error_from_transport(e, PROVIDER) from e
        except AssistantError as e:
            logger.error(
                "openai_stream_failed",
                error=str(e),
                error_kind=e.kind.value,
                fragments_sent=fragment_count,
            )
            raise

        logger.info("openai_chat_response", model=model, fragments=fragment_count)


_DONE = object()


def _parse_stream_line(line: str):
    """Decode one line of an OpenAI event stream.

    Returns:
        The content fragment (possibly empty), ``_DONE`` for the terminal
        event, or None for lines that carry no content
    """
    line = line.strip()
    if not line or line.startswith(":") or not line.startswith("data:"):
        return None

    data = line[len("data:"):].strip()
    if data == "[DONE]":
        return _DONE

    try:
        event = json.loads(data)
    except ValueError as e:
        raise UpstreamProtocolError(
            f"Malformed event from OpenAI: {data[:100]}", provider=PROVIDER
        ) from e

    if not isinstance(event, dict):
        raise UpstreamProtocolError(f"Unexpected event from OpenAI: {data[:100]}", provider=PROVIDER)

    if "error" in event:
        error = event["error"] if isinstance(event["error"], dict) else {"message": str(event["error"])}
        raise error_from_payload(error, PROVIDER)

    choices = event.get("choices") or []
    if not choices:
        return None

    delta = choices[0].get("delta") or {}
    return delta.get("content")
