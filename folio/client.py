"""Client for the chat endpoint's event stream.

Handles:
- Incremental decoding of ``data: <fragment>`` records across read boundaries
- Growing the assistant reply as fragments arrive
- Rendering HTTP, stream and connection failures as assistant messages
"""
import codecs
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Set

import httpx
import structlog

from folio.models import Message

logger = structlog.get_logger()

CONTACT_ERROR_MESSAGE = "Sorry, I'm having trouble contacting the assistant right now. Please try again."
INTERRUPTED_NOTICE = "\n\n[The response was interrupted. Please try again.]"


class SSEDecoder:
    """Incremental decoder for ``data: <payload>\\n\\n`` records.

    Bytes are decoded with an incremental UTF-8 decoder so multi-byte
    characters split across reads survive, and the trailing partial record is
    held back until its terminating blank line arrives.
    """

    delimiter = "\n\n"
    prefix = "data: "

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text received after the last complete record."""
        return self._buffer

    def feed(self, chunk: bytes) -> List[str]:
        """Decode a chunk and return the payloads of every completed record.

        A record with several ``data:`` lines yields their payloads joined by
        a newline; records without any are skipped.
        """
        self._buffer += self._decoder.decode(chunk)

        *records, self._buffer = self._buffer.split(self.delimiter)

        payloads = []
        for record in records:
            lines = [
                line[len(self.prefix):]
                for line in record.split("\n")
                if line.startswith(self.prefix)
            ]
            if lines:
                payloads.append("\n".join(lines))
        return payloads

    def close(self) -> List[str]:
        """Flush the decoder at end of stream; an unterminated record is not emitted."""
        self._buffer += self._decoder.decode(b"", final=True)
        return []


@dataclass
class Conversation:
    """Ordered messages of one chat, kept in memory only."""

    messages: List[Message] = field(default_factory=list)
    # Ids of assistant replies that are errors or interrupted; kept for display only
    failed: Set[str] = field(default_factory=set)

    def add(self, role: str, content: str) -> Message:
        message = Message(id=f"{uuid.uuid4().hex}-{role}", role=role, content=content)
        self.messages.append(message)
        return message

    def mark_failed(self, message: Message) -> None:
        self.failed.add(message.id)

    def to_payload(self) -> dict:
        """Request body for the chat endpoint; failed replies are left out."""
        return {
            "messages": [
                message.model_dump() for message in self.messages if message.id not in self.failed
            ]
        }


def _error_text(response: httpx.Response) -> str:
    """Prefer the JSON ``error`` field, fall back to the raw body."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])

    text = response.text.strip()
    return text or f"Request failed with status {response.status_code}"


class ChatClient:
    """Async client that streams answers from a running assistant server."""

    def __init__(
        self,
        base_url: str = "http://localhost:5000",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def send(
        self,
        conversation: Conversation,
        text: str,
        on_fragment: Optional[Callable[[str], None]] = None,
    ) -> Message:
        """Add a user turn, stream the reply and append it to the conversation.

        Never raises for HTTP or network failures; they are rendered as the
        assistant's reply instead.

        Args:
            conversation: Conversation to extend
            text: User message
            on_fragment: Called with each fragment as it arrives

        Returns:
            The assistant message (complete, or carrying an error)
        """
        conversation.add("user", text)
        payload = conversation.to_payload()
        reply = conversation.add("assistant", "")

        decoder = SSEDecoder()

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                async with client.stream("POST", "/api/chat", json=payload) as response:
                    if response.is_error:
                        await response.aread()
                        reply.content = _error_text(response)
                        conversation.mark_failed(reply)
                        logger.warning(
                            "chat_client_error_response",
                            status_code=response.status_code,
                        )
                        return reply

                    async for chunk in response.aiter_bytes():
                        for fragment in decoder.feed(chunk):
                            reply.content += fragment
                            if on_fragment:
                                on_fragment(fragment)

            decoder.close()
            if decoder.pending:
                logger.warning("chat_client_incomplete_record", pending=decoder.pending[:50])
                reply.content += INTERRUPTED_NOTICE
                conversation.mark_failed(reply)

        except httpx.RequestError as e:
            if reply.content:
                logger.warning("chat_client_stream_interrupted", error=str(e))
                reply.content += INTERRUPTED_NOTICE
                conversation.mark_failed(reply)
            else:
                logger.error("chat_client_connection_failed", error=str(e))
                reply.content = CONTACT_ERROR_MESSAGE
                conversation.mark_failed(reply)

        return reply
