"""Request and message models for the chat endpoint."""
from typing import List, Literal

from pydantic import BaseModel, Field, ValidationError

from folio.errors import InvalidRequest

Role = Literal["user", "assistant", "system"]


class Message(BaseModel):
    """A single conversation turn."""

    id: str = ""
    role: Role
    content: str

    def to_llm(self) -> dict:
        """Role/content pair in the shape chat-completion APIs expect."""
        return {"role": self.role, "content": self.content}


class ChatRequest(BaseModel):
    """Body of POST /api/chat."""

    messages: List[Message] = Field(..., min_length=1)

    @property
    def last_user_message(self) -> Message:
        for message in reversed(self.messages):
            if message.role == "user":
                return message
        raise InvalidRequest("Conversation has no user message")


def parse_chat_request(data) -> ChatRequest:
    """Validate a decoded JSON body.

    Raises:
        InvalidRequest: If the body is missing, malformed, or has no usable user turn
    """
    if not isinstance(data, dict) or "messages" not in data:
        raise InvalidRequest("Missing 'messages' in request body")

    try:
        request = ChatRequest.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise InvalidRequest(f"Invalid request body at '{location}': {first['msg']}") from e

    if not request.last_user_message.content.strip():
        raise InvalidRequest("Message cannot be empty")

    return request
