"""Chat turn model returned by the chat service."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatTurn(BaseModel):
    """One message of a conversation.

    The server is stateless: history lives client-side and only the latest
    user question is sent.  The chat service always returns an assistant turn.
    """

    model_config = ConfigDict(frozen=True)

    role: ChatRole
    content: str = Field(description="Message text.")
