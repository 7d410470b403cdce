"""Wire models for the agent chat endpoints."""

from typing import Any

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """One prior turn of the conversation."""

    role: str
    content: str


class ChatRequest(BaseModel):
    """Body of both chat endpoints."""

    message: str
    history: list[ChatMessage] = Field(default_factory=list)


class ChatResponse(BaseModel):
    """Body returned by the non-streaming chat endpoint."""

    message: str = ""
    tool_calls: list[Any] | None = None
    error: str | None = None

