"""Pydantic models for the API layer."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ChannelRequest(BaseModel):
    """POST /ipc/{channel} body: positional and keyword arguments for the channel."""

    args: list[Any] = Field(default_factory=list)
    kwargs: dict[str, Any] = Field(default_factory=dict)


class ChannelResponse(BaseModel):
    """The uniform channel result."""

    success: bool
    data: Any = None
    error: str | None = None
