"""
Canonical data shapes, shared truth for typing between layers.

Typical contents:
- Message / ChatSession (what the chat shows and what the store persists).
- ImageInput (an uploaded picture + its media type).
- GatewayReply / GatewayFailure (what the AI gateway hands back).
- LLMSettings (model, temperature, top_p, max_tokens).

Testing: Trivial; mostly types.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Union
from enum import Enum


class Role(str, Enum):
    USER = "user"
    MODEL = "model"


class ChatState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"


@dataclass
class Message:
    id: str
    role: Role
    text: str
    timestamp: int
    image: Optional[str] = None
    is_thinking: bool = False


@dataclass
class ChatSession:
    id: str
    title: str
    created_at: int
    messages: list[Message] = field(default_factory=list)


@dataclass
class UserMemory:
    facts: set[str] = field(default_factory=set)
    last_interaction: int = 0


@dataclass(frozen=True)
class ImageInput:
    """Base64 payload of an uploaded image plus its media type."""

    data: str
    mime_type: str = "image/png"


@dataclass(frozen=True)
class GatewayReply:
    text: str
    image: Optional[str] = None
    meta: dict = field(default_factory=dict)


@dataclass(frozen=True)
class GatewayFailure:
    reason: str
    error: Optional[BaseException] = None


GatewayResult = Union[GatewayReply, GatewayFailure]


@dataclass
class LLMSettings:
    model: str
    temperature: float = 0.7
    top_p: float = 1.0
    max_tokens: int = 1024


@dataclass
class SendOutcome:
    """What one send left behind: the state, the session and what went wrong."""

    state: ChatState
    session: ChatSession
    reply_ok: bool
    failure: Optional[GatewayFailure] = None
    persist_error: Optional[BaseException] = None
