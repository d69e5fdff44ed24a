"""Utilities for turning sessions into JSON text and back, strictly."""

from __future__ import annotations
import json
from typing import Any

from ..models import ChatSession, Message, Role


def message_to_dict(msg: Message) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": msg.id,
        "role": Role(msg.role).value,
        "text": msg.text,
        "timestamp": msg.timestamp,
    }
    if msg.image:
        data["image"] = msg.image
    if msg.is_thinking:
        data["isThinking"] = True
    return data


def session_to_dict(session: ChatSession) -> dict[str, Any]:
    return {
        "id": session.id,
        "title": session.title,
        "messages": [message_to_dict(m) for m in session.messages],
        "createdAt": session.created_at,
    }


def require_object(data: Any, err: str = "Expected a JSON object.") -> dict:
    """Strict: must be an object, else raise."""
    if not isinstance(data, dict):
        raise ValueError(err)
    return data


def require_array(data: Any, err: str = "Expected a JSON array.") -> list:
    """Strict: must be an array, else raise."""
    if not isinstance(data, list):
        raise ValueError(err)
    return data


def message_from_dict(data: Any) -> Message:
    obj = require_object(data, "Message entry is not an object.")
    try:
        return Message(
            id=str(obj["id"]),
            role=Role(obj["role"]),
            text=str(obj.get("text") or ""),
            timestamp=int(obj["timestamp"]),
            image=obj.get("image") or None,
            is_thinking=bool(obj.get("isThinking", False)),
        )
    except KeyError as e:
        raise ValueError(f"Message entry is missing {e.args[0]!r}.") from e
    except TypeError as e:
        raise ValueError(f"Malformed message entry: {e}") from e


def session_from_dict(data: Any) -> ChatSession:
    obj = require_object(data, "Session entry is not an object.")
    try:
        messages = require_array(obj["messages"], "Session messages must be a list.")
        return ChatSession(
            id=str(obj["id"]),
            title=str(obj.get("title") or ""),
            created_at=int(obj["createdAt"]),
            messages=[message_from_dict(m) for m in messages],
        )
    except KeyError as e:
        raise ValueError(f"Session entry is missing {e.args[0]!r}.") from e
    except TypeError as e:
        raise ValueError(f"Malformed session entry: {e}") from e


def dumps_sessions(sessions: list[ChatSession]) -> str:
    return json.dumps([session_to_dict(s) for s in sessions], ensure_ascii=False)


def loads_sessions(text: str) -> list[ChatSession]:
    """
    Parse a stored JSON array of sessions.
    - Empty/blank text means nothing stored yet and yields [].
    - Anything else that is not a well-formed array of sessions raises ValueError
      (json.JSONDecodeError is a ValueError too).
    """
    if not isinstance(text, str):
        raise ValueError(f"Stored sessions must be JSON text, not {type(text).__name__}.")
    if not text.strip():
        return []
    data = require_array(json.loads(text), "Stored sessions must be a JSON array.")
    return [session_from_dict(item) for item in data]
