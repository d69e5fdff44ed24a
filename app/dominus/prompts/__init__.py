"""Facade over the chat prompt texts and helpers."""

from __future__ import annotations
from typing import Any, Optional

from dominus.models import ImageInput, Message
from . import chat as _chat
from .common import ERROR_NOTICE, GREETING, NEW_SESSION_TITLE, TITLE_CHARS

__all__ = [
    "DefaultPromptFactory",
    "ERROR_NOTICE",
    "GREETING",
    "NEW_SESSION_TITLE",
    "TITLE_CHARS",
]


class DefaultPromptFactory:
    def build_system(self) -> str:
        return _chat.build_chat_system()

    def assemble(
        self,
        *,
        system: str,
        history: list[Message],
        user_text: str,
        image: Optional[ImageInput] = None,
    ) -> list[dict[str, Any]]:
        return _chat.assemble(
            system=system, history=history, user_text=user_text, image=image
        )

    def wants_image(self, text: str) -> bool:
        return _chat.wants_image(text)

    def build_image_prompt(self, *, user_text: str, reply_text: str) -> str:
        return _chat.build_image_prompt(user_text, reply_text)
