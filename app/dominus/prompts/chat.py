"""Chat prompts (system persona, history assembly, image intent)."""

from __future__ import annotations
import re
from textwrap import dedent
from typing import Any, Optional

from ..models import ImageInput, Message, Role
from ..utils.images import data_url

IMAGE_CUES = re.compile(
    r"\b(imagem|image|logo|design|desenhe|draw|mockup|avatar|ícone|icon|banner)\b",
    re.I,
)


def build_chat_system() -> str:
    return dedent(
        """\
        You are DominusAI, an assistant that designs chat bots for websites.
        - The user either sends a screenshot of their site or describes the bot.
        - Propose the bot's name, persona, tone, greeting and the main flows.
        - When a screenshot is attached, match the bot's look to the site's
          colors and style and say which elements you used.
        - Reply in the user's language. Be concise and concrete.
        """
    )


def build_image_prompt(user_text: str, reply_text: str) -> str:
    return dedent(
        f"""\
        Visual mockup of a website chat bot widget.
        User request: {user_text.strip()}
        Bot concept: {reply_text.strip()[:600]}
        Clean UI, flat design, no body text beyond the bot's name.
        """
    )


def wants_image(text: str) -> bool:
    """True if the user's text asks for something visual."""
    return bool(IMAGE_CUES.search(text or ""))


def _to_provider(msg: Message, mime_type: str = "image/png") -> dict[str, Any]:
    role = "user" if msg.role == Role.USER else "assistant"
    if role == "user" and msg.image:
        parts: list[dict[str, Any]] = []
        if msg.text:
            parts.append({"type": "text", "text": msg.text})
        parts.append(
            {"type": "image_url", "image_url": {"url": data_url(msg.image, mime_type)}}
        )
        return {"role": role, "content": parts}
    return {"role": role, "content": msg.text}


def assemble(
    *,
    system: str,
    history: list[Message],
    user_text: str,
    image: Optional[ImageInput] = None,
) -> list[dict[str, Any]]:
    """
    System prompt + history in provider shape. The history normally already
    ends with the user's turn; if it does not, that turn is appended here.
    Model-side images are not sent back.
    """
    out: list[dict[str, Any]] = [{"role": "system", "content": system}]
    for msg in history[:-1]:
        out.append(_to_provider(msg))

    last = history[-1] if history else None
    if last is not None and last.role == Role.USER and last.text == user_text:
        out.append(_to_provider(last, image.mime_type if image else "image/png"))
        return out

    if last is not None:
        out.append(_to_provider(last))
    pending = Message(
        id="pending",
        role=Role.USER,
        text=user_text,
        timestamp=0,
        image=data_url(image.data, image.mime_type) if image else None,
    )
    out.append(_to_provider(pending))
    return out
