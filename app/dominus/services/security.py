"""
Purpose: Guardrails for user turns.
Content: early, predictable failures before anything is appended to the chat;
prevent empty or oversized requests.
"""

from ..errors import InvalidMessageError

MAX_INPUT_CHARS = 8000


class DefaultSecurity:
    def validate_user_input(self, text: str, *, has_image: bool = False) -> None:
        if not (text or "").strip() and not has_image:
            raise InvalidMessageError("Please enter a message or attach an image.")
        if len(text or "") > MAX_INPUT_CHARS:
            raise InvalidMessageError("Your message is too long.")
