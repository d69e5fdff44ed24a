"""
Abstractions for pluggable services. Inversion of control: the controller and
the store depend on these protocols, not on OpenAI or a concrete storage medium.

Common protocols:
- AIGateway.generate(text, history, image) -> GatewayReply | GatewayFailure
- KeyValueBackend.get/set/delete/clear over string values
- SecurityGuard.validate_user_input(text, has_image)

Testing: Use simple fake implementations to test the controller without network
calls or files.
"""

from __future__ import annotations
from typing import Callable, Optional, Protocol
from .models import GatewayResult, ImageInput, Message

IdFactory = Callable[[], str]
Clock = Callable[[], int]


class AIGateway(Protocol):
    async def generate(
        self,
        text: str,
        history: list[Message],
        image: Optional[ImageInput] = None,
    ) -> GatewayResult: ...


class KeyValueBackend(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...


class SecurityGuard(Protocol):
    def validate_user_input(self, text: str, *, has_image: bool = False) -> None: ...
