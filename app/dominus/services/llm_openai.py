"""
Purpose: The AI gateway backed by OpenAI.
One place for auth, retries, model options, response normalization.

The SDK client is opened and closed inside every generate() call: callers
may drive each send with its own asyncio.run(), and a client (with its
connection pool) must not outlive the loop it was used on.

The controller never sees SDK exceptions: every call ends in either a
GatewayReply or a GatewayFailure.

Extensibility:
- Add other providers (Gemini, local models) behind the same AIGateway protocol
  without touching the controller.

Testing: Stub the client object; assert it maps replies, images and errors.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Callable, Optional, Sequence

from openai import (
    APIConnectionError,
    AsyncOpenAI,
    OpenAIError,
    RateLimitError,
)

from ..models import (
    GatewayFailure,
    GatewayReply,
    GatewayResult,
    ImageInput,
    LLMSettings,
    Message,
)
from ..prompts import DefaultPromptFactory

LOGGER = logging.getLogger(__name__)

RETRY_DELAYS = (0.5, 1.0, 2.0, 4.0)
ClientFactory = Callable[[], AsyncOpenAI]


class OpenAIGateway:
    def __init__(
        self,
        client_factory: ClientFactory,
        settings: LLMSettings,
        *,
        image_model: str = "gpt-image-1",
        image_size: str = "1024x1024",
        retry_delays: Sequence[float] = RETRY_DELAYS,
    ):
        self.client_factory = client_factory
        self.settings = settings
        self.image_model = image_model
        self.image_size = image_size
        self.retry_delays = tuple(retry_delays)
        self.prompts = DefaultPromptFactory()

    @classmethod
    def from_api_key(cls, api_key: str, settings: LLMSettings, **kwargs):
        if not api_key:
            raise RuntimeError("Missing OPENAI_API_KEY")
        return cls(lambda: AsyncOpenAI(api_key=api_key), settings, **kwargs)

    async def _with_retries(self, fn, *args, **kwargs):
        for delay in self.retry_delays:
            try:
                return await fn(*args, **kwargs)
            except (RateLimitError, APIConnectionError) as e:
                LOGGER.warning("OpenAI transient error, retrying in %.1fs: %s", delay, e)
                await asyncio.sleep(delay)
        return await fn(*args, **kwargs)

    async def generate(
        self,
        text: str,
        history: list[Message],
        image: Optional[ImageInput] = None,
    ) -> GatewayResult:
        messages = self.prompts.assemble(
            system=self.prompts.build_system(),
            history=history,
            user_text=text,
            image=image,
        )

        try:
            async with self.client_factory() as client:
                return await self._answer(client, text, messages)
        except OpenAIError as e:
            LOGGER.error("OpenAI chat request failed: %s", e)
            return GatewayFailure(reason=str(e) or type(e).__name__, error=e)

    async def _answer(
        self, client: AsyncOpenAI, text: str, messages: list[dict]
    ) -> GatewayResult:
        cc = await self._with_retries(
            client.chat.completions.create,
            model=self.settings.model,
            messages=messages,
            temperature=self.settings.temperature,
            top_p=self.settings.top_p,
            max_tokens=self.settings.max_tokens,
        )

        choices = getattr(cc, "choices", None) or []
        reply = (choices[0].message.content or "").strip() if choices else ""
        if not reply:
            LOGGER.error("OpenAI returned an empty completion: %r", cc)
            return GatewayFailure(reason="Empty completion from model.")

        usage = getattr(cc, "usage", None)
        meta = {
            "model": getattr(cc, "model", self.settings.model),
            "tokens_in": getattr(usage, "prompt_tokens", 0) if usage else 0,
            "tokens_out": getattr(usage, "completion_tokens", 0) if usage else 0,
        }

        picture = None
        if self.prompts.wants_image(text):
            picture = await self.image_generate(
                client,
                prompt=self.prompts.build_image_prompt(
                    user_text=text, reply_text=reply
                ),
            )
        return GatewayReply(text=reply, image=picture, meta=meta)

    async def image_generate(self, client: AsyncOpenAI, *, prompt: str) -> Optional[str]:
        """
        Generate one image and return it as a base64 payload (or a URL if the
        API only gives one). A failed image does not fail the text reply.
        """
        try:
            resp = await self._with_retries(
                client.images.generate,
                model=self.image_model,
                prompt=prompt,
                size=self.image_size,
                n=1,
            )
        except OpenAIError as e:
            LOGGER.warning("Image generation failed, replying with text only: %s", e)
            return None

        data = getattr(resp, "data", None) or []
        if not data:
            return None
        b64 = getattr(data[0], "b64_json", None)
        if b64:
            return b64
        return getattr(data[0], "url", None)
