from __future__ import annotations

import logging
from typing import Optional

import httpx
from openai import APIError, AsyncOpenAI

from cryptochat.config import settings

logger = logging.getLogger(__name__)


class ChatError(RuntimeError):
    """The completion endpoint failed or answered with an unexpected shape."""


class ChatClient:
    """Chat completions against any OpenAI-compatible endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        request_timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.request_timeout_seconds = request_timeout_seconds
        self._transport = transport

    def _client(self) -> AsyncOpenAI:
        http_client = httpx.AsyncClient(transport=self._transport) if self._transport is not None else None
        return AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.request_timeout_seconds,
            max_retries=0,
            http_client=http_client,
        )

    async def complete(self, system_prompt: str, message: str) -> str:
        client = self._client()
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": message},
                ],
            )
            text = response.choices[0].message.content
        except APIError as exc:
            raise ChatError(str(exc) or type(exc).__name__) from exc
        except (AttributeError, IndexError, TypeError) as exc:
            # Non-JSON bodies come back as plain text instead of a completion object.
            raise ChatError("Completion response has no message content") from exc
        finally:
            await client.close()
        logger.info("Chat completion via %s returned %s chars", self.model, len(text or ""))
        return text or ""


def build_chat_client() -> Optional[ChatClient]:
    """``None`` when no API key is configured."""
    if not settings.openai_api_key:
        return None
    return ChatClient(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        base_url=settings.openai_base_url,
        request_timeout_seconds=settings.request_timeout_seconds,
    )
