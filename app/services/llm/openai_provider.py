from typing import List, Optional

import httpx

from app.errors import UpstreamError, UpstreamTimeout
from app.logging_config import get_logger
from app.services.llm.base import LLMProvider, LLMResponse

logger = get_logger("llm.openai")


class OpenAIProvider(LLMProvider):
    """OpenAI Chat Completions over httpx."""

    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-4o-mini",
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = "https://api.openai.com/v1/chat/completions"
        self.client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def generate(
        self,
        messages: List[dict],
        system: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> LLMResponse:
        model = model or self.default_model
        chat = ([{"role": "system", "content": system}] if system else []) + list(messages)
        payload = {
            "model": model,
            "messages": chat,
            "temperature": temperature,
            "max_completion_tokens": max_tokens,
        }

        logger.debug(f"OpenAI request: model={model}, messages_count={len(chat)}")
        try:
            response = await self.client.post(
                self.base_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(f"OpenAI timeout: {exc}") from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"OpenAI transport error: {exc}") from exc

        if response.status_code != 200:
            logger.error(f"OpenAI error: {response.status_code} {response.text[:500]}")
            raise UpstreamError(
                f"OpenAI API error: {response.status_code}",
                transient=response.status_code >= 500 or response.status_code == 429,
                status_code=response.status_code,
            )

        data = response.json()
        content = ""
        if data.get("choices"):
            content = data["choices"][0].get("message", {}).get("content") or ""
        return LLMResponse(content=content, model=data.get("model", model), usage=data.get("usage"))

    async def aclose(self) -> None:
        await self.client.aclose()
